from __future__ import annotations

from datetime import datetime
from typing import Any, Iterable

from loguru import logger
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from runtracker.db.models import Lap, Record
from runtracker.db.query import FileInfo, list_file_infos, resolve_file_reference
from runtracker.errors import EmptyRouteError
from runtracker.route import RouteDrawingService, build_markers, load_lap_end_points, load_trace


def _duration_label(total_seconds: int | None) -> str | None:
    if total_seconds is None:
        return None
    hours, rem = divmod(total_seconds, 3600)
    minutes, seconds = divmod(rem, 60)
    if hours > 0:
        return f"{hours:02d}:{minutes:02d}:{seconds:02d}"
    return f"{minutes:02d}:{seconds:02d}"


def _seconds_between(start: datetime | None, end: datetime | None) -> int | None:
    if start is None or end is None:
        return None
    return int((end - start).total_seconds())


def _speed_kmh(speed_ms: float | None) -> float | None:
    if speed_ms is None:
        return None
    return float(speed_ms) * 3.6


def _lap_summary(index: int, lap: Lap) -> dict[str, Any]:
    duration_s = _seconds_between(lap.start_time, lap.end_time)
    return {
        "lap_index": index,
        "distance_m": lap.total_distance,
        "duration_s": duration_s,
        "duration_label": _duration_label(duration_s),
        "avg_speed_kmh": _speed_kmh(lap.avg_speed),
        "avg_heart_rate": lap.avg_heart_rate,
    }


def file_summaries(session: Session, file_ids: Iterable[int]) -> dict[int, dict[str, Any]]:
    """Aggregate record statistics and per-lap rows for each file id."""
    file_ids = list(file_ids)
    if not file_ids:
        return {}

    rows = session.execute(
        select(
            Record.file_id,
            func.max(Record.distance).label("distance"),
            func.avg(Record.speed).label("avg_speed"),
            func.avg(Record.heart_rate).label("avg_heart_rate"),
            func.min(Record.timestamp).label("start_time"),
            func.max(Record.timestamp).label("end_time"),
        )
        .where(Record.file_id.in_(file_ids))
        .group_by(Record.file_id)
    ).all()

    summaries: dict[int, dict[str, Any]] = {}
    for row in rows:
        duration_s = _seconds_between(row.start_time, row.end_time)
        summaries[row.file_id] = {
            "distance_m": row.distance,
            "duration_s": duration_s,
            "duration_label": _duration_label(duration_s),
            "avg_speed_kmh": _speed_kmh(row.avg_speed),
            "avg_heart_rate": float(row.avg_heart_rate) if row.avg_heart_rate is not None else None,
            "laps": [],
        }

    laps = session.scalars(
        select(Lap).where(Lap.file_id.in_(file_ids)).order_by(Lap.file_id, Lap.start_time, Lap.id)
    ).all()
    for lap in laps:
        summary = summaries.setdefault(lap.file_id, {"laps": []})
        summary["laps"].append(_lap_summary(len(summary["laps"]) + 1, lap))
    return summaries


def list_files(
    session: Session,
    since: datetime | None = None,
    until: datetime | None = None,
    reverse: bool = False,
    number: int | None = None,
) -> list[FileInfo]:
    return list_file_infos(session, since=since, until=until, reverse=reverse, number=number)


def list_files_with_summaries(session: Session, **filters: Any) -> list[dict[str, Any]]:
    files = list_files(session, **filters)
    summaries = file_summaries(session, [f.id for f in files])
    return [{**f.as_dict(), "summary": summaries.get(f.id)} for f in files]


def render_route_image(session: Session, drawer: RouteDrawingService, reference: str) -> bytes:
    """Draw the GPS trace of one file with start, lap and finish markers."""
    file_info = resolve_file_reference(session, reference)
    trace = load_trace(session, file_info.id)
    if not trace:
        raise EmptyRouteError(file_info.uuid)

    markers = build_markers(trace, load_lap_end_points(session, file_info.id))
    logger.debug(f"Drawing route for {file_info.uuid} with {len(trace)} points and {len(markers)} markers")
    return drawer.draw_route(trace, markers)
