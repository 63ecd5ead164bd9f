from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from loguru import logger
from sqlalchemy import text
from sqlalchemy.orm import Session

from runtracker.db.query import QueryStringBuilder
from runtracker.errors import UnknownServiceHandler
from runtracker.gps import Location

if TYPE_CHECKING:
    from runtracker.config import ServiceConfig


NO_DATA_SENTINEL = -32768


class ElevationDataSource(ABC):
    """Fills in the elevation of each location, in place."""

    @abstractmethod
    def request_elevation_data(self, locations: list[Location]) -> None:
        ...


def normalize_elevation(value: Any) -> float | None:
    # JSON null and the provider "no data" sentinel both mean absent
    if value is None:
        return None
    value = float(value)
    if value == NO_DATA_SENTINEL:
        return None
    return value


def new_elevation_handler(handler: str, config: ServiceConfig) -> ElevationDataSource:
    from runtracker.integrations.elevation.mapquest import MapQuest
    from runtracker.integrations.elevation.opentopodata import OpenTopoData

    handlers = {
        "opentopodata": OpenTopoData,
        "mapquest": MapQuest,
    }
    if handler not in handlers:
        raise UnknownServiceHandler(f"Unknown elevation handler: {handler}")
    return handlers[handler].from_config(config)


@dataclass
class ElevationUpdateCounts:
    records_set: int = 0
    records_total: int = 0
    laps_set: int = 0
    laps_total: int = 0


def _records_query(file_id: int | None, overwrite: bool) -> QueryStringBuilder:
    query = (
        QueryStringBuilder("select id, lat, lon from records")
        .and_where("lat is not null")
        .and_where("lon is not null")
    )
    if not overwrite:
        query.and_where("elevation is null")
    if file_id is not None:
        query.and_where("file_id = :file_id")
    return query.order_by("id")


def _laps_query(file_id: int | None, overwrite: bool) -> QueryStringBuilder:
    query = (
        QueryStringBuilder("select id, start_lat, start_lon, end_lat, end_lon from laps")
        .and_where("start_lat is not null")
        .and_where("start_lon is not null")
    )
    if not overwrite:
        query.and_where("start_elevation is null")
    if file_id is not None:
        query.and_where("file_id = :file_id")
    return query.order_by("id")


def _update_records(
    session: Session, source: ElevationDataSource, file_id: int | None, overwrite: bool
) -> tuple[int, int]:
    params = {"file_id": file_id} if file_id is not None else {}
    rows = session.execute(text(str(_records_query(file_id, overwrite))), params).all()
    if not rows:
        return 0, 0

    locations = [Location.from_fit_coordinates(row.lat, row.lon) for row in rows]
    source.request_elevation_data(locations)

    updates = [
        {"id": row.id, "elevation": normalize_elevation(location.elevation)}
        for row, location in zip(rows, locations)
    ]
    session.execute(text("update records set elevation = :elevation where id = :id"), updates)
    return sum(1 for u in updates if u["elevation"] is not None), len(updates)


def _update_laps(
    session: Session, source: ElevationDataSource, file_id: int | None, overwrite: bool
) -> tuple[int, int]:
    params = {"file_id": file_id} if file_id is not None else {}
    rows = session.execute(text(str(_laps_query(file_id, overwrite))), params).all()
    if not rows:
        return 0, 0

    # start locations first, then the end locations that exist, in one request
    starts = [Location.from_fit_coordinates(row.start_lat, row.start_lon) for row in rows]
    ends: dict[int, Location] = {}
    for row in rows:
        if row.end_lat is not None and row.end_lon is not None:
            ends[row.id] = Location.from_fit_coordinates(row.end_lat, row.end_lon)
    source.request_elevation_data(starts + list(ends.values()))

    updates = []
    for row, start in zip(rows, starts):
        end = ends.get(row.id)
        updates.append(
            {
                "id": row.id,
                "start_elevation": normalize_elevation(start.elevation),
                "end_elevation": normalize_elevation(end.elevation) if end is not None else None,
            }
        )
    session.execute(
        text("update laps set start_elevation = :start_elevation, end_elevation = :end_elevation where id = :id"),
        updates,
    )
    return sum(1 for u in updates if u["start_elevation"] is not None), len(updates)


def update_elevation_data(
    session: Session,
    source: ElevationDataSource,
    file_id: int | None = None,
    overwrite: bool = False,
) -> ElevationUpdateCounts:
    """Backfill elevation of records and laps from an elevation source.

    Without ``overwrite`` only rows whose elevation is still missing are requested. With a
    ``file_id`` the update is limited to that file. Overwriting every file at once is refused.
    Nothing is committed here; provider and storage errors propagate to the caller.
    """
    if file_id is None and overwrite:
        logger.warning("Refusing to overwrite elevation data for all files at once, pass a file id")
        return ElevationUpdateCounts()

    records_set, records_total = _update_records(session, source, file_id, overwrite)
    logger.info(f"Set elevation data for {records_set}/{records_total} record messages")

    laps_set, laps_total = _update_laps(session, source, file_id, overwrite)
    logger.info(f"Set elevation data for {laps_set}/{laps_total} lap messages")

    session.flush()
    return ElevationUpdateCounts(
        records_set=records_set,
        records_total=records_total,
        laps_set=laps_set,
        laps_total=laps_total,
    )
