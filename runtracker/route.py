from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, Sequence

from sqlalchemy import text
from sqlalchemy.orm import Session

from runtracker.db.query import QueryStringBuilder
from runtracker.errors import UnknownServiceHandler
from runtracker.gps import Location, Marker

if TYPE_CHECKING:
    from runtracker.config import ServiceConfig


class RouteDrawingService(ABC):
    """Renders a GPS trace with labeled markers into image bytes."""

    image_format = "png"

    @abstractmethod
    def draw_route(self, trace: Sequence[Location], markers: Sequence[Marker]) -> bytes:
        ...


def new_route_visualization_handler(handler: str, config: ServiceConfig) -> RouteDrawingService:
    from runtracker.integrations.route.mapbox import MapBox
    from runtracker.integrations.route.openmaptiles import OpenMapTiles

    handlers = {
        "mapbox": MapBox,
        "openmaptiles": OpenMapTiles,
    }
    if handler not in handlers:
        raise UnknownServiceHandler(f"Unknown route visualization handler: {handler}")
    return handlers[handler].from_config(config)


def load_trace(session: Session, file_id: int) -> list[Location]:
    query = (
        QueryStringBuilder("select lat, lon from records")
        .and_where("file_id = :file_id")
        .and_where("lat is not null")
        .and_where("lon is not null")
        .order_by("timestamp")
        .order_by("id")
    )
    rows = session.execute(text(str(query)), {"file_id": file_id}).all()
    return [Location.from_fit_coordinates(row.lat, row.lon) for row in rows]


def load_lap_end_points(session: Session, file_id: int) -> list[Any]:
    query = (
        QueryStringBuilder("select end_lat, end_lon from laps")
        .and_where("file_id = :file_id")
        .and_where("end_lat is not null")
        .and_where("end_lon is not null")
        .order_by("end_time")
        .order_by("id")
    )
    return session.execute(text(str(query)), {"file_id": file_id}).all()


def build_markers(trace: Sequence[Location], lap_end_points: Sequence[Any]) -> list[Marker]:
    """Start marker, lap end markers numbered from 1, finish marker."""
    if not trace:
        return []

    markers = [Marker(trace[0], "S")]
    for index, lap in enumerate(lap_end_points, start=1):
        markers.append(Marker(Location.from_fit_coordinates(lap.end_lat, lap.end_lon), str(index)))
    markers.append(Marker(trace[-1], "F"))
    return markers
