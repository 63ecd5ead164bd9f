from __future__ import annotations

from typing import Sequence

import requests

from runtracker.config import ServiceConfig, apply_service_config
from runtracker.errors import ServiceRequestError
from runtracker.gps import Location, Marker
from runtracker.route import RouteDrawingService


class OpenMapTiles(RouteDrawingService):
    """Static route images from an OpenMapTiles server, framed by the trace's bounding box.

    Markers are not supported by the server's static endpoint and are ignored.
    """

    settings = {
        "base_url": "get_parameter_as_string",
        "style": "get_parameter_as_string",
        "image_width": "get_parameter_as_int",
        "image_height": "get_parameter_as_int",
        "image_format": "get_parameter_as_string",
        "stroke_color": "get_parameter_as_string",
        "stroke_width": "get_parameter_as_int",
        "timeout": "get_parameter_as_float",
    }

    def __init__(self, base_url: str = "http://localhost:8080", style: str = "osm-bright"):
        self.base_url = base_url
        self.style = style
        self.image_width = 1800
        self.image_height = 1200
        self.image_format = "png"
        self.stroke_color = "red"
        self.stroke_width = 3
        self.timeout = 30

    @classmethod
    def from_config(cls, config: ServiceConfig) -> OpenMapTiles:
        drawer = cls()
        apply_service_config(drawer, config, cls.settings)
        return drawer

    def request_url(self, min_lat: float, max_lat: float, min_lon: float, max_lon: float) -> str:
        # e.g. http://localhost:8080/styles/osm-bright/static/-80.1465,39.46,-80.1313,39.4842/1800x1200.png
        return (
            f"{self.base_url.rstrip('/')}/styles/{self.style}/static/"
            f"{min_lon},{min_lat},{max_lon},{max_lat}/"
            f"{self.image_width}x{self.image_height}.{self.image_format}"
        )

    def draw_route(self, trace: Sequence[Location], markers: Sequence[Marker]) -> bytes:
        latitudes = [loc.latitude for loc in trace]
        longitudes = [loc.longitude for loc in trace]
        url = self.request_url(min(latitudes), max(latitudes), min(longitudes), max(longitudes))

        params = {
            "stroke": self.stroke_color,
            "width": self.stroke_width,
            "path": "|".join(f"{loc.longitude},{loc.latitude}" for loc in trace),
        }
        resp = requests.get(url, params=params, timeout=self.timeout)
        if not resp.ok:
            raise ServiceRequestError(resp.status_code, "OpenMapTiles drawing failed")
        return resp.content
