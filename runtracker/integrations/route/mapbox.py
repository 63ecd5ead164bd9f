from __future__ import annotations

from typing import Sequence
from urllib.parse import quote_plus

import requests
from loguru import logger

from runtracker.config import ServiceConfig, apply_service_config
from runtracker.errors import ServiceRequestError
from runtracker.gps import Location, Marker, encode_coordinates
from runtracker.route import RouteDrawingService


MAX_URL_LENGTH = 8192


class MapBox(RouteDrawingService):
    """MapBox static images API with pin markers and an encoded polyline path overlay."""

    settings = {
        "base_url": "get_parameter_as_string",
        "api_version": "get_parameter_as_string",
        "username": "get_parameter_as_string",
        "style": "get_parameter_as_string",
        "image_width": "get_parameter_as_int",
        "image_height": "get_parameter_as_int",
        "marker_color": "get_parameter_as_string",
        "marker_style": "get_parameter_as_string",
        "stroke_color": "get_parameter_as_string",
        "stroke_width": "get_parameter_as_int",
        "stroke_opacity": "get_parameter_as_float",
        "access_token": "get_parameter_as_string",
        "timeout": "get_parameter_as_float",
    }

    def __init__(self, access_token: str = ""):
        self.base_url = "https://api.mapbox.com"
        self.api_version = "v1"
        self.username = "mapbox"
        self.style = "streets-v11"
        self.image_width = 1280
        self.image_height = 1280
        self.marker_color = "f07272"
        self.marker_style = "l"
        self.stroke_color = "f44"
        self.stroke_width = 5
        self.stroke_opacity = 0.75
        self.access_token = access_token
        self.timeout = 30

    @classmethod
    def from_config(cls, config: ServiceConfig) -> MapBox:
        drawer = cls()
        apply_service_config(drawer, config, cls.settings)
        return drawer

    def _marker_overlay(self, markers: Sequence[Marker]) -> str:
        return "".join(
            f"pin-{self.marker_style}-{m.label.lower()}+{self.marker_color}({m.longitude},{m.latitude}),"
            for m in markers
        )

    def request_url(self, encoded_path: str, markers: Sequence[Marker]) -> str:
        url = (
            f"{self.base_url.rstrip('/')}/styles/{self.api_version}/{self.username}/{self.style}/static/"
            f"{quote_plus(self._marker_overlay(markers))}"
            f"path-{self.stroke_width}+{self.stroke_color}-{self.stroke_opacity:g}({quote_plus(encoded_path)})"
            f"/auto/{self.image_width}x{self.image_height}"
        )
        # the access_token query parameter adds roughly another 100 bytes
        if len(url) > MAX_URL_LENGTH:
            logger.warning(
                f"URL length exceeds 8KB due to a long running route, request may fail "
                f"(size={len(url) / 1024:.2f}KB)."
            )
        return url

    def draw_route(self, trace: Sequence[Location], markers: Sequence[Marker]) -> bytes:
        url = self.request_url(encode_coordinates(trace), markers)
        resp = requests.get(url, params={"access_token": self.access_token}, timeout=self.timeout)
        if not resp.ok:
            raise ServiceRequestError(resp.status_code, "MapBox drawing failed")
        return resp.content
