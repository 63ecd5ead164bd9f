from __future__ import annotations

import time

import requests
from loguru import logger

from runtracker.config import ServiceConfig, apply_service_config
from runtracker.elevation import ElevationDataSource, normalize_elevation
from runtracker.errors import InvalidConfigurationValue, ServiceRequestError
from runtracker.gps import Location, encode_coordinates


BASE_URL = "http://open.mapquestapi.com"
API_VERSION = "v1"


class MapQuest(ElevationDataSource):
    """MapQuest open elevation profile API, coordinates sent as a compressed polyline."""

    settings = {
        "api_key": "get_parameter_as_string",
        "batch_size": "get_parameter_as_int",
        "request_interval": "get_parameter_as_float",
        "timeout": "get_parameter_as_float",
    }

    def __init__(
        self,
        api_key: str = "",
        batch_size: int = 512,
        request_interval: float = 0.0,
        timeout: float = 30,
    ):
        self.api_key = api_key
        self.batch_size = batch_size
        self.request_interval = request_interval
        self.timeout = timeout

    @classmethod
    def from_config(cls, config: ServiceConfig) -> MapQuest:
        source = cls()
        apply_service_config(source, config, cls.settings)
        if source.batch_size <= 0:
            raise InvalidConfigurationValue(f"batch_size must be positive, got {source.batch_size}")
        return source

    def request_elevation_data(self, locations: list[Location]) -> None:
        url = f"{BASE_URL}/elevation/{API_VERSION}/profile"
        for start in range(0, len(locations), self.batch_size):
            if start and self.request_interval:
                time.sleep(self.request_interval)

            chunk = locations[start:start + self.batch_size]
            params = {
                "key": self.api_key,
                "shapeFormat": "cmp",
                "latLngCollection": encode_coordinates(chunk),
            }
            logger.debug(f"Requesting elevation profile for {len(chunk)} locations")
            resp = requests.get(url, params=params, timeout=self.timeout)
            if not resp.ok:
                raise ServiceRequestError(resp.status_code, "")

            payload = resp.json()
            info = payload.get("info", {})
            # MapQuest reports success as 0, accept 200 too
            status = info.get("statuscode", 0)
            if status not in (0, 200):
                raise ServiceRequestError(status, "\n".join(info.get("messages", [])))

            for location, point in zip(chunk, payload.get("elevationProfile", [])):
                location.elevation = normalize_elevation(point.get("height"))
