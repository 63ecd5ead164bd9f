from __future__ import annotations

import time

import requests
from loguru import logger

from runtracker.config import ServiceConfig, apply_service_config
from runtracker.elevation import ElevationDataSource, normalize_elevation
from runtracker.errors import InvalidConfigurationValue, ServiceRequestError
from runtracker.gps import Location


class OpenTopoData(ElevationDataSource):
    """Elevation lookups against an OpenTopoData (v1 API) instance."""

    settings = {
        "base_url": "get_parameter_as_string",
        "dataset": "get_parameter_as_string",
        "batch_size": "get_parameter_as_int",
        "request_interval": "get_parameter_as_float",
        "timeout": "get_parameter_as_float",
    }

    def __init__(
        self,
        base_url: str = "http://localhost:5000",
        dataset: str = "ned10m",
        batch_size: int = 100,
        request_interval: float = 0.0,
        timeout: float = 30,
    ):
        self.base_url = base_url
        self.dataset = dataset  # ned10m works well for USA/Canada
        self.batch_size = batch_size
        self.request_interval = request_interval
        self.timeout = timeout

    @classmethod
    def from_config(cls, config: ServiceConfig) -> OpenTopoData:
        source = cls()
        apply_service_config(source, config, cls.settings)
        if source.batch_size <= 0:
            raise InvalidConfigurationValue(f"batch_size must be positive, got {source.batch_size}")
        return source

    def request_url(self) -> str:
        return f"{self.base_url.rstrip('/')}/v1/{self.dataset}"

    def request_elevation_data(self, locations: list[Location]) -> None:
        url = self.request_url()
        for start in range(0, len(locations), self.batch_size):
            if start and self.request_interval:
                time.sleep(self.request_interval)

            chunk = locations[start:start + self.batch_size]
            params = {"locations": "|".join(f"{loc.latitude:.6f},{loc.longitude:.6f}" for loc in chunk)}
            logger.debug(f"Requesting elevation for {len(chunk)} locations from {url}")
            resp = requests.get(url, params=params, timeout=self.timeout)
            if not resp.ok:
                try:
                    message = resp.json().get("error", resp.text)
                except ValueError:
                    message = resp.text
                raise ServiceRequestError(resp.status_code, message)

            results = resp.json().get("results", [])
            for location, result in zip(chunk, results):
                location.elevation = normalize_elevation(result.get("elevation"))
