from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import IO, TYPE_CHECKING, Any

import yaml
from dotenv import load_dotenv
from loguru import logger

from runtracker.db.config import data_dir
from runtracker.errors import InvalidConfigurationValue, UnknownServiceHandler

if TYPE_CHECKING:
    from runtracker.elevation import ElevationDataSource
    from runtracker.route import RouteDrawingService


SERVICE_TYPES = ("elevation", "route_visualization")
LOG_LEVELS = {
    "trace": "TRACE",
    "debug": "DEBUG",
    "info": "INFO",
    "warn": "WARNING",
    "warning": "WARNING",
    "error": "ERROR",
    "critical": "CRITICAL",
}


@dataclass
class ServiceConfig:
    handler: str
    configuration: dict[str, Any] = field(default_factory=dict)

    def parameters(self) -> list[str]:
        return list(self.configuration)

    def get_parameter(self, key: str) -> Any:
        return self.configuration.get(key)

    def _invalid(self, key: str, expected: str) -> InvalidConfigurationValue:
        value = self.configuration[key]
        return InvalidConfigurationValue(
            f"invalid value for {self.handler}.{key}, expected {expected}: {value!r}"
        )

    def get_parameter_as_string(self, key: str) -> str | None:
        if key not in self.configuration:
            return None
        value = self.configuration[key]
        if not isinstance(value, str):
            raise self._invalid(key, "a string")
        return value

    def get_parameter_as_int(self, key: str) -> int | None:
        if key not in self.configuration:
            return None
        value = self.configuration[key]
        if isinstance(value, bool) or not isinstance(value, int):
            raise self._invalid(key, "an integer")
        return value

    def get_parameter_as_float(self, key: str) -> float | None:
        if key not in self.configuration:
            return None
        value = self.configuration[key]
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise self._invalid(key, "a floating point value")
        return float(value)


def apply_service_config(target: Any, config: ServiceConfig, setters: dict[str, str]) -> None:
    """Copy configuration values onto ``target`` using a key -> getter name table.

    ``setters`` maps each known parameter to the ServiceConfig getter validating its type;
    the value is stored on the attribute of the same name. Unknown keys are only logged.
    """
    for key in config.parameters():
        getter = setters.get(key)
        if getter is None:
            logger.warning(
                f"unknown configuration parameter for {type(target).__name__}: "
                f"{key}={config.get_parameter(key)!r}"
            )
            continue
        value = getattr(config, getter)(key)
        if value is not None:
            setattr(target, key, value)


def _parse_log_level(value: Any) -> str:
    if not isinstance(value, str) or value.lower() not in LOG_LEVELS:
        raise InvalidConfigurationValue(f"invalid level value: {value!r}")
    return LOG_LEVELS[value.lower()]


@dataclass
class Config:
    log_level: str = "INFO"
    import_paths: list[str] = field(default_factory=list)
    services: dict[str, ServiceConfig] = field(default_factory=dict)

    @classmethod
    def load(cls, stream: IO[str] | str) -> Config:
        payload = yaml.safe_load(stream) or {}
        if not isinstance(payload, dict):
            raise InvalidConfigurationValue("configuration file must contain a mapping")

        import_paths = payload.get("import_paths") or []
        if not isinstance(import_paths, list) or not all(isinstance(p, str) for p in import_paths):
            raise InvalidConfigurationValue(f"invalid value for import_paths: {import_paths!r}")

        services: dict[str, ServiceConfig] = {}
        for service_type, body in (payload.get("services") or {}).items():
            if service_type not in SERVICE_TYPES:
                raise InvalidConfigurationValue(f"unknown service type: {service_type}")
            if not isinstance(body, dict) or not isinstance(body.get("handler"), str):
                raise InvalidConfigurationValue(f"service {service_type} requires a handler name")
            configuration = body.get("configuration") or {}
            if not isinstance(configuration, dict):
                raise InvalidConfigurationValue(f"invalid configuration for service {service_type}")
            services[service_type] = ServiceConfig(handler=body["handler"], configuration=configuration)

        return cls(
            log_level=_parse_log_level(payload.get("log_level", "info")),
            import_paths=import_paths,
            services=services,
        )

    def get_elevation_handler(self) -> ElevationDataSource:
        from runtracker.elevation import new_elevation_handler

        service = self.services.get("elevation")
        if service is None:
            raise UnknownServiceHandler("no service configuration defined for elevation")
        return new_elevation_handler(service.handler, service)

    def get_route_visualization_handler(self) -> RouteDrawingService:
        from runtracker.route import new_route_visualization_handler

        service = self.services.get("route_visualization")
        if service is None:
            raise UnknownServiceHandler("no service configuration defined for route visualization")
        return new_route_visualization_handler(service.handler, service)


def config_path() -> Path:
    return Path(os.getenv("RUNTRACKER_CONFIG", data_dir() / "config.yml"))


def load_config(path: Path | str | None = None) -> Config:
    load_dotenv()
    path = Path(path) if path is not None else config_path()
    if not path.exists():
        logger.debug(f"No configuration file at {path}, using defaults")
        return Config()
    with path.open("r", encoding="utf-8") as handle:
        return Config.load(handle)
