from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Iterable

from runtracker.errors import PolylineEncodingError

SC_TO_DEG = 180 / 2**31  # semicircles -> degrees
POLYLINE_FACTOR = 100_000  # 5 digits of precision


@dataclass
class Location:
    """A single GPS point in degrees, elevation in meters when known."""

    latitude: float
    longitude: float
    elevation: float | None = None

    @classmethod
    def from_fit_coordinates(cls, latitude: int, longitude: int) -> Location:
        return cls(latitude=latitude * SC_TO_DEG, longitude=longitude * SC_TO_DEG)


@dataclass
class Marker:
    """A labeled point drawn on top of a route image."""

    location: Location
    label: str

    @property
    def latitude(self) -> float:
        return self.location.latitude

    @property
    def longitude(self) -> float:
        return self.location.longitude


def _scale(value: float) -> int:
    scaled = value * POLYLINE_FACTOR
    try:
        # round half away from zero, Python's round() would round half to even
        return int(math.copysign(math.floor(abs(scaled) + 0.5), scaled))
    except (OverflowError, ValueError) as exc:
        raise PolylineEncodingError(f"Cannot encode coordinate value: {value!r}") from exc


def _encode_value(current: int, previous: int) -> str:
    delta = current - previous
    coordinate = delta << 1
    if delta < 0:
        coordinate = ~coordinate

    chunks = []
    while coordinate >= 0x20:
        chunks.append((0x20 | (coordinate & 0x1F)) + 63)
        coordinate >>= 5
    chunks.append(coordinate + 63)

    try:
        return "".join(chr(c) for c in chunks)
    except (OverflowError, ValueError) as exc:
        raise PolylineEncodingError(f"Couldn't convert character for delta {delta}") from exc


def encode_coordinates(coordinates: Iterable[Location]) -> str:
    """Encode locations into the Google encoded polyline format.

    Each point is written as the latitude then longitude delta from the previous point,
    starting from (0, 0).
    https://developers.google.com/maps/documentation/utilities/polylinealgorithm
    """
    output: list[str] = []
    prev_lat, prev_lon = 0, 0
    for location in coordinates:
        lat, lon = _scale(location.latitude), _scale(location.longitude)
        output.append(_encode_value(lat, prev_lat))
        output.append(_encode_value(lon, prev_lon))
        prev_lat, prev_lon = lat, lon
    return "".join(output)
