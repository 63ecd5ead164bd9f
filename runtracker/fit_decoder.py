from __future__ import annotations

import io
from dataclasses import dataclass, field
from typing import Any, Callable

from fitparse import FitFile


@dataclass
class DecodedMessage:
    """One data message of a FIT file: its global message name and field values."""

    kind: str
    fields: dict[str, Any] = field(default_factory=dict)

    def get(self, *names: str) -> Any:
        # first non-null value among alternative field names
        for name in names:
            value = self.fields.get(name)
            if value is not None:
                return value
        return None


FitDecoder = Callable[[bytes], list[DecodedMessage]]


def decode_fit_bytes(raw: bytes) -> list[DecodedMessage]:
    """Decode FIT content into messages in file order.

    fitparse.FitParseError is raised on malformed or truncated input.
    """
    fit = FitFile(io.BytesIO(raw))
    return [DecodedMessage(kind=msg.name, fields=msg.get_values()) for msg in fit.get_messages()]
