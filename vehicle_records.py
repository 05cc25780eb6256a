"""
Vehicle record normalization for the DFTrans GPS feed.

The upstream feed groups vehicles by operator and each operator ships its own
flavour of vehicle object. Everything the map needs is pulled into a fixed set of
fields; whatever else the operator sent is carried along untouched in ``extra``.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Union

LOCATION_KEY = "localizacao"
VEHICLE_NUMBER_KEY = "numero"
LINE_KEY = "linha"
HEADING_KEY = "direcao"

# Keys that never end up in ``extra``
CONSUMED_KEYS = frozenset(
    {LOCATION_KEY, "latitude", "longitude", VEHICLE_NUMBER_KEY, LINE_KEY, HEADING_KEY}
)

FIXED_FIELDS = ("latitude", "longitude", "vehicleNumber", "lineId", "heading")

Number = Union[int, float]


@dataclass(frozen=True)
class VehicleRecord:
    """Canonical vehicle position served to browser clients."""
    latitude: float
    longitude: float
    vehicleNumber: str = ""
    lineId: str = ""
    heading: Number = 0
    extra: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Fixed fields first, then operator fields in their original order."""
        result: Dict[str, Any] = {
            "latitude": self.latitude,
            "longitude": self.longitude,
            "vehicleNumber": self.vehicleNumber,
            "lineId": self.lineId,
            "heading": self.heading,
        }
        for key, value in self.extra.items():
            if key not in result:
                result[key] = value
        return result

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "VehicleRecord":
        """Rebuild a record from ``to_dict`` output (used by the Redis cache)."""
        return cls(
            latitude=float(data["latitude"]),
            longitude=float(data["longitude"]),
            vehicleNumber=str(data.get("vehicleNumber", "")),
            lineId=str(data.get("lineId", "")),
            heading=data.get("heading", 0),
            extra={k: v for k, v in data.items() if k not in FIXED_FIELDS},
        )


def _coerce_coordinate(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        value = value.strip()
        if not value:
            return None
    elif not isinstance(value, (int, float)):
        return None
    try:
        result = float(value)
    except (TypeError, ValueError, OverflowError):
        return None
    if not math.isfinite(result):
        return None
    return result


def _coerce_text(value: Any) -> str:
    if value is None or value == "":
        return ""
    return str(value)


def _coerce_heading(value: Any) -> Number:
    if isinstance(value, bool) or value is None:
        return 0
    if isinstance(value, (int, float)):
        try:
            return value if math.isfinite(value) else 0
        except OverflowError:
            return 0
    parsed = _coerce_coordinate(value)
    return parsed if parsed is not None else 0


def normalize_vehicle(raw: Any) -> Optional[VehicleRecord]:
    """Convert one raw upstream vehicle into a ``VehicleRecord``.

    Returns ``None`` when the vehicle has no usable position: missing
    ``localizacao``, or a latitude/longitude that is missing, empty, or does not
    parse as a finite number.
    """
    if not isinstance(raw, Mapping):
        return None
    location = raw.get(LOCATION_KEY)
    if not isinstance(location, Mapping):
        return None

    lat = _coerce_coordinate(location.get("latitude"))
    lon = _coerce_coordinate(location.get("longitude"))
    if lat is None or lon is None:
        return None

    return VehicleRecord(
        latitude=lat,
        longitude=lon,
        vehicleNumber=_coerce_text(raw.get(VEHICLE_NUMBER_KEY)),
        lineId=_coerce_text(raw.get(LINE_KEY)),
        heading=_coerce_heading(raw.get(HEADING_KEY)),
        extra={k: v for k, v in raw.items() if k not in CONSUMED_KEYS},
    )


def normalize_operators(payload: Iterable[Any]) -> List[VehicleRecord]:
    """Flatten every operator's ``veiculos`` list into records, dropping rejects.

    Order follows the operator list, then each operator's vehicle list.
    """
    records: List[VehicleRecord] = []
    for operator in payload:
        if not isinstance(operator, Mapping):
            continue
        vehicles = operator.get("veiculos")
        if not isinstance(vehicles, list):
            continue
        for raw in vehicles:
            record = normalize_vehicle(raw)
            if record is not None:
                records.append(record)
    return records


class LineFilter:
    """Allow-list of line ids, switched on or off by configuration."""

    def __init__(self, enabled: bool = False, allowed_lines: Iterable[str] = ()) -> None:
        self.enabled = enabled
        self.allowed_lines = frozenset(allowed_lines)

    def apply(self, records: Sequence[VehicleRecord]) -> List[VehicleRecord]:
        if not self.enabled:
            return list(records)
        return [r for r in records if r.lineId in self.allowed_lines]


__all__ = [
    "VehicleRecord",
    "LineFilter",
    "normalize_vehicle",
    "normalize_operators",
]
