"""Time-bucket aggregation for device readings."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Dict, Iterable, List, Sequence

from models.records import AggregatedPoint, Reading, Scalar

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL_MS = 60_000

_UNIT_MS = {
    "m": 60_000,
    "h": 3_600_000,
    "d": 86_400_000,
}

AGGREGATION_FUNCTIONS = ("avg", "sum", "min", "max", "count", "last")
FIELD_POLICIES = ("first", "union")

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_ONE_MS = timedelta(milliseconds=1)


class InvalidIntervalError(ValueError):
    """Raised in strict mode when an interval cannot be parsed."""


class UnknownAggregationError(ValueError):
    """Raised in strict mode for an unsupported aggregation function."""


def parse_interval(interval: str | None, strict: bool = False) -> int:
    """Convert an interval such as ``5m``, ``2h`` or ``1d`` to milliseconds.

    Unknown units, malformed magnitudes and non-positive widths fall back to
    one minute unless ``strict`` is set, in which case
    :class:`InvalidIntervalError` is raised.
    """
    candidate = (interval or "").strip()
    unit, magnitude = candidate[-1:], candidate[:-1]

    if unit not in _UNIT_MS:
        return _interval_fallback(interval, "unrecognized unit", strict)

    try:
        value = int(magnitude)
    except ValueError:
        return _interval_fallback(interval, "invalid magnitude", strict)
    if value <= 0:
        return _interval_fallback(interval, "non-positive magnitude", strict)
    return value * _UNIT_MS[unit]


def _interval_fallback(interval: str | None, reason: str, strict: bool) -> int:
    if strict:
        raise InvalidIntervalError(f"Invalid interval {interval!r}: {reason}.")
    logger.warning(
        "Falling back to default interval",
        extra={"interval": interval, "interval_ms": DEFAULT_INTERVAL_MS, "reason": reason},
    )
    return DEFAULT_INTERVAL_MS


def epoch_ms(timestamp: datetime) -> int:
    if timestamp.tzinfo is None:
        timestamp = timestamp.replace(tzinfo=timezone.utc)
    return (timestamp - _EPOCH) // _ONE_MS


def format_instant(ms: int) -> str:
    """Render epoch milliseconds as ``YYYY-MM-DDTHH:MM:SS.sssZ``."""
    instant = _EPOCH + timedelta(milliseconds=ms)
    return (
        f"{instant.year:04d}-{instant.month:02d}-{instant.day:02d}"
        f"T{instant:%H:%M:%S}.{instant.microsecond // 1000:03d}Z"
    )


def bucket_start(timestamp: datetime, interval_ms: int) -> int:
    return (epoch_ms(timestamp) // interval_ms) * interval_ms


def group_by_bucket(
    readings: Iterable[Reading], interval_ms: int
) -> Dict[str, List[Reading]]:
    """Group readings by epoch-aligned bucket start, preserving input order."""
    groups: Dict[str, List[Reading]] = {}
    for reading in readings:
        key = format_instant(bucket_start(reading.timestamp, interval_ms))
        groups.setdefault(key, []).append(reading)
    return groups


def _is_numeric(value: object) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _field_names(readings: Sequence[Reading], field_policy: str) -> List[str]:
    if field_policy == "union":
        names: Dict[str, None] = {}
        for reading in readings:
            names.update(dict.fromkeys(reading.fields))
        return list(names)
    return list(readings[0].fields)


def _passthrough(readings: Sequence[Reading], name: str) -> Scalar:
    for reading in readings:
        if name in reading.fields:
            return reading.fields[name]
    return None


def _reduce(values: List[float], fn: str) -> Scalar:
    if fn == "avg":
        return sum(values) / len(values)
    if fn == "sum":
        return sum(values)
    if fn == "min":
        return min(values)
    if fn == "max":
        return max(values)
    if fn == "count":
        return len(values)
    return values[-1]


def reduce_fields(
    readings: Sequence[Reading],
    fn: str | None,
    field_policy: str = "first",
) -> Dict[str, Scalar]:
    """Reduce the numeric fields of one bucket with the named function.

    Fields come from the first reading (or the union of all readings with the
    ``union`` policy). A field with no numeric values keeps the raw value of
    the first reading that carries it. Unknown functions yield the last numeric
    value in input order.
    """
    if not readings:
        return {}

    result: Dict[str, Scalar] = {}
    for name in _field_names(readings, field_policy):
        values = [
            reading.fields[name]
            for reading in readings
            if name in reading.fields and _is_numeric(reading.fields[name])
        ]
        if not values:
            result[name] = _passthrough(readings, name)
            continue
        result[name] = _reduce(values, fn or "last")
    return result


@dataclass(frozen=True)
class Aggregator:
    """Aggregation engine configured with a validation and output policy."""

    strict: bool = False
    field_policy: str = "first"
    sort_buckets: bool = False

    def __post_init__(self) -> None:
        if self.field_policy not in FIELD_POLICIES:
            raise ValueError(f"Unknown field policy {self.field_policy!r}.")

    def aggregate(
        self,
        readings: Sequence[Reading],
        aggregation: str | None,
        interval: str | None,
    ) -> List[AggregatedPoint]:
        if not readings:
            return []

        self._check_function(aggregation)
        interval_ms = parse_interval(interval, strict=self.strict)
        groups = group_by_bucket(readings, interval_ms)

        points = [
            AggregatedPoint(
                time=time,
                fields=reduce_fields(items, aggregation, self.field_policy),
                count=len(items),
            )
            for time, items in groups.items()
        ]
        if self.sort_buckets:
            points.sort(key=lambda point: point.time)

        logger.debug(
            "Aggregated readings",
            extra={
                "aggregation": aggregation,
                "interval_ms": interval_ms,
                "reading_count": len(readings),
                "bucket_count": len(points),
            },
        )
        return points

    def validate(self, aggregation: str | None, interval: str | None) -> None:
        """Reject an unknown function or malformed interval in strict mode.

        :meth:`aggregate` skips validation for empty input, so callers that
        must fail regardless of the row count check here first.
        """
        if not self.strict:
            return
        self._check_function(aggregation)
        parse_interval(interval, strict=True)

    def _check_function(self, aggregation: str | None) -> None:
        if aggregation in AGGREGATION_FUNCTIONS:
            return
        if self.strict:
            raise UnknownAggregationError(
                f"Unsupported aggregation {aggregation!r}; "
                f"expected one of {', '.join(AGGREGATION_FUNCTIONS)}."
            )
        logger.warning(
            "Unknown aggregation, using last value",
            extra={"aggregation": aggregation, "reason": "unknown function"},
        )


def aggregate(
    readings: Sequence[Reading],
    aggregation: str | None,
    interval: str | None,
) -> List[AggregatedPoint]:
    """Permissive aggregation in bucket-discovery order."""
    return Aggregator().aggregate(readings, aggregation, interval)
