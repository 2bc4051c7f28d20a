"""Domain models shared across services."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Mapping

Scalar = Any


@dataclass(frozen=True, slots=True)
class Reading:
    """A single timestamped observation for one device."""

    timestamp: datetime
    fields: Mapping[str, Scalar]
    metadata: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.timestamp.tzinfo is None:
            object.__setattr__(self, "timestamp", self.timestamp.replace(tzinfo=timezone.utc))


@dataclass(slots=True)
class AggregatedPoint:
    """Summary of all readings that fell into one time bucket."""

    time: str
    fields: Dict[str, Scalar]
    count: int
