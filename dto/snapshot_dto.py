from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import List, Optional


@dataclass(frozen=True)
class SnapshotSeriesPoint:
    snapshot_date: date
    value: float


@dataclass
class RankedEntityDTO:
    entity_id: int
    name: Optional[str]
    latest_value: float
    series: List[SnapshotSeriesPoint] = field(default_factory=list)
    rank: Optional[int] = None
