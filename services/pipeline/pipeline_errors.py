from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import List, Optional


@dataclass
class PreconditionError(Exception):
    """Required tables or reference data are missing; the run must not start."""
    missing: List[str] = field(default_factory=list)
    message: str = "pipeline preconditions not met"

    def __str__(self) -> str:
        return f"{self.message}: {', '.join(self.missing)}"


@dataclass
class BatchAbortedError(Exception):
    """Too many consecutive citation fetch failures; remaining fetches were cancelled."""
    consecutive_failures: int
    processed: int = 0

    def __str__(self) -> str:
        return (
            f"citation fetch batch aborted after {self.consecutive_failures} "
            f"consecutive failures ({self.processed} entities processed)"
        )


@dataclass
class HistoricalDateError(Exception):
    """A historical snapshot date failed on every attempt."""
    snapshot_date: date
    attempts: int
    cause: Optional[BaseException] = None

    def __str__(self) -> str:
        return f"snapshot date {self.snapshot_date} failed after {self.attempts} attempts: {self.cause}"
