from __future__ import annotations

import logging
from typing import Iterable, Iterator, Sequence, Tuple

import numpy as np
from sqlalchemy.orm import Session

from config import DECAY_HALF_LIFE_DAYS, DECAY_MAX_DAYS
from db.db_utils import chunked, dialect_insert
from db.models import DecayLookup

logger = logging.getLogger(__name__)

HALF_LIFE_DAYS: float = DECAY_HALF_LIFE_DAYS
MAX_DECAY_DAYS: int = DECAY_MAX_DAYS


def decay_factor(days_elapsed: int) -> float:
    """Exponential decay multiplier with a one-year half-life; days clamped to [0, MAX_DECAY_DAYS]."""
    days = min(max(int(days_elapsed), 0), MAX_DECAY_DAYS)
    return 0.5 ** (days / HALF_LIFE_DAYS)


def build_decay_entries(
    max_days: int = MAX_DECAY_DAYS,
    half_life: float = HALF_LIFE_DAYS,
) -> Iterator[Tuple[int, float]]:
    for days in range(max_days + 1):
        yield days, 0.5 ** (days / half_life)


def seed_decay_lookup(session: Session, max_days: int = MAX_DECAY_DAYS) -> int:
    """Upsert every (days, factor) row; safe to run repeatedly."""
    rows = [{"days": d, "decay_factor": f} for d, f in build_decay_entries(max_days)]
    for chunk in chunked(rows, 2000):
        stmt = dialect_insert(session, DecayLookup).values(chunk)
        stmt = stmt.on_conflict_do_update(
            index_elements=["days"],
            set_={"decay_factor": stmt.excluded.decay_factor},
        )
        session.execute(stmt)
    logger.info("Seeded decay lookup with %d rows", len(rows))
    return len(rows)


class DecayTable:
    """
    In-memory copy of the decay_lookup table.

    Every score computation goes through one of these so that the same
    number of elapsed days always maps to the same persisted factor.
    """

    def __init__(self, factors: Sequence[float]):
        self._factors = np.asarray(factors, dtype=float)

    @classmethod
    def from_rows(cls, rows: Iterable[Tuple[int, float]]) -> "DecayTable":
        pairs = sorted((int(d), float(f)) for d, f in rows)
        for expected, (days, _) in enumerate(pairs):
            if days != expected:
                raise ValueError(f"decay lookup has a gap at day {expected}")
        return cls([f for _, f in pairs])

    @classmethod
    def computed(cls, max_days: int = MAX_DECAY_DAYS) -> "DecayTable":
        return cls([f for _, f in build_decay_entries(max_days)])

    @property
    def max_days(self) -> int:
        return len(self._factors) - 1

    def factor(self, days_elapsed: int) -> float:
        days = min(max(int(days_elapsed), 0), self.max_days)
        return float(self._factors[days])

    def lookup(self, days_elapsed) -> np.ndarray:
        """
        Bulk lookup. Days outside [0, max_days] (or NaN for unknown dates)
        have no entry and yield 0, so that term drops out of the score.
        """
        days = np.asarray(days_elapsed, dtype=float)
        out = np.zeros(days.shape, dtype=float)
        valid = ~np.isnan(days) & (days >= 0) & (days <= self.max_days)
        out[valid] = self._factors[days[valid].astype(int)]
        return out

    def __len__(self) -> int:
        return len(self._factors)
