from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Dict

import pandas as pd

from config import H_INDEX_CAP
from services.metrics.calculators import (
    compute_h_index,
    compute_publication_scores,
    compute_venue_values,
)
from services.metrics.decay import DecayTable
from services.metrics.facts import FactSet

logger = logging.getLogger(__name__)


class MetricStrategy(str, Enum):
    LIVE = "live"      # cached citation counts, every stored citation
    AS_OF = "as_of"    # only facts that existed at the reference date


@dataclass(frozen=True)
class MetricSnapshot:
    as_of: date
    strategy: MetricStrategy
    facts: FactSet
    citation_counts: pd.Series
    h_index: pd.Series
    venue_values: pd.Series
    scores: pd.DataFrame

    def overall_scores(self) -> Dict[int, float]:
        return {int(pid): float(v) for pid, v in self.scores["overall_score"].items()}

    def published_scores(self) -> Dict[int, float]:
        """Overall scores of publications already published at `as_of`."""
        published = self.facts.published_by(self.as_of)["publication_id"]
        scores = self.scores["overall_score"]
        scores = scores[scores.index.isin(published)]
        return {int(pid): float(v) for pid, v in scores.items()}


class MetricEngine:
    """
    h-index -> venue value -> publication score, always in that order.

    One engine serves both the live recalculation and historical
    reconstruction; the strategy decides which facts feed the chain.
    """

    def __init__(self, decay: DecayTable, h_index_cap: int = H_INDEX_CAP):
        self.decay = decay
        self.h_index_cap = h_index_cap

    # =============== Stages ===============
    def h_index(self, facts: FactSet, citation_counts: pd.Series) -> pd.Series:
        return compute_h_index(
            facts.authorships,
            citation_counts,
            researcher_ids=facts.researcher_ids,
            cap=self.h_index_cap,
        )

    def venue_values(self, facts: FactSet, h_index: pd.Series) -> pd.Series:
        return compute_venue_values(
            facts.publications,
            facts.authorships,
            h_index,
            venue_ids=facts.venue_ids,
        )

    def scores(self, facts: FactSet, venue_values: pd.Series, as_of: date) -> pd.DataFrame:
        return compute_publication_scores(
            facts.publications,
            facts.citations,
            venue_values,
            self.decay,
            as_of,
        )

    # =============== Full chain ===============
    def scope(self, facts: FactSet, as_of: date, strategy: MetricStrategy) -> FactSet:
        if strategy is MetricStrategy.AS_OF:
            return facts.as_of(as_of)
        return facts

    def compute(self, facts: FactSet, as_of: date, strategy: MetricStrategy) -> MetricSnapshot:
        scoped = self.scope(facts, as_of, strategy)
        counts = scoped.citation_counts()
        h = self.h_index(scoped, counts)
        venues = self.venue_values(scoped, h)
        scores = self.scores(scoped, venues, as_of)
        logger.debug(
            "Computed %s metrics as of %s: %d researchers, %d venues, %d publications",
            strategy.value, as_of, len(h), len(venues), len(scores),
        )
        return MetricSnapshot(
            as_of=as_of,
            strategy=strategy,
            facts=scoped,
            citation_counts=counts,
            h_index=h,
            venue_values=venues,
            scores=scores,
        )
