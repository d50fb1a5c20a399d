"""
Weighting constants for topic and researcher rollups.

None of these come from a derived model; they are tuning knobs and are
kept here so that they can be changed in one place.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple


@dataclass(frozen=True)
class TopicWeights:
    recent_years: int = 2
    recent_weight: float = 1.5
    older_weight: float = 0.2

    high_score_threshold: float = 5.0
    high_score_weight: float = 2.0
    low_score_weight: float = 0.5

    # (exclusive publication count threshold, multiplier), checked in order
    volume_tiers: Tuple[Tuple[int, float], ...] = ((100, 1.5), (50, 1.3), (10, 1.1))
    default_volume_bonus: float = 1.0

    def volume_bonus(self, publication_count: int) -> float:
        for threshold, bonus in self.volume_tiers:
            if publication_count > threshold:
                return bonus
        return self.default_volume_bonus


@dataclass(frozen=True)
class ResearcherWeights:
    maturity_months: int = 24
    ramp_floor: float = 0.2
    peak_years: float = 3.0
    decay_half_life_years: float = 5.0

    # The per-topic rollup keeps more weight on old work than the overall one.
    overall_decay_floor: float = 0.1
    topic_decay_floor: float = 0.2

    citation_boost: float = 0.3
    expected_citations_per_year: float = 2.0


DEFAULT_TOPIC_WEIGHTS = TopicWeights()
DEFAULT_RESEARCHER_WEIGHTS = ResearcherWeights()
