"""
Topic and researcher rollups of publication snapshot scores.

Input frame (one row per publication with a snapshot):
    publication_id, score, date_published, citation_count
"""
from __future__ import annotations

from datetime import date
from typing import Tuple

import numpy as np
import pandas as pd

from services.snapshots.weights import (
    DEFAULT_RESEARCHER_WEIGHTS,
    DEFAULT_TOPIC_WEIGHTS,
    ResearcherWeights,
    TopicWeights,
)
from utils.date_utils import years_before

SCORE_DECIMALS = 3


def _published_by(scores: pd.DataFrame, as_of: date) -> pd.DataFrame:
    ts = pd.Timestamp(as_of)
    return scores[scores["date_published"].notna() & (scores["date_published"] <= ts)]


def _weighted_mean(df: pd.DataFrame, keys) -> pd.DataFrame:
    df = df.assign(weighted=df["score"] * df["weight"])
    g = df.groupby(keys).agg(weighted=("weighted", "sum"), weight=("weight", "sum"))
    g = g[g["weight"] > 0]
    g["mean_value"] = (g["weighted"] / g["weight"]).round(SCORE_DECIMALS)
    return g[["mean_value"]].reset_index()


# =============== Topics ===============
def topic_rollup(
    scores: pd.DataFrame,
    publication_topics: pd.DataFrame,
    as_of: date,
    weights: TopicWeights = DEFAULT_TOPIC_WEIGHTS,
) -> pd.DataFrame:
    """
    Weighted mean score per topic_id, times a volume bonus on the topic's
    publication count. Topics without publications are left out.
    """
    df = _published_by(scores, as_of).merge(publication_topics, on="publication_id")
    if df.empty:
        return pd.DataFrame(columns=["topic_id", "mean_value"])

    recent_cutoff = pd.Timestamp(years_before(as_of, weights.recent_years))
    recency = np.where(df["date_published"] >= recent_cutoff, weights.recent_weight, weights.older_weight)
    quality = np.where(
        df["score"] >= weights.high_score_threshold,
        weights.high_score_weight,
        weights.low_score_weight,
    )
    df = df.assign(weight=recency * quality, weighted=df["score"] * recency * quality)

    g = df.groupby("topic_id").agg(
        weighted=("weighted", "sum"),
        weight=("weight", "sum"),
        publications=("publication_id", "nunique"),
    )
    bonus = g["publications"].map(weights.volume_bonus)
    g["mean_value"] = (g["weighted"] / g["weight"] * bonus).round(SCORE_DECIMALS)
    return g[["mean_value"]].reset_index()


# =============== Researchers ===============
def age_in_months(date_published: pd.Series, as_of: date) -> pd.Series:
    """Whole months between publication and as_of, never negative."""
    ts = pd.Timestamp(as_of)
    months = (
        (ts.year - date_published.dt.year) * 12
        + (ts.month - date_published.dt.month)
        - (date_published.dt.day > ts.day).astype(int)
    )
    return months.clip(lower=0).astype(int)


def publication_weights(
    age_months,
    citation_counts,
    decay_floor: float,
    weights: ResearcherWeights = DEFAULT_RESEARCHER_WEIGHTS,
) -> np.ndarray:
    """
    Three-phase weight over publication age:
      ramp   linear from ramp_floor to 1.0 over the first maturity_months
      peak   1.0 until peak_years
      decay  half-life decay afterwards, never below decay_floor
    plus a citation performance bonus, capped at 1.0 overall.
    """
    months = np.asarray(age_months, dtype=float)
    cites = np.asarray(citation_counts, dtype=float)
    years = months / 12.0

    ramp = weights.ramp_floor + (1.0 - weights.ramp_floor) * months / weights.maturity_months
    decayed = np.maximum(
        decay_floor,
        0.5 ** ((years - weights.peak_years) / weights.decay_half_life_years),
    )
    base = np.where(
        months <= weights.maturity_months,
        ramp,
        np.where(years <= weights.peak_years, 1.0, decayed),
    )

    expected = years * weights.expected_citations_per_year
    perf = np.divide(cites, expected, out=np.zeros_like(cites), where=expected > 0)
    perf = np.minimum(1.0, perf)

    return np.minimum(1.0, base + weights.citation_boost * perf * base)


def researcher_rollups(
    scores: pd.DataFrame,
    authorships: pd.DataFrame,
    publication_topics: pd.DataFrame,
    as_of: date,
    weights: ResearcherWeights = DEFAULT_RESEARCHER_WEIGHTS,
) -> Tuple[pd.DataFrame, pd.DataFrame]:
    """
    Returns (overall, per_topic):
        overall    researcher_id, mean_value
        per_topic  researcher_id, topic_id, mean_value
    """
    df = _published_by(scores, as_of).merge(
        authorships[["publication_id", "researcher_id"]], on="publication_id"
    )
    if df.empty:
        return (
            pd.DataFrame(columns=["researcher_id", "mean_value"]),
            pd.DataFrame(columns=["researcher_id", "topic_id", "mean_value"]),
        )

    df = df.assign(age_months=age_in_months(df["date_published"], as_of))

    overall = df.assign(
        weight=publication_weights(df["age_months"], df["citation_count"], weights.overall_decay_floor, weights)
    )
    overall = _weighted_mean(overall, "researcher_id")

    by_topic = df.merge(publication_topics, on="publication_id")
    if by_topic.empty:
        per_topic = pd.DataFrame(columns=["researcher_id", "topic_id", "mean_value"])
    else:
        by_topic = by_topic.assign(
            weight=publication_weights(
                by_topic["age_months"], by_topic["citation_count"], weights.topic_decay_floor, weights
            )
        )
        per_topic = _weighted_mean(by_topic, ["researcher_id", "topic_id"])

    return overall, per_topic
