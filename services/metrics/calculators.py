"""
Set-based point system calculations.

Each function takes whole-cohort pandas frames and returns one value per
entity. They are pure: nothing here touches the database, so the same code
serves the live recalculation and every historical reconstruction.

Frame columns:
    publications  publication_id, venue_id, review_score, date_published, citation_count
    authorships   publication_id, researcher_id
    citations     publication_id, creation_date, is_self_citation
"""
from __future__ import annotations

from datetime import date
from typing import Iterable, Optional

import numpy as np
import pandas as pd

from services.metrics.decay import DecayTable

H_INDEX_CAP = 100
VENUE_VALUE_FLOOR = 1.0
VENUE_VALUE_CAP = 100.0
REVIEW_SCORE_MIN = 1.0
REVIEW_SCORE_MAX = 5.0
# a citation is worth a fifth of the cited venue's value
CITATION_VENUE_DIVISOR = 5.0
SCORE_DECIMALS = 3


def count_citations(citations: pd.DataFrame) -> pd.Series:
    """Non-self citations per publication_id."""
    external = citations[~citations["is_self_citation"].astype(bool)]
    counts = external.groupby("publication_id").size()
    return counts.astype(int).rename("citation_count")


def compute_h_index(
    authorships: pd.DataFrame,
    citation_counts: pd.Series,
    researcher_ids: Optional[Iterable[int]] = None,
    cap: int = H_INDEX_CAP,
) -> pd.Series:
    """
    h-index per researcher_id.

    Each researcher's publications are ranked by citation count (desc); h is
    the largest rank r whose r-th publication has at least r citations.
    Researchers with no qualifying publication get 0.
    """
    known = pd.Index(list(researcher_ids or []), name="researcher_id")

    df = authorships[["researcher_id", "publication_id"]].drop_duplicates().copy()
    if df.empty:
        return pd.Series(0, index=known, dtype=int, name="h_index")

    df["cites"] = df["publication_id"].map(citation_counts).fillna(0).astype(int)
    df = df.sort_values(["researcher_id", "cites"], ascending=[True, False], kind="mergesort")
    df["rank"] = df.groupby("researcher_id").cumcount() + 1

    qualifying = df[df["cites"] >= df["rank"]]
    h = qualifying.groupby("researcher_id")["rank"].max().clip(upper=cap)

    everyone = known.union(pd.Index(df["researcher_id"].unique(), name="researcher_id"))
    return h.reindex(everyone, fill_value=0).astype(int).rename("h_index")


def compute_venue_values(
    publications: pd.DataFrame,
    authorships: pd.DataFrame,
    h_index: pd.Series,
    venue_ids: Optional[Iterable[int]] = None,
    floor: float = VENUE_VALUE_FLOOR,
    cap: float = VENUE_VALUE_CAP,
) -> pd.Series:
    """
    Average h-index of each venue's distinct authors, clamped to [floor, cap].

    Only authors of publications in that venue count. Venues without any
    authored publication sit at the floor.
    """
    known = pd.Index(list(venue_ids or []), name="venue_id")

    pubs = publications[["publication_id", "venue_id"]].dropna(subset=["venue_id"])
    pairs = (
        pubs.merge(authorships[["publication_id", "researcher_id"]], on="publication_id")
        [["venue_id", "researcher_id"]]
        .drop_duplicates()
    )
    if pairs.empty:
        return pd.Series(floor, index=known, dtype=float, name="venue_value")

    pairs = pairs.astype({"venue_id": int})
    pairs["h_index"] = pairs["researcher_id"].map(h_index).fillna(0).astype(float)
    values = pairs.groupby("venue_id")["h_index"].mean().clip(lower=floor, upper=cap)

    everyone = known.union(pd.Index(values.index, name="venue_id"))
    return values.reindex(everyone, fill_value=floor).astype(float).rename("venue_value")


def compute_publication_scores(
    publications: pd.DataFrame,
    citations: pd.DataFrame,
    venue_values: pd.Series,
    decay: DecayTable,
    as_of: date,
) -> pd.DataFrame:
    """
    Score every publication as of `as_of`:

        base           = clamp(review, 1, 5) * venue_value
        age_decay      = decay(days since date_published)
        citation_bonus = sum over non-self citations of
                         venue_value / 5 * decay(days since max(citation date, date_published))
        overall_score  = base * age_decay + citation_bonus

    A missing publication date counts as published on `as_of`. A missing
    review score or venue counts as 1.
    """
    ts = pd.Timestamp(as_of)
    columns = ["base_score", "age_decay", "citation_bonus", "overall_score"]

    pubs = publications[["publication_id", "venue_id", "review_score", "date_published"]].copy()
    if pubs.empty:
        return pd.DataFrame(columns=columns, index=pd.Index([], name="publication_id"), dtype=float)

    pubs["venue_value"] = pubs["venue_id"].map(venue_values).fillna(1.0).astype(float)
    pubs["ref_date"] = pubs["date_published"].fillna(ts)
    review = pubs["review_score"].astype(float).fillna(REVIEW_SCORE_MIN).clip(REVIEW_SCORE_MIN, REVIEW_SCORE_MAX)

    pubs["base_score"] = review * pubs["venue_value"]
    age_days = (ts - pubs["ref_date"]).dt.days
    pubs["age_decay"] = decay.lookup(age_days.to_numpy(dtype=float))

    external = citations.loc[~citations["is_self_citation"].astype(bool), ["publication_id", "creation_date"]]
    cits = external.merge(
        pubs[["publication_id", "ref_date", "venue_value"]],
        on="publication_id",
    )
    if cits.empty:
        bonus = pd.Series(dtype=float)
    else:
        later = cits["creation_date"].notna() & (cits["creation_date"] > cits["ref_date"])
        effective = cits["creation_date"].where(later, cits["ref_date"])
        cite_days = (ts - effective).dt.days
        cits["bonus"] = (
            cits["venue_value"] / CITATION_VENUE_DIVISOR
            * decay.lookup(cite_days.to_numpy(dtype=float))
        )
        bonus = cits.groupby("publication_id")["bonus"].sum()

    pubs["citation_bonus"] = pubs["publication_id"].map(bonus).fillna(0.0).astype(float)
    pubs["overall_score"] = np.round(
        pubs["base_score"] * pubs["age_decay"] + pubs["citation_bonus"],
        SCORE_DECIMALS,
    )
    return pubs.set_index("publication_id")[columns]
