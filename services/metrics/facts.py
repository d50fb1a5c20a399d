from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import List, Optional

import pandas as pd
from sqlalchemy.orm import Session

from dao.metrics_dao import MetricsDAO
from services.metrics.calculators import count_citations

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FactSet:
    """
    Immutable scoring facts for one pipeline run.

    `as_of(D)` narrows the facts to what existed at D: publications
    published by D, their authorships and topics, and non-self citations
    dated on or before D, with citation counts recounted from those.
    """

    publications: pd.DataFrame
    authorships: pd.DataFrame
    citations: pd.DataFrame
    publication_topics: pd.DataFrame
    researcher_ids: List[int] = field(default_factory=list)
    venue_ids: List[int] = field(default_factory=list)
    cutoff: Optional[date] = None

    @classmethod
    def load(cls, session: Session) -> "FactSet":
        dao = MetricsDAO(session)
        facts = cls(
            publications=dao.publications_frame(),
            authorships=dao.authorships_frame(),
            citations=dao.citations_frame(),
            publication_topics=dao.publication_topics_frame(),
            researcher_ids=dao.researcher_ids(),
            venue_ids=dao.venue_ids(),
        )
        logger.info(
            "Loaded facts: %d publications, %d authorships, %d citations",
            len(facts.publications), len(facts.authorships), len(facts.citations),
        )
        return facts

    def as_of(self, cutoff: date) -> "FactSet":
        ts = pd.Timestamp(cutoff)

        pubs = self.publications
        pubs = pubs[pubs["date_published"].notna() & (pubs["date_published"] <= ts)].copy()
        kept = pubs["publication_id"]

        cits = self.citations
        cits = cits[
            cits["publication_id"].isin(kept)
            & cits["creation_date"].notna()
            & (cits["creation_date"] <= ts)
        ]
        counts = count_citations(cits)
        pubs["citation_count"] = pubs["publication_id"].map(counts).fillna(0).astype(int)

        return FactSet(
            publications=pubs,
            authorships=self.authorships[self.authorships["publication_id"].isin(kept)],
            citations=cits,
            publication_topics=self.publication_topics[self.publication_topics["publication_id"].isin(kept)],
            researcher_ids=self.researcher_ids,
            venue_ids=self.venue_ids,
            cutoff=cutoff,
        )

    def citation_counts(self) -> pd.Series:
        return self.publications.set_index("publication_id")["citation_count"].astype(int)

    def published_by(self, cutoff: date) -> pd.DataFrame:
        ts = pd.Timestamp(cutoff)
        pubs = self.publications
        return pubs[pubs["date_published"].notna() & (pubs["date_published"] <= ts)]
