import logging
from typing import Dict, List, Tuple

import pandas as pd
from sqlalchemy import select, update
from sqlalchemy.orm import Session

from db.db_utils import chunked
from db.models import (
    Citation,
    DecayLookup,
    Publication,
    PublicationAuthor,
    PublicationTopic,
    Researcher,
    Venue,
)

logger = logging.getLogger(__name__)

PUBLICATION_COLS = ["publication_id", "venue_id", "review_score", "date_published", "citation_count"]
AUTHORSHIP_COLS = ["publication_id", "researcher_id"]
CITATION_COLS = ["publication_id", "creation_date", "is_self_citation"]
PUBLICATION_TOPIC_COLS = ["publication_id", "topic_id"]


class MetricsDAO:
    """Bulk reads of scoring facts and bulk writes of computed metrics."""

    def __init__(self, session: Session):
        self.session = session

    # =============== Helper Actions ===============
    def _frame(self, stmt, columns: List[str]) -> pd.DataFrame:
        rows = self.session.execute(stmt).all()
        return pd.DataFrame([tuple(r) for r in rows], columns=columns)

    def _bulk_update(self, model, rows: List[Dict]) -> int:
        for chunk in chunked(rows, 1000):
            self.session.execute(update(model), chunk)
        return len(rows)

    # =============== Read Actions ===============
    def publications_frame(self) -> pd.DataFrame:
        df = self._frame(
            select(
                Publication.id,
                Publication.venue_id,
                Publication.review_score,
                Publication.date_published,
                Publication.citation_count,
            ),
            PUBLICATION_COLS,
        )
        df["date_published"] = pd.to_datetime(df["date_published"])
        df["review_score"] = df["review_score"].astype(float)
        df["citation_count"] = df["citation_count"].fillna(0).astype(int)
        return df

    def authorships_frame(self) -> pd.DataFrame:
        return self._frame(
            select(PublicationAuthor.publication_id, PublicationAuthor.researcher_id),
            AUTHORSHIP_COLS,
        )

    def citations_frame(self) -> pd.DataFrame:
        df = self._frame(
            select(Citation.publication_id, Citation.creation_date, Citation.is_self_citation),
            CITATION_COLS,
        )
        df["creation_date"] = pd.to_datetime(df["creation_date"])
        df["is_self_citation"] = df["is_self_citation"].fillna(False).astype(bool)
        return df

    def publication_topics_frame(self) -> pd.DataFrame:
        return self._frame(
            select(PublicationTopic.publication_id, PublicationTopic.topic_id),
            PUBLICATION_TOPIC_COLS,
        )

    def researcher_ids(self) -> List[int]:
        return list(self.session.execute(select(Researcher.id)).scalars())

    def venue_ids(self) -> List[int]:
        return list(self.session.execute(select(Venue.id)).scalars())

    def decay_rows(self) -> List[Tuple[int, float]]:
        rows = self.session.execute(
            select(DecayLookup.days, DecayLookup.decay_factor).order_by(DecayLookup.days)
        ).all()
        return [(int(d), float(f)) for d, f in rows]

    def decay_row_count(self) -> int:
        return len(self.session.execute(select(DecayLookup.days)).scalars().all())

    # =============== Write Actions ===============
    def write_h_indexes(self, h_index: Dict[int, int]) -> int:
        rows = [{"id": int(rid), "h_index": int(h)} for rid, h in h_index.items()]
        n = self._bulk_update(Researcher, rows)
        logger.info("Updated h-index for %d researchers", n)
        return n

    def write_venue_values(self, venue_values: Dict[int, float]) -> int:
        rows = [{"id": int(vid), "venue_value": round(float(v), 3)} for vid, v in venue_values.items()]
        n = self._bulk_update(Venue, rows)
        logger.info("Updated venue value for %d venues", n)
        return n

    def write_overall_scores(self, scores: Dict[int, float]) -> int:
        rows = [{"id": int(pid), "overall_score": round(float(s), 3)} for pid, s in scores.items()]
        n = self._bulk_update(Publication, rows)
        logger.info("Updated overall score for %d publications", n)
        return n
