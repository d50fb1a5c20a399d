import logging
from datetime import date
from typing import Dict, List, Optional, Tuple

import pandas as pd
from sqlalchemy import exists, func, select
from sqlalchemy.orm import Session

from db.db_utils import chunked, dialect_insert
from db.models import (
    Publication,
    PublicationSnapshot,
    ResearcherOverallSnapshot,
    ResearcherTopicSnapshot,
    TopicSnapshot,
)

logger = logging.getLogger(__name__)


class SnapshotDAO:
    """Writes and gap discovery for the four snapshot families."""

    def __init__(self, session: Session):
        self.session = session

    # =============== Helper Actions ===============
    def _upsert(self, model, rows: List[Dict], keys: List[str], value_col: str) -> int:
        """INSERT ... ON CONFLICT (keys) DO UPDATE SET value_col."""
        for chunk in chunked(rows, 1000):
            stmt = dialect_insert(self.session, model).values(chunk)
            stmt = stmt.on_conflict_do_update(
                index_elements=keys,
                set_={value_col: getattr(stmt.excluded, value_col)},
            )
            self.session.execute(stmt)
        return len(rows)

    # =============== Write Actions ===============
    def upsert_publication_snapshots(self, snapshot_date: date, scores: Dict[int, float]) -> int:
        rows = [
            {"publication_id": int(pid), "snapshot_date": snapshot_date, "value": round(max(float(v), 0.0), 3)}
            for pid, v in scores.items()
        ]
        return self._upsert(PublicationSnapshot, rows, ["publication_id", "snapshot_date"], "value")

    def upsert_topic_snapshots(self, snapshot_date: date, frame: pd.DataFrame) -> int:
        rows = [
            {"topic_id": int(r.topic_id), "snapshot_date": snapshot_date, "mean_value": float(r.mean_value)}
            for r in frame.itertuples(index=False)
        ]
        return self._upsert(TopicSnapshot, rows, ["topic_id", "snapshot_date"], "mean_value")

    def upsert_researcher_topic_snapshots(self, snapshot_date: date, frame: pd.DataFrame) -> int:
        rows = [
            {
                "researcher_id": int(r.researcher_id),
                "topic_id": int(r.topic_id),
                "snapshot_date": snapshot_date,
                "mean_value": float(r.mean_value),
            }
            for r in frame.itertuples(index=False)
        ]
        return self._upsert(
            ResearcherTopicSnapshot,
            rows,
            ["researcher_id", "topic_id", "snapshot_date"],
            "mean_value",
        )

    def upsert_researcher_overall_snapshots(self, snapshot_date: date, frame: pd.DataFrame) -> int:
        rows = [
            {"researcher_id": int(r.researcher_id), "snapshot_date": snapshot_date, "mean_value": float(r.mean_value)}
            for r in frame.itertuples(index=False)
        ]
        return self._upsert(
            ResearcherOverallSnapshot,
            rows,
            ["researcher_id", "snapshot_date"],
            "mean_value",
        )

    # =============== Read Actions ===============
    def latest_publication_snapshot_date(self, on_or_before: date) -> Optional[date]:
        return self.session.execute(
            select(func.max(PublicationSnapshot.snapshot_date))
            .where(PublicationSnapshot.snapshot_date <= on_or_before)
        ).scalar()

    def publication_snapshot_values(self, snapshot_date: date) -> pd.DataFrame:
        rows = self.session.execute(
            select(PublicationSnapshot.publication_id, PublicationSnapshot.value)
            .where(PublicationSnapshot.snapshot_date == snapshot_date)
        ).all()
        df = pd.DataFrame([tuple(r) for r in rows], columns=["publication_id", "score"])
        df["score"] = df["score"].astype(float)
        return df

    def publications_needing_history(self, reference_date: date) -> List[Tuple[int, date]]:
        """(publication_id, date_published) for dated publications with no snapshot at all."""
        has_snapshot = exists().where(PublicationSnapshot.publication_id == Publication.id)
        rows = self.session.execute(
            select(Publication.id, Publication.date_published)
            .where(
                Publication.date_published.is_not(None),
                Publication.date_published < reference_date,
                ~has_snapshot,
            )
            .order_by(Publication.date_published, Publication.id)
        ).all()
        return [(int(pid), dp) for pid, dp in rows]

    def count_rows(self, model, snapshot_date: Optional[date] = None) -> int:
        stmt = select(func.count()).select_from(model)
        if snapshot_date is not None:
            stmt = stmt.where(model.snapshot_date == snapshot_date)
        return int(self.session.execute(stmt).scalar() or 0)
