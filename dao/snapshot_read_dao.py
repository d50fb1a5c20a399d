import logging
from datetime import date
from typing import Dict, List, Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from db.models import (
    Publication,
    PublicationSnapshot,
    Researcher,
    ResearcherOverallSnapshot,
    ResearcherTopicSnapshot,
    Topic,
    TopicSnapshot,
)
from dto.snapshot_dto import RankedEntityDTO, SnapshotSeriesPoint

logger = logging.getLogger(__name__)


class SnapshotReadDAO:
    """
    Read-only queries behind the charts and leaderboards.

    Missing data is never an error here: an entity without snapshots has an
    empty series, and a date without a row reads as None (not 0).
    """

    def __init__(self, session: Session):
        self.session = session

    # =============== Helper Actions ===============
    def _series(self, model, value_col, *filters) -> List[SnapshotSeriesPoint]:
        rows = self.session.execute(
            select(model.snapshot_date, value_col)
            .where(*filters)
            .order_by(model.snapshot_date)
        ).all()
        return [SnapshotSeriesPoint(snapshot_date=d, value=float(v)) for d, v in rows]

    def _latest_date(self, model, *filters) -> Optional[date]:
        return self.session.execute(
            select(func.max(model.snapshot_date)).where(*filters)
        ).scalar()

    # =============== Time Series ===============
    def publication_series(self, publication_id: int) -> List[SnapshotSeriesPoint]:
        return self._series(
            PublicationSnapshot,
            PublicationSnapshot.value,
            PublicationSnapshot.publication_id == int(publication_id),
        )

    def topic_series(self, topic_id: int) -> List[SnapshotSeriesPoint]:
        return self._series(
            TopicSnapshot,
            TopicSnapshot.mean_value,
            TopicSnapshot.topic_id == int(topic_id),
        )

    def researcher_series(self, researcher_id: int, topic_id: Optional[int] = None) -> List[SnapshotSeriesPoint]:
        if topic_id is None:
            return self._series(
                ResearcherOverallSnapshot,
                ResearcherOverallSnapshot.mean_value,
                ResearcherOverallSnapshot.researcher_id == int(researcher_id),
            )
        return self._series(
            ResearcherTopicSnapshot,
            ResearcherTopicSnapshot.mean_value,
            ResearcherTopicSnapshot.researcher_id == int(researcher_id),
            ResearcherTopicSnapshot.topic_id == int(topic_id),
        )

    def publication_value_at(self, publication_id: int, snapshot_date: date) -> Optional[float]:
        """None when the publication has no snapshot for that date."""
        value = self.session.execute(
            select(PublicationSnapshot.value).where(
                PublicationSnapshot.publication_id == int(publication_id),
                PublicationSnapshot.snapshot_date == snapshot_date,
            )
        ).scalar_one_or_none()
        return None if value is None else float(value)

    def researcher_value_at(self, researcher_id: int, snapshot_date: date) -> Optional[float]:
        value = self.session.execute(
            select(ResearcherOverallSnapshot.mean_value).where(
                ResearcherOverallSnapshot.researcher_id == int(researcher_id),
                ResearcherOverallSnapshot.snapshot_date == snapshot_date,
            )
        ).scalar_one_or_none()
        return None if value is None else float(value)

    # =============== Leaderboards ===============
    def top_researchers(
        self,
        *,
        topic_id: Optional[int] = None,
        limit: int = 10,
        include_researcher_id: Optional[int] = None,
    ) -> List[RankedEntityDTO]:
        """
        Researchers ranked by their value at the latest snapshot date, with
        their full series. `include_researcher_id` is appended when it falls
        outside the top `limit`.
        """
        if topic_id is None:
            model, value_col = ResearcherOverallSnapshot, ResearcherOverallSnapshot.mean_value
            scope = []
        else:
            model, value_col = ResearcherTopicSnapshot, ResearcherTopicSnapshot.mean_value
            scope = [ResearcherTopicSnapshot.topic_id == int(topic_id)]

        latest = self._latest_date(model, *scope)
        if latest is None:
            return []

        rows = self.session.execute(
            select(model.researcher_id, Researcher.name, value_col)
            .join(Researcher, Researcher.id == model.researcher_id)
            .where(model.snapshot_date == latest, *scope)
            .order_by(value_col.desc(), model.researcher_id)
        ).all()

        ranked = [
            RankedEntityDTO(entity_id=int(rid), name=name, latest_value=float(v), rank=i)
            for i, (rid, name, v) in enumerate(rows, start=1)
        ]
        out = ranked[:limit]
        if include_researcher_id is not None and all(r.entity_id != include_researcher_id for r in out):
            extra = next((r for r in ranked if r.entity_id == include_researcher_id), None)
            if extra is not None:
                out.append(extra)

        for r in out:
            r.series = self.researcher_series(r.entity_id, topic_id)
        return out

    def top_topics(self, limit: int = 10) -> List[RankedEntityDTO]:
        latest = self._latest_date(TopicSnapshot)
        if latest is None:
            return []
        rows = self.session.execute(
            select(TopicSnapshot.topic_id, Topic.name, TopicSnapshot.mean_value)
            .join(Topic, Topic.id == TopicSnapshot.topic_id)
            .where(TopicSnapshot.snapshot_date == latest)
            .order_by(TopicSnapshot.mean_value.desc(), TopicSnapshot.topic_id)
            .limit(limit)
        ).all()
        return [
            RankedEntityDTO(
                entity_id=int(tid),
                name=name,
                latest_value=float(v),
                rank=i,
                series=self.topic_series(tid),
            )
            for i, (tid, name, v) in enumerate(rows, start=1)
        ]

    def top_publications(self, limit: int = 10) -> List[RankedEntityDTO]:
        latest = self._latest_date(PublicationSnapshot)
        if latest is None:
            return []
        rows = self.session.execute(
            select(PublicationSnapshot.publication_id, Publication.title, PublicationSnapshot.value)
            .join(Publication, Publication.id == PublicationSnapshot.publication_id)
            .where(PublicationSnapshot.snapshot_date == latest)
            .order_by(PublicationSnapshot.value.desc(), PublicationSnapshot.publication_id)
            .limit(limit)
        ).all()
        return [
            RankedEntityDTO(
                entity_id=int(pid),
                name=title,
                latest_value=float(v),
                rank=i,
                series=self.publication_series(pid),
            )
            for i, (pid, title, v) in enumerate(rows, start=1)
        ]

    def researcher_profile(self, researcher_id: int) -> Optional[Dict]:
        """Current h-index plus the overall series, or None for an unknown researcher."""
        r = self.session.get(Researcher, int(researcher_id))
        if r is None:
            return None
        return {
            "researcher_id": r.id,
            "name": r.name,
            "h_index": int(r.h_index or 0),
            "series": self.researcher_series(r.id),
        }
