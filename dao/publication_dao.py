import logging
from typing import Dict, Iterable, List, Optional, Set, Tuple

from sqlalchemy import delete, func, select
from sqlalchemy.orm import Session

from db.db_utils import chunked, dialect_insert
from db.models import (
    Citation,
    Publication,
    PublicationAuthor,
    PublicationSnapshot,
    PublicationTopic,
    Researcher,
    ResearcherOverallSnapshot,
    ResearcherTopicSnapshot,
    Topic,
    TopicSnapshot,
    Venue,
)
from dto.publication_dto import (
    AuthorDTO,
    CitationRecordDTO,
    DEFAULT_TOPIC,
    MOCK_DOI_PREFIX,
    SubmissionDTO,
)

logger = logging.getLogger(__name__)


class PublicationDAO:
    """Data access for publications, their authors, topics and citations."""

    def __init__(self, session: Session):
        self.session = session

    # =============== Read Actions ===============
    def count_publications(self) -> int:
        return int(self.session.execute(select(func.count(Publication.id))).scalar() or 0)

    def existing_submission_ids(self) -> Set[str]:
        return set(self.session.execute(select(Publication.submission_id)).scalars())

    def get_by_submission_id(self, submission_id: str) -> Optional[Publication]:
        return self.session.execute(
            select(Publication).where(Publication.submission_id == str(submission_id))
        ).scalar_one_or_none()

    def list_refreshable(self) -> List[Tuple[int, str, int]]:
        """(id, doi, citation_count) of publications with a real DOI."""
        rows = self.session.execute(
            select(Publication.id, Publication.doi, Publication.citation_count)
            .where(
                Publication.doi.is_not(None),
                Publication.doi != "",
                ~Publication.doi.startswith(MOCK_DOI_PREFIX),
            )
            .order_by(Publication.id)
        ).all()
        return [(int(pid), doi, int(cc or 0)) for pid, doi, cc in rows]

    def count_external_citations(self, publication_id: int) -> int:
        return int(
            self.session.execute(
                select(func.count(Citation.id)).where(
                    Citation.publication_id == int(publication_id),
                    Citation.is_self_citation.is_(False),
                )
            ).scalar()
            or 0
        )

    # =============== Upsert Actions ===============
    def get_or_create_venue(self, external_id: str, name: Optional[str] = None) -> Venue:
        venue = self.session.execute(
            select(Venue).where(Venue.external_id == str(external_id))
        ).scalar_one_or_none()
        if venue is None:
            venue = Venue(external_id=str(external_id), name=name, venue_value=1.0)
            self.session.add(venue)
            self.session.flush()
        elif name and not venue.name:
            venue.name = name
        return venue

    def get_or_create_researcher(self, author: AuthorDTO) -> Researcher:
        researcher = self.session.execute(
            select(Researcher).where(Researcher.external_id == str(author.external_id))
        ).scalar_one_or_none()
        if researcher is None:
            researcher = Researcher(
                external_id=str(author.external_id),
                name=author.name,
                email=author.email,
                h_index=0,
            )
            self.session.add(researcher)
            self.session.flush()
        return researcher

    def get_or_create_topic(self, name: str) -> Topic:
        name = (name or "").strip() or DEFAULT_TOPIC
        topic = self.session.execute(select(Topic).where(Topic.name == name)).scalar_one_or_none()
        if topic is None:
            topic = Topic(name=name)
            self.session.add(topic)
            self.session.flush()
        return topic

    # =============== Insert Actions ===============
    def insert_publication(self, dto: SubmissionDTO, citation_count: int = 0) -> Optional[Publication]:
        """
        Insert a submission with its author and topic links.
        Returns None when the submission is already stored.
        """
        if self.get_by_submission_id(dto.submission_id) is not None:
            return None

        venue_id = None
        if dto.venue_external_id:
            venue_id = self.get_or_create_venue(dto.venue_external_id, dto.venue_name).id

        pub = Publication(
            submission_id=str(dto.submission_id),
            doi=dto.doi,
            title=dto.title,
            venue_id=venue_id,
            review_score=float(dto.review_score),
            date_published=dto.date_published,
            citation_count=int(citation_count),
            overall_score=0.0,
        )
        self.session.add(pub)
        self.session.flush()

        self.link_authors(pub.id, [self.get_or_create_researcher(a).id for a in dto.authors])
        self.link_topics(pub.id, [self.get_or_create_topic(t).id for t in (dto.topics or [DEFAULT_TOPIC])])
        return pub

    def link_authors(self, publication_id: int, researcher_ids: Iterable[int]) -> int:
        rows = [{"publication_id": publication_id, "researcher_id": rid} for rid in dict.fromkeys(researcher_ids)]
        if not rows:
            return 0
        stmt = dialect_insert(self.session, PublicationAuthor).values(rows)
        self.session.execute(stmt.on_conflict_do_nothing(index_elements=["publication_id", "researcher_id"]))
        return len(rows)

    def link_topics(self, publication_id: int, topic_ids: Iterable[int]) -> int:
        rows = [{"publication_id": publication_id, "topic_id": tid} for tid in dict.fromkeys(topic_ids)]
        if not rows:
            return 0
        stmt = dialect_insert(self.session, PublicationTopic).values(rows)
        self.session.execute(stmt.on_conflict_do_nothing(index_elements=["publication_id", "topic_id"]))
        return len(rows)

    def insert_citations(self, publication_id: int, records: List[CitationRecordDTO]) -> int:
        """Insert citations, ignoring OCIs already stored. Returns rows offered."""
        rows: Dict[str, dict] = {}
        for r in records:
            rows.setdefault(
                r.external_id,
                {
                    "publication_id": int(publication_id),
                    "external_id": r.external_id,
                    "citing_identifier": r.citing_identifier,
                    "creation_date": r.created_date,
                    "is_self_citation": bool(r.is_self_citation),
                },
            )
        for chunk in chunked(list(rows.values()), 500):
            stmt = dialect_insert(self.session, Citation).values(chunk)
            self.session.execute(stmt.on_conflict_do_nothing(index_elements=["external_id"]))
        return len(rows)

    def refresh_citation_count(self, publication_id: int) -> Tuple[int, int]:
        """Recount non-self citations into the cached column. Returns (old, new)."""
        pub = self.session.get(Publication, int(publication_id))
        old = int(pub.citation_count or 0)
        new = self.count_external_citations(publication_id)
        if new != old:
            pub.citation_count = new
        return old, new

    # =============== Delete Actions ===============
    def clear_pipeline_data(self) -> None:
        """Remove publications, citations, bridges and every snapshot."""
        for model in (
            PublicationSnapshot,
            TopicSnapshot,
            ResearcherTopicSnapshot,
            ResearcherOverallSnapshot,
            Citation,
            PublicationTopic,
            PublicationAuthor,
            Publication,
        ):
            self.session.execute(delete(model))
        logger.info("Cleared publication and snapshot tables")
