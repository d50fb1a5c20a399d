import os
import sys
from datetime import date
from pathlib import Path
from typing import Iterable, Optional, Sequence, Tuple

# keep the default engine off Postgres while the test modules import
os.environ.setdefault("DATABASE_URL", "sqlite://")

PROJECT_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(PROJECT_ROOT))

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from dao.publication_dao import PublicationDAO
from db.base import Base
import db.models  # noqa: F401
from dto.publication_dto import AuthorDTO, CitationRecordDTO, SubmissionDTO
from services.metrics.decay import seed_decay_lookup


@pytest.fixture
def db_engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def bare_session_factory(db_engine):
    """Tables only, no decay lookup."""
    return sessionmaker(bind=db_engine, autoflush=False, future=True)


@pytest.fixture
def session_factory(bare_session_factory):
    with bare_session_factory() as sess:
        seed_decay_lookup(sess)
        sess.commit()
    return bare_session_factory


@pytest.fixture
def add_publication(session_factory):
    """
    add_publication("p1", ["r1", "r2"], published=date(...), citations=[(date, is_self), ...])
    Returns the new publication id.
    """
    counter = {"oci": 0}

    def _add(
        submission_id: str,
        authors: Sequence[str],
        *,
        published: date,
        venue: Optional[str] = "venue-1",
        review: float = 3.0,
        topics: Iterable[str] = ("Other",),
        citations: Sequence[Tuple[Optional[date], bool]] = (),
        doi: Optional[str] = None,
    ) -> int:
        records = []
        for created, is_self in citations:
            counter["oci"] += 1
            records.append(
                CitationRecordDTO(
                    external_id=f"oci-{counter['oci']}",
                    citing_identifier=f"10.1000/citing-{counter['oci']}",
                    created_date=created,
                    is_self_citation=is_self,
                )
            )
        sub = SubmissionDTO(
            submission_id=submission_id,
            doi=doi,
            title=f"Paper {submission_id}",
            venue_external_id=venue,
            authors=[AuthorDTO(external_id=a, name=a) for a in authors],
            review_score=review,
            date_published=published,
            topics=list(topics),
        )
        with session_factory() as sess:
            dao = PublicationDAO(sess)
            pub = dao.insert_publication(sub, citation_count=sum(1 for r in records if not r.is_self_citation))
            dao.insert_citations(pub.id, records)
            sess.commit()
            return pub.id

    return _add


class FakeCitationClient:
    """Stands in for OpenCitationsClient: doi -> records, or doi -> exception."""

    def __init__(self, responses=None, failing=()):
        self.responses = responses or {}
        self.failing = set(failing)
        self.calls = []

    def fetch_citations(self, doi):
        from client.opencitations_client import FetchError

        self.calls.append(doi)
        if doi in self.failing or "*" in self.failing:
            raise FetchError(doi=doi, attempts=5, message="upstream unavailable")
        return list(self.responses.get(doi, []))


@pytest.fixture
def fake_client_cls():
    return FakeCitationClient
