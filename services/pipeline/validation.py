from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Dict, List, Tuple

from sqlalchemy import select
from sqlalchemy.orm import Session

from dao.publication_dao import PublicationDAO
from dao.snapshot_dao import SnapshotDAO
from db.models import Publication, PublicationSnapshot, Researcher, ResearcherOverallSnapshot, Venue
from dto.pipeline_dto import ValidationCheck
from dto.publication_dto import AuthorDTO, CitationRecordDTO, SubmissionDTO

logger = logging.getLogger(__name__)

VALIDATION_VENUE = "validation-venue"


@dataclass
class ValidationScenario:
    """
    Controlled dataset with hand-computed answers.

        researcher  papers (external citations)   h-index
        val-a       P1 (3), P2 (2, +1 self)       2
        val-b       P1 (3), P3 (1)                1
        val-c       P4 (0)                        0

    The venue holds all four papers, so its value is avg(2, 1, 0) = 1.
    """

    reference_date: date
    expected_h_index: Dict[str, int] = field(
        default_factory=lambda: {"val-a": 2, "val-b": 1, "val-c": 0}
    )
    expected_citation_counts: Dict[str, int] = field(
        default_factory=lambda: {"val-p1": 3, "val-p2": 2, "val-p3": 1, "val-p4": 0}
    )
    expected_venue_value: float = 1.0

    def records(self) -> List[Tuple[SubmissionDTO, List[CitationRecordDTO]]]:
        published = self.reference_date - timedelta(days=400)
        cited = published + timedelta(days=30)

        papers = [
            ("val-p1", ["val-a", "val-b"], "Machine Learning", 3, 0),
            ("val-p2", ["val-a"], "Machine Learning", 2, 1),
            ("val-p3", ["val-b"], "Networking", 1, 0),
            ("val-p4", ["val-c"], "Networking", 0, 0),
        ]
        out = []
        for sid, authors, topic, external, self_cites in papers:
            sub = SubmissionDTO(
                submission_id=sid,
                doi=f"10.9999/mock-{sid}",
                title=f"Validation paper {sid}",
                venue_external_id=VALIDATION_VENUE,
                venue_name="Validation Venue",
                authors=[AuthorDTO(external_id=a, name=a) for a in authors],
                review_score=3.0,
                date_published=published,
                topics=[topic],
            )
            citations = [
                CitationRecordDTO(
                    external_id=f"{sid}-oci-{k}",
                    citing_identifier=f"10.9999/mock-citing-{sid}-{k}",
                    created_date=cited,
                    is_self_citation=k >= external,
                )
                for k in range(external + self_cites)
            ]
            out.append((sub, citations))
        return out

    def install(self, session: Session) -> int:
        dao = PublicationDAO(session)
        dao.clear_pipeline_data()
        n = 0
        for sub, citations in self.records():
            external = sum(1 for c in citations if not c.is_self_citation)
            pub = dao.insert_publication(sub, citation_count=external)
            dao.insert_citations(pub.id, citations)
            n += 1
        logger.info("[VALIDATION] Installed %d controlled publications", n)
        return n


def validate_pipeline(session: Session, scenario: ValidationScenario) -> List[ValidationCheck]:
    checks: List[ValidationCheck] = []

    h_rows = dict(
        session.execute(
            select(Researcher.external_id, Researcher.h_index)
            .where(Researcher.external_id.in_(list(scenario.expected_h_index)))
        ).all()
    )
    for ext, expected in scenario.expected_h_index.items():
        checks.append(ValidationCheck(f"h_index[{ext}]", expected, h_rows.get(ext)))

    venue_value = session.execute(
        select(Venue.venue_value).where(Venue.external_id == VALIDATION_VENUE)
    ).scalar_one_or_none()
    checks.append(
        ValidationCheck(
            "venue_value",
            scenario.expected_venue_value,
            None if venue_value is None else round(float(venue_value), 3),
        )
    )

    counts = dict(
        session.execute(
            select(Publication.submission_id, Publication.citation_count)
            .where(Publication.submission_id.in_(list(scenario.expected_citation_counts)))
        ).all()
    )
    for sid, expected in scenario.expected_citation_counts.items():
        checks.append(ValidationCheck(f"citation_count[{sid}]", expected, counts.get(sid)))

    dao = SnapshotDAO(session)
    checks.append(
        ValidationCheck(
            "publication_snapshots",
            len(scenario.expected_citation_counts),
            dao.count_rows(PublicationSnapshot, scenario.reference_date),
        )
    )
    checks.append(
        ValidationCheck(
            "researcher_snapshots",
            len(scenario.expected_h_index),
            dao.count_rows(ResearcherOverallSnapshot, scenario.reference_date),
        )
    )

    for c in checks:
        if c.passed:
            logger.info("[VALIDATION] PASSED %s = %s", c.name, c.actual)
        else:
            logger.error("[VALIDATION] FAILED %s: expected %s, got %s", c.name, c.expected, c.actual)
    return checks
