from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Dict, List, Optional, Tuple

import numpy as np
from tqdm import tqdm
from tqdm.contrib.logging import logging_redirect_tqdm

from dao.publication_dao import PublicationDAO
from db.db_conn import SessionLocal
from dto.publication_dto import MOCK_DOI_PREFIX, AuthorDTO, CitationRecordDTO, SubmissionDTO
from utils.date_utils import to_utc_date, utc_now

logger = logging.getLogger(__name__)

DEFAULT_TOPICS = (
    "Machine Learning",
    "Computer Vision",
    "Natural Language Processing",
    "Networks",
    "Security",
    "Databases",
    "Human-Computer Interaction",
    "Distributed Systems",
    "Robotics",
    "Bioinformatics",
)


@dataclass(frozen=True)
class MockDataConfig:
    publication_count: int = 2000
    year_range: Tuple[int, int] = (2015, 2024)

    active_researcher_count: int = 1000
    venue_count: int = 150
    community_count: int = 50
    # chance that an author is drawn from outside the publication's community
    community_overlap: float = 0.2

    # (cumulative share, max citations): 25% uncited, 20% get 1-3, ... 0.5% get 501-1000
    citation_tiers: Tuple[Tuple[float, int], ...] = (
        (0.25, 0),
        (0.45, 3),
        (0.65, 8),
        (0.80, 20),
        (0.90, 50),
        (0.95, 100),
        (0.98, 200),
        (0.995, 500),
        (1.0, 1000),
    )
    # years back from the newest year -> multiplier on drawn citation counts
    recent_year_penalty: Tuple[float, ...] = (0.3, 0.5, 0.7, 0.85, 0.95)

    authors_min: int = 1
    authors_mode: int = 3
    authors_max: int = 8

    self_citation_rate: float = 0.08
    topics: Tuple[str, ...] = DEFAULT_TOPICS


@dataclass
class MockDataSummary:
    publications: int = 0
    citations: int = 0
    self_citations: int = 0
    researchers: int = 0
    venues: int = 0


class MockDataGenerator:
    """
    Synthetic but realistically shaped data: researchers publish mostly
    inside their research community, citation counts follow a long-tailed
    distribution and recent papers have had less time to collect them.
    """

    def __init__(
        self,
        *,
        session_factory=SessionLocal,
        config: MockDataConfig = MockDataConfig(),
        seed: Optional[int] = None,
        today: Optional[date] = None,
    ):
        self.session_factory = session_factory
        self.config = config
        self.rng = np.random.default_rng(seed)
        self.today = today or to_utc_date(utc_now())

    # =============== Draws ===============
    def _draw_citation_count(self, year: int) -> int:
        cfg = self.config
        u = self.rng.random()
        low = 0
        for share, high in cfg.citation_tiers:
            if u <= share:
                n = int(self.rng.integers(low, high + 1)) if high > 0 else 0
                break
            low = high + 1
        else:
            n = cfg.citation_tiers[-1][1]

        years_back = cfg.year_range[1] - year
        if 0 <= years_back < len(cfg.recent_year_penalty):
            n = int(round(n * cfg.recent_year_penalty[years_back]))
        return n

    def _draw_author_count(self) -> int:
        cfg = self.config
        n = self.rng.triangular(cfg.authors_min, cfg.authors_mode, cfg.authors_max)
        return int(min(cfg.authors_max, max(cfg.authors_min, round(n))))

    def _draw_date(self, year: int) -> date:
        start = date(year, 1, 1)
        end = min(date(year, 12, 31), self.today)
        if end < start:
            return self.today
        return start + timedelta(days=int(self.rng.integers(0, (end - start).days + 1)))

    def _communities(self, researchers: List[str]) -> List[List[str]]:
        k = max(1, min(self.config.community_count, len(researchers)))
        shuffled = [str(r) for r in self.rng.permutation(researchers)]
        return [shuffled[i::k] for i in range(k)]

    def _pick_authors(self, community: List[str], everyone: List[str]) -> List[str]:
        n = min(self._draw_author_count(), len(everyone))
        picked: List[str] = []
        while len(picked) < n:
            pool = everyone if self.rng.random() < self.config.community_overlap else community
            candidate = pool[int(self.rng.integers(0, len(pool)))]
            if candidate not in picked:
                picked.append(candidate)
        return picked

    # =============== Build ===============
    def build(self, count: Optional[int] = None) -> List[Tuple[SubmissionDTO, List[CitationRecordDTO]]]:
        cfg = self.config
        count = count or cfg.publication_count

        researchers = [f"mock-researcher-{i}" for i in range(1, cfg.active_researcher_count + 1)]
        venues = [f"mock-venue-{i}" for i in range(1, cfg.venue_count + 1)]
        communities = self._communities(researchers)
        community_topic: Dict[int, str] = {
            i: cfg.topics[i % len(cfg.topics)] for i in range(len(communities))
        }

        out: List[Tuple[SubmissionDTO, List[CitationRecordDTO]]] = []
        for n in range(1, count + 1):
            c = int(self.rng.integers(0, len(communities)))
            year = int(self.rng.integers(cfg.year_range[0], cfg.year_range[1] + 1))
            published = self._draw_date(year)

            topics = [community_topic[c]]
            if self.rng.random() < 0.3:
                extra = cfg.topics[int(self.rng.integers(0, len(cfg.topics)))]
                if extra not in topics:
                    topics.append(extra)

            sub = SubmissionDTO(
                submission_id=f"mock-{n}",
                doi=f"{MOCK_DOI_PREFIX}{n}",
                title=f"Mock publication {n}",
                venue_external_id=venues[int(self.rng.integers(0, len(venues)))],
                authors=[AuthorDTO(external_id=a) for a in self._pick_authors(communities[c], researchers)],
                review_score=round(float(self.rng.uniform(1.0, 5.0)), 2),
                date_published=published,
                topics=topics,
            )

            span = max((self.today - published).days, 0)
            citations = [
                CitationRecordDTO(
                    external_id=f"mock-oci-{n}-{k}",
                    citing_identifier=f"{MOCK_DOI_PREFIX}citing-{n}-{k}",
                    created_date=published + timedelta(days=int(self.rng.integers(0, span + 1))),
                    is_self_citation=bool(self.rng.random() < cfg.self_citation_rate),
                )
                for k in range(self._draw_citation_count(year))
            ]
            out.append((sub, citations))
        return out

    def generate(self, count: Optional[int] = None) -> MockDataSummary:
        records = self.build(count)
        summary = MockDataSummary()
        authors = set()
        venues = set()

        with self.session_factory() as sess:
            dao = PublicationDAO(sess)
            with logging_redirect_tqdm():
                for sub, citations in tqdm(records, desc="Generating mock publications", unit="pub"):
                    external = sum(1 for c in citations if not c.is_self_citation)
                    pub = dao.insert_publication(sub, citation_count=external)
                    if pub is None:
                        continue
                    dao.insert_citations(pub.id, citations)

                    summary.publications += 1
                    summary.citations += len(citations)
                    summary.self_citations += len(citations) - external
                    authors.update(a.external_id for a in sub.authors)
                    venues.add(sub.venue_external_id)
            sess.commit()

        summary.researchers = len(authors)
        summary.venues = len(venues)
        logger.info("[MOCK] Generated %s", summary)
        return summary
