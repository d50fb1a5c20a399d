from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed, wait
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError
from tqdm import tqdm
from tqdm.contrib.logging import logging_redirect_tqdm

from client.opencitations_client import FetchError, OpenCitationsClient
from config import settings
from dao.publication_dao import PublicationDAO
from db.db_conn import SessionLocal
from db.db_utils import apply_statement_timeout
from dto.publication_dto import CitationRecordDTO, SubmissionDTO, is_mock_doi
from services.pipeline.pipeline_errors import BatchAbortedError
from utils.rate_limiter import FailureCounter, RateLimiter

logger = logging.getLogger(__name__)


@dataclass
class FetchOutcome:
    key: str
    doi: Optional[str]
    records: List[CitationRecordDTO] = field(default_factory=list)
    ok: bool = True
    skipped: bool = False
    error: Optional[str] = None

    @property
    def external_count(self) -> int:
        return sum(1 for r in self.records if not r.is_self_citation)


class CitationFetchBatch:
    """
    Fetches citation lists concurrently under the rate limiter.

    Results are handed back to the calling thread one by one, so all
    database work stays on that thread. When the shared failure counter
    passes its threshold, pending fetches are cancelled and
    BatchAbortedError is raised after the finished results were handled.
    """

    def __init__(self, client: OpenCitationsClient, limiter: RateLimiter, failures: FailureCounter):
        self.client = client
        self.limiter = limiter
        self.failures = failures

    def _fetch_one(self, key: str, doi: Optional[str]) -> FetchOutcome:
        if not doi:
            return FetchOutcome(key=key, doi=doi)
        if self.failures.exceeded:
            return FetchOutcome(key=key, doi=doi, ok=False, skipped=True)

        with self.limiter.slot():
            try:
                records = self.client.fetch_citations(doi)
            except FetchError as e:
                n = self.failures.record_failure()
                logger.warning("Citations for %s unavailable (%d consecutive failures): %s", doi, n, e)
                return FetchOutcome(key=key, doi=doi, ok=False, error=str(e))

        self.failures.record_success()
        return FetchOutcome(key=key, doi=doi, records=records)

    def run(
        self,
        items: List[Tuple[str, Optional[str]]],
        on_result: Callable[[FetchOutcome], None],
        desc: str = "Fetching citations",
    ) -> int:
        processed = 0
        if not items:
            return 0

        with logging_redirect_tqdm(), tqdm(total=len(items), desc=desc, unit="pub") as bar:
            with ThreadPoolExecutor(max_workers=self.limiter.max_concurrent) as ex:
                futures = [ex.submit(self._fetch_one, key, doi) for key, doi in items]
                handled = set()
                for fut in as_completed(futures):
                    handled.add(fut)
                    outcome = fut.result()
                    bar.update(1)
                    if outcome.skipped:
                        continue
                    on_result(outcome)
                    processed += 1

                    if self.failures.exceeded:
                        for f in futures:
                            f.cancel()
                        # fetches that already finished keep their results
                        wait(futures)
                        for f in futures:
                            if f in handled or f.cancelled():
                                continue
                            late = f.result()
                            bar.update(1)
                            if not late.skipped:
                                on_result(late)
                                processed += 1
                        logger.error(
                            "Aborting citation batch: %d consecutive failures (threshold %d)",
                            self.failures.consecutive, self.failures.threshold,
                        )
                        raise BatchAbortedError(
                            consecutive_failures=self.failures.consecutive,
                            processed=processed,
                        )
        return processed


class PublicationIngestor:
    """Stores new submissions with their citations and refreshes citations of stored ones."""

    def __init__(
        self,
        *,
        session_factory=SessionLocal,
        client: Optional[OpenCitationsClient] = None,
        limiter: Optional[RateLimiter] = None,
        failures: Optional[FailureCounter] = None,
        tx_timeout_ms: int = settings.ingestion_tx_timeout_ms,
    ):
        self.session_factory = session_factory
        self.client = client or OpenCitationsClient()
        self.limiter = limiter or RateLimiter(
            settings.fetch_max_concurrent,
            settings.fetch_min_interval_seconds,
        )
        self.failures = failures or FailureCounter(settings.fetch_max_consecutive_failures)
        self.tx_timeout_ms = tx_timeout_ms

    def _batch(self) -> CitationFetchBatch:
        return CitationFetchBatch(self.client, self.limiter, self.failures)

    # =============== New publications ===============
    def ingest_submissions(self, submissions: List[SubmissionDTO]) -> int:
        by_id: Dict[str, SubmissionDTO] = {s.submission_id: s for s in submissions}
        inserted = 0

        def persist(outcome: FetchOutcome) -> None:
            nonlocal inserted
            sub = by_id[outcome.key]
            if not outcome.ok:
                logger.warning("Storing %s without citations", sub.submission_id)
            try:
                with self.session_factory() as sess:
                    with sess.begin():
                        apply_statement_timeout(sess, self.tx_timeout_ms)
                        dao = PublicationDAO(sess)
                        pub = dao.insert_publication(sub, citation_count=outcome.external_count)
                        if pub is None:
                            return
                        dao.insert_citations(pub.id, outcome.records)
                inserted += 1
            except SQLAlchemyError as e:
                logger.error("Failed to store submission %s: %s", sub.submission_id, e)

        # mock DOIs never reach the external API
        items = [
            (s.submission_id, None if is_mock_doi(s.doi) else s.doi)
            for s in submissions
        ]
        self._batch().run(items, persist, desc="Ingesting publications")
        logger.info("[INGEST] Stored %d of %d new submissions", inserted, len(submissions))
        return inserted

    # =============== Stored publications ===============
    def refresh_citations(self) -> int:
        with self.session_factory() as sess:
            rows = PublicationDAO(sess).list_refreshable()
        updated = 0

        def persist(outcome: FetchOutcome) -> None:
            nonlocal updated
            if not outcome.ok:
                # keep last-known citations
                return
            pub_id = int(outcome.key)
            try:
                with self.session_factory() as sess:
                    with sess.begin():
                        apply_statement_timeout(sess, self.tx_timeout_ms)
                        dao = PublicationDAO(sess)
                        dao.insert_citations(pub_id, outcome.records)
                        old, new = dao.refresh_citation_count(pub_id)
                if new != old:
                    updated += 1
                    logger.debug("Publication %d citations %d -> %d", pub_id, old, new)
            except SQLAlchemyError as e:
                logger.error("Failed to refresh citations of publication %d: %s", pub_id, e)

        items = [(str(pid), doi) for pid, doi, _ in rows]
        self._batch().run(items, persist, desc="Refreshing citations")
        logger.info("[REFRESH] %d of %d publications changed citation count", updated, len(rows))
        return updated
