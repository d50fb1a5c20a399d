from __future__ import annotations

import logging
import time
from collections import defaultdict
from datetime import date
from enum import Enum
from typing import Callable, Dict, List, Optional, Set, Tuple

from sqlalchemy.orm import Session

from config import settings
from dao.snapshot_dao import SnapshotDAO
from db.db_conn import SessionLocal
from db.db_utils import apply_statement_timeout, check_database_health
from dto.pipeline_dto import SnapshotFrequency, SnapshotRunReport
from services.metrics.facts import FactSet
from services.metrics.metric_engine import MetricEngine, MetricSnapshot, MetricStrategy
from services.metrics.recalculation import load_decay_table
from services.pipeline.pipeline_errors import HistoricalDateError
from services.snapshots.rollups import researcher_rollups, topic_rollup
from services.snapshots.weights import (
    DEFAULT_RESEARCHER_WEIGHTS,
    DEFAULT_TOPIC_WEIGHTS,
    ResearcherWeights,
    TopicWeights,
)
from utils.date_utils import date_sequence

logger = logging.getLogger(__name__)


class SnapshotRunState(str, Enum):
    IDLE = "idle"
    DISCOVER_GAPS = "discover_gaps"
    BACKFILL_HISTORY = "backfill_history"
    MAYBE_CURRENT_SNAPSHOT = "maybe_current_snapshot"
    DONE = "done"


class SnapshotGenerator:
    """
    Persists point-in-time scores for publications, topics and researchers.

    A run first backfills history for publications that have never been
    snapshotted (reconstructing every metric as of each past date), then
    optionally writes the snapshot for the reference date itself.
    """

    def __init__(
        self,
        *,
        session_factory=SessionLocal,
        topic_weights: TopicWeights = DEFAULT_TOPIC_WEIGHTS,
        researcher_weights: ResearcherWeights = DEFAULT_RESEARCHER_WEIGHTS,
        max_attempts: int = settings.historical_max_attempts,
        retry_base_delay: float = settings.historical_retry_base_delay_secs,
        health_check_wait: float = settings.health_check_wait_secs,
        historical_timeout_ms: int = settings.historical_tx_timeout_ms,
        current_timeout_ms: int = settings.current_snapshot_tx_timeout_ms,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.session_factory = session_factory
        self.topic_weights = topic_weights
        self.researcher_weights = researcher_weights
        self.max_attempts = max(1, max_attempts)
        self.retry_base_delay = retry_base_delay
        self.health_check_wait = health_check_wait
        self.historical_timeout_ms = historical_timeout_ms
        self.current_timeout_ms = current_timeout_ms
        self._sleep = sleep
        self.state = SnapshotRunState.IDLE

    def _enter(self, report: SnapshotRunReport, state: SnapshotRunState) -> None:
        self.state = state
        report.states.append(state.value)
        logger.debug("Snapshot run %s -> %s", report.reference_date, state.value)

    # =============== Run ===============
    def run(
        self,
        reference_date: date,
        *,
        include_current_snapshot: bool,
        frequency: SnapshotFrequency = SnapshotFrequency.WEEKLY,
        current_metrics: Optional[MetricSnapshot] = None,
    ) -> SnapshotRunReport:
        report = SnapshotRunReport(reference_date=reference_date)
        self.state = SnapshotRunState.IDLE
        report.states.append(self.state.value)

        self._enter(report, SnapshotRunState.DISCOVER_GAPS)
        with self.session_factory() as sess:
            engine = MetricEngine(load_decay_table(sess))
            needing = SnapshotDAO(sess).publications_needing_history(reference_date)
            facts = FactSet.load(sess) if (needing or include_current_snapshot) else None
        logger.info("[SNAPSHOT] %d publications need history before %s", len(needing), reference_date)

        if needing:
            self._enter(report, SnapshotRunState.BACKFILL_HISTORY)
            self.backfill(engine, facts, needing, reference_date, frequency, report)

        self._enter(report, SnapshotRunState.MAYBE_CURRENT_SNAPSHOT)
        if include_current_snapshot:
            metrics = current_metrics or engine.compute(facts, reference_date, MetricStrategy.LIVE)
            self.write_current(metrics)
            report.current_snapshot_written = True
        else:
            logger.info("[SNAPSHOT] Current snapshot not requested for %s", reference_date)

        self._enter(report, SnapshotRunState.DONE)
        logger.info(
            "[SNAPSHOT] Done: backfilled=%d skipped=%d failed=%d current=%s",
            len(report.backfilled_dates),
            len(report.skipped_dates),
            len(report.failed_dates),
            report.current_snapshot_written,
        )
        return report

    # =============== Historical backfill ===============
    def backfill(
        self,
        engine: MetricEngine,
        facts: FactSet,
        needing: List[Tuple[int, date]],
        reference_date: date,
        frequency: SnapshotFrequency,
        report: SnapshotRunReport,
    ) -> None:
        earliest = min(dp for _, dp in needing)
        dates = date_sequence(earliest, reference_date, frequency)
        logger.info(
            "[BACKFILL] %d %s dates from %s to %s",
            len(dates), frequency.value, earliest, reference_date,
        )

        published: Dict[int, date] = dict(needing)
        snapshotted: Dict[int, Set[date]] = defaultdict(set)

        for snapshot_date in dates:
            due = [
                pid for pid, dp in published.items()
                if dp <= snapshot_date and snapshot_date not in snapshotted[pid]
            ]
            if not due:
                report.skipped_dates.append(snapshot_date)
                continue

            if not self._healthy():
                logger.warning("[BACKFILL] Database unhealthy, skipping %s", snapshot_date)
                self._sleep(self.health_check_wait)
                report.skipped_dates.append(snapshot_date)
                continue

            try:
                self._with_retries(
                    snapshot_date,
                    lambda d=snapshot_date: self.write_historical_date(engine, facts, d),
                )
            except HistoricalDateError as e:
                logger.error("[BACKFILL] %s", e)
                report.failed_dates.append(snapshot_date)
                continue

            for pid in due:
                snapshotted[pid].add(snapshot_date)
            report.backfilled_dates.append(snapshot_date)

    def write_historical_date(self, engine: MetricEngine, facts: FactSet, snapshot_date: date) -> Dict[str, int]:
        metrics = engine.compute(facts, snapshot_date, MetricStrategy.AS_OF)
        with self.session_factory() as sess:
            with sess.begin():
                apply_statement_timeout(sess, self.historical_timeout_ms)
                counts = self.write_snapshot_families(sess, snapshot_date, metrics)
        logger.info("[BACKFILL] %s written %s", snapshot_date, counts)
        return counts

    def _healthy(self) -> bool:
        with self.session_factory() as sess:
            return check_database_health(sess)

    def _with_retries(self, snapshot_date: date, fn: Callable[[], object]) -> object:
        last: Optional[BaseException] = None
        for attempt in range(1, self.max_attempts + 1):
            try:
                return fn()
            except Exception as e:
                last = e
                logger.warning(
                    "[BACKFILL] %s attempt %d/%d failed: %s",
                    snapshot_date, attempt, self.max_attempts, e,
                )
                if attempt < self.max_attempts:
                    self._sleep(self.retry_base_delay * 2 ** (attempt - 1))
        raise HistoricalDateError(snapshot_date=snapshot_date, attempts=self.max_attempts, cause=last)

    # =============== Current snapshot ===============
    def write_current(self, metrics: MetricSnapshot) -> Dict[str, int]:
        with self.session_factory() as sess:
            with sess.begin():
                apply_statement_timeout(sess, self.current_timeout_ms)
                counts = self.write_snapshot_families(sess, metrics.as_of, metrics)
        logger.info("[SNAPSHOT] Current snapshot %s written %s", metrics.as_of, counts)
        return counts

    # =============== All four families for one date ===============
    def write_snapshot_families(self, sess: Session, snapshot_date: date, metrics: MetricSnapshot) -> Dict[str, int]:
        dao = SnapshotDAO(sess)
        counts = {"publications": 0, "topics": 0, "researcher_topics": 0, "researchers": 0}

        counts["publications"] = dao.upsert_publication_snapshots(snapshot_date, metrics.published_scores())

        latest = dao.latest_publication_snapshot_date(snapshot_date)
        if latest is None:
            logger.info("No publication snapshot on or before %s; rollups skipped", snapshot_date)
            return counts

        frame = dao.publication_snapshot_values(latest).merge(
            metrics.facts.publications[["publication_id", "date_published"]],
            on="publication_id",
        )
        frame["citation_count"] = (
            frame["publication_id"].map(metrics.citation_counts).fillna(0).astype(int)
        )

        topics = topic_rollup(frame, metrics.facts.publication_topics, snapshot_date, self.topic_weights)
        overall, per_topic = researcher_rollups(
            frame,
            metrics.facts.authorships,
            metrics.facts.publication_topics,
            snapshot_date,
            self.researcher_weights,
        )

        counts["topics"] = dao.upsert_topic_snapshots(snapshot_date, topics)
        counts["researcher_topics"] = dao.upsert_researcher_topic_snapshots(snapshot_date, per_topic)
        counts["researchers"] = dao.upsert_researcher_overall_snapshots(snapshot_date, overall)
        return counts
