from __future__ import annotations

import logging
from datetime import date, datetime, timedelta
from typing import Callable, Optional

from sqlalchemy.engine import Engine

from config import settings
from dao.publication_dao import PublicationDAO
from db.db_conn import SessionLocal, engine as default_engine
from db.db_utils import AdvisoryLock, missing_tables
from db.models import REQUIRED_TABLES
from dto.pipeline_dto import PipelineJob, PipelineRunInput, PipelineRunResult
from services.metrics.recalculation import load_decay_table, recalculate_current_metrics
from services.pipeline.ingestion import PublicationIngestor
from services.pipeline.mock_data import MockDataGenerator
from services.pipeline.pipeline_errors import BatchAbortedError, PreconditionError
from services.pipeline.scheduler import compute_next_run
from services.pipeline.sources import PublicationSource
from services.pipeline.validation import ValidationScenario, validate_pipeline
from services.snapshots.snapshot_generator import SnapshotGenerator
from utils.date_utils import to_utc_date, utc_now

logger = logging.getLogger(__name__)


class PointSystemPipeline:
    """
    Scheduled point system jobs.

    initialize: first load of publications, full recalculation and history backfill.
    update:     new publications, refreshed citations, recalculation and today's snapshot.

    Each job returns which job should run next and when.
    """

    def __init__(
        self,
        *,
        session_factory=SessionLocal,
        db_engine: Engine = default_engine,
        source: Optional[PublicationSource] = None,
        ingestor: Optional[PublicationIngestor] = None,
        generator: Optional[SnapshotGenerator] = None,
        clock: Callable[[], datetime] = utc_now,
        failure_cooldown_seconds: int = settings.failure_cooldown_seconds,
        init_retry_seconds: int = settings.init_retry_seconds,
    ):
        self.session_factory = session_factory
        self.db_engine = db_engine
        self.source = source
        self.ingestor = ingestor or PublicationIngestor(session_factory=session_factory)
        self.generator = generator or SnapshotGenerator(session_factory=session_factory)
        self.clock = clock
        self.failure_cooldown_seconds = failure_cooldown_seconds
        self.init_retry_seconds = init_retry_seconds

    # =============== Preconditions ===============
    def check_preconditions(self) -> None:
        missing = missing_tables(self.db_engine, REQUIRED_TABLES)
        if missing:
            raise PreconditionError(missing=missing, message="required tables missing")
        with self.session_factory() as sess:
            load_decay_table(sess)

    # =============== Ingestion ===============
    def _ingest_from_source(self) -> int:
        if self.source is None:
            logger.warning("No publication source configured; nothing to ingest")
            return 0
        with self.session_factory() as sess:
            known = PublicationDAO(sess).existing_submission_ids()
        submissions = self.source.fetch_submissions(exclude_ids=known)
        logger.info("[1/4 DISCOVER] %d new submissions", len(submissions))
        if not submissions:
            return 0
        return self.ingestor.ingest_submissions(submissions)

    def _ingest_initial(self, run_input: PipelineRunInput, reference_date: date) -> int:
        if run_input.use_mock_data:
            try:
                generator = MockDataGenerator(session_factory=self.session_factory, today=reference_date)
                summary = generator.generate(
                    run_input.mock_count or settings.mock_publication_count
                )
                return summary.publications
            except Exception:
                logger.exception("Mock data generation failed; falling back to the publication source")
        return self._ingest_from_source()

    # =============== Jobs ===============
    def initialize(self, run_input: PipelineRunInput) -> PipelineRunResult:
        now = self.clock()
        reference_date = to_utc_date(now)
        logger.info("[INIT] Starting point system initialization for %s", reference_date)

        with AdvisoryLock(self.db_engine) as acquired:
            if not acquired:
                return self._locked(PipelineJob.INITIALIZE, now)
            try:
                self.check_preconditions()
                self.ingestor.failures.reset()

                if run_input.validation_mode:
                    return self._run_validation(reference_date)

                with self.session_factory() as sess:
                    existing = PublicationDAO(sess).count_publications()
                if existing:
                    logger.info("[INIT] %d publications already stored; skipping initialization", existing)
                    return PipelineRunResult(
                        job=PipelineJob.INITIALIZE,
                        status="skipped",
                        next_job=PipelineJob.UPDATE,
                        next_run_at=compute_next_run(run_input, now),
                    )

                ingested = self._ingest_initial(run_input, reference_date)
                metrics = recalculate_current_metrics(reference_date, session_factory=self.session_factory)
                report = self.generator.run(
                    reference_date,
                    include_current_snapshot=False,
                    frequency=run_input.snapshot_frequency,
                    current_metrics=metrics,
                )
                return PipelineRunResult(
                    job=PipelineJob.INITIALIZE,
                    status="ok",
                    next_job=PipelineJob.UPDATE,
                    next_run_at=compute_next_run(run_input, now),
                    ingested=ingested,
                    snapshot_report=report,
                )
            except PreconditionError as e:
                logger.error("[INIT] Preconditions not met: %s", e)
                return self._failed(PipelineJob.INITIALIZE, now, self.init_retry_seconds, e)
            except Exception as e:
                logger.exception("[INIT] Initialization failed")
                return self._failed(PipelineJob.INITIALIZE, now, self.init_retry_seconds, e)

    def update(self, run_input: PipelineRunInput) -> PipelineRunResult:
        now = self.clock()
        reference_date = to_utc_date(now)
        logger.info("[UPDATE] Starting point system update for %s", reference_date)

        with AdvisoryLock(self.db_engine) as acquired:
            if not acquired:
                return self._locked(PipelineJob.UPDATE, now)
            try:
                self.check_preconditions()
                self.ingestor.failures.reset()

                ingested = self._ingest_from_source()
                logger.info("[2/4 REFRESH] Refreshing citations of stored publications")
                refreshed = self.ingestor.refresh_citations()

                logger.info("[3/4 METRICS] Recalculating metrics")
                metrics = recalculate_current_metrics(reference_date, session_factory=self.session_factory)

                logger.info("[4/4 SNAPSHOT] Generating snapshots")
                report = self.generator.run(
                    reference_date,
                    include_current_snapshot=True,
                    frequency=run_input.snapshot_frequency,
                    current_metrics=metrics,
                )
                return PipelineRunResult(
                    job=PipelineJob.UPDATE,
                    status="ok",
                    next_job=PipelineJob.UPDATE,
                    next_run_at=compute_next_run(run_input, now),
                    ingested=ingested,
                    refreshed=refreshed,
                    snapshot_report=report,
                )
            except BatchAbortedError as e:
                logger.error("[UPDATE] %s; retrying after cooldown", e)
                return self._failed(PipelineJob.UPDATE, now, self.failure_cooldown_seconds, e)
            except PreconditionError as e:
                logger.error("[UPDATE] Preconditions not met: %s", e)
                return self._failed(PipelineJob.UPDATE, now, self.failure_cooldown_seconds, e)
            except Exception as e:
                logger.exception("[UPDATE] Update failed")
                return self._failed(PipelineJob.UPDATE, now, self.failure_cooldown_seconds, e)

    # =============== Helpers ===============
    def _failed(self, job: PipelineJob, now: datetime, wait_seconds: int, error: Exception) -> PipelineRunResult:
        return PipelineRunResult(
            job=job,
            status="failed",
            next_job=job,
            next_run_at=now + timedelta(seconds=wait_seconds),
            error=str(error),
        )

    def _locked(self, job: PipelineJob, now: datetime) -> PipelineRunResult:
        logger.warning("[%s] Another pipeline run holds the lock; retrying in %ds", job.value, self.failure_cooldown_seconds)
        return PipelineRunResult(
            job=job,
            status="locked",
            next_job=job,
            next_run_at=now + timedelta(seconds=self.failure_cooldown_seconds),
        )

    def _run_validation(self, reference_date) -> PipelineRunResult:
        scenario = ValidationScenario(reference_date=reference_date)
        with self.session_factory() as sess:
            scenario.install(sess)
            sess.commit()

        metrics = recalculate_current_metrics(reference_date, session_factory=self.session_factory)
        report = self.generator.run(
            reference_date,
            include_current_snapshot=True,
            current_metrics=metrics,
        )
        with self.session_factory() as sess:
            checks = validate_pipeline(sess, scenario)

        passed = all(c.passed for c in checks)
        logger.info("[VALIDATION] %s (%d checks)", "PASSED" if passed else "FAILED", len(checks))
        # validation runs never schedule a follow-up
        return PipelineRunResult(
            job=PipelineJob.INITIALIZE,
            status="ok" if passed else "failed",
            snapshot_report=report,
            validation=checks,
        )
