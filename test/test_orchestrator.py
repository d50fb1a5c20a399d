import sys
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(PROJECT_ROOT))

from datetime import date, datetime, timedelta, timezone

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from dao.publication_dao import PublicationDAO
from dao.snapshot_dao import SnapshotDAO
from db.db_utils import AdvisoryLock
from db.models import PublicationSnapshot
from dto.pipeline_dto import (
    PipelineJob,
    PipelineRunInput,
    PipelineRunResult,
    RunMode,
    SnapshotFrequency,
)
from dto.publication_dto import AuthorDTO, CitationRecordDTO, SubmissionDTO
from services.pipeline.ingestion import PublicationIngestor
from services.pipeline.orchestrator import PointSystemPipeline
from services.pipeline.scheduler import PipelineScheduler, compute_next_run
from services.pipeline.sources import StaticPublicationSource
from services.snapshots.snapshot_generator import SnapshotGenerator
from utils.rate_limiter import FailureCounter, RateLimiter

NOW = datetime(2024, 6, 15, 12, 0, tzinfo=timezone.utc)
TODAY = NOW.date()


def _submission(sid, doi):
    return SubmissionDTO(
        submission_id=sid,
        doi=doi,
        title=f"Paper {sid}",
        venue_external_id="venue-1",
        authors=[AuthorDTO(external_id="r1"), AuthorDTO(external_id="r2")],
        review_score=3.5,
        date_published=date(2023, 11, 20),
        topics=["Databases"],
    )


def _pipeline(session_factory, db_engine, client, source=None, threshold=20):
    return PointSystemPipeline(
        session_factory=session_factory,
        db_engine=db_engine,
        source=source,
        ingestor=PublicationIngestor(
            session_factory=session_factory,
            client=client,
            limiter=RateLimiter(2, 0.0),
            failures=FailureCounter(threshold),
        ),
        generator=SnapshotGenerator(session_factory=session_factory, sleep=lambda s: None),
        clock=lambda: NOW,
        failure_cooldown_seconds=3600,
        init_retry_seconds=30000,
    )


# =============== Scheduling ===============
def test_next_run_immediate_mode():
    run_input = PipelineRunInput(run_mode=RunMode.IMMEDIATE, delay_seconds=300)
    assert compute_next_run(run_input, NOW) == NOW + timedelta(seconds=300)


@pytest.mark.parametrize(
    "frequency, expected",
    [
        (SnapshotFrequency.WEEKLY, datetime(2024, 6, 17, tzinfo=timezone.utc)),
        (SnapshotFrequency.MONTHLY, datetime(2024, 7, 1, tzinfo=timezone.utc)),
        (SnapshotFrequency.QUARTERLY, datetime(2024, 7, 1, tzinfo=timezone.utc)),
    ],
)
def test_next_run_periodic_mode(frequency, expected):
    run_input = PipelineRunInput(run_mode=RunMode.PERIODIC, snapshot_frequency=frequency)
    assert compute_next_run(run_input, NOW) == expected


def test_default_cadence_is_weekly():
    run_input = PipelineRunInput()

    assert run_input.snapshot_frequency == SnapshotFrequency.WEEKLY
    assert compute_next_run(run_input, NOW) == datetime(2024, 6, 17, tzinfo=timezone.utc)


def test_scheduler_sleeps_until_next_run():
    class FakePipeline:
        def __init__(self):
            self.jobs = []

        def initialize(self, run_input):
            self.jobs.append("initialize")
            return PipelineRunResult(
                job=PipelineJob.INITIALIZE, status="ok",
                next_job=PipelineJob.UPDATE, next_run_at=NOW + timedelta(seconds=60),
            )

        def update(self, run_input):
            self.jobs.append("update")
            return PipelineRunResult(job=PipelineJob.UPDATE, status="ok")

    pipeline = FakePipeline()
    sleeps = []
    runs = PipelineScheduler(pipeline, clock=lambda: NOW, sleep=sleeps.append).run_forever(PipelineRunInput())

    assert runs == 2
    assert pipeline.jobs == ["initialize", "update"]
    assert sleeps == [60.0]


# =============== Preconditions ===============
def test_missing_tables_fail_with_cooldown(fake_client_cls):
    empty = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool, future=True)
    factory = sessionmaker(bind=empty, future=True)

    result = _pipeline(factory, empty, fake_client_cls()).update(PipelineRunInput())

    assert result.status == "failed"
    assert result.next_job == PipelineJob.UPDATE
    assert result.next_run_at == NOW + timedelta(seconds=3600)
    assert "publication" in result.error


def test_missing_decay_table_retries_initialization_later(bare_session_factory, db_engine, fake_client_cls):
    result = _pipeline(bare_session_factory, db_engine, fake_client_cls()).initialize(PipelineRunInput())

    assert result.status == "failed"
    assert result.next_job == PipelineJob.INITIALIZE
    assert result.next_run_at == NOW + timedelta(seconds=30000)
    assert "decay_lookup" in result.error


def test_concurrent_run_is_locked_out(session_factory, db_engine, fake_client_cls):
    pipeline = _pipeline(session_factory, db_engine, fake_client_cls())

    with AdvisoryLock(db_engine) as acquired:
        assert acquired
        result = pipeline.update(PipelineRunInput())

    assert result.status == "locked"
    assert result.next_job == PipelineJob.UPDATE
    assert result.next_run_at == NOW + timedelta(seconds=3600)


def test_scheduler_keeps_running_after_locked_runs(session_factory, db_engine, fake_client_cls):
    pipeline = _pipeline(session_factory, db_engine, fake_client_cls())
    sleeps = []
    scheduler = PipelineScheduler(pipeline, clock=lambda: NOW, sleep=sleeps.append)

    with AdvisoryLock(db_engine) as acquired:
        assert acquired
        runs = scheduler.run_forever(PipelineRunInput(), first_job=PipelineJob.UPDATE, max_runs=3)

    assert runs == 3
    assert sleeps == [3600.0, 3600.0]


# =============== Jobs ===============
def test_initialize_with_mock_data(session_factory, db_engine, fake_client_cls):
    client = fake_client_cls()
    run_input = PipelineRunInput(
        use_mock_data=True,
        mock_count=25,
        snapshot_frequency=SnapshotFrequency.QUARTERLY,
    )

    result = _pipeline(session_factory, db_engine, client).initialize(run_input)

    assert result.status == "ok"
    assert result.ingested == 25
    assert result.next_job == PipelineJob.UPDATE
    assert result.next_run_at == datetime(2024, 7, 1, tzinfo=timezone.utc)
    assert client.calls == []
    assert result.snapshot_report.backfilled_dates
    assert not result.snapshot_report.current_snapshot_written
    with session_factory() as sess:
        assert SnapshotDAO(sess).count_rows(PublicationSnapshot, TODAY) == 0


def test_initialize_skips_when_data_exists(session_factory, db_engine, add_publication, fake_client_cls):
    add_publication("p", ["r1"], published=date(2024, 1, 1))

    result = _pipeline(session_factory, db_engine, fake_client_cls()).initialize(PipelineRunInput())

    assert result.status == "skipped"
    assert result.next_job == PipelineJob.UPDATE


def test_update_ingests_and_writes_current_snapshot(session_factory, db_engine, fake_client_cls):
    records = [
        CitationRecordDTO(external_id="c1", created_date=date(2024, 2, 1)),
        CitationRecordDTO(external_id="c2", created_date=date(2024, 3, 1)),
    ]
    client = fake_client_cls({"10.1/a": records})
    source = StaticPublicationSource([_submission("a", "10.1/a")])

    run_input = PipelineRunInput(snapshot_frequency=SnapshotFrequency.MONTHLY)
    result = _pipeline(session_factory, db_engine, client, source).update(run_input)

    assert result.status == "ok"
    assert result.ingested == 1
    assert result.refreshed == 0
    assert result.next_run_at == datetime(2024, 7, 1, tzinfo=timezone.utc)
    assert result.snapshot_report.current_snapshot_written
    assert result.snapshot_report.backfilled_dates[0] == date(2023, 12, 1)
    with session_factory() as sess:
        pub = PublicationDAO(sess).get_by_submission_id("a")
        assert pub.citation_count == 2
        assert pub.overall_score > 0
        assert SnapshotDAO(sess).count_rows(PublicationSnapshot, TODAY) == 1


def test_update_aborted_batch_waits_for_cooldown(session_factory, db_engine, fake_client_cls):
    client = fake_client_cls(failing={"*"})
    source = StaticPublicationSource([_submission(f"s{i}", f"10.1/s{i}") for i in range(6)])

    result = _pipeline(session_factory, db_engine, client, source, threshold=1).update(PipelineRunInput())

    assert result.status == "failed"
    assert result.next_job == PipelineJob.UPDATE
    assert result.next_run_at == NOW + timedelta(seconds=3600)


def test_validation_mode_passes(session_factory, db_engine, add_publication, fake_client_cls):
    add_publication("leftover", ["someone"], published=date(2020, 1, 1))

    result = _pipeline(session_factory, db_engine, fake_client_cls()).initialize(
        PipelineRunInput(validation_mode=True)
    )

    failed = [(c.name, c.expected, c.actual) for c in result.validation if not c.passed]
    assert failed == []
    assert result.status == "ok"
    assert result.next_run_at is None
    with session_factory() as sess:
        assert PublicationDAO(sess).get_by_submission_id("leftover") is None
