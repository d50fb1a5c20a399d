from __future__ import annotations

import logging
import time
from datetime import datetime, timedelta
from typing import Callable, Optional

from dto.pipeline_dto import PipelineJob, PipelineRunInput, PipelineRunResult, RunMode
from utils.date_utils import next_boundary, utc_now

logger = logging.getLogger(__name__)


def compute_next_run(run_input: PipelineRunInput, now: datetime) -> datetime:
    """Immediate mode waits delay_seconds; periodic mode waits for the next calendar boundary (UTC)."""
    if run_input.run_mode == RunMode.IMMEDIATE:
        return now + timedelta(seconds=run_input.delay_seconds)
    return next_boundary(now, run_input.snapshot_frequency)


class PipelineScheduler:
    """
    Runs pipeline jobs back to back, sleeping until each job's requested
    next run. Stops when a job asks for no follow-up or after `max_runs`.
    """

    def __init__(
        self,
        pipeline,
        *,
        clock: Callable[[], datetime] = utc_now,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.pipeline = pipeline
        self._clock = clock
        self._sleep = sleep

    def run_job(self, job: PipelineJob, run_input: PipelineRunInput) -> PipelineRunResult:
        if job == PipelineJob.INITIALIZE:
            return self.pipeline.initialize(run_input)
        return self.pipeline.update(run_input)

    def run_forever(
        self,
        run_input: PipelineRunInput,
        first_job: PipelineJob = PipelineJob.INITIALIZE,
        max_runs: Optional[int] = None,
    ) -> int:
        job: Optional[PipelineJob] = first_job
        runs = 0
        while job is not None and (max_runs is None or runs < max_runs):
            result = self.run_job(job, run_input)
            runs += 1
            logger.info(
                "[SCHEDULER] %s finished with status=%s; next=%s at %s",
                result.job.value, result.status,
                result.next_job.value if result.next_job else None,
                result.next_run_at,
            )
            if result.next_job is None or result.next_run_at is None:
                break
            if max_runs is not None and runs >= max_runs:
                break

            wait = (result.next_run_at - self._clock()).total_seconds()
            if wait > 0:
                self._sleep(wait)
            job = result.next_job
        return runs
