import sys
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[2]  # .../root
sys.path.insert(0, str(PROJECT_ROOT))

import argparse
import logging

from config import settings
from logging_setup import setup_logging

from dto.pipeline_dto import PipelineJob, PipelineRunInput, RunMode, SnapshotFrequency
from services.pipeline.orchestrator import PointSystemPipeline
from services.pipeline.scheduler import PipelineScheduler
from services.pipeline.sources import JsonFilePublicationSource

logger = logging.getLogger("run_pipeline")


def build_run_input(args: argparse.Namespace) -> PipelineRunInput:
    return PipelineRunInput(
        run_mode=RunMode(args.mode),
        delay_seconds=args.delay,
        snapshot_frequency=SnapshotFrequency(args.frequency),
        use_mock_data=args.mock,
        validation_mode=args.validate,
        mock_count=args.mock_count,
    )


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Point system pipeline")
    parser.add_argument("--job", choices=[j.value for j in PipelineJob], default=PipelineJob.INITIALIZE.value)
    parser.add_argument("--mode", choices=[m.value for m in RunMode], default=RunMode.PERIODIC.value)
    parser.add_argument("--delay", type=int, default=settings.default_delay_seconds,
                        help="Seconds between runs in immediate mode")
    parser.add_argument("--frequency", choices=[f.value for f in SnapshotFrequency],
                        default=SnapshotFrequency.WEEKLY.value)
    parser.add_argument("--mock", action="store_true", help="Generate mock publications on initialization")
    parser.add_argument("--mock-count", type=int, default=None)
    parser.add_argument("--validate", action="store_true", help="Run the controlled validation scenario")
    parser.add_argument("--once", action="store_true", help="Run a single job and exit")
    parser.add_argument("--source", type=Path, default=settings.publication_source_path,
                        help="JSON export of accepted submissions")
    args = parser.parse_args(argv)

    setup_logging("point_system")

    source = JsonFilePublicationSource(args.source) if args.source else None
    pipeline = PointSystemPipeline(source=source)
    scheduler = PipelineScheduler(pipeline)
    run_input = build_run_input(args)

    if args.validate:
        result = scheduler.run_job(PipelineJob.INITIALIZE, run_input)
        logger.info("Validation finished: %s", result.status)
        return 0 if result.status == "ok" else 1

    if args.once:
        result = scheduler.run_job(PipelineJob(args.job), run_input)
        logger.info("Finished %s: %s", result.job.value, result.status)
        return 0 if result.status in ("ok", "skipped") else 1

    scheduler.run_forever(run_input, first_job=PipelineJob(args.job))
    return 0


if __name__ == "__main__":
    sys.exit(main())
