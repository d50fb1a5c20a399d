from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class RunMode(str, Enum):
    IMMEDIATE = "immediate"
    PERIODIC = "periodic"


class SnapshotFrequency(str, Enum):
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"


class PipelineJob(str, Enum):
    INITIALIZE = "initialize"
    UPDATE = "update"


class PipelineRunInput(BaseModel):
    model_config = ConfigDict(extra="ignore")

    run_mode: RunMode = RunMode.PERIODIC
    delay_seconds: int = Field(default=300, ge=0)
    snapshot_frequency: SnapshotFrequency = SnapshotFrequency.WEEKLY
    use_mock_data: bool = False
    validation_mode: bool = False
    mock_count: Optional[int] = Field(default=None, ge=1)


@dataclass
class SnapshotRunReport:
    reference_date: date
    states: List[str] = field(default_factory=list)
    backfilled_dates: List[date] = field(default_factory=list)
    skipped_dates: List[date] = field(default_factory=list)
    failed_dates: List[date] = field(default_factory=list)
    current_snapshot_written: bool = False


@dataclass
class ValidationCheck:
    name: str
    expected: object
    actual: object

    @property
    def passed(self) -> bool:
        return self.expected == self.actual


@dataclass
class PipelineRunResult:
    job: PipelineJob
    status: str                                  # "ok" | "skipped" | "locked" | "failed"
    next_job: Optional[PipelineJob] = None
    next_run_at: Optional[datetime] = None
    ingested: int = 0
    refreshed: int = 0
    error: Optional[str] = None
    snapshot_report: Optional[SnapshotRunReport] = None
    validation: List[ValidationCheck] = field(default_factory=list)
