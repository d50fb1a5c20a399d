from __future__ import annotations

from datetime import date
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

MOCK_DOI_PREFIX = "10.9999/mock-"
DEFAULT_TOPIC = "Other"


class AuthorDTO(BaseModel):
    model_config = ConfigDict(extra="ignore")
    external_id: str
    name: Optional[str] = None
    email: Optional[str] = None


class SubmissionDTO(BaseModel):
    """One accepted submission as exported by the submission system."""
    model_config = ConfigDict(extra="ignore")

    submission_id: str
    doi: Optional[str] = None
    title: Optional[str] = None

    venue_external_id: Optional[str] = None
    venue_name: Optional[str] = None

    authors: List[AuthorDTO] = Field(default_factory=list)
    review_score: float = Field(ge=1.0, le=5.0)
    date_published: date
    topics: List[str] = Field(default_factory=lambda: [DEFAULT_TOPIC])

    @property
    def is_mock(self) -> bool:
        return is_mock_doi(self.doi)


class CitationRecordDTO(BaseModel):
    model_config = ConfigDict(extra="ignore")
    external_id: str                 # OCI
    citing_identifier: Optional[str] = None
    created_date: Optional[date] = None
    is_self_citation: bool = False


def is_mock_doi(doi: Optional[str]) -> bool:
    return bool(doi) and doi.startswith(MOCK_DOI_PREFIX)
