from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Iterable, List, Optional, Protocol, Set

from dto.publication_dto import SubmissionDTO
from mappers.submission_to_publication import map_submission_rows_to_dtos

logger = logging.getLogger(__name__)


class PublicationSource(Protocol):
    def fetch_submissions(self, exclude_ids: Optional[Set[str]] = None) -> List[SubmissionDTO]:
        ...


class JsonFilePublicationSource:
    """
    Accepted submissions exported as JSON: either a list of rows or
    {"submissions": [...]}.
    """

    def __init__(self, path: Path):
        self.path = Path(path)

    def _rows(self) -> Iterable[dict]:
        with self.path.open("r", encoding="utf-8") as f:
            data = json.load(f)
        if isinstance(data, dict):
            data = data.get("submissions") or []
        return data

    def fetch_submissions(self, exclude_ids: Optional[Set[str]] = None) -> List[SubmissionDTO]:
        exclude_ids = exclude_ids or set()
        dtos = map_submission_rows_to_dtos(list(self._rows()))
        fresh = [d for d in dtos if d.submission_id not in exclude_ids]
        logger.info("Source %s: %d submissions, %d new", self.path.name, len(dtos), len(fresh))
        return fresh


class StaticPublicationSource:
    """In-memory source, used by validation runs and tests."""

    def __init__(self, submissions: List[SubmissionDTO]):
        self.submissions = list(submissions)

    def fetch_submissions(self, exclude_ids: Optional[Set[str]] = None) -> List[SubmissionDTO]:
        exclude_ids = exclude_ids or set()
        return [d for d in self.submissions if d.submission_id not in exclude_ids]
