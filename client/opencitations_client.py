from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional
from urllib.parse import quote

import requests
from requests.adapters import HTTPAdapter, Retry

from config import settings
from dto.publication_dto import CitationRecordDTO
from mappers.opencitations_to_citation import map_opencitations_rows_to_citation_dtos

logger = logging.getLogger(__name__)


@dataclass
class FetchError(Exception):
    doi: str
    attempts: int
    message: str

    def __str__(self) -> str:
        return f"citation fetch for {self.doi} failed after {self.attempts} attempts: {self.message}"


class OpenCitationsClient:
    """
    Fetches the citations of a DOI from the OpenCitations index.

    Transport errors and 429/5xx answers are retried by the session's
    urllib3 adapter with exponential backoff. On top of that the upstream
    occasionally returns short lists, so a fetch keeps asking until it has
    `verification_attempts` successful answers (or a first non-empty one)
    and returns the largest list it saw.
    """

    def __init__(
        self,
        *,
        base_url: str = settings.opencitations_base_url,
        api_key: Optional[str] = settings.opencitations_api_key,
        timeout: float = settings.fetch_timeout_secs,
        max_retries: int = settings.fetch_max_retries,
        initial_backoff: float = settings.fetch_initial_backoff_secs,
        verification_attempts: int = settings.fetch_verification_attempts,
        verification_delay: float = settings.fetch_verification_delay_secs,
        http: Optional[requests.Session] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.max_retries = max_retries
        self.initial_backoff = initial_backoff
        self.verification_attempts = verification_attempts
        self.verification_delay = verification_delay
        self._sleep = sleep

        self.http = http or self._session()
        if api_key:
            self.http.headers.update({"authorization": api_key})

    def _session(self) -> requests.Session:
        s = requests.Session()
        retries = Retry(
            total=self.max_retries,
            backoff_factor=self.initial_backoff,
            status_forcelist=[429, 500, 502, 503, 504],
            allowed_methods=frozenset(["GET"]),
        )
        s.mount("https://", HTTPAdapter(max_retries=retries))
        s.mount("http://", HTTPAdapter(max_retries=retries))
        return s

    def _get(self, doi: str) -> List[Dict[str, Any]]:
        url = f"{self.base_url}/citations/doi:{quote(doi, safe='/')}"
        resp = self.http.get(url, timeout=self.timeout)
        resp.raise_for_status()
        data = resp.json()
        if not isinstance(data, list):
            raise ValueError(f"unexpected payload type {type(data).__name__}")
        return data

    def fetch_citations(self, doi: str) -> List[CitationRecordDTO]:
        best: List[CitationRecordDTO] = []
        successes = 0

        while successes < self.verification_attempts:
            try:
                records = map_opencitations_rows_to_citation_dtos(self._get(doi))
            except (requests.RequestException, ValueError) as e:
                logger.warning("Fetch %s failed: %s", doi, e)
                if successes:
                    return best
                raise FetchError(doi=doi, attempts=self._attempts_for(e), message=str(e)) from e

            successes += 1
            if len(records) > len(best):
                best = records
            if best:
                return best
            if successes < self.verification_attempts:
                self._sleep(self.verification_delay)

        return best

    def _attempts_for(self, error: Exception) -> int:
        # the adapter only gives up on these after its retries are spent
        if isinstance(error, (requests.exceptions.RetryError, requests.ConnectionError, requests.Timeout)):
            return self.max_retries + 1
        return 1
