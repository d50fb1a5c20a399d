from __future__ import annotations

import logging
from typing import Any, Dict, List

from pydantic import ValidationError

from dto.publication_dto import DEFAULT_TOPIC, SubmissionDTO

logger = logging.getLogger(__name__)


def _authors(row: Dict[str, Any]) -> List[Dict[str, Any]]:
    out = []
    for a in row.get("authors") or []:
        if isinstance(a, dict):
            ext = a.get("external_id") or a.get("id") or a.get("user_id")
            if ext is not None:
                out.append({"external_id": str(ext), "name": a.get("name"), "email": a.get("email")})
        elif a is not None:
            out.append({"external_id": str(a)})
    return out


def _topics(row: Dict[str, Any]) -> List[str]:
    raw = row.get("topics") or row.get("research_areas") or []
    if isinstance(raw, str):
        raw = [raw]
    names = [str(t).strip() for t in raw if str(t).strip()]
    return names or [DEFAULT_TOPIC]


def map_submission_rows_to_dtos(rows: List[Dict[str, Any]]) -> List[SubmissionDTO]:
    """
    Accepted submissions only: rows without authors, a review score or a
    publication date are dropped.
    """
    dtos: List[SubmissionDTO] = []

    for row in rows or []:
        sid = row.get("submission_id") or row.get("id")
        authors = _authors(row)
        if sid is None or not authors:
            continue
        if row.get("review_score") is None or not row.get("date_published"):
            continue

        venue = row.get("venue") or {}
        venue_ext = venue.get("id") if venue.get("id") is not None else row.get("venue_id")
        try:
            dtos.append(
                SubmissionDTO.model_validate(
                    {
                        "submission_id": str(sid),
                        "doi": (row.get("doi") or "").strip() or None,
                        "title": row.get("title"),
                        "venue_external_id": str(venue_ext) if venue_ext is not None else None,
                        "venue_name": venue.get("name") or row.get("venue_name"),
                        "authors": authors,
                        "review_score": row.get("review_score"),
                        "date_published": str(row.get("date_published"))[:10],
                        "topics": _topics(row),
                    }
                )
            )
        except ValidationError as e:
            logger.warning("Skipping submission %s: %s", sid, e.errors()[:1])

    return dtos
