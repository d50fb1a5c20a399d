from __future__ import annotations

import re
from datetime import date
from typing import Any, Dict, List, Optional

from dto.publication_dto import CitationRecordDTO

_DOI_RE = re.compile(r"doi:(10\.\S+)")


def extract_doi(identifiers: Optional[str]) -> Optional[str]:
    """'omid:br/06101 doi:10.1/abc pmid:1' -> '10.1/abc'"""
    if not identifiers:
        return None
    m = _DOI_RE.search(identifiers)
    return m.group(1) if m else None


def parse_creation_date(value: Optional[str]) -> Optional[date]:
    """OpenCitations dates may be YYYY, YYYY-MM or YYYY-MM-DD."""
    if not value:
        return None
    parts = str(value).strip().split("-")
    try:
        year = int(parts[0])
        month = int(parts[1]) if len(parts) > 1 and parts[1] else 1
        day = int(parts[2][:2]) if len(parts) > 2 and parts[2] else 1
        return date(year, month, day)
    except (ValueError, IndexError):
        return None


def map_opencitations_rows_to_citation_dtos(rows: List[Dict[str, Any]]) -> List[CitationRecordDTO]:
    dtos: List[CitationRecordDTO] = []
    seen = set()

    for row in rows or []:
        oci = (row.get("oci") or "").strip()
        if not oci or oci in seen:
            continue
        seen.add(oci)

        citing = row.get("citing") or ""
        dtos.append(
            CitationRecordDTO.model_validate(
                {
                    "external_id": oci,
                    "citing_identifier": extract_doi(citing) or citing or None,
                    "created_date": parse_creation_date(row.get("creation")),
                    "is_self_citation": str(row.get("author_sc") or "").lower() == "yes",
                }
            )
        )

    return dtos
