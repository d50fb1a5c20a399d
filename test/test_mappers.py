import sys
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(PROJECT_ROOT))

import json
from datetime import date

from mappers.opencitations_to_citation import (
    extract_doi,
    map_opencitations_rows_to_citation_dtos,
    parse_creation_date,
)
from mappers.submission_to_publication import map_submission_rows_to_dtos
from services.pipeline.sources import JsonFilePublicationSource


def test_extract_doi():
    assert extract_doi("omid:br/0612 doi:10.1007/s11192-019-03217-6 pmid:1") == "10.1007/s11192-019-03217-6"
    assert extract_doi("omid:br/0612") is None
    assert extract_doi(None) is None


def test_parse_partial_dates():
    assert parse_creation_date("2021") == date(2021, 1, 1)
    assert parse_creation_date("2021-07") == date(2021, 7, 1)
    assert parse_creation_date("2021-07-19") == date(2021, 7, 19)
    assert parse_creation_date("2021-13-01") is None
    assert parse_creation_date("") is None


def test_citation_rows_dedup_and_self_flag():
    rows = [
        {"oci": "1-2", "citing": "doi:10.1/a", "creation": "2020-02", "author_sc": "yes"},
        {"oci": "1-2", "citing": "doi:10.1/a", "creation": "2020-02", "author_sc": "yes"},
        {"oci": "1-3", "citing": "omid:br/9", "creation": None, "author_sc": "no"},
        {"oci": "", "citing": "doi:10.1/c"},
    ]
    dtos = map_opencitations_rows_to_citation_dtos(rows)

    assert [d.external_id for d in dtos] == ["1-2", "1-3"]
    assert dtos[0].is_self_citation and dtos[0].citing_identifier == "10.1/a"
    assert dtos[0].created_date == date(2020, 2, 1)
    assert not dtos[1].is_self_citation
    assert dtos[1].citing_identifier == "omid:br/9"
    assert dtos[1].created_date is None


def _submission(**overrides):
    row = {
        "id": 42,
        "doi": " 10.1/x ",
        "title": "A paper",
        "venue": {"id": 7, "name": "Conf"},
        "authors": [{"id": 1, "name": "Ada"}, 2],
        "review_score": 4.2,
        "date_published": "2023-05-06T10:00:00Z",
        "topics": ["Security", " "],
    }
    row.update(overrides)
    return row


def test_submission_mapping():
    (dto,) = map_submission_rows_to_dtos([_submission()])

    assert dto.submission_id == "42"
    assert dto.doi == "10.1/x"
    assert dto.venue_external_id == "7"
    assert dto.venue_name == "Conf"
    assert [a.external_id for a in dto.authors] == ["1", "2"]
    assert dto.date_published == date(2023, 5, 6)
    assert dto.topics == ["Security"]


def test_incomplete_submissions_are_dropped():
    rows = [
        _submission(authors=[]),
        _submission(review_score=None),
        _submission(date_published=None),
        _submission(review_score=9),
        _submission(id=43, topics=None, venue=None, venue_id=3),
    ]
    dtos = map_submission_rows_to_dtos(rows)

    assert len(dtos) == 1
    assert dtos[0].topics == ["Other"]
    assert dtos[0].venue_external_id == "3"


def test_json_source_skips_known_ids(tmp_path):
    path = tmp_path / "submissions.json"
    path.write_text(json.dumps({"submissions": [_submission(), _submission(id=43)]}), encoding="utf-8")

    fresh = JsonFilePublicationSource(path).fetch_submissions(exclude_ids={"42"})
    assert [d.submission_id for d in fresh] == ["43"]
