import sys
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(PROJECT_ROOT))

from datetime import date, timedelta

import pytest
from sqlalchemy import select

from db.models import DecayLookup, Publication, Researcher, Venue
from services.metrics.facts import FactSet
from services.metrics.metric_engine import MetricEngine, MetricStrategy
from services.metrics.recalculation import load_decay_table, recalculate_current_metrics
from services.pipeline.pipeline_errors import PreconditionError

TODAY = date(2024, 6, 1)


def _engine(session_factory):
    with session_factory() as sess:
        return MetricEngine(load_decay_table(sess)), FactSet.load(sess)


def test_recalculation_end_to_end(session_factory, add_publication):
    earlier = TODAY - timedelta(days=200)
    add_publication("a-1", ["r1"], published=earlier, venue="other", citations=[(earlier, False)] * 3)
    for i in range(4):
        add_publication(f"b-{i}", ["r2"], published=earlier, venue="other", citations=[(earlier, False)] * 5)
    target = add_publication(
        "target",
        ["r1", "r2"],
        published=TODAY,
        venue="main",
        review=4.5,
        citations=[(TODAY, False), (TODAY, False), (TODAY, True)],
    )

    recalculate_current_metrics(TODAY, session_factory=session_factory)

    with session_factory() as sess:
        h = dict(sess.execute(select(Researcher.external_id, Researcher.h_index)).all())
        venue = sess.execute(select(Venue.venue_value).where(Venue.external_id == "main")).scalar_one()
        pub = sess.get(Publication, target)

        assert h == {"r1": 2, "r2": 4}
        assert venue == 3.0
        assert pub.citation_count == 2
        assert pub.overall_score == pytest.approx(14.7)


def test_missing_decay_table_is_a_precondition_failure(bare_session_factory):
    with bare_session_factory() as sess:
        with pytest.raises(PreconditionError):
            load_decay_table(sess)


def test_partial_decay_table_is_a_precondition_failure(session_factory):
    with session_factory() as sess:
        sess.execute(DecayLookup.__table__.delete().where(DecayLookup.days == 500))
        sess.commit()

    with session_factory() as sess:
        with pytest.raises(PreconditionError):
            load_decay_table(sess)


def test_as_of_ignores_later_facts(session_factory, add_publication):
    d = date(2023, 1, 1)
    published = d - timedelta(days=300)
    pid = add_publication(
        "p",
        ["r1", "r2"],
        published=published,
        citations=[(published + timedelta(days=10), False), (published + timedelta(days=40), False)],
    )

    engine, facts = _engine(session_factory)
    before = engine.compute(facts, d, MetricStrategy.AS_OF)

    # citations and a co-authored paper that only appear after d
    later = d + timedelta(days=30)
    add_publication("p-later", ["r1"], published=later, citations=[(later, False)] * 8)
    with session_factory() as sess:
        from dao.publication_dao import PublicationDAO
        from dto.publication_dto import CitationRecordDTO

        PublicationDAO(sess).insert_citations(
            pid,
            [
                CitationRecordDTO(external_id=f"late-{i}", created_date=later, is_self_citation=False)
                for i in range(5)
            ],
        )
        sess.commit()

    engine, facts = _engine(session_factory)
    after = engine.compute(facts, d, MetricStrategy.AS_OF)

    assert after.overall_scores() == before.overall_scores()
    assert after.h_index.to_dict() == before.h_index.to_dict()
    assert after.citation_counts.to_dict() == {pid: 2}


def test_as_of_drops_undated_citations_and_unpublished_work(session_factory, add_publication):
    d = date(2023, 1, 1)
    pid = add_publication("p", ["r1"], published=d - timedelta(days=10), citations=[(None, False), (d, False)])
    add_publication("future", ["r1"], published=d + timedelta(days=1))

    engine, facts = _engine(session_factory)
    snap = engine.compute(facts, d, MetricStrategy.AS_OF)

    assert list(snap.scores.index) == [pid]
    assert snap.citation_counts.to_dict() == {pid: 1}


def test_live_strategy_uses_cached_counts(session_factory, add_publication):
    pid = add_publication("p", ["r1"], published=TODAY, citations=[(None, False)])

    engine, facts = _engine(session_factory)
    snap = engine.compute(facts, TODAY, MetricStrategy.LIVE)

    assert snap.citation_counts.to_dict() == {pid: 1}
    assert snap.h_index.max() == 1
