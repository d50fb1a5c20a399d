from __future__ import annotations

import logging
from datetime import date

from sqlalchemy.orm import Session

from config import DECAY_MAX_DAYS
from dao.metrics_dao import MetricsDAO
from db.db_conn import SessionLocal
from services.metrics.decay import DecayTable
from services.metrics.facts import FactSet
from services.metrics.metric_engine import MetricEngine, MetricSnapshot, MetricStrategy
from services.pipeline.pipeline_errors import PreconditionError

logger = logging.getLogger(__name__)


def load_decay_table(session: Session, max_days: int = DECAY_MAX_DAYS) -> DecayTable:
    """Read the persisted decay lookup; an empty or partial table is fatal."""
    rows = MetricsDAO(session).decay_rows()
    if len(rows) < max_days + 1:
        raise PreconditionError(
            missing=["decay_lookup"],
            message=f"decay lookup has {len(rows)} of {max_days + 1} rows",
        )
    try:
        return DecayTable.from_rows(rows)
    except ValueError as e:
        raise PreconditionError(missing=["decay_lookup"], message=str(e)) from e


def recalculate_current_metrics(
    reference_date: date,
    *,
    session_factory=SessionLocal,
) -> MetricSnapshot:
    """
    Recompute every live metric from scratch and persist it.

    Each stage is committed before the next one starts:
    researcher h-index, then venue value, then publication score.
    """
    with session_factory() as sess:
        engine = MetricEngine(load_decay_table(sess))
        facts = FactSet.load(sess)

    counts = facts.citation_counts()

    logger.info("[1/3 H-INDEX] Computing for %d researchers", len(facts.researcher_ids))
    h_index = engine.h_index(facts, counts)
    with session_factory() as sess:
        MetricsDAO(sess).write_h_indexes(h_index.to_dict())
        sess.commit()

    logger.info("[2/3 VENUE] Computing for %d venues", len(facts.venue_ids))
    venue_values = engine.venue_values(facts, h_index)
    with session_factory() as sess:
        MetricsDAO(sess).write_venue_values(venue_values.to_dict())
        sess.commit()

    logger.info("[3/3 SCORE] Computing for %d publications", len(facts.publications))
    scores = engine.scores(facts, venue_values, reference_date)
    with session_factory() as sess:
        MetricsDAO(sess).write_overall_scores(scores["overall_score"].to_dict())
        sess.commit()

    return MetricSnapshot(
        as_of=reference_date,
        strategy=MetricStrategy.LIVE,
        facts=facts,
        citation_counts=counts,
        h_index=h_index,
        venue_values=venue_values,
        scores=scores,
    )
