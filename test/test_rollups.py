import sys
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(PROJECT_ROOT))

from datetime import date

import pandas as pd
import pytest

from services.snapshots.rollups import (
    age_in_months,
    publication_weights,
    researcher_rollups,
    topic_rollup,
)
from services.snapshots.weights import ResearcherWeights, TopicWeights

AS_OF = date(2024, 6, 1)


def _scores(rows):
    df = pd.DataFrame(rows, columns=["publication_id", "score", "date_published", "citation_count"])
    df["date_published"] = pd.to_datetime(df["date_published"])
    return df


def _topic_frame(n, topic_id=1, score=2.0, published=date(2024, 1, 1)):
    scores = _scores([(i, score, published, 0) for i in range(1, n + 1)])
    links = pd.DataFrame([(i, topic_id) for i in range(1, n + 1)], columns=["publication_id", "topic_id"])
    return scores, links


# =============== Topics ===============
@pytest.mark.parametrize(
    "count, bonus",
    [(101, 1.5), (100, 1.3), (51, 1.3), (50, 1.1), (11, 1.1), (10, 1.0), (1, 1.0)],
)
def test_volume_bonus_thresholds_are_exclusive(count, bonus):
    assert TopicWeights().volume_bonus(count) == bonus


def test_topic_rollup_volume_boundary():
    at_101 = topic_rollup(*_topic_frame(101), AS_OF)
    at_100 = topic_rollup(*_topic_frame(100), AS_OF)

    assert at_101["mean_value"].iloc[0] == pytest.approx(3.0)
    assert at_100["mean_value"].iloc[0] == pytest.approx(2.6)


def test_topic_rollup_weights_recent_and_strong_papers():
    # recent high scorer: 1.5 * 2.0 = 3.0; old weak one: 0.2 * 0.5 = 0.1
    scores = _scores([(1, 6.0, date(2024, 1, 1), 0), (2, 1.0, date(2015, 1, 1), 0)])
    links = pd.DataFrame([(1, 9), (2, 9)], columns=["publication_id", "topic_id"])

    out = topic_rollup(scores, links, AS_OF)
    expected = (6.0 * 3.0 + 1.0 * 0.1) / 3.1
    assert out.set_index("topic_id").loc[9, "mean_value"] == pytest.approx(expected, abs=1e-3)


def test_topic_rollup_skips_unpublished_and_empty_topics():
    scores = _scores([(1, 4.0, date(2025, 1, 1), 0)])
    links = pd.DataFrame([(1, 3)], columns=["publication_id", "topic_id"])

    out = topic_rollup(scores, links, AS_OF)
    assert out.empty


# =============== Researchers ===============
def test_age_in_months_counts_whole_months():
    published = pd.to_datetime(pd.Series([date(2024, 1, 31), date(2022, 6, 1), date(2024, 7, 1)]))
    assert list(age_in_months(published, date(2024, 2, 29))) == [0, 20, 0]


def test_weight_curve_phases():
    w = ResearcherWeights()
    out = publication_weights([0, 12, 24, 30, 600], [0, 0, 0, 0, 0], w.overall_decay_floor, w)

    assert out[0] == pytest.approx(0.2)
    assert out[1] == pytest.approx(0.6)
    assert out[2] == pytest.approx(1.0)
    assert out[3] == pytest.approx(1.0)
    assert out[4] == pytest.approx(0.1)


def test_weight_floor_differs_for_topic_rollup():
    w = ResearcherWeights()
    overall = publication_weights([600], [0], w.overall_decay_floor, w)
    per_topic = publication_weights([600], [0], w.topic_decay_floor, w)

    assert overall[0] == pytest.approx(0.1)
    assert per_topic[0] == pytest.approx(0.2)


def test_citation_performance_boost_is_capped():
    w = ResearcherWeights()
    boosted = publication_weights([12, 30], [2, 50], w.overall_decay_floor, w)

    assert boosted[0] == pytest.approx(0.6 + 0.3 * 0.6)
    assert boosted[1] == 1.0


def test_researcher_rollups_weighted_mean():
    scores = _scores(
        [
            (1, 10.0, date(2024, 6, 1), 0),     # brand new: weight 0.2
            (2, 4.0, date(2021, 12, 1), 0),     # 30 months: weight 1.0
        ]
    )
    authorships = pd.DataFrame([(1, 5), (2, 5)], columns=["publication_id", "researcher_id"])
    topics = pd.DataFrame([(1, 7), (2, 8)], columns=["publication_id", "topic_id"])

    overall, per_topic = researcher_rollups(scores, authorships, topics, AS_OF)

    assert overall.set_index("researcher_id").loc[5, "mean_value"] == pytest.approx(5.0)
    per = per_topic.set_index(["researcher_id", "topic_id"])["mean_value"].to_dict()
    assert per == {(5, 7): 10.0, (5, 8): 4.0}


def test_researcher_rollups_without_publications():
    overall, per_topic = researcher_rollups(
        _scores([]),
        pd.DataFrame(columns=["publication_id", "researcher_id"]),
        pd.DataFrame(columns=["publication_id", "topic_id"]),
        AS_OF,
    )
    assert overall.empty and per_topic.empty
