"""
Tests for percentile ranking and top-k cohorts.
"""

import logging

import numpy as np
import pandas as pd
import pytest

from gamerisk.core.segment.percentile_ranker import PercentileRanker
from gamerisk.core.segment.risk_engine import percentile_rank, top_k_percent
from gamerisk.exceptions import EmptyPopulation, InconsistentRecord, InvalidMetric, InvalidPercentile
from tests.conftest import make_record

SPENDERS = [{"id": 1, "spend": 100}, {"id": 2, "spend": 50}, {"id": 3, "spend": 10}]


class TestRank:
    """Rank values and tie handling"""

    def test_ranks_descending(self):
        ranks = percentile_rank(SPENDERS, "spend")
        assert ranks == pytest.approx({1: 1.0, 2: 2 / 3, 3: 1 / 3})

    def test_ranks_in_unit_interval(self):
        rng = np.random.default_rng(3)
        population = pd.Series(rng.integers(0, 50, size=500), index=range(500))
        ranks = PercentileRanker().rank(population, "spend")
        assert all(0 < r <= 1 for r in ranks.values())
        assert max(ranks.values()) == 1.0

    def test_ties_share_rank(self):
        ranks = PercentileRanker().rank([("a", 10), ("b", 10), ("c", 5)])
        assert ranks["a"] == ranks["b"] == 1.0
        assert ranks["c"] == pytest.approx(1 / 3)

    def test_accepts_mapping_and_records(self):
        assert PercentileRanker().rank({"x": 1.0, "y": 2.0}) == {"y": 1.0, "x": 0.5}
        records = [make_record(1, monthly_spending=5.0), make_record(2, monthly_spending=9.0)]
        assert percentile_rank(records, "monthly_spending") == {2: 1.0, 1: 0.5}

    def test_empty_population_raises(self):
        with pytest.raises(EmptyPopulation):
            percentile_rank([], "spend")

    def test_duplicate_ids_raise(self):
        with pytest.raises(InconsistentRecord):
            PercentileRanker().rank([("a", 1), ("a", 2)])

    def test_nan_value_raises(self):
        with pytest.raises(InvalidMetric) as exc:
            PercentileRanker().rank([("a", 1.0), ("b", float("nan"))], "spend")
        assert exc.value.details["gamer_id"] == "b"

    def test_size_ceiling_logs_warning(self, caplog):
        with caplog.at_level(logging.WARNING):
            PercentileRanker(max_population=2).rank([("a", 1), ("b", 2), ("c", 3)])
        assert "exact-rank ceiling" in caplog.text


class TestTopK:
    """Top-k percent cohorts"""

    def test_top_third_of_three_spenders(self):
        assert top_k_percent(SPENDERS, "spend", 34) == {1}

    def test_tie_group_is_never_split(self):
        population = [("a", 10), ("b", 10), ("c", 5), ("d", 1)]
        assert PercentileRanker().top_k_percent(population, 25) == {"a", "b"}

    def test_k_100_is_whole_population(self):
        rng = np.random.default_rng(11)
        population = pd.Series(rng.integers(0, 20, size=300), index=range(300))
        assert PercentileRanker().top_k_percent(population, 100) == set(range(300))

    def test_monotonic_in_k(self):
        rng = np.random.default_rng(5)
        population = pd.Series(rng.normal(100, 30, size=1000).round(), index=range(1000))
        ranker = PercentileRanker()
        previous = set()
        for k in (1, 5, 10, 25, 50, 75, 100):
            current = ranker.top_k_percent(population, k)
            assert previous <= current
            previous = current

    @pytest.mark.parametrize("k", [0, -5, 100.5, float("nan"), True, "10"])
    def test_invalid_k_raises(self, k):
        with pytest.raises(InvalidPercentile):
            PercentileRanker().top_k_percent([("a", 1)], k)

    def test_summary(self):
        population = pd.Series(range(1, 101), index=range(100))
        summary = PercentileRanker().summary(population, "spend", ks=(1, 10))
        assert list(summary["members"]) == [1, 10]
        assert list(summary["min_value"]) == [100.0, 91.0]


class TestRankWithin:
    """Ranking inside sub-populations"""

    def test_groups_are_ranked_independently(self):
        population = {"a": 100, "b": 50, "c": 5, "d": 1}
        groups = {"a": "Hardcore", "b": "Hardcore", "c": "Casual", "d": "Casual"}
        assigned = PercentileRanker().rank_within(population, groups, "spend")
        assert assigned["a"].rank == 1.0
        assert assigned["c"].rank == 1.0
        assert assigned["d"].population_size == 2

    def test_missing_group_raises(self):
        with pytest.raises(InconsistentRecord):
            PercentileRanker().rank_within({"a": 1, "b": 2}, {"a": "x"})
