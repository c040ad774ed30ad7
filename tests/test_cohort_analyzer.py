"""
Tests for CohortAnalyzer reports and the ViewExporter.
"""

import os

import pandas as pd
import pytest
import yaml

from gamerisk.core.segment.cohort_analyzer import CohortAnalyzer
from gamerisk.core.segment.data_manager import ViewExporter
from gamerisk.exceptions import EmptyPopulation, InvalidRuleConfig
from tests.conftest import make_record


@pytest.fixture
def analyzer(engine, population):
    return CohortAnalyzer(population, engine)


class TestCohortAnalyzer:
    """Descriptive breakdowns"""

    def test_segment_distribution(self, analyzer):
        table = analyzer.segment_distribution("gaming").set_index("segment")
        assert table.loc["Moderate", "count"] == 18
        assert table.loc["Hardcore", "count"] == 2
        assert table["percentage"].sum() == pytest.approx(100.0)

    def test_segment_distribution_by_platform(self, analyzer):
        table = analyzer.segment_distribution("gaming", by="platform")
        assert table.loc["Hardcore", "PC"] == 100.0

    def test_unknown_segmenter(self, analyzer):
        with pytest.raises(InvalidRuleConfig):
            analyzer.segment_distribution("mood")

    def test_risk_by_segment_rows_sum_to_100(self, analyzer):
        table = analyzer.risk_by_segment()
        assert table.sum(axis=1).round(1).tolist() == [100.0] * len(table)
        assert table.loc["Moderate", "Severe"] == pytest.approx(100 / 18, abs=0.01)

    def test_risk_by_gpa_band(self, engine):
        students = [
            make_record(1, occupation_type="Student", gpa=3.8, productivity_score=None),
            make_record(2, occupation_type="Student", gpa=1.5, productivity_score=None,
                        addiction_risk_level="Severe"),
        ]
        table = CohortAnalyzer(students, engine).risk_by_gpa_band()
        assert table.loc["<2.0", "Severe"] == 100.0
        assert table.loc["3.5+", "Low"] == 100.0

    def test_risk_by_gpa_band_without_students(self, analyzer):
        with pytest.raises(EmptyPopulation):
            analyzer.risk_by_gpa_band()

    def test_metric_by_group(self, analyzer):
        table = analyzer.metric_by_group("sleep_hours", "addiction_risk_level")
        assert list(table.columns) == ["addiction_risk_level", "mean", "median", "count"]
        assert table["count"].sum() == 20

    def test_cohort_profile(self, analyzer):
        profile = analyzer.cohort_profile({19, 20})
        assert profile["size"] == 2
        assert profile["averages"]["monthly_spending"] == 195.0
        assert profile["risk_mix"].iloc[0]["addiction_risk_level"] == "Low"

    def test_named_cohort_profile(self, analyzer):
        assert analyzer.named_cohort_profile("whales")["size"] == 1

    def test_empty_cohort_profile(self, analyzer):
        with pytest.raises(EmptyPopulation):
            analyzer.cohort_profile({999})

    def test_condition_coverage(self, analyzer):
        coverage = analyzer.condition_coverage("at_risk").set_index("condition")
        assert coverage.loc["segment:gaming==Hardcore", "records"] == 2
        assert coverage.loc["sleep_hours<6", "records"] == 1
        assert coverage.loc["at_risk (any)", "records"] == 5
        assert coverage.loc["at_risk (any)", "percentage"] == 25.0


class TestViewExporter:
    def test_save_view(self, tmp_path, engine, analyzer):
        view = engine.view("at_risk")
        paths = ViewExporter(str(tmp_path)).save_view(view, analyzer.condition_coverage("at_risk"))

        assert set(paths) == {"view", "rule", "coverage"}
        assert all(os.path.exists(p) for p in paths.values())

        saved = pd.read_csv(paths["view"])
        assert list(saved["gamer_id"]) == [3, 5, 7, 9, 11]
        assert saved.loc[saved["gamer_id"] == 11, "fired"].item() == "segment:gaming==Hardcore"

        with open(paths["rule"]) as f:
            rule = yaml.safe_load(f)
        assert rule["at_risk"]["combine"] == "any"
        assert len(rule["at_risk"]["conditions"]) == 4
