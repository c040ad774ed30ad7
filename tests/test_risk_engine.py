"""
Tests for the CohortRiskEngine, its configuration and the functional API.
"""

import pytest

from gamerisk import utils
from gamerisk.core.features.gamer_record import Segment
from gamerisk.core.processing.record_store import InMemoryRecordStore
from gamerisk.core.segment.risk_engine import (
    CohortRiskEngine,
    RiskEngineConfig,
    at_risk_view,
    configure,
    default_engine,
    evaluate_risk,
    segment,
)
from gamerisk.exceptions import InvalidRuleConfig, MissingAnnotation, RecordStoreError
from tests.conftest import AT_RISK_IDS, make_record

SCENARIO_RULE = ["sleep_hours<6", "withdrawal_symptoms", "addiction_risk_level==Severe"]


class TestRiskEngineConfig:
    """Configuration loading"""

    def test_defaults(self):
        config = RiskEngineConfig()
        assert set(config.rules) == {"at_risk", "whale", "top_spender", "isolated_heavy_gamer", "high_risk_label"}
        assert config.max_population == 5_000_000

    def test_project_file_matches_defaults(self):
        assert RiskEngineConfig.load().to_dict() == RiskEngineConfig().to_dict()

    def test_file_overrides_only_its_sections(self, tmp_path):
        path = tmp_path / "custom.yaml"
        path.write_text(
            "segments:\n"
            "  gaming: {metric: daily_gaming_hours, lower: 1, upper: 3}\n"
        )
        config = RiskEngineConfig.load(str(path))
        assert config.segments == {"gaming": {"metric": "daily_gaming_hours", "lower": 1, "upper": 3}}
        assert "at_risk" in config.rules
        assert config.source == str(path)

    def test_environment_variable_is_used(self, tmp_path, monkeypatch):
        path = tmp_path / "env.yaml"
        path.write_text("ranking: {max_population: 10}\n")
        monkeypatch.setenv("GAMERISK_CONFIG", str(path))
        assert RiskEngineConfig.load().max_population == 10

    def test_missing_default_file_falls_back(self, tmp_path, monkeypatch):
        monkeypatch.setattr(utils, "DEFAULT_CONFIG_FILE", str(tmp_path / "absent.yaml"))
        assert RiskEngineConfig.load().source == "built-in defaults"

    def test_missing_explicit_file_raises(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            RiskEngineConfig.load(str(tmp_path / "absent.yaml"))

    @pytest.mark.parametrize("text", [
        "rules: [unclosed\n",
        "- just\n- a list\n",
        "surprise_section: {}\n",
        "rules: 5\n",
    ])
    def test_malformed_file_raises(self, tmp_path, text):
        path = tmp_path / "bad.yaml"
        path.write_text(text)
        with pytest.raises(InvalidRuleConfig):
            RiskEngineConfig.load(str(path))

    def test_bad_max_population(self):
        with pytest.raises(InvalidRuleConfig):
            RiskEngineConfig.from_dict({"ranking": {"max_population": -1}}).max_population


class TestEngine:
    """Engine stages over the standard population"""

    def test_annotate(self, engine):
        contexts = engine.annotate()
        assert contexts[9].segments["gaming"] is Segment.HARDCORE
        assert contexts[20].percentiles["monthly_spending"].rank == 1.0

    def test_annotate_runs_only_needed_segmenters(self, engine):
        assert engine.annotate(rule="whale")[3].segments == {}
        contexts = engine.annotate(rule=[{"segmenter": "sleep", "label": "Deprived"}])
        assert contexts[3].segments == {"sleep": "Deprived"}

    @pytest.mark.parametrize("metric", ["platform", "weight_change_kg", "occupation_type"])
    def test_non_numeric_segmenter_fails_at_construction(self, store, metric):
        segments = {
            "gaming": {"metric": "daily_gaming_hours", "lower": 2, "upper": 5},
            "extra": {"metric": metric, "lower": 0, "upper": 1},
        }
        with pytest.raises(InvalidRuleConfig):
            CohortRiskEngine(store, config={"segments": segments})

    def test_unused_segmenter_does_not_affect_view(self, store):
        segments = {
            "gaming": {"metric": "daily_gaming_hours", "lower": 2, "upper": 5},
            "productivity": {"metric": "productivity_score", "lower": 40, "upper": 80},
        }
        store.upsert(make_record(21, productivity_score=None))
        engine = CohortRiskEngine(store, config={"segments": segments})
        assert [row.gamer_id for row in engine.view("at_risk")] == AT_RISK_IDS

    def test_at_risk_flags(self, engine):
        flags = engine.evaluate_all(rule="at_risk")
        assert [f.gamer_id for f in flags if f.flagged] == AT_RISK_IDS
        by_id = {f.gamer_id: f for f in flags}
        assert by_id[11].fired == ("segment:gaming==Hardcore",)
        assert by_id[7].fired == ("addiction_risk_level==Severe",)

    @pytest.mark.parametrize("rule, expected", [
        ("whale", [20]),
        ("top_spender", [19, 20]),
        ("isolated_heavy_gamer", [11]),
        ("high_risk_label", [7, 13]),
    ])
    def test_built_in_rules(self, engine, rule, expected):
        assert [f.gamer_id for f in engine.evaluate_all(rule=rule) if f.flagged] == expected

    def test_named_cohorts(self, engine):
        assert engine.cohort("whales") == {20}
        assert engine.cohort("top_spenders") == {19, 20}
        with pytest.raises(InvalidRuleConfig):
            engine.cohort("minnows")

    def test_records_without_metric_are_not_ranked(self, engine):
        records = [make_record(1, productivity_score=90.0), make_record(2, productivity_score=None)]
        assigned = engine.rank(records, "productivity_score")
        assert assigned[1].rank == 1.0
        assert assigned[2] is None

    def test_rank_within_segment(self, engine, population):
        assigned = engine.rank(population, "monthly_spending", within="gaming")
        # ids 9 and 11 are the only Hardcore gamers
        assert assigned[11].rank == 1.0
        assert assigned[9].population_size == 2
        assert assigned[20].population_size == 18

    def test_within_rule(self, engine):
        flags = engine.evaluate_all(rule=[{"metric": "monthly_spending", "top_percent": 50, "within": "gaming"}])
        assert 11 in {f.gamer_id for f in flags if f.flagged}
        assert 9 not in {f.gamer_id for f in flags if f.flagged}

    def test_unknown_segmenter_in_ad_hoc_rule(self, engine):
        with pytest.raises(InvalidRuleConfig):
            engine.evaluate_all(rule=[{"segmenter": "mood", "label": "High"}])

    def test_engine_without_store(self):
        engine = CohortRiskEngine(config=RiskEngineConfig())
        with pytest.raises(InvalidRuleConfig):
            engine.snapshot()
        assert engine.evaluate_all([make_record(1, sleep_hours=4.0)])[0].flagged

    def test_gaming_segmenter_is_required(self):
        with pytest.raises(InvalidRuleConfig):
            CohortRiskEngine(config={"segments": {}})

    def test_run(self, engine):
        results = engine.run()
        assert list(results["flags"]["gamer_id"]) == AT_RISK_IDS
        cohorts = results["cohorts"].set_index("cohort")["members"].to_dict()
        assert cohorts == {"top_spenders": 2, "whales": 1}
        gaming = results["segments"][results["segments"]["segmenter"] == "gaming"]
        assert gaming["count"].sum() == 20


class TestFunctionalApi:
    """Module-level helpers"""

    def test_segment(self):
        assert segment(6.0) is Segment.HARDCORE
        assert segment(make_record(1, daily_gaming_hours=2.0)) is Segment.MODERATE

    def test_evaluate_risk_with_named_conditions(self):
        record = make_record(1, sleep_hours=5.0, withdrawal_symptoms=False, addiction_risk_level="Low")
        assert evaluate_risk(record, None, SCENARIO_RULE) == (True, ["sleep_hours<6"])

    def test_evaluate_risk_is_idempotent(self):
        record = make_record(1, daily_gaming_hours=8.0)
        first = evaluate_risk(record)
        assert first == evaluate_risk(record)
        assert first == (True, ["segment:gaming==Hardcore"])

    def test_evaluate_risk_with_mapping_context(self):
        record = make_record(1)
        assert evaluate_risk(record, {"segments": {"gaming": "Hardcore"}}, "at_risk") \
            == (True, ["segment:gaming==Hardcore"])

    def test_cohort_rule_needs_population(self):
        with pytest.raises(MissingAnnotation):
            evaluate_risk(make_record(1), None, "whale")

    def test_at_risk_view_with_explicit_store(self, store):
        view = at_risk_view("at_risk", store=store)
        assert [row.gamer_id for row in view] == AT_RISK_IDS

    def test_at_risk_view_uses_configured_store(self, store):
        configure(store=store, config=RiskEngineConfig())
        view = at_risk_view("at_risk")
        assert [row.gamer_id for row in view] == AT_RISK_IDS
        assert at_risk_view().members() == frozenset(AT_RISK_IDS)

    def test_default_engine_accepts_store(self, store):
        default_engine(store=store)
        assert at_risk_view("whale").members() == {20}

    def test_at_risk_view_without_store(self):
        with pytest.raises(RecordStoreError):
            at_risk_view("at_risk")

    def test_empty_explicit_store_is_used(self, store):
        configure(store=store, config=RiskEngineConfig())
        assert at_risk_view("at_risk", store=InMemoryRecordStore([])).count() == 0
