# core/segment/risk_engine.py

import copy
import logging
import numbers
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Hashable, Iterable, List, Mapping, Optional, Sequence, Set, Tuple, Union

import pandas as pd  # type: ignore

from ... import utils
from ...exceptions import InvalidRuleConfig, RecordStoreError
from ..features.gamer_record import GamerRecord, NUMERIC_FIELDS, SIGNED_FIELDS, Segment, records_to_frame
from ..processing.record_store import RecordStore
from .percentile_ranker import MAX_POPULATION, PercentileAssignment, PercentileRanker, validate_percentile
from .risk_evaluator import EvaluationContext, RiskEvaluator, RiskFlag, RiskRule, cohort_key
from .segmenter import Segmenter
from .view import RiskView, ViewRow

logger = logging.getLogger(__name__)


DEFAULT_CONFIG: Dict[str, Any] = {
    "segments": {
        "gaming": {
            "metric": "daily_gaming_hours",
            "lower": 2.0,
            "upper": 5.0,
            "labels": ["Casual", "Moderate", "Hardcore"],
        },
        "sleep": {
            "metric": "sleep_hours",
            "lower": 6.0,
            "upper": 9.0,
            "labels": ["Deprived", "Adequate", "Excessive"],
        },
    },
    "cohorts": {
        "top_spenders": {"metric": "monthly_spending", "top_percent": 10},
        "whales": {"metric": "monthly_spending", "top_percent": 5},
    },
    "conditions": {
        "addiction_risk_level==Severe": {"field": "addiction_risk_level", "op": "==", "value": "Severe"},
        "withdrawal_symptoms": {"field": "withdrawal_symptoms"},
        "sleep_hours<6": {"field": "sleep_hours", "op": "<", "value": 6},
        "segment:gaming==Hardcore": {"segmenter": "gaming", "label": "Hardcore"},
        "top5%:monthly_spending": {"metric": "monthly_spending", "top_percent": 5},
        "top10%:monthly_spending": {"metric": "monthly_spending", "top_percent": 10},
        "social_isolation_score>=70": {"field": "social_isolation_score", "op": ">=", "value": 70},
        "face_to_face_social_hours<1": {"field": "face_to_face_social_hours", "op": "<", "value": 1},
        "addiction_risk_level in High/Severe": {
            "field": "addiction_risk_level", "op": "in", "value": ["High", "Severe"],
        },
    },
    "rules": {
        "at_risk": {
            "combine": "any",
            "conditions": [
                "addiction_risk_level==Severe",
                "withdrawal_symptoms",
                "sleep_hours<6",
                "segment:gaming==Hardcore",
            ],
        },
        "whale": {"combine": "all", "conditions": ["top5%:monthly_spending"]},
        "top_spender": {"combine": "all", "conditions": ["top10%:monthly_spending"]},
        "isolated_heavy_gamer": {
            "combine": "all",
            "conditions": [
                "segment:gaming==Hardcore",
                "social_isolation_score>=70",
                "face_to_face_social_hours<1",
            ],
        },
        "high_risk_label": {"combine": "any", "conditions": ["addiction_risk_level in High/Severe"]},
    },
    "ranking": {"max_population": MAX_POPULATION},
}

SECTIONS = ("segments", "cohorts", "conditions", "rules", "ranking")


@dataclass
class RiskEngineConfig:
    """
    Engine configuration: segmenters, named cohorts, the condition catalog,
    rules and ranking limits.

    Each section read from YAML replaces the built-in section of the same
    name; sections the file leaves out keep their defaults.
    """
    segments: Dict[str, Any] = field(default_factory=lambda: copy.deepcopy(DEFAULT_CONFIG["segments"]))
    cohorts: Dict[str, Any] = field(default_factory=lambda: copy.deepcopy(DEFAULT_CONFIG["cohorts"]))
    conditions: Dict[str, Any] = field(default_factory=lambda: copy.deepcopy(DEFAULT_CONFIG["conditions"]))
    rules: Dict[str, Any] = field(default_factory=lambda: copy.deepcopy(DEFAULT_CONFIG["rules"]))
    ranking: Dict[str, Any] = field(default_factory=lambda: copy.deepcopy(DEFAULT_CONFIG["ranking"]))
    source: str = "built-in defaults"

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any], source: str = "mapping") -> "RiskEngineConfig":
        if not isinstance(raw, Mapping):
            raise InvalidRuleConfig(f"Config root must be a mapping, got {type(raw).__name__}")

        # A top-level 'gamerisk' key is unwrapped
        if "gamerisk" in raw:
            raw = raw["gamerisk"]
            if not isinstance(raw, Mapping):
                raise InvalidRuleConfig("'gamerisk' section must be a mapping")

        unknown = set(raw) - set(SECTIONS)
        if unknown:
            raise InvalidRuleConfig(f"Unknown config section(s): {sorted(unknown)}",
                                    {"allowed": list(SECTIONS)})

        sections = {}
        for section in SECTIONS:
            if section not in raw:
                continue
            value = raw[section]
            if value is None:
                value = {}
            if section == "conditions" and isinstance(value, list):
                sections[section] = copy.deepcopy(value)
                continue
            if not isinstance(value, Mapping):
                raise InvalidRuleConfig(f"Config section '{section}' must be a mapping", {"section": section})
            sections[section] = copy.deepcopy(dict(value))
        return cls(source=source, **sections)

    @classmethod
    def load(cls, path: Optional[str] = None) -> "RiskEngineConfig":
        """
        Load configuration from YAML.

        Parameters
        ----------
        path : str, optional
            Explicit file; otherwise ``GAMERISK_CONFIG`` or the project
            default ``config/risk_config.yaml``

        Returns
        -------
        RiskEngineConfig
            Built-in defaults when the default file is absent
        """
        try:
            raw = utils.load_config(path)
        except ValueError as e:
            raise InvalidRuleConfig(str(e), {"path": utils.resolve_config_file(path)}) from e

        if not raw:
            return cls()

        config = cls.from_dict(raw, source=utils.resolve_config_file(path))
        logger.info(f"✅ Configuration loaded from {config.source}")
        return config

    @property
    def max_population(self) -> int:
        value = self.ranking.get("max_population", MAX_POPULATION)
        if isinstance(value, bool) or not isinstance(value, numbers.Integral) or value <= 0:
            raise InvalidRuleConfig(f"ranking.max_population must be a positive integer, got {value!r}")
        return int(value)

    def to_dict(self) -> Dict[str, Any]:
        return {section: copy.deepcopy(getattr(self, section)) for section in SECTIONS}


class CohortRiskEngine:
    """
    Cohort & risk orchestrator.

    Coordinates:
    - Segmentation (configured segmenters)
    - Percentile ranking and named cohorts
    - Rule evaluation
    - Always-current views over the record store
    """

    def __init__(self, store: Optional[RecordStore] = None,
                 config: Union[RiskEngineConfig, Mapping[str, Any], None] = None):
        if config is None:
            config = RiskEngineConfig.load()
        elif not isinstance(config, RiskEngineConfig):
            config = RiskEngineConfig.from_dict(config)

        self.store = store
        self.config = config

        logger.info("[STEP 1] Building segmenters...")
        segments = config.segments
        if "gaming" not in segments:
            raise InvalidRuleConfig("A 'gaming' segmenter is required", {"segments": sorted(segments)})
        self.segmenters: Dict[str, Segmenter] = {
            name: Segmenter.from_config(name, cfg if isinstance(cfg, Mapping) else {})
            for name, cfg in segments.items()
        }

        self.ranker = PercentileRanker(config.max_population)
        self.cohorts = self._build_cohorts(config.cohorts)

        logger.info("[STEP 2] Building rules...")
        self.evaluator = RiskEvaluator.from_config(
            {"conditions": config.conditions, "rules": config.rules},
            segmenter_labels={name: s.labels for name, s in self.segmenters.items()},
        )

        self._log_initialization_summary()

    def _build_cohorts(self, cohorts: Mapping[str, Any]) -> Dict[str, Tuple[str, float, Optional[str]]]:
        built = {}
        for name, cfg in cohorts.items():
            if not isinstance(cfg, Mapping) or "metric" not in cfg or "top_percent" not in cfg:
                raise InvalidRuleConfig(f"Cohort '{name}' needs 'metric' and 'top_percent'", {"cohort": name})
            metric = cfg["metric"]
            if metric not in NUMERIC_FIELDS and metric not in SIGNED_FIELDS:
                raise InvalidRuleConfig(f"Cohort metric '{metric}' is not numeric", {"cohort": name, "metric": metric})
            within = cfg.get("within")
            if within is not None and within not in self.segmenters:
                raise InvalidRuleConfig(f"Cohort '{name}' ranks within unknown segmenter '{within}'",
                                        {"cohort": name, "segmenter": within})
            built[name] = (metric, validate_percentile(cfg["top_percent"]), within)
        return built

    def _log_initialization_summary(self) -> None:
        logger.info("✅ CohortRiskEngine initialized")
        logger.info(f"   - Config: {self.config.source}")
        logger.info(f"   - Segmenters: {list(self.segmenters)}")
        logger.info(f"   - Cohorts: {list(self.cohorts)}")
        logger.info(f"   - Rules: {list(self.evaluator.rules)}")

    # ---------------- Snapshot ----------------

    def snapshot(self) -> Tuple[GamerRecord, ...]:
        if self.store is None:
            raise InvalidRuleConfig("Engine has no record store; pass records explicitly")
        return tuple(self.store.fetch_all())

    def _records(self, records: Optional[Iterable[GamerRecord]]) -> Tuple[GamerRecord, ...]:
        return self.snapshot() if records is None else tuple(records)

    # ---------------- Stages ----------------

    def segment(self, record: GamerRecord, segmenter: str = "gaming") -> Any:
        return self.get_segmenter(segmenter).segment_record(record)

    def get_segmenter(self, name: str) -> Segmenter:
        if name not in self.segmenters:
            raise InvalidRuleConfig(f"Unknown segmenter '{name}'", {"segmenter": name, "known": sorted(self.segmenters)})
        return self.segmenters[name]

    def segment_labels(self, records: Sequence[GamerRecord], segmenter: str) -> Dict[Hashable, Any]:
        """Label per id; records without a value for the metric map to None."""
        seg = self.get_segmenter(segmenter)
        return {
            r.gamer_id: (None if getattr(r, seg.metric) is None else seg.segment_record(r))
            for r in records
        }

    def rank(
        self,
        records: Sequence[GamerRecord],
        metric: str,
        within: Optional[str] = None,
        segments: Optional[Mapping[Hashable, Any]] = None,
    ) -> Dict[Hashable, Optional[PercentileAssignment]]:
        """
        Percentile assignment per id for one metric.

        Records without a value are left out of the population and get
        None. With ``within``, each segment of that segmenter is ranked on
        its own.
        """
        population = [(r.gamer_id, getattr(r, metric)) for r in records if getattr(r, metric) is not None]
        result: Dict[Hashable, Optional[PercentileAssignment]] = {r.gamer_id: None for r in records}
        if not population:
            return result

        if within is None:
            result.update(self.ranker.assign(population, metric))
            return result

        if segments is None:
            segments = self.segment_labels(records, within)
        ranked_ids = {gamer_id for gamer_id, _ in population if segments.get(gamer_id) is not None}
        population = [(gamer_id, value) for gamer_id, value in population if gamer_id in ranked_ids]
        if population:
            groups = {gamer_id: _label_name(segments[gamer_id]) for gamer_id in ranked_ids}
            result.update(self.ranker.rank_within(population, groups, metric))
        return result

    def annotate(self, records: Optional[Iterable[GamerRecord]] = None, rule: Any = None
                 ) -> Dict[Hashable, EvaluationContext]:
        """
        Evaluation context per id for one snapshot.

        Only the segmenters and cohorts ``rule`` needs are computed (or those
        of every configured rule when no rule is given).
        """
        records = self._records(records)
        rules = [self.evaluator.resolve(rule)] if rule is not None else list(self.evaluator.rules.values())

        needed: Set[Tuple[str, Optional[str]]] = set()
        segmenters: Set[str] = set()
        for r in rules:
            needed |= r.cohort_requirements
            segmenters |= r.segment_requirements

        segments = {name: self.segment_labels(records, name) for name in sorted(segmenters)}

        percentiles = {
            cohort_key(metric, within): self.rank(records, metric, within, segments.get(within))
            for metric, within in sorted(needed, key=lambda pair: (pair[0], pair[1] or ""))
        }

        return {
            record.gamer_id: EvaluationContext(
                segments={name: labels[record.gamer_id] for name, labels in segments.items()},
                percentiles={key: assigned[record.gamer_id] for key, assigned in percentiles.items()},
            )
            for record in records
        }

    def evaluate(self, record: GamerRecord, context: EvaluationContext, rule: Any = "at_risk") -> RiskFlag:
        return self.evaluator.evaluate(record, context, rule)

    def evaluate_all(self, records: Optional[Iterable[GamerRecord]] = None, rule: Any = "at_risk") -> List[RiskFlag]:
        """Annotate one snapshot and evaluate ``rule`` for every record in it."""
        records = self._records(records)
        resolved = self.evaluator.resolve(rule)
        contexts = self.annotate(records, resolved)
        return [resolved.evaluate(record, contexts[record.gamer_id]) for record in records]

    def context_for(self, record: GamerRecord) -> EvaluationContext:
        """Segment-only context for a single record (no population to rank against)."""
        return EvaluationContext(segments={
            name: (None if getattr(record, seg.metric) is None else seg.segment_record(record))
            for name, seg in self.segmenters.items()
        })

    # ---------------- Cohorts & views ----------------

    def cohort(self, name: str, records: Optional[Iterable[GamerRecord]] = None) -> Set[Hashable]:
        """Ids in a configured named cohort (e.g. ``whales``)."""
        if name not in self.cohorts:
            raise InvalidRuleConfig(f"Unknown cohort '{name}'", {"cohort": name, "known": sorted(self.cohorts)})
        metric, top_percent, within = self.cohorts[name]
        assigned = self.rank(self._records(records), metric, within)
        return {gamer_id for gamer_id, a in assigned.items() if a is not None and a.in_top(top_percent)}

    def view(self, rule: Any = "at_risk", store: Optional[RecordStore] = None,
             order_by: Optional[Callable[[ViewRow], Any]] = None) -> RiskView:
        if store is None:
            store = self.store
        if store is None:
            raise InvalidRuleConfig("A record store is required to build a view")
        return RiskView(self, store, self.evaluator.resolve(rule), order_by=order_by)

    # ---------------- Pipeline ----------------

    def run(self, rule: str = "at_risk") -> Dict[str, pd.DataFrame]:
        """
        Execute the full pipeline over one snapshot.

        Returns
        -------
        Dict[str, pd.DataFrame]
            ``segments`` (label shares per segmenter), ``cohorts`` (size per
            named cohort) and ``flags`` (one row per flagged record)
        """
        logger.info("=" * 80)
        logger.info("🚀 COHORT & RISK PIPELINE")
        logger.info("=" * 80)

        logger.info("[STEP 1] Fetching snapshot...")
        records = self.snapshot()
        logger.info(f"   ✅ {len(records):,} records")

        logger.info("[STEP 2] Segmenting...")
        frames = []
        for name in self.segmenters:
            labels = pd.Series(self.segment_labels(records, name), dtype=object).map(_label_name)
            table = utils.share_table(labels.dropna().rename("label"))
            table.insert(0, "segmenter", name)
            frames.append(table)
        segments_df = pd.concat(frames, ignore_index=True) if frames else pd.DataFrame()

        logger.info("[STEP 3] Extracting cohorts...")
        cohort_rows = []
        for name, (metric, top_percent, within) in self.cohorts.items():
            members = self.cohort(name, records)
            cohort_rows.append({"cohort": name, "metric": metric, "top_percent": top_percent,
                                "within": within, "members": len(members)})
            logger.info(f"   ➡️ {name}: {len(members):,} members")
        cohorts_df = pd.DataFrame(cohort_rows, columns=["cohort", "metric", "top_percent", "within", "members"])

        logger.info(f"[STEP 4] Evaluating rule '{rule}'...")
        flags = [f for f in self.evaluate_all(records, rule) if f.flagged]
        flags_df = pd.DataFrame(
            [{"gamer_id": f.gamer_id, "fired": list(f.fired), "fired_count": len(f.fired)} for f in flags],
            columns=["gamer_id", "fired", "fired_count"],
        )

        share = (len(flags) / len(records) * 100) if records else 0.0
        logger.info("=" * 80)
        logger.info(f"🎉 PIPELINE COMPLETE! {len(flags):,} of {len(records):,} records flagged ({share:.1f}%)")
        logger.info("=" * 80)
        return {"segments": segments_df, "cohorts": cohorts_df, "flags": flags_df}

    def annotated_frame(self, records: Optional[Iterable[GamerRecord]] = None) -> pd.DataFrame:
        """Records as a DataFrame with one ``<segmenter>_segment`` column each."""
        records = self._records(records)
        df = records_to_frame(records)
        for name in self.segmenters:
            labels = self.segment_labels(records, name)
            df[f"{name}_segment"] = [_label_name(labels[r.gamer_id]) for r in records]
        return df


def _label_name(label: Any) -> Any:
    return label.value if isinstance(label, Segment) else label


# ============================================================
# Functional API
# ============================================================

_default_engine: Optional[CohortRiskEngine] = None


def default_engine(store: Optional[RecordStore] = None) -> CohortRiskEngine:
    """
    Engine built from the resolved configuration, created on first use.

    A ``store`` given here becomes the record store of the shared engine.
    """
    global _default_engine
    if _default_engine is None:
        _default_engine = CohortRiskEngine(config=RiskEngineConfig.load())
    if store is not None:
        _default_engine.store = store
    return _default_engine


def configure(store: Optional[RecordStore] = None,
              config: Union[RiskEngineConfig, Mapping[str, Any], None] = None) -> CohortRiskEngine:
    """Replace the shared engine, e.g. to point the functional API at a record store."""
    global _default_engine
    _default_engine = CohortRiskEngine(store=store, config=config)
    store_name = type(store).__name__ if store is not None else "none"
    logger.info(f"🔧 Functional API configured (store: {store_name})")
    return _default_engine


def _population(population: Any, metric: str) -> Any:
    """
    Accept records or ``{id, <metric>}`` mappings as a population, besides
    everything ``PercentileRanker`` takes directly.
    """
    if isinstance(population, (pd.Series, Mapping)):
        return population
    items = list(population)
    if items and isinstance(items[0], GamerRecord):
        return [(r.gamer_id, getattr(r, metric)) for r in items if getattr(r, metric) is not None]
    if items and isinstance(items[0], Mapping):
        pairs = []
        for item in items:
            gamer_id = item.get("gamer_id", item.get("id"))
            if gamer_id is None:
                raise InvalidRuleConfig("Population entries need an 'id' or 'gamer_id'", {"entry": dict(item)})
            pairs.append((gamer_id, item[metric]))
        return pairs
    return items


def segment(record_or_hours: Union[GamerRecord, float], segmenter: str = "gaming") -> Any:
    """Gaming segment of a record (or of a raw daily-hours value)."""
    seg = default_engine().get_segmenter(segmenter)
    if isinstance(record_or_hours, GamerRecord):
        return seg.segment_record(record_or_hours)
    return seg.segment(record_or_hours)


def percentile_rank(population: Any, metric: str = "value") -> Dict[Hashable, float]:
    return PercentileRanker().rank(_population(population, metric), metric)


def top_k_percent(population: Any, metric: str, k: float) -> Set[Hashable]:
    return PercentileRanker().top_k_percent(_population(population, metric), k, metric)


def evaluate_risk(record: GamerRecord, context: Any = None, rule_config: Any = "at_risk") -> Tuple[bool, List[str]]:
    """
    Evaluate one record.

    ``context`` may be an ``EvaluationContext``, a mapping with
    ``segments``/``percentiles``, or None (segments are then computed from
    the record itself). ``rule_config`` is a rule name, a ``RiskRule`` or an
    ad-hoc rule config.
    """
    engine = default_engine()
    if context is None:
        context = engine.context_for(record)
    elif isinstance(context, Mapping):
        context = EvaluationContext(segments=context.get("segments", {}),
                                    percentiles=context.get("percentiles", {}))
    flag = engine.evaluate(record, context, rule_config)
    return flag.flagged, list(flag.fired)


def at_risk_view(rule_config: Any = "at_risk", store: Optional[RecordStore] = None,
                 order_by: Optional[Callable[[ViewRow], Any]] = None) -> RiskView:
    """
    Always-current view of the records ``rule_config`` flags.

    Reads ``store`` when given, otherwise the store set with
    ``configure(store=...)`` or ``default_engine(store=...)``.
    """
    engine = default_engine()
    if store is None:
        store = engine.store
    if store is None:
        raise RecordStoreError(
            "No record store configured for the functional API; "
            "call configure(store=...) or pass store=...",
            {"rule": rule_config if isinstance(rule_config, str) else "custom"},
        )
    return engine.view(rule_config, store=store, order_by=order_by)
