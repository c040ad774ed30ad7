# core/segment/risk_evaluator.py

import math
import logging
import numbers
import operator
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Hashable, Iterable, List, Mapping, Optional, Set, Tuple

from ...exceptions import InvalidRuleConfig, MissingAnnotation, UnknownCondition
from ..features.gamer_record import (
    FLAG_FIELDS,
    NUMERIC_FIELDS,
    SIGNED_FIELDS,
    GamerRecord,
    OccupationType,
    Platform,
    RiskLevel,
    parse_enum,
)
from .percentile_ranker import PercentileAssignment, validate_percentile

logger = logging.getLogger(__name__)

OPERATORS = {
    "<": operator.lt,
    "<=": operator.le,
    ">": operator.gt,
    ">=": operator.ge,
    "==": operator.eq,
    "!=": operator.ne,
    "in": lambda actual, expected: actual in expected,
}
ORDERING_OPS = {"<", "<=", ">", ">="}
ENUM_FIELDS = {
    "addiction_risk_level": RiskLevel,
    "platform": Platform,
    "occupation_type": OccupationType,
}


def cohort_key(metric: str, within: Optional[str] = None) -> str:
    """Key under which a percentile annotation is stored in a context."""
    return metric if within is None else f"{metric}|{within}"


def _fmt(value: Any) -> str:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, float):
        return f"{value:g}"
    if isinstance(value, (list, tuple)):
        return "/".join(_fmt(v) for v in value)
    return str(value)


@dataclass(frozen=True)
class EvaluationContext:
    """
    Annotations already computed for one record.

    segments    : segmenter name -> label
    percentiles : cohort key -> PercentileAssignment, or None when the
                  record has no value for that metric and was not ranked
    """
    segments: Mapping[str, Any] = field(default_factory=dict)
    percentiles: Mapping[str, Optional[PercentileAssignment]] = field(default_factory=dict)


@dataclass(frozen=True)
class RiskFlag:
    """Outcome of one rule for one record, with the conditions that fired."""
    gamer_id: Hashable
    rule: str
    flagged: bool
    fired: Tuple[str, ...] = ()


# ---------------------------------------------------------------------------
# Conditions
# ---------------------------------------------------------------------------

class Condition(ABC):
    """A named boolean test over a record and its evaluation context."""

    kind = "condition"

    def __init__(self, name: str):
        if not name or not isinstance(name, str):
            raise InvalidRuleConfig(f"Condition name must be a non-empty string, got {name!r}")
        self.name = name

    @abstractmethod
    def test(self, record: GamerRecord, context: EvaluationContext) -> bool:
        ...

    def to_config(self) -> Dict[str, Any]:
        return {"name": self.name, "kind": self.kind}

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.name!r})"


class ThresholdCondition(Condition):
    """
    ``field op value`` on a record attribute, e.g. ``sleep_hours < 6``.

    A record with no value for the field matches no operator, ``!=``
    included: an unlabelled gamer does not satisfy
    ``addiction_risk_level != Severe``.
    """

    kind = "threshold"

    def __init__(self, field_name: str, op: str, value: Any, name: Optional[str] = None):
        if field_name not in GamerRecord.field_names():
            raise InvalidRuleConfig(f"Unknown record field '{field_name}'", {"field": field_name})
        if op not in OPERATORS:
            raise InvalidRuleConfig(f"Unknown operator '{op}'", {"field": field_name, "op": op})

        self.field_name = field_name
        self.op = op
        self.value = self._normalise_value(field_name, op, value)
        if op == "in":
            default_name = f"{field_name} in {_fmt(self.value)}"
        else:
            default_name = f"{field_name}{op}{_fmt(self.value)}"
        super().__init__(name or default_name)

    @staticmethod
    def _normalise_value(field_name: str, op: str, value: Any) -> Any:
        if op == "in":
            if isinstance(value, (str, bytes)) or not isinstance(value, Iterable):
                raise InvalidRuleConfig(f"'in' needs a list of values for '{field_name}'",
                                        {"field": field_name, "value": value})
            return tuple(ThresholdCondition._normalise_value(field_name, "==", v) for v in value)

        if field_name in ENUM_FIELDS:
            enum_cls = ENUM_FIELDS[field_name]
            if op in ORDERING_OPS and enum_cls is not RiskLevel:
                raise InvalidRuleConfig(f"'{field_name}' has no ordering; use == / != / in",
                                        {"field": field_name, "op": op})
            try:
                return parse_enum(enum_cls, value, field_name)
            except ValueError as e:
                raise InvalidRuleConfig(str(e), {"field": field_name, "value": value}) from e

        if field_name in NUMERIC_FIELDS or field_name in SIGNED_FIELDS:
            if isinstance(value, bool) or not isinstance(value, numbers.Real) or math.isnan(value):
                raise InvalidRuleConfig(f"Threshold for '{field_name}' must be a number, got {value!r}",
                                        {"field": field_name, "value": value})
            return value

        if field_name in FLAG_FIELDS:
            if not isinstance(value, bool) or op in ORDERING_OPS:
                raise InvalidRuleConfig(f"'{field_name}' is a yes/no flag; compare with == true/false",
                                        {"field": field_name, "op": op, "value": value})
            return value

        if op in ORDERING_OPS:
            raise InvalidRuleConfig(f"'{field_name}' is text; use == / != / in",
                                    {"field": field_name, "op": op})
        return value

    def test(self, record: GamerRecord, context: EvaluationContext) -> bool:
        actual = getattr(record, self.field_name)
        if actual is None:
            return False
        expected = self.value
        if self.op in ORDERING_OPS and isinstance(actual, RiskLevel):
            actual, expected = actual.severity, expected.severity
        return bool(OPERATORS[self.op](actual, expected))

    def to_config(self) -> Dict[str, Any]:
        if isinstance(self.value, tuple):
            value = [v.value if isinstance(v, Enum) else v for v in self.value]
        else:
            value = self.value.value if isinstance(self.value, Enum) else self.value
        return {**super().to_config(), "field": self.field_name, "op": self.op, "value": value}


class FlagCondition(Condition):
    """Truthiness of a yes/no health flag, e.g. ``withdrawal_symptoms``."""

    kind = "flag"

    def __init__(self, field_name: str, expected: bool = True, name: Optional[str] = None):
        if field_name not in FLAG_FIELDS:
            raise InvalidRuleConfig(f"'{field_name}' is not a yes/no flag", {"field": field_name})
        self.field_name = field_name
        self.expected = bool(expected)
        super().__init__(name or (field_name if self.expected else f"not {field_name}"))

    def test(self, record: GamerRecord, context: EvaluationContext) -> bool:
        return bool(getattr(record, self.field_name)) is self.expected

    def to_config(self) -> Dict[str, Any]:
        return {**super().to_config(), "field": self.field_name, "expected": self.expected}


class SegmentCondition(Condition):
    """Membership of a segment under a named segmenter."""

    kind = "segment"

    def __init__(self, segmenter: str, label: str, name: Optional[str] = None):
        if not segmenter or label is None:
            raise InvalidRuleConfig("Segment condition needs 'segmenter' and 'label'",
                                    {"segmenter": segmenter, "label": label})
        self.segmenter = segmenter
        self.label = label.value if isinstance(label, Enum) else str(label)
        super().__init__(name or f"segment:{segmenter}=={self.label}")

    def test(self, record: GamerRecord, context: EvaluationContext) -> bool:
        if self.segmenter not in context.segments:
            raise MissingAnnotation(
                f"No '{self.segmenter}' segment annotation for record",
                {"gamer_id": record.gamer_id, "condition": self.name, "segmenter": self.segmenter},
            )
        actual = context.segments[self.segmenter]
        actual = actual.value if isinstance(actual, Enum) else actual
        return actual == self.label

    def to_config(self) -> Dict[str, Any]:
        return {**super().to_config(), "segmenter": self.segmenter, "label": self.label}


class CohortCondition(Condition):
    """Membership of a top-k percent cohort, optionally ranked within a segment."""

    kind = "cohort"

    def __init__(self, metric: str, top_percent: float, within: Optional[str] = None,
                 name: Optional[str] = None):
        if metric not in NUMERIC_FIELDS and metric not in SIGNED_FIELDS:
            raise InvalidRuleConfig(f"Cohort metric '{metric}' is not numeric", {"metric": metric})
        self.metric = metric
        self.top_percent = validate_percentile(top_percent)
        self.within = within
        suffix = f"@{within}" if within else ""
        super().__init__(name or f"top{self.top_percent:g}%:{metric}{suffix}")

    @property
    def key(self) -> str:
        return cohort_key(self.metric, self.within)

    def test(self, record: GamerRecord, context: EvaluationContext) -> bool:
        if self.key not in context.percentiles:
            raise MissingAnnotation(
                f"No percentile annotation '{self.key}' for record",
                {"gamer_id": record.gamer_id, "condition": self.name, "cohort": self.key},
            )
        assignment = context.percentiles[self.key]
        return assignment is not None and assignment.in_top(self.top_percent)

    def to_config(self) -> Dict[str, Any]:
        return {**super().to_config(), "metric": self.metric,
                "top_percent": self.top_percent, "within": self.within}


def build_condition(config: Mapping[str, Any], name: Optional[str] = None) -> Condition:
    """
    Build one condition from its config mapping.

    The kind is taken from ``kind`` or inferred: ``op`` → threshold,
    ``segmenter`` → segment, ``top_percent`` → cohort, bare ``field`` → flag.
    """
    if isinstance(config, Condition):
        return config
    if not isinstance(config, Mapping):
        raise InvalidRuleConfig(f"Condition definition must be a mapping, got {config!r}")

    name = config.get("name", name)
    kind = config.get("kind")
    if kind is None:
        if "op" in config:
            kind = "threshold"
        elif "segmenter" in config:
            kind = "segment"
        elif "top_percent" in config:
            kind = "cohort"
        elif "field" in config:
            kind = "flag"

    try:
        if kind == "threshold":
            return ThresholdCondition(config["field"], config["op"], config["value"], name=name)
        if kind == "flag":
            return FlagCondition(config["field"], config.get("expected", True), name=name)
        if kind == "segment":
            return SegmentCondition(config["segmenter"], config["label"], name=name)
        if kind == "cohort":
            return CohortCondition(config["metric"], config["top_percent"],
                                   within=config.get("within"), name=name)
    except KeyError as e:
        raise InvalidRuleConfig(f"Condition '{name or kind}' is missing key {e}", {"condition": dict(config)}) from e

    raise InvalidRuleConfig(f"Unknown condition kind '{kind}'", {"condition": dict(config)})


def build_catalog(definitions: Any) -> Dict[str, Condition]:
    """Named condition catalog from a mapping (name -> def) or a list of defs."""
    catalog: Dict[str, Condition] = {}
    if not definitions:
        return catalog
    items = definitions.items() if isinstance(definitions, Mapping) else ((None, d) for d in definitions)
    for name, definition in items:
        condition = build_condition(definition, name=name)
        if condition.name in catalog:
            raise InvalidRuleConfig(f"Duplicate condition name '{condition.name}'", {"condition": condition.name})
        catalog[condition.name] = condition
    return catalog


# ---------------------------------------------------------------------------
# Rules
# ---------------------------------------------------------------------------

class CombinePolicy(str, Enum):
    ANY = "any"             # logical OR: one strong signal flags the record
    ALL = "all"             # logical AND
    AT_LEAST = "at_least"   # at least ``min_matches`` conditions


@dataclass(frozen=True)
class RiskRule:
    """An ordered set of named conditions plus a combination policy."""
    name: str
    conditions: Tuple[Condition, ...]
    combine: CombinePolicy = CombinePolicy.ANY
    min_matches: int = 1

    def __post_init__(self):
        object.__setattr__(self, "conditions", tuple(self.conditions))
        try:
            object.__setattr__(self, "combine", CombinePolicy(self.combine))
        except ValueError as e:
            raise InvalidRuleConfig(f"Unknown combine policy '{self.combine}' in rule '{self.name}'",
                                    {"rule": self.name, "combine": self.combine}) from e
        if not self.conditions:
            raise InvalidRuleConfig(f"Rule '{self.name}' has no conditions", {"rule": self.name})
        names = [c.name for c in self.conditions]
        if len(set(names)) != len(names):
            raise InvalidRuleConfig(f"Rule '{self.name}' repeats a condition", {"rule": self.name, "conditions": names})
        if self.combine is CombinePolicy.AT_LEAST and not 1 <= self.min_matches <= len(self.conditions):
            raise InvalidRuleConfig(
                f"min_matches must be between 1 and {len(self.conditions)} in rule '{self.name}'",
                {"rule": self.name, "min_matches": self.min_matches},
            )

    @classmethod
    def from_config(
        cls,
        name: str,
        config: Any,
        catalog: Optional[Mapping[str, Condition]] = None,
    ) -> "RiskRule":
        """
        Build a rule from config.

        ``config`` is either a list of conditions (OR-combined) or a mapping
        with ``conditions`` plus optional ``combine`` / ``min_matches``.
        Each condition is a catalog name or an inline definition.
        """
        catalog = catalog or {}
        if isinstance(config, Mapping):
            entries = config.get("conditions")
            combine = config.get("combine", CombinePolicy.ANY)
            min_matches = config.get("min_matches", 1)
        else:
            entries, combine, min_matches = config, CombinePolicy.ANY, 1

        if not entries or isinstance(entries, (str, Mapping)):
            raise InvalidRuleConfig(f"Rule '{name}' needs a list of conditions", {"rule": name})

        conditions: List[Condition] = []
        for entry in entries:
            if isinstance(entry, str):
                if entry not in catalog:
                    raise UnknownCondition(
                        f"Rule '{name}' references undefined condition '{entry}'",
                        {"rule": name, "condition": entry, "known": sorted(catalog)},
                    )
                conditions.append(catalog[entry])
            else:
                conditions.append(build_condition(entry))

        return cls(name=name, conditions=tuple(conditions), combine=combine, min_matches=min_matches)

    @property
    def segment_requirements(self) -> Set[str]:
        needed = {c.segmenter for c in self.conditions if isinstance(c, SegmentCondition)}
        needed |= {c.within for c in self.conditions if isinstance(c, CohortCondition) and c.within}
        return needed

    @property
    def cohort_requirements(self) -> Set[Tuple[str, Optional[str]]]:
        return {(c.metric, c.within) for c in self.conditions if isinstance(c, CohortCondition)}

    def evaluate(self, record: GamerRecord, context: EvaluationContext) -> RiskFlag:
        """
        Evaluate every condition in order and combine.

        All conditions are evaluated (no short-circuit) so the fired list is
        complete for auditing.
        """
        fired = tuple(c.name for c in self.conditions if c.test(record, context))

        if self.combine is CombinePolicy.ANY:
            flagged = len(fired) > 0
        elif self.combine is CombinePolicy.ALL:
            flagged = len(fired) == len(self.conditions)
        else:
            flagged = len(fired) >= self.min_matches

        return RiskFlag(gamer_id=record.gamer_id, rule=self.name, flagged=flagged, fired=fired)

    def to_config(self) -> Dict[str, Any]:
        return {
            "conditions": [c.to_config() for c in self.conditions],
            "combine": self.combine.value,
            "min_matches": self.min_matches,
        }


class RiskEvaluator:
    """
    Holds the configured rules and evaluates records against them.
    """

    def __init__(
        self,
        rules: Mapping[str, RiskRule],
        segmenter_labels: Optional[Mapping[str, Iterable[str]]] = None,
        catalog: Optional[Mapping[str, Condition]] = None,
    ):
        """
        Initialize evaluator.

        Parameters
        ----------
        rules : Mapping[str, RiskRule]
            Rules by name
        segmenter_labels : Mapping[str, Iterable[str]], optional
            Known segmenters and their labels; when given, segment
            conditions are checked against them up front
        catalog : Mapping[str, Condition], optional
            Named conditions that ad-hoc rules may reference
        """
        self.rules: Dict[str, RiskRule] = dict(rules)
        self.catalog: Dict[str, Condition] = dict(catalog or {})
        self.segmenter_labels = segmenter_labels
        for rule in self.rules.values():
            self._check_rule(rule)

    def _check_rule(self, rule: RiskRule) -> None:
        """Segment conditions must name a known segmenter and one of its labels."""
        if self.segmenter_labels is None:
            return
        known = {
            name: {label.value if isinstance(label, Enum) else str(label) for label in labels}
            for name, labels in self.segmenter_labels.items()
        }
        for condition in rule.conditions:
            if isinstance(condition, CohortCondition) and condition.within and condition.within not in known:
                raise InvalidRuleConfig(
                    f"Condition '{condition.name}' ranks within unknown segmenter '{condition.within}'",
                    {"rule": rule.name, "segmenter": condition.within},
                )
            if not isinstance(condition, SegmentCondition):
                continue
            if condition.segmenter not in known:
                raise InvalidRuleConfig(
                    f"Condition '{condition.name}' uses unknown segmenter '{condition.segmenter}'",
                    {"rule": rule.name, "segmenter": condition.segmenter},
                )
            if condition.label not in known[condition.segmenter]:
                raise InvalidRuleConfig(
                    f"'{condition.label}' is not a label of segmenter '{condition.segmenter}'",
                    {"rule": rule.name, "label": condition.label,
                     "labels": sorted(known[condition.segmenter])},
                )

    @classmethod
    def from_config(
        cls,
        config: Mapping[str, Any],
        segmenter_labels: Optional[Mapping[str, Iterable[str]]] = None,
    ) -> "RiskEvaluator":
        """Build the catalog and every rule from the ``conditions``/``rules`` sections."""
        catalog = build_catalog(config.get("conditions"))
        rule_defs = config.get("rules") or {}
        if not isinstance(rule_defs, Mapping):
            raise InvalidRuleConfig("'rules' must map rule names to definitions")

        rules = {name: RiskRule.from_config(name, definition, catalog) for name, definition in rule_defs.items()}
        logger.info(f"✅ {len(rules)} rule(s) built from {len(catalog)} named condition(s)")
        return cls(rules, segmenter_labels, catalog)

    def rule(self, name: str) -> RiskRule:
        if name not in self.rules:
            raise InvalidRuleConfig(f"Unknown rule '{name}'", {"rule": name, "known": sorted(self.rules)})
        return self.rules[name]

    def resolve(self, rule: Any) -> RiskRule:
        """
        Turn a rule reference into a ``RiskRule``.

        Accepts a configured rule name, a ``RiskRule``, or an ad-hoc rule
        config (list or mapping) whose string entries are looked up in the
        condition catalog.
        """
        if isinstance(rule, RiskRule):
            resolved = rule
        elif isinstance(rule, str):
            return self.rule(rule)
        else:
            name = rule.get("name", "custom") if isinstance(rule, Mapping) else "custom"
            resolved = RiskRule.from_config(name, rule, self.catalog)
        self._check_rule(resolved)
        return resolved

    def evaluate(self, record: GamerRecord, context: EvaluationContext, rule: Any = "at_risk") -> RiskFlag:
        return self.resolve(rule).evaluate(record, context)
