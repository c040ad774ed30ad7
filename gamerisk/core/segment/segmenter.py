# core/segment/segmenter.py

import math
import logging
import numbers
from enum import Enum
from typing import Any, Dict, Sequence

import numpy as np  # type: ignore
import pandas as pd  # type: ignore

from ...exceptions import InvalidMetric, InvalidRuleConfig
from ..features.gamer_record import NUMERIC_FIELDS, GamerRecord, Segment

logger = logging.getLogger(__name__)


class Segmenter:
    """
    Assigns a value of one continuous metric to one of three mutually
    exclusive buckets.

    Boundary convention with ``lower < upper``::

        [0, lower)      -> labels[0]
        [lower, upper]  -> labels[1]
        (upper, inf)    -> labels[2]

    Every non-negative value lands in exactly one bucket.
    """

    DEFAULT_LABELS = (Segment.CASUAL, Segment.MODERATE, Segment.HARDCORE)

    def __init__(
        self,
        metric: str = "daily_gaming_hours",
        lower: float = 2.0,
        upper: float = 5.0,
        labels: Sequence[str] = DEFAULT_LABELS,
        name: str = "gaming",
    ):
        """
        Initialize segmenter.

        Parameters
        ----------
        metric : str
            GamerRecord field the buckets are computed from
        lower, upper : float
            Bucket boundaries (see class docstring)
        labels : Sequence[str]
            Three distinct labels, lowest bucket first
        name : str
            Name under which rules and reports refer to this segmentation
        """
        if metric not in GamerRecord.field_names():
            raise InvalidRuleConfig(f"Unknown metric '{metric}' for segmenter '{name}'",
                                    {"segmenter": name, "metric": metric})
        # buckets start at 0, so only non-negative numeric fields qualify
        if metric not in NUMERIC_FIELDS:
            raise InvalidRuleConfig(f"Segmenter '{name}' needs a non-negative numeric metric, got '{metric}'",
                                    {"segmenter": name, "metric": metric, "allowed": list(NUMERIC_FIELDS)})
        for bound in (lower, upper):
            if isinstance(bound, bool) or not isinstance(bound, numbers.Real) or math.isnan(bound) or bound < 0:
                raise InvalidRuleConfig(f"Segment boundary must be a non-negative number, got {bound!r}",
                                        {"segmenter": name, "boundary": bound})
        if not lower < upper:
            raise InvalidRuleConfig(f"Lower boundary {lower} must be below upper boundary {upper}",
                                    {"segmenter": name, "lower": lower, "upper": upper})
        labels = tuple(Segment(label) if label in Segment._value2member_map_ else label for label in labels)
        if len(labels) != 3 or len(set(labels)) != 3:
            raise InvalidRuleConfig(f"Segmenter '{name}' needs three distinct labels, got {labels}",
                                    {"segmenter": name, "labels": labels})

        self.name = name
        self.metric = metric
        self.lower = float(lower)
        self.upper = float(upper)
        self.labels = labels
        self.label_names = tuple(label.value if isinstance(label, Enum) else str(label) for label in labels)

    @classmethod
    def from_config(cls, name: str, config: Dict[str, Any]) -> "Segmenter":
        """Build a segmenter from one entry of the ``segments`` config section."""
        try:
            segmenter = cls(
                metric=config["metric"],
                lower=config["lower"],
                upper=config["upper"],
                labels=config.get("labels", cls.DEFAULT_LABELS),
                name=name,
            )
        except (KeyError, TypeError) as e:
            raise InvalidRuleConfig(f"Malformed segment definition '{name}': {e}",
                                    {"segmenter": name}) from e
        logger.info(f"   ➡️ {name} ({segmenter.metric}): {segmenter.describe()}")
        return segmenter

    def segment(self, value: float) -> str:
        """Label of the bucket ``value`` falls into."""
        if isinstance(value, bool) or not isinstance(value, numbers.Real) or math.isnan(value) or value < 0:
            raise InvalidMetric(f"{self.metric} must be a non-negative number, got {value!r}",
                                {"metric": self.metric, "value": value})
        if value < self.lower:
            return self.labels[0]
        if value <= self.upper:
            return self.labels[1]
        return self.labels[2]

    def segment_record(self, record: GamerRecord) -> str:
        value = getattr(record, self.metric)
        if value is None:
            raise InvalidMetric(f"{self.metric} is missing",
                                {"gamer_id": record.gamer_id, "metric": self.metric})
        try:
            return self.segment(value)
        except InvalidMetric as e:
            e.details["gamer_id"] = record.gamer_id
            raise

    def segment_series(self, values: pd.Series) -> pd.Series:
        """Vectorised ``segment`` over a batch; keeps the input index."""
        numeric = pd.to_numeric(values, errors="coerce")
        bad = numeric.isna() | (numeric < 0)
        if bad.any():
            first = bad[bad].index[0]
            raise InvalidMetric(
                f"{int(bad.sum())} invalid {self.metric} value(s)",
                {"metric": self.metric, "index": first, "value": values.loc[first]},
            )

        conditions = [
            numeric < self.lower,
            numeric <= self.upper,
        ]
        labels = np.select(conditions, [self.label_names[0], self.label_names[1]],
                           default=self.label_names[2])
        return pd.Series(labels, index=values.index, name=f"{self.name}_segment")

    def describe(self) -> str:
        return (
            f"{self.label_names[0]} <{self.lower:g} | "
            f"{self.label_names[1]} {self.lower:g}-{self.upper:g} | "
            f"{self.label_names[2]} >{self.upper:g}"
        )

    def __repr__(self) -> str:
        return f"Segmenter(name={self.name!r}, metric={self.metric!r}, {self.describe()})"
