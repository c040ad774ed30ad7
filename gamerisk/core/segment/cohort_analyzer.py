# core/segment/cohort_analyzer.py

import logging
from typing import Any, Dict, Hashable, Iterable, Optional

import pandas as pd  # type: ignore

from ... import utils
from ...exceptions import EmptyPopulation
from ..features.features_helpers import gpa_band
from ..features.gamer_record import GamerRecord
from .risk_engine import CohortRiskEngine

logger = logging.getLogger(__name__)

PROFILE_METRICS = ["daily_gaming_hours", "sleep_hours", "monthly_spending", "social_isolation_score"]


class CohortAnalyzer:
    """
    Descriptive breakdowns over one snapshot of records.

    Reads engine outputs only; nothing is written back.
    """

    def __init__(self, records: Iterable[GamerRecord], engine: CohortRiskEngine):
        """
        Initialize analyzer.

        Parameters
        ----------
        records : Iterable[GamerRecord]
            Snapshot to analyze
        engine : CohortRiskEngine
            Supplies segmenters, cohorts and rules
        """
        self.records = tuple(records)
        self.engine = engine
        self.df = engine.annotated_frame(self.records)

    def _require_rows(self, df: pd.DataFrame, what: str) -> None:
        if df.empty:
            raise EmptyPopulation(f"No records to analyze for {what}", {"analysis": what})

    def segment_distribution(self, segmenter: str = "gaming", by: Optional[str] = None) -> pd.DataFrame:
        """
        Share of records per segment label.

        With ``by`` (e.g. ``platform`` or ``game_genre``), returns the
        percentage of each ``by`` value within every segment instead.
        """
        column = f"{segmenter}_segment"
        if column not in self.df.columns:
            # raises the engine's unknown-segmenter error
            self.engine.get_segmenter(segmenter)
        self._require_rows(self.df, f"{segmenter} distribution")

        if by is None:
            labels = self.df[column].dropna().rename("segment")
            return utils.share_table(labels)

        logger.info(f"\n[ANALYSIS] {by} by {segmenter} segment...")
        table = pd.crosstab(self.df[column], self.df[by].fillna("n/a"), normalize="index") * 100
        return table.round(2)

    def risk_by_segment(self, segmenter: str = "gaming") -> pd.DataFrame:
        """Addiction risk label mix (row percentages) within each segment."""
        column = f"{segmenter}_segment"
        self._require_rows(self.df, "risk by segment")
        df = self.df.dropna(subset=[column])
        table = pd.crosstab(df[column], df["addiction_risk_level"].fillna("n/a"), normalize="index") * 100
        return table.round(2)

    def risk_by_gpa_band(self) -> pd.DataFrame:
        """Risk label mix per GPA band, students only."""
        students = self.df[self.df["gpa"].notna()]
        self._require_rows(students, "GPA bands")
        bands = students["gpa"].map(gpa_band).rename("gpa_band")
        table = pd.crosstab(bands, students["addiction_risk_level"].fillna("n/a"), normalize="index") * 100
        return table.round(2)

    def metric_by_group(self, metric: str, group: str) -> pd.DataFrame:
        """Mean, median and count of ``metric`` per value of ``group``."""
        self._require_rows(self.df, f"{metric} by {group}")
        result = utils.group_summary(self.df, [group], {metric: ["mean", "median", "count"]})
        result.columns = [group, "mean", "median", "count"]
        return result.sort_values("mean", ascending=False).reset_index(drop=True)

    def cohort_profile(self, ids: Iterable[Hashable]) -> Dict[str, Any]:
        """
        Lifestyle profile of a cohort.

        Returns
        -------
        Dict[str, Any]
            ``size``, ``averages`` (Series of profile metric means),
            ``platform_mix`` and ``risk_mix`` share tables
        """
        ids = set(ids)
        members = self.df[self.df["gamer_id"].isin(ids)]
        self._require_rows(members, "cohort profile")

        if len(members) < len(ids):
            logger.warning(f"⚠️ {len(ids) - len(members)} cohort id(s) not in this snapshot")

        return {
            "size": len(members),
            "averages": members[PROFILE_METRICS].astype(float).mean().round(2),
            "platform_mix": utils.share_table(members["platform"].fillna("n/a").rename("platform")),
            "risk_mix": utils.share_table(
                members["addiction_risk_level"].fillna("n/a").rename("addiction_risk_level")
            ),
        }

    def named_cohort_profile(self, name: str) -> Dict[str, Any]:
        return self.cohort_profile(self.engine.cohort(name, self.records))

    def condition_coverage(self, rule: Any = "at_risk") -> pd.DataFrame:
        """
        How many records each condition of ``rule`` fires for, plus the
        number flagged by the rule as a whole.
        """
        resolved = self.engine.evaluator.resolve(rule)
        flags = self.engine.evaluate_all(self.records, resolved)
        total = len(flags)

        rows = []
        for condition in resolved.conditions:
            fired = sum(1 for f in flags if condition.name in f.fired)
            rows.append({"condition": condition.name, "records": fired})
        rows.append({"condition": f"{resolved.name} ({resolved.combine.value})",
                     "records": sum(1 for f in flags if f.flagged)})

        coverage = pd.DataFrame(rows, columns=["condition", "records"])
        coverage["percentage"] = (coverage["records"] / total * 100).round(2) if total else 0.0
        logger.info(f"✅ Coverage computed for rule '{resolved.name}' over {total:,} records")
        return coverage
