# core/segment/percentile_ranker.py

import math
import logging
import numbers
from dataclasses import dataclass
from typing import Any, Dict, Hashable, Iterable, Mapping, Set, Tuple, Union

import pandas as pd  # type: ignore

from ...exceptions import EmptyPopulation, InconsistentRecord, InvalidMetric, InvalidPercentile

logger = logging.getLogger(__name__)

Population = Union[pd.Series, Mapping[Hashable, float], Iterable[Tuple[Hashable, float]]]

# Above this many observations a full sort per read is considered too slow;
# callers should switch to an approximate (sampled/histogram) ranking.
MAX_POPULATION = 5_000_000


@dataclass(frozen=True)
class PercentileAssignment:
    """Where one id stands within its population for one metric."""
    rank: float            # (0, 1], 1.0 = highest value
    position: int          # best 1-based position of the id's tie group
    population_size: int

    def in_top(self, k: float) -> bool:
        """True if the tie group starts inside the top ``k`` percent."""
        validate_percentile(k)
        return self.position * 100 <= k * self.population_size


def validate_percentile(k: Any) -> float:
    if isinstance(k, bool) or not isinstance(k, numbers.Real) or math.isnan(k) or not 0 < k <= 100:
        raise InvalidPercentile(f"k must be in (0, 100], got {k!r}", {"k": k})
    return float(k)


class PercentileRanker:
    """
    Ranks a population on one metric, highest value first.

    Tie policy: every member of a tie group gets the rank of the group's
    best (earliest) position, so a top-k cutoff never splits a tie group.
    A group that starts inside the cutoff is included in full.
    """

    def __init__(self, max_population: int = MAX_POPULATION):
        self.max_population = max_population

    def to_series(self, population: Population, metric: str = "value") -> pd.Series:
        """Normalise any supported population shape to a float Series indexed by id."""
        if isinstance(population, pd.Series):
            series = population.copy()
        else:
            pairs = list(population.items()) if isinstance(population, Mapping) else list(population)
            if pairs:
                ids, values = zip(*pairs)
            else:
                ids, values = (), ()
            series = pd.Series(list(values), index=pd.Index(list(ids), dtype=object), dtype=object)

        if series.empty:
            raise EmptyPopulation(f"Cannot rank an empty population on '{metric}'", {"metric": metric})

        duplicated = series.index.duplicated()
        if duplicated.any():
            raise InconsistentRecord(
                f"Duplicate ids in population for '{metric}'",
                {"metric": metric, "ids": list(series.index[duplicated][:5])},
            )

        numeric = pd.to_numeric(series, errors="coerce").astype(float)
        invalid = numeric.isna()
        if invalid.any():
            bad_id = numeric.index[invalid][0]
            raise InvalidMetric(
                f"Non-numeric or missing '{metric}' value",
                {"metric": metric, "gamer_id": bad_id, "value": series.loc[bad_id]},
            )
        numeric.name = metric
        return numeric

    def _positions(self, values: pd.Series) -> pd.Series:
        """Best 1-based descending position of each value's tie group."""
        if len(values) > self.max_population:
            logger.warning(
                f"⚠️ Ranking {len(values):,} values exceeds the exact-rank ceiling "
                f"of {self.max_population:,}; consider an approximate ranking"
            )
        return values.rank(method="min", ascending=False).astype(int)

    def assign(self, population: Population, metric: str = "value") -> Dict[Hashable, PercentileAssignment]:
        """Full percentile assignment (rank, position, size) per id."""
        values = self.to_series(population, metric)
        positions = self._positions(values)
        n = len(values)
        return {
            gamer_id: PercentileAssignment(rank=(n - pos + 1) / n, position=int(pos), population_size=n)
            for gamer_id, pos in positions.items()
        }

    def rank(self, population: Population, metric: str = "value") -> Dict[Hashable, float]:
        """Mapping id -> rank in (0, 1]; tied values share the same rank."""
        return {gamer_id: a.rank for gamer_id, a in self.assign(population, metric).items()}

    def top_k_percent(self, population: Population, k: float, metric: str = "value") -> Set[Hashable]:
        """Ids in the top ``k`` percent (inclusive of boundary tie groups)."""
        validate_percentile(k)
        return {
            gamer_id
            for gamer_id, assignment in self.assign(population, metric).items()
            if assignment.in_top(k)
        }

    def rank_within(
        self,
        population: Population,
        groups: Mapping[Hashable, Hashable],
        metric: str = "value",
    ) -> Dict[Hashable, PercentileAssignment]:
        """
        Rank each sub-population independently.

        ``groups`` maps id -> group label (e.g. gaming segment); every id in
        the population must have a group.
        """
        values = self.to_series(population, metric)
        labels = pd.Series(groups, dtype=object).reindex(values.index)
        if labels.isna().any():
            missing = list(labels.index[labels.isna()][:5])
            raise InconsistentRecord(f"Ids without a group for '{metric}'", {"metric": metric, "ids": missing})

        result: Dict[Hashable, PercentileAssignment] = {}
        for _, members in values.groupby(labels, sort=True):
            result.update(self.assign(members, metric))
        return result

    def summary(self, population: Population, metric: str = "value", ks=(1, 5, 10, 25, 50)) -> pd.DataFrame:
        """Cohort size and value floor for a few standard top-k cutoffs."""
        values = self.to_series(population, metric)
        assignments = self.assign(values, metric)
        rows = []
        for k in ks:
            members = [i for i, a in assignments.items() if a.in_top(k)]
            rows.append({
                "top_percent": k,
                "members": len(members),
                "min_value": float(values.loc[members].min()) if members else None,
            })
        return pd.DataFrame(rows)
