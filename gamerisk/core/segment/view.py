# core/segment/view.py

import logging
from typing import Any, Callable, FrozenSet, Hashable, Iterator, NamedTuple, Optional, Tuple, TYPE_CHECKING

import pandas as pd  # type: ignore

from ..processing.record_store import RecordStore
from .risk_evaluator import RiskRule

if TYPE_CHECKING:
    from .risk_engine import CohortRiskEngine

logger = logging.getLogger(__name__)


class ViewRow(NamedTuple):
    gamer_id: Hashable
    fired: Tuple[str, ...]


def _id_sort_key(row: ViewRow) -> Any:
    # ids of mixed types still sort deterministically
    return (type(row.gamer_id).__name__, row.gamer_id)


class RiskView:
    """
    Logical, read-only view of the records a rule flags.

    Nothing is cached: every iteration takes a fresh snapshot from the
    record store and reruns segmentation, ranking and evaluation, so the
    view is never stale. Rows come back ordered by id unless ``order_by``
    is given.
    """

    def __init__(
        self,
        engine: "CohortRiskEngine",
        store: RecordStore,
        rule: RiskRule,
        order_by: Optional[Callable[[ViewRow], Any]] = None,
    ):
        self._engine = engine
        self._store = store
        self._rule = rule
        self._order_by = order_by or _id_sort_key

    @property
    def name(self) -> str:
        return self._rule.name

    @property
    def rule(self) -> RiskRule:
        return self._rule

    def _rows(self) -> Iterator[ViewRow]:
        snapshot = self._store.fetch_all()
        logger.info(f"🔄 Refreshing view '{self.name}' over {len(snapshot):,} records")
        flags = self._engine.evaluate_all(snapshot, self._rule)
        rows = [ViewRow(flag.gamer_id, flag.fired) for flag in flags if flag.flagged]
        rows.sort(key=self._order_by)
        yield from rows

    def __iter__(self) -> Iterator[ViewRow]:
        return self._rows()

    def members(self) -> FrozenSet[Hashable]:
        return frozenset(row.gamer_id for row in self)

    def count(self) -> int:
        return sum(1 for _ in self)

    def to_frame(self) -> pd.DataFrame:
        """Fresh DataFrame copy of the current view contents."""
        rows = [
            {"gamer_id": row.gamer_id, "fired": list(row.fired), "fired_count": len(row.fired)}
            for row in self
        ]
        return pd.DataFrame(rows, columns=["gamer_id", "fired", "fired_count"])

    def __repr__(self) -> str:
        return f"RiskView(name={self.name!r}, conditions={[c.name for c in self._rule.conditions]})"
