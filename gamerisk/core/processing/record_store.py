# core/processing/record_store.py
"""
Record Store implementations.

The engine only ever calls ``fetch_all`` (and optionally
``fetch_filtered``). Each call returns one internally consistent snapshot;
nothing downstream writes back.
"""

import re
import logging
import threading
from abc import ABC, abstractmethod
from typing import Callable, Dict, Hashable, Iterable, Optional, Tuple

import pandas as pd  # type: ignore

from ...db import Database
from ...exceptions import InconsistentRecord, RecordStoreError
from ..features.gamer_record import GamerRecord
from .load_data import DataLoader
from .record_cleaner import RecordCleaner

logger = logging.getLogger(__name__)

Predicate = Callable[[GamerRecord], bool]

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*(\.[A-Za-z_][A-Za-z0-9_]*)?$")


class RecordStore(ABC):
    """Read access to gamer records."""

    @abstractmethod
    def fetch_all(self) -> Tuple[GamerRecord, ...]:
        """Full, internally consistent snapshot of all records."""

    def fetch_filtered(self, predicate: Predicate) -> Tuple[GamerRecord, ...]:
        """Equivalent to ``fetch_all`` followed by filtering."""
        return tuple(record for record in self.fetch_all() if predicate(record))


class InMemoryRecordStore(RecordStore):
    """Records held in process; writes swap the snapshot under a lock."""

    def __init__(self, records: Iterable[GamerRecord] = ()):
        self._lock = threading.Lock()
        self._records: Dict[Hashable, GamerRecord] = {}
        for record in records:
            if record.gamer_id in self._records:
                raise InconsistentRecord("Duplicate gamer id", {"gamer_id": record.gamer_id})
            self._records[record.gamer_id] = record

    def fetch_all(self) -> Tuple[GamerRecord, ...]:
        with self._lock:
            return tuple(self._records.values())

    def upsert(self, record: GamerRecord) -> None:
        with self._lock:
            self._records[record.gamer_id] = record

    def remove(self, gamer_id: Hashable) -> None:
        with self._lock:
            if gamer_id not in self._records:
                raise KeyError(gamer_id)
            del self._records[gamer_id]

    def __len__(self) -> int:
        return len(self._records)


class DataFrameRecordStore(RecordStore):
    """Wraps a DataFrame; rows are cleaned and converted on every fetch."""

    def __init__(self, df: pd.DataFrame, cleaner: Optional[RecordCleaner] = None):
        self.df = df
        self.cleaner = cleaner or RecordCleaner(verbosity=0)

    def fetch_all(self) -> Tuple[GamerRecord, ...]:
        records = tuple(self.cleaner.to_records(self.df.copy()))
        _check_unique(records)
        return records


class CsvRecordStore(RecordStore):
    """Re-reads a CSV export on every fetch, so edits to the file show up."""

    def __init__(self, path: str, loader: Optional[DataLoader] = None, cleaner: Optional[RecordCleaner] = None):
        self.path = path
        self.loader = loader or DataLoader()
        self.cleaner = cleaner or RecordCleaner(verbosity=0)

    def fetch_all(self) -> Tuple[GamerRecord, ...]:
        try:
            df = self.loader.load_csv(self.path)
        except (OSError, pd.errors.ParserError) as e:
            raise RecordStoreError(f"Could not read '{self.path}'", {"path": self.path, "error": str(e)}) from e
        records = tuple(self.cleaner.to_records(df))
        _check_unique(records)
        return records


class DatabaseRecordStore(RecordStore):
    """
    Reads the ``mhgames`` table (or another one) through SQLAlchemy.

    One ``SELECT`` per fetch; snapshot consistency is whatever the database
    gives a single statement.
    """

    def __init__(self, db: Optional[Database] = None, table: str = "mhgames",
                 cleaner: Optional[RecordCleaner] = None):
        if not _IDENTIFIER.match(table):
            raise ValueError(f"❌ Invalid table name: {table!r}")
        self.loader = DataLoader(db)
        self.table = table
        self.cleaner = cleaner or RecordCleaner(verbosity=0)

    def fetch_all(self) -> Tuple[GamerRecord, ...]:
        df = self.loader.load_table("db", self.table)
        records = tuple(self.cleaner.to_records(df))
        _check_unique(records)
        logger.info(f"✅ Snapshot of '{self.table}': {len(records):,} records")
        return records


def _check_unique(records: Tuple[GamerRecord, ...]) -> None:
    seen = set()
    for record in records:
        if record.gamer_id in seen:
            raise InconsistentRecord("Duplicate gamer id in snapshot", {"gamer_id": record.gamer_id})
        seen.add(record.gamer_id)
