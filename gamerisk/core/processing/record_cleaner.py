# core/processing/record_cleaner.py

import re
import logging
from typing import List

import pandas as pd  # type: ignore

from ...exceptions import GameRiskError
from ..features.features_helpers import coerce_flag, infer_occupation, is_missing
from ..features.gamer_record import FLAG_FIELDS, SOURCE_COLUMNS, GamerRecord

logger = logging.getLogger(__name__)


def _flag_or_raw(value):
    # unrecognised tokens are left for GamerRecord.from_row to reject with the row id
    try:
        return coerce_flag(value)
    except ValueError:
        return value


class RecordCleaner:
    """Normalizes raw gamer survey frames before they become GamerRecords.

    Nothing is dropped: rows that cannot become a valid record are reported
    by ``validate`` and raise in ``to_records``.
    """

    def __init__(self, verbosity=1):
        self.verbosity = verbosity

    def _vlog(self, level, message):
        if self.verbosity >= level:
            logger.info(message)

    @staticmethod
    def _snake(column: str) -> str:
        column = re.sub(r"[^0-9a-zA-Z]+", "_", str(column).strip())
        column = re.sub(r"(?<=[a-z0-9])(?=[A-Z])", "_", column)
        return column.strip("_").lower()

    def normalize_columns(self, df: pd.DataFrame) -> pd.DataFrame:
        """snake_case column names, then map source names onto record fields."""
        renamed = {col: self._snake(col) for col in df.columns}
        df = df.rename(columns=renamed)
        df = df.rename(columns={c: SOURCE_COLUMNS[c] for c in df.columns
                                if c in SOURCE_COLUMNS and SOURCE_COLUMNS[c] not in df.columns})
        self._vlog(2, f"   ➡️ Columns: {list(df.columns)}")
        return df

    def coerce_flags(self, df: pd.DataFrame) -> pd.DataFrame:
        """Yes/No style health flags → bool."""
        for col in FLAG_FIELDS:
            if col in df.columns:
                df[col] = df[col].map(_flag_or_raw)
                self._vlog(2, f"   ✅ Converted flag: {col}")
        return df

    def strip_text(self, df: pd.DataFrame) -> pd.DataFrame:
        for col in df.select_dtypes(include="object").columns:
            df[col] = df[col].map(lambda v: v.strip() if isinstance(v, str) else v)
        return df

    def fill_occupation(self, df: pd.DataFrame) -> pd.DataFrame:
        """Infer occupation from GPA presence vs productivity score where missing."""
        if "occupation_type" not in df.columns:
            df["occupation_type"] = None
        df["occupation_type"] = df["occupation_type"].astype(object)
        missing = df["occupation_type"].map(is_missing)
        if missing.any():
            df.loc[missing, "occupation_type"] = [
                infer_occupation(row.get("gpa"), row.get("productivity_score"))
                for _, row in df.loc[missing].iterrows()
            ]
            self._vlog(1, f"   ➡️ Inferred occupation for {int(missing.sum()):,} rows")
        return df

    def clean(self, df: pd.DataFrame) -> pd.DataFrame:
        """Full cleaning pass on a copy of ``df``."""
        self._vlog(1, f"🧹 Cleaning {len(df):,} gamer rows")
        cleaned = self.normalize_columns(df.copy())
        cleaned = self.strip_text(cleaned)
        cleaned = self.coerce_flags(cleaned)
        cleaned = self.fill_occupation(cleaned)
        return cleaned

    def validate(self, df: pd.DataFrame) -> pd.DataFrame:
        """
        Data-quality report: one row per source row that cannot become a
        valid record (gamer_id, error type, message, details).
        """
        cleaned = self.clean(df)
        problems: List[dict] = []
        for row in cleaned.to_dict(orient="records"):
            try:
                GamerRecord.from_row(row)
            except GameRiskError as e:
                problems.append({
                    "gamer_id": e.details.get("gamer_id", row.get("gamer_id")),
                    "error": type(e).__name__,
                    "message": e.message,
                    "field": e.details.get("field"),
                })
        report = pd.DataFrame(problems, columns=["gamer_id", "error", "message", "field"])
        if report.empty:
            self._vlog(1, "   ✅ All rows valid")
        else:
            logger.warning(f"   ⚠️ {len(report):,} invalid row(s) out of {len(cleaned):,}")
        return report

    def to_records(self, df: pd.DataFrame) -> List[GamerRecord]:
        """Clean and convert; the first invalid row raises."""
        cleaned = self.clean(df)
        records = [GamerRecord.from_row(row) for row in cleaned.to_dict(orient="records")]
        self._vlog(1, f"   ✅ {len(records):,} records ready")
        return records
