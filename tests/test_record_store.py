"""
Tests for record cleaning, loading and the Record Store implementations.
"""

import pandas as pd
import pytest

from gamerisk.core.features.gamer_record import OccupationType, Platform, RiskLevel
from gamerisk.core.processing.load_data import DataLoader
from gamerisk.core.processing.record_cleaner import RecordCleaner
from gamerisk.core.processing.record_store import (
    CsvRecordStore,
    DatabaseRecordStore,
    DataFrameRecordStore,
    InMemoryRecordStore,
)
from gamerisk.db import Database
from gamerisk.exceptions import InconsistentRecord, InvalidMetric, RecordStoreError
from tests.conftest import make_record


class TestRecordCleaner:
    """Normalisation of raw survey frames"""

    def test_clean_normalises_columns_and_values(self, raw_frame):
        cleaned = RecordCleaner(verbosity=0).clean(raw_frame)
        assert {"gamer_id", "daily_gaming_hours", "monthly_spending", "gpa",
                "face_to_face_social_hours"} <= set(cleaned.columns)
        assert list(cleaned["withdrawal_symptoms"]) == [False, False, True]
        assert list(cleaned["occupation_type"]) == ["Student", "Professional", "Student"]
        assert cleaned.loc[0, "platform"] == "PC"

    def test_clean_leaves_input_untouched(self, raw_frame):
        before = raw_frame.copy()
        RecordCleaner(verbosity=0).clean(raw_frame)
        pd.testing.assert_frame_equal(raw_frame, before)

    def test_to_records(self, raw_frame):
        records = RecordCleaner(verbosity=0).to_records(raw_frame)
        assert [r.gamer_id for r in records] == [101, 102, 103]
        assert records[0].occupation_type is OccupationType.STUDENT
        assert records[1].addiction_risk_level is RiskLevel.MODERATE
        assert records[2].platform is Platform.MOBILE

    def test_validate_reports_without_dropping(self, raw_frame):
        raw_frame.loc[1, "sleep_hours"] = -2.0
        raw_frame.loc[2, "withdrawal_symptoms"] = "sometimes"
        report = RecordCleaner(verbosity=0).validate(raw_frame)
        assert list(report["gamer_id"]) == [102, 103]
        assert set(report["error"]) == {"InvalidMetric"}
        assert list(report["field"]) == ["sleep_hours", "withdrawal_symptoms"]

    def test_to_records_raises_on_invalid_row(self, raw_frame):
        raw_frame.loc[0, "sleep_hours"] = 30.0
        with pytest.raises(InvalidMetric):
            RecordCleaner(verbosity=0).to_records(raw_frame)


class TestDataLoader:
    def test_load_csv_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            DataLoader().load_csv(str(tmp_path / "missing.csv"))

    def test_unknown_data_type(self):
        with pytest.raises(ValueError):
            DataLoader().load_table("parquet", "mhgames")

    def test_load_raw_table(self, tmp_path, monkeypatch, raw_frame):
        from gamerisk import utils

        monkeypatch.setattr(utils, "raw_data_path", str(tmp_path))
        raw_frame.to_csv(tmp_path / "mhgames.csv", index=False)
        df = DataLoader().load_table("raw", "mhgames")
        assert len(df) == 3

    def test_null_summary(self, raw_frame):
        summary = DataLoader().null_summary(raw_frame)
        assert summary.loc["grades_gpa", "null_count"] == 1
        assert summary.loc["work_productivity_score", "null_count"] == 2


class TestInMemoryRecordStore:
    """In-process store"""

    def test_duplicate_ids_raise(self):
        with pytest.raises(InconsistentRecord):
            InMemoryRecordStore([make_record(1), make_record(1)])

    def test_snapshot_is_not_affected_by_later_writes(self):
        store = InMemoryRecordStore([make_record(1)])
        snapshot = store.fetch_all()
        store.upsert(make_record(2))
        assert [r.gamer_id for r in snapshot] == [1]
        assert [r.gamer_id for r in store.fetch_all()] == [1, 2]
        assert len(store) == 2

    def test_upsert_replaces(self):
        store = InMemoryRecordStore([make_record(1)])
        store.upsert(make_record(1, sleep_hours=4.0))
        assert store.fetch_all()[0].sleep_hours == 4.0

    def test_remove(self):
        store = InMemoryRecordStore([make_record(1), make_record(2)])
        store.remove(1)
        assert [r.gamer_id for r in store.fetch_all()] == [2]
        with pytest.raises(KeyError):
            store.remove(1)

    def test_fetch_filtered(self, store):
        heavy = store.fetch_filtered(lambda r: r.daily_gaming_hours > 5)
        assert [r.gamer_id for r in heavy] == [9, 11]


class TestFrameAndFileStores:
    """DataFrame, CSV and database backed stores"""

    def test_dataframe_store(self, raw_frame):
        store = DataFrameRecordStore(raw_frame)
        assert [r.gamer_id for r in store.fetch_all()] == [101, 102, 103]

    def test_dataframe_store_rejects_duplicate_ids(self, raw_frame):
        raw_frame.loc[2, "user_id"] = 101
        with pytest.raises(InconsistentRecord):
            DataFrameRecordStore(raw_frame).fetch_all()

    def test_csv_store_rereads_file(self, tmp_path, raw_frame):
        path = tmp_path / "mhgames.csv"
        raw_frame.iloc[:2].to_csv(path, index=False)
        store = CsvRecordStore(str(path))
        assert len(store.fetch_all()) == 2

        raw_frame.to_csv(path, index=False)
        assert len(store.fetch_all()) == 3

    def test_csv_store_missing_file(self, tmp_path):
        with pytest.raises(RecordStoreError):
            CsvRecordStore(str(tmp_path / "missing.csv")).fetch_all()

    def test_database_store_round_trip(self, raw_frame):
        db = Database("sqlite://")
        db.write_frame(raw_frame, "mhgames")

        records = DatabaseRecordStore(db).fetch_all()

        assert [r.gamer_id for r in records] == [101, 102, 103]
        assert records[0].gpa == pytest.approx(3.6)
        assert records[1].gpa is None
        assert records[2].withdrawal_symptoms is True
        db.close()

    def test_database_store_missing_table(self):
        store = DatabaseRecordStore(Database("sqlite://"), table="nothing_here")
        with pytest.raises(RecordStoreError):
            store.fetch_all()

    def test_database_store_rejects_bad_table_name(self):
        with pytest.raises(ValueError):
            DatabaseRecordStore(Database("sqlite://"), table="mhgames; DROP TABLE x")


class TestDatabase:
    """Driver errors surface as RecordStoreError"""

    def test_query_on_missing_table(self):
        db = Database("sqlite://")
        with pytest.raises(RecordStoreError) as exc:
            db.execute_query("SELECT * FROM nothing_here")
        assert exc.value.details["query"] == "SELECT * FROM nothing_here"
        db.close()

    def test_write_error(self, raw_frame, monkeypatch):
        def failing_to_sql(self, *args, **kwargs):
            raise pd.errors.DatabaseError("database is locked")

        monkeypatch.setattr(pd.DataFrame, "to_sql", failing_to_sql)
        db = Database("sqlite://")
        with pytest.raises(RecordStoreError) as exc:
            db.write_frame(raw_frame, "mhgames")
        assert exc.value.details["table"] == "mhgames"
        db.close()
