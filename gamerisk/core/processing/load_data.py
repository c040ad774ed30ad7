# gamerisk/core/processing/load_data.py

import os
import logging
from typing import Optional

import pandas as pd  # type: ignore

from ...db import Database
from ... import utils

logger = logging.getLogger(__name__)


class DataLoader:
    def __init__(self, db: Optional[Database] = None):
        """
        Initializes the DataLoader with an optional Database instance.

        The database is only connected on first use, so CSV-only workflows
        need no credentials.
        """
        self._db = db

    @property
    def db(self) -> Database:
        if self._db is None:
            self._db = Database()
        return self._db

    def _get_path(self, data_type: str, table_name: str) -> str:
        """
        Resolves the file path for a given data type and table name.
        """
        if data_type == "raw":
            return os.path.join(utils.raw_data_path, f"{table_name}.csv")
        elif data_type == "processed":
            return os.path.join(utils.processed_data_path, f"{table_name}.csv")
        elif data_type == "views":
            return os.path.join(utils.view_processed_path, f"{table_name}.csv")
        elif data_type == "sql":
            return os.path.join(utils.sql_path, f"{table_name}.sql")
        elif data_type == "db":
            return ""
        raise ValueError(
            f"❌ Invalid data type: '{data_type}'. Allowed: 'raw', 'processed', 'views', 'sql', 'db'."
        )

    def load_csv(self, file_path: str) -> pd.DataFrame:
        """Reads a CSV file; missing files raise ``FileNotFoundError``."""
        if not os.path.exists(file_path):
            raise FileNotFoundError(f"⚠️ CSV file not found: {file_path}")
        logger.info(f"📁 Loading CSV: {file_path}")
        df = pd.read_csv(file_path)
        logger.info(f"✅ CSV loaded. Rows: {len(df)}")
        return df

    def load_table(self, data_type: str, table_name: str) -> pd.DataFrame:
        """
        Loads a table from a CSV file, a SQL file, or directly from the database.

        Args:
            data_type (str): One of 'raw', 'processed', 'views', 'sql' or 'db'.
            table_name (str): Name of the table or file.

        Returns:
            pd.DataFrame: Loaded data.
        """
        file_path = self._get_path(data_type, table_name)

        if data_type == "sql":
            if not os.path.exists(file_path):
                raise FileNotFoundError(f"⚠️ SQL file not found: {file_path}")
            logger.info(f"📄 Loading '{table_name}' from SQL file: {file_path}")
            return self.db.execute_sql_file(file_path)

        if data_type == "db":
            logger.info(f"🌐 Loading table '{table_name}' from the database...")
            return self.load_custom_query(f"SELECT * FROM {table_name}")

        return self.load_csv(file_path)

    def load_custom_query(self, query: str) -> pd.DataFrame:
        """
        Executes a custom SQL query and returns the result.
        """
        df = self.db.execute_query(query)
        if df.empty:
            logger.warning("⚠️ No rows returned for this query.")
        return df

    def null_summary(self, df: pd.DataFrame) -> pd.DataFrame:
        """
        Null counts and percentages per column.
        """
        total = len(df)
        nulls = pd.DataFrame({
            "null_count": df.isnull().sum(),
            "null_percent": (df.isnull().sum() / total * 100) if total else 0.0,
        }).sort_values(by="null_count", ascending=False)
        return nulls.round(2)
