# gamerisk/db.py

import os
import logging
from typing import Optional, Union

import pandas as pd  # type: ignore
import sqlalchemy as sa  # type: ignore
from sqlalchemy.exc import SQLAlchemyError  # type: ignore
from sqlalchemy.engine import URL
from dotenv import load_dotenv

from .exceptions import RecordStoreError

load_dotenv()  # loads DB_* / DATABASE_URL from .env

logger = logging.getLogger(__name__)


class Database:
    def __init__(self, url: Optional[Union[str, URL]] = None):
        self._engine = None
        self._connect(url)

    def _connect(self, url: Optional[Union[str, URL]]) -> None:
        """
        Create the SQLAlchemy engine.

        Uses the explicit ``url`` when given, else ``DATABASE_URL``, else a
        PostgreSQL URL assembled from the ``DB_*`` environment variables.
        """
        db_url = url or os.getenv("DATABASE_URL") or URL.create(
            drivername="postgresql",
            username=os.getenv("DB_USER"),
            password=os.getenv("DB_PASSWORD"),
            host=os.getenv("DB_HOST"),
            database=os.getenv("DB_NAME"),
            query={"sslmode": os.getenv("DB_SSLMODE", "require")}
        )
        try:
            self._engine = sa.create_engine(db_url, pool_pre_ping=True)
        except (SQLAlchemyError, ImportError) as e:
            logger.error(f"❌ Connection error: {e}")
            raise RecordStoreError("Could not create database engine", {"error": str(e)}) from e
        logger.info("✅ Database engine created.")

    @property
    def engine(self):
        return self._engine

    def execute_query(self, query: str, params: Optional[dict] = None) -> pd.DataFrame:
        """
        Run a SQL query and return the result as a DataFrame.

        A single statement is executed on its own connection, so the result
        is one consistent snapshot of the table.
        """
        if self._engine is None:
            raise RecordStoreError("No active database engine.")
        try:
            with self._engine.connect() as connection:
                df = pd.read_sql(sa.text(query), connection, params=params)
        except (SQLAlchemyError, pd.errors.DatabaseError) as e:
            logger.error(f"❌ Query error: {e}")
            raise RecordStoreError("Query failed", {"query": query, "error": str(e)}) from e
        logger.info(f"✅ Query succeeded. {len(df)} rows fetched.")
        return df

    def execute_sql_file(self, sql_file_path: str) -> pd.DataFrame:
        """
        Run a SQL file and return the result as a DataFrame.
        """
        if not os.path.exists(sql_file_path):
            raise FileNotFoundError(f"⚠️ SQL file not found: {sql_file_path}")
        with open(sql_file_path, "r") as file:
            sql_query = file.read()
        logger.info(f"📄 Running SQL file: {sql_file_path}")
        return self.execute_query(sql_query)

    def write_frame(self, df: pd.DataFrame, table_name: str, if_exists: str = "replace") -> int:
        """
        Write a DataFrame into ``table_name`` inside one transaction.
        """
        if self._engine is None:
            raise RecordStoreError("No active database engine.")
        try:
            with self._engine.begin() as connection:
                df.to_sql(table_name, connection, if_exists=if_exists, index=False)
        except (SQLAlchemyError, pd.errors.DatabaseError) as e:
            logger.error(f"❌ Write error: {e}")
            raise RecordStoreError("Write failed", {"table": table_name, "error": str(e)}) from e
        logger.info(f"💾 Wrote {len(df)} rows to '{table_name}'.")
        return len(df)

    def close(self):
        """
        Dispose of the engine and its pooled connections.
        """
        if self._engine is not None:
            self._engine.dispose()
            self._engine = None
            logger.info("🔒 Connection closed.")
