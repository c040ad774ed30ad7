# gamerisk/core/processing/__init__.py

from .load_data import DataLoader
from .record_cleaner import RecordCleaner
from .record_store import (
    RecordStore,
    InMemoryRecordStore,
    DataFrameRecordStore,
    CsvRecordStore,
    DatabaseRecordStore,
)

__all__ = [

    # Loading data from postgresql or csv
    'DataLoader',

    # Pre-processing
    'RecordCleaner',

    # Record stores
    'RecordStore',
    'InMemoryRecordStore',
    'DataFrameRecordStore',
    'CsvRecordStore',
    'DatabaseRecordStore',
]
