# gamerisk/__init__.py
"""
Gamer cohort & risk analytics package
"""
__version__ = "0.1.0"
__author__ = "Guy Kaptue"

from .db import Database
from .exceptions import (
    GameRiskError,
    InvalidMetric,
    EmptyPopulation,
    InvalidPercentile,
    UnknownCondition,
    InconsistentRecord,
    InvalidRuleConfig,
    MissingAnnotation,
    RecordStoreError,
)
from .utils import (
    # Directory paths
    project_root,
    config_path,
    raw_data_path,
    processed_data_path,
    view_processed_path,
    sql_path,
    reports_path,
    get_path,

    # Config & logging
    load_config,
    load_yaml,
    configure_logging,

    # DataFrame utilities
    group_summary,
    share_table,
)

from .core import (
    # Preparing data
    DataLoader,
    RecordCleaner,
    RecordStore,
    InMemoryRecordStore,
    DataFrameRecordStore,
    CsvRecordStore,
    DatabaseRecordStore,

    # Records
    GamerRecord,
    Segment,
    RiskLevel,
    Platform,
    OccupationType,

    # Cohorts & risk
    Segmenter,
    PercentileRanker,
    PercentileAssignment,
    EvaluationContext,
    RiskFlag,
    RiskRule,
    RiskEvaluator,
    RiskView,
    ViewRow,
    CohortRiskEngine,
    RiskEngineConfig,
    CohortAnalyzer,
    ViewExporter,

    # Functional API
    segment,
    percentile_rank,
    top_k_percent,
    evaluate_risk,
    at_risk_view,
    configure,
)


__all__ = [
    # Database
    "Database",

    # Errors
    "GameRiskError",
    "InvalidMetric",
    "EmptyPopulation",
    "InvalidPercentile",
    "UnknownCondition",
    "InconsistentRecord",
    "InvalidRuleConfig",
    "MissingAnnotation",
    "RecordStoreError",

    # Paths
    "project_root",
    "config_path",
    "raw_data_path",
    "processed_data_path",
    "view_processed_path",
    "sql_path",
    "reports_path",
    "get_path",

    # Config & logging
    "load_config",
    "load_yaml",
    "configure_logging",

    # DataFrame utilities
    "group_summary",
    "share_table",

    # Preparing data
    "DataLoader",
    "RecordCleaner",
    "RecordStore",
    "InMemoryRecordStore",
    "DataFrameRecordStore",
    "CsvRecordStore",
    "DatabaseRecordStore",

    # Records
    "GamerRecord",
    "Segment",
    "RiskLevel",
    "Platform",
    "OccupationType",

    # Cohorts & risk
    "Segmenter",
    "PercentileRanker",
    "PercentileAssignment",
    "EvaluationContext",
    "RiskFlag",
    "RiskRule",
    "RiskEvaluator",
    "RiskView",
    "ViewRow",
    "CohortRiskEngine",
    "RiskEngineConfig",
    "CohortAnalyzer",
    "ViewExporter",

    # Functional API
    "segment",
    "percentile_rank",
    "top_k_percent",
    "evaluate_risk",
    "at_risk_view",
    "configure",
]
