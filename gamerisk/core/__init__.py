# gamerisk/core/__init__.py
"""
Core module initializer for gamerisk.

Provides record loading, the gamer record model, and the cohort & risk
components.
"""

from .processing import (
    DataLoader,
    RecordCleaner,
    RecordStore,
    InMemoryRecordStore,
    DataFrameRecordStore,
    CsvRecordStore,
    DatabaseRecordStore,
)
from .features import (
    GamerRecord,
    Segment,
    RiskLevel,
    Platform,
    OccupationType,
)
from .segment import (
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
    segment,
    percentile_rank,
    top_k_percent,
    evaluate_risk,
    at_risk_view,
    configure,
)

__all__ = [
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
