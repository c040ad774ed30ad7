# gamerisk/core/segment/__init__.py

from .segmenter import Segmenter
from .percentile_ranker import PercentileRanker, PercentileAssignment, MAX_POPULATION
from .risk_evaluator import (
    Condition,
    ThresholdCondition,
    FlagCondition,
    SegmentCondition,
    CohortCondition,
    CombinePolicy,
    EvaluationContext,
    RiskFlag,
    RiskRule,
    RiskEvaluator,
    build_condition,
)
from .view import RiskView, ViewRow
from .risk_engine import (
    CohortRiskEngine,
    RiskEngineConfig,
    segment,
    percentile_rank,
    top_k_percent,
    evaluate_risk,
    at_risk_view,
    configure,
)
from .cohort_analyzer import CohortAnalyzer
from .data_manager import ViewExporter

__all__ = [
    # Segmentation & ranking
    'Segmenter',
    'PercentileRanker',
    'PercentileAssignment',
    'MAX_POPULATION',

    # Rules
    'Condition',
    'ThresholdCondition',
    'FlagCondition',
    'SegmentCondition',
    'CohortCondition',
    'CombinePolicy',
    'EvaluationContext',
    'RiskFlag',
    'RiskRule',
    'RiskEvaluator',
    'build_condition',

    # Views & orchestration
    'RiskView',
    'ViewRow',
    'CohortRiskEngine',
    'RiskEngineConfig',

    # Functional API
    'segment',
    'percentile_rank',
    'top_k_percent',
    'evaluate_risk',
    'at_risk_view',
    'configure',

    # Reporting
    'CohortAnalyzer',
    'ViewExporter',
]
