# gamerisk/exceptions.py
"""
Exception hierarchy for the cohort & risk engine.

Every error carries a human readable message plus a ``details`` dict with
the offending id / field / value so callers can act on it.
"""

from typing import Any, Dict, Optional


class GameRiskError(Exception):
    """Base exception for all gamerisk errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


class InvalidMetric(GameRiskError, ValueError):
    """Raised when a metric value is negative, NaN or out of range."""


class EmptyPopulation(GameRiskError, ValueError):
    """Raised when a rank or cohort is requested over zero records."""


class InvalidPercentile(GameRiskError, ValueError):
    """Raised when a top-k percentage is outside (0, 100]."""


class UnknownCondition(GameRiskError, ValueError):
    """Raised when a rule references a condition that is not defined."""


class InconsistentRecord(GameRiskError, ValueError):
    """Raised when a record violates a cross-field invariant."""


class InvalidRuleConfig(GameRiskError, ValueError):
    """Raised when a segment, cohort, condition or rule definition is malformed."""


class MissingAnnotation(GameRiskError, ValueError):
    """Raised when an evaluation context lacks a segment or percentile a rule needs."""


class RecordStoreError(GameRiskError):
    """Raised when the record store cannot produce a snapshot."""
