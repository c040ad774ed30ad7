from .features_helpers import (
    is_missing,
    coerce_flag,
    coerce_float,
    infer_occupation,
    gpa_band,
)
from .gamer_record import (
    GamerRecord,
    Segment,
    RiskLevel,
    Platform,
    OccupationType,
    records_to_frame,
)

__all__ = [
    # Feature helper functions
    'is_missing',
    'coerce_flag',
    'coerce_float',
    'infer_occupation',
    'gpa_band',

    # Gamer record model
    'GamerRecord',
    'Segment',
    'RiskLevel',
    'Platform',
    'OccupationType',
    'records_to_frame',
]
