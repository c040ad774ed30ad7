# core/features/features_helpers.py
"""Helper methods for turning raw survey values into record fields."""
import math
from typing import Any, Optional

import numpy as np  # type: ignore
import pandas as pd  # type: ignore

TRUE_TOKENS = {"yes", "y", "true", "t", "1"}
FALSE_TOKENS = {"no", "n", "false", "f", "0", ""}

 # --- HELPER METHODS ---

def is_missing(value: Any) -> bool:
    """True for None, NaN and pandas NA."""
    if value is None:
        return True
    try:
        return bool(pd.isna(value))
    except (TypeError, ValueError):
        return False


def coerce_flag(value: Any) -> bool:
    """Yes/No, 1/0, True/False → bool. Missing counts as False."""
    if is_missing(value):
        return False
    if isinstance(value, (bool, np.bool_)):
        return bool(value)
    if isinstance(value, (int, float, np.integer, np.floating)):
        return bool(value != 0)
    token = str(value).strip().lower()
    if token in TRUE_TOKENS:
        return True
    if token in FALSE_TOKENS:
        return False
    raise ValueError(f"Cannot interpret '{value}' as a yes/no flag")


def coerce_float(value: Any) -> Optional[float]:
    """Numeric value or None when missing."""
    if is_missing(value):
        return None
    result = float(value)
    return None if math.isnan(result) else result


def infer_occupation(gpa: Any, productivity_score: Any) -> Optional[str]:
    """Student when a GPA is present, Professional when only productivity is."""
    if not is_missing(gpa):
        return "Student"
    if not is_missing(productivity_score):
        return "Professional"
    return None


def gpa_band(gpa: Optional[float]) -> str:
    """Coarse GPA bands used in academic-impact breakdowns."""
    if gpa is None or is_missing(gpa):
        return "n/a"
    if gpa < 2.0:
        return "<2.0"
    elif gpa < 3.0:
        return "2.0-2.9"
    elif gpa < 3.5:
        return "3.0-3.4"
    else:
        return "3.5+"
