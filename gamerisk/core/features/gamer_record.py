# core/features/gamer_record.py
"""Gamer record domain model.

One ``GamerRecord`` per row of the denormalized ``mhgames`` table. Records
are immutable and validated on construction; every derived annotation
(segment, percentile, risk flag) is computed from them on demand.
"""
import math
import numbers
from dataclasses import asdict, dataclass, fields
from enum import Enum
from typing import Any, Dict, Hashable, Iterable, List, Mapping, Optional

import pandas as pd  # type: ignore

from ...exceptions import InconsistentRecord, InvalidMetric
from .features_helpers import coerce_flag, coerce_float, infer_occupation, is_missing


class Segment(str, Enum):
    """Gaming-intensity segments derived from daily gaming hours."""
    CASUAL = "Casual"           # [0, 2)
    MODERATE = "Moderate"       # [2, 5]
    HARDCORE = "Hardcore"       # (5, inf)


class RiskLevel(str, Enum):
    """Upstream addiction risk label, ordered by severity."""
    LOW = "Low"
    MODERATE = "Moderate"
    HIGH = "High"
    SEVERE = "Severe"

    @property
    def severity(self) -> int:
        return list(RiskLevel).index(self)


class Platform(str, Enum):
    MOBILE = "Mobile"
    PC = "PC"
    CONSOLE = "Console"
    HANDHELD = "Handheld"
    VR = "VR"
    MULTI = "Multi-platform"


class OccupationType(str, Enum):
    STUDENT = "Student"
    PROFESSIONAL = "Professional"


def parse_enum(enum_cls, value: Any, field_name: str, gamer_id: Hashable = None):
    """Case-insensitive lookup by value or member name."""
    if isinstance(value, enum_cls):
        return value
    token = str(value).strip().lower()
    for member in enum_cls:
        if token in (member.value.lower(), member.name.lower()):
            return member
    raise InvalidMetric(
        f"Unknown {field_name} '{value}'",
        {"gamer_id": gamer_id, "field": field_name, "value": value},
    )


# Source column name → record field
SOURCE_COLUMNS = {
    "user_id": "gamer_id",
    "id": "gamer_id",
    "monthly_game_spending_usd": "monthly_spending",
    "grades_gpa": "gpa",
    "work_productivity_score": "productivity_score",
    "gaming_addiction_risk_level": "addiction_risk_level",
    "user_occupation_type": "occupation_type",
    "face_to_face_social_hours_weekly": "face_to_face_social_hours",
}

NUMERIC_FIELDS = (
    "daily_gaming_hours",
    "monthly_spending",
    "sleep_hours",
    "social_isolation_score",
    "exercise_hours",
    "productivity_score",
    "gpa",
    "face_to_face_social_hours",
    "sleep_disruption_frequency",
    "mood_swing_frequency",
    "age",
)
SIGNED_FIELDS = ("weight_change_kg",)
FLAG_FIELDS = ("eye_strain", "back_neck_pain", "withdrawal_symptoms", "continues_despite_problems")
UPPER_BOUNDS = {"sleep_hours": 24.0, "social_isolation_score": 100.0}


@dataclass(frozen=True)
class GamerRecord:
    """A single gamer's survey row.

    Immutable: derived stages annotate records, they never modify them.
    """
    gamer_id: Hashable
    daily_gaming_hours: float
    monthly_spending: float
    sleep_hours: float
    social_isolation_score: float
    occupation_type: OccupationType
    platform: Optional[Platform] = None
    primary_game: Optional[str] = None
    game_genre: Optional[str] = None
    addiction_risk_level: Optional[RiskLevel] = None
    exercise_hours: float = 0.0
    productivity_score: Optional[float] = None
    gpa: Optional[float] = None
    face_to_face_social_hours: Optional[float] = None
    weight_change_kg: Optional[float] = None
    sleep_disruption_frequency: Optional[float] = None
    mood_swing_frequency: float = 0
    eye_strain: bool = False
    back_neck_pain: bool = False
    withdrawal_symptoms: bool = False
    continues_despite_problems: bool = False
    age: Optional[float] = None
    gender: Optional[str] = None

    def __post_init__(self):
        # Enum coercion on a frozen dataclass goes through object.__setattr__
        object.__setattr__(
            self, "occupation_type",
            parse_enum(OccupationType, self.occupation_type, "occupation_type", self.gamer_id),
        )
        if self.platform is not None:
            object.__setattr__(
                self, "platform", parse_enum(Platform, self.platform, "platform", self.gamer_id)
            )
        if self.addiction_risk_level is not None:
            object.__setattr__(
                self, "addiction_risk_level",
                parse_enum(RiskLevel, self.addiction_risk_level, "addiction_risk_level", self.gamer_id),
            )
        self._validate()

    def _validate(self) -> None:
        for name in NUMERIC_FIELDS + SIGNED_FIELDS:
            value = getattr(self, name)
            if value is None:
                continue
            if isinstance(value, bool) or not isinstance(value, numbers.Real) or math.isnan(value):
                raise InvalidMetric(
                    f"{name} must be a number, got {value!r}",
                    {"gamer_id": self.gamer_id, "field": name, "value": value},
                )
            if name in SIGNED_FIELDS:
                continue
            if value < 0:
                raise InvalidMetric(
                    f"{name} must be non-negative, got {value}",
                    {"gamer_id": self.gamer_id, "field": name, "value": value},
                )
            upper = UPPER_BOUNDS.get(name)
            if upper is not None and value > upper:
                raise InvalidMetric(
                    f"{name} must be at most {upper}, got {value}",
                    {"gamer_id": self.gamer_id, "field": name, "value": value},
                )

        is_student = self.occupation_type is OccupationType.STUDENT
        if is_student and self.gpa is None:
            raise InconsistentRecord(
                "Student record is missing gpa",
                {"gamer_id": self.gamer_id, "occupation_type": self.occupation_type.value},
            )
        if not is_student and self.gpa is not None:
            raise InconsistentRecord(
                "gpa is only allowed on student records",
                {"gamer_id": self.gamer_id, "occupation_type": self.occupation_type.value, "gpa": self.gpa},
            )

    # ---------------- Conversion ----------------

    @classmethod
    def field_names(cls) -> List[str]:
        return [f.name for f in fields(cls)]

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "GamerRecord":
        """
        Build a record from a source row.

        Accepts either the source column names of the ``mhgames`` table or
        the record field names. Unknown columns are ignored.
        """
        known = set(cls.field_names())
        values: Dict[str, Any] = {}
        for column, value in row.items():
            name = SOURCE_COLUMNS.get(column, column)
            if name in known and name not in values:
                values[name] = value

        if "gamer_id" not in values or is_missing(values["gamer_id"]):
            raise InconsistentRecord("Row has no gamer id", {"row": dict(row)})
        gamer_id = values["gamer_id"]

        for name in NUMERIC_FIELDS + SIGNED_FIELDS:
            if name in values:
                try:
                    values[name] = coerce_float(values[name])
                except (TypeError, ValueError):
                    raise InvalidMetric(
                        f"{name} is not numeric: {values[name]!r}",
                        {"gamer_id": gamer_id, "field": name, "value": values[name]},
                    )
        for name in FLAG_FIELDS:
            if name in values:
                try:
                    values[name] = coerce_flag(values[name])
                except ValueError:
                    raise InvalidMetric(
                        f"{name} is not a yes/no flag: {values[name]!r}",
                        {"gamer_id": gamer_id, "field": name, "value": values[name]},
                    )
        for name in ("platform", "addiction_risk_level", "primary_game", "game_genre", "gender"):
            if name in values and is_missing(values[name]):
                values[name] = None
        if values.get("exercise_hours") is None:
            values.pop("exercise_hours", None)
        if values.get("mood_swing_frequency") is None:
            values.pop("mood_swing_frequency", None)

        if is_missing(values.get("occupation_type")):
            values["occupation_type"] = infer_occupation(
                values.get("gpa"), values.get("productivity_score")
            )
            if values["occupation_type"] is None:
                raise InconsistentRecord(
                    "Occupation type missing and cannot be inferred",
                    {"gamer_id": gamer_id},
                )

        for required in ("daily_gaming_hours", "monthly_spending", "sleep_hours", "social_isolation_score"):
            if values.get(required) is None:
                raise InvalidMetric(
                    f"Required metric {required} is missing",
                    {"gamer_id": gamer_id, "field": required},
                )

        return cls(**values)

    def to_dict(self) -> Dict[str, Any]:
        """Plain dict with enum members flattened to their values."""
        data = asdict(self)
        for key, value in data.items():
            if isinstance(value, Enum):
                data[key] = value.value
        return data


def records_to_frame(records: Iterable[GamerRecord]) -> pd.DataFrame:
    """Flatten records into a DataFrame (one column per field)."""
    rows = [record.to_dict() for record in records]
    return pd.DataFrame(rows, columns=GamerRecord.field_names())
