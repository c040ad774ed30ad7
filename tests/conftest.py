"""
Shared fixtures for the gamerisk test suite.

The standard population has 20 professionals with ids 1..20 and monthly
spending ``id * 10``; a handful of ids are tweaked so every built-in rule
has a known answer:

- 3  sleeps 5h                      -> at_risk (sleep_hours<6)
- 5  reports withdrawal symptoms    -> at_risk (withdrawal_symptoms)
- 7  Severe label                   -> at_risk, high_risk_label
- 9  games 6h/day                   -> at_risk (Hardcore)
- 11 games 7h/day, isolated         -> at_risk, isolated_heavy_gamer
- 13 High label                     -> high_risk_label
- 20 top spender                    -> whale, top_spender (with 19)
"""

import pytest

from gamerisk.core.features.gamer_record import GamerRecord
from gamerisk.core.processing.record_store import InMemoryRecordStore
from gamerisk.core.segment import risk_engine
from gamerisk.core.segment.risk_engine import CohortRiskEngine, RiskEngineConfig

AT_RISK_IDS = [3, 5, 7, 9, 11]

OVERRIDES = {
    3: {"sleep_hours": 5.0},
    5: {"withdrawal_symptoms": True},
    7: {"addiction_risk_level": "Severe"},
    9: {"daily_gaming_hours": 6.0},
    11: {"daily_gaming_hours": 7.0, "social_isolation_score": 85.0, "face_to_face_social_hours": 0.5},
    13: {"addiction_risk_level": "High"},
}


def make_record(gamer_id, **overrides):
    """Valid professional record with moderate, low-risk defaults."""
    values = {
        "daily_gaming_hours": 3.0,
        "monthly_spending": 20.0,
        "sleep_hours": 7.5,
        "social_isolation_score": 30.0,
        "occupation_type": "Professional",
        "productivity_score": 70.0,
        "addiction_risk_level": "Low",
        "platform": "PC",
        "face_to_face_social_hours": 5.0,
    }
    values.update(overrides)
    return GamerRecord(gamer_id=gamer_id, **values)


def make_population():
    return [
        make_record(i, monthly_spending=float(i * 10), **OVERRIDES.get(i, {}))
        for i in range(1, 21)
    ]


@pytest.fixture(autouse=True)
def isolated_config(monkeypatch):
    """Functional API engine is rebuilt per test from the project config."""
    monkeypatch.delenv("GAMERISK_CONFIG", raising=False)
    monkeypatch.setattr(risk_engine, "_default_engine", None)


@pytest.fixture
def population():
    return make_population()


@pytest.fixture
def store(population):
    return InMemoryRecordStore(population)


@pytest.fixture
def engine(store):
    return CohortRiskEngine(store, config=RiskEngineConfig())


@pytest.fixture
def raw_frame():
    """Source-shaped rows as they come out of the mhgames table."""
    import numpy as np
    import pandas as pd

    return pd.DataFrame({
        "user_id": [101, 102, 103],
        "Daily_Gaming_Hours": [1.5, 4.0, 8.0],
        "monthly_game_spending_usd": [10.0, 45.5, 300.0],
        "sleep_hours": [8.0, 6.5, 4.5],
        "social_isolation_score": [20.0, 55.0, 90.0],
        "grades_gpa": [3.6, np.nan, 2.1],
        "work_productivity_score": [np.nan, 65.0, np.nan],
        "gaming_addiction_risk_level": ["Low", "moderate", "Severe"],
        "withdrawal_symptoms": ["No", "No", "Yes"],
        "platform": [" PC ", "Console", "Mobile"],
        "face_to_face_social_hours_weekly": [10.0, 4.0, 0.5],
    })
