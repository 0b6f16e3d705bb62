"""Shared fixtures: a synthetic maternal health dataset in the public CSV layout."""

import numpy as np
import pandas as pd
import pytest

# Age, SystolicBP, DiastolicBP, BS, BodyTemp, HeartRate
PROFILES = {
    "low risk": (24.0, 108.0, 72.0, 7.0, 98.0, 72.0),
    "mid risk": (31.0, 122.0, 82.0, 8.5, 98.8, 77.0),
    "high risk": (38.0, 138.0, 92.0, 12.0, 100.2, 84.0),
}
SCALES = (5.0, 7.0, 6.0, 1.2, 0.6, 4.0)
SIZES = {"low risk": 90, "mid risk": 70, "high risk": 60}
RAW_COLUMNS = ["Age", "SystolicBP", "DiastolicBP", "BS", "BodyTemp", "HeartRate"]


def make_raw_frame(seed: int = 7) -> pd.DataFrame:
    rng = np.random.default_rng(seed)
    parts = []
    for level, size in SIZES.items():
        values = rng.normal(PROFILES[level], SCALES, size=(size, len(SCALES)))
        part = pd.DataFrame(values, columns=RAW_COLUMNS)
        part[["Age", "SystolicBP", "DiastolicBP", "HeartRate"]] = (
            part[["Age", "SystolicBP", "DiastolicBP", "HeartRate"]].round().astype(int)
        )
        part["BS"] = part["BS"].round(1)
        part["BodyTemp"] = part["BodyTemp"].round(1)
        part["RiskLevel"] = level
        parts.append(part)
    frame = pd.concat(parts, ignore_index=True)
    return frame.sample(frac=1.0, random_state=seed).reset_index(drop=True)


@pytest.fixture(scope="session")
def synthetic_frame():
    return make_raw_frame()


@pytest.fixture
def raw_frame(synthetic_frame):
    return synthetic_frame.copy()


@pytest.fixture
def csv_path(tmp_path, raw_frame):
    path = tmp_path / "maternal_health_risk.csv"
    raw_frame.to_csv(path, index=False)
    return path
