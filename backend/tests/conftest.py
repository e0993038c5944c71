"""
Shared fixtures for the housing pipeline tests
"""

import matplotlib
matplotlib.use("Agg")

import numpy as np
import pandas as pd
import pytest

from housing_pipeline.config import HOUSING_NUMERIC_COLUMNS


BLOB_CENTERS = np.array([[0.0, 0.0], [10.0, 10.0], [-10.0, 10.0]])


@pytest.fixture
def housing_frame():
    """Synthetic table with the housing schema, a few gaps and a few outliers"""
    rng = np.random.default_rng(7)
    n = 300

    households = rng.normal(500, 60, n)
    df = pd.DataFrame({
        "longitude": rng.normal(-119.5, 1.0, n),
        "latitude": rng.normal(35.6, 1.0, n),
        "housing_median_age": rng.normal(28, 6, n),
        "total_rooms": households * 5 + rng.normal(0, 50, n),
        "total_bedrooms": households * 1.05 + rng.normal(0, 10, n),
        "population": households * 2.8 + rng.normal(0, 40, n),
        "households": households,
        "median_income": rng.normal(3.8, 0.8, n),
        "median_house_value": rng.normal(200000, 40000, n),
        "ocean_proximity": rng.choice(["<1H OCEAN", "INLAND", "NEAR BAY"], n),
    })

    df.loc[[3, 17, 42], "total_bedrooms"] = np.nan
    df.loc[[5, 99], "total_rooms"] = 1e6
    assert list(df.columns[:-1]) == HOUSING_NUMERIC_COLUMNS
    return df


@pytest.fixture
def blobs():
    """Three well-separated 2-D Gaussian blobs, 60 points each"""
    rng = np.random.default_rng(0)
    points = [rng.normal(center, 0.5, size=(60, 2)) for center in BLOB_CENTERS]
    return pd.DataFrame(np.vstack(points), columns=["PC1", "PC2"])
