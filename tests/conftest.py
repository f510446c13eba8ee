import sys
from pathlib import Path

import matplotlib
matplotlib.use("Agg")

import numpy as np
import pandas as pd
import pytest

# Make the project root importable
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from tsunami_risk.cleaning import prepare_dataset
from tsunami_risk.preprocessing import preprocess_pipeline


@pytest.fixture(scope="session")
def raw_earthquakes():
    """Synthetic earthquake catalogue shaped like the USGS 1995-2023 extract."""
    rng = np.random.default_rng(42)
    n_samples = 320

    magnitude = rng.uniform(6.5, 9.1, n_samples)
    depth = rng.gamma(2.0, 40.0, n_samples)
    latitude = rng.uniform(-60, 60, n_samples)
    longitude = rng.uniform(-180, 180, n_samples)

    logit = 3.0 * (magnitude - 7.6) - 0.015 * (depth - 80)
    tsunami = (rng.uniform(size=n_samples) < 1 / (1 + np.exp(-logit))).astype(int)

    alert = rng.choice(
        np.array(['green', 'yellow', 'orange', 'red', None], dtype=object),
        n_samples,
        p=[0.45, 0.10, 0.03, 0.02, 0.40]
    )
    # Messy labels as they appear in raw exports
    alert[:5] = [' Green', 'YELLOW ', '', None, 'red']

    return pd.DataFrame({
        'title': [f"M {m:.1f} - synthetic event {i}" for i, m in enumerate(magnitude)],
        'magnitude': magnitude.round(2),
        'date_time': pd.date_range('2001-01-01', periods=n_samples, freq='7D').strftime('%d-%m-%Y %H:%M'),
        'cdi': np.clip(np.round(magnitude - 1 + rng.normal(0, 1, n_samples)), 0, 9),
        'mmi': np.clip(np.round(magnitude - 0.5 + rng.normal(0, 1, n_samples)), 1, 9),
        'alert': alert,
        'tsunami': tsunami,
        'sig': np.round(magnitude * 120 + rng.normal(0, 60, n_samples)),
        'net': rng.choice(['us', 'ak', 'at'], n_samples),
        'nst': rng.integers(0, 900, n_samples),
        'dmin': rng.exponential(1.0, n_samples).round(3),
        'gap': rng.uniform(0, 180, n_samples).round(1),
        'magType': rng.choice(['mww', 'mwc', 'mb'], n_samples),
        'depth': depth.round(1),
        'latitude': latitude.round(3),
        'longitude': longitude.round(3),
        'location': 'Synthetic',
        'continent': 'Oceania',
        'country': 'Nowhere',
    })


@pytest.fixture(scope="session")
def small_config():
    """Configuration with small grids so tuning stays fast."""
    return {
        'features': {
            'target': 'tsunami',
            'numeric': ['magnitude', 'cdi', 'mmi', 'sig', 'nst',
                        'dmin', 'gap', 'depth', 'latitude', 'longitude'],
            'categorical': ['alert'],
        },
        'split': {'test_size': 0.25, 'random_state': 42, 'stratify': True},
        'cv': {'n_splits': 3},
        'tuning': {'scoring': 'roc_auc', 'n_jobs': 1, 'use_cache': False},
        'models': {
            'enabled': ['logistic_regression', 'lda'],
            'grids': {'logistic_regression': {'C': [0.1, 1.0]}},
        },
        'prediction': {'threshold': 0.5, 'bands': {'moderate': 0.3, 'high': 0.6}},
    }


@pytest.fixture(scope="session")
def earthquakes(raw_earthquakes, small_config):
    """Cleaned, feature-selected modeling frame."""
    return prepare_dataset(raw_earthquakes, small_config)


@pytest.fixture(scope="session")
def prepared(earthquakes, small_config):
    """Split, folds and recipe for the cleaned frame."""
    return preprocess_pipeline(earthquakes, small_config)
