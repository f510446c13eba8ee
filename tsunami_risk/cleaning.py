"""
Data Cleaning Module
====================

Turns raw earthquake records into a modeling frame: normalized column names,
a tidy alert-level category, a binary outcome and the selected predictors.
"""

import logging
from typing import List, Optional

import numpy as np
import pandas as pd

logger = logging.getLogger(__name__)

# Ordered from least to most severe (USGS PAGER alert levels)
ALERT_LEVELS = ["green", "yellow", "orange", "red"]

DEFAULT_NUMERIC_FEATURES = [
    "magnitude", "cdi", "mmi", "sig", "nst",
    "dmin", "gap", "depth", "latitude", "longitude"
]
DEFAULT_CATEGORICAL_FEATURES = ["alert"]


def normalize_alert(series: pd.Series) -> pd.Series:
    """Lower-case and strip alert labels; blanks and unknown labels become missing."""
    cleaned = series.astype("string").str.strip().str.lower()
    cleaned = cleaned.where(cleaned.isin(ALERT_LEVELS))
    return cleaned.astype(object).where(cleaned.notna(), np.nan)


def clean_data(
    df: pd.DataFrame,
    target: str = "tsunami",
    numeric: Optional[List[str]] = None,
    require_target: bool = True
) -> pd.DataFrame:
    """
    Clean a raw earthquake frame.

    Args:
        df: Raw DataFrame as read from CSV
        target: Name of the binary outcome column
        numeric: Columns to coerce to numeric (default: the standard predictors)
        require_target: If False, records without an outcome column are accepted
            (new earthquakes to score); duplicates are then kept

    Returns:
        Cleaned copy of the data
    """
    n_before = len(df)
    df = df.copy()
    df.columns = [str(c).strip().lower() for c in df.columns]

    has_target = target in df.columns
    if require_target and not has_target:
        raise ValueError(f"Target column '{target}' not found in data")

    if "alert" in df.columns:
        df["alert"] = normalize_alert(df["alert"])

    numeric = numeric if numeric is not None else DEFAULT_NUMERIC_FEATURES
    for col in numeric:
        if col in df.columns:
            df[col] = pd.to_numeric(df[col], errors="coerce")

    if not has_target:
        logger.info(f"Cleaned records: {len(df)} rows × {df.shape[1]} columns (no outcome)")
        return df.reset_index(drop=True)

    # Outcome must be a clean 0/1 integer
    df[target] = pd.to_numeric(df[target], errors="coerce")
    df = df[df[target].isin([0, 1])].copy()
    df[target] = df[target].astype(int)

    df = df.drop_duplicates().reset_index(drop=True)

    removed = n_before - len(df)
    if removed:
        logger.info(f"Cleaning removed {removed} rows (invalid outcome or duplicates)")
    logger.info(f"Cleaned data: {len(df)} rows × {df.shape[1]} columns")

    return df


def select_features(
    df: pd.DataFrame,
    numeric: Optional[List[str]] = None,
    categorical: Optional[List[str]] = None,
    target: str = "tsunami"
) -> pd.DataFrame:
    """
    Keep only the configured predictors and the outcome.

    Identifier and free-text columns (title, date_time, location, country, ...)
    are dropped here.

    Raises:
        ValueError: If a configured column is absent
    """
    numeric = numeric if numeric is not None else DEFAULT_NUMERIC_FEATURES
    categorical = categorical if categorical is not None else DEFAULT_CATEGORICAL_FEATURES

    columns = list(numeric) + list(categorical) + [target]
    missing = [c for c in columns if c not in df.columns]
    if missing:
        raise ValueError(f"Configured columns missing from data: {missing}")

    dropped = [c for c in df.columns if c not in columns]
    if dropped:
        logger.info(f"Dropping unused columns: {dropped}")

    return df[columns].copy()


def impute_alert_mode(df: pd.DataFrame, column: str = "alert") -> pd.DataFrame:
    """Fill missing alert levels with the most frequent level."""
    df = df.copy()
    observed = df[column].dropna()
    if observed.empty:
        raise ValueError(f"Column '{column}' has no observed values to take a mode from")

    mode = observed.mode().iloc[0]
    n_missing = int(df[column].isna().sum())
    df[column] = df[column].fillna(mode)
    logger.info(f"Imputed {n_missing} missing '{column}' values with mode '{mode}'")
    return df


def prepare_dataset(df: pd.DataFrame, config: dict) -> pd.DataFrame:
    """Run cleaning and feature selection using the `features` config section."""
    features = config.get('features', {})
    target = features.get('target', 'tsunami')
    numeric = features.get('numeric', DEFAULT_NUMERIC_FEATURES)
    categorical = features.get('categorical', DEFAULT_CATEGORICAL_FEATURES)

    cleaned = clean_data(df, target=target, numeric=numeric)
    return select_features(cleaned, numeric, categorical, target)
