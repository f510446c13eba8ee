"""
Data Loader Module
==================

Configuration loading, CSV ingestion of the earthquake catalogue, and data
quality checks ahead of classification.

Functions:
    - load_config: Read the YAML pipeline configuration
    - load_data: Read earthquake records from CSV
    - validate_data: Outcome, completeness, duplicate and physical-range checks
    - get_data_summary: Per-column statistics and class balance
"""

import logging
from pathlib import Path
from typing import Dict, Any, Optional, Tuple

import pandas as pd
import numpy as np
import yaml

logger = logging.getLogger(__name__)

# Physically plausible bounds for the USGS catalogue fields
PLAUSIBLE_RANGES = {
    "magnitude": (0.0, 10.0),
    "cdi": (0.0, 12.0),
    "mmi": (0.0, 12.0),
    "depth": (0.0, 800.0),
    "gap": (0.0, 360.0),
    "dmin": (0.0, None),
    "nst": (0.0, None),
    "latitude": (-90.0, 90.0),
    "longitude": (-180.0, 180.0),
}


def load_config(config_path: str = "config/config.yaml") -> Dict[str, Any]:
    """
    Read the pipeline configuration.

    Args:
        config_path: YAML file with the data, features, split, cv, tuning,
            models, evaluation, prediction and output sections

    Returns:
        Configuration dictionary (empty if the file is empty)

    Raises:
        FileNotFoundError: If the file is missing
        yaml.YAMLError: If the YAML cannot be parsed
    """
    path = Path(config_path)
    if not path.is_file():
        raise FileNotFoundError(f"Configuration file not found: {path}")

    with path.open() as f:
        config = yaml.safe_load(f)

    logger.info(f"Configuration read from {path}")
    return config or {}


def load_data(
    file_path: str,
    expected_columns: Optional[int] = None
) -> pd.DataFrame:
    """
    Read earthquake records from CSV.

    Args:
        file_path: CSV export of the earthquake catalogue
        expected_columns: Column count to enforce (the 1995-2023 export has 19)

    Returns:
        Raw records, one row per earthquake

    Raises:
        FileNotFoundError: If the file is missing
        ValueError: If the column count differs from expected_columns
    """
    path = Path(file_path)
    if not path.is_file():
        raise FileNotFoundError(f"Data file not found: {path}")

    df = pd.read_csv(path)
    n_rows, n_cols = df.shape
    logger.info(f"Read {n_rows} earthquake records ({n_cols} columns) from {path}")

    if expected_columns is not None and n_cols != expected_columns:
        raise ValueError(
            f"Expected {expected_columns} columns in {path.name}, got {n_cols}: {list(df.columns)}"
        )

    return df


def _check_outcome(df: pd.DataFrame, target: str) -> Optional[str]:
    if target not in df.columns:
        return f"Target column '{target}' not found"

    labels = set(pd.unique(df[target].dropna()))
    if not labels <= {0, 1}:
        return f"Target column '{target}' is not binary: {sorted(map(str, labels))}"
    if len(labels) < 2:
        return f"Target column '{target}' has a single class: {labels}"
    return None


def _check_ranges(df: pd.DataFrame) -> Dict[str, int]:
    """Count values outside PLAUSIBLE_RANGES per column."""
    out_of_range = {}
    for col, (low, high) in PLAUSIBLE_RANGES.items():
        if col not in df.columns:
            continue
        values = pd.to_numeric(df[col], errors="coerce")
        bad = pd.Series(False, index=df.index)
        if low is not None:
            bad |= values < low
        if high is not None:
            bad |= values > high
        if bad.any():
            out_of_range[col] = int(bad.sum())
    return out_of_range


def validate_data(
    df: pd.DataFrame,
    target: str = "tsunami",
    strict: bool = True
) -> Tuple[bool, Dict[str, Any]]:
    """
    Check the records before they are used for classification.

    Checks:
        - Outcome column present, 0/1 valued, with both classes observed
        - Missing cells, reported per column
        - Duplicate records
        - Values outside physical bounds (negative depth, |latitude| > 90, ...)

    Args:
        df: Records to check
        target: Outcome column
        strict: Raise instead of returning when a check fails

    Returns:
        Tuple of (is_valid, report); report lists every issue found

    Raises:
        ValueError: If strict and any check fails
    """
    issues = []
    report = {
        "total_rows": len(df),
        "total_columns": df.shape[1],
        "column_names": list(df.columns),
        "issues": issues,
    }

    outcome_issue = _check_outcome(df, target)
    if outcome_issue:
        issues.append(outcome_issue)

    missing = df.isna().sum()
    missing = missing[missing > 0]
    if not missing.empty:
        share = missing.sum() / df.size * 100 if df.size else 0.0
        issues.append(f"Missing values: {int(missing.sum())} cells ({share:.2f}%) in {len(missing)} columns")
        report["missing_by_column"] = {col: int(n) for col, n in missing.items()}

    n_duplicates = int(df.duplicated().sum())
    if n_duplicates:
        issues.append(f"Duplicate rows found: {n_duplicates}")

    out_of_range = _check_ranges(df)
    if out_of_range:
        report["out_of_range"] = out_of_range
        for col, count in out_of_range.items():
            low, high = PLAUSIBLE_RANGES[col]
            issues.append(f"Column '{col}' has {count} values outside [{low}, {high}]")

    for issue in issues:
        logger.warning(issue)

    report["is_valid"] = not issues
    if strict and issues:
        raise ValueError(f"Data validation failed: {issues}")

    return report["is_valid"], report


def get_data_summary(df: pd.DataFrame, target: str = "tsunami") -> Dict[str, Any]:
    """
    Summary statistics of the records.

    Args:
        df: Records to summarize
        target: Outcome column (excluded from the predictor statistics)

    Returns:
        Dictionary with shape, dtypes, memory use, per-predictor statistics
        (count, mean, std, min, median, max, skew) and outcome class counts
    """
    predictors = df.select_dtypes(include=[np.number]).drop(columns=[target], errors="ignore")

    statistics = {}
    if not predictors.empty:
        described = predictors.describe().T
        described["skew"] = predictors.skew()
        described = described.rename(columns={"50%": "median"})
        for col, row in described.iterrows():
            statistics[col] = {
                "count": int(row["count"]),
                **{k: float(row[k]) for k in ["mean", "std", "min", "median", "max", "skew"]}
            }

    class_balance = {}
    if target in df.columns:
        class_balance = {str(k): int(v) for k, v in df[target].value_counts().items()}

    return {
        "shape": df.shape,
        "columns": list(df.columns),
        "dtypes": df.dtypes.astype(str).to_dict(),
        "memory_usage_mb": df.memory_usage(deep=True).sum() / 1024 ** 2,
        "statistics": statistics,
        "class_balance": class_balance,
    }


def print_data_summary(df: pd.DataFrame, target: str = "tsunami") -> None:
    """Print the shape, per-column completeness and outcome balance of the records."""
    n_rows = len(df)

    print("\n" + "=" * 60)
    print("EARTHQUAKE RECORDS")
    print("=" * 60)
    print(f"Records: {n_rows} | Columns: {df.shape[1]}")
    print(f"Memory: {df.memory_usage(deep=True).sum() / 1024:.1f} KB")

    print("\nCompleteness:")
    print("-" * 40)
    completeness = df.notna().mean() * 100 if n_rows else pd.Series(0.0, index=df.columns)
    for col in df.columns:
        print(f"  {col:<12} {str(df[col].dtype):<10} {completeness[col]:5.1f}% present")

    if target in df.columns and n_rows:
        print("\nOutcome:")
        print("-" * 40)
        for label, count in df[target].value_counts().sort_index().items():
            print(f"  {target}={label}: {count} ({count / n_rows:.1%})")

    print("\nPredictor statistics:")
    print("-" * 40)
    print(df.describe().T.round(3).to_string())
    print("=" * 60 + "\n")
