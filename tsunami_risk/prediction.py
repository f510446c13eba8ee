"""
Prediction Module - Phase 5
============================

Scores new earthquake records with the selected tsunami classifier.

Features:
    - Tsunami probability and predicted class per earthquake
    - Risk level bands (low / moderate / high)
    - Export predictions to CSV
    - Prediction report generation
"""

import logging
import json
from pathlib import Path
from typing import Dict, Any, Optional
from datetime import datetime

import numpy as np
import pandas as pd

from .cleaning import clean_data, DEFAULT_NUMERIC_FEATURES, DEFAULT_CATEGORICAL_FEATURES
from .model import TsunamiRiskModel

logger = logging.getLogger(__name__)

DEFAULT_RISK_BANDS = {'moderate': 0.3, 'high': 0.6}


def assign_risk_level(
    probabilities: np.ndarray,
    bands: Optional[Dict[str, float]] = None
) -> np.ndarray:
    """
    Map probabilities to 'low', 'moderate' or 'high'.

    Args:
        probabilities: Tsunami probabilities
        bands: Lower bounds for the 'moderate' and 'high' levels

    Returns:
        Array of risk level labels
    """
    bands = bands or DEFAULT_RISK_BANDS
    moderate = bands.get('moderate', DEFAULT_RISK_BANDS['moderate'])
    high = bands.get('high', DEFAULT_RISK_BANDS['high'])

    if not 0 <= moderate <= high <= 1:
        raise ValueError(f"Risk bands must satisfy 0 <= moderate <= high <= 1, got {bands}")

    probabilities = np.asarray(probabilities, dtype=float)
    return np.select(
        [probabilities >= high, probabilities >= moderate],
        ['high', 'moderate'],
        default='low'
    )


def predict_risk(
    model: TsunamiRiskModel,
    df: pd.DataFrame,
    threshold: float = 0.5,
    bands: Optional[Dict[str, float]] = None
) -> pd.DataFrame:
    """
    Score earthquake records.

    Args:
        model: Tuned classifier
        df: Records containing the model's input columns
        threshold: Probability cut-off for the predicted class
        bands: Risk level bands

    Returns:
        Copy of df with tsunami_probability, tsunami_predicted and risk_level columns
    """
    columns = model.feature_names_in_ or list(df.columns)
    missing = [c for c in columns if c not in df.columns]
    if missing:
        raise ValueError(f"Input is missing model columns: {missing}")

    probabilities = model.predict_proba(df[columns])

    scored = df.copy()
    scored['tsunami_probability'] = probabilities
    scored['tsunami_predicted'] = (probabilities >= threshold).astype(int)
    scored['risk_level'] = assign_risk_level(probabilities, bands)

    return scored


def export_predictions(
    predictions: pd.DataFrame,
    output_path: str,
    include_timestamp: bool = True
) -> str:
    """
    Export predictions to CSV file.

    Args:
        predictions: Scored DataFrame from predict_risk
        output_path: Directory to save the file
        include_timestamp: Whether to add timestamp to filename

    Returns:
        Path to the saved file
    """
    output_path = Path(output_path)
    output_path.mkdir(parents=True, exist_ok=True)

    if include_timestamp:
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        filename = f"tsunami_predictions_{timestamp}.csv"
    else:
        filename = "tsunami_predictions.csv"

    filepath = output_path / filename
    predictions.to_csv(filepath, index=False)

    logger.info(f"Predictions exported to {filepath}")
    return str(filepath)


def generate_prediction_report(
    predictions: pd.DataFrame,
    model_name: str,
    metrics: Optional[Dict[str, Any]] = None,
    output_path: Optional[str] = None
) -> Dict[str, Any]:
    """
    Generate a prediction report.

    Args:
        predictions: Scored DataFrame from predict_risk
        model_name: Name of the model used
        metrics: Test-set metrics of that model (optional)
        output_path: Path to save the report (optional)

    Returns:
        Report dictionary
    """
    risk_counts = predictions['risk_level'].value_counts()

    report = {
        'generated_at': datetime.now().isoformat(),
        'model': model_name,
        'summary': {
            'n_records': int(len(predictions)),
            'n_predicted_tsunami': int(predictions['tsunami_predicted'].sum()),
            'mean_probability': float(predictions['tsunami_probability'].mean()) if len(predictions) else 0.0,
            'risk_levels': {level: int(risk_counts.get(level, 0)) for level in ['low', 'moderate', 'high']}
        }
    }

    if metrics:
        report['historical_metrics'] = {
            key: metrics.get(key)
            for key in ['roc_auc', 'cv_auc', 'accuracy', 'sensitivity', 'specificity']
        }

    if output_path:
        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)

        with open(output_path, 'w') as f:
            json.dump(report, f, indent=2)
        logger.info(f"Prediction report saved to {output_path}")

    return report


def run_final_prediction(
    model: TsunamiRiskModel,
    df: pd.DataFrame,
    config: Optional[Dict[str, Any]] = None,
    metrics: Optional[Dict[str, Any]] = None,
    output_dir: str = "data/predictions/"
) -> Dict[str, Any]:
    """
    Execute the complete prediction workflow on raw earthquake records.

    This function:
    1. Cleans the records the same way as the training data
    2. Scores them with the model
    3. Exports predictions and a JSON report

    Args:
        model: Tuned classifier
        df: Raw records (the outcome column is optional)
        config: Configuration dictionary
        metrics: Test-set metrics of the model
        output_dir: Directory for output files

    Returns:
        Dictionary containing predictions and file paths
    """
    config = config or {}
    features = config.get('features', {})
    prediction_config = config.get('prediction', {})
    target = features.get('target', 'tsunami')

    logger.info("=" * 60)
    logger.info("STARTING RISK PREDICTION (Phase 5)")
    logger.info("=" * 60)

    numeric = features.get('numeric', DEFAULT_NUMERIC_FEATURES)
    categorical = features.get('categorical', DEFAULT_CATEGORICAL_FEATURES)

    records = clean_data(df, target=target, numeric=numeric, require_target=False)

    logger.info(f"Scoring {len(records)} records with {model.label}")
    logger.info(f"Input columns: {list(numeric) + list(categorical)}")

    predictions = predict_risk(
        model,
        records,
        threshold=prediction_config.get('threshold', 0.5),
        bands=prediction_config.get('bands', DEFAULT_RISK_BANDS)
    )

    csv_path = export_predictions(predictions, output_dir)

    report_path = Path(output_dir) / "prediction_report.json"
    report = generate_prediction_report(
        predictions, model.name, metrics, output_path=str(report_path)
    )

    result = {
        'predictions': predictions,
        'model': model.name,
        'csv_path': csv_path,
        'report_path': str(report_path),
        'report': report
    }

    logger.info("=" * 60)
    logger.info("PREDICTION COMPLETE")
    logger.info(f"  Records scored: {len(predictions)}")
    logger.info(f"  Predicted tsunamis: {report['summary']['n_predicted_tsunami']}")
    logger.info(f"  Output: {csv_path}")
    logger.info("=" * 60)

    return result


def print_prediction_results(result: Dict[str, Any], top_n: int = 10) -> None:
    """
    Print formatted prediction results to console.

    Args:
        result: Result dictionary from run_final_prediction
        top_n: Number of highest-risk records to list
    """
    summary = result['report']['summary']
    predictions = result['predictions']

    print("\n" + "=" * 70)
    print(f"TSUNAMI RISK PREDICTIONS - {result['model']}")
    print("=" * 70)
    print(f"Records scored: {summary['n_records']}")
    print(f"Predicted tsunamis: {summary['n_predicted_tsunami']}")
    print(f"Mean probability: {summary['mean_probability']:.4f}")
    print("\nRisk levels:")
    for level, count in summary['risk_levels'].items():
        print(f"  • {level}: {count}")

    shown = [c for c in ['magnitude', 'depth', 'latitude', 'longitude', 'alert'] if c in predictions.columns]
    top = predictions.sort_values('tsunami_probability', ascending=False).head(top_n)
    print(f"\nHighest-risk records (top {min(top_n, len(top))}):")
    print("-" * 70)
    print(top[shown + ['tsunami_probability', 'risk_level']].to_string(index=False))
    print("-" * 70)
    print(f"\nPredictions exported to: {result['csv_path']}")
    print(f"Full report saved to: {result['report_path']}")
    print("=" * 70 + "\n")
