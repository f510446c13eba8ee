#!/usr/bin/env python3
"""
Tsunami Risk Classification - Main Pipeline
============================================

Orchestrates the complete ML pipeline for predicting tsunami risk from
earthquake records.

Phases:
    1. EDA - Exploratory Data Analysis
    2. Preprocessing - Cleaning, stratified split, CV folds, shared recipe
    3. Training - Grid-search tuning of seven classifiers by CV AUC
    4. Evaluation - ROC/AUC and confusion-matrix comparison on the test set
    5. Prediction - Score earthquake records with the selected model

Usage:
    # Run complete pipeline
    python main.py --data data/raw/earthquake_1995-2023.csv

    # Run specific phase
    python main.py --data data/raw/earthquake_1995-2023.csv --phase eda

    # Score new records with the saved model
    python main.py --data data/raw/earthquake_1995-2023.csv --phase predict --input new_quakes.csv

    # Retune everything, ignoring cached models
    python main.py --data data/raw/earthquake_1995-2023.csv --no-cache
"""

import argparse
import logging
import sys
from pathlib import Path
from datetime import datetime
from typing import Dict, Any, Optional

import pandas as pd

from tsunami_risk.data_loader import load_config, load_data, validate_data, print_data_summary
from tsunami_risk.cleaning import prepare_dataset
from tsunami_risk.eda import generate_eda_report, print_correlation_insights
from tsunami_risk.preprocessing import preprocess_pipeline, print_preprocessing_summary
from tsunami_risk.model import (
    TsunamiRiskModel,
    train_all_models,
    select_best_model,
    print_model_summary,
    print_tuning_leaderboard,
)
from tsunami_risk.evaluation import evaluate_models, print_evaluation_report
from tsunami_risk.prediction import run_final_prediction, print_prediction_results


def _log_level(level: Any) -> int:
    """Numeric level for a name such as 'debug'; unknown names fall back to INFO."""
    value = getattr(logging, str(level).upper(), None)
    return value if isinstance(value, int) else logging.INFO


def setup_logging(level: str = "INFO") -> None:
    """Configure logging for the pipeline."""
    logging.basicConfig(
        level=_log_level(level),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.StreamHandler(sys.stdout),
            logging.FileHandler(f'pipeline_{datetime.now().strftime("%Y%m%d_%H%M%S")}.log')
        ]
    )


def apply_config_log_level(config: Dict[str, Any]) -> None:
    """Set the root level from the `logging.level` config entry."""
    logging.getLogger().setLevel(_log_level(config.get('logging', {}).get('level', 'INFO')))


def _target(config: Dict[str, Any]) -> str:
    return config.get('features', {}).get('target', 'tsunami')


def run_eda(df: pd.DataFrame, config: Dict[str, Any]) -> Dict[str, Any]:
    """
    Execute Phase 1: Exploratory Data Analysis.

    Args:
        df: Cleaned data
        config: Configuration dictionary

    Returns:
        EDA report dictionary
    """
    print("\n" + "=" * 70)
    print("PHASE 1: EXPLORATORY DATA ANALYSIS")
    print("=" * 70)

    output_dir = config.get('output', {}).get('figures_path', 'reports/figures/')

    report = generate_eda_report(df, target=_target(config), output_dir=output_dir, show_plots=False)

    corr_df = pd.DataFrame(report["correlation_matrix"])
    print_correlation_insights(corr_df, target=_target(config))

    print(f"\n✓ EDA complete. {len(report['figures'])} figures saved to {output_dir}")

    return report


def run_preprocessing(df: pd.DataFrame, config: Dict[str, Any]) -> Dict[str, Any]:
    """
    Execute Phase 2: Data Preprocessing.

    Args:
        df: Cleaned data
        config: Configuration dictionary

    Returns:
        Preprocessing result dictionary
    """
    print("\n" + "=" * 70)
    print("PHASE 2: DATA PREPROCESSING")
    print("=" * 70)

    preprocessor_path = config.get('output', {}).get('preprocessor_path')
    if preprocessor_path:
        Path(preprocessor_path).parent.mkdir(parents=True, exist_ok=True)

    result = preprocess_pipeline(df, config, save_preprocessor=preprocessor_path)

    print_preprocessing_summary(result)

    return result


def run_training(
    prep_result: Dict[str, Any],
    config: Dict[str, Any],
    use_cache: Optional[bool] = None
) -> Dict[str, TsunamiRiskModel]:
    """
    Execute Phase 3: Model Tuning.

    Args:
        prep_result: Preprocessing result dictionary
        config: Configuration dictionary
        use_cache: Override for the tuning cache setting

    Returns:
        Mapping of model name to tuned model
    """
    print("\n" + "=" * 70)
    print("PHASE 3: MODEL TUNING")
    print("=" * 70)

    models = train_all_models(
        prep_result['X_train'],
        prep_result['y_train'],
        prep_result['recipe'],
        prep_result['folds'],
        config,
        use_cache=use_cache
    )

    for model in models.values():
        print_model_summary(model)
    print_tuning_leaderboard(models)

    best_name = select_best_model(models)
    model_path = config.get('output', {}).get('model_path', 'models/best_model.joblib')
    models[best_name].save(model_path)
    print(f"✓ Best model ({models[best_name].label}) saved to {model_path}")

    return models


def run_evaluation(
    models: Dict[str, TsunamiRiskModel],
    prep_result: Dict[str, Any],
    config: Dict[str, Any]
) -> Dict[str, Any]:
    """
    Execute Phase 4: Model Evaluation.

    Args:
        models: Tuned models
        prep_result: Preprocessing result dictionary
        config: Configuration dictionary

    Returns:
        Evaluation result dictionary
    """
    print("\n" + "=" * 70)
    print("PHASE 4: MODEL EVALUATION")
    print("=" * 70)

    output_dir = config.get('output', {}).get('reports_path', 'reports/')
    eval_config = config.get('evaluation', {})

    result = evaluate_models(
        models,
        prep_result['X_test'],
        prep_result['y_test'],
        output_dir=output_dir,
        show_plots=False,
        threshold=eval_config.get('threshold', 0.5),
        importance_repeats=eval_config.get('importance_repeats', 10)
    )

    print_evaluation_report(result['metrics'], best_model=result['best_model'])

    return result


def run_prediction_phase(
    records: pd.DataFrame,
    config: Dict[str, Any],
    model: Optional[TsunamiRiskModel] = None,
    metrics: Optional[Dict[str, Any]] = None
) -> Dict[str, Any]:
    """
    Execute Phase 5: Risk Prediction.

    Args:
        records: Raw earthquake records to score
        config: Configuration dictionary
        model: Tuned model (default: load the saved best model)
        metrics: Test-set metrics of the model

    Returns:
        Prediction result dictionary
    """
    print("\n" + "=" * 70)
    print("PHASE 5: RISK PREDICTION")
    print("=" * 70)

    if model is None:
        model_path = config.get('output', {}).get('model_path', 'models/best_model.joblib')
        model = TsunamiRiskModel.load(model_path)

    output_dir = config.get('data', {}).get('predictions_path', 'data/predictions/')

    result = run_final_prediction(model, records, config, metrics=metrics, output_dir=output_dir)

    print_prediction_results(result)

    return result


def run_full_pipeline(
    data_path: str,
    config_path: str = "config/config.yaml",
    use_cache: Optional[bool] = None
) -> Dict[str, Any]:
    """
    Execute the complete 5-phase pipeline.

    Args:
        data_path: Path to input CSV file
        config_path: Path to configuration file
        use_cache: Override for the tuning cache setting

    Returns:
        Dictionary containing all phase results
    """
    print("\n" + "=" * 70)
    print("TSUNAMI RISK PIPELINE")
    print(f"Started at: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")
    print("=" * 70)

    config = load_config(config_path)
    apply_config_log_level(config)

    print("\n📊 Loading data...")
    raw_df = load_data(data_path)
    df = prepare_dataset(raw_df, config)
    print_data_summary(df, target=_target(config))

    is_valid, validation_report = validate_data(df, target=_target(config), strict=False)
    if not is_valid:
        print("⚠️  Data validation warnings detected. Proceeding anyway...")

    results = {
        'config': config,
        'data_shape': df.shape,
        'validation': validation_report
    }

    results['eda'] = run_eda(df, config)
    results['preprocessing'] = run_preprocessing(df, config)
    results['models'] = run_training(results['preprocessing'], config, use_cache=use_cache)
    results['evaluation'] = run_evaluation(results['models'], results['preprocessing'], config)

    best_name = results['evaluation']['best_model']
    results['prediction'] = run_prediction_phase(
        results['preprocessing']['X_test'],
        config,
        model=results['models'][best_name],
        metrics=results['evaluation']['metrics'][best_name]
    )

    best_metrics = results['evaluation']['metrics'][best_name]
    print("\n" + "=" * 70)
    print("PIPELINE COMPLETE")
    print("=" * 70)
    print(f"  • Input data: {df.shape[0]} rows × {df.shape[1]} columns")
    print(f"  • Models tuned: {len(results['models'])}")
    print(f"  • Best model: {results['models'][best_name].label}")
    print(f"  • CV AUC: {best_metrics['cv_auc']:.4f}")
    if best_metrics['roc_auc'] is not None:
        print(f"  • Test AUC: {best_metrics['roc_auc']:.4f}")
    print(f"  • Output: {results['prediction']['csv_path']}")
    print(f"Completed at: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")
    print("=" * 70 + "\n")

    return results


def run_single_phase(
    phase: str,
    data_path: str,
    config_path: str = "config/config.yaml",
    input_path: Optional[str] = None,
    use_cache: Optional[bool] = None
) -> Dict[str, Any]:
    """
    Execute a single phase of the pipeline.

    Args:
        phase: Phase to run ('eda', 'preprocess', 'train', 'evaluate', 'predict')
        data_path: Path to input CSV file
        config_path: Path to configuration file
        input_path: Records to score in the 'predict' phase (default: data_path)
        use_cache: Override for the tuning cache setting

    Returns:
        Phase result dictionary
    """
    config = load_config(config_path)
    apply_config_log_level(config)

    if phase == 'predict':
        records = load_data(input_path or data_path)
        return run_prediction_phase(records, config)

    df = prepare_dataset(load_data(data_path), config)

    if phase == 'eda':
        return run_eda(df, config)

    elif phase == 'preprocess':
        return run_preprocessing(df, config)

    elif phase == 'train':
        prep_result = run_preprocessing(df, config)
        return {'models': run_training(prep_result, config, use_cache), 'preprocessing': prep_result}

    elif phase == 'evaluate':
        prep_result = run_preprocessing(df, config)
        models = run_training(prep_result, config, use_cache)
        return run_evaluation(models, prep_result, config)

    else:
        raise ValueError(f"Unknown phase: {phase}. Choose from: eda, preprocess, train, evaluate, predict")


def main():
    """Main entry point with argument parsing."""
    parser = argparse.ArgumentParser(
        description="Tsunami Risk Classification Pipeline",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py --data data/raw/earthquake_1995-2023.csv
  python main.py --data data/raw/earthquake_1995-2023.csv --phase eda
  python main.py --data data/raw/earthquake_1995-2023.csv --phase predict --input new_quakes.csv
        """
    )

    parser.add_argument(
        '--data', '-d',
        type=str,
        required=True,
        help='Path to the earthquake CSV file'
    )

    parser.add_argument(
        '--config', '-c',
        type=str,
        default='config/config.yaml',
        help='Path to configuration file (default: config/config.yaml)'
    )

    parser.add_argument(
        '--phase', '-p',
        type=str,
        choices=['eda', 'preprocess', 'train', 'evaluate', 'predict', 'all'],
        default='all',
        help='Phase to run (default: all)'
    )

    parser.add_argument(
        '--input', '-i',
        type=str,
        default=None,
        help='Records to score in the predict phase (default: --data)'
    )

    parser.add_argument(
        '--no-cache',
        action='store_true',
        help='Retune all models instead of loading cached tuning results'
    )

    args = parser.parse_args()

    if not Path(args.data).exists():
        print(f"Error: Data file not found: {args.data}")
        print("\nPlace the earthquake CSV file in the specified location.")
        print("Expected columns include: magnitude, cdi, mmi, sig, nst, dmin, gap, depth, "
              "latitude, longitude, alert, tsunami")
        sys.exit(1)

    if not Path(args.config).exists():
        print(f"Error: Config file not found: {args.config}")
        sys.exit(1)

    use_cache = False if args.no_cache else None

    # Handlers exist before the config is parsed so YAML errors reach the log file
    setup_logging()

    try:
        if args.phase == 'all':
            run_full_pipeline(args.data, args.config, use_cache=use_cache)
        else:
            run_single_phase(args.phase, args.data, args.config,
                             input_path=args.input, use_cache=use_cache)

        return 0

    except Exception as e:
        logging.error(f"Pipeline failed: {e}", exc_info=True)
        print(f"\n❌ Pipeline failed: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
