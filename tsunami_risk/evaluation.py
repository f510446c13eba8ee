"""
Model Evaluation Module - Phase 4
==================================

Compares the tuned classifiers on the held-out test set.

Features:
    - ROC AUC, accuracy, sensitivity, specificity, precision, F1
    - Overlaid ROC curves for all models
    - Confusion-matrix heatmaps
    - Cross-validated vs test AUC comparison
    - Tuning profiles and permutation importance plots
    - Evaluation report generation
"""

import logging
import json
from pathlib import Path
from typing import Dict, Any, List, Optional, Tuple

import numpy as np
import pandas as pd
import matplotlib.pyplot as plt
import seaborn as sns
from sklearn.metrics import (
    accuracy_score,
    confusion_matrix,
    f1_score,
    precision_score,
    roc_auc_score,
    roc_curve,
)

from .model import TsunamiRiskModel, select_best_model

logger = logging.getLogger(__name__)


def calculate_metrics(
    y_true: np.ndarray,
    y_prob: np.ndarray,
    threshold: float = 0.5
) -> Dict[str, Any]:
    """
    Calculate classification metrics from predicted tsunami probabilities.

    Args:
        y_true: Ground truth labels (0/1)
        y_prob: Predicted probability of the positive class
        threshold: Probability cut-off for the positive class

    Returns:
        Dictionary of scalar metrics and the 2x2 confusion matrix
        ([[TN, FP], [FN, TP]])
    """
    y_true = np.asarray(y_true).astype(int).reshape(-1)
    y_prob = np.asarray(y_prob, dtype=float).reshape(-1)

    if len(y_true) != len(y_prob):
        raise ValueError(
            f"Length mismatch: {len(y_true)} labels vs {len(y_prob)} probabilities"
        )

    y_pred = (y_prob >= threshold).astype(int)

    cm = confusion_matrix(y_true, y_pred, labels=[0, 1])
    tn, fp, fn, tp = cm.ravel()

    # AUC is undefined when only one class is present
    roc_auc = float(roc_auc_score(y_true, y_prob)) if len(np.unique(y_true)) == 2 else None

    return {
        'roc_auc': roc_auc,
        'accuracy': float(accuracy_score(y_true, y_pred)),
        'sensitivity': float(tp / (tp + fn)) if (tp + fn) else 0.0,
        'specificity': float(tn / (tn + fp)) if (tn + fp) else 0.0,
        'precision': float(precision_score(y_true, y_pred, zero_division=0)),
        'f1': float(f1_score(y_true, y_pred, zero_division=0)),
        'confusion_matrix': cm.tolist(),
        'threshold': float(threshold),
        'n_samples': int(len(y_true)),
        'positive_rate': float(y_true.mean()) if len(y_true) else 0.0
    }


def compute_roc_curve(
    y_true: np.ndarray,
    y_prob: np.ndarray
) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """False-positive rate, true-positive rate and thresholds."""
    return roc_curve(np.asarray(y_true).astype(int), np.asarray(y_prob, dtype=float))


def plot_roc_curves(
    curves: Dict[str, Dict[str, Any]],
    figsize: Tuple[int, int] = (9, 8),
    save_path: Optional[str] = None
) -> plt.Figure:
    """
    Overlay the ROC curves of all models.

    Args:
        curves: Mapping of model label to {'fpr', 'tpr', 'auc'}
        figsize: Figure size
        save_path: Path to save the figure

    Returns:
        Matplotlib Figure object
    """
    fig, ax = plt.subplots(figsize=figsize)

    palette = sns.color_palette("husl", len(curves))
    for color, (label, curve) in zip(palette, curves.items()):
        auc_text = f"{curve['auc']:.3f}" if curve.get('auc') is not None else "n/a"
        ax.plot(curve['fpr'], curve['tpr'], color=color, linewidth=2,
                label=f"{label} (AUC={auc_text})")

    ax.plot([0, 1], [0, 1], 'k--', linewidth=1, alpha=0.6, label='Chance')
    ax.set_xlim([0.0, 1.0])
    ax.set_ylim([0.0, 1.02])
    ax.set_xlabel('False Positive Rate (1 - Specificity)')
    ax.set_ylabel('True Positive Rate (Sensitivity)')
    ax.set_title('ROC Curves - Test Set', fontsize=14, fontweight='bold')
    ax.legend(loc='lower right', fontsize=9)

    plt.tight_layout()

    if save_path:
        plt.savefig(save_path, dpi=150, bbox_inches='tight')
        logger.info(f"ROC curves saved to {save_path}")

    return fig


def plot_confusion_matrices(
    metrics: Dict[str, Dict[str, Any]],
    figsize: Tuple[int, int] = (14, 8),
    save_path: Optional[str] = None
) -> plt.Figure:
    """
    Draw an annotated confusion-matrix heatmap per model.

    Args:
        metrics: Mapping of model label to metrics from calculate_metrics
        figsize: Figure size
        save_path: Path to save the figure

    Returns:
        Matplotlib Figure object
    """
    labels = list(metrics.keys())
    n_models = len(labels)
    n_cols = min(4, max(n_models, 1))
    n_rows = (n_models + n_cols - 1) // n_cols

    fig, axes = plt.subplots(n_rows, n_cols, figsize=figsize, squeeze=False)
    axes = axes.flatten()

    for idx, label in enumerate(labels):
        ax = axes[idx]
        cm = np.array(metrics[label]['confusion_matrix'])
        sns.heatmap(
            cm,
            annot=True,
            fmt='d',
            cmap='Blues',
            cbar=False,
            square=True,
            xticklabels=['No tsunami', 'Tsunami'],
            yticklabels=['No tsunami', 'Tsunami'],
            ax=ax
        )
        ax.set_xlabel('Predicted')
        ax.set_ylabel('Actual')
        ax.set_title(label, fontsize=10, fontweight='bold')

    for idx in range(n_models, len(axes)):
        axes[idx].set_visible(False)

    plt.suptitle('Confusion Matrices - Test Set', fontsize=14, fontweight='bold')
    plt.tight_layout()

    if save_path:
        plt.savefig(save_path, dpi=150, bbox_inches='tight')
        logger.info(f"Confusion matrices saved to {save_path}")

    return fig


def plot_auc_comparison(
    metrics: Dict[str, Dict[str, Any]],
    figsize: Tuple[int, int] = (12, 6),
    save_path: Optional[str] = None
) -> plt.Figure:
    """
    Bar chart of cross-validated vs test AUC for each model.

    Args:
        metrics: Mapping of model label to metrics (with 'cv_auc' and 'roc_auc')
        figsize: Figure size
        save_path: Path to save the figure

    Returns:
        Matplotlib Figure object
    """
    labels = list(metrics.keys())
    cv_values = [metrics[l].get('cv_auc') or 0.0 for l in labels]
    test_values = [metrics[l].get('roc_auc') or 0.0 for l in labels]

    fig, ax = plt.subplots(figsize=figsize)

    x = np.arange(len(labels))
    width = 0.38

    ax.bar(x - width / 2, cv_values, width, color='steelblue', alpha=0.85, label='CV AUC')
    bars = ax.bar(x + width / 2, test_values, width, color='coral', alpha=0.85, label='Test AUC')

    for bar, value in zip(bars, test_values):
        ax.text(bar.get_x() + bar.get_width() / 2, value + 0.01, f"{value:.3f}",
                ha='center', va='bottom', fontsize=8)

    ax.axhline(0.5, color='gray', linestyle=':', alpha=0.7, label='Chance')
    ax.set_xticks(x)
    ax.set_xticklabels(labels, rotation=30, ha='right')
    ax.set_ylabel('AUC')
    ax.set_ylim([0, 1.08])
    ax.set_title('Model Comparison - Area Under the ROC Curve', fontsize=14, fontweight='bold')
    ax.legend(loc='lower right')

    plt.tight_layout()

    if save_path:
        plt.savefig(save_path, dpi=150, bbox_inches='tight')
        logger.info(f"AUC comparison saved to {save_path}")

    return fig


def plot_tuning_results(
    model: TsunamiRiskModel,
    top_n: int = 20,
    figsize: Tuple[int, int] = (10, 6),
    save_path: Optional[str] = None
) -> plt.Figure:
    """
    Mean cross-validated AUC (± 1 std) for the best tuning candidates.

    Args:
        model: Tuned model
        top_n: Number of candidates to show
        figsize: Figure size
        save_path: Path to save the figure

    Returns:
        Matplotlib Figure object
    """
    results = model.cv_results_.head(top_n)
    param_cols = [c for c in results.columns if c not in ('mean_auc', 'std_auc', 'rank')]
    labels = [
        ", ".join(f"{c}={row[c]}" for c in param_cols)
        for _, row in results.iterrows()
    ]

    fig, ax = plt.subplots(figsize=figsize)

    y = np.arange(len(results))
    ax.barh(y, results['mean_auc'], xerr=results['std_auc'],
            color='steelblue', alpha=0.8, capsize=3)
    ax.set_yticks(y)
    ax.set_yticklabels(labels, fontsize=8)
    ax.invert_yaxis()
    ax.set_xlabel('Mean CV AUC')
    ax.set_xlim([max(0.0, results['mean_auc'].min() - 0.1), 1.0])
    ax.set_title(f'Tuning Results - {model.label}', fontsize=12, fontweight='bold')

    plt.tight_layout()

    if save_path:
        plt.savefig(save_path, dpi=150, bbox_inches='tight')
        logger.info(f"Tuning results plot saved to {save_path}")

    return fig


def plot_feature_importance(
    importances: pd.DataFrame,
    title: str = 'Permutation Importance',
    figsize: Tuple[int, int] = (10, 6),
    save_path: Optional[str] = None
) -> plt.Figure:
    """
    Horizontal bar chart of permutation importances.

    Args:
        importances: DataFrame from TsunamiRiskModel.get_feature_importances
        title: Plot title
        figsize: Figure size
        save_path: Path to save the figure

    Returns:
        Matplotlib Figure object
    """
    fig, ax = plt.subplots(figsize=figsize)

    sns.barplot(
        data=importances,
        x='importance_mean',
        y='feature',
        color='steelblue',
        ax=ax
    )
    ax.errorbar(
        importances['importance_mean'],
        np.arange(len(importances)),
        xerr=importances['importance_std'],
        fmt='none',
        ecolor='black',
        capsize=3
    )
    ax.axvline(0, color='gray', linewidth=0.8)
    ax.set_xlabel('Decrease in AUC when shuffled')
    ax.set_ylabel('')
    ax.set_title(title, fontsize=12, fontweight='bold')

    plt.tight_layout()

    if save_path:
        plt.savefig(save_path, dpi=150, bbox_inches='tight')
        logger.info(f"Feature importance plot saved to {save_path}")

    return fig


def evaluate_models(
    models: Dict[str, TsunamiRiskModel],
    X_test: pd.DataFrame,
    y_test: pd.Series,
    output_dir: str = "reports/",
    show_plots: bool = False,
    threshold: float = 0.5,
    importance_repeats: int = 10
) -> Dict[str, Any]:
    """
    Score every tuned model on the test set and generate all reports.

    Args:
        models: Mapping of model name to tuned model
        X_test: Test predictors
        y_test: Test outcome
        output_dir: Directory for output files
        show_plots: Whether to display plots interactively
        threshold: Probability cut-off for confusion matrices
        importance_repeats: Shuffles per column for the best model's importance

    Returns:
        Dictionary containing metrics, figure names, the metrics file and best model
    """
    if not models:
        raise ValueError("No models to evaluate.")

    output_dir = Path(output_dir)
    figures_dir = output_dir / "figures"
    metrics_dir = output_dir / "metrics"

    figures_dir.mkdir(parents=True, exist_ok=True)
    metrics_dir.mkdir(parents=True, exist_ok=True)

    logger.info("=" * 60)
    logger.info("STARTING MODEL EVALUATION (Phase 4)")
    logger.info("=" * 60)

    metrics = {}
    curves = {}
    for name, model in models.items():
        logger.info(f"Scoring {model.label} on {len(X_test)} test samples...")
        y_prob = model.predict_proba(X_test)

        model_metrics = calculate_metrics(y_test, y_prob, threshold=threshold)
        model_metrics['cv_auc'] = model.cv_auc_
        model_metrics['best_params'] = model.best_params_
        metrics[name] = model_metrics

        fpr, tpr, _ = compute_roc_curve(y_test, y_prob)
        curves[model.label] = {'fpr': fpr, 'tpr': tpr, 'auc': model_metrics['roc_auc']}

    best_name = select_best_model(models)

    metrics_file = metrics_dir / "evaluation_metrics.json"
    with open(metrics_file, 'w') as f:
        json.dump({'models': metrics, 'best_model': best_name}, f, indent=2, default=str)
    logger.info(f"Metrics saved to {metrics_file}")

    by_label = {models[name].label: m for name, m in metrics.items()}
    figures = []

    logger.info("Generating ROC curves...")
    plot_roc_curves(curves, save_path=str(figures_dir / "eval_roc_curves.png"))
    figures.append("eval_roc_curves.png")

    logger.info("Generating confusion matrices...")
    plot_confusion_matrices(by_label, save_path=str(figures_dir / "eval_confusion_matrices.png"))
    figures.append("eval_confusion_matrices.png")

    logger.info("Generating AUC comparison...")
    plot_auc_comparison(by_label, save_path=str(figures_dir / "eval_auc_comparison.png"))
    figures.append("eval_auc_comparison.png")

    for name, model in models.items():
        filename = f"tuning_{name}.png"
        plot_tuning_results(model, save_path=str(figures_dir / filename))
        figures.append(filename)

    importances = None
    if importance_repeats > 0:
        logger.info(f"Computing permutation importance for {models[best_name].label}...")
        importances = models[best_name].get_feature_importances(
            X_test, y_test, n_repeats=importance_repeats
        )
        plot_feature_importance(
            importances,
            title=f'Permutation Importance - {models[best_name].label}',
            save_path=str(figures_dir / "eval_feature_importance.png")
        )
        figures.append("eval_feature_importance.png")

    if show_plots:
        plt.show()
    else:
        plt.close('all')

    result = {
        'metrics': metrics,
        'figures': figures,
        'metrics_file': str(metrics_file),
        'best_model': best_name,
        'feature_importance': importances
    }

    logger.info("=" * 60)
    logger.info("EVALUATION COMPLETE")
    for name, m in metrics.items():
        auc_text = f"{m['roc_auc']:.4f}" if m['roc_auc'] is not None else "n/a"
        logger.info(f"  {models[name].label}: test AUC {auc_text}, CV AUC {m['cv_auc']:.4f}")
    logger.info(f"  Best model (CV AUC): {models[best_name].label}")
    logger.info("=" * 60)

    return result


def print_evaluation_report(metrics: Dict[str, Dict[str, Any]], best_model: Optional[str] = None) -> None:
    """
    Print a formatted evaluation report to console.

    Args:
        metrics: Per-model metrics from evaluate_models
        best_model: Name of the selected model (optional)
    """
    print("\n" + "=" * 86)
    print("MODEL EVALUATION REPORT")
    print("=" * 86)

    print(f"{'Model':<22} {'CV AUC':<9} {'Test AUC':<9} {'Accuracy':<9} "
          f"{'Sens.':<9} {'Spec.':<9} {'Prec.':<9} {'F1':<9}")
    print("-" * 86)

    for name, m in metrics.items():
        test_auc = f"{m['roc_auc']:.4f}" if m['roc_auc'] is not None else "n/a"
        cv_auc = f"{m['cv_auc']:.4f}" if m.get('cv_auc') is not None else "n/a"
        print(f"{name:<22} {cv_auc:<9} {test_auc:<9} {m['accuracy']:<9.4f} "
              f"{m['sensitivity']:<9.4f} {m['specificity']:<9.4f} "
              f"{m['precision']:<9.4f} {m['f1']:<9.4f}")

    print("-" * 86)

    if best_model is not None and best_model in metrics:
        best_auc = metrics[best_model]['roc_auc']
        print(f"\nSelected model: {best_model}")
        print("\nInterpretation:")
        if best_auc is None:
            print("  ⚠ Test set contains a single class - AUC undefined")
        elif best_auc > 0.9:
            print(f"  ✓ Excellent discrimination (AUC = {best_auc:.3f})")
        elif best_auc > 0.8:
            print(f"  ✓ Good discrimination (AUC = {best_auc:.3f})")
        elif best_auc > 0.7:
            print(f"  ⚠ Fair discrimination (AUC = {best_auc:.3f})")
        else:
            print(f"  ✗ Poor discrimination (AUC = {best_auc:.3f}) - revisit features")

    print("=" * 86 + "\n")
