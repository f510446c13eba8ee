"""
Test Suite for Evaluation Module
==================================

Tests for classification metrics, evaluation plots and the evaluation
pipeline.
"""

import pytest
import numpy as np
import pandas as pd
import tempfile
import json
import os

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

import matplotlib.pyplot as plt

from tsunami_risk.evaluation import (
    calculate_metrics,
    compute_roc_curve,
    evaluate_models,
    plot_confusion_matrices,
    plot_roc_curves,
)
from tsunami_risk.model import train_all_models


@pytest.fixture(scope="module")
def tuned_models(prepared, small_config):
    """Logistic regression and LDA tuned with the small configuration."""
    return train_all_models(
        prepared['X_train'], prepared['y_train'],
        prepared['recipe'], prepared['folds'], small_config
    )


class TestCalculateMetrics:
    """Tests for metric calculation."""

    def test_perfect_predictions(self):
        """Test metrics when probabilities separate the classes."""
        y_true = np.array([0, 0, 1, 1])
        y_prob = np.array([0.1, 0.2, 0.8, 0.9])

        metrics = calculate_metrics(y_true, y_prob)

        assert metrics['roc_auc'] == 1.0
        assert metrics['accuracy'] == 1.0
        assert metrics['sensitivity'] == 1.0
        assert metrics['specificity'] == 1.0
        assert metrics['confusion_matrix'] == [[2, 0], [0, 2]]

    def test_confusion_matrix_layout(self):
        """Test [[TN, FP], [FN, TP]] layout and derived rates."""
        y_true = np.array([0, 0, 0, 1, 1])
        y_prob = np.array([0.2, 0.7, 0.4, 0.6, 0.3])

        metrics = calculate_metrics(y_true, y_prob)

        assert metrics['confusion_matrix'] == [[2, 1], [1, 1]]
        assert metrics['sensitivity'] == pytest.approx(0.5)
        assert metrics['specificity'] == pytest.approx(2 / 3)
        assert metrics['precision'] == pytest.approx(0.5)
        assert metrics['positive_rate'] == pytest.approx(0.4)

    def test_threshold(self):
        """Test that the cut-off changes class predictions but not AUC."""
        y_true = np.array([0, 0, 1, 1])
        y_prob = np.array([0.1, 0.4, 0.35, 0.9])

        default = calculate_metrics(y_true, y_prob)
        lowered = calculate_metrics(y_true, y_prob, threshold=0.3)

        assert default['roc_auc'] == lowered['roc_auc']
        assert default['sensitivity'] == 0.5
        assert lowered['sensitivity'] == 1.0
        assert lowered['threshold'] == 0.3

    def test_single_class(self):
        """Test that AUC is undefined when only one class is present."""
        metrics = calculate_metrics(np.zeros(5), np.linspace(0.1, 0.9, 5))

        assert metrics['roc_auc'] is None
        assert metrics['confusion_matrix'] == [[2, 3], [0, 0]]
        assert metrics['sensitivity'] == 0.0

    def test_length_mismatch(self):
        """Test that mismatched inputs raise ValueError."""
        with pytest.raises(ValueError, match="Length mismatch"):
            calculate_metrics(np.array([0, 1, 1]), np.array([0.2, 0.8]))

    def test_roc_curve_endpoints(self):
        """Test that the ROC curve runs from (0, 0) to (1, 1)."""
        fpr, tpr, _ = compute_roc_curve(np.array([0, 1, 0, 1]), np.array([0.3, 0.6, 0.4, 0.9]))

        assert (fpr[0], tpr[0]) == (0.0, 0.0)
        assert (fpr[-1], tpr[-1]) == (1.0, 1.0)


class TestPlots:
    """Tests for evaluation figures."""

    def test_plot_roc_curves(self):
        """Test that one line per model plus the chance line is drawn."""
        curves = {
            'Model A': {'fpr': np.array([0, 0.5, 1]), 'tpr': np.array([0, 0.8, 1]), 'auc': 0.7},
            'Model B': {'fpr': np.array([0, 1]), 'tpr': np.array([0, 1]), 'auc': None},
        }
        fig = plot_roc_curves(curves)

        assert len(fig.axes[0].lines) == 3
        plt.close(fig)

    def test_plot_confusion_matrices_saved(self):
        """Test that the confusion-matrix figure is written to disk."""
        metrics = {'Model A': {'confusion_matrix': [[5, 1], [2, 4]]}}

        with tempfile.TemporaryDirectory() as tmpdir:
            filepath = os.path.join(tmpdir, 'cm.png')
            fig = plot_confusion_matrices(metrics, save_path=filepath)

            assert os.path.exists(filepath)
        plt.close(fig)


class TestEvaluateModels:
    """Tests for the complete evaluation pipeline."""

    def test_evaluate_models(self, tuned_models, prepared):
        """Test metrics, figures and the metrics file."""
        with tempfile.TemporaryDirectory() as tmpdir:
            result = evaluate_models(
                tuned_models, prepared['X_test'], prepared['y_test'],
                output_dir=tmpdir, importance_repeats=2
            )

            assert set(result['metrics']) == {'logistic_regression', 'lda'}
            for name, m in result['metrics'].items():
                assert m['roc_auc'] > 0.5
                assert m['cv_auc'] == tuned_models[name].cv_auc_
                assert m['n_samples'] == len(prepared['X_test'])

            for filename in result['figures']:
                assert os.path.exists(os.path.join(tmpdir, 'figures', filename))
            assert 'tuning_lda.png' in result['figures']
            assert 'eval_feature_importance.png' in result['figures']

            with open(result['metrics_file']) as f:
                saved = json.load(f)

        assert saved['best_model'] == result['best_model']
        assert result['best_model'] == max(tuned_models, key=lambda n: tuned_models[n].cv_auc_)
        assert len(result['feature_importance']) == prepared['X_test'].shape[1]

    def test_skip_importance(self, tuned_models, prepared):
        """Test that importance can be turned off."""
        with tempfile.TemporaryDirectory() as tmpdir:
            result = evaluate_models(
                tuned_models, prepared['X_test'], prepared['y_test'],
                output_dir=tmpdir, importance_repeats=0
            )

        assert result['feature_importance'] is None
        assert 'eval_feature_importance.png' not in result['figures']

    def test_no_models(self, prepared):
        """Test that an empty mapping raises ValueError."""
        with pytest.raises(ValueError, match="No models"):
            evaluate_models({}, prepared['X_test'], prepared['y_test'])


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
