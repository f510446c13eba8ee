"""
Test Suite for Model Module
=============================

Tests for the model registry, tuning grids, TsunamiRiskModel and the
tuning cache.
"""

import pytest
import numpy as np
import pandas as pd
import tempfile
import os

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

from sklearn.discriminant_analysis import LinearDiscriminantAnalysis
from sklearn.ensemble import HistGradientBoostingClassifier, RandomForestClassifier
from sklearn.linear_model import LogisticRegression
from sklearn.metrics import roc_auc_score
from sklearn.neighbors import KNeighborsClassifier
from sklearn.svm import SVC

from tsunami_risk.model import (
    DEFAULT_PARAM_GRIDS,
    MODEL_NAMES,
    TsunamiRiskModel,
    create_estimator,
    get_param_grid,
    select_best_model,
    summarize_cv_results,
    train_all_models,
)


def minimal_grid(name):
    """First value of every default parameter: a single-candidate grid."""
    return {f"model__{k}": [v[0]] for k, v in DEFAULT_PARAM_GRIDS[name].items()}


@pytest.fixture(scope="module")
def logistic_model(prepared):
    """Logistic regression tuned over a two-candidate grid."""
    model = TsunamiRiskModel(
        'logistic_regression',
        param_grid=get_param_grid('logistic_regression', {'C': [0.1, 1.0]}),
        n_jobs=1
    )
    return model.fit(prepared['X_train'], prepared['y_train'], prepared['recipe'], prepared['folds'])


class TestRegistry:
    """Tests for estimator creation and tuning grids."""

    @pytest.mark.parametrize("name,expected", [
        ('logistic_regression', LogisticRegression),
        ('lda', LinearDiscriminantAnalysis),
        ('knn', KNeighborsClassifier),
        ('random_forest', RandomForestClassifier),
        ('boosted_trees', HistGradientBoostingClassifier),
        ('svm_linear', SVC),
        ('svm_rbf', SVC),
    ])
    def test_create_estimator(self, name, expected):
        """Test that every registered name builds its classifier."""
        assert isinstance(create_estimator(name), expected)

    def test_svm_kernels_have_probabilities(self):
        """Test that both SVMs expose class probabilities."""
        linear = create_estimator('svm_linear')
        rbf = create_estimator('svm_rbf')

        assert linear.kernel == 'linear' and linear.probability
        assert rbf.kernel == 'rbf' and rbf.probability

    def test_unknown_estimator(self):
        """Test that an unknown name raises ValueError."""
        with pytest.raises(ValueError, match="Unknown model"):
            create_estimator('xgboost')

    def test_every_model_has_grid(self):
        """Test that every registered model has a non-empty default grid."""
        assert set(DEFAULT_PARAM_GRIDS) == set(MODEL_NAMES)
        for name in MODEL_NAMES:
            grid = get_param_grid(name)
            assert grid
            assert all(key.startswith('model__') for key in grid)
            assert all(len(values) > 0 for values in grid.values())

    def test_grid_overrides(self):
        """Test that overrides replace defaults and scalars become lists."""
        grid = get_param_grid('knn', {'n_neighbors': [5, 9], 'weights': 'distance'})

        assert grid['model__n_neighbors'] == [5, 9]
        assert grid['model__weights'] == ['distance']

    def test_empty_override_rejected(self):
        """Test that an empty value list raises ValueError."""
        with pytest.raises(ValueError, match="Empty value list"):
            get_param_grid('svm_rbf', {'C': []})

    def test_unknown_grid(self):
        """Test that an unknown model name raises ValueError."""
        with pytest.raises(ValueError, match="Unknown model"):
            get_param_grid('xgboost')


class TestTsunamiRiskModel:
    """Tests for TsunamiRiskModel class."""

    def test_init(self):
        """Test model initialization."""
        model = TsunamiRiskModel('knn', n_jobs=1)

        assert model.name == 'knn'
        assert model.label == 'K-Nearest Neighbors'
        assert model.param_grid == get_param_grid('knn')
        assert model._is_fitted == False

    def test_init_unknown_model(self):
        """Test that an unknown name raises ValueError."""
        with pytest.raises(ValueError, match="Unknown model"):
            TsunamiRiskModel('naive_bayes')

    def test_fit(self, logistic_model):
        """Test tuning results of a fitted model."""
        assert logistic_model._is_fitted
        assert logistic_model.best_params_['C'] in [0.1, 1.0]
        assert 0.5 < logistic_model.cv_auc_ <= 1.0
        assert len(logistic_model.cv_results_) == 2
        assert logistic_model.training_info['n_candidates'] == 2

    def test_cv_auc_matches_best_candidate(self, logistic_model):
        """Test that the reported CV AUC is the top-ranked candidate's mean."""
        best = logistic_model.cv_results_.iloc[0]
        assert best['rank'] == 1
        assert logistic_model.cv_auc_ == pytest.approx(best['mean_auc'])

    def test_predict_proba(self, logistic_model, prepared):
        """Test probability output shape and range."""
        proba = logistic_model.predict_proba(prepared['X_test'])

        assert proba.shape == (len(prepared['X_test']),)
        assert np.all((proba >= 0) & (proba <= 1))
        assert roc_auc_score(prepared['y_test'], proba) > 0.5

    def test_predict(self, logistic_model, prepared):
        """Test class predictions are 0/1."""
        predictions = logistic_model.predict(prepared['X_test'])
        assert set(np.unique(predictions)) <= {0, 1}

    def test_predict_before_fit(self, prepared):
        """Test that prediction before fitting raises ValueError."""
        model = TsunamiRiskModel('lda')
        with pytest.raises(ValueError, match="must be trained"):
            model.predict_proba(prepared['X_test'])

    def test_save_untrained(self):
        """Test that saving an untrained model raises ValueError."""
        with tempfile.TemporaryDirectory() as tmpdir:
            with pytest.raises(ValueError, match="untrained"):
                TsunamiRiskModel('lda').save(os.path.join(tmpdir, 'lda.joblib'))

    def test_save_load(self, logistic_model, prepared):
        """Test saving and loading a tuned model."""
        with tempfile.TemporaryDirectory() as tmpdir:
            filepath = os.path.join(tmpdir, 'nested', 'model.joblib')
            logistic_model.save(filepath)

            loaded = TsunamiRiskModel.load(filepath)

        assert loaded.name == 'logistic_regression'
        assert loaded.best_params_ == logistic_model.best_params_
        assert loaded.cv_auc_ == logistic_model.cv_auc_
        np.testing.assert_array_almost_equal(
            loaded.predict_proba(prepared['X_test']),
            logistic_model.predict_proba(prepared['X_test'])
        )

    def test_load_missing(self):
        """Test that loading a missing file raises FileNotFoundError."""
        with pytest.raises(FileNotFoundError):
            TsunamiRiskModel.load('does/not/exist.joblib')

    def test_feature_importances(self, logistic_model, prepared):
        """Test permutation importance covers every input column."""
        importances = logistic_model.get_feature_importances(
            prepared['X_test'], prepared['y_test'], n_repeats=2
        )

        assert list(importances.columns) == ['feature', 'importance_mean', 'importance_std']
        assert set(importances['feature']) == set(prepared['X_test'].columns)
        assert importances['importance_mean'].is_monotonic_decreasing

    @pytest.mark.parametrize("name", MODEL_NAMES)
    def test_every_model_tunes(self, name, prepared):
        """Test that each classifier tunes and beats chance in cross-validation."""
        model = TsunamiRiskModel(name, param_grid=minimal_grid(name), n_jobs=1)
        model.fit(prepared['X_train'], prepared['y_train'], prepared['recipe'], prepared['folds'])

        assert model.cv_auc_ > 0.5
        assert model.predict_proba(prepared['X_test']).shape == (len(prepared['X_test']),)


class TestCvSummary:
    """Tests for grid-search result flattening."""

    def test_summarize_cv_results(self):
        """Test that candidates are sorted by rank with the prefix removed."""
        cv_results = {
            'params': [{'model__C': 0.1}, {'model__C': 1.0}, {'model__C': 10.0}],
            'mean_test_score': np.array([0.80, 0.90, 0.85]),
            'std_test_score': np.array([0.02, 0.01, 0.03]),
            'rank_test_score': np.array([3, 1, 2]),
        }
        summary = summarize_cv_results(cv_results)

        assert list(summary.columns) == ['C', 'mean_auc', 'std_auc', 'rank']
        assert summary['C'].tolist() == [1.0, 10.0, 0.1]


class TestTrainAllModels:
    """Tests for tuning every enabled model."""

    def test_train_all_models(self, prepared, small_config):
        """Test that enabled models are tuned in registry order."""
        models = train_all_models(
            prepared['X_train'], prepared['y_train'],
            prepared['recipe'], prepared['folds'], small_config
        )

        assert list(models) == ['logistic_regression', 'lda']
        assert models['logistic_regression'].best_params_['C'] in [0.1, 1.0]

    def test_unknown_enabled_model(self, prepared, small_config):
        """Test that an unknown enabled name raises ValueError."""
        config = dict(small_config, models={'enabled': ['lda', 'catboost']})
        with pytest.raises(ValueError, match="catboost"):
            train_all_models(
                prepared['X_train'], prepared['y_train'],
                prepared['recipe'], prepared['folds'], config
            )

    def test_cache_reused(self, prepared, small_config, monkeypatch):
        """Test that cached tuning results are loaded instead of re-tuned."""
        with tempfile.TemporaryDirectory() as tmpdir:
            config = dict(
                small_config,
                tuning=dict(small_config['tuning'], use_cache=True, cache_dir=tmpdir),
                models={'enabled': ['lda']}
            )
            args = (prepared['X_train'], prepared['y_train'], prepared['recipe'], prepared['folds'])

            first = train_all_models(*args, config)
            assert os.path.exists(os.path.join(tmpdir, 'lda.joblib'))

            def fail_fit(*_args, **_kwargs):
                raise AssertionError("cached model was re-tuned")

            monkeypatch.setattr(TsunamiRiskModel, 'fit', fail_fit)
            second = train_all_models(*args, config)

            assert second['lda'].cv_auc_ == first['lda'].cv_auc_

            # Cache disabled by argument forces tuning
            with pytest.raises(AssertionError, match="re-tuned"):
                train_all_models(*args, config, use_cache=False)

    def test_cache_retuned_when_grid_changes(self, prepared, small_config):
        """Test that a cached model tuned over another grid is not reused."""
        with tempfile.TemporaryDirectory() as tmpdir:
            tuning = dict(small_config['tuning'], use_cache=True, cache_dir=tmpdir)
            args = (prepared['X_train'], prepared['y_train'], prepared['recipe'], prepared['folds'])

            first = train_all_models(*args, dict(
                small_config, tuning=tuning,
                models={'enabled': ['logistic_regression'],
                        'grids': {'logistic_regression': {'C': [0.1, 1.0]}}}
            ))
            second = train_all_models(*args, dict(
                small_config, tuning=tuning,
                models={'enabled': ['logistic_regression'],
                        'grids': {'logistic_regression': {'C': [100.0]}}}
            ))

        assert first['logistic_regression'].best_params_['C'] in [0.1, 1.0]
        assert second['logistic_regression'].best_params_['C'] == 100.0

    def test_cache_retuned_when_data_changes(self, prepared, small_config):
        """Test that a cached model tuned on other training rows is not reused."""
        with tempfile.TemporaryDirectory() as tmpdir:
            config = dict(
                small_config,
                tuning=dict(small_config['tuning'], use_cache=True, cache_dir=tmpdir),
                models={'enabled': ['lda']}
            )
            X_train, y_train = prepared['X_train'], prepared['y_train']

            train_all_models(X_train, y_train, prepared['recipe'], prepared['folds'], config)
            subset = train_all_models(
                X_train.iloc[:120], y_train.iloc[:120],
                prepared['recipe'], prepared['folds'], config
            )

        assert subset['lda'].training_info['n_samples'] == 120

    def test_fingerprint(self, prepared):
        """Test that the fingerprint tracks the grid and the resampling scheme."""
        args = (prepared['X_train'], prepared['y_train'], prepared['recipe'])
        base = TsunamiRiskModel('knn', n_jobs=1)

        assert base.fingerprint(*args, prepared['folds']) == \
            TsunamiRiskModel('knn', n_jobs=4).fingerprint(*args, prepared['folds'])
        assert base.fingerprint(*args, prepared['folds']) != base.fingerprint(*args, 5)
        assert base.fingerprint(*args, prepared['folds']) != TsunamiRiskModel(
            'knn', param_grid=get_param_grid('knn', {'n_neighbors': [9]})
        ).fingerprint(*args, prepared['folds'])


class TestSelectBestModel:
    """Tests for best-model selection."""

    def test_highest_cv_auc_wins(self):
        """Test that selection uses cross-validated AUC."""
        models = {}
        for name, auc in [('lda', 0.81), ('knn', 0.88), ('svm_rbf', 0.84)]:
            model = TsunamiRiskModel(name)
            model.cv_auc_ = auc
            models[name] = model

        assert select_best_model(models) == 'knn'

    def test_no_models(self):
        """Test that an empty mapping raises ValueError."""
        with pytest.raises(ValueError, match="No models"):
            select_best_model({})


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
