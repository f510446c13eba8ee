"""
Model Training Module - Phase 3
================================

Tunes and fits the candidate tsunami classifiers.

Every model is a workflow of the shared preprocessing recipe followed by a
scikit-learn estimator. Hyperparameters are chosen by grid search over
stratified cross-validation folds, scored by ROC AUC, and the winning
configuration is refit on the full training set.

Features:
    - Registry of seven classifiers with default tuning grids
    - Grid-search tuning with configurable grid overrides
    - Model persistence (save/load) and on-disk tuning cache
    - Permutation feature importance
"""

import logging
from pathlib import Path
from typing import Dict, Any, Optional, List
from datetime import datetime

import numpy as np
import pandas as pd
import joblib
from sklearn.base import clone
from sklearn.discriminant_analysis import LinearDiscriminantAnalysis
from sklearn.ensemble import HistGradientBoostingClassifier, RandomForestClassifier
from sklearn.inspection import permutation_importance
from sklearn.linear_model import LogisticRegression
from sklearn.model_selection import GridSearchCV
from sklearn.neighbors import KNeighborsClassifier
from sklearn.pipeline import Pipeline
from sklearn.svm import SVC

logger = logging.getLogger(__name__)

MODEL_NAMES = [
    'logistic_regression',
    'lda',
    'knn',
    'random_forest',
    'boosted_trees',
    'svm_linear',
    'svm_rbf',
]

MODEL_LABELS = {
    'logistic_regression': 'Logistic Regression',
    'lda': 'Linear Discriminant Analysis',
    'knn': 'K-Nearest Neighbors',
    'random_forest': 'Random Forest',
    'boosted_trees': 'Boosted Trees',
    'svm_linear': 'SVM (Linear Kernel)',
    'svm_rbf': 'SVM (RBF Kernel)',
}

DEFAULT_PARAM_GRIDS = {
    'logistic_regression': {
        'C': [0.001, 0.01, 0.1, 1.0, 10.0, 100.0],
    },
    'lda': {
        'solver': ['lsqr'],
        'shrinkage': [None, 'auto', 0.1, 0.5],
    },
    'knn': {
        'n_neighbors': [3, 5, 7, 11, 15, 21],
        'weights': ['uniform', 'distance'],
    },
    'random_forest': {
        'n_estimators': [200, 500],
        'max_features': ['sqrt', 0.5],
        'min_samples_leaf': [1, 5, 10],
    },
    'boosted_trees': {
        'learning_rate': [0.03, 0.1, 0.3],
        'max_depth': [2, 4, None],
        'max_iter': [100, 300],
    },
    'svm_linear': {
        'C': [0.01, 0.1, 1.0, 10.0],
    },
    'svm_rbf': {
        'C': [0.1, 1.0, 10.0, 100.0],
        'gamma': ['scale', 0.01, 0.1, 1.0],
    },
}


def create_estimator(name: str, random_state: int = 42):
    """
    Create the unfitted classifier for a registered model name.

    Args:
        name: One of MODEL_NAMES
        random_state: Random seed for stochastic estimators

    Returns:
        scikit-learn classifier
    """
    if name == 'logistic_regression':
        return LogisticRegression(max_iter=1000)
    if name == 'lda':
        return LinearDiscriminantAnalysis()
    if name == 'knn':
        return KNeighborsClassifier()
    if name == 'random_forest':
        return RandomForestClassifier(random_state=random_state, n_jobs=1)
    if name == 'boosted_trees':
        return HistGradientBoostingClassifier(random_state=random_state)
    if name == 'svm_linear':
        return SVC(kernel='linear', probability=True, random_state=random_state)
    if name == 'svm_rbf':
        return SVC(kernel='rbf', probability=True, random_state=random_state)

    raise ValueError(f"Unknown model: {name}. Choose from: {', '.join(MODEL_NAMES)}")


def get_param_grid(
    name: str,
    overrides: Optional[Dict[str, Any]] = None
) -> Dict[str, List[Any]]:
    """
    Tuning grid for a model, keyed for use inside a workflow (model__<param>).

    Args:
        name: One of MODEL_NAMES
        overrides: Per-parameter values replacing the defaults

    Returns:
        Parameter grid for GridSearchCV
    """
    if name not in DEFAULT_PARAM_GRIDS:
        raise ValueError(f"Unknown model: {name}. Choose from: {', '.join(MODEL_NAMES)}")

    grid = dict(DEFAULT_PARAM_GRIDS[name])
    if overrides:
        grid.update(overrides)

    param_grid = {}
    for param, values in grid.items():
        if not isinstance(values, (list, tuple)):
            values = [values]
        if len(values) == 0:
            raise ValueError(f"Empty value list for '{param}' in {name} grid")
        param_grid[f"model__{param}"] = list(values)

    if not param_grid:
        raise ValueError(f"Tuning grid for {name} is empty")

    return param_grid


def build_workflow(name: str, recipe: Pipeline, random_state: int = 42) -> Pipeline:
    """Attach an unfitted copy of the recipe to the model's estimator."""
    return Pipeline([
        ('recipe', clone(recipe)),
        ('model', create_estimator(name, random_state))
    ])


def summarize_cv_results(cv_results: Dict[str, Any]) -> pd.DataFrame:
    """Flatten GridSearchCV results into one row per candidate, best first."""
    params = pd.DataFrame(list(cv_results['params']))
    params.columns = [c.replace('model__', '', 1) for c in params.columns]

    summary = params.assign(
        mean_auc=cv_results['mean_test_score'],
        std_auc=cv_results['std_test_score'],
        rank=cv_results['rank_test_score']
    )
    return summary.sort_values('rank').reset_index(drop=True)


class TsunamiRiskModel:
    """
    A tuned tsunami classifier.

    Wraps a recipe + estimator workflow, its grid search, and the refit of the
    best configuration on the full training data.
    """

    def __init__(
        self,
        name: str,
        param_grid: Optional[Dict[str, List[Any]]] = None,
        scoring: str = 'roc_auc',
        n_jobs: int = -1,
        random_state: int = 42
    ):
        """
        Initialize the model.

        Args:
            name: One of MODEL_NAMES
            param_grid: Tuning grid (default: registry grid for the model)
            scoring: Cross-validation metric used to pick the best candidate
            n_jobs: Number of parallel jobs for the grid search (-1 for all cores)
            random_state: Random seed for stochastic estimators
        """
        if name not in MODEL_NAMES:
            raise ValueError(f"Unknown model: {name}. Choose from: {', '.join(MODEL_NAMES)}")

        self.name = name
        self.param_grid = param_grid if param_grid is not None else get_param_grid(name)
        self.scoring = scoring
        self.n_jobs = n_jobs
        self.random_state = random_state

        self.workflow: Optional[Pipeline] = None
        self.best_params_: Optional[Dict[str, Any]] = None
        self.cv_auc_: Optional[float] = None
        self.cv_results_: Optional[pd.DataFrame] = None
        self.feature_names_in_: Optional[List[str]] = None
        self.training_info: Dict[str, Any] = {}
        self._is_fitted = False

    @property
    def label(self) -> str:
        return MODEL_LABELS[self.name]

    def fingerprint(self, X: pd.DataFrame, y: pd.Series, recipe: Pipeline, cv) -> str:
        """
        Hash of everything that determines the tuning outcome.

        Covers the training rows, the recipe, the resampling scheme, the grid,
        the scoring metric and the seed. n_jobs is left out.
        """
        return joblib.hash((
            self.name, X, y, recipe, cv,
            self.param_grid, self.scoring, self.random_state
        ))

    def fit(
        self,
        X: pd.DataFrame,
        y: pd.Series,
        recipe: Pipeline,
        cv
    ) -> 'TsunamiRiskModel':
        """
        Tune over the grid and refit the best configuration.

        Args:
            X: Training predictors
            y: Training outcome (0/1)
            recipe: Unfitted preprocessing recipe
            cv: Cross-validation splitter or number of folds

        Returns:
            Self for method chaining
        """
        start_time = datetime.now()

        n_candidates = int(np.prod([len(v) for v in self.param_grid.values()]))

        logger.info("=" * 60)
        logger.info(f"TUNING {self.label.upper()}")
        logger.info("=" * 60)
        logger.info(f"Training data shape: X={X.shape}, positives={int(np.sum(y))}")
        logger.info(f"Grid: {n_candidates} candidates, scoring={self.scoring}")
        for param, values in self.param_grid.items():
            logger.info(f"  - {param.replace('model__', '', 1)}: {values}")

        search = GridSearchCV(
            build_workflow(self.name, recipe, self.random_state),
            param_grid=self.param_grid,
            scoring=self.scoring,
            cv=cv,
            n_jobs=self.n_jobs,
            refit=True
        )
        search.fit(X, y)

        self.workflow = search.best_estimator_
        self.best_params_ = {
            k.replace('model__', '', 1): v for k, v in search.best_params_.items()
        }
        self.cv_auc_ = float(search.best_score_)
        self.cv_results_ = summarize_cv_results(search.cv_results_)
        self.feature_names_in_ = list(X.columns) if hasattr(X, 'columns') else None

        end_time = datetime.now()
        training_duration = (end_time - start_time).total_seconds()

        self.training_info = {
            'training_duration_seconds': training_duration,
            'n_samples': int(X.shape[0]),
            'n_features': int(X.shape[1]),
            'n_candidates': n_candidates,
            'trained_at': end_time.isoformat(),
            'best_params': self.best_params_,
            'cv_auc': self.cv_auc_,
            'fingerprint': self.fingerprint(X, y, recipe, cv)
        }

        self._is_fitted = True

        logger.info(f"Best parameters: {self.best_params_}")
        logger.info(f"Best CV {self.scoring}: {self.cv_auc_:.4f}")
        logger.info(f"{self.label} tuned in {training_duration:.2f} seconds")

        return self

    def _check_fitted(self) -> None:
        if not self._is_fitted:
            raise ValueError("Model must be trained before prediction. Call fit() first.")

    def predict(self, X: pd.DataFrame) -> np.ndarray:
        """Predicted class labels (0/1)."""
        self._check_fitted()
        return self.workflow.predict(X)

    def predict_proba(self, X: pd.DataFrame) -> np.ndarray:
        """
        Predicted probability of a tsunami for each row.

        Args:
            X: Predictors with the training columns

        Returns:
            Array of shape (n_samples,)
        """
        self._check_fitted()
        proba = self.workflow.predict_proba(X)
        positive_idx = list(self.workflow.classes_).index(1)
        return proba[:, positive_idx]

    def get_feature_importances(
        self,
        X: pd.DataFrame,
        y: pd.Series,
        n_repeats: int = 10
    ) -> pd.DataFrame:
        """
        Permutation importance of each input column, measured as AUC drop.

        Args:
            X: Evaluation predictors
            y: Evaluation outcome
            n_repeats: Number of shuffles per column

        Returns:
            DataFrame with feature, importance_mean, importance_std (descending)
        """
        self._check_fitted()

        result = permutation_importance(
            self.workflow, X, y,
            scoring='roc_auc',
            n_repeats=n_repeats,
            random_state=self.random_state
        )

        importances = pd.DataFrame({
            'feature': list(X.columns),
            'importance_mean': result.importances_mean,
            'importance_std': result.importances_std
        })
        return importances.sort_values('importance_mean', ascending=False).reset_index(drop=True)

    def save(self, filepath: str) -> None:
        """
        Save the tuned model to disk.

        Args:
            filepath: Path to save the model
        """
        if not self._is_fitted:
            raise ValueError("Cannot save untrained model.")

        state = {
            'name': self.name,
            'param_grid': self.param_grid,
            'scoring': self.scoring,
            'n_jobs': self.n_jobs,
            'random_state': self.random_state,
            'workflow': self.workflow,
            'best_params_': self.best_params_,
            'cv_auc_': self.cv_auc_,
            'cv_results_': self.cv_results_,
            'feature_names_in_': self.feature_names_in_,
            'training_info': self.training_info,
            '_is_fitted': self._is_fitted
        }

        Path(filepath).parent.mkdir(parents=True, exist_ok=True)
        joblib.dump(state, filepath)
        logger.info(f"Model saved to {filepath}")

    @classmethod
    def load(cls, filepath: str) -> 'TsunamiRiskModel':
        """
        Load a tuned model from disk.

        Args:
            filepath: Path to the saved model

        Returns:
            Loaded TsunamiRiskModel instance
        """
        if not Path(filepath).exists():
            raise FileNotFoundError(f"Model file not found: {filepath}")

        state = joblib.load(filepath)

        model = cls(
            state['name'],
            param_grid=state['param_grid'],
            scoring=state['scoring'],
            n_jobs=state['n_jobs'],
            random_state=state['random_state']
        )
        model.workflow = state['workflow']
        model.best_params_ = state['best_params_']
        model.cv_auc_ = state['cv_auc_']
        model.cv_results_ = state['cv_results_']
        model.feature_names_in_ = state['feature_names_in_']
        model.training_info = state['training_info']
        model._is_fitted = state['_is_fitted']

        logger.info(f"Model loaded from {filepath}")
        return model


def configure_model(name: str, config: Dict[str, Any]) -> TsunamiRiskModel:
    """Untrained model with grid, scoring, n_jobs and seed taken from config."""
    tuning_config = config.get('tuning', {})
    overrides = config.get('models', {}).get('grids', {}).get(name)

    return TsunamiRiskModel(
        name,
        param_grid=get_param_grid(name, overrides),
        scoring=tuning_config.get('scoring', 'roc_auc'),
        n_jobs=tuning_config.get('n_jobs', -1),
        random_state=config.get('split', {}).get('random_state', 42)
    )


def train_model(
    name: str,
    X_train: pd.DataFrame,
    y_train: pd.Series,
    recipe: Pipeline,
    cv,
    config: Dict[str, Any],
    save_path: Optional[str] = None
) -> TsunamiRiskModel:
    """
    Tune a single model using configuration parameters.

    Args:
        name: One of MODEL_NAMES
        X_train: Training predictors
        y_train: Training outcome
        recipe: Unfitted preprocessing recipe
        cv: Cross-validation splitter
        config: Configuration dictionary
        save_path: Path to save the tuned model (optional)

    Returns:
        Tuned TsunamiRiskModel
    """
    model = configure_model(name, config)
    model.fit(X_train, y_train, recipe, cv)

    if save_path:
        model.save(save_path)

    return model


def train_all_models(
    X_train: pd.DataFrame,
    y_train: pd.Series,
    recipe: Pipeline,
    cv,
    config: Dict[str, Any],
    use_cache: Optional[bool] = None
) -> Dict[str, TsunamiRiskModel]:
    """
    Tune every enabled model, reusing cached results where available.

    A cached model is reused only if its stored fingerprint matches the
    current training rows, recipe, folds, grid, scoring and seed.

    Args:
        X_train: Training predictors
        y_train: Training outcome
        recipe: Unfitted preprocessing recipe
        cv: Cross-validation splitter
        config: Configuration dictionary
        use_cache: Override for `tuning.use_cache`

    Returns:
        Dictionary mapping model name to tuned model, in registry order
    """
    tuning_config = config.get('tuning', {})
    names = config.get('models', {}).get('enabled', MODEL_NAMES)
    unknown = [n for n in names if n not in MODEL_NAMES]
    if unknown:
        raise ValueError(f"Unknown models in config: {unknown}. Choose from: {', '.join(MODEL_NAMES)}")

    if use_cache is None:
        use_cache = tuning_config.get('use_cache', False)
    cache_dir = Path(tuning_config.get('cache_dir', 'models/tuning/'))

    logger.info("=" * 60)
    logger.info("STARTING MODEL TUNING (Phase 3)")
    logger.info("=" * 60)

    models = {}
    for name in MODEL_NAMES:
        if name not in names:
            continue

        cache_path = cache_dir / f"{name}.joblib"
        if use_cache and cache_path.exists():
            cached = TsunamiRiskModel.load(str(cache_path))
            expected = configure_model(name, config).fingerprint(X_train, y_train, recipe, cv)
            if cached.training_info.get('fingerprint') == expected:
                logger.info(f"Reusing cached {MODEL_LABELS[name]} from {cache_path}")
                models[name] = cached
                continue
            logger.warning(
                f"Cached {MODEL_LABELS[name]} at {cache_path} was tuned on a different "
                f"grid, data or fold setup; retuning"
            )

        models[name] = train_model(
            name, X_train, y_train, recipe, cv, config,
            save_path=str(cache_path) if use_cache else None
        )

    logger.info("=" * 60)
    logger.info(f"MODEL TUNING COMPLETE: {len(models)} models")
    logger.info("=" * 60)

    return models


def select_best_model(models: Dict[str, TsunamiRiskModel]) -> str:
    """Name of the model with the highest cross-validated AUC."""
    if not models:
        raise ValueError("No models to select from.")
    return max(models, key=lambda name: models[name].cv_auc_)


def print_model_summary(model: TsunamiRiskModel) -> None:
    """
    Print a summary of a tuned model.

    Args:
        model: Tuned model instance
    """
    print("\n" + "=" * 50)
    print("MODEL SUMMARY")
    print("=" * 50)
    print(f"Model: {model.label}")
    print(f"Estimator: {type(model.workflow.named_steps['model']).__name__}")
    print(f"Best CV AUC: {model.cv_auc_:.4f}")
    print(f"\nBest hyperparameters:")
    for param, value in model.best_params_.items():
        print(f"  - {param}: {value}")

    if model.training_info:
        print(f"\nTraining Info:")
        print(f"  - Duration: {model.training_info.get('training_duration_seconds', 0.0):.2f}s")
        print(f"  - Samples: {model.training_info.get('n_samples', 'N/A')}")
        print(f"  - Candidates: {model.training_info.get('n_candidates', 'N/A')}")

    print("\nTop candidates:")
    print(model.cv_results_.head(5).to_string(index=False))
    print("=" * 50 + "\n")


def print_tuning_leaderboard(models: Dict[str, TsunamiRiskModel]) -> None:
    """Print models ranked by cross-validated AUC."""
    print("\n" + "=" * 70)
    print("TUNING LEADERBOARD (cross-validated AUC)")
    print("=" * 70)
    print(f"{'Rank':<6} {'Model':<32} {'CV AUC':<10} {'Best parameters'}")
    print("-" * 70)

    ranked = sorted(models.values(), key=lambda m: m.cv_auc_, reverse=True)
    for rank, model in enumerate(ranked, start=1):
        print(f"{rank:<6} {model.label:<32} {model.cv_auc_:<10.4f} {model.best_params_}")

    print("=" * 70 + "\n")
