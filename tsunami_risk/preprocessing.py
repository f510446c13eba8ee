"""
Data Preprocessing Module - Phase 2
====================================

Handles the train/test split, cross-validation folds and the shared
preprocessing recipe attached to every model.

Functions:
    - split_data: Stratified train/test splitting
    - make_cv_folds: Stratified k-fold resampling for tuning
    - build_recipe: Imputation, dummy encoding, zero-variance filter, scaling
"""

import logging
from typing import Dict, Any, Tuple, Optional, List

import pandas as pd
import numpy as np
import joblib
from sklearn.base import clone
from sklearn.compose import ColumnTransformer
from sklearn.feature_selection import VarianceThreshold
from sklearn.impute import SimpleImputer
from sklearn.model_selection import StratifiedKFold, train_test_split
from sklearn.pipeline import Pipeline
from sklearn.preprocessing import OneHotEncoder, StandardScaler

from .cleaning import ALERT_LEVELS, DEFAULT_NUMERIC_FEATURES, DEFAULT_CATEGORICAL_FEATURES

logger = logging.getLogger(__name__)


def split_data(
    df: pd.DataFrame,
    target: str = "tsunami",
    test_size: float = 0.25,
    random_state: int = 42,
    stratify: bool = True
) -> Tuple[pd.DataFrame, pd.DataFrame, pd.Series, pd.Series]:
    """
    Split data into train and test sets, stratified on the outcome.

    Args:
        df: Cleaned DataFrame including the target column
        target: Name of the outcome column
        test_size: Fraction of rows held out for testing
        random_state: Random seed for reproducibility
        stratify: Whether to preserve the class ratio in both sets

    Returns:
        Tuple of (X_train, X_test, y_train, y_test)
    """
    if not 0 < test_size < 1:
        raise ValueError(f"test_size must be in (0, 1), got {test_size}")

    X = df.drop(columns=[target])
    y = df[target]

    X_train, X_test, y_train, y_test = train_test_split(
        X, y,
        test_size=test_size,
        random_state=random_state,
        stratify=y if stratify else None
    )

    logger.info(
        f"Train/Test split: {len(X_train)} train samples, {len(X_test)} test samples "
        f"(positive rate {y_train.mean():.3f} / {y_test.mean():.3f})"
    )

    return X_train, X_test, y_train, y_test


def make_cv_folds(n_splits: int = 5, random_state: int = 42) -> StratifiedKFold:
    """Stratified, shuffled k-fold resampling of the training set."""
    if n_splits < 2:
        raise ValueError(f"n_splits must be at least 2, got {n_splits}")
    return StratifiedKFold(n_splits=n_splits, shuffle=True, random_state=random_state)


def _dummy_encoder(categories) -> Pipeline:
    """Mode imputation followed by dummy encoding with the first level dropped."""
    return Pipeline([
        ('impute', SimpleImputer(strategy='most_frequent')),
        ('dummy', OneHotEncoder(
            categories=categories,
            drop='first',
            handle_unknown='ignore',
            sparse_output=False
        ))
    ])


def build_recipe(
    numeric: Optional[List[str]] = None,
    categorical: Optional[List[str]] = None
) -> Pipeline:
    """
    Build the unfitted preprocessing recipe shared by all models.

    Steps:
        1. Numeric predictors: median imputation
        2. Categorical predictors: mode imputation, then dummy encoding
           (first level dropped, unseen levels ignored)
        3. Zero-variance filter
        4. Standardization of all predictors

    Args:
        numeric: Numeric predictor columns
        categorical: Categorical predictor columns

    Returns:
        Unfitted sklearn Pipeline
    """
    numeric = list(numeric) if numeric is not None else list(DEFAULT_NUMERIC_FEATURES)
    categorical = list(categorical) if categorical is not None else list(DEFAULT_CATEGORICAL_FEATURES)

    transformers = []
    if numeric:
        transformers.append((
            'num',
            SimpleImputer(strategy='median'),
            numeric
        ))
    if 'alert' in categorical:
        # Alert levels have a fixed order so the dropped reference level is always 'green'
        transformers.append(('alert', _dummy_encoder([ALERT_LEVELS]), ['alert']))
    other_categorical = [col for col in categorical if col != 'alert']
    if other_categorical:
        transformers.append(('cat', _dummy_encoder('auto'), other_categorical))

    if not transformers:
        raise ValueError("Recipe needs at least one numeric or categorical predictor")

    return Pipeline([
        ('columns', ColumnTransformer(transformers, verbose_feature_names_out=False)),
        ('zero_variance', VarianceThreshold(threshold=0.0)),
        ('normalize', StandardScaler())
    ])


class TsunamiPreprocessor:
    """
    Preprocessing configuration for the tsunami classification task.

    Owns the split, the cross-validation scheme and the recipe. A private copy
    of the recipe can be fitted for inspection; models always receive an
    unfitted clone so that every fold learns its own imputation and scaling.
    """

    def __init__(
        self,
        numeric: Optional[List[str]] = None,
        categorical: Optional[List[str]] = None,
        target: str = "tsunami",
        test_size: float = 0.25,
        n_splits: int = 5,
        random_state: int = 42,
        stratify: bool = True
    ):
        """
        Initialize the preprocessor.

        Args:
            numeric: Numeric predictor columns
            categorical: Categorical predictor columns
            target: Outcome column
            test_size: Fraction of data held out for testing
            n_splits: Number of cross-validation folds
            random_state: Random seed for split and folds
            stratify: Whether to stratify the split on the outcome
        """
        self.numeric = list(numeric) if numeric is not None else list(DEFAULT_NUMERIC_FEATURES)
        self.categorical = list(categorical) if categorical is not None else list(DEFAULT_CATEGORICAL_FEATURES)
        self.target = target
        self.test_size = test_size
        self.n_splits = n_splits
        self.random_state = random_state
        self.stratify = stratify

        self.fitted_recipe: Optional[Pipeline] = None
        self.feature_names: Optional[List[str]] = None
        self._is_fitted = False

    def split(self, df: pd.DataFrame) -> Tuple[pd.DataFrame, pd.DataFrame, pd.Series, pd.Series]:
        """Stratified train/test split of a cleaned frame."""
        return split_data(
            df,
            target=self.target,
            test_size=self.test_size,
            random_state=self.random_state,
            stratify=self.stratify
        )

    def folds(self) -> StratifiedKFold:
        """Cross-validation folds for tuning."""
        return make_cv_folds(self.n_splits, self.random_state)

    def recipe(self) -> Pipeline:
        """Fresh, unfitted recipe."""
        return build_recipe(self.numeric, self.categorical)

    def fit(self, X: pd.DataFrame) -> 'TsunamiPreprocessor':
        """
        Fit a copy of the recipe on training predictors.

        Args:
            X: Training predictors

        Returns:
            Self for method chaining
        """
        self.fitted_recipe = clone(self.recipe())
        self.fitted_recipe.fit(X)
        self.feature_names = list(self.fitted_recipe.get_feature_names_out())
        self._is_fitted = True
        logger.info(f"Fitted recipe: {len(self.feature_names)} model features")
        return self

    def transform(self, X: pd.DataFrame) -> np.ndarray:
        """Apply the fitted recipe."""
        if not self._is_fitted:
            raise ValueError("Preprocessor must be fitted before transform. Call fit() first.")
        return self.fitted_recipe.transform(X)

    def fit_transform(self, X: pd.DataFrame) -> np.ndarray:
        self.fit(X)
        return self.transform(X)

    def get_feature_names(self) -> List[str]:
        """
        Names of the model features produced by the recipe.

        Returns:
            List of feature names (numeric columns, then alert dummies such as 'alert_red')
        """
        if self.feature_names is None:
            raise ValueError("Preprocessor must be fitted first.")
        return list(self.feature_names)

    def save(self, filepath: str) -> None:
        """
        Save the preprocessor state to disk.

        Args:
            filepath: Path to save the preprocessor
        """
        state = {
            'numeric': self.numeric,
            'categorical': self.categorical,
            'target': self.target,
            'test_size': self.test_size,
            'n_splits': self.n_splits,
            'random_state': self.random_state,
            'stratify': self.stratify,
            'fitted_recipe': self.fitted_recipe,
            'feature_names': self.feature_names,
            '_is_fitted': self._is_fitted
        }
        joblib.dump(state, filepath)
        logger.info(f"Preprocessor saved to {filepath}")

    @classmethod
    def load(cls, filepath: str) -> 'TsunamiPreprocessor':
        """
        Load a preprocessor from disk.

        Args:
            filepath: Path to the saved preprocessor

        Returns:
            Loaded TsunamiPreprocessor instance
        """
        state = joblib.load(filepath)

        preprocessor = cls(
            numeric=state['numeric'],
            categorical=state['categorical'],
            target=state['target'],
            test_size=state['test_size'],
            n_splits=state['n_splits'],
            random_state=state['random_state'],
            stratify=state['stratify']
        )
        preprocessor.fitted_recipe = state['fitted_recipe']
        preprocessor.feature_names = state['feature_names']
        preprocessor._is_fitted = state['_is_fitted']

        logger.info(f"Preprocessor loaded from {filepath}")
        return preprocessor

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> 'TsunamiPreprocessor':
        """Build a preprocessor from the `features`, `split` and `cv` config sections."""
        features = config.get('features', {})
        split_config = config.get('split', {})
        cv_config = config.get('cv', {})

        return cls(
            numeric=features.get('numeric', DEFAULT_NUMERIC_FEATURES),
            categorical=features.get('categorical', DEFAULT_CATEGORICAL_FEATURES),
            target=features.get('target', 'tsunami'),
            test_size=split_config.get('test_size', 0.25),
            n_splits=cv_config.get('n_splits', 5),
            random_state=split_config.get('random_state', 42),
            stratify=split_config.get('stratify', True)
        )


def preprocess_pipeline(
    df: pd.DataFrame,
    config: Optional[Dict[str, Any]] = None,
    save_preprocessor: Optional[str] = None
) -> Dict[str, Any]:
    """
    Complete preprocessing pipeline for the cleaned earthquake data.

    Args:
        df: Cleaned DataFrame with predictors and target
        config: Configuration dictionary
        save_preprocessor: Path to save the fitted preprocessor

    Returns:
        Dictionary containing:
            - X_train, X_test, y_train, y_test: Split datasets
            - preprocessor: Fitted TsunamiPreprocessor
            - folds: Cross-validation splitter
            - recipe: Unfitted recipe for model workflows
            - feature_names: Names of model features
            - class_balance: Positive rate in train and test
    """
    logger.info("=" * 60)
    logger.info("STARTING DATA PREPROCESSING (Phase 2)")
    logger.info("=" * 60)

    preprocessor = TsunamiPreprocessor.from_config(config or {})

    X_train, X_test, y_train, y_test = preprocessor.split(df)

    # Fitted on training rows only
    preprocessor.fit(X_train)

    if save_preprocessor:
        preprocessor.save(save_preprocessor)

    result = {
        'X_train': X_train,
        'X_test': X_test,
        'y_train': y_train,
        'y_test': y_test,
        'preprocessor': preprocessor,
        'folds': preprocessor.folds(),
        'recipe': preprocessor.recipe(),
        'feature_names': preprocessor.get_feature_names(),
        'class_balance': {
            'train_positive_rate': float(y_train.mean()),
            'test_positive_rate': float(y_test.mean())
        }
    }

    logger.info("=" * 60)
    logger.info("PREPROCESSING COMPLETE")
    logger.info(f"  Training samples: {len(X_train)}")
    logger.info(f"  Test samples: {len(X_test)}")
    logger.info(f"  Model features: {len(result['feature_names'])}")
    logger.info(f"  CV folds: {preprocessor.n_splits}")
    logger.info("=" * 60)

    return result


def print_preprocessing_summary(result: Dict[str, Any]) -> None:
    """
    Print a summary of the preprocessing results.

    Args:
        result: Dictionary from preprocess_pipeline
    """
    preprocessor = result['preprocessor']

    print("\n" + "=" * 50)
    print("PREPROCESSING SUMMARY")
    print("=" * 50)
    print(f"Training samples: {len(result['X_train'])}")
    print(f"Test samples: {len(result['X_test'])}")
    print(f"Train positive rate: {result['class_balance']['train_positive_rate']:.3f}")
    print(f"Test positive rate: {result['class_balance']['test_positive_rate']:.3f}")
    print(f"\nModel features ({len(result['feature_names'])}):")
    print(f"  {', '.join(result['feature_names'])}")
    print(f"\nTest size: {preprocessor.test_size}")
    print(f"Stratified: {preprocessor.stratify}")
    print(f"CV folds: {preprocessor.n_splits}")
    print("=" * 50 + "\n")
