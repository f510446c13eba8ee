"""
Tsunami Risk Classification
============================

A machine learning pipeline that predicts tsunami risk from earthquake records.

Modules:
    - data_loader: Configuration, CSV ingestion and validation
    - cleaning: Data cleaning and feature selection
    - eda: Exploratory Data Analysis (Phase 1)
    - preprocessing: Stratified split, CV folds and the shared recipe (Phase 2)
    - model: Model registry and cross-validated grid search (Phase 3)
    - evaluation: ROC/AUC and confusion-matrix comparison (Phase 4)
    - prediction: Risk scoring for new earthquake records (Phase 5)
"""

__version__ = "1.0.0"
__author__ = "Predictive Analytics Team"
