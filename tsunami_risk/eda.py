"""
Exploratory Data Analysis (EDA) Module - Phase 1
=================================================

Provides analysis and visualization of the earthquake records before modeling.

Functions:
    - plot_outcome_balance: Class counts of the tsunami outcome
    - plot_correlation_matrix: Correlation heatmap
    - plot_alert_levels: Alert level by outcome
    - plot_feature_distributions: Histograms split by outcome
    - plot_epicenters: Epicenter map colored by outcome
    - plot_box_plots: Per-feature box plots by outcome
    - generate_eda_report: Full EDA report with all visualizations
"""

import logging
from pathlib import Path
from typing import Dict, Any, List, Optional, Tuple

import pandas as pd
import numpy as np
import matplotlib.pyplot as plt
import seaborn as sns
from scipy import stats

from .cleaning import ALERT_LEVELS

logger = logging.getLogger(__name__)

# Set style for all plots
plt.style.use('seaborn-v0_8-whitegrid')
sns.set_palette("husl")

OUTCOME_LABELS = {0: 'No tsunami', 1: 'Tsunami'}


def _numeric_features(df: pd.DataFrame, target: str) -> List[str]:
    return [c for c in df.select_dtypes(include=[np.number]).columns if c != target]


def _grid_axes(n_items: int, n_cols: int, figsize: Tuple[int, int]):
    n_rows = max(1, (n_items + n_cols - 1) // n_cols)
    fig, axes = plt.subplots(n_rows, n_cols, figsize=figsize, squeeze=False)
    return fig, axes.flatten()


def plot_outcome_balance(
    df: pd.DataFrame,
    target: str = "tsunami",
    figsize: Tuple[int, int] = (7, 5),
    save_path: Optional[str] = None
) -> plt.Figure:
    """
    Bar chart of how many earthquakes did and did not produce a tsunami.

    Args:
        df: DataFrame with the outcome column
        target: Outcome column
        figsize: Figure size (width, height)
        save_path: Path to save the figure (optional)

    Returns:
        Matplotlib Figure object
    """
    counts = df[target].map(OUTCOME_LABELS).value_counts().reindex(list(OUTCOME_LABELS.values()), fill_value=0)

    fig, ax = plt.subplots(figsize=figsize)
    bars = ax.bar(counts.index, counts.values, color=['steelblue', 'coral'], alpha=0.85)

    total = counts.sum()
    for bar, value in zip(bars, counts.values):
        pct = value / total * 100 if total else 0.0
        ax.text(bar.get_x() + bar.get_width() / 2, value, f"{value} ({pct:.1f}%)",
                ha='center', va='bottom', fontsize=10)

    ax.set_ylabel('Earthquakes')
    ax.set_title('Outcome Balance', fontsize=14, fontweight='bold')
    plt.tight_layout()

    if save_path:
        plt.savefig(save_path, dpi=150, bbox_inches='tight')
        logger.info(f"Outcome balance plot saved to {save_path}")

    return fig


def plot_correlation_matrix(
    df: pd.DataFrame,
    method: str = 'pearson',
    figsize: Tuple[int, int] = (10, 8),
    save_path: Optional[str] = None
) -> Tuple[plt.Figure, pd.DataFrame]:
    """
    Create a correlation heatmap for all numerical columns (outcome included).

    Args:
        df: DataFrame with numerical data
        method: Correlation method ('pearson', 'spearman', 'kendall')
        figsize: Figure size (width, height)
        save_path: Path to save the figure (optional)

    Returns:
        Tuple of (Figure, correlation matrix DataFrame)
    """
    corr_matrix = df.select_dtypes(include=[np.number]).corr(method=method)

    fig, ax = plt.subplots(figsize=figsize)

    mask = np.triu(np.ones_like(corr_matrix, dtype=bool), k=1)
    sns.heatmap(
        corr_matrix,
        mask=mask,
        annot=True,
        fmt='.2f',
        cmap='RdYlBu_r',
        center=0,
        square=True,
        linewidths=0.5,
        cbar_kws={"shrink": 0.8, "label": "Correlation"},
        ax=ax,
        vmin=-1,
        vmax=1
    )

    ax.set_title(f'Correlation Matrix ({method.capitalize()})',
                 fontsize=14, fontweight='bold')
    plt.tight_layout()

    if save_path:
        plt.savefig(save_path, dpi=150, bbox_inches='tight')
        logger.info(f"Correlation matrix saved to {save_path}")

    return fig, corr_matrix


def plot_alert_levels(
    df: pd.DataFrame,
    target: str = "tsunami",
    column: str = "alert",
    figsize: Tuple[int, int] = (9, 5),
    save_path: Optional[str] = None
) -> plt.Figure:
    """
    Grouped bar chart of alert level by outcome; missing alerts get their own bar.

    Args:
        df: DataFrame with alert and outcome columns
        target: Outcome column
        column: Alert-level column
        figsize: Figure size
        save_path: Path to save the figure

    Returns:
        Matplotlib Figure object
    """
    levels = df[column].astype(object).where(df[column].notna(), 'missing')
    order = [lvl for lvl in ALERT_LEVELS + ['missing'] if lvl in set(levels)]

    table = pd.crosstab(levels, df[target].map(OUTCOME_LABELS)).reindex(order)

    fig, ax = plt.subplots(figsize=figsize)
    table.plot(kind='bar', ax=ax, color=['steelblue', 'coral'][:table.shape[1]], alpha=0.85)

    ax.set_xlabel('Alert level')
    ax.set_ylabel('Earthquakes')
    ax.set_title('Alert Level by Outcome', fontsize=14, fontweight='bold')
    ax.tick_params(axis='x', rotation=0)
    ax.legend(title='')
    plt.tight_layout()

    if save_path:
        plt.savefig(save_path, dpi=150, bbox_inches='tight')
        logger.info(f"Alert level plot saved to {save_path}")

    return fig


def plot_feature_distributions(
    df: pd.DataFrame,
    target: str = "tsunami",
    figsize: Tuple[int, int] = (14, 12),
    save_path: Optional[str] = None
) -> plt.Figure:
    """
    Create distribution plots (histogram + KDE) for each numeric predictor,
    split by outcome.

    Args:
        df: DataFrame with numerical predictors and outcome
        target: Outcome column
        figsize: Figure size
        save_path: Path to save the figure

    Returns:
        Matplotlib Figure object
    """
    columns = _numeric_features(df, target)
    fig, axes = _grid_axes(len(columns), 3, figsize)

    outcome = df[target].map(OUTCOME_LABELS)

    for idx, col in enumerate(columns):
        ax = axes[idx]
        data = df[[col]].assign(outcome=outcome).dropna()

        sns.histplot(data=data, x=col, hue='outcome', kde=True, ax=ax,
                     bins=30, alpha=0.5, stat='density', common_norm=False)

        # Mann-Whitney U test between outcome groups
        groups = [g[col].values for _, g in data.groupby('outcome')]
        if len(groups) == 2 and all(len(g) > 0 for g in groups):
            _, p_value = stats.mannwhitneyu(groups[0], groups[1])
            ax.set_title(f'{col} (Mann-Whitney p={p_value:.3g})', fontsize=10, fontweight='bold')
        else:
            ax.set_title(col, fontsize=10, fontweight='bold')

    for idx in range(len(columns), len(axes)):
        axes[idx].set_visible(False)

    plt.suptitle('Feature Distributions by Outcome', fontsize=14, fontweight='bold')
    plt.tight_layout()

    if save_path:
        plt.savefig(save_path, dpi=150, bbox_inches='tight')
        logger.info(f"Distribution plots saved to {save_path}")

    return fig


def plot_epicenters(
    df: pd.DataFrame,
    target: str = "tsunami",
    figsize: Tuple[int, int] = (14, 7),
    save_path: Optional[str] = None
) -> plt.Figure:
    """
    Scatter of epicenters (longitude vs latitude) colored by outcome.

    Args:
        df: DataFrame with latitude, longitude and outcome
        target: Outcome column
        figsize: Figure size
        save_path: Path to save the figure

    Returns:
        Matplotlib Figure object
    """
    data = df.assign(outcome=df[target].map(OUTCOME_LABELS))

    fig, ax = plt.subplots(figsize=figsize)

    size = 'magnitude' if 'magnitude' in data.columns else None
    sns.scatterplot(
        data=data,
        x='longitude',
        y='latitude',
        hue='outcome',
        size=size,
        sizes=(15, 150) if size else None,
        alpha=0.6,
        palette={'No tsunami': 'steelblue', 'Tsunami': 'coral'},
        ax=ax
    )

    ax.set_xlim([-180, 180])
    ax.set_ylim([-90, 90])
    ax.set_xlabel('Longitude')
    ax.set_ylabel('Latitude')
    ax.set_title('Earthquake Epicenters by Outcome', fontsize=14, fontweight='bold')
    ax.legend(loc='lower left', fontsize=8)
    plt.tight_layout()

    if save_path:
        plt.savefig(save_path, dpi=150, bbox_inches='tight')
        logger.info(f"Epicenter map saved to {save_path}")

    return fig


def plot_box_plots(
    df: pd.DataFrame,
    target: str = "tsunami",
    figsize: Tuple[int, int] = (14, 10),
    save_path: Optional[str] = None
) -> plt.Figure:
    """
    Create box plots of each numeric predictor by outcome for outlier detection.

    Args:
        df: DataFrame with numerical predictors and outcome
        target: Outcome column
        figsize: Figure size
        save_path: Path to save the figure

    Returns:
        Matplotlib Figure object
    """
    columns = _numeric_features(df, target)
    fig, axes = _grid_axes(len(columns), 4, figsize)

    data = df.assign(outcome=df[target].map(OUTCOME_LABELS))

    for idx, col in enumerate(columns):
        ax = axes[idx]
        sns.boxplot(data=data, x='outcome', y=col, hue='outcome', legend=False,
                    palette={'No tsunami': 'steelblue', 'Tsunami': 'coral'}, ax=ax)
        ax.set_xlabel('')
        ax.set_title(col, fontsize=10, fontweight='bold')

    for idx in range(len(columns), len(axes)):
        axes[idx].set_visible(False)

    plt.suptitle('Box Plots by Outcome - Outlier Detection', fontsize=14, fontweight='bold')
    plt.tight_layout()

    if save_path:
        plt.savefig(save_path, dpi=150, bbox_inches='tight')
        logger.info(f"Box plots saved to {save_path}")

    return fig


def generate_eda_report(
    df: pd.DataFrame,
    target: str = "tsunami",
    output_dir: str = "reports/figures/",
    show_plots: bool = False
) -> Dict[str, Any]:
    """
    Generate a complete EDA report with all visualizations.

    Args:
        df: Cleaned DataFrame to analyze
        target: Outcome column
        output_dir: Directory to save figures
        show_plots: Whether to display plots interactively

    Returns:
        Dictionary containing EDA results and file paths
    """
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    report = {
        "data_shape": df.shape,
        "columns": list(df.columns),
        "figures": [],
        "correlation_matrix": None,
        "statistics": {},
        "class_balance": {}
    }

    logger.info("=" * 60)
    logger.info("STARTING EXPLORATORY DATA ANALYSIS (Phase 1)")
    logger.info("=" * 60)

    # 1. Outcome balance
    logger.info("Plotting outcome balance...")
    plot_outcome_balance(df, target, save_path=str(output_dir / "01_outcome_balance.png"))
    report["figures"].append("01_outcome_balance.png")

    # 2. Correlation Matrix
    logger.info("Computing correlation matrix...")
    _, corr_matrix = plot_correlation_matrix(
        df,
        save_path=str(output_dir / "02_correlation_matrix.png")
    )
    report["figures"].append("02_correlation_matrix.png")
    report["correlation_matrix"] = corr_matrix.to_dict()

    # 3. Alert levels
    if 'alert' in df.columns:
        logger.info("Plotting alert levels...")
        plot_alert_levels(df, target, save_path=str(output_dir / "03_alert_levels.png"))
        report["figures"].append("03_alert_levels.png")

    # 4. Distributions
    logger.info("Plotting distributions...")
    plot_feature_distributions(df, target, save_path=str(output_dir / "04_distributions.png"))
    report["figures"].append("04_distributions.png")

    # 5. Epicenters
    if {'latitude', 'longitude'} <= set(df.columns):
        logger.info("Mapping epicenters...")
        plot_epicenters(df, target, save_path=str(output_dir / "05_epicenters.png"))
        report["figures"].append("05_epicenters.png")

    # 6. Box Plots (Outliers)
    logger.info("Creating box plots for outlier detection...")
    plot_box_plots(df, target, save_path=str(output_dir / "06_box_plots.png"))
    report["figures"].append("06_box_plots.png")

    for col in _numeric_features(df, target):
        report["statistics"][col] = {
            "mean": float(df[col].mean()),
            "std": float(df[col].std()),
            "min": float(df[col].min()),
            "max": float(df[col].max()),
            "skew": float(df[col].skew()),
            "mean_tsunami": float(df.loc[df[target] == 1, col].mean()),
            "mean_no_tsunami": float(df.loc[df[target] == 0, col].mean())
        }

    report["class_balance"] = {
        str(k): int(v) for k, v in df[target].value_counts().sort_index().items()
    }

    if show_plots:
        plt.show()
    else:
        plt.close('all')

    logger.info("=" * 60)
    logger.info("EDA COMPLETE - All figures saved to: %s", output_dir)
    logger.info("=" * 60)

    return report


def print_correlation_insights(
    corr_matrix: pd.DataFrame,
    target: str = "tsunami",
    threshold: float = 0.5
) -> None:
    """
    Print insights about strongly correlated predictors and their link to the outcome.

    Args:
        corr_matrix: Correlation matrix DataFrame
        target: Outcome column
        threshold: Correlation threshold for "strong" correlation
    """
    print("\n" + "=" * 50)
    print("CORRELATION INSIGHTS")
    print("=" * 50)

    predictors = [c for c in corr_matrix.columns if c != target]

    strong_corr = []
    for i in range(len(predictors)):
        for j in range(i + 1, len(predictors)):
            corr_val = corr_matrix.loc[predictors[i], predictors[j]]
            if abs(corr_val) >= threshold:
                strong_corr.append({
                    "col1": predictors[i],
                    "col2": predictors[j],
                    "correlation": corr_val
                })

    if strong_corr:
        print(f"\nStrongly correlated predictors (|r| >= {threshold}):")
        for item in sorted(strong_corr, key=lambda x: abs(x["correlation"]), reverse=True):
            direction = "positive" if item["correlation"] > 0 else "negative"
            print(f"  • {item['col1']} ↔ {item['col2']}: {item['correlation']:.3f} ({direction})")
        print("\n  - Collinear predictors may destabilize LDA and logistic coefficients")
    else:
        print(f"\nNo strongly correlated predictors (|r| >= {threshold})")

    if target in corr_matrix.columns:
        with_target = corr_matrix[target].drop(target).dropna()
        ranked = with_target.reindex(with_target.abs().sort_values(ascending=False).index)
        print(f"\nCorrelation with '{target}':")
        for col, value in ranked.items():
            print(f"  • {col}: {value:+.3f}")

    print("=" * 50 + "\n")
