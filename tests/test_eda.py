"""
Test Suite for EDA Module
==========================

Tests for exploratory plots and the EDA report.
"""

import pytest
import numpy as np
import pandas as pd
import tempfile
import os

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

import matplotlib.pyplot as plt

from tsunami_risk.eda import (
    generate_eda_report,
    plot_alert_levels,
    plot_correlation_matrix,
)


class TestPlots:
    """Tests for individual EDA figures."""

    def test_correlation_matrix(self, earthquakes):
        """Test that the correlation matrix covers numeric columns only."""
        fig, corr = plot_correlation_matrix(earthquakes)

        assert 'alert' not in corr.columns
        assert 'tsunami' in corr.columns
        assert corr.shape[0] == corr.shape[1]
        np.testing.assert_allclose(np.diag(corr.values), 1.0)
        plt.close(fig)

    def test_alert_levels_include_missing(self, earthquakes):
        """Test that missing alerts are shown as their own category."""
        fig = plot_alert_levels(earthquakes)
        labels = [t.get_text() for t in fig.axes[0].get_xticklabels()]

        assert labels[0] == 'green'
        assert labels[-1] == 'missing'
        plt.close(fig)


class TestGenerateEdaReport:
    """Tests for the complete EDA report."""

    def test_report(self, earthquakes):
        """Test figures, statistics and class balance of the report."""
        with tempfile.TemporaryDirectory() as tmpdir:
            report = generate_eda_report(earthquakes, output_dir=tmpdir)

            assert len(report['figures']) == 6
            for filename in report['figures']:
                assert os.path.exists(os.path.join(tmpdir, filename))

        assert report['data_shape'] == earthquakes.shape
        assert 'magnitude' in report['statistics']
        assert 'tsunami' not in report['statistics']
        assert sum(report['class_balance'].values()) == len(earthquakes)
        assert 'magnitude' in report['correlation_matrix']

    def test_report_without_alert_or_coordinates(self, earthquakes):
        """Test that optional figures are skipped when their columns are absent."""
        df = earthquakes.drop(columns=['alert', 'latitude', 'longitude'])

        with tempfile.TemporaryDirectory() as tmpdir:
            report = generate_eda_report(df, output_dir=tmpdir)

        assert '03_alert_levels.png' not in report['figures']
        assert '05_epicenters.png' not in report['figures']
        assert len(report['figures']) == 4


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
