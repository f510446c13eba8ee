"""
Test Suite for Cleaning Module
================================

Tests for alert normalization, outcome cleaning and feature selection.
"""

import pytest
import numpy as np
import pandas as pd

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

from tsunami_risk.cleaning import (
    ALERT_LEVELS,
    clean_data,
    impute_alert_mode,
    normalize_alert,
    prepare_dataset,
    select_features,
)


class TestNormalizeAlert:
    """Tests for alert label normalization."""

    def test_case_and_whitespace(self):
        """Test that labels are lower-cased and stripped."""
        result = normalize_alert(pd.Series([' Green', 'YELLOW ', 'Orange', 'red']))
        assert list(result) == ALERT_LEVELS

    def test_blank_and_unknown_become_missing(self):
        """Test that blanks, None and unknown labels become NaN."""
        result = normalize_alert(pd.Series(['', None, 'purple', np.nan, 'green']))

        assert result.isna().tolist() == [True, True, True, True, False]
        assert result.iloc[4] == 'green'


class TestCleanData:
    """Tests for raw frame cleaning."""

    @pytest.fixture
    def raw(self):
        """Small raw frame with the usual defects."""
        return pd.DataFrame({
            ' Magnitude ': [7.0, '7.5', 'n/a', 8.1, 8.1],
            'Alert': ['green', ' RED', '', 'yellow', 'yellow'],
            'Tsunami': [0, 1, 1, '1', '1'],
            'title': ['a', 'b', 'c', 'd', 'd'],
        })

    def test_column_names_normalized(self, raw):
        """Test that column names are stripped and lower-cased."""
        df = clean_data(raw, numeric=['magnitude'])
        assert list(df.columns) == ['magnitude', 'alert', 'tsunami', 'title']

    def test_values_coerced(self, raw):
        """Test numeric coercion and alert normalization."""
        df = clean_data(raw, numeric=['magnitude'])

        assert df['magnitude'].dtype == float
        assert np.isnan(df.loc[2, 'magnitude'])
        assert df.loc[1, 'alert'] == 'red'
        assert pd.isna(df.loc[2, 'alert'])
        assert df['tsunami'].dtype == int

    def test_duplicates_removed(self, raw):
        """Test that identical records are dropped."""
        df = clean_data(raw, numeric=['magnitude'])
        assert len(df) == 4

    def test_invalid_outcome_removed(self, raw):
        """Test that rows with a non 0/1 outcome are dropped."""
        raw.loc[0, 'Tsunami'] = 3
        raw.loc[1, 'Tsunami'] = None
        df = clean_data(raw, numeric=['magnitude'])

        assert set(df['tsunami']) == {1}
        assert len(df) == 2

    def test_missing_target(self, raw):
        """Test that a missing outcome raises ValueError."""
        with pytest.raises(ValueError, match="Target column"):
            clean_data(raw.drop(columns=['Tsunami']))

    def test_records_without_target(self, raw):
        """Test that new records can be cleaned without an outcome."""
        df = clean_data(raw.drop(columns=['Tsunami']), numeric=['magnitude'], require_target=False)

        assert len(df) == 5
        assert 'tsunami' not in df.columns
        assert df.loc[1, 'alert'] == 'red'


class TestSelectFeatures:
    """Tests for predictor selection."""

    def test_select_features(self, raw_earthquakes):
        """Test that only predictors and outcome remain."""
        df = select_features(clean_data(raw_earthquakes))

        assert df.shape[1] == 12
        assert 'title' not in df.columns
        assert 'country' not in df.columns
        assert df.columns[-1] == 'tsunami'

    def test_missing_configured_column(self, raw_earthquakes):
        """Test that a configured column absent from the data raises ValueError."""
        with pytest.raises(ValueError, match="missing from data"):
            select_features(clean_data(raw_earthquakes), numeric=['magnitude', 'rupture_length'])

    def test_prepare_dataset(self, raw_earthquakes, small_config):
        """Test cleaning and selection driven by configuration."""
        df = prepare_dataset(raw_earthquakes, small_config)

        assert list(df.columns) == (
            small_config['features']['numeric'] + ['alert', 'tsunami']
        )
        assert set(df['alert'].dropna()) <= set(ALERT_LEVELS)


class TestImputeAlertMode:
    """Tests for mode imputation of alert levels."""

    def test_impute(self):
        """Test that missing levels take the most frequent level."""
        df = pd.DataFrame({'alert': ['green', 'green', 'red', np.nan]})
        result = impute_alert_mode(df)

        assert result['alert'].tolist() == ['green', 'green', 'red', 'green']
        assert df['alert'].isna().sum() == 1

    def test_no_observed_levels(self):
        """Test that an all-missing column raises ValueError."""
        with pytest.raises(ValueError, match="no observed values"):
            impute_alert_mode(pd.DataFrame({'alert': [np.nan, np.nan]}))


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
