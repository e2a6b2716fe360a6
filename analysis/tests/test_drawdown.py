"""
Tests for drawdown calculation utilities.
"""

from datetime import date

import numpy as np
import pandas as pd
import pytest

from analysis.calculations.drawdown import (
    DRAWDOWN_COLUMNS,
    DrawdownError,
    drawdown_series,
    drawdown_stats,
    max_drawdown_stats,
)


def cumulative_frame(values, label='Portfolio', start='2023-01-02'):
    return pd.DataFrame({
        'label': label,
        'date': pd.date_range(start=start, periods=len(values), freq='D'),
        'cumulative_return': values
    })


class TestDrawdownSeries:
    """Tests for drawdown_series function."""

    def test_known_scenario(self):
        """Cumulative 0, 0.10, 0.05, 0.20 gives drawdown 0, 0, -0.05, 0."""
        result = drawdown_series(cumulative_frame([0.0, 0.10, 0.05, 0.20]))

        assert list(result.columns) == DRAWDOWN_COLUMNS
        assert result['running_peak'].tolist() == pytest.approx([0.0, 0.10, 0.10, 0.20])
        assert result['drawdown'].tolist() == pytest.approx([0.0, 0.0, -0.05, 0.0])

    def test_never_positive(self):
        """Drawdown is <= 0 everywhere and 0 exactly at new running peaks."""
        rng = np.random.default_rng(21)
        values = np.cumsum(rng.normal(0.0, 0.02, size=200))

        result = drawdown_series(cumulative_frame(values))

        assert (result['drawdown'] <= 0).all()
        at_peak = result['cumulative_return'] == result['running_peak']
        assert (result.loc[at_peak, 'drawdown'] == 0).all()
        assert (result.loc[~at_peak, 'drawdown'] < 0).all()

    def test_peak_resets_per_label(self):
        performance = pd.concat([
            cumulative_frame([0.0, 0.5, 0.4], label='Portfolio'),
            cumulative_frame([-0.1, -0.2, -0.15], label='Benchmark'),
        ], ignore_index=True)

        result = drawdown_series(performance)
        bench = result[result['label'] == 'Benchmark']

        assert bench['running_peak'].tolist() == pytest.approx([-0.1, -0.1, -0.1])
        assert bench['drawdown'].tolist() == pytest.approx([0.0, -0.1, -0.05])

    def test_without_label_column(self):
        frame = cumulative_frame([0.0, 0.1, 0.05]).drop(columns=['label'])

        result = drawdown_series(frame)

        assert result['drawdown'].tolist() == pytest.approx([0.0, 0.0, -0.05])

    def test_nan_rejected(self):
        with pytest.raises(DrawdownError, match="NaN"):
            drawdown_series(cumulative_frame([0.0, np.nan]))

    def test_missing_column(self):
        with pytest.raises(DrawdownError, match="cumulative_return"):
            drawdown_series(pd.DataFrame({'date': [pd.Timestamp('2023-01-02')]}))


class TestDrawdownStats:
    """Tests for drawdown_stats function."""

    def test_peak_trough_recovery(self):
        result = drawdown_stats(drawdown_series(cumulative_frame([0.0, 0.10, 0.05, 0.20])))

        assert result['max_drawdown'] == pytest.approx(-0.05)
        assert result['peak_date'] == date(2023, 1, 3)
        assert result['trough_date'] == date(2023, 1, 4)
        assert result['recovery_date'] == date(2023, 1, 5)
        assert result['drawdown_days'] == 1
        assert result['recovery_days'] == 1

    def test_no_recovery(self):
        result = drawdown_stats(drawdown_series(cumulative_frame([0.0, 0.2, -0.1, 0.1])))

        assert result['max_drawdown'] == pytest.approx(-0.3)
        assert result['peak_date'] == date(2023, 1, 3)
        assert result['recovery_date'] is None
        assert result['recovery_days'] is None

    def test_monotonic_rise(self):
        result = drawdown_stats(drawdown_series(cumulative_frame([0.0, 0.1, 0.2])))

        assert result['max_drawdown'] == 0.0
        assert result['drawdown_days'] == 0

    def test_empty(self):
        with pytest.raises(DrawdownError, match="empty"):
            drawdown_stats(pd.DataFrame(columns=DRAWDOWN_COLUMNS))

    def test_stats_per_label(self):
        performance = pd.concat([
            cumulative_frame([0.0, 0.5, 0.4], label='Portfolio'),
            cumulative_frame([0.0, -0.2, -0.1], label='Benchmark'),
        ], ignore_index=True)

        stats = max_drawdown_stats(drawdown_series(performance))

        assert [s['label'] for s in stats] == ['Benchmark', 'Portfolio']
        assert stats[0]['max_drawdown'] == pytest.approx(-0.2)
        assert stats[1]['max_drawdown'] == pytest.approx(-0.1)

    def test_stats_for_unlabeled_series(self):
        """A series without a label column still yields one stats entry."""
        frame = cumulative_frame([0.0, 0.10, 0.05, 0.20]).drop(columns=['label'])

        stats = max_drawdown_stats(drawdown_series(frame))

        assert len(stats) == 1
        assert stats[0]['label'] is None
        assert stats[0]['max_drawdown'] == pytest.approx(-0.05)
        assert stats[0]['trough_date'] == date(2023, 1, 4)
