"""
Tests for returns calculation utilities.
Pure functions with deterministic synthetic data for hand verification.
"""

import math

import numpy as np
import pandas as pd
import pytest
from datetime import date, timedelta

from analysis.calculations.returns import (
    RETURN_COLUMNS,
    ReturnsError,
    calculate_returns,
    portfolio_daily_returns,
    price_returns,
    prices_from_log_returns,
)
from analysis.conventions import CONVENTION_ATTR, ConventionError


def make_prices(series, weights=None, start=date(2023, 1, 2)):
    """Build a joined price frame: {instrument: [prices]} -> rows."""
    weights = weights or {}
    rows = []
    for instrument_id, prices in series.items():
        for i, price in enumerate(prices):
            rows.append({
                'instrument_id': instrument_id,
                'date': pd.Timestamp(start + timedelta(days=i)),
                'price': price,
                'weight': weights.get(instrument_id, 1.0),
                'country': 'US'
            })
    return pd.DataFrame(rows)


class TestPriceReturns:
    """Tests for price_returns function."""

    def test_known_scenario(self):
        """Prices 100, 101, 99 give hand-checkable simple and log returns."""
        result = price_returns(make_prices({'AAA': [100.0, 101.0, 99.0]}))

        assert len(result) == 2
        assert result['simple_return'].tolist() == pytest.approx([0.01, 99.0 / 101.0 - 1])
        assert result['log_return'].tolist() == pytest.approx(
            [math.log(1.01), math.log(99.0 / 101.0)]
        )

        # Compounded simple return after day 2: 1.01 × 0.980198 - 1
        compounded = (1 + result['simple_return']).prod() - 1
        assert compounded == pytest.approx(-0.01)

    def test_first_row_per_instrument_dropped(self):
        """Boundary rows are dropped, never null-filled."""
        prices = make_prices({
            'AAA': [100.0, 101.0, 102.0, 103.0],
            'BBB': [50.0, 51.0],
            'CCC': [10.0, 11.0, 12.0]
        })

        result = price_returns(prices)

        assert len(result) == len(prices) - prices['instrument_id'].nunique()
        assert not result['simple_return'].isna().any()
        assert not result['log_return'].isna().any()
        first_dates = prices.groupby('instrument_id')['date'].min()
        for instrument_id, first in first_dates.items():
            dates = result.loc[result['instrument_id'] == instrument_id, 'date']
            assert first not in set(dates)

    def test_unsorted_input_is_sorted(self):
        """Sort order is re-established before differencing."""
        prices = make_prices({'AAA': [100.0, 110.0, 121.0]})
        shuffled = prices.iloc[[2, 0, 1]]

        result = price_returns(shuffled)

        assert result['simple_return'].tolist() == pytest.approx([0.1, 0.1])
        assert result['date'].is_monotonic_increasing

    def test_input_not_mutated(self):
        """Input frame keeps its columns and order."""
        prices = make_prices({'AAA': [100.0, 110.0]})
        before = prices.copy()

        price_returns(prices)

        pd.testing.assert_frame_equal(prices, before)

    def test_zero_price(self):
        """Zero prices make log returns undefined."""
        with pytest.raises(ReturnsError, match="Zero or negative prices"):
            price_returns(make_prices({'AAA': [100.0, 0.0, 101.0]}))

    def test_negative_price(self):
        with pytest.raises(ReturnsError, match="Zero or negative prices"):
            price_returns(make_prices({'AAA': [100.0, -5.0]}))

    def test_missing_column(self):
        with pytest.raises(ReturnsError, match="price"):
            price_returns(pd.DataFrame({'instrument_id': ['AAA'], 'date': [pd.Timestamp('2023-01-01')]}))


class TestCalculateReturns:
    """Tests for calculate_returns function."""

    def test_columns_and_convention_tag(self):
        """Output carries the ReturnRecord columns and its convention."""
        result = calculate_returns(make_prices({'AAA': [100.0, 105.0]}), 'log')

        assert list(result.columns) == RETURN_COLUMNS
        assert result.attrs[CONVENTION_ATTR] == 'log'

    def test_weighted_simple_return(self):
        """Weighted return is weight × simple return under the simple convention."""
        prices = make_prices({'AAA': [100.0, 110.0]}, weights={'AAA': 0.25})

        result = calculate_returns(prices, 'simple')

        assert result['weighted_return'].iloc[0] == pytest.approx(0.025)

    def test_weighted_log_return(self):
        """Weighted return is weight × log return under the log convention."""
        prices = make_prices({'AAA': [100.0, 110.0]}, weights={'AAA': 0.25})

        result = calculate_returns(prices, 'log')

        assert result['weighted_return'].iloc[0] == pytest.approx(0.25 * math.log(1.1))

    def test_missing_weight(self):
        prices = make_prices({'AAA': [100.0, 110.0]}).drop(columns=['weight'])

        with pytest.raises(ReturnsError, match="weight"):
            calculate_returns(prices)

    def test_unknown_convention(self):
        with pytest.raises(ConventionError, match="Unknown return convention"):
            calculate_returns(make_prices({'AAA': [100.0, 110.0]}), 'arithmetic')


class TestPortfolioDailyReturns:
    """Tests for portfolio_daily_returns function."""

    def test_equal_returns_with_unit_weights(self):
        """Weights summing to 1 with identical returns give that return."""
        weights = {'AAA': 0.4, 'BBB': 0.3, 'CCC': 0.2, 'DDD': 0.1}
        prices = make_prices(
            {k: [100.0, 101.0] for k in weights},
            weights=weights
        )

        daily = portfolio_daily_returns(calculate_returns(prices))

        assert len(daily) == 1
        assert daily['portfolio_return'].iloc[0] == pytest.approx(0.01, abs=1e-15)

    def test_sum_per_date(self):
        """Portfolio return sums weighted returns per date, ordered by date."""
        prices = make_prices(
            {'AAA': [100.0, 110.0, 121.0], 'BBB': [100.0, 90.0, 99.0]},
            weights={'AAA': 0.5, 'BBB': 0.5}
        )

        daily = portfolio_daily_returns(calculate_returns(prices))

        assert daily['date'].is_monotonic_increasing
        assert daily['portfolio_return'].tolist() == pytest.approx([0.0, 0.1])


class TestPricesFromLogReturns:
    """Round trip between prices and log returns."""

    def test_round_trip(self):
        """cumsum + exp of log returns rebuilds the original prices."""
        rng = np.random.default_rng(7)
        original = 100.0 * np.cumprod(1 + rng.normal(0.0005, 0.01, size=250))
        prices = make_prices({'AAA': list(original)})

        log_ret = price_returns(prices)['log_return'].to_numpy()
        rebuilt = prices_from_log_returns(original[0], log_ret)

        np.testing.assert_allclose(rebuilt, original, rtol=1e-10)

    def test_invalid_base_price(self):
        with pytest.raises(ReturnsError, match="base_price must be positive"):
            prices_from_log_returns(0.0, [0.01])
