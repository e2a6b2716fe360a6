"""
Tests for the synthetic price provider.
"""

from datetime import date

import numpy as np
import pandas as pd
import pytest

from ingestion.providers.synthetic_prices import (
    BENCHMARK_BASE_PRICE,
    INSTRUMENT_BASE_PRICE,
    SyntheticPriceError,
    build_price_table,
    generate_benchmark_series,
    generate_price_series,
    simulate_price_path,
)
from ingestion.transforms.normalizers import normalize_allocations
from ingestion.transforms.validators import ValidationError


@pytest.fixture
def allocations():
    return normalize_allocations([
        {'instrument_id': 'AAPL', 'weight': 0.6, 'country': 'US'},
        {'instrument_id': 'SAP', 'weight': 0.4, 'country': 'DE'},
    ])


class TestSimulatePricePath:
    """Tests for simulate_price_path function."""

    def test_length_and_base(self):
        path = simulate_price_path(np.random.default_rng(0), 10, 100.0, 0.0005, 0.01)

        assert len(path) == 10
        assert path[0] == 100.0
        assert (path > 0).all()

    def test_zero_volatility_is_pure_drift(self):
        path = simulate_price_path(np.random.default_rng(0), 4, 100.0, 0.01, 0.0)

        np.testing.assert_allclose(path, [100.0, 101.0, 102.01, 103.0301])

    def test_single_day(self):
        path = simulate_price_path(np.random.default_rng(0), 1, 50.0, 0.0, 0.01)

        assert path.tolist() == [50.0]

    def test_invalid_parameters(self):
        rng = np.random.default_rng(0)
        with pytest.raises(SyntheticPriceError, match="n_days"):
            simulate_price_path(rng, 0, 100.0, 0.0, 0.01)
        with pytest.raises(SyntheticPriceError, match="base_price"):
            simulate_price_path(rng, 5, 0.0, 0.0, 0.01)
        with pytest.raises(SyntheticPriceError, match="volatility"):
            simulate_price_path(rng, 5, 100.0, 0.0, -0.01)

    def test_non_positive_path(self):
        with pytest.raises(SyntheticPriceError, match="non-positive"):
            simulate_price_path(np.random.default_rng(0), 3, 100.0, -1.5, 0.0)


class TestGeneratePriceSeries:
    """Tests for generate_price_series function."""

    def test_one_row_per_calendar_day(self):
        prices = generate_price_series(
            ['AAPL', 'SAP'], date(2024, 2, 1), date(2024, 3, 1), rng=np.random.default_rng(1)
        )

        # 2024 is a leap year: 29 February days + March 1
        assert len(prices) == 2 * 30
        assert list(prices.columns) == ['instrument_id', 'date', 'price']
        first = prices.groupby('instrument_id')['price'].first()
        assert (first == INSTRUMENT_BASE_PRICE).all()

    def test_same_seed_same_prices(self):
        a = generate_price_series(['AAPL'], date(2024, 1, 1), date(2024, 1, 31), rng=np.random.default_rng(5))
        b = generate_price_series(['AAPL'], date(2024, 1, 1), date(2024, 1, 31), rng=np.random.default_rng(5))

        pd.testing.assert_frame_equal(a, b)

    def test_instruments_draw_independent_paths(self):
        prices = generate_price_series(
            ['AAPL', 'SAP'], date(2024, 1, 1), date(2024, 1, 31), rng=np.random.default_rng(5)
        )

        aapl = prices.loc[prices['instrument_id'] == 'AAPL', 'price'].to_numpy()
        sap = prices.loc[prices['instrument_id'] == 'SAP', 'price'].to_numpy()
        assert not np.allclose(aapl[1:], sap[1:])

    def test_start_after_end(self):
        with pytest.raises(ValidationError):
            generate_price_series(['AAPL'], date(2024, 2, 1), date(2024, 1, 1), rng=np.random.default_rng(0))

    def test_duplicate_ids(self):
        with pytest.raises(SyntheticPriceError, match="Duplicate instrument ids"):
            generate_price_series(['AAPL', 'AAPL'], date(2024, 1, 1), date(2024, 1, 2), rng=np.random.default_rng(0))

    def test_no_instruments(self):
        prices = generate_price_series([], date(2024, 1, 1), date(2024, 1, 2), rng=np.random.default_rng(0))

        assert prices.empty


class TestBenchmarkSeries:

    def test_benchmark_level(self):
        prices = generate_benchmark_series(date(2024, 1, 1), date(2024, 1, 10), rng=np.random.default_rng(2))

        assert prices['instrument_id'].unique().tolist() == ['BENCHMARK']
        assert prices['price'].iloc[0] == BENCHMARK_BASE_PRICE
        assert len(prices) == 10


class TestBuildPriceTable:
    """Tests for build_price_table function."""

    def test_joined_metadata(self, allocations):
        table = build_price_table(allocations, date(2024, 1, 1), date(2024, 1, 5), rng=np.random.default_rng(9))

        assert list(table.columns) == ['instrument_id', 'date', 'price', 'weight', 'country']
        assert len(table) == 10
        sap = table[table['instrument_id'] == 'SAP']
        assert (sap['weight'] == 0.4).all()
        assert (sap['country'] == 'DE').all()

    def test_invalid_weight(self, allocations):
        allocations.loc[0, 'weight'] = 0.0

        with pytest.raises(ValidationError, match="must be positive"):
            build_price_table(allocations, date(2024, 1, 1), date(2024, 1, 5), rng=np.random.default_rng(9))
