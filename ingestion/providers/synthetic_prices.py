"""
Synthetic price provider - geometric random walk price series.
No network IO; the random generator is always passed in by the caller.
"""

import logging
from datetime import date
from typing import Sequence

import numpy as np
import pandas as pd

from ingestion.transforms.normalizers import join_allocations, normalize_prices
from ingestion.transforms.validators import (
    validate_allocations,
    validate_date_range,
)

logger = logging.getLogger(__name__)

INSTRUMENT_BASE_PRICE = 100.0
BENCHMARK_BASE_PRICE = 3000.0
DEFAULT_BENCHMARK_ID = 'BENCHMARK'


class SyntheticPriceError(ValueError):
    """Raised when a synthetic price series cannot be generated."""
    pass


def simulate_price_path(
    rng: np.random.Generator,
    n_days: int,
    base_price: float,
    drift: float,
    volatility: float
) -> np.ndarray:
    """
    Simulate one geometric random walk.

    Formula: P_0 = base_price, P_t = P_{t-1} × (1 + ε_t), ε_t ~ N(drift, volatility)

    Args:
        rng: Random generator (consumed: n_days - 1 draws)
        n_days: Number of prices to produce, including the base price
        base_price: Starting price level
        drift: Mean daily shock
        volatility: Standard deviation of the daily shock

    Returns:
        Array of n_days prices

    Raises:
        SyntheticPriceError: If parameters are invalid or the path reaches a
            non-positive price
    """
    if n_days < 1:
        raise SyntheticPriceError(f"n_days must be positive, got {n_days}")

    if base_price <= 0:
        raise SyntheticPriceError(f"base_price must be positive, got {base_price}")

    if volatility < 0:
        raise SyntheticPriceError(f"volatility must be non-negative, got {volatility}")

    shocks = rng.normal(loc=drift, scale=volatility, size=n_days - 1)
    growth = np.concatenate(([1.0], 1.0 + shocks))
    path = base_price * np.cumprod(growth)

    if np.any(path <= 0):
        raise SyntheticPriceError(
            f"Simulated path reached a non-positive price (drift={drift}, volatility={volatility})"
        )

    return path


def generate_price_series(
    instrument_ids: Sequence[str],
    start_date: date,
    end_date: date,
    *,
    rng: np.random.Generator,
    base_price: float = INSTRUMENT_BASE_PRICE,
    drift: float = 0.0005,
    volatility: float = 0.01
) -> pd.DataFrame:
    """
    Generate one price per instrument per calendar day in [start_date, end_date].

    Instruments draw from the generator in the order given, so the same seed
    and the same instrument order reproduce the same table.

    Args:
        instrument_ids: Instruments to simulate
        start_date: First calendar day (inclusive)
        end_date: Last calendar day (inclusive)
        rng: Random generator
        base_price: Price on start_date for every instrument
        drift: Mean daily shock
        volatility: Standard deviation of the daily shock

    Returns:
        Canonical PriceObservation frame (instrument_id, date, price)

    Raises:
        ValidationError: If start_date > end_date
        SyntheticPriceError: If instrument ids repeat or simulation fails
    """
    validate_date_range(start_date, end_date)

    if len(set(instrument_ids)) != len(instrument_ids):
        raise SyntheticPriceError(f"Duplicate instrument ids: {list(instrument_ids)}")

    dates = pd.date_range(start=start_date, end=end_date, freq='D')

    frames = []
    for instrument_id in instrument_ids:
        path = simulate_price_path(rng, len(dates), base_price, drift, volatility)
        frames.append(pd.DataFrame({
            'instrument_id': instrument_id,
            'date': dates,
            'price': path
        }))

    if not frames:
        return normalize_prices([])

    logger.debug(f"Simulated {len(dates)} days for {len(frames)} instruments")
    return normalize_prices(pd.concat(frames, ignore_index=True))


def generate_benchmark_series(
    start_date: date,
    end_date: date,
    *,
    rng: np.random.Generator,
    benchmark_id: str = DEFAULT_BENCHMARK_ID,
    base_price: float = BENCHMARK_BASE_PRICE,
    drift: float = 0.0003,
    volatility: float = 0.008
) -> pd.DataFrame:
    """
    Generate the benchmark index price series.

    Same random walk as instruments with its own level and parameters.

    Returns:
        Canonical PriceObservation frame for the single benchmark id
    """
    return generate_price_series(
        [benchmark_id],
        start_date,
        end_date,
        rng=rng,
        base_price=base_price,
        drift=drift,
        volatility=volatility
    )


def build_price_table(
    allocations: pd.DataFrame,
    start_date: date,
    end_date: date,
    *,
    rng: np.random.Generator,
    base_price: float = INSTRUMENT_BASE_PRICE,
    drift: float = 0.0005,
    volatility: float = 0.01
) -> pd.DataFrame:
    """
    Simulate prices for every allocated instrument and join the allocation metadata.

    Args:
        allocations: Canonical Allocation frame
        start_date: First calendar day (inclusive)
        end_date: Last calendar day (inclusive)
        rng: Random generator
        base_price: Starting price level
        drift: Mean daily shock
        volatility: Standard deviation of the daily shock

    Returns:
        Frame with instrument_id, date, price, weight, country

    Raises:
        ValidationError: If the date range is invalid or a weight is not positive
    """
    validate_date_range(start_date, end_date)
    validate_allocations(allocations)

    prices = generate_price_series(
        list(allocations['instrument_id']),
        start_date,
        end_date,
        rng=rng,
        base_price=base_price,
        drift=drift,
        volatility=volatility
    )

    logger.info(
        f"Built price table: {len(allocations)} instruments, {start_date} to {end_date}"
    )
    return join_allocations(prices, allocations)

