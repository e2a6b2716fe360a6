"""
Returns calculation utilities.
Pure functions turning price observations into daily return records.
"""

import logging
from typing import Optional, Union

import numpy as np
import pandas as pd

from analysis.conventions import (
    DEFAULT_CONVENTION,
    ReturnConvention,
    parse_convention,
    resolve_convention,
    tag_convention,
)

logger = logging.getLogger(__name__)

RETURN_COLUMNS = [
    'instrument_id', 'date', 'price', 'weight', 'country',
    'simple_return', 'log_return', 'weighted_return'
]


class ReturnsError(ValueError):
    """Raised when returns calculation fails."""
    pass


def price_returns(prices: pd.DataFrame) -> pd.DataFrame:
    """
    Calculate simple and log returns per instrument.

    Formulas:
        simple: r_t = P_t / P_{t-1} - 1
        log:    r_t = ln(P_t) - ln(P_{t-1})

    Rows are (re-)sorted by (instrument_id, date). The first row of each
    instrument has no predecessor and is dropped, not null-filled.

    Args:
        prices: Frame with at least instrument_id, date, price

    Returns:
        New frame with the input columns plus simple_return and log_return

    Raises:
        ReturnsError: If any price is zero, negative or missing
    """
    for column in ('instrument_id', 'date', 'price'):
        if column not in prices.columns:
            raise ReturnsError(f"prices missing required column: {column}")

    if prices['price'].isna().any():
        raise ReturnsError("Missing prices not allowed")

    if (prices['price'] <= 0).any():
        raise ReturnsError("Zero or negative prices not allowed")

    ordered = prices.sort_values(['instrument_id', 'date']).reset_index(drop=True)

    previous = ordered.groupby('instrument_id', sort=False)['price'].shift(1)
    has_previous = previous.notna()

    result = ordered.assign(
        simple_return=ordered['price'] / previous - 1.0,
        log_return=np.log(ordered['price']) - np.log(previous)
    )
    return result.loc[has_previous].reset_index(drop=True)


def calculate_returns(
    prices: pd.DataFrame,
    convention: Union[str, ReturnConvention] = DEFAULT_CONVENTION
) -> pd.DataFrame:
    """
    Build ReturnRecord rows from a price table joined with allocations.

    weighted_return is the return of the chosen convention times the
    instrument's weight. The convention is recorded on the result so later
    aggregation applies the matching compounding rule.

    Args:
        prices: Frame with instrument_id, date, price, weight (country optional)
        convention: 'simple' or 'log'

    Returns:
        New frame with RETURN_COLUMNS; len = len(prices) - number of instruments

    Raises:
        ReturnsError: If prices are invalid or weight is missing
    """
    convention = parse_convention(convention)

    if 'weight' not in prices.columns:
        raise ReturnsError("prices missing required column: weight")

    returns = price_returns(prices)
    if 'country' not in returns.columns:
        returns['country'] = None

    returns['weighted_return'] = returns[convention.column] * returns['weight']
    returns = returns[RETURN_COLUMNS]

    logger.info(
        f"Calculated {len(returns)} {convention.value} return rows "
        f"for {prices['instrument_id'].nunique()} instruments"
    )
    return tag_convention(returns, convention)


def portfolio_daily_returns(
    returns: pd.DataFrame,
    convention: Optional[Union[str, ReturnConvention]] = None
) -> pd.DataFrame:
    """
    Sum weighted returns across instruments for each date.

    Args:
        returns: ReturnRecord frame
        convention: Optional explicit convention (must match the frame)

    Returns:
        Frame with date, portfolio_return ordered by date
    """
    convention = resolve_convention(returns, convention)

    daily = (
        returns.groupby('date', sort=True)['weighted_return']
        .sum()
        .rename('portfolio_return')
        .reset_index()
    )
    return tag_convention(daily, convention)


def prices_from_log_returns(base_price: float, log_returns) -> np.ndarray:
    """
    Rebuild a price path from log returns.

    Formula: P_t = P_0 × exp(sum of r_1..r_t)

    Returns:
        Array starting with base_price, one element longer than log_returns
    """
    if base_price <= 0:
        raise ReturnsError(f"base_price must be positive, got {base_price}")

    cumulative = np.concatenate(([0.0], np.cumsum(np.asarray(log_returns, dtype=float))))
    return base_price * np.exp(cumulative)
