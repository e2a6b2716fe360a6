"""
Volatility calculation utilities.
Realized volatility of daily log returns, scaled with the square-root-of-time rule.
"""

import logging
import math
import warnings

import numpy as np
import pandas as pd

from analysis.guardrails import DataQualityWarning

logger = logging.getLogger(__name__)

# Trading periods per horizon for sqrt-of-time scaling
TRADING_PERIODS = {
    'week': 5,
    'month': 21,
    'year': 252
}

MIN_OBSERVATIONS = 2

HORIZON_COLUMNS = {
    'week': 'weekly_vol',
    'month': 'monthly_vol',
    'year': 'yearly_vol'
}

VOLATILITY_COLUMNS = [
    'instrument_id', 'year', 'observations',
    'daily_vol', 'weekly_vol', 'monthly_vol', 'yearly_vol'
]


class VolatilityError(ValueError):
    """Raised when volatility calculation fails."""
    pass


def scale_volatility(daily_vol, horizon: str):
    """
    Scale daily volatility to a longer horizon.

    Formula: σ_h = σ_daily × √n_h

    Args:
        daily_vol: Daily volatility (scalar, array or Series)
        horizon: 'week', 'month' or 'year'

    Raises:
        VolatilityError: If horizon is unknown
    """
    if horizon not in TRADING_PERIODS:
        raise VolatilityError(f"Unknown horizon: {horizon}. Use one of {list(TRADING_PERIODS)}")
    return daily_vol * math.sqrt(TRADING_PERIODS[horizon])


def yearly_volatility(returns: pd.DataFrame, column: str = 'log_return') -> pd.DataFrame:
    """
    Realized volatility per instrument and calendar year.

    daily_vol is the sample standard deviation (ddof=1) of daily log
    returns within the year. Groups with fewer than 2 observations get NaN
    and one DataQualityWarning lists them.

    Args:
        returns: ReturnRecord frame
        column: Return column (log returns by default)

    Returns:
        Frame with VOLATILITY_COLUMNS
    """
    if column not in returns.columns:
        raise VolatilityError(f"returns missing required column: {column}")

    values = returns[column]
    if np.isinf(values).any():
        raise VolatilityError("Infinite values not allowed in returns")

    years = pd.to_datetime(returns['date']).dt.year.rename('year')
    grouped = values.groupby([returns['instrument_id'], years])

    result = pd.DataFrame({
        'observations': grouped.count(),
        'daily_vol': grouped.std(ddof=1)
    }).reset_index()

    short = result['observations'] < MIN_OBSERVATIONS
    if short.any():
        groups = list(zip(result.loc[short, 'instrument_id'], result.loc[short, 'year']))
        warnings.warn(
            f"Volatility needs at least {MIN_OBSERVATIONS} returns per group; "
            f"NaN emitted for {groups}",
            DataQualityWarning
        )
        result.loc[short, 'daily_vol'] = np.nan

    for horizon, name in HORIZON_COLUMNS.items():
        result[name] = scale_volatility(result['daily_vol'], horizon)

    logger.info(f"Calculated volatility for {len(result)} instrument-years")
    return result[VOLATILITY_COLUMNS]


def rolling_volatility(
    returns: pd.DataFrame,
    window: int = 21,
    column: str = 'log_return',
    horizon: str = 'year'
) -> pd.DataFrame:
    """
    Rolling realized volatility per instrument, scaled to a horizon.

    The first window - 1 rows of each instrument have no full window and
    are dropped.

    Args:
        returns: ReturnRecord frame
        window: Rolling window size in observations (> 1)
        column: Return column
        horizon: Scaling horizon ('year' gives annualized volatility)

    Returns:
        Frame with instrument_id, date, rolling_vol
    """
    if window <= 1:
        raise VolatilityError("Window must be > 1 for standard deviation")

    ordered = returns.sort_values(['instrument_id', 'date']).reset_index(drop=True)
    rolling_std = (
        ordered.groupby('instrument_id', sort=False)[column]
        .rolling(window=window, min_periods=window)
        .std(ddof=1)
        .reset_index(level=0, drop=True)
    )

    result = ordered[['instrument_id', 'date']].assign(
        rolling_vol=scale_volatility(rolling_std, horizon)
    )
    return result.dropna(subset=['rolling_vol']).reset_index(drop=True)
