"""
Temporal roll-up of daily returns into weekly, monthly and yearly returns.

Buckets come from the data itself: a bucket with no observations never
appears. Portfolio period returns are built from the daily weighted sum
first and only then compounded over time.
"""

import logging
from typing import List, Optional, Tuple, Union

import pandas as pd

from analysis.calculations.returns import portfolio_daily_returns
from analysis.conventions import (
    ReturnConvention,
    compound_by,
    resolve_convention,
    tag_convention,
)

logger = logging.getLogger(__name__)

FREQUENCIES = ('week', 'month', 'year')


class AggregationError(ValueError):
    """Raised when a temporal roll-up cannot be performed."""
    pass


def bucket_keys(dates: pd.Series, frequency: str) -> Tuple[List[str], pd.DataFrame]:
    """
    Calendar bucket keys for each date.

    Weekly buckets use the ISO year together with the ISO week so that the
    days around New Year fall into a single week bucket.

    Args:
        dates: datetime64 series
        frequency: 'week', 'month' or 'year'

    Returns:
        (key column names, frame of key columns aligned with dates)

    Raises:
        AggregationError: If frequency is not supported
    """
    if frequency not in FREQUENCIES:
        raise AggregationError(f"Unsupported frequency: {frequency}. Use one of {FREQUENCIES}")

    dates = pd.to_datetime(dates)

    if frequency == 'week':
        iso = dates.dt.isocalendar()
        keys = pd.DataFrame({
            'year': iso['year'].astype(int),
            'period': iso['week'].astype(int)
        }, index=dates.index)
        return ['year', 'period'], keys

    if frequency == 'month':
        keys = pd.DataFrame({
            'year': dates.dt.year.astype(int),
            'period': dates.dt.month.astype(int)
        }, index=dates.index)
        return ['year', 'period'], keys

    keys = pd.DataFrame({'year': dates.dt.year.astype(int)}, index=dates.index)
    return ['year'], keys


def period_returns(
    returns: pd.DataFrame,
    frequency: str = 'month',
    convention: Optional[Union[str, ReturnConvention]] = None
) -> pd.DataFrame:
    """
    Compound daily instrument returns into calendar buckets.

    Args:
        returns: ReturnRecord frame
        frequency: 'week', 'month' or 'year'
        convention: Optional explicit convention (must match the frame)

    Returns:
        Frame with instrument_id, year, [period,] compounded_return
    """
    convention = resolve_convention(returns, convention)
    column = convention.column

    key_names, keys = bucket_keys(returns['date'], frequency)
    group_keys = [returns['instrument_id']] + [keys[k] for k in key_names]

    result = (
        compound_by(returns[column], group_keys, convention)
        .rename('compounded_return')
        .reset_index()
    )

    logger.debug(f"Rolled up {len(returns)} rows into {len(result)} {frequency} buckets")
    return tag_convention(result, convention)


def portfolio_period_returns(
    returns: pd.DataFrame,
    frequency: str = 'month',
    convention: Optional[Union[str, ReturnConvention]] = None
) -> pd.DataFrame:
    """
    Portfolio return per calendar bucket.

    Daily weighted returns are summed across instruments first, then the
    daily portfolio returns are compounded over the bucket. Compounding each
    instrument first and weighting afterwards gives a different (wrong)
    number under simple returns.

    Returns:
        Frame with year, [period,] compounded_return
    """
    convention = resolve_convention(returns, convention)
    daily = portfolio_daily_returns(returns, convention)

    key_names, keys = bucket_keys(daily['date'], frequency)
    result = (
        compound_by(daily['portfolio_return'], [keys[k] for k in key_names], convention)
        .rename('compounded_return')
        .reset_index()
    )
    return tag_convention(result, convention)


def country_contributions(
    returns: pd.DataFrame,
    frequency: str = 'year',
    convention: Optional[Union[str, ReturnConvention]] = None
) -> pd.DataFrame:
    """
    Weighted return contributed by each country per calendar bucket.

    Same order as the portfolio roll-up: weighted returns are summed per
    (country, date), then compounded over the bucket.

    Returns:
        Frame with country, year, [period,] compounded_return
    """
    convention = resolve_convention(returns, convention)

    daily = (
        returns.groupby(['country', 'date'], sort=True)['weighted_return']
        .sum()
        .reset_index()
    )

    key_names, keys = bucket_keys(daily['date'], frequency)
    result = (
        compound_by(daily['weighted_return'], [daily['country']] + [keys[k] for k in key_names], convention)
        .rename('compounded_return')
        .reset_index()
    )
    return tag_convention(result, convention)


def allocation_by_country(allocations: pd.DataFrame) -> pd.DataFrame:
    """
    Total weight and share of total weight per country.

    Returns:
        Frame with country, weight, share sorted by weight descending
    """
    totals = allocations.groupby('country')['weight'].sum()
    result = pd.DataFrame({
        'country': totals.index,
        'weight': totals.values,
        'share': (totals / totals.sum()).values
    })
    return result.sort_values(['weight', 'country'], ascending=[False, True]).reset_index(drop=True)
