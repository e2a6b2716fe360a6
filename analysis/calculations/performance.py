"""
Portfolio versus benchmark performance series.

Both labels are cumulated independently from their own daily returns,
ordered by date, and never reset at calendar boundaries.
"""

import logging
from datetime import date
from typing import Optional, Union

import pandas as pd

from analysis.calculations.returns import portfolio_daily_returns, price_returns
from analysis.conventions import (
    ReturnConvention,
    cumulate_by,
    resolve_convention,
    tag_convention,
)

logger = logging.getLogger(__name__)

PORTFOLIO_LABEL = 'Portfolio'
BENCHMARK_LABEL = 'Benchmark'

PERFORMANCE_COLUMNS = ['label', 'date', 'period_return', 'cumulative_return']


class PerformanceError(ValueError):
    """Raised when a performance series cannot be built."""
    pass


def cumulative_returns(
    series: pd.DataFrame,
    convention: Optional[Union[str, ReturnConvention]] = None
) -> pd.DataFrame:
    """
    Running cumulative return per label.

    Args:
        series: Frame with label, date, period_return
        convention: Optional explicit convention (must match the frame)

    Returns:
        New frame with PERFORMANCE_COLUMNS sorted by (label, date)
    """
    convention = resolve_convention(series, convention)

    ordered = series.sort_values(['label', 'date']).reset_index(drop=True)
    ordered['cumulative_return'] = cumulate_by(ordered['period_return'], ordered['label'], convention)
    return tag_convention(ordered[PERFORMANCE_COLUMNS], convention)


def build_performance_series(
    returns: pd.DataFrame,
    benchmark_prices: pd.DataFrame,
    convention: Optional[Union[str, ReturnConvention]] = None
) -> pd.DataFrame:
    """
    Combined Portfolio and Benchmark cumulative return series.

    Portfolio daily return is the sum of weighted returns per date.
    Benchmark daily return is derived from its price series the same way
    instrument returns are, under the portfolio's convention.

    Args:
        returns: ReturnRecord frame
        benchmark_prices: PriceObservation frame for a single benchmark
        convention: Optional explicit convention (must match returns)

    Returns:
        Frame with label, date, period_return, cumulative_return

    Raises:
        PerformanceError: If benchmark_prices holds more than one instrument
    """
    convention = resolve_convention(returns, convention)

    benchmark_ids = benchmark_prices['instrument_id'].unique()
    if len(benchmark_ids) != 1:
        raise PerformanceError(
            f"Benchmark prices must hold exactly one instrument, got {list(benchmark_ids)}"
        )

    portfolio = portfolio_daily_returns(returns, convention)
    portfolio_rows = pd.DataFrame({
        'label': PORTFOLIO_LABEL,
        'date': portfolio['date'],
        'period_return': portfolio['portfolio_return']
    })

    benchmark = price_returns(benchmark_prices)
    benchmark_rows = pd.DataFrame({
        'label': BENCHMARK_LABEL,
        'date': benchmark['date'],
        'period_return': benchmark[convention.column]
    })

    combined = pd.concat([portfolio_rows, benchmark_rows], ignore_index=True)
    performance = cumulative_returns(tag_convention(combined, convention))

    logger.info(
        f"Built performance series: {len(portfolio_rows)} portfolio days, "
        f"{len(benchmark_rows)} benchmark days"
    )
    return performance


def performance_difference(performance: pd.DataFrame) -> pd.DataFrame:
    """
    Portfolio minus benchmark cumulative return per date.

    Only dates present in both series appear. outperforming is True where
    the portfolio's cumulative return is strictly above the benchmark's.

    Returns:
        Frame with date, portfolio_cumulative, benchmark_cumulative,
        difference, outperforming
    """
    wide = performance.pivot(index='date', columns='label', values='cumulative_return')

    for label in (PORTFOLIO_LABEL, BENCHMARK_LABEL):
        if label not in wide.columns:
            raise PerformanceError(f"Performance series missing label: {label}")

    wide = wide.dropna(subset=[PORTFOLIO_LABEL, BENCHMARK_LABEL]).sort_index()

    result = pd.DataFrame({
        'date': wide.index,
        'portfolio_cumulative': wide[PORTFOLIO_LABEL].values,
        'benchmark_cumulative': wide[BENCHMARK_LABEL].values
    })
    result['difference'] = result['portfolio_cumulative'] - result['benchmark_cumulative']
    result['outperforming'] = result['difference'] > 0
    return result


def yearly_performance_table(
    performance: pd.DataFrame,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None
) -> pd.DataFrame:
    """
    Year-by-year comparison: last minus first cumulative return within each year.

    The optional window is applied to the already-cumulated series. When a
    start_date truncates the first year, that year's "first" value is the
    first visible value, not the start of the series; this is intended
    windowing behaviour.

    Args:
        performance: Frame with label, date, cumulative_return
        start_date: Optional first date to include
        end_date: Optional last date to include

    Returns:
        Frame with year, Portfolio, Benchmark (one column per label present)
    """
    window = performance
    if start_date is not None:
        window = window.loc[window['date'] >= pd.Timestamp(start_date)]
    if end_date is not None:
        window = window.loc[window['date'] <= pd.Timestamp(end_date)]

    if window.empty:
        raise PerformanceError(f"No performance data between {start_date} and {end_date}")

    ordered = window.sort_values(['label', 'date'])
    years = ordered['date'].dt.year.rename('year')
    grouped = ordered.groupby([ordered['label'], years])['cumulative_return']

    change = (grouped.last() - grouped.first()).rename('change').reset_index()
    table = change.pivot(index='year', columns='label', values='change')
    table.columns.name = None

    ordered_labels = [c for c in (PORTFOLIO_LABEL, BENCHMARK_LABEL) if c in table.columns]
    return table[ordered_labels].reset_index()
