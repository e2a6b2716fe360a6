"""
Metrics aggregator - composes pipeline outputs into a JSON-ready summary.
Pure function; no IO.
"""

from datetime import datetime
from typing import Any, Dict, List

import pandas as pd

from analysis.calculations.drawdown import max_drawdown_stats
from analysis.calculations.risk import PortfolioRisk
from analysis.conventions import resolve_convention
from analysis.guardrails import validate_numeric_outputs

CALCULATION_VERSION = '1.0.0'


class MetricsAggregatorError(Exception):
    """Raised when metrics aggregation fails."""
    pass


def compose_metrics(
    *,
    allocations: pd.DataFrame,
    returns: pd.DataFrame,
    performance: pd.DataFrame,
    drawdown: pd.DataFrame,
    yearly_performance: pd.DataFrame,
    volatility: pd.DataFrame,
    risk: PortfolioRisk,
    country_allocation: pd.DataFrame,
    country_returns: pd.DataFrame,
    rolling_volatility: pd.DataFrame
) -> Dict[str, Any]:
    """
    Compose run outputs into the standard metrics dictionary.

    Args:
        allocations: Allocation frame
        returns: ReturnRecord frame
        performance: PerformanceSeries frame
        drawdown: DrawdownRecord frame
        yearly_performance: Yearly comparison table
        volatility: VolatilityRecord frame
        risk: Portfolio risk snapshot
        country_allocation: Weight and share per country
        country_returns: Yearly weighted return contributed per country
        rolling_volatility: Rolling annualized volatility per instrument

    Returns:
        Metrics dictionary (dates as ISO strings, floats finite, None for
        unavailable values)

    Raises:
        MetricsAggregatorError: If inputs are empty or contain NaN/inf
    """
    if returns.empty or performance.empty:
        raise MetricsAggregatorError("Empty return data provided")

    convention = resolve_convention(returns)
    dates = pd.to_datetime(returns['date'])

    metrics = {
        'data_period': {
            'start_date': dates.min().date().isoformat(),
            'end_date': dates.max().date().isoformat(),
            'return_days': int(dates.nunique())
        },
        'return_convention': convention.value,
        'allocations': _allocation_records(allocations),
        'portfolio_risk': risk.to_dict(),
        'final_cumulative_returns': _final_cumulative_returns(performance),
        'yearly_performance': _yearly_records(yearly_performance),
        'max_drawdown': _drawdown_records(drawdown),
        'volatility': _volatility_records(volatility),
        'country_allocation': _country_allocation_records(country_allocation),
        'country_returns': _country_return_records(country_returns),
        'latest_rolling_volatility': _latest_rolling_records(rolling_volatility),
        'metadata': {
            'calculated_at': datetime.now().isoformat(),
            'calculation_version': CALCULATION_VERSION
        }
    }

    try:
        validate_numeric_outputs(metrics)
    except Exception as e:
        raise MetricsAggregatorError(f"Invalid metrics: {e}") from e

    return metrics


def _allocation_records(allocations: pd.DataFrame) -> List[Dict[str, Any]]:
    """Allocation rows as plain dicts."""
    return [
        {
            'instrument_id': row.instrument_id,
            'weight': float(row.weight),
            'country': row.country
        }
        for row in allocations.itertuples(index=False)
    ]


def _final_cumulative_returns(performance: pd.DataFrame) -> Dict[str, float]:
    """Last cumulative return per label."""
    last = performance.sort_values('date').groupby('label')['cumulative_return'].last()
    return {label: float(value) for label, value in last.items()}


def _yearly_records(table: pd.DataFrame) -> List[Dict[str, Any]]:
    """Yearly comparison rows; NaN cells become None."""
    records = []
    for row in table.to_dict('records'):
        records.append({
            key: (int(value) if key == 'year' else (None if pd.isna(value) else float(value)))
            for key, value in row.items()
        })
    return records


def _drawdown_records(drawdown: pd.DataFrame) -> List[Dict[str, Any]]:
    """Max drawdown statistics per label with ISO dates."""
    records = []
    for stats in max_drawdown_stats(drawdown):
        records.append({
            key: (value.isoformat() if hasattr(value, 'isoformat') else value)
            for key, value in stats.items()
        })
    return records


def _volatility_records(volatility: pd.DataFrame) -> List[Dict[str, Any]]:
    """Volatility rows; groups without enough data carry None."""
    records = []
    for row in volatility.to_dict('records'):
        records.append({
            'instrument_id': row['instrument_id'],
            'year': int(row['year']),
            'observations': int(row['observations']),
            'daily_vol': None if pd.isna(row['daily_vol']) else float(row['daily_vol']),
            'yearly_vol': None if pd.isna(row['yearly_vol']) else float(row['yearly_vol'])
        })
    return records


def _country_allocation_records(country_allocation: pd.DataFrame) -> List[Dict[str, Any]]:
    return [
        {'country': row.country, 'weight': float(row.weight), 'share': float(row.share)}
        for row in country_allocation.itertuples(index=False)
    ]


def _country_return_records(country_returns: pd.DataFrame) -> List[Dict[str, Any]]:
    """Yearly country contributions."""
    return [
        {
            'country': row.country,
            'year': int(row.year),
            'compounded_return': float(row.compounded_return)
        }
        for row in country_returns.itertuples(index=False)
    ]


def _latest_rolling_records(rolling: pd.DataFrame) -> List[Dict[str, Any]]:
    """Last full-window rolling volatility per instrument; empty when no window is complete."""
    latest = rolling.sort_values('date').groupby('instrument_id', sort=True).tail(1)
    return [
        {
            'instrument_id': row.instrument_id,
            'date': pd.Timestamp(row.date).date().isoformat(),
            'rolling_vol': float(row.rolling_vol)
        }
        for row in latest.sort_values('instrument_id').itertuples(index=False)
    ]
