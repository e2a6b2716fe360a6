"""
Drawdown and recovery calculation utilities.
Drawdown is measured on a cumulative return series and is always derived
from it, never stored on its own.
"""

import logging
from typing import Any, Dict, List, Optional

import numpy as np
import pandas as pd

logger = logging.getLogger(__name__)

DRAWDOWN_COLUMNS = ['label', 'date', 'cumulative_return', 'running_peak', 'drawdown']


class DrawdownError(Exception):
    """Raised when drawdown calculation fails."""
    pass


def drawdown_series(performance: pd.DataFrame) -> pd.DataFrame:
    """
    Running peak and drawdown of a cumulative return series, per label.

    Formulas:
        running_peak_t = max(cumulative_return_0..t)
        drawdown_t = cumulative_return_t - running_peak_t  (always <= 0)

    The running peak restarts only at a new label. A frame without a label
    column is treated as a single series.

    Args:
        performance: Frame with date, cumulative_return and optional label

    Returns:
        New frame with DRAWDOWN_COLUMNS sorted by (label, date)

    Raises:
        DrawdownError: If cumulative returns are missing
    """
    if 'cumulative_return' not in performance.columns:
        raise DrawdownError("performance missing required column: cumulative_return")

    if performance['cumulative_return'].isna().any():
        raise DrawdownError("NaN values not allowed in cumulative returns")

    series = performance
    if 'label' not in series.columns:
        series = series.assign(label=None)

    ordered = series.sort_values(['label', 'date']).reset_index(drop=True)
    running_peak = ordered.groupby('label', sort=False, dropna=False)['cumulative_return'].cummax()

    result = ordered[['label', 'date', 'cumulative_return']].assign(
        running_peak=running_peak,
        drawdown=ordered['cumulative_return'] - running_peak
    )
    return result[DRAWDOWN_COLUMNS]


def drawdown_stats(drawdown: pd.DataFrame) -> Dict[str, Any]:
    """
    Maximum drawdown statistics for a single drawdown series.

    Finds the largest peak-to-trough decline and its recovery.

    Args:
        drawdown: Frame from drawdown_series for one label

    Returns:
        Dictionary with drawdown statistics:
        - max_drawdown: Largest decline in cumulative return units (<= 0)
        - peak_date: Date of the peak before the max drawdown
        - trough_date: Date of the lowest point
        - recovery_date: First date after the trough back at the peak
          (None if no recovery)
        - drawdown_days: Calendar days from peak to trough
        - recovery_days: Calendar days from trough to recovery (None if no recovery)

    Raises:
        DrawdownError: If the series is empty
    """
    if drawdown.empty:
        raise DrawdownError("Insufficient data: empty drawdown series")

    ordered = drawdown.sort_values('date').reset_index(drop=True)
    values = ordered['drawdown'].to_numpy()
    dates = list(pd.to_datetime(ordered['date']))

    trough_idx = int(np.argmin(values))
    max_drawdown = float(values[trough_idx])

    # Peak is the last point at or before the trough that set the running peak
    peak_value = ordered['running_peak'].iloc[trough_idx]
    at_peak = np.flatnonzero(ordered['cumulative_return'].to_numpy()[:trough_idx + 1] >= peak_value)
    peak_idx = int(at_peak[-1])

    recovery_idx: Optional[int] = None
    if max_drawdown == 0:
        recovery_idx = peak_idx
    else:
        later = np.flatnonzero(ordered['cumulative_return'].to_numpy()[trough_idx + 1:] >= peak_value)
        if later.size:
            recovery_idx = trough_idx + 1 + int(later[0])

    return {
        'max_drawdown': max_drawdown,
        'peak_date': dates[peak_idx].date(),
        'trough_date': dates[trough_idx].date(),
        'recovery_date': dates[recovery_idx].date() if recovery_idx is not None else None,
        'drawdown_days': (dates[trough_idx] - dates[peak_idx]).days,
        'recovery_days': (dates[recovery_idx] - dates[trough_idx]).days if recovery_idx is not None else None
    }


def max_drawdown_stats(drawdown: pd.DataFrame) -> List[Dict[str, Any]]:
    """
    drawdown_stats for every label of a drawdown frame.

    An unlabeled series (label None) is reported with label None.

    Returns:
        One dictionary per label, each with a 'label' key
    """
    stats = []
    for label, group in drawdown.groupby('label', sort=True, dropna=False):
        entry = {'label': label if pd.notna(label) else None}
        entry.update(drawdown_stats(group))
        stats.append(entry)
        logger.debug(f"{label}: max drawdown {entry['max_drawdown']:.4f} on {entry['trough_date']}")
    return stats
