"""
Guardrails for analysis engine - validation and safety checks.
Fails fast on data that would silently corrupt every downstream stage,
and warns on data that is usable but suspicious.
"""

import math
import warnings
from typing import Any, Dict, List

import pandas as pd


class DataQualityError(Exception):
    """Raised when data quality issues require user intervention."""
    pass


class InsufficientDataError(DataQualityError):
    """Raised when a statistic needs more observations than are available."""
    pass


class DataQualityWarning(UserWarning):
    """Raised when data quality issues should be noted but don't block execution."""
    pass


WEIGHT_SUM_TOLERANCE = 1e-6
LARGE_MOVE_THRESHOLD = 0.20


def require_rows(frame: pd.DataFrame, name: str, minimum: int = 1) -> None:
    """
    Require a frame to hold at least `minimum` rows.

    Raises:
        DataQualityError: If the frame is empty
        InsufficientDataError: If the frame has rows but fewer than minimum
    """
    if frame.empty:
        raise DataQualityError(f"No {name} data available for analysis")

    if len(frame) < minimum:
        raise InsufficientDataError(
            f"Insufficient {name} data: need at least {minimum} rows, have {len(frame)}"
        )


def check_weight_sum(allocations: pd.DataFrame, tolerance: float = WEIGHT_SUM_TOLERANCE) -> float:
    """
    Warn when portfolio weights do not sum to 1.

    Weights that do not sum to 1 are allowed (e.g. a partially invested
    portfolio) but the portfolio return is then scaled accordingly.

    Returns:
        Sum of weights
    """
    total = float(allocations['weight'].sum())

    if abs(total - 1.0) > tolerance:
        warnings.warn(
            f"Portfolio weights sum to {total:.6f}, not 1.0; "
            f"portfolio returns are scaled by the same factor.",
            DataQualityWarning
        )

    return total


def detect_large_moves(returns: pd.DataFrame, threshold: float = LARGE_MOVE_THRESHOLD) -> List[str]:
    """
    Flag daily simple returns larger than threshold in absolute value.

    Args:
        returns: ReturnRecord frame
        threshold: Absolute daily move considered suspicious (0.20 = 20%)

    Returns:
        List of warning messages, one per flagged row
    """
    messages = []

    if returns.empty:
        return messages

    flagged = returns.loc[returns['simple_return'].abs() > threshold]
    for row in flagged.itertuples(index=False):
        messages.append(
            f"Large price movement for {row.instrument_id} on {pd.Timestamp(row.date).date()}: "
            f"{row.simple_return:+.1%}"
        )

    return messages


def validate_numeric_outputs(metrics: Dict[str, Any], path: str = '') -> None:
    """
    Recursively check that every numeric metric is finite.

    None is acceptable for unavailable values.

    Raises:
        DataQualityError: If NaN or infinite values are found
    """
    for key, value in metrics.items():
        current = f"{path}.{key}" if path else str(key)

        if isinstance(value, dict):
            validate_numeric_outputs(value, current)
        elif isinstance(value, list):
            for index, item in enumerate(value):
                if isinstance(item, dict):
                    validate_numeric_outputs(item, f"{current}[{index}]")
        elif isinstance(value, float):
            if math.isnan(value):
                raise DataQualityError(f"NaN value found in {current}")
            if math.isinf(value):
                raise DataQualityError(f"Infinite value found in {current}")


def run_all_guardrails(
    allocations: pd.DataFrame,
    returns: pd.DataFrame
) -> Dict[str, Any]:
    """
    Run the non-blocking guardrail checks and compile results.

    Args:
        allocations: Allocation frame
        returns: ReturnRecord frame

    Returns:
        Dictionary with weight_sum, warnings and instrument counts

    Raises:
        DataQualityError: If returns are empty
    """
    require_rows(returns, 'return')

    results = {
        'weight_sum': check_weight_sum(allocations),
        'instruments': int(returns['instrument_id'].nunique()),
        'return_rows': int(len(returns)),
        'warnings': []
    }

    results['warnings'].extend(detect_large_moves(returns))

    instruments_without_returns = sorted(
        set(allocations['instrument_id']) - set(returns['instrument_id'])
    )
    if instruments_without_returns:
        results['warnings'].append(
            f"No returns for allocated instruments: {instruments_without_returns}"
        )

    return results
