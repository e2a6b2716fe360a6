"""
Portfolio risk from the pairwise-complete covariance of instrument log returns.

Formula: σ_p = sqrt(wᵀ Σ w)

Weights are matched to covariance columns by instrument id, never by
position.
"""

import logging
import math
from dataclasses import dataclass
from typing import Mapping, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from analysis.calculations.volatility import TRADING_PERIODS
from analysis.guardrails import InsufficientDataError

logger = logging.getLogger(__name__)

MIN_PAIR_OBSERVATIONS = 2


class RiskError(ValueError):
    """Raised when portfolio risk cannot be computed."""
    pass


@dataclass(frozen=True)
class PortfolioRisk:
    """Portfolio risk snapshot for one analysis run."""
    variance: float
    volatility: float
    annualized_volatility: float
    instruments: Tuple[str, ...]
    weights: Tuple[float, ...]

    def to_dict(self) -> dict:
        return {
            'variance': self.variance,
            'volatility': self.volatility,
            'annualized_volatility': self.annualized_volatility,
            'weights': dict(zip(self.instruments, self.weights))
        }


def return_matrix(returns: pd.DataFrame, column: str = 'log_return') -> pd.DataFrame:
    """
    Pivot ReturnRecord rows to a wide date × instrument matrix.

    Dates where an instrument has no observation are NaN.

    Raises:
        RiskError: If an (instrument, date) pair appears more than once
    """
    if returns.duplicated(subset=['instrument_id', 'date']).any():
        raise RiskError("Duplicate (instrument_id, date) rows in returns")

    matrix = returns.pivot(index='date', columns='instrument_id', values=column)
    return matrix.sort_index().sort_index(axis=1)


def covariance_matrix(returns: pd.DataFrame, column: str = 'log_return') -> pd.DataFrame:
    """
    Sample covariance matrix (ddof=1) using pairwise-complete observations.

    Each pair uses only the dates on which both instruments have a return.

    Raises:
        InsufficientDataError: If any pair shares fewer than 2 observations
    """
    matrix = return_matrix(returns, column)

    # Overlapping observation counts per pair
    observed = matrix.notna().astype(int)
    overlap = observed.T.dot(observed)
    if (overlap.values < MIN_PAIR_OBSERVATIONS).any():
        short = [
            (a, b) for a in overlap.index for b in overlap.columns
            if a <= b and overlap.loc[a, b] < MIN_PAIR_OBSERVATIONS
        ]
        raise InsufficientDataError(
            f"Covariance needs at least {MIN_PAIR_OBSERVATIONS} overlapping returns per pair; "
            f"short pairs: {short}"
        )

    return matrix.cov(min_periods=MIN_PAIR_OBSERVATIONS)


def align_weights(weights: Mapping[str, float], instruments: Sequence[str]) -> np.ndarray:
    """
    Order weights to match covariance columns by instrument id.

    Args:
        weights: Mapping instrument_id -> weight
        instruments: Covariance column order

    Returns:
        Weight vector in the order of instruments

    Raises:
        RiskError: If the id sets differ
    """
    missing = sorted(set(instruments) - set(weights))
    extra = sorted(set(weights) - set(instruments))

    if missing or extra:
        raise RiskError(
            f"Weights do not match covariance columns: missing={missing}, extra={extra}"
        )

    return np.array([float(weights[i]) for i in instruments], dtype=float)


def weights_from_returns(returns: pd.DataFrame) -> pd.Series:
    """
    One static weight per instrument taken from the ReturnRecord weight column.

    Raises:
        RiskError: If an instrument carries more than one weight
    """
    distinct = returns.groupby('instrument_id')['weight'].nunique()
    conflicting = sorted(distinct[distinct > 1].index)
    if conflicting:
        raise RiskError(f"Instruments with more than one weight: {conflicting}")

    return returns.groupby('instrument_id')['weight'].first()


def portfolio_risk(
    returns: pd.DataFrame,
    weights: Optional[Mapping[str, float]] = None,
    column: str = 'log_return'
) -> PortfolioRisk:
    """
    Compute sqrt(wᵀ Σ w) for the current return set.

    Args:
        returns: ReturnRecord frame
        weights: Optional mapping instrument_id -> weight (default: the
            frame's weight column)
        column: Return column used for the covariance

    Returns:
        PortfolioRisk with daily and annualized volatility

    Raises:
        InsufficientDataError: If a pair has fewer than 2 overlapping returns
        RiskError: If weights cannot be aligned with the covariance columns
    """
    if weights is None:
        weights = weights_from_returns(returns).to_dict()

    cov = covariance_matrix(returns, column)
    instruments = list(cov.columns)
    w = align_weights(weights, instruments)

    variance = float(w @ cov.values @ w)
    if variance < 0:
        # Pairwise-complete matrices are not guaranteed positive semi-definite
        raise RiskError(f"Covariance matrix produced negative variance {variance}")

    volatility = math.sqrt(variance)
    logger.info(f"Portfolio daily volatility {volatility:.6f} over {len(instruments)} instruments")

    return PortfolioRisk(
        variance=variance,
        volatility=volatility,
        annualized_volatility=volatility * math.sqrt(TRADING_PERIODS['year']),
        instruments=tuple(instruments),
        weights=tuple(float(x) for x in w)
    )
