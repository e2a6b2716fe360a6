"""
Return conventions and their matching aggregation rules.

Simple returns compound multiplicatively: R = prod(1 + r) - 1.
Log returns are additive: R = sum(r).

Frames produced by the return calculator record their convention in
``DataFrame.attrs['return_convention']``; every aggregation resolves the
convention from there so the two rules are never mixed.
"""

from enum import Enum
from typing import Optional, Union

import numpy as np
import pandas as pd


CONVENTION_ATTR = 'return_convention'


class ConventionError(ValueError):
    """Raised when a return convention is unknown or contradicts the data."""
    pass


class ReturnConvention(str, Enum):
    """Return convention used for weighting and aggregation."""
    SIMPLE = 'simple'
    LOG = 'log'

    @property
    def column(self) -> str:
        """ReturnRecord column holding returns of this convention."""
        return 'simple_return' if self is ReturnConvention.SIMPLE else 'log_return'


DEFAULT_CONVENTION = ReturnConvention.SIMPLE


def parse_convention(value: Union[str, ReturnConvention]) -> ReturnConvention:
    """
    Parse a convention name.

    Raises:
        ConventionError: If the name is not 'simple' or 'log'
    """
    if isinstance(value, ReturnConvention):
        return value
    try:
        return ReturnConvention(str(value).strip().lower())
    except ValueError:
        raise ConventionError(f"Unknown return convention: {value!r} (use 'simple' or 'log')")


def resolve_convention(
    frame: pd.DataFrame,
    convention: Optional[Union[str, ReturnConvention]] = None
) -> ReturnConvention:
    """
    Determine which convention applies to a frame.

    The convention recorded on the frame wins; an explicit argument must agree
    with it. Operations such as merge drop the recorded tag, so an untagged
    ReturnRecord frame has its convention inferred from weighted_return.
    Other untagged frames use the explicit argument, or the system default.

    Raises:
        ConventionError: If the explicit convention contradicts the recorded
            or inferred one, or an untagged frame's convention cannot be
            determined
    """
    recorded = frame.attrs.get(CONVENTION_ATTR)
    requested = parse_convention(convention) if convention is not None else None

    if recorded is None:
        recorded = infer_convention(frame, required=requested is None)

    if recorded is not None:
        recorded = parse_convention(recorded)
        if requested is not None and requested is not recorded:
            raise ConventionError(
                f"Frame holds {recorded.value} returns but {requested.value} aggregation was requested"
            )
        return recorded

    return requested if requested is not None else DEFAULT_CONVENTION


def infer_convention(frame: pd.DataFrame, required: bool = True) -> Optional[ReturnConvention]:
    """
    Infer the convention of an untagged ReturnRecord frame.

    weighted_return is compared with weight × simple_return and
    weight × log_return.

    Args:
        frame: Frame without a recorded convention
        required: Raise instead of returning None when a weighted_return
            column cannot be matched to a convention

    Returns:
        The matching convention, or None when the frame has no
        weighted_return column or both conventions match (all returns zero)

    Raises:
        ConventionError: If weighted_return matches neither convention, or
            cannot be checked and required is set
    """
    if 'weighted_return' not in frame.columns:
        return None

    missing = [c for c in ('weight', 'simple_return', 'log_return') if c not in frame.columns]
    if missing:
        if required:
            raise ConventionError(
                f"Untagged frame has weighted_return but lacks {missing}; "
                f"pass the return convention explicitly"
            )
        return None

    weighted = frame['weighted_return'].to_numpy(dtype=float)
    weights = frame['weight'].to_numpy(dtype=float)

    # weighted_return is computed as column * weight, so the match is exact up to rounding
    matches = []
    for candidate in ReturnConvention:
        expected = frame[candidate.column].to_numpy(dtype=float) * weights
        if np.allclose(weighted, expected, rtol=1e-9, atol=0.0, equal_nan=True):
            matches.append(candidate)

    if not matches:
        raise ConventionError("weighted_return matches neither the simple nor the log convention")

    return matches[0] if len(matches) == 1 else None


def tag_convention(frame: pd.DataFrame, convention: ReturnConvention) -> pd.DataFrame:
    """Record the convention on a frame (in place) and return it."""
    frame.attrs[CONVENTION_ATTR] = convention.value
    return frame


def compound_by(returns: pd.Series, keys, convention: ReturnConvention) -> pd.Series:
    """
    Compound returns within groups.

    Args:
        returns: Daily returns
        keys: Group keys accepted by Series.groupby
        convention: Convention of the returns

    Returns:
        Series indexed by group key
    """
    if convention is ReturnConvention.LOG:
        return returns.groupby(keys).sum()
    return (1.0 + returns).groupby(keys).prod() - 1.0


def cumulate_by(returns: pd.Series, keys, convention: ReturnConvention) -> pd.Series:
    """
    Running cumulative return within groups, aligned to the input index.

    Input must already be ordered by date within each group.
    """
    if convention is ReturnConvention.LOG:
        return returns.groupby(keys).cumsum()
    return (1.0 + returns).groupby(keys).cumprod() - 1.0
