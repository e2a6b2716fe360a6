"""
Normalizers for transforming raw price and allocation rows to canonical frames.
Pure functions - no IO, network, or side effects.
Minimal normalization - only when necessary.
"""

import logging
from typing import Any, Dict, List, Union

import pandas as pd

from ingestion.transforms.validators import (
    ALLOCATION_COLUMNS,
    PRICE_COLUMNS,
    missing_instruments,
    require_columns,
    validate_allocations,
    validate_price_frame,
)

logger = logging.getLogger(__name__)

DEFAULT_COUNTRY = 'Unknown'

RawRows = Union[pd.DataFrame, List[Dict[str, Any]]]


def normalize_prices(raw: RawRows) -> pd.DataFrame:
    """
    Transform raw price rows to the canonical PriceObservation frame.

    Minimal normalization:
    - Date strings / date objects to datetime64 (midnight)
    - Price to float
    - Deduplication by (instrument_id, date), keeping the last row so that a
      later correction wins
    - Sort by (instrument_id, date)

    Args:
        raw: DataFrame or list of dicts with instrument_id, date, price

    Returns:
        New canonical frame with PRICE_COLUMNS

    Raises:
        ValidationError: If required columns are missing or prices are invalid
    """
    frame = pd.DataFrame(raw).copy()

    if frame.empty:
        return pd.DataFrame(
            {'instrument_id': pd.Series(dtype=object),
             'date': pd.Series(dtype='datetime64[ns]'),
             'price': pd.Series(dtype=float)}
        )

    require_columns(frame, PRICE_COLUMNS, 'prices')

    frame = frame[PRICE_COLUMNS].copy()
    frame['instrument_id'] = frame['instrument_id'].astype(str)
    frame['date'] = pd.to_datetime(frame['date']).dt.normalize()
    frame['price'] = frame['price'].astype(float)

    before = len(frame)
    frame = frame.drop_duplicates(subset=['instrument_id', 'date'], keep='last')
    if len(frame) < before:
        logger.info(f"Dropped {before - len(frame)} duplicate price rows (kept latest)")

    frame = frame.sort_values(['instrument_id', 'date']).reset_index(drop=True)
    validate_price_frame(frame)
    return frame


def normalize_allocations(raw: RawRows) -> pd.DataFrame:
    """
    Transform raw allocation rows to the canonical Allocation frame.

    Args:
        raw: DataFrame or list of dicts with instrument_id, weight and
            optional country

    Returns:
        New frame with ALLOCATION_COLUMNS

    Raises:
        ValidationError: If weights are not positive or ids repeat
    """
    frame = pd.DataFrame(raw).copy()

    if 'country' not in frame.columns:
        frame['country'] = DEFAULT_COUNTRY
    else:
        frame['country'] = frame['country'].fillna(DEFAULT_COUNTRY)

    require_columns(frame, ALLOCATION_COLUMNS, 'allocations')

    frame = frame[ALLOCATION_COLUMNS].reset_index(drop=True).copy()
    frame['instrument_id'] = frame['instrument_id'].astype(str)
    frame['country'] = frame['country'].astype(str)
    frame['weight'] = pd.to_numeric(frame['weight'], errors='coerce').astype(float)
    validate_allocations(frame)
    return frame


def join_allocations(prices: pd.DataFrame, allocations: pd.DataFrame) -> pd.DataFrame:
    """
    Inner-join price observations with allocation metadata.

    Instruments with prices but no allocation are dropped, never filled.

    Args:
        prices: Canonical PriceObservation frame
        allocations: Canonical Allocation frame

    Returns:
        New frame: instrument_id, date, price, weight, country sorted by
        (instrument_id, date)
    """
    validate_allocations(allocations)

    dropped = missing_instruments(prices['instrument_id'].unique(), allocations['instrument_id'])
    if dropped:
        logger.warning(f"Dropping instruments without allocation: {dropped}")

    joined = prices.merge(allocations, on='instrument_id', how='inner', validate='many_to_one')
    joined = joined.sort_values(['instrument_id', 'date']).reset_index(drop=True)

    logger.info(
        f"Joined {len(joined)} price rows for {joined['instrument_id'].nunique()} instruments"
    )
    return joined
