# price_forecaster_src/data_utils.py

import pandas as pd
from pathlib import Path
from typing import List, Optional, Sequence
import logging

from .exceptions import EmptyInputError, MalformedInputError
from .models import RawObservation

logger = logging.getLogger(__name__)

DEFAULT_TIMESTAMP_COLUMN = "timestamp"
DEFAULT_SEASON_COLUMN = "season"
DEFAULT_PRICE_COLUMN = "price"


def load_price_table_csv(table_path: Path,
                         timestamp_col: str = DEFAULT_TIMESTAMP_COLUMN,
                         price_col: str = DEFAULT_PRICE_COLUMN) -> pd.DataFrame:
    """
    Load the hourly generation/load/price table from a CSV file.

    Values are read as they are stored in the file; numeric coercion happens
    once, when the table is turned into observations and aggregated.

    Parameters
    ----------
    table_path : Path
        CSV file with at least a timestamp column and a price column.
    timestamp_col : str, default="timestamp"
        Name of the timestamp column.
    price_col : str, default="price"
        Name of the price column.

    Returns
    -------
    pd.DataFrame
        Raw table in file order.

    Raises
    ------
    EmptyInputError
        If the file does not exist or contains no rows.
    MalformedInputError
        If a required column is absent.
    """
    if not table_path.exists():
        raise EmptyInputError(f"Price table CSV not found: {table_path}")

    logger.info("Loading price table from: %s", table_path)
    df = pd.read_csv(table_path)

    for col in (timestamp_col, price_col):
        if col not in df.columns:
            raise MalformedInputError(f"Price table must contain a '{col}' column.", field=col)

    if df.empty:
        raise EmptyInputError(f"Price table {table_path} has no rows.")
    return df


def observations_from_frame(df: pd.DataFrame,
                            timestamp_col: str = DEFAULT_TIMESTAMP_COLUMN,
                            season_col: Optional[str] = DEFAULT_SEASON_COLUMN,
                            measurement_cols: Optional[Sequence[str]] = None) -> List[RawObservation]:
    """
    Convert a raw table into RawObservation records.

    Parameters
    ----------
    df : pd.DataFrame
        Table with a timestamp column, an optional season column and numeric
        measurement columns (generation by source, load, price).
    timestamp_col : str
        Name of the timestamp column; every value must parse as a datetime.
    season_col : Optional[str]
        Name of the season label column. Ignored if absent from ``df``.
    measurement_cols : Optional[Sequence[str]]
        Columns to carry as measurements. Defaults to every other column.

    Returns
    -------
    List[RawObservation]
        One observation per row, in source order.

    Raises
    ------
    MalformedInputError
        If a timestamp cannot be parsed or a measurement column is missing.
    """
    if timestamp_col not in df.columns:
        raise MalformedInputError(f"Missing timestamp column '{timestamp_col}'", field=timestamp_col)

    has_season = season_col is not None and season_col in df.columns
    if measurement_cols is None:
        excluded = {timestamp_col, season_col if has_season else None}
        measurement_cols = [c for c in df.columns if c not in excluded]
    else:
        absent = [c for c in measurement_cols if c not in df.columns]
        if absent:
            raise MalformedInputError(f"Missing measurement column(s): {absent}", field=absent[0])

    timestamps = pd.to_datetime(df[timestamp_col], errors="coerce")
    bad_ts = timestamps.isna()
    if bad_ts.any():
        first_bad = df.loc[bad_ts, timestamp_col].iloc[0]
        raise MalformedInputError(
            f"{int(bad_ts.sum())} row(s) have an unparseable timestamp (first: {first_bad!r})",
            field=timestamp_col,
        )

    records = df[list(measurement_cols)].to_dict(orient="records")
    seasons = df[season_col].tolist() if has_season else [None] * len(df)

    observations = [
        RawObservation(timestamp=ts, measurements=rec, season=(None if pd.isna(season) else str(season)))
        for ts, rec, season in zip(timestamps, records, seasons)
    ]
    logger.info("Built %d observations with fields %s", len(observations), list(measurement_cols))
    return observations
