# price_forecaster_src/series_utils.py

"""
Monthly series construction from hourly observations.

Hourly rows are filtered by a start boundary, coerced to numbers, averaged per
calendar month and placed on a gap-free monthly index. Months that end up
without a value are imputed from a structural time-series model smoothed over
the whole series, so the imputation follows local trend and seasonality.
"""

import warnings
from typing import Iterable, Optional, Sequence, Tuple
import logging

import numpy as np
import pandas as pd
from statsmodels.tools.sm_exceptions import ConvergenceWarning
from statsmodels.tsa.statespace.structural import UnobservedComponents

from helpers.temporal import complete_monthly_index, to_month_periods

from .exceptions import EmptyInputError, MalformedInputError
from .models import MONTHS_PER_YEAR, MonthlySeries, PriceSeries, RawObservation

logger = logging.getLogger(__name__)

MIN_OBSERVED_FOR_KALMAN = 3


def _observations_to_frame(observations: Sequence[RawObservation]) -> Tuple[pd.DataFrame, pd.Series]:
    index = pd.DatetimeIndex([obs.timestamp for obs in observations], name="timestamp")
    frame = pd.DataFrame([obs.measurements for obs in observations], index=index)
    seasons = pd.Series([obs.season for obs in observations], index=index, dtype=object, name="season")
    return frame, seasons


def coerce_numeric_fields(frame: pd.DataFrame, required_fields: Sequence[str] = ("price",)) -> pd.DataFrame:
    """
    Coerce every measurement column to float.

    Blank values (None, NaN, empty or whitespace-only text) become NaN. In one
    of ``required_fields`` a blank or unparseable value is malformed; in any
    other field unparseable text is logged and treated as missing.

    Parameters
    ----------
    frame : pd.DataFrame
        Measurements indexed by timestamp; values may be numbers or text.
    required_fields : Sequence[str]
        Fields that must be present and non-blank on every row.

    Returns
    -------
    pd.DataFrame
        Float frame with the same index and columns.

    Raises
    ------
    MalformedInputError
        Naming the offending field and the first offending timestamp.
    """
    absent = [f for f in required_fields if f not in frame.columns]
    if absent:
        raise MalformedInputError(f"Required field(s) {absent} not present in observations", field=absent[0])

    out = {}
    for col in frame.columns:
        raw = frame[col].map(lambda v: v.strip() if isinstance(v, str) else v)
        blank = (raw.isna() | raw.map(lambda v: isinstance(v, str) and v == "")).astype(bool)
        numeric = pd.to_numeric(raw.where(~blank.to_numpy()), errors="coerce")
        bad = numeric.isna().to_numpy() & ~blank.to_numpy()
        if bad.any():
            ts = raw.index[bad][0]
            if col in required_fields:
                raise MalformedInputError(
                    f"Field '{col}' has non-numeric value {raw[bad].iloc[0]!r} at {ts}", field=col, timestamp=ts
                )
            logger.warning("Field '%s' has %d non-numeric value(s), first at %s; treating them as missing.",
                           col, int(bad.sum()), ts)
        if col in required_fields and blank.any():
            ts = raw.index[blank.to_numpy()][0]
            raise MalformedInputError(f"Required field '{col}' is missing at {ts}", field=col, timestamp=ts)
        out[col] = numeric.astype(float)
    return pd.DataFrame(out, index=frame.index)


def _most_frequent(labels: pd.Series) -> Optional[str]:
    labels = labels.dropna()
    if labels.empty:
        return None
    # first label to reach the maximum count, in source order
    return labels.value_counts(sort=False).idxmax()


def _smoothed_signal(res) -> np.ndarray:
    design = np.asarray(res.model["design"])
    if design.ndim == 3:
        design = design[:, :, 0]
    return np.asarray(design @ res.smoothed_state).ravel()


def kalman_impute(series: pd.Series, seasonal_period: int = MONTHS_PER_YEAR, maxiter: int = 500) -> pd.Series:
    """
    Fill missing values with the Kalman-smoothed estimate of a structural model.

    The model is a local linear trend, with a stochastic seasonal of
    ``seasonal_period`` when at least two full cycles are observed. It is fit
    by maximum likelihood on the whole series (missing entries are handled by
    the filter) and the smoothed signal replaces only the missing entries.

    Parameters
    ----------
    series : pd.Series
        Regular series with NaN at the positions to impute.
    seasonal_period : int, default=12
        Periods per seasonal cycle.
    maxiter : int, default=500
        Optimizer iteration budget.

    Returns
    -------
    pd.Series
        Copy of ``series`` without missing values.
    """
    missing = series.isna().to_numpy()
    if not missing.any():
        return series.copy()

    n_observed = int((~missing).sum())
    if n_observed < MIN_OBSERVED_FOR_KALMAN:
        logger.warning("Field '%s' has only %d observed months; filling %d gap(s) with the observed mean.",
                       series.name, n_observed, int(missing.sum()))
        return series.fillna(series.mean())

    seasonal = seasonal_period if n_observed >= 2 * seasonal_period else None
    endog = series.to_numpy(dtype=float)
    with warnings.catch_warnings():
        warnings.simplefilter("ignore", ConvergenceWarning)
        model = UnobservedComponents(endog, level="local linear trend", seasonal=seasonal)
        res = model.fit(disp=False, maxiter=maxiter)

    signal = _smoothed_signal(res)
    out = series.copy()
    out[missing] = signal[missing]
    logger.debug("Imputed %d month(s) of '%s' (seasonal=%s)", int(missing.sum()), series.name, seasonal)
    return out


def _on_or_after(observations: Sequence[RawObservation], start_boundary) -> list:
    index = pd.DatetimeIndex([obs.timestamp for obs in observations])
    boundary = pd.Timestamp(start_boundary)
    # a naive boundary is read as wall time in the observations' zone
    if index.tz is not None and boundary.tz is None:
        boundary = boundary.tz_localize(index.tz, ambiguous=True, nonexistent="shift_forward")
    elif index.tz is None and boundary.tz is not None:
        boundary = boundary.tz_localize(None)
    keep = index >= boundary
    return [obs for obs, kept in zip(observations, keep) if kept]


def build_monthly_series(observations: Iterable[RawObservation],
                         start_boundary=None,
                         required_fields: Sequence[str] = ("price",),
                         seasonal_period: int = MONTHS_PER_YEAR) -> MonthlySeries:
    """
    Aggregate hourly observations into a contiguous monthly series.

    Parameters
    ----------
    observations : Iterable[RawObservation]
        Hourly observations in source order (duplicates and gaps allowed).
    start_boundary : timestamp-like, optional
        Observations strictly before this timestamp are discarded. A naive
        boundary is taken as wall time in the observations' timezone. ``None``
        keeps all history.
    required_fields : Sequence[str], default=("price",)
        Fields that must be present and numeric on every retained row.
    seasonal_period : int, default=12
        Seasonal period used by the imputation model.

    Returns
    -------
    MonthlySeries
        Monthly means per field, gaps imputed and flagged.

    Raises
    ------
    EmptyInputError
        If no observation remains after the boundary filter.
    MalformedInputError
        If a required value is missing or not numeric.

    Notes
    -----
    The function is pure: the same observations and boundary give the same
    result, including the imputed values.
    """
    observations = list(observations)
    if start_boundary is not None:
        observations = _on_or_after(observations, start_boundary)
    if not observations:
        raise EmptyInputError(f"No observations remain on or after start boundary {start_boundary}")

    frame, seasons = _observations_to_frame(observations)
    if not frame.index.is_monotonic_increasing:
        logger.warning("Observations are not in chronological order; sorting %d rows.", len(frame))
        order = np.argsort(frame.index.to_numpy(), kind="mergesort")
        frame = frame.iloc[order]
        seasons = seasons.iloc[order]

    numeric = coerce_numeric_fields(frame, required_fields)
    months = to_month_periods(numeric.index)

    means = numeric.groupby(months).mean()
    season_by_month = seasons.groupby(months).agg(_most_frequent)

    observed_months = means.index
    full_index = complete_monthly_index(observed_months)
    means = means.reindex(full_index)
    season_by_month = season_by_month.reindex(full_index).astype(object)
    season_by_month = season_by_month.where(season_by_month.notna(), None)

    empty_cols = [c for c in means.columns if means[c].isna().all()]
    if empty_cols:
        logger.warning("Dropping field(s) with no numeric observations: %s", empty_cols)
        means = means.drop(columns=empty_cols)

    originally_missing = means.isna()
    n_gap_months = len(full_index) - len(observed_months)
    if n_gap_months:
        logger.info("%d calendar month(s) had no observations and will be imputed.", n_gap_months)

    imputed = means.copy()
    for col in means.columns:
        if originally_missing[col].any():
            imputed[col] = kalman_impute(means[col], seasonal_period=seasonal_period)

    logger.info("Built monthly series %s..%s (%d months, %d imputed cell(s))",
                full_index[0], full_index[-1], len(full_index), int(originally_missing.values.sum()))
    return MonthlySeries(values=imputed, originally_missing=originally_missing,
                         season=season_by_month, frequency=MONTHS_PER_YEAR)


def to_price_series(monthly: MonthlySeries, field: str = "price") -> PriceSeries:
    """Project a MonthlySeries onto one field (the price by default)."""
    return PriceSeries(monthly.field(field), name=field, frequency=monthly.frequency)
