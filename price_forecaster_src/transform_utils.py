# price_forecaster_src/transform_utils.py

import pandas as pd
import numpy as np
from typing import Sequence, Union
import logging

from statsmodels.tsa.seasonal import seasonal_decompose
from statsmodels.tsa.stattools import adfuller

from .exceptions import EmptyInputError
from .models import PriceSeries, StabilizationResult, UnitRootResult

logger = logging.getLogger(__name__)

# ADF deterministic terms: no constant, constant (drift), constant + linear trend
ADF_REGRESSIONS = {"none": "n", "drift": "c", "trend": "ct"}
DEFAULT_DECISION_VARIANTS = ("none", "trend")
MIN_ADF_OBS = 12


def _as_series(series: Union[PriceSeries, pd.Series, np.ndarray]) -> pd.Series:
    if isinstance(series, PriceSeries):
        return series.to_series()
    return pd.Series(series, dtype=float).dropna()


def test_unit_root(series: Union[PriceSeries, pd.Series, np.ndarray],
                   alpha: float = 0.05,
                   decision_variants: Sequence[str] = DEFAULT_DECISION_VARIANTS,
                   autolag: str = "AIC") -> UnitRootResult:
    """
    Run the Augmented Dickey-Fuller test under every deterministic specification.

    The ADF null hypothesis is a unit root. The test is run without a constant
    ('none'), with a constant ('drift') and with a constant and linear trend
    ('trend'); statistics and p-values are reported for each so that a series
    that passes one variant but not another is visible to the caller.

    Parameters
    ----------
    series : Union[PriceSeries, pd.Series, np.ndarray]
        Series to test. NaNs are dropped for plain arrays/Series.
    alpha : float, default=0.05
        Significance level.
    decision_variants : Sequence[str], default=("none", "trend")
        Variants that must all reject the unit root for the series to be
        declared stationary. Any p-value above ``alpha`` among them gives a
        non-stationary verdict.
    autolag : str, default="AIC"
        Lag-length criterion passed to ``adfuller``.

    Returns
    -------
    UnitRootResult
        Per-variant statistics, p-values and used lags plus the verdict.

    Raises
    ------
    EmptyInputError
        If fewer than 12 observations are available.
    ValueError
        If a decision variant is unknown.
    """
    unknown = [v for v in decision_variants if v not in ADF_REGRESSIONS]
    if unknown or not decision_variants:
        raise ValueError(f"Unknown ADF variant(s) {unknown}. Use any of {list(ADF_REGRESSIONS)}")

    s = _as_series(series)
    if len(s) < MIN_ADF_OBS:
        raise EmptyInputError(f"ADF test needs at least {MIN_ADF_OBS} observations, got {len(s)}")

    statistics, p_values, used_lags = {}, {}, {}
    for variant, regression in ADF_REGRESSIONS.items():
        res = adfuller(s.to_numpy(), regression=regression, autolag=autolag)
        statistics[variant] = float(res[0])
        p_values[variant] = float(res[1])
        used_lags[variant] = int(res[2])

    is_stationary = all(p_values[v] <= alpha for v in decision_variants)
    logger.debug("ADF p-values %s -> %s", p_values, "stationary" if is_stationary else "non-stationary")
    return UnitRootResult(
        statistics=statistics,
        p_values_by_lag_type=p_values,
        used_lags=used_lags,
        n_obs=len(s),
        alpha=alpha,
        decision_variants=tuple(decision_variants),
        is_stationary=is_stationary,
    )


# not a pytest test function
test_unit_root.__test__ = False


def stabilize(series: PriceSeries,
              log: bool = True,
              diff_order: int = 1,
              alpha: float = 0.05,
              decision_variants: Sequence[str] = DEFAULT_DECISION_VARIANTS) -> StabilizationResult:
    """
    Log-transform and difference a series, testing for a unit root before and after.

    The post-transform verdict is computed, not assumed: if the transformed
    series still looks non-stationary the result says so and a warning is
    logged.

    Parameters
    ----------
    series : PriceSeries
        Monthly series on the level scale.
    log : bool, default=True
        Apply the natural log before differencing.
    diff_order : int, default=1
        Number of first differences to apply.
    alpha : float, default=0.05
        Significance level for both tests.
    decision_variants : Sequence[str]
        See ``test_unit_root``.

    Returns
    -------
    StabilizationResult
        New transformed series plus the pre/post ADF results.

    Raises
    ------
    NonPositiveValueError
        If ``log`` is requested and any value is <= 0.
    """
    pre = test_unit_root(series, alpha=alpha, decision_variants=decision_variants)

    transformed = series.log() if log else series
    transformed = transformed.difference(diff_order)
    post = test_unit_root(transformed, alpha=alpha, decision_variants=decision_variants)

    logger.info("Stationarity of '%s': before=%s, after %s=%s",
                series.name,
                "stationary" if pre.is_stationary else "non-stationary",
                describe_transforms(transformed),
                "stationary" if post.is_stationary else "non-stationary")
    if not post.is_stationary:
        logger.warning("Series '%s' is still non-stationary after %s (p-values %s)",
                       series.name, describe_transforms(transformed), post.p_values_by_lag_type)

    return StabilizationResult(series=transformed, pre=pre, post=post, log_applied=log, diff_order=diff_order)


def adf_select_d(series: PriceSeries,
                 max_d: int = 2,
                 alpha: float = 0.05,
                 decision_variants: Sequence[str] = DEFAULT_DECISION_VARIANTS) -> int:
    """
    Select the smallest differencing order whose result tests stationary.

    Returns ``max_d`` (with a warning) when no order up to ``max_d`` passes.
    """
    for d in range(max_d + 1):
        candidate = series.difference(d)
        if len(candidate) < MIN_ADF_OBS:
            break
        if test_unit_root(candidate, alpha=alpha, decision_variants=decision_variants).is_stationary:
            return d
    logger.warning("No differencing order up to %d made '%s' stationary; using d=%d", max_d, series.name, max_d)
    return max_d


def seasonal_decomposition(series: PriceSeries, model: str = "additive") -> pd.DataFrame:
    """
    Classical moving-average decomposition into trend, seasonal and residual parts.

    Parameters
    ----------
    series : PriceSeries
        Series with at least two full seasonal cycles.
    model : str, default="additive"
        'additive' or 'multiplicative'.

    Returns
    -------
    pd.DataFrame
        Columns ['observed', 'trend', 'seasonal', 'resid'] indexed by period.
        Trend and residual are NaN at the edges (centred moving average).
    """
    if len(series) < 2 * series.frequency:
        raise EmptyInputError(
            f"Seasonal decomposition needs {2 * series.frequency} observations, got {len(series)}"
        )
    result = seasonal_decompose(series.to_series().to_numpy(), model=model, period=series.frequency)
    return pd.DataFrame(
        {
            "observed": result.observed,
            "trend": result.trend,
            "seasonal": result.seasonal,
            "resid": result.resid,
        },
        index=series.periods,
    )


def describe_transforms(series: PriceSeries) -> str:
    """
    Human-readable description of the transforms applied to a series.

    Examples
    --------
    >>> describe_transforms(PriceSeries.from_values([1.0, 2.0], start="2020-01"))
    'level'
    """
    if not series.transforms:
        return "level"
    parts = []
    for t in series.transforms:
        if t == "log":
            parts.append("log")
        elif t.startswith("diff"):
            parts.append(f"difference (order {t[4:]})")
        else:
            parts.append(t)
    return " -> ".join(parts)
