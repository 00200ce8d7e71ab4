# price_forecaster_src/forecasting_utils.py

import math
import warnings
from contextlib import contextmanager
import numpy as np
import pandas as pd
from concurrent.futures import ThreadPoolExecutor
from itertools import product
from typing import List, Optional, Sequence, Tuple
from tqdm.auto import tqdm
import logging

from scipy import stats
from statsmodels.tools.sm_exceptions import ConvergenceWarning
from statsmodels.tsa.statespace.sarimax import SARIMAX

from .exceptions import FitDivergenceError, InvalidHorizonError, NoConvergentModelError
from .models import Forecast, ForecastPoint, FittedModel, ModelOrder, PriceSeries, SeasonalOrder

logger = logging.getLogger(__name__)

# AIC values closer than this are treated as tied
AIC_TIE_TOLERANCE = 1e-6
DEFAULT_MAX_ITER = 200


@contextmanager
def quiet_estimation():
    """Silence optimizer convergence and start-parameter warnings for the enclosed fits."""
    with warnings.catch_warnings():
        warnings.simplefilter("ignore", ConvergenceWarning)
        warnings.simplefilter("ignore", UserWarning)
        yield


def fitted_model_from_results(results, order: ModelOrder, series: PriceSeries,
                              selected_by: str = "grid") -> FittedModel:
    """
    Wrap a statsmodels SARIMAX results object into a FittedModel.

    Parameters
    ----------
    results : SARIMAXResults
        Fitted statsmodels results.
    order : ModelOrder
        Order the results were fitted with.
    series : PriceSeries
        Series the model was fitted on; supplies scale, name and last period.
    selected_by : str, default="grid"
        Which search produced the model ('grid' or 'auto').
    """
    names = list(getattr(results.model, "param_names", []))
    params = np.asarray(results.params, dtype=float)
    coefficients = {name: float(value) for name, value in zip(names, params)}
    sigma2 = coefficients.get("sigma2", float("nan"))
    return FittedModel(
        order=order,
        coefficients=coefficients,
        sigma2=float(sigma2),
        aic=float(results.aic),
        bic=float(results.bic),
        hqic=float(results.hqic),
        log_likelihood=float(results.llf),
        n_obs=int(results.nobs),
        scale=series.scale,
        series_name=series.name,
        last_period=series.last_period,
        frequency=series.frequency,
        selected_by=selected_by,
        results=results,
    )


def fit_arima_order(series: PriceSeries,
                    order: ModelOrder,
                    max_iter: int = DEFAULT_MAX_ITER,
                    quiet: bool = True) -> FittedModel:
    """
    Fit one ARIMA order on the undifferenced series.

    Differencing is done inside the state-space model
    (``simple_differencing=False``), so log-likelihoods and AIC values are
    comparable across orders that share the same d.

    Parameters
    ----------
    series : PriceSeries
        Series on its fitting scale (level or log), not differenced.
    order : ModelOrder
        (p, d, q) and optional seasonal order.
    max_iter : int, default=200
        Optimizer iteration budget.
    quiet : bool, default=True
        Enter ``quiet_estimation`` around the fit. The grid search passes
        False and holds the filters once around its whole worker pool.

    Returns
    -------
    FittedModel
        The estimated model.

    Raises
    ------
    FitDivergenceError
        If the optimizer does not converge within ``max_iter``, the
        log-likelihood is not finite, or the estimation raises a numerical
        error.
    """
    if quiet:
        with quiet_estimation():
            return fit_arima_order(series, order, max_iter=max_iter, quiet=False)

    try:
        res = SARIMAX(
            series.to_series().to_numpy(),
            order=order.as_tuple(),
            seasonal_order=order.seasonal_tuple(),
            simple_differencing=False,
        ).fit(disp=False, maxiter=max_iter)
    except (ValueError, np.linalg.LinAlgError) as e:
        raise FitDivergenceError(f"{order} failed to fit: {e}", order=order.as_tuple()) from e

    converged = bool((getattr(res, "mle_retvals", None) or {}).get("converged", True))
    if not converged:
        raise FitDivergenceError(f"{order} did not converge within {max_iter} iterations",
                                 order=order.as_tuple())
    if not np.isfinite(res.llf) or not np.isfinite(res.aic):
        raise FitDivergenceError(f"{order} produced a non-finite log-likelihood", order=order.as_tuple())

    return fitted_model_from_results(res, order, series, selected_by="grid")


def candidate_orders(max_p: int, d: int, max_q: int,
                     seasonal_order: Optional[SeasonalOrder] = None) -> List[ModelOrder]:
    """
    Enumerate the (p, d, q) grid in tie-break order.

    Orders are sorted by p+q, then p, so that the first of several equally
    good candidates is the most parsimonious one.
    """
    if max_p < 0 or max_q < 0 or d < 0:
        raise ValueError("max_p, d and max_q must be non-negative")
    orders = [ModelOrder(p, d, q, seasonal_order) for p, q in product(range(max_p + 1), range(max_q + 1))]
    return sorted(orders, key=lambda o: (o.p + o.q, o.p))


def _try_fit(series: PriceSeries, order: ModelOrder, max_iter: int) -> Tuple[ModelOrder, Optional[FittedModel], str]:
    try:
        return order, fit_arima_order(series, order, max_iter=max_iter, quiet=False), ""
    except FitDivergenceError as e:
        logger.debug("Excluding %s: %s", order, e)
        return order, None, str(e)


def _reduce_best(fits: Sequence[Tuple[ModelOrder, Optional[FittedModel], str]]) -> Optional[FittedModel]:
    best: Optional[FittedModel] = None
    for order, fitted, _ in sorted(fits, key=lambda f: (f[0].p + f[0].q, f[0].p)):
        if fitted is None:
            continue
        if best is None:
            best = fitted
        elif fitted.aic < best.aic and not math.isclose(fitted.aic, best.aic, rel_tol=0.0, abs_tol=AIC_TIE_TOLERANCE):
            best = fitted
    return best


def _fit_grid(series: PriceSeries, orders: Sequence[ModelOrder], max_iter: int,
              n_jobs: int) -> List[Tuple[ModelOrder, Optional[FittedModel], str]]:
    with quiet_estimation():
        if n_jobs is None or n_jobs <= 1:
            return [_try_fit(series, order, max_iter) for order in tqdm(orders, desc="Grid search ARIMA")]
        with ThreadPoolExecutor(max_workers=n_jobs) as pool:
            futures = [pool.submit(_try_fit, series, order, max_iter) for order in orders]
            return [f.result() for f in tqdm(futures, desc="Grid search ARIMA")]


def _grid_table(fits: Sequence[Tuple[ModelOrder, Optional[FittedModel], str]]) -> pd.DataFrame:
    rows = []
    for order, fitted, error in fits:
        rows.append({
            "order": str(order),
            "p": order.p,
            "d": order.d,
            "q": order.q,
            "AIC": fitted.aic if fitted is not None else float("inf"),
            "BIC": fitted.bic if fitted is not None else float("inf"),
            "HQIC": fitted.hqic if fitted is not None else float("inf"),
            "converged": fitted is not None,
            "error": error,
        })
    table = pd.DataFrame(rows, columns=["order", "p", "d", "q", "AIC", "BIC", "HQIC", "converged", "error"])
    table["_k"] = table["p"] + table["q"]
    table = table.sort_values(by=["AIC", "_k", "p"], ascending=True, kind="mergesort")
    return table.drop(columns="_k").reset_index(drop=True)


def grid_search_arima(series: PriceSeries,
                      max_p: int,
                      d: int,
                      max_q: int,
                      seasonal_order: Optional[SeasonalOrder] = None,
                      max_iter: int = DEFAULT_MAX_ITER,
                      n_jobs: int = 1) -> Tuple[Optional[FittedModel], pd.DataFrame]:
    """
    Fit every order of the bounded (p, d, q) grid and rank the candidates by AIC.

    Parameters
    ----------
    series : PriceSeries
        Series on its fitting scale, not differenced.
    max_p, max_q : int
        Inclusive upper bounds for the AR and MA orders.
    d : int
        Fixed differencing order passed to every fit.
    seasonal_order : Optional[SeasonalOrder]
        Fixed seasonal component shared by all candidates.
    max_iter : int, default=200
        Iteration budget per fit.
    n_jobs : int, default=1
        Number of worker threads; results do not depend on it.

    Returns
    -------
    Tuple[Optional[FittedModel], pd.DataFrame]
        (best model or None when nothing converged, table of all candidates)
        The table has columns ['order', 'p', 'd', 'q', 'AIC', 'BIC', 'HQIC',
        'converged', 'error'] sorted by AIC; diverged orders carry AIC=+inf.

    Notes
    -----
    Divergent candidates are excluded locally and never abort the search.
    The winner is chosen by visiting candidates in (p+q, p) order and only
    replacing the incumbent on a strictly lower AIC beyond a 1e-6 tolerance,
    so completion order of parallel fits cannot change the result.
    """
    orders = candidate_orders(max_p, d, max_q, seasonal_order)
    fits = _fit_grid(series, orders, max_iter, n_jobs)
    table = _grid_table(fits)
    n_ok = int(table["converged"].sum())
    logger.info("Grid search over %d orders: %d converged, %d excluded", len(orders), n_ok, len(orders) - n_ok)
    return _reduce_best(fits), table


def select_best(series: PriceSeries,
                max_p: int,
                d: int,
                max_q: int,
                seasonal_order: Optional[SeasonalOrder] = None,
                max_iter: int = DEFAULT_MAX_ITER,
                n_jobs: int = 1) -> FittedModel:
    """
    Exhaustive AIC grid search returning the minimum-AIC model.

    Raises
    ------
    NoConvergentModelError
        If no candidate order converged.
    """
    best, table = grid_search_arima(series, max_p, d, max_q, seasonal_order, max_iter=max_iter, n_jobs=n_jobs)
    if best is None:
        raise NoConvergentModelError(
            f"None of the {len(table)} candidate orders converged for '{series.name}'",
            attempted=table["order"].tolist(),
        )
    logger.info("Selected %s with AIC=%.3f", best.order, best.aic)
    return best


def forecast(fitted_model: FittedModel, horizon_periods: int, alpha: float = 0.05) -> Forecast:
    """
    Produce out-of-sample forecasts with standard errors.

    Forecasts come from the Kalman filter's recursive prediction equations,
    which propagate the forecast-error variance forward one period at a time.

    Parameters
    ----------
    fitted_model : FittedModel
        Model returned by ``select_best``, ``fit_arima_order`` or the auto search.
    horizon_periods : int
        Number of months to forecast; must be a positive integer.
    alpha : float, default=0.05
        Interval bounds cover 1 - alpha.

    Returns
    -------
    Forecast
        ``horizon_periods`` entries for the months after the last fitted
        period. Values are on ``fitted_model.scale``: if the model was fitted
        on log prices, estimates, standard errors and bounds are log prices.

    Raises
    ------
    InvalidHorizonError
        If ``horizon_periods`` is not a positive integer.
    """
    if isinstance(horizon_periods, bool) or not isinstance(horizon_periods, (int, np.integer)) or horizon_periods <= 0:
        raise InvalidHorizonError(f"Forecast horizon must be a positive integer, got {horizon_periods!r}",
                                  horizon=horizon_periods)
    if fitted_model.results is None:
        raise ValueError("FittedModel carries no estimation results to forecast from")

    fc = fitted_model.results.get_forecast(steps=int(horizon_periods))
    mean = np.asarray(fc.predicted_mean, dtype=float).ravel()
    se = np.asarray(fc.se_mean, dtype=float).ravel()
    z = stats.norm.ppf(1.0 - alpha / 2.0)

    start = fitted_model.last_period + 1
    points = tuple(
        ForecastPoint(
            period=start + i,
            estimate=float(mean[i]),
            std_error=float(se[i]),
            lower=float(mean[i] - z * se[i]),
            upper=float(mean[i] + z * se[i]),
        )
        for i in range(int(horizon_periods))
    )
    logger.debug("Forecast %d periods from %s on %s scale", horizon_periods, start, fitted_model.scale)
    return Forecast(points=points, scale=fitted_model.scale, order=fitted_model.order, alpha=alpha)
