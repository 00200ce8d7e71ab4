# price_forecaster_src/auto_select_utils.py

"""
Stepwise automatic ARIMA selection used as a cross-check of the grid search.

The stepwise search (pmdarima's Hyndman-Khandakar implementation) explores
(p, d, q) x (P, D, Q) around the current best model and stops when no
neighbour improves the AIC. It is not exhaustive, so its choice is compared
against the exhaustive grid result and any disagreement is logged; the grid
model remains the canonical one.
"""

import warnings
from typing import Optional
import logging

import pmdarima as pm
from statsmodels.tools.sm_exceptions import ConvergenceWarning

from .exceptions import NoConvergentModelError
from .forecasting_utils import DEFAULT_MAX_ITER, fitted_model_from_results
from .models import FittedModel, ModelOrder, PriceSeries, SeasonalOrder, SelectionComparison

logger = logging.getLogger(__name__)


def auto_select(series: PriceSeries,
                seasonal: bool = True,
                d: Optional[int] = None,
                D: Optional[int] = None,
                max_p: int = 5,
                max_q: int = 5,
                max_P: int = 2,
                max_Q: int = 2,
                max_d: int = 2,
                max_D: int = 1,
                max_iter: int = DEFAULT_MAX_ITER) -> FittedModel:
    """
    Select an ARIMA/SARIMA model with a stepwise AIC search.

    Parameters
    ----------
    series : PriceSeries
        Series on its fitting scale, not differenced.
    seasonal : bool, default=True
        Search seasonal orders with period ``series.frequency``.
    d, D : Optional[int]
        Fixed differencing orders; ``None`` lets unit-root tests choose them.
    max_p, max_q, max_P, max_Q, max_d, max_D : int
        Search bounds.
    max_iter : int
        Iteration budget per candidate fit.

    Returns
    -------
    FittedModel
        The selected model, ``selected_by='auto'``.

    Raises
    ------
    NoConvergentModelError
        If the search could not fit any candidate.
    """
    m = series.frequency if seasonal else 1
    with warnings.catch_warnings():
        warnings.simplefilter("ignore", ConvergenceWarning)
        try:
            model = pm.auto_arima(
                series.to_series().to_numpy(),
                start_p=0, start_q=0,
                max_p=max_p, max_q=max_q, d=d, max_d=max_d,
                seasonal=seasonal, m=m, D=D, max_D=max_D,
                max_P=max_P, max_Q=max_Q,
                information_criterion="aic",
                stepwise=True,
                suppress_warnings=True,
                error_action="ignore",
                trace=False,
                maxiter=max_iter,
            )
        except ValueError as e:
            raise NoConvergentModelError(f"Stepwise search found no viable model for '{series.name}': {e}") from e

    P, D_sel, Q, period = model.seasonal_order
    seasonal_part = None
    if period > 1 and (P or D_sel or Q):
        seasonal_part = SeasonalOrder(P, D_sel, Q, period)
    order = ModelOrder(*model.order, seasonal=seasonal_part)

    fitted = fitted_model_from_results(model.arima_res_, order, series, selected_by="auto")
    logger.info("Stepwise search selected %s with AIC=%.3f", order, fitted.aic)
    return fitted


def compare_selections(grid_model: FittedModel, auto_model: FittedModel) -> SelectionComparison:
    """
    Compare the exhaustive grid choice with the stepwise choice.

    Divergence is reported, never reconciled: the grid model stays canonical.
    """
    agrees = grid_model.order == auto_model.order
    comparison = SelectionComparison(
        grid_order=grid_model.order,
        auto_order=auto_model.order,
        grid_aic=grid_model.aic,
        auto_aic=auto_model.aic,
        aic_difference=auto_model.aic - grid_model.aic,
        agrees=agrees,
    )
    if agrees:
        logger.info("Grid and stepwise searches agree on %s", grid_model.order)
    else:
        logger.warning("Model selection divergence: grid chose %s (AIC=%.3f), stepwise chose %s (AIC=%.3f); "
                       "keeping the grid model", grid_model.order, grid_model.aic,
                       auto_model.order, auto_model.aic)
    return comparison
