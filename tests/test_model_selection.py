import threading
from contextlib import contextmanager

import numpy as np
import pytest

from price_forecaster_src import forecasting_utils
from price_forecaster_src.exceptions import FitDivergenceError, NoConvergentModelError
from price_forecaster_src.forecasting_utils import (
    candidate_orders, fit_arima_order, grid_search_arima, select_best
)
from price_forecaster_src.models import ModelOrder, SeasonalOrder


def test_candidate_orders_are_sorted_by_complexity():
    orders = candidate_orders(2, 1, 1)
    keys = [(o.p, o.q) for o in orders]
    assert keys == [(0, 0), (0, 1), (1, 0), (1, 1), (2, 0), (2, 1)]
    assert all(o.d == 1 for o in orders)


def test_candidate_orders_carry_fixed_seasonal_part():
    seasonal = SeasonalOrder(1, 0, 0, 12)
    assert all(o.seasonal == seasonal for o in candidate_orders(1, 1, 1, seasonal))


def test_selects_true_order_or_equivalent(arima_011_series):
    best = select_best(arima_011_series, max_p=2, d=1, max_q=3)
    _, table = grid_search_arima(arima_011_series, max_p=2, d=1, max_q=3)

    true_aic = table.loc[table["order"] == "ARIMA(0,1,1)", "AIC"].iloc[0]
    assert best.order.as_tuple() == (0, 1, 1) or abs(best.aic - true_aic) <= 2.0
    assert best.aic <= true_aic + 1e-6
    assert best.selected_by == "grid"
    if best.order.as_tuple() == (0, 1, 1):
        assert best.coefficients["ma.L1"] == pytest.approx(0.6, abs=0.15)


def test_grid_table_lists_every_candidate(arima_011_series):
    best, table = grid_search_arima(arima_011_series, max_p=1, d=1, max_q=2)
    assert len(table) == 6
    assert table.columns.tolist() == ["order", "p", "d", "q", "AIC", "BIC", "HQIC", "converged", "error"]
    assert table["AIC"].is_monotonic_increasing
    assert table.iloc[0]["AIC"] == pytest.approx(best.aic)


def test_parallel_search_matches_sequential(arima_011_series):
    seq, _ = grid_search_arima(arima_011_series, max_p=1, d=1, max_q=1, n_jobs=1)
    par, _ = grid_search_arima(arima_011_series, max_p=1, d=1, max_q=1, n_jobs=3)
    assert seq.order == par.order
    assert seq.aic == pytest.approx(par.aic)


def test_parallel_search_sets_warning_filters_once_outside_the_workers(monkeypatch, arima_011_series):
    entered = []
    original = forecasting_utils.quiet_estimation

    @contextmanager
    def recording_quiet_estimation():
        entered.append(threading.current_thread())
        with original():
            yield

    monkeypatch.setattr(forecasting_utils, "quiet_estimation", recording_quiet_estimation)
    best, table = grid_search_arima(arima_011_series, max_p=1, d=1, max_q=1, n_jobs=3)

    assert best is not None and len(table) == 4
    assert entered == [threading.main_thread()]


def test_ties_keep_the_simpler_order(monkeypatch, arima_011_series, make_fitted):
    aics = {(0, 0): 10.0, (0, 1): 10.0 - 1e-9, (1, 0): 10.0, (1, 1): 10.0}

    def fake_fit(series, order, max_iter=200, quiet=True):
        return make_fitted(order.p, order.d, order.q, aics[(order.p, order.q)])

    monkeypatch.setattr(forecasting_utils, "fit_arima_order", fake_fit)
    best = select_best(arima_011_series, max_p=1, d=1, max_q=1)
    assert best.order == ModelOrder(0, 1, 0)


def test_strictly_lower_aic_wins(monkeypatch, arima_011_series, make_fitted):
    aics = {(0, 0): 10.0, (0, 1): 10.0, (1, 0): 9.0, (1, 1): 9.5}

    def fake_fit(series, order, max_iter=200, quiet=True):
        return make_fitted(order.p, order.d, order.q, aics[(order.p, order.q)])

    monkeypatch.setattr(forecasting_utils, "fit_arima_order", fake_fit)
    best = select_best(arima_011_series, max_p=1, d=1, max_q=1)
    assert best.order == ModelOrder(1, 1, 0)


def test_divergent_candidates_are_excluded(monkeypatch, arima_011_series, make_fitted):
    def fake_fit(series, order, max_iter=200, quiet=True):
        if order.p == 0:
            raise FitDivergenceError("diverged", order=order.as_tuple())
        return make_fitted(order.p, order.d, order.q, 20.0 + order.q)

    monkeypatch.setattr(forecasting_utils, "fit_arima_order", fake_fit)
    best, table = grid_search_arima(arima_011_series, max_p=1, d=1, max_q=1)
    assert best.order == ModelOrder(1, 1, 0)
    failed = table[~table["converged"]]
    assert len(failed) == 2
    assert np.isinf(failed["AIC"]).all()
    assert (failed["error"] == "diverged").all()


def test_no_convergent_model(monkeypatch, arima_011_series):
    def fake_fit(series, order, max_iter=200, quiet=True):
        raise FitDivergenceError("diverged", order=order.as_tuple())

    monkeypatch.setattr(forecasting_utils, "fit_arima_order", fake_fit)
    with pytest.raises(NoConvergentModelError) as excinfo:
        select_best(arima_011_series, max_p=1, d=1, max_q=1)
    assert len(excinfo.value.attempted) == 4


def test_numerical_failure_becomes_fit_divergence(monkeypatch, arima_011_series):
    class BrokenSARIMAX:
        def __init__(self, *args, **kwargs):
            raise np.linalg.LinAlgError("singular matrix")

    monkeypatch.setattr(forecasting_utils, "SARIMAX", BrokenSARIMAX)
    with pytest.raises(FitDivergenceError) as excinfo:
        fit_arima_order(arima_011_series, ModelOrder(2, 1, 2))
    assert excinfo.value.order == (2, 1, 2)


def test_fit_records_scale_and_last_period(arima_011_series):
    fitted = fit_arima_order(arima_011_series, ModelOrder(0, 1, 1))
    assert fitted.scale == "level"
    assert fitted.last_period == arima_011_series.last_period
    assert fitted.n_obs == len(arima_011_series)
    assert np.isfinite(fitted.aic) and fitted.sigma2 > 0
