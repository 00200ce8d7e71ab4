import numpy as np
import pandas as pd
import pytest

from price_forecaster_src.exceptions import InvalidHorizonError
from price_forecaster_src.forecasting_utils import fit_arima_order, forecast
from price_forecaster_src.models import ModelOrder


@pytest.fixture
def random_walk_model(random_walk_series):
    return fit_arima_order(random_walk_series, ModelOrder(0, 1, 0))


def test_forecast_has_one_entry_per_month(random_walk_model, random_walk_series):
    fc = forecast(random_walk_model, 24)

    assert len(fc) == 24
    assert fc.periods[0] == random_walk_series.last_period + 1
    assert fc.periods.equals(pd.period_range(random_walk_series.last_period + 1, periods=24, freq="M"))
    assert fc.order == ModelOrder(0, 1, 0)


def test_random_walk_uncertainty_grows(random_walk_model, random_walk_series):
    fc = forecast(random_walk_model, 24)
    se = fc.std_errors

    assert np.all(np.diff(se) >= -1e-9)
    # ARIMA(0,1,0): flat point forecast at the last value, se ~ sigma * sqrt(h)
    assert fc.estimates == pytest.approx(np.full(24, random_walk_series.to_series().iloc[-1]))
    assert se[3] == pytest.approx(se[0] * 2.0, rel=1e-6)


def test_bounds_bracket_the_estimate(random_walk_model):
    fc = forecast(random_walk_model, 6, alpha=0.2)
    for point in fc:
        assert point.lower < point.estimate < point.upper
        assert point.upper - point.estimate == pytest.approx(1.2815515655446004 * point.std_error, rel=1e-6)


@pytest.mark.parametrize("horizon", [0, -1, True, 2.5, "12"])
def test_invalid_horizons_are_rejected(random_walk_model, horizon):
    with pytest.raises(InvalidHorizonError) as excinfo:
        forecast(random_walk_model, horizon)
    assert excinfo.value.horizon == horizon


def test_log_scale_forecast_stays_on_log_scale(random_walk_series):
    level = random_walk_series
    logged = level.log()
    fitted = fit_arima_order(logged, ModelOrder(0, 1, 0))

    fc = forecast(fitted, 3)
    assert fc.scale == "log"
    assert fc.estimates[0] == pytest.approx(np.log(level.to_series().iloc[-1]), rel=1e-6)

    back = fc.to_level_scale()
    assert back.scale == "level"
    assert back.estimates == pytest.approx(np.exp(fc.estimates))
    assert np.isnan(back.std_errors).all()
    assert fc.to_level_scale().to_level_scale().scale == "level"


def test_forecast_frame_layout(random_walk_model):
    frame = forecast(random_walk_model, 4).to_frame()
    assert frame.columns.tolist() == ["estimate", "std_error", "lower", "upper"]
    assert isinstance(frame.index, pd.PeriodIndex)
