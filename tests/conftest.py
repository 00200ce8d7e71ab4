import numpy as np
import pandas as pd
import pytest

from price_forecaster_src.models import FittedModel, ModelOrder, PriceSeries, RawObservation

MONTH_SEASON = {
    12: "winter", 1: "winter", 2: "winter",
    3: "spring", 4: "spring", 5: "spring",
    6: "summer", 7: "summer", 8: "summer",
    9: "autumn", 10: "autumn", 11: "autumn",
}


def _price_table(start="2015-01-01", months=60, freq="6h", seed=0, base=40.0, growth=0.005):
    """Hourly-style table with a log-linear trend, annual seasonality and monthly noise."""
    rng = np.random.default_rng(seed)
    start_ts = pd.Timestamp(start)
    end_ts = start_ts + pd.DateOffset(months=months)
    idx = pd.date_range(start_ts, end_ts, freq=freq, inclusive="left")

    t = np.asarray((idx.year - start_ts.year) * 12 + (idx.month - start_ts.month))
    month_shock = rng.normal(0.0, 0.03, size=months)
    log_price = (np.log(base) + growth * t + 0.1 * np.sin(2 * np.pi * idx.month / 12.0)
                 + month_shock[t] + rng.normal(0.0, 0.01, size=len(idx)))
    return pd.DataFrame({
        "timestamp": idx,
        "season": [MONTH_SEASON[m] for m in idx.month],
        "price": np.exp(log_price),
        "load": 30000.0 + 2000.0 * np.cos(2 * np.pi * idx.month / 12.0) + rng.normal(0, 100, size=len(idx)),
        "wind": np.abs(rng.normal(5000.0, 800.0, size=len(idx))),
    })


@pytest.fixture
def make_price_table():
    return _price_table


@pytest.fixture
def make_observations():
    def _make(**kwargs):
        df = _price_table(**kwargs)
        return [
            RawObservation(timestamp=row.timestamp, season=row.season,
                           measurements={"price": row.price, "load": row.load, "wind": row.wind})
            for row in df.itertuples(index=False)
        ]
    return _make


def simulate_arima_011(n=200, theta=0.6, seed=7, level=50.0):
    rng = np.random.default_rng(seed)
    e = rng.normal(0.0, 1.0, size=n + 1)
    x = e[1:] + theta * e[:-1]
    return PriceSeries.from_values(level + np.cumsum(x), start="2005-01")


def random_walk(n=120, seed=3, level=100.0, drift=0.0):
    rng = np.random.default_rng(seed)
    return PriceSeries.from_values(level + np.cumsum(drift + rng.normal(0.0, 1.0, size=n)), start="2010-01")


@pytest.fixture
def arima_011_series():
    return simulate_arima_011()


@pytest.fixture
def random_walk_series():
    return random_walk()


@pytest.fixture
def make_fitted():
    def _make(p, d, q, aic, selected_by="grid"):
        return FittedModel(
            order=ModelOrder(p, d, q),
            coefficients={"sigma2": 1.0},
            sigma2=1.0,
            aic=aic,
            bic=aic + 1.0,
            hqic=aic + 0.5,
            log_likelihood=-aic / 2.0,
            n_obs=100,
            scale="level",
            series_name="price",
            last_period=pd.Period("2020-12", freq="M"),
            selected_by=selected_by,
        )
    return _make
