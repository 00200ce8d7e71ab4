from pathlib import Path

import numpy as np
import pandas as pd
import logging

import pytest

from price_forecaster_src import metrics_utils
from price_forecaster_src.config_utils import AnalysisConfig
from price_forecaster_src.exceptions import (
    ConfigurationError, EmptyInputError, FitDivergenceError, NonPositiveValueError
)
from price_forecaster_src.main import main, run_price_workflow
from price_forecaster_src.models import RawObservation, SeasonalOrder


@pytest.fixture(scope="module")
def hourly_observations():
    # five years of hourly rows with a log-linear trend and a yearly cycle
    rng = np.random.default_rng(2024)
    idx = pd.date_range("2015-01-01", "2019-12-31 23:00", freq="h")
    t = np.asarray((idx.year - 2015) * 12 + (idx.month - 1))
    month_shock = rng.normal(0.0, 0.03, size=60)
    price = np.exp(np.log(40.0) + 0.005 * t + 0.1 * np.sin(2 * np.pi * idx.month / 12.0)
                   + month_shock[t] + rng.normal(0.0, 0.02, size=len(idx)))
    return [
        RawObservation(timestamp=ts, measurements={"price": p}, season="winter" if ts.month in (12, 1, 2) else "other")
        for ts, p in zip(idx, price)
    ]


def test_end_to_end_forecast(hourly_observations):
    config = AnalysisConfig(max_p=1, max_q=1, auto_select=False, horizon=24, holdout=12)

    result = run_price_workflow(hourly_observations, config)

    assert len(result.monthly) == 60
    assert result.prices.last_period == pd.Period("2019-12", freq="M")
    assert len(result.forecast) == 24
    assert result.forecast.periods[0] == pd.Period("2020-01", freq="M")
    assert result.forecast.scale == "level"
    assert np.isfinite(result.forecast.estimates).all()
    assert np.all(np.diff(result.forecast.std_errors) >= -1e-9)

    assert len(result.grid_table) == 4
    assert result.fitted.order.d == 1
    assert result.stabilization.series.transforms == ("log", "diff1")
    assert not result.stabilization.pre.is_stationary
    assert result.stabilization.post.is_stationary
    assert result.residual_checks.index.tolist() == [6, 12, 24]
    assert result.holdout_metrics["n"] == 12
    assert set(result.arch_test) == {"lm_stat", "lm_pvalue", "f_stat", "f_pvalue", "nlags"}
    assert result.arch_test["nlags"] == 12
    assert result.auto_model is None and result.comparison is None


def test_log_scale_workflow_with_cross_check(hourly_observations):
    config = AnalysisConfig(max_p=1, max_q=0, fit_scale="log", horizon=6, auto_seasonal=False)

    result = run_price_workflow(hourly_observations, config)

    assert result.fitted.scale == "log"
    assert result.forecast.scale == "log"
    # log prices around log(40) .. log(60)
    assert ((result.forecast.estimates > 3.0) & (result.forecast.estimates < 5.0)).all()
    assert result.comparison is not None
    assert result.comparison.grid_order == result.fitted.order


def test_workflow_does_not_mutate_observations(hourly_observations):
    first = hourly_observations[0]
    before = dict(first.measurements)
    config = AnalysisConfig(max_p=0, max_q=0, auto_select=False, horizon=3, ljung_box_lags=(3,))
    run_price_workflow(hourly_observations[:24 * 365 * 2], config)
    assert first.measurements == before


def test_empty_after_boundary(hourly_observations):
    with pytest.raises(EmptyInputError):
        run_price_workflow(hourly_observations, AnalysisConfig(start_boundary="2030-01-01"))


def test_non_positive_prices_stop_the_log_transform():
    observations = [
        RawObservation(timestamp=ts, measurements={"price": -1.0 if ts.month == 6 and ts.year == 2016 else 30.0 + i})
        for i, ts in enumerate(pd.date_range("2015-01-01", periods=36, freq="MS"))
    ]
    with pytest.raises(NonPositiveValueError):
        run_price_workflow(observations, AnalysisConfig(max_p=0, max_q=0, auto_select=False))


def _write_table(path: Path, make_price_table, **kwargs) -> Path:
    make_price_table(**kwargs).to_csv(path, index=False)
    return path


def test_cli_writes_forecast_csv(tmp_path: Path, make_price_table):
    series_csv = _write_table(tmp_path / "prices.csv", make_price_table, months=48, freq="12h")
    out_csv = tmp_path / "out" / "forecast.csv"
    grid_csv = tmp_path / "out" / "grid.csv"

    status = main([
        "--series-csv", str(series_csv),
        "--forecast-csv", str(out_csv),
        "--aic-cache", str(grid_csv),
        "--max-p", "1", "--max-q", "1",
        "--horizon", "6",
        "--no-auto-select",
        "--log-level", "WARNING",
    ])

    assert status == 0
    written = pd.read_csv(out_csv)
    assert written.columns.tolist() == ["period", "estimate", "std_error", "lower", "upper"]
    assert written["period"].tolist() == ["2019-01", "2019-02", "2019-03", "2019-04", "2019-05", "2019-06"]
    assert len(pd.read_csv(grid_csv)) == 4


def test_cli_reports_malformed_input(tmp_path: Path, make_price_table):
    df = make_price_table(months=24, freq="D")
    df["price"] = df["price"].astype(object)
    df.loc[10, "price"] = "broken"
    series_csv = tmp_path / "bad.csv"
    df.to_csv(series_csv, index=False)

    assert main(["--series-csv", str(series_csv), "--no-auto-select", "--log-level", "WARNING"]) == 1


def test_cli_reports_missing_file(tmp_path: Path):
    assert main(["--series-csv", str(tmp_path / "missing.csv"), "--log-level", "WARNING"]) == 1


def test_seasonal_forecast_tracks_the_generating_process(hourly_observations):
    config = AnalysisConfig(max_p=1, max_q=1, seasonal_order=SeasonalOrder(0, 1, 1, 12), fit_scale="log",
                            auto_select=False, horizon=24)

    result = run_price_workflow(hourly_observations, config)
    fc = result.forecast.to_level_scale()

    # noise-free path of the simulated process for 2020-01 .. 2021-12
    periods = fc.periods
    t = np.asarray((periods.year - 2015) * 12 + (periods.month - 1))
    expected = np.exp(np.log(40.0) + 0.005 * t + 0.1 * np.sin(2 * np.pi * periods.month / 12.0))

    ape = np.abs(fc.estimates - expected) / expected
    assert ape.mean() < 0.10
    # the yearly cycle is carried forward: March peak above September trough
    by_period = dict(zip(periods.astype(str), fc.estimates))
    assert by_period["2020-03"] > by_period["2020-09"]
    assert by_period["2021-03"] > by_period["2021-09"]


def test_failed_holdout_refit_is_skipped(monkeypatch, hourly_observations, caplog):
    def diverging_fit(series, order, max_iter=200):
        raise FitDivergenceError("diverged", order=order.as_tuple())

    monkeypatch.setattr(metrics_utils, "fit_arima_order", diverging_fit)
    config = AnalysisConfig(max_p=0, max_q=0, auto_select=False, horizon=3, holdout=6, ljung_box_lags=(3,))

    with caplog.at_level(logging.WARNING):
        result = run_price_workflow(hourly_observations[:24 * 365 * 2], config)

    assert result.holdout_metrics is None
    assert len(result.forecast) == 3
    assert "Holdout evaluation skipped" in caplog.text


def test_holdout_longer_than_the_history_is_a_configuration_error(hourly_observations):
    config = AnalysisConfig(max_p=0, max_q=0, auto_select=False, horizon=3, holdout=20, ljung_box_lags=(3,))
    with pytest.raises(ConfigurationError):
        run_price_workflow(hourly_observations[:24 * 365 * 2], config)


def test_cli_reports_oversized_holdout(tmp_path: Path, make_price_table):
    series_csv = _write_table(tmp_path / "prices.csv", make_price_table, months=24, freq="D")

    status = main([
        "--series-csv", str(series_csv),
        "--max-p", "0", "--max-q", "0",
        "--holdout", "20",
        "--lb-lags", "3",
        "--no-auto-select",
        "--log-level", "WARNING",
    ])

    assert status == 1
