# price_forecaster_src/metrics_utils.py

import numpy as np
import pandas as pd
from typing import Union, List, Dict
import logging

from .exceptions import ConfigurationError
from .forecasting_utils import fit_arima_order, forecast
from .models import ModelOrder, PriceSeries

logger = logging.getLogger(__name__)

MIN_TRAIN_MONTHS = 12

ArrayLike = Union[List[float], np.ndarray, pd.Series]


def _paired(y_true: ArrayLike, y_hat: ArrayLike):
    yt = np.asarray(y_true, dtype=float).ravel()
    yh = np.asarray(y_hat, dtype=float).ravel()
    n = min(len(yt), len(yh))
    yt, yh = yt[:n], yh[:n]
    mask = np.isfinite(yt) & np.isfinite(yh)
    return yt[mask], yh[mask]


def mae(y_true: ArrayLike, y_hat: ArrayLike) -> float:
    yt, yh = _paired(y_true, y_hat)
    return float(np.mean(np.abs(yh - yt))) if yt.size else float("nan")


def rmse(y_true: ArrayLike, y_hat: ArrayLike) -> float:
    yt, yh = _paired(y_true, y_hat)
    return float(np.sqrt(np.mean((yh - yt) ** 2))) if yt.size else float("nan")


def mape(y_true: ArrayLike, y_hat: ArrayLike, eps: float = 1e-8) -> float:
    """
    Mean Absolute Percentage Error in percent.

    Denominators are floored at ``eps`` to avoid division by zero.
    """
    yt, yh = _paired(y_true, y_hat)
    if yt.size == 0:
        return float("nan")
    denom = np.maximum(np.abs(yt), eps)
    return float(np.mean(np.abs(yh - yt) / denom) * 100.0)


def smape(y_true: ArrayLike, y_hat: ArrayLike, eps: float = 1e-12) -> float:
    """
    Symmetric Mean Absolute Percentage Error in percent (0-200).
    """
    yt, yh = _paired(y_true, y_hat)
    if yt.size == 0:
        return float("nan")
    denom = np.maximum(np.abs(yt) + np.abs(yh), eps)
    return float(np.mean(2.0 * np.abs(yh - yt) / denom) * 100.0)


def compute_metrics(y_true: ArrayLike, y_hat: ArrayLike) -> Dict[str, float]:
    """
    Compute point-forecast accuracy metrics.

    Parameters
    ----------
    y_true : ArrayLike
        Realised values.
    y_hat : ArrayLike
        Forecasts aligned with ``y_true``.

    Returns
    -------
    Dict[str, float]
        Keys 'ME', 'MAE', 'RMSE', 'MAPE', 'sMAPE' and 'n'. Non-finite pairs are
        ignored.
    """
    yt, yh = _paired(y_true, y_hat)
    return {
        "ME": float(np.mean(yh - yt)) if yt.size else float("nan"),
        "MAE": mae(yt, yh),
        "RMSE": rmse(yt, yh),
        "MAPE": mape(yt, yh),
        "sMAPE": smape(yt, yh),
        "n": int(yt.size),
    }


def evaluate_holdout(series: PriceSeries, order: ModelOrder, holdout: int,
                     max_iter: int = 200) -> Dict[str, float]:
    """
    Refit ``order`` without the last ``holdout`` months and score its forecast of them.

    Metrics are computed on the scale of ``series``.

    Raises
    ------
    ConfigurationError
        If ``holdout`` is not positive or leaves fewer than 12 months for
        estimation.
    FitDivergenceError
        If the refit on the training months fails.
    """
    if holdout <= 0 or len(series) - holdout < MIN_TRAIN_MONTHS:
        raise ConfigurationError(
            f"Holdout of {holdout} months leaves too little data ({len(series)} months in total)"
        )

    values = series.to_series()
    train = PriceSeries(values.iloc[:-holdout], name=series.name, frequency=series.frequency,
                        transforms=series.transforms)
    fitted = fit_arima_order(train, order, max_iter=max_iter)
    fc = forecast(fitted, holdout)
    metrics = compute_metrics(values.iloc[-holdout:].to_numpy(), fc.estimates)
    logger.info("Holdout (%d months) for %s: MAE=%.3f RMSE=%.3f MAPE=%.2f%%",
                holdout, order, metrics["MAE"], metrics["RMSE"], metrics["MAPE"])
    return metrics
