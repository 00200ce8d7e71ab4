# price_forecaster_src/diagnostics_utils.py

import numpy as np
import pandas as pd
from typing import Dict, Sequence
import logging

from statsmodels.stats.diagnostic import acorr_ljungbox, het_arch

from .models import FittedModel

logger = logging.getLogger(__name__)


def model_residuals(fitted: FittedModel) -> pd.Series:
    """
    One-step-ahead residuals of a fitted model, without the differencing burn-in.

    With ``simple_differencing=False`` the first d + D*s residuals come from
    the diffuse initialisation and are dropped.
    """
    order = fitted.order
    seasonal = order.seasonal_tuple()
    burn_in = order.d + seasonal[1] * seasonal[3]
    resid = np.asarray(fitted.results.resid, dtype=float)[burn_in:]
    index = pd.period_range(end=fitted.last_period, periods=len(resid), freq="M")
    return pd.Series(resid, index=index, name="residual")


def residual_diagnostics(fitted: FittedModel, lags: Sequence[int] = (6, 12, 24),
                         alpha: float = 0.05) -> pd.DataFrame:
    """
    Ljung-Box portmanteau tests on the residuals of a fitted model.

    Parameters
    ----------
    fitted : FittedModel
        Model to check.
    lags : Sequence[int], default=(6, 12, 24)
        Lags to test; lags not smaller than the number of residuals are skipped.
    alpha : float, default=0.05
        Significance level for the ``autocorrelated`` flag.

    Returns
    -------
    pd.DataFrame
        Indexed by lag with columns ['lb_stat', 'lb_pvalue', 'autocorrelated'].
        Empty if no lag fits the sample.
    """
    resid = model_residuals(fitted)
    usable = sorted({int(l) for l in lags if 0 < int(l) < len(resid)})
    if not usable:
        logger.warning("Residual diagnostics skipped: %d residuals are too few for lags %s", len(resid), list(lags))
        return pd.DataFrame(columns=["lb_stat", "lb_pvalue", "autocorrelated"])

    df_lb = acorr_ljungbox(resid.to_numpy(), lags=usable, return_df=True)
    df_lb["autocorrelated"] = df_lb["lb_pvalue"] < alpha
    df_lb.index.name = "lag"
    if df_lb["autocorrelated"].any():
        logger.warning("Residuals of %s show autocorrelation at lag(s) %s",
                       fitted.order, df_lb.index[df_lb["autocorrelated"]].tolist())
    return df_lb[["lb_stat", "lb_pvalue", "autocorrelated"]]


def arch_lm_test(fitted: FittedModel, nlags: int = 12, alpha: float = 0.05) -> Dict[str, float]:
    """
    ARCH LM test for conditional heteroskedasticity in the residuals.

    ``nlags`` is capped at a quarter of the residual count. A p-value below
    ``alpha`` is logged as a warning.
    """
    resid = model_residuals(fitted)
    nlags = int(min(nlags, max(1, len(resid) // 4)))
    lm_stat, lm_pvalue, f_stat, f_pvalue = het_arch(resid.to_numpy(), nlags=nlags)
    if lm_pvalue < alpha:
        logger.warning("Residuals of %s show ARCH effects (LM p=%.4f, %d lags)", fitted.order, lm_pvalue, nlags)
    return {
        "lm_stat": float(lm_stat),
        "lm_pvalue": float(lm_pvalue),
        "f_stat": float(f_stat),
        "f_pvalue": float(f_pvalue),
        "nlags": nlags,
    }
