# price_forecaster_src/main.py

"""
ARIMA forecasting of monthly electricity prices from an hourly generation/load/price table.

Purpose
-------
- Aggregate the hourly table to a contiguous monthly series, imputing missing
  months with a Kalman smoother
- Check stationarity with Augmented Dickey-Fuller tests before and after a
  log + difference transform
- Grid-search ARIMA(p, d, q) orders by AIC (d fixed by configuration) and
  cross-check the choice with a stepwise automatic search
- Forecast the following months with standard errors and confidence bounds,
  check residuals and optionally score a holdout window

Configuration-Driven Workflow
-----------------------------
Settings come from a YAML file (see config/price_forecaster.yaml). CLI
arguments override configuration values where applicable.
"""

import argparse
import logging
import sys
import warnings
from dataclasses import replace
from pathlib import Path
from typing import Optional, Sequence

from .auto_select_utils import auto_select, compare_selections
from .config_utils import AnalysisConfig, load_config
from .data_utils import load_price_table_csv, observations_from_frame
from .diagnostics_utils import arch_lm_test, residual_diagnostics
from .exceptions import FitDivergenceError, NoConvergentModelError, PriceForecasterError
from .file_utils import resolve_path, write_forecast_csv, write_grid_table
from .forecasting_utils import forecast, grid_search_arima
from .metrics_utils import evaluate_holdout
from .models import LOG_SCALE, PipelineResult, RawObservation
from .parsing_utils import (
    non_negative_int, parse_decision_variants, parse_lag_list, parse_seasonal_order,
    positive_int, validate_fit_scale, validate_log_level
)
from .series_utils import build_monthly_series, to_price_series
from .transform_utils import stabilize

logger = logging.getLogger(__name__)


def run_price_workflow(observations: Sequence[RawObservation],
                       config: Optional[AnalysisConfig] = None) -> PipelineResult:
    """
    Run the full monthly price pipeline on in-memory observations.

    Parameters
    ----------
    observations : Sequence[RawObservation]
        Hourly observations in source order.
    config : Optional[AnalysisConfig]
        Run settings; defaults to ``AnalysisConfig()``.

    Returns
    -------
    PipelineResult
        Monthly series, stationarity verdicts, the grid-selected model, its
        forecast, the AIC grid table and the optional cross-checks.

    Workflow
    --------
    - SeriesBuilder: monthly aggregation and imputation
    - StationarityAnalyzer: ADF before/after log + differencing (diagnostic)
    - ModelSelector: exhaustive AIC grid with d = ``config.diff_order``
    - Forecaster: ``config.horizon`` months on the fit scale
    - AutoSelector, residual checks and holdout scoring when enabled
    """
    config = config or AnalysisConfig()
    validate_fit_scale(config.fit_scale)

    required = tuple(dict.fromkeys((config.price_field,) + tuple(config.required_fields)))
    monthly = build_monthly_series(observations, start_boundary=config.start_boundary,
                                   required_fields=required)
    prices = to_price_series(monthly, field=config.price_field)
    logger.info("Monthly series '%s': %d months from %s to %s (%d imputed)",
                prices.name, len(prices), prices.periods[0], prices.last_period,
                monthly.imputed_count(config.price_field))

    stabilization = stabilize(prices, log=config.log_transform, diff_order=config.diff_order,
                              alpha=config.alpha, decision_variants=config.decision_variants)

    fit_series = prices.log() if config.fit_scale == LOG_SCALE else prices
    best, grid_table = grid_search_arima(fit_series, config.max_p, config.diff_order, config.max_q,
                                         seasonal_order=config.seasonal_order,
                                         max_iter=config.max_iter, n_jobs=config.n_jobs)
    if best is None:
        raise NoConvergentModelError(
            f"None of the {len(grid_table)} candidate orders converged for '{fit_series.name}'",
            attempted=grid_table["order"].tolist(),
        )
    logger.info("Top 5 models by AIC:\n%s", grid_table.head().to_string())
    logger.info("Selected %s with AIC=%.3f", best.order, best.aic)

    fc = forecast(best, config.horizon, alpha=config.forecast_alpha)

    auto_model = None
    comparison = None
    if config.auto_select:
        try:
            auto_model = auto_select(fit_series, seasonal=config.auto_seasonal, d=config.diff_order,
                                     max_iter=config.max_iter)
        except NoConvergentModelError as e:
            logger.warning("Stepwise cross-check skipped: %s", e)
        else:
            comparison = compare_selections(best, auto_model)

    residual_checks = residual_diagnostics(best, lags=config.ljung_box_lags)
    arch_test = arch_lm_test(best)

    holdout_metrics = None
    if config.holdout > 0:
        try:
            holdout_metrics = evaluate_holdout(fit_series, best.order, config.holdout, max_iter=config.max_iter)
        except FitDivergenceError as e:
            logger.warning("Holdout evaluation skipped: %s", e)

    return PipelineResult(
        monthly=monthly,
        prices=prices,
        stabilization=stabilization,
        fitted=best,
        forecast=fc,
        grid_table=grid_table,
        auto_model=auto_model,
        comparison=comparison,
        residual_checks=residual_checks,
        arch_test=arch_test,
        holdout_metrics=holdout_metrics,
    )


def run_csv_workflow(series_path: Path, config: AnalysisConfig,
                     forecast_csv: Optional[Path] = None,
                     aic_cache: Optional[Path] = None,
                     timestamp_col: str = "timestamp",
                     season_col: str = "season") -> PipelineResult:
    """Load a price table CSV, run the pipeline and write the requested outputs."""
    logger.info("Starting price workflow for: %s", series_path)
    table = load_price_table_csv(series_path, timestamp_col=timestamp_col, price_col=config.price_field)
    observations = observations_from_frame(table, timestamp_col=timestamp_col, season_col=season_col)
    result = run_price_workflow(observations, config)

    fc = result.forecast
    logger.info("Forecast (%s scale, %d months):\n%s", fc.scale, len(fc), fc.to_frame().to_string())
    if forecast_csv is not None:
        write_forecast_csv(fc, forecast_csv)
    write_grid_table(result.grid_table, aic_cache)
    return result


def setup_cli_parser() -> argparse.ArgumentParser:
    """
    Set up the command-line argument parser.

    Returns
    -------
    argparse.ArgumentParser
        Configured argument parser
    """
    parser = argparse.ArgumentParser(
        description="ARIMA forecasting of monthly electricity prices from hourly data."
    )

    # Data and output arguments
    parser.add_argument(
        "--series-csv", type=str, required=True,
        help="Hourly table CSV with a 'timestamp' column, a price column and optional season/generation/load columns."
    )
    parser.add_argument(
        "--config", type=str, default=None,
        help="YAML configuration file (defaults to config/price_forecaster.yaml when present)."
    )
    parser.add_argument(
        "--forecast-csv", type=str, default=None,
        help="If provided, write the forecast table to this CSV (resolved relative to the project root)."
    )
    parser.add_argument(
        "--aic-cache", type=str, default=None,
        help="Optional CSV path to save the AIC grid results."
    )
    parser.add_argument(
        "--log-level", type=str, default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Logging verbosity level."
    )
    parser.add_argument("--timestamp-col", type=str, default="timestamp", help="Timestamp column name.")
    parser.add_argument("--season-col", type=str, default="season", help="Season label column name.")
    parser.add_argument(
        "--price-col", type=str, default=None,
        help="Price column name. Uses config default if not specified."
    )
    parser.add_argument(
        "--start", type=str, default=None,
        help="Discard observations before this timestamp (e.g. '2015-01-01')."
    )

    # Stationarity controls
    parser.add_argument("--alpha", type=float, default=None, help="ADF significance level.")
    parser.add_argument(
        "--adf-variants", type=parse_decision_variants, default=None,
        help="Comma-separated ADF regressions deciding stationarity (none, drift, trend)."
    )

    # Grid search controls
    parser.add_argument("--max-p", type=non_negative_int, default=None, help="Largest AR order in the grid.")
    parser.add_argument("--max-q", type=non_negative_int, default=None, help="Largest MA order in the grid.")
    parser.add_argument("--diff-order", type=non_negative_int, default=None, help="Fixed differencing order d.")
    parser.add_argument(
        "--seasonal-order", type=str, default=None,
        help="Fixed seasonal order 'P,D,Q,s' shared by all grid candidates, or 'none'."
    )
    parser.add_argument(
        "--fit-scale", choices=["level", "log"], default=None,
        help="Fit models on price levels or log prices."
    )
    parser.add_argument("--max-iter", type=positive_int, default=None, help="Optimizer iterations per fit.")
    parser.add_argument("--n-jobs", type=positive_int, default=None, help="Worker threads for the grid search.")
    parser.add_argument(
        "--no-auto-select", dest="auto_select", action="store_false", default=None,
        help="Skip the stepwise automatic cross-check."
    )

    # Forecast and evaluation
    parser.add_argument("--horizon", type=positive_int, default=None, help="Months to forecast.")
    parser.add_argument(
        "--holdout", type=non_negative_int, default=None,
        help="Score the selected order on the last N months (0 disables)."
    )
    parser.add_argument(
        "--lb-lags", type=parse_lag_list, default=None,
        help="Ljung-Box lags for residual checks (e.g. '6,12,24')."
    )

    return parser


def setup_logging(log_level: str) -> None:
    """
    Configure logging with specified level and warning filters.

    Parameters
    ----------
    log_level : str
        Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """
    level = validate_log_level(log_level)
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s - %(message)s",
        datefmt="%H:%M:%S",
    )

    # Configure warnings based on log level
    if level == "DEBUG":
        warnings.resetwarnings()
        warnings.filterwarnings("default")
    else:
        from statsmodels.tools.sm_exceptions import ConvergenceWarning
        warnings.filterwarnings("ignore", category=ConvergenceWarning)
        warnings.filterwarnings("ignore", category=FutureWarning)
        warnings.filterwarnings("ignore", category=UserWarning, module="statsmodels")


def build_analysis_config(args: argparse.Namespace, base_dir: Path) -> AnalysisConfig:
    """Merge CLI arguments over the configuration file into an AnalysisConfig."""
    if args.config:
        config_path: Optional[Path] = resolve_path(args.config, base_dir)
    else:
        default_path = base_dir / "config" / "price_forecaster.yaml"
        config_path = default_path if default_path.is_file() else None
    manager = load_config(config_path)

    config = AnalysisConfig.from_config(manager, args)
    overrides = {}
    if args.adf_variants is not None:
        overrides["decision_variants"] = args.adf_variants
    if args.seasonal_order is not None:
        overrides["seasonal_order"] = parse_seasonal_order(args.seasonal_order)
    if args.lb_lags is not None:
        overrides["ljung_box_lags"] = tuple(args.lb_lags)
    if overrides:
        config = replace(config, **overrides)
    return config


def main(argv: Optional[Sequence[str]] = None) -> int:
    """
    Main entry point for the price forecasting application.

    Returns
    -------
    int
        Process exit status: 0 on success, 1 when the analysis fails.
    """
    parser = setup_cli_parser()
    args = parser.parse_args(argv)

    setup_logging(args.log_level)

    # Project root, one level above the package
    base_dir = Path(__file__).resolve().parent.parent

    try:
        config = build_analysis_config(args, base_dir)
        series_path = resolve_path(args.series_csv, base_dir)
        forecast_csv = resolve_path(args.forecast_csv, base_dir) if args.forecast_csv else None
        aic_cache = resolve_path(args.aic_cache, base_dir) if args.aic_cache else None
        run_csv_workflow(series_path, config, forecast_csv=forecast_csv, aic_cache=aic_cache,
                         timestamp_col=args.timestamp_col, season_col=args.season_col)
    except argparse.ArgumentTypeError as e:
        parser.error(str(e))
    except PriceForecasterError as e:
        logger.error("Analysis failed: %s", e)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
