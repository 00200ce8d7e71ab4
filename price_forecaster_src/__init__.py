# price_forecaster_src/__init__.py

"""
Price Forecaster ARIMA - monthly electricity price forecasting package

Key Components
--------------
- models: immutable value types passed between stages
- exceptions: error taxonomy rooted at PriceForecasterError
- data_utils: loading the hourly table and turning rows into observations
- series_utils: monthly aggregation and Kalman imputation
- transform_utils: ADF unit-root tests, log/difference stabilization, decomposition
- forecasting_utils: ARIMA fitting, AIC grid search and forecasting
- auto_select_utils: stepwise automatic ARIMA cross-check
- diagnostics_utils: residual checks
- metrics_utils: holdout accuracy metrics
- config_utils: YAML configuration and CLI override support
- main: workflow orchestration and command-line entry point

Usage
-----
    # Command-line usage
    python -m price_forecaster_src.main --series-csv data/prices.csv

    # Programmatic usage
    from price_forecaster_src import run_price_workflow, AnalysisConfig
"""

__version__ = "1.0.0"

from .config_utils import AnalysisConfig, ConfigManager, get_config_value, load_config
from .data_utils import load_price_table_csv, observations_from_frame
from .exceptions import (
    ConfigurationError, EmptyInputError, FitDivergenceError, InvalidHorizonError,
    MalformedInputError, NoConvergentModelError, NonPositiveValueError, PriceForecasterError
)
from .forecasting_utils import fit_arima_order, forecast, grid_search_arima, select_best
from .auto_select_utils import auto_select, compare_selections
from .series_utils import build_monthly_series, to_price_series
from .transform_utils import stabilize
from .main import main, run_price_workflow

__all__ = [
    # Workflow
    "main",
    "run_price_workflow",
    # Configuration
    "AnalysisConfig",
    "ConfigManager",
    "get_config_value",
    "load_config",
    # Stages
    "load_price_table_csv",
    "observations_from_frame",
    "build_monthly_series",
    "to_price_series",
    "stabilize",
    "fit_arima_order",
    "grid_search_arima",
    "select_best",
    "forecast",
    "auto_select",
    "compare_selections",
    # Errors
    "PriceForecasterError",
    "ConfigurationError",
    "EmptyInputError",
    "MalformedInputError",
    "NonPositiveValueError",
    "FitDivergenceError",
    "NoConvergentModelError",
    "InvalidHorizonError",
    "__version__",
]
