# price_forecaster_src/config_utils.py

import argparse
import copy
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import yaml

from .exceptions import ConfigurationError
from .models import SeasonalOrder

logger = logging.getLogger(__name__)

DEFAULT_CONFIG: Dict[str, Any] = {
    "data": {
        "timestamp_column": "timestamp",
        "season_column": "season",
        "price_column": "price",
        "start_boundary": None,
        "required_fields": [],
    },
    "stationarity": {
        "alpha": 0.05,
        "decision_variants": ["none", "trend"],
        "log_transform": True,
        "diff_order": 1,
    },
    "model": {
        "search_space": {"max_p": 3, "max_q": 3},
        "seasonal_order": None,
        "fit_scale": "level",
        "max_iter": 200,
        "n_jobs": 1,
    },
    "auto_select": {
        "enabled": True,
        "seasonal": True,
    },
    "forecast": {
        "horizon": 24,
        "alpha": 0.05,
    },
    "evaluation": {
        "holdout": 0,
        "ljung_box_lags": [6, 12, 24],
    },
}


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


class ConfigManager:
    """
    Read-only access to a nested configuration dictionary using dot paths.

    Examples
    --------
    >>> ConfigManager({"model": {"max_iter": 50}}).get("model.max_iter")
    50
    """

    def __init__(self, data: Optional[Dict[str, Any]] = None, source: Optional[Path] = None):
        self._data = _deep_merge(DEFAULT_CONFIG, data or {})
        self.source = source

    def get(self, key_path: str, default=None):
        node: Any = self._data
        for part in key_path.split("."):
            if not isinstance(node, dict) or part not in node:
                return default
            node = node[part]
        return copy.deepcopy(node)

    def as_dict(self) -> Dict[str, Any]:
        return copy.deepcopy(self._data)

    def validate_configuration(self) -> Dict[str, List[str]]:
        """
        Check value ranges and types.

        Returns
        -------
        Dict[str, List[str]]
            Error messages grouped by top-level section; empty when valid.
        """
        errors: Dict[str, List[str]] = {}

        def add(section: str, message: str) -> None:
            errors.setdefault(section, []).append(message)

        for key in ("stationarity.alpha", "forecast.alpha"):
            value = self.get(key)
            if not isinstance(value, (int, float)) or not 0.0 < value < 1.0:
                add(key.split(".")[0], f"{key} must be in (0, 1), got {value!r}")

        variants = self.get("stationarity.decision_variants") or []
        unknown = [v for v in variants if v not in ("none", "drift", "trend")]
        if not variants or unknown:
            add("stationarity", f"decision_variants must be drawn from none/drift/trend, got {variants!r}")

        for key in ("model.search_space.max_p", "model.search_space.max_q", "stationarity.diff_order",
                    "evaluation.holdout"):
            value = self.get(key)
            if not isinstance(value, int) or value < 0:
                add(key.split(".")[0], f"{key} must be a non-negative integer, got {value!r}")

        for key in ("model.max_iter", "model.n_jobs", "forecast.horizon"):
            value = self.get(key)
            if not isinstance(value, int) or value <= 0:
                add(key.split(".")[0], f"{key} must be a positive integer, got {value!r}")

        if self.get("model.fit_scale") not in ("level", "log"):
            add("model", f"model.fit_scale must be 'level' or 'log', got {self.get('model.fit_scale')!r}")

        seasonal = self.get("model.seasonal_order")
        if seasonal is not None and (not isinstance(seasonal, (list, tuple)) or len(seasonal) != 4):
            add("model", f"model.seasonal_order must be null or [P, D, Q, s], got {seasonal!r}")

        return errors


def load_config(config_path: Optional[Path] = None) -> ConfigManager:
    """
    Load a YAML configuration file on top of the built-in defaults.

    Parameters
    ----------
    config_path : Optional[Path]
        YAML file. ``None`` returns the defaults.

    Returns
    -------
    ConfigManager
        Merged configuration.

    Raises
    ------
    ConfigurationError
        If the file is missing, is not valid YAML, or is not a mapping.
    """
    if config_path is None:
        return ConfigManager()

    config_path = Path(config_path)
    if not config_path.is_file():
        raise ConfigurationError(f"Configuration file not found: {config_path}")
    try:
        with open(config_path, "r", encoding="utf-8") as fh:
            data = yaml.safe_load(fh) or {}
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in {config_path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigurationError(f"Configuration root in {config_path} must be a mapping")

    manager = ConfigManager(data, source=config_path)
    validation_errors = manager.validate_configuration()
    if validation_errors:
        logger.warning("Configuration validation warnings: %s", validation_errors)
    logger.info("Loaded configuration from %s", config_path)
    return manager


def get_config_value(key_path: str, default=None, args: Optional[argparse.Namespace] = None,
                     cli_param: Optional[str] = None, config_manager: Optional[ConfigManager] = None):
    """
    Retrieve a configuration value with command-line override support.

    The function prioritizes values in the following order:
    1. CLI argument (if provided and not None)
    2. Configuration file
    3. Default value
    """
    if args is not None and cli_param and hasattr(args, cli_param):
        cli_value = getattr(args, cli_param)
        if cli_value is not None:
            return cli_value

    if config_manager is not None:
        config_value = config_manager.get(key_path, None)
        if config_value is not None:
            return config_value

    return default


@dataclass(frozen=True)
class AnalysisConfig:
    """Explicit settings for one analysis run."""

    start_boundary: Optional[str] = None
    required_fields: Tuple[str, ...] = ()      # required besides price_field
    price_field: str = "price"
    alpha: float = 0.05
    decision_variants: Tuple[str, ...] = ("none", "trend")
    log_transform: bool = True
    diff_order: int = 1
    max_p: int = 3
    max_q: int = 3
    seasonal_order: Optional[SeasonalOrder] = None
    fit_scale: str = "level"
    max_iter: int = 200
    n_jobs: int = 1
    auto_select: bool = True
    auto_seasonal: bool = True
    horizon: int = 24
    forecast_alpha: float = 0.05
    holdout: int = 0
    ljung_box_lags: Tuple[int, ...] = field(default=(6, 12, 24))

    @classmethod
    def from_config(cls, manager: Optional[ConfigManager] = None,
                    args: Optional[argparse.Namespace] = None) -> "AnalysisConfig":
        """Build the run configuration from a ConfigManager, letting CLI arguments win."""
        manager = manager or ConfigManager()
        errors = manager.validate_configuration()
        if errors:
            raise ConfigurationError(f"Invalid configuration: {errors}")

        def value(key: str, cli_param: Optional[str] = None):
            return get_config_value(key, None, args, cli_param, manager)

        seasonal = value("model.seasonal_order")
        start = value("data.start_boundary", "start")
        return cls(
            start_boundary=str(start) if start is not None else None,
            required_fields=tuple(value("data.required_fields")),
            price_field=value("data.price_column", "price_col"),
            alpha=float(value("stationarity.alpha", "alpha")),
            decision_variants=tuple(value("stationarity.decision_variants")),
            log_transform=bool(value("stationarity.log_transform")),
            diff_order=int(value("stationarity.diff_order", "diff_order")),
            max_p=int(value("model.search_space.max_p", "max_p")),
            max_q=int(value("model.search_space.max_q", "max_q")),
            seasonal_order=SeasonalOrder(*seasonal) if seasonal is not None else None,
            fit_scale=value("model.fit_scale", "fit_scale"),
            max_iter=int(value("model.max_iter", "max_iter")),
            n_jobs=int(value("model.n_jobs", "n_jobs")),
            auto_select=bool(value("auto_select.enabled", "auto_select")),
            auto_seasonal=bool(value("auto_select.seasonal")),
            horizon=int(value("forecast.horizon", "horizon")),
            forecast_alpha=float(value("forecast.alpha")),
            holdout=int(value("evaluation.holdout", "holdout")),
            ljung_box_lags=tuple(value("evaluation.ljung_box_lags")),
        )
