import argparse
from pathlib import Path

import pytest

from price_forecaster_src.config_utils import (
    AnalysisConfig, ConfigManager, get_config_value, load_config
)
from price_forecaster_src.exceptions import ConfigurationError
from price_forecaster_src.models import SeasonalOrder

REPO_CONFIG = Path(__file__).resolve().parent.parent / "config" / "price_forecaster.yaml"


def test_defaults_without_file():
    manager = load_config(None)
    assert manager.get("forecast.horizon") == 24
    assert manager.get("model.search_space.max_p") == 3
    assert manager.get("does.not.exist", "fallback") == "fallback"
    assert manager.validate_configuration() == {}


def test_shipped_config_is_valid():
    manager = load_config(REPO_CONFIG)
    assert manager.validate_configuration() == {}
    config = AnalysisConfig.from_config(manager)
    assert config == AnalysisConfig()


def test_yaml_overrides_are_merged(tmp_path: Path):
    cfg = tmp_path / "cfg.yaml"
    cfg.write_text(
        "model:\n"
        "  search_space:\n"
        "    max_q: 1\n"
        "  seasonal_order: [1, 0, 0, 12]\n"
        "forecast:\n"
        "  horizon: 12\n",
        encoding="utf-8",
    )
    manager = load_config(cfg)

    assert manager.get("model.search_space.max_q") == 1
    assert manager.get("model.search_space.max_p") == 3
    config = AnalysisConfig.from_config(manager)
    assert config.horizon == 12
    assert config.seasonal_order == SeasonalOrder(1, 0, 0, 12)


def test_missing_file_is_a_configuration_error(tmp_path: Path):
    with pytest.raises(ConfigurationError):
        load_config(tmp_path / "nope.yaml")


def test_invalid_yaml_is_a_configuration_error(tmp_path: Path):
    cfg = tmp_path / "broken.yaml"
    cfg.write_text("model: [unclosed\n", encoding="utf-8")
    with pytest.raises(ConfigurationError):
        load_config(cfg)


def test_non_mapping_root_is_rejected(tmp_path: Path):
    cfg = tmp_path / "list.yaml"
    cfg.write_text("- 1\n- 2\n", encoding="utf-8")
    with pytest.raises(ConfigurationError):
        load_config(cfg)


def test_validation_groups_errors_by_section():
    manager = ConfigManager({
        "stationarity": {"alpha": 1.5, "decision_variants": ["quadratic"]},
        "model": {"fit_scale": "sqrt", "n_jobs": 0},
    })
    errors = manager.validate_configuration()
    assert set(errors) == {"stationarity", "model"}
    assert len(errors["stationarity"]) == 2
    with pytest.raises(ConfigurationError):
        AnalysisConfig.from_config(manager)


def test_cli_value_wins_over_config_and_default():
    manager = ConfigManager({"forecast": {"horizon": 12}})
    args = argparse.Namespace(horizon=6)
    assert get_config_value("forecast.horizon", 24, args, "horizon", manager) == 6
    assert get_config_value("forecast.horizon", 24, argparse.Namespace(horizon=None), "horizon", manager) == 12
    assert get_config_value("forecast.unknown", 24, args, None, manager) == 24


def test_from_config_applies_cli_arguments():
    args = argparse.Namespace(max_p=1, max_q=None, horizon=9, fit_scale="log", auto_select=False,
                              start="2016-01-01", price_col=None, alpha=None, max_iter=None,
                              n_jobs=2, holdout=None, diff_order=None)
    config = AnalysisConfig.from_config(ConfigManager(), args)
    assert config.max_p == 1
    assert config.max_q == 3
    assert config.horizon == 9
    assert config.fit_scale == "log"
    assert config.auto_select is False
    assert config.start_boundary == "2016-01-01"
    assert config.n_jobs == 2


def test_manager_returns_copies():
    manager = ConfigManager()
    lags = manager.get("evaluation.ljung_box_lags")
    lags.append(99)
    assert manager.get("evaluation.ljung_box_lags") == [6, 12, 24]
