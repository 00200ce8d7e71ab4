# price_forecaster_src/file_utils.py

import pandas as pd
from pathlib import Path
from typing import Optional
import logging

from .models import Forecast

logger = logging.getLogger(__name__)


def ensure_dir(path: Path) -> None:
    """Create ``path`` and its parents if they do not exist."""
    path.mkdir(parents=True, exist_ok=True)


def resolve_path(path_str: str, base_dir: Path) -> Path:
    """
    Resolve a path string relative to a base directory if not absolute.

    Examples
    --------
    >>> resolve_path("data/prices.csv", Path("/project"))
    PosixPath('/project/data/prices.csv')
    """
    path = Path(path_str)
    return path if path.is_absolute() else (base_dir / path)


def write_forecast_csv(fc: Forecast, csv_path: Path) -> Path:
    """
    Write a forecast table with columns period, estimate, std_error, lower, upper.

    Periods are written as 'YYYY-MM'. Parent directories are created.
    """
    ensure_dir(csv_path.parent)
    frame = fc.to_frame()
    frame.index = frame.index.astype(str)
    frame.index.name = "period"
    frame.to_csv(csv_path, float_format="%.6f")
    logger.info("Saved %d-month forecast (%s scale) to %s", len(fc), fc.scale, csv_path)
    return csv_path


def write_grid_table(table: pd.DataFrame, csv_path: Optional[Path]) -> Optional[Path]:
    """Save the AIC grid table; ``None`` skips writing."""
    if csv_path is None:
        return None
    ensure_dir(csv_path.parent)
    table.to_csv(csv_path, index=False)
    logger.info("Saved AIC grid (%d orders) to %s", len(table), csv_path)
    return csv_path
