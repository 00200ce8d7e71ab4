# price_forecaster_src/parsing_utils.py

import argparse
from typing import Optional, List, Tuple
import logging

from .models import SeasonalOrder

logger = logging.getLogger(__name__)

VALID_DECISION_VARIANTS = ("none", "drift", "trend")
VALID_FIT_SCALES = ("level", "log")


def parse_lag_list(s: Optional[str], default: str = "6,12,24") -> List[int]:
    """
    Parse a CLI lag argument like '6,12,24' or '6-8' into sorted unique positive integers.

    Examples
    --------
    >>> parse_lag_list("6,12,24")
    [6, 12, 24]
    >>> parse_lag_list("1-3")
    [1, 2, 3]
    """
    txt = (s or default).strip()
    if "-" in txt and "," not in txt:
        a, b = txt.split("-", 1)
        try:
            lo, hi = int(a.strip()), int(b.strip())
        except ValueError as e:
            raise argparse.ArgumentTypeError(f"Invalid lag range '{txt}'") from e
        out = list(range(lo, hi + 1))
    else:
        try:
            out = [int(x.strip()) for x in txt.split(",") if x.strip() != ""]
        except ValueError as e:
            raise argparse.ArgumentTypeError(f"Invalid lag list '{txt}'") from e

    out = sorted({v for v in out if v > 0})
    if not out:
        raise argparse.ArgumentTypeError(f"No positive lags in '{txt}'")
    return out


def parse_decision_variants(s: Optional[str], default: str = "none,trend") -> Tuple[str, ...]:
    """
    Parse the ADF regression variants that decide stationarity.

    Examples
    --------
    >>> parse_decision_variants("none, trend")
    ('none', 'trend')
    >>> parse_decision_variants("drift")
    ('drift',)
    """
    txt = (s or default).strip().lower()
    variants = []
    for part in txt.split(","):
        name = part.strip()
        if not name:
            continue
        if name not in VALID_DECISION_VARIANTS:
            raise argparse.ArgumentTypeError(
                f"Invalid ADF variant '{name}'. Must be one of: {list(VALID_DECISION_VARIANTS)}")
        if name not in variants:
            variants.append(name)
    if not variants:
        raise argparse.ArgumentTypeError("At least one ADF variant is required")
    return tuple(variants)


def parse_seasonal_order(s: Optional[str]) -> Optional[SeasonalOrder]:
    """
    Parse 'P,D,Q,s' into a SeasonalOrder; empty or 'none' disables the seasonal part.

    Examples
    --------
    >>> parse_seasonal_order("1,0,1,12")
    SeasonalOrder(P=1, D=0, Q=1, period=12)
    >>> parse_seasonal_order("none") is None
    True
    """
    if s is None or s.strip().lower() in ("", "none"):
        return None
    try:
        parts = [int(x.strip()) for x in s.split(",")]
    except ValueError as e:
        raise argparse.ArgumentTypeError(f"Invalid seasonal order '{s}'") from e
    if len(parts) != 4 or any(v < 0 for v in parts):
        raise argparse.ArgumentTypeError(f"Seasonal order must be four non-negative integers P,D,Q,s, got '{s}'")
    return SeasonalOrder(*parts)


def non_negative_int(value: str) -> int:
    """argparse type for integers >= 0."""
    try:
        ivalue = int(value)
    except ValueError as e:
        raise argparse.ArgumentTypeError(f"Expected an integer, got '{value}'") from e
    if ivalue < 0:
        raise argparse.ArgumentTypeError(f"Expected a non-negative integer, got {ivalue}")
    return ivalue


def positive_int(value: str) -> int:
    """argparse type for integers > 0."""
    ivalue = non_negative_int(value)
    if ivalue == 0:
        raise argparse.ArgumentTypeError("Expected a positive integer, got 0")
    return ivalue


def validate_fit_scale(scale: str) -> str:
    """
    Validate the scale models are fitted on.

    Raises
    ------
    ValueError
        If the scale is neither 'level' nor 'log'.
    """
    if scale not in VALID_FIT_SCALES:
        raise ValueError(f"Invalid fit scale '{scale}'. Must be one of: {list(VALID_FIT_SCALES)}")
    return scale


def validate_log_level(log_level: str) -> str:
    """
    Validate and normalize logging level specification.

    Parameters
    ----------
    log_level : str
        Logging level to validate

    Returns
    -------
    str
        Validated logging level (upper case)

    Raises
    ------
    ValueError
        If the logging level is not supported

    Examples
    --------
    >>> validate_log_level("info")
    'INFO'
    """
    valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
    level = str(log_level).upper()
    if level not in valid_levels:
        raise ValueError(f"Invalid log level '{log_level}'. Must be one of: {valid_levels}")
    return level
