# price_forecaster_src/exceptions.py

"""
Exception hierarchy for the monthly price forecasting pipeline.

Every analysis-halting condition raised by the core derives from
``PriceForecasterError`` so the calling layer can report it with a single
``except`` clause. Per-candidate fit failures (``FitDivergenceError``) are the
only errors the core catches itself, inside the ARIMA grid search.
"""

from typing import Optional, Sequence, Tuple


class PriceForecasterError(Exception):
    """Base exception for the price forecasting pipeline."""
    pass


class ConfigurationError(PriceForecasterError):
    """Raised when a configuration file cannot be loaded or is invalid."""
    pass


class EmptyInputError(PriceForecasterError):
    """Raised when no usable observations remain for an analysis step."""
    pass


class MalformedInputError(PriceForecasterError):
    """Raised when a required value is missing or cannot be coerced to a number."""

    def __init__(self, message: str, field: Optional[str] = None, timestamp=None):
        super().__init__(message)
        self.field = field
        self.timestamp = timestamp


class NonPositiveValueError(PriceForecasterError):
    """Raised when a log transform is requested on a series with values <= 0."""

    def __init__(self, message: str, periods: Sequence = ()):
        super().__init__(message)
        self.periods = list(periods)


class FitDivergenceError(PriceForecasterError):
    """Raised when the optimizer fails for one candidate ARIMA order."""

    def __init__(self, message: str, order: Optional[Tuple[int, int, int]] = None):
        super().__init__(message)
        self.order = order


class NoConvergentModelError(PriceForecasterError):
    """Raised when every candidate order of a grid search diverged."""

    def __init__(self, message: str, attempted: Sequence = ()):
        super().__init__(message)
        self.attempted = list(attempted)


class InvalidHorizonError(PriceForecasterError):
    """Raised when a forecast horizon is not a positive integer."""

    def __init__(self, message: str, horizon=None):
        super().__init__(message)
        self.horizon = horizon
