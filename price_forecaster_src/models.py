# price_forecaster_src/models.py

"""
Typed value objects passed between the pipeline stages.

Every stage returns a new instance of one of these types instead of mutating
a shared data frame. Pandas objects are copied on the way in and on the way
out so that callers cannot change a value after it has been handed over.

Types
-----
- RawObservation: one hourly row of the input table (values may still be text)
- MonthlySeries: contiguous monthly means per numeric field, with imputation flags
- PriceSeries: a single monthly field with its sampling frequency and transform history
- ModelOrder / SeasonalOrder: ARIMA (p, d, q) and optional (P, D, Q, s)
- FittedModel: estimated ARIMA model with information criteria
- Forecast / ForecastPoint: out-of-sample point forecasts and standard errors
- UnitRootResult / StabilizationResult: ADF verdicts before and after transforms
- SelectionComparison: grid search vs stepwise search cross-check
- PipelineResult: everything returned by one analysis run
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, Mapping, Optional, Tuple

import numpy as np
import pandas as pd

from .exceptions import MalformedInputError, NonPositiveValueError

LEVEL_SCALE = "level"
LOG_SCALE = "log"
MONTHS_PER_YEAR = 12


@dataclass(frozen=True)
class RawObservation:
    """A single hourly observation as delivered by the ingestion step."""

    timestamp: pd.Timestamp
    measurements: Mapping[str, Any]     # field name -> raw value (number or text)
    season: Optional[str] = None        # categorical season label

    def __post_init__(self):
        object.__setattr__(self, "timestamp", pd.Timestamp(self.timestamp))
        object.__setattr__(self, "measurements", dict(self.measurements))


@dataclass(frozen=True, eq=False)
class MonthlySeries:
    """Monthly means of every numeric field over a contiguous range of months.

    Attributes
    ----------
    values : pd.DataFrame
        One column per numeric field, indexed by a monthly PeriodIndex without gaps.
    originally_missing : pd.DataFrame
        Boolean frame of the same shape; True where the month had no observation
        for the field and the value was imputed.
    season : pd.Series
        Most frequent season label per month (None for months with no rows).
    frequency : int
        Periods per year, always 12.
    """

    values: pd.DataFrame
    originally_missing: pd.DataFrame
    season: pd.Series
    frequency: int = MONTHS_PER_YEAR

    def __post_init__(self):
        index = self.values.index
        if not isinstance(index, pd.PeriodIndex) or index.freqstr not in ("M", "ME"):
            raise ValueError("MonthlySeries requires a monthly PeriodIndex")
        if len(index) > 1:
            expected = pd.period_range(index[0], index[-1], freq="M")
            if not index.equals(expected):
                raise ValueError("MonthlySeries periods must be contiguous and ordered")
        object.__setattr__(self, "values", self.values.copy())
        object.__setattr__(self, "originally_missing", self.originally_missing.astype(bool).copy())
        object.__setattr__(self, "season", self.season.copy())

    def __len__(self) -> int:
        return len(self.values)

    @property
    def periods(self) -> pd.PeriodIndex:
        return self.values.index.copy()

    @property
    def fields(self) -> Tuple[str, ...]:
        return tuple(self.values.columns)

    def field(self, name: str) -> pd.Series:
        """Return a copy of one field's monthly values."""
        if name not in self.values.columns:
            raise KeyError(f"Unknown field '{name}'. Available: {list(self.values.columns)}")
        return self.values[name].copy()

    def imputed_count(self, name: Optional[str] = None) -> int:
        if name is None:
            return int(self.originally_missing.values.sum())
        return int(self.originally_missing[name].sum())

    def to_frame(self) -> pd.DataFrame:
        return self.values.copy()


@dataclass(frozen=True, eq=False)
class PriceSeries:
    """A single monthly numeric series with an explicit sampling frequency.

    Derived transforms (``log``, ``difference``) return new instances and
    record themselves in ``transforms``; the original is never modified.
    """

    values: pd.Series
    name: str = "price"
    frequency: int = MONTHS_PER_YEAR
    transforms: Tuple[str, ...] = ()

    def __post_init__(self):
        values = pd.Series(self.values, dtype=float).copy()
        if not isinstance(values.index, pd.PeriodIndex):
            raise ValueError("PriceSeries requires a PeriodIndex")
        if values.isna().any():
            missing = [str(p) for p in values.index[values.isna()]]
            raise MalformedInputError(
                f"Price series '{self.name}' has missing values at {missing}", field=self.name
            )
        values.name = self.name
        object.__setattr__(self, "values", values)
        object.__setattr__(self, "transforms", tuple(self.transforms))

    @classmethod
    def from_values(cls, values, start: str, name: str = "price",
                    frequency: int = MONTHS_PER_YEAR) -> "PriceSeries":
        """Build a monthly PriceSeries from plain values starting at ``start`` (e.g. '2015-01')."""
        arr = np.asarray(values, dtype=float)
        index = pd.period_range(start=start, periods=len(arr), freq="M")
        return cls(pd.Series(arr, index=index), name=name, frequency=frequency)

    def __len__(self) -> int:
        return len(self.values)

    @property
    def periods(self) -> pd.PeriodIndex:
        return self.values.index.copy()

    @property
    def last_period(self) -> pd.Period:
        return self.values.index[-1]

    @property
    def scale(self) -> str:
        return LOG_SCALE if LOG_SCALE in self.transforms else LEVEL_SCALE

    def to_series(self) -> pd.Series:
        return self.values.copy()

    def log(self) -> "PriceSeries":
        """Natural log of the series; every value must be strictly positive."""
        bad = self.values[self.values <= 0]
        if not bad.empty:
            periods = [str(p) for p in bad.index]
            raise NonPositiveValueError(
                f"Cannot log-transform '{self.name}': {len(bad)} value(s) <= 0 at {periods}",
                periods=periods,
            )
        return PriceSeries(np.log(self.values), name=self.name, frequency=self.frequency,
                           transforms=self.transforms + (LOG_SCALE,))

    def difference(self, order: int = 1) -> "PriceSeries":
        """Apply first differences ``order`` times, dropping the leading periods."""
        if order < 0:
            raise ValueError("Differencing order must be non-negative")
        out = self.values
        for _ in range(order):
            out = out.diff().dropna()
        if order == 0:
            return self
        return PriceSeries(out, name=self.name, frequency=self.frequency,
                           transforms=self.transforms + (f"diff{order}",))


@dataclass(frozen=True)
class SeasonalOrder:
    """Seasonal ARIMA component (P, D, Q) with its period."""

    P: int = 0
    D: int = 0
    Q: int = 0
    period: int = MONTHS_PER_YEAR

    def __post_init__(self):
        for label, value in (("P", self.P), ("D", self.D), ("Q", self.Q)):
            if int(value) != value or value < 0:
                raise ValueError(f"Seasonal order {label} must be a non-negative integer, got {value}")
        if self.period < 2:
            raise ValueError(f"Seasonal period must be >= 2, got {self.period}")

    def as_tuple(self) -> Tuple[int, int, int, int]:
        return (self.P, self.D, self.Q, self.period)


@dataclass(frozen=True)
class ModelOrder:
    """Non-seasonal ARIMA order (p, d, q), optionally with a seasonal part."""

    p: int
    d: int
    q: int
    seasonal: Optional[SeasonalOrder] = None

    def __post_init__(self):
        for label, value in (("p", self.p), ("d", self.d), ("q", self.q)):
            if int(value) != value or value < 0:
                raise ValueError(f"ARIMA order {label} must be a non-negative integer, got {value}")

    def as_tuple(self) -> Tuple[int, int, int]:
        return (self.p, self.d, self.q)

    def seasonal_tuple(self) -> Tuple[int, int, int, int]:
        return self.seasonal.as_tuple() if self.seasonal is not None else (0, 0, 0, 0)

    @property
    def n_arma(self) -> int:
        return self.p + self.q

    def __str__(self) -> str:
        label = f"ARIMA({self.p},{self.d},{self.q})"
        if self.seasonal is not None:
            s = self.seasonal
            label += f"({s.P},{s.D},{s.Q})[{s.period}]"
        return label


@dataclass(frozen=True, eq=False)
class FittedModel:
    """An estimated ARIMA model. ``results`` holds the statsmodels results object."""

    order: ModelOrder
    coefficients: Mapping[str, float]
    sigma2: float
    aic: float
    bic: float
    hqic: float
    log_likelihood: float
    n_obs: int
    scale: str                          # scale of the fitted data: 'level' or 'log'
    series_name: str
    last_period: pd.Period
    frequency: int = MONTHS_PER_YEAR
    selected_by: str = "grid"           # 'grid' or 'auto'
    results: Any = field(default=None, repr=False, compare=False)

    def __post_init__(self):
        object.__setattr__(self, "coefficients", dict(self.coefficients))


@dataclass(frozen=True)
class ForecastPoint:
    period: pd.Period
    estimate: float
    std_error: float
    lower: float
    upper: float


@dataclass(frozen=True, eq=False)
class Forecast:
    """Ordered out-of-sample forecast.

    All values are on ``scale``: 'level' means price units, 'log' means the
    natural log of price. Nothing is back-transformed implicitly; use
    ``to_level_scale`` for an explicit conversion.
    """

    points: Tuple[ForecastPoint, ...]
    scale: str
    order: ModelOrder
    alpha: float = 0.05

    def __post_init__(self):
        object.__setattr__(self, "points", tuple(self.points))

    def __len__(self) -> int:
        return len(self.points)

    def __iter__(self) -> Iterator[ForecastPoint]:
        return iter(self.points)

    @property
    def periods(self) -> pd.PeriodIndex:
        return pd.PeriodIndex([pt.period for pt in self.points], freq="M")

    @property
    def estimates(self) -> np.ndarray:
        return np.array([pt.estimate for pt in self.points], dtype=float)

    @property
    def std_errors(self) -> np.ndarray:
        return np.array([pt.std_error for pt in self.points], dtype=float)

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame(
            {
                "estimate": self.estimates,
                "std_error": self.std_errors,
                "lower": [pt.lower for pt in self.points],
                "upper": [pt.upper for pt in self.points],
            },
            index=self.periods,
        )

    def to_level_scale(self) -> "Forecast":
        """Exponentiate a log-scale forecast (median forecast in price units).

        The standard error has no direct counterpart on the level scale and is
        set to NaN; the interval bounds are exponentiated.
        """
        if self.scale == LEVEL_SCALE:
            return self
        points = tuple(
            ForecastPoint(
                period=pt.period,
                estimate=float(np.exp(pt.estimate)),
                std_error=float("nan"),
                lower=float(np.exp(pt.lower)),
                upper=float(np.exp(pt.upper)),
            )
            for pt in self.points
        )
        return Forecast(points=points, scale=LEVEL_SCALE, order=self.order, alpha=self.alpha)


@dataclass(frozen=True)
class UnitRootResult:
    """Augmented Dickey-Fuller results for each deterministic specification.

    Keys of the dictionaries are 'none' (no constant), 'drift' (constant) and
    'trend' (constant + linear trend).
    """

    statistics: Dict[str, float]
    p_values_by_lag_type: Dict[str, float]
    used_lags: Dict[str, int]
    n_obs: int
    alpha: float
    decision_variants: Tuple[str, ...]
    is_stationary: bool

    @property
    def statistic(self) -> float:
        return self.statistics[self.decision_variants[0]]

    def verdict_by_variant(self) -> Dict[str, bool]:
        """Per-variant stationarity verdict (p-value <= alpha)."""
        return {k: bool(p <= self.alpha) for k, p in self.p_values_by_lag_type.items()}


@dataclass(frozen=True, eq=False)
class StabilizationResult:
    series: PriceSeries
    pre: UnitRootResult
    post: UnitRootResult
    log_applied: bool
    diff_order: int


@dataclass(frozen=True)
class SelectionComparison:
    grid_order: ModelOrder
    auto_order: ModelOrder
    grid_aic: float
    auto_aic: float
    aic_difference: float              # auto AIC minus grid AIC
    agrees: bool


@dataclass(frozen=True, eq=False)
class PipelineResult:
    monthly: MonthlySeries
    prices: PriceSeries
    stabilization: StabilizationResult
    fitted: FittedModel
    forecast: Forecast
    grid_table: pd.DataFrame
    auto_model: Optional[FittedModel] = None
    comparison: Optional[SelectionComparison] = None
    residual_checks: Optional[pd.DataFrame] = None
    holdout_metrics: Optional[Dict[str, float]] = None
    arch_test: Optional[Dict[str, float]] = None
