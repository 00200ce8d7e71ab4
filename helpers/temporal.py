# -*- coding: utf-8 -*-
"""
Temporal utilities for calendar-month alignment.

Functions
---------
- to_month_periods(timestamps): Tag each timestamp with its enclosing calendar
  month as a monthly Period.
- complete_monthly_index(index): Contiguous monthly PeriodIndex spanning the
  first to the last month of ``index``; gaps become explicit periods.
"""

from __future__ import annotations

from typing import Iterable, Union

import pandas as pd


def to_month_periods(timestamps: Union[pd.Series, pd.DatetimeIndex, Iterable]) -> pd.PeriodIndex:
    """
    Map timestamps to their calendar month.

    Timezone-aware timestamps are converted to naive local wall time first, so
    an hour belongs to the month it falls in at the source.
    """
    if not isinstance(timestamps, (pd.Series, pd.DatetimeIndex)):
        timestamps = list(timestamps)
    idx = pd.DatetimeIndex(pd.to_datetime(timestamps))
    if idx.tz is not None:
        idx = idx.tz_localize(None)
    return idx.to_period("M")


def complete_monthly_index(index: pd.PeriodIndex) -> pd.PeriodIndex:
    """
    Return the gap-free monthly PeriodIndex covering ``index``.

    Parameters
    ----------
    index : pd.PeriodIndex
        Monthly periods, possibly with gaps and in any order.

    Returns
    -------
    pd.PeriodIndex
        Every month from min(index) to max(index), inclusive.
    """
    if not isinstance(index, pd.PeriodIndex):
        raise TypeError("complete_monthly_index expects a PeriodIndex.")
    if len(index) == 0:
        return pd.PeriodIndex([], freq="M")
    return pd.period_range(index.min(), index.max(), freq="M")
