#!/usr/bin/env python3
"""
ARIMA forecasting of monthly electricity prices.

Usage
-----
    python forecaster_ARIMA.py --help
    python forecaster_ARIMA.py --series-csv data/prices.csv --forecast-csv out/forecast.csv

The implementation lives in price_forecaster_src/ (see its __init__ for the
module layout).
"""

import sys

if __name__ == "__main__":
    from price_forecaster_src.main import main
    sys.exit(main())
