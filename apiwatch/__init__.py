"""apiwatch: scheduled API health monitoring with a SQLite time-series store."""

__version__ = "0.1.0"
