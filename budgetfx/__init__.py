"""Currency normalization and aggregation engine for the budgeting app."""

__version__ = "0.1.0"
