"""Odds Hub: multi-source odds collection and cross-source aggregation."""

__version__ = "0.1.0"
