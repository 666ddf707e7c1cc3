"""Core building blocks for the Odds Hub aggregation framework.

This package contains pure, source-agnostic pieces:

- ``source_config``: immutable per-source configuration registry
- ``rate_limiter``: sliding-window admission control per source
- ``quote``: the normalized price record shared by every layer
- ``aggregation``: grouping, spread statistics and arbitrage ranking

Nothing in this package imports from ``odds_hub.services``.
"""
