"""
Cross-source aggregation of collected quotes.

Quotes from every source are grouped by (event, market, selection).  Each
group gets spread statistics, and every group priced by at least two
sources yields one arbitrage entry:

  advantage = max price - min price   (within the group)

The ``best_source`` of a group is the first source, in collection order,
that offers the maximum price.  Collection order is configuration order,
so repeated runs over the same input produce identical output.

Variance is the population variance (mean of squared deviations), which
is 0 for a single quote.

Everything here is a pure function of its input.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Sequence, Tuple

import numpy as np

from odds_hub.core.quote import Quote

#: Maximum number of arbitrage entries returned.
ARBITRAGE_TOP_N = 10


@dataclass(frozen=True)
class AggregateStats:
    """Spread statistics for one (event, market, selection) group."""

    event: str
    market: str
    selection: str
    min: float
    max: float
    mean: float
    variance: float
    count: int
    best_source: str
    prices: Tuple[Tuple[str, float], ...] = ()  # (source, price) in collection order

    def to_dict(self) -> Dict:
        return {
            "event": self.event,
            "market": self.market,
            "selection": self.selection,
            "min": self.min,
            "max": self.max,
            "mean": self.mean,
            "variance": self.variance,
            "count": self.count,
            "best_source": self.best_source,
            "prices": [{"source": s, "price": p} for s, p in self.prices],
        }


@dataclass(frozen=True)
class ArbitrageEntry:
    """Best price for an outcome priced by two or more sources."""

    event: str
    market: str
    selection: str
    source: str
    price: float
    advantage: float

    def to_dict(self) -> Dict:
        return {
            "event": self.event,
            "market": self.market,
            "selection": self.selection,
            "source": self.source,
            "price": self.price,
            "advantage": self.advantage,
        }


@dataclass
class AggregationResult:
    groups: Dict[str, AggregateStats] = field(default_factory=dict)
    arbitrage: List[ArbitrageEntry] = field(default_factory=list)
    avg_variance: float = 0.0

    def to_dict(self) -> Dict:
        return {
            "groups": {k: v.to_dict() for k, v in self.groups.items()},
            "arbitrage": [e.to_dict() for e in self.arbitrage],
            "avg_variance": self.avg_variance,
        }


# ---------------------------------------------------------------------------
# Grouping and statistics
# ---------------------------------------------------------------------------

def flatten(quotes_by_source: Mapping[str, Sequence[Quote]]) -> List[Quote]:
    """Flatten per-source quote lists, preserving source then quote order."""
    return [q for quotes in quotes_by_source.values() for q in quotes]


def group_quotes(quotes: Iterable[Quote]) -> Dict[str, List[Quote]]:
    """Group quotes by ``event::market::selection`` in first-seen order."""
    groups: Dict[str, List[Quote]] = {}
    for q in quotes:
        groups.setdefault(q.group_key(), []).append(q)
    return groups


def compute_stats(group: Sequence[Quote]) -> AggregateStats:
    """
    Compute spread statistics for a non-empty group of quotes.

    Raises:
        ValueError: If ``group`` is empty.
    """
    if not group:
        raise ValueError("Cannot compute statistics for an empty group")

    prices = np.asarray([q.price for q in group], dtype=float)
    lo = float(prices.min())
    hi = float(prices.max())

    if len(group) <= 1 or lo == hi:
        mean = lo
        variance = 0.0
    else:
        # Clamp against floating-point drift so min <= mean <= max holds.
        mean = min(hi, max(lo, float(np.mean(prices))))
        variance = float(np.var(prices))

    best = next(q for q in group if q.price == hi)
    first = group[0]

    return AggregateStats(
        event=first.event,
        market=first.market,
        selection=first.selection,
        min=lo,
        max=hi,
        mean=mean,
        variance=variance,
        count=len(group),
        best_source=best.source,
        prices=tuple((q.source, q.price) for q in group),
    )


# ---------------------------------------------------------------------------
# Ranking
# ---------------------------------------------------------------------------

def find_arbitrage(
    stats: Iterable[AggregateStats],
    top_n: int = ARBITRAGE_TOP_N,
) -> List[ArbitrageEntry]:
    """Rank multi-source groups by descending advantage, keeping ``top_n``."""
    entries = [
        ArbitrageEntry(
            event=s.event,
            market=s.market,
            selection=s.selection,
            source=s.best_source,
            price=s.max,
            advantage=s.max - s.min,
        )
        for s in stats
        if s.count >= 2
    ]
    # sorted() is stable, so ties keep first-seen group order
    entries = sorted(entries, key=lambda e: e.advantage, reverse=True)
    return entries[:top_n]


def average_variance(stats: Iterable[AggregateStats]) -> float:
    """Mean variance across groups priced by two or more sources (0 when none)."""
    variances = [s.variance for s in stats if s.count >= 2]
    if not variances:
        return 0.0
    return float(np.mean(variances))


def aggregate(quotes_by_source: Mapping[str, Sequence[Quote]]) -> AggregationResult:
    """
    Aggregate collected quotes across sources.

    Args:
        quotes_by_source: Mapping of source name to that source's quotes,
            as returned by ``OddsCollector.collect``.

    Returns:
        AggregationResult with per-group stats, the top arbitrage entries
        and the average multi-source variance.
    """
    groups = group_quotes(flatten(quotes_by_source))
    stats = {key: compute_stats(members) for key, members in groups.items()}
    return AggregationResult(
        groups=stats,
        arbitrage=find_arbitrage(stats.values()),
        avg_variance=average_variance(stats.values()),
    )
