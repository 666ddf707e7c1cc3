"""The ``Quote`` value type shared by collection and aggregation."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Dict


@dataclass(frozen=True)
class Quote:
    """One priced outcome observed at one source at one point in time."""

    source: str
    normalized_source: str
    sport: str
    event: str
    market: str
    selection: str
    price: float  # Decimal odds
    timestamp: datetime
    confidence: float  # Normalization confidence, 0.0-1.0

    def group_key(self) -> str:
        return f"{self.event}::{self.market}::{self.selection}"

    def to_dict(self) -> Dict:
        return {
            "source": self.source,
            "normalized_source": self.normalized_source,
            "sport": self.sport,
            "event": self.event,
            "market": self.market,
            "selection": self.selection,
            "price": self.price,
            "timestamp": self.timestamp.isoformat(),
            "confidence": self.confidence,
        }

    @classmethod
    def from_dict(cls, data: Dict) -> Quote:
        ts = data["timestamp"]
        if isinstance(ts, str):
            ts = datetime.fromisoformat(ts)
        return cls(
            source=data["source"],
            normalized_source=data["normalized_source"],
            sport=data["sport"],
            event=data["event"],
            market=data["market"],
            selection=data["selection"],
            price=float(data["price"]),
            timestamp=ts,
            confidence=float(data["confidence"]),
        )
