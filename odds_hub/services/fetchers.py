"""
Source fetchers: the network boundary for raw odds.

A fetcher turns ``(SourceConfig, sport)`` into a list of validated
:class:`RawMarket` objects or raises :class:`SourceUnavailable`.  Raw
payloads are validated here so nothing downstream ever sees an untyped
blob.  Retry policy, if any, belongs to the fetcher; the collector never
retries.

Fetchers
--------
  HTTPSourceFetcher   GET ``base_url + endpoints.odds`` via requests.
  DemoSourceFetcher   Fixture markets with optional simulated latency and
                      failure injection, for local runs and demos.
"""

import logging
import random
import time
from typing import Dict, List, Optional, Protocol

import requests
from pydantic import BaseModel, Field, ValidationError

from odds_hub.core.source_config import REGION_AU, SourceConfig

logger = logging.getLogger(__name__)


class SourceUnavailable(Exception):
    """Transient failure fetching from a source."""

    def __init__(self, source: str, reason: str):
        super().__init__(f"{source}: {reason}")
        self.source = source
        self.reason = reason


# ---------------------------------------------------------------------------
# Payload schema
# ---------------------------------------------------------------------------

class RawSelection(BaseModel):
    name: str = Field(..., min_length=1)
    price: float = Field(..., gt=0, allow_inf_nan=False, description="Decimal odds")


class RawMarket(BaseModel):
    event: str = Field(..., min_length=1)
    market: str = Field(..., min_length=1)
    selections: List[RawSelection] = Field(..., min_length=1)


def parse_raw_markets(source: str, payload) -> List[RawMarket]:
    """
    Validate a decoded payload (a list of market dicts).

    Accepts ``odds`` as an alias of ``price`` in selections.

    Raises:
        SourceUnavailable: When the payload does not match the schema.
    """
    if not isinstance(payload, list):
        raise SourceUnavailable(source, f"expected a list of markets, got {type(payload).__name__}")

    markets = []
    for entry in payload:
        if isinstance(entry, dict):
            entry = dict(entry)
            entry["selections"] = [
                {"name": s.get("name"), "price": s.get("price", s.get("odds"))}
                if isinstance(s, dict) else s
                for s in entry.get("selections", [])
            ]
        try:
            markets.append(RawMarket.model_validate(entry))
        except ValidationError as exc:
            raise SourceUnavailable(
                source, f"malformed market payload ({exc.error_count()} errors)"
            ) from exc
    return markets


class SourceFetcher(Protocol):
    def fetch(self, config: SourceConfig, sport: str) -> List[RawMarket]: ...


# ---------------------------------------------------------------------------
# HTTP
# ---------------------------------------------------------------------------

class HTTPSourceFetcher:
    """Fetch odds over HTTP with a hard per-request timeout."""

    def __init__(self, timeout: float = 5.0, session: Optional[requests.Session] = None):
        self.timeout = timeout
        self.session = session or requests.Session()

    def fetch(self, config: SourceConfig, sport: str) -> List[RawMarket]:
        headers = {"Accept": "application/json"}
        if config.api_key:
            headers["Authorization"] = f"Bearer {config.api_key}"

        try:
            response = self.session.get(
                config.odds_url,
                params={"sport": sport},
                headers=headers,
                timeout=self.timeout,
            )
            response.raise_for_status()
            payload = response.json()
        except requests.exceptions.RequestException as exc:
            raise SourceUnavailable(config.name, str(exc)) from exc
        except ValueError as exc:
            raise SourceUnavailable(config.name, f"invalid JSON: {exc}") from exc

        markets = parse_raw_markets(config.name, payload)
        logger.info("%s: %d markets fetched for %s", config.name, len(markets), sport)
        return markets


# ---------------------------------------------------------------------------
# Demo fixtures
# ---------------------------------------------------------------------------

# International football fixtures, identical prices across sources.
_INTL_FIXTURES: List[Dict] = [
    {
        "event": "Manchester United vs Chelsea",
        "market": "1X2",
        "selections": [
            {"name": "Manchester United", "price": 2.5},
            {"name": "Draw", "price": 3.2},
            {"name": "Chelsea", "price": 2.8},
        ],
    },
    {
        "event": "Liverpool vs Arsenal",
        "market": "1X2",
        "selections": [
            {"name": "Liverpool", "price": 1.85},
            {"name": "Draw", "price": 3.5},
            {"name": "Arsenal", "price": 4.2},
        ],
    },
]

# A-League fixtures: (selection, sportsbet price, tab price)
_AU_FIXTURES = [
    ("Sydney FC vs Melbourne City", [
        ("Sydney FC", 2.3, 2.4),
        ("Draw", 3.1, 3.0),
        ("Melbourne City", 2.9, 2.8),
    ]),
    ("Brisbane Roar vs Perth Glory", [
        ("Brisbane Roar", 1.9, 1.95),
        ("Draw", 3.4, 3.3),
        ("Perth Glory", 4.1, 4.0),
    ]),
    ("Western Sydney vs Adelaide United", [
        ("Western Sydney", 2.6, 2.7),
        ("Draw", 3.2, 3.15),
        ("Adelaide United", 2.5, 2.45),
    ]),
]


class DemoSourceFetcher:
    """
    Fixture-backed fetcher.

    Args:
        latency: ``(min, max)`` seconds of simulated network delay.
        failure_rate: Probability in [0, 1] that a fetch raises
            :class:`SourceUnavailable`.
        rng: Random source, injectable for deterministic tests.
    """

    def __init__(
        self,
        latency: tuple = (0.0, 0.0),
        failure_rate: float = 0.0,
        rng: Optional[random.Random] = None,
    ):
        if not 0.0 <= failure_rate <= 1.0:
            raise ValueError(f"failure_rate must be in [0, 1], got {failure_rate!r}")
        self.latency = latency
        self.failure_rate = failure_rate
        self.rng = rng or random.Random()

    def _payload_for(self, config: SourceConfig) -> List[Dict]:
        if config.region != REGION_AU:
            return _INTL_FIXTURES
        # sportsbet gets the first price column, every other AU source the second
        col = 1 if config.name == "sportsbet" else 2
        return [
            {
                "event": event,
                "market": "1X2",
                "selections": [{"name": row[0], "price": row[col]} for row in rows],
            }
            for event, rows in _AU_FIXTURES
        ]

    def fetch(self, config: SourceConfig, sport: str) -> List[RawMarket]:
        lo, hi = self.latency
        if hi > 0:
            time.sleep(self.rng.uniform(lo, hi))

        if self.failure_rate and self.rng.random() < self.failure_rate:
            raise SourceUnavailable(config.name, "API temporarily unavailable")

        return parse_raw_markets(config.name, self._payload_for(config))
