"""Source-level configuration: every upstream odds provider in one place.

This module is the **registry** for the static configuration of each odds
source.  Nowhere else in the codebase should base URLs, per-minute request
limits, or endpoint paths be hard-coded.

Architecture
------------
:class:`SourceConfig` is a frozen dataclass carrying all per-source
constants.  :func:`default_sources` returns the built-in provider list and
:func:`load_source_configs` reads an optional JSON override file named by
``ODDS_SOURCES_FILE``.  The list is loaded once at process start and never
mutated afterwards.

Typical usage::

    from odds_hub.core.source_config import load_source_configs

    configs = load_source_configs()
    enabled = [c for c in configs if c.enabled]

    # Disable a single source for a test run:
    from dataclasses import replace
    quiet = replace(configs[0], enabled=False)
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Final, List, Optional

logger = logging.getLogger(__name__)

#: Region tag for Australian sources.
REGION_AU: Final[str] = "au"
#: Region tag for international (UK / EU) sources.
REGION_INTL: Final[str] = "intl"


@dataclass(frozen=True)
class SourceEndpoints:
    """Relative endpoint paths exposed by a source."""

    sports: str = "/sports"
    events: str = "/events"
    odds: str = "/odds"


@dataclass(frozen=True)
class SourceConfig:
    """Immutable configuration bundle for a single odds source.

    Attributes:
        name: Unique source key (``"bet365"``, ``"paddy_power"``).  Used as
            the rate-limit key, the cache-key prefix and the result key.
        base_url: Scheme + host of the source API.
        rate_limit: Maximum requests admitted in any trailing 60 seconds.
        enabled: Disabled sources are skipped by every collection call.
        endpoints: Relative paths for the sports, events and odds calls.
        api_key: Optional credential sent as a bearer token.
        region: Coarse region tag used to select source subsets.
    """

    name: str
    base_url: str
    rate_limit: int
    enabled: bool = True
    endpoints: SourceEndpoints = field(default_factory=SourceEndpoints)
    api_key: Optional[str] = None
    region: str = REGION_INTL

    def __post_init__(self) -> None:
        if not self.name:
            raise ValueError("SourceConfig.name must be non-empty")
        if self.rate_limit < 0:
            raise ValueError(
                f"rate_limit must be >= 0, got {self.rate_limit!r} for {self.name}"
            )

    @property
    def odds_url(self) -> str:
        return self.base_url.rstrip("/") + self.endpoints.odds

    @classmethod
    def from_dict(cls, data: Dict) -> SourceConfig:
        """Build a config from a JSON-style dict (``rateLimit`` or ``rate_limit``)."""
        endpoints = data.get("endpoints") or {}
        rate_limit = data.get("rate_limit", data.get("rateLimit"))
        if rate_limit is None:
            raise ValueError(f"Source {data.get('name')!r} has no rate limit")
        return cls(
            name=data["name"],
            base_url=data.get("base_url", data.get("baseUrl", "")),
            rate_limit=int(rate_limit),
            enabled=bool(data.get("enabled", True)),
            endpoints=SourceEndpoints(**endpoints),
            api_key=data.get("api_key", data.get("apiKey")),
            region=data.get("region", REGION_INTL),
        )

    def __repr__(self) -> str:
        return (
            f"SourceConfig(name={self.name!r}, "
            f"rate_limit={self.rate_limit}, "
            f"enabled={self.enabled}, "
            f"region={self.region!r})"
        )


def default_sources() -> List[SourceConfig]:
    """Return the built-in source list."""
    return [
        SourceConfig(
            name="bet365",
            base_url="https://api.bet365.com",
            rate_limit=60,
        ),
        SourceConfig(
            name="william_hill",
            base_url="https://api.williamhill.com",
            rate_limit=30,
        ),
        SourceConfig(
            name="betfair",
            base_url="https://api.betfair.com",
            rate_limit=120,
            endpoints=SourceEndpoints(
                sports="/betting/v1/listEventTypes",
                events="/betting/v1/listEvents",
                odds="/betting/v1/listMarketBook",
            ),
        ),
        SourceConfig(
            name="paddy_power",
            base_url="https://api.paddypower.com",
            rate_limit=45,
        ),
        # Australian sources
        SourceConfig(
            name="sportsbet",
            base_url="https://api.sportsbet.com.au",
            rate_limit=100,
            endpoints=SourceEndpoints(
                sports="/racing/sport-categories",
                events="/racing/events",
                odds="/racing/live-odds",
            ),
            region=REGION_AU,
        ),
        SourceConfig(
            name="tab",
            base_url="https://api.tab.com.au",
            rate_limit=80,
            endpoints=SourceEndpoints(
                sports="/v1/sports",
                events="/v1/tab-info-service/sports/events",
                odds="/v1/tab-info-service/sports/events/odds",
            ),
            region=REGION_AU,
        ),
    ]


def load_source_configs(path: Optional[str] = None) -> List[SourceConfig]:
    """Load the static source list.

    Reads the JSON file at ``path`` (or ``ODDS_SOURCES_FILE``) when given;
    the file holds a list of source objects.  Falls back to
    :func:`default_sources` when no file is configured.

    Raises:
        ValueError: On duplicate source names or a malformed entry.
    """
    path = path or os.getenv("ODDS_SOURCES_FILE")
    if not path:
        configs = default_sources()
    else:
        raw = json.loads(Path(path).read_text(encoding="utf-8"))
        configs = [SourceConfig.from_dict(entry) for entry in raw]
        logger.info("Loaded %d source configs from %s", len(configs), path)

    seen = set()
    for cfg in configs:
        if cfg.name in seen:
            raise ValueError(f"Duplicate source name in configuration: {cfg.name}")
        seen.add(cfg.name)

    return configs
