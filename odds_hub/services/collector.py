"""
Concurrent odds collection across all configured sources.

For each enabled source the collector runs, on its own worker thread:

    1. Cache lookup on ``odds:{source}:{sport}``  (TTL 300 s)
    2. On a miss, a rate-limit check.  Denied → empty result, no network call.
    3. Fetch raw markets from the source.
    4. Normalize the source name and every selection label.
    5. Assemble Quotes and write them back to the cache.

A failure inside any one source (fetch error, malformed payload,
normalization error) is caught at that source's boundary, logged, and
turned into an empty list.  ``collect`` waits for every source before
returning; there is no early exit on first result or first failure.

Rate-limited and failed results are never cached, so a source recovers
as soon as its window frees up.
"""

import logging
import os
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from typing import Callable, Dict, Iterable, List, Optional

from dotenv import load_dotenv

from odds_hub.core.aggregation import aggregate
from odds_hub.core.quote import Quote
from odds_hub.core.rate_limiter import RateLimiter
from odds_hub.core.source_config import SourceConfig, load_source_configs
from odds_hub.services.cache import CacheAside, InMemoryCacheStore, RedisCacheStore
from odds_hub.services.fetchers import DemoSourceFetcher, HTTPSourceFetcher, SourceFetcher
from odds_hub.services.name_normalizer import NameNormalizer, RemoteNormalizationClient

logger = logging.getLogger(__name__)

DEFAULT_CACHE_TTL_SECONDS = 300


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class OddsCollector:
    """
    Fans out odds fetches across sources and merges the results.

    Usage::

        collector = get_odds_collector()
        quotes_by_source = collector.collect("football")
        view = collector.aggregated_odds("football", region="au")
    """

    def __init__(
        self,
        configs: Iterable[SourceConfig],
        fetcher: SourceFetcher,
        normalizer: NameNormalizer,
        cache: CacheAside,
        rate_limiter: Optional[RateLimiter] = None,
        cache_ttl: int = DEFAULT_CACHE_TTL_SECONDS,
        max_workers: Optional[int] = None,
        now: Callable[[], datetime] = _utcnow,
    ):
        self.configs: List[SourceConfig] = list(configs)
        self.fetcher = fetcher
        self.normalizer = normalizer
        self.cache = cache
        self.rate_limiter = rate_limiter or RateLimiter.from_configs(self.configs)
        self.cache_ttl = cache_ttl
        self.max_workers = max_workers
        self._now = now

        logger.info("Initialized %d source configurations", len(self.configs))

    # ------------------------------------------------------------------
    # Configuration lookup
    # ------------------------------------------------------------------

    def get_source_config(self, name: str) -> Optional[SourceConfig]:
        """Case-insensitive lookup; ``"paddy power"`` also finds ``paddy_power``."""
        wanted = name.strip().lower()
        for cfg in self.configs:
            key = cfg.name.lower()
            if key == wanted or key.replace("_", " ") == wanted:
                return cfg
        return None

    def resolve_sources(
        self,
        sources: Optional[Iterable[str]] = None,
        region: Optional[str] = None,
    ) -> List[SourceConfig]:
        """Enabled configs, optionally restricted by name and/or region."""
        if sources is None:
            selected = [c for c in self.configs if c.enabled]
        else:
            names = set()
            for name in sources:
                cfg = self.get_source_config(name)
                if cfg is None:
                    logger.warning("No configuration found for source: %s", name)
                    continue
                names.add(cfg.name)
            selected = [c for c in self.configs if c.enabled and c.name in names]

        if region is not None:
            selected = [c for c in selected if c.region == region]
        return selected

    # ------------------------------------------------------------------
    # Per-source work
    # ------------------------------------------------------------------

    @staticmethod
    def cache_key(source: str, sport: str) -> str:
        return f"odds:{source}:{sport}"

    def _fetch_quotes(self, config: SourceConfig, sport: str) -> List[Dict]:
        """Cache-miss path for one source.  Returns serialized quotes."""
        if not self.rate_limiter.admit(config.name):
            logger.warning("Rate limit exceeded for source: %s", config.name)
            return []

        markets = self.fetcher.fetch(config, sport)
        source_name = self.normalizer.normalize(config.name, "Bookmaker").normalized_name

        quotes = []
        for market in markets:
            for selection in market.selections:
                result = self.normalizer.normalize(selection.name, market.event)
                quotes.append(
                    Quote(
                        source=config.name,
                        normalized_source=source_name,
                        sport=sport,
                        event=market.event,
                        market=market.market,
                        selection=result.normalized_name,
                        price=selection.price,
                        timestamp=self._now(),
                        confidence=result.confidence,
                    ).to_dict()
                )

        logger.info("Fetched %d odds from %s", len(quotes), source_name)
        return quotes

    def _collect_one(self, config: SourceConfig, sport: str) -> List[Quote]:
        try:
            raw = self.cache.get_or_compute(
                self.cache_key(config.name, sport),
                self.cache_ttl,
                lambda: self._fetch_quotes(config, sport),
                cache_if=bool,
            )
            return [Quote.from_dict(q) for q in raw]
        except Exception as exc:
            logger.warning("Error fetching odds from %s: %s", config.name, exc)
            return []

    # ------------------------------------------------------------------
    # Collection
    # ------------------------------------------------------------------

    def collect(
        self,
        sport: str,
        sources: Optional[Iterable[str]] = None,
        region: Optional[str] = None,
    ) -> Dict[str, List[Quote]]:
        """
        Collect quotes from every selected source concurrently.

        Returns:
            Mapping of source name to quotes, in configuration order.  Sources
            that were rate-limited or failed map to an empty list.
        """
        selected = self.resolve_sources(sources, region)
        if not selected:
            return {}

        logger.info("Fetching odds from %d sources for %s", len(selected), sport)

        workers = self.max_workers or len(selected)
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="odds") as pool:
            futures = [
                (cfg.name, pool.submit(self._collect_one, cfg, sport))
                for cfg in selected
            ]
            results = {name: future.result() for name, future in futures}

        empty = [name for name, quotes in results.items() if not quotes]
        if empty:
            logger.info("Sources with no odds for %s: %s", sport, ", ".join(empty))
        return results

    def aggregated_odds(
        self,
        sport: str,
        sources: Optional[Iterable[str]] = None,
        region: Optional[str] = None,
    ) -> Dict:
        """Collect, then aggregate into a single serializable view."""
        quotes_by_source = self.collect(sport, sources=sources, region=region)
        result = aggregate(quotes_by_source)
        events = {stats.event for stats in result.groups.values()}

        return {
            "timestamp": self._now().isoformat(),
            "sport": sport,
            "total_sources": len(quotes_by_source),
            "total_quotes": sum(len(q) for q in quotes_by_source.values()),
            "sources": {
                name: [q.to_dict() for q in quotes]
                for name, quotes in quotes_by_source.items()
            },
            "aggregated": {k: v.to_dict() for k, v in result.groups.items()},
            "summary": {
                "available_events": len(events),
                "avg_variance": result.avg_variance,
                "best_opportunities": [e.to_dict() for e in result.arbitrage],
            },
        }

    # ------------------------------------------------------------------
    # Status / integration
    # ------------------------------------------------------------------

    def source_stats(self) -> Dict:
        """Return source counts, rate-limit usage and normalizer usage."""
        rate_status = {}
        for cfg in self.configs:
            status = self.rate_limiter.status(cfg.name)
            if status is not None:
                rate_status[cfg.name] = status.to_dict()

        return {
            "total_sources": len(self.configs),
            "enabled_sources": sum(1 for c in self.configs if c.enabled),
            "rate_limit_status": rate_status,
            "normalization": self.normalizer.usage_stats(),
        }

    def integrate_source(self, name: str) -> Dict:
        """Normalize a source name and check that it is configured."""
        logger.info("Starting integration for source: %s", name)
        result = self.normalizer.normalize(name, "Sports betting integration")
        logger.info(
            "Normalized %r to %r (confidence: %.2f)",
            name, result.normalized_name, result.confidence,
        )

        config = self.get_source_config(name)
        if config is None:
            return {
                "success": False,
                "normalized_name": result.normalized_name,
                "message": f"Integration failed: no configuration found for {name}",
            }

        state = "enabled" if config.enabled else "disabled"
        return {
            "success": True,
            "normalized_name": result.normalized_name,
            "message": (
                f"Successfully integrated {result.normalized_name} ({state}). "
                f"Rate limit: {config.rate_limit} req/min"
            ),
        }


# ---------------------------------------------------------------------------
# Wiring
# ---------------------------------------------------------------------------

def build_odds_collector() -> OddsCollector:
    """Build a collector from the environment (.env is loaded first)."""
    load_dotenv()

    configs = load_source_configs()

    redis_url = os.getenv("REDIS_URL")
    store = RedisCacheStore.from_url(redis_url) if redis_url else InMemoryCacheStore()

    if os.getenv("ODDS_FETCHER", "demo").lower() == "http":
        fetcher = HTTPSourceFetcher(timeout=float(os.getenv("FETCH_TIMEOUT_SECONDS", "5")))
    else:
        fetcher = DemoSourceFetcher()

    max_workers = os.getenv("COLLECTOR_MAX_WORKERS")

    return OddsCollector(
        configs=configs,
        fetcher=fetcher,
        normalizer=NameNormalizer(remote=RemoteNormalizationClient.from_env()),
        cache=CacheAside(store),
        cache_ttl=int(os.getenv("ODDS_CACHE_TTL", str(DEFAULT_CACHE_TTL_SECONDS))),
        max_workers=int(max_workers) if max_workers else None,
    )


_odds_collector: Optional[OddsCollector] = None


def get_odds_collector() -> OddsCollector:
    global _odds_collector
    if _odds_collector is None:
        _odds_collector = build_odds_collector()
    return _odds_collector
