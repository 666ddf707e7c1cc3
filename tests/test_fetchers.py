"""Tests for source fetchers and fetch-boundary payload validation."""

import json
import random

import pytest
import requests
from unittest.mock import MagicMock

from odds_hub.core.source_config import REGION_AU, SourceConfig, SourceEndpoints
from odds_hub.services.fetchers import (
    DemoSourceFetcher,
    HTTPSourceFetcher,
    RawMarket,
    SourceUnavailable,
    parse_raw_markets,
)

INTL = SourceConfig(name="bet365", base_url="https://api.bet365.com", rate_limit=60)
SPORTSBET = SourceConfig(
    name="sportsbet", base_url="https://api.sportsbet.com.au", rate_limit=100, region=REGION_AU
)
TAB = SourceConfig(name="tab", base_url="https://api.tab.com.au", rate_limit=80, region=REGION_AU)


# ---------------------------------------------------------------------------
# Payload validation
# ---------------------------------------------------------------------------

class TestParseRawMarkets:
    def test_valid_payload(self):
        markets = parse_raw_markets("x", [
            {"event": "A vs B", "market": "1X2", "selections": [{"name": "A", "price": 2.5}]},
        ])
        assert markets == [
            RawMarket(event="A vs B", market="1X2", selections=[{"name": "A", "price": 2.5}])
        ]

    def test_odds_alias_for_price(self):
        markets = parse_raw_markets("x", [
            {"event": "A vs B", "market": "1X2", "selections": [{"name": "A", "odds": 1.9}]},
        ])
        assert markets[0].selections[0].price == 1.9

    def test_not_a_list(self):
        with pytest.raises(SourceUnavailable):
            parse_raw_markets("x", {"event": "A vs B"})

    @pytest.mark.parametrize("token", ["Infinity", "-Infinity", "NaN"])
    def test_non_finite_price_rejected(self, token):
        # json.loads accepts these bare tokens, so they can arrive from a source
        payload = json.loads(
            '[{"event": "A vs B", "market": "1X2", "selections": '
            '[{"name": "A", "price": ' + token + '}]}]'
        )
        with pytest.raises(SourceUnavailable):
            parse_raw_markets("bet365", payload)

    @pytest.mark.parametrize("entry", [
        {"market": "1X2", "selections": [{"name": "A", "price": 2.5}]},
        {"event": "A vs B", "market": "1X2", "selections": []},
        {"event": "A vs B", "market": "1X2", "selections": [{"name": "A", "price": 0}]},
        {"event": "A vs B", "market": "1X2", "selections": [{"name": "", "price": 2.0}]},
        {"event": "A vs B", "market": "1X2", "selections": [{"name": "A"}]},
        "not a market",
    ])
    def test_malformed_entries_rejected(self, entry):
        with pytest.raises(SourceUnavailable) as exc_info:
            parse_raw_markets("bet365", [entry])
        assert exc_info.value.source == "bet365"


# ---------------------------------------------------------------------------
# HTTP fetcher
# ---------------------------------------------------------------------------

class TestHTTPSourceFetcher:
    def _session(self, payload=None, error=None):
        session = MagicMock()
        if error is not None:
            session.get.side_effect = error
        else:
            response = MagicMock()
            response.raise_for_status.return_value = None
            response.json.return_value = payload
            session.get.return_value = response
        return session

    def test_fetch_calls_odds_endpoint_with_timeout(self):
        session = self._session([
            {"event": "A vs B", "market": "1X2", "selections": [{"name": "A", "price": 2.5}]},
        ])
        cfg = SourceConfig(
            name="betfair",
            base_url="https://api.betfair.com/",
            rate_limit=120,
            endpoints=SourceEndpoints(odds="/betting/v1/listMarketBook"),
            api_key="secret",
        )

        markets = HTTPSourceFetcher(timeout=3.0, session=session).fetch(cfg, "football")

        assert len(markets) == 1
        args, kwargs = session.get.call_args
        assert args[0] == "https://api.betfair.com/betting/v1/listMarketBook"
        assert kwargs["params"] == {"sport": "football"}
        assert kwargs["timeout"] == 3.0
        assert kwargs["headers"]["Authorization"] == "Bearer secret"

    def test_request_error_becomes_source_unavailable(self):
        session = self._session(error=requests.exceptions.ConnectionError("refused"))
        with pytest.raises(SourceUnavailable):
            HTTPSourceFetcher(session=session).fetch(INTL, "football")

    def test_malformed_payload_becomes_source_unavailable(self):
        session = self._session({"unexpected": True})
        with pytest.raises(SourceUnavailable):
            HTTPSourceFetcher(session=session).fetch(INTL, "football")


# ---------------------------------------------------------------------------
# Demo fetcher
# ---------------------------------------------------------------------------

class TestDemoSourceFetcher:
    def test_international_fixtures(self):
        markets = DemoSourceFetcher().fetch(INTL, "football")
        assert [m.event for m in markets] == ["Manchester United vs Chelsea", "Liverpool vs Arsenal"]
        assert all(len(m.selections) == 3 for m in markets)

    def test_australian_sources_price_differently(self):
        fetcher = DemoSourceFetcher()
        sb = fetcher.fetch(SPORTSBET, "football")
        tab = fetcher.fetch(TAB, "football")

        assert [m.event for m in sb] == [m.event for m in tab]
        assert sb[0].selections[0].price == 2.3
        assert tab[0].selections[0].price == 2.4

    def test_failure_injection(self):
        fetcher = DemoSourceFetcher(failure_rate=1.0, rng=random.Random(7))
        with pytest.raises(SourceUnavailable):
            fetcher.fetch(INTL, "football")

    def test_invalid_failure_rate(self):
        with pytest.raises(ValueError):
            DemoSourceFetcher(failure_rate=1.5)
