"""
Tests for cross-source aggregation: grouping, spread stats, arbitrage ranking.
Run with: pytest tests/test_aggregation.py -v
"""

from datetime import datetime, timezone

import pytest

from odds_hub.core.aggregation import (
    ARBITRAGE_TOP_N,
    aggregate,
    average_variance,
    compute_stats,
    find_arbitrage,
    group_quotes,
)
from odds_hub.core.quote import Quote

TS = datetime(2026, 10, 16, 12, 0, tzinfo=timezone.utc)


def _q(source, price, event="A vs B", market="1X2", selection="A"):
    return Quote(
        source=source,
        normalized_source=source.title(),
        sport="football",
        event=event,
        market=market,
        selection=selection,
        price=price,
        timestamp=TS,
        confidence=0.6,
    )


class TestScenario:
    """Two sources pricing the same outcome at 2.5 and 2.8"""

    def setup_method(self):
        self.result = aggregate({"s1": [_q("s1", 2.5)], "s2": [_q("s2", 2.8)]})

    def test_group_stats(self):
        stats = self.result.groups["A vs B::1X2::A"]
        assert stats.min == 2.5
        assert stats.max == 2.8
        assert stats.mean == pytest.approx(2.65)
        assert stats.variance == pytest.approx(0.0225)
        assert stats.count == 2
        assert stats.best_source == "s2"

    def test_single_arbitrage_entry(self):
        assert len(self.result.arbitrage) == 1
        entry = self.result.arbitrage[0]
        assert entry.advantage == pytest.approx(0.3)
        assert entry.source == "s2"
        assert entry.price == 2.8
        assert (entry.event, entry.market, entry.selection) == ("A vs B", "1X2", "A")

    def test_average_variance(self):
        assert self.result.avg_variance == pytest.approx(0.0225)


class TestGrouping:
    def test_groups_by_event_market_selection(self):
        quotes = [
            _q("s1", 2.0, selection="A"),
            _q("s1", 3.0, selection="Draw"),
            _q("s2", 2.1, selection="A"),
            _q("s2", 1.9, market="Handicap", selection="A"),
        ]
        groups = group_quotes(quotes)

        assert list(groups) == ["A vs B::1X2::A", "A vs B::1X2::Draw", "A vs B::Handicap::A"]
        assert [q.source for q in groups["A vs B::1X2::A"]] == ["s1", "s2"]
        for key, members in groups.items():
            assert {m.group_key() for m in members} == {key}

    def test_empty_input(self):
        result = aggregate({})
        assert result.groups == {}
        assert result.arbitrage == []
        assert result.avg_variance == 0.0

    def test_sources_with_no_quotes(self):
        result = aggregate({"s1": [], "s2": [_q("s2", 2.0)]})
        assert list(result.groups) == ["A vs B::1X2::A"]


class TestStats:
    def test_single_quote_has_zero_variance(self):
        stats = compute_stats([_q("s1", 4.2)])
        assert stats.variance == 0.0
        assert stats.min == stats.mean == stats.max == 4.2
        assert stats.count == 1

    def test_identical_prices_have_zero_variance(self):
        stats = compute_stats([_q("s1", 0.1 + 0.2), _q("s2", 0.1 + 0.2), _q("s3", 0.1 + 0.2)])
        assert stats.variance == 0.0
        assert stats.min <= stats.mean <= stats.max

    def test_population_variance(self):
        # mean 3.0, squared deviations 1, 0, 1 → population variance 2/3
        stats = compute_stats([_q("s1", 2.0), _q("s2", 3.0), _q("s3", 4.0)])
        assert stats.variance == pytest.approx(2.0 / 3.0)
        assert stats.mean == pytest.approx(3.0)

    def test_distinct_prices_have_positive_variance(self):
        stats = compute_stats([_q("s1", 2.0), _q("s2", 2.0), _q("s3", 2.01)])
        assert stats.variance > 0

    def test_best_source_tie_takes_first_encountered(self):
        stats = compute_stats([_q("s1", 2.0), _q("s2", 3.0), _q("s3", 3.0)])
        assert stats.best_source == "s2"

    def test_prices_recorded_in_order(self):
        stats = compute_stats([_q("s1", 2.0), _q("s2", 3.0)])
        assert stats.prices == (("s1", 2.0), ("s2", 3.0))

    def test_empty_group_rejected(self):
        with pytest.raises(ValueError):
            compute_stats([])

    def test_to_dict(self):
        d = compute_stats([_q("s1", 2.0), _q("s2", 3.0)]).to_dict()
        assert d["best_source"] == "s2"
        assert d["prices"] == [{"source": "s1", "price": 2.0}, {"source": "s2", "price": 3.0}]


class TestArbitrage:
    def _many_groups(self, n):
        quotes_by_source = {"low": [], "high": []}
        for i in range(n):
            sel = f"S{i}"
            quotes_by_source["low"].append(_q("low", 2.0, selection=sel))
            quotes_by_source["high"].append(_q("high", 2.0 + 0.05 * (i + 1), selection=sel))
        return quotes_by_source

    def test_truncated_to_top_n_and_sorted(self):
        result = aggregate(self._many_groups(15))

        assert len(result.arbitrage) == ARBITRAGE_TOP_N
        advantages = [e.advantage for e in result.arbitrage]
        assert advantages == sorted(advantages, reverse=True)
        assert result.arbitrage[0].selection == "S14"
        assert all(e.source == "high" for e in result.arbitrage)

    def test_single_source_groups_excluded(self):
        result = aggregate({"s1": [_q("s1", 2.0, selection="A"), _q("s1", 3.0, selection="B")]})
        assert result.arbitrage == []
        assert result.avg_variance == 0.0

    def test_ties_keep_group_order(self):
        result = aggregate({
            "s1": [_q("s1", 2.0, selection="X"), _q("s1", 2.0, selection="Y")],
            "s2": [_q("s2", 2.5, selection="X"), _q("s2", 2.5, selection="Y")],
        })
        assert [e.selection for e in result.arbitrage] == ["X", "Y"]

    def test_zero_advantage_groups_included(self):
        entries = find_arbitrage([compute_stats([_q("s1", 2.0), _q("s2", 2.0)])])
        assert len(entries) == 1
        assert entries[0].advantage == 0.0
        assert entries[0].source == "s1"

    def test_average_variance_only_multi_source(self):
        stats = [
            compute_stats([_q("s1", 2.0), _q("s2", 4.0)]),   # variance 1.0
            compute_stats([_q("s1", 3.0), _q("s2", 3.0)]),   # variance 0.0
            compute_stats([_q("s1", 9.0)]),                  # excluded
        ]
        assert average_variance(stats) == pytest.approx(0.5)

    def test_result_to_dict(self):
        d = aggregate({"s1": [_q("s1", 2.5)], "s2": [_q("s2", 2.8)]}).to_dict()
        assert set(d) == {"groups", "arbitrage", "avg_variance"}
        assert d["arbitrage"][0]["source"] == "s2"


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
