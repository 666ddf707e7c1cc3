"""
collect_odds.py: run one collection and print the aggregated view as JSON.

Uses the same environment wiring as the API server (.env is honoured):
REDIS_URL, ODDS_FETCHER, OPENAI_API_KEY, ODDS_SOURCES_FILE, ...

Usage
-----
  python scripts/collect_odds.py football
  python scripts/collect_odds.py football --region au
  python scripts/collect_odds.py football --sources bet365,betfair --top 5
  python scripts/collect_odds.py football --stats     # also print source stats
"""

import argparse
import json
import logging
import sys
from pathlib import Path

# Ensure the project root (one level up from scripts/) is on sys.path so that
# `from odds_hub.xxx import ...` resolves when the script is run directly.
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Collect and aggregate odds across configured sources."
    )
    parser.add_argument("sport", help="Sport key, e.g. football")
    parser.add_argument(
        "--sources",
        help="Comma-separated source names (default: every enabled source).",
    )
    parser.add_argument("--region", help='Restrict to a region tag, e.g. "au".')
    parser.add_argument(
        "--top",
        type=int,
        default=10,
        help="Number of best opportunities to print (max 10).",
    )
    parser.add_argument(
        "--stats",
        action="store_true",
        help="Print rate-limit and normalization stats after collecting.",
    )
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        stream=sys.stderr,
    )

    from odds_hub.services.collector import build_odds_collector

    collector = build_odds_collector()
    sources = [s.strip() for s in args.sources.split(",")] if args.sources else None

    view = collector.aggregated_odds(args.sport, sources=sources, region=args.region)
    if not view["total_sources"]:
        print("ERROR: no enabled source matches the given filters", file=sys.stderr)
        sys.exit(1)

    output = {
        "sport": view["sport"],
        "total_sources": view["total_sources"],
        "total_quotes": view["total_quotes"],
        "available_events": view["summary"]["available_events"],
        "avg_variance": view["summary"]["avg_variance"],
        "best_opportunities": view["summary"]["best_opportunities"][: args.top],
    }
    if args.stats:
        output["source_stats"] = collector.source_stats()

    print(json.dumps(output, indent=2))


if __name__ == "__main__":
    main()
