"""
Run a seeded market simulation over the default catalog.
Prints the day's headlines as they happen and a per-symbol summary at the end.
"""

import logging
from collections import Counter
from pathlib import Path

from daily_orchestrator import DailyOrchestrator
from market_utils import summarize_history
from news_sink import NewsSink
from security_schema import Security
from sim_config import DAYS_IN_YEAR, DEFAULT_SECURITIES, EngineConfig, tiered_flag_predicate
from sim_journal import SimulationJournal
from tutorial_hints import get_tutorial_hint


SEED = 42
DAYS = DAYS_IN_YEAR
MAX_TIER = 4
CSV_DIR = Path("sim_logs")


def print_headline(record):
    """Listener for the news sink."""
    stock = record.related_stock or "MARKET"
    marker = " ⭐" if record.is_gold_standard else ""
    print(f"  [day {record.day:>3}] {stock:<6} {record.headline}{marker}")


def main():
    logging.basicConfig(level=logging.WARNING, format="%(levelname)s %(name)s: %(message)s")

    print("=" * 60)
    print("MARKET PHENOMENA SIMULATION")
    print("=" * 60)

    # ========================================================================
    # 1. BUILD SECURITIES
    # ========================================================================
    print("\n[1/4] Building securities...")
    securities = [Security.from_catalog(row) for row in DEFAULT_SECURITIES]
    print(f"  {len(securities)} securities loaded")

    # ========================================================================
    # 2. WIRE THE CONTEXT
    # ========================================================================
    print("\n[2/4] Wiring simulation context...")
    sink = NewsSink(max_records=20000, listener=print_headline)
    deps = {
        "securities": securities,
        "news_sink": sink,
        "random_source": SEED,
        "is_event_type_enabled": tiered_flag_predicate(max_tier=MAX_TIER),
    }
    print(f"  Seed {SEED}, feature tiers 1-{MAX_TIER} enabled")

    journal = SimulationJournal(
        db_host="timescaledb",
        batch_size=500,
        csv_fallback_dir=CSV_DIR,
    )
    print(f"  Journal created (DB available: {journal.db_available})")

    # ========================================================================
    # 3. RUN
    # ========================================================================
    print(f"\n[3/4] Simulating {DAYS} days...")
    print("-" * 60)

    with journal:
        orchestrator = DailyOrchestrator(deps, config=EngineConfig(), journal=journal)
        orchestrator.reset()
        results = orchestrator.run(DAYS)

    # ========================================================================
    # 4. SUMMARY
    # ========================================================================
    print("\n" + "=" * 60)
    print("[4/4] FINAL SUMMARY")
    print("=" * 60)

    completed = Counter(entry.split(":", 1)[1] for day in results for entry in day.completed)
    news_types = Counter(record.news_type for record in sink)
    gold = [record for record in sink if record.is_gold_standard]

    print(f"\nDays simulated: {len(results)}")
    print(f"Headlines: {len(sink)} ({len(gold)} Gold Standard)")

    print("\nCompleted phenomena:")
    for name, count in completed.most_common():
        print(f"  {name:<28} {count}")

    print("\nHeadlines by type:")
    for news_type, count in news_types.most_common():
        print(f"  {news_type:<28} {count}")

    if gold:
        hint = get_tutorial_hint(gold[-1])
        print("\nLast Gold Standard setup:")
        print(f"  {gold[-1].headline}")
        if hint is not None:
            print(f"  {hint['type']}: {hint['action']}")
            if hint["gold_standard_summary"]:
                print(f"  {hint['gold_standard_summary']}")

    print("\nPrice summary:")
    summary = summarize_history(securities)
    print(summary.round(3).to_string())

    print(f"\n{journal!r}")
    print("\n" + "=" * 60)
    print("SIMULATION COMPLETE ✓")
    print("=" * 60)


if __name__ == "__main__":
    main()
