# test_daily_orchestrator.py
# Integration tests for the daily loop
# Tests: lifecycle guards, seeded determinism, news stamping, hooks, flags, journal wiring

import tempfile
from pathlib import Path

import pandas as pd
import pytest

from daily_orchestrator import DailyOrchestrator
from news_sink import NewsSink
from security_schema import Security
from sim_config import DEFAULT_SECURITIES, feature_flag_tier, tiered_flag_predicate
from sim_context import build_context
from sim_journal import PRICE_COLUMNS, SimulationJournal


def catalog(count: int = len(DEFAULT_SECURITIES)):
    return [dict(row) for row in DEFAULT_SECURITIES[:count]]


def test_lifecycle_guards():
    """
    Test 1: Lifecycle Guards

    Expected:
    - step() before reset() raises RuntimeError
    - Summary reports not_initialized
    - Negative day counts rejected
    """
    print("\n" + "=" * 60)
    print("TEST 1: LIFECYCLE GUARDS")
    print("=" * 60)

    orchestrator = DailyOrchestrator({"securities": catalog(3), "random_source": 1})

    with pytest.raises(RuntimeError):
        orchestrator.step()
    assert orchestrator.get_state_summary() == {"state": "not_initialized"}
    with pytest.raises(ValueError):
        orchestrator.run(-1)
    print("✅ Guards in place")


def test_seeded_runs_are_identical():
    """
    Test 2: Determinism

    Expected:
    - Same seed, same catalog -> identical prices and headlines every day
    """
    print("\n" + "=" * 60)
    print("TEST 2: SEEDED DETERMINISM")
    print("=" * 60)

    def simulate():
        orchestrator = DailyOrchestrator({
            "securities": catalog(),
            "random_source": 7,
            "is_event_type_enabled": tiered_flag_predicate(max_tier=4),
        })
        return orchestrator.run(20)

    first = simulate()
    second = simulate()

    assert [day.prices for day in first] == [day.prices for day in second]
    assert [[n.headline for n in day.news] for day in first] == \
        [[n.headline for n in day.news] for day in second]
    print(f"20 days x {len(DEFAULT_SECURITIES)} securities identical ✓")
    print("✅ Seeded runs reproduce exactly")


def test_news_stamped_and_calendar_advances():
    """
    Test 3: Daily Bookkeeping

    Expected:
    - Every day produces news (at worst a quiet-day headline)
    - Every record carries the day it was emitted
    - Calendar advances one day per step
    """
    print("\n" + "=" * 60)
    print("TEST 3: NEWS STAMPING AND CALENDAR")
    print("=" * 60)

    orchestrator = DailyOrchestrator({"securities": catalog(5), "random_source": 3})
    results = orchestrator.run(3)

    assert [r.day for r in results] == [1, 2, 3]
    assert [r.label for r in results] == ["Y1M1D1", "Y1M1D2", "Y1M1D3"]
    for result in results:
        assert result.news, f"Day {result.day} produced no news"
        assert all(record.day == result.day for record in result.news)
        assert len(result.prices) == 5

    assert orchestrator.context.day == 4
    summary = orchestrator.get_state_summary()
    assert summary["days_simulated"] == 3
    assert summary["calendar"] == "Y1M1D4"
    print("✅ News stamped, calendar advanced")


def test_options_repricer_runs_daily():
    """
    Test 4: Options Repricing Hook

    Expected:
    - Called once per day with the shared context
    """
    print("\n" + "=" * 60)
    print("TEST 4: OPTIONS REPRICER HOOK")
    print("=" * 60)

    calls = []
    orchestrator = DailyOrchestrator({
        "securities": catalog(2),
        "random_source": 5,
        "options_repricer": lambda ctx: calls.append(ctx.day),
    })
    orchestrator.run(5)

    assert calls == [1, 2, 3, 4, 5]
    print("✅ Hook called every day")


def test_everything_disabled_is_quiet():
    """
    Test 5: All Flags Off

    Expected:
    - No phenomenon or effect fires
    - Each day reports exactly one quiet-day headline
    """
    print("\n" + "=" * 60)
    print("TEST 5: ALL FEATURES DISABLED")
    print("=" * 60)

    orchestrator = DailyOrchestrator({
        "securities": catalog(),
        "random_source": 11,
        "is_event_type_enabled": lambda name: False,
    })
    results = orchestrator.run(10)

    for result in results:
        assert [n.news_type for n in result.news] == ["quiet_day"]
        assert result.completed == []
    assert orchestrator.active_phenomena() == {}
    print("✅ Only quiet-day headlines")


def test_scripted_split_through_daily_loop():
    """
    Test 6: Scripted Split

    Expected:
    - A split triggered before the run completes on day 7
    - The price is quartered on the effective day
    """
    print("\n" + "=" * 60)
    print("TEST 6: SCRIPTED SPLIT IN THE DAILY LOOP")
    print("=" * 60)

    security = Security(symbol="MEGA", price=1000.0, volatility=0.02)
    orchestrator = DailyOrchestrator({
        "securities": [security],
        "random_source": lambda: 0.5,
    })
    orchestrator.reset()
    orchestrator.stock_split.trigger(security, ratio=4, days_to_effective=3, reversal_days=3)

    results = orchestrator.run(7)

    assert results[1].prices["MEGA"] > 1000.0, "Run-up lifts the price"
    assert results[2].prices["MEGA"] < 400.0, "Split divides the price"
    assert results[6].completed == ["MEGA:stock_split"]
    assert not security.has_state("stock_split")
    print(f"Post-split close: ${results[2].prices['MEGA']:.0f} ✓")
    print("✅ Split runs end to end")


def test_init_rebinds_every_collaborator():
    """
    Test 7: Rebinding

    Expected:
    - init(deps) points every machine and the effects at the new context
    - Corporate events run after the crash family and before FOMO, enabled at tier 2
    """
    print("\n" + "=" * 60)
    print("TEST 7: REBINDING")
    print("=" * 60)

    orchestrator = DailyOrchestrator({"securities": catalog(2), "random_source": 1})
    new_context = build_context({"securities": catalog(4), "news_sink": NewsSink(), "random_source": 2})
    orchestrator.init(new_context)

    assert orchestrator.context is new_context
    assert all(machine.context is new_context for machine in orchestrator.machines)
    assert orchestrator.effects.context is new_context
    assert len(orchestrator.securities) == 4

    order = [machine.name for machine in orchestrator.leading_machines]
    assert order.index("news_shakeout") < order.index("executive_change") < order.index("strategic_pivot")
    assert order.index("strategic_pivot") < order.index("fomo_rally")
    assert feature_flag_tier("executive_change") == feature_flag_tier("strategic_pivot") == 2
    assert feature_flag_tier("earnings_whisper") == 4
    print("✅ Every collaborator rebound")


def test_journal_receives_every_day():
    """
    Test 8: Journal Wiring

    Expected:
    - One price row per security per day in the CSV fallback
    - Columns match the price log schema
    """
    print("\n" + "=" * 60)
    print("TEST 8: JOURNAL WIRING")
    print("=" * 60)

    with tempfile.TemporaryDirectory() as tmp:
        journal = SimulationJournal(connect=False, csv_fallback_dir=Path(tmp), batch_size=1000)
        with journal:
            orchestrator = DailyOrchestrator(
                {"securities": catalog(3), "random_source": 9},
                journal=journal,
            )
            orchestrator.run(4)

        prices = pd.read_csv(Path(tmp) / "sim_price_log.csv")
        news = pd.read_csv(Path(tmp) / "sim_news_log.csv")

        assert len(prices) == 12, f"Expected 4 days x 3 securities, got {len(prices)}"
        assert list(prices.columns) == list(PRICE_COLUMNS)
        assert sorted(prices["day"].unique()) == [1, 2, 3, 4]
        assert len(news) >= 4
        assert journal.days_logged == 4
    print("✅ Journal logged every day")


def run_all_tests():
    """Run all orchestrator tests"""
    print("\n" + "=" * 60)
    print("DAILY ORCHESTRATOR TEST SUITE")
    print("=" * 60)

    tests = [
        test_lifecycle_guards,
        test_seeded_runs_are_identical,
        test_news_stamped_and_calendar_advances,
        test_options_repricer_runs_daily,
        test_everything_disabled_is_quiet,
        test_scripted_split_through_daily_loop,
        test_init_rebinds_every_collaborator,
        test_journal_receives_every_day,
    ]

    passed = 0
    failed = 0

    for test_func in tests:
        try:
            test_func()
            passed += 1
        except AssertionError as e:
            print(f"❌ FAILED: {e}")
            failed += 1
        except Exception as e:
            print(f"💥 ERROR: {e}")
            failed += 1

    print("\n" + "=" * 60)
    print(f"RESULTS: {passed} passed, {failed} failed")
    print("=" * 60)

    if failed == 0:
        print("✅ ALL TESTS PASSED")
    else:
        print("❌ TESTS FAILED")


if __name__ == "__main__":
    run_all_tests()
