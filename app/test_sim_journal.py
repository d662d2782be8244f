# test_sim_journal.py
# Tests for the run journal in offline mode
# Tests: validation, CSV fallback, batching, dropped rows, native row types

import tempfile
from pathlib import Path

import numpy as np
import pandas as pd
import pytest

from news_schema import NewsRecord, NewsSentiment
from phenomenon_machine import PhenomenonState
from security_schema import Security
from sim_journal import NEWS_COLUMNS, PRICE_COLUMNS, SimulationJournal, news_row, price_row


def make_securities():
    return [
        Security(symbol="AAA", price=100.0, volatility=0.02),
        Security(symbol="BBB", price=50.0, volatility=0.03),
    ]


def make_news(day: int = 1) -> NewsRecord:
    return NewsRecord(
        headline="AAA beats estimates, guidance raised",
        description="test",
        sentiment=0.3,
        related_stock="AAA",
        news_type="earnings",
        probability=0.7,
        day=day,
    )


def test_invalid_batch_size():
    """
    Test 1: Validation

    Expected:
    - batch_size < 1 raises ValueError
    - connect=False never touches the database
    """
    print("\n" + "=" * 60)
    print("TEST 1: VALIDATION")
    print("=" * 60)

    with pytest.raises(ValueError):
        SimulationJournal(batch_size=0, connect=False)

    journal = SimulationJournal(connect=False)
    assert journal.db_available is False
    assert journal.conn is None
    print("✅ Bad batch size rejected, offline mode stays offline")


def test_csv_fallback():
    """
    Test 2: CSV Fallback

    Expected:
    - One price row per security, one news row per headline
    - Header written once across two flushes
    - Sentiment logged as its label
    """
    print("\n" + "=" * 60)
    print("TEST 2: CSV FALLBACK")
    print("=" * 60)

    with tempfile.TemporaryDirectory() as tmp:
        journal = SimulationJournal(connect=False, csv_fallback_dir=Path(tmp))
        securities = make_securities()

        journal.record_day(1, "Y1M1D1", securities, [make_news(1)])
        journal.flush_all()
        journal.record_day(2, "Y1M1D2", securities, [])
        journal.close()

        prices = pd.read_csv(Path(tmp) / "sim_price_log.csv")
        news = pd.read_csv(Path(tmp) / "sim_news_log.csv")

        assert len(prices) == 4
        assert list(prices.columns) == list(PRICE_COLUMNS)
        assert list(prices["symbol"]) == ["AAA", "BBB", "AAA", "BBB"]
        assert len(news) == 1
        assert list(news.columns) == list(NEWS_COLUMNS)
        assert news["sentiment"].iloc[0] == "positive"

        assert journal.total_prices_logged == 4
        assert journal.total_news_logged == 1
        assert journal.days_logged == 2
    print("✅ CSV fallback writes every row once")


def test_batch_flush():
    """
    Test 3: Batching

    Expected:
    - Buffer flushes itself once batch_size price rows are queued
    """
    print("\n" + "=" * 60)
    print("TEST 3: AUTOMATIC BATCH FLUSH")
    print("=" * 60)

    with tempfile.TemporaryDirectory() as tmp:
        journal = SimulationJournal(connect=False, csv_fallback_dir=Path(tmp), batch_size=2)
        journal.record_day(1, "Y1M1D1", make_securities(), [])

        assert journal.price_buffer == []
        assert journal.total_prices_logged == 2
        assert journal.write_count == 1
        assert (Path(tmp) / "sim_price_log.csv").exists()
    print("✅ Flushed at batch size")


def test_rows_dropped_without_fallback():
    """
    Test 4: No Destination

    Expected:
    - No database and no CSV dir: rows dropped, nothing counted
    """
    print("\n" + "=" * 60)
    print("TEST 4: NO DESTINATION")
    print("=" * 60)

    journal = SimulationJournal(connect=False)
    journal.record_day(1, "Y1M1D1", make_securities(), [make_news()])
    journal.close()

    assert journal.price_buffer == []
    assert journal.news_buffer == []
    assert journal.total_prices_logged == 0
    assert journal.total_news_logged == 0
    assert journal.days_logged == 1
    print("✅ Rows dropped, counters untouched")


def test_row_builders():
    """
    Test 5: Row Builders

    Expected:
    - numpy scalars become native floats
    - Active phases listed as name=phase, sorted
    """
    print("\n" + "=" * 60)
    print("TEST 5: ROW BUILDERS")
    print("=" * 60)

    security = Security(symbol="AAA", price=100.0, volatility=0.02)
    security.price = np.float64(101.0)
    security.states["stock_split"] = PhenomenonState(phase="runUp")
    security.states["insider_buying"] = PhenomenonState(phase="cluster")

    row = price_row(np.int64(3), "Y1M1D3", security)
    assert type(row["price"]) is float
    assert type(row["day"]) is int
    assert row["phases"] == "insider_buying=cluster,stock_split=runUp"

    record = NewsRecord(
        headline="Quiet session", description="", sentiment=NewsSentiment.NEUTRAL,
        related_stock=None, news_type="quiet_day",
    )
    row = news_row(record)
    assert set(row) == set(NEWS_COLUMNS)
    assert row["probability"] is None
    assert row["sentiment"] == "neutral"
    print("✅ Rows hold native types")


def test_context_manager_closes():
    """
    Test 6: Context Manager

    Expected:
    - Leaving the with-block flushes the buffers
    """
    print("\n" + "=" * 60)
    print("TEST 6: CONTEXT MANAGER")
    print("=" * 60)

    with tempfile.TemporaryDirectory() as tmp:
        with SimulationJournal(connect=False, csv_fallback_dir=Path(tmp)) as journal:
            journal.record_day(1, "Y1M1D1", make_securities(), [make_news()])
            assert journal.total_prices_logged == 0

        assert journal.total_prices_logged == 2
        assert journal.total_news_logged == 1
        assert "days_logged=1" in repr(journal)
    print("✅ Exit flushes")


def run_all_tests():
    """Run all journal tests"""
    print("\n" + "=" * 60)
    print("SIMULATION JOURNAL TEST SUITE")
    print("=" * 60)

    tests = [
        test_invalid_batch_size,
        test_csv_fallback,
        test_batch_flush,
        test_rows_dropped_without_fallback,
        test_row_builders,
        test_context_manager_closes,
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
