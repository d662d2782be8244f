# test_news_sink.py
# Tests for the headline collector and the security record at its edges
# Tests: day stamping, today(), trimming, listener, catalog ingress, snapshot, impulses

import pytest

from news_schema import NewsRecord, NewsSentiment
from news_sink import NewsSink
from phenomenon_machine import PhenomenonState
from security_schema import Security


def record(headline: str, news_type: str = "analyst", related_stock="AAA") -> NewsRecord:
    return NewsRecord(
        headline=headline,
        description="",
        sentiment=NewsSentiment.NEUTRAL,
        related_stock=related_stock,
        news_type=news_type,
    )


def test_day_stamping_and_today():
    """
    Test 1: Day Stamping

    Expected:
    - push() returns a stamped copy, the original stays unstamped
    - today() only holds records since the last start_day()
    - by_type / for_stock filter the full history
    """
    print("\n" + "=" * 60)
    print("TEST 1: DAY STAMPING")
    print("=" * 60)

    sink = NewsSink()
    original = record("Day one")

    sink.start_day(1)
    stamped = sink.push(original)
    assert stamped.day == 1
    assert original.day is None

    sink.start_day(2)
    assert sink.today() == []
    sink.push(record("Day two", news_type="gap", related_stock="BBB"))

    assert [r.headline for r in sink.today()] == ["Day two"]
    assert [r.day for r in sink] == [1, 2]
    assert len(sink.by_type("gap")) == 1
    assert len(sink.for_stock("AAA")) == 1
    print("✅ Records stamped, today() scoped to the day")


def test_trimming_and_listener():
    """
    Test 2: Bounded History

    Expected:
    - Oldest records dropped past max_records
    - today() stays correct after trimming
    - Listener sees every stamped record
    - max_records < 1 rejected
    """
    print("\n" + "=" * 60)
    print("TEST 2: BOUNDED HISTORY")
    print("=" * 60)

    heard = []
    sink = NewsSink(max_records=3, listener=heard.append)

    sink.start_day(1)
    for i in range(3):
        sink.push(record(f"Old {i}"))
    sink.start_day(2)
    sink.push(record("New 0"))
    sink.push(record("New 1"))

    assert len(sink) == 3
    assert [r.headline for r in sink] == ["Old 2", "New 0", "New 1"]
    assert [r.headline for r in sink.today()] == ["New 0", "New 1"]
    assert len(heard) == 5
    assert heard[-1].day == 2

    with pytest.raises(ValueError):
        NewsSink(max_records=0)
    print("✅ History bounded, listener called")


def test_record_validation():
    """
    Test 3: Record Validation

    Expected:
    - Empty headline and out-of-range probability rejected
    - Numeric sentiment collapses to a label by sign
    """
    print("\n" + "=" * 60)
    print("TEST 3: RECORD VALIDATION")
    print("=" * 60)

    with pytest.raises(ValueError):
        record("")
    with pytest.raises(ValueError):
        NewsRecord(headline="x", description="", sentiment=0.1, related_stock=None,
                   news_type="macro", probability=1.5)

    negative = NewsRecord(headline="x", description="", sentiment=-0.2,
                          related_stock=None, news_type="macro")
    assert negative.sentiment_label == NewsSentiment.NEGATIVE
    assert negative.is_market_wide
    assert negative.to_row()["sentiment"] == "negative"
    print("✅ Invalid records rejected")


def test_catalog_ingress_and_snapshot():
    """
    Test 4: Security Ingress / Egress

    Expected:
    - Unknown catalog keys ignored, derived fields defaulted from price
    - snapshot() exposes price, history and active phases
    - Non-positive price rejected
    """
    print("\n" + "=" * 60)
    print("TEST 4: SECURITY INGRESS AND SNAPSHOT")
    print("=" * 60)

    security = Security.from_catalog({
        "symbol": "AAA", "price": 80, "volatility": 0.02,
        "sector": "tech", "logo": "aaa.png",
    })
    assert security.base_price == 80.0
    assert security.fair_value == 80.0
    assert security.price_history == [80.0]
    assert security.recent_low == security.recent_high == 80.0

    security.states["short_squeeze"] = PhenomenonState(phase="building")
    view = security.snapshot()
    assert view["phases"] == {"short_squeeze": "building"}
    assert view["price_history"] == [80.0]
    assert "pending_impulses" not in view

    with pytest.raises(ValueError):
        Security(symbol="BAD", price=0.0, volatility=0.02)
    print("✅ Catalog rows in, snapshot out")


def test_impulse_queue():
    """
    Test 5: Impulse Queue

    Expected:
    - add_impulse accumulates, zero is ignored
    - set_transition_effect replaces the queue
    - drain_impulses sums and clears
    """
    print("\n" + "=" * 60)
    print("TEST 5: IMPULSE QUEUE")
    print("=" * 60)

    security = Security(symbol="AAA", price=100.0, volatility=0.02)
    security.add_impulse("stock_split", 0.05)
    security.add_impulse("gap", 0.0)
    security.add_impulse("analyst", 0.02)

    assert len(security.pending_impulses) == 2
    assert security.transition_effect == pytest.approx(0.07)

    security.set_transition_effect("circuit_breaker", -0.01)
    assert security.transition_effect == pytest.approx(-0.01)

    assert security.drain_impulses() == pytest.approx(-0.01)
    assert security.pending_impulses == []
    assert security.drain_impulses() == 0
    print("✅ Queue accumulates, overwrites and drains")


def run_all_tests():
    """Run all news sink and security tests"""
    print("\n" + "=" * 60)
    print("NEWS SINK TEST SUITE")
    print("=" * 60)

    tests = [
        test_day_stamping_and_today,
        test_trimming_and_listener,
        test_record_validation,
        test_catalog_ingress_and_snapshot,
        test_impulse_queue,
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
