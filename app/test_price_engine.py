# test_price_engine.py
# Tests for the daily price convergence step
# Tests: impulses, bounds, sentiment band, decay, quiet noise, streaks, config validation

import pytest

from phenomenon_machine import PhenomenonState
from price_engine import PriceEngine
from security_schema import Security
from sim_config import EngineConfig


def constant(value: float):
    return lambda: value


def make_security(price: float = 100.0, volatility: float = 0.02, **kwargs) -> Security:
    return Security(symbol="TEST", price=price, volatility=volatility, **kwargs)


def test_flat_walk_and_impulse():
    """
    Test 1: Zero Noise, One Impulse

    Expected:
    - random() == 0.5 means no noise; price stays on target
    - A +10% impulse lands exactly and empties the queue
    """
    print("\n" + "=" * 60)
    print("TEST 1: FLAT WALK AND IMPULSE")
    print("=" * 60)

    engine = PriceEngine(EngineConfig(), constant(0.5))
    security = make_security()

    assert engine.step(security) == 100.0
    print("Flat step: $100 ✓")

    security.add_impulse("test", 0.10)
    new_price = engine.step(security)

    assert new_price == 110.0, f"Expected 110, got {new_price}"
    assert security.pending_impulses == []
    assert security.previous_price == 100.0
    assert security.daily_change == pytest.approx(0.10)
    print("✅ Impulse applied once and drained")


def test_price_bounds():
    """
    Test 2: Floor and Ceiling

    Expected:
    - Floor max($1, 5% of base) = $5
    - Ceiling 20x base = $2000
    """
    print("\n" + "=" * 60)
    print("TEST 2: PRICE BOUNDS")
    print("=" * 60)

    engine = PriceEngine(EngineConfig(), constant(0.5))

    security = make_security()
    assert engine.price_bounds(security) == (5.0, 2000.0)

    security.add_impulse("crash", -0.99)
    assert engine.step(security) == 5.0
    print("Floor: $5 ✓")

    security = make_security()
    security.add_impulse("moon", 30.0)
    assert engine.step(security) == 2000.0
    print("Ceiling: $2000 ✓")

    cheap = make_security(price=10.0)
    assert engine.price_bounds(cheap)[0] == 1.0, "Floor never below $1"

    # Post-split base prices are fractional: 100.03 * 20 = 2000.6
    split = make_security()
    split.base_price = 100.03
    split.add_impulse("moon", 30.0)
    new_price = engine.step(split)
    assert new_price == 2000.0, f"Rounded price {new_price} above ceiling"
    assert new_price <= engine.price_bounds(split)[1]
    print("Fractional ceiling: $2000 ✓")
    print("✅ Prices stay inside the band")


def test_sentiment_clamped_then_decayed():
    """
    Test 3: Sentiment Band

    Expected:
    - 5.0 clamped to 3.0, then decayed 2% to 2.94
    - Tiny sentiment below the threshold is left alone
    """
    print("\n" + "=" * 60)
    print("TEST 3: SENTIMENT BAND")
    print("=" * 60)

    engine = PriceEngine(EngineConfig(), constant(0.5))

    security = make_security()
    security.sentiment_offset = 5.0
    engine.step(security)
    assert security.sentiment_offset == pytest.approx(2.94)

    security = make_security()
    security.sentiment_offset = -2.0
    engine.step(security)
    assert security.sentiment_offset == pytest.approx(-0.8 * 0.98)

    security = make_security()
    security.sentiment_offset = 0.005
    engine.step(security)
    assert security.sentiment_offset == 0.005
    print("✅ Sentiment clamped and decayed")


def test_morning_news_decay():
    """
    Test 4: News Decay

    Expected:
    - sentiment * 0.95, snapped to 0 below 0.001
    - volatility_boost * 0.9, snapped to 0 below 0.01
    """
    print("\n" + "=" * 60)
    print("TEST 4: MORNING NEWS DECAY")
    print("=" * 60)

    engine = PriceEngine(EngineConfig(), constant(0.5))
    loud = make_security()
    loud.sentiment_offset = 0.5
    loud.volatility_boost = 0.5
    faint = make_security()
    faint.sentiment_offset = 0.0005
    faint.volatility_boost = 0.011

    engine.apply_news_decay([loud, faint])

    assert loud.sentiment_offset == pytest.approx(0.475)
    assert loud.volatility_boost == pytest.approx(0.45)
    assert faint.sentiment_offset == 0.0
    assert faint.volatility_boost == 0.0
    print("✅ Decay and snap-to-zero work")


def test_quiet_noise_during_crash_patterns():
    """
    Test 5: Quiet Noise

    Expected:
    - random() == 1.0 with 10% volatility = +10% normally
    - Dead-cat bounce active: noise damped to 30% (+3%)
    """
    print("\n" + "=" * 60)
    print("TEST 5: QUIET NOISE")
    print("=" * 60)

    engine = PriceEngine(EngineConfig(), constant(1.0))

    normal = make_security(volatility=0.1)
    assert not engine.is_quiet(normal)
    assert engine.step(normal) == 110.0

    quiet = make_security(volatility=0.1)
    quiet.states["dead_cat_bounce"] = PhenomenonState(phase="crash")
    assert engine.is_quiet(quiet)
    assert engine.is_trend_damped(quiet)
    assert engine.step(quiet) == 103.0
    print("✅ Crash patterns damp the random walk")


def test_accumulation_lifts_target():
    """
    Test 6: Institutional Pressure

    Expected:
    - accumulation 1.0 -> target = fair * 1.15
    - correction pulls price up toward it
    """
    print("\n" + "=" * 60)
    print("TEST 6: ACCUMULATION PRESSURE")
    print("=" * 60)

    engine = PriceEngine(EngineConfig(), constant(0.5))
    security = make_security()
    security.institutional_accumulation = 1.0

    assert engine.target_price(security) == pytest.approx(115.0)
    assert engine.step(security) == 102.0
    print("✅ Accumulation pulls price up")


def test_streaks_and_recent_range():
    """
    Test 7: Streaks, Recent Range, History Cap

    Expected:
    - Two up days then a down day resets the up streak
    - recent_low / recent_high track the history
    - History trimmed to max_history_points
    """
    print("\n" + "=" * 60)
    print("TEST 7: STREAKS AND HISTORY")
    print("=" * 60)

    engine = PriceEngine(EngineConfig(max_history_points=5), constant(0.5))
    security = make_security()

    for move in (0.05, 0.05, -0.05):
        security.add_impulse("test", move)
        engine.step(security)

    assert security.consecutive_up_days == 0
    assert security.consecutive_down_days == 1
    assert security.recent_high == max(security.price_history)
    assert security.recent_low == 100.0

    for _ in range(10):
        engine.step(security)
    assert len(security.price_history) == 5
    print(f"History: {security.price_history} ✓")
    print("✅ Streaks and history bookkeeping")


def test_step_all_keeps_order():
    """
    Test 8: step_all

    Expected:
    - One price per security, in list order
    """
    print("\n" + "=" * 60)
    print("TEST 8: STEP ALL")
    print("=" * 60)

    engine = PriceEngine(EngineConfig(), constant(0.5))
    securities = [make_security(price=p) for p in (50.0, 100.0, 200.0)]
    assert engine.step_all(securities) == [50.0, 100.0, 200.0]
    print("✅ step_all preserves order")


def test_engine_config_validation():
    """
    Test 9: Config Validation

    Expected:
    - ValueError on inverted sentiment band, bad decay, bad bounds, short history
    """
    print("\n" + "=" * 60)
    print("TEST 9: CONFIG VALIDATION")
    print("=" * 60)

    with pytest.raises(ValueError):
        EngineConfig(sentiment_floor=1.0, sentiment_ceiling=0.5)
    with pytest.raises(ValueError):
        EngineConfig(sentiment_decay=0.0)
    with pytest.raises(ValueError):
        EngineConfig(news_sentiment_decay=1.5)
    with pytest.raises(ValueError):
        EngineConfig(price_floor_ratio=0.5, price_ceiling_ratio=0.4)
    with pytest.raises(ValueError):
        EngineConfig(max_history_points=1)

    config = EngineConfig()
    assert config.convergence_speed == 0.15
    assert config.quiet_noise_multiplier == 0.3
    print("✅ Invalid configs rejected")


def run_all_tests():
    """Run all price engine tests"""
    print("\n" + "=" * 60)
    print("PRICE ENGINE TEST SUITE")
    print("=" * 60)

    tests = [
        test_flat_walk_and_impulse,
        test_price_bounds,
        test_sentiment_clamped_then_decayed,
        test_morning_news_decay,
        test_quiet_noise_during_crash_patterns,
        test_accumulation_lifts_target,
        test_streaks_and_recent_range,
        test_step_all_keeps_order,
        test_engine_config_validation,
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
