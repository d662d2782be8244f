# test_market_utils.py
# Tests for the shared numeric helpers
# Tests: meme factor, RSI, price deviation, support detection, history frames

import numpy as np
import pytest

from market_utils import (
    calculate_rsi,
    clamp,
    detect_support_level,
    gain_from,
    history_frame,
    meme_multiplier,
    price_deviation,
    summarize_history,
)
from security_schema import Security


def test_meme_multiplier_and_clamp():
    """
    Test 1: Meme Factor

    Expected:
    - stability 1.0 -> 0.3, 0.0 -> 1.0, missing -> 0.65
    """
    print("\n" + "=" * 60)
    print("TEST 1: MEME FACTOR")
    print("=" * 60)

    blue_chip = Security(symbol="BLUE", price=100.0, volatility=0.02, stability=1.0)
    meme = Security(symbol="MEME", price=10.0, volatility=0.08, stability=0.0)
    unknown = Security(symbol="UNK", price=10.0, volatility=0.02, stability=None)

    assert meme_multiplier(blue_chip) == pytest.approx(0.3)
    assert meme_multiplier(meme) == pytest.approx(1.0)
    assert meme_multiplier(unknown) == pytest.approx(0.65)

    assert clamp(5.0, -0.8, 3.0) == 3.0
    assert clamp(-1.0, -0.8, 3.0) == -0.8
    assert gain_from(130.0, 100.0) == pytest.approx(0.3)
    assert gain_from(130.0, 0.0) == 0.0
    print("✅ Meme factor and clamp")


def test_rsi():
    """
    Test 2: RSI

    Expected:
    - Not enough history -> 50
    - Only gains -> 100
    - Equal gains and losses -> 50
    """
    print("\n" + "=" * 60)
    print("TEST 2: RSI")
    print("=" * 60)

    assert calculate_rsi([100.0, 101.0]) == 50.0
    assert calculate_rsi([100.0 + i for i in range(15)]) == 100.0

    choppy = [100.0 if i % 2 == 0 else 101.0 for i in range(15)]
    assert calculate_rsi(choppy) == pytest.approx(50.0)

    falling = [100.0 - i for i in range(15)]
    assert calculate_rsi(falling) == pytest.approx(0.0)
    print("✅ RSI edge cases")


def test_price_deviation():
    """
    Test 3: Price Deviation

    Expected:
    - Short history -> None
    - Flat history -> 0
    - Sigma distance from the moving average otherwise
    """
    print("\n" + "=" * 60)
    print("TEST 3: PRICE DEVIATION")
    print("=" * 60)

    assert price_deviation([100.0] * 5, 110.0) is None
    assert price_deviation([100.0] * 20, 110.0) == 0.0

    history = [99.0, 101.0] * 10
    assert price_deviation(history, 103.0) == pytest.approx(3.0)
    print("✅ Deviation in standard deviations")


def test_support_detection():
    """
    Test 4: Support Detection

    Expected:
    - Three swing lows near $95 form one obvious support
    - Price below the cluster -> no support
    """
    print("\n" + "=" * 60)
    print("TEST 4: SUPPORT DETECTION")
    print("=" * 60)

    prices = [
        100, 98, 95, 98, 100, 102, 99, 95.5, 99, 101,
        103, 100, 95.2, 100, 102, 104, 105, 106, 107, 108,
    ]

    support = detect_support_level(prices, 108.0)
    assert support is not None
    assert support.touch_count == 3
    assert support.is_obvious
    assert support.strength == 1.5
    assert support.level == pytest.approx((95 + 95.5 + 95.2) / 3)
    assert support.distance_from_current == pytest.approx((108.0 - support.level) / support.level)
    print(f"Support at ${support.level:.2f}, {support.touch_count} touches ✓")

    assert detect_support_level(prices, 90.0) is None
    assert detect_support_level(prices[:10], 108.0) is None
    print("✅ Support found only when valid")


def test_history_frames():
    """
    Test 5: History Frames

    Expected:
    - Shorter histories padded with NaN at the top
    - Summary return = last / first - 1
    """
    print("\n" + "=" * 60)
    print("TEST 5: HISTORY FRAMES")
    print("=" * 60)

    a = Security(symbol="AAA", price=1.0, volatility=0.02)
    b = Security(symbol="BBB", price=5.0, volatility=0.02)
    a.price_history = [1.0, 2.0, 3.0]
    b.price_history = [5.0, 6.0]

    frame = history_frame([a, b])
    assert frame.shape == (3, 2)
    assert np.isnan(frame["BBB"].iloc[0])
    assert list(frame["AAA"]) == [1.0, 2.0, 3.0]

    summary = summarize_history([a, b])
    assert summary.loc["AAA", "return"] == pytest.approx(2.0)
    assert summary.loc["BBB", "return"] == pytest.approx(0.2)
    assert summary.loc["BBB", "min"] == 5.0

    assert history_frame([]).empty
    print("✅ Frames right-aligned, summary correct")


def run_all_tests():
    """Run all market utility tests"""
    print("\n" + "=" * 60)
    print("MARKET UTILS TEST SUITE")
    print("=" * 60)

    tests = [
        test_meme_multiplier_and_clamp,
        test_rsi,
        test_price_deviation,
        test_support_detection,
        test_history_frames,
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
