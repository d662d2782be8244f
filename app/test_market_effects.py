# test_market_effects.py
# Tests for the single-step market effects
# Tests: mean reversion, analyst ratings, halts, capitulation, YTD, calendar flows, regimes, whispers

import pytest

from market_effects import MarketEffects
from news_sink import NewsSink
from phenomenon_machine import PhenomenonState
from security_schema import Security
from sim_context import CalendarState, build_context
from tutorial_hints import HintRegistry


def make_security(symbol: str = "TEST", price: float = 100.0, **kwargs) -> Security:
    return Security(symbol=symbol, price=price, volatility=0.02, **kwargs)


def make_effects(securities, random_value: float = 0.5, flags=None, calendar=None) -> MarketEffects:
    flags = {} if flags is None else flags
    deps = {
        "securities": securities,
        "news_sink": NewsSink(),
        "random_source": lambda: random_value,
        "is_event_type_enabled": lambda name: flags.get(name, True),
        "meme_multiplier": lambda s: 1.0,
    }
    if calendar is not None:
        deps["calendar"] = calendar
    return MarketEffects(build_context(deps))


def test_mean_reversion():
    """
    Test 1: Mean Reversion

    Expected:
    - 30% over fair value -> sentiment -= 0.30 * 0.08
    - Within 15% -> untouched
    - Crash-family securities skipped
    """
    print("\n" + "=" * 60)
    print("TEST 1: MEAN REVERSION")
    print("=" * 60)

    stretched = make_security(price=130.0, base_price=100.0)
    close = make_security(price=110.0, base_price=100.0)
    crashing = make_security(price=130.0, base_price=100.0)
    crashing.states["dead_cat_bounce"] = PhenomenonState(phase="crash")

    effects = make_effects([stretched, close, crashing])
    effects.mean_reversion([stretched, close, crashing])

    assert stretched.sentiment_offset == pytest.approx(-0.024)
    assert close.sentiment_offset == 0.0
    assert crashing.sentiment_offset == 0.0
    print("✅ Reversion pulls only stretched, non-crashing names")


def test_analyst_rating_lifecycle():
    """
    Test 2: Analyst Rating Change

    Expected:
    - Announcement today, effect tomorrow
    - Second schedule while pending is rejected
    - Unknown direction raises ValueError
    - Upgrade lifts rating and sentiment
    """
    print("\n" + "=" * 60)
    print("TEST 2: ANALYST RATING LIFECYCLE")
    print("=" * 60)

    security = make_security()
    effects = make_effects([security])
    sink = effects.context.news_sink

    with pytest.raises(ValueError):
        effects.schedule_rating_change(security, "sideways")

    assert effects.schedule_rating_change(security, "upgrade")
    assert not effects.schedule_rating_change(security, "downgrade")
    assert security.pending_rating_change == "upgrade"
    assert sink.records[-1].news_type == "analyst"
    assert sink.records[-1].phase == "upgrade"
    assert security.analyst_rating == 2, "Nothing applied on announcement day"

    effects.analyst_ratings([security])

    assert security.analyst_rating == 3
    assert security.pending_rating_change is None
    assert security.sentiment_offset == pytest.approx(0.055)
    assert sink.records[-1].phase == "upgrade_effective"
    print(f"Rating: {security.analyst_rating} (Strong Buy) ✓")
    print("✅ Rating change announced, then applied")


def test_analyst_disabled_cancels_pending():
    """
    Test 3: Analyst Flag Off

    Expected:
    - Pending change dropped, no rating move
    """
    print("\n" + "=" * 60)
    print("TEST 3: ANALYST DISABLED")
    print("=" * 60)

    flags = {}
    security = make_security()
    effects = make_effects([security], flags=flags)
    effects.schedule_rating_change(security, "downgrade")

    flags["analyst"] = False
    effects.analyst_ratings([security])

    assert security.pending_rating_change is None
    assert security.analyst_rating == 2
    print("✅ Pending change cancelled")


def test_circuit_breaker_halt_and_resume():
    """
    Test 4: Circuit Breaker

    Expected:
    - |daily change| >= 10% halts the security
    - The next day trading resumes with a headline
    """
    print("\n" + "=" * 60)
    print("TEST 4: CIRCUIT BREAKER")
    print("=" * 60)

    security = make_security()
    security.price = 112.0
    effects = make_effects([security])
    sink = effects.context.news_sink

    effects.circuit_breakers([security])
    assert security.trading_halted
    assert sink.records[-1].phase == "halted"

    effects.circuit_breakers([security])
    assert not security.trading_halted
    assert sink.records[-1].phase == "resumed"
    print("✅ Halt then resume")


def test_capitulation_and_reversal():
    """
    Test 5: Capitulation

    Expected:
    - 30% off the high with 5 down days -> sentiment pinned at -0.10
    - Reversal two days later overwrites the day's impulses
    - Disabled flag clears a pending reversal
    """
    print("\n" + "=" * 60)
    print("TEST 5: CAPITULATION")
    print("=" * 60)

    security = make_security()
    security.price = 70.0
    security.consecutive_down_days = 5
    effects = make_effects([security], random_value=0.1)
    sink = effects.context.news_sink

    effects.capitulation([security])
    assert security.sentiment_offset == pytest.approx(-0.10)
    assert security.capitulation_reversal_in == 2
    assert sink.records[-1].phase == "capitulation"

    effects.capitulation([security])
    assert security.capitulation_reversal_in == 1

    security.add_impulse("other", -0.05)
    effects.capitulation([security])
    assert security.capitulation_reversal_in == 0
    assert security.sentiment_offset == pytest.approx(0.15)
    assert len(security.pending_impulses) == 1
    assert security.transition_effect == pytest.approx(0.087)
    assert sink.records[-1].phase == "reversal"
    print("Reversal impulse: +8.7% ✓")

    flags = {"capitulation": False}
    other = make_security()
    other.capitulation_reversal_in = 2
    make_effects([other], flags=flags).capitulation([other])
    assert other.capitulation_reversal_in == 0
    print("✅ Capitulation cycle works")


def test_ytd_bookkeeping():
    """
    Test 6: YTD Return

    Expected:
    - Mid-year: (price - year start) / year start
    - January 1st: year start reset to today's price
    """
    print("\n" + "=" * 60)
    print("TEST 6: YTD BOOKKEEPING")
    print("=" * 60)

    security = make_security()
    security.price = 120.0
    make_effects([security], calendar=CalendarState(day=5, month=3)).update_ytd([security])
    assert security.ytd_return == pytest.approx(0.20)

    make_effects([security], calendar=CalendarState(day=1, month=1, year=2)).update_ytd([security])
    assert security.year_start_price == 120.0
    assert security.ytd_return == 0.0
    print("✅ YTD tracked and reset")


def test_window_dressing():
    """
    Test 7: Quarter-End Window Dressing

    Expected:
    - Winners (>20% YTD) bought, losers (<-20%) sold
    - Market-wide headline on day 22
    - Nothing outside the quarter end
    """
    print("\n" + "=" * 60)
    print("TEST 7: WINDOW DRESSING")
    print("=" * 60)

    winner = make_security(symbol="WIN")
    winner.ytd_return = 0.30
    loser = make_security(symbol="LOSE")
    loser.ytd_return = -0.30
    flat = make_security(symbol="FLAT")

    effects = make_effects([winner, loser, flat], calendar=CalendarState(day=22, month=3))
    effects.window_dressing([winner, loser, flat])

    assert winner.sentiment_offset == pytest.approx(0.01)
    assert loser.sentiment_offset == pytest.approx(-0.01)
    assert flat.sentiment_offset == 0.0
    news = effects.context.news_sink.records
    assert len(news) == 1 and news[0].is_market_wide and news[0].phase == "start"

    off_season = make_effects([winner], calendar=CalendarState(day=22, month=4))
    off_season.window_dressing([winner])
    assert winner.sentiment_offset == pytest.approx(0.01)
    print("✅ Window dressing only at quarter end")


def test_tax_loss_harvesting():
    """
    Test 8: December Tax Selling

    Expected:
    - Deep losers (<-25% YTD) pressured daily in December
    - Start headline on Dec 1, January preview on Dec 28
    - January bounce in the first week
    """
    print("\n" + "=" * 60)
    print("TEST 8: TAX LOSS HARVESTING")
    print("=" * 60)

    loser = make_security()
    loser.ytd_return = -0.30

    effects = make_effects([loser], calendar=CalendarState(day=1, month=12))
    effects.tax_loss_harvesting([loser])
    assert loser.sentiment_offset == pytest.approx(-0.015)
    assert effects.context.news_sink.records[-1].phase == "start"

    effects = make_effects([loser], calendar=CalendarState(day=28, month=12))
    effects.tax_loss_harvesting([loser])
    assert effects.context.news_sink.records[-1].phase == "january_preview"

    loser.sentiment_offset = 0.0
    make_effects([loser], calendar=CalendarState(day=3, month=1)).january_effect([loser])
    assert loser.sentiment_offset == pytest.approx(0.02)
    print("✅ Tax selling and January effect")


def test_sector_rotation():
    """
    Test 9: Sector Rotation

    Expected:
    - Target sector gets inflows, everyone else small outflows
    - Disabling the flag ends the regime silently
    """
    print("\n" + "=" * 60)
    print("TEST 9: SECTOR ROTATION")
    print("=" * 60)

    flags = {}
    tech = make_security(symbol="TECH", sector="tech")
    energy = make_security(symbol="OIL", sector="energy")
    effects = make_effects([tech, energy], flags=flags)

    effects.start_sector_rotation("tech", "risk_on")
    assert effects.market.sector_rotation_target == "tech"
    assert effects.market.sector_rotation_days_left == 10

    effects.sector_rotation([tech, energy])
    assert tech.sentiment_offset == pytest.approx(0.015)
    assert energy.sentiment_offset == pytest.approx(-0.005)
    assert effects.market.sector_rotation_days_left == 9

    news_count = len(effects.context.news_sink)
    flags["sector_rotation"] = False
    effects.sector_rotation([tech, energy])
    assert effects.market.sector_rotation_target is None
    assert len(effects.context.news_sink) == news_count
    print("✅ Rotation applied and cancelled")


def test_gap_applied_next_day():
    """
    Test 10: Overnight Gap

    Expected:
    - Scheduled gap headline today, sentiment jump on the next pass
    """
    print("\n" + "=" * 60)
    print("TEST 10: OVERNIGHT GAP")
    print("=" * 60)

    security = make_security()
    effects = make_effects([security])
    effects.schedule_gap(security, 0.10)

    assert security.pending_gap == 0.10
    assert effects.context.news_sink.records[-1].phase == "up"
    assert security.sentiment_offset == 0.0

    effects.gaps([security])
    assert security.sentiment_offset == pytest.approx(0.10)
    assert security.pending_gap == 0.0
    print("✅ Gap lands the day after the headline")


def test_quiet_day_and_disabled_regimes():
    """
    Test 11: Quiet Day

    Expected:
    - Quiet-day headline only when nothing else happened today
    - Disabled regimes reset their market flags
    """
    print("\n" + "=" * 60)
    print("TEST 11: QUIET DAY AND DISABLED REGIMES")
    print("=" * 60)

    flags = {"liquidity_crisis": False, "correlation_breakdown": False}
    security = make_security()
    effects = make_effects([security], flags=flags)

    record = effects.quiet_day()
    assert record is not None and record.news_type == "quiet_day"
    assert effects.quiet_day() is None, "Second quiet-day headline on the same day"

    effects.market.liquidity_crisis = True
    effects.market.correlation_stable = False
    effects.liquidity_crisis([security])
    effects.correlation_breakdown([security])
    assert not effects.market.liquidity_crisis
    assert effects.market.correlation_stable
    print("✅ Quiet day and regime teardown")


def test_earnings_whisper():
    """
    Test 12: Earnings Whisper

    Expected:
    - Roll under 3% leaks a whisper (0.0 -> 4.5% below the Street)
    - No price effect, hint routed by the "whisper" news type
    - No roll or flag off -> no headline
    """
    print("\n" + "=" * 60)
    print("TEST 12: EARNINGS WHISPER")
    print("=" * 60)

    security = make_security()
    effects = make_effects([security], random_value=0.0)
    record = effects.earnings_whisper([security])

    assert record is not None
    assert record.news_type == "whisper"
    assert record.related_stock == "TEST"
    assert "lower than Street" in record.headline
    assert security.whisper_gap == pytest.approx(-0.045)
    assert security.pending_impulses == []
    assert security.sentiment_offset == 0.0

    hint = HintRegistry().get(record)
    assert hint["type"] == "Earnings Whisper"

    quiet = make_effects([make_security()], random_value=0.5)
    assert quiet.earnings_whisper(quiet.context.securities) is None

    disabled = make_effects([make_security()], random_value=0.0, flags={"earnings_whisper": False})
    assert disabled.earnings_whisper(disabled.context.securities) is None
    assert len(disabled.context.news_sink) == 0
    print("✅ Whisper leaks without moving the price")


def run_all_tests():
    """Run all market effects tests"""
    print("\n" + "=" * 60)
    print("MARKET EFFECTS TEST SUITE")
    print("=" * 60)

    tests = [
        test_mean_reversion,
        test_analyst_rating_lifecycle,
        test_analyst_disabled_cancels_pending,
        test_circuit_breaker_halt_and_resume,
        test_capitulation_and_reversal,
        test_ytd_bookkeeping,
        test_window_dressing,
        test_tax_loss_harvesting,
        test_sector_rotation,
        test_gap_applied_next_day,
        test_quiet_day_and_disabled_regimes,
        test_earnings_whisper,
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
