# test_phenomena.py
# Scripted scenario tests for each phenomenon
# Tests: splits, index rebalancing, insiders, squeezes, short reports, sweeps, shakeouts, pumps, FOMO, executive changes, pivots

import pytest

from dead_cat_bounce import DeadCatBounce
from executive_change import ExecutiveChange
from fomo_rally import FomoRally
from index_rebalance import IndexRebalance
from insider_buying import BUY_TITLES, InsiderBuying
from insider_selling import SELL_REASONS, SELL_TITLES, InsiderSelling
from institutional_manipulation import InstitutionalManipulation
from liquidity_sweep import LiquiditySweep
from market_utils import SupportLevel
from news_shakeout import NewsShakeout, classify_news
from news_schema import NewsSentiment
from news_sink import NewsSink
from phenomenon_machine import COMPLETE
from security_schema import Security
from short_seller_report import ShortSellerReport
from short_squeeze import ShortSqueeze
from sim_context import SimulationContext, build_context
from stock_split import StockSplit
from strategic_pivot import StrategicPivot


def make_security(symbol: str = "TEST", price: float = 100.0, **kwargs) -> Security:
    return Security(symbol=symbol, price=price, volatility=0.02, **kwargs)


def make_context(security: Security, random_value: float = 0.5, flags=None) -> SimulationContext:
    flags = {} if flags is None else flags
    return build_context({
        "securities": [security],
        "news_sink": NewsSink(),
        "random_source": lambda: random_value,
        "is_event_type_enabled": lambda name: flags.get(name, True),
        "meme_multiplier": lambda s: 1.0,
    })


def run_until_complete(machine, security, limit: int = 100):
    """Process until the slot completes; returns the list of ProcessResults."""
    results = []
    for _ in range(limit):
        result = machine.process(security)
        results.append(result)
        if result.completed:
            return results
    raise AssertionError(f"{machine.name} did not complete in {limit} days")


def test_stock_split_lifecycle():
    """
    Test 1: Stock Split

    Expected:
    - Mega-cap flagged at announcement
    - Effective day divides price and every reference price by the ratio
    - Completes after the reversal window
    """
    print("\n" + "=" * 60)
    print("TEST 1: STOCK SPLIT LIFECYCLE")
    print("=" * 60)

    security = make_security(price=1000.0)
    ctx = make_context(security)
    machine = StockSplit(ctx)
    state = machine.trigger(
        security, ratio=4, days_to_effective=3, reversal_days=3,
        otm_call_multiple=5.0, forced_outcome=True,
    )

    assert state is not None
    assert state.gold_standard["is_mega_cap"]
    assert state.phase == "announcement"
    assert security.sentiment_offset > 0, "Announcement pop should lift sentiment"

    phases = []
    for _ in range(3):
        phases.append(machine.process(security).phase)
    assert phases == ["runUp", "runUp", "effectiveDay"], phases

    assert security.price == 250.0
    assert security.base_price == pytest.approx(250.0)
    assert security.year_start_price == pytest.approx(250.0)
    assert security.fair_value == pytest.approx(250.0)
    assert security.price_history == [pytest.approx(250.0)]
    assert state.gold_standard["has_otm_spike"]
    print(f"Post-split price: ${security.price:.0f} ✓")

    results = run_until_complete(machine, security)
    assert len(results) == 4, f"Expected 3 reversal days + completion, got {len(results)}"
    assert state.gold_standard["has_reversal_setup"]
    assert not security.has_state("stock_split")
    print("✅ Split adjusts prices and completes")


def test_stock_split_disabled_mid_run():
    """
    Test 2: Split Cancelled by Feature Flag

    Expected:
    - Slot deleted on the next process()
    - No further news
    """
    print("\n" + "=" * 60)
    print("TEST 2: SPLIT DISABLED DURING RUN-UP")
    print("=" * 60)

    flags = {}
    security = make_security(price=1000.0)
    ctx = make_context(security, flags=flags)
    machine = StockSplit(ctx)
    machine.trigger(security, ratio=4, days_to_effective=5, reversal_days=3, otm_call_multiple=5.0)
    assert machine.process(security).phase == "runUp"

    flags["stock_split"] = False
    news_count = len(ctx.news_sink)
    result = machine.process(security)

    assert not security.has_state("stock_split")
    assert result.news == ()
    assert len(ctx.news_sink) == news_count
    assert security.price == 1000.0, "No split applied after cancellation"
    print("✅ Disabled split torn down silently")


def test_index_rebalance_gold_standard():
    """
    Test 3: Index Addition, All Criteria

    Expected:
    - Tier 1 marked at announcement
    - Run-up, MOC spike and T+2 setup complete the Gold Standard
    - Reversal headline says so
    """
    print("\n" + "=" * 60)
    print("TEST 3: INDEX REBALANCE GOLD STANDARD")
    print("=" * 60)

    security = make_security()
    ctx = make_context(security)
    machine = IndexRebalance(ctx)
    state = machine.trigger(
        security, event_type="addition", index_tier="tier1", index_name="S&P 500",
        days_to_effective=5, reversal_days=3, moc_volume_multiple=25.0, forced_outcome=True,
    )

    assert state.gold_standard["is_tier1"]
    state.extra["run_up_total"] = 0.06

    for _ in range(7):
        machine.process(security)

    assert state.criteria_met == 4, f"Expected 4 criteria, got {state.gold_standard}"
    assert state.is_gold_standard
    gold_news = [n for n in ctx.news_sink if n.is_gold_standard]
    assert gold_news, "Expected a Gold Standard headline"
    assert "GOLD STANDARD COMPLETE" in gold_news[-1].description
    assert gold_news[-1].news_type == "index_rebalance"
    print("✅ Index rebalance reaches 4/4")


def test_index_rebalance_requires_known_tier():
    """
    Test 4: Unknown Index Tier

    Expected:
    - trigger() returns None, nothing stored, no headline
    - Same for an unknown event type
    """
    print("\n" + "=" * 60)
    print("TEST 4: UNKNOWN INDEX TIER")
    print("=" * 60)

    security = make_security()
    ctx = make_context(security)
    machine = IndexRebalance(ctx)

    assert machine.trigger(security, index_tier="tier9", days_to_effective=5) is None
    assert machine.trigger(security, event_type="merger", index_tier="tier1") is None
    assert not security.has_state("index_rebalancing")
    assert len(ctx.news_sink) == 0
    assert security.sentiment_offset == 0.0
    print("✅ Unknown tier rejected without side effects")


def test_insider_cluster_buy():
    """
    Test 5: Insider Cluster

    Expected:
    - Single buy = +10%, cluster of 3 = +25%
    - Cluster news is the Gold Standard when stakes are large
    - Records age out after 30 days
    """
    print("\n" + "=" * 60)
    print("TEST 5: INSIDER CLUSTER BUY")
    print("=" * 60)

    security = make_security()
    ctx = make_context(security)
    machine = InsiderBuying(ctx)

    machine.record_buy(security, title=BUY_TITLES[0], amount=1_000_000, wealth_fraction=0.2)
    assert machine.get_insider_boost(security) == pytest.approx(0.10)
    assert ctx.news_sink.records[-1].phase == "single"

    machine.record_buy(security, title=BUY_TITLES[0], amount=1_000_000, wealth_fraction=0.2)
    machine.record_buy(security, title=BUY_TITLES[0], amount=1_000_000, wealth_fraction=0.2)

    signal = machine.calculate_signal(security)
    assert signal.is_cluster_buy
    assert signal.probability_boost == pytest.approx(0.25)

    news = ctx.news_sink.records[-1]
    assert news.news_type == "insider_buy"
    assert news.phase == "cluster"
    assert news.is_gold_standard
    assert news.probability == pytest.approx(0.85)
    print(f"Cluster boost: {signal.probability_boost:+.0%} ✓")

    for _ in range(30):
        machine.daily_update(security)
    assert security.insider_buys == []
    assert machine.get_insider_boost(security) == 0.0
    print("✅ Insider cluster detected and decays")


def test_insider_selling_noise_and_cluster():
    """
    Test 6: Insider Selling Asymmetry

    Expected:
    - One sale: noise, zero penalty, sentiment untouched, NOISE hint
    - Three sales in 30 days: WEAK_WARNING, -10% penalty, -0.01 sentiment
    - Records age out after 30 days
    """
    print("\n" + "=" * 60)
    print("TEST 6: INSIDER SELLING NOISE AND CLUSTER")
    print("=" * 60)

    security = make_security()
    ctx = make_context(security)
    machine = InsiderSelling(ctx)
    tax_planning = SELL_REASONS[0]

    machine.record_sell(security, title=SELL_TITLES[0], amount=2_000_000, reason=tax_planning)
    signal = machine.calculate_signal(security)
    assert signal.is_noise
    assert not signal.is_cluster_sell
    assert signal.probability_penalty == 0.0
    assert signal.signal_strength == "NOISE"
    assert security.sentiment_offset == 0.0

    news = ctx.news_sink.records[-1]
    assert news.news_type == "insider_sell"
    assert news.phase == "single"
    assert news.sentiment == NewsSentiment.NEUTRAL
    assert not news.is_gold_standard
    assert "NOISE" in machine.get_tutorial_hint(news)["type"]
    print("Single sale: noise ✓")

    machine.record_sell(security, title=SELL_TITLES[1], amount=2_000_000, reason=tax_planning)
    machine.record_sell(security, title=SELL_TITLES[2], amount=2_000_000, reason=tax_planning)

    signal = machine.calculate_signal(security)
    assert signal.is_cluster_sell
    assert not signal.is_noise
    assert signal.probability_penalty == pytest.approx(0.10)
    assert signal.signal_strength == "WEAK_WARNING"
    assert security.sentiment_offset == pytest.approx(-0.01)
    assert ctx.news_sink.records[-1].phase == "cluster"
    print(f"Cluster penalty: {signal.probability_penalty:.0%} ✓")

    for _ in range(30):
        machine.daily_update(security)
    assert security.insider_sells == []
    assert machine.calculate_signal(security).sell_count == 0
    print("✅ Selling is noise unless clustered, and decays")


def test_short_squeeze_scripted():
    """
    Test 7: Short Squeeze

    Expected:
    - Risk score 72 from scripted metrics (major)
    - buildup 3d -> squeeze 2d -> climax 1d -> reversal 3d
    - Climax marks borrow plateau and RSI divergence
    """
    print("\n" + "=" * 60)
    print("TEST 7: SHORT SQUEEZE")
    print("=" * 60)

    security = make_security(short_interest=0.35)
    ctx = make_context(security)
    machine = ShortSqueeze(ctx)

    metrics = machine.calculate_squeeze_risk(security, {
        "short_interest": 0.35, "days_to_cover": 8, "utilization": 0.96, "cost_to_borrow": 0.6,
    })
    assert metrics.risk_score == 72, f"Expected 72, got {metrics.risk_score}"
    assert metrics.is_candidate

    state = machine.trigger(
        security, metrics=metrics, buildup_days=3, squeeze_days=2, reversal_days=3, sector_weight=1.0,
    )
    assert state.extra["magnitude"] == "major"

    results = run_until_complete(machine, security)
    assert len(results) == 9, f"Expected 9 days, got {len(results)}"
    assert state.gold_standard["volume_climax"]
    assert state.gold_standard["borrow_plateau"]
    assert state.gold_standard["rsi_divergence"]
    assert not state.gold_standard["parabolic_extension"]
    assert state.criteria_met == 3
    assert ctx.news_sink.records[-1].phase == COMPLETE
    print("✅ Squeeze scripted run completes with 3/4")


def test_short_squeeze_needs_short_interest():
    """
    Test 8: Squeeze Precondition

    Expected:
    - Below 20% short interest the trigger is rejected
    """
    print("\n" + "=" * 60)
    print("TEST 8: SQUEEZE PRECONDITION")
    print("=" * 60)

    security = make_security(short_interest=0.05)
    machine = ShortSqueeze(make_context(security))
    assert machine.trigger(security) is None
    assert not security.has_state("short_squeeze")
    print("✅ Low short interest rejected")


def test_short_report_vindicated():
    """
    Test 9: Short Report, Vindicated

    Expected:
    - Attack day: sentiment set to -drop, price impulse queued
    - Single wave: denial then investigation
    - Vindication cuts fair value permanently
    """
    print("\n" + "=" * 60)
    print("TEST 9: SHORT REPORT VINDICATED")
    print("=" * 60)

    security = make_security()
    ctx = make_context(security)
    machine = ShortSellerReport(ctx)
    state = machine.trigger(security, reporter="Muddy Waters", max_waves=1, forced_outcome=True)

    assert security.sentiment_offset == pytest.approx(-0.325)
    assert security.transition_effect == pytest.approx(-0.26)
    assert state.gold_standard["volume_spike"]
    assert ctx.news_sink.records[-1].news_type == "short_report"

    results = run_until_complete(machine, security)
    assert len(results) == 12, f"Expected 12 days, got {len(results)}"
    assert state.gold_standard["investigation_opened"]
    assert not state.gold_standard["multiple_waves"]
    assert security.base_price == pytest.approx(80.0)
    assert security.eps_modifier == pytest.approx(-0.20)
    assert security.fair_value == pytest.approx(64.0)
    assert ctx.news_sink.records[-1].payload["vindicated"] is True
    print("✅ Vindicated report cuts fair value")


def test_short_report_debunked():
    """
    Test 10: Short Report, Debunked

    Expected:
    - Relief rally sentiment, fair value untouched
    """
    print("\n" + "=" * 60)
    print("TEST 10: SHORT REPORT DEBUNKED")
    print("=" * 60)

    security = make_security()
    ctx = make_context(security)
    machine = ShortSellerReport(ctx)
    machine.trigger(security, reporter="Muddy Waters", max_waves=1, forced_outcome=False)

    results = run_until_complete(machine, security)
    assert results[-1].price_delta > 0
    assert security.base_price == 100.0
    assert security.sentiment_offset == pytest.approx(0.20)
    assert ctx.news_sink.records[-1].payload["vindicated"] is False
    print("✅ Debunked report rallies")


def test_liquidity_sweep_success():
    """
    Test 11: Liquidity Sweep, Full Setup

    Expected:
    - Obvious support, 2%+ penetration, 3x volume, reclaim -> 4/4
    - Sweep 1d, recovery 1d, continuation 4d
    """
    print("\n" + "=" * 60)
    print("TEST 11: LIQUIDITY SWEEP SUCCESS")
    print("=" * 60)

    support = SupportLevel(level=100.0, touch_count=3, strength=1.5, distance_from_current=0.01, is_obvious=True)
    security = make_security(price=101.0)
    ctx = make_context(security)
    machine = LiquiditySweep(ctx)
    state = machine.trigger(security, support=support, sweep_days=1, continuation_days=4)

    assert state.gold_standard["obvious_support"]
    results = run_until_complete(machine, security)

    assert len(results) == 6, f"Expected 6 days, got {len(results)}"
    assert state.is_gold_standard, f"Expected 4/4, got {state.gold_standard}"
    assert state.will_succeed is True
    assert state.current_probability == pytest.approx(0.85)
    print("✅ Sweep reclaims and succeeds")


def test_liquidity_sweep_no_reclaim():
    """
    Test 12: Liquidity Sweep Without Reclaim

    Expected:
    - No re-entry, outcome forced to failure without a roll
    - Failure headline on the first continuation day
    """
    print("\n" + "=" * 60)
    print("TEST 12: LIQUIDITY SWEEP NO RECLAIM")
    print("=" * 60)

    support = SupportLevel(level=100.0, touch_count=3, strength=1.5, distance_from_current=-0.1, is_obvious=True)
    security = make_security(price=90.0)
    ctx = make_context(security)
    machine = LiquiditySweep(ctx)
    state = machine.trigger(security, support=support, sweep_days=1, continuation_days=4)

    for _ in range(3):
        machine.process(security)

    assert not state.gold_standard["re_entry"]
    assert state.outcome_decided and state.will_succeed is False
    assert ctx.news_sink.records[-1].phase == "failed"
    print("✅ Missing reclaim is a failed sweep")


def test_news_shakeout_value_trap():
    """
    Test 13: Shakeout That Fails to Stabilize

    Expected:
    - Soft news, climax volume and oversold RSI marked
    - Flat Day 3 close -> failedStabilization veto, forced failure
    - Half the panic drop sticks in sentiment on the first recovery day
    - 10-day cooldown after completion
    """
    print("\n" + "=" * 60)
    print("TEST 13: NEWS SHAKEOUT VALUE TRAP")
    print("=" * 60)

    assert classify_news("analyst_downgrade").is_transient
    assert classify_news("guidance_miss", "company files for bankruptcy").is_terminal

    security = make_security()
    ctx = make_context(security)
    machine = NewsShakeout(ctx)
    state = machine.trigger(
        security, news_type="analyst_downgrade", panic_drop=-0.10, volume_multiple=6.0,
        stabilization_days=2, recovery_days=3,
    )

    assert state.gold_standard["transient_news"]
    assert state.gold_standard["volume_climax"]

    for _ in range(4):
        machine.process(security)
    assert state.gold_standard["rsi_oversold"]
    assert not state.gold_standard["stabilization"]
    assert "failedStabilization" in state.veto_factors
    assert state.will_succeed is False
    assert state.phase == "recovery"

    before = security.sentiment_offset
    result = machine.process(security)
    assert security.sentiment_offset - before == pytest.approx(-0.05)
    assert result.news[-1].phase == "failed"

    results = run_until_complete(machine, security)
    assert len(results) == 2
    assert security.cooldowns["news_shakeout"] == 10
    assert machine.trigger(security) is None, "Cooldown should block a new shakeout"
    print("✅ Value trap detected and cooled down")


def test_manipulation_multi_wave():
    """
    Test 14: Two-Wave Pump and Dump

    Expected:
    - Accumulation lifts institutional_accumulation
    - Wave 1 continues (0.5 < 0.6), wave 2 crashes (0.5 >= 0.4)
    - Crash overshoot scales with the wave multiplier
    """
    print("\n" + "=" * 60)
    print("TEST 14: MANIPULATION MULTI-WAVE")
    print("=" * 60)

    security = make_security()
    ctx = make_context(security)
    machine = InstitutionalManipulation(ctx)
    state = machine.trigger(security, accumulation_days=3, forced_outcome=True)
    assert ctx.news_sink.records[-1].news_type == "manipulation"

    machine.process(security)
    assert security.institutional_accumulation == pytest.approx(0.105)

    results = run_until_complete(machine, security)
    phases = [r.phase for r in results]
    assert "re_accumulation" in phases
    assert "crash" in phases
    assert state.extra["wave"] == 2
    assert security.institutional_accumulation == 0.0
    assert security.sentiment_offset == pytest.approx(-0.26)
    print(f"Waves: {state.extra['wave']} ✓")
    print("✅ Multi-wave scheme crashes harder")


def test_manipulation_sec_intervention():
    """
    Test 15: Scheme Caught by the SEC

    Expected:
    - Teaching headline, two halt days, accumulation reset
    - No accumulation headline when unusual_volume is off
    """
    print("\n" + "=" * 60)
    print("TEST 15: MANIPULATION SEC INTERVENTION")
    print("=" * 60)

    flags = {"unusual_volume": False}
    security = make_security()
    ctx = make_context(security, flags=flags)
    machine = InstitutionalManipulation(ctx)
    machine.trigger(security, accumulation_days=2, forced_outcome=False, failure_mode="sec_intervention")
    assert len(ctx.news_sink) == 0, "Accumulation headline is gated by unusual_volume"

    results = run_until_complete(machine, security)
    assert len(results) == 4
    sec_news = ctx.news_sink.records[-1]
    assert "TEACHING MOMENT" in sec_news.description
    assert sec_news.payload["is_failed"] is True
    assert security.institutional_accumulation == 0.0
    assert security.sentiment_offset < 0
    print("✅ SEC intervention ends the scheme")


def test_fomo_rally_lifecycle():
    """
    Test 16: FOMO Rally

    Expected:
    - Fuel vetoes applied automatically
    - buildup 2d -> euphoria 2d -> blow-off 1d -> crash 2d
    - Sentiment settles 5% above the start, momentum counters reset
    """
    print("\n" + "=" * 60)
    print("TEST 16: FOMO RALLY LIFECYCLE")
    print("=" * 60)

    security = make_security(short_interest=0.25)
    security.institutional_accumulation = 0.6
    security.consecutive_up_days = 4
    ctx = make_context(security)
    machine = FomoRally(ctx)
    state = machine.trigger(
        security, buildup_days=2, euphoria_days=2, crash_days=2, magnitude="minor", forced_outcome=True,
    )

    assert set(state.veto_factors) == {"shortSqueezeFuel", "institutionalBuying"}
    assert state.current_probability == pytest.approx(0.25)

    results = run_until_complete(machine, security)
    assert len(results) == 7, f"Expected 7 days, got {len(results)}"
    assert state.gold_standard["sentiment_divergence"]
    assert state.gold_standard["blow_off_volume"]
    assert security.sentiment_offset == pytest.approx(0.05)
    assert security.consecutive_up_days == 0
    assert security.recent_high == security.price
    assert security.cooldowns["fomo_rally"] == 30
    print("✅ FOMO rally settles after the crash")


def test_fomo_yields_to_crash_family():
    """
    Test 17: FOMO vs Crash Family

    Expected:
    - No FOMO trigger while a crash owns the security
    - An active rally freezes while a crash runs
    """
    print("\n" + "=" * 60)
    print("TEST 17: FOMO YIELDS TO CRASHES")
    print("=" * 60)

    security = make_security()
    ctx = make_context(security)
    fomo = FomoRally(ctx)
    bounce = DeadCatBounce(ctx)

    bounce.trigger(security, crash_days=2, reason="guidance cut")
    assert fomo.trigger(security, buildup_days=2) is None
    security.states.clear()

    state = fomo.trigger(security, buildup_days=2, euphoria_days=2, crash_days=2)
    bounce.trigger(security, crash_days=2, reason="guidance cut")
    result = fomo.process(security)

    assert result.price_delta == 0.0
    assert state.phase == "buildup"
    assert state.days_in_phase == 0
    print("✅ FOMO freezes while a crash runs")


def test_fomo_momentum_setup():
    """
    Test 18: Momentum Setup

    Expected:
    - Needs > 30% off the recent low and 3+ up days
    """
    print("\n" + "=" * 60)
    print("TEST 18: FOMO MOMENTUM SETUP")
    print("=" * 60)

    security = make_security(price=140.0)
    security.recent_low = 100.0
    security.consecutive_up_days = 3
    machine = FomoRally(make_context(security))
    assert machine.momentum_setup(security)

    security.consecutive_up_days = 2
    assert not machine.momentum_setup(security)

    security.consecutive_up_days = 3
    security.recent_low = 120.0
    assert not machine.momentum_setup(security)
    print("✅ Momentum filter works")


def test_executive_change_gold_standard():
    """
    Test 19: Executive Change - Gold Standard

    Expected:
    - Internal successor, clean 8-K and 4x volume marked on announcement
    - Reversal odds 85% + signal bonuses, capped at 95%, rolled at trigger
    - Day 1 low holds for 3 sessions -> all 4 criteria met
    - Announcement -> stabilization -> resolution -> complete in 18 days
    """
    print("\n" + "=" * 60)
    print("TEST 19: EXECUTIVE CHANGE GOLD STANDARD")
    print("=" * 60)

    security = make_security()
    ctx = make_context(security)
    machine = ExecutiveChange(ctx)
    state = machine.trigger(security, change_type="gold_standard")

    assert state is not None
    assert state.extra["successor"].title == "CFO"
    assert state.gold_standard["succession_integrity"]
    assert state.gold_standard["clean_audit"]
    assert state.gold_standard["volume_capitulation"]
    assert not state.gold_standard["three_day_stabilization"]
    assert state.current_probability == pytest.approx(0.95)
    assert state.will_succeed
    assert security.volume_multiple == pytest.approx(4.0)
    assert security.sentiment_offset == pytest.approx(-0.03)

    announcement = ctx.news_sink.today()[0]
    assert announcement.phase == "announcement"
    assert announcement.sentiment_label == NewsSentiment.NEGATIVE
    assert announcement.payload["eight_k"] == "clean"

    results = run_until_complete(machine, security)
    assert len(results) == 18
    assert results[0].price_delta == pytest.approx(-0.075)
    assert results[1].price_delta == pytest.approx(-0.0075)
    assert results[3].price_delta == pytest.approx(0.01)
    assert all(r.price_delta > 0 for r in results[7:])

    phases = [record.phase for record in ctx.news_sink]
    assert phases == ["announcement", "stabilization", "resolution", COMPLETE]

    final = results[-1].news[0]
    assert final.is_gold_standard
    assert "fully recovers" in final.headline
    assert final.sentiment_label == NewsSentiment.POSITIVE
    assert not security.has_state("executive_change")

    hint = machine.get_tutorial_hint(final)
    assert hint["type"] == "GOLD STANDARD (85%+ Reversal)"
    assert hint["gold_standard_summary"].startswith("GOLD STANDARD")
    print("✅ Gold Standard leadership change reverses")


def test_executive_change_abrupt_departure():
    """
    Test 20: Executive Change - Abrupt Departure

    Expected:
    - No successor, warning 8-K, "personal reasons" veto -> 5% floor
    - Blocks a strategic pivot on the same security
    - Decline continues through resolution
    - Daily trigger respects the feature flag; unknown types rejected
    """
    print("\n" + "=" * 60)
    print("TEST 20: EXECUTIVE CHANGE ABRUPT DEPARTURE")
    print("=" * 60)

    security = make_security()
    ctx = make_context(security)
    machine = ExecutiveChange(ctx)

    assert machine.trigger(security, change_type="hostile_takeover") is None
    assert len(ctx.news_sink) == 0

    state = machine.trigger(security, change_type="abrupt_no_successor")
    assert state.extra["successor"] is None
    assert state.extra["eight_k"] == "warning"
    assert state.extra["departure_language"] == "personal reasons"
    assert state.veto_factors == ["warningLanguage"]
    assert state.criteria_met == 0
    assert state.current_probability == pytest.approx(0.05)
    assert not state.will_succeed
    assert machine.calculate_signal(security).strength == 0.0

    assert StrategicPivot(ctx).trigger(security) is None, "One corporate event at a time"

    results = run_until_complete(machine, security)
    assert len(results) == 37
    assert results[-1].price_delta == pytest.approx(-0.035)
    final = results[-1].news[0]
    assert "continues decline" in final.headline
    assert final.sentiment_label == NewsSentiment.NEGATIVE
    assert machine.get_tutorial_hint(final)["action"].startswith("DO NOT BUY")

    fresh = make_security()
    assert ExecutiveChange(make_context(fresh, random_value=0.0, flags={"executive_change": False})) \
        .daily_trigger([fresh]) == []
    started = ExecutiveChange(make_context(fresh, random_value=0.0)).daily_trigger([fresh])
    assert len(started) == 1
    assert started[0].extra["change_type"] == "abrupt_no_successor"
    print("✅ Abrupt exit re-rates the stock")


def test_strategic_pivot_symbolic_reversal():
    """
    Test 21: Strategic Pivot - Symbolic

    Expected:
    - Buzzword pivot: non-dilutive and anchor revenue met, no insiders, no gap fill
    - 65% + 10% = 75% reversal, rolled at trigger
    - Short covering bounce every third void day, mid-void headline
    - Uncertainty Premium refunded at the end
    """
    print("\n" + "=" * 60)
    print("TEST 21: STRATEGIC PIVOT SYMBOLIC")
    print("=" * 60)

    security = make_security()
    ctx = make_context(security)
    machine = StrategicPivot(ctx)
    state = machine.trigger(security, pivot_type="symbolic")

    assert state.extra["buzzword"] == "synergies"
    assert state.gold_standard == {
        "non_dilutive": True, "anchor_revenue": True, "insider_buy": False, "gap_fill": False,
    }
    assert state.veto_factors == []
    assert state.current_probability == pytest.approx(0.75)
    assert state.will_succeed
    assert machine.calculate_signal(security).strength == pytest.approx(0.5)

    announcement = ctx.news_sink.today()[0]
    assert "synergies" in announcement.headline
    hint = machine.get_tutorial_hint(announcement)
    assert hint["type"] == "SYMBOLIC PIVOT (Hype-Based)"
    assert hint["timing"].startswith("WAIT")

    results = run_until_complete(machine, security)
    assert len(results) == 28
    assert results[0].price_delta == pytest.approx(-0.075)
    assert results[4].price_delta == pytest.approx(0.01)
    assert results[5].price_delta == pytest.approx(0.02), "Day 6 short covering bounce"

    phases = [record.phase for record in ctx.news_sink]
    assert phases == ["announcement", "execution_void", "execution_void_mid", "resolution", COMPLETE]

    final = results[-1].news[0]
    assert "pivot concerns prove overblown" in final.headline
    assert final.sentiment_label == NewsSentiment.POSITIVE
    assert not security.has_state("strategic_pivot")
    print("✅ Symbolic pivot premium refunded")


def test_strategic_pivot_reactive_and_disabled():
    """
    Test 22: Strategic Pivot - Reactive / Disabled

    Expected:
    - Declining core + technical language vetoes -> 5% floor, no criteria
    - Unknown pivot type rejected
    - Switching the flag off tears the slot down without news
    """
    print("\n" + "=" * 60)
    print("TEST 22: STRATEGIC PIVOT REACTIVE")
    print("=" * 60)

    security = make_security()
    flags = {}
    ctx = make_context(security, flags=flags)
    machine = StrategicPivot(ctx)

    assert machine.trigger(security, pivot_type="moonshot") is None

    state = machine.trigger(security, pivot_type="reactive")
    assert sorted(state.veto_factors) == ["decliningCore", "technicalLanguage"]
    assert state.criteria_met == 0
    assert state.current_probability == pytest.approx(0.05)
    assert not state.will_succeed

    results = run_until_complete(machine, security)
    assert len(results) == 37
    assert results[-1].price_delta == pytest.approx(-0.0375)
    assert "turnaround failed" in results[-1].news[0].headline

    assert machine.trigger(security, pivot_type="reactive") is not None
    before = len(ctx.news_sink)
    flags["strategic_pivot"] = False
    result = machine.process(security)
    assert result.price_delta == 0.0
    assert not security.has_state("strategic_pivot")
    assert len(ctx.news_sink) == before
    print("✅ Reactive pivot never reverses; flag teardown clean")


def run_all_tests():
    """Run the scenario suite"""
    print("\n" + "=" * 60)
    print("PHENOMENON SCENARIO TEST SUITE")
    print("=" * 60)

    tests = [
        test_stock_split_lifecycle,
        test_stock_split_disabled_mid_run,
        test_index_rebalance_gold_standard,
        test_index_rebalance_requires_known_tier,
        test_insider_cluster_buy,
        test_insider_selling_noise_and_cluster,
        test_short_squeeze_scripted,
        test_short_squeeze_needs_short_interest,
        test_short_report_vindicated,
        test_short_report_debunked,
        test_liquidity_sweep_success,
        test_liquidity_sweep_no_reclaim,
        test_news_shakeout_value_trap,
        test_manipulation_multi_wave,
        test_manipulation_sec_intervention,
        test_fomo_rally_lifecycle,
        test_fomo_yields_to_crash_family,
        test_fomo_momentum_setup,
        test_executive_change_gold_standard,
        test_executive_change_abrupt_departure,
        test_strategic_pivot_symbolic_reversal,
        test_strategic_pivot_reactive_and_disabled,
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
