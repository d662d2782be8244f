# liquidity_sweep.py
# Wyckoff spring: break below obvious support, absorb the stops, reclaim, run
# Stop buying breakouts. Start buying failed breakdowns.

import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple

from market_utils import SupportLevel, detect_support_level
from news_schema import NewsRecord
from phenomenon_machine import COMPLETE, GoldStandardTable, PhenomenonMachine, PhenomenonState
from security_schema import Security

logger = logging.getLogger(__name__)


# === Detection ===
SUPPORT_LOOKBACK = 20
SUPPORT_TOLERANCE = 0.02
MIN_TOUCHES = 2
MIN_PENETRATION = 0.02
MAX_PENETRATION = 0.10
TRIGGER_DISTANCE = 0.05                # Price within 5% above support

# === Volume ===
SWEEP_VOLUME = (2.0, 5.0)
ABSORPTION_VOLUME = 3.0

# === Impacts ===
SWEEP_IMPACT = (-0.08, -0.02)
RECOVERY_IMPACT = (0.02, 0.05)
CONTINUATION_IMPACT = (0.01, 0.03)
FAILURE_IMPACT = (-0.02, 0.01)
TARGET_GAIN = (0.08, 0.15)

# === Timeline ===
SWEEP_DAYS = (1, 2)
RECOVERY_DAYS = 1
CONTINUATION_DAYS = (5, 14)


def trigger_chance(touch_count: int) -> float:
    if touch_count >= 4:
        return 0.15
    if touch_count >= 3:
        return 0.10
    return 0.05


def target_gain(magnitude: str) -> float:
    low, high = TARGET_GAIN
    if magnitude == "strong":
        return high
    if magnitude == "moderate":
        return (low + high) / 2
    return low


class LiquiditySweep(PhenomenonMachine):
    """
    Stop-run reversal below an obvious support level.

    Design principles:
    - Only obvious supports (3+ touches) attract enough stops to sweep
    - Break must be 2-10% deep: shallower is noise, deeper is a real breakdown
    - Outcome rolled once, when price reclaims support (re-entry)
    - No reclaim = failed sweep, no roll

    Gold Standard criteria (85%):
    1. obvious_support: 3+ touches at the level
    2. false_breakout: penetration >= 2% below support
    3. absorption_volume: sweep-day volume >= 3x average
    4. re_entry: price back above support
    """

    name = "liquidity_sweep"
    news_type = "liquidity_sweep"
    phases = ("sweep", "recovery", "continuation")
    criteria = ("obvious_support", "false_breakout", "absorption_volume", "re_entry")
    probability_table = GoldStandardTable({0: 0.45, 1: 0.45, 2: 0.60, 3: 0.75, 4: 0.85})
    veto_table = {"bearMarket": 0.20, "sectorWeakness": 0.15, "fundamentalIssue": 0.25, "multipleFailures": 0.30}
    probability_floor = 0.20
    probability_ceiling = 0.90

    # === Detection ===

    def detect_support(self, security: Security) -> Optional[SupportLevel]:
        return detect_support_level(
            security.price_history,
            security.price,
            lookback=SUPPORT_LOOKBACK,
            tolerance_pct=SUPPORT_TOLERANCE,
            min_touches=MIN_TOUCHES,
        )

    @staticmethod
    def penetration(support: float, price: float) -> Optional[float]:
        """Depth below support if it qualifies as a sweep, else None."""
        depth = (support - price) / support
        if depth < MIN_PENETRATION or depth > MAX_PENETRATION:
            return None
        return depth

    # === Trigger ===

    def check_preconditions(self, security: Security, options: Dict[str, Any]) -> bool:
        support = options.get("support") or self.detect_support(security)
        if support is None:
            logger.warning(f"{security.symbol}: no support level found for liquidity sweep")
            return False
        options["support"] = support
        return True

    def create_state(self, security: Security, options: Dict[str, Any]) -> PhenomenonState:
        support: SupportLevel = options["support"]
        magnitude = options.get("magnitude") or (
            "strong" if support.touch_count >= 4 else "moderate" if support.touch_count >= 3 else "weak"
        )
        state = PhenomenonState(
            phase="sweep",
            phase_days=options.get("sweep_days") or self.randint(*SWEEP_DAYS),
            start_price=security.price,
            gold_standard={name: False for name in self.criteria},
            extra={
                "support_level": support.level,
                "support_strength": support.strength,
                "touch_count": support.touch_count,
                "magnitude": magnitude,
                "target_gain": target_gain(magnitude),
                "continuation_days": options.get("continuation_days") or self.randint(*CONTINUATION_DAYS),
                "sweep_low": None,
                "penetration": 0.0,
                "entry_price": None,
            },
        )
        if support.is_obvious:
            state.gold_standard["obvious_support"] = True
        return state

    def daily_trigger(self, securities: Sequence[Security]) -> List[PhenomenonState]:
        if not self.is_enabled():
            return []

        started = []
        for security in self.eligible(securities):
            support = self.detect_support(security)
            if support is None or not support.is_obvious:
                continue
            if (security.price - support.level) / support.level > TRIGGER_DISTANCE:
                continue
            if self.random() >= trigger_chance(support.touch_count):
                continue

            state = self.trigger(security, support=support)
            if state is not None:
                started.append(state)
        return started

    def on_trigger(self, security: Security, state: PhenomenonState) -> List[NewsRecord]:
        level = state.extra["support_level"]
        return [self.make_news(
            security, state,
            headline=f"{security.symbol} tests critical support at ${level:.2f}",
            description=f"Stock approaching {state.extra['touch_count']}-touch support level. "
                        f"Watch for a potential stop-run reversal.",
            sentiment=-0.3,
            phase="setup",
            telltale="SETUP: Obvious support level being tested - watch for a sweep.",
            support_level=level,
        )]

    # === Process ===

    def advance(self, security: Security, state: PhenomenonState) -> Tuple[float, List[NewsRecord]]:
        if state.phase == "sweep":
            return self._sweep(security, state)
        if state.phase == "recovery":
            return self._recovery(security, state)
        return self._continuation(security, state)

    def _sweep(self, security: Security, state: PhenomenonState) -> Tuple[float, List[NewsRecord]]:
        news: List[NewsRecord] = []
        support = state.extra["support_level"]
        drop = self.uniform(*SWEEP_IMPACT)

        projected = security.price * (1 + drop)
        if state.extra["sweep_low"] is None or projected < state.extra["sweep_low"]:
            state.extra["sweep_low"] = projected
            state.extra["penetration"] = (support - projected) / support

        volume = self.uniform(*SWEEP_VOLUME)
        security.volume_multiple = volume
        if volume >= ABSORPTION_VOLUME:
            self.mark_criterion(state, "absorption_volume")

        if state.days_in_phase == 1:
            news.append(self.make_news(
                security, state,
                headline=f"{security.symbol} CRASHES through key support on massive volume",
                description=f"Stock plunges {abs(drop) * 100:.1f}% as stop-losses trigger. "
                            f"Key ${support:.2f} support breached on {volume:.1f}x normal volume.",
                sentiment=-0.8,
                telltale="SWEEP: Stop-loss hunting in progress - watch for reversal.",
                support_level=support,
                volume_multiple=volume,
            ))

        if state.phase_elapsed:
            if state.extra["penetration"] >= MIN_PENETRATION:
                self.mark_criterion(state, "false_breakout")
            self.enter_phase(security, state, "recovery", RECOVERY_DAYS)
        return drop, news

    def _recovery(self, security: Security, state: PhenomenonState) -> Tuple[float, List[NewsRecord]]:
        news: List[NewsRecord] = []
        support = state.extra["support_level"]
        gain = self.uniform(*RECOVERY_IMPACT)
        projected = security.price * (1 + gain)

        if projected >= support and state.extra["entry_price"] is None:
            state.extra["entry_price"] = projected
            self.mark_criterion(state, "re_entry")
            self.resolve_outcome(state)
            met = state.criteria_met
            telltale = ("GOLD STANDARD: all 4 criteria met - BUY signal" if state.is_gold_standard
                        else f"{met}/4 criteria - {state.current_probability:.0%} probability")
            news.append(self.make_news(
                security, state,
                headline=f'{security.symbol} RECLAIMS support - "Failed breakdown" confirmed',
                description=f"Stock surges back above ${support:.2f} support. "
                            f"Classic spring pattern: {met}/4 criteria met.",
                sentiment=0.7,
                telltale=telltale,
                support_level=support,
            ))

        if state.phase_elapsed:
            if not state.outcome_decided:
                # Never reclaimed: a real breakdown
                state.extra.setdefault("forced_outcome", False)
                self.resolve_outcome(state)
            self.enter_phase(security, state, "continuation", state.extra["continuation_days"])
        return gain, news

    def _continuation(self, security: Security, state: PhenomenonState) -> Tuple[float, List[NewsRecord]]:
        news: List[NewsRecord] = []
        day = state.days_in_phase
        days = state.phase_days
        total_gain = (security.price - state.start_price) / state.start_price

        if state.will_succeed:
            taper = 1 - (day / days) * 0.5
            delta = self.uniform(*CONTINUATION_IMPACT) * taper
            if total_gain >= state.extra["target_gain"] * 0.75 and day == days // 2:
                news.append(self.make_news(
                    security, state,
                    headline=f"{security.symbol} continues rally after successful sweep reversal",
                    description=f"Stock up {total_gain * 100:.1f}% from the sweep. "
                                f"Liquidity vacuum propels price higher.",
                    sentiment=0.6,
                    telltale='CONTINUATION: "No seller" vacuum in effect.',
                ))
        else:
            delta = self.uniform(*FAILURE_IMPACT)
            if day == 1:
                news.append(self.make_news(
                    security, state,
                    headline=f"{security.symbol} sweep reversal FAILS - support becomes resistance",
                    description=f"Stock unable to hold above reclaimed support. Only {state.criteria_met}/4 "
                                f"criteria met - probability was {state.current_probability:.0%}.",
                    sentiment=-0.5,
                    phase="failed",
                    telltale="FAILED SWEEP: Not all criteria met, reversal failed.",
                ))

        if state.phase_elapsed:
            final_gain = (security.price * (1 + delta) - state.start_price) / state.start_price
            if state.will_succeed:
                description = f"Successful reversal: {final_gain * 100:+.1f}% ({state.criteria_met}/4 criteria)."
            else:
                description = f"Failed reversal: {final_gain * 100:+.1f}%. Only {state.criteria_met}/4 criteria met."
            news.append(self.make_news(
                security, state,
                headline=f"{security.symbol} liquidity sweep event complete",
                description=description,
                sentiment=0.5 if state.will_succeed else -0.3,
                phase=COMPLETE,
                telltale="COMPLETE: Sweep played out." if state.will_succeed
                else "COMPLETE: Setup failed - the criteria filter works.",
            ))
            self.enter_phase(security, state, COMPLETE)
        return delta, news

    # === Tutorial ===

    def phase_hints(self, news: NewsRecord) -> Dict[str, Dict[str, Any]]:
        met = news.criteria_met or 0
        succeeded = news.sentiment_label.value == "positive"
        return {
            "setup": {
                "type": "Liquidity Sweep SETUP - Watch for Sweep",
                "description": "Stock approaching an OBVIOUS support level. Stop-losses accumulating below.",
                "implication": "Institutions may sweep these stops to fill large buy orders cheaply.",
                "action": "WATCH. Do NOT place stops at obvious levels.",
                "timing": "ENTRY: None yet. Wait for sweep -> absorption -> re-entry.",
                "catalyst": "The more obvious the support, the more liquidity sits below it.",
            },
            "sweep": {
                "type": "Liquidity Sweep IN PROGRESS - Stop Run Active",
                "description": "Price breaking BELOW support on high volume. Stops triggered.",
                "implication": "If institutions are absorbing supply, price will recover quickly.",
                "action": "DO NOT PANIC SELL. Watch for a volume spike and a failure to close lower.",
                "timing": "ENTRY: NOT YET. Wait for price to RECLAIM support.",
                "catalyst": "Absorption (high volume + recovery) or real breakdown (closes lower)?",
            },
            "recovery": {
                "type": f"Liquidity Sweep RECOVERY - {met}/4 criteria",
                "description": 'Price snapping back above support. "Failed breakdown" confirming.',
                "implication": f"{met}/4 criteria met. ~{45 + met * 10}% probability.",
                "action": "BUY - Re-entry confirmed." if met >= 3
                else "CONSIDER BUYING - Some criteria missing, lower probability.",
                "timing": "ENTRY: On reclaim of support. EXIT: +8% to +15% target.",
                "catalyst": "Obvious support, false breakout, absorption volume, re-entry.",
            },
            "continuation": {
                "type": "Liquidity Sweep CONTINUATION - Holding Position",
                "description": "Sweep reversal playing out. Liquidity vacuum propelling price higher.",
                "implication": "No sellers left below. Path of least resistance is UP.",
                "action": "HOLD - Trail stop at breakeven. Target +8% to +15%.",
                "timing": "EXIT: At target or if price fails the re-test.",
                "catalyst": "Institutional order flow creates a vacuum after the sweep absorbs supply.",
            },
            "failed": {
                "type": "Liquidity Sweep FAILED",
                "description": "Reversal did NOT materialize. Price failed to hold above support.",
                "implication": "This was a REAL breakdown, not a sweep.",
                "action": "EXIT if holding. Price likely continues lower.",
                "timing": "ENTRY: DO NOT BUY. EXIT: Stop out at the sweep low.",
                "catalyst": "Partial criteria = lower success rate for a reason.",
            },
            COMPLETE: {
                "type": "Liquidity Sweep COMPLETE",
                "description": "Sweep event finished.",
                "implication": "Successful reversal - typical +8% to +15% gain." if succeeded
                else "Failed sweep - price continued lower after a false signal.",
                "action": "TAKE PROFITS if holding. Trade complete.",
                "timing": "ENTRY: N/A. EXIT: Sell remaining position.",
                "catalyst": "All 4 criteria = 85% success. Partial criteria = lower odds.",
            },
        }
