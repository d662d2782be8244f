# stock_split.py
# Cosmetic split, real psychology: announcement pop -> run-up -> effective day -> T+3 hangover
# The trade is shorting the exhaustion after retail FOMO peaks, never buying the split.

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Sequence, Tuple

from market_utils import clamp
from news_schema import NewsRecord, NewsSentiment
from phenomenon_machine import COMPLETE, PhenomenonMachine, PhenomenonState
from security_schema import Security

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SplitTier:
    name: str
    min_price: float
    impact_multiplier: float
    reversal_probability: float


# Checked in order, first match wins
SPLIT_TIERS: Dict[str, SplitTier] = {
    "megaCap": SplitTier("Mega-Cap", 800, 1.5, 0.82),
    "largeCap": SplitTier("Large-Cap", 400, 1.2, 0.72),
    "midCap": SplitTier("Mid-Cap", 0, 1.0, 0.60),
}

# ratio -> retail hype multiplier
HYPE_MULTIPLIERS: Dict[int, float] = {2: 1.0, 3: 1.2, 4: 1.4, 5: 1.5, 10: 2.0, 20: 2.5}
DEFAULT_RATIO = 4

ANNOUNCEMENT_TO_EFFECTIVE = (5, 10)
REVERSAL_DAYS = (3, 7)
OTM_CALL_SPIKE = (3.0, 10.0)
EFFECTIVE_VOLUME = (3.0, 8.0)

ANNOUNCEMENT_IMPACT = (0.02, 0.05)
RUN_UP_IMPACT = (0.01, 0.025)
EFFECTIVE_IMPACT = (0.02, 0.06)
REVERSAL_IMPACT = (-0.02, -0.008)
NO_REVERSAL_IMPACT = (-0.005, 0.01)

MIN_RUN_UP = 0.15
STRONG_RUN_UP = 0.20
STRONG_RUN_UP_BONUS = 0.05
REVERSAL_SETUP_DAY = 3                 # T+3

MIN_TRIGGER_PRICE = 500
DAILY_TRIGGER_CHANCE = 0.012

VETO_DESCRIPTIONS = {
    "newProductLaunch": "Major product launch coincides with split",
    "earningsBlowout": "Exceptional earnings report",
    "bullMarket": "Strong bull market momentum",
    "sectorMomentum": "Entire sector rallying",
}


def split_tier(price: float) -> str:
    for key, tier in SPLIT_TIERS.items():
        if price >= tier.min_price:
            return key
    return "midCap"


def ratio_options(price: float) -> List[int]:
    """Higher-priced stocks get bigger splits."""
    if price >= 1500:
        return [10, 20]
    if price >= 800:
        return [4, 5, 10]
    return [2, 3, 4]


class StockSplit(PhenomenonMachine):
    """
    Forward stock split on a high-priced security.

    Design principles:
    - Calendar driven, like index rebalancing: phase follows days since announcement
    - Impacts scale with tier, split ratio and meme factor
    - Effective day divides price, previous price, base price and fair value
      by the ratio; history and reference prices move with them
    - Reversal rolled once on T+1

    Gold Standard criteria (77%):
    1. is_mega_cap: price >= $800 at announcement
    2. has_run_up: 15%+ run-up from announcement to effective day
    3. has_otm_spike: OTM call volume spike on effective day
    4. has_reversal_setup: T+3 reached (first lower high)
    """

    name = "stock_split"
    news_type = "stock_split"
    phases = ("announcement", "runUp", "effectiveDay", "reversal")
    criteria = ("is_mega_cap", "has_run_up", "has_otm_spike", "has_reversal_setup")
    veto_table = {"newProductLaunch": 0.25, "earningsBlowout": 0.30, "bullMarket": 0.15, "sectorMomentum": 0.10}
    probability_floor = 0.25
    probability_ceiling = 0.90

    # === Trigger ===

    def create_state(self, security: Security, options: Dict[str, Any]) -> PhenomenonState:
        ratio = options.get("ratio") or self.choice(ratio_options(security.price))
        if ratio not in HYPE_MULTIPLIERS:
            logger.warning(f"{security.symbol}: unusual split ratio {ratio}, using {DEFAULT_RATIO}:1 hype")
        tier = split_tier(security.price)
        days_to_effective = options.get("days_to_effective") or self.randint(*ANNOUNCEMENT_TO_EFFECTIVE)

        state = PhenomenonState(
            phase="announcement",
            phase_days=days_to_effective,
            start_price=security.price,
            extra={
                "ratio": ratio,
                "ratio_name": f"{ratio}:1",
                "stock_tier": tier,
                "days_to_effective": days_to_effective,
                "reversal_days": options.get("reversal_days") or self.randint(*REVERSAL_DAYS),
                "otm_call_multiple": options.get("otm_call_multiple") or self.uniform(*OTM_CALL_SPIKE),
                "effective_volume": self.uniform(*EFFECTIVE_VOLUME),
                "run_up_total": 0.0,
                "price_at_effective": None,
            },
        )
        state.gold_standard = {name: False for name in self.criteria}
        if tier == "megaCap":
            state.gold_standard["is_mega_cap"] = True
        return state

    def _hype(self, state: PhenomenonState) -> float:
        tier = SPLIT_TIERS[state.extra["stock_tier"]]
        return tier.impact_multiplier * HYPE_MULTIPLIERS.get(state.extra["ratio"], HYPE_MULTIPLIERS[DEFAULT_RATIO])

    def on_trigger(self, security: Security, state: PhenomenonState) -> List[NewsRecord]:
        pop = self.uniform(*ANNOUNCEMENT_IMPACT) * self._hype(state)
        state.daily_bias = pop
        security.sentiment_offset += pop

        symbol, name, ratio = security.symbol, state.extra["ratio_name"], state.extra["ratio"]
        days = state.extra["days_to_effective"]
        headlines = [
            f"{symbol} announces {name} stock split",
            f"BREAKING: {symbol} to split shares {ratio}-for-1",
            f"{symbol} board approves {name} stock split",
            f"{symbol} stock split: {name} effective in {days} days",
        ]
        return [self.make_news(
            security, state,
            headline=self.choice(headlines),
            description=f"Management signals confidence. Split effective in {days} trading days. "
                        f"Historically, splits attract retail buyers.",
            sentiment=NewsSentiment.POSITIVE,
            **self._payload(state),
        )]

    def daily_trigger(self, securities: Sequence[Security]) -> List[PhenomenonState]:
        if not self.is_enabled():
            return []
        candidates = self.eligible(securities)
        if not candidates or self.random() >= DAILY_TRIGGER_CHANCE:
            return []
        target = self.choice(candidates)
        state = self.trigger(target)
        return [state] if state else []

    def eligible(self, securities: Sequence[Security]) -> List[Security]:
        return [s for s in securities if s.price >= MIN_TRIGGER_PRICE and self.can_trigger(s)]

    # === Probability ===

    def compute_probability(self, state: PhenomenonState) -> float:
        tier = SPLIT_TIERS[state.extra["stock_tier"]]
        state.base_probability = tier.reversal_probability
        probability = tier.reversal_probability
        if state.extra["run_up_total"] >= STRONG_RUN_UP:
            probability += STRONG_RUN_UP_BONUS
        probability -= sum(self.veto_table[v] for v in state.veto_factors)
        return clamp(probability, self.probability_floor, self.probability_ceiling)

    # === Process ===

    def advance(self, security: Security, state: PhenomenonState) -> Tuple[float, List[NewsRecord]]:
        days_to_effective = state.extra["days_to_effective"] - state.day
        days_after = -days_to_effective

        if days_to_effective > 0:
            self._phase(security, state, "runUp")
            return self._run_up(security, state, days_to_effective)
        if days_to_effective == 0:
            self._phase(security, state, "effectiveDay")
            return self._effective_day(security, state)
        if days_after <= state.extra["reversal_days"]:
            self._phase(security, state, "reversal")
            return self._reversal(security, state, days_after)

        self._log_result(security, state)
        self.enter_phase(security, state, COMPLETE)
        return 0.0, []

    def _phase(self, security: Security, state: PhenomenonState, phase: str) -> None:
        if state.phase != phase:
            self.enter_phase(security, state, phase)

    def _run_up(self, security: Security, state: PhenomenonState, days_to_effective: int) -> Tuple[float, List[NewsRecord]]:
        news: List[NewsRecord] = []
        impact = self.uniform(*RUN_UP_IMPACT) * self._hype(state) * self.meme(security)
        state.extra["run_up_total"] += impact
        if state.extra["run_up_total"] >= MIN_RUN_UP:
            self.mark_criterion(state, "has_run_up")

        symbol, name = security.symbol, state.extra["ratio_name"]
        run_up = state.extra["run_up_total"]
        if days_to_effective == state.extra["days_to_effective"] // 2:
            headlines = [
                f"{symbol} up {run_up * 100:.1f}% ahead of {name} split",
                f"Retail buying drives {symbol} rally into split",
                f"{symbol} momentum builds before {name} split",
            ]
            threshold = ("Run-up exceeds 15% threshold - watching for reversal setup."
                         if state.gold_standard["has_run_up"] else "Watching for 15%+ run-up.")
            news.append(self.make_news(
                security, state,
                headline=self.choice(headlines),
                description=f"{days_to_effective} days until split effective. {threshold}",
                sentiment=NewsSentiment.POSITIVE,
                run_up_percent=run_up,
                **self._payload(state),
            ))

        if days_to_effective == 1:
            headlines = [
                f"{symbol} {name} split effective tomorrow",
                f"Reminder: {symbol} shares split {state.extra['ratio']}:1 after close",
                f"{symbol} split: Last day to buy pre-split shares",
                f"TOMORROW: {symbol} price adjusts for {name} split",
            ]
            news.append(self.make_news(
                security, state,
                headline=self.choice(headlines),
                description=f"Price will adjust tomorrow. Total run-up: {run_up * 100:+.1f}%. "
                            f"Watch for retail FOMO on effective day.",
                sentiment=NewsSentiment.POSITIVE,
                phase="tomorrow",
                run_up_percent=run_up,
                **self._payload(state),
            ))
        return impact, news

    def apply_split(self, security: Security, ratio: int) -> None:
        """Divide every price-denominated field by the split ratio."""
        security.price = float(round(security.price / ratio))
        security.previous_price = float(round(security.previous_price / ratio))
        security.base_price = security.base_price / ratio
        security.year_start_price = security.year_start_price / ratio
        security.recent_high = security.recent_high / ratio
        security.recent_low = security.recent_low / ratio
        security.target_price = security.target_price / ratio
        security.price_history = [p / ratio for p in security.price_history]
        security.refresh_fair_value()
        logger.info(f"{security.symbol}: {ratio}:1 split effective, price now ${security.price:.0f}")

    def _effective_day(self, security: Security, state: PhenomenonState) -> Tuple[float, List[NewsRecord]]:
        self.apply_split(security, state.extra["ratio"])

        impact = self.uniform(*EFFECTIVE_IMPACT) * self._hype(state) * self.meme(security)
        state.extra["price_at_effective"] = security.price * (1 + impact)
        security.volume_multiple = state.extra["effective_volume"]
        self.mark_criterion(state, "has_otm_spike")

        symbol, name = security.symbol, state.extra["ratio_name"]
        otm = state.extra["otm_call_multiple"]
        headlines = [
            f"{symbol} opens post-split at ${security.price:.0f}",
            f"{symbol} {name} split now effective",
            f'{symbol} shares "affordable" after {name} split',
            f"Retail frenzy: {symbol} call volume {otm:.0f}x normal",
        ]
        setup = state.gold_standard["is_mega_cap"] and state.gold_standard["has_run_up"]
        if setup:
            description = (f"Setup loading: Mega-cap + {state.extra['run_up_total'] * 100:.0f}% run-up "
                           f"+ OTM call spike. Watch for T+3 reversal!")
        else:
            description = f"Lower price attracts new retail investors. OTM call volume {otm:.0f}x normal."
        return impact, [self.make_news(
            security, state,
            headline=self.choice(headlines),
            description=description,
            sentiment=NewsSentiment.POSITIVE,
            new_price=security.price,
            **self._payload(state),
        )]

    def _reversal(self, security: Security, state: PhenomenonState, days_after: int) -> Tuple[float, List[NewsRecord]]:
        news: List[NewsRecord] = []
        if days_after >= REVERSAL_SETUP_DAY:
            self.mark_criterion(state, "has_reversal_setup")

        if not state.outcome_decided:
            happens = self.resolve_outcome(state)
            if not happens and state.veto_factors:
                veto = state.veto_factors[0]
                news.append(self.make_news(
                    security, state,
                    headline=f"{security.symbol} defies typical post-split reversal",
                    description=f"Veto factor: {VETO_DESCRIPTIONS[veto]}. "
                                f"The normal reversal pattern may be delayed or cancelled.",
                    sentiment=NewsSentiment.NEUTRAL,
                    phase="veto",
                    veto_factor=veto,
                    **self._payload(state),
                ))

        if not state.will_succeed:
            return self.uniform(*NO_REVERSAL_IMPACT), news

        impact = self.uniform(*REVERSAL_IMPACT)
        if days_after == REVERSAL_SETUP_DAY:
            symbol = security.symbol
            headlines = [
                f"{symbol} shows first lower high post-split",
                f"T+3 reversal pattern forming on {symbol}",
                f"{symbol} post-split FOMO exhausted - mean reversion begins",
                f'{symbol}: "Sell the news" kicks in after split hype',
            ]
            description = ("GOLD STANDARD COMPLETE: all 4 criteria met. "
                           "High probability 5-10% mean reversion over next week."
                           if state.is_gold_standard else "Reversal pattern detected. Monitor for continuation.")
            news.append(self.make_news(
                security, state,
                headline=self.choice(headlines),
                description=description,
                sentiment=NewsSentiment.NEGATIVE,
                **self._payload(state),
            ))
        return impact, news

    def _log_result(self, security: Security, state: PhenomenonState) -> None:
        adjusted_start = state.start_price / state.extra["ratio"]
        total_return = (security.price - adjusted_start) / adjusted_start
        logger.info(
            f"{security.symbol}: split cycle done, return {total_return * 100:+.1f}% "
            f"({state.criteria_met}/4 criteria, reversal={state.will_succeed})"
        )

    def _payload(self, state: PhenomenonState) -> Dict[str, Any]:
        return {
            "split_ratio": state.extra["ratio"],
            "stock_tier": state.extra["stock_tier"],
            "days_to_effective": state.extra["days_to_effective"],
            "otm_call_multiple": state.extra["otm_call_multiple"],
        }

    # === Tutorial ===

    def phase_hints(self, news: NewsRecord) -> Dict[str, Dict[str, Any]]:
        ratio = news.payload.get("split_ratio") or DEFAULT_RATIO
        run_up = (news.payload.get("run_up_percent") or 0.0) * 100
        otm = news.payload.get("otm_call_multiple") or 5.0
        met = news.criteria_met or 0
        complete = news.is_gold_standard
        veto = news.payload.get("veto_factor") or "positive catalyst"
        return {
            "announcement": {
                "type": f"STOCK SPLIT ANNOUNCED ({ratio}:1)",
                "description": f'Stock splitting {ratio}:1. This is "cosmetic" (same pizza, more slices) '
                               f"but psychologically powerful.",
                "implication": "Expect +15-25% run-up from announcement to effective date. Retail will pile in.",
                "action": "DO NOT BUY NOW! The high-probability trade is the REVERSAL after the split.",
                "timing": "ENTRY: Wait for T+3 after effective day. EXIT: 5-7 days into reversal for 5-10% gain.",
                "catalyst": "Watch for: (1) 15%+ run-up, (2) OTM call spike on effective day, (3) T+3 lower high.",
            },
            "runUp": {
                "type": "RUN-UP EXCEEDS 15%" if run_up >= 15 else "Run-Up in Progress",
                "description": f'Stock up {run_up:.1f}% since announcement. "Hot money" front-running the split.',
                "implication": 'Run-up exceeds 15% threshold! This "over-extension" increases reversal probability.'
                if run_up >= 15 else "Run-up building. Need 15%+ for the full setup.",
                "action": "Run-up criterion MET. Monitor for OTM call spike on effective day." if run_up >= 15
                else "Keep watching. Do NOT buy the run-up - the trade is the reversal.",
                "timing": "ENTRY: Still wait for T+3 after effective day. EXIT: 5-7 days into reversal.",
                "catalyst": f"{met}/4 criteria met so far.",
            },
            "tomorrow": {
                "type": "SPLIT EFFECTIVE TOMORROW",
                "description": "Last day before split. Price adjusts after close tomorrow.",
                "implication": 'Expect retail FOMO spike tomorrow as stock "looks cheap."',
                "action": "Prepare to monitor T+3 for reversal entry. Do NOT buy the effective day pop.",
                "timing": "ENTRY: T+3 after tomorrow. EXIT: 5-7 days later.",
                "catalyst": "Tomorrow: watch for OTM call volume spike (3-10x normal).",
            },
            "effectiveDay": {
                "type": "SPLIT EFFECTIVE - Reversal Setup Loading" if met >= 3 else "SPLIT EFFECTIVE - Price Adjusts",
                "description": f"Price adjusted. OTM call volume {otm:.0f}x normal. Retail FOMO peak.",
                "implication": f"{met}/4 criteria met. T+3 reversal setup loading..." if met >= 3
                else 'Retail buying the "cheap" stock. Hype exhaustion coming.',
                "action": "PREPARE TO SHORT on T+3. Wait for first lower high." if met >= 3
                else "Watch for reversal. Criteria missing - lower probability.",
                "timing": "ENTRY: T+3 (3 trading days from now). EXIT: 5-7 days for 5-10% gain.",
                "catalyst": "Waiting for the T+3 lower high.",
            },
            "reversal": {
                "type": "T+3 REVERSAL - ALL 4 CRITERIA MET" if complete else "T+3 Reversal Pattern",
                "description": "First lower high detected." if complete
                else "Reversal pattern forming. Some criteria missing.",
                "implication": "Historical success rate: 70-85% for 5-10% mean reversion over next week."
                if complete else "Reversal possible but lower probability without the full setup.",
                "action": "ENTER SHORT POSITION NOW. Target: 5-10% gain over 5-7 trading days." if complete
                else "Consider small position. Monitor for reversal continuation.",
                "timing": "EXIT: 5-7 days, +5% to +10%.",
                "catalyst": "Post-split momentum fades. +20% volatility around the effective date.",
            },
            "veto": {
                "type": "VETO FACTOR - Reversal Delayed/Cancelled",
                "description": f"A veto factor ({veto}) is overriding the typical reversal pattern.",
                "implication": "Normal reversal may be delayed or cancelled. Probability reduced.",
                "action": "CAUTION - Skip this setup or reduce position size significantly.",
                "timing": "ENTRY: Skip or wait for veto factor to clear. EXIT: N/A.",
                "catalyst": f"Veto factors: product launch, earnings blowout, bull market, sector momentum. "
                            f"Current: {veto}",
            },
        }
