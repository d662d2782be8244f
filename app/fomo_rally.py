# fomo_rally.py
# Attention-driven rally: buildup -> euphoria -> blow-off -> crash
# Short the sentiment exhaustion on the first lower high, never guess the peak.

import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple

from market_utils import gain_from, price_deviation
from news_schema import NewsRecord, NewsSentiment
from phenomenon_machine import COMPLETE, GoldStandardTable, PhenomenonMachine, PhenomenonState, in_family
from security_schema import Security

logger = logging.getLogger(__name__)


# === Trigger ===
MIN_GAIN_FROM_LOW = 0.30
MIN_UP_DAYS = 3
TRIGGER_CHANCE = 0.15
SHORT_INTEREST_FUEL = 0.20
INSTITUTIONAL_BUYING = 0.50

# === Timeline ===
BUILDUP_DAYS = (5, 10)
EUPHORIA_DAYS = (3, 5)
CRASH_DAYS = (5, 10)

# === Daily price impact ===
BUILDUP_IMPACT = (0.02, 0.05)
EUPHORIA_IMPACT = (0.05, 0.10)
EUPHORIA_JITTER = 0.05
BLOW_OFF_IMPACT = (0.00, 0.05)
CRASH_IMPACT = (-0.08, -0.03)
CRASH_SEVERITY_FADE = 0.5        # Day-1 severity 1.0 fading to 0.5
NO_CRASH_NOISE = 0.04

# === Gold Standard thresholds ===
VERTICALITY_SD = 3.0
EUPHORIA_PUT_CALL = 0.40
BLOW_OFF_VOLUME = 3.0
SETTLED_SENTIMENT_GAIN = 0.05    # Share of the move that sticks after the crash

# === Sentiment metric thresholds (multiples of baseline mentions) ===
MENTION_POINTS = ((25.0, 30), (10.0, 20), (3.0, 10))
DEVIATION_POINTS = ((4.0, 30), (3.0, 25), (2.0, 15))
PUT_CALL_POINTS = ((0.25, 20), (0.40, 15), (0.60, 8))
RETAIL_POINTS = ((0.70, 20), (0.50, 15), (0.30, 8))

MAGNITUDES = {
    "minor": {"gain": (0.30, 0.60), "crash_pct": 0.40},
    "major": {"gain": (0.60, 1.20), "crash_pct": 0.50},
    "extreme": {"gain": (1.20, 3.00), "crash_pct": 0.60},
}

SECTOR_WEIGHTS = {
    "tech": 1.5,
    "healthcare": 1.4,
    "crypto": 2.0,
    "meme": 2.5,
    "ev": 1.4,
    "ai": 1.8,
}

HEADLINES = {
    "trigger": [
        "{symbol} trending on social media with record engagement",
        "Retail traders pile into {symbol} as social buzz intensifies",
        '{symbol} goes viral: "Don\'t miss out" sentiment spreading',
    ],
    "buildup": [
        "{symbol} SKYROCKETS as retail frenzy builds momentum",
        '"The next Tesla?" - {symbol} social mentions up {mentions:.0f}x',
        "{symbol} can't be stopped - call options seeing RECORD activity",
    ],
    "euphoria": [
        "HISTORIC: {symbol} enters parabolic phase - {deviation:.1f} sigma above mean",
        '"TO THE MOON" - {symbol} retail frenzy reaches fever pitch',
        "{symbol} UNSTOPPABLE: Put/call ratio collapses to {put_call:.2f}",
    ],
    "blowOff": [
        "{symbol} gaps up on RECORD volume - is this the top?",
        '"Diamond hands" vs "Take profits" - {symbol} divides retail traders',
        "{symbol} volume explodes to {volume:.1f}x average - blow-off top?",
    ],
    "crash": [
        "{symbol} gives back gains as FOMO buyers hold bags",
        "Social sentiment on {symbol} turns sour as price drops",
        '{symbol} "reality check" - down {crash_from_peak:.0%} from peak',
    ],
    COMPLETE: [
        "{symbol} FOMO rally ends - lessons learned?",
        "{symbol} returns toward mean after sentiment-driven spike",
    ],
}

DESCRIPTIONS = {
    "trigger": "Social media attention is driving unusual trading activity.",
    "buildup": "Momentum is building as more retail traders discover this stock.",
    "euphoria": "The rally has gone parabolic. Extreme greed detected in options market.",
    "blowOff": "Classic blow-off top pattern forming. Smart money may be exiting.",
    "crash": "The bubble is deflating. Late buyers facing significant losses.",
    COMPLETE: "The FOMO cycle has completed. Price returning to fundamentals.",
}

SENTIMENTS = {
    "trigger": NewsSentiment.POSITIVE,
    "buildup": NewsSentiment.POSITIVE,
    "euphoria": NewsSentiment.POSITIVE,
    "blowOff": NewsSentiment.NEUTRAL,
    "crash": NewsSentiment.NEGATIVE,
    COMPLETE: NewsSentiment.NEUTRAL,
}


def _points(value: float, table, lower_is_riskier: bool = False) -> int:
    for threshold, points in table:
        if (value <= threshold) if lower_is_riskier else (value >= threshold):
            return points
    return 0


def fomo_risk_score(mentions: float, deviation: float, put_call: float, retail_pct: float) -> int:
    """0-100 attention/greed score; 40+ is a FOMO candidate."""
    return (
        _points(mentions, MENTION_POINTS)
        + _points(deviation, DEVIATION_POINTS)
        + _points(put_call, PUT_CALL_POINTS, lower_is_riskier=True)
        + _points(retail_pct, RETAIL_POINTS)
    )


class FomoRally(PhenomenonMachine):
    """
    Retail stampede into a hot stock, followed by the inevitable unwind.

    Design principles:
    - Fires on momentum: +30% off the recent low with 3+ up days
    - Social mentions, P/C ratio and retail share are synthetic metrics
      that trend with the phase, not inputs
    - Crash rolled once on the blow-off day
    - Skipped entirely while a crash-family phenomenon owns the security
    - When it ends, sentiment settles 5% above where the rally started

    Gold Standard criteria (exhaustion filter, 85% reversal):
    1. verticality: 3+ SD above the 20-day mean
    2. retail_euphoria: put/call ratio <= 0.40
    3. sentiment_divergence: record mentions, price fails to make new highs
    4. blow_off_volume: 3x+ average volume
    """

    name = "fomo_rally"
    news_type = "fomo_rally"
    phases = ("buildup", "euphoria", "blowOff", "crash")
    criteria = ("verticality", "retail_euphoria", "sentiment_divergence", "blow_off_volume")
    probability_table = GoldStandardTable({2: 0.70, 3: 0.80, 4: 0.85}, default=0.60)
    veto_table = {
        "gammaLoop": 0.35,
        "extendedMania": 0.25,
        "institutionalBuying": 0.40,
        "shortSqueezeFuel": 0.20,
    }
    probability_floor = 0.25
    probability_ceiling = 0.90
    cooldown_days = 30

    # === Trigger ===

    def momentum_setup(self, security: Security) -> bool:
        gain = gain_from(security.price, security.recent_low) if security.recent_low > 0 else 0.0
        return gain > MIN_GAIN_FROM_LOW and security.consecutive_up_days >= MIN_UP_DAYS

    def check_preconditions(self, security: Security, options: Dict[str, Any]) -> bool:
        return not in_family(security, "crash")

    def create_state(self, security: Security, options: Dict[str, Any]) -> PhenomenonState:
        mentions = options.get("social_mentions", 1.0)
        deviation = self._deviation(security, security.price)
        put_call = options.get("put_call_ratio", 0.80)
        retail_pct = options.get("retail_pct", 0.15)
        score = fomo_risk_score(mentions, deviation, put_call, retail_pct)

        magnitude = options.get("magnitude")
        if magnitude is None:
            magnitude = "extreme" if score >= 80 else "major" if score >= 60 else "minor"
        config = MAGNITUDES[magnitude]
        weight = SECTOR_WEIGHTS.get(security.sector, 1.0)

        state = PhenomenonState(
            phase="buildup",
            phase_days=options.get("buildup_days") or self.randint(*BUILDUP_DAYS),
            extra={
                "magnitude": magnitude,
                "target_gain": self.uniform(*config["gain"]) * weight,
                "crash_pct": config["crash_pct"],
                "euphoria_days": options.get("euphoria_days") or self.randint(*EUPHORIA_DAYS),
                "crash_days": options.get("crash_days") or self.randint(*CRASH_DAYS),
                "start_sentiment": security.sentiment_offset,
                "social_mentions": mentions,
                "price_deviation": deviation,
                "put_call_ratio": put_call,
                "retail_pct": retail_pct,
                "volume_multiple": 1.0,
                "risk_score": score,
                "current_gain": 0.0,
                "price_at_peak": None,
                "peak_mentions": None,
                "lowest_crash_price": None,
            },
        )

        # Fuel that keeps irrational rallies going
        if security.short_interest > SHORT_INTEREST_FUEL:
            state.veto_factors.append("shortSqueezeFuel")
        if security.institutional_accumulation > INSTITUTIONAL_BUYING:
            state.veto_factors.append("institutionalBuying")
        return state

    def on_trigger(self, security: Security, state: PhenomenonState) -> List[NewsRecord]:
        return [self._news(security, state, "trigger")]

    def daily_trigger(self, securities: Sequence[Security]) -> List[PhenomenonState]:
        if not self.is_enabled():
            return []
        started = []
        for security in securities:
            if not self.momentum_setup(security) or not self.can_trigger(security):
                continue
            if self.random() >= TRIGGER_CHANCE:
                continue
            state = self.trigger(security)
            if state:
                started.append(state)
        return started

    # === Process ===

    def _deviation(self, security: Security, price: float, start_price: Optional[float] = None) -> float:
        deviation = price_deviation(security.price_history, price)
        if deviation is not None:
            return deviation
        if start_price:
            # Thin history: every 20% of gain is roughly one SD
            return min(5.0, gain_from(price, start_price) / 0.20)
        return 1.0

    def advance(self, security: Security, state: PhenomenonState) -> Tuple[float, List[NewsRecord]]:
        if in_family(security, "crash"):
            # A crash owns this security; the rally freezes until it clears
            state.days_in_phase -= 1
            return 0.0, []

        extra = state.extra
        extra["current_gain"] = gain_from(security.price, state.start_price)
        handler = {
            "buildup": self._buildup,
            "euphoria": self._euphoria,
            "blowOff": self._blow_off,
            "crash": self._crash,
        }[state.phase]
        delta, news = handler(security, state)
        security.volume_multiple = extra["volume_multiple"]
        return delta, news

    def _buildup(self, security: Security, state: PhenomenonState) -> Tuple[float, List[NewsRecord]]:
        extra = state.extra
        extra["social_mentions"] *= 1 + self.random() * 0.30
        extra["volume_multiple"] = 1 + self.random() * 1.5
        extra["price_deviation"] = min(2.5, extra["price_deviation"] + self.random() * 0.3)
        extra["put_call_ratio"] = max(0.50, extra["put_call_ratio"] - self.random() * 0.08)
        extra["retail_pct"] = min(0.45, extra["retail_pct"] + self.random() * 0.05)
        security.volatility_boost += 0.2 * self.meme(security)

        delta = self.uniform(*BUILDUP_IMPACT)
        news = [self._news(security, state)] if state.days_in_phase == 1 else []
        if state.phase_elapsed:
            self.enter_phase(security, state, "euphoria", extra["euphoria_days"])
        return delta, news

    def _euphoria(self, security: Security, state: PhenomenonState) -> Tuple[float, List[NewsRecord]]:
        extra = state.extra
        progress = state.days_in_phase / max(1, state.phase_days)
        extra["social_mentions"] *= 1.30 + self.random() * 0.50
        extra["volume_multiple"] = 2 + progress * 4 + self.random() * 2
        measured = price_deviation(security.price_history, security.price)
        extra["price_deviation"] = min(5.0, max(
            extra["price_deviation"] + 0.3 + self.random() * 0.4,
            measured if measured is not None else 0.0,
        ))
        extra["put_call_ratio"] = max(0.25, extra["put_call_ratio"] - self.random() * 0.10)
        extra["retail_pct"] = min(0.75, extra["retail_pct"] + self.random() * 0.10)

        if extra["price_deviation"] >= VERTICALITY_SD:
            self.mark_criterion(state, "verticality")
        if extra["put_call_ratio"] <= EUPHORIA_PUT_CALL:
            self.mark_criterion(state, "retail_euphoria")
        if extra["volume_multiple"] >= BLOW_OFF_VOLUME:
            self.mark_criterion(state, "blow_off_volume")

        if extra["price_at_peak"] is None or security.price > extra["price_at_peak"]:
            extra["price_at_peak"] = security.price
            extra["peak_mentions"] = extra["social_mentions"]

        low, high = EUPHORIA_IMPACT
        delta = low + progress * (high - low) + self.random() * EUPHORIA_JITTER
        news = [self._news(security, state)] if state.days_in_phase == 1 else []
        if state.phase_elapsed:
            self.enter_phase(security, state, "blowOff", 1)
        return delta, news

    def _blow_off(self, security: Security, state: PhenomenonState) -> Tuple[float, List[NewsRecord]]:
        extra = state.extra
        # The blow-off day is the peak
        extra["price_at_peak"] = security.price
        extra["volume_multiple"] = 5 + self.random() * 8
        extra["social_mentions"] *= 1.5 + self.random()
        extra["peak_mentions"] = extra["social_mentions"]
        extra["retail_pct"] = min(0.85, extra["retail_pct"] + 0.15)
        extra["put_call_ratio"] = max(0.20, extra["put_call_ratio"] - 0.10)
        extra["price_deviation"] = min(5.0, extra["price_deviation"] + 0.5)

        if extra["volume_multiple"] >= BLOW_OFF_VOLUME:
            self.mark_criterion(state, "blow_off_volume")
        if extra["price_deviation"] >= VERTICALITY_SD:
            self.mark_criterion(state, "verticality")
        if extra["put_call_ratio"] <= EUPHORIA_PUT_CALL:
            self.mark_criterion(state, "retail_euphoria")
        self.mark_criterion(state, "sentiment_divergence")

        self.resolve_outcome(state)
        news = [self._news(security, state)]
        self.enter_phase(security, state, "crash", extra["crash_days"])
        return self.uniform(*BLOW_OFF_IMPACT), news

    def _crash(self, security: Security, state: PhenomenonState) -> Tuple[float, List[NewsRecord]]:
        extra = state.extra
        extra["volume_multiple"] = max(1.5, extra["volume_multiple"] * 0.75)
        extra["social_mentions"] *= 0.70 + self.random() * 0.20
        extra["put_call_ratio"] = min(1.2, extra["put_call_ratio"] + self.random() * 0.12)
        extra["price_deviation"] = max(0.0, extra["price_deviation"] - 0.3 - self.random() * 0.2)
        if extra["lowest_crash_price"] is None or security.price < extra["lowest_crash_price"]:
            extra["lowest_crash_price"] = security.price

        if state.will_succeed:
            low, high = CRASH_IMPACT
            severity = 1 - (state.days_in_phase / max(1, state.phase_days)) * CRASH_SEVERITY_FADE
            delta = low * severity + self.random() * (high - low)
        else:
            delta = (self.random() - 0.5) * NO_CRASH_NOISE

        news = [self._news(security, state)] if state.days_in_phase == 1 else []
        if state.phase_elapsed:
            news.append(self._news(security, state, COMPLETE))
            self._settle(security, state)
            self.enter_phase(security, state, COMPLETE)
        return delta, news

    def _settle(self, security: Security, state: PhenomenonState) -> None:
        """Some of the move sticks; momentum tracking starts over."""
        security.sentiment_offset = state.extra["start_sentiment"] + SETTLED_SENTIMENT_GAIN
        security.recent_high = security.price
        security.consecutive_up_days = 0
        logger.info(
            f"{security.symbol}: FOMO rally settled, net {state.extra['current_gain']:+.1%} "
            f"(crash={'yes' if state.will_succeed else 'no'})"
        )

    # === News ===

    def _news(self, security: Security, state: PhenomenonState, phase: Optional[str] = None) -> NewsRecord:
        extra = state.extra
        phase = phase or state.phase
        peak = extra["price_at_peak"]
        crash_from_peak = (peak - security.price) / peak if peak else 0.0
        gains = (peak - state.start_price) if peak else 0.0
        gains_lost = (peak - security.price) / gains if gains > 0 else 0.0

        headline = self.choice(HEADLINES[phase]).format(
            symbol=security.symbol,
            mentions=extra["social_mentions"],
            deviation=extra["price_deviation"],
            put_call=extra["put_call_ratio"],
            volume=extra["volume_multiple"],
            crash_from_peak=max(0.0, crash_from_peak),
        )
        return self.make_news(
            security, state,
            headline=headline,
            description=DESCRIPTIONS[phase],
            sentiment=SENTIMENTS[phase],
            phase=phase,
            magnitude=extra["magnitude"],
            current_gain=extra["current_gain"],
            social_mentions=extra["social_mentions"],
            price_deviation=extra["price_deviation"],
            put_call_ratio=extra["put_call_ratio"],
            volume_multiple=extra["volume_multiple"],
            crash_will_happen=state.will_succeed,
            crash_from_peak=crash_from_peak,
            gains_lost=gains_lost,
        )

    # === Tutorial ===

    def phase_hints(self, news: NewsRecord) -> Dict[str, Dict[str, Any]]:
        payload = news.payload
        symbol = news.related_stock
        mentions = payload.get("social_mentions", 1.0)
        deviation = payload.get("price_deviation", 0.0)
        put_call = payload.get("put_call_ratio", 0.8)
        volume = payload.get("volume_multiple", 1.0)
        crashing = payload.get("crash_will_happen")
        probability = news.probability or 0.0

        buildup = {
            "type": "FOMO Rally Building",
            "description": f"{symbol} is gaining social momentum. Mentions at {mentions:.1f}x baseline.",
            "implication": "Early stage - trend could continue or fizzle. Wait for euphoria phase.",
            "action": "WATCH - Monitor sentiment indicators for euphoria phase.",
            "timing": "Too early to short. Wait for the exhaustion setup.",
            "catalyst": "Wait for 3+ SD extension and P/C ratio collapse.",
        }
        return {
            "trigger": buildup,
            "buildup": buildup,
            "euphoria": {
                "type": "EUPHORIA PHASE - Extreme Greed",
                "description": f"{symbol} trading {deviation:.1f} SD above MA. P/C ratio at {put_call:.2f}.",
                "implication": "Exhaustion signals emerging. Do NOT buy here - reversal probability rising.",
                "action": "PREPARE TO SHORT - Watch for blow-off top confirmation.",
                "timing": "Entry approaching. Wait for volume climax + sentiment/price divergence.",
                "catalyst": 'Headlines shifting to "Historic," "Moon," "Retail Frenzy" = TOP IS NEAR.',
            },
            "blowOff": {
                "type": "BLOW-OFF TOP",
                "description": f"DANGER: {symbol} showing classic blow-off pattern. Volume {volume:.1f}x average.",
                "implication": 'This is the "transfer of ownership" from smart to dumb money.',
                "action": "SHORT or BUY PUTS on first lower high.",
                "timing": "Enter short on first lower high confirmation, not on the spike.",
                "catalyst": f"{probability:.0%} crash probability. 30-90 day underperformance typically follows.",
            },
            "crash": {
                "type": "FOMO CRASH IN PROGRESS",
                "description": f'{symbol} down from peak. "Bag holders" emerging.',
                "implication": "Late buyers typically lose 20-30% in following week. "
                               + ("Target 50-day MA." if crashing else "Crash not confirmed."),
                "action": "HOLD SHORT - Target 50-day MA." if crashing else "CAUTION - Crash not confirmed.",
                "timing": "Hold position. Exit at 50-day MA or on bounce exhaustion.",
                "catalyst": "Attention-driven buying: 30-90 day underperformance expected.",
            },
            COMPLETE: {
                "type": "FOMO Cycle Complete",
                "description": "The rally has unwound. Price returning to fundamentals.",
                "implication": "Only a small part of the move sticks.",
                "action": "Review: did the crash start on the first lower high?",
                "timing": None,
                "catalyst": None,
            },
        }
