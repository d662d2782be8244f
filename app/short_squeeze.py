# short_squeeze.py
# Short squeeze: buildup -> squeeze -> climax -> reversal
# The trade is shorting the exhaustion, not buying the squeeze.

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple

from market_utils import clamp
from news_schema import NewsRecord, NewsSentiment
from phenomenon_machine import COMPLETE, PhenomenonMachine, PhenomenonState
from security_schema import Security

logger = logging.getLogger(__name__)


# === Risk scoring thresholds (value, points), highest first ===
SHORT_INTEREST_POINTS = ((0.50, 40), (0.30, 30), (0.20, 15))
DAYS_TO_COVER_POINTS = ((10, 30), (5, 20), (3, 10))
UTILIZATION_POINTS = ((1.0, 20), (0.95, 15), (0.80, 5))
COST_TO_BORROW_POINTS = ((1.0, 10), (0.5, 7), (0.2, 3))
CANDIDATE_SCORE = 50

MAGNITUDE_GAIN = {
    "minor": (0.5, 1.0),
    "major": (1.0, 2.0),
    "extreme": (2.0, 5.0),
}

BUILDUP_DAYS = (3, 7)
SQUEEZE_DAYS = (2, 5)
REVERSAL_DAYS = (3, 5)

BUILDUP_IMPACT = (0.02, 0.05)
SQUEEZE_IMPACT = (0.10, 0.25)
CLIMAX_IMPACT = (0.15, 0.50)
CLIMAX_CONTINUATION_CHANCE = 0.70
REVERSAL_IMPACT = (-0.15, -0.08)
GOLD_REVERSAL_BOOST = 1.3

PARABOLIC_GAIN = 1.0
VOLUME_CLIMAX = 5.0
RSI_THRESHOLD = 85
SUCCESS_RATE = 0.85

SECTOR_WEIGHTS = {
    "biotech": 1.5,
    "software": 1.3,
    "retail": 1.2,
    "energy": 1.0,
    "financial": 0.8,
    "utility": 0.5,
}
# Catalog sectors -> squeeze sector buckets
SECTOR_ALIASES = {
    "healthcare": "biotech",
    "tech": "software",
    "consumer": "retail",
    "energy": "energy",
    "finance": "financial",
    "utilities": "utility",
}

MIN_SHORT_INTEREST = 0.20
SHORT_BUILD_CHANCE = 0.03
SHORT_BUILD_CEILING = 0.25
IGNITION_CHANCE = 0.10


@dataclass(frozen=True)
class SqueezeMetrics:
    """Snapshot of short-side positioning used to score squeeze risk."""
    short_interest: float
    days_to_cover: int
    utilization: float
    cost_to_borrow: float
    risk_score: int

    @property
    def is_candidate(self) -> bool:
        return self.risk_score >= CANDIDATE_SCORE


def _points(value: float, table: Sequence[Tuple[float, int]]) -> int:
    for threshold, points in table:
        if value >= threshold:
            return points
    return 0


def sector_weight(sector: str) -> float:
    bucket = SECTOR_ALIASES.get(sector, sector)
    return SECTOR_WEIGHTS.get(bucket, SECTOR_WEIGHTS["retail"])


class ShortSqueeze(PhenomenonMachine):
    """
    Forced short covering: parabolic rally, volume climax, then reversal.

    Design principles:
    - Squeeze risk scored from SI, days-to-cover, utilization, borrow cost
    - Magnitude (minor/major/extreme) sets the target gain
    - Reversal rolled once on climax day
    - Short interest drifts daily on every security, squeeze or not

    Gold Standard criteria (exhaustion filters):
    1. parabolic_extension: gain from start >= 100%
    2. volume_climax: volume >= 5x average
    3. borrow_plateau: borrow cost stops rising (climax day)
    4. rsi_divergence: RSI >= 85
    """

    name = "short_squeeze"
    news_type = "short_squeeze"
    phases = ("buildup", "squeeze", "climax", "reversal")
    criteria = ("parabolic_extension", "volume_climax", "borrow_plateau", "rsi_divergence")
    veto_table = {
        "gammaSqueeze": 0.40,
        "shortInterestRising": 0.20,
        "fundamentalCatalyst": 0.50,
        "retailMomentum": 0.25,
    }
    probability_floor = 0.20
    probability_ceiling = 0.90

    # === Metrics ===

    def calculate_squeeze_risk(self, security: Security, overrides: Optional[Dict[str, float]] = None) -> SqueezeMetrics:
        """Risk score 0-100; unknown inputs are sampled from typical ranges."""
        overrides = overrides or {}
        short_interest = overrides.get("short_interest", security.short_interest)
        if short_interest is None:
            short_interest = self.random() * 0.40 + 0.10
        days_to_cover = overrides.get("days_to_cover")
        if days_to_cover is None:
            days_to_cover = int(self.random() * 12 + 2)
        utilization = overrides.get("utilization")
        if utilization is None:
            utilization = self.random() * 0.30 + 0.70
        cost_to_borrow = overrides.get("cost_to_borrow")
        if cost_to_borrow is None:
            cost_to_borrow = self.random() * 0.50 + 0.05

        score = (
            _points(short_interest, SHORT_INTEREST_POINTS)
            + _points(days_to_cover, DAYS_TO_COVER_POINTS)
            + _points(utilization, UTILIZATION_POINTS)
            + _points(cost_to_borrow, COST_TO_BORROW_POINTS)
        )
        return SqueezeMetrics(short_interest, int(days_to_cover), utilization, cost_to_borrow, score)

    def daily_update(self, security: Security) -> None:
        """Rising prices scare shorts out, falling prices draw them in."""
        if security.price > security.previous_price:
            security.short_interest *= 0.98
        elif security.price < security.previous_price:
            security.short_interest *= 1.01
        security.short_interest = clamp(security.short_interest, 0.02, 0.50)

    # === Trigger ===

    def check_preconditions(self, security: Security, options: Dict[str, Any]) -> bool:
        metrics = options.get("metrics")
        short_interest = metrics.short_interest if metrics else security.short_interest
        return short_interest >= MIN_SHORT_INTEREST

    def create_state(self, security: Security, options: Dict[str, Any]) -> PhenomenonState:
        metrics: SqueezeMetrics = options.get("metrics") or self.calculate_squeeze_risk(security)

        if metrics.risk_score >= 80:
            magnitude = "extreme"
        elif metrics.risk_score >= 65:
            magnitude = "major"
        else:
            magnitude = "minor"

        buildup_days = options.get("buildup_days") or self.randint(*BUILDUP_DAYS)
        squeeze_days = options.get("squeeze_days") or self.randint(*SQUEEZE_DAYS)
        reversal_days = options.get("reversal_days") or self.randint(*REVERSAL_DAYS)
        target_gain = self.uniform(*MAGNITUDE_GAIN[magnitude])

        weight = options.get("sector_weight") or sector_weight(security.sector)
        base_probability = clamp(SUCCESS_RATE * weight, 0.50, 0.90)

        return PhenomenonState(
            phase="buildup",
            phase_days=buildup_days,
            base_probability=base_probability,
            extra={
                "metrics": metrics,
                "magnitude": magnitude,
                "target_gain": target_gain,
                "squeeze_days": squeeze_days,
                "reversal_days": reversal_days,
                "current_gain": 0.0,
                "volume_multiple": 1.0,
                "rsi": 50.0,
                "short_interest": metrics.short_interest,
                "cost_to_borrow": metrics.cost_to_borrow,
                "utilization": metrics.utilization,
                "highest_price": security.price,
                "price_at_climax": None,
            },
        )

    def on_trigger(self, security: Security, state: PhenomenonState) -> List[NewsRecord]:
        return [self._news(security, state)]

    def daily_trigger(self, securities: Sequence[Security]) -> List[PhenomenonState]:
        if not self.is_enabled():
            return []

        # Shorts pile into one name
        if self.random() < SHORT_BUILD_CHANCE:
            candidates = [
                s for s in securities
                if not s.has_state(self.name) and s.short_interest < SHORT_BUILD_CEILING
            ]
            target = self.choice(candidates)
            if target is not None:
                target.short_interest = clamp(target.short_interest + self.uniform(0.10, 0.20), 0.02, 0.50)
                self.emit(self.make_news(
                    target, None,
                    headline=f"Short sellers pile into {target.symbol}",
                    description=f"Short interest climbs to {target.short_interest:.0%} of float.",
                    sentiment=NewsSentiment.NEGATIVE,
                    phase="short_build",
                ))

        # Heavily shorted names ignite on good news (or at random)
        started = []
        today = self.context.news_sink.today()
        for security in securities:
            if security.short_interest < MIN_SHORT_INTEREST or not self.can_trigger(security):
                continue
            catalyst = any(
                n.related_stock == security.symbol and n.sentiment_label == NewsSentiment.POSITIVE
                for n in today
            )
            if not catalyst and self.random() >= IGNITION_CHANCE:
                continue
            metrics = self.calculate_squeeze_risk(security)
            if not metrics.is_candidate:
                continue
            state = self.trigger(security, metrics=metrics)
            if state:
                started.append(state)
        return started

    # === Probability ===

    def compute_probability(self, state: PhenomenonState) -> float:
        met = state.criteria_met
        probability = state.base_probability
        if met == 4:
            probability = SUCCESS_RATE
        elif met == 3:
            probability = min(probability + 0.10, SUCCESS_RATE)
        probability -= sum(self.veto_table.get(veto, 0.0) for veto in state.veto_factors)
        return clamp(probability, self.probability_floor, self.probability_ceiling)

    # === Process ===

    def advance(self, security: Security, state: PhenomenonState) -> Tuple[float, List[NewsRecord]]:
        extra = state.extra
        extra["current_gain"] = (security.price - state.start_price) / state.start_price
        news: List[NewsRecord] = []

        if state.phase == "buildup":
            extra["short_interest"] *= 1 + self.random() * 0.05
            extra["cost_to_borrow"] *= 1 + self.random() * 0.10
            extra["volume_multiple"] = 1 + self.random() * 1.5
            extra["rsi"] = min(75.0, 50 + state.days_in_phase * 5 + self.random() * 5)
            delta = self.uniform(*BUILDUP_IMPACT)
            if state.phase_elapsed:
                self.enter_phase(security, state, "squeeze", extra["squeeze_days"])

        elif state.phase == "squeeze":
            progress = state.days_in_phase / extra["squeeze_days"]
            extra["volume_multiple"] = 3 + progress * 7 + self.random() * 3
            extra["short_interest"] *= 1 - 0.10 - self.random() * 0.15
            if progress < 0.5:
                extra["cost_to_borrow"] *= 1 + self.random() * 0.20
            else:
                extra["cost_to_borrow"] *= 1 - self.random() * 0.05
            extra["rsi"] = min(95.0, 75 + progress * 20 + self.random() * 5)
            extra["highest_price"] = max(extra["highest_price"], security.price)

            if extra["current_gain"] >= PARABOLIC_GAIN:
                self.mark_criterion(state, "parabolic_extension")
            if extra["volume_multiple"] >= VOLUME_CLIMAX:
                self.mark_criterion(state, "volume_climax")

            delta = self.uniform(*SQUEEZE_IMPACT)
            if state.days_in_phase == 1:
                news.append(self._news(security, state))
            if state.phase_elapsed:
                self.enter_phase(security, state, "climax", 1)

        elif state.phase == "climax":
            extra["volume_multiple"] = 8 + self.random() * 7
            extra["rsi"] = 90 + self.random() * 10
            extra["short_interest"] *= 1 - 0.20 - self.random() * 0.20
            extra["cost_to_borrow"] *= 1 - self.random() * 0.30
            extra["price_at_climax"] = security.price
            extra["highest_price"] = max(extra["highest_price"], security.price)

            self.mark_criterion(state, "borrow_plateau")
            if extra["current_gain"] >= PARABOLIC_GAIN:
                self.mark_criterion(state, "parabolic_extension")
            if extra["volume_multiple"] >= VOLUME_CLIMAX:
                self.mark_criterion(state, "volume_climax")
            if extra["rsi"] >= RSI_THRESHOLD:
                self.mark_criterion(state, "rsi_divergence")

            self.resolve_outcome(state)

            if self.random() < CLIMAX_CONTINUATION_CHANCE:
                delta = self.uniform(*CLIMAX_IMPACT)
            else:
                # Shooting star: gap up, reversal intraday
                delta = self.random() * 0.10 - 0.05
            news.append(self._news(security, state))
            self.enter_phase(security, state, "reversal", extra["reversal_days"])

        else:  # reversal
            extra["volume_multiple"] = max(2.0, extra["volume_multiple"] * 0.7)
            extra["rsi"] = max(20.0, extra["rsi"] - 15 - self.random() * 10)
            extra["short_interest"] *= 1 + self.random() * 0.05

            if state.will_succeed:
                delta = self.uniform(*REVERSAL_IMPACT)
                if state.is_gold_standard:
                    delta *= GOLD_REVERSAL_BOOST
            else:
                delta = (self.random() - 0.4) * 0.08

            if state.days_in_phase == 1:
                news.append(self._news(security, state))
            if state.phase_elapsed:
                news.append(self._news(security, state, phase=COMPLETE))
                self.enter_phase(security, state, COMPLETE)

        security.volume_multiple = extra["volume_multiple"]
        security.short_interest = clamp(extra["short_interest"], 0.02, 0.50)
        return delta, news

    # === News ===

    def _news(self, security: Security, state: PhenomenonState, phase: Optional[str] = None) -> NewsRecord:
        extra = state.extra
        phase = phase or state.phase
        gain = extra["current_gain"]
        volume = extra["volume_multiple"]

        if phase == "buildup":
            headline = f"{security.symbol} short interest climbs to {extra['short_interest']:.0%}"
            description = (
                f"Short interest at {extra['short_interest']:.1%} with {extra['metrics'].days_to_cover} "
                f"days to cover. Cost to borrow: {extra['cost_to_borrow']:.0%}."
            )
            sentiment = NewsSentiment.POSITIVE
        elif phase == "squeeze":
            headline = f"{security.symbol} EXPLODES {gain:.0%} - short squeeze underway!"
            description = f"Shorts scramble to cover. Volume {volume:.1f}x average."
            sentiment = NewsSentiment.POSITIVE
        elif phase == "climax":
            headline = f"{security.symbol} volume CLIMAX: {volume:.0f}x normal - blow-off top?"
            description = f"Maximum volume exhaustion. RSI at {extra['rsi']:.0f}. Often the peak before reversal."
            sentiment = NewsSentiment.NEUTRAL
        elif phase == "reversal":
            headline = f"{security.symbol} REVERSAL: first red day after {gain:.0%} squeeze"
            description = (
                "Forced buying exhausted. Professionals shorting the backside."
                if state.will_succeed else
                "Gamma squeeze or catalyst preventing the typical reversal."
            )
            sentiment = NewsSentiment.NEGATIVE
        else:
            headline = f"{security.symbol} squeeze complete: {gain:+.0%} net change"
            description = f"Squeeze cycle complete. Final price: ${security.price:.2f}."
            sentiment = NewsSentiment.NEUTRAL

        return self.make_news(
            security, state,
            headline=headline,
            description=description,
            sentiment=sentiment,
            phase=phase,
            short_interest=extra["short_interest"],
            days_to_cover=extra["metrics"].days_to_cover,
            volume_multiple=volume,
            rsi=extra["rsi"],
            current_gain=gain,
            magnitude=extra["magnitude"],
        )

    # === Tutorial ===

    def phase_hints(self, news: NewsRecord) -> Dict[str, Dict[str, Any]]:
        si = news.payload.get("short_interest", 0.0)
        dtc = news.payload.get("days_to_cover", 0)
        gain = news.payload.get("current_gain", 0.0)
        volume = news.payload.get("volume_multiple", 1.0)
        rsi = news.payload.get("rsi", 50.0)
        probability = news.probability or 0.0

        return {
            "short_build": {
                "type": "Short Interest Building",
                "description": "Short sellers are piling into this name.",
                "implication": "Heavy short interest is fuel. Any good news can ignite a squeeze.",
                "action": "WATCH. Short interest alone is not a trade.",
                "timing": "Squeezes need SI above 20% plus a catalyst.",
                "catalyst": "Positive headlines on a crowded short.",
            },
            "buildup": {
                "type": "Short Squeeze Setup (Buildup Phase)",
                "description": f"SI at {si:.0%} (>20% = danger zone). Days to cover: {dtc}.",
                "implication": "High short interest + high days to cover = the door is too small for every short.",
                "action": "WATCH. Do NOT buy yet. Wait for squeeze confirmation.",
                "timing": "Buildup can last 3-7 days before ignition.",
                "catalyst": "The professional trade is shorting the reversal, not buying the squeeze.",
            },
            "squeeze": {
                "type": "Short Squeeze Active (Parabolic Phase)",
                "description": f"Stock up {gain:.0%}. Volume {volume:.1f}x average.",
                "implication": "Shorts are covering (forced buying). This is NOT sustainable.",
                "action": "If long, trail stops tight. If flat, DO NOT CHASE.",
                "timing": "Parabolic phase typically lasts 2-5 days.",
                "catalyst": "SI dropping rapidly = shorts capitulating. Watch for volume climax.",
            },
            "climax": {
                "type": "CLIMAX DAY (Blow-Off Top)",
                "description": f"Volume {volume:.0f}x normal. RSI: {rsi:.0f}. This is often THE TOP.",
                "implication": "Maximum volume = last short has covered. No more forced buyers.",
                "action": "EXIT LONGS. Prepare to SHORT the first red day.",
                "timing": "The first red day after climax volume is the professional entry.",
                "catalyst": "Look for: shooting star candle, RSI divergence, borrow cost dropping.",
            },
            "reversal": {
                "type": "REVERSAL PHASE (The Trade)",
                "description": "Forced buying exhausted.",
                "implication": "Stocks typically lose 50% of squeeze gains within 72 hours of climax.",
                "action": (
                    "SHORT with conviction." if probability >= 0.75
                    else "SHORT with caution. Watch for a gamma squeeze veto."
                ),
                "timing": "Target: 50% retracement of gains.",
                "catalyst": None,
            },
            COMPLETE: {
                "type": "Squeeze Cycle Complete",
                "description": "Short squeeze event has concluded.",
                "implication": "Review: did the reversal follow the exhaustion pattern?",
                "action": "Document lessons. Wait for the next setup.",
                "timing": None,
                "catalyst": None,
            },
        }
