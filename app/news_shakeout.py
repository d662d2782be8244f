# news_shakeout.py
# Overreaction reversal: panic on soft news, 3-day stabilization, gap fill
# If the news doesn't change the 5-year outlook, it's a shakeout, not a breakdown.

import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Sequence, Tuple

from market_utils import calculate_rsi, clamp
from news_schema import NewsRecord
from phenomenon_machine import COMPLETE, GoldStandardTable, PhenomenonMachine, PhenomenonState
from security_schema import Security

logger = logging.getLogger(__name__)


# === News classification ===
TRANSIENT_TYPES = (
    "litigation_rumor", "ceo_departure", "metric_miss", "macro_scare",
    "sector_rotation", "analyst_downgrade", "guidance_miss",
)
TERMINAL_TYPES = (
    "fraud", "bankruptcy", "product_recall", "major_contract_loss",
    "regulatory_ban", "accounting_restatement",
)
TRANSIENT_PATTERN = re.compile(r"rumor|temporary|personal|miss|rotation|downgrade|guidance", re.IGNORECASE)
TERMINAL_PATTERN = re.compile(r"fraud|bankrupt|recall|loss of|regulatory|restatement", re.IGNORECASE)
TRANSIENT_REVERSAL = 0.85
TERMINAL_REVERSAL = 0.15
UNCERTAIN_REVERSAL = 0.40

# Random proactive events only draw soft news
RANDOM_NEWS_TYPES = (
    "litigation_rumor", "macro_scare", "sector_rotation",
    "analyst_downgrade", "guidance_miss", "metric_miss",
)

NEWS_LABELS = {
    "litigation_rumor": "litigation RUMORS",
    "ceo_departure": "CEO departure CONCERNS",
    "metric_miss": "metric MISS",
    "macro_scare": "macro FEARS",
    "sector_rotation": "sector rotation WORRIES",
    "analyst_downgrade": "analyst DOWNGRADE",
    "guidance_miss": "guidance UNCERTAINTY",
    "fraud": "FRAUD ALLEGATIONS - SEC Investigation",
    "bankruptcy": "BANKRUPTCY FILING",
    "product_recall": "PRODUCT RECALL - FDA Action",
    "major_contract_loss": "MAJOR CONTRACT CANCELLED",
}

# === Volume ===
CLIMAX_VOLUME = 3.0
GOLD_VOLUME = 5.0
EXHAUSTION_VOLUME = 4.0
RANDOM_PANIC_VOLUME = (3.0, 6.0)

# === RSI ===
RSI_OVERSOLD = 20
RSI_HISTORY_POINTS = 20

# === Impacts ===
PANIC_IMPACT = (-0.15, -0.08)
RANDOM_PANIC_DROP = (-0.20, -0.08)
REACTIVE_DROP = -0.08
STABILIZATION_IMPACT = (-0.03, 0.02)
ENTRY_BOUNCE = (0.01, 0.03)
RECOVERY_IMPACT = (0.01, 0.03)
FAILED_IMPACT = (-0.02, 0.01)
FAILED_SENTIMENT_SHARE = 0.5      # Share of the panic drop that sticks on a value trap
GAP_FILL_TOLERANCE = 0.98

# === Timeline ===
STABILIZATION_DAYS = (2, 3)
RECOVERY_DAYS = (7, 13)

# === Event generation ===
DAILY_PROBABILITY = 0.008
MAX_CONCURRENT = 2
NON_TRANSIENT_START = 0.25

SOFT_HEADLINES = (
    "{symbol} PLUNGES {drop:.0f}% amid {label} FEARS",
    "{symbol} shares tumble as CONCERNS over {label} mount",
    "UNCERTAINTY: {symbol} plunges {drop:.0f}% on {label} WORRIES",
)


@dataclass(frozen=True)
class NewsClassification:
    category: str                # "transient", "terminal" or "uncertain"
    is_transient: bool
    is_terminal: bool
    reversal_probability: float


@dataclass(frozen=True)
class VolumeClimax:
    volume_multiple: float
    is_climax: bool
    is_gold_standard: bool
    is_exhaustion: bool


def classify_news(news_type: str, content: str = "") -> NewsClassification:
    """
    Sort a headline into soft (reverses) or hard (continues) information.

    Terminal wins when both keyword sets match.
    """
    is_transient = news_type in TRANSIENT_TYPES or bool(TRANSIENT_PATTERN.search(content))
    is_terminal = news_type in TERMINAL_TYPES or bool(TERMINAL_PATTERN.search(content))

    if is_terminal:
        return NewsClassification("terminal", False, True, TERMINAL_REVERSAL)
    if is_transient:
        return NewsClassification("transient", True, False, TRANSIENT_REVERSAL)
    return NewsClassification("uncertain", False, False, UNCERTAIN_REVERSAL)


def volume_climax(volume_multiple: float) -> VolumeClimax:
    return VolumeClimax(
        volume_multiple=volume_multiple,
        is_climax=volume_multiple >= CLIMAX_VOLUME,
        is_gold_standard=volume_multiple >= GOLD_VOLUME,
        is_exhaustion=volume_multiple >= EXHAUSTION_VOLUME,
    )


def format_news_type(news_type: str) -> str:
    return NEWS_LABELS.get(news_type, news_type)


class NewsShakeout(PhenomenonMachine):
    """
    Event-driven mean reversion after a news panic.

    Design principles:
    - Soft information (fears, rumors, downgrades) reverses; hard information
      (fraud, bankruptcy, recalls) does not
    - Never buy the panic day: forced selling takes 48-72 hours to clear
    - Outcome rolled once, on Day 3, and only if stabilization is confirmed
    - No stabilization = value trap, no roll
    - At most 2 shakeouts run market-wide at once

    Gold Standard criteria (85%):
    1. transient_news: the news does not change the 12-month outlook
    2. volume_climax: panic volume >= 5x average
    3. stabilization: Day 3 close > Day 2 close and above the Day 1 low
    4. rsi_oversold: RSI <= 20 after the panic
    """

    name = "news_shakeout"
    news_type = "news_shakeout"
    phases = ("panic", "stabilization", "entry", "recovery")
    criteria = ("transient_news", "volume_climax", "stabilization", "rsi_oversold")
    probability_table = GoldStandardTable({1: 0.50, 2: 0.65, 3: 0.75, 4: 0.85}, default=0.50)
    veto_table = {
        "terminalNews": 0.40,
        "noVolumeClimax": 0.15,
        "failedStabilization": 0.20,
        "sectorCollapse": 0.25,
        "priorDowntrend": 0.10,
    }
    probability_floor = 0.10
    probability_ceiling = 0.90
    cooldown_days = 10

    # === Trigger ===

    def active_count(self, securities: Sequence[Security]) -> int:
        return sum(1 for s in securities if s.has_state(self.name))

    def create_state(self, security: Security, options: Dict[str, Any]) -> PhenomenonState:
        news_type = options.get("news_type") or "macro_scare"
        classification = options.get("classification") or classify_news(news_type, options.get("news_content", ""))
        volume = volume_climax(options.get("volume_multiple") or security.volume_multiple)
        already_dropped = bool(options.get("already_dropped"))

        panic_drop = options.get("panic_drop")
        if panic_drop is None:
            panic_drop = self.uniform(*PANIC_IMPACT)
        magnitude = "severe" if abs(panic_drop) >= 0.20 else "strong" if abs(panic_drop) >= 0.12 else "moderate"

        # Reactive triggers start after the drop has already printed
        if already_dropped:
            pre_panic_price = security.price / (1 + panic_drop)
        else:
            pre_panic_price = options.get("pre_panic_price") or security.price

        state = PhenomenonState(
            phase="panic",
            phase_days=1,
            start_price=pre_panic_price,
            gold_standard={name: False for name in self.criteria},
            extra={
                "news_type": news_type,
                "category": classification.category,
                "base_reversal": classification.reversal_probability,
                "magnitude": magnitude,
                "panic_drop": panic_drop,
                "already_dropped": already_dropped,
                "panic_volume": volume.volume_multiple,
                "pre_panic_price": pre_panic_price,
                "panic_price": None,
                "day1_low": None,
                "day2_close": None,
                "day3_close": None,
                "rsi_at_panic": None,
                "current_rsi": None,
                "stabilization_days": options.get("stabilization_days") or self.randint(*STABILIZATION_DAYS),
                "recovery_days": options.get("recovery_days") or self.randint(*RECOVERY_DAYS),
            },
        )
        if classification.is_transient:
            state.gold_standard["transient_news"] = True
        if volume.is_gold_standard:
            state.gold_standard["volume_climax"] = True
        if classification.is_terminal:
            state.veto_factors.append("terminalNews")
        if not volume.is_climax:
            state.veto_factors.append("noVolumeClimax")
        return state

    def daily_trigger(self, securities: Sequence[Security]) -> List[PhenomenonState]:
        if not self.is_enabled():
            return []

        started = []
        for security in self.eligible(securities):
            if self.active_count(securities) >= MAX_CONCURRENT:
                break

            # Reactive: a big red day on climax volume already happened
            if security.daily_change <= REACTIVE_DROP and volume_climax(security.volume_multiple).is_climax:
                state = self.trigger(
                    security,
                    panic_drop=security.daily_change,
                    already_dropped=True,
                    news_type=self.choice(RANDOM_NEWS_TYPES),
                )
                if state is not None:
                    started.append(state)
                continue

            if self.random() < DAILY_PROBABILITY:
                state = self.trigger(
                    security,
                    panic_drop=self.uniform(*RANDOM_PANIC_DROP),
                    volume_multiple=self.uniform(*RANDOM_PANIC_VOLUME),
                    news_type=self.choice(RANDOM_NEWS_TYPES),
                    pre_panic_price=security.price,
                )
                if state is not None:
                    started.append(state)
        return started

    def compute_probability(self, state: PhenomenonState) -> float:
        if state.gold_standard.get("stabilization"):
            return super().compute_probability(state)
        # Before Day 3 only the news type counts
        probability = self.probability_table.table[1] if state.gold_standard.get("transient_news") else NON_TRANSIENT_START
        probability -= sum(self.veto_table.get(veto, 0.0) for veto in state.veto_factors)
        return clamp(probability, self.probability_floor, self.probability_ceiling)

    # === Process ===

    def advance(self, security: Security, state: PhenomenonState) -> Tuple[float, List[NewsRecord]]:
        handler = {
            "panic": self._panic,
            "stabilization": self._stabilization,
            "entry": self._entry,
            "recovery": self._recovery,
        }[state.phase]
        return handler(security, state)

    def _mock_panic_history(self, price: float, drop: float) -> List[float]:
        history = []
        level = price / (1 + drop)
        for _ in range(RSI_HISTORY_POINTS - 1):
            history.append(level)
            level *= 1 + (self.random() * 0.02 - 0.01)
        history.append(price)
        return history

    def _panic(self, security: Security, state: PhenomenonState) -> Tuple[float, List[NewsRecord]]:
        extra = state.extra
        drop = extra["panic_drop"]
        if extra["already_dropped"]:
            delta = 0.0
            panic_price = security.price
        else:
            delta = drop
            panic_price = security.price * (1 + drop)
        extra["panic_price"] = panic_price
        extra["day1_low"] = panic_price
        security.volume_multiple = extra["panic_volume"]

        rsi = calculate_rsi(self._mock_panic_history(panic_price, drop))
        extra["rsi_at_panic"] = extra["current_rsi"] = rsi
        if rsi <= RSI_OVERSOLD:
            self.mark_criterion(state, "rsi_oversold")

        label = format_news_type(extra["news_type"])
        headline = self.choice(SOFT_HEADLINES).format(symbol=security.symbol, drop=abs(drop) * 100, label=label)
        transient = state.gold_standard["transient_news"]
        news = [self.make_news(
            security, state,
            headline=headline,
            description=f"Stock crashes on {extra['panic_volume']:.1f}x normal volume. RSI drops to {rsi:.0f}. "
                        f"Is this a shakeout or the start of something worse?",
            sentiment=-0.9,
            telltale="NEWS CHECK: Transient news - monitor for stabilization." if transient
            else "WARNING: News may be terminal - wait for confirmation.",
            educational_note='LINGUISTIC FILTER: Soft info ("fears", "concerns", "rumors") reverses. '
                             'Hard info ("files", "sues", "fraud") is permanent.',
            trigger_news=extra["news_type"],
            news_category=extra["category"],
            panic_drop=drop,
            volume_multiple=extra["panic_volume"],
            rsi=rsi,
        )]

        logger.info(
            f"{security.symbol}: shakeout panic {drop * 100:.1f}% ({extra['news_type']}, "
            f"RSI={rsi:.0f}, vol={extra['panic_volume']:.1f}x)"
        )
        self.enter_phase(security, state, "stabilization", extra["stabilization_days"])
        return delta, news

    def _stabilization(self, security: Security, state: PhenomenonState) -> Tuple[float, List[NewsRecord]]:
        news: List[NewsRecord] = []
        extra = state.extra
        day = state.days_in_phase
        delta = self.uniform(*STABILIZATION_IMPACT)
        close = security.price * (1 + delta)

        if day == 1:
            extra["day2_close"] = close
        elif day == 2:
            extra["day3_close"] = close
        extra["current_rsi"] = min(50.0, extra["rsi_at_panic"] + day * 5 + self.random() * 5)
        extra["day1_low"] = min(extra["day1_low"], close)

        if day == 1:
            news.append(self.make_news(
                security, state,
                headline=f"{security.symbol} volatile as traders assess damage",
                description="Day 2: Stock stabilizing after yesterday's panic. Watching for continuation or reversal.",
                sentiment=-0.3,
                telltale="WAIT: Three-Day Rule - forced selling takes 48-72 hours to clear.",
                trigger_news=extra["news_type"],
            ))

        if day == 2:
            stabilized = extra["day3_close"] > extra["day2_close"] and extra["day3_close"] >= extra["day1_low"]
            if stabilized:
                self.mark_criterion(state, "stabilization")
                self.resolve_outcome(state)
                news.append(self._stabilized_news(security, state))
            else:
                state.extra.setdefault("forced_outcome", False)
                if "failedStabilization" not in state.veto_factors:
                    state.veto_factors.append("failedStabilization")
                self.resolve_outcome(state)
                news.append(self.make_news(
                    security, state,
                    headline=f"{security.symbol} fails to stabilize - caution warranted",
                    description="Day 3 close not above Day 2 or the panic low. "
                                "Stabilization pattern NOT confirmed. High risk of value trap.",
                    sentiment=-0.5,
                    telltale="FAILED STABILIZATION: Price keeps falling - this may be terminal.",
                    trigger_news=extra["news_type"],
                ))

        if state.phase_elapsed:
            extra["entry_price"] = close
            self.enter_phase(security, state, "entry", 1)
        return delta, news

    def _stabilized_news(self, security: Security, state: PhenomenonState) -> NewsRecord:
        extra = state.extra
        met = state.criteria_met
        telltale = ("GOLD STANDARD: all 4 criteria met - 85% gap fill probability, BUY signal"
                    if state.is_gold_standard
                    else f"{met}/4 criteria - {state.current_probability:.0%} probability")
        payload: Dict[str, Any] = {"trigger_news": extra["news_type"]}
        if extra["news_type"] == "analyst_downgrade" and abs(extra["panic_drop"]) >= 0.20:
            payload["institutional_trap"] = (
                f"LATE DOWNGRADE TRAP: Analyst cuts {security.symbol} AFTER a "
                f"{abs(extra['panic_drop']) * 100:.0f}% drop. Late downgrades flush the final retail sellers."
            )
        return self.make_news(
            security, state,
            headline=f"{security.symbol} shows signs of stabilization",
            description=f"Day 3: Stock closes higher than Day 2 and holds above panic low. "
                        f"{met}/4 criteria met. RSI at {extra['current_rsi']:.0f}.",
            sentiment=0.3,
            telltale=telltale,
            **payload,
        )

    def _entry(self, security: Security, state: PhenomenonState) -> Tuple[float, List[NewsRecord]]:
        extra = state.extra
        delta = self.uniform(*ENTRY_BOUNCE)
        target = extra["pre_panic_price"]
        gain = (target - security.price) / security.price
        news = [self.make_news(
            security, state,
            headline=f"{security.symbol} confirms reversal pattern",
            description=f"Entry signal triggered. Target: gap fill to ${target:.2f} ({gain * 100:+.0f}%).",
            sentiment=0.5,
            telltale="ENTRY: V-bottom forming - gap fill in progress." if state.will_succeed
            else "ENTRY: Pattern triggered but may fail - use stops.",
            trigger_news=extra["news_type"],
            gap_fill_target=target,
        )]
        self.enter_phase(security, state, "recovery", extra["recovery_days"])
        return delta, news

    def _recovery(self, security: Security, state: PhenomenonState) -> Tuple[float, List[NewsRecord]]:
        news: List[NewsRecord] = []
        extra = state.extra
        day = state.days_in_phase
        days = state.phase_days
        target = extra["pre_panic_price"]
        panic_price = extra["panic_price"]

        if state.will_succeed:
            taper = 1 - (day / days) * 0.6
            delta = self.uniform(*RECOVERY_IMPACT) * taper
            extra["current_rsi"] = min(70.0, extra["current_rsi"] + 3 + self.random() * 5)

            projected = security.price * (1 + delta)
            span = target - panic_price
            progress = (projected - panic_price) / span if span else 1.0

            if progress >= 0.5 and day == days // 2:
                news.append(self.make_news(
                    security, state,
                    headline=f"{security.symbol} recovery gaining momentum - 50% gap fill",
                    description=f"V-bottom playing out. Stock has recovered half the panic drop. "
                                f"RSI now {extra['current_rsi']:.0f}.",
                    sentiment=0.6,
                    telltale="HOLD: Gap fill on track - overreaction reversal confirmed.",
                ))

            if projected >= target * GAP_FILL_TOLERANCE:
                news.append(self.make_news(
                    security, state,
                    headline=f"{security.symbol} completes GAP FILL - overreaction fully reversed",
                    description=f"Stock returns to pre-panic level. Reversal within {state.day} days.",
                    sentiment=0.8,
                    phase=COMPLETE,
                    telltale="TARGET HIT: Gap filled - take profits or trail stop.",
                    gap_fill_percent=progress,
                ))
                self.enter_phase(security, state, COMPLETE)
                return delta, news
        else:
            delta = self.uniform(*FAILED_IMPACT)
            if day == 1:
                # Value trap: the panic was information, not emotion
                security.sentiment_offset += extra["panic_drop"] * FAILED_SENTIMENT_SHARE
                news.append(self.make_news(
                    security, state,
                    headline=f"{security.symbol} recovery stalls - value trap risk",
                    description="Bounce failing to gain traction. News may be more terminal than initially thought.",
                    sentiment=-0.4,
                    phase="failed",
                    telltale="VALUE TRAP: Recovery failing - not a true shakeout.",
                ))

        if state.phase_elapsed:
            final = security.price * (1 + delta)
            total_gain = (final - panic_price) / panic_price
            span = target - panic_price
            gap_fill = (final - panic_price) / span if span else 0.0
            if state.will_succeed:
                description = (f"Successful reversal: {total_gain * 100:+.1f}% from panic low. "
                               f"{gap_fill * 100:.0f}% gap fill achieved.")
            else:
                description = (f"Failed reversal: Only {gap_fill * 100:.0f}% gap fill. "
                               f"News was more impactful than expected.")
            news.append(self.make_news(
                security, state,
                headline=f"{security.symbol} news shakeout event complete",
                description=description,
                sentiment=0.7 if state.will_succeed else -0.3,
                phase=COMPLETE,
                telltale="COMPLETE: Overreaction hypothesis confirmed." if state.will_succeed
                else "COMPLETE: Value trap - news was terminal, not transient.",
                gap_fill_percent=gap_fill,
            ))
            self.enter_phase(security, state, COMPLETE)
        return delta, news

    # === Tutorial ===

    def phase_hints(self, news: NewsRecord) -> Dict[str, Dict[str, Any]]:
        met = news.criteria_met or 0
        total = news.total_criteria or 4
        trigger = news.payload.get("trigger_news") or "unknown"
        transient = news.payload.get("news_category", "transient") == "transient"
        succeeded = news.sentiment_label.value == "positive"
        value_trap = {
            "type": "News Shakeout FAILED - Value Trap",
            "description": "Recovery did NOT materialize. This was NOT overreaction - news was structural.",
            "implication": "Terminal news confirmed. Price likely continues lower. Cut losses.",
            "action": "EXIT if holding. This is a VALUE TRAP, not a shakeout.",
            "timing": "ENTRY: DO NOT BUY. EXIT: Stop out at panic low if still holding.",
            "catalyst": 'Distinguish "News Shakeout" (transient) from "Value Trap" (terminal). '
                        "The criteria filter helps.",
        }
        if met == total:
            entry_implication = "85%+ reversal probability. Overreaction pattern confirmed."
        else:
            entry_implication = f"{met}/{total} criteria met. ~{50 + met * 10}% probability."
        return {
            "panic": {
                "type": "News Shakeout PANIC - Do Not Buy Yet",
                "description": f"News-driven panic drop ({trigger}). Forced sellers (margin calls, funds) dumping shares.",
                "implication": "Panic selling NOT finished. More downside possible in next 24-48 hours.",
                "action": "DO NOT BUY. Wait for 3-day stabilization pattern before entry.",
                "timing": "ENTRY: NOT YET. Wait for Day 3 close > Day 2. EXIT: N/A.",
                "catalyst": "NEWS TYPE: TRANSIENT (downgrade, guidance miss, rumor). Mean reversion likely."
                if transient else "WARNING: Terminal news (fraud, bankruptcy) does NOT reverse. Verify news type!",
            },
            "stabilization": {
                "type": f"News Shakeout STABILIZATION - {met}/{total} criteria",
                "description": "Forced selling clearing out. Watching for 3-day stabilization pattern.",
                "implication": f"Stabilization in progress. {met}/{total} criteria met. Wait for Day 3 confirmation."
                if met >= 2 else "Too early to confirm stabilization. Need more criteria.",
                "action": "WATCH - Key test: Does Day 3 close ABOVE Day 2? Price must hold above panic low.",
                "timing": "ENTRY: Wait for Day 3+ confirmation. EXIT: N/A.",
                "catalyst": "Extreme losers outperform. Waiting for selling exhaustion to confirm.",
            },
            "entry": {
                "type": f"News Shakeout ENTRY SIGNAL - {met}/{total} criteria",
                "description": "3-day stabilization CONFIRMED. Mean reversion beginning.",
                "implication": entry_implication,
                "action": "BUY NOW - Stabilization confirmed. Classic overreaction reversal."
                if met >= 3 else "CONSIDER BUY - Some criteria missing, lower probability.",
                "timing": "ENTRY: On first green day after stabilization. EXIT: Gap fill target.",
                "catalyst": "Transient news, volume climax, Day 3 stabilization, RSI <= 20.",
            },
            "recovery": {
                "type": "News Shakeout RECOVERY - Gap Fill in Progress",
                "description": "Mean reversion playing out. Price recovering toward pre-panic level.",
                "implication": "Extreme losers tend to outperform within 30-90 days.",
                "action": "HOLD - Trail stop at breakeven. Target gap fill (pre-panic price).",
                "timing": "ENTRY: Late but ok if still below gap fill. EXIT: At gap fill target.",
                "catalyst": "High media negativity predicts reversion to fundamentals within 5-10 days.",
            },
            "failed": value_trap,
            COMPLETE: {
                "type": "News Shakeout COMPLETE",
                "description": "Overreaction recovery finished. Gap filled or pattern concluded.",
                "implication": "Successful reversal - typical +8% to +15% gain from panic low." if succeeded
                else "Value trap - terminal news prevented recovery.",
                "action": "TAKE PROFITS if holding. Trade complete.",
                "timing": "ENTRY: N/A. EXIT: Sell remaining position.",
                "catalyst": "Transient news reverses (85%). Terminal news (fraud, bankruptcy) = value trap.",
            },
        }

