# executive_change.py
# Leadership departure: announcement drop -> 3-day stabilization -> reversal or re-rating
# The 8-K and the successor decide it. Abrupt exits with no successor rarely come back.

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple

from market_utils import clamp
from news_schema import NewsRecord, NewsSentiment
from phenomenon_machine import COMPLETE, PhenomenonMachine, PhenomenonState, in_family
from security_schema import Security

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ChangeProfile:
    label: str
    share: float                                 # Share of all announcements
    reversal_probability: float
    announcement: Tuple[float, float]            # Day-1 drop
    stabilization: Tuple[float, float]           # Daily drift while the low is tested
    resolution: Tuple[float, float]              # Total recovery when it reverses
    resolution_days: Tuple[int, int]


# Ordered: classification walks the cumulative shares in this order
CHANGE_TYPES: Dict[str, ChangeProfile] = {
    "abrupt_no_successor": ChangeProfile(
        "ABRUPT DEPARTURE (Fundamental Risk)", 0.15, 0.15,
        (-0.25, -0.15), (-0.05, -0.02), (-0.10, -0.05), (20, 40),
    ),
    "cfo_exit_clean": ChangeProfile(
        "CFO EXIT (Slow Recovery)", 0.25, 0.50,
        (-0.08, -0.03), (-0.02, 0.01), (0.02, 0.05), (30, 60),
    ),
    "planned_internal": ChangeProfile(
        "PLANNED TRANSITION (Good Reversal)", 0.35, 0.70,
        (-0.10, -0.05), (-0.01, 0.02), (0.05, 0.10), (7, 14),
    ),
    "gold_standard": ChangeProfile(
        "GOLD STANDARD (85%+ Reversal)", 0.25, 0.85,
        (-0.10, -0.05), (0.0, 0.02), (0.08, 0.15), (7, 14),
    ),
}


@dataclass(frozen=True)
class Successor:
    title: str
    name: str
    is_internal: bool


SUCCESSORS: Tuple[Successor, ...] = (
    Successor("COO", "J. Smith", True),
    Successor("President", "M. Johnson", True),
    Successor("CFO", "R. Williams", True),
    Successor("Division Head", "S. Davis", True),
    Successor("Board Member", "T. Wilson", False),
    Successor("External Hire", "Search Firm", False),
)
INTERNAL_SUCCESSORS = tuple(s for s in SUCCESSORS if s.is_internal)

# === 8-K language ===
EIGHT_K_TEXT = {
    "clean": "There were no disagreements with the Company on any matter of accounting principles or practices, "
             "financial statement disclosure, or auditing scope or procedure.",
    "warning": "The departure followed discussions regarding certain accounting and disclosure matters.",
    "red_flag": "The Company has initiated an internal review of certain accounting practices.",
}

ABRUPT_LANGUAGE = ("effective immediately", "personal reasons", "pursue other opportunities")
PLANNED_LANGUAGE = ("retirement", "planned transition", "after distinguished career")
NEUTRAL_LANGUAGE = ("new opportunity", "personal decision", "transition")
WARNING_LANGUAGE = ("effective immediately", "personal reasons")

# === Signal adjustments ===
INTERNAL_SUCCESSOR_BONUS = 0.10
CLEAN_AUDIT_BONUS = 0.10
CAPITULATION_BONUS = 0.05
CAPITULATION_VOLUME = 3.0
STABILIZATION_HOLD_DAYS = 3

GOLD_STANDARD_WEIGHTS = {
    "succession_integrity": 0.30,
    "clean_audit": 0.25,
    "volume_capitulation": 0.25,
    "three_day_stabilization": 0.20,
}

# === Timeline ===
ANNOUNCEMENT_DAYS = (1, 2)
STABILIZATION_DAYS = (3, 5)
FOLLOW_THROUGH = 0.3                   # Share of the day-1 edge that repeats while news sinks in
SENTIMENT_HIT = 0.03
RECOVERY_SENTIMENT = 0.015

DAILY_CHANCE = 0.012

HEADLINES = {
    "abrupt_no_successor": {
        "announcement": (
            "BREAKING: {symbol} {role} resigns effective immediately",
            "{symbol} {role} departs abruptly - no successor named",
            "{symbol} shares plunge as {role} exits without replacement",
        ),
        "stabilization": (
            "{symbol} continues slide - leadership vacuum concerns mount",
            "{symbol} finds no support - investors flee uncertainty",
            "Analysts slash {symbol} targets amid leadership crisis",
        ),
        "resolution": (
            '{symbol} in freefall - "fundamental breakdown" says analyst',
            "{symbol} establishes new low - recovery unlikely without clarity",
            "{symbol} decline continues - short interest surges",
        ),
    },
    "cfo_exit_clean": {
        "announcement": (
            "{symbol} CFO announces departure - auditor confirms clean books",
            "{symbol} CFO to retire after long tenure",
            "{symbol} CFO exits for new opportunity - transition underway",
        ),
        "stabilization": (
            '{symbol} stabilizes after CFO news - "no red flags" says Big 4',
            "{symbol} finds support - clean audit calms nerves",
            "{symbol} CFO transition: Board names interim, search begins",
        ),
        "resolution": (
            "{symbol} begins slow recovery - CFO concerns fade",
            '{symbol} drifts higher - "non-event" says analyst after clean 8-K',
            "{symbol} approaching pre-announcement levels - 6-month recovery on track",
        ),
    },
    "planned_internal": {
        "announcement": (
            "{symbol} CEO to retire - {successor} named successor",
            "{symbol} announces leadership transition: {successor} promoted to CEO",
            "{symbol} CEO succession: {successor} to take helm",
        ),
        "stabilization": (
            "{symbol} finds footing after succession news",
            '{symbol} stabilizes - "continuity assured" says board',
            "{symbol} holds Day 1 low - institutional buyers step in",
        ),
        "resolution": (
            "{symbol} rallies as succession fears fade",
            '{symbol} recovers - "Uncertainty Premium" evaporates',
            "{symbol} back to pre-announcement - classic shakeout pattern",
        ),
    },
    "gold_standard": {
        "announcement": (
            "{symbol} CEO retirement announced - {successor} named immediately",
            "{symbol} planned transition: {successor} to succeed, clean 8-K filed",
            "{symbol} drops on CEO news - but succession plan intact",
        ),
        "stabilization": (
            '{symbol} holds Day 1 low - "textbook setup" says trader',
            "{symbol} 3-day stabilization: Volume climax, now support",
            "{symbol} institutional accumulation detected after CEO news",
        ),
        "resolution": (
            "{symbol} stages full recovery - Gold Standard pattern complete",
            "{symbol} back to pre-CEO-news levels in just {days} days",
            '{symbol}: "Uncertainty Premium" trade pays off - +{gain:.0f}% from lows',
        ),
    },
}


def classify_change(roll: float) -> str:
    """Map a uniform roll onto the change-type shares."""
    cumulative = 0.0
    for change_type, profile in CHANGE_TYPES.items():
        cumulative += profile.share
        if roll < cumulative:
            return change_type
    return "gold_standard"


class ExecutiveChange(PhenomenonMachine):
    """
    CEO or CFO departure and the "Uncertainty Premium" it creates.

    Design principles:
    - Four change types set the base odds: abrupt 15%, CFO exit 50%,
      planned internal 70%, gold standard 85%
    - Signals known on announcement adjust the odds; the reversal is
      rolled once, at trigger
    - "Effective immediately" or "personal reasons" is a veto
    - Day 1 low is the line: three closes at or above it confirm support
    - Never runs alongside a crash-family pattern or a strategic pivot

    Gold Standard criteria (85%):
    1. succession_integrity: internal successor named with the announcement
    2. clean_audit: 8-K states no disagreements on accounting matters
    3. volume_capitulation: announcement volume >= 3x average
    4. three_day_stabilization: Day 1 low holds for 3 sessions
    """

    name = "executive_change"
    news_type = "executive_change"
    phases = ("announcement", "stabilization", "resolution")
    criteria = ("succession_integrity", "clean_audit", "volume_capitulation", "three_day_stabilization")
    veto_table = {"warningLanguage": 0.15}
    probability_floor = 0.05
    probability_ceiling = 0.95

    # === Trigger ===

    def check_preconditions(self, security: Security, options: Dict[str, Any]) -> bool:
        change_type = options.get("change_type")
        if change_type is not None and change_type not in CHANGE_TYPES:
            logger.debug(f"{security.symbol}: unknown change type {change_type!r}")
            return False
        return True

    def create_state(self, security: Security, options: Dict[str, Any]) -> PhenomenonState:
        change_type = options.get("change_type") or classify_change(self.random())
        planned = change_type in ("planned_internal", "gold_standard")
        abrupt = change_type == "abrupt_no_successor"

        if "successor" in options:
            successor = options["successor"]
        elif planned:
            successor = self.choice(INTERNAL_SUCCESSORS)
        elif not abrupt and self.random() > 0.5:
            successor = self.choice(SUCCESSORS)
        else:
            successor = None

        eight_k = options.get("eight_k") or self._eight_k(change_type)
        if options.get("volume_multiple") is not None:
            volume = options["volume_multiple"]
        elif change_type == "gold_standard":
            volume = 3 + self.random() * 2
        else:
            volume = 1.5 + self.random() * 2

        language = options.get("departure_language") or self.choice(
            ABRUPT_LANGUAGE if abrupt else PLANNED_LANGUAGE if planned else NEUTRAL_LANGUAGE
        )
        announcement_days = options.get("announcement_days") or self.randint(*ANNOUNCEMENT_DAYS)

        state = PhenomenonState(
            phase="announcement",
            phase_days=1 + announcement_days,
            start_price=security.price,
            extra={
                "change_type": change_type,
                "role": "CFO" if change_type == "cfo_exit_clean" else "CEO",
                "successor": successor,
                "eight_k": eight_k,
                "volume_multiple": volume,
                "departure_language": language,
                "stabilization_days": options.get("stabilization_days") or self.randint(*STABILIZATION_DAYS),
                "resolution_days": options.get("resolution_days")
                or self.randint(*CHANGE_TYPES[change_type].resolution_days),
                "day1_low": None,
                "days_held": 0,
            },
        )
        if language in WARNING_LANGUAGE:
            state.veto_factors.append("warningLanguage")
        return state

    def _eight_k(self, change_type: str) -> str:
        if change_type == "abrupt_no_successor":
            return "warning" if self.random() > 0.3 else "red_flag"
        if change_type == "gold_standard":
            return "clean"
        return "clean" if self.random() > 0.2 else "warning"

    def on_trigger(self, security: Security, state: PhenomenonState) -> List[NewsRecord]:
        extra = state.extra
        if extra["successor"] is not None and extra["successor"].is_internal:
            self.mark_criterion(state, "succession_integrity")
        if extra["eight_k"] == "clean":
            self.mark_criterion(state, "clean_audit")
        if extra["volume_multiple"] >= CAPITULATION_VOLUME:
            self.mark_criterion(state, "volume_capitulation")
        security.volume_multiple = extra["volume_multiple"]
        security.sentiment_offset -= SENTIMENT_HIT * self.meme(security)
        self.resolve_outcome(state)

        change_type = extra["change_type"]
        if change_type == "gold_standard":
            note = ("GOLD STANDARD SETUP: Check for (1) Internal successor, (2) Clean 8-K, "
                    "(3) Volume 3x+, (4) 3-day stabilization")
        elif change_type == "abrupt_no_successor":
            note = "RED FLAGS: No successor + concerning language = likely fundamental issue, NOT a shakeout"
        else:
            note = "ANALYZE SIGNALS: Check successor status, 8-K language, and volume for reversal probability"

        return [self.make_news(
            security, state,
            headline=self._headline(security, state, "announcement"),
            description=f'Departure announced: "{extra["departure_language"]}". {self._succession_text(state)}. '
                        f"{self._audit_text(state)}. {self._volume_text(state)}.",
            sentiment=NewsSentiment.NEGATIVE,
            educational_note=note,
            **self._payload(state),
        )]

    def daily_trigger(self, securities: Sequence[Security]) -> List[PhenomenonState]:
        if not self.is_enabled():
            return []
        started = []
        for security in self.eligible(securities):
            if self.random() < DAILY_CHANCE:
                state = self.trigger(security)
                if state is not None:
                    started.append(state)
        return started

    def eligible(self, securities: Sequence[Security]) -> List[Security]:
        return [s for s in securities if self.can_trigger(s) and not in_family(s, "crash")]

    # === Probability ===

    def compute_probability(self, state: PhenomenonState) -> float:
        extra = state.extra
        state.base_probability = CHANGE_TYPES[extra["change_type"]].reversal_probability
        probability = state.base_probability
        if state.gold_standard.get("succession_integrity"):
            probability += INTERNAL_SUCCESSOR_BONUS
        if state.gold_standard.get("clean_audit"):
            probability += CLEAN_AUDIT_BONUS
        if state.gold_standard.get("volume_capitulation"):
            probability += CAPITULATION_BONUS
        probability -= sum(self.veto_table[v] for v in state.veto_factors)
        return clamp(probability, self.probability_floor, self.probability_ceiling)

    def signal_strength(self, state: PhenomenonState) -> float:
        return sum(GOLD_STANDARD_WEIGHTS[name] for name, met in state.gold_standard.items() if met)

    # === Process ===

    def advance(self, security: Security, state: PhenomenonState) -> Tuple[float, List[NewsRecord]]:
        handler = {
            "announcement": self._announcement,
            "stabilization": self._stabilization,
            "resolution": self._resolution,
        }[state.phase]
        return handler(security, state)

    def _profile(self, state: PhenomenonState) -> ChangeProfile:
        return CHANGE_TYPES[state.extra["change_type"]]

    def _announcement(self, security: Security, state: PhenomenonState) -> Tuple[float, List[NewsRecord]]:
        profile = self._profile(state)
        meme = self.meme(security)
        if state.days_in_phase == 1:
            delta = self.uniform(*profile.announcement) * meme
        else:
            delta = self.uniform(profile.announcement[1] * FOLLOW_THROUGH, 0.0) * meme

        if not state.phase_elapsed:
            return delta, []

        state.extra["day1_low"] = security.price * (1 + delta)
        self.enter_phase(security, state, "stabilization", state.extra["stabilization_days"])
        extra = state.extra
        if extra["eight_k"] == "clean":
            description = (f"Stock finding support after initial drop. {self._audit_text(state)}. "
                           f"{self._succession_text(state)}.")
        else:
            description = f"Uncertainty continues. {self._audit_text(state)}. Market awaits clarity."
        return delta, [self.make_news(
            security, state,
            headline=self._headline(security, state, "stabilization"),
            description=description,
            sentiment=NewsSentiment.NEGATIVE if extra["change_type"] == "abrupt_no_successor"
            else NewsSentiment.NEUTRAL,
            educational_note=f"3-DAY RULE: Watching if the Day 1 low of ${extra['day1_low']:.2f} holds",
            **self._payload(state),
        )]

    def _stabilization(self, security: Security, state: PhenomenonState) -> Tuple[float, List[NewsRecord]]:
        extra = state.extra
        delta = self.uniform(*self._profile(state).stabilization)
        close = security.price * (1 + delta)

        if close >= extra["day1_low"]:
            extra["days_held"] += 1
        else:
            extra["days_held"] = 0
            extra["day1_low"] = close
        if extra["days_held"] >= STABILIZATION_HOLD_DAYS:
            self.mark_criterion(state, "three_day_stabilization")

        if not state.phase_elapsed:
            return delta, []

        self.enter_phase(security, state, "resolution", extra["resolution_days"])
        if state.will_succeed:
            description = (f'Classic "Uncertainty Premium" evaporation. {self._succession_text(state)}. '
                           f"Clean 8-K + internal successor = News Shakeout pattern.")
            note = ("GOLD STANDARD: Internal successor + Clean 8-K + Volume capitulation + "
                    "3-day stabilization = 85% reversal")
        else:
            description = ("Decline continues as market digests leadership vacuum. "
                           "No clear succession + concerning 8-K language = fundamental re-rating.")
            note = "FUNDAMENTAL DECLINE: Missing key signals indicates structural change, not shakeout"
        return delta, [self.make_news(
            security, state,
            headline=self._headline(security, state, "resolution", close=close),
            description=description,
            sentiment=NewsSentiment.POSITIVE if state.will_succeed else NewsSentiment.NEGATIVE,
            educational_note=note,
            **self._payload(state),
        )]

    def _resolution(self, security: Security, state: PhenomenonState) -> Tuple[float, List[NewsRecord]]:
        profile = self._profile(state)
        meme = self.meme(security)
        remaining = max(1, state.phase_days - state.days_in_phase)

        if state.will_succeed:
            delta = self.uniform(*profile.resolution) / remaining
            security.sentiment_offset += RECOVERY_SENTIMENT * meme
        else:
            # Slow bleed, whichever way the type's recovery range points
            depth = abs(profile.resolution[0])
            delta = -depth * 0.5 + self.random() * depth * 0.3

        if not state.phase_elapsed:
            return delta, []

        role = state.extra["role"]
        final = security.price * (1 + delta)
        change = (final - state.start_price) / state.start_price
        logger.info(
            f"{security.symbol}: executive change resolved, type={state.extra['change_type']}, "
            f"reversed={state.will_succeed}, change={change * 100:+.1f}%"
        )
        if state.will_succeed:
            news = self.make_news(
                security, state,
                headline=f"{security.symbol} fully recovers from {role} transition - back to pre-announcement levels",
                description='The "Uncertainty Premium" has fully evaporated. Internal succession + clean audit + '
                            "3-day stabilization confirmed this was a News Shakeout, not a fundamental issue.",
                sentiment=NewsSentiment.POSITIVE,
                phase=COMPLETE,
                educational_note="PATTERN COMPLETE: Executive change with succession integrity "
                                 "typically recovers in 10-14 days",
                total_change=change,
                **self._payload(state),
            )
        else:
            news = self.make_news(
                security, state,
                headline=f'{security.symbol} continues decline after {role} departure - "leadership vacuum" concerns',
                description="Without clear succession or with concerning 8-K language, the market has re-rated "
                            "the stock. This was NOT a shakeout - fundamental uncertainty remains.",
                sentiment=NewsSentiment.NEGATIVE,
                phase=COMPLETE,
                educational_note="VALUE TRAP: Missing gold standard signals (no successor, 8-K concerns) "
                                 "= <15% reversal probability",
                total_change=change,
                **self._payload(state),
            )
        self.enter_phase(security, state, COMPLETE)
        return delta, [news]

    # === News text ===

    def _headline(self, security: Security, state: PhenomenonState, phase: str,
                  close: Optional[float] = None) -> str:
        extra = state.extra
        successor = extra["successor"]
        low = extra["day1_low"] or security.price
        return self.choice(HEADLINES[extra["change_type"]][phase]).format(
            symbol=security.symbol,
            role=extra["role"],
            successor=successor.title if successor else "TBD",
            days=state.day,
            gain=((close or security.price) / low - 1) * 100,
        )

    def _succession_text(self, state: PhenomenonState) -> str:
        successor = state.extra["successor"]
        if successor is None:
            return "No successor announced - board initiating search"
        return f"{successor.title} {successor.name} named as successor"

    def _audit_text(self, state: PhenomenonState) -> str:
        if state.extra["eight_k"] == "clean":
            return '8-K confirms: "No disagreements on accounting matters"'
        return "8-K contains concerning language about accounting/practices"

    def _volume_text(self, state: PhenomenonState) -> str:
        volume = state.extra["volume_multiple"]
        if volume >= CAPITULATION_VOLUME:
            return f"Volume {volume:.1f}x average - capitulation selling detected"
        return f"Volume {volume:.1f}x average - below 3x threshold"

    def _payload(self, state: PhenomenonState) -> Dict[str, Any]:
        extra = state.extra
        successor = extra["successor"]
        return {
            "change_type": extra["change_type"],
            "role": extra["role"],
            "successor": f"{successor.title} {successor.name}" if successor else None,
            "eight_k": extra["eight_k"],
            "filing_text": EIGHT_K_TEXT[extra["eight_k"]],
            "departure_language": extra["departure_language"],
            "volume_multiple": extra["volume_multiple"],
        }

    # === Tutorial ===

    def phase_hints(self, news: NewsRecord) -> Dict[str, Dict[str, Any]]:
        change_type = news.payload.get("change_type", "planned_internal")
        probability = news.probability if news.probability is not None else 0.5
        profile = CHANGE_TYPES.get(change_type, CHANGE_TYPES["planned_internal"])
        held = bool((news.gold_standard or {}).get("three_day_stabilization"))

        if change_type == "abrupt_no_successor":
            description = "Abrupt departure without successor - high risk of further decline."
        elif change_type == "gold_standard":
            description = "All 4 gold standard signals present - high probability reversal setup."
        else:
            description = "Leadership transition with mixed signals - analyze carefully."

        if probability >= 0.70:
            action = "BUY after 3-day stabilization confirms support."
        elif probability >= 0.50:
            action = "WAIT for clearer signals before committing."
        else:
            action = "DO NOT BUY - high risk of continued decline."

        filter_text = ('8-K LANGUAGE FILTER: CLEAN "No disagreements on accounting matters" = Good. '
                       'WARNING "Effective immediately", "personal reasons", "disagreements" = Bad. '
                       "The 8-K boilerplate is the #1 predictor of reversal vs crash.")
        base = {
            "type": profile.label,
            "description": description,
            "implication": f"{probability:.0%} reversal probability based on signals.",
            "action": action,
            "catalyst": filter_text,
        }
        return {
            "announcement": dict(base, timing="ENTRY: Not on Day 1. Wait for 3 sessions above the Day 1 low."),
            "stabilization": dict(
                base,
                timing="ENTRY ZONE: 3-day stabilization confirmed. Consider buying now." if held
                else "WAIT: Day 1 low must hold for 3 sessions.",
            ),
            "resolution": dict(
                base,
                timing="EXIT ZONE: Take profits as price approaches pre-announcement." if probability >= 0.70
                else "Decline likely to continue.",
            ),
            COMPLETE: dict(base, timing="Pattern finished. EXIT any remaining position."),
        }
