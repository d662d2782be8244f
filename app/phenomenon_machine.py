# phenomenon_machine.py
# Generic multi-day phenomenon state machine + Gold Standard scorer
# Every phenomenon is this class plus its tables. No per-phenomenon plumbing.

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, ClassVar, Dict, List, Optional, Sequence, Tuple

from market_utils import clamp
from news_schema import NewsRecord, NewsSentiment
from security_schema import Security
from sim_context import SimulationContext, build_context

logger = logging.getLogger(__name__)


COMPLETE = "complete"

# At most one member of a family may be active on a security.
FAMILIES: Dict[str, Tuple[str, ...]] = {
    "crash": ("dead_cat_bounce", "short_seller_report", "news_shakeout", "liquidity_sweep"),
    "squeeze": ("short_squeeze", "fomo_rally"),
    "manipulation": ("institutional_manipulation",),
    "split": ("stock_split",),
    "index": ("index_rebalancing",),
    "corporate": ("executive_change", "strategic_pivot"),
}

# Phenomena whose scripted move needs the random walk damped.
QUIET_NOISE_PHENOMENA: Tuple[str, ...] = ("dead_cat_bounce", "short_seller_report", "news_shakeout")

# Phenomena that also damp the security's base trend.
TREND_DAMPED_PHENOMENA: Tuple[str, ...] = ("dead_cat_bounce",)

HINT_KEYS: Tuple[str, ...] = ("type", "description", "implication", "action", "timing", "catalyst")


def family_of(name: str) -> Optional[str]:
    for family, members in FAMILIES.items():
        if name in members:
            return family
    return None


def in_family(security: Security, family: str) -> bool:
    """True when any member of the family is active on the security."""
    return any(security.has_state(member) for member in FAMILIES.get(family, ()))


@dataclass
class PhenomenonState:
    """
    One active phenomenon instance on one security.

    What the machine remembers between days. Lives in security.states[name]
    and is deleted when the phase reaches "complete".
    """

    # === Phase tracking ===
    phase: str
    start_day: int = 0
    start_price: float = 0.0
    day: int = 0                    # Days processed since trigger
    days_in_phase: int = 0
    phase_days: int = 0             # Planned length of the current phase
    daily_bias: float = 0.0         # Last price delta produced by process()

    # === Gold Standard ===
    gold_standard: Dict[str, bool] = field(default_factory=dict)
    base_probability: float = 0.0
    current_probability: float = 0.0
    veto_factors: List[str] = field(default_factory=list)

    # === Outcome (rolled once) ===
    outcome_decided: bool = False
    will_succeed: Optional[bool] = None

    # === Phenomenon payload ===
    extra: Dict[str, Any] = field(default_factory=dict)

    @property
    def criteria_met(self) -> int:
        return sum(1 for met in self.gold_standard.values() if met)

    @property
    def total_criteria(self) -> int:
        return len(self.gold_standard)

    @property
    def is_gold_standard(self) -> bool:
        return self.total_criteria > 0 and self.criteria_met == self.total_criteria

    @property
    def phase_elapsed(self) -> bool:
        return self.days_in_phase >= self.phase_days


@dataclass(frozen=True)
class GoldStandardTable:
    """
    Hand-tuned lookup: criteria met -> success probability.

    Counts missing from the table fall back to the nearest lower entry,
    then to `default`.
    """
    table: Dict[int, float]
    default: float = 0.0

    def probability(self, met: int, total: Optional[int] = None) -> float:
        if met in self.table:
            return self.table[met]
        lower = [count for count in self.table if count < met]
        if lower:
            return self.table[max(lower)]
        return self.default


@dataclass(frozen=True)
class ProcessResult:
    """One day of one phenomenon on one security."""
    price_delta: float = 0.0
    news: Tuple[NewsRecord, ...] = ()
    phase: Optional[str] = None
    completed: bool = False


@dataclass(frozen=True)
class SignalReading:
    """Read-only view of an active instance, for hints and scripted agents."""
    strength: float
    phase: str
    is_gold_standard: bool
    probability: float
    criteria_met: int
    total_criteria: int
    daily_bias: float = 0.0


class PhenomenonMachine:
    """
    Base class for every multi-day market phenomenon.

    Design principles:
    - Subclasses declare tables (phases, criteria, probability, vetoes)
      and implement create_state() and advance(); nothing else is required
    - trigger() never mutates the security when it returns None
    - process() advances exactly one day and tears the slot down when the
      feature flag is switched off
    - Gold Standard flags are monotonic: once met, never unset
    - The success outcome is rolled once, then cached on the state
    - calculate_signal() and get_tutorial_hint() are pure

    Lifecycle:
        trigger -> [process]* -> phase "complete" -> slot deleted (+ cooldown)

    Subclass hooks:
        check_preconditions(security, options) -> bool
        create_state(security, options) -> PhenomenonState
        on_trigger(security, state) -> List[NewsRecord]
        advance(security, state) -> Tuple[float, List[NewsRecord]]
        teardown(security, state)
        daily_trigger(securities)
        phase_hints(news) -> Dict[str, Dict]
    """

    name: ClassVar[str] = ""
    feature_flag: ClassVar[Optional[str]] = None
    news_type: ClassVar[str] = ""
    phases: ClassVar[Tuple[str, ...]] = ()
    criteria: ClassVar[Tuple[str, ...]] = ()
    probability_table: ClassVar[Optional[GoldStandardTable]] = None
    veto_table: ClassVar[Dict[str, float]] = {}
    probability_floor: ClassVar[float] = 0.10
    probability_ceiling: ClassVar[float] = 0.90
    cooldown_days: ClassVar[int] = 0

    def __init__(self, context: Optional[SimulationContext] = None):
        self.context = build_context(context)

    def init(self, deps: Any) -> "PhenomenonMachine":
        """Re-bind to a new context (or dependency mapping)."""
        self.context = build_context(deps)
        return self

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r}, family={self.family!r})"

    # === Context shortcuts ===

    @property
    def family(self) -> Optional[str]:
        return family_of(self.name)

    @property
    def flag(self) -> str:
        return self.feature_flag or self.name

    def is_enabled(self) -> bool:
        return self.context.enabled(self.flag)

    def random(self) -> float:
        return self.context.random()

    def uniform(self, low: float, high: float) -> float:
        return self.context.uniform(low, high)

    def randint(self, low: int, high: int) -> int:
        return self.context.randint(low, high)

    def choice(self, items: Sequence[Any]) -> Any:
        return self.context.choice(items)

    def meme(self, security: Security) -> float:
        return self.context.meme(security)

    # === Trigger ===

    def family_conflict(self, security: Security) -> Optional[str]:
        """Name of an active same-family phenomenon, if any."""
        family = self.family
        if family is None:
            return None
        for member in FAMILIES[family]:
            if member != self.name and security.has_state(member):
                return member
        return None

    def can_trigger(self, security: Security) -> bool:
        if not self.is_enabled():
            logger.debug(f"{security.symbol}: {self.name} rejected, feature disabled")
            return False
        if security.has_state(self.name):
            logger.debug(f"{security.symbol}: {self.name} rejected, already active")
            return False
        conflict = self.family_conflict(security)
        if conflict:
            logger.debug(f"{security.symbol}: {self.name} rejected, {conflict} active in family {self.family}")
            return False
        if security.cooldowns.get(self.name, 0) > 0:
            logger.debug(f"{security.symbol}: {self.name} rejected, cooldown {security.cooldowns[self.name]}d")
            return False
        return True

    def trigger(self, security: Security, **options) -> Optional[PhenomenonState]:
        """
        Start the phenomenon on a security.

        Args:
            security: Target security
            **options: Phenomenon-specific overrides (durations, ratios,
                       forced_outcome for deterministic tests, ...)

        Returns:
            The new state, or None when any precondition fails
        """
        if not self.can_trigger(security):
            return None
        if not self.check_preconditions(security, options):
            logger.debug(f"{security.symbol}: {self.name} rejected, preconditions not met")
            return None

        state = self.create_state(security, options)
        state.start_day = self.context.day
        if not state.start_price:
            state.start_price = security.price
        if not state.gold_standard:
            state.gold_standard = {name: False for name in self.criteria}
        if "forced_outcome" in options:
            state.extra["forced_outcome"] = bool(options["forced_outcome"])
        for veto in options.get("veto_factors", ()):
            if veto in self.veto_table and veto not in state.veto_factors:
                state.veto_factors.append(veto)

        security.states[self.name] = state
        self.refresh_probability(state)
        logger.info(f"{security.symbol}: {self.name} triggered, phase={state.phase}")

        for record in self.on_trigger(security, state):
            self.emit(record)
        return state

    def check_preconditions(self, security: Security, options: Dict[str, Any]) -> bool:
        return True

    def create_state(self, security: Security, options: Dict[str, Any]) -> PhenomenonState:
        raise NotImplementedError

    def on_trigger(self, security: Security, state: PhenomenonState) -> List[NewsRecord]:
        return []

    def daily_trigger(self, securities: Sequence[Security]) -> List[PhenomenonState]:
        """Random start-of-phenomenon checks. Default: none."""
        return []

    def eligible(self, securities: Sequence[Security]) -> List[Security]:
        return [s for s in securities if self.can_trigger(s)]

    # === Process ===

    def daily_update(self, security: Security) -> None:
        """Bookkeeping run on every security each day, active or not."""

    def tick_cooldown(self, security: Security) -> None:
        remaining = security.cooldowns.get(self.name, 0)
        if remaining > 1:
            security.cooldowns[self.name] = remaining - 1
        elif remaining:
            del security.cooldowns[self.name]

    def process(self, security: Security) -> ProcessResult:
        """
        Advance the active instance by one day.

        Returns:
            ProcessResult; empty when nothing is active or the feature
            flag was switched off (slot torn down, no news)
        """
        state = security.get_state(self.name)
        if state is None:
            return ProcessResult()

        if not self.is_enabled():
            self.teardown(security, state)
            security.states.pop(self.name, None)
            logger.info(f"{security.symbol}: {self.name} cancelled, feature disabled")
            return ProcessResult()

        state.day += 1
        state.days_in_phase += 1

        price_delta, news = self.advance(security, state)
        state.daily_bias = price_delta
        self.refresh_probability(state)

        emitted = tuple(self.emit(record) for record in news)

        completed = state.phase == COMPLETE
        if completed:
            self.finish(security)

        return ProcessResult(
            price_delta=price_delta,
            news=emitted,
            phase=state.phase,
            completed=completed,
        )

    def advance(self, security: Security, state: PhenomenonState) -> Tuple[float, List[NewsRecord]]:
        raise NotImplementedError

    def enter_phase(self, security: Security, state: PhenomenonState, phase: str, days: int = 0) -> None:
        if phase not in self.phases and phase != COMPLETE:
            raise ValueError(f"{self.name}: unknown phase {phase!r}")
        logger.info(f"{security.symbol}: {self.name} {state.phase} -> {phase}")
        state.phase = phase
        state.days_in_phase = 0
        state.phase_days = days

    def finish(self, security: Security) -> None:
        security.states.pop(self.name, None)
        if self.cooldown_days:
            security.cooldowns[self.name] = self.cooldown_days
        logger.info(f"{security.symbol}: {self.name} complete")

    def teardown(self, security: Security, state: PhenomenonState) -> None:
        """Undo shared-field side effects when cancelled. Default: nothing."""

    # === Gold Standard scoring ===

    def mark_criterion(self, state: PhenomenonState, name: str) -> bool:
        """
        Set a criterion flag. Flags only ever go False -> True.

        Returns:
            True if the flag changed
        """
        if name not in state.gold_standard:
            logger.warning(f"{self.name}: unknown criterion {name!r}")
            return False
        if state.gold_standard[name]:
            return False
        state.gold_standard[name] = True
        self.refresh_probability(state)
        return True

    def compute_probability(self, state: PhenomenonState) -> float:
        """Table lookup, minus veto penalties, clamped to floor/ceiling."""
        if self.probability_table is not None:
            probability = self.probability_table.probability(state.criteria_met, state.total_criteria)
        else:
            probability = state.base_probability
        probability -= sum(self.veto_table.get(veto, 0.0) for veto in state.veto_factors)
        return clamp(probability, self.probability_floor, self.probability_ceiling)

    def refresh_probability(self, state: PhenomenonState) -> float:
        """Recompute until the outcome is rolled; frozen afterwards."""
        if not state.outcome_decided:
            state.current_probability = self.compute_probability(state)
        return state.current_probability

    def resolve_outcome(self, state: PhenomenonState, random: Optional[Callable[[], float]] = None) -> bool:
        """
        Roll the success outcome exactly once.

        Later calls return the cached result without consuming randomness.
        """
        if state.outcome_decided:
            return bool(state.will_succeed)

        self.refresh_probability(state)
        if "forced_outcome" in state.extra:
            state.will_succeed = state.extra["forced_outcome"]
        else:
            roll = (random or self.random)()
            state.will_succeed = roll < state.current_probability
        state.outcome_decided = True
        logger.info(
            f"{self.name}: outcome rolled, success={state.will_succeed} "
            f"(p={state.current_probability:.2f}, {state.criteria_met}/{state.total_criteria})"
        )
        return bool(state.will_succeed)

    def add_veto_factor(self, security: Security, name: str) -> bool:
        state = security.get_state(self.name)
        if state is None:
            return False
        if name not in self.veto_table:
            logger.warning(f"{self.name}: unknown veto factor {name!r}")
            return False
        if name not in state.veto_factors:
            state.veto_factors.append(name)
        self.refresh_probability(state)
        return True

    def remove_veto_factor(self, security: Security, name: str) -> bool:
        state = security.get_state(self.name)
        if state is None or name not in state.veto_factors:
            return False
        state.veto_factors.remove(name)
        self.refresh_probability(state)
        return True

    # === Signal ===

    def signal_strength(self, state: PhenomenonState) -> float:
        if state.total_criteria:
            return state.criteria_met / state.total_criteria
        return state.current_probability

    def calculate_signal(self, security: Security) -> Optional[SignalReading]:
        state = security.get_state(self.name)
        if state is None:
            return None
        return SignalReading(
            strength=self.signal_strength(state),
            phase=state.phase,
            is_gold_standard=state.is_gold_standard,
            probability=state.current_probability,
            criteria_met=state.criteria_met,
            total_criteria=state.total_criteria,
            daily_bias=state.daily_bias,
        )

    # === News ===

    def make_news(
        self,
        security: Security,
        state: Optional[PhenomenonState],
        headline: str,
        description: str,
        sentiment: Any = NewsSentiment.NEUTRAL,
        phase: Optional[str] = None,
        educational_note: Optional[str] = None,
        telltale: Optional[str] = None,
        **payload,
    ) -> NewsRecord:
        if state is None:
            return NewsRecord(
                headline=headline,
                description=description,
                sentiment=sentiment,
                related_stock=security.symbol,
                news_type=self.news_type,
                phase=phase,
                educational_note=educational_note,
                telltale=telltale,
                payload=payload,
            )
        return NewsRecord(
            headline=headline,
            description=description,
            sentiment=sentiment,
            related_stock=security.symbol,
            news_type=self.news_type,
            phase=phase or state.phase,
            probability=state.current_probability,
            gold_standard=dict(state.gold_standard),
            is_gold_standard=state.is_gold_standard,
            criteria_met=state.criteria_met,
            total_criteria=state.total_criteria,
            educational_note=educational_note,
            telltale=telltale,
            payload=payload,
        )

    def emit(self, record: NewsRecord) -> NewsRecord:
        return self.context.news_sink.push(record)

    # === Tutorial hints ===

    def phase_hints(self, news: NewsRecord) -> Dict[str, Dict[str, Any]]:
        return {}

    def gold_standard_summary(self, news: NewsRecord) -> Optional[str]:
        total = news.total_criteria
        if not total:
            return None
        met = news.criteria_met or 0
        probability = news.probability if news.probability is not None else 0.0
        if met == total:
            return f"GOLD STANDARD: all {total} criteria met ({probability:.0%} historical success)."
        return f"{met}/{total} criteria met ({probability:.0%} probability). Wait for confirmation."

    def get_tutorial_hint(self, news: Optional[NewsRecord]) -> Optional[Dict[str, Any]]:
        """
        Teaching hint for a headline this machine emitted.

        Returns None for foreign or unknown news; never raises.
        """
        if news is None or news.news_type != self.news_type:
            return None

        hints = self.phase_hints(news)
        hint = hints.get(news.phase or "") or hints.get("default")
        if hint is None:
            return None

        result = {key: hint.get(key) for key in HINT_KEYS}
        result["gold_standard_summary"] = self.gold_standard_summary(news)
        return result
