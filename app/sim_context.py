# sim_context.py
# Explicit dependency bundle handed to every phenomenon
# No module-level globals. Everything a machine reads comes through here.

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence, Union

import numpy as np

from sim_config import DAYS_IN_MONTH, DAYS_IN_YEAR
from news_sink import NewsSink
from security_schema import Security
from market_utils import meme_multiplier

logger = logging.getLogger(__name__)


@dataclass
class CalendarState:
    """
    Game calendar: 30-day months, 12 months, 360-day years.

    `day` is the day of the month (1..30).
    """
    day: int = 1
    month: int = 1
    year: int = 1

    def __post_init__(self):
        if not 1 <= self.day <= DAYS_IN_MONTH:
            raise ValueError(f"day must be in [1, {DAYS_IN_MONTH}], got {self.day}")
        if not 1 <= self.month <= 12:
            raise ValueError(f"month must be in [1, 12], got {self.month}")
        if self.year < 1:
            raise ValueError(f"year must be >= 1, got {self.year}")

    @property
    def total_days(self) -> int:
        """Absolute day number, 1 on the first day of year 1."""
        return (self.year - 1) * DAYS_IN_YEAR + (self.month - 1) * DAYS_IN_MONTH + self.day

    @property
    def is_quarter_end(self) -> bool:
        """Last week-and-a-bit of March, June, September, December."""
        return self.month in (3, 6, 9, 12) and self.day >= 22

    def advance(self) -> None:
        self.day += 1
        if self.day > DAYS_IN_MONTH:
            self.day = 1
            self.month += 1
            if self.month > 12:
                self.month = 1
                self.year += 1

    def label(self) -> str:
        return f"Y{self.year}M{self.month}D{self.day}"


@dataclass
class MarketState:
    """
    Market-wide regime flags driven by the lower-priority effects.

    Each regime carries its own countdown; None / True means inactive.
    """
    sector_rotation_target: Optional[str] = None
    sector_rotation_days_left: int = 0
    correlation_stable: bool = True
    correlation_days_left: int = 0
    liquidity_crisis: bool = False
    liquidity_crisis_days_left: int = 0
    bear_market: bool = False


def _as_random_source(source: Any) -> Callable[[], float]:
    """Accept a numpy Generator, an int seed, None, or a zero-arg callable."""
    if source is None or isinstance(source, (int, np.integer)):
        rng = np.random.default_rng(source)
        return lambda: float(rng.random())
    if isinstance(source, np.random.Generator):
        return lambda: float(source.random())
    if callable(source):
        return source
    raise ValueError(f"Unsupported random_source: {type(source).__name__}")


@dataclass
class SimulationContext:
    """
    Everything a phenomenon may touch besides the security it is given.

    Design principles:
    - One random source for the whole simulation (deterministic under seed)
    - choice_fn draws through the same random source by default
    - Missing feature-flag predicate means every phenomenon is enabled
    - Machines are rebound with init(deps), never by patching globals

    Attributes:
        securities: Securities in processing order
        news_sink: Receives every NewsRecord a machine emits
        random_source: Zero-arg callable returning a float in [0, 1)
        choice_fn: Picks one element of a non-empty sequence
        is_event_type_enabled: Feature-flag predicate
        calendar: Game calendar (advanced by the orchestrator)
        meme_multiplier: Security -> amplification factor in [0.3, 1.0]
        options_repricer: Optional hook run after the phenomena, before prices
    """
    securities: List[Security] = field(default_factory=list)
    news_sink: NewsSink = field(default_factory=NewsSink)
    random_source: Callable[[], float] = field(default_factory=lambda: _as_random_source(None))
    choice_fn: Optional[Callable[[Sequence[Any]], Any]] = None
    is_event_type_enabled: Callable[[str], bool] = field(default=lambda name: True)
    calendar: CalendarState = field(default_factory=CalendarState)
    meme_multiplier: Callable[[Security], float] = field(default=meme_multiplier)
    options_repricer: Optional[Callable[["SimulationContext"], None]] = None
    market: MarketState = field(default_factory=MarketState)

    # === Random helpers ===

    def random(self) -> float:
        return self.random_source()

    def uniform(self, low: float, high: float) -> float:
        return low + self.random() * (high - low)

    def randint(self, low: int, high: int) -> int:
        """Inclusive on both ends."""
        return int(self.random() * (high - low + 1)) + low

    def chance(self, probability: float) -> bool:
        return self.random() < probability

    def choice(self, items: Sequence[Any]) -> Any:
        if not items:
            return None
        if self.choice_fn is not None:
            return self.choice_fn(items)
        index = min(int(self.random() * len(items)), len(items) - 1)
        return items[index]

    # === Lookups ===

    def enabled(self, name: str) -> bool:
        return bool(self.is_event_type_enabled(name))

    def meme(self, security: Security) -> float:
        return self.meme_multiplier(security)

    def find(self, symbol: str) -> Optional[Security]:
        for security in self.securities:
            if security.symbol == symbol:
                return security
        return None

    @property
    def day(self) -> int:
        return self.calendar.total_days


def build_context(deps: Optional[Union[Dict[str, Any], SimulationContext]] = None) -> SimulationContext:
    """
    Build a SimulationContext from a loose dependency mapping.

    Recognised keys: securities, news_sink, random_source, choice_fn,
    is_event_type_enabled, calendar, meme_multiplier, options_repricer.
    Omitted keys fall back to defaults; unknown keys are logged and ignored.

    Args:
        deps: Mapping of dependencies, an existing context, or None

    Returns:
        SimulationContext
    """
    if isinstance(deps, SimulationContext):
        return deps

    deps = dict(deps or {})
    known = {
        "securities", "news_sink", "random_source", "choice_fn",
        "is_event_type_enabled", "calendar", "meme_multiplier", "options_repricer",
    }
    unknown = set(deps) - known
    if unknown:
        logger.warning(f"build_context ignoring unknown dependencies: {sorted(unknown)}")

    securities = [
        s if isinstance(s, Security) else Security.from_catalog(s)
        for s in deps.get("securities") or []
    ]

    kwargs: Dict[str, Any] = {
        "securities": securities,
        "random_source": _as_random_source(deps.get("random_source")),
    }
    if deps.get("news_sink") is not None:
        kwargs["news_sink"] = deps["news_sink"]
    if deps.get("choice_fn") is not None:
        kwargs["choice_fn"] = deps["choice_fn"]
    if deps.get("is_event_type_enabled") is not None:
        kwargs["is_event_type_enabled"] = deps["is_event_type_enabled"]
    if deps.get("calendar") is not None:
        kwargs["calendar"] = deps["calendar"]
    if deps.get("meme_multiplier") is not None:
        kwargs["meme_multiplier"] = deps["meme_multiplier"]
    if deps.get("options_repricer") is not None:
        kwargs["options_repricer"] = deps["options_repricer"]

    return SimulationContext(**kwargs)
