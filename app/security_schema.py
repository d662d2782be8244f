# security_schema.py
# Mutable security record shared by every phenomenon
# One state slot per phenomenon, one impulse queue, nothing else

from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional, TYPE_CHECKING

from sim_config import MAX_HISTORY_POINTS

if TYPE_CHECKING:
    from phenomenon_machine import PhenomenonState


@dataclass(frozen=True)
class PriceImpulse:
    """
    One-day additive price jolt queued by a phenomenon.

    Drained (summed and cleared) by the price step on the same day.
    """
    source: str          # Phenomenon that queued it (e.g. "stock_split")
    magnitude: float     # Fractional move, +0.05 = +5% on top of the walk


@dataclass(frozen=True)
class InsiderTransaction:
    """
    One Form 4 filing held on a security for 30 days.

    Aged by one day per tick, pruned once days_ago reaches the decay window.
    """
    title: str
    title_weight: float
    amount: float
    amount_weight: float
    shares: int
    price: float
    days_ago: int
    form4_code: str              # "P" open-market purchase, "S" sale
    reason: Optional[str] = None # Sales only
    is_bearish_reason: bool = False
    is_planned: bool = False     # 10b5-1 pre-scheduled sale
    wealth_fraction: float = 0.0 # Share of the insider's net worth committed

    def aged(self) -> "InsiderTransaction":
        """Same filing, one day older."""
        return replace(self, days_ago=self.days_ago + 1)


@dataclass
class Security:
    """
    Mutable record that all phenomena read and write.

    Design principles:
    - Phenomena own only their slot in `states` (plus insider record lists)
    - Shared fields any phenomenon may touch: sentiment_offset,
      volatility_boost and the impulse queue
    - fair_value is derived: base_price * (1 + eps_modifier)
    - Presentation reads price, price_history and states; nothing else

    Ingress contract: symbol, price, volatility, trend, sector, stability.
    """

    # === Identity (ingress) ===
    symbol: str
    price: float
    volatility: float
    trend: float = 0.0
    sector: str = "general"
    stability: float = 0.5
    name: str = ""
    dividend_yield: float = 0.0

    # === Valuation ===
    base_price: float = 0.0          # Pre-event reference, defaults to price
    eps_modifier: float = 0.0        # Permanent fundamentals drift
    fair_value: float = 0.0          # Derived, refreshed by the price step
    sentiment_offset: float = 0.0    # Transient perception drift [-0.8, 3.0]
    volatility_boost: float = 0.0    # Temporary multiplier, decays daily

    # === Microstructure ===
    short_interest: float = 0.05
    institutional_accumulation: float = 0.0
    volume_multiple: float = 1.0     # Today's volume / average volume

    # === Price tracking ===
    previous_price: float = 0.0
    price_history: List[float] = field(default_factory=list)
    recent_low: float = 0.0
    recent_high: float = 0.0
    consecutive_up_days: int = 0
    consecutive_down_days: int = 0
    year_start_price: float = 0.0
    ytd_return: float = 0.0

    # === Analyst coverage ===
    analyst_rating: int = 2          # 0 sell, 1 hold, 2 buy, 3 strong buy
    target_price: float = 0.0
    pending_rating_change: Optional[str] = None
    rating_change_days_left: int = 0

    # === Lower-priority effect flags ===
    pending_gap: float = 0.0
    trading_halted: bool = False
    dividend_trap: bool = False
    capitulation_reversal_in: int = 0
    whisper_gap: Optional[float] = None   # Whisper vs Street EPS, e.g. +0.05 = 5% higher

    # === Phenomenon slots ===
    states: Dict[str, "PhenomenonState"] = field(default_factory=dict)
    cooldowns: Dict[str, int] = field(default_factory=dict)
    insider_buys: List[InsiderTransaction] = field(default_factory=list)
    insider_sells: List[InsiderTransaction] = field(default_factory=list)

    # === One-day impulses, drained by the price step ===
    pending_impulses: List[PriceImpulse] = field(default_factory=list)

    def __post_init__(self):
        if self.price <= 0:
            raise ValueError(f"{self.symbol}: price must be positive, got {self.price}")
        if self.volatility < 0:
            raise ValueError(f"{self.symbol}: volatility must be >= 0, got {self.volatility}")

        if not self.base_price:
            self.base_price = float(self.price)
        if not self.previous_price:
            self.previous_price = float(self.price)
        if not self.price_history:
            self.price_history = [float(self.price)]
        if not self.recent_low:
            self.recent_low = float(self.price)
        if not self.recent_high:
            self.recent_high = float(self.price)
        if not self.year_start_price:
            self.year_start_price = float(self.base_price)
        if not self.target_price:
            self.target_price = float(self.price)
        self.refresh_fair_value()

    @classmethod
    def from_catalog(cls, row: Dict[str, Any]) -> "Security":
        """
        Build a security from a catalog row.

        Unknown keys are ignored so richer catalogs (descriptions, logos)
        can be passed straight through.
        """
        known = {
            "symbol", "price", "volatility", "trend", "sector", "stability",
            "name", "dividend_yield", "short_interest", "base_price",
        }
        kwargs = {key: value for key, value in row.items() if key in known}
        return cls(**kwargs)

    # === Derived values ===

    def refresh_fair_value(self) -> float:
        self.fair_value = self.base_price * (1 + self.eps_modifier)
        return self.fair_value

    @property
    def daily_change(self) -> float:
        if not self.previous_price:
            return 0.0
        return (self.price - self.previous_price) / self.previous_price

    # === Impulse queue ===

    def add_impulse(self, source: str, magnitude: float) -> None:
        """Queue a one-day price jolt alongside any already queued."""
        if magnitude:
            self.pending_impulses.append(PriceImpulse(source, float(magnitude)))

    def set_transition_effect(self, source: str, magnitude: float) -> None:
        """
        Replace every queued impulse with this one.

        Reproduces the single-slot behaviour where a later module in the
        daily order overwrites an earlier module's transition effect.
        """
        self.pending_impulses = [PriceImpulse(source, float(magnitude))]

    @property
    def transition_effect(self) -> float:
        return sum(impulse.magnitude for impulse in self.pending_impulses)

    def drain_impulses(self) -> float:
        """Sum and clear the queue in one step."""
        total = self.transition_effect
        self.pending_impulses = []
        return total

    # === State slots ===

    def get_state(self, name: str) -> Optional["PhenomenonState"]:
        return self.states.get(name)

    def has_state(self, name: str) -> bool:
        return name in self.states

    def active_phenomena(self) -> List[str]:
        return list(self.states.keys())

    # === History ===

    def append_history(self, price: float, max_points: int = MAX_HISTORY_POINTS) -> None:
        self.price_history.append(float(price))
        if len(self.price_history) > max_points:
            del self.price_history[: len(self.price_history) - max_points]

    def snapshot(self) -> Dict[str, Any]:
        """
        Egress view for the presentation layer.

        Only the fields a renderer may interpret, plus each active
        phenomenon's phase.
        """
        return {
            "symbol": self.symbol,
            "price": self.price,
            "previous_price": self.previous_price,
            "fair_value": self.fair_value,
            "sentiment_offset": self.sentiment_offset,
            "price_history": list(self.price_history),
            "trading_halted": self.trading_halted,
            "phases": {name: state.phase for name, state in self.states.items()},
        }
