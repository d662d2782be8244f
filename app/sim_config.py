# sim_config.py
# Engine tunables, calendar constants, feature-flag tiers, default catalog
# Override by constructor keyword, never by editing module globals

from dataclasses import dataclass
from typing import Callable, Dict, FrozenSet, List, Optional

# === Calendar ===
DAYS_IN_MONTH = 30
DAYS_IN_QUARTER = 90
DAYS_IN_YEAR = 360

# === Price history ===
MAX_HISTORY_POINTS = 50

# === Sentiment band ===
SENTIMENT_FLOOR = -0.8
SENTIMENT_CEILING = 3.0


@dataclass(frozen=True)
class EngineConfig:
    """
    Price convergence and daily decay parameters.

    Design principles:
    - Every number the price step uses lives here
    - Immutable (frozen=True), validated on construction
    - Defaults reproduce the tuned game balance exactly

    Quiet-noise phases are the crash-family patterns that need the
    random walk damped so the scripted move reads clearly.
    """

    # === Sentiment handling ===
    sentiment_floor: float = SENTIMENT_FLOOR
    sentiment_ceiling: float = SENTIMENT_CEILING
    sentiment_decay: float = 0.98             # Applied in the price step
    sentiment_decay_threshold: float = 0.01   # |s| below this is left alone

    # === Target price ===
    manipulation_pressure: float = 0.15       # Per unit of institutional accumulation

    # === Random walk ===
    noise_multiplier: float = 1.0
    quiet_noise_multiplier: float = 0.3       # During crash-family phases
    convergence_speed: float = 0.15
    quiet_convergence_speed: float = 0.05
    trend_factor: float = 0.05
    crash_trend_multiplier: float = 0.3       # Dead-cat bounce only

    # === Bounds ===
    price_floor_min: float = 1.0
    price_floor_ratio: float = 0.05           # Of base price
    price_ceiling_ratio: float = 20.0         # Of base price
    max_history_points: int = MAX_HISTORY_POINTS

    # === Morning news decay (before phenomena run) ===
    news_sentiment_decay: float = 0.95
    news_sentiment_epsilon: float = 0.001
    volatility_boost_decay: float = 0.9
    volatility_boost_epsilon: float = 0.01

    def __post_init__(self):
        if self.sentiment_floor >= self.sentiment_ceiling:
            raise ValueError(
                f"sentiment_floor ({self.sentiment_floor}) must be below "
                f"sentiment_ceiling ({self.sentiment_ceiling})"
            )
        for name in ("sentiment_decay", "news_sentiment_decay", "volatility_boost_decay"):
            value = getattr(self, name)
            if not 0.0 < value <= 1.0:
                raise ValueError(f"{name} must be in (0, 1], got {value}")
        if self.price_floor_ratio <= 0 or self.price_ceiling_ratio <= self.price_floor_ratio:
            raise ValueError(
                f"Invalid price bounds: floor_ratio={self.price_floor_ratio}, "
                f"ceiling_ratio={self.price_ceiling_ratio}"
            )
        if self.max_history_points < 2:
            raise ValueError(f"max_history_points must be >= 2, got {self.max_history_points}")


# === Feature flags ===
# Tier 1-2 ship enabled, tier 3-4 ship disabled.
FEATURE_FLAG_TIERS: Dict[int, List[str]] = {
    1: [
        "short_seller_report",
        "index_rebalancing",
        "insider_buying",
        "news_shakeout",
    ],
    2: [
        "dead_cat_bounce",
        "stock_split",
        "short_squeeze",
        "fomo_rally",
        "liquidity_sweep",
        "executive_change",
        "strategic_pivot",
    ],
    3: [
        "institutional_manipulation",
        "analyst",
        "capitulation",
        "tax_loss_harvesting",
    ],
    4: [
        "insider_selling",
        "sector_rotation",
        "dividend_trap",
        "gap_up",
        "gap_down",
        "circuit_breaker",
        "correlation_breakdown",
        "liquidity_crisis",
        "window_dressing",
        "unusual_volume",
        "earnings_whisper",
    ],
}

FEATURE_FLAGS: FrozenSet[str] = frozenset(
    name for names in FEATURE_FLAG_TIERS.values() for name in names
)

DEFAULT_ENABLED_MAX_TIER = 2


def feature_flag_tier(name: str) -> Optional[int]:
    """Tier of a feature flag, or None for names outside the vocabulary."""
    for tier, names in FEATURE_FLAG_TIERS.items():
        if name in names:
            return tier
    return None


def tiered_flag_predicate(
    max_tier: int = DEFAULT_ENABLED_MAX_TIER,
    overrides: Optional[Dict[str, bool]] = None,
) -> Callable[[str], bool]:
    """
    Build an is_event_type_enabled predicate from tier defaults.

    Names outside the vocabulary are enabled (forward compatibility).
    Explicit overrides win over tier defaults.

    Args:
        max_tier: Highest tier enabled by default
        overrides: Per-name switches, e.g. {"stock_split": False}

    Returns:
        Predicate name -> bool
    """
    overrides = dict(overrides or {})

    def is_event_type_enabled(name: str) -> bool:
        if name in overrides:
            return bool(overrides[name])
        tier = feature_flag_tier(name)
        return tier is None or tier <= max_tier

    return is_event_type_enabled


# === Default catalog ===
# (symbol, name, price, volatility, trend, dividend_yield, sector, stability)
DEFAULT_SECURITIES: List[dict] = [
    dict(symbol="AAPL", name="Apple Inc.", price=250, volatility=0.025, trend=0.02, dividend_yield=0.004, sector="tech", stability=0.7),
    dict(symbol="AMZN", name="Amazon.com Inc.", price=225, volatility=0.032, trend=0.03, dividend_yield=0.0, sector="tech", stability=0.5),
    dict(symbol="BAC", name="Bank of America", price=46, volatility=0.028, trend=0.01, dividend_yield=0.023, sector="finance", stability=0.7),
    dict(symbol="CAT", name="Caterpillar Inc.", price=395, volatility=0.025, trend=0.015, dividend_yield=0.014, sector="industrial", stability=0.75),
    dict(symbol="CVX", name="Chevron Corp.", price=145, volatility=0.024, trend=0.008, dividend_yield=0.044, sector="energy", stability=0.8),
    dict(symbol="GOOGL", name="Alphabet Inc.", price=192, volatility=0.028, trend=0.02, dividend_yield=0.005, sector="tech", stability=0.65),
    dict(symbol="INTC", name="Intel Corp.", price=20, volatility=0.04, trend=-0.03, dividend_yield=0.02, sector="tech", stability=0.3),
    dict(symbol="JNJ", name="Johnson & Johnson", price=145, volatility=0.015, trend=0.01, dividend_yield=0.034, sector="healthcare", stability=0.95),
    dict(symbol="JPM", name="JPMorgan Chase", price=242, volatility=0.022, trend=0.015, dividend_yield=0.021, sector="finance", stability=0.85),
    dict(symbol="KO", name="Coca-Cola Co.", price=62, volatility=0.01, trend=0.008, dividend_yield=0.031, sector="consumer", stability=0.95),
    dict(symbol="MCD", name="McDonald's Corp.", price=290, volatility=0.014, trend=0.012, dividend_yield=0.024, sector="consumer", stability=0.9),
    dict(symbol="META", name="Meta Platforms", price=612, volatility=0.035, trend=0.02, dividend_yield=0.003, sector="tech", stability=0.4),
    dict(symbol="MSFT", name="Microsoft Corp.", price=448, volatility=0.022, trend=0.025, dividend_yield=0.007, sector="tech", stability=0.8),
    dict(symbol="NVDA", name="NVIDIA Corp.", price=135, volatility=0.045, trend=0.04, dividend_yield=0.0003, sector="tech", stability=0.2),
    dict(symbol="PFE", name="Pfizer Inc.", price=26, volatility=0.025, trend=-0.01, dividend_yield=0.065, sector="healthcare", stability=0.75),
    dict(symbol="PG", name="Procter & Gamble", price=170, volatility=0.012, trend=0.01, dividend_yield=0.024, sector="consumer", stability=0.95),
    dict(symbol="UNH", name="UnitedHealth Group", price=525, volatility=0.02, trend=0.02, dividend_yield=0.015, sector="healthcare", stability=0.85),
    dict(symbol="V", name="Visa Inc.", price=315, volatility=0.018, trend=0.02, dividend_yield=0.007, sector="finance", stability=0.85),
    dict(symbol="WMT", name="Walmart Inc.", price=92, volatility=0.015, trend=0.015, dividend_yield=0.009, sector="consumer", stability=0.9),
    dict(symbol="XOM", name="Exxon Mobil", price=108, volatility=0.025, trend=0.005, dividend_yield=0.035, sector="energy", stability=0.8),
]
