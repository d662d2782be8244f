# price_engine.py
# Price convergence engine - pulls each price toward fair value + sentiment
# One step per security per day. Noise in, impulses in, bounded integer price out.

import logging
from typing import Callable, List, Optional, Sequence

import numpy as np

from market_utils import clamp
from phenomenon_machine import QUIET_NOISE_PHENOMENA, TREND_DAMPED_PHENOMENA
from security_schema import Security
from sim_config import EngineConfig

logger = logging.getLogger(__name__)


RECENT_WINDOW = 20   # Price points behind recent_low / recent_high


class PriceEngine:
    """
    Daily price step for every security.

    Design principles:
    - Price gravitates toward target = fair_value * (1 + sentiment + accumulation * 0.15)
    - Noise and convergence are damped while a quiet-noise crash pattern runs
    - Impulses are drained atomically; the queue is empty after every step
    - Prices are clamped to [max(1, 5% base), 20x base] and rounded
    - Never raises on out-of-range inputs (clamps instead)

    Step:
    1. fair_value = base_price * (1 + eps_modifier)
    2. clamp sentiment, decay it 2% when |s| > 0.01
    3. target from fair value, sentiment, institutional accumulation
    4. noise = U(-1, 1) * volatility * (1 + volatility_boost) * noise_mult
    5. correction = -(price - target) / target * speed
    6. trend_effect = trend * 0.05 * trend_mult
    7. new = price * (1 + trend_effect + correction + noise + impulses)
    8. clamp, round, append to history
    """

    def __init__(self, config: Optional[EngineConfig] = None, random_source: Optional[Callable[[], float]] = None):
        self.config = config or EngineConfig()
        if random_source is None:
            rng = np.random.default_rng()
            random_source = lambda: float(rng.random())
        self.random = random_source

    # === Morning decay ===

    def apply_news_decay(self, securities: Sequence[Security]) -> None:
        """
        Yesterday's news fades before today's phenomena run.

        sentiment *= 0.95 (snapped to 0 below 0.001),
        volatility_boost *= 0.9 (snapped to 0 below 0.01).
        """
        cfg = self.config
        for security in securities:
            if abs(security.sentiment_offset) > cfg.news_sentiment_epsilon:
                security.sentiment_offset *= cfg.news_sentiment_decay
            else:
                security.sentiment_offset = 0.0

            if security.volatility_boost > 0:
                security.volatility_boost *= cfg.volatility_boost_decay
                if security.volatility_boost < cfg.volatility_boost_epsilon:
                    security.volatility_boost = 0.0

    # === Price step ===

    def is_quiet(self, security: Security) -> bool:
        return any(security.has_state(name) for name in QUIET_NOISE_PHENOMENA)

    def is_trend_damped(self, security: Security) -> bool:
        return any(security.has_state(name) for name in TREND_DAMPED_PHENOMENA)

    def target_price(self, security: Security) -> float:
        pressure = security.institutional_accumulation * self.config.manipulation_pressure
        return security.fair_value * (1 + security.sentiment_offset + pressure)

    def price_bounds(self, security: Security) -> tuple:
        cfg = self.config
        floor = max(cfg.price_floor_min, security.base_price * cfg.price_floor_ratio)
        ceiling = security.base_price * cfg.price_ceiling_ratio
        return floor, ceiling

    def step(self, security: Security) -> float:
        """
        Move one security one day.

        Returns:
            The new (rounded) price
        """
        cfg = self.config
        security.refresh_fair_value()

        security.sentiment_offset = clamp(security.sentiment_offset, cfg.sentiment_floor, cfg.sentiment_ceiling)
        if abs(security.sentiment_offset) > cfg.sentiment_decay_threshold:
            security.sentiment_offset *= cfg.sentiment_decay

        target = self.target_price(security)
        quiet = self.is_quiet(security)

        effective_volatility = security.volatility * (1 + security.volatility_boost)
        noise_mult = cfg.quiet_noise_multiplier if quiet else cfg.noise_multiplier
        noise = (self.random() - 0.5) * 2 * effective_volatility * noise_mult

        speed = cfg.quiet_convergence_speed if quiet else cfg.convergence_speed
        correction = -((security.price - target) / target) * speed if target > 0 else 0.0

        trend_mult = cfg.crash_trend_multiplier if self.is_trend_damped(security) else 1.0
        trend_effect = security.trend * cfg.trend_factor * trend_mult

        impulse = security.drain_impulses()

        new_price = security.price * (1 + trend_effect + correction + noise + impulse)
        floor, ceiling = self.price_bounds(security)
        new_price = float(round(clamp(new_price, floor, ceiling)))
        # Rounding can cross a fractional bound
        new_price = max(new_price, float(np.ceil(floor)))
        new_price = min(new_price, float(np.floor(ceiling)))

        if impulse:
            logger.debug(f"{security.symbol}: impulse {impulse * 100:+.1f}% applied")

        self._record(security, new_price)
        return new_price

    def _record(self, security: Security, new_price: float) -> None:
        old_price = security.price
        security.previous_price = old_price
        security.price = new_price
        security.append_history(new_price, self.config.max_history_points)

        if new_price > old_price:
            security.consecutive_up_days += 1
            security.consecutive_down_days = 0
        elif new_price < old_price:
            security.consecutive_down_days += 1
            security.consecutive_up_days = 0

        recent = security.price_history[-RECENT_WINDOW:]
        security.recent_low = float(min(recent))
        security.recent_high = float(max(recent))

    def step_all(self, securities: Sequence[Security]) -> List[float]:
        return [self.step(security) for security in securities]
