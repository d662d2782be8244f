# daily_orchestrator.py
# One game day = phenomena, lower-priority effects, then price convergence
# Fixed order. Same seed in, same market out.

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from dead_cat_bounce import DeadCatBounce
from executive_change import ExecutiveChange
from fomo_rally import FomoRally
from index_rebalance import IndexRebalance
from insider_buying import InsiderBuying
from insider_selling import InsiderSelling
from institutional_manipulation import InstitutionalManipulation
from liquidity_sweep import LiquiditySweep
from market_effects import MarketEffects
from news_schema import NewsRecord
from news_shakeout import NewsShakeout
from phenomenon_machine import PhenomenonMachine
from price_engine import PriceEngine
from security_schema import Security
from short_seller_report import ShortSellerReport
from short_squeeze import ShortSqueeze
from sim_config import EngineConfig
from sim_context import SimulationContext, build_context
from stock_split import StockSplit
from strategic_pivot import StrategicPivot
from tutorial_hints import HintRegistry, set_registry

logger = logging.getLogger(__name__)


@dataclass
class DayResult:
    """What one call to step() produced."""
    day: int                                   # Absolute day that was simulated
    label: str                                 # Calendar label, e.g. Y1M3D22
    news: List[NewsRecord] = field(default_factory=list)
    prices: Dict[str, float] = field(default_factory=dict)
    completed: List[str] = field(default_factory=list)   # "SYMBOL:phenomenon"


class DailyOrchestrator:
    """
    Runs the simulation one day at a time.

    Design principles:
    - Every collaborator shares one SimulationContext
    - Phenomena run before lower-priority effects; prices move last
    - A phenomenon's daily price delta is queued as an impulse, so a
      later module may still overwrite it with set_transition_effect
    - Securities are always processed in list order

    Daily order:
    1. News decay, sink rolls over to the new day
    2. Manipulation, short squeeze, short-seller report
    3. Crash family (dead-cat bounce, liquidity sweep, news shakeout),
       executive change, strategic pivot, FOMO
    4. Mean reversion
    5. Insider buying / selling, stock splits, analyst ratings, index rebalance
    6. Regime effects (rotation .. circuit breakers), capitulation
    7. YTD bookkeeping, options repricing hook
    8. Price convergence, quiet-day headline, calendar advance
    """

    def __init__(
        self,
        deps: Any = None,
        config: Optional[EngineConfig] = None,
        journal: Any = None,
    ):
        """
        Args:
            deps: SimulationContext or dependency mapping (see build_context)
            config: Price engine tunables
            journal: Optional SimulationJournal; receives every finished day
        """
        self.context: SimulationContext = build_context(deps)
        self.config = config or EngineConfig()
        self.journal = journal

        ctx = self.context
        self.manipulation = InstitutionalManipulation(ctx)
        self.short_squeeze = ShortSqueeze(ctx)
        self.short_report = ShortSellerReport(ctx)
        self.dead_cat_bounce = DeadCatBounce(ctx)
        self.liquidity_sweep = LiquiditySweep(ctx)
        self.news_shakeout = NewsShakeout(ctx)
        self.executive_change = ExecutiveChange(ctx)
        self.strategic_pivot = StrategicPivot(ctx)
        self.fomo = FomoRally(ctx)
        self.insider_buying = InsiderBuying(ctx)
        self.insider_selling = InsiderSelling(ctx)
        self.stock_split = StockSplit(ctx)
        self.index_rebalance = IndexRebalance(ctx)
        self.effects = MarketEffects(ctx)
        self.price_engine = PriceEngine(self.config, ctx.random_source)

        self.hints = HintRegistry(self.machines)

        # Initialized by reset()
        self.day_count: Optional[int] = None

    # === Wiring ===

    @property
    def machines(self) -> List[PhenomenonMachine]:
        """Every phenomenon machine, in the order the day runs them."""
        return self.leading_machines + [
            self.insider_buying,
            self.insider_selling,
            self.stock_split,
            self.index_rebalance,
        ]

    @property
    def leading_machines(self) -> List[PhenomenonMachine]:
        """Machines that run before mean reversion."""
        return [
            self.manipulation,
            self.short_squeeze,
            self.short_report,
            self.dead_cat_bounce,
            self.liquidity_sweep,
            self.news_shakeout,
            self.executive_change,
            self.strategic_pivot,
            self.fomo,
        ]

    @property
    def securities(self) -> List[Security]:
        return self.context.securities

    def init(self, deps: Any) -> "DailyOrchestrator":
        """Re-bind every collaborator to a new context."""
        self.context = build_context(deps)
        for machine in self.machines:
            machine.init(self.context)
        self.effects.init(self.context)
        self.price_engine.random = self.context.random_source
        return self

    # === Episode control ===

    def reset(self) -> List[Security]:
        """
        Prepare a run: seed histories, reference prices and the hint registry.

        Returns:
            The securities in processing order
        """
        if not self.securities:
            logger.warning("reset() with an empty security list")

        for security in self.securities:
            if not security.price_history:
                security.append_history(security.price, self.config.max_history_points)
            if not security.year_start_price:
                security.year_start_price = security.price
            security.refresh_fair_value()

        set_registry(self.hints)
        self.day_count = 0
        logger.info(
            f"Simulation reset: {len(self.securities)} securities, "
            f"starting {self.context.calendar.label()}"
        )
        return self.securities

    def step(self) -> DayResult:
        """
        Simulate one day.

        Returns:
            DayResult with the day's news and closing prices
        """
        if self.day_count is None:
            raise RuntimeError("Must call reset() before step()")

        ctx = self.context
        securities = self.securities
        result = DayResult(day=ctx.day, label=ctx.calendar.label())

        # Step 1: Morning
        ctx.news_sink.start_day(ctx.day)
        self.price_engine.apply_news_decay(securities)

        # Steps 2-3: Leading phenomena
        for machine in self.leading_machines:
            result.completed.extend(self._run_machine(machine, securities))

        # Step 4: Mean reversion
        self.effects.mean_reversion(securities)

        # Step 5: Insiders, splits, analysts, index
        result.completed.extend(self._run_machine(self.insider_buying, securities))
        result.completed.extend(self._run_machine(self.insider_selling, securities))
        result.completed.extend(self._run_machine(self.stock_split, securities))
        self.effects.analyst_ratings(securities)
        result.completed.extend(self._run_machine(self.index_rebalance, securities))

        # Step 6: Regimes
        self.effects.regime_effects(securities)
        self.effects.capitulation(securities)

        # Step 7: Bookkeeping
        self.effects.update_ytd(securities)
        if ctx.options_repricer is not None:
            ctx.options_repricer(ctx)

        # Step 8: Prices, then the calendar
        self.price_engine.step_all(securities)
        self.effects.quiet_day()

        result.news = list(ctx.news_sink.today())
        result.prices = {s.symbol: s.price for s in securities}

        if self.journal is not None:
            self.journal.record_day(result.day, result.label, securities, result.news)

        ctx.calendar.advance()
        self.day_count += 1
        return result

    def run(self, days: int) -> List[DayResult]:
        """reset() if needed, then step() `days` times."""
        if days < 0:
            raise ValueError(f"days must be >= 0, got {days}")
        if self.day_count is None:
            self.reset()
        return [self.step() for _ in range(days)]

    def _run_machine(self, machine: PhenomenonMachine, securities: Sequence[Security]) -> List[str]:
        completed = []
        for security in securities:
            machine.daily_update(security)
            machine.tick_cooldown(security)
            outcome = machine.process(security)
            if outcome.price_delta:
                security.add_impulse(machine.name, outcome.price_delta)
            if outcome.completed:
                completed.append(f"{security.symbol}:{machine.name}")
        machine.daily_trigger(securities)
        return completed

    # === Queries ===

    def active_phenomena(self) -> Dict[str, Dict[str, str]]:
        """symbol -> {phenomenon: phase} for every occupied slot."""
        return {
            s.symbol: {name: state.phase for name, state in s.states.items()}
            for s in self.securities
            if s.states
        }

    def get_state_summary(self) -> Dict[str, Any]:
        if self.day_count is None:
            return {"state": "not_initialized"}

        return {
            "calendar": self.context.calendar.label(),
            "days_simulated": self.day_count,
            "securities": len(self.securities),
            "news_records": len(self.context.news_sink),
            "active_phenomena": self.active_phenomena(),
            "liquidity_crisis": self.context.market.liquidity_crisis,
            "sector_rotation": self.context.market.sector_rotation_target,
        }
