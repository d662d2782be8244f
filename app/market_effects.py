# market_effects.py
# Lower-priority market effects: ratings, regimes, calendar flows, halts, capitulation
# Single-step effects with no Gold Standard. Each one nudges sentiment and explains itself in a headline.

import logging
from collections import defaultdict
from typing import Any, Dict, List, Optional, Sequence

from news_schema import NewsRecord, NewsSentiment
from phenomenon_machine import in_family
from security_schema import Security
from sim_context import SimulationContext, build_context

logger = logging.getLogger(__name__)


# === Mean reversion ===
REVERSION_THRESHOLD = 0.15
REVERSION_FORCE = 0.08

# === Analyst ratings ===
RATING_NAMES = ("Sell", "Hold", "Buy", "Strong Buy")
MAX_RATING = len(RATING_NAMES) - 1
RATING_CHANCE = 0.05
RATING_DELAY_DAYS = 1
RATING_IMPACT = (0.04, 0.07)
UPGRADE_TARGET = (1.15, 1.25)
DOWNGRADE_TARGET = (0.85, 0.95)
UNDER_TARGET = 0.85
OVER_TARGET = 1.10
ANALYST_FIRMS = ["Goldman Sachs", "Morgan Stanley", "JP Morgan", "Nomura", "Daiwa Securities", "SMBC Nikko"]

# === Sector rotation ===
ROTATION_CHANCE = 0.03
ROTATION_DAYS = (5, 14)
ROTATION_TARGETS = {
    "risk_on": ["tech", "consumer", "finance"],
    "risk_off": ["energy", "healthcare", "industrial"],
}
ROTATION_INFLOW = (0.01, 0.02)
ROTATION_OUTFLOW = 0.005
SECTOR_NAMES = {
    "tech": "Technology",
    "finance": "Financial",
    "industrial": "Industrial",
    "consumer": "Consumer",
    "energy": "Energy",
    "healthcare": "Healthcare",
}

# === Dividend trap ===
TRAP_DROP = 0.30
TRAP_YIELD = 0.08
TRAP_WARNING_CHANCE = 0.02
CUT_EPS = -0.15
CUT_CHANCE = 0.01
CUT_SENTIMENT = 0.25

# === Gaps ===
GAP_CHANCE = 0.02
GAP_SIZE = (0.08, 0.25)

# === Correlation breakdown ===
CORRELATION_CHANCE = 0.01
CORRELATION_DAYS = (3, 7)
CORRELATION_DIVERGENCE = 0.08

# === Liquidity crisis ===
LIQUIDITY_CHANCE = 0.005
LIQUIDITY_DAYS = (2, 5)
LIQUIDITY_DRIFT = (0.02, 0.05)
LIQUIDITY_VOLATILITY = 0.5

# === Calendar flows ===
WINDOW_DRESSING_YTD = 0.20
WINDOW_DRESSING_FLOW = 0.01
WINDOW_DRESSING_NEWS_CHANCE = 0.10
TAX_LOSS_YTD = -0.25
TAX_LOSS_PRESSURE = 0.015
TAX_LOSS_NEWS_CHANCE = 0.08
JANUARY_DAYS = 7
JANUARY_BOUNCE = 0.02

# === Earnings whisper ===
WHISPER_CHANCE = 0.03
WHISPER_SKEW = 0.3               # Whispers usually run above the Street
WHISPER_SPREAD = 0.15

# === Circuit breaker ===
HALT_MOVE = 0.10

# === Capitulation ===
CAPITULATION_DROP = 0.25
CAPITULATION_DOWN_DAYS = 5
CAPITULATION_CHANCE = 0.20
CAPITULATION_SENTIMENT = -0.10
CAPITULATION_REVERSAL_DAYS = (2, 3)
CAPITULATION_BOUNCE_SENTIMENT = 0.25
CAPITULATION_BOUNCE = (0.08, 0.15)

QUIET_DAY_NEWS = [
    ("Quiet day - no clear setups. Smart traders wait for opportunities.",
     "Not every day has actionable news. Patience is a trading edge. Review your watchlist and wait for Tier 1-2 signals."),
    ("Markets calm - no major catalysts today.",
     "Days without clear signals = days to stay on sidelines. Overtrading destroys returns. Wait for high-probability setups."),
    ("Light news day - good traders do nothing when there's nothing to do.",
     "Warren Buffett: 'The stock market transfers money from the active to the patient.' Wait for insider buying, squeezes, or bounces."),
    ("No actionable signals today. Time to review, not trade.",
     "Use quiet days to: 1) Review past trades, 2) Study patterns you missed, 3) Prepare watchlist for next catalyst."),
]


class MarketEffects:
    """
    Everything that moves prices without a multi-day state machine.

    Design principles:
    - Effects only touch sentiment_offset, volatility_boost, the impulse
      queue and their own bookkeeping fields
    - Market-wide regimes live on context.market, never on a security
    - Each effect is gated by its feature flag; a disabled regime is
      cleared on the next day without news
    - Mean reversion and YTD bookkeeping are core and always run

    Order within a day is owned by the orchestrator, which calls the
    steps below one by one.
    """

    def __init__(self, context: Optional[SimulationContext] = None):
        self.context = build_context(context)

    def init(self, deps: Any) -> "MarketEffects":
        self.context = build_context(deps)
        return self

    # === Helpers ===

    @property
    def market(self):
        return self.context.market

    @property
    def calendar(self):
        return self.context.calendar

    def _emit(
        self,
        headline: str,
        description: str,
        sentiment: NewsSentiment,
        news_type: str,
        security: Optional[Security] = None,
        phase: Optional[str] = None,
        **payload,
    ) -> NewsRecord:
        return self.context.news_sink.push(NewsRecord(
            headline=headline,
            description=description,
            sentiment=sentiment,
            related_stock=security.symbol if security else None,
            news_type=news_type,
            phase=phase,
            payload=payload,
        ))

    # === Mean reversion ===

    def mean_reversion(self, securities: Sequence[Security]) -> None:
        """Pull sentiment back when price strays more than 15% from fair value."""
        for security in securities:
            if in_family(security, "crash"):
                continue
            fair_value = security.refresh_fair_value()
            if fair_value <= 0:
                continue
            deviation = (security.price - fair_value) / fair_value
            if abs(deviation) > REVERSION_THRESHOLD:
                security.sentiment_offset -= deviation * REVERSION_FORCE

    # === Analyst ratings ===

    def analyst_ratings(self, securities: Sequence[Security]) -> None:
        enabled = self.context.enabled("analyst")

        for security in securities:
            if security.pending_rating_change is None:
                continue
            if not enabled:
                security.pending_rating_change = None
                security.rating_change_days_left = 0
                continue
            security.rating_change_days_left -= 1
            if security.rating_change_days_left <= 0:
                self._apply_rating_change(security)

        if not enabled or not self.context.chance(RATING_CHANCE):
            return
        security = self.context.choice([s for s in securities if s.pending_rating_change is None])
        if security is None:
            return

        ratio = security.price / security.target_price if security.target_price else 1.0
        if ratio < UNDER_TARGET and security.analyst_rating < MAX_RATING:
            direction = "upgrade"
        elif ratio > OVER_TARGET and security.analyst_rating > 0:
            direction = "downgrade"
        else:
            direction = "upgrade" if self.context.random() > 0.5 else "downgrade"

        if direction == "upgrade" and security.analyst_rating >= MAX_RATING:
            return
        if direction == "downgrade" and security.analyst_rating <= 0:
            return
        self.schedule_rating_change(security, direction)

    def schedule_rating_change(self, security: Security, direction: str) -> bool:
        """Queue an upgrade/downgrade that takes effect the next day."""
        if direction not in ("upgrade", "downgrade"):
            raise ValueError(f"direction must be 'upgrade' or 'downgrade', got {direction!r}")
        if security.pending_rating_change is not None:
            return False

        security.pending_rating_change = direction
        security.rating_change_days_left = RATING_DELAY_DAYS

        firm = self.context.choice(ANALYST_FIRMS)
        up = direction == "upgrade"
        new_rating = RATING_NAMES[min(MAX_RATING, security.analyst_rating + 1) if up else max(0, security.analyst_rating - 1)]
        headlines = [
            f"{firm} upgrades {security.symbol} to {new_rating}",
            f"UPGRADE: {security.symbol} raised to {new_rating} by {firm}",
            f"{firm} turns bullish on {security.symbol}, upgrades to {new_rating}",
        ] if up else [
            f"{firm} downgrades {security.symbol} to {new_rating}",
            f"DOWNGRADE: {security.symbol} cut to {new_rating} by {firm}",
            f"{firm} turns cautious on {security.symbol}, downgrades to {new_rating}",
        ]
        target = security.price * (1.20 if up else 0.85)
        self._emit(
            self.context.choice(headlines),
            f"Target price {'raised' if up else 'lowered'} to ${target:,.0f}.",
            NewsSentiment.POSITIVE if up else NewsSentiment.NEGATIVE,
            "analyst", security,
            phase=direction,
            firm=firm,
            new_rating=new_rating,
        )
        return True

    def _apply_rating_change(self, security: Security) -> None:
        direction = security.pending_rating_change
        meme = self.context.meme(security)
        impact = self.context.uniform(*RATING_IMPACT) * meme

        if direction == "upgrade":
            security.analyst_rating = min(MAX_RATING, security.analyst_rating + 1)
            security.sentiment_offset += impact
            security.target_price = security.price * self.context.uniform(*UPGRADE_TARGET)
            headlines = [
                f"{security.symbol} rallies on analyst upgrade",
                f"{security.symbol} higher after analyst upgrade",
                f"Buyers respond to {security.symbol} rating boost",
            ]
            description = "Analyst calls often drive short-term momentum."
            sentiment = NewsSentiment.POSITIVE
        else:
            security.analyst_rating = max(0, security.analyst_rating - 1)
            security.sentiment_offset -= impact
            security.target_price = security.price * self.context.uniform(*DOWNGRADE_TARGET)
            headlines = [
                f"{security.symbol} slides on analyst downgrade",
                f"{security.symbol} lower after analyst cut",
                f"Sellers respond to {security.symbol} rating reduction",
            ]
            description = "Downgrades can trigger institutional selling."
            sentiment = NewsSentiment.NEGATIVE

        security.pending_rating_change = None
        security.rating_change_days_left = 0
        logger.info(f"{security.symbol}: analyst {direction} effective, rating={RATING_NAMES[security.analyst_rating]}")
        self._emit(
            self.context.choice(headlines), description, sentiment, "analyst", security,
            phase=f"{direction}_effective",
            new_rating=RATING_NAMES[security.analyst_rating],
            target_price=security.target_price,
        )

    # === Sector rotation ===

    def sector_rotation(self, securities: Sequence[Security]) -> None:
        market = self.market
        if not self.context.enabled("sector_rotation"):
            if market.sector_rotation_target:
                logger.info(f"Sector rotation into {market.sector_rotation_target} cancelled, feature disabled")
            market.sector_rotation_target = None
            market.sector_rotation_days_left = 0
            return

        if market.sector_rotation_target is None and self.context.chance(ROTATION_CHANCE):
            mood = "risk_on" if self.context.random() > 0.5 else "risk_off"
            self.start_sector_rotation(self.context.choice(ROTATION_TARGETS[mood]), mood)

        target = market.sector_rotation_target
        if target is None:
            return

        for security in securities:
            meme = self.context.meme(security)
            if security.sector == target:
                security.sentiment_offset += self.context.uniform(*ROTATION_INFLOW) * meme
            else:
                security.sentiment_offset -= ROTATION_OUTFLOW * meme

        market.sector_rotation_days_left -= 1
        if market.sector_rotation_days_left <= 0:
            name = SECTOR_NAMES.get(target, target.title())
            market.sector_rotation_target = None
            self._emit(
                self.context.choice([
                    f"{name} rotation appears complete",
                    f"Sector flows normalizing after {name} surge",
                    f"{name} rally losing steam",
                ]),
                "Rotation trade may be exhausted.",
                NewsSentiment.NEUTRAL, "sector_rotation",
                phase="rotation_end",
                target_sector=target,
            )

    def start_sector_rotation(self, sector: str, mood: str) -> None:
        self.market.sector_rotation_target = sector
        self.market.sector_rotation_days_left = self.context.randint(*ROTATION_DAYS)
        name = SECTOR_NAMES.get(sector, sector.title())
        logger.info(f"Sector rotation into {sector} ({mood}) for {self.market.sector_rotation_days_left}d")
        self._emit(
            self.context.choice([
                f"Money rotating into {name} stocks",
                f"Investors favor {name} sector in shift",
                f"{name} stocks see inflows as rotation begins",
                f"Fund managers overweight {name} sector",
            ]),
            "Risk appetite increasing, growth sectors favored." if mood == "risk_on"
            else "Defensive positioning, stable sectors favored.",
            NewsSentiment.POSITIVE, "sector_rotation",
            phase="rotation_start",
            target_sector=sector,
            market_mood=mood,
        )

    # === Dividend trap ===

    def dividend_traps(self, securities: Sequence[Security]) -> None:
        if not self.context.enabled("dividend_trap"):
            return
        for security in securities:
            drop = (security.base_price - security.price) / security.base_price
            security.dividend_trap = drop > TRAP_DROP
            if not security.dividend_trap or security.dividend_yield <= 0:
                continue

            effective_yield = security.dividend_yield / (1 - drop)
            if effective_yield > TRAP_YIELD and self.context.chance(TRAP_WARNING_CHANCE):
                self._emit(
                    f"Warning: {security.symbol} yield at {effective_yield:.0%} - dividend cut risk",
                    "High yield may indicate falling price, not generous payout.",
                    NewsSentiment.NEGATIVE, "dividend_trap", security,
                    phase="warning",
                    yield_percent=round(effective_yield * 100),
                )

            if security.eps_modifier < CUT_EPS and self.context.chance(CUT_CHANCE):
                security.dividend_yield *= 0.5
                security.sentiment_offset -= CUT_SENTIMENT * self.context.meme(security)
                logger.info(f"{security.symbol}: dividend cut to {security.dividend_yield:.2%}")
                self._emit(
                    f"{security.symbol} SLASHES dividend by 50%",
                    "Income investors flee as yield trap snaps shut.",
                    NewsSentiment.NEGATIVE, "dividend_trap", security,
                    phase="cut",
                )

    # === Gaps ===

    def gaps(self, securities: Sequence[Security]) -> None:
        """Fold yesterday's scheduled gap into sentiment, maybe schedule a new one."""
        for security in securities:
            if security.pending_gap:
                security.sentiment_offset += security.pending_gap
                security.pending_gap = 0.0

        up_enabled = self.context.enabled("gap_up")
        down_enabled = self.context.enabled("gap_down")
        if not (up_enabled or down_enabled) or not self.context.chance(GAP_CHANCE):
            return
        security = self.context.choice([s for s in securities if not s.trading_halted])
        if security is None:
            return

        up = self.context.random() > 0.5
        if up and not up_enabled:
            up = False
        elif not up and not down_enabled:
            up = True
        self.schedule_gap(security, self.context.uniform(*GAP_SIZE) * (1 if up else -1))

    def schedule_gap(self, security: Security, magnitude: float) -> None:
        security.pending_gap = magnitude
        up = magnitude > 0
        self._emit(
            f"{security.symbol} gaps {'UP' if up else 'DOWN'} {abs(magnitude):.0%} on overnight "
            f"{'news' if up else 'development'}",
            "Pre-market trading indicates strong open." if up else "Sellers overwhelm before market open.",
            NewsSentiment.POSITIVE if up else NewsSentiment.NEGATIVE, "gap", security,
            phase="up" if up else "down",
            gap_percent=round(abs(magnitude) * 100),
        )

    # === Correlation breakdown ===

    def correlation_breakdown(self, securities: Sequence[Security]) -> None:
        market = self.market
        if not self.context.enabled("correlation_breakdown"):
            market.correlation_stable = True
            market.correlation_days_left = 0
            return

        if market.correlation_stable and self.context.chance(CORRELATION_CHANCE):
            market.correlation_stable = False
            market.correlation_days_left = self.context.randint(*CORRELATION_DAYS)
            self._emit(
                "Market correlations breaking down - diversification failing",
                "Normally stable relationships between stocks diverging. Historical patterns unreliable.",
                NewsSentiment.NEGATIVE, "correlation",
                phase="breakdown",
            )

        if market.correlation_stable:
            return

        sectors: Dict[str, List[Security]] = defaultdict(list)
        for security in securities:
            sectors[security.sector].append(security)
        for members in sectors.values():
            if len(members) < 2:
                continue
            for security in members:
                security.sentiment_offset += (self.context.random() - 0.5) * CORRELATION_DIVERGENCE * self.context.meme(security)

        market.correlation_days_left -= 1
        if market.correlation_days_left <= 0:
            market.correlation_stable = True
            self._emit(
                "Market correlations normalizing",
                "Relationships between assets returning to historical patterns.",
                NewsSentiment.POSITIVE, "correlation",
                phase="recovery",
            )

    # === Liquidity crisis ===

    def liquidity_crisis(self, securities: Sequence[Security]) -> None:
        market = self.market
        if not self.context.enabled("liquidity_crisis"):
            market.liquidity_crisis = False
            market.liquidity_crisis_days_left = 0
            return

        if not market.liquidity_crisis and self.context.chance(LIQUIDITY_CHANCE):
            market.liquidity_crisis = True
            market.liquidity_crisis_days_left = self.context.randint(*LIQUIDITY_DAYS)
            logger.info(f"Liquidity crisis for {market.liquidity_crisis_days_left}d")
            self._emit(
                "LIQUIDITY CRISIS: Markets seizing up",
                "Bid-ask spreads widening dramatically. Selling into weakness will incur penalties.",
                NewsSentiment.NEGATIVE, "liquidity",
                phase="crisis",
            )

        if not market.liquidity_crisis:
            return

        for security in securities:
            meme = self.context.meme(security)
            security.sentiment_offset -= self.context.uniform(*LIQUIDITY_DRIFT) * meme
            security.volatility_boost = max(security.volatility_boost, LIQUIDITY_VOLATILITY * meme)

        market.liquidity_crisis_days_left -= 1
        if market.liquidity_crisis_days_left <= 0:
            market.liquidity_crisis = False
            self._emit(
                "Liquidity returning to markets",
                "Trading conditions normalizing. Spreads tightening.",
                NewsSentiment.POSITIVE, "liquidity",
                phase="recovery",
            )

    # === Calendar flows ===

    def window_dressing(self, securities: Sequence[Security]) -> None:
        """Last week of the quarter: funds buy winners and dump losers."""
        if not self.context.enabled("window_dressing") or not self.calendar.is_quarter_end:
            return

        for security in securities:
            meme = self.context.meme(security)
            if security.ytd_return > WINDOW_DRESSING_YTD:
                security.sentiment_offset += WINDOW_DRESSING_FLOW * meme
            elif security.ytd_return < -WINDOW_DRESSING_YTD:
                security.sentiment_offset -= WINDOW_DRESSING_FLOW * meme

        if self.calendar.day == 22:
            self._emit(
                "Quarter-end window dressing begins",
                "Fund managers buying winners, selling losers to beautify portfolios.",
                NewsSentiment.NEUTRAL, "window_dressing",
                phase="start",
            )

        if not self.context.chance(WINDOW_DRESSING_NEWS_CHANCE):
            return
        winners = [s for s in securities if s.ytd_return > WINDOW_DRESSING_YTD]
        losers = [s for s in securities if s.ytd_return < -WINDOW_DRESSING_YTD]
        if winners and self.context.random() > 0.5:
            self._dressing_news(self.context.choice(winners), winner=True)
        elif losers:
            self._dressing_news(self.context.choice(losers), winner=False)

    def _dressing_news(self, security: Security, winner: bool) -> None:
        if winner:
            self._emit(
                f"{security.symbol} lifted by quarter-end buying",
                "Funds adding to winners for quarterly reports.",
                NewsSentiment.POSITIVE, "window_dressing", security,
                phase="winner",
            )
        else:
            self._emit(
                f"{security.symbol} pressured by quarter-end selling",
                "Funds dumping losers before reporting period ends.",
                NewsSentiment.NEGATIVE, "window_dressing", security,
                phase="loser",
            )

    def tax_loss_harvesting(self, securities: Sequence[Security]) -> None:
        """December selling pressure on the year's biggest losers."""
        if not self.context.enabled("tax_loss_harvesting") or self.calendar.month != 12:
            return

        for security in securities:
            if security.ytd_return < TAX_LOSS_YTD:
                security.sentiment_offset -= TAX_LOSS_PRESSURE

        if self.calendar.day == 1:
            self._emit(
                "December tax loss selling season begins",
                "Year's biggest losers may face additional pressure. January bounce often follows.",
                NewsSentiment.NEUTRAL, "tax_selling",
                phase="start",
            )
        if self.context.chance(TAX_LOSS_NEWS_CHANCE):
            losers = [s for s in securities if s.ytd_return < TAX_LOSS_YTD]
            if losers:
                security = self.context.choice(losers)
                self._emit(
                    f"{security.symbol} hit by tax loss selling",
                    "Investors harvesting losses for tax benefits. Watch for January bounce.",
                    NewsSentiment.NEGATIVE, "tax_selling", security,
                    phase="selling",
                )
        if self.calendar.day == 28:
            self._emit(
                "Analysts eye January Effect for beaten-down stocks",
                "Tax selling exhausted - oversold stocks may bounce in new year.",
                NewsSentiment.NEUTRAL, "tax_selling",
                phase="january_preview",
            )

    def january_effect(self, securities: Sequence[Security]) -> None:
        """First week of January: last year's losers bounce."""
        if not self.context.enabled("tax_loss_harvesting"):
            return
        if self.calendar.month != 1 or self.calendar.day > JANUARY_DAYS:
            return
        for security in securities:
            if security.ytd_return < TAX_LOSS_YTD:
                security.sentiment_offset += JANUARY_BOUNCE

    # === Earnings whisper ===

    def earnings_whisper(self, securities: Sequence[Security]) -> Optional[NewsRecord]:
        """
        Unofficial expectations leak for one security.

        No price effect: the whisper only changes what counts as a beat.
        """
        if not self.context.enabled("earnings_whisper") or not securities:
            return None
        if not self.context.chance(WHISPER_CHANCE):
            return None

        security = self.context.choice(securities)
        gap = (self.context.random() - WHISPER_SKEW) * WHISPER_SPREAD
        security.whisper_gap = gap
        direction = "higher" if gap > 0 else "lower"
        return self._emit(
            f"{security.symbol} whisper number {abs(gap) * 100:.0f}% {direction} than Street",
            "Street expectations may be too low. Beat official but miss whisper = drop." if gap > 0
            else "Lowered expectations could set up positive surprise.",
            NewsSentiment.NEUTRAL, "whisper",
            security=security,
            whisper_direction=direction,
            whisper_gap=gap,
        )

    # === Circuit breaker ===

    def circuit_breakers(self, securities: Sequence[Security]) -> None:
        """Halt for one day after a 10% move; resume the day after."""
        if not self.context.enabled("circuit_breaker"):
            for security in securities:
                security.trading_halted = False
            return

        for security in securities:
            if security.trading_halted:
                security.trading_halted = False
                self._emit(
                    f"{security.symbol} trading resumes after halt",
                    "Circuit breaker lifted. Expect continued volatility.",
                    NewsSentiment.NEUTRAL, "circuit_breaker", security,
                    phase="resumed",
                )
                continue
            if abs(security.daily_change) >= HALT_MOVE:
                security.trading_halted = True
                logger.info(f"{security.symbol}: circuit breaker, move {security.daily_change:+.1%}")
                self._emit(
                    f"TRADING HALTED: {security.symbol} circuit breaker triggered",
                    "Extreme price movement triggered automatic halt. Trading will resume tomorrow.",
                    NewsSentiment.NEGATIVE, "circuit_breaker", security,
                    phase="halted",
                    daily_change=security.daily_change,
                )

    # === Capitulation ===

    def capitulation(self, securities: Sequence[Security]) -> None:
        if not self.context.enabled("capitulation"):
            for security in securities:
                security.capitulation_reversal_in = 0
            return

        for security in securities:
            if security.capitulation_reversal_in > 0:
                security.capitulation_reversal_in -= 1
                if security.capitulation_reversal_in == 0:
                    self._capitulation_reversal(security)
                continue

            if security.recent_high <= 0:
                continue
            drop = (security.recent_high - security.price) / security.recent_high
            if drop <= CAPITULATION_DROP or security.consecutive_down_days < CAPITULATION_DOWN_DAYS:
                continue
            if not self.context.chance(CAPITULATION_CHANCE):
                continue

            security.sentiment_offset = CAPITULATION_SENTIMENT
            security.capitulation_reversal_in = self.context.randint(*CAPITULATION_REVERSAL_DAYS)
            logger.info(f"{security.symbol}: capitulation, {drop:.0%} off high, reversal in {security.capitulation_reversal_in}d")
            self._emit(
                f"{security.symbol} in CAPITULATION - investors throw in towel",
                "Extreme selling. Blood in the streets.",
                NewsSentiment.NEGATIVE, "capitulation", security,
                phase="capitulation",
                drop_from_high=drop,
            )

    def _capitulation_reversal(self, security: Security) -> None:
        meme = self.context.meme(security)
        security.sentiment_offset += CAPITULATION_BOUNCE_SENTIMENT * meme
        security.set_transition_effect("capitulation", self.context.uniform(*CAPITULATION_BOUNCE) * meme)
        self._emit(
            f"{security.symbol} REVERSING - was that capitulation the bottom?",
            "Contrarian buyers stepping in after extreme selling.",
            NewsSentiment.POSITIVE, "capitulation", security,
            phase="reversal",
        )

    # === YTD bookkeeping ===

    def update_ytd(self, securities: Sequence[Security]) -> None:
        """Year-to-date return against the first price of the game year."""
        new_year = self.calendar.month == 1 and self.calendar.day == 1
        for security in securities:
            if new_year:
                security.year_start_price = security.price
                security.ytd_return = 0.0
            elif security.year_start_price > 0:
                security.ytd_return = (security.price - security.year_start_price) / security.year_start_price

    # === Quiet day ===

    def quiet_day(self) -> Optional[NewsRecord]:
        """Teaching headline for days where nothing else was said."""
        if self.context.news_sink.today():
            return None
        headline, description = self.context.choice(QUIET_DAY_NEWS)
        return self._emit(headline, description, NewsSentiment.NEUTRAL, "quiet_day")

    # === Daily pass ===

    def regime_effects(self, securities: Sequence[Security]) -> None:
        """Sector rotation through circuit breakers, in daily order."""
        self.sector_rotation(securities)
        self.dividend_traps(securities)
        self.gaps(securities)
        self.correlation_breakdown(securities)
        self.liquidity_crisis(securities)
        self.window_dressing(securities)
        self.tax_loss_harvesting(securities)
        self.january_effect(securities)
        self.earnings_whisper(securities)
        self.circuit_breakers(securities)
