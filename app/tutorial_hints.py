# tutorial_hints.py
# Signal aggregator - routes a headline to the teaching hint that explains it
# Pure lookups. Unknown or foreign news returns None, never raises.

import logging
from typing import Any, Callable, Dict, Iterable, Optional

from news_schema import NewsRecord, NewsSentiment
from phenomenon_machine import HINT_KEYS, PhenomenonMachine

logger = logging.getLogger(__name__)


StaticHint = Dict[str, Optional[str]]
HintResolver = Callable[[NewsRecord], Optional[StaticHint]]


def _hint(type_: str, description: str, implication: str, action: str,
          timing: Optional[str] = None, catalyst: Optional[str] = None) -> StaticHint:
    return {
        "type": type_,
        "description": description,
        "implication": implication,
        "action": action,
        "timing": timing,
        "catalyst": catalyst,
    }


# === Market-effect hints ===

QUIET_DAY = _hint(
    "Quiet Day (No Actionable Signals)",
    "No Tier 1-2 events today. This is NORMAL - not every day has good setups.",
    "Forcing trades on quiet days = losing money. Professional traders often sit out 70% of days.",
    "DO NOTHING - Use this time to review watchlist, study past trades, prepare for next catalyst.",
    "ENTRY: None today. Wait for: Insider buying, short squeeze setups, bounce #3+, index rebalancing.",
    'LESSON: "The goal is not to trade every day. The goal is to trade only when odds are heavily in your favor."',
)

ANALYST_UPGRADE = _hint(
    "Analyst Upgrade",
    "Wall Street analyst raising rating or price target.",
    "May attract institutional buying. Stock often rises short-term.",
    "SENTIMENT BOOST - Upgrades help, but do your own research.",
)

ANALYST_DOWNGRADE = _hint(
    "Analyst Downgrade",
    "Wall Street analyst lowering rating or price target.",
    "May trigger institutional selling. Stock often falls short-term.",
    "EVALUATE REASONING - Sometimes downgrades create buying opportunities.",
)

SECTOR_ROTATION = _hint(
    "Sector Rotation",
    "Money flowing from one sector to another based on economic cycle or sentiment.",
    "Leading sectors change throughout market cycles. Follow the money.",
    "FOLLOW THE FLOW - Reduce lagging sectors, increase leading sectors.",
)

DIVIDEND_TRAP = _hint(
    "Dividend Cut",
    "High dividend yield often signals distress. Company may cut dividend.",
    "Stock often falls sharply. Income investors exit. Cash flow concerns.",
    "YIELD TRAP WARNING - Very high yields are often unsustainable.",
)

CIRCUIT_BREAKER = _hint(
    "Circuit Breaker / Trading Halt",
    "Trading halted due to extreme price movement. Automatic market protection.",
    "Extreme volatility. When trading resumes, expect continued wild swings.",
    "EXTREME CAUTION - Let volatility settle before trading. Gap risk is high.",
)

GAP_UP = _hint(
    "Gap Up",
    "Stock opened significantly higher than previous close due to overnight news or pre-market activity.",
    "Strong bullish signal, but gaps often partially fill. Profit-taking may occur.",
    "CAUTION BUYING - Gap ups often retrace. Consider waiting for pullback or buying small.",
)

GAP_DOWN = _hint(
    "Gap Down",
    "Stock opened significantly lower than previous close due to overnight developments.",
    "Bearish signal, but oversold gaps can bounce. Panic selling may be overdone.",
    "WAIT FOR STABILIZATION - Gap downs can continue falling. Don't catch falling knives.",
)

CAPITULATION = _hint(
    "Capitulation (Extreme Panic)",
    "Investors have given up. Extreme selling = extreme fear. This is often when bottoms form.",
    "Sellers are exhausted. Whoever wanted out is out.",
    'CONTRARIAN BUY - "Blood in the streets" = buying opportunity. Start small position.',
    "ENTRY: On capitulation news (Day 0). EXIT: On reversal news (+15-25% profit).",
    'Expected: V-shaped reversal within 1-3 days. Watch for "REVERSING - was that the bottom?" news.',
)

CAPITULATION_REVERSAL = _hint(
    "Capitulation Reversal",
    "Contrarian buyers stepping in after extreme selling.",
    "The capitulation low often marks the bottom for weeks.",
    "TAKE PROFITS on the bounce if you bought the panic.",
    "EXIT: Into this strength.",
    None,
)

CORRELATION = _hint(
    "Correlation Breakdown",
    "Stocks that usually move together are diverging.",
    "Diversification and pairs relationships are unreliable until correlations normalize.",
    "REDUCE SIZE - Historical patterns are temporarily unreliable.",
)

LIQUIDITY = _hint(
    "Liquidity Crisis",
    "Bid-ask spreads widening. Buyers disappearing across the market.",
    "Everything drifts lower with high volatility, good stocks included.",
    "DEFENSIVE - Avoid forced selling into weakness. Raise cash before, not during.",
)

WINDOW_DRESSING = _hint(
    "Quarter-End Window Dressing",
    "Fund managers buying winners and dumping losers before reporting.",
    "Small, predictable flows: winners drift up, losers drift down into quarter end.",
    "DON'T FIGHT IT - Losers often bounce once the new quarter starts.",
)

TAX_SELLING = _hint(
    "Tax Loss Harvesting",
    "December selling in the year's biggest losers for tax benefits.",
    "Selling pressure is calendar-driven, not fundamental.",
    "WATCH FOR JANUARY - Beaten-down stocks often bounce in the first week of the year.",
)

WHISPER = _hint(
    "Earnings Whisper",
    "Unofficial expectations differ from the published Street estimate.",
    "The whisper, not the official number, is the bar the report must clear.",
    "UNPREDICTABLE - Beat the Street but miss the whisper and the stock can still drop.",
)

MARKET_UP = _hint(
    "Market Rally",
    "Broad market is rising. Most stocks moving higher.",
    "Bull market conditions. Easier to make money when tide is rising.",
    "STAY LONG - Don't fight the trend. Use pullbacks to add.",
)

MARKET_DOWN = _hint(
    "Market Decline",
    "Broad market is falling. Most stocks moving lower.",
    "Bear market conditions. Even good stocks can fall.",
    "DEFENSIVE - Reduce exposure, raise cash, wait for bottom.",
)


def _by_sentiment(positive: StaticHint, negative: StaticHint) -> HintResolver:
    def resolve(news: NewsRecord) -> StaticHint:
        return positive if news.sentiment_label == NewsSentiment.POSITIVE else negative
    return resolve


def _constant(hint: StaticHint) -> HintResolver:
    return lambda news: hint


def _gap(news: NewsRecord) -> StaticHint:
    if news.phase == "up" or news.sentiment_label == NewsSentiment.POSITIVE:
        return GAP_UP
    return GAP_DOWN


def _capitulation(news: NewsRecord) -> StaticHint:
    return CAPITULATION_REVERSAL if news.phase == "reversal" else CAPITULATION


STATIC_RESOLVERS: Dict[str, HintResolver] = {
    "quiet_day": _constant(QUIET_DAY),
    "analyst": _by_sentiment(ANALYST_UPGRADE, ANALYST_DOWNGRADE),
    "sector_rotation": _constant(SECTOR_ROTATION),
    "dividend_trap": _constant(DIVIDEND_TRAP),
    "circuit_breaker": _constant(CIRCUIT_BREAKER),
    "gap": _gap,
    "capitulation": _capitulation,
    "correlation": _constant(CORRELATION),
    "liquidity": _constant(LIQUIDITY),
    "window_dressing": _constant(WINDOW_DRESSING),
    "tax_selling": _constant(TAX_SELLING),
    "whisper": _constant(WHISPER),
}


class HintRegistry:
    """
    news_type -> whoever can explain it.

    Design principles:
    - Phenomenon news is answered by the machine that emitted it
      (phase-aware, carries the Gold Standard summary)
    - Market-effect news is answered by a static resolver
    - Market-wide news of unknown type falls back to rally/decline
    - Lookups are pure; a resolver that raises is logged and treated as None
    """

    def __init__(self, machines: Iterable[PhenomenonMachine] = (), static: Optional[Dict[str, HintResolver]] = None):
        self.machines: Dict[str, PhenomenonMachine] = {}
        self.static: Dict[str, HintResolver] = dict(STATIC_RESOLVERS if static is None else static)
        for machine in machines:
            self.register_machine(machine)

    def register_machine(self, machine: PhenomenonMachine) -> None:
        if machine.news_type in self.machines:
            logger.warning(f"Hint routing for {machine.news_type!r} replaced by {machine.name}")
        self.machines[machine.news_type] = machine

    def register_static(self, news_type: str, resolver: HintResolver) -> None:
        self.static[news_type] = resolver

    def news_types(self) -> list:
        return sorted(set(self.machines) | set(self.static))

    def get(self, news: Optional[NewsRecord]) -> Optional[Dict[str, Any]]:
        if news is None:
            return None

        machine = self.machines.get(news.news_type)
        if machine is not None:
            return machine.get_tutorial_hint(news)

        resolver = self.static.get(news.news_type)
        hint = None
        if resolver is not None:
            try:
                hint = resolver(news)
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"Hint resolver for {news.news_type!r} failed: {e}")
                return None
        elif news.is_market_wide:
            label = news.sentiment_label
            if label == NewsSentiment.POSITIVE:
                hint = MARKET_UP
            elif label == NewsSentiment.NEGATIVE:
                hint = MARKET_DOWN

        if hint is None:
            return None
        result = {key: hint.get(key) for key in HINT_KEYS}
        result["gold_standard_summary"] = None
        return result


_registry: Optional[HintRegistry] = None


def set_registry(registry: HintRegistry) -> None:
    """Install the registry used by the module-level get_tutorial_hint."""
    global _registry
    _registry = registry


def get_tutorial_hint(news: Optional[NewsRecord], registry: Optional[HintRegistry] = None) -> Optional[Dict[str, Any]]:
    """
    Teaching hint for any headline.

    Args:
        news: The headline (None allowed)
        registry: Routing table; defaults to the one installed by the
                  orchestrator, then to static hints only

    Returns:
        Dict with type, description, implication, action, timing,
        catalyst, gold_standard_summary; or None
    """
    registry = registry or _registry or HintRegistry()
    return registry.get(news)
