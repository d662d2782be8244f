# insider_selling.py
# Form 4 sales: mostly noise, a weak warning only when 3+ insiders sell
# The lesson is the asymmetry. Buying has one reason, selling has many.

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence

from insider_buying import AmountTier, InsiderTitle, age_records, draw_amount, format_dollar_amount
from news_schema import NewsRecord, NewsSentiment
from phenomenon_machine import PhenomenonMachine, PhenomenonState
from security_schema import InsiderTransaction, Security

logger = logging.getLogger(__name__)


DAILY_PROBABILITY = 0.012
CLUSTER_SELL_PENALTY = 0.10
CLUSTER_THRESHOLD = 3
SIGNAL_DECAY = 30
CLUSTER_SENTIMENT_HIT = 0.01
PLANNED_REASON = "Scheduled 10b5-1 plan"

# Every title equally likely, equally (un)informative
SELL_TITLES: List[InsiderTitle] = [
    InsiderTitle("CEO", 1.0, "Chief Executive Officer"),
    InsiderTitle("CFO", 1.0, "Chief Financial Officer"),
    InsiderTitle("Chairman", 1.0, "Chairman of the Board"),
    InsiderTitle("COO", 1.0, "Chief Operating Officer"),
    InsiderTitle("Director", 1.0, "Board Member"),
    InsiderTitle("VP", 1.0, "Vice President"),
    InsiderTitle("10% Owner", 1.0, "Beneficial Owner >10%"),
]

# 25% small, 40% medium, 25% large, 10% massive
SELL_AMOUNTS: List[AmountTier] = [
    AmountTier(200_000, 1_000_000, "$200K-$1M", 0.5, 0.25),
    AmountTier(1_000_000, 5_000_000, "$1M-$5M", 1.0, 0.65),
    AmountTier(5_000_000, 20_000_000, "$5M-$20M", 1.2, 0.90),
    AmountTier(20_000_000, 100_000_000, "$20M+", 1.5, 1.00),
]


@dataclass(frozen=True)
class SellReason:
    reason: str
    frequency: float
    is_bearish: bool
    explanation: str


SELL_REASONS: List[SellReason] = [
    SellReason("Tax planning", 0.22, False, "Selling to pay taxes or harvest losses - completely normal"),
    SellReason("Portfolio diversification", 0.20, False, "Reducing concentration risk - prudent wealth management"),
    SellReason(PLANNED_REASON, 0.18, False, "Pre-scheduled automatic sales - set months in advance"),
    SellReason("Estate planning", 0.10, False, "Wealth transfer to family - not related to stock outlook"),
    SellReason("Home purchase", 0.08, False, "Needs cash for real estate - life event, not stock view"),
    SellReason("Tuition/Education", 0.06, False, "Paying for college - timing driven by need, not stock"),
    SellReason("Divorce settlement", 0.04, False, "Court-ordered asset division - forced sale"),
    SellReason("Liquidity needs", 0.05, False, "General cash needs - could be anything"),
    SellReason("Believes stock overvalued", 0.07, True, "Actually thinks the stock will decline - RARE"),
]


def draw_reason(random: Callable[[], float]) -> SellReason:
    roll = random()
    cumulative = 0.0
    for reason in SELL_REASONS:
        cumulative += reason.frequency
        if roll <= cumulative:
            return reason
    return SELL_REASONS[0]


@dataclass
class InsiderSellSignal:
    has_sell_signal: bool = False
    is_cluster_sell: bool = False
    is_noise: bool = True
    sell_count: int = 0
    probability_penalty: float = 0.0
    signal_strength: str = "NOISE"
    signals: List[Dict[str, Any]] = field(default_factory=list)
    recent_sells: List[InsiderTransaction] = field(default_factory=list)
    planned_sales_count: int = 0
    discretionary_sales_count: int = 0


class InsiderSelling(PhenomenonMachine):
    """
    Open-market insider sales (Form 4 code S).

    Design principles:
    - Single sales carry zero signal and never move sentiment
    - Cluster (3+ in 30 days) = WEAK_WARNING, -10% penalty, -0.01 sentiment
    - Headlines are never labelled negative
    - Never part of any Gold Standard
    """

    name = "insider_selling"
    news_type = "insider_sell"

    def calculate_signal(self, security: Security) -> InsiderSellSignal:
        result = InsiderSellSignal()
        recent = [s for s in security.insider_sells if s.days_ago < SIGNAL_DECAY]
        result.recent_sells = recent
        result.sell_count = len(recent)
        result.planned_sales_count = sum(1 for s in recent if s.is_planned)
        result.discretionary_sales_count = len(recent) - result.planned_sales_count
        if not recent:
            return result

        result.has_sell_signal = True
        if len(recent) >= CLUSTER_THRESHOLD:
            result.is_cluster_sell = True
            result.is_noise = False
            result.probability_penalty = CLUSTER_SELL_PENALTY
            result.signal_strength = "WEAK_WARNING"
            result.signals.append({
                "name": f"Cluster selling ({len(recent)} insiders)",
                "penalty": "-10%",
                "met": True,
                "description": "Multiple insiders selling MAY indicate concern (or coordinated planning).",
            })
        else:
            result.signals.append({
                "name": f"Insider selling ({len(recent)})",
                "penalty": "+0%",
                "met": False,
                "description": "Selling is NOISE - insiders sell for many non-bearish reasons. IGNORE.",
            })
        return result

    def daily_update(self, security: Security) -> None:
        if self.is_enabled():
            security.insider_sells = age_records(security.insider_sells, SIGNAL_DECAY)

    def daily_trigger(self, securities: Sequence[Security]) -> List[PhenomenonState]:
        if not self.is_enabled():
            return []
        for security in securities:
            if self.random() < DAILY_PROBABILITY:
                self.record_sell(security)
        return []

    def record_sell(
        self,
        security: Security,
        title: Optional[InsiderTitle] = None,
        amount: Optional[float] = None,
        reason: Optional[SellReason] = None,
    ) -> InsiderTransaction:
        title = title or self.choice(SELL_TITLES)
        if amount is None:
            amount, tier = draw_amount(SELL_AMOUNTS, self.random)
        else:
            tier = next((t for t in SELL_AMOUNTS if amount < t.high), SELL_AMOUNTS[-1])
        reason = reason or draw_reason(self.random)

        record = InsiderTransaction(
            title=title.name,
            title_weight=title.weight,
            amount=amount,
            amount_weight=tier.weight,
            shares=int(amount // security.price),
            price=security.price,
            days_ago=0,
            form4_code="S",
            reason=reason.reason,
            is_bearish_reason=reason.is_bearish,
            is_planned=reason.reason == PLANNED_REASON,
        )
        security.insider_sells.append(record)

        signal = self.calculate_signal(security)
        logger.info(
            f"{security.symbol}: insider sell {title.name} {format_dollar_amount(amount)} "
            f"(reason={reason.reason}, cluster={signal.is_cluster_sell})"
        )

        self.emit(self._news(security, record, title, reason, signal))
        if signal.is_cluster_sell:
            security.sentiment_offset -= CLUSTER_SENTIMENT_HIT
        return record

    def _news(
        self,
        security: Security,
        record: InsiderTransaction,
        title: InsiderTitle,
        reason: SellReason,
        signal: InsiderSellSignal,
    ) -> NewsRecord:
        amount = format_dollar_amount(record.amount)
        if signal.is_cluster_sell:
            headline = f"{security.symbol}: Multiple insiders selling shares"
            description = (
                f"{signal.sell_count} insiders have sold shares recently. While usually noise, "
                f"cluster selling MAY warrant attention. Likely reason: coordinated planning."
            )
            note = (
                f"CLUSTER SELLING: {signal.sell_count} insiders sold. This MAY warrant attention, "
                f"but could still be coordinated tax planning or lockup expiry."
            )
        else:
            headline = f"{security.symbol} {title.name} sells {amount} in shares"
            tail = "" if reason.is_bearish else " NOT a bearish signal."
            description = (
                f"{title.description} files Form 4 showing sale of {record.shares:,} shares. "
                f"Likely reason: {reason.reason}.{tail}"
            )
            note = (
                f'KEY LESSON: Insider selling is NOISE. Reason: "{reason.reason}" - '
                f"{reason.explanation}. Do NOT treat this as a bearish signal."
            )

        return self.make_news(
            security, None,
            headline=headline,
            description=description,
            sentiment=NewsSentiment.NEUTRAL,
            phase="cluster" if signal.is_cluster_sell else "single",
            educational_note=note,
            insider_title=title.name,
            sale_amount=amount,
            share_count=record.shares,
            form4_code="S",
            likely_reason=reason.reason,
            reason_is_bearish=reason.is_bearish,
            is_cluster_sell=signal.is_cluster_sell,
            is_noise=not signal.is_cluster_sell,
            signal_strength=signal.signal_strength,
            probability_penalty=signal.probability_penalty,
            sell_count=signal.sell_count,
        )

    # === Tutorial ===

    def gold_standard_summary(self, news: NewsRecord) -> Optional[str]:
        return ("Not part of any setup: only ~7% of insider sales are bearish. "
                "Focus on insider BUYING (3+ cluster, code P, >10% wealth).")

    def phase_hints(self, news: NewsRecord) -> Dict[str, Dict[str, Any]]:
        reason = news.payload.get("likely_reason") or "Tax/Diversification/Life Event"
        return {
            "cluster": {
                "type": "CLUSTER SELL - MINOR CAUTION (still mostly noise)",
                "description": "Multiple insiders selling is unusual. Check for lockup expiry, tax planning, 10b5-1 schedules.",
                "implication": "Cluster selling penalty: -10% (weak signal at best).",
                "action": "Do NOT panic sell. Verify with fundamentals.",
                "timing": None,
                "catalyst": 'Trap keywords in the filing: "10b5-1", "Code F", "Code M" mean ignore.',
            },
            "single": {
                "type": "INSIDER SELL - NOISE (IGNORE THIS)",
                "description": f"Likely reason: {reason}. This is NOT a trading signal.",
                "implication": "Signal value: +0%. Zero predictive power.",
                "action": "IGNORE this news. Do NOT sell based on insider sales.",
                "timing": None,
                "catalyst": "THE ASYMMETRY: Buying = ONE reason. Selling = MANY reasons (93% not bearish).",
            },
        }
