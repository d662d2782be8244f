# insider_buying.py
# Form 4 open-market purchases: record list per security, cluster detection, reversal boost
# Insiders buy for one reason. Three of them buying at once is the strongest tell.

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from news_schema import NewsRecord, NewsSentiment
from phenomenon_machine import GoldStandardTable, PhenomenonMachine, PhenomenonState
from security_schema import InsiderTransaction, Security

logger = logging.getLogger(__name__)


# === Event rates ===
DAILY_PROBABILITY = 0.005
CRASH_MULTIPLIER = 2.5                 # Dead-cat bounce in crash/bounce phase
SHORT_REPORT_MULTIPLIER = 2.0          # Any short report in progress
CLUSTER_WINDOW = 14                    # Days, as quoted in headlines

# === Signal ===
SINGLE_BUY_BOOST = 0.10
CLUSTER_BUY_BOOST = 0.25
CLUSTER_THRESHOLD = 3
SIGNAL_DECAY = 30
EXECUTIVE_WEIGHT = 1.4

# === Gold Standard ===
WEALTH_COMMITMENT = 0.10
GOLD_STANDARD_SUCCESS = 0.85


@dataclass(frozen=True)
class InsiderTitle:
    name: str
    weight: float
    description: str


@dataclass(frozen=True)
class AmountTier:
    """Dollar band for one filing; weight scales the signal."""
    low: float
    high: float
    label: str
    weight: float
    cumulative: float               # Upper bound of this tier's share of draws
    wealth_fraction: Tuple[float, float] = (0.02, 0.08)


BUY_TITLES: List[InsiderTitle] = [
    InsiderTitle("CEO", 1.5, "Chief Executive Officer"),
    InsiderTitle("CFO", 1.4, "Chief Financial Officer"),
    InsiderTitle("Chairman", 1.4, "Chairman of the Board"),
    InsiderTitle("COO", 1.2, "Chief Operating Officer"),
    InsiderTitle("Director", 1.0, "Board Member"),
    InsiderTitle("VP", 0.9, "Vice President"),
    InsiderTitle("10% Owner", 0.8, "Beneficial Owner >10%"),
]

# 35% small, 40% medium, 20% large, 5% massive
BUY_AMOUNTS: List[AmountTier] = [
    AmountTier(100_000, 500_000, "$100K-$500K", 0.7, 0.35, (0.02, 0.08)),
    AmountTier(500_000, 2_000_000, "$500K-$2M", 1.0, 0.75, (0.05, 0.15)),
    AmountTier(2_000_000, 10_000_000, "$2M-$10M", 1.3, 0.95, (0.08, 0.25)),
    AmountTier(10_000_000, 50_000_000, "$10M+", 1.5, 1.00, (0.10, 0.40)),
]


def format_dollar_amount(amount: float) -> str:
    if amount >= 1_000_000:
        return f"${amount / 1_000_000:.1f}M"
    if amount >= 1_000:
        return f"${amount / 1_000:.0f}K"
    return f"${amount:.0f}"


def weighted_title(titles: Sequence[InsiderTitle], random: Callable[[], float]) -> InsiderTitle:
    """Title drawn proportionally to weight (executives more likely)."""
    total = sum(t.weight for t in titles)
    roll = random() * total
    for title in titles:
        roll -= title.weight
        if roll <= 0:
            return title
    return titles[-1]


def draw_amount(tiers: Sequence[AmountTier], random: Callable[[], float]) -> Tuple[float, AmountTier]:
    roll = random()
    tier = next((t for t in tiers if roll < t.cumulative), tiers[-1])
    return tier.low + random() * (tier.high - tier.low), tier


def age_records(records: List[InsiderTransaction], window: int = SIGNAL_DECAY) -> List[InsiderTransaction]:
    """Age every filing by one day and drop those past the window."""
    aged = [record.aged() for record in records]
    return [record for record in aged if record.days_ago < window]


@dataclass
class InsiderBuySignal:
    """
    What the recent purchase filings say about a security.

    probability_boost is what reversal phenomena add to their odds.
    """
    has_buy_signal: bool = False
    is_cluster_buy: bool = False
    buy_count: int = 0
    probability_boost: float = 0.0
    signal_strength: str = "none"
    total_title_weight: float = 0.0
    total_amount_weight: float = 0.0
    signals: List[Dict[str, Any]] = field(default_factory=list)
    recent_buys: List[InsiderTransaction] = field(default_factory=list)


class InsiderBuying(PhenomenonMachine):
    """
    Open-market insider purchases (Form 4 code P).

    Design principles:
    - Not a phased slot: each filing is a record on security.insider_buys
    - Records age one day per tick and expire after 30 days
    - One buy = +10% reversal boost, two = +20%, a cluster of 3+ = +25%
    - Insiders buy into crashes and short attacks more often

    Gold Standard criteria:
    1. cluster_buying: 3+ insiders within the window
    2. open_market: every recent filing is code P
    3. wealth_commitment: average stake > 10% of insider wealth
    """

    name = "insider_buying"
    news_type = "insider_buy"
    criteria = ("cluster_buying", "open_market", "wealth_commitment")
    probability_table = GoldStandardTable({3: GOLD_STANDARD_SUCCESS}, default=0.0)
    probability_floor = 0.0

    # === Signal ===

    def calculate_signal(self, security: Security) -> InsiderBuySignal:
        result = InsiderBuySignal()
        recent = [b for b in security.insider_buys if b.days_ago < SIGNAL_DECAY]
        result.recent_buys = recent
        result.buy_count = len(recent)
        if not recent:
            return result

        result.has_buy_signal = True
        result.total_title_weight = sum(b.title_weight or 1 for b in recent)
        result.total_amount_weight = sum(b.amount_weight or 1 for b in recent)

        if len(recent) >= CLUSTER_THRESHOLD:
            result.is_cluster_buy = True
            result.probability_boost = CLUSTER_BUY_BOOST
            result.signal_strength = "VERY_STRONG"
            result.signals.append({
                "name": f"Cluster buying ({len(recent)} insiders)",
                "bonus": "+25%",
                "met": True,
                "description": "Multiple insiders buying = 2x predictive power.",
            })
        else:
            result.probability_boost = SINGLE_BUY_BOOST * min(len(recent), 2)
            result.signal_strength = "STRONG" if len(recent) > 1 else "MODERATE"
            plural = "s" if len(recent) > 1 else ""
            result.signals.append({
                "name": f"Insider buying ({len(recent)} insider{plural})",
                "bonus": f"+{len(recent) * 10}%",
                "met": True,
                "description": "Insiders buy for ONE reason: they expect the stock to rise.",
            })

        if any(b.title_weight >= EXECUTIVE_WEIGHT for b in recent):
            result.signals.append({
                "name": "Executive-level buy (CEO/CFO/Chairman)",
                "bonus": "Extra conviction",
                "met": True,
                "description": "C-suite executives have the deepest knowledge of the business.",
            })
        return result

    def get_insider_boost(self, security: Security) -> float:
        return self.calculate_signal(security).probability_boost

    def gold_standard(self, signal: InsiderBuySignal) -> Dict[str, bool]:
        recent = signal.recent_buys
        average_stake = sum(b.wealth_fraction for b in recent) / len(recent) if recent else 0.0
        return {
            "cluster_buying": signal.is_cluster_buy,
            "open_market": bool(recent) and all(b.form4_code == "P" for b in recent),
            "wealth_commitment": average_stake > WEALTH_COMMITMENT,
        }

    # === Daily ===

    def daily_update(self, security: Security) -> None:
        if self.is_enabled():
            security.insider_buys = age_records(security.insider_buys)

    def buy_probability(self, security: Security) -> float:
        probability = DAILY_PROBABILITY
        crash = security.get_state("dead_cat_bounce")
        if crash is not None and crash.phase in ("crash", "bounce"):
            probability *= CRASH_MULTIPLIER
        if security.has_state("short_seller_report"):
            probability *= SHORT_REPORT_MULTIPLIER
        return probability

    def daily_trigger(self, securities: Sequence[Security]) -> List[PhenomenonState]:
        if not self.is_enabled():
            return []
        for security in securities:
            if self.random() < self.buy_probability(security):
                self.record_buy(security)
        return []

    def record_buy(
        self,
        security: Security,
        title: Optional[InsiderTitle] = None,
        amount: Optional[float] = None,
        wealth_fraction: Optional[float] = None,
    ) -> InsiderTransaction:
        """
        File one purchase, emit its news, nudge sentiment.

        Explicit arguments skip the random draws (scripted scenarios).
        """
        title = title or weighted_title(BUY_TITLES, self.random)
        if amount is None:
            amount, tier = draw_amount(BUY_AMOUNTS, self.random)
        else:
            tier = next((t for t in BUY_AMOUNTS if amount < t.high), BUY_AMOUNTS[-1])
        if wealth_fraction is None:
            wealth_fraction = self.uniform(*tier.wealth_fraction)

        record = InsiderTransaction(
            title=title.name,
            title_weight=title.weight,
            amount=amount,
            amount_weight=tier.weight,
            shares=int(amount // security.price),
            price=security.price,
            days_ago=0,
            form4_code="P",
            wealth_fraction=wealth_fraction,
        )
        security.insider_buys.append(record)

        signal = self.calculate_signal(security)
        logger.info(
            f"{security.symbol}: insider buy {title.name} {format_dollar_amount(amount)} "
            f"(cluster={signal.is_cluster_buy})"
        )

        self.emit(self._news(security, record, title, signal))
        security.sentiment_offset += 0.03 if signal.is_cluster_buy else 0.015 * title.weight
        return record

    def _news(
        self,
        security: Security,
        record: InsiderTransaction,
        title: InsiderTitle,
        signal: InsiderBuySignal,
    ) -> NewsRecord:
        amount = format_dollar_amount(record.amount)
        if signal.is_cluster_buy:
            headline = f"SEC Form 4: {signal.buy_count} {security.symbol} Insiders Make Open Market Purchases"
            description = (
                f"{signal.buy_count} company insiders have purchased shares in the past {CLUSTER_WINDOW} days. "
                f"Cluster buying has 2x the predictive power of single insider buys."
            )
            note = "ACTION: BUY or ADD. Cluster buying (3+ insiders) is the strongest insider signal."
        else:
            headline = f"SEC Form 4: {security.symbol} {title.name} Open Market Purchase - {amount}"
            description = (
                f"{title.description} files Form 4 showing open market purchase of {record.shares:,} shares "
                f"at ${record.price:.2f}. Code P purchases are the strongest insider signal."
            )
            note = (
                f"ACTION: CONSIDER BUYING. {title.name} buying with personal funds is bullish. "
                f"Wait for additional confirmation for a safer entry."
            )

        gold = self.gold_standard(signal)
        met = sum(gold.values())
        probability = self.probability_table.probability(met)
        return NewsRecord(
            headline=headline,
            description=description,
            sentiment=NewsSentiment.POSITIVE,
            related_stock=security.symbol,
            news_type=self.news_type,
            phase="cluster" if signal.is_cluster_buy else "single",
            probability=probability,
            gold_standard=gold,
            is_gold_standard=met == len(gold),
            criteria_met=met,
            total_criteria=len(gold),
            educational_note=note,
            payload={
                "insider_title": title.name,
                "purchase_amount": amount,
                "share_count": record.shares,
                "form4_code": "P",
                "title_weight": title.weight,
                "is_cluster_buy": signal.is_cluster_buy,
                "signal_strength": signal.signal_strength,
                "probability_boost": signal.probability_boost,
                "buy_count": signal.buy_count,
            },
        )

    # === Tutorial ===

    def gold_standard_summary(self, news: NewsRecord) -> Optional[str]:
        if news.is_gold_standard:
            return ("INSIDER GOLD STANDARD: cluster buying (3+) of open market shares (code P) "
                    f"representing >10% of wealth ({GOLD_STANDARD_SUCCESS:.0%} historical success).")
        return (f"{news.criteria_met or 0}/{news.total_criteria or 3} criteria met. "
                "Need cluster (3+) open market buys with >10% wealth commitment.")

    def phase_hints(self, news: NewsRecord) -> Dict[str, Dict[str, Any]]:
        title = news.payload.get("insider_title") or "Insider"
        count = news.payload.get("buy_count", 0)
        return {
            "cluster": {
                "type": "CLUSTER BUY - VERY STRONG BULLISH",
                "description": "Multiple insiders betting the same direction. Check: Form 4 code P and a significant share of wealth.",
                "implication": f"{count} insiders buying = +25% reversal boost. Cluster buying has 2x predictive power.",
                "action": "Strong entry signal when all three criteria line up." if news.is_gold_standard
                else "Good signal, but verify: open market purchases? Significant wealth commitment?",
                "timing": 'ENTRY: On cluster confirmation. EXIT: On catalyst announcement or if a "10b5-1 plan" is revealed.',
                "catalyst": "Expected (70%): better guidance, major contract, approval. Fizzle (30%): routine plan, bad timing.",
            },
            "single": {
                "type": "INSIDER BUY - BULLISH SIGNAL",
                "description": f"{title} using personal funds = strong conviction. Form 4 code P is the most bullish insider filing.",
                "implication": "Insiders buy for ONE reason: they believe the stock will rise. Single buy = +10% boost.",
                "action": "Good signal, but wait for cluster buying or other confirmations.",
                "timing": "ENTRY: Consider a small position. EXIT: On catalyst or if nothing happens after 7 days.",
                "catalyst": "Watch for more insiders filing within the next two weeks.",
            },
        }
