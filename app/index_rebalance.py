# index_rebalance.py
# Forced index flows: announcement -> run-up -> effective day (MOC spike) -> T+2 reversal
# The trade is the exhaustion after passive funds finish, never the announcement.

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Sequence, Tuple

from market_utils import clamp
from news_schema import NewsRecord, NewsSentiment
from phenomenon_machine import COMPLETE, PhenomenonMachine, PhenomenonState, in_family
from security_schema import Security

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class IndexTier:
    name: str
    indices: Tuple[str, ...]
    impact_multiplier: float
    reversal_probability: float


INDEX_TIERS: Dict[str, IndexTier] = {
    "tier1": IndexTier("Mega Indices", ("S&P 500", "Russell 2000", "Russell 1000"), 1.5, 0.78),
    "tier2": IndexTier("Major Indices", ("MSCI World", "FTSE 100", "Nasdaq 100"), 1.2, 0.65),
    "tier3": IndexTier("Sector/Thematic Indices", ("S&P MidCap 400", "S&P SmallCap 600", "Sector ETFs"), 1.0, 0.50),
}

ADDITION_PROBABILITY = 0.60
ANNOUNCEMENT_TO_EFFECTIVE = (5, 10)
REVERSAL_DAYS = (3, 5)
MOC_SPIKE = (20.0, 50.0)

MIN_RUN_UP = 0.05
MOC_VOLUME_THRESHOLD = 20.0
REVERSAL_SETUP_DAY = 2                 # T+2

# (addition, deletion) daily impact ranges
RUN_UP_IMPACT = {"addition": (0.005, 0.015), "deletion": (-0.015, -0.005)}
EFFECTIVE_IMPACT = {"addition": (0.01, 0.03), "deletion": (-0.03, -0.01)}
REVERSAL_IMPACT = {"addition": (-0.015, -0.005), "deletion": (0.005, 0.015)}

DAILY_TRIGGER_CHANCE = 0.01

VETO_DESCRIPTIONS = {
    "fundamentalNews": "Earnings beat or major positive news",
    "bullMarket": "Strong bull market momentum",
    "institutionalOverhang": "Large institutional sellers waiting",
}


class IndexRebalance(PhenomenonMachine):
    """
    Index addition or deletion with its forced passive-fund flow.

    Design principles:
    - Calendar driven: phase follows days since announcement, not durations
    - Run-up and effective-day impacts scale with tier and meme factor
    - Reversal odds come from the tier, minus vetoes, floored at 20%
    - Reversal rolled once on T+1, applied on every reversal day

    Gold Standard criteria (addition reversal, 78%):
    1. is_tier1: high passive AUM index
    2. has_run_up: |run-up| >= 5% before effective day
    3. has_moc_spike: market-on-close volume >= 20x on effective day
    4. has_reversal_setup: T+2 reached (first lower high)
    """

    name = "index_rebalancing"
    news_type = "index_rebalance"
    phases = ("announcement", "runUp", "effectiveDay", "reversal")
    criteria = ("is_tier1", "has_run_up", "has_moc_spike", "has_reversal_setup")
    veto_table = {"fundamentalNews": 0.30, "bullMarket": 0.15, "institutionalOverhang": 0.20}
    probability_floor = 0.20
    probability_ceiling = 0.90

    # === Trigger ===

    def check_preconditions(self, security: Security, options: Dict[str, Any]) -> bool:
        tier = options.get("index_tier")
        if tier is not None and tier not in INDEX_TIERS:
            logger.debug(f"{security.symbol}: unknown index tier {tier!r}")
            return False
        event_type = options.get("event_type")
        if event_type is not None and event_type not in ("addition", "deletion"):
            logger.debug(f"{security.symbol}: unknown index event {event_type!r}")
            return False
        return True

    def create_state(self, security: Security, options: Dict[str, Any]) -> PhenomenonState:
        event_type = options.get("event_type") or (
            "addition" if self.random() < ADDITION_PROBABILITY else "deletion"
        )
        tier = options.get("index_tier") or self.choice(list(INDEX_TIERS))
        days_to_effective = options.get("days_to_effective") or self.randint(*ANNOUNCEMENT_TO_EFFECTIVE)

        return PhenomenonState(
            phase="announcement",
            phase_days=days_to_effective,
            start_price=security.price,
            extra={
                "event_type": event_type,
                "is_addition": event_type == "addition",
                "index_tier": tier,
                "index_name": options.get("index_name") or self.choice(INDEX_TIERS[tier].indices),
                "days_to_effective": days_to_effective,
                "reversal_days": options.get("reversal_days") or self.randint(*REVERSAL_DAYS),
                "moc_volume_multiple": options.get("moc_volume_multiple") or self.uniform(*MOC_SPIKE),
                "run_up_total": 0.0,
                "reversal_news_sent": False,
            },
        )

    def on_trigger(self, security: Security, state: PhenomenonState) -> List[NewsRecord]:
        if state.extra["index_tier"] == "tier1":
            self.mark_criterion(state, "is_tier1")

        index = state.extra["index_name"]
        days = state.extra["days_to_effective"]
        symbol = security.symbol
        if state.extra["is_addition"]:
            headlines = [
                f"{symbol} to be added to {index}",
                f"Index change: {symbol} joining {index}",
                f"{index} announces {symbol} addition",
            ]
            descriptions = [
                f"Passive funds tracking {index} will be forced to buy shares. Effective date in {days} trading days.",
                f"Index funds must purchase {symbol} by the effective date. Watch for front-running by speculators.",
            ]
        else:
            headlines = [
                f"{symbol} to be removed from {index}",
                f"Index change: {symbol} leaving {index}",
                f"{index} announces {symbol} deletion",
            ]
            descriptions = [
                f"Passive funds tracking {index} will be forced to sell shares. Effective date in {days} trading days.",
                f"Index funds must liquidate {symbol} positions by the effective date.",
            ]
        return [self.make_news(
            security, state,
            headline=self.choice(headlines),
            description=self.choice(descriptions),
            sentiment=NewsSentiment.POSITIVE if state.extra["is_addition"] else NewsSentiment.NEGATIVE,
            **self._payload(state),
        )]

    def daily_trigger(self, securities: Sequence[Security]) -> List[PhenomenonState]:
        if not self.is_enabled() or self.random() >= DAILY_TRIGGER_CHANCE:
            return []
        target = self.choice(self.eligible(securities))
        if target is None:
            return []
        state = self.trigger(target)
        return [state] if state else []

    def eligible(self, securities: Sequence[Security]) -> List[Security]:
        return [s for s in securities if self.can_trigger(s) and not in_family(s, "crash")]

    # === Probability ===

    def compute_probability(self, state: PhenomenonState) -> float:
        tier = INDEX_TIERS[state.extra["index_tier"]]
        state.base_probability = tier.reversal_probability
        probability = tier.reversal_probability - sum(self.veto_table[v] for v in state.veto_factors)
        return clamp(probability, self.probability_floor, self.probability_ceiling)

    # === Process ===

    def advance(self, security: Security, state: PhenomenonState) -> Tuple[float, List[NewsRecord]]:
        days_to_effective = state.extra["days_to_effective"] - state.day
        days_after = -days_to_effective

        if days_to_effective > 0:
            self._phase(security, state, "runUp")
            return self._run_up(security, state, days_to_effective)
        if days_to_effective == 0:
            self._phase(security, state, "effectiveDay")
            return self._effective_day(security, state)
        if days_after <= state.extra["reversal_days"]:
            self._phase(security, state, "reversal")
            return self._reversal(security, state, days_after)

        self.enter_phase(security, state, COMPLETE)
        return 0.0, []

    def _phase(self, security: Security, state: PhenomenonState, phase: str) -> None:
        if state.phase != phase:
            self.enter_phase(security, state, phase)

    def _impact(self, security: Security, state: PhenomenonState, table: Dict[str, Tuple[float, float]]) -> float:
        tier = INDEX_TIERS[state.extra["index_tier"]]
        return self.uniform(*table[state.extra["event_type"]]) * tier.impact_multiplier * self.meme(security)

    def _run_up(self, security: Security, state: PhenomenonState, days_to_effective: int) -> Tuple[float, List[NewsRecord]]:
        impact = self._impact(security, state, RUN_UP_IMPACT)
        state.extra["run_up_total"] += impact
        if abs(state.extra["run_up_total"]) >= MIN_RUN_UP:
            self.mark_criterion(state, "has_run_up")
        security.volume_multiple = self.uniform(1.5, 2.5)

        if days_to_effective != state.extra["days_to_effective"] // 2:
            return impact, []

        run_up = state.extra["run_up_total"]
        symbol, index = security.symbol, state.extra["index_name"]
        if state.extra["is_addition"]:
            headlines = [
                f"{symbol} up {run_up * 100:.1f}% ahead of {index} inclusion",
                f"Speculators front-running {symbol} index addition",
                f"{symbol} rallies as index inclusion approaches",
            ]
        else:
            headlines = [
                f"{symbol} down {abs(run_up) * 100:.1f}% ahead of {index} removal",
                f"Selling pressure mounts on {symbol} before index deletion",
                f"{symbol} slides as removal from {index} nears",
            ]
        threshold = "Run-up exceeds 5% threshold." if state.gold_standard["has_run_up"] \
            else "Watching for 5%+ run-up."
        return impact, [self.make_news(
            security, state,
            headline=self.choice(headlines),
            description=f"{days_to_effective} days until effective date. {threshold}",
            sentiment=NewsSentiment.POSITIVE if state.extra["is_addition"] else NewsSentiment.NEGATIVE,
            run_up_percent=run_up,
            **self._payload(state),
        )]

    def _effective_day(self, security: Security, state: PhenomenonState) -> Tuple[float, List[NewsRecord]]:
        impact = self._impact(security, state, EFFECTIVE_IMPACT)
        moc = state.extra["moc_volume_multiple"]
        state.extra["price_at_effective"] = security.price * (1 + impact)
        security.volume_multiple = moc
        if moc >= MOC_VOLUME_THRESHOLD:
            self.mark_criterion(state, "has_moc_spike")

        symbol, index = security.symbol, state.extra["index_name"]
        if state.extra["is_addition"]:
            headlines = [
                f"EFFECTIVE DATE: {symbol} officially joins {index}",
                f"Massive MOC volume as {symbol} enters {index}",
                f"{symbol} index inclusion complete - {moc:.0f}x volume at close",
            ]
        else:
            headlines = [
                f"EFFECTIVE DATE: {symbol} officially removed from {index}",
                f"Heavy MOC selling as {symbol} exits {index}",
                f"{symbol} index deletion complete - {moc:.0f}x volume at close",
            ]
        setup = state.criteria_met == 3
        return impact, [self.make_news(
            security, state,
            headline=self.choice(headlines),
            description=f"MOC volume {moc:.0f}x normal. "
                        + ("Three of four criteria in place: watch for the T+2 reversal." if setup
                           else "Marginal buyer exhausted."),
            sentiment=NewsSentiment.NEUTRAL,
            **self._payload(state),
        )]

    def _reversal(self, security: Security, state: PhenomenonState, days_after: int) -> Tuple[float, List[NewsRecord]]:
        news: List[NewsRecord] = []
        if days_after >= REVERSAL_SETUP_DAY:
            self.mark_criterion(state, "has_reversal_setup")

        if not state.outcome_decided:
            happens = self.resolve_outcome(state)
            if not happens and state.veto_factors:
                veto = state.veto_factors[0]
                news.append(self.make_news(
                    security, state,
                    headline=f"{security.symbol} defies typical post-inclusion reversal",
                    description=f"Veto factor: {VETO_DESCRIPTIONS[veto]}. The normal reversal may be delayed or cancelled.",
                    sentiment=NewsSentiment.NEUTRAL,
                    phase="veto",
                    veto_factor=veto,
                    **self._payload(state),
                ))

        if not state.will_succeed:
            return 0.0, news

        impact = self.uniform(*REVERSAL_IMPACT[state.extra["event_type"]])
        if days_after == REVERSAL_SETUP_DAY and not state.extra["reversal_news_sent"]:
            state.extra["reversal_news_sent"] = True
            news.append(self._reversal_news(security, state))
        return impact, news

    def _reversal_news(self, security: Security, state: PhenomenonState) -> NewsRecord:
        symbol, index = security.symbol, state.extra["index_name"]
        if state.extra["is_addition"]:
            headlines = [
                f"{symbol} shows first lower high post-inclusion",
                f"T+2 reversal pattern forming on {symbol}",
                f"{symbol} mean-reversion begins after index buying exhausted",
            ]
        else:
            headlines = [
                f"{symbol} bounces after index selling exhausted",
                f"T+2 bounce pattern forming on {symbol}",
                f"{symbol} finds floor after {index} deletion",
            ]
        description = ("GOLD STANDARD COMPLETE: all 4 criteria met. High probability reversal."
                       if state.is_gold_standard else "Reversal pattern detected. Monitor for continuation.")
        return self.make_news(
            security, state,
            headline=self.choice(headlines),
            description=description,
            sentiment=NewsSentiment.NEGATIVE if state.extra["is_addition"] else NewsSentiment.POSITIVE,
            **self._payload(state),
        )

    def _payload(self, state: PhenomenonState) -> Dict[str, Any]:
        return {
            "index_name": state.extra["index_name"],
            "index_tier": state.extra["index_tier"],
            "is_addition": state.extra["is_addition"],
            "days_to_effective": state.extra["days_to_effective"],
            "moc_volume_multiple": state.extra["moc_volume_multiple"],
        }

    # === Tutorial ===

    def phase_hints(self, news: NewsRecord) -> Dict[str, Dict[str, Any]]:
        index = news.payload.get("index_name") or "Index"
        moc = news.payload.get("moc_volume_multiple") or 20.0
        run_up = (news.payload.get("run_up_percent") or 0.0) * 100
        met = news.criteria_met or 0

        if not news.payload.get("is_addition", True):
            return {
                "announcement": {
                    "type": f"INDEX DELETION ANNOUNCED ({index})",
                    "description": f"Stock being REMOVED from {index}. Passive funds MUST sell.",
                    "implication": "Expect -8% to -15% sell-off into the effective date.",
                    "action": "Wait for the BOUNCE after forced selling exhausts.",
                    "timing": "ENTRY: After effective day (T+1 or T+2). EXIT: +2% to +4% bounce.",
                    "catalyst": "Forced selling creates overshoot. Watch effective-day volume.",
                },
                "runUp": {
                    "type": "Sell-Off in Progress",
                    "description": f"Stock down {abs(run_up):.1f}% since the deletion announcement.",
                    "implication": "Selling continues until effective day. Don't catch the falling knife.",
                    "action": "WAIT. Bounce opportunity after effective day.",
                    "timing": "ENTRY: After effective day. EXIT: +2% to +4% bounce.",
                    "catalyst": "Watch for volume exhaustion and stabilization.",
                },
                "effectiveDay": {
                    "type": "EFFECTIVE DAY - Deletion Complete",
                    "description": f"Massive MOC selling: {moc:.0f}x normal volume.",
                    "implication": "Selling pressure should exhaust. Bounce forming.",
                    "action": "Prepare to BUY on T+1 or T+2.",
                    "timing": "EXIT: +2% to +4% over 3-5 days.",
                    "catalyst": "Volume exhaustion signals selling complete.",
                },
                "reversal": {
                    "type": "Post-Deletion Bounce",
                    "description": "Forced selling exhausted. Oversold bounce forming.",
                    "implication": "Typical bounce: +2% to +4% over 3-5 days.",
                    "action": "BUY for the bounce trade.",
                    "timing": "ENTRY: NOW. EXIT: +2% to +4% over 3-5 days.",
                    "catalyst": "Technical bounce underway.",
                },
                "veto": self._veto_hint(news),
            }

        return {
            "announcement": {
                "type": f"INDEX ADDITION ANNOUNCED ({index})",
                "description": f"Stock being ADDED to {index}. Passive funds MUST buy - a FORCED TRADE.",
                "implication": "Expect +5% to +15% run-up into the effective date as speculators front-run.",
                "action": "DO NOT BUY NOW. The high-probability trade is the reversal after effective date.",
                "timing": "ENTRY: Wait for T+2 after effective day. EXIT: 3-5 days into reversal for 2-5%.",
                "catalyst": "Watch for: (1) 5%+ run-up, (2) MOC volume spike, (3) T+2 lower high.",
            },
            "runUp": {
                "type": "Run-Up Exceeds 5%" if run_up >= 5 else "Run-Up in Progress",
                "description": f"Stock up {run_up:.1f}% since announcement. Speculators front-running passive funds.",
                "implication": "A stretched price raises reversal odds." if run_up >= 5
                else "Run-up building. Need 5%+ for the full setup.",
                "action": "Do NOT buy the run-up. The trade is the reversal.",
                "timing": "ENTRY: Still wait for T+2 after effective day.",
                "catalyst": "Next: massive MOC volume on effective day.",
            },
            "effectiveDay": {
                "type": "EFFECTIVE DAY - Maximum Volume",
                "description": f"Massive MOC volume: {moc:.0f}x normal. Passive funds completing forced buying.",
                "implication": f"{met}/4 criteria in place. Marginal buyer now exhausted.",
                "action": "PREPARE TO SHORT on T+2. Wait for the first lower high." if met >= 3
                else "Watch for reversal. Criteria missing - lower probability.",
                "timing": "ENTRY: T+2. EXIT: 3-5 days for 2-5%.",
                "catalyst": "Waiting for the T+2 lower high.",
            },
            "reversal": {
                "type": "T+2 Reversal - All Criteria Met" if news.is_gold_standard else "T+2 Reversal Pattern",
                "description": "First lower high after inclusion.",
                "implication": "Historical success 75-80% for a 2-5% mean reversion." if news.is_gold_standard
                else "Reversal possible but lower probability with criteria missing.",
                "action": "ENTER SHORT. Target 2-5% over 3-5 days." if news.is_gold_standard
                else "Consider a small position. Monitor for continuation.",
                "timing": "EXIT: 3-5 days, +2% to +5%.",
                "catalyst": "Index additions typically give back ~4% after inclusion.",
            },
            "veto": self._veto_hint(news),
        }

    def _veto_hint(self, news: NewsRecord) -> Dict[str, Any]:
        veto = news.payload.get("veto_factor") or "fundamental news"
        return {
            "type": "VETO FACTOR - Reversal Delayed/Cancelled",
            "description": f"A veto factor ({veto}) is overriding the typical reversal.",
            "implication": "Reversal may be delayed or cancelled. Probability reduced.",
            "action": "CAUTION. Skip this setup or cut size.",
            "timing": "ENTRY: Skip. EXIT: N/A.",
            "catalyst": f"Current veto: {veto}.",
        }
