# dead_cat_bounce.py
# Multi-bounce crash: crash -> bounce -> (decline -> bounce)* -> consolidation -> resolution
# Each bounce weaker than the last. First bounce is the trap.

import logging
from typing import Any, Dict, List, Sequence, Tuple

from news_schema import NewsRecord, NewsSentiment
from phenomenon_machine import COMPLETE, GoldStandardTable, PhenomenonMachine, PhenomenonState
from security_schema import Security

logger = logging.getLogger(__name__)


CRASH_DAYS = (2, 3)
CRASH_IMPACT = (-0.20, -0.12)          # Per day

# Total bounce size by bounce number (3 = third and later)
BOUNCE_TOTAL = {1: (0.08, 0.12), 2: (0.06, 0.09), 3: (0.03, 0.06)}
BOUNCE_DAYS = {1: (2, 3), 2: (2, 3), 3: (1, 2)}

# Chance of another leg down after bounce N
DECLINE_CHANCE = {1: 0.70, 2: 0.50, 3: 0.25}
DECLINE_DAYS = (2, 3)
DECLINE_IMPACT = (-0.08, -0.03)

MAX_BOUNCES = 4
CONSOLIDATION_DAYS = 2
CONSOLIDATION_IMPACT = (-0.01, 0.01)

RESOLUTION_DAYS = (3, 6)
RECOVERY_IMPACT = (0.02, 0.05)
DRIFT_IMPACT = (-0.01, 0.005)

CAPITULATION_DEPTH = 0.25
DAILY_TRIGGER_CHANCE = 0.004

CRASH_REASONS = [
    "guidance cut",
    "accounting questions",
    "failed product launch",
    "surprise CEO exit",
    "major customer loss",
]

# "No-catalyst" filler phrases: the trap signature in bounce headlines
BOUNCE_PHRASES = [
    "bargain hunters step in",
    "technical rebound",
    "oversold bounce",
    "relief rally",
    "finding support",
]


def _bucket(bounce_number: int) -> int:
    return min(bounce_number, 3)


class DeadCatBounce(PhenomenonMachine):
    """
    Crash followed by a series of weakening relief bounces.

    Design principles:
    - Bounce 1 is a trap 70% of the time, bounce 2 50%, bounce 3+ 25%
    - More (and weaker) bounces = closer to the real bottom
    - Outcome (recovery vs drift) rolled once on entering consolidation
    - Moves are pushed into sentiment too, so convergence does not undo them

    Gold Standard criteria:
    1. multiple_bounces: three or more bounces
    2. weakening_bounces: each bounce smaller than the last
    3. volume_capitulation: crash depth >= 25%
    4. insider_confirmation: insider purchase within 30 days
    """

    name = "dead_cat_bounce"
    news_type = "dead_cat_bounce"
    phases = ("crash", "bounce", "decline", "consolidation", "recovery", "drift")
    criteria = ("multiple_bounces", "weakening_bounces", "volume_capitulation", "insider_confirmation")
    probability_table = GoldStandardTable({0: 0.30, 1: 0.45, 2: 0.60, 3: 0.75, 4: 0.80})
    veto_table = {"secular_decline": 0.25, "terminal_news": 0.40}
    probability_floor = 0.10
    probability_ceiling = 0.90

    # === Trigger ===

    def create_state(self, security: Security, options: Dict[str, Any]) -> PhenomenonState:
        crash_days = options.get("crash_days") or self.randint(*CRASH_DAYS)
        return PhenomenonState(
            phase="crash",
            phase_days=crash_days,
            start_price=security.price,
            extra={
                "reason": options.get("reason") or self.choice(CRASH_REASONS),
                "bounce_number": 0,
                "bounce_sizes": [],
                "bounce_start_price": None,
                "crash_low": security.price,
            },
        )

    def on_trigger(self, security: Security, state: PhenomenonState) -> List[NewsRecord]:
        reason = state.extra["reason"]
        return [self.make_news(
            security, state,
            headline=f"{security.symbol} PLUNGES on {reason}",
            description="Heavy selling as investors head for the exits.",
            sentiment=NewsSentiment.NEGATIVE,
            telltale="Crash in progress. Do not catch the falling knife.",
        )]

    def daily_trigger(self, securities: Sequence[Security]) -> List[PhenomenonState]:
        if not self.is_enabled() or self.random() >= DAILY_TRIGGER_CHANCE:
            return []
        target = self.choice(self.eligible(securities))
        if target is None:
            return []
        state = self.trigger(target)
        return [state] if state else []

    # === Process ===

    def advance(self, security: Security, state: PhenomenonState) -> Tuple[float, List[NewsRecord]]:
        handler = {
            "crash": self._crash,
            "bounce": self._bounce,
            "decline": self._decline,
            "consolidation": self._consolidation,
            "recovery": self._recovery,
            "drift": self._drift,
        }[state.phase]
        delta, news = handler(security, state)
        security.sentiment_offset += delta
        return delta, news

    def _crash(self, security: Security, state: PhenomenonState) -> Tuple[float, List[NewsRecord]]:
        delta = self.uniform(*CRASH_IMPACT)
        projected = security.price * (1 + delta)
        state.extra["crash_low"] = min(state.extra["crash_low"], projected)

        if not state.phase_elapsed:
            return delta, []

        depth = (state.start_price - state.extra["crash_low"]) / state.start_price
        state.extra["crash_depth"] = depth
        if depth >= CAPITULATION_DEPTH:
            self.mark_criterion(state, "volume_capitulation")
        self._start_bounce(security, state, projected)
        return delta, [self._bounce_news(security, state)]

    def _start_bounce(self, security: Security, state: PhenomenonState, price: float) -> None:
        number = state.extra["bounce_number"] + 1
        bucket = _bucket(number)
        days = self.randint(*BOUNCE_DAYS[bucket])
        total = self.uniform(*BOUNCE_TOTAL[bucket])
        state.extra.update(
            bounce_number=number,
            bounce_total=total,
            bounce_per_day=total / days,
            bounce_start_price=price,
        )
        self.enter_phase(security, state, "bounce", days)

    def _bounce(self, security: Security, state: PhenomenonState) -> Tuple[float, List[NewsRecord]]:
        delta = state.extra["bounce_per_day"]
        if not state.phase_elapsed:
            return delta, []

        number = state.extra["bounce_number"]
        sizes: List[float] = state.extra["bounce_sizes"]
        sizes.append(state.extra["bounce_total"])

        if number >= 3:
            self.mark_criterion(state, "multiple_bounces")
        if len(sizes) >= 2 and all(later < earlier for earlier, later in zip(sizes, sizes[1:])):
            self.mark_criterion(state, "weakening_bounces")
        if security.insider_buys:
            self.mark_criterion(state, "insider_confirmation")

        if number < MAX_BOUNCES and self.random() < DECLINE_CHANCE[_bucket(number)]:
            self.enter_phase(security, state, "decline", self.randint(*DECLINE_DAYS))
            return delta, [self.make_news(
                security, state,
                headline=f"{security.symbol} rolls over - another leg down",
                description=f"Bounce #{number} fails. Sellers return.",
                sentiment=NewsSentiment.NEGATIVE,
                telltale="Failed bounce. Anyone who bought it is now trapped.",
                bounce_number=number,
            )]

        self.enter_phase(security, state, "consolidation", CONSOLIDATION_DAYS)
        return delta, [self.make_news(
            security, state,
            headline=f"{security.symbol} holds its lows after bounce #{number}",
            description="Selling pressure fading. Range-bound trade.",
            sentiment=NewsSentiment.NEUTRAL,
            telltale="Consolidation. The bottom is being tested.",
            bounce_number=number,
        )]

    def _decline(self, security: Security, state: PhenomenonState) -> Tuple[float, List[NewsRecord]]:
        delta = self.uniform(*DECLINE_IMPACT)
        if not state.phase_elapsed:
            return delta, []
        self._start_bounce(security, state, security.price * (1 + delta))
        return delta, [self._bounce_news(security, state)]

    def _consolidation(self, security: Security, state: PhenomenonState) -> Tuple[float, List[NewsRecord]]:
        delta = self.uniform(*CONSOLIDATION_IMPACT)
        if state.days_in_phase == 1:
            self.resolve_outcome(state)
        if not state.phase_elapsed:
            return delta, []

        days = self.randint(*RESOLUTION_DAYS)
        if state.will_succeed:
            self.enter_phase(security, state, "recovery", days)
            return delta, [self.make_news(
                security, state,
                headline=f"{security.symbol} breaks out of base - real bottom in?",
                description="Buyers finally outnumber sellers after repeated tests.",
                sentiment=NewsSentiment.POSITIVE,
                telltale="Resolution: recovery. Weak bounces exhausted the sellers.",
            )]
        self.enter_phase(security, state, "drift", days)
        return delta, [self.make_news(
            security, state,
            headline=f"{security.symbol} fails to recover, drifts lower",
            description="No catalyst, no buyers. Dead money for now.",
            sentiment=NewsSentiment.NEGATIVE,
            telltale="Resolution: secular decline. The cat stayed dead.",
        )]

    def _recovery(self, security: Security, state: PhenomenonState) -> Tuple[float, List[NewsRecord]]:
        delta = self.uniform(*RECOVERY_IMPACT)
        return delta, self._maybe_complete(security, state)

    def _drift(self, security: Security, state: PhenomenonState) -> Tuple[float, List[NewsRecord]]:
        delta = self.uniform(*DRIFT_IMPACT)
        return delta, self._maybe_complete(security, state)

    def _maybe_complete(self, security: Security, state: PhenomenonState) -> List[NewsRecord]:
        if not state.phase_elapsed:
            return []
        outcome = "recovered" if state.will_succeed else "failed to recover"
        news = self.make_news(
            security, state,
            headline=f"{security.symbol} crash cycle over: {outcome}",
            description=f"{state.extra['bounce_number']} bounce(s) before resolution.",
            sentiment=NewsSentiment.NEUTRAL,
            phase=COMPLETE,
        )
        self.enter_phase(security, state, COMPLETE)
        return [news]

    def _bounce_news(self, security: Security, state: PhenomenonState) -> NewsRecord:
        number = state.extra["bounce_number"]
        phrase = self.choice(BOUNCE_PHRASES)
        return self.make_news(
            security, state,
            headline=f"{security.symbol} rebounds as {phrase}" if number == 1
            else f"{security.symbol} bounce #{number}: {phrase}",
            description="No fundamental catalyst cited for the move.",
            sentiment=NewsSentiment.POSITIVE,
            telltale="Filler phrases with no hard catalyst are the trap signature.",
            bounce_number=number,
        )

    # === Tutorial ===

    def phase_hints(self, news: NewsRecord) -> Dict[str, Dict[str, Any]]:
        number = news.payload.get("bounce_number", 1)
        if number <= 1:
            bounce = {
                "type": "First Bounce (TRAP)",
                "description": "+8% to +12% relief move with no hard catalyst.",
                "implication": "70% chance of another leg down.",
                "action": "DO NOT BUY. This is the dead cat bounce.",
                "timing": "2-3 days",
                "catalyst": "Only trust a bounce backed by insider buying.",
            }
        elif number == 2:
            bounce = {
                "type": "Second Bounce",
                "description": "+6% to +9% recovery, weaker than the first.",
                "implication": "Still risky: 50% chance of more downside.",
                "action": "Wait. Bounce getting weaker = selling exhaustion building.",
                "timing": "2-3 days",
                "catalyst": "Watch for a Form 4 insider purchase.",
            }
        else:
            bounce = {
                "type": f"Bounce #{number} (weak)",
                "description": "+3% to +6% recovery, much weaker than earlier bounces.",
                "implication": "Multiple weak bounces = sellers exhausted.",
                "action": "CONSIDER BUYING. 60-80% chance this is the real bottom.",
                "timing": "1-2 days",
                "catalyst": "Insider buying here confirms the bottom.",
            }

        return {
            "crash": {
                "type": "Initial Crash",
                "description": "Stock crashing -12% to -20% per day on bad news.",
                "implication": "Crash needs to exhaust itself before any bounce matters.",
                "action": "DO NOT BUY. Wait and count the bounces.",
                "timing": "2-3 days",
                "catalyst": "Even a dead cat bounces if it falls far enough.",
            },
            "bounce": bounce,
            "decline": {
                "type": "Another Leg Down",
                "description": "The bounce failed and selling resumed.",
                "implication": "Bounce buyers are trapped. Next bounce should be weaker.",
                "action": "If you bought the bounce, SELL. Otherwise keep waiting.",
                "timing": "2-3 days of selling",
                "catalyst": None,
            },
            "consolidation": {
                "type": "Consolidation",
                "description": "Price holding its lows after the bounces.",
                "implication": "The market is deciding between recovery and decline.",
                "action": "Buy only if insider buying or 3+ weakening bounces are present.",
                "timing": "After bounce fails or holds",
                "catalyst": None,
            },
            "recovery": {
                "type": "Resolution: Recovery",
                "description": "Real bottom confirmed, price recovering.",
                "implication": "Patience paid off for bounce #3+ buyers.",
                "action": "Sell 50% at +15%, the rest at +25% or if momentum stalls.",
                "timing": "3-6 days",
                "catalyst": None,
            },
            "drift": {
                "type": "Resolution: Secular Decline",
                "description": "No recovery. The stock drifts lower.",
                "implication": "Not every crash has a bottom nearby.",
                "action": "Avoid. Dead money.",
                "timing": "3-6 days",
                "catalyst": None,
            },
            COMPLETE: {
                "type": "Crash Cycle Complete",
                "description": "The multi-bounce pattern has resolved.",
                "implication": "Review: how many bounces came before the resolution?",
                "action": "Waiting for bounce 3+ dramatically improves odds.",
                "timing": None,
                "catalyst": None,
            },
        }
