# short_seller_report.py
# Activist short report: initial attack -> denial -> follow-up waves -> investigation -> verdict
# More waves = more evidence = higher odds the short seller is vindicated.

import logging
from typing import Any, Dict, List, Sequence, Tuple

from market_utils import clamp
from news_schema import NewsRecord, NewsSentiment
from phenomenon_machine import COMPLETE, PhenomenonMachine, PhenomenonState
from security_schema import Security

logger = logging.getLogger(__name__)


REPORTERS = [
    "Iceberg Research",
    "Shadowfall Capital",
    "Viceroy Research",
    "Muddy Waters",
    "Hindenburg Research",
]

INITIAL_DROP = (0.25, 0.40)            # Scaled by meme factor
PRICE_PASS_THROUGH = 0.8               # Share of the drop hitting price on day 0
FOLLOWUP_DAMAGE = (0.10, 0.20)
FOLLOWUP_PASS_THROUGH = 0.7

DENIAL_DAYS = (2, 3)
DENIAL_LIFT = 0.06
WAITING_DAYS = (5, 14)
INVESTIGATION_DAYS = (5, 9)
MAX_WAVES = (2, 4)
ANOTHER_WAVE_CHANCE = 0.75

VINDICATION_BASE = 0.50
VINDICATION_PER_WAVE = 0.15

VINDICATED_DAMAGE_BASE = 0.15
VINDICATED_DAMAGE_PER_WAVE = 0.05
VINDICATED_TRANSITION = (0.08, 0.12)
DEBUNKED_SENTIMENT = (0.15, 0.25)
DEBUNKED_TRANSITION = (0.10, 0.18)

VOLUME_SPIKE = 3.0
DAILY_TRIGGER_CHANCE = 0.015

INITIAL_HEADLINES = [
    "BOMBSHELL: {reporter} accuses {symbol} of massive fraud",
    "{reporter} releases damning report on {symbol}",
    "Short seller {reporter} targets {symbol} with fraud allegations",
    "{symbol} CRATERS as {reporter} alleges accounting fraud",
]
INITIAL_DESCRIPTIONS = [
    "50-page report details alleged misrepresentation to investors.",
    "Evidence includes internal documents and whistleblower testimony.",
    "Report claims revenues inflated by 40% through channel stuffing.",
    "Alleges executives enriched themselves through related-party transactions.",
]
FOLLOWUP_HEADLINES = [
    "{reporter} releases Part {wave}: MORE evidence against {symbol}",
    "{reporter} doubles down on {symbol} with new allegations",
    "{symbol} hit AGAIN as {reporter} publishes follow-up report",
    '"We\'re not done" - {reporter} drops Part {wave} on {symbol}',
]
FOLLOWUP_DESCRIPTIONS = [
    "New documents reveal additional questionable transactions.",
    "Former employees come forward to corroborate original claims.",
    "Follow-up report times release ahead of earnings for maximum impact.",
    "Short seller increases position, confident in eventual vindication.",
]
DENIAL_HEADLINES = [
    '{symbol} "categorically denies" short seller allegations',
    '{symbol} CEO: "{reporter} report is fiction"',
    "{symbol} threatens lawsuit against {reporter}",
    "{symbol} board stands behind management amid allegations",
]
DENIAL_DESCRIPTIONS = [
    "Company schedules investor call to address claims.",
    "Bulls buying the dip, confident in company's response.",
    "Legal team preparing defamation suit against short seller.",
    "Supporters claim report is manipulation for short profit.",
]
INVESTIGATION_HEADLINES = [
    "Analysts divided on {symbol} short report validity",
    "{symbol}: forensic accountants reviewing claims",
    "{symbol} short report: what we know so far",
    "Investors await clarity on {symbol} allegations",
]
VINDICATED_HEADLINES = [
    '{symbol} admits "accounting errors" - {reporter} vindicated',
    "SEC opens investigation into {symbol} after report",
    "{reporter} vindicated: {symbol} restates earnings",
    "{symbol} CFO resigns amid fraud investigation",
]
DEBUNKED_HEADLINES = [
    "{symbol} cleared: {reporter} report debunked",
    "Independent audit clears {symbol} of fraud claims",
    "{reporter} faces backlash over flawed {symbol} report",
    "{symbol} rebounds as allegations proven false",
]


class ShortSellerReport(PhenomenonMachine):
    """
    Activist short seller publishes fraud allegations in one or more waves.

    Design principles:
    - The company always denies; the denial bounce is a trap
    - Every follow-up wave raises the odds the allegations stick
    - Vindication is rolled once, when the investigation opens
    - Vindicated reports cut fair value permanently (eps and base price)
    - Debunked reports trigger a relief rally

    Gold Standard criteria (vindication):
    1. multiple_waves: at least one follow-up report
    2. denial_failed: a follow-up landed after the company denied
    3. volume_spike: attack-day volume >= 3x average
    4. investigation_opened: formal investigation under way
    """

    name = "short_seller_report"
    news_type = "short_report"
    phases = ("initial_crash", "denial", "waiting", "followup_attack", "investigation", "resolution")
    criteria = ("multiple_waves", "denial_failed", "volume_spike", "investigation_opened")
    probability_floor = 0.10
    probability_ceiling = 0.90

    # === Trigger ===

    def create_state(self, security: Security, options: Dict[str, Any]) -> PhenomenonState:
        return PhenomenonState(
            phase="initial_crash",
            phase_days=1,
            start_price=security.price,
            extra={
                "reporter": options.get("reporter") or self.choice(REPORTERS),
                "wave": 1,
                "max_waves": options.get("max_waves") or self.randint(*MAX_WAVES),
            },
        )

    def on_trigger(self, security: Security, state: PhenomenonState) -> List[NewsRecord]:
        meme = self.meme(security)
        drop = self.uniform(*INITIAL_DROP) * meme
        state.extra["initial_drop"] = drop

        security.sentiment_offset = -drop
        security.volatility_boost += 1.5 * meme
        security.add_impulse(self.name, -drop * PRICE_PASS_THROUGH)
        self._volume_spike(security, state)

        return [self._attack_news(security, state, INITIAL_HEADLINES, INITIAL_DESCRIPTIONS)]

    def daily_trigger(self, securities: Sequence[Security]) -> List[PhenomenonState]:
        if not self.is_enabled() or self.random() >= DAILY_TRIGGER_CHANCE:
            return []
        target = self.choice(self.eligible(securities))
        if target is None:
            return []
        state = self.trigger(target)
        return [state] if state else []

    # === Probability ===

    def compute_probability(self, state: PhenomenonState) -> float:
        """Vindication odds grow with every wave of evidence."""
        wave = state.extra.get("wave", 1)
        state.base_probability = VINDICATION_BASE + wave * VINDICATION_PER_WAVE
        return clamp(state.base_probability, self.probability_floor, self.probability_ceiling)

    # === Process ===

    def advance(self, security: Security, state: PhenomenonState) -> Tuple[float, List[NewsRecord]]:
        handler = {
            "initial_crash": self._initial_crash,
            "denial": self._denial,
            "waiting": self._waiting,
            "followup_attack": self._followup_attack,
            "investigation": self._investigation,
            "resolution": self._resolution,
        }[state.phase]
        return handler(security, state)

    def _initial_crash(self, security: Security, state: PhenomenonState) -> Tuple[float, List[NewsRecord]]:
        security.volatility_boost = max(security.volatility_boost, 1.5 * self.meme(security))
        if not state.phase_elapsed:
            return 0.0, []
        return 0.0, [self._start_denial(security, state)]

    def _start_denial(self, security: Security, state: PhenomenonState) -> NewsRecord:
        self.enter_phase(security, state, "denial", self.randint(*DENIAL_DAYS))
        return self._news(
            security, state,
            headlines=DENIAL_HEADLINES,
            descriptions=DENIAL_DESCRIPTIONS,
            sentiment=NewsSentiment.POSITIVE,
            telltale="Every accused company denies. The denial bounce is not evidence.",
        )

    def _denial(self, security: Security, state: PhenomenonState) -> Tuple[float, List[NewsRecord]]:
        security.sentiment_offset += DENIAL_LIFT * self.meme(security)
        if not state.phase_elapsed:
            return 0.0, []

        if state.extra["wave"] < state.extra["max_waves"] and self.random() < ANOTHER_WAVE_CHANCE:
            self.enter_phase(security, state, "waiting", self.randint(*WAITING_DAYS))
            return 0.0, []

        self.enter_phase(security, state, "investigation", self.randint(*INVESTIGATION_DAYS))
        self.mark_criterion(state, "investigation_opened")
        self.resolve_outcome(state)
        state.extra["vindicated"] = bool(state.will_succeed)

        wave = state.extra["wave"]
        weight = f"{wave} waves of accusations weigh heavily." if wave > 1 \
            else "Outcome could take weeks to determine."
        return 0.0, [self.make_news(
            security, state,
            headline=self.choice(INVESTIGATION_HEADLINES).format(symbol=security.symbol),
            description=weight,
            sentiment=NewsSentiment.NEGATIVE,
            telltale="Investigation opened. Trade the verdict, not the rumours.",
            reporter=state.extra["reporter"],
            wave=wave,
        )]

    def _waiting(self, security: Security, state: PhenomenonState) -> Tuple[float, List[NewsRecord]]:
        meme = self.meme(security)
        security.volatility_boost = max(security.volatility_boost, 0.3 * meme)
        security.sentiment_offset += (self.random() - 0.45) * 0.02 * meme
        if state.phase_elapsed:
            self.enter_phase(security, state, "followup_attack", 1)
        return 0.0, []

    def _followup_attack(self, security: Security, state: PhenomenonState) -> Tuple[float, List[NewsRecord]]:
        meme = self.meme(security)
        state.extra["wave"] += 1
        damage = self.uniform(*FOLLOWUP_DAMAGE) * meme

        security.sentiment_offset -= damage
        security.volatility_boost = max(security.volatility_boost, 1.2 * meme)
        self.mark_criterion(state, "multiple_waves")
        self.mark_criterion(state, "denial_failed")
        self._volume_spike(security, state)

        news = [self._attack_news(security, state, FOLLOWUP_HEADLINES, FOLLOWUP_DESCRIPTIONS)]
        news.append(self._start_denial(security, state))
        return -damage * FOLLOWUP_PASS_THROUGH, news

    def _investigation(self, security: Security, state: PhenomenonState) -> Tuple[float, List[NewsRecord]]:
        meme = self.meme(security)
        security.volatility_boost = max(security.volatility_boost, 0.4 * meme)
        security.sentiment_offset += (self.random() - 0.5) * 0.03 * meme
        if state.phase_elapsed:
            self.enter_phase(security, state, "resolution", 1)
        return 0.0, []

    def _resolution(self, security: Security, state: PhenomenonState) -> Tuple[float, List[NewsRecord]]:
        meme = self.meme(security)
        wave = state.extra["wave"]
        vindicated = self.resolve_outcome(state)

        if vindicated:
            damage = VINDICATED_DAMAGE_BASE + wave * VINDICATED_DAMAGE_PER_WAVE
            security.eps_modifier -= damage * meme
            security.base_price *= (1 - damage)
            security.refresh_fair_value()
            security.sentiment_offset = -0.15 * meme
            delta = -self.uniform(*VINDICATED_TRANSITION) * meme
            headlines = VINDICATED_HEADLINES
            description = f"After {wave} wave(s) of evidence, material misstatements confirmed."
            sentiment = NewsSentiment.NEGATIVE
            telltale = "Vindicated. Permanent damage: fair value has been cut."
        else:
            security.sentiment_offset = self.uniform(*DEBUNKED_SENTIMENT) * meme
            delta = self.uniform(*DEBUNKED_TRANSITION) * meme
            headlines = DEBUNKED_HEADLINES
            description = "Allegations failed to hold up. Uncertainty lifts."
            sentiment = NewsSentiment.POSITIVE
            telltale = "Debunked. The relief rally is the trade."

        security.volatility_boost *= 0.5
        news = self.make_news(
            security, state,
            headline=self.choice(headlines).format(symbol=security.symbol, reporter=state.extra["reporter"]),
            description=description,
            sentiment=sentiment,
            telltale=telltale,
            reporter=state.extra["reporter"],
            wave=wave,
            vindicated=vindicated,
        )
        self.enter_phase(security, state, COMPLETE)
        return delta, [news]

    # === Helpers ===

    def _volume_spike(self, security: Security, state: PhenomenonState) -> None:
        volume = 2.0 + self.random() * 4.0
        security.volume_multiple = max(security.volume_multiple, volume)
        if volume >= VOLUME_SPIKE:
            self.mark_criterion(state, "volume_spike")

    def _attack_news(
        self,
        security: Security,
        state: PhenomenonState,
        headlines: List[str],
        descriptions: List[str],
    ) -> NewsRecord:
        return self._news(
            security, state,
            headlines=headlines,
            descriptions=descriptions,
            sentiment=NewsSentiment.NEGATIVE,
            telltale="Short report attack. Do not buy the dip until the verdict.",
        )

    def _news(
        self,
        security: Security,
        state: PhenomenonState,
        headlines: List[str],
        descriptions: List[str],
        sentiment: NewsSentiment,
        telltale: str,
    ) -> NewsRecord:
        reporter = state.extra["reporter"]
        wave = state.extra["wave"]
        return self.make_news(
            security, state,
            headline=self.choice(headlines).format(symbol=security.symbol, reporter=reporter, wave=wave),
            description=self.choice(descriptions),
            sentiment=sentiment,
            telltale=telltale,
            reporter=reporter,
            wave=wave,
        )

    # === Tutorial ===

    def phase_hints(self, news: NewsRecord) -> Dict[str, Dict[str, Any]]:
        attack = {
            "type": "Short Seller Report (Attack)",
            "description": "Activist short sellers publishing fraud allegations. They profit if the stock falls.",
            "implication": "Stock crashes -25% to -40%. More waves likely. DO NOT buy the dip.",
            "action": "IF HOLDING: Sell immediately. IF NOT: Wait for the resolution.",
            "timing": "ENTRY: NEVER during an attack. EXIT: Sell any holdings now.",
            "catalyst": 'Expected: company denial, then a "Part 2" follow-up. Resolution in 2-4 weeks.',
        }
        if news.payload.get("vindicated"):
            resolution = {
                "type": "Short Report (VINDICATED - Fraud Confirmed)",
                "description": "The short seller was right. Company admits problems or regulators step in.",
                "implication": "Stock will fall further. Permanent damage to the company.",
                "action": "STAY AWAY. More downside ahead.",
                "timing": "ENTRY: NEVER. EXIT: N/A - avoid this stock.",
                "catalyst": "Expect continued selling, lawsuits, restatements.",
            }
        else:
            resolution = {
                "type": "Short Report (DEBUNKED - Company Cleared)",
                "description": "The short seller was wrong. Company cleared by audit or investigation.",
                "implication": "Recovery rally expected, +15% to +25%.",
                "action": "CONSIDER BUYING. Company cleared.",
                "timing": "ENTRY: On the debunking news. EXIT: +15% to +25% recovery.",
                "catalyst": "Relief rally as uncertainty clears.",
            }
        return {
            "initial_crash": attack,
            "followup_attack": attack,
            "denial": {
                "type": "Short Report (Company Denial)",
                "description": "Company denying allegations. This bounce is a TRAP - denial means nothing.",
                "implication": "+5% to +10% bounce is temporary. Follow-up attacks likely.",
                "action": "DO NOT BUY THE BOUNCE. Wait for the resolution.",
                "timing": "ENTRY: NEVER. EXIT: If you bought, sell into this bounce.",
                "catalyst": "Each new wave increases the odds of vindication.",
            },
            "investigation": {
                "type": "Short Seller Report (Investigation)",
                "description": "Claims being investigated. Outcome uncertain.",
                "implication": "High volatility. The verdict decides the direction.",
                "action": "WAIT. Don't gamble on the outcome.",
                "timing": "ENTRY: Only AFTER resolution. EXIT: Based on outcome.",
                "catalyst": "Waiting for: vindicated or debunked.",
            },
            "resolution": resolution,
            COMPLETE: resolution,
        }
