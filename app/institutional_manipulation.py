# institutional_manipulation.py
# Multi-wave pump & dump: [accumulation -> catalyst -> distribution]* -> crash
# Most schemes fail (SEC, fizzle). Each extra wave traps more retail and crashes harder.

import logging
from typing import Any, Dict, List, Sequence, Tuple

from news_schema import NewsRecord, NewsSentiment
from phenomenon_machine import COMPLETE, PhenomenonMachine, PhenomenonState
from security_schema import Security

logger = logging.getLogger(__name__)


DAILY_START_CHANCE = 0.05
ACCUMULATION_DAYS = (5, 9)
ACCUMULATION_STEP = (0.08, 0.13)
ACCUMULATION_DRIFT = 0.01

# After accumulation: 20% SEC, 20% fizzle, 60% pump
PUMP_PROBABILITY = 0.60
SEC_SHARE_OF_FAILURES = 0.5

SEC_DAYS = 2
SEC_DAILY_HIT = 0.15
SEC_RESUME_HIT = 0.10
FIZZLE_DAYS = 3
FIZZLE_DAILY_HIT = 0.03
FIZZLE_UNWIND = 0.2

CATALYST_JUMP = (0.08, 0.15)
CATALYST_SENTIMENT = 0.15
CATALYST_NEWS_SENTIMENT = (0.25, 0.50)
CATALYST_VOLATILITY = 1.0
WAVE_DECAY = 0.15                      # Each wave 15% less effective

DISTRIBUTION_DAYS = (3, 5)
DISTRIBUTION_STEP = 0.25
CONTINUE_CHANCE = {1: 0.60, 2: 0.40}   # Wave 3+ always crashes

RE_ACCUMULATION_DAYS = (3, 5)
RE_ACCUMULATION_START = 0.3
RE_ACCUMULATION_STEP = (0.10, 0.18)
RE_ACCUMULATION_DRIFT = 0.02

CRASH_DAYS = (2, 3)
CRASH_DROP = (0.12, 0.20)
CRASH_DAILY_HIT = 0.18
CRASH_OVERSHOOT = (0.15, 0.25)
WAVE_CRASH_MULTIPLIER = 0.3            # +30% crash per extra wave

ACCUMULATION_HEADLINES = [
    ("Unusual volume spike in {symbol}", "Large block trades detected in dark pools.", "dark_pool"),
    ("{symbol} seeing abnormal order flow", "Concentrated buying from offshore accounts.", "offshore"),
    ("Options activity surges for {symbol}", "Unusual call buying ahead of no scheduled events.", "no_catalyst"),
    ("{symbol} volume 3x average with no news", "Source of buying pressure unknown.", "no_news"),
]

CATALYSTS = {
    1: [
        ("BREAKING: {symbol} in talks for major acquisition", "merger"),
        ("Insider sources: {symbol} partnership with tech giant imminent", "partnership"),
        ("EXCLUSIVE: {symbol} sitting on breakthrough technology", "tech"),
        ("Rumor: Private equity circling {symbol} for buyout", "buyout"),
        ('{symbol} to announce "transformative" deal says source', "deal"),
    ],
    2: [
        ('UPDATE: {symbol} deal "moving forward" despite skeptics', "deal_update"),
        ('{symbol} CFO: "Transformational changes coming soon"', "executive"),
        ("Analyst raises {symbol} target amid deal speculation", "upgrade"),
        ('{symbol} "significantly undervalued" says investment bank', "valuation"),
    ],
    3: [
        ('{symbol} board meeting "imminent" - sources', "board"),
        ("Multiple bidders reportedly interested in {symbol}", "bidding"),
        ('{symbol}: "Final negotiations" underway per insider', "final"),
    ],
}


class InstitutionalManipulation(PhenomenonMachine):
    """
    Institutional pump and dump, possibly over several waves.

    Design principles:
    - Accumulation is nearly invisible: small drift, rising
      institutional_accumulation (which lifts the target price)
    - Pump/no-pump rolled once at the end of accumulation
    - Failed schemes teach skepticism: SEC halt or quiet fizzle
    - Wave 1 continues 60%, wave 2 40%, wave 3 always crashes
    - Catalysts weaken with each wave; crashes get harder

    No setup criteria: this pattern is a warning, not a trade.
    """

    name = "institutional_manipulation"
    news_type = "manipulation"
    phases = ("accumulation", "sec_intervention", "fizzle", "catalyst",
              "distribution", "re_accumulation", "crash")

    # === Trigger ===

    def create_state(self, security: Security, options: Dict[str, Any]) -> PhenomenonState:
        security.institutional_accumulation = 0.0
        return PhenomenonState(
            phase="accumulation",
            phase_days=options.get("accumulation_days") or self.randint(*ACCUMULATION_DAYS),
            start_price=security.price,
            base_probability=PUMP_PROBABILITY,
            extra={"wave": 1, "failure_mode": options.get("failure_mode")},
        )

    def on_trigger(self, security: Security, state: PhenomenonState) -> List[NewsRecord]:
        if not self.context.enabled("unusual_volume"):
            return []
        headline, description, clue = self.choice(ACCUMULATION_HEADLINES)
        return [self.make_news(
            security, state,
            headline=headline.format(symbol=security.symbol),
            description=description,
            sentiment=NewsSentiment.NEUTRAL,
            volume_clue=clue,
            wave=1,
        )]

    def daily_trigger(self, securities: Sequence[Security]) -> List[PhenomenonState]:
        if not self.is_enabled() or self.random() >= DAILY_START_CHANCE:
            return []
        target = self.choice(self.eligible(securities))
        if target is None:
            return []
        state = self.trigger(target)
        return [state] if state else []

    def teardown(self, security: Security, state: PhenomenonState) -> None:
        security.institutional_accumulation = 0.0

    # === Process ===

    def advance(self, security: Security, state: PhenomenonState) -> Tuple[float, List[NewsRecord]]:
        handler = {
            "accumulation": self._accumulation,
            "sec_intervention": self._sec_intervention,
            "fizzle": self._fizzle,
            "catalyst": self._catalyst,
            "distribution": self._distribution,
            "re_accumulation": self._re_accumulation,
            "crash": self._crash,
        }[state.phase]
        return handler(security, state)

    def _wave_decay(self, state: PhenomenonState) -> float:
        return 1 - (state.extra["wave"] - 1) * WAVE_DECAY

    def _wave_multiplier(self, state: PhenomenonState) -> float:
        return 1 + (state.extra["wave"] - 1) * WAVE_CRASH_MULTIPLIER

    def _accumulation(self, security: Security, state: PhenomenonState) -> Tuple[float, List[NewsRecord]]:
        meme = self.meme(security)
        security.institutional_accumulation = min(
            1.0, security.institutional_accumulation + self.uniform(*ACCUMULATION_STEP)
        )
        security.sentiment_offset += ACCUMULATION_DRIFT * meme

        if not state.phase_elapsed:
            return 0.0, []

        if self.resolve_outcome(state):
            self.enter_phase(security, state, "catalyst", 1)
            return 0.0, []

        failure = state.extra.get("failure_mode") or (
            "sec_intervention" if self.random() < SEC_SHARE_OF_FAILURES else "fizzle"
        )
        if failure == "sec_intervention":
            self.enter_phase(security, state, "sec_intervention", SEC_DAYS)
            return 0.0, [self._sec_news(security, state)]
        self.enter_phase(security, state, "fizzle", FIZZLE_DAYS)
        return 0.0, [self._fizzle_news(security, state)]

    def _sec_intervention(self, security: Security, state: PhenomenonState) -> Tuple[float, List[NewsRecord]]:
        meme = self.meme(security)
        security.sentiment_offset -= SEC_DAILY_HIT * meme
        if state.phase_elapsed:
            # Trading resumes lower
            security.sentiment_offset -= SEC_RESUME_HIT * meme
            security.institutional_accumulation = 0.0
            self.enter_phase(security, state, COMPLETE)
        return 0.0, []

    def _fizzle(self, security: Security, state: PhenomenonState) -> Tuple[float, List[NewsRecord]]:
        security.sentiment_offset -= FIZZLE_DAILY_HIT * self.meme(security)
        security.institutional_accumulation = max(0.0, security.institutional_accumulation - FIZZLE_UNWIND)
        if state.phase_elapsed:
            security.institutional_accumulation = 0.0
            self.enter_phase(security, state, COMPLETE)
        return 0.0, []

    def _catalyst(self, security: Security, state: PhenomenonState) -> Tuple[float, List[NewsRecord]]:
        meme = self.meme(security)
        decay = self._wave_decay(state)
        jump = self.uniform(*CATALYST_JUMP) * meme
        security.sentiment_offset += CATALYST_SENTIMENT * meme
        security.sentiment_offset += self.uniform(*CATALYST_NEWS_SENTIMENT) * meme * decay
        security.volatility_boost += CATALYST_VOLATILITY * meme * decay

        wave = state.extra["wave"]
        headline, kind = self.choice(CATALYSTS[min(wave, 3)])
        news = self.make_news(
            security, state,
            headline=headline.format(symbol=security.symbol),
            description=f"Wave {wave} of positive rumors. Each new catalyst attracts more retail buyers."
            if wave > 1 else "Unverified reports driving intense speculation.",
            sentiment=NewsSentiment.POSITIVE,
            manipulation_type=kind,
            wave=wave,
        )
        logger.info(f"{security.symbol}: pump wave {wave} catalyst, jump {jump * 100:+.1f}%")
        self.enter_phase(security, state, "distribution", self.randint(*DISTRIBUTION_DAYS))
        return jump, [news]

    def _distribution(self, security: Security, state: PhenomenonState) -> Tuple[float, List[NewsRecord]]:
        security.institutional_accumulation = max(0.0, security.institutional_accumulation - DISTRIBUTION_STEP)
        if not (state.phase_elapsed or security.institutional_accumulation <= 0):
            return 0.0, []

        wave = state.extra["wave"]
        if self.random() < CONTINUE_CHANCE.get(wave, 0.0):
            state.extra["wave"] = wave + 1
            security.institutional_accumulation = RE_ACCUMULATION_START
            self.enter_phase(security, state, "re_accumulation", self.randint(*RE_ACCUMULATION_DAYS))
            return 0.0, [self._re_accumulation_news(security, state)]

        security.institutional_accumulation = 0.0
        drop = -self.uniform(*CRASH_DROP) * self.meme(security) * self._wave_multiplier(state)
        self.enter_phase(security, state, "crash", self.randint(*CRASH_DAYS))
        return drop, [self._crash_news(security, state)]

    def _re_accumulation(self, security: Security, state: PhenomenonState) -> Tuple[float, List[NewsRecord]]:
        security.institutional_accumulation = min(
            1.0, security.institutional_accumulation + self.uniform(*RE_ACCUMULATION_STEP)
        )
        # Shake out weak hands
        security.sentiment_offset -= RE_ACCUMULATION_DRIFT * self.meme(security)
        if state.phase_elapsed:
            self.enter_phase(security, state, "catalyst", 1)
        return 0.0, []

    def _crash(self, security: Security, state: PhenomenonState) -> Tuple[float, List[NewsRecord]]:
        meme = self.meme(security)
        multiplier = self._wave_multiplier(state)
        security.sentiment_offset -= CRASH_DAILY_HIT * meme * multiplier
        if state.phase_elapsed:
            # Panic overshoot below fair value
            security.sentiment_offset = -self.uniform(*CRASH_OVERSHOOT) * meme * multiplier
            logger.info(f"{security.symbol}: scheme over after {state.extra['wave']} wave(s)")
            self.enter_phase(security, state, COMPLETE)
        return 0.0, []

    # === News ===

    def _sec_news(self, security: Security, state: PhenomenonState) -> NewsRecord:
        symbol = security.symbol
        headlines = [
            f"SEC halts trading in {symbol} pending investigation",
            f"BREAKING: {symbol} trading suspended amid manipulation investigation",
            f"{symbol} HALTED: SEC investigating suspicious trading activity",
            f"Regulators freeze {symbol} shares - market manipulation suspected",
        ]
        return self.make_news(
            security, state,
            headline=self.choice(headlines),
            description="TEACHING MOMENT: Most manipulation schemes get caught. SEC monitors unusual "
                        "volume patterns. Don't chase suspicious moves.",
            sentiment=NewsSentiment.NEGATIVE,
            is_failed=True,
            wave=state.extra["wave"],
        )

    def _fizzle_news(self, security: Security, state: PhenomenonState) -> NewsRecord:
        symbol = security.symbol
        headlines = [
            f"{symbol} volume spike fades - no catalyst materializes",
            f"{symbol}: Suspicious activity leads to nothing",
            f"{symbol} buying pressure disappears without catalyst",
            f"{symbol} drifts lower after unexplained buying pressure",
        ]
        return self.make_news(
            security, state,
            headline=self.choice(headlines),
            description="TEACHING MOMENT: Not every 'suspicious volume' is manipulation. Many schemes "
                        "fail before completion. Don't assume every pattern plays out.",
            sentiment=NewsSentiment.NEUTRAL,
            is_failed=True,
            wave=state.extra["wave"],
        )

    def _re_accumulation_news(self, security: Security, state: PhenomenonState) -> NewsRecord:
        symbol = security.symbol
        headlines = [
            f'{symbol} pulls back after recent gains - "healthy consolidation"',
            f"Analysts: {symbol} dip is buying opportunity",
            f"{symbol} forming base for next leg higher?",
            f"{symbol} volume dries up - bulls taking a breather",
        ]
        return self.make_news(
            security, state,
            headline=self.choice(headlines),
            description=f"Wave {state.extra['wave']} accumulation underway. Smart money reloading positions.",
            sentiment=NewsSentiment.NEUTRAL,
            wave=state.extra["wave"],
        )

    def _crash_news(self, security: Security, state: PhenomenonState) -> NewsRecord:
        symbol, wave = security.symbol, state.extra["wave"]
        if wave > 1:
            headlines = [
                f"{symbol}: After {wave} waves of hype, reality sets in",
                f'{symbol} crashes as "deal" evaporates - retail left holding bags',
                f"SEC opens inquiry into {symbol} trading patterns",
                f"{symbol}: All {wave} rumored catalysts prove baseless",
                f"Analysts: {symbol} was classic multi-pump scheme",
            ]
            description = f"After {wave} pump cycles, smart money has fully exited. Damage is severe."
        else:
            headlines = [
                f'{symbol} acquisition talks "never existed" says company',
                f"{symbol} denies partnership rumors, shares tumble",
                f"Sources: {symbol} deal fell through, insiders already sold",
                f"SEC reviewing unusual trading activity in {symbol}",
                f'Analysts: {symbol} rally was "disconnected from fundamentals"',
            ]
            description = "Smart money appears to have exited positions."
        return self.make_news(
            security, state,
            headline=self.choice(headlines),
            description=description,
            sentiment=NewsSentiment.NEGATIVE,
            wave=wave,
        )

    # === Tutorial ===

    def phase_hints(self, news: NewsRecord) -> Dict[str, Dict[str, Any]]:
        wave = news.payload.get("wave") or 1
        failed = {
            "type": "Manipulation FAILED - Scheme Collapsed",
            "description": "The pump never came. Regulators stepped in or the buyers walked away.",
            "implication": "Anyone who chased the volume is now holding losses.",
            "action": "AVOID. Do not try to front-run suspicious volume.",
            "timing": "ENTRY: None. EXIT: Immediately if holding.",
            "catalyst": "~20% of schemes are caught, ~20% fizzle. Only ~40% ever pump.",
        }
        return {
            "accumulation": {
                "type": "Unusual Volume - Possible Accumulation",
                "description": "Volume without news. Could be quiet accumulation, could be nothing.",
                "implication": 'Most "suspicious volume" is NOT manipulation (~60% false positive).',
                "action": "NEARLY IMPOSSIBLE TO DETECT. Do not trade on volume alone.",
                "timing": "ENTRY: None. Wait for a real catalyst.",
                "catalyst": "Dark pool prints, offshore buying, call volume with no scheduled event.",
            },
            "sec_intervention": failed,
            "fizzle": failed,
            "catalyst": {
                "type": "Potential Manipulation (Pump & Dump)",
                "description": "Suspicious trading activity plus an unverified rumor. Volume without news = red flag.",
                "implication": "High risk of sudden reversal. Early buyers may profit but late buyers get burned.",
                "action": "EXTREME CAUTION - If playing, sell at +25-30%. Never hold through \"consolidation\".",
                "timing": "ENTRY: Only on first pump (risky). EXIT: Sell 100% during pump, NEVER hold.",
                "catalyst": f"Wave {wave}: each new rumor is weaker than the last.",
            },
            "re_accumulation": {
                "type": "\"Healthy Consolidation\" After a Pump",
                "description": "Pullback dressed up as a buying opportunity.",
                "implication": "Consolidation after a pump = more waves coming = bigger crash.",
                "action": "Do NOT buy the dip. Smart money is reloading to sell to you again.",
                "timing": "ENTRY: None. EXIT: Into the next pump if still holding.",
                "catalyst": "Multi-wave schemes crash 30% harder per extra wave.",
            },
            "distribution": {
                "type": "Distribution - Smart Money Exiting",
                "description": "Price holds up while institutions sell into retail demand.",
                "implication": "The dump is coming.",
                "action": "SELL if holding.",
                "timing": "EXIT: Now.",
                "catalyst": "Volume character changes: sellers meet every uptick.",
            },
            "crash": {
                "type": "Final Dump",
                "description": f"After {wave} wave(s), the rumored catalysts proved baseless.",
                "implication": "Retail bag holders created. Price overshoots below fair value.",
                "action": "AVOID. Don't try to catch the falling knife.",
                "timing": "ENTRY: Only after the overshoot settles.",
                "catalyst": "If it looks too obvious, it's probably not a real catalyst.",
            },
        }
