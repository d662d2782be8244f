# news_schema.py
# FROZEN SCHEMA v1.0.0 - DO NOT MODIFY WITHOUT VERSION BUMP
# Any change to this file = breaking change = major version increment

from dataclasses import dataclass, field
from typing import Any, ClassVar, Dict, Optional, Union
from enum import Enum


class NewsSentiment(str, Enum):
    """
    Direction label carried by a headline.

    Presentation colours the headline by this; phenomena never read it back.
    """
    POSITIVE = "positive"   # Upgrade, denial, catalyst, recovery
    NEGATIVE = "negative"   # Crash, report, downgrade, dump
    NEUTRAL = "neutral"     # Announcements, split effective, routine filings


@dataclass(frozen=True)
class NewsRecord:
    """
    One headline emitted by a phenomenon or market effect.

    Design principles:
    - Immutable once pushed to the sink
    - Flat identity fields every consumer can rely on
    - Phenomenon-specific data lives in `payload`, never as new attributes
    - `news_type` routes tutorial hints back to the owning phenomenon

    Schema Version: 1.0.0
    """

    SCHEMA_VERSION: ClassVar[str] = "1.0.0"

    # === Identity ===
    headline: str
    description: str
    sentiment: Union[NewsSentiment, float]   # Label, or signed strength
    related_stock: Optional[str]             # None for market-wide news
    news_type: str                           # e.g. "short_squeeze", "stock_split"

    # === Phenomenon context ===
    phase: Optional[str] = None
    probability: Optional[float] = None      # Current success probability
    gold_standard: Optional[Dict[str, bool]] = None
    is_gold_standard: bool = False
    criteria_met: Optional[int] = None
    total_criteria: Optional[int] = None

    # === Teaching ===
    educational_note: Optional[str] = None
    telltale: Optional[str] = None

    # === Extra fields (reporter name, split ratio, index tier, ...) ===
    payload: Dict[str, Any] = field(default_factory=dict)

    # === Stamped by the sink ===
    day: Optional[int] = None

    def __post_init__(self):
        if not self.headline:
            raise ValueError("NewsRecord.headline must be non-empty")
        if self.probability is not None and not 0.0 <= self.probability <= 1.0:
            raise ValueError(f"NewsRecord.probability out of [0, 1]: {self.probability}")

    @property
    def is_market_wide(self) -> bool:
        return self.related_stock is None

    @property
    def sentiment_label(self) -> NewsSentiment:
        """Numeric sentiments collapse to a label by sign."""
        if isinstance(self.sentiment, NewsSentiment):
            return self.sentiment
        if self.sentiment > 0:
            return NewsSentiment.POSITIVE
        if self.sentiment < 0:
            return NewsSentiment.NEGATIVE
        return NewsSentiment.NEUTRAL

    def get(self, key: str, default: Any = None) -> Any:
        """Attribute first, then payload."""
        if key in self.payload:
            return self.payload[key]
        return getattr(self, key, default)

    def to_row(self) -> Dict[str, Any]:
        """Flat dict for the run journal."""
        return {
            "day": self.day,
            "related_stock": self.related_stock,
            "news_type": self.news_type,
            "phase": self.phase,
            "sentiment": self.sentiment_label.value,
            "headline": self.headline,
            "probability": self.probability,
            "is_gold_standard": self.is_gold_standard,
        }


# === HARD RULES (NON-NEGOTIABLE) ===
#
# 1. Records are immutable; the sink stamps `day` by building a copy
#
# 2. `news_type` is the routing key for tutorial hints
#    - One type per phenomenon, shared by every phase of it
#    - Market effects use their own types (e.g. "analyst", "capitulation")
#
# 3. A record may only claim Gold Standard when criteria_met == total_criteria
#
# 4. No schema changes without version bump
#    - Add field -> v1.1.0 (minor)
#    - Change field type/meaning -> v2.0.0 (major)
