# market_utils.py
# Shared numeric helpers: clamping, meme factor, RSI, support levels, history frames
# Pure functions only. Randomness always comes in through the caller's source.

from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence

import numpy as np
import pandas as pd

from security_schema import Security


def clamp(value: float, low: float, high: float) -> float:
    return float(np.clip(value, low, high))


# === Meme factor ===

def meme_multiplier(security: Security) -> float:
    """
    How much extreme moves are amplified.

    stability 0.0 -> 1.0 (full meme), stability 1.0 -> 0.3 (blue chip).
    """
    stability = 0.5 if security.stability is None else security.stability
    return 0.3 + (1 - stability) * 0.7


# === Indicators ===

def calculate_rsi(prices: Sequence[float], period: int = 14) -> float:
    """
    Simple-average RSI over the last `period` changes.

    Returns 50 when there is not enough history, 100 when there were no losses.
    """
    if prices is None or len(prices) < period + 1:
        return 50.0

    changes = pd.Series(list(prices[-(period + 1):]), dtype=float).diff().dropna()
    avg_gain = changes.clip(lower=0).sum() / period
    avg_loss = (-changes.clip(upper=0)).sum() / period

    if avg_loss == 0:
        return 100.0

    rs = avg_gain / avg_loss
    return float(100 - (100 / (1 + rs)))


def price_deviation(prices: Sequence[float], current_price: float, window: int = 20) -> Optional[float]:
    """
    Standard deviations above the moving average of the last `window` prices.

    Returns None when there is not enough history to be meaningful.
    """
    if prices is None or len(prices) < window:
        return None
    history = np.asarray(prices[-window:], dtype=float)
    std = history.std()
    if std == 0:
        return 0.0
    return float((current_price - history.mean()) / std)


def gain_from(price: float, reference: float) -> float:
    if not reference:
        return 0.0
    return (price - reference) / reference


@dataclass(frozen=True)
class SupportLevel:
    """Cluster of swing lows the market treats as a floor."""
    level: float
    touch_count: int
    strength: float              # min(touches / 2, 1.5)
    distance_from_current: float # (price - level) / level
    is_obvious: bool             # 3+ touches


def detect_support_level(
    prices: Sequence[float],
    current_price: float,
    lookback: int = 20,
    tolerance_pct: float = 0.02,
    min_touches: int = 2,
) -> Optional[SupportLevel]:
    """
    Find the strongest support cluster in recent history.

    Step 1: swing lows (<= two neighbours on each side) over the lookback
    Step 2: cluster touches within tolerance of the running cluster mean
    Step 3: keep clusters below price, within 15%, with enough touches
    Step 4: score by touches * proximity, best wins

    Returns:
        SupportLevel, or None when no valid cluster exists
    """
    if prices is None or len(prices) < lookback:
        return None

    history = np.asarray(prices[-lookback:], dtype=float)

    # Step 1: Swing lows
    touches: List[float] = []
    for i in range(2, len(history) - 2):
        window = history[i - 2:i + 3]
        if history[i] <= window.min():
            touches.append(float(history[i]))

    if len(touches) < min_touches:
        return None

    # Step 2: Clustering
    tolerance = current_price * tolerance_pct
    clusters: List[Dict[str, object]] = []
    for touch in touches:
        for cluster in clusters:
            if abs(touch - cluster["avg"]) <= tolerance:
                cluster["touches"].append(touch)
                cluster["avg"] = float(np.mean(cluster["touches"]))
                break
        else:
            clusters.append({"avg": touch, "touches": [touch]})

    # Step 3: Validity
    valid = [
        c for c in clusters
        if len(c["touches"]) >= min_touches
        and current_price * 0.85 < c["avg"] < current_price
    ]
    if not valid:
        return None

    # Step 4: Scoring
    def score(cluster) -> float:
        proximity = 1 - (current_price - cluster["avg"]) / current_price
        return len(cluster["touches"]) * proximity

    best = max(valid, key=score)
    touch_count = len(best["touches"])

    return SupportLevel(
        level=best["avg"],
        touch_count=touch_count,
        strength=min(touch_count / 2, 1.5),
        distance_from_current=(current_price - best["avg"]) / best["avg"],
        is_obvious=touch_count >= 3,
    )


# === Egress ===

def history_frame(securities: Sequence[Security]) -> pd.DataFrame:
    """
    Price histories as one DataFrame, one column per symbol.

    Histories of different lengths are right-aligned so the last row is
    always today; shorter columns are padded with NaN at the top.
    """
    if not securities:
        return pd.DataFrame()

    length = max(len(s.price_history) for s in securities)
    columns = {}
    for security in securities:
        history = list(security.price_history)
        columns[security.symbol] = [np.nan] * (length - len(history)) + history

    frame = pd.DataFrame(columns)
    frame.index.name = "t"
    return frame


def summarize_history(securities: Sequence[Security]) -> pd.DataFrame:
    """Per-symbol first/last/min/max and total return over the stored history."""
    frame = history_frame(securities)
    if frame.empty:
        return frame

    first = frame.apply(lambda col: col.dropna().iloc[0])
    last = frame.iloc[-1]
    summary = pd.DataFrame({
        "first": first,
        "last": last,
        "min": frame.min(),
        "max": frame.max(),
    })
    summary["return"] = (summary["last"] - summary["first"]) / summary["first"]
    return summary
