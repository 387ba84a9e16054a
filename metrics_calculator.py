#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
ICX Derived Metrics
===================

Pure functions over a normalized snapshot:

- Day / 7-day / 30-day index change (%)
- Per-provider 24h change (%) against the previous-price baseline
- Tier averages and bar fractions (empty tiers omitted)
- Price distribution statistics (min / max / median / mean)
- Sort ordering with ascending <-> descending toggling

The index value itself is supplied upstream and never recomputed here.
"""

from __future__ import annotations

import os
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np

from models import (
    IndexMetrics, IndexPoint, PriceDistribution, ProviderQuote,
    SortKey, SortState, Tier, TierAggregate,
)

# ==== Parameters ==============================================================

# |day change| at or above this (percent) raises the alert flag
ALERT_THRESHOLD_PCT = float(os.getenv("ICX_ALERT_THRESHOLD_PCT", "5.0"))

WEEK_LOOKBACK = 7
MONTH_LOOKBACK = 30

# Display order for tier aggregates; UNKNOWN only shows up if a caller asks
# normalize_quotes() for it as the default tier.
TIER_LABELS: Dict[Tier, str] = {
    Tier.HYPERSCALER: "Hyperscaler",
    Tier.SPECIALIST: "Specialist",
    Tier.MARKETPLACE: "Marketplace",
    Tier.BUDGET: "Budget",
    Tier.UNKNOWN: "Unclassified",
}

# Published composition of the index by tier (percent)
TIER_INDEX_WEIGHTS: Dict[str, float] = {
    Tier.HYPERSCALER.value: 45.0,
    Tier.SPECIALIST.value: 30.0,
    Tier.MARKETPLACE.value: 12.0,
    Tier.BUDGET.value: 13.0,
}


# ==== Index changes ===========================================================

def change_pct(current: float, base: float) -> float:
    if not base:
        return 0.0
    return (current - base) / base * 100.0


def _lookback(history: Sequence[IndexPoint], positions: int, clamp: bool = True) -> Optional[IndexPoint]:
    """Point `positions` back from the latest; oldest point when history is shorter (clamp)."""
    n = len(history)
    if n == 0:
        return None
    idx = n - 1 - positions
    if idx < 0:
        if not clamp:
            return None
        idx = 0
    return history[idx]


def day_change_pct(history: Sequence[IndexPoint]) -> float:
    if len(history) < 2:
        return 0.0
    return change_pct(history[-1].index_value, history[-2].index_value)


def week_change_pct(history: Sequence[IndexPoint], clamp: bool = True) -> float:
    base = _lookback(history, WEEK_LOOKBACK, clamp=clamp)
    if base is None:
        return 0.0
    return change_pct(history[-1].index_value, base.index_value)


def month_change_pct(history: Sequence[IndexPoint], clamp: bool = True) -> float:
    base = _lookback(history, MONTH_LOOKBACK, clamp=clamp)
    if base is None:
        return 0.0
    return change_pct(history[-1].index_value, base.index_value)


def index_metrics(history: Sequence[IndexPoint], alert_threshold: float = ALERT_THRESHOLD_PCT) -> IndexMetrics:
    if not history:
        return IndexMetrics()
    day = day_change_pct(history)
    return IndexMetrics(
        latest=history[-1],
        previous=history[-2] if len(history) >= 2 else None,
        week_base=_lookback(history, WEEK_LOOKBACK),
        month_base=_lookback(history, MONTH_LOOKBACK),
        day_change_pct=day,
        week_change_pct=week_change_pct(history),
        month_change_pct=month_change_pct(history),
        alert_triggered=abs(day) >= alert_threshold,
    )


# ==== Provider metrics ========================================================

def quote_change_pct(quote: ProviderQuote) -> float:
    """
    24h change vs. the baseline. A zero previous price divides by 1 so the
    result stays finite (0 -> 1.87 reads as +187%).
    """
    return (quote.current_price - quote.previous_price) / (quote.previous_price or 1.0) * 100.0


def tier_averages(quotes: Sequence[ProviderQuote]) -> Dict[Tier, float]:
    out: Dict[Tier, float] = {}
    for tier in TIER_LABELS:
        prices = [q.current_price for q in quotes if q.tier == tier]
        if prices:
            out[tier] = float(np.mean(prices))
    return out


def tier_aggregates(quotes: Sequence[ProviderQuote]) -> Tuple[TierAggregate, ...]:
    """Tier averages plus member count and bar width relative to the max price (min 1)."""
    if not quotes:
        return ()
    scale = max(max(q.current_price for q in quotes), 1.0)
    averages = tier_averages(quotes)
    return tuple(
        TierAggregate(
            tier=tier,
            label=TIER_LABELS[tier],
            count=sum(1 for q in quotes if q.tier == tier),
            average_price=avg,
            bar_fraction=avg / scale,
        )
        for tier, avg in averages.items()
    )


def price_distribution(quotes: Sequence[ProviderQuote]) -> PriceDistribution:
    if not quotes:
        return PriceDistribution()
    ordered = tuple(sorted(quotes, key=lambda q: q.current_price))
    prices = np.array([q.current_price for q in ordered], dtype=float)
    return PriceDistribution(
        quotes=ordered,
        count=int(prices.size),
        min=float(prices.min()),
        max=float(prices.max()),
        median=float(np.median(prices)),
        mean=float(prices.mean()),
    )


# ==== Sorting =================================================================

def _sort_value(quote: ProviderQuote, key: SortKey):
    if key == SortKey.PRICE:
        return quote.current_price
    if key == SortKey.NAME:
        return quote.name.casefold()
    return quote_change_pct(quote)


def sort_quotes(quotes: Sequence[ProviderQuote], state: SortState = SortState()) -> Tuple[ProviderQuote, ...]:
    # name breaks ties so descending is the exact reverse of ascending
    return tuple(sorted(
        quotes,
        key=lambda q: (_sort_value(q, state.key), q.name.casefold(), q.name),
        reverse=state.descending,
    ))


def top_movers(quotes: Sequence[ProviderQuote], n: int = 3) -> List[ProviderQuote]:
    """Providers with the largest absolute 24h change, ignoring unchanged ones."""
    moved = [q for q in quotes if q.current_price != q.previous_price]
    return sorted(moved, key=lambda q: abs(quote_change_pct(q)), reverse=True)[:n]
