"""
ICX Data Model
==============

Immutable records shared by the normalizers, the refresh coordinator, the
metrics calculator and the dashboard export:

- IndexPoint / ProviderQuote / ProviderHistoryPoint: normalized upstream data
- SourceStatus: live / fallback provenance of the current snapshot
- DashboardSnapshot: the read-only record handed to presentation adapters
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Dict, Optional, Tuple


class Tier(str, Enum):
    HYPERSCALER = "hyperscaler"
    SPECIALIST = "specialist"
    MARKETPLACE = "marketplace"
    BUDGET = "budget"
    UNKNOWN = "unknown"


class SourceMode(str, Enum):
    UNLOADED = "unloaded"
    LIVE = "live"
    FALLBACK = "fallback"


class SortKey(str, Enum):
    PRICE = "price"
    NAME = "name"
    CHANGE = "change"


# ==== Normalized upstream data ===============================================

@dataclass(frozen=True)
class IndexPoint:
    """One day of the composite index ($/GPU-hr)."""

    date: date
    label: str
    index_value: float
    low_price: float
    high_price: float
    spread: float = 0.0
    provider_count: int = 0


@dataclass(frozen=True)
class ProviderQuote:
    """Current price of one provider plus the baseline it is compared against."""

    name: str
    current_price: float
    previous_price: float
    tier: Tier = Tier.SPECIALIST
    region: str = ""
    gpu_model: str = "H100"


@dataclass(frozen=True)
class ProviderHistoryPoint:
    date: date
    label: str
    price: float


@dataclass(frozen=True)
class SourceStatus:
    mode: SourceMode = SourceMode.UNLOADED
    last_refresh: Optional[datetime] = None
    is_refreshing: bool = False


# ==== Derived records ========================================================

@dataclass(frozen=True)
class SortState:
    key: SortKey = SortKey.PRICE
    descending: bool = False

    def toggle(self, key: SortKey | str) -> "SortState":
        """Same key flips the direction; a new key starts ascending."""
        key = SortKey(key)
        if key == self.key:
            return SortState(key=key, descending=not self.descending)
        return SortState(key=key, descending=False)


@dataclass(frozen=True)
class TierAggregate:
    tier: Tier
    label: str
    count: int
    average_price: float
    bar_fraction: float


@dataclass(frozen=True)
class PriceDistribution:
    quotes: Tuple[ProviderQuote, ...] = ()
    count: int = 0
    min: float = 0.0
    max: float = 0.0
    median: float = 0.0
    mean: float = 0.0


@dataclass(frozen=True)
class IndexMetrics:
    latest: Optional[IndexPoint] = None
    previous: Optional[IndexPoint] = None
    week_base: Optional[IndexPoint] = None
    month_base: Optional[IndexPoint] = None
    day_change_pct: float = 0.0
    week_change_pct: float = 0.0
    month_change_pct: float = 0.0
    alert_triggered: bool = False


@dataclass(frozen=True)
class DashboardSnapshot:
    """Everything a presentation layer needs; recomputed on every state change."""

    history: Tuple[IndexPoint, ...]
    quotes: Tuple[ProviderQuote, ...]
    provider_history: Optional[Tuple[ProviderHistoryPoint, ...]]
    selected_provider: Optional[str]
    range_days: int
    sort: SortState
    status: SourceStatus
    metrics: IndexMetrics
    tiers: Tuple[TierAggregate, ...] = ()
    distribution: PriceDistribution = field(default_factory=PriceDistribution)
    tier_weights: Dict[str, float] = field(default_factory=dict)
