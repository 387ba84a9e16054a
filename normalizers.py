"""
ICX Normalizers
===============

Pure shape/unit conversion from raw API payloads to the data model.

- normalize_history:          /index/history rows      -> IndexPoint tuple
- normalize_quotes:           /prices/latest rows      -> ProviderQuote tuple
- normalize_provider_history: /prices/provider/{name}  -> ProviderHistoryPoint tuple

All three are total: malformed numbers are coerced to 0, rows with an
unparseable timestamp (or no provider name) are dropped, and non-list
payloads normalize to an empty tuple. Same input, same output.
"""

from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional, Tuple

import pandas as pd

from models import IndexPoint, ProviderHistoryPoint, ProviderQuote, Tier

# Provider name -> tier. Names not listed resolve to the caller's default.
TIER_MAP: Dict[str, Tier] = {
    "AWS": Tier.HYPERSCALER,
    "Google Cloud": Tier.HYPERSCALER,
    "Azure": Tier.HYPERSCALER,
    "Lambda Labs": Tier.SPECIALIST,
    "Lambda 1CC": Tier.SPECIALIST,
    "CoreWeave": Tier.SPECIALIST,
    "RunPod": Tier.SPECIALIST,
    "Genesis Cloud": Tier.SPECIALIST,
    "DataCrunch": Tier.SPECIALIST,
    "Nebius": Tier.SPECIALIST,
    "Hyperstack": Tier.SPECIALIST,
    "Vast.ai": Tier.MARKETPLACE,
    "Thunder Compute": Tier.BUDGET,
    "JarvisLabs": Tier.BUDGET,
}
_TIER_MAP_FOLDED = {k.casefold(): v for k, v in TIER_MAP.items()}

HISTORY_COLUMNS = ["computed_at", "index_value", "low_price", "high_price", "spread", "providers_count"]
QUOTE_COLUMNS = ["provider", "price_per_gpu_hr", "gpu_model", "region"]
PROVIDER_HISTORY_COLUMNS = ["scraped_at", "price_per_gpu_hr"]

DEFAULT_GPU_MODEL = "H100"


# ==== Helpers ================================================================

def resolve_tier(name: str, default: Tier = Tier.SPECIALIST) -> Tier:
    """Exact lookup first, then case-insensitive; otherwise `default`."""
    if name in TIER_MAP:
        return TIER_MAP[name]
    return _TIER_MAP_FOLDED.get(str(name).casefold(), default)


def _frame(raw: Any, needed: List[str]) -> pd.DataFrame:
    """Records -> DataFrame with exactly `needed` columns (missing ones as None)."""
    records = [r for r in raw if isinstance(r, Mapping)] if isinstance(raw, (list, tuple)) else []
    df = pd.DataFrame.from_records([dict(r) for r in records])
    for k in needed:
        if k not in df.columns:
            df[k] = None
    return df[needed].copy()


def _numeric(s: pd.Series, default: float = 0.0) -> pd.Series:
    return pd.to_numeric(s, errors="coerce").fillna(default).astype(float)


def _timestamps(s: pd.Series) -> pd.Series:
    return pd.to_datetime(s, utc=True, errors="coerce", format="ISO8601")


def _label(ts: pd.Timestamp) -> str:
    # "Mar 5", no zero padding
    return f"{ts.strftime('%b')} {ts.day}"


def _text(value: Any, default: str) -> str:
    if value is None:
        return default
    if isinstance(value, float) and pd.isna(value):
        return default
    text = str(value).strip()
    return text or default


def _by_time(df: pd.DataFrame, ts_col: str) -> pd.DataFrame:
    df["ts"] = _timestamps(df[ts_col])
    df = df.dropna(subset=["ts"])
    return df.sort_values("ts", kind="mergesort").copy()


# ==== Normalizers ============================================================

def normalize_history(raw: Any) -> Tuple[IndexPoint, ...]:
    df = _by_time(_frame(raw, HISTORY_COLUMNS), "computed_at")
    for col in ["index_value", "low_price", "high_price", "spread"]:
        df[col] = _numeric(df[col])
    df["providers_count"] = _numeric(df["providers_count"]).clip(lower=0).astype(int)

    return tuple(
        IndexPoint(
            date=row.ts.date(),
            label=_label(row.ts),
            index_value=float(row.index_value),
            low_price=float(row.low_price),
            high_price=float(row.high_price),
            spread=float(row.spread),
            provider_count=int(row.providers_count),
        )
        for row in df.itertuples(index=False)
    )


def normalize_quotes(
    raw: Any,
    previous_price_by_name: Optional[Mapping[str, float]] = None,
    default_tier: Tier = Tier.SPECIALIST,
) -> Tuple[ProviderQuote, ...]:
    """
    previous_price comes from the baseline map; a provider missing from it
    (first sighting) gets previous_price == current_price, i.e. no change.
    """
    baseline = previous_price_by_name or {}
    df = _frame(raw, QUOTE_COLUMNS)
    df = df[df["provider"].notna()].copy()
    df["provider"] = df["provider"].astype(str).str.strip()
    df = df[df["provider"] != ""]
    df = df.drop_duplicates(subset=["provider"], keep="last").copy()
    df["price_per_gpu_hr"] = _numeric(df["price_per_gpu_hr"])

    quotes: List[ProviderQuote] = []
    for row in df.itertuples(index=False):
        price = float(row.price_per_gpu_hr)
        quotes.append(ProviderQuote(
            name=row.provider,
            current_price=price,
            previous_price=float(baseline.get(row.provider, price)),
            tier=resolve_tier(row.provider, default_tier),
            region=_text(row.region, ""),
            gpu_model=_text(row.gpu_model, DEFAULT_GPU_MODEL),
        ))
    return tuple(quotes)


def normalize_provider_history(raw: Any) -> Tuple[ProviderHistoryPoint, ...]:
    df = _by_time(_frame(raw, PROVIDER_HISTORY_COLUMNS), "scraped_at")
    df["price_per_gpu_hr"] = _numeric(df["price_per_gpu_hr"])
    return tuple(
        ProviderHistoryPoint(date=row.ts.date(), label=_label(row.ts), price=float(row.price_per_gpu_hr))
        for row in df.itertuples(index=False)
    )


def baseline_from(quotes: Tuple[ProviderQuote, ...]) -> Dict[str, float]:
    """Price map captured after a successful refresh; next cycle's previous prices."""
    return {q.name: q.current_price for q in quotes}
