"""
Demo (fallback) data
====================

Synthetic payloads used when the pricing API is unreachable. Output has the
exact shape of the API responses, so the fallback path runs through the same
normalizers as live data:

- demo_index_history(days)          ~ GET /index/history?days=N
- demo_latest_prices()              ~ GET /prices/latest
- demo_provider_history(name, days) ~ GET /prices/provider/{name}?days=N

Series = per-provider baseline + slow drift + smooth oscillation + bounded
noise, clamped to a positive floor. Pass a seeded numpy Generator for
reproducible output.
"""

from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone
from typing import Dict, List, Optional

import numpy as np

INDEX_BASELINE = 3.20
INDEX_FLOOR = 1.80
LOW_FLOOR = 0.90
PROVIDER_FLOOR = 0.50
DEFAULT_PROVIDER_BASELINE = 3.00

# provider, $/GPU-hr, gpu_model, region
DEMO_PROVIDERS = [
    ("Vast.ai", 1.87, "H100", "Global"),
    ("Hyperstack", 1.90, "H100", "US/EU"),
    ("RunPod", 1.99, "H100 SXM", "US"),
    ("Nebius", 2.10, "H100", "EU"),
    ("Thunder Compute", 0.99, "H100", "US"),
    ("Lambda Labs", 3.44, "H100 SXM", "US"),
    ("DataCrunch", 2.20, "H100 SXM", "EU"),
    ("JarvisLabs", 2.99, "H100", "US"),
    ("Google Cloud", 3.00, "H100 (a3-highgpu)", "us-central1"),
    ("Genesis Cloud", 2.65, "H100 SXM", "EU/US"),
    ("CoreWeave", 4.25, "H100 PCIe", "US"),
    ("AWS", 3.93, "H100 SXM (p5.48xl)", "us-east-1"),
    ("Azure", 6.98, "H100 (NC v5)", "eastus"),
]
DEMO_BASELINES: Dict[str, float] = {name: price for name, price, _, _ in DEMO_PROVIDERS}


def _rng(rng: Optional[np.random.Generator]) -> np.random.Generator:
    return rng if rng is not None else np.random.default_rng()


def _day_stamp(today: date, days_back: int) -> str:
    dt = datetime.combine(today - timedelta(days=days_back), time(12, 0), tzinfo=timezone.utc)
    return dt.isoformat()


def _today(today: Optional[date]) -> date:
    return today or datetime.now(timezone.utc).date()


def demo_latest_prices() -> List[Dict]:
    return [
        {"provider": name, "price_per_gpu_hr": price, "gpu_model": model, "region": region}
        for name, price, model, region in DEMO_PROVIDERS
    ]


def demo_index_history(days: int, today: Optional[date] = None,
                       rng: Optional[np.random.Generator] = None) -> List[Dict]:
    """days + 1 daily records, oldest first, ending today."""
    g = _rng(rng)
    end = _today(today)
    out: List[Dict] = []
    for i in range(max(int(days), 0), -1, -1):
        noise = np.sin(i * 0.08) * 0.35 + np.cos(i * 0.03) * 0.2 + (g.random() - 0.5) * 0.15
        value = round(float(max(INDEX_FLOOR, INDEX_BASELINE - i * 0.003 + noise)), 4)
        low = round(float(max(LOW_FLOOR, value - 0.3 - g.random() * 0.5)), 2)
        high = round(float(value + 1.5 + g.random() * 1.2), 2)
        out.append({
            "computed_at": _day_stamp(end, i),
            "index_value": value,
            "low_price": low,
            "high_price": high,
            "spread": round(high - low, 2),
            "providers_count": 12 + int(g.integers(0, 3)),
        })
    return out


def demo_provider_history(name: str, days: int, today: Optional[date] = None,
                          rng: Optional[np.random.Generator] = None) -> List[Dict]:
    g = _rng(rng)
    end = _today(today)
    base = DEMO_BASELINES.get(name, DEFAULT_PROVIDER_BASELINE)
    out: List[Dict] = []
    for i in range(max(int(days), 0), -1, -1):
        price = base - i * 0.002 + np.sin(i * 0.1 + base) * 0.15 + (g.random() - 0.5) * 0.08
        out.append({
            "scraped_at": _day_stamp(end, i),
            "price_per_gpu_hr": round(float(max(PROVIDER_FLOOR, price)), 2),
            "provider": name,
        })
    return out
