# tests/conftest.py
import pytest
from datetime import date, datetime, timedelta, timezone

from api_gateway import GatewayError

FIXED_NOW = datetime(2025, 3, 10, 12, 0, tzinfo=timezone.utc)


def history_rows(days, start=date(2025, 1, 1), base=3.0, step=0.01):
    rows = []
    for i in range(days):
        v = round(base + step * i, 4)
        rows.append({
            "computed_at": f"{(start + timedelta(days=i)).isoformat()}T06:00:00Z",
            "index_value": v, "low_price": round(v - 0.5, 2), "high_price": round(v + 1.0, 2),
            "spread": 1.5, "providers_count": 12,
        })
    return rows


class FakeGateway:
    """In-memory stand-in for ApiGateway; `fail` names endpoints that raise."""

    def __init__(self, history=None, latest=None, provider_history=None, fail=()):
        self.history = history
        self.latest = latest
        self.provider_history = provider_history or {}
        self.fail = set(fail)
        self.calls = []

    def fetch_index_history(self, days):
        self.calls.append(("history", days))
        if "history" in self.fail:
            raise GatewayError("index/history returned HTTP 503", status_code=503)
        return self.history if self.history is not None else history_rows(days)

    def fetch_latest_prices(self):
        self.calls.append(("latest",))
        if "latest" in self.fail:
            raise GatewayError("request to prices/latest failed: ConnectionError")
        return self.latest

    def fetch_provider_history(self, name, days):
        self.calls.append(("provider", name, days))
        if "provider" in self.fail:
            raise GatewayError(f"prices/provider/{name} returned HTTP 404", status_code=404)
        return self.provider_history.get(name, [
            {"scraped_at": f"2025-01-{d + 1:02d}T06:00:00Z", "price_per_gpu_hr": 2.0 + d * 0.01}
            for d in range(days)
        ])


class RecordingAdapter:
    def __init__(self):
        self.snapshots = []

    def publish(self, snapshot):
        self.snapshots.append(snapshot)


@pytest.fixture
def raw_history():
    return [
        {"computed_at": "2025-03-02T06:00:00Z", "index_value": 3.00, "low_price": 2.0,
         "high_price": 5.0, "spread": 3.0, "providers_count": 13},
        {"computed_at": "2025-03-03T06:00:00Z", "index_value": "3.30", "low_price": 2.1,
         "high_price": 5.2, "spread": 3.1, "providers_count": 14},
    ]


@pytest.fixture
def raw_latest():
    return [
        {"provider": "Vast.ai", "price_per_gpu_hr": 1.87, "gpu_model": "H100", "region": "Global"},
        {"provider": "AWS", "price_per_gpu_hr": 3.93, "gpu_model": "H100 SXM (p5.48xl)", "region": "us-east-1"},
        {"provider": "Azure", "price_per_gpu_hr": 6.98, "gpu_model": "H100 (NC v5)", "region": "eastus"},
        {"provider": "RunPod", "price_per_gpu_hr": 1.99, "gpu_model": "H100 SXM", "region": "US"},
        {"provider": "Thunder Compute", "price_per_gpu_hr": 0.99, "gpu_model": "H100", "region": "US"},
    ]


@pytest.fixture
def make_gateway():
    return FakeGateway


@pytest.fixture
def recording_adapter():
    return RecordingAdapter()


@pytest.fixture
def fixed_clock():
    return lambda: FIXED_NOW
