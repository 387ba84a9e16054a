#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
ICX Dashboard Export
====================

Boundary between the engine and whatever draws the dashboard. Adapters receive
a finished DashboardSnapshot and never see raw errors, only the source mode
and a human-readable staleness line.

- to_view_model():           JSON-ready dict of a snapshot
- format_dashboard_report(): plain-text report
- ConsoleReportAdapter / JsonFileAdapter: ready-made publishers
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional

from metrics_calculator import quote_change_pct, top_movers
from models import DashboardSnapshot, IndexPoint, SourceMode, SourceStatus


def _age(last: datetime, now: datetime) -> str:
    minutes = int(max((now - last).total_seconds(), 0) // 60)
    if minutes < 1:
        return "just now"
    if minutes < 60:
        return f"{minutes}m ago"
    hours, rem = divmod(minutes, 60)
    return f"{hours}h {rem}m ago" if rem else f"{hours}h ago"


def staleness_label(status: SourceStatus, now: Optional[datetime] = None) -> str:
    if status.mode == SourceMode.UNLOADED or status.last_refresh is None:
        return "Loading"
    now = now or datetime.now(timezone.utc)
    age = _age(status.last_refresh, now)
    if status.mode == SourceMode.FALLBACK:
        return f"Demo data: API unreachable (updated {age})"
    return f"Live (updated {age})"


def _point(p: Optional[IndexPoint]) -> Optional[Dict]:
    if p is None:
        return None
    return {
        "date": p.date.isoformat(),
        "label": p.label,
        "index": round(p.index_value, 4),
        "low": round(p.low_price, 2),
        "high": round(p.high_price, 2),
        "spread": round(p.spread, 2),
        "providers": p.provider_count,
    }


def to_view_model(snap: DashboardSnapshot, now: Optional[datetime] = None) -> Dict:
    m = snap.metrics
    status = snap.status
    return {
        "status": {
            "mode": status.mode.value,
            "is_refreshing": status.is_refreshing,
            "last_refresh": status.last_refresh.isoformat() if status.last_refresh else None,
            "staleness": staleness_label(status, now),
        },
        "range_days": snap.range_days,
        "index": {
            "latest": _point(m.latest),
            "day_change_pct": round(m.day_change_pct, 2),
            "week_change_pct": round(m.week_change_pct, 2),
            "week_base": round(m.week_base.index_value, 4) if m.week_base else None,
            "month_change_pct": round(m.month_change_pct, 2),
            "alert": m.alert_triggered,
        },
        "history": [_point(p) for p in snap.history],
        "sort": {"key": snap.sort.key.value, "descending": snap.sort.descending},
        "providers": [
            {
                "name": q.name,
                "price": round(q.current_price, 2),
                "previous": round(q.previous_price, 2),
                "change_24h_pct": round(quote_change_pct(q), 2),
                "tier": q.tier.value,
                "region": q.region,
                "gpu_model": q.gpu_model,
            }
            for q in snap.quotes
        ],
        "tiers": [
            {"tier": t.tier.value, "label": t.label, "count": t.count,
             "average": round(t.average_price, 2), "bar_fraction": round(t.bar_fraction, 4)}
            for t in snap.tiers
        ],
        "tier_weights": snap.tier_weights,
        "distribution": {
            "count": snap.distribution.count,
            "min": round(snap.distribution.min, 2),
            "max": round(snap.distribution.max, 2),
            "median": round(snap.distribution.median, 2),
            "mean": round(snap.distribution.mean, 2),
            "order": [q.name for q in snap.distribution.quotes],
        },
        "selected_provider": snap.selected_provider,
        "provider_history": (
            None if snap.provider_history is None
            else [{"date": p.date.isoformat(), "label": p.label, "price": round(p.price, 2)}
                  for p in snap.provider_history]
        ),
    }


def _signed(v: float) -> str:
    return f"{'+' if v >= 0 else ''}{v:.2f}%"


def format_dashboard_report(snap: DashboardSnapshot, now: Optional[datetime] = None) -> str:
    """Pretty text report of a snapshot."""
    m = snap.metrics
    report: List[str] = []
    report.append("╔══════════════════════════════════════════════════════════════╗")
    report.append("║     ICX H100 PRICE INDEX                                     ║")
    report.append("╚══════════════════════════════════════════════════════════════╝")
    report.append(staleness_label(snap.status, now))
    report.append("")

    if m.latest is None:
        report.append("INDEX:  N/A")
    else:
        report.append(f"INDEX:     ${m.latest.index_value:.2f} per GPU per hour  ({_signed(m.day_change_pct)} vs yesterday)")
        base = f" from ${m.week_base.index_value:.2f}" if m.week_base else ""
        report.append(f"7-DAY:     {_signed(m.week_change_pct)}{base}")
        report.append(f"LOW:       ${m.latest.low_price:.2f}")
        report.append(f"SPREAD:    ${m.latest.spread:.2f} (high ${m.latest.high_price:.2f})")
        if m.alert_triggered:
            report.append("ALERT:     daily move exceeds threshold")
    report.append("")

    if snap.quotes:
        direction = "desc" if snap.sort.descending else "asc"
        report.append(f"PROVIDERS (by {snap.sort.key.value}, {direction}):")
        report.append("-" * 64)
        for q in snap.quotes:
            ch = quote_change_pct(q)
            ch_txt = _signed(ch) if q.current_price != q.previous_price else "-"
            report.append(f"{q.name:18} ${q.current_price:6.2f}/hr  {ch_txt:>9}  {q.tier.value:12} {q.region}")
        report.append("")

    if snap.tiers:
        report.append("AVG BY TIER:")
        report.append("-" * 64)
        for t in snap.tiers:
            report.append(f"{t.label + f' ({t.count})':18} ${t.average_price:.2f}")
        report.append("")

    movers = top_movers(snap.quotes)
    if movers:
        report.append("TOP MOVERS (24h):")
        report.append("-" * 64)
        for q in movers:
            report.append(f"{q.name:18} {_signed(quote_change_pct(q))}")
        report.append("")

    d = snap.distribution
    if d.count:
        report.append(f"DISTRIBUTION: {d.count} providers | min ${d.min:.2f} | median ${d.median:.2f} "
                      f"| mean ${d.mean:.2f} | max ${d.max:.2f}")

    if snap.selected_provider and snap.provider_history:
        first, last = snap.provider_history[0], snap.provider_history[-1]
        report.append("")
        report.append(f"{snap.selected_provider} ({snap.range_days}d): "
                      f"${first.price:.2f} ({first.label}) -> ${last.price:.2f} ({last.label})")
    return "\n".join(report)


# ==== Adapters ================================================================

class PresentationAdapter:
    """Receives every snapshot the coordinator produces."""

    def publish(self, snapshot: DashboardSnapshot) -> None:
        raise NotImplementedError


class ConsoleReportAdapter(PresentationAdapter):

    def __init__(self, skip_refreshing: bool = True):
        self.skip_refreshing = skip_refreshing

    def publish(self, snapshot: DashboardSnapshot) -> None:
        if self.skip_refreshing and snapshot.status.is_refreshing:
            return
        print(format_dashboard_report(snapshot))


class JsonFileAdapter(PresentationAdapter):
    """Writes the latest view model to `out_path` (pretty JSON)."""

    def __init__(self, out_path: str = "icx/icx_dashboard.json"):
        self.out_path = Path(out_path)

    def publish(self, snapshot: DashboardSnapshot) -> None:
        self.out_path.parent.mkdir(parents=True, exist_ok=True)
        self.out_path.write_text(json.dumps(to_view_model(snapshot), indent=2, default=str))
