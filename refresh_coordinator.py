#!/usr/bin/env python3
"""
ICX Refresh Coordinator
=======================

Owns the live/fallback state of the dashboard and keeps it fresh.

Cycle (refresh):
  1. fetch index history + latest prices concurrently
  2. both OK   -> normalize against the previous-price baseline,
                  capture the new baseline, mode = live
     any error -> drop partial results, serve demo data for the whole
                  cycle, baseline untouched, mode = fallback
  3. publish a fresh DashboardSnapshot to every adapter

Drill-down (select_provider) uses the same gateway/normalizer path, runs
independently of the refresh cycle and only ever falls back for that one
provider.

Every issued request gets a sequence number; a completion is applied only if
it is newer than the last one applied for the same target, so a slow request
can never overwrite a fresher result.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
import os
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set, Tuple

import numpy as np

from api_gateway import ApiGateway, GatewayError
from demo_data import demo_index_history, demo_latest_prices, demo_provider_history
from metrics_calculator import (
    TIER_INDEX_WEIGHTS, index_metrics, price_distribution, sort_quotes, tier_aggregates,
)
from models import (
    DashboardSnapshot, IndexPoint, ProviderHistoryPoint, ProviderQuote,
    SortKey, SortState, SourceMode, SourceStatus,
)
from normalizers import baseline_from, normalize_history, normalize_provider_history, normalize_quotes

logger = logging.getLogger(__name__)

# ──────────────────────────────────────────────────────────────────────────────
REFRESH_INTERVAL_SECONDS = float(os.getenv("ICX_REFRESH_SECONDS", "300"))
DEFAULT_RANGE_DAYS = int(os.getenv("ICX_DEFAULT_RANGE_DAYS", "30"))

REFRESH = "refresh"
PROVIDER = "provider"

Sleep = Callable[[float], Awaitable[Any]]


# ──────────────────────────────────────────────────────────────────────────────
class RefreshScheduler:
    """
    Periodic timer: sleep(interval) then fire callback(), forever.
    At most one timer is active; start() replaces any running one.
    Each tick runs as its own task, so stopping or restarting the timer
    never cancels a callback that is already in flight.
    Inject `sleep` to drive it from a fake clock.
    """

    def __init__(self, sleep: Sleep = asyncio.sleep):
        self._sleep = sleep
        self._task: Optional[asyncio.Task] = None
        self._inflight: Set[asyncio.Task] = set()
        self.interval_seconds: Optional[float] = None
        self.ticks = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self, interval_seconds: float, callback: Callable[[], Awaitable[Any]]) -> None:
        self.stop()
        self.interval_seconds = interval_seconds
        self._task = asyncio.get_running_loop().create_task(self._run(interval_seconds, callback))

    def stop(self) -> Optional[asyncio.Task]:
        """Cancel the timer; returns the cancelled task (await it via aclose())."""
        task, self._task = self._task, None
        if task is not None:
            task.cancel()
        return task

    async def aclose(self) -> None:
        """Stop the timer, wait for it to unwind and for in-flight ticks to finish."""
        task = self.stop()
        pending = list(self._inflight)
        if task is not None:
            pending.append(task)
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

    async def _run(self, interval_seconds: float, callback: Callable[[], Awaitable[Any]]) -> None:
        loop = asyncio.get_running_loop()
        while True:
            await self._sleep(interval_seconds)
            self.ticks += 1
            tick = loop.create_task(callback(), name=f"scheduled-refresh-{self.ticks}")
            self._inflight.add(tick)
            tick.add_done_callback(self._tick_done)

    def _tick_done(self, tick: asyncio.Task) -> None:
        self._inflight.discard(tick)
        if tick.cancelled():
            return
        exc = tick.exception()
        if exc is not None:
            # timer keeps going; next tick retries
            logger.error("%s failed", tick.get_name(), exc_info=exc)


# ──────────────────────────────────────────────────────────────────────────────
class RefreshCoordinator:

    def __init__(
        self,
        gateway: Optional[ApiGateway] = None,
        range_days: int = DEFAULT_RANGE_DAYS,
        refresh_interval: float = REFRESH_INTERVAL_SECONDS,
        scheduler: Optional[RefreshScheduler] = None,
        clock: Optional[Callable[[], datetime]] = None,
        rng: Optional[np.random.Generator] = None,
    ):
        self.gateway = gateway or ApiGateway()
        self.range_days = int(range_days)
        self.refresh_interval = refresh_interval
        self.scheduler = scheduler or RefreshScheduler()
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._rng = rng

        self._status = SourceStatus()
        self._baseline: Dict[str, float] = {}
        self._history: Tuple[IndexPoint, ...] = ()
        self._quotes: Tuple[ProviderQuote, ...] = ()
        self._provider_history: Optional[Tuple[ProviderHistoryPoint, ...]] = None
        self._selected: Optional[str] = None
        self._sort = SortState()

        self._seq = itertools.count(1)
        self._applied: Dict[str, int] = {REFRESH: 0, PROVIDER: 0}
        self._visible_refreshes = 0
        self._adapters: List[Any] = []

    # ------------------------------------------------------------ read side
    @property
    def status(self) -> SourceStatus:
        return self._status

    @property
    def baseline(self) -> Dict[str, float]:
        return dict(self._baseline)

    @property
    def selected_provider(self) -> Optional[str]:
        return self._selected

    @property
    def sort_state(self) -> SortState:
        return self._sort

    def snapshot(self) -> DashboardSnapshot:
        history = self._history[-self.range_days:] if self.range_days > 0 else self._history
        return DashboardSnapshot(
            history=history,
            quotes=sort_quotes(self._quotes, self._sort),
            provider_history=self._provider_history,
            selected_provider=self._selected,
            range_days=self.range_days,
            sort=self._sort,
            status=self._status,
            metrics=index_metrics(history),
            tiers=tier_aggregates(self._quotes),
            distribution=price_distribution(self._quotes),
            tier_weights=dict(TIER_INDEX_WEIGHTS),
        )

    def add_adapter(self, adapter: Any) -> None:
        """`adapter.publish(snapshot)` is called after every state change."""
        self._adapters.append(adapter)

    def _publish(self) -> None:
        if not self._adapters:
            return
        snap = self.snapshot()
        for adapter in self._adapters:
            try:
                adapter.publish(snap)
            except Exception:
                logger.exception("presentation adapter %r failed", adapter)

    # ------------------------------------------------------------ sequencing
    def _issue(self) -> int:
        return next(self._seq)

    def _accept(self, target: str, seq: int) -> bool:
        if seq <= self._applied[target]:
            logger.debug("discarding stale %s result #%d (applied #%d)", target, seq, self._applied[target])
            return False
        self._applied[target] = seq
        return True

    async def _fetch(self, fn: Callable[..., Any], *args: Any) -> Any:
        return await asyncio.to_thread(fn, *args)

    def _today(self):
        return self._clock().date()

    # ------------------------------------------------------------ refresh
    async def refresh(self, range_days: Optional[int] = None, silent: bool = False) -> None:
        days = int(range_days or self.range_days)
        seq = self._issue()
        if not silent:
            self._visible_refreshes += 1
            self._status = replace(self._status, is_refreshing=True)
            self._publish()
        try:
            results = await asyncio.gather(
                self._fetch(self.gateway.fetch_index_history, days),
                self._fetch(self.gateway.fetch_latest_prices),
                return_exceptions=True,
            )
            errors = [r for r in results if isinstance(r, BaseException)]
            for err in errors:
                if not isinstance(err, GatewayError):
                    raise err

            if not self._accept(REFRESH, seq):
                return
            if errors:
                logger.warning("refresh #%d failed (%s); serving demo data", seq, errors[0])
                self._apply_fallback(days)
            else:
                self._apply_live(results[0], results[1])
        finally:
            if not silent:
                self._visible_refreshes -= 1
            # stays set while another visible refresh is still running
            self._status = replace(self._status, is_refreshing=self._visible_refreshes > 0)
            self._publish()

    def _apply_live(self, history_raw: Any, quotes_raw: Any) -> None:
        self._history = normalize_history(history_raw)
        self._quotes = normalize_quotes(quotes_raw, self._baseline)
        # baseline moves only after a fully successful cycle
        self._baseline = baseline_from(self._quotes)
        self._set_mode(SourceMode.LIVE)

    def _apply_fallback(self, days: int) -> None:
        self._history = normalize_history(demo_index_history(days, today=self._today(), rng=self._rng))
        self._quotes = normalize_quotes(demo_latest_prices(), {})
        self._set_mode(SourceMode.FALLBACK)

    def _set_mode(self, mode: SourceMode) -> None:
        if mode != self._status.mode:
            logger.info("data source: %s -> %s", self._status.mode.value, mode.value)
        self._status = replace(self._status, mode=mode, last_refresh=self._clock())

    # ------------------------------------------------------------ drill-down
    async def select_provider(self, name: Optional[str]) -> None:
        if name != self._selected:
            self._provider_history = None
        self._selected = name
        if name is None:
            self._publish()
            return
        await self._load_provider_history(name, self.range_days)

    async def _load_provider_history(self, name: str, days: int) -> None:
        seq = self._issue()
        try:
            raw = await self._fetch(self.gateway.fetch_provider_history, name, days)
            series = normalize_provider_history(raw)
        except GatewayError as e:
            logger.warning("history for %s unavailable (%s); using demo series", name, e)
            series = normalize_provider_history(
                demo_provider_history(name, days, today=self._today(), rng=self._rng)
            )

        if name != self._selected:
            logger.debug("dropping history for %s; selection is now %r", name, self._selected)
            return
        if not self._accept(PROVIDER, seq):
            return
        self._provider_history = series
        self._publish()

    # ------------------------------------------------------------ view state
    async def set_range(self, days: int) -> None:
        self.range_days = int(days)
        if self.scheduler.running:
            self._start_timer()
        jobs = [self.refresh(self.range_days, silent=False)]
        if self._selected is not None:
            jobs.append(self._load_provider_history(self._selected, self.range_days))
        await asyncio.gather(*jobs)

    def set_sort(self, key: SortKey | str) -> SortState:
        self._sort = self._sort.toggle(key)
        self._publish()
        return self._sort

    # ------------------------------------------------------------ lifecycle
    async def start(self) -> None:
        """Initial (visible) refresh, then silent refreshes on the fixed interval."""
        await self.refresh(silent=False)
        self._start_timer()

    def stop(self) -> None:
        self.scheduler.stop()

    async def aclose(self) -> None:
        """stop() that also waits for the timer and any scheduled refresh in flight."""
        await self.scheduler.aclose()

    def _start_timer(self) -> None:
        self.scheduler.start(self.refresh_interval, self._scheduled_refresh)

    async def _scheduled_refresh(self) -> None:
        await self.refresh(silent=True)
