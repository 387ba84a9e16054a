#!/usr/bin/env python3
import os
import sys
import asyncio
import logging
import argparse

from api_gateway import API_URL, API_PREFIX, ApiGateway
from dashboard_export import ConsoleReportAdapter, JsonFileAdapter, format_dashboard_report
from models import SourceMode
from refresh_coordinator import DEFAULT_RANGE_DAYS, REFRESH_INTERVAL_SECONDS, RefreshCoordinator

RANGE_CHOICES = (7, 30, 60, 90)

logger = logging.getLogger("live_runner")


def build_coordinator(api_url: str, range_days: int, console: bool = False, json_path: str = None) -> RefreshCoordinator:
    coordinator = RefreshCoordinator(gateway=ApiGateway(base_url=api_url), range_days=range_days)
    if console:
        coordinator.add_adapter(ConsoleReportAdapter())
    if json_path:
        coordinator.add_adapter(JsonFileAdapter(json_path))
    return coordinator


async def run_once(coordinator: RefreshCoordinator, provider: str = None) -> SourceMode:
    """Single refresh (+ optional drill-down); returns the resulting source mode."""
    await coordinator.refresh(silent=False)
    if provider:
        await coordinator.select_provider(provider)
    return coordinator.status.mode


async def run_continuous(coordinator: RefreshCoordinator, provider: str = None):
    await coordinator.start()
    if provider:
        await coordinator.select_provider(provider)
    logger.info("auto-refresh every %ss", coordinator.refresh_interval)
    try:
        # scheduler task does the work; park here until cancelled
        await asyncio.Event().wait()
    finally:
        coordinator.stop()


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="ICX live price engine")
    parser.add_argument("--range", type=int, default=DEFAULT_RANGE_DAYS, choices=RANGE_CHOICES, dest="range_days")
    parser.add_argument("--provider", type=str, default=None, help="drill into one provider's history")
    parser.add_argument("--json", type=str, default=None, help="write the dashboard view model here")
    parser.add_argument("--api", type=str, default=None)
    parser.add_argument("--continuous", action="store_true")
    parser.add_argument("--strict", action="store_true", help="exit 1 if the cycle fell back to demo data")
    parser.add_argument("--quiet", action="store_true")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.WARNING if args.quiet else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=[logging.StreamHandler(sys.stderr)],
    )

    api_url = args.api or os.getenv("ICX_API_URL") or API_URL
    if not args.quiet:
        print(f"API: {api_url.rstrip('/')}{API_PREFIX}")
        print(f"RANGE_DAYS={args.range_days}")
        print(f"REFRESH_INTERVAL_SECONDS={REFRESH_INTERVAL_SECONDS:g}")

    # one-shot prints a single report at the end; continuous prints every update
    coordinator = build_coordinator(api_url, args.range_days, console=args.continuous and not args.quiet, json_path=args.json)

    if args.continuous:
        try:
            asyncio.run(run_continuous(coordinator, args.provider))
        except KeyboardInterrupt:
            print("\nstopped by user")
        return 0

    mode = asyncio.run(run_once(coordinator, args.provider))
    if not args.quiet:
        print(format_dashboard_report(coordinator.snapshot()))
    if args.strict and mode != SourceMode.LIVE:
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
