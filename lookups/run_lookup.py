#!/usr/bin/env python3
"""
Lookup Runner
=============

CLI script to refresh the configured lookups.

Usage:
    lookup-refresh test                          # Test connections and watermarks
    lookup-refresh refresh                       # Refresh every lookup once
    lookup-refresh refresh --rounds 0 --interval 30   # Keep polling until Ctrl+C
    lookup-refresh refresh --export exports/     # Also write each new cache to disk
"""

import argparse
import json
import logging
import os
import signal
import sys
import threading
import time
from datetime import datetime
from typing import Dict, List, Optional

from observability.logging.structured_logger import setup_logging
from observability.metrics.collector import LookupMetrics

from .cache import CacheScheduler, LookupEntry
from .config import load_namespaces, load_settings
from .connectors.provider import ConnectorCache
from .export import write_cache
from .generator import SQLCacheGenerator
from .watermark import latest_update

logger = logging.getLogger(__name__)


def build_entries(settings: Dict) -> List[LookupEntry]:
    """Create one entry per configured lookup."""
    return [LookupEntry(name, namespace) for name, namespace in load_namespaces(settings)]


def refresh_all(
    entries: List[LookupEntry],
    generator: SQLCacheGenerator,
    scheduler: CacheScheduler,
    export_dir: Optional[str] = None,
    file_format: str = "csv"
) -> List[Dict]:
    """
    Refresh every entry once and publish the new generations.

    A failing lookup does not stop the others; its error is recorded in the
    result.

    Returns:
        List of result dictionaries
    """
    results = []
    for entry in entries:
        result = {
            "lookup": entry.name,
            "table": entry.namespace.table,
            "status": "pending",
            "previous_version": scheduler.current_version(entry),
            "new_version": None,
            "entries": None,
            "start_time": datetime.now().isoformat(),
            "end_time": None,
            "error": None
        }

        try:
            cache = scheduler.refresh(entry, generator.generate_cache)
            if cache is None:
                result["status"] = "unchanged"
                result["new_version"] = result["previous_version"]
            else:
                result["status"] = "updated"
                result["new_version"] = cache.version
                if export_dir:
                    result["export_path"] = write_cache(cache, export_dir, file_format)
            current = scheduler.current(entry)
            result["entries"] = len(current.get_cache()) if current is not None else 0

        except Exception as e:
            logger.debug(f"Refresh failed for {entry.name}", exc_info=True)
            result["status"] = "failed"
            result["error"] = str(e)

        result["end_time"] = datetime.now().isoformat()
        results.append(result)

    return results


def test_connections(settings: Dict) -> bool:
    """Test every lookup's connection and print its watermark."""
    print("=" * 60)
    print("TESTING CONNECTIONS")
    print("=" * 60)

    connectors = ConnectorCache()
    success = True
    try:
        for entry in build_entries(settings):
            try:
                connector = connectors.ensure_connector(entry, entry.namespace)
                connector.test_connection()
                rows = connector.get_row_count(entry.namespace.table)
                watermark = latest_update(entry, entry.namespace, connectors)
                print(f"\n✓ {entry.name} ({connector!r})")
                print(f"    Table: {entry.namespace.table} ({rows:,} rows)")
                print(f"    Watermark: {watermark if watermark is not None else 'n/a (no tsColumn)'}")
            except Exception as e:
                print(f"\n✗ {entry.name}: {e}")
                success = False
    finally:
        connectors.close_all()

    return success


def print_results(results: List[Dict]):
    print("\n" + "=" * 60)
    print("RESULTS SUMMARY")
    print("=" * 60)
    for result in results:
        status_icon = "✗" if result["status"] == "failed" else "✓"
        print(f"\n{status_icon} {result['lookup']} <- {result['table']}")
        print(f"    Status: {result['status']}")
        print(f"    Previous version: {result['previous_version']}")
        print(f"    New version: {result['new_version']}")
        if result.get("entries") is not None:
            print(f"    Entries: {result['entries']:,}")
        if result.get("export_path"):
            print(f"    Exported to: {result['export_path']}")
        if result.get("error"):
            print(f"    Error: {result['error']}")


def due_entries(
    entries: List[LookupEntry],
    last_refreshed: Dict[LookupEntry, float],
    now: float
) -> List[LookupEntry]:
    """
    Select the entries whose poll period has elapsed.

    An entry that was never refreshed is always due. A poll period of 0
    makes the entry due every round.

    Args:
        entries: Configured entries
        last_refreshed: Monotonic time of each entry's last refresh attempt
        now: Current monotonic time in seconds
    """
    due = []
    for entry in entries:
        previous = last_refreshed.get(entry)
        if previous is None or (now - previous) * 1000 >= entry.namespace.poll_period_ms:
            due.append(entry)
    return due


def run_refresh(
    settings: Dict,
    rounds: int = 1,
    interval: float = 10,
    export_dir: Optional[str] = None,
    results_path: str = "logs/refresh_results.json"
) -> bool:
    """
    Refresh lookups ``rounds`` times, ``interval`` seconds apart.

    Each round only refreshes the lookups whose ``pollPeriod`` has elapsed.
    ``rounds=0`` keeps polling until SIGINT/SIGTERM.
    """
    print("=" * 60)
    print("LOOKUP REFRESH")
    print("=" * 60)

    runtime = settings.get("settings", {})
    metrics = LookupMetrics(pushgateway_url=runtime.get("metrics", {}).get("pushgateway_url"))
    file_format = runtime.get("export", {}).get("file_format", "csv")
    generator = SQLCacheGenerator(metrics=metrics)
    scheduler = CacheScheduler()
    entries = build_entries(settings)

    stop = threading.Event()

    def _stop(signum, frame):
        logger.info(f"Received signal {signum}, stopping after this round...")
        stop.set()

    previous_handlers = {sig: signal.signal(sig, _stop) for sig in (signal.SIGINT, signal.SIGTERM)}

    all_results = []
    last_refreshed = {}
    completed = 0
    try:
        while not stop.is_set():
            now = time.monotonic()
            due = due_entries(entries, last_refreshed, now)
            for entry in due:
                last_refreshed[entry] = now
            if due:
                results = refresh_all(due, generator, scheduler, export_dir, file_format)
                print_results(results)
                all_results.extend(results)
                if metrics.pushgateway_url:
                    metrics.push_to_prometheus()
            else:
                logger.debug("No lookup due for refresh this round")
            completed += 1
            if rounds and completed >= rounds:
                break
            stop.wait(interval)
    finally:
        for entry in entries:
            scheduler.remove(entry)
        generator.connectors.close_all()
        for sig, handler in previous_handlers.items():
            signal.signal(sig, handler)

    os.makedirs(os.path.dirname(results_path) or ".", exist_ok=True)
    with open(results_path, "w") as f:
        json.dump(all_results, f, indent=2, default=str)
    print(f"\nResults saved to: {results_path}")

    return all(r["status"] != "failed" for r in all_results)


def main():
    parser = argparse.ArgumentParser(description="SQL Lookup Cache Refresh")
    parser.add_argument(
        "command",
        choices=["test", "refresh"],
        help="Command to run"
    )
    parser.add_argument(
        "--settings",
        type=str,
        default=None,
        help="Path to lookup settings JSON (defaults to the bundled configs/lookup_settings.json)"
    )
    parser.add_argument(
        "--rounds",
        type=int,
        default=1,
        help="Number of refresh rounds, 0 to poll until interrupted"
    )
    parser.add_argument(
        "--interval",
        type=float,
        default=10,
        help="Seconds between polling rounds; each lookup is refreshed once its pollPeriod has elapsed"
    )
    parser.add_argument(
        "--export",
        type=str,
        default=None,
        help="Directory to write refreshed caches to"
    )

    args = parser.parse_args()

    settings = load_settings(args.settings)
    setup_logging(settings.get("settings", {}).get("logging"))

    if args.command == "test":
        success = test_connections(settings)
    else:
        success = run_refresh(settings, rounds=args.rounds, interval=args.interval, export_dir=args.export)

    sys.exit(0 if success else 1)


if __name__ == "__main__":
    main()
