#!/usr/bin/env python3
"""
WooCommerce -> Supabase Import

Copies customers, completed orders and their line items from the legacy
WooCommerce MySQL database into Supabase. Every phase is idempotent: records
already present in Supabase are skipped, so re-running is always safe.

Usage:
    python woo_import.py stats
    python woo_import.py customers [YYYY-MM-DD]
    python woo_import.py orders [YYYY-MM-DD]
    python woo_import.py lineitems
    python woo_import.py full
"""

import argparse
import sys
from datetime import datetime
from typing import List, Optional

from woo_sync.config import load_config
from woo_sync.database import close_quietly, connect_target
from woo_sync.errors import ConfigError, PhaseError, WooSyncError
from woo_sync.legacy import LegacyReader, connect_legacy
from woo_sync.models import ImportType, RunStatus
from woo_sync.overview import collect_overview
from woo_sync.reconcile import Reconciler
from woo_sync.stats import RunReport, save_import_run
from woo_sync.writer import TargetWriter


USAGE = """WooCommerce -> Supabase Import

Usage:
  python woo_import.py stats                    Show counts and pending records
  python woo_import.py customers [YYYY-MM-DD]   Import customers (optionally changed since date)
  python woo_import.py orders [YYYY-MM-DD]      Import completed orders (optionally created since date)
  python woo_import.py lineitems                Import order line items
  python woo_import.py full                     Customers, orders, then line items

Required environment: WOO_DB_HOST, WOO_DB_USER, WOO_DB_PASSWORD, WOO_DB_NAME,
WOO_TABLE_PREFIX, SUPABASE_DB_URL (optional: WOO_DB_PORT)"""

COMMANDS = {
    'customers': ImportType.CUSTOMERS,
    'orders': ImportType.ORDERS,
    'lineitems': ImportType.LINE_ITEMS,
    'line_items': ImportType.LINE_ITEMS,
    'full': ImportType.FULL,
}

PHASES = {
    ImportType.CUSTOMERS: ('customers',),
    ImportType.ORDERS: ('orders',),
    ImportType.LINE_ITEMS: ('line_items',),
    ImportType.FULL: ('customers', 'orders', 'line_items'),
}

# Only these import types take a date filter
INCREMENTAL_TYPES = (ImportType.CUSTOMERS, ImportType.ORDERS)


def parse_since(value: Optional[str]) -> Optional[datetime]:
    """Parse a YYYY-MM-DD date argument. Raises ValueError on bad input."""
    if not value:
        return None
    return datetime.strptime(value, "%Y-%m-%d")


def run_phase(reconciler: Reconciler, phase: str, since: Optional[datetime]):
    if phase == 'customers':
        return reconciler.import_customers(since)
    if phase == 'orders':
        return reconciler.import_orders(since)
    return reconciler.import_line_items()


def run_import(import_type: ImportType, since: Optional[datetime], reader: LegacyReader, conn) -> RunReport:
    """
    Run the phases of one import type in order.

    A fatal phase failure stops the run; later phases are not attempted and
    the report is marked failed.
    """
    if import_type not in INCREMENTAL_TYPES:
        since = None

    report = RunReport(import_type, since)
    reconciler = Reconciler(reader, TargetWriter(conn))

    for phase in PHASES[import_type]:
        try:
            report.add_phase(run_phase(reconciler, phase, since))
        except PhaseError as e:
            if e.stats is not None:
                report.add_phase(e.stats)
            print(f"\n❌ {e}", flush=True)
            report.finish(failed=True)
            return report

    report.finish()
    return report


def run_stats(reader: LegacyReader, conn) -> int:
    try:
        overview = collect_overview(reader, conn)
    except WooSyncError as e:
        print(f"\n❌ Could not collect stats: {e}", flush=True)
        return 1
    overview.print_report()
    return 0


def print_banner(title: str):
    print("=" * 60, flush=True)
    print(title, flush=True)
    print(f"Started at: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}", flush=True)
    print("=" * 60, flush=True)


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point. Returns the process exit code."""
    parser = argparse.ArgumentParser(
        description='WooCommerce -> Supabase Import',
        usage='%(prog)s <command> [since]',
    )
    parser.add_argument('command', nargs='?', help='stats, customers, orders, lineitems or full')
    parser.add_argument('since', nargs='?', help='Only import records changed after YYYY-MM-DD')
    args = parser.parse_args(argv)

    command = (args.command or '').lower()
    if command != 'stats' and command not in COMMANDS:
        print(USAGE)
        return 0

    import_type = COMMANDS.get(command)
    try:
        since = parse_since(args.since)
    except ValueError:
        print(f"Error: invalid date {args.since!r}, expected YYYY-MM-DD", flush=True)
        return 1

    if since and import_type is not None and import_type not in INCREMENTAL_TYPES:
        print(f"Note: '{command}' always runs over all records; ignoring {args.since}", flush=True)

    try:
        config = load_config()
    except ConfigError as e:
        print(f"Error: {e}", flush=True)
        return 1

    print_banner(f"WooCommerce Import: {command}")

    legacy_conn = None
    target_conn = None
    try:
        legacy_conn = connect_legacy(config)
        target_conn = connect_target(config.target_db_url)
        print("✓ Connected to WooCommerce and Supabase", flush=True)

        reader = LegacyReader(legacy_conn, config.table_prefix)
        if command == 'stats':
            return run_stats(reader, target_conn)

        report = run_import(import_type, since, reader, target_conn)
        report.print_report()
        save_import_run(target_conn, report)
        return 1 if report.status == RunStatus.FAILED else 0
    except WooSyncError as e:
        print(f"\n❌ {e}", flush=True)
        return 1
    finally:
        close_quietly(legacy_conn)
        close_quietly(target_conn)


if __name__ == "__main__":
    sys.exit(main())
