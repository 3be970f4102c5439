"""
Run statistics and audit logging.

PhaseStats collects counters for one phase; RunReport aggregates the phases
of one invocation, prints the final report and persists exactly one
woo_import_log row.
"""

import json
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from .database import db_placeholder, is_postgres, safe_rollback
from .models import ImportType, RunStatus


# Keep the audit row small
MAX_LOGGED_ERRORS = 50

# Errors printed per phase in the console report
MAX_PRINTED_ERRORS = 5


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class PhaseStats:
    """Counters for one import phase (customers, orders or line_items)."""
    phase: str
    found: int = 0
    imported: int = 0
    updated: int = 0
    skipped: int = 0
    no_order: int = 0
    errors: List[Dict[str, Any]] = field(default_factory=list)
    fatal_error: Optional[str] = None

    @property
    def processed(self) -> int:
        return self.imported + self.updated + self.skipped + self.no_order + len(self.errors)

    def record_imported(self):
        self.imported += 1

    def record_updated(self):
        self.updated += 1

    def record_skipped(self):
        self.skipped += 1

    def record_no_order(self):
        self.no_order += 1

    def record_error(self, key_name: str, key_value: Any, message: str):
        """Record a per-record failure with the natural key needed to retry it by hand."""
        self.errors.append({
            'phase': self.phase,
            key_name: key_value,
            'error': message,
        })

    def record_fatal(self, message: str):
        """Record the failure that aborted the phase."""
        self.fatal_error = message
        self.errors.append({'phase': self.phase, 'error': message})

    def progress_line(self) -> str:
        line = f"   Progress: {self.processed}/{self.found} ({self.imported} new"
        if self.updated:
            line += f", {self.updated} updated"
        line += f", {self.skipped} skipped"
        if self.no_order:
            line += f", {self.no_order} no order"
        return line + ")"


class RunReport:
    """
    Aggregate of all phases run by one invocation.
    Collects phase stats during the run, then prints a report and persists the audit row.
    """

    def __init__(self, import_type: ImportType, since: Optional[datetime] = None):
        self.import_type = import_type
        self.since = since
        self.started_at = utc_now()
        self.completed_at: Optional[datetime] = None
        self.phases: Dict[str, PhaseStats] = {}
        self.status = RunStatus.RUNNING

        # Set after persisting to woo_import_log
        self.log_id: Optional[Any] = None

    def add_phase(self, stats: PhaseStats):
        self.phases[stats.phase] = stats

    def phase(self, name: str) -> Optional[PhaseStats]:
        return self.phases.get(name)

    def finish(self, failed: bool = False):
        self.completed_at = utc_now()
        self.status = RunStatus.FAILED if failed else RunStatus.COMPLETED

    def _count(self, phase: str, counter: str) -> int:
        stats = self.phases.get(phase)
        return getattr(stats, counter) if stats else 0

    def all_errors(self) -> List[Dict[str, Any]]:
        """Errors of every phase, in phase order."""
        errors: List[Dict[str, Any]] = []
        for stats in self.phases.values():
            errors.extend(stats.errors)
        return errors

    def logged_errors(self) -> List[Dict[str, Any]]:
        return self.all_errors()[:MAX_LOGGED_ERRORS]

    def notes(self) -> str:
        """Counters without a dedicated woo_import_log column."""
        parts = []
        if 'customers' in self.phases:
            parts.append(f"customers skipped: {self._count('customers', 'skipped')}")
        if 'line_items' in self.phases:
            parts.append(f"line items skipped: {self._count('line_items', 'skipped')}")
            parts.append(f"line items without order: {self._count('line_items', 'no_order')}")
        total_errors = len(self.all_errors())
        if total_errors > MAX_LOGGED_ERRORS:
            parts.append(f"errors: {total_errors} ({MAX_LOGGED_ERRORS} stored)")
        return "; ".join(parts)

    def to_log_row(self) -> Dict[str, Any]:
        """Column values for woo_import_log."""
        return {
            'import_type': self.import_type.value,
            'status': self.status.value,
            'started_at': self.started_at,
            'completed_at': self.completed_at or utc_now(),
            'customers_imported': self._count('customers', 'imported'),
            'customers_updated': self._count('customers', 'updated'),
            'orders_imported': self._count('orders', 'imported'),
            'orders_skipped': self._count('orders', 'skipped'),
            'line_items_imported': self._count('line_items', 'imported'),
            'errors': json.dumps(self.logged_errors(), default=str),
            'notes': self.notes() or None,
        }

    def print_report(self):
        """Print the final import statistics report to console."""
        completed_at = self.completed_at or utc_now()
        duration = completed_at - self.started_at
        duration_str = str(timedelta(seconds=int(duration.total_seconds())))

        print("\n" + "=" * 70)
        print("IMPORT STATISTICS REPORT")
        print("=" * 70)
        print(f"\nImport Type: {self.import_type.value}")
        print(f"Status: {self.status.value}")
        print(f"Run Duration: {duration_str}")
        if self.since:
            print(f"Since: {self.since.date().isoformat()}")

        for stats in self.phases.values():
            print(f"\n--- {stats.phase.upper().replace('_', ' ')} ---")
            print(f"  Found:         {stats.found:>6}")
            print(f"  Imported:      {stats.imported:>6}")
            if stats.phase == 'customers':
                print(f"  Updated:       {stats.updated:>6}")
            print(f"  Skipped:       {stats.skipped:>6}")
            if stats.phase == 'line_items':
                print(f"  No order:      {stats.no_order:>6}")
            print(f"  Errors:        {len(stats.errors):>6}")

            if stats.fatal_error:
                print(f"  FAILED: {stats.fatal_error}")
            for error in stats.errors[:MAX_PRINTED_ERRORS]:
                key = ", ".join(f"{k}={v}" for k, v in error.items() if k not in ('phase', 'error'))
                print(f"    - {key or stats.phase}: {error['error']}")
            if len(stats.errors) > MAX_PRINTED_ERRORS:
                print(f"    ... ({len(stats.errors)} total)")

        print("\n" + "=" * 70)


# =============================================================================
# Import Run Persistence
# =============================================================================

LOG_COLUMNS = (
    'import_type', 'status', 'started_at', 'completed_at',
    'customers_imported', 'customers_updated',
    'orders_imported', 'orders_skipped', 'line_items_imported',
    'errors', 'notes',
)


def save_import_run(conn, report: RunReport) -> Optional[Any]:
    """
    Save the run summary to woo_import_log. Returns the new row id.

    Best-effort: any failure is printed and swallowed so it never changes the
    outcome of the import itself.
    """
    row = report.to_log_row()
    ph = db_placeholder(conn)
    columns = ", ".join(LOG_COLUMNS)
    values = ", ".join([ph] * len(LOG_COLUMNS))
    params = tuple(row[c] for c in LOG_COLUMNS)

    try:
        cursor = conn.cursor()
        try:
            if is_postgres(conn):
                cursor.execute(
                    f'INSERT INTO woo_import_log ({columns}) VALUES ({values}) RETURNING id',
                    params
                )
                log_id = cursor.fetchone()[0]
            else:
                cursor.execute(f'INSERT INTO woo_import_log ({columns}) VALUES ({values})', params)
                log_id = cursor.lastrowid
            conn.commit()
        finally:
            cursor.close()
    except Exception as e:
        safe_rollback(conn)
        print(f"  Note: Could not save import log: {e}", flush=True)
        return None

    report.log_id = log_id
    print("\n📝 Import logged to database", flush=True)
    return log_id
