"""
WooCommerce import routes.

Endpoints for import history, dashboard statistics, and triggering the
woo_import.py job as a background process.
"""

import subprocess
import sys
from datetime import date, datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, HTTPException, Query
from pydantic import BaseModel

from ..services.database import db_pool


router = APIRouter(prefix="/api/imports", tags=["imports"])

# Backend directory path
BACKEND_DIR = Path(__file__).parent.parent.parent
IMPORT_SCRIPT = "woo_import.py"
LOG_DIR = BACKEND_DIR / "output"

IMPORT_TYPES = ("customers", "orders", "line_items", "full")
RUN_STATUSES = ("running", "completed", "failed")

# CLI command for each import type
IMPORT_COMMANDS = {
    "customers": "customers",
    "orders": "orders",
    "line_items": "lineitems",
    "full": "full",
}

# Import types that accept a since date
INCREMENTAL_IMPORT_TYPES = ("customers", "orders")

# The import launched by this API, if any: {"process", "pid", "import_type", "log_file"}
running_import: Dict[str, Any] = {}


class ImportRun(BaseModel):
    """One woo_import_log row."""
    id: str
    import_type: str
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    status: Optional[str] = None
    customers_imported: Optional[int] = None
    customers_updated: Optional[int] = None
    orders_imported: Optional[int] = None
    orders_skipped: Optional[int] = None
    line_items_imported: Optional[int] = None
    errors: Optional[List[Dict[str, Any]]] = None
    imported_by: Optional[str] = None
    notes: Optional[str] = None
    created_at: Optional[datetime] = None


class ImportRunListResponse(BaseModel):
    """Response for list of import runs."""
    runs: List[ImportRun]
    total: int
    limit: int
    offset: int


class ImportStatsResponse(BaseModel):
    """Dashboard aggregates over woo_import_log and the imported tables."""
    total_customers_imported: int
    total_orders_imported: int
    total_line_items_imported: int
    last_import_date: Optional[datetime] = None
    last_import_type: Optional[str] = None
    last_import_status: Optional[str] = None
    running_imports: int
    customers_total: int
    customers_with_woo_id: int
    legacy_orders: int
    legacy_order_items: int


class RunImportRequest(BaseModel):
    """Request body for triggering an import."""
    import_type: str
    since: Optional[date] = None


class RunImportResponse(BaseModel):
    message: str
    pid: int
    import_type: str


class ImportStatusResponse(BaseModel):
    is_running: bool
    pid: Optional[int] = None
    import_type: Optional[str] = None
    log_file: Optional[str] = None


def row_to_import_run(row: Dict[str, Any]) -> ImportRun:
    """Convert a woo_import_log row to ImportRun (UUIDs as strings)."""
    result = dict(row)
    for key in ("id", "imported_by"):
        if result.get(key) is not None:
            result[key] = str(result[key])
    return ImportRun(**result)


def is_process_running(process: subprocess.Popen) -> bool:
    """Check if a launched process is still running (reaps it once it has exited)."""
    return process.poll() is None


def clean_stale_process() -> None:
    """Forget the tracked import process once it has exited."""
    if running_import and not is_process_running(running_import["process"]):
        running_import.clear()


@router.get("/", response_model=ImportRunListResponse)
def list_imports(
    status: str = Query("all", description="Filter by status, or 'all'"),
    import_type: str = Query("all", description="Filter by import type, or 'all'"),
    limit: int = Query(20, ge=1, le=100, description="Number of results to return"),
    offset: int = Query(0, ge=0, description="Number of results to skip"),
):
    """
    List import runs, newest first.

    Returns:
        List of import runs with pagination info
    """
    conditions = []
    params: List[Any] = []

    if status != "all":
        conditions.append("status = %s")
        params.append(status)
    if import_type != "all":
        conditions.append("import_type = %s")
        params.append(import_type)

    where_clause = f"WHERE {' AND '.join(conditions)}" if conditions else ""

    with db_pool.get_cursor() as cursor:
        cursor.execute(f"SELECT COUNT(*) as total FROM woo_import_log {where_clause}", params)
        total = cursor.fetchone()["total"]

        cursor.execute(
            f"""
            SELECT *
            FROM woo_import_log
            {where_clause}
            ORDER BY created_at DESC
            LIMIT %s OFFSET %s
            """,
            params + [limit, offset],
        )
        rows = cursor.fetchall()

    return ImportRunListResponse(
        runs=[row_to_import_run(row) for row in rows],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.get("/stats", response_model=ImportStatsResponse)
def get_import_stats():
    """
    Aggregate statistics for the import dashboard.

    Customer totals count both new and linked customers of completed runs.
    Tables that do not exist yet count as zero.
    """
    with db_pool.get_cursor() as cursor:
        cursor.execute("""
            SELECT
                COALESCE(SUM(COALESCE(customers_imported, 0) + COALESCE(customers_updated, 0)), 0) AS customers,
                COALESCE(SUM(COALESCE(orders_imported, 0)), 0) AS orders,
                COALESCE(SUM(COALESCE(line_items_imported, 0)), 0) AS line_items
            FROM woo_import_log
            WHERE status = 'completed'
        """)
        totals = cursor.fetchone()

        cursor.execute("""
            SELECT import_type, status, COALESCE(completed_at, started_at) AS last_date
            FROM woo_import_log
            ORDER BY created_at DESC
            LIMIT 1
        """)
        last = cursor.fetchone()

        cursor.execute("SELECT COUNT(*) AS count FROM woo_import_log WHERE status = 'running'")
        running = cursor.fetchone()["count"]

    clean_stale_process()
    if running_import:
        running += 1

    return ImportStatsResponse(
        total_customers_imported=int(totals["customers"]),
        total_orders_imported=int(totals["orders"]),
        total_line_items_imported=int(totals["line_items"]),
        last_import_date=last["last_date"] if last else None,
        last_import_type=last["import_type"] if last else None,
        last_import_status=last["status"] if last else None,
        running_imports=running,
        customers_total=db_pool.count_rows("SELECT COUNT(*) AS count FROM customers"),
        customers_with_woo_id=db_pool.count_rows(
            "SELECT COUNT(*) AS count FROM customers WHERE woo_customer_id IS NOT NULL"
        ),
        legacy_orders=db_pool.count_rows("SELECT COUNT(*) AS count FROM legacy_orders"),
        legacy_order_items=db_pool.count_rows("SELECT COUNT(*) AS count FROM legacy_order_items"),
    )


@router.get("/status", response_model=ImportStatusResponse)
def get_import_status():
    """Check whether an import launched from this API is still running."""
    clean_stale_process()
    if not running_import:
        return ImportStatusResponse(is_running=False)

    return ImportStatusResponse(
        is_running=True,
        pid=running_import["pid"],
        import_type=running_import["import_type"],
        log_file=running_import["log_file"],
    )


@router.post("/run", response_model=RunImportResponse)
def run_import(request: RunImportRequest):
    """
    Start woo_import.py in the background.

    Raises:
        HTTPException: 400 for an unknown type or a since date on a
            non-incremental type, 409 if an import is already running
    """
    if request.import_type not in IMPORT_TYPES:
        raise HTTPException(
            status_code=400,
            detail=f"Unknown import type '{request.import_type}'. Valid types: {list(IMPORT_TYPES)}"
        )
    if request.since and request.import_type not in INCREMENTAL_IMPORT_TYPES:
        raise HTTPException(
            status_code=400,
            detail=f"'{request.import_type}' imports always run over all records; since is not allowed"
        )

    clean_stale_process()
    if running_import:
        raise HTTPException(
            status_code=409,
            detail=f"A {running_import['import_type']} import is already running (PID: {running_import['pid']})"
        )

    script_path = BACKEND_DIR / IMPORT_SCRIPT
    if not script_path.exists():
        raise HTTPException(
            status_code=500,
            detail=f"Import script not found: {script_path}"
        )

    cmd = [sys.executable, str(script_path), IMPORT_COMMANDS[request.import_type]]
    if request.since:
        cmd.append(request.since.isoformat())

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    log_file = LOG_DIR / f"woo_import_{request.import_type}_{timestamp}.log"
    LOG_DIR.mkdir(parents=True, exist_ok=True)

    try:
        with open(log_file, "w") as log_handle:
            process = subprocess.Popen(
                cmd,
                cwd=str(BACKEND_DIR),
                stdout=log_handle,
                stderr=subprocess.STDOUT,
                start_new_session=True,
            )
    except Exception as e:
        raise HTTPException(
            status_code=500,
            detail=f"Failed to start import: {str(e)}"
        )

    running_import.update({
        "process": process,
        "pid": process.pid,
        "import_type": request.import_type,
        "log_file": str(log_file),
    })

    return RunImportResponse(
        message=f"Started {request.import_type} import (log: {log_file})",
        pid=process.pid,
        import_type=request.import_type,
    )


@router.get("/{import_id}", response_model=ImportRun)
def get_import(import_id: str):
    """
    Get one import run.

    Raises:
        HTTPException: If the run is not found
    """
    with db_pool.get_cursor() as cursor:
        cursor.execute("SELECT * FROM woo_import_log WHERE id::text = %s", (import_id,))
        row = cursor.fetchone()

    if not row:
        raise HTTPException(
            status_code=404,
            detail=f"Import run {import_id} not found"
        )

    return row_to_import_run(row)
