"""WooCommerce -> Supabase import pipeline."""

from .errors import (
    ConfigError,
    PhaseError,
    SourceReadError,
    TargetConnectionError,
    TargetReadError,
    UnknownStatusError,
    WooSyncError,
)
from .reconcile import Reconciler
from .stats import PhaseStats, RunReport, save_import_run
from .writer import TargetWriter

__all__ = [
    "ConfigError",
    "PhaseError",
    "PhaseStats",
    "Reconciler",
    "RunReport",
    "SourceReadError",
    "TargetConnectionError",
    "TargetReadError",
    "TargetWriter",
    "UnknownStatusError",
    "WooSyncError",
    "save_import_run",
]
