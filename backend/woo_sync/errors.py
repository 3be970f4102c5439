"""
Exception types for the WooCommerce import pipeline.

Fatal errors (config, source reads, target connectivity) abort a phase and
turn into a non-zero exit. Per-record problems never raise past the record
loop; they are collected in PhaseStats instead.
"""


class WooSyncError(Exception):
    """Base class for all pipeline errors."""


class ConfigError(WooSyncError):
    """Raised when required environment configuration is missing or invalid."""

    def __init__(self, message: str, missing=None):
        super().__init__(message)
        self.missing = list(missing or [])


class SourceReadError(WooSyncError):
    """Raised when a query against the legacy WooCommerce database fails."""


class TargetConnectionError(WooSyncError):
    """Raised when the target database cannot be reached or rejects credentials."""


class TargetReadError(WooSyncError):
    """Raised when a read-only query against the target database fails."""


class UnknownStatusError(WooSyncError, ValueError):
    """Raised for a legacy order status outside the known vocabulary."""

    def __init__(self, raw_status):
        super().__init__(f"Unknown WooCommerce order status: {raw_status!r}")
        self.raw_status = raw_status


class PhaseError(WooSyncError):
    """A fatal failure that aborted one import phase."""

    def __init__(self, phase: str, cause: Exception, stats=None):
        super().__init__(f"{phase} import failed: {cause}")
        self.phase = phase
        self.cause = cause
        # Counters gathered before the abort
        self.stats = stats
