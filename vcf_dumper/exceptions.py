"""
Custom exceptions for the VCF export pipeline.
Kept minimal - only what's needed for clear error handling.
"""


class VcfDumperError(Exception):
    """Base exception for export related errors."""
    pass


class InvalidArgumentError(VcfDumperError, ValueError):
    """Raised when a required construction parameter is missing or empty."""
    pass


class NotFoundError(VcfDumperError):
    """Raised when no chromosomes (or no chromosome length) can be resolved."""
    pass


class IOFailureError(VcfDumperError, OSError):
    """Raised when the merged header or a collaborator response cannot be produced."""
    pass


class RecordConversionError(VcfDumperError):
    """Raised when a single store record cannot be converted to a VCF record."""
    pass


class ExportCancelled(VcfDumperError):
    """Raised when a run is cancelled between windows."""
    pass
