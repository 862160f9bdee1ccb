"""
Exception hierarchy for ScanForge.

Every load/save call either returns its result or raises one of these.
Nothing is retried internally; the caller decides what to do.
"""


class ScanForgeError(Exception):
    """Base class for all ScanForge errors."""

    pass


class PointCloudIOError(ScanForgeError, OSError):
    """Raised when a point cloud file cannot be opened, read or written."""

    pass


class HeaderParseError(ScanForgeError, ValueError):
    """Raised when a file header is missing, inconsistent or invalid."""

    pass


class PayloadSizeMismatch(ScanForgeError, ValueError):
    """Raised when declared point/byte counts don't match the available data."""

    pass


class LayoutError(PayloadSizeMismatch):
    """Raised when a field access would fall outside its record buffer."""

    pass


class CompressionError(ScanForgeError, ValueError):
    """Raised when an LZF stream is truncated, corrupt or too large."""

    pass


class UnsupportedFormatError(ScanForgeError, ValueError):
    """Raised for unknown representations, point formats or file types."""

    pass
