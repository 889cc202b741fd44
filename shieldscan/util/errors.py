"""Exception hierarchy.

Only input problems and whole-scan timeouts are raised. Probe failures are
never exceptions - they come back as partial result objects.
"""


class ShieldScanError(Exception):
    """Base class for everything this package raises on purpose."""
    status_code = 500


class ScanInputError(ShieldScanError):
    """The scan request was rejected before any network call."""
    status_code = 400


class InvalidTargetError(ScanInputError):
    """URL is missing, too long or not parseable."""


class BlockedTargetError(ScanInputError):
    """URL points at loopback, private or link-local space."""


class ScanTimeoutError(ShieldScanError):
    """The overall scan budget ran out."""
    status_code = 504
