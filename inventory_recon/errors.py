"""
Exception types raised by the reconciliation pipeline.

Everything a caller of ``run_comparison`` needs to catch derives from
``ReconciliationError``; the message is meant to be shown as-is
("comparison failed: <message>").
"""


class ReconciliationError(Exception):
    """Base class for all pipeline failures."""


class FetchError(ReconciliationError):
    """A remote call failed for good (retries exhausted or unusable response)."""

    def __init__(self, message: str, source: str = "", endpoint: str = "", status: int | None = None):
        self.source = source
        self.endpoint = endpoint
        self.status = status
        tag = f"[{source}] " if source else ""
        status_txt = f" (HTTP {status})" if status is not None else ""
        super().__init__(f"{tag}{message}{status_txt} - {endpoint}" if endpoint else f"{tag}{message}{status_txt}")


class SourceAuthError(FetchError):
    """4xx from a source. Never retried: credentials or request are wrong."""


class PersistenceError(ReconciliationError):
    """The report store rejected a finished report. The report is attached for a retry."""

    def __init__(self, message: str, report=None):
        self.report = report
        super().__init__(message)


class RunInProgressError(ReconciliationError):
    """A comparison is already running in this process."""


class NotificationError(ReconciliationError):
    """A report summary could not be delivered."""
