"""Failure taxonomy shared by the tracking, scoring and reset services.

Each error is recovered at the boundary of the component that hits it;
none of them is allowed to abort a tick, a daily reset or a backfill run.
"""


class BrainguardError(Exception):
    """Base class for recoverable service errors."""


class CollectorUnavailable(BrainguardError):
    """No usage data could be obtained (missing permission, timeout, platform)."""


class TransientStoreError(BrainguardError):
    """A read or write against the persistent store failed."""


class MalformedPersistedData(BrainguardError):
    """A persisted blob (monitored list, summary apps) could not be parsed."""


class DispatchError(BrainguardError):
    """The external notifier failed to deliver an alert."""


class CallTimedOut(CollectorUnavailable):
    """An external call did not return within its bound; it may still be running."""
