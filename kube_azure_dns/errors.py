"""
Exception hierarchy for the controller.

Zone errors are split into transient and terminal failures so the worker
loop can decide how loudly to log them. Every error is still requeued.
"""
from kubernetes.client import ApiException
from urllib3.exceptions import HTTPError as Urllib3HTTPError


class ControllerError(Exception):
    """Root exception for all controller errors."""


class ZoneError(ControllerError):
    """Base exception for DNS zone operations."""


class TransientZoneError(ZoneError):
    """Throttling or a network failure talking to the DNS zone."""


class TerminalZoneError(ZoneError):
    """Authorization, not-found or malformed-request failure. Needs an operator."""


class NoSelectorError(ControllerError):
    """Headless service declares no label selector."""


class ReconcileCancelled(ControllerError):
    """Reconcile ran past its deadline or the controller is shutting down."""


_TRANSIENT_API_STATUSES = (0, 408, 409, 429)


def is_transient(exc):
    """
    Tells whether an error from a reconcile is expected to clear on its own.
    """
    if isinstance(exc, (TransientZoneError, ReconcileCancelled)):
        return True
    if isinstance(exc, ApiException):
        return exc.status in _TRANSIENT_API_STATUSES or (exc.status or 0) >= 500
    return isinstance(exc, (Urllib3HTTPError, ConnectionError, TimeoutError))
