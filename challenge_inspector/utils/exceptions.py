"""Custom exceptions for Challenge Inspector."""


class InspectorError(Exception):
    """Base class for errors raised by the inspector."""


class BrowserLaunchError(InspectorError):
    """Raised when the browser engine cannot be started. Fatal for the run."""


class ExchangeStateError(InspectorError):
    """Raised when an exchange is mutated in a way its lifecycle forbids."""


class SessionFrozenError(InspectorError):
    """Raised when a frozen capture session is asked to accept new exchanges."""
