"""
Error Taxonomy

Every error raised by livequery derives from LiveQueryError. Registry and
reactive-runtime misuse are programming errors and propagate to the caller;
FetchError is caught at the engine boundary and turned into a message on the
instance's ``error`` signal.
"""

from typing import Any, Dict, Optional


class LiveQueryError(Exception):
    """Base exception for livequery errors"""

    default_message = "livequery error"

    def __init__(self, message: Optional[str] = None, details: Optional[Dict[str, Any]] = None,
                 cause: Optional[BaseException] = None):
        self.message = message or self.default_message
        self.details = details or {}
        super().__init__(self.message)
        if cause is not None:
            self.__cause__ = cause

    def to_dict(self) -> Dict[str, Any]:
        data = {"error": self.__class__.__name__, "message": self.message}
        if self.details:
            data["details"] = self.details
        return data


# Registry errors

class ServiceNotFoundError(LiveQueryError):
    """Raised when no enclosing scope registered the requested definition"""
    default_message = "Service not registered"


class ScopeDisposedError(LiveQueryError):
    """Raised when a disposed scope is used"""
    default_message = "Service scope is disposed"


class ServiceConfigurationError(LiveQueryError):
    """Raised when a registration is invalid"""
    default_message = "Invalid service registration"


# Reactive runtime errors

class ComputedWriteError(LiveQueryError):
    """Raised when a signal is written while a computed value is evaluating"""
    default_message = "Computed evaluation must not write signals"


class ReactiveCycleError(LiveQueryError):
    """Raised when effects keep re-triggering each other"""
    default_message = "Effects did not settle"


class SignalDisposedError(LiveQueryError):
    """Raised when a disposed signal is written"""
    default_message = "Signal is disposed"


# Engine errors

class FetchError(LiveQueryError):
    """Failure surfaced by a data-fetch or mutation collaborator"""
    default_message = "Failed to fetch data"


class ValidationError(LiveQueryError):
    """Missing identifiers or invalid query options, raised before any fetch"""
    default_message = "Validation failed"


class ConstraintViolation(LiveQueryError):
    """Quantity limit exceeded.

    Engines never raise this: selection writes are clamped instead. It exists
    so collaborators that do enforce limits have a matching type to raise.
    """
    default_message = "Constraint violated"


def describe_error(exc: BaseException, fallback: str) -> str:
    """Human-readable message for an error caught at an engine boundary."""
    if isinstance(exc, LiveQueryError):
        return exc.message
    message = str(exc)
    return message if message else fallback


__all__ = [
    "LiveQueryError", "ServiceNotFoundError", "ScopeDisposedError", "ServiceConfigurationError",
    "ComputedWriteError", "ReactiveCycleError", "SignalDisposedError",
    "FetchError", "ValidationError", "ConstraintViolation", "describe_error",
]
