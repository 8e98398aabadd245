"""Custom exceptions for the frp operator."""


class FrpOperatorError(Exception):
    """Base exception for all frp operator errors."""
    pass


class ResolutionError(FrpOperatorError):
    """Raised when a referenced object or port cannot be resolved yet.

    This is a transient condition: the reconcile is retried once the
    dependency shows up.
    """
    pass


class MalformedResourceError(FrpOperatorError):
    """Raised when a watched object lacks fields required for translation."""
    pass


class ConflictError(FrpOperatorError):
    """Raised when an optimistic update keeps losing against concurrent writers."""
    pass


class ProcessError(FrpOperatorError):
    """Raised when spawning or reloading the frpc process fails."""
    pass


class ConfigurationError(FrpOperatorError):
    """Raised when the operator configuration is invalid."""
    pass
