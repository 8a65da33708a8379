"""Error types shared by the provisioning and verification scripts."""
from google.api_core.exceptions import NotFound

# Missing-key reads surface as the client library's own NotFound.
NotFoundCondition = NotFound


class FatalBootstrapError(RuntimeError):
    """No scenario can run: no project access, no instance config, or the
    instance could not be created."""


class OperationTimeout(TimeoutError):
    """A long-running operation did not resolve before its deadline."""

    def __init__(self, description, timeout, cancelled=False):
        self.description = description
        self.timeout = timeout
        self.cancelled = cancelled
        if cancelled:
            msg = f"{description}: cancelled before completion"
        else:
            msg = f"{description}: not done after {timeout}s"
        super().__init__(msg)


class OperationFailed(RuntimeError):
    """The service reported an error for a long-running operation."""

    def __init__(self, description, cause):
        self.description = description
        self.cause = cause
        super().__init__(f"{description} failed: {cause}")


class ConfigurationError(RuntimeError):
    """The data client could not be constructed."""

    def __init__(self, message, cause=None):
        self.cause = cause
        if cause is not None:
            message = f"{message}: {cause}"
        super().__init__(message)


def is_not_found(exc):
    return isinstance(exc, NotFoundCondition)
