from typing import Optional


class ExecutionError(Exception):
    ...


class UnsupportedOperation(ExecutionError):
    """The chute does not offer the requested operation. Not retryable."""


class ChutesApiError(Exception):
    """A call to a chute failed; ``status_code`` is None for network failures."""

    def __init__(self, status_code: Optional[int], message: str, description: Optional[str] = None):
        super().__init__(message)
        self.status_code = status_code
        self.message = message
        self.description = description

    def __str__(self) -> str:
        return self.message


class RemoteRateLimited(ChutesApiError):
    ...


class RemoteRejected(ChutesApiError):
    ...


class RemoteUnavailable(ChutesApiError):
    ...


class NodeTimeout(ExecutionError):
    """The caller's overall timeout elapsed before the node finished."""
