"""
Exception hierarchy for the validation runner client.

Provides:
- A base error carrying a stable code, a category and a details dict
- One subclass per failure kind of the runner process and its JSON-RPC stream
- ``to_dict()`` payloads that an outer layer can serialize as-is
"""

from __future__ import annotations

from enum import Enum
from typing import Any


class ErrorCategory(Enum):
    """Error categories for classification."""
    STARTUP = "startup"
    COMMUNICATION = "communication"
    TIMEOUT = "timeout"
    REMOTE = "remote"
    STATE = "state"


class ValidationBridgeError(Exception):
    """Base exception for all validation-bridge errors."""

    def __init__(
        self,
        message: str,
        code: str = "UNKNOWN_ERROR",
        category: ErrorCategory = ErrorCategory.COMMUNICATION,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.category = category
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": self.code,
            "message": self.message,
            "category": self.category.value,
            "details": self.details,
        }

    def __str__(self) -> str:
        return f"[{self.code}] {self.message}"


class ProcessStartError(ValidationBridgeError):
    """The runner process could not be spawned."""

    def __init__(self, message: str, command: list[str] | None = None, cwd: str | None = None):
        super().__init__(
            message,
            code="PROCESS_START_FAILED",
            category=ErrorCategory.STARTUP,
            details={"command": command or [], "cwd": cwd},
        )


class RunnerCommunicationError(ValidationBridgeError):
    """Base class for failures talking to a live runner over its pipes."""

    def __init__(
        self,
        message: str,
        code: str = "RUNNER_COMMUNICATION_ERROR",
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message, code=code, category=ErrorCategory.COMMUNICATION, details=details)


class WriteError(RunnerCommunicationError):
    """Writing a request to the runner's stdin failed (usually a broken pipe)."""

    def __init__(self, method: str, request_id: int, reason: str):
        super().__init__(
            f"Failed to send '{method}' request: {reason}",
            code="RUNNER_WRITE_FAILED",
            details={"method": method, "request_id": request_id, "reason": reason},
        )


class ConnectionClosedError(RunnerCommunicationError):
    """The runner's stdout reached end-of-stream before a response arrived."""

    def __init__(self, method: str, request_id: int | None = None):
        super().__init__(
            f"Runner closed its output while waiting for '{method}'",
            code="RUNNER_DISCONNECTED",
            details={"method": method, "request_id": request_id},
        )


class ResponseParseError(RunnerCommunicationError):
    """A response line was not valid JSON."""

    def __init__(self, method: str, line: str, reason: str):
        super().__init__(
            f"Invalid JSON-RPC response for '{method}': {reason}",
            code="RESPONSE_PARSE_ERROR",
            details={"method": method, "line": line, "reason": reason},
        )
        self.line = line


class InvalidResponseError(RunnerCommunicationError):
    """A response was well-formed JSON but not a usable JSON-RPC response."""

    def __init__(self, method: str, response: Any, reason: str = "response has neither 'result' nor 'error'"):
        super().__init__(
            f"Invalid JSON-RPC response for '{method}': {reason}",
            code="INVALID_RESPONSE",
            details={"method": method, "response": response, "reason": reason},
        )
        self.response = response


class RpcTimeoutError(ValidationBridgeError):
    """No response line arrived before the read deadline."""

    def __init__(self, method: str, request_id: int, timeout_seconds: float):
        super().__init__(
            f"Runner did not answer '{method}' within {timeout_seconds}s",
            code="RPC_TIMEOUT",
            category=ErrorCategory.TIMEOUT,
            details={"method": method, "request_id": request_id, "timeout_seconds": timeout_seconds},
        )


class RpcError(ValidationBridgeError):
    """The runner answered with an ``error`` member; the payload is kept verbatim."""

    def __init__(self, method: str, params: dict[str, Any], error: Any):
        super().__init__(
            f"Runner reported an error for '{method}': {_describe_remote_error(error)}",
            code="RPC_ERROR",
            category=ErrorCategory.REMOTE,
            details={"method": method, "params": params, "error": error},
        )
        self.method = method
        self.params = params
        self.error = error


class ClientNotStartedError(ValidationBridgeError):
    """An operation was attempted before start() or after stop()."""

    def __init__(self, message: str = "Client not started; call start() before using validation operations"):
        super().__init__(message, code="CLIENT_NOT_STARTED", category=ErrorCategory.STATE)


def _describe_remote_error(error: Any) -> str:
    if isinstance(error, dict):
        message = error.get("message")
        if isinstance(message, str) and message:
            return message
    if isinstance(error, str) and error:
        return error
    return repr(error)
