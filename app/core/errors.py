"""
Domain-specific exceptions for the Policy Flow API.

These exceptions represent business logic violations and are mapped
to appropriate HTTP status codes in the API layer.

Flow validation problems are normally returned as data (see
app.compiler.validator); FlowCompilationError is only raised when a
caller insists on a valid graph, e.g. before forwarding it to the
policy backend.
"""

from typing import Any


class FlowStudioError(Exception):
    """Base exception for all policy flow domain errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


class NotFoundError(FlowStudioError):
    """
    Raised when a requested resource does not exist.

    Examples:
    - Flow ID unknown to the policy backend
    - Flow version not found

    HTTP Status: 404 Not Found
    """

    pass


class FlowCompilationError(FlowStudioError):
    """
    Raised when a flow graph is not well-formed and cannot be compiled.

    Examples:
    - No start node
    - Decision node missing a TRUE or FALSE path
    - Circular reference between policies
    - Node not connected to the flow

    HTTP Status: 422 Unprocessable Entity
    """

    pass


class PolicyBackendError(FlowStudioError):
    """
    Raised when the policy backend answers with an error status.

    HTTP Status: 502 Bad Gateway
    """

    pass


class PolicyBackendUnavailableError(FlowStudioError):
    """
    Raised when the policy backend cannot be reached.

    Examples:
    - Connection refused
    - Request timed out

    HTTP Status: 503 Service Unavailable
    """

    pass


# HTTP Status Code Mapping
ERROR_STATUS_MAP = {
    NotFoundError: 404,
    FlowCompilationError: 422,
    PolicyBackendError: 502,
    PolicyBackendUnavailableError: 503,
}


def get_status_code(error: Exception) -> int:
    """
    Get the HTTP status code for a given exception.

    Args:
        error: The exception instance

    Returns:
        HTTP status code (defaults to 500 for unknown errors)
    """
    return ERROR_STATUS_MAP.get(type(error), 500)
