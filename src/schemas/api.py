"""Response envelopes shared by the Orda endpoints.

Read endpoints (menus, carts, health) wrap their payload in `ApiResponse`.
The parse-menu endpoint answers failures with the flat `ExtractionErrorBody`
so the web client can show `error` verbatim and branch on `error_code`.
"""

from __future__ import annotations

from typing import Any, Generic, TypeVar

from pydantic import BaseModel


T = TypeVar("T")


class ApiResponse(BaseModel, Generic[T]):
    """Envelope for successful reads.

    Attributes:
        success: Whether the request was successful.
        data: The payload (menu, cart, health status).
        message: Short human-readable summary.
        error: Error details; only set on `ErrorResponse`.
    """

    success: bool = True
    data: T | None = None
    message: str = "Operation completed successfully"
    error: dict[str, Any] | None = None


class ErrorResponse(ApiResponse[None]):
    """Envelope returned by the global exception handlers."""

    success: bool = False
    message: str = "An error occurred"


class ExtractionErrorBody(BaseModel):
    """Failure body for a JSON-mode parse-menu request."""

    error: str
    error_code: str


class HealthStatus(BaseModel):
    status: str = "healthy"
    message: str
