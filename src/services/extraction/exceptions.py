"""Domain exceptions for the streaming menu extraction engine.

Every failure that can end an extraction session maps to exactly one of these
types. Each carries a stable `error_code` for logging and analytics and a
plain-language `message` that is safe to show to the person who uploaded the
menu. Raw exception text from libraries never goes into `message`.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(eq=False)
class MenuExtractionError(Exception):
    """Base class for menu extraction domain errors."""

    message: str
    error_code: str

    def __str__(self) -> str:  # pragma: no cover - trivial
        return f"{self.error_code}: {self.message}"


class ValidationError(MenuExtractionError):
    """Bad input shape, size or type. Raised before any side effect."""

    def __init__(self, message: str = "The uploaded files could not be accepted.") -> None:
        super().__init__(message=message, error_code="invalid_input")


class UpstreamFetchError(MenuExtractionError):
    """A remote source file was unreachable, too slow or too large."""

    def __init__(
        self, message: str = "We couldn't download the menu file from that link."
    ) -> None:
        super().__init__(message=message, error_code="fetch_failed")


class CompressionExhaustedError(MenuExtractionError):
    """An image could not be reduced under the model's per-file ceiling."""

    def __init__(
        self,
        message: str = (
            "This image is too large to process even after compression. "
            "Try converting it to JPEG, re-taking the photo at a lower "
            "resolution, or cropping it to just the menu."
        ),
    ) -> None:
        super().__init__(message=message, error_code="compression_exhausted")


class ExtractionFailure(MenuExtractionError):
    """The model reported the input is not a menu, or never produced one."""

    def __init__(
        self,
        message: str = "Could not extract menu information from file",
        error_code: str = "extraction_failed",
    ) -> None:
        super().__init__(message=message, error_code=error_code)

    @classmethod
    def not_a_menu(cls, reason: str | None = None) -> ExtractionFailure:
        return cls(
            reason or "This file does not appear to be a restaurant menu.",
            error_code="not_a_menu",
        )


class ModelStreamError(MenuExtractionError):
    """The connection to the model service failed mid-request."""

    def __init__(
        self,
        message: str = (
            "The menu reader stopped responding. Please try again in a moment."
        ),
    ) -> None:
        super().__init__(message=message, error_code="model_error")


class PersistenceError(MenuExtractionError):
    """Writing menu or cart records failed."""

    def __init__(self, message: str = "Failed to save menu data") -> None:
        super().__init__(message=message, error_code="persistence_failed")


# Shown for failures outside the taxonomy; the exception itself is only logged
GENERIC_ERROR_MESSAGE = "Something went wrong while reading the menu. Please try again."
