"""
Error taxonomy shared by the repository, media adapter and lifecycle manager.

Every error carries the HTTP status it maps to at the route boundary.
"""

from __future__ import annotations

from typing import Iterable, Sequence


class ContentApiError(Exception):
    """Base class for errors the HTTP boundary knows how to translate."""

    status_code: int = 500

    def __init__(self, message: str, *, details: str | None = None):
        super().__init__(message)
        self.message = message
        self.details = details

    def as_payload(self) -> dict:
        payload = {"error": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


class ValidationError(ContentApiError):
    """Client input was missing, empty or malformed."""

    status_code = 400

    def __init__(
        self,
        message: str,
        *,
        fields: Sequence[str] = (),
        details: str | None = None,
    ):
        super().__init__(message, details=details)
        self.fields = list(fields)

    @classmethod
    def missing(cls, fields: Iterable[str]) -> "ValidationError":
        names = list(fields)
        label = "field" if len(names) == 1 else "fields"
        return cls(
            f"Missing required {label}: {', '.join(names)}",
            fields=names,
        )

    def as_payload(self) -> dict:
        payload = super().as_payload()
        if self.fields:
            payload["fields"] = self.fields
        return payload


class MissingAsset(ValidationError):
    """A required upload was not attached to the request."""

    def __init__(self, field: str, label: str | None = None):
        super().__init__(f"{label or field} is required", fields=[field])


class UploadRejected(ValidationError):
    """The upload's declared type is not accepted for the field's kind."""


class PayloadTooLarge(ValidationError):
    """The upload exceeds the size ceiling configured for its kind."""


class NotFound(ContentApiError):
    status_code = 404


class StoreUnavailable(ContentApiError):
    """The document store is not ready to serve requests."""

    status_code = 503

    def __init__(self, message: str = "Database unavailable", *, details: str | None = None):
        super().__init__(
            message,
            details=details
            or "Database connection is not ready. Please try again later.",
        )


class MediaStoreFailure(ContentApiError):
    """The remote media store failed to accept an upload."""

    status_code = 500


class OperationCancelled(ContentApiError):
    """The caller cancelled a multi-step operation before it completed."""

    status_code = 500

    def __init__(self, completed_steps: Sequence[str]):
        completed = ", ".join(completed_steps) or "none"
        super().__init__(
            "Operation cancelled",
            details=f"completed steps: {completed}",
        )
        self.completed_steps = list(completed_steps)
