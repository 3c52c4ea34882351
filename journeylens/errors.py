"""Exception taxonomy shared by the services and the JSON routes."""

from __future__ import annotations


class JourneyLensError(RuntimeError):
    """Base class for errors that are reported back to the client."""

    status_code = 500


class ValidationError(JourneyLensError):
    """Raised when a required field is missing or malformed."""

    status_code = 400

    def __init__(self, message: str, fields: dict | None = None) -> None:
        super().__init__(message)
        self.fields = fields or {}

    @classmethod
    def from_form(cls, form) -> "ValidationError":
        return cls("Invalid form submission.", fields=form.errors)


class UpstreamServiceError(JourneyLensError):
    """Raised when a text, image or speech provider call fails."""

    status_code = 502


class NotFoundError(JourneyLensError):
    """Raised when a referenced vision, journal or story does not exist."""

    status_code = 404


class ParseError(JourneyLensError):
    """Raised when a model response is not in the expected structured shape."""

    status_code = 422


class SessionInvalidError(JourneyLensError):
    """Raised when the signed-in user no longer exists."""

    status_code = 401
