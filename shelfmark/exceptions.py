"""
Shelfmark exception hierarchy.

Only three kinds reach callers: invalid input, not found, and
classification rate limiting. Source failures are absorbed at the
adapter boundary.
"""

from typing import Optional


class ShelfmarkException(Exception):
    """Base exception for Shelfmark errors."""

    def __init__(
        self,
        message: str,
        code: str = "INTERNAL_ERROR",
        status_code: int = 500,
        detail: Optional[str] = None,
    ):
        self.message = message
        self.code = code
        self.status_code = status_code
        self.detail = detail
        super().__init__(message)


class InvalidISBNError(ShelfmarkException):
    """ISBN does not have a 10 or 13 character shape."""

    def __init__(self, value: str):
        self.value = value
        super().__init__(
            message="Invalid ISBN format. Must be 10 or 13 digits.",
            code="INVALID_ISBN",
            status_code=400,
            detail=f"Could not normalize '{value}' to an ISBN-10 or ISBN-13",
        )


class BookNotFoundError(ShelfmarkException):
    """A well-formed ISBN that no source had data for."""

    def __init__(self, isbn: str, sources_attempted: Optional[list[str]] = None):
        self.isbn = isbn
        self.sources_attempted = sources_attempted or []
        super().__init__(
            message="Book not found",
            code="NOT_FOUND",
            status_code=404,
            detail=f"ISBN {isbn} was found in no source",
        )


class SourceUnavailableError(ShelfmarkException):
    """Transient failure of a single source (timeout, 5xx, transport)."""

    def __init__(self, source: str, detail: Optional[str] = None):
        self.source = source
        super().__init__(
            message=f"{source} source unavailable",
            code="SOURCE_UNAVAILABLE",
            status_code=503,
            detail=detail,
        )


class MalformedUpstreamError(ShelfmarkException):
    """Upstream data failed identity or structure checks."""

    def __init__(self, source: str, detail: Optional[str] = None):
        self.source = source
        super().__init__(
            message=f"{source} returned malformed data",
            code="MALFORMED_UPSTREAM",
            status_code=502,
            detail=detail,
        )


class ClassificationRateLimitedError(ShelfmarkException):
    """The generative classification backend is throttling requests."""

    retryable = True

    def __init__(self, retry_after: Optional[float] = None, detail: Optional[str] = None):
        self.retry_after = retry_after
        super().__init__(
            message="AI rate limit reached. Please wait a moment and try again.",
            code="CLASSIFICATION_RATE_LIMITED",
            status_code=429,
            detail=detail,
        )


class ClassificationServiceError(ShelfmarkException):
    """The generative classification backend failed or returned garbage."""

    def __init__(self, detail: Optional[str] = None):
        super().__init__(
            message="AI classification service error",
            code="CLASSIFICATION_ERROR",
            status_code=502,
            detail=detail,
        )


class MarcEncodingError(ShelfmarkException):
    """A record cannot be represented in ISO 2709 limits."""

    def __init__(self, detail: str):
        super().__init__(
            message="Record cannot be encoded as MARC21",
            code="MARC_ENCODING_ERROR",
            status_code=500,
            detail=detail,
        )
