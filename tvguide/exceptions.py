"""
Error taxonomy for the guide ingestion pipeline.

Feed errors carry a short human-readable message suitable for showing to a user.
Record-level problems inside a feed are never raised; those records are skipped.
"""


class FeedError(Exception):
    """Base class for errors surfaced by a feed update"""

    code = "FEED_ERROR"
    message = "Feed update failed."

    def __init__(self, message: str | None = None):
        super().__init__(message or self.message)


class InvalidURL(FeedError):
    """Configured feed URL is empty or cannot be parsed"""

    code = "INVALID_URL"
    message = "Invalid feed URL."


class InvalidResponse(FeedError):
    """Transport produced no usable HTTP response"""

    code = "INVALID_RESPONSE"
    message = "Invalid server response."


class HTTPError(FeedError):
    """Server answered with a status other than 200 or 304"""

    code = "HTTP_ERROR"

    def __init__(self, status_code: int):
        self.status_code = status_code
        super().__init__(f"HTTP error: {status_code}.")


class ParseError(FeedError):
    """Feed document is not well-formed XML"""

    code = "PARSE_ERROR"
    message = "Feed document is not well-formed XML."
