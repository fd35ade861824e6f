"""Custom exceptions for HTTP clients."""

from article_podcaster.exceptions import PodcasterError


class ClientError(PodcasterError):
    """Base exception for all HTTP client errors."""

    pass


class ConnectionError(ClientError):
    """Raised when a network connection fails after all retries."""

    pass


class APIError(ClientError):
    """Raised when a server returns a non-2xx response."""

    def __init__(self, message: str, status_code: int, *args, **kwargs):
        self.status_code = status_code
        super().__init__(message, *args, **kwargs)


class RateLimitError(APIError):
    """Raised when a server returns a 429 rate limit response."""

    def __init__(self, message: str = "Rate limit exceeded"):
        super().__init__(message, status_code=429)


class NotFoundError(APIError):
    """Raised when a server returns a 404 not found response."""

    def __init__(self, message: str = "Page not found"):
        super().__init__(message, status_code=404)
