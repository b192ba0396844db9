# registry/errors.py


class GiftlistError(Exception):
    """Base class for every error raised by the registry and the scrapers."""


class FetchFailure(GiftlistError):
    """Network error, timeout or non-2xx response from the rendering proxy."""

    def __init__(self, message: str, url: str | None = None, status: int | None = None):
        super().__init__(message)
        self.url = url
        self.status = status


class UnexpectedPageShape(GiftlistError):
    """The proxy answered, but not with the page we asked for."""

    def __init__(self, message: str, url: str | None = None):
        super().__init__(message)
        self.url = url


class ValidationError(GiftlistError):
    """Caller-supplied input violates an invariant."""


class NotFoundError(GiftlistError):
    """A wishlist the caller expected to exist does not."""


class OwnershipError(GiftlistError):
    """The acting username does not own the wishlist."""


class ConcurrentModificationError(GiftlistError):
    """The wishlist changed in the store since it was loaded."""
