"""Error taxonomy shared by the core and the route layer.

Every error carries the HTTP status the route layer should answer with and a
human-readable message that is safe to return to the operator panel.
"""


class SellerDeskError(Exception):
    status_code = 500

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class TransportError(SellerDeskError):
    """Remote unreachable or connection dropped. Safe to retry later."""

    status_code = 502
    retryable = True


class UpstreamTimeout(TransportError):
    status_code = 504


class AuthExpired(SellerDeskError):
    """Upstream rejected the access token (HTTP 401)."""

    status_code = 401


class MarketplaceError(SellerDeskError):
    """Any other non-2xx answer from the marketplace API."""

    status_code = 400

    def __init__(self, message: str, upstream_status: int = 0, details=None):
        super().__init__(message)
        self.upstream_status = upstream_status
        self.details = details


class ValidationError(SellerDeskError):
    status_code = 400


class EmptyText(ValidationError):
    def __init__(self, message: str = "Text is empty"):
        super().__init__(message)


class LimitExceeded(ValidationError):
    pass


class NotFound(ValidationError):
    status_code = 404

    def __init__(self, message: str = "Not found"):
        super().__init__(message)


class ConsistencyConflict(SellerDeskError):
    """A write was rejected because its version token is stale."""

    status_code = 409
