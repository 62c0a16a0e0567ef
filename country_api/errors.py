class CountryAPIError(Exception):
    """Base class for errors the API maps to a specific HTTP response."""

    status_code = 500
    error = "Internal server error"

    def __init__(self, message: str | None = None):
        super().__init__(message or self.error)
        self.message = message or self.error


class UpstreamUnavailable(CountryAPIError):
    """An external data source could not be fetched (network error, timeout, bad payload)."""

    status_code = 503
    error = "External data source unavailable"


class NotFound(CountryAPIError):
    status_code = 404
    error = "Not found"
