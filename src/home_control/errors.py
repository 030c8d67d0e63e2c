"""Domain-specific errors for home_control."""


class HomeControlError(Exception):
    """Base error for home_control."""


class MalformedAddressError(HomeControlError, ValueError):
    """Raised when a MAC address is not six colon-separated hex octets."""


class DnsUpdateError(HomeControlError):
    """Raised when the DNS provider rejects or cannot complete an update."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class DnsAuthError(DnsUpdateError):
    """Raised when the DNS provider rejects the supplied credentials."""
