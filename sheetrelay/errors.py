"""
Error kinds raised by the relay core and the HTTP status each one maps to.
Messages are safe to return to the caller as-is.
"""


class RelayError(Exception):
    status_code = 500
    default_message = "Failed to fetch sheet data."

    def __init__(self, message: str = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ConfigurationError(RelayError):
    """Required source or setting is missing or malformed."""
    status_code = 500
    default_message = "Sheet source is not configured."


class ValidationError(RelayError):
    """Caller input is missing or malformed."""
    status_code = 400
    default_message = "Invalid request parameters."


class UpstreamError(RelayError):
    """The sheet source could not be fetched."""
    status_code = 500
    default_message = "Failed to fetch sheet data from upstream."

    def __init__(self, message: str = None, not_found: bool = False, upstream_status: int = None):
        super().__init__(message)
        self.not_found = not_found
        self.upstream_status = upstream_status
        if not_found:
            self.status_code = 404


class DecodeError(RelayError):
    status_code = 500
    default_message = "Failed to parse sheet data."
