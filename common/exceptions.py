"""
common/exceptions.py

Error types raised by the grid driver node.

    DriverNodeError
     ├── ConfigurationError      invalid or unreadable node configuration (fatal at startup)
     │    └── TransportSetupError  TLS-tolerant HTTP client could not be built
     └── RegistrationError       hub registration failed (reported, never fatal)
"""

from typing import Optional


class DriverNodeError(Exception):
    """Base class for all driver node errors."""

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.message = message
        self.cause = cause


class ConfigurationError(DriverNodeError):
    """
    Raised when a node configuration cannot be loaded or validated.

    Attributes:
        source: File path or URI the configuration came from (if known)
        field: JSON key of the offending field (if the error is field specific)
    """

    def __init__(self, message: str, source: Optional[str] = None,
                 field: Optional[str] = None, cause: Optional[BaseException] = None):
        super().__init__(message, cause)
        self.source = source
        self.field = field


class TransportSetupError(ConfigurationError):
    """Raised when the HTTP session used for a remote configuration fetch cannot be created."""


class RegistrationError(DriverNodeError):
    """
    Raised when registering the node with a hub fails.

    Attributes:
        url: Registration endpoint that was called
        status_code: HTTP status returned by the hub, None for connection-level failures
    """

    def __init__(self, message: str, url: Optional[str] = None,
                 status_code: Optional[int] = None, cause: Optional[BaseException] = None):
        super().__init__(message, cause)
        self.url = url
        self.status_code = status_code
