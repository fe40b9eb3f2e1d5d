"""
Exception types for ftpbridge.

Every error that can reach an HTTP client derives from GatewayError and
carries the status code it is rendered with. Errors raised after the
response headers went out are never rendered; they are only logged.
"""


class GatewayError(Exception):
    """Base class for all ftpbridge errors."""

    status_code = 500

    def __init__(self, message: str = "") -> None:
        super().__init__(message)
        self.message = message


class BadRequest(GatewayError):
    """
    Raised when a required request parameter is missing or invalid.

    No upstream connection is touched when this is raised.
    """

    status_code = 400


class UpstreamUnavailable(GatewayError, ConnectionError):
    """
    Raised when the FTP server cannot be reached or rejects the login.
    """

    status_code = 502


class RemoteFileNotFound(GatewayError):
    """
    Raised when the FTP server reports that a path does not exist.
    """

    status_code = 404


class UpstreamStreamingFailure(GatewayError):
    """
    Raised when the FTP server aborts a transfer for reasons unrelated to
    the consumer going away.
    """

    status_code = 502
