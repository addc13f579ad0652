"""
Relay exceptions

Each carries the HTTP status the AI endpoints answer with when it is raised
before any output has been streamed.
"""


class RelayError(Exception):
    """Base class for failures while relaying a completion"""
    status_code = 500

    def __init__(self, message: str, status_code: int = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class RelayConfigurationError(RelayError):
    """The upstream credential or endpoint is not configured"""
    status_code = 500


class UpstreamUnavailableError(RelayError):
    """The upstream connection could not be established"""
    status_code = 500


class UpstreamStatusError(RelayError):
    """The upstream answered with a non-success status; no stream was opened"""

    def __init__(self, status_code: int, body: str):
        super().__init__(f"API request failed: {body}", status_code=status_code)
        self.body = body


class UpstreamStreamError(RelayError):
    """The upstream stream failed after output had started flowing"""
    status_code = 502
