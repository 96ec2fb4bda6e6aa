class FullTrackError(Exception):
    """Base class for errors raised while talking to the backend."""


class BackendUnavailable(FullTrackError):
    """Network failure, timeout or 5xx response. The backend could not be reached."""


class BackendError(FullTrackError):
    """Backend answered with a non-2xx status that is not a server failure."""

    def __init__(self, status_code: int, message: str = "Backend error") -> None:
        super().__init__(f"{message} (HTTP {status_code})")
        self.status_code = status_code


class MalformedResponse(FullTrackError):
    """Response body was not JSON or did not have the expected shape."""


class StreamUnavailable(FullTrackError):
    """Stream endpoint returned no usable proxied URL."""
