class AnalyticsError(Exception):
    """Base class for failures surfaced by the analytics pipeline."""


class NotFoundError(AnalyticsError):
    pass


class ResolutionFailure(NotFoundError):
    """The query could not be mapped to a channel, playlist or search intent."""


class UpstreamEmpty(NotFoundError):
    """The query was valid but the platform returned no videos for it."""


class UpstreamTransportFailure(AnalyticsError):
    """Network error, non-2xx response or unparsable body from the platform.

    Never retried automatically; retrying is an explicit user action.
    """

    def __init__(self, message: str, status_code: int | None = None, reason: str = ""):
        super().__init__(message)
        self.status_code = status_code
        self.reason = reason


class QuotaExceededError(UpstreamTransportFailure):
    """The platform itself rejected the call because its daily quota is spent."""


class FetchCancelled(AnalyticsError):
    pass
