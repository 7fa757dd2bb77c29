import logging
from typing import Any

import requests

from backend.app.core.errors import QuotaExceededError, UpstreamTransportFailure
from backend.app.services.ledger import QuotaLedger

logger = logging.getLogger(__name__)

YOUTUBE_VIDEOS_LIST = "https://www.googleapis.com/youtube/v3/videos"
YOUTUBE_SEARCH_LIST = "https://www.googleapis.com/youtube/v3/search"
YOUTUBE_CHANNELS_LIST = "https://www.googleapis.com/youtube/v3/channels"
YOUTUBE_PLAYLIST_ITEMS_LIST = "https://www.googleapis.com/youtube/v3/playlistItems"

# Units charged per call, independent of how many ids a list call carries.
QUOTA_COSTS = {
    "videos": 1,
    "search": 100,
    "playlist_items": 1,
    "channels": 1,
}

MAX_PAGE_SIZE = 50


def _error_reason(response: requests.Response) -> tuple[str, str]:
    reason = ""
    message = response.text
    try:
        payload = response.json()
        error = payload.get("error") or {}
        errors = error.get("errors") or []
        if errors and isinstance(errors[0], dict):
            reason = str(errors[0].get("reason") or "")
        message = str(error.get("message") or message)
    except (ValueError, AttributeError):
        pass
    return reason, message


class YouTubeClient:
    """Thin wrapper over the Data API v3 list endpoints.

    Every call charges the ledger before the request is issued.
    """

    def __init__(
        self,
        api_key: str,
        ledger: QuotaLedger,
        session: requests.Session | None = None,
        timeout: int = 15,
    ) -> None:
        self.api_key = api_key
        self.ledger = ledger
        self.session = session or requests.Session()
        self.timeout = timeout

    def _get(self, endpoint: str, url: str, params: dict[str, Any]) -> dict[str, Any]:
        self.ledger.charge(QUOTA_COSTS[endpoint])
        merged = {key: value for key, value in params.items() if value not in (None, "")}
        merged["key"] = self.api_key
        try:
            response = self.session.get(url, params=merged, timeout=self.timeout)
        except requests.RequestException as exc:
            logger.warning("YouTube %s request failed: %s", endpoint, exc)
            raise UpstreamTransportFailure("YouTube is temporarily unavailable. Please try again.") from exc

        if response.status_code == 200:
            try:
                payload = response.json()
            except ValueError as exc:
                raise UpstreamTransportFailure(
                    "YouTube returned an unreadable response.", status_code=200
                ) from exc
            if not isinstance(payload, dict):
                raise UpstreamTransportFailure("YouTube returned an unexpected response.", status_code=200)
            return payload

        reason, message = _error_reason(response)
        lowered = f"{reason} {message}".lower()
        logger.warning("YouTube %s returned %s (reason=%s)", endpoint, response.status_code, reason or "unknown")
        if response.status_code in {403, 429} and (
            "quotaexceeded" in lowered or "quota exceeded" in lowered or "youtube.quota" in lowered
        ):
            raise QuotaExceededError("YouTube API quota exceeded", response.status_code, reason)
        raise UpstreamTransportFailure(
            f"Could not fetch YouTube data right now ({response.status_code}).",
            status_code=response.status_code,
            reason=reason,
        )

    def videos(self, **params: Any) -> dict[str, Any]:
        return self._get("videos", YOUTUBE_VIDEOS_LIST, params)

    def search(self, **params: Any) -> dict[str, Any]:
        return self._get("search", YOUTUBE_SEARCH_LIST, params)

    def playlist_items(self, **params: Any) -> dict[str, Any]:
        return self._get("playlist_items", YOUTUBE_PLAYLIST_ITEMS_LIST, params)

    def channels(self, **params: Any) -> dict[str, Any]:
        return self._get("channels", YOUTUBE_CHANNELS_LIST, params)
