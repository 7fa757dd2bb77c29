"""Offline stand-ins for the Data API used across the test modules."""
from datetime import datetime, timedelta, timezone

FIXED_NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


class FakeResponse:
    def __init__(self, payload=None, status_code=200, text=""):
        self._payload = payload
        self.status_code = status_code
        self.text = text

    def json(self):
        if isinstance(self._payload, Exception):
            raise self._payload
        return self._payload


class FakeSession:
    """Routes ``session.get`` by endpoint name (videos, search, channels, playlistItems)."""

    def __init__(self, routes=None):
        self.routes = dict(routes or {})
        self.calls = []

    def get(self, url, params=None, timeout=None):
        endpoint = url.rsplit("/", 1)[-1]
        params = dict(params or {})
        self.calls.append((endpoint, params))
        handler = self.routes.get(endpoint)
        if handler is None:
            return FakeResponse({"items": []})
        result = handler(params)
        if isinstance(result, FakeResponse):
            return result
        return FakeResponse(result)

    def endpoints(self):
        return [endpoint for endpoint, _ in self.calls]


def make_item(
    video_id,
    views=1000,
    likes=50,
    comments=5,
    duration="PT3M",
    published_at="2024-05-01T10:00:00Z",
    title=None,
    tags=None,
):
    return {
        "id": video_id,
        "snippet": {
            "title": title or f"Video {video_id}",
            "description": "",
            "publishedAt": published_at,
            "channelId": "UC_TEST",
            "channelTitle": "Test Channel",
            "tags": tags or [],
            "thumbnails": {
                "high": {"url": f"https://img/{video_id}/hq.jpg"},
                "default": {"url": f"https://img/{video_id}/default.jpg"},
            },
        },
        "statistics": {"viewCount": str(views), "likeCount": str(likes), "commentCount": str(comments)},
        "contentDetails": {"duration": duration},
    }


def videos_route(catalog=None):
    """Hydration handler returning a detail item for every requested id."""

    def handler(params):
        ids = [vid for vid in params.get("id", "").split(",") if vid]
        if catalog is None:
            return {"items": [make_item(vid) for vid in ids]}
        return {"items": [catalog[vid] for vid in ids if vid in catalog]}

    return handler


def search_route(total, prefix="s"):
    """Search handler serving ``total`` video ids in pages of ``maxResults``."""

    def handler(params):
        start = int(params.get("pageToken") or 0)
        size = int(params.get("maxResults") or 50)
        end = min(total, start + size)
        payload = {"items": [{"id": {"kind": "youtube#video", "videoId": f"{prefix}{i}"}} for i in range(start, end)]}
        if end < total:
            payload["nextPageToken"] = str(end)
        return payload

    return handler


def playlist_route(total, prefix="p"):
    def handler(params):
        start = int(params.get("pageToken") or 0)
        size = int(params.get("maxResults") or 50)
        end = min(total, start + size)
        payload = {"items": [{"contentDetails": {"videoId": f"{prefix}{i}"}} for i in range(start, end)]}
        if end < total:
            payload["nextPageToken"] = str(end)
        return payload

    return handler


def days_ago(days, now=FIXED_NOW):
    return (now - timedelta(days=days)).isoformat().replace("+00:00", "Z")
