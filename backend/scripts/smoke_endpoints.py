from __future__ import annotations

import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path
from unittest.mock import patch

from starlette.requests import Request

ROOT_DIR = Path(__file__).resolve().parents[2]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

import backend.main as main_module
from backend.app.services.fetcher import VideoFetcher
from backend.app.services.ledger import MemoryStore, QuotaLedger, ResponseCache
from backend.app.services.youtube_client import YouTubeClient


def make_request(ip: str = "127.0.0.1") -> Request:
    return Request(
        {
            "type": "http",
            "method": "POST",
            "path": "/",
            "headers": [(b"x-youtube-api-key", b"AIza-smoke")],
            "client": (ip, 8000),
            "query_string": b"",
            "server": ("test", 80),
            "scheme": "http",
            "http_version": "1.1",
        }
    )


def make_video(video_id: str, days_ago: int, views: int, duration: str) -> dict:
    published_at = (datetime.now(timezone.utc) - timedelta(days=days_ago)).isoformat().replace("+00:00", "Z")
    return {
        "id": video_id,
        "snippet": {
            "title": f"Video {video_id}",
            "channelTitle": "Smoke Channel",
            "publishedAt": published_at,
            "tags": ["smoke", "testing"],
            "thumbnails": {"high": {"url": f"https://img/{video_id}.jpg"}},
        },
        "statistics": {"viewCount": str(views), "likeCount": str(views // 20), "commentCount": "3"},
        "contentDetails": {"duration": duration},
    }


class SmokeResponse:
    status_code = 200
    text = ""

    def __init__(self, payload: dict):
        self._payload = payload

    def json(self) -> dict:
        return self._payload


class SmokeSession:
    """Serves a three-video search result and a one-video trending chart."""

    def __init__(self) -> None:
        self.calls: dict[str, int] = {}
        self.videos = {
            "sm1": make_video("sm1", 3, 25000, "PT2M5S"),
            "sm2": make_video("sm2", 5, 9000, "PT45S"),
            "sm3": make_video("sm3", 9, 4000, "PT21M"),
        }

    def get(self, url: str, params: dict | None = None, timeout: int = 15) -> SmokeResponse:
        _ = timeout
        params = params or {}
        endpoint = url.rsplit("/", 1)[-1]
        self.calls[endpoint] = self.calls.get(endpoint, 0) + 1
        if endpoint == "search":
            return SmokeResponse({"items": [{"id": {"videoId": vid}} for vid in self.videos]})
        if endpoint == "videos" and params.get("chart") == "mostPopular":
            return SmokeResponse({"items": [{"id": "sm1"}]})
        if endpoint == "videos":
            ids = str(params.get("id") or "").split(",")
            return SmokeResponse({"items": [self.videos[vid] for vid in ids if vid in self.videos]})
        return SmokeResponse({"items": []})


def build_smoke_fetcher() -> tuple[VideoFetcher, SmokeSession, QuotaLedger]:
    store = MemoryStore()
    ledger = QuotaLedger(store)
    session = SmokeSession()
    client = YouTubeClient("AIza-smoke", ledger, session=session)
    return VideoFetcher(client, cache=ResponseCache(store)), session, ledger


def assert_true(condition: bool, message: str) -> None:
    if not condition:
        raise AssertionError(message)


def reset_state() -> None:
    main_module.CACHE.clear()
    main_module.API_RATE_LIMIT_BUCKETS.clear()


def test_health() -> None:
    payload = main_module.health()
    assert_true(payload.get("ok") is True, "/health should return ok=true")


def test_analyze_cache() -> None:
    reset_state()
    fetcher, session, ledger = build_smoke_fetcher()

    with patch.object(main_module, "build_fetcher", return_value=fetcher):
        payload_1 = main_module.analyze(main_module.AnalyzeRequest(query="smoke test", limit=10), make_request())
        payload_2 = main_module.analyze(main_module.AnalyzeRequest(query="smoke test", limit=10), make_request())

    assert_true(payload_1["items"] == payload_2["items"], "/analyze cached response should be identical")
    assert_true(session.calls.get("search") == 1, "/analyze should hit search once then cache")
    assert_true(ledger.current_usage() == 101, "/analyze should charge one search page and one detail batch")


def test_trending_not_cached() -> None:
    reset_state()
    fetcher, session, _ledger = build_smoke_fetcher()

    with patch.object(main_module, "build_fetcher", return_value=fetcher):
        main_module.trending(make_request(), region="us", limit=5)
        payload = main_module.trending(make_request(), region="us", limit=5)

    assert_true(payload["meta"]["region"] == "US", "/trending should upper-case the region")
    assert_true(session.calls.get("videos") == 4, "/trending should refetch on every call")


def test_scores_and_schedule() -> None:
    fetcher, _session, _ledger = build_smoke_fetcher()
    videos = fetcher.fetch_videos("smoke test", 10).videos

    scores = main_module.scores(main_module.ScoresRequest(videos=videos))
    schedule = main_module.schedule(main_module.ScheduleRequest(videos=videos))

    assert_true(len(scores["items"]) == 3, "/scores should score every submitted video")
    assert_true(
        all(0 <= item.title_score.total_score <= 100 for item in scores["items"]),
        "/scores totals should stay within 0-100",
    )
    assert_true(schedule["report"].total_uploads == 3, "/schedule should count every upload")

    insights = main_module.insights(main_module.VideosRequest(videos=videos))["result"]
    assert_true(insights.video_count == 3, "/insights should summarize every submitted video")


def run() -> int:
    checks = [
        ("health", test_health),
        ("analyze cache", test_analyze_cache),
        ("trending not cached", test_trending_not_cached),
        ("scores + schedule + insights", test_scores_and_schedule),
    ]
    failures = []

    for check_name, check_fn in checks:
        try:
            check_fn()
            print(f"[PASS] {check_name}")
        except Exception as exc:  # pragma: no cover - smoke script output path
            failures.append((check_name, str(exc)))
            print(f"[FAIL] {check_name}: {exc}")

    if failures:
        print(f"\nSmoke checks failed: {len(failures)}")
        for check_name, message in failures:
            print(f"- {check_name}: {message}")
        return 1

    print("\nAll smoke checks passed.")
    return 0


if __name__ == "__main__":
    sys.exit(run())
