import asyncio
import json

import pytest
from fastapi import HTTPException
from starlette.requests import Request

import backend.main as main_module
from backend.app.core.config import Settings, parse_cors_origins
from backend.app.core.errors import FetchCancelled, QuotaExceededError, ResolutionFailure, UpstreamTransportFailure
from backend.app.services.normalizer import VideoRecord
from backend.tests.fakes import FakeResponse, make_item, search_route, videos_route


def make_request(ip: str = "127.0.0.1", api_key: str | None = "AIza-test") -> Request:
    headers = []
    if api_key:
        headers.append((b"x-youtube-api-key", api_key.encode()))
    return Request(
        {
            "type": "http",
            "method": "POST",
            "path": "/",
            "headers": headers,
            "client": (ip, 8000),
            "query_string": b"",
            "server": ("test", 80),
            "scheme": "http",
            "http_version": "1.1",
        }
    )


def handler_payload(exc):
    response = asyncio.run(main_module.analytics_error_handler(make_request(), exc))
    return response.status_code, json.loads(response.body)


@pytest.fixture(autouse=True)
def clear_rate_limits():
    main_module.API_RATE_LIMIT_BUCKETS.clear()
    yield
    main_module.API_RATE_LIMIT_BUCKETS.clear()


def catalog():
    return {
        "s0": make_item("s0", views=5000, duration="PT30S"),
        "s1": make_item("s1", views=3000, duration="PT8M"),
        "s2": make_item("s2", views=9000, duration="PT25M"),
    }


def test_analyze_filters_and_sorts(monkeypatch, make_fetcher):
    fetcher, _ = make_fetcher({"search": search_route(3), "videos": videos_route(catalog())})
    monkeypatch.setattr(main_module, "build_fetcher", lambda _key: fetcher)

    payload = main_module.analyze(
        main_module.AnalyzeRequest(query="street food", limit=10, content_type="long", sort="popular"),
        make_request(),
    )

    assert [v.id for v in payload["items"]] == ["s2", "s1"]
    assert payload["meta"]["total_found"] == 3
    assert payload["meta"]["filtered_count"] == 2
    assert payload["meta"]["channel_title"] == "Search results"
    # Insights cover the whole fetched list, not the filtered view.
    assert payload["meta"]["insights"].video_count == 3
    assert payload["meta"]["insights"].shorts_count == 1
    assert "used" in payload["meta"]["quota"]


def test_analyze_rejects_unknown_sort(monkeypatch):
    monkeypatch.setattr(main_module, "build_fetcher", lambda _key: pytest.fail("should not fetch"))

    with pytest.raises(HTTPException) as excinfo:
        main_module.analyze(main_module.AnalyzeRequest(query="music", sort="random"), make_request())
    assert excinfo.value.status_code == 400


def test_missing_api_key(monkeypatch):
    monkeypatch.setattr(main_module, "settings", Settings(youtube_api_key=""))

    with pytest.raises(HTTPException) as excinfo:
        main_module.analyze(main_module.AnalyzeRequest(query="music"), make_request(api_key=None))
    assert excinfo.value.status_code == 400


def test_rate_limit(monkeypatch, make_fetcher):
    fetcher, _ = make_fetcher({"search": search_route(3), "videos": videos_route()})
    monkeypatch.setattr(main_module, "build_fetcher", lambda _key: fetcher)
    monkeypatch.setattr(main_module, "API_RATE_LIMIT_MAX_REQUESTS", 2)
    request = make_request(ip="10.0.0.9")

    main_module.analyze(main_module.AnalyzeRequest(query="music"), request)
    main_module.analyze(main_module.AnalyzeRequest(query="music"), request)
    with pytest.raises(HTTPException) as excinfo:
        main_module.analyze(main_module.AnalyzeRequest(query="music"), request)
    assert excinfo.value.status_code == 429


def test_resolve_endpoint(monkeypatch, make_fetcher):
    channel_id = "UC" + "c" * 22
    fetcher, _ = make_fetcher({"channels": lambda _p: {"items": [{"id": channel_id, "snippet": {"title": "Cee"}}]}})
    monkeypatch.setattr(main_module, "build_fetcher", lambda _key: fetcher)

    payload = main_module.resolve_query(main_module.ResolveRequest(query="@creator"), make_request())
    assert payload == {"query": "@creator", "kind": "channel", "channel_id": channel_id, "title": "Cee"}

    playlist = main_module.resolve_query(
        main_module.ResolveRequest(query="https://x.com/list?v=abc&list=PL123"), make_request()
    )
    assert playlist["kind"] == "playlist"
    assert playlist["playlist_id"] == "PL123"


def test_resolve_failure_propagates(monkeypatch, make_fetcher):
    fetcher, _ = make_fetcher({})
    monkeypatch.setattr(main_module, "build_fetcher", lambda _key: fetcher)

    with pytest.raises(ResolutionFailure):
        main_module.resolve_query(main_module.ResolveRequest(query="@ghost"), make_request())


def test_error_handlers_map_status_codes():
    assert handler_payload(ResolutionFailure("nope")) == (404, {"detail": "nope", "error_code": "not_found"})
    assert handler_payload(FetchCancelled("stop"))[0] == 499
    assert handler_payload(UpstreamTransportFailure("down", status_code=500))[0] == 502

    response = asyncio.run(main_module.youtube_quota_exceeded_handler(make_request(), QuotaExceededError("q")))
    assert response.status_code == 429
    assert json.loads(response.body)["error_code"] == "youtube_quota_exhausted"


def test_quota_rejection_surfaces_as_quota_error(monkeypatch, make_fetcher):
    body = {"error": {"message": "quota", "errors": [{"reason": "quotaExceeded"}]}}
    fetcher, _ = make_fetcher({"search": lambda _p: FakeResponse(body, status_code=403)})
    monkeypatch.setattr(main_module, "build_fetcher", lambda _key: fetcher)

    with pytest.raises(QuotaExceededError):
        main_module.analyze(main_module.AnalyzeRequest(query="music"), make_request())


def test_trending_endpoint(monkeypatch, make_fetcher):
    def videos(params):
        if params.get("chart") == "mostPopular":
            return {"items": [{"id": "t1"}]}
        return videos_route()(params)

    fetcher, _ = make_fetcher({"videos": videos})
    monkeypatch.setattr(main_module, "build_fetcher", lambda _key: fetcher)

    payload = main_module.trending(make_request(), region="jp", limit=5)
    assert payload["meta"]["region"] == "JP"
    assert [v.id for v in payload["items"]] == ["t1"]


def test_scores_endpoint():
    videos = [VideoRecord(id=f"v{i}", view_count=i * 100, like_count=i, engagement_rate=float(i)) for i in range(1, 6)]

    payload = main_module.scores(main_module.ScoresRequest(videos=videos, top=2))

    assert len(payload["items"]) == 5
    assert len(payload["top_titles"]) == 2
    assert sum(payload["title_grades"].values()) == 5
    titles = [s.title_score.total_score for s in payload["items"]]
    assert payload["averages"]["avg_title_score"] == round(sum(titles) / len(titles))


def test_naive_timestamps_are_accepted():
    body = {"videos": [{"id": "a", "view_count": 10, "published_at_date": "2024-05-01T10:00:00"}]}

    scored = main_module.scores(main_module.ScoresRequest.model_validate(body))
    schedule = main_module.schedule(main_module.ScheduleRequest.model_validate(body))

    assert scored["items"][0].thumbnail_score.recency_bonus == 30
    assert schedule["best_labels"] == ["Wed 10am"]


def test_scores_requires_videos():
    with pytest.raises(HTTPException) as excinfo:
        main_module.scores(main_module.ScoresRequest(videos=[]))
    assert excinfo.value.status_code == 400


def test_title_score_endpoint():
    payload = main_module.title_score(main_module.TitleScoreRequest(titles=["Top 5 AMAZING Tricks 😀", "a"]))

    assert payload["items"][0]["result"].total_score == 55
    assert payload["summary"].best_title["title"] == "Top 5 AMAZING Tricks 😀"


def test_content_gap_endpoint():
    payload = main_module.content_gap(
        main_module.ContentGapRequest(
            channel_videos=[VideoRecord(id="c", tags=["gardening"])],
            trending_videos=[VideoRecord(id="t", tags=["minecraft"], view_count=10)],
        )
    )

    assert payload["result"].overlap_percentage == 0
    assert payload["categories"] == {"Gaming": ["minecraft"]}


def test_schedule_endpoint():
    videos = [VideoRecord.model_validate({"id": "a", "published_at_date": "2024-01-07T10:00:00Z", "view_count": 10})]

    payload = main_module.schedule(main_module.ScheduleRequest(videos=videos, utc_offset_minutes=120))

    assert payload["best_labels"] == ["Sun 12pm"]


def test_benchmark_endpoint():
    payload = main_module.benchmark(
        main_module.BenchmarkRequest(
            first=[VideoRecord(id="a", tags=["cooking"]), VideoRecord(id="a2", tags=["baking"])],
            second=[VideoRecord(id="b", tags=["cooking"]), VideoRecord(id="b2", tags=["grill"])],
        )
    )
    assert payload["result"].shared_tags == ["cooking"]


def test_insights_endpoint():
    videos = [
        VideoRecord(id="a", engagement_rate=2.0, is_short=True, tags=["Vlog"]),
        VideoRecord(id="b", engagement_rate=15.0, is_outlier=True, tags=["vlog", "Vlog"]),
    ]

    result = main_module.insights(main_module.VideosRequest(videos=videos))["result"]

    assert (result.shorts_count, result.long_count, result.outlier_count) == (1, 1, 1)
    assert result.avg_engagement_rate == 8.5
    assert [t.tag for t in result.tag_cloud] == ["Vlog", "vlog"]

    with pytest.raises(HTTPException):
        main_module.insights(main_module.VideosRequest(videos=[]))


def test_health_and_quota():
    assert main_module.health() == {"ok": True}
    assert set(main_module.quota()) == {"date", "used", "limit", "remaining", "exceeded"}


def test_parse_cors_origins():
    assert parse_cors_origins("*") == (["*"], False)
    assert parse_cors_origins("https://a.example, https://b.example") == (
        ["https://a.example", "https://b.example"],
        True,
    )
    assert parse_cors_origins("") == (["http://localhost:5173"], True)
