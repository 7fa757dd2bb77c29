import logging
import time
from collections import deque
from datetime import datetime, timedelta, timezone
from typing import Any

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from backend.app.core.config import configure_logging, settings
from backend.app.core.errors import (
    AnalyticsError,
    FetchCancelled,
    NotFoundError,
    QuotaExceededError,
    UpstreamTransportFailure,
)
from backend.app.services.benchmark import benchmark_channels
from backend.app.services.content_gap import analyze_content_gap, categorize_topics
from backend.app.services.fetcher import VideoFetcher
from backend.app.services.insights import channel_insights
from backend.app.services.ledger import JsonFileStore, MemoryStore, QuotaLedger, ResponseCache
from backend.app.services.normalizer import VideoRecord
from backend.app.services.performance_score import average_scores, grade_distribution, score_all_videos
from backend.app.services.resolver import ChannelQuery, EntityResolver, PlaylistQuery
from backend.app.services.title_score import analyze_title_text, summarize_titles
from backend.app.services.upload_schedule import analyze_upload_schedule
from backend.app.services.video_filters import (
    CONTENT_TYPES,
    DURATION_RANGES,
    SORT_OPTIONS,
    filter_videos,
    sort_videos,
)
from backend.app.services.youtube_client import YouTubeClient

logger = logging.getLogger(__name__)

API_RATE_LIMIT_WINDOW_SECONDS = 60
API_RATE_LIMIT_MAX_REQUESTS = 30
API_RATE_LIMIT_BUCKETS: dict[str, deque] = {}

API_KEY_HEADER = "x-youtube-api-key"
MAX_FETCH_LIMIT = 5000


# ---------------------------
# Shared ledger & cache
# ---------------------------

def build_store():
    if settings.ledger_store_file:
        return JsonFileStore(settings.ledger_store_file)
    return MemoryStore()


STORE = build_store()
LEDGER = QuotaLedger(STORE, daily_limit=settings.quota_per_day)
CACHE = ResponseCache(STORE, ttl_seconds=settings.cache_ttl_seconds)
LEDGER.subscribe(lambda used: logger.debug("Quota meter updated: %d units today", used))


def build_fetcher(api_key: str) -> VideoFetcher:
    client = YouTubeClient(api_key, LEDGER, timeout=settings.http_timeout_seconds)
    return VideoFetcher(client, cache=CACHE, resolver=EntityResolver(client))


# ---------------------------
# Request models
# ---------------------------

class ResolveRequest(BaseModel):
    query: str


class AnalyzeRequest(BaseModel):
    query: str
    limit: int = Field(default=50, ge=1, le=MAX_FETCH_LIMIT)
    content_type: str = "all"
    sort: str = "popular"
    min_views: int = Field(default=0, ge=0)
    min_likes: int = Field(default=0, ge=0)
    duration_range: str = "all"


class VideosRequest(BaseModel):
    videos: list[VideoRecord] = Field(default_factory=list)


class ScoresRequest(VideosRequest):
    top: int = Field(default=10, ge=1, le=500)


class TitleScoreRequest(BaseModel):
    titles: list[str] = Field(default_factory=list)


class ContentGapRequest(BaseModel):
    channel_videos: list[VideoRecord] = Field(default_factory=list)
    trending_videos: list[VideoRecord] = Field(default_factory=list)


class ScheduleRequest(VideosRequest):
    utc_offset_minutes: int = Field(default=0, ge=-14 * 60, le=14 * 60)


class BenchmarkRequest(BaseModel):
    first: list[VideoRecord] = Field(default_factory=list)
    second: list[VideoRecord] = Field(default_factory=list)


# ---------------------------
# Helpers
# ---------------------------

def get_client_ip(request: Request) -> str:
    forwarded = (request.headers.get("x-forwarded-for") or "").strip()
    if forwarded:
        return forwarded.split(",")[0].strip()
    if request.client and request.client.host:
        return request.client.host
    return "unknown"


def enforce_api_rate_limit(request: Request, scope: str = "youtube") -> None:
    now_ts = time.time()
    key = f"{scope}:{get_client_ip(request)}"
    bucket = API_RATE_LIMIT_BUCKETS.get(key)
    if bucket is None:
        bucket = deque()
        API_RATE_LIMIT_BUCKETS[key] = bucket

    cutoff = now_ts - API_RATE_LIMIT_WINDOW_SECONDS
    while bucket and bucket[0] < cutoff:
        bucket.popleft()

    if len(bucket) >= API_RATE_LIMIT_MAX_REQUESTS:
        raise HTTPException(
            status_code=429,
            detail="Too many requests. Please wait a minute and try again.",
        )

    bucket.append(now_ts)


def require_api_key(request: Request) -> str:
    api_key = (request.headers.get(API_KEY_HEADER) or settings.youtube_api_key or "").strip()
    if not api_key:
        raise HTTPException(status_code=400, detail="A YouTube API key is required.")
    return api_key


def require_videos(videos: list[VideoRecord]) -> None:
    if not videos:
        raise HTTPException(status_code=400, detail="videos must contain at least one video")


# ---------------------------
# App setup
# ---------------------------

app = FastAPI()

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=settings.cors_credentials,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(QuotaExceededError)
async def youtube_quota_exceeded_handler(_request: Request, _exc: QuotaExceededError):
    return JSONResponse(
        status_code=429,
        content={
            "detail": "YouTube API quota is currently exhausted. Showing cached data where available.",
            "error_code": "youtube_quota_exhausted",
        },
    )


@app.exception_handler(AnalyticsError)
async def analytics_error_handler(_request: Request, exc: AnalyticsError):
    if isinstance(exc, NotFoundError):
        status_code, error_code = 404, "not_found"
    elif isinstance(exc, FetchCancelled):
        status_code, error_code = 499, "cancelled"
    elif isinstance(exc, UpstreamTransportFailure):
        status_code, error_code = 502, "upstream_unavailable"
    else:
        status_code, error_code = 500, "analytics_error"
    return JSONResponse(status_code=status_code, content={"detail": str(exc), "error_code": error_code})


@app.on_event("startup")
def on_startup_configure_logging():
    configure_logging(settings.log_level)


# ---------------------------
# Endpoints
# ---------------------------

@app.get("/health")
def health():
    return {"ok": True}


@app.get("/quota")
def quota():
    return LEDGER.status()


@app.post("/resolve")
def resolve_query(payload: ResolveRequest, request: Request):
    query = (payload.query or "").strip()
    if not query:
        raise HTTPException(status_code=400, detail="query is required")
    enforce_api_rate_limit(request, scope="resolve")
    resolved = build_fetcher(require_api_key(request)).resolver.resolve(query)
    if isinstance(resolved, PlaylistQuery):
        return {"query": query, "kind": "playlist", "playlist_id": resolved.playlist_id}
    if isinstance(resolved, ChannelQuery):
        return {"query": query, "kind": "channel", "channel_id": resolved.channel_id, "title": resolved.title}
    return {"query": query, "kind": "search", "term": resolved.term}


@app.post("/analyze")
def analyze(payload: AnalyzeRequest, request: Request):
    query = (payload.query or "").strip()
    if not query:
        raise HTTPException(status_code=400, detail="query is required")
    enforce_api_rate_limit(request, scope="analyze")

    if payload.content_type not in CONTENT_TYPES:
        raise HTTPException(status_code=400, detail="content_type must be one of: all, long, shorts")
    if payload.duration_range not in DURATION_RANGES:
        raise HTTPException(status_code=400, detail="duration_range must be one of: all, under_1, 1_5, 5_20, over_20")
    if payload.sort not in SORT_OPTIONS:
        raise HTTPException(status_code=400, detail="sort must be one of: newest, oldest, popular, most_liked, highest_er")

    data = build_fetcher(require_api_key(request)).fetch_videos(query, payload.limit)
    items = filter_videos(
        data.videos,
        content_type=payload.content_type,
        min_views=payload.min_views,
        min_likes=payload.min_likes,
        duration_range=payload.duration_range,
    )
    return {
        "items": sort_videos(items, payload.sort),
        "meta": {
            "channel_title": data.channel_title,
            "channel_id": data.channel_id,
            "channel_stats": data.channel_stats,
            "total_found": data.total_found,
            "filtered_count": len(items),
            "insights": channel_insights(data.videos),
            "quota": LEDGER.status(),
        },
    }


@app.get("/trending")
def trending(request: Request, region: str | None = None, limit: int = 50):
    limit = max(1, min(limit, 200))
    region_code = (region or settings.default_region_code).upper()
    enforce_api_rate_limit(request, scope="trending")
    data = build_fetcher(require_api_key(request)).fetch_trending(limit, region_code)
    return {
        "items": data.videos,
        "meta": {"channel_title": data.channel_title, "total_found": data.total_found, "region": region_code},
    }


@app.post("/scores")
def scores(payload: ScoresRequest):
    require_videos(payload.videos)
    # The full submitted list is the comparison population; never a filtered subset.
    scored = score_all_videos(payload.videos)
    return {
        "items": scored,
        "top_titles": sorted(scored, key=lambda s: s.title_score.total_score, reverse=True)[: payload.top],
        "top_thumbnails": sorted(scored, key=lambda s: s.thumbnail_score.total_score, reverse=True)[: payload.top],
        "averages": average_scores(scored),
        "title_grades": grade_distribution([s.title_score for s in scored]),
        "thumbnail_grades": grade_distribution([s.thumbnail_score for s in scored]),
    }


@app.post("/title-score")
def title_score(payload: TitleScoreRequest):
    if not payload.titles:
        raise HTTPException(status_code=400, detail="titles must contain at least one title")
    return {
        "items": [{"title": title, "result": analyze_title_text(title)} for title in payload.titles],
        "summary": summarize_titles(payload.titles),
    }


@app.post("/content-gap")
def content_gap(payload: ContentGapRequest):
    if not payload.channel_videos or not payload.trending_videos:
        raise HTTPException(status_code=400, detail="channel_videos and trending_videos are both required")
    result = analyze_content_gap(payload.channel_videos, payload.trending_videos)
    return {
        "result": result,
        "categories": categorize_topics([m.topic for m in result.missing_topics]),
    }


@app.post("/schedule")
def schedule(payload: ScheduleRequest):
    require_videos(payload.videos)
    tz = timezone(timedelta(minutes=payload.utc_offset_minutes))
    report = analyze_upload_schedule(payload.videos, tz=tz, now=datetime.now(timezone.utc))
    return {
        "report": report,
        "best_labels": [cell.label for cell in report.best_slots],
        "worst_labels": [cell.label for cell in report.worst_slots],
    }


@app.post("/benchmark")
def benchmark(payload: BenchmarkRequest) -> dict[str, Any]:
    if not payload.first or not payload.second:
        raise HTTPException(status_code=400, detail="both channels need at least one video")
    return {"result": benchmark_channels(payload.first, payload.second)}


@app.post("/insights")
def insights(payload: VideosRequest):
    require_videos(payload.videos)
    return {"result": channel_insights(payload.videos)}
