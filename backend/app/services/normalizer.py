"""Raw Data API items -> canonical records.

Everything here is pure: no network, no quota. Missing or malformed upstream
fields fall back to zero/empty values instead of raising.
"""
import re
from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from backend.app.core.numbers import format_number, round_to

THUMBNAIL_QUALITY_ORDER = ("maxres", "standard", "high", "medium", "default")
SHORT_MAX_SECONDS = 60
OUTLIER_SUBSCRIBER_RATIO = 1.5
OUTLIER_ENGAGEMENT_RATE = 12.0

DURATION_RE = re.compile(r"PT(?:(\d+)H)?(?:(\d+)M)?(?:(\d+)S)?")


class VideoRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    title: str = ""
    description: str = ""
    thumbnail_url: str = ""
    views: str = "0"
    view_count: int = 0
    likes: str = "0"
    like_count: int = 0
    comments: str = "0"
    comment_count: int = 0
    engagement_rate: float = Field(default=0.0, ge=0)
    tags: list[str] = Field(default_factory=list)
    published_at: str = ""
    published_at_date: datetime | None = None
    published_time_ago: str = ""
    duration_seconds: int = 0
    duration_formatted: str = "0:00"
    channel_id: str = ""
    channel_title: str = ""
    is_short: bool = False
    is_outlier: bool = False

    @field_validator("published_at_date")
    @classmethod
    def assume_utc(cls, value: datetime | None) -> datetime | None:
        # Upstream timestamps are UTC.
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value


class ChannelStats(BaseModel):
    subscriber_count: str = "0"
    subscriber_count_raw: int = 0
    view_count: str = "0"
    view_count_raw: int = 0
    video_count: str = "0"
    video_count_raw: int = 0
    title: str = ""
    custom_url: str = ""
    description: str = ""
    avatar: str = ""
    banner: str = ""


class AnalyzedData(BaseModel):
    videos: list[VideoRecord] = Field(default_factory=list)
    channel_title: str = ""
    channel_id: str = ""
    channel_stats: ChannelStats | None = None
    total_found: int = 0


def iso8601_duration_to_seconds(duration: str) -> int:
    if not isinstance(duration, str):
        return 0
    match = DURATION_RE.match(duration)
    if not match:
        return 0
    hours = int(match.group(1) or 0)
    minutes = int(match.group(2) or 0)
    seconds = int(match.group(3) or 0)
    return hours * 3600 + minutes * 60 + seconds


def format_duration(seconds: int) -> str:
    h, rest = divmod(max(0, int(seconds)), 3600)
    m, s = divmod(rest, 60)
    if h > 0:
        return f"{h}:{m:02d}:{s:02d}"
    return f"{m}:{s:02d}"


def parse_iso8601_datetime(value: str):
    if not value or not isinstance(value, str):
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def time_ago(published: datetime | None, now: datetime | None = None) -> str:
    if published is None:
        return ""
    now = now or datetime.now(timezone.utc)
    seconds = (now - published).total_seconds()
    for unit_seconds, unit in ((31536000, "year"), (2592000, "month"), (86400, "day"), (3600, "hour")):
        interval = seconds / unit_seconds
        if interval > 1:
            count = int(interval)
            return f"{count} {unit}{'' if count == 1 else 's'} ago"
    return "Just now"


def best_thumbnail_object(thumbnails: dict) -> dict | None:
    for key in THUMBNAIL_QUALITY_ORDER:
        t = thumbnails.get(key)
        if t and "url" in t:
            return t
    return None


def best_thumbnail_url(thumbnails: dict) -> str:
    thumb_obj = best_thumbnail_object(thumbnails or {})
    if thumb_obj is None:
        return ""
    return thumb_obj.get("url") or ""


def _count(value: Any) -> int:
    try:
        return max(0, int(value or 0))
    except (TypeError, ValueError):
        try:
            return max(0, int(float(value)))
        except (TypeError, ValueError):
            return 0


def engagement_rate(views: int, likes: int, comments: int) -> float:
    if views <= 0:
        return 0.0
    return round_to((likes + comments) / views * 100, 2)


def is_outlier(views: int, er: float, subscriber_count: int | None = None) -> bool:
    # Channel-relative when subscribers are known, engagement-only otherwise.
    if subscriber_count:
        return views > subscriber_count * OUTLIER_SUBSCRIBER_RATIO
    return er > OUTLIER_ENGAGEMENT_RATE


def normalize_video(
    item: dict[str, Any],
    subscriber_count: int | None = None,
    now: datetime | None = None,
) -> VideoRecord:
    snippet = item.get("snippet") or {}
    statistics = item.get("statistics") or {}
    details = item.get("contentDetails") or {}

    views = _count(statistics.get("viewCount"))
    likes = _count(statistics.get("likeCount"))
    comments = _count(statistics.get("commentCount"))
    er = engagement_rate(views, likes, comments)
    duration = iso8601_duration_to_seconds(details.get("duration", ""))
    published_raw = snippet.get("publishedAt") or ""
    published = parse_iso8601_datetime(published_raw)
    tags = snippet.get("tags") or []

    return VideoRecord(
        id=str(item.get("id") or ""),
        title=snippet.get("title") or "",
        description=snippet.get("description") or "",
        thumbnail_url=best_thumbnail_url(snippet.get("thumbnails") or {}),
        views=format_number(views),
        view_count=views,
        likes=format_number(likes),
        like_count=likes,
        comments=format_number(comments),
        comment_count=comments,
        engagement_rate=er,
        tags=[str(tag) for tag in tags if isinstance(tag, str)],
        published_at=published_raw,
        published_at_date=published,
        published_time_ago=time_ago(published, now),
        duration_seconds=duration,
        duration_formatted=format_duration(duration),
        channel_id=snippet.get("channelId") or "",
        channel_title=snippet.get("channelTitle") or "",
        is_short=duration <= SHORT_MAX_SECONDS,
        is_outlier=is_outlier(views, er, subscriber_count),
    )


def normalize_videos(
    items: list[dict[str, Any]],
    subscriber_count: int | None = None,
    now: datetime | None = None,
) -> list[VideoRecord]:
    now = now or datetime.now(timezone.utc)
    return [normalize_video(item, subscriber_count, now) for item in items if item.get("id")]


def normalize_channel(item: dict[str, Any]) -> ChannelStats:
    snippet = item.get("snippet") or {}
    statistics = item.get("statistics") or {}
    branding = item.get("brandingSettings") or {}
    subscribers = _count(statistics.get("subscriberCount"))
    views = _count(statistics.get("viewCount"))
    videos = _count(statistics.get("videoCount"))
    return ChannelStats(
        subscriber_count=format_number(subscribers),
        subscriber_count_raw=subscribers,
        view_count=format_number(views),
        view_count_raw=views,
        video_count=format_number(videos),
        video_count_raw=videos,
        title=snippet.get("title") or "",
        custom_url=snippet.get("customUrl") or "",
        description=snippet.get("description") or "",
        avatar=((snippet.get("thumbnails") or {}).get("high") or {}).get("url") or "",
        banner=(branding.get("image") or {}).get("bannerExternalUrl") or "",
    )
