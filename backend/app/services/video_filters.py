from datetime import datetime, timezone
from typing import Sequence

from backend.app.services.normalizer import VideoRecord

CONTENT_TYPES = {"all", "long", "shorts"}
DURATION_RANGES = {"all", "under_1", "1_5", "5_20", "over_20"}
SORT_OPTIONS = {"newest", "oldest", "popular", "most_liked", "highest_er"}

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def matches_duration(seconds: int, duration_range: str) -> bool:
    if duration_range == "under_1":
        return seconds < 60
    if duration_range == "1_5":
        return 60 <= seconds <= 300
    if duration_range == "5_20":
        return 300 < seconds <= 1200
    if duration_range == "over_20":
        return seconds > 1200
    return True


def matches_content_type(video: VideoRecord, content_type: str) -> bool:
    if content_type == "shorts":
        return video.is_short
    if content_type == "long":
        return not video.is_short
    return True


def filter_videos(
    videos: Sequence[VideoRecord],
    content_type: str = "all",
    min_views: int = 0,
    min_likes: int = 0,
    duration_range: str = "all",
) -> list[VideoRecord]:
    if content_type not in CONTENT_TYPES:
        raise ValueError("content_type must be one of: all, long, shorts")
    if duration_range not in DURATION_RANGES:
        raise ValueError("duration_range must be one of: all, under_1, 1_5, 5_20, over_20")
    return [
        v
        for v in videos
        if v.view_count >= min_views
        and v.like_count >= min_likes
        and matches_duration(v.duration_seconds, duration_range)
        and matches_content_type(v, content_type)
    ]


def sort_videos(videos: Sequence[VideoRecord], sort_option: str = "popular") -> list[VideoRecord]:
    if sort_option == "popular":
        return sorted(videos, key=lambda v: v.view_count, reverse=True)
    if sort_option == "most_liked":
        return sorted(videos, key=lambda v: v.like_count, reverse=True)
    if sort_option == "highest_er":
        return sorted(videos, key=lambda v: v.engagement_rate, reverse=True)
    if sort_option == "newest":
        return sorted(videos, key=lambda v: v.published_at_date or _EPOCH, reverse=True)
    if sort_option == "oldest":
        return sorted(videos, key=lambda v: v.published_at_date or _EPOCH)
    raise ValueError("sort must be one of: newest, oldest, popular, most_liked, highest_er")
