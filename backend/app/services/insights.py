from collections import Counter
from typing import Sequence

from pydantic import BaseModel, Field

from backend.app.core.numbers import round_to
from backend.app.services.normalizer import VideoRecord

TAG_CLOUD_SIZE = 20


class TagCount(BaseModel):
    tag: str
    count: int


class ChannelInsights(BaseModel):
    video_count: int = 0
    avg_engagement_rate: float = 0.0
    outlier_count: int = 0
    shorts_count: int = 0
    long_count: int = 0
    tag_cloud: list[TagCount] = Field(default_factory=list)


def tag_cloud(videos: Sequence[VideoRecord], size: int = TAG_CLOUD_SIZE) -> list[TagCount]:
    """Most used tags, counted on the exact tag text (no case folding)."""
    counts = Counter(tag for video in videos for tag in video.tags)
    return [TagCount(tag=tag, count=count) for tag, count in counts.most_common(size)]


def channel_insights(videos: Sequence[VideoRecord]) -> ChannelInsights:
    if not videos:
        return ChannelInsights()
    shorts = sum(1 for video in videos if video.is_short)
    return ChannelInsights(
        video_count=len(videos),
        avg_engagement_rate=round_to(sum(video.engagement_rate for video in videos) / len(videos), 2),
        outlier_count=sum(1 for video in videos if video.is_outlier),
        shorts_count=shorts,
        long_count=len(videos) - shorts,
        tag_cloud=tag_cloud(videos),
    )
