from collections import Counter
from typing import Sequence

from pydantic import BaseModel, Field

from backend.app.core.numbers import round_to
from backend.app.services.normalizer import VideoRecord

TOP_TAGS = 20
MIN_VIDEOS = 2


class ChannelMetrics(BaseModel):
    uploads_per_week: float = 0.0
    avg_engagement_rate: float = 0.0
    top_tags: list[str] = Field(default_factory=list)


class BenchmarkResult(BaseModel):
    first: ChannelMetrics
    second: ChannelMetrics
    shared_tags: list[str] = Field(default_factory=list)
    unique_to_first: list[str] = Field(default_factory=list)
    unique_to_second: list[str] = Field(default_factory=list)


def channel_metrics(videos: Sequence[VideoRecord]) -> ChannelMetrics:
    if len(videos) < MIN_VIDEOS:
        return ChannelMetrics()

    dates = sorted((v.published_at_date for v in videos if v.published_at_date is not None), reverse=True)
    weeks = (dates[0] - dates[-1]).total_seconds() / (7 * 86400) if dates else 0
    frequency = len(videos) / weeks if weeks > 0 else 0.0

    tags = Counter(tag.lower() for v in videos for tag in v.tags)
    return ChannelMetrics(
        uploads_per_week=round_to(frequency, 2),
        avg_engagement_rate=round_to(sum(v.engagement_rate for v in videos) / len(videos), 2),
        top_tags=[tag for tag, _ in tags.most_common(TOP_TAGS)],
    )


def benchmark_channels(first: Sequence[VideoRecord], second: Sequence[VideoRecord]) -> BenchmarkResult:
    a, b = channel_metrics(first), channel_metrics(second)
    tags_a, tags_b = set(a.top_tags), set(b.top_tags)
    return BenchmarkResult(
        first=a,
        second=b,
        shared_tags=[t for t in a.top_tags if t in tags_b],
        unique_to_first=[t for t in a.top_tags if t not in tags_b],
        unique_to_second=[t for t in b.top_tags if t not in tags_a],
    )
