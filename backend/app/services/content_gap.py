import re
from collections import Counter
from dataclasses import dataclass
from typing import Sequence

from pydantic import BaseModel, Field

from backend.app.core.numbers import round_half_up
from backend.app.services.normalizer import VideoRecord

NON_WORD_RE = re.compile(r"[^\w\s]", re.ASCII)
WHITESPACE_RE = re.compile(r"\s+")

CATEGORY_KEYWORDS = {
    "Tutorial & How-to": ("tutorial", "cara", "how", "guide", "tips", "belajar", "learn"),
    "Entertainment": ("funny", "lucu", "comedy", "prank", "challenge", "reaction"),
    "Gaming": ("game", "gameplay", "gaming", "play", "minecraft", "mobile legends", "ff"),
    "Lifestyle": ("life", "vlog", "daily", "routine", "day in", "story"),
    "Technology": ("tech", "review", "unboxing", "gadget", "phone", "laptop"),
    "Music": ("music", "song", "cover", "lagu", "karaoke", "remix"),
    "Education": ("education", "learn", "study", "school", "science", "math"),
    "News & Current": ("news", "berita", "update", "breaking", "terbaru"),
}


@dataclass(frozen=True)
class GapConfig:
    channel_top_n: int = 30
    trending_top_n: int = 50
    missing_top_n: int = 15
    recommendations_n: int = 5
    min_tag_length: int = 3
    min_title_word_length: int = 4


DEFAULT_GAP = GapConfig()


class MissingTopic(BaseModel):
    topic: str
    frequency: int
    trend_score: int


class Recommendation(BaseModel):
    topic: str
    reason: str
    potential_views: str


class ContentGapResult(BaseModel):
    missing_topics: list[MissingTopic] = Field(default_factory=list)
    channel_topics: list[str] = Field(default_factory=list)
    trending_topics: list[str] = Field(default_factory=list)
    overlap_percentage: int = Field(default=0, ge=0, le=100)
    recommendations: list[Recommendation] = Field(default_factory=list)


def extract_topics(videos: Sequence[VideoRecord], config: GapConfig = DEFAULT_GAP) -> Counter:
    """Count tags and adjacent title-word pairs, once per occurrence."""
    topics: Counter = Counter()
    for video in videos:
        for tag in video.tags:
            normalized = tag.lower().strip()
            if len(normalized) >= config.min_tag_length:
                topics[normalized] += 1

        words = [
            w
            for w in WHITESPACE_RE.split(NON_WORD_RE.sub(" ", video.title.lower()))
            if len(w) >= config.min_title_word_length
        ]
        for first, second in zip(words, words[1:]):
            topics[f"{first} {second}"] += 1
    return topics


def _top(topics: Counter, n: int) -> list[str]:
    # Stable sort keeps first-seen order among equal counts.
    return [topic for topic, _ in sorted(topics.items(), key=lambda kv: kv[1], reverse=True)[:n]]


def topic_potential(topic: str, trending: Sequence[VideoRecord]) -> float:
    """Mean views of trending videos mentioning the topic in a tag or the title."""
    needle = topic.lower()
    matching = [
        v.view_count
        for v in trending
        if any(needle in tag.lower() for tag in v.tags) or needle in v.title.lower()
    ]
    if not matching:
        return 0
    return sum(matching) / len(matching)


def format_potential_views(views: float) -> str:
    if views >= 1_000_000:
        return f"{views / 1_000_000:.1f}M+ potential views"
    if views >= 1_000:
        return f"{round_half_up(views / 1_000)}K+ potential views"
    return f"{round_half_up(views)} potential views"


def analyze_content_gap(
    channel_videos: Sequence[VideoRecord],
    trending_videos: Sequence[VideoRecord],
    config: GapConfig = DEFAULT_GAP,
) -> ContentGapResult:
    channel_counts = extract_topics(channel_videos, config)
    trending_counts = extract_topics(trending_videos, config)

    channel_topics = _top(channel_counts, config.channel_top_n)
    trending_topics = _top(trending_counts, config.trending_top_n)
    channel_set = set(channel_topics)

    missing_raw = [t for t in trending_topics if t not in channel_set]
    if trending_topics:
        overlap = round_half_up(100 * (len(trending_topics) - len(missing_raw)) / len(trending_topics))
    else:
        # Nothing trending to miss: the channel trivially covers it.
        overlap = 100

    potentials = {topic: topic_potential(topic, trending_videos) for topic in missing_raw}
    missing = sorted(
        (
            MissingTopic(
                topic=topic,
                frequency=trending_counts[topic],
                trend_score=round_half_up(trending_counts[topic] * 10 + potentials[topic] / 10000),
            )
            for topic in missing_raw
        ),
        key=lambda m: m.trend_score,
        reverse=True,
    )[: config.missing_top_n]

    recommendations = [
        Recommendation(
            topic=item.topic,
            reason=f"Trending in {item.frequency} videos but missing from your channel",
            potential_views=format_potential_views(potentials[item.topic]),
        )
        for item in missing[: config.recommendations_n]
    ]
    return ContentGapResult(
        missing_topics=missing,
        channel_topics=channel_topics,
        trending_topics=trending_topics,
        overlap_percentage=overlap,
        recommendations=recommendations,
    )


def categorize_topics(topics: Sequence[str]) -> dict[str, list[str]]:
    categories: dict[str, list[str]] = {}
    for topic in topics:
        for category, keywords in CATEGORY_KEYWORDS.items():
            if any(kw in topic for kw in keywords):
                categories.setdefault(category, []).append(topic)
                break
        else:
            categories.setdefault("Other", []).append(topic)
    return categories
