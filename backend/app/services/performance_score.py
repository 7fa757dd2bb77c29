"""Percentile-relative title and thumbnail scores.

A score only means something against the population it was computed with.
Every scoring call therefore takes a ``ComparisonSet`` built from the full
list of videos being compared; rebuild it whenever that list changes.
"""
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Sequence

import numpy as np
from pydantic import BaseModel, Field

from backend.app.core.numbers import round_half_up
from backend.app.services.normalizer import VideoRecord
from backend.app.services.title_score import analyze_title_text

GRADES = ("A", "B", "C", "D", "F")


@dataclass(frozen=True)
class ScoringConfig:
    # views, likes, engagement, text
    title_weights: tuple[float, float, float, float] = (0.35, 0.25, 0.20, 0.20)
    # views, engagement, recency
    thumbnail_weights: tuple[float, float, float] = (0.40, 0.30, 0.30)
    grade_thresholds: tuple[tuple[int, str], ...] = ((80, "A"), (60, "B"), (40, "C"), (20, "D"))
    # (minimum views per day, bonus), checked top-down
    recency_bands: tuple[tuple[int, int], ...] = (
        (100000, 100),
        (50000, 90),
        (10000, 80),
        (5000, 70),
        (1000, 60),
        (500, 50),
        (100, 40),
    )
    recency_floor: int = 30
    empty_set_percentile: int = 50


DEFAULT_SCORING = ScoringConfig()


class BreakdownItem(BaseModel):
    score: int
    max: int
    label: str


class PerformanceScore(BaseModel):
    total_score: int = Field(ge=0, le=100)
    grade: str
    views_percentile: int
    likes_percentile: int
    er_percentile: int
    text_score: int | None = None
    recency_bonus: int | None = None
    breakdown: dict[str, BreakdownItem]


class ScoredVideo(BaseModel):
    video: VideoRecord
    title_score: PerformanceScore
    thumbnail_score: PerformanceScore


class ComparisonSet:
    """Sorted metric arrays for one fixed population of videos."""

    def __init__(self, videos: Sequence[VideoRecord]) -> None:
        self.videos = tuple(videos)
        self.views = np.sort(np.array([v.view_count for v in self.videos], dtype=float))
        self.likes = np.sort(np.array([v.like_count for v in self.videos], dtype=float))
        self.engagement = np.sort(np.array([v.engagement_rate for v in self.videos], dtype=float))

    def __len__(self) -> int:
        return len(self.videos)

    @classmethod
    def coerce(cls, population: "ComparisonSet | Sequence[VideoRecord]") -> "ComparisonSet":
        if isinstance(population, cls):
            return population
        return cls(population)


def percentile(value: float, sorted_values: np.ndarray, empty_default: int = 50) -> int:
    """Share of the population strictly below the first element >= value.

    Ties all land on the rank of their first occurrence.
    """
    size = len(sorted_values)
    if size == 0:
        return empty_default
    index = int(np.searchsorted(sorted_values, value, side="left"))
    if index >= size:
        return 100
    return round_half_up(index / size * 100)


def grade_for(score: int, config: ScoringConfig = DEFAULT_SCORING) -> str:
    for minimum, grade in config.grade_thresholds:
        if score >= minimum:
            return grade
    return "F"


def recency_bonus(video: VideoRecord, now: datetime | None = None, config: ScoringConfig = DEFAULT_SCORING) -> int:
    now = now or datetime.now(timezone.utc)
    published = video.published_at_date
    if published is None:
        return config.recency_floor
    days = max(1, int((now - published).total_seconds() // 86400))
    views_per_day = video.view_count / days
    for minimum, bonus in config.recency_bands:
        if views_per_day >= minimum:
            return bonus
    return config.recency_floor


def title_performance_score(
    video: VideoRecord,
    population: ComparisonSet | Sequence[VideoRecord],
    config: ScoringConfig = DEFAULT_SCORING,
) -> PerformanceScore:
    population = ComparisonSet.coerce(population)
    w_views, w_likes, w_er, w_text = config.title_weights
    empty = config.empty_set_percentile

    views_pctl = percentile(video.view_count, population.views, empty)
    likes_pctl = percentile(video.like_count, population.likes, empty)
    er_pctl = percentile(video.engagement_rate, population.engagement, empty)
    text = analyze_title_text(video.title)
    text_score = text.normalized_score

    total = round_half_up(views_pctl * w_views + likes_pctl * w_likes + er_pctl * w_er + text_score * w_text)
    total = max(0, min(100, total))
    return PerformanceScore(
        total_score=total,
        grade=grade_for(total, config),
        views_percentile=views_pctl,
        likes_percentile=likes_pctl,
        er_percentile=er_pctl,
        text_score=text_score,
        breakdown={
            "views": BreakdownItem(
                score=round_half_up(views_pctl * w_views),
                max=round_half_up(100 * w_views),
                label=f"Top {100 - views_pctl}% in views",
            ),
            "likes": BreakdownItem(
                score=round_half_up(likes_pctl * w_likes),
                max=round_half_up(100 * w_likes),
                label=f"Top {100 - likes_pctl}% in likes",
            ),
            "engagement": BreakdownItem(
                score=round_half_up(er_pctl * w_er),
                max=round_half_up(100 * w_er),
                label=f"{video.engagement_rate}% engagement rate",
            ),
            "text": BreakdownItem(
                score=round_half_up(text_score * w_text),
                max=round_half_up(100 * w_text),
                label=text.suggestions[0] if text.suggestions else "Good title structure",
            ),
        },
    )


def thumbnail_performance_score(
    video: VideoRecord,
    population: ComparisonSet | Sequence[VideoRecord],
    config: ScoringConfig = DEFAULT_SCORING,
    now: datetime | None = None,
) -> PerformanceScore:
    population = ComparisonSet.coerce(population)
    w_views, w_er, w_recency = config.thumbnail_weights
    empty = config.empty_set_percentile

    views_pctl = percentile(video.view_count, population.views, empty)
    er_pctl = percentile(video.engagement_rate, population.engagement, empty)
    bonus = recency_bonus(video, now, config)

    total = round_half_up(views_pctl * w_views + er_pctl * w_er + bonus * w_recency)
    total = max(0, min(100, total))
    return PerformanceScore(
        total_score=total,
        grade=grade_for(total, config),
        views_percentile=views_pctl,
        likes_percentile=0,
        er_percentile=er_pctl,
        recency_bonus=bonus,
        breakdown={
            "views": BreakdownItem(
                score=round_half_up(views_pctl * w_views),
                max=round_half_up(100 * w_views),
                label=f"Top {100 - views_pctl}% in views (CTR proxy)",
            ),
            "engagement": BreakdownItem(
                score=round_half_up(er_pctl * w_er),
                max=round_half_up(100 * w_er),
                label=f"{video.engagement_rate}% keeps viewers engaged",
            ),
            "recency": BreakdownItem(
                score=round_half_up(bonus * w_recency),
                max=round_half_up(100 * w_recency),
                label="Quick view acquisition bonus",
            ),
        },
    )


def score_all_videos(
    videos: Sequence[VideoRecord],
    config: ScoringConfig = DEFAULT_SCORING,
    now: datetime | None = None,
) -> list[ScoredVideo]:
    population = ComparisonSet(videos)
    return [
        ScoredVideo(
            video=video,
            title_score=title_performance_score(video, population, config),
            thumbnail_score=thumbnail_performance_score(video, population, config, now),
        )
        for video in population.videos
    ]


def top_titles(videos: Sequence[VideoRecord], count: int = 10, now: datetime | None = None) -> list[ScoredVideo]:
    scored = score_all_videos(videos, now=now)
    return sorted(scored, key=lambda s: s.title_score.total_score, reverse=True)[:count]


def top_thumbnails(videos: Sequence[VideoRecord], count: int = 10, now: datetime | None = None) -> list[ScoredVideo]:
    scored = score_all_videos(videos, now=now)
    return sorted(scored, key=lambda s: s.thumbnail_score.total_score, reverse=True)[:count]


def average_scores(scored: Sequence[ScoredVideo]) -> dict[str, int]:
    """Mean totals over an already scored population."""
    if not scored:
        return {"avg_title_score": 0, "avg_thumbnail_score": 0}
    return {
        "avg_title_score": round_half_up(sum(s.title_score.total_score for s in scored) / len(scored)),
        "avg_thumbnail_score": round_half_up(sum(s.thumbnail_score.total_score for s in scored) / len(scored)),
    }


def grade_distribution(scores: Sequence[PerformanceScore]) -> dict[str, int]:
    distribution = dict.fromkeys(GRADES, 0)
    for score in scores:
        distribution[score.grade] += 1
    return distribution
