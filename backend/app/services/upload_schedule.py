from datetime import datetime, timezone, tzinfo
from typing import Sequence

from pydantic import BaseModel, Field

from backend.app.core.numbers import round_to
from backend.app.services.normalizer import VideoRecord

DAYS = ("Sun", "Mon", "Tue", "Wed", "Thu", "Fri", "Sat")
SLOT_COUNT = 3


class HeatmapCell(BaseModel):
    day: int = Field(ge=0, le=6)  # 0 = Sunday
    hour: int = Field(ge=0, le=23)
    count: int = 0
    total_views: int = 0
    avg_views: float = 0.0

    @property
    def label(self) -> str:
        return f"{DAYS[self.day]} {format_hour(self.hour)}"


class ScheduleReport(BaseModel):
    grid: list[list[HeatmapCell]]
    best_slots: list[HeatmapCell]
    worst_slots: list[HeatmapCell]
    max_count: int
    total_uploads: int
    uploads_per_week: float


def format_hour(hour: int) -> str:
    if hour == 0:
        return "12am"
    if hour == 12:
        return "12pm"
    return f"{hour - 12}pm" if hour > 12 else f"{hour}am"


def _day_of_week(moment: datetime) -> int:
    # datetime.weekday() is Monday=0; the grid is Sunday-first.
    return (moment.weekday() + 1) % 7


def build_heatmap(videos: Sequence[VideoRecord], tz: tzinfo = timezone.utc) -> list[list[HeatmapCell]]:
    counts = [[0] * 24 for _ in range(7)]
    views = [[0] * 24 for _ in range(7)]
    for video in videos:
        if video.published_at_date is None:
            continue
        local = video.published_at_date.astimezone(tz)
        day, hour = _day_of_week(local), local.hour
        counts[day][hour] += 1
        views[day][hour] += video.view_count

    return [
        [
            HeatmapCell(
                day=day,
                hour=hour,
                count=counts[day][hour],
                total_views=views[day][hour],
                avg_views=views[day][hour] / counts[day][hour] if counts[day][hour] else 0.0,
            )
            for hour in range(24)
        ]
        for day in range(7)
    ]


def rank_slots(grid: list[list[HeatmapCell]], n: int = SLOT_COUNT) -> tuple[list[HeatmapCell], list[HeatmapCell]]:
    """Best and worst non-empty cells, both in descending avg-views order.

    Sparse cells are not smoothed, so one strong upload can top the ranking.
    """
    occupied = [cell for row in grid for cell in row if cell.count > 0]
    ranked = sorted(occupied, key=lambda cell: cell.avg_views, reverse=True)
    return ranked[:n], ranked[-n:]


def uploads_per_week(videos: Sequence[VideoRecord], now: datetime | None = None) -> float:
    dates = [v.published_at_date for v in videos if v.published_at_date is not None]
    if not dates:
        return 0.0
    now = now or datetime.now(timezone.utc)
    weeks = max(1, -(-(now - min(dates)).total_seconds() // (7 * 86400)))
    return round_to(len(videos) / weeks, 1)


def analyze_upload_schedule(
    videos: Sequence[VideoRecord],
    tz: tzinfo = timezone.utc,
    now: datetime | None = None,
) -> ScheduleReport:
    grid = build_heatmap(videos, tz)
    best, worst = rank_slots(grid)
    return ScheduleReport(
        grid=grid,
        best_slots=best,
        worst_slots=worst,
        max_count=max([cell.count for row in grid for cell in row] + [1]),
        total_uploads=len(videos),
        uploads_per_week=uploads_per_week(videos, now),
    )
