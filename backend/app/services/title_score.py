"""Text-only title heuristic, scored 0-80.

Depends on nothing but the title string. Not to be confused with the
performance-relative title score in ``performance_score``.
"""
import re
from dataclasses import dataclass

from pydantic import BaseModel, Field

from backend.app.core.numbers import round_half_up

POWER_WORDS = (
    # English
    "SHOCKING", "SECRET", "AMAZING", "REVEALED", "ULTIMATE", "INSANE", "CRAZY",
    "UNBELIEVABLE", "INCREDIBLE", "MIND-BLOWING", "EPIC", "VIRAL", "BANNED",
    "EXCLUSIVE", "BREAKING", "URGENT", "WARNING", "FINALLY", "HONEST",
    "TRUTH", "REAL", "ACTUAL", "LIFE-CHANGING", "GAME-CHANGER", "EXPOSED",
    # Indonesian
    "RAHASIA", "MENGEJUTKAN", "GILA", "TERBONGKAR", "TERUNGKAP",
    "AKHIRNYA", "JUJUR", "SEBENARNYA", "NYATA", "WAJIB", "PENTING",
)

EMOJI_RE = re.compile(
    "[\U0001F600-\U0001F64F]|[\U0001F300-\U0001F5FF]|[\U0001F680-\U0001F6FF]"
    "|[\U0001F1E0-\U0001F1FF]|[\u2600-\u26FF]|[\u2700-\u27BF]"
)
NUMBER_RE = re.compile(r"\b\d+\b")
WHITESPACE_RE = re.compile(r"\s+")

GRADE_THRESHOLDS = ((70, "A"), (55, "B"), (40, "C"), (25, "D"))
MAX_TOTAL = 80
MAX_SUGGESTIONS = 4


@dataclass(frozen=True)
class TitleHeuristicConfig:
    power_words: tuple[str, ...] = POWER_WORDS
    question_prefixes: tuple[str, ...] = ("how", "why", "what")
    question_keywords: tuple[str, ...] = ("cara", "kenapa", "apa")
    grade_thresholds: tuple[tuple[int, str], ...] = GRADE_THRESHOLDS


DEFAULT_CONFIG = TitleHeuristicConfig()


class DimensionScore(BaseModel):
    score: int
    max: int
    feedback: str
    found: list[str] = Field(default_factory=list)
    count: int = 0


class TitleScoreResult(BaseModel):
    total_score: int = Field(ge=0, le=MAX_TOTAL)
    grade: str
    breakdown: dict[str, DimensionScore]
    suggestions: list[str] = Field(default_factory=list)

    @property
    def normalized_score(self) -> int:
        return round_half_up(self.total_score / MAX_TOTAL * 100)


class TitleSummary(BaseModel):
    average_score: int = 0
    best_title: dict | None = None
    worst_title: dict | None = None
    distribution: dict[str, int] = Field(default_factory=lambda: dict.fromkeys("ABCDF", 0))


def title_grade(total: int, thresholds=GRADE_THRESHOLDS) -> str:
    for minimum, grade in thresholds:
        if total >= minimum:
            return grade
    return "F"


def _length(title: str, suggestions: list[str]) -> DimensionScore:
    n = len(title)
    if 40 <= n <= 60:
        return DimensionScore(score=15, max=15, feedback=f"Perfect length ({n} chars)")
    if 30 <= n <= 70:
        return DimensionScore(score=10, max=15, feedback=f"Good length ({n} chars)")
    if n < 30:
        suggestions.append("Add more descriptive keywords to reach 40-60 characters")
        return DimensionScore(score=5, max=15, feedback=f"Too short ({n} chars)")
    suggestions.append("Shorten your title to under 60 characters for better visibility")
    return DimensionScore(score=5, max=15, feedback=f"Too long ({n} chars)")


def _power_words(title: str, words: tuple[str, ...], suggestions: list[str]) -> DimensionScore:
    upper = title.upper()
    found = [word for word in words if word in upper]
    if len(found) >= 2:
        return DimensionScore(score=20, max=20, feedback=f"Excellent! Found: {', '.join(found[:3])}", found=found)
    if len(found) == 1:
        suggestions.append("Add one more power word like SHOCKING, SECRET, or AMAZING")
        return DimensionScore(score=12, max=20, feedback=f"Good! Found: {found[0]}", found=found)
    suggestions.append("Add attention-grabbing words like REVEALED, ULTIMATE, or VIRAL")
    return DimensionScore(score=0, max=20, feedback="No power words detected")


def _numbers(title: str, suggestions: list[str]) -> DimensionScore:
    numbers = NUMBER_RE.findall(title)
    if numbers:
        return DimensionScore(score=15, max=15, feedback=f"Numbers found: {', '.join(numbers)}", count=len(numbers))
    suggestions.append('Consider adding a number (e.g., "5 Tips", "Top 10")')
    return DimensionScore(score=0, max=15, feedback="No numbers in title")


def _question(title: str, config: TitleHeuristicConfig) -> DimensionScore:
    if "?" in title:
        return DimensionScore(score=10, max=10, feedback="Question format detected - great for engagement!")
    lowered = title.lower()
    if lowered.startswith(config.question_prefixes) or any(kw in lowered for kw in config.question_keywords):
        return DimensionScore(score=7, max=10, feedback="Question-style title detected")
    return DimensionScore(score=3, max=10, feedback="Statement format")


def _emoji(title: str, suggestions: list[str]) -> DimensionScore:
    count = len(EMOJI_RE.findall(title))
    if 1 <= count <= 2:
        return DimensionScore(score=10, max=10, feedback=f"Perfect emoji usage ({count})", count=count)
    if count == 0:
        suggestions.append("Add 1-2 relevant emojis to increase click-through rate")
        return DimensionScore(score=3, max=10, feedback="No emojis", count=0)
    suggestions.append("Reduce emojis to 1-2 for a cleaner look")
    return DimensionScore(score=5, max=10, feedback=f"Too many emojis ({count})", count=count)


def _capitalization(title: str, suggestions: list[str]) -> DimensionScore:
    words = WHITESPACE_RE.split(title)
    caps = [w for w in words if w == w.upper() and len(w) > 2]
    ratio = len(caps) / len(words)
    if 0 < ratio <= 0.3:
        return DimensionScore(score=10, max=10, feedback="Strategic capitalization used", count=len(caps))
    if ratio == 0:
        suggestions.append("Capitalize 1-2 key words for emphasis")
        return DimensionScore(score=5, max=10, feedback="No strategic caps")
    suggestions.append("Use capitalization sparingly for key words only")
    return DimensionScore(score=3, max=10, feedback="Too much capitalization", count=len(caps))


def analyze_title_text(title: str, config: TitleHeuristicConfig = DEFAULT_CONFIG) -> TitleScoreResult:
    title = title or ""
    suggestions: list[str] = []
    breakdown = {
        "length": _length(title, suggestions),
        "power_words": _power_words(title, config.power_words, suggestions),
        "numbers": _numbers(title, suggestions),
        "question": _question(title, config),
        "emoji": _emoji(title, suggestions),
        "capitalization": _capitalization(title, suggestions),
    }
    total = sum(dim.score for dim in breakdown.values())
    return TitleScoreResult(
        total_score=total,
        grade=title_grade(total, config.grade_thresholds),
        breakdown=breakdown,
        suggestions=suggestions[:MAX_SUGGESTIONS],
    )


def summarize_titles(titles: list[str]) -> TitleSummary:
    if not titles:
        return TitleSummary()

    results = [(title, analyze_title_text(title)) for title in titles]
    distribution = dict.fromkeys("ABCDF", 0)
    for _, result in results:
        distribution[result.grade] += 1

    ranked = sorted(results, key=lambda pair: pair[1].total_score, reverse=True)
    best, worst = ranked[0], ranked[-1]
    return TitleSummary(
        average_score=round_half_up(sum(r.total_score for _, r in results) / len(results)),
        best_title={"title": best[0], "score": best[1].total_score},
        worst_title={"title": worst[0], "score": worst[1].total_score},
        distribution=distribution,
    )
