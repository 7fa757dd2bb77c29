from __future__ import annotations

import argparse
import json
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

ROOT_DIR = Path(__file__).resolve().parents[2]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from backend.app.core.config import configure_logging, settings
from backend.app.core.errors import AnalyticsError
from backend.app.services.content_gap import analyze_content_gap
from backend.app.services.fetcher import VideoFetcher
from backend.app.services.ledger import JsonFileStore, MemoryStore, QuotaLedger, ResponseCache
from backend.app.services.performance_score import average_scores, score_all_videos
from backend.app.services.title_score import summarize_titles
from backend.app.services.upload_schedule import analyze_upload_schedule
from backend.app.services.youtube_client import YouTubeClient

DEFAULT_OUTPUT = Path("reports") / "analysis.json"


def validate_api_key(api_key: str) -> None:
    if not api_key:
        raise RuntimeError("YOUTUBE_API_KEY is required")
    # Most Google API keys begin with AIza and are 39 characters long.
    if not api_key.startswith("AIza") or len(api_key) < 35:
        raise RuntimeError("YOUTUBE_API_KEY format looks invalid (expected prefix 'AIza').")


def build_report(fetcher: VideoFetcher, query: str, limit: int, region: str | None) -> dict[str, Any]:
    data = fetcher.fetch_videos(query, limit)
    now = datetime.now(timezone.utc)
    scored = score_all_videos(data.videos, now=now)
    report: dict[str, Any] = {
        "generated_at": now.isoformat(),
        "query": query,
        "channel": {
            "title": data.channel_title,
            "id": data.channel_id,
            "stats": data.channel_stats.model_dump() if data.channel_stats else None,
        },
        "total_found": data.total_found,
        "averages": average_scores(scored),
        "titles": summarize_titles([v.title for v in data.videos]).model_dump(),
        "scores": [s.model_dump(mode="json") for s in scored],
        "schedule": analyze_upload_schedule(data.videos, now=now).model_dump(mode="json"),
    }
    if region:
        trending = fetcher.fetch_trending(50, region)
        report["content_gap"] = analyze_content_gap(data.videos, trending.videos).model_dump()
    return report


def main() -> int:
    parser = argparse.ArgumentParser(description="Fetch a channel, playlist or search and write an analytics report.")
    parser.add_argument("query", help="Search term, @handle, channel URL or playlist URL")
    parser.add_argument("--limit", type=int, default=50)
    parser.add_argument("--gap-region", default=None, help="Compare topics against this region's trending chart")
    parser.add_argument("--output", type=Path, default=DEFAULT_OUTPUT)
    args = parser.parse_args()

    configure_logging(settings.log_level)
    api_key = settings.youtube_api_key
    validate_api_key(api_key)

    store = JsonFileStore(settings.ledger_store_file) if settings.ledger_store_file else MemoryStore()
    ledger = QuotaLedger(store, daily_limit=settings.quota_per_day)
    client = YouTubeClient(api_key, ledger, timeout=settings.http_timeout_seconds)
    fetcher = VideoFetcher(client, cache=ResponseCache(store, ttl_seconds=settings.cache_ttl_seconds))

    try:
        report = build_report(fetcher, args.query, max(1, args.limit), args.gap_region)
    except AnalyticsError as exc:
        print(f"Analysis failed: {exc}", file=sys.stderr)
        return 1

    args.output.parent.mkdir(parents=True, exist_ok=True)
    args.output.write_text(json.dumps(report, indent=2, ensure_ascii=False), encoding="utf-8")
    status = ledger.status()
    print(f"Wrote report for {report['total_found']} videos: {args.output}")
    print(f"Quota used today: {status['used']}/{status['limit']}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
