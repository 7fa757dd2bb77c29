"""Quota-aware pagination over the Data API.

Pages and detail batches are issued strictly one after another: each page
needs the previous cursor, and every call charges the shared ledger first.
"""
import logging
from typing import Any, Callable, Protocol

from backend.app.core.errors import FetchCancelled, UpstreamEmpty
from backend.app.services.ledger import ResponseCache
from backend.app.services.normalizer import AnalyzedData, ChannelStats, normalize_channel, normalize_videos
from backend.app.services.resolver import (
    ChannelQuery,
    EntityResolver,
    PlaylistQuery,
    ResolvedQuery,
    SearchQuery,
)
from backend.app.services.youtube_client import MAX_PAGE_SIZE, YouTubeClient

logger = logging.getLogger(__name__)

DETAIL_BATCH_SIZE = 50
DETAIL_PARTS = "snippet,contentDetails,statistics"
CHANNEL_PARTS = "snippet,statistics,brandingSettings,contentDetails"

PageFetcher = Callable[[int, str | None], dict[str, Any]]
IdExtractor = Callable[[dict[str, Any]], str | None]


class CancelToken(Protocol):
    def is_set(self) -> bool: ...


def chunked(lst, n):
    for i in range(0, len(lst), n):
        yield lst[i:i + n]


def _playlist_item_id(item: dict[str, Any]) -> str | None:
    return (item.get("contentDetails") or {}).get("videoId")


def _search_item_id(item: dict[str, Any]) -> str | None:
    return (item.get("id") or {}).get("videoId")


def _chart_item_id(item: dict[str, Any]) -> str | None:
    return item.get("id") if isinstance(item.get("id"), str) else None


def analysis_cache_key(query: str, limit: int) -> str:
    return f"analysis_{query.strip()}_{limit}"


class VideoFetcher:
    def __init__(
        self,
        client: YouTubeClient,
        cache: ResponseCache | None = None,
        resolver: EntityResolver | None = None,
    ) -> None:
        self.client = client
        self.cache = cache
        self.resolver = resolver or EntityResolver(client)

    def walk_ids(
        self,
        fetch_page: PageFetcher,
        extract_id: IdExtractor,
        limit: int,
        cancel: CancelToken | None = None,
    ) -> list[str]:
        """Collect up to ``limit`` ids, stopping early when upstream runs out."""
        ids: list[str] = []
        page_token = None
        pages = 0
        while len(ids) < limit:
            if cancel is not None and cancel.is_set():
                raise FetchCancelled(f"Fetch cancelled after {pages} page(s)")
            payload = fetch_page(min(MAX_PAGE_SIZE, limit - len(ids)), page_token)
            pages += 1
            items = payload.get("items") or []
            if not items:
                break
            for item in items:
                video_id = extract_id(item)
                if video_id:
                    ids.append(video_id)
                    if len(ids) >= limit:
                        break
            page_token = payload.get("nextPageToken")
            if not page_token:
                break
        if len(ids) < limit:
            logger.info("Upstream exhausted after %d page(s) with %d/%d ids", pages, len(ids), limit)
        return ids[:limit]

    def hydrate(self, video_ids: list[str], cancel: CancelToken | None = None) -> list[dict[str, Any]]:
        hydrated: list[dict[str, Any]] = []
        for batch in chunked(video_ids, DETAIL_BATCH_SIZE):
            if cancel is not None and cancel.is_set():
                raise FetchCancelled("Fetch cancelled during detail hydration")
            payload = self.client.videos(part=DETAIL_PARTS, id=",".join(batch))
            hydrated.extend(payload.get("items") or [])
        return hydrated

    def playlist_ids(self, playlist_id: str, limit: int, cancel: CancelToken | None = None) -> list[str]:
        def fetch_page(max_results: int, page_token: str | None) -> dict[str, Any]:
            return self.client.playlist_items(
                part="contentDetails",
                playlistId=playlist_id,
                maxResults=max_results,
                pageToken=page_token,
            )

        return self.walk_ids(fetch_page, _playlist_item_id, limit, cancel)

    def search_ids(
        self,
        limit: int,
        term: str | None = None,
        channel_id: str | None = None,
        cancel: CancelToken | None = None,
    ) -> list[str]:
        def fetch_page(max_results: int, page_token: str | None) -> dict[str, Any]:
            return self.client.search(
                part="id",
                type="video",
                q=term,
                channelId=channel_id,
                order="date" if channel_id else None,
                maxResults=max_results,
                pageToken=page_token,
            )

        return self.walk_ids(fetch_page, _search_item_id, limit, cancel)

    def fetch_channel(self, channel_id: str) -> dict[str, Any] | None:
        payload = self.client.channels(part=CHANNEL_PARTS, id=channel_id)
        items = payload.get("items") or []
        return items[0] if items else None

    def fetch_channel_stats(self, channel_id: str) -> ChannelStats | None:
        channel = self.fetch_channel(channel_id)
        if channel is None:
            return None
        return normalize_channel(channel)

    def channel_ids(
        self,
        query: ChannelQuery,
        limit: int,
        cancel: CancelToken | None = None,
    ) -> tuple[list[str], ChannelStats | None]:
        channel = self.fetch_channel(query.channel_id)
        stats = normalize_channel(channel) if channel else None
        uploads = (((channel or {}).get("contentDetails") or {}).get("relatedPlaylists") or {}).get("uploads")
        if uploads:
            ids = self.playlist_ids(uploads, limit, cancel)
            if ids:
                return ids, stats
        # Uploads feed missing or empty: fall back to the far more expensive search.
        logger.info("No uploads feed for %s, searching by channel", query.channel_id)
        return self.search_ids(limit, channel_id=query.channel_id, cancel=cancel), stats

    def collect(
        self,
        resolved: ResolvedQuery,
        limit: int,
        cancel: CancelToken | None = None,
    ) -> AnalyzedData:
        stats = None
        channel_id = ""
        if isinstance(resolved, PlaylistQuery):
            ids = self.playlist_ids(resolved.playlist_id, limit, cancel)
            title = "Playlist Content"
        elif isinstance(resolved, ChannelQuery):
            ids, stats = self.channel_ids(resolved, limit, cancel)
            channel_id = resolved.channel_id
            title = (stats.title if stats and stats.title else None) or resolved.title or "Channel"
        elif isinstance(resolved, SearchQuery):
            ids = self.search_ids(limit, term=resolved.term, cancel=cancel)
            title = "Search results"
        else:
            raise TypeError(f"Unsupported query type: {type(resolved).__name__}")

        if not ids:
            raise UpstreamEmpty("No videos found.")

        items = self.hydrate(ids, cancel)
        subscriber_count = stats.subscriber_count_raw if stats else None
        videos = normalize_videos(items, subscriber_count=subscriber_count)
        return AnalyzedData(
            videos=videos,
            channel_title=title,
            channel_id=channel_id,
            channel_stats=stats,
            total_found=len(videos),
        )

    def fetch_videos(self, query: str, limit: int, cancel: CancelToken | None = None) -> AnalyzedData:
        """Resolve ``query`` and return up to ``limit`` normalized videos.

        Whole-query results are cached; a cache problem never blocks the fetch.
        """
        key = analysis_cache_key(query, limit)
        if self.cache is not None:
            cached = self.cache.get(key)
            if cached is not None:
                return AnalyzedData.model_validate(cached)

        resolved = self.resolver.resolve(query)
        result = self.collect(resolved, limit, cancel)
        if self.cache is not None:
            self.cache.put(key, result.model_dump(mode="json"))
        return result

    def fetch_trending(
        self,
        limit: int = 50,
        region_code: str = "ID",
        cancel: CancelToken | None = None,
    ) -> AnalyzedData:
        region_code = (region_code or "ID").upper()

        def fetch_page(max_results: int, page_token: str | None) -> dict[str, Any]:
            return self.client.videos(
                part="id",
                chart="mostPopular",
                regionCode=region_code,
                maxResults=max_results,
                pageToken=page_token,
            )

        ids = self.walk_ids(fetch_page, _chart_item_id, limit, cancel)
        videos = normalize_videos(self.hydrate(ids, cancel))
        return AnalyzedData(
            videos=videos,
            channel_title=f"Trending Topics ({region_code})",
            total_found=len(videos),
        )

