"""Maps a free-form query to a playlist, channel or search intent."""
import logging
import re
from dataclasses import dataclass

from backend.app.core.errors import ResolutionFailure
from backend.app.services.youtube_client import YouTubeClient

logger = logging.getLogger(__name__)

CHANNEL_ID_RE = re.compile(r"^UC[A-Za-z0-9_-]{22}$")
PLAYLIST_PARAM_RE = re.compile(r"[&?]list=([^&#\s]+)")
BARE_HANDLE_RE = re.compile(r"^@([A-Za-z0-9._-]+)$")
URL_HINT_PATTERNS = (
    ("channel", re.compile(r"/channel/([A-Za-z0-9_-]+)", re.IGNORECASE)),
    ("handle", re.compile(r"/@([A-Za-z0-9._-]+)", re.IGNORECASE)),
    ("username", re.compile(r"/user/([A-Za-z0-9._-]+)", re.IGNORECASE)),
    ("custom", re.compile(r"/c/([A-Za-z0-9._-]+)", re.IGNORECASE)),
)


@dataclass(frozen=True)
class PlaylistQuery:
    playlist_id: str


@dataclass(frozen=True)
class ChannelQuery:
    channel_id: str
    title: str | None = None


@dataclass(frozen=True)
class SearchQuery:
    term: str


@dataclass(frozen=True)
class ChannelHint:
    kind: str  # channel | handle | username | custom
    token: str


ResolvedQuery = PlaylistQuery | ChannelQuery | SearchQuery


def extract_playlist_id(query: str) -> str | None:
    match = PLAYLIST_PARAM_RE.search(query)
    if match:
        return match.group(1)
    return None


def extract_channel_hint(query: str) -> ChannelHint | None:
    """
    Parse the channel-identifying shapes.
    Returns None when the query does not look like a channel reference.
    """
    raw = query.strip()
    if CHANNEL_ID_RE.match(raw):
        return ChannelHint("channel", raw)

    m = BARE_HANDLE_RE.match(raw)
    if m:
        return ChannelHint("handle", m.group(1))

    for kind, pattern in URL_HINT_PATTERNS:
        m = pattern.search(raw)
        if m:
            return ChannelHint(kind, m.group(1))
    return None


def parse_query(query: str) -> ResolvedQuery | ChannelHint:
    """Classify a query without touching the network.

    Playlist ids win over any channel-looking path segment in the same string.
    """
    clean = (query or "").strip()
    if not clean:
        raise ResolutionFailure("A search term, channel or playlist link is required.")

    playlist_id = extract_playlist_id(clean)
    if playlist_id:
        return PlaylistQuery(playlist_id)

    hint = extract_channel_hint(clean)
    if hint is None:
        return SearchQuery(clean)
    if CHANNEL_ID_RE.match(hint.token):
        return ChannelQuery(hint.token)
    return hint


class EntityResolver:
    def __init__(self, client: YouTubeClient) -> None:
        self.client = client

    def _direct_lookup(self, hint: ChannelHint) -> ChannelQuery | None:
        if hint.kind == "channel":
            payload = self.client.channels(part="snippet", id=hint.token, maxResults=1)
        elif hint.kind == "username":
            payload = self.client.channels(part="snippet", forUsername=hint.token, maxResults=1)
        else:
            payload = self.client.channels(part="snippet", forHandle=f"@{hint.token}", maxResults=1)
        items = payload.get("items") or []
        if items and items[0].get("id"):
            title = (items[0].get("snippet") or {}).get("title")
            return ChannelQuery(items[0]["id"], title)
        return None

    def _search_lookup(self, token: str) -> ChannelQuery | None:
        payload = self.client.search(part="snippet", type="channel", q=token, maxResults=1)
        items = payload.get("items") or []
        if not items:
            return None
        channel_id = (items[0].get("id") or {}).get("channelId") or (items[0].get("snippet") or {}).get("channelId")
        if not channel_id:
            return None
        title = (items[0].get("snippet") or {}).get("channelTitle") or (items[0].get("snippet") or {}).get("title")
        return ChannelQuery(channel_id, title)

    def resolve(self, query: str) -> ResolvedQuery:
        parsed = parse_query(query)
        if not isinstance(parsed, ChannelHint):
            logger.info("Resolved %r as %s", query, type(parsed).__name__)
            return parsed

        resolved = self._direct_lookup(parsed)
        if resolved is None:
            # Direct lookup does not index every legacy username or custom URL.
            logger.info("Direct lookup empty for %s %r, falling back to channel search", parsed.kind, parsed.token)
            resolved = self._search_lookup(parsed.token)
        if resolved is None:
            raise ResolutionFailure(
                f"Could not resolve channel {parsed.token!r}. Use a channel URL, @handle, or channel ID."
            )
        logger.info("Resolved %r to channel %s", query, resolved.channel_id)
        return resolved
