import pytest

from backend.app.core.errors import ResolutionFailure
from backend.app.services.resolver import (
    ChannelHint,
    ChannelQuery,
    EntityResolver,
    PlaylistQuery,
    SearchQuery,
    parse_query,
)
from backend.app.services.youtube_client import YouTubeClient
from backend.tests.fakes import FakeSession

CHANNEL_ID = "UC" + "a" * 22


def make_resolver(ledger, routes):
    session = FakeSession(routes)
    return EntityResolver(YouTubeClient("AIza-test", ledger, session=session)), session


def test_playlist_parameter_wins():
    assert parse_query("https://x.com/list?v=abc&list=PL123") == PlaylistQuery("PL123")
    assert parse_query(f"https://www.youtube.com/channel/{CHANNEL_ID}?list=PL9") == PlaylistQuery("PL9")


def test_canonical_channel_id_needs_no_lookup():
    assert parse_query(CHANNEL_ID) == ChannelQuery(CHANNEL_ID)
    assert parse_query(f"https://www.youtube.com/channel/{CHANNEL_ID}") == ChannelQuery(CHANNEL_ID)


def test_channel_shapes_become_hints():
    assert parse_query("@creator") == ChannelHint("handle", "creator")
    assert parse_query("https://www.youtube.com/@creator/videos") == ChannelHint("handle", "creator")
    assert parse_query("https://www.youtube.com/user/legacyname") == ChannelHint("username", "legacyname")
    assert parse_query("https://www.youtube.com/c/CustomName") == ChannelHint("custom", "CustomName")


def test_plain_text_is_a_search():
    assert parse_query("  lofi beats  ") == SearchQuery("lofi beats")


def test_empty_query_fails():
    with pytest.raises(ResolutionFailure):
        parse_query("   ")


def test_handle_resolves_by_direct_lookup(ledger):
    resolver, session = make_resolver(
        ledger,
        {"channels": lambda params: {"items": [{"id": CHANNEL_ID, "snippet": {"title": "Creator"}}]}},
    )

    assert resolver.resolve("@creator") == ChannelQuery(CHANNEL_ID, "Creator")
    assert session.calls[0][1]["forHandle"] == "@creator"
    assert "search" not in session.endpoints()
    assert ledger.current_usage() == 1


def test_username_falls_back_to_channel_search(ledger):
    resolver, session = make_resolver(
        ledger,
        {
            "channels": lambda params: {"items": []},
            "search": lambda params: {
                "items": [{"id": {"channelId": CHANNEL_ID}, "snippet": {"channelTitle": "Legacy"}}]
            },
        },
    )

    assert resolver.resolve("https://youtube.com/user/legacyname") == ChannelQuery(CHANNEL_ID, "Legacy")
    assert session.calls[0][1]["forUsername"] == "legacyname"
    assert session.calls[1][1]["type"] == "channel"
    assert ledger.current_usage() == 101


def test_unresolvable_channel_raises(ledger):
    resolver, _ = make_resolver(ledger, {})

    with pytest.raises(ResolutionFailure):
        resolver.resolve("@nobody-here")


def test_search_and_playlist_resolve_offline(ledger):
    resolver, session = make_resolver(ledger, {})

    assert resolver.resolve("cooking pasta") == SearchQuery("cooking pasta")
    assert resolver.resolve("https://youtube.com/playlist?list=PLabc") == PlaylistQuery("PLabc")
    assert session.calls == []
