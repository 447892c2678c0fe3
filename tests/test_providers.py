# tests/test_providers.py
"""Test web lyrics providers without network access"""

import hashlib

import aiohttp
import pytest
from unittest.mock import AsyncMock, patch

from waylyric.config.settings import NavidromeConfig
from waylyric.exceptions import LyricsNotFoundError, ProviderError
from waylyric.lyrics.base import LyricsProvider, TrackQuery
from waylyric.lyrics.lrclib import LrcLibProvider, pick_lyrics, pick_search_result
from waylyric.lyrics.navidrome import NavidromeProvider, convert_to_lrc, score_song
from waylyric.lyrics.netease import NetEaseProvider, candidate_similarity, combined_score, parse_search_results


@pytest.fixture
def query():
    return TrackQuery(title="Somebody to Love", artist="Jefferson Airplane", album="Surrealistic Pillow",
                      duration=175.0)


@pytest.fixture
def navidrome_config():
    return NavidromeConfig(server_url="https://music.example.org/", username="me", password="secret")


class TestTrackQuery:
    """Test building search terms from MPRIS metadata"""

    def test_from_metadata(self):
        """Test title, first artist, album and duration"""
        query = TrackQuery.from_metadata({
            "xesam:title": "Song",
            "xesam:artist": ["Band", "Guest"],
            "xesam:album": "Album",
            "mpris:length": 215_500_000,
        })
        assert query == TrackQuery("Song", "Band", "Album", 215.5)
        assert str(query) == "Band - Song"

    def test_album_artist_and_xesam_duration(self):
        """Test fallbacks for artist and duration"""
        query = TrackQuery.from_metadata({
            "xesam:title": "Song",
            "xesam:artist": [],
            "xesam:albumArtist": ["Band"],
            "xesam:duration": 120,
        })
        assert query.artist == "Band"
        assert query.duration == 120.0
        assert query.album is None

    def test_missing_fields(self):
        """Test no query without title or artist"""
        assert TrackQuery.from_metadata({"xesam:title": "Song"}) is None
        assert TrackQuery.from_metadata({"xesam:artist": ["Band"]}) is None


class TestProviderBase:
    """Test error translation in LyricsProvider.fetch"""

    @pytest.mark.asyncio
    async def test_transport_error(self, query):
        """Test aiohttp errors become ProviderError"""
        provider = LyricsProvider()
        with patch.object(provider, '_fetch', AsyncMock(side_effect=aiohttp.ClientConnectionError("refused"))):
            with pytest.raises(ProviderError):
                await provider.fetch(query)

    @pytest.mark.asyncio
    async def test_empty_text(self, query):
        """Test blank lyrics are reported as not found"""
        provider = LyricsProvider()
        with patch.object(provider, '_fetch', AsyncMock(return_value="  \n")):
            with pytest.raises(LyricsNotFoundError):
                await provider.fetch(query)


class TestNavidrome:
    """Test Subsonic matching and conversion"""

    def test_score_song_full_match(self, query):
        """Test every matching field gives a perfect score"""
        song = {"title": "Somebody To Love", "artist": "Jefferson Airplane",
                "album": "Surrealistic Pillow", "duration": 178}
        assert score_song(query, song) == pytest.approx(1.0)

    def test_score_song_partial(self):
        """Test title and artist only weigh 3 and 2"""
        query = TrackQuery(title="Song", artist="Band")
        assert score_song(query, {"title": "Song", "artist": "Someone"}) == pytest.approx(0.6)
        assert score_song(query, {"title": "Other", "artist": "Band"}) == pytest.approx(0.4)

    def test_score_song_duration_mismatch(self, query):
        """Test a duration off by more than ten seconds earns nothing"""
        song = {"title": "Somebody to Love", "artist": "Jefferson Airplane", "duration": 300}
        assert score_song(query, song) == pytest.approx(5 / 6.5)

    def test_pick_best_song(self, navidrome_config):
        """Test the best candidate above the threshold wins"""
        provider = NavidromeProvider(config=navidrome_config)
        provider.similarity_threshold = 0.5
        query = TrackQuery(title="Song", artist="Band")
        songs = [{"id": "1", "title": "Other", "artist": "Band"},
                 {"id": "2", "title": "Song", "artist": "Band"}]
        assert provider.pick_best_song(query, songs)["id"] == "2"

        with pytest.raises(LyricsNotFoundError):
            provider.pick_best_song(query, songs[:1])

    def test_convert_to_lrc(self):
        """Test structured lines become LRC text"""
        lines = [{"start": 0, "value": "First"}, {"start": 83500, "value": "Second"}, {"value": "Plain"}]
        assert convert_to_lrc(lines) == "[00:00.00]First\n[01:23.50]Second\nPlain"

    def test_auth_params(self, navidrome_config):
        """Test the salted token authentication"""
        params = NavidromeProvider(config=navidrome_config)._auth_params()
        assert params['u'] == "me"
        assert params['t'] == hashlib.md5(f"secret{params['s']}".encode('utf-8')).hexdigest()
        assert params['v'] == "1.16.1"
        assert params['c'] == "waylyric"

    def test_endpoint(self, navidrome_config):
        """Test REST URLs ignore a trailing slash"""
        provider = NavidromeProvider(config=navidrome_config)
        assert provider._endpoint("search3") == "https://music.example.org/rest/search3"

    def test_subsonic_error(self):
        """Test a failed Subsonic response raises ProviderError"""
        payload = {"subsonic-response": {"status": "failed", "error": {"code": 40, "message": "Wrong password"}}}
        with pytest.raises(ProviderError) as exc_info:
            NavidromeProvider._subsonic_body(payload)
        assert "Wrong password" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_fetch(self, navidrome_config):
        """Test search3 then getLyricsBySongId"""
        provider = NavidromeProvider(config=navidrome_config)
        provider.similarity_threshold = 0.5
        responses = [
            {"subsonic-response": {"status": "ok", "searchResult3": {"song": [
                {"id": "42", "title": "Song", "artist": "Band"},
            ]}}},
            {"subsonic-response": {"status": "ok", "lyricsList": {"structuredLyrics": [
                {"synced": True, "line": [{"start": 1000, "value": "Hello"}]},
            ]}}},
        ]
        request = AsyncMock(side_effect=responses)

        with patch.object(provider, '_request_json', request):
            text = await provider.fetch(TrackQuery(title="Song", artist="Band"))

        assert text == "[00:01.00]Hello"
        assert request.await_args_list[1].kwargs['params']['id'] == "42"

    @pytest.mark.asyncio
    async def test_fetch_unconfigured(self):
        """Test missing credentials raise ProviderError"""
        provider = NavidromeProvider(config=NavidromeConfig())
        with pytest.raises(ProviderError):
            await provider.fetch(TrackQuery(title="Song", artist="Band"))


class TestNetEase:
    """Test NetEase candidate ranking"""

    def test_candidate_similarity(self, query):
        """Test exact, contained and unrelated fields"""
        assert candidate_similarity(query, "Somebody to Love", "Jefferson Airplane") == pytest.approx(1.0)
        assert candidate_similarity(query, "Somebody to Love (Live)", "Jefferson Airplane") == pytest.approx(0.86)

    def test_combined_score(self):
        """Test duration closeness share"""
        assert combined_score(1.0, 175000, 175000) == pytest.approx(1.0)
        assert combined_score(1.0, None, 175000) == pytest.approx(0.7)
        assert combined_score(0.5, 350000, 175000) == pytest.approx(0.35)

    def test_parse_search_results(self):
        """Test songs are flattened"""
        payload = {"result": {"songs": [
            {"id": 1, "name": "Song", "artists": [{"name": "A"}, {"name": "B"}],
             "album": {"name": "Album"}, "duration": 200000},
        ]}}
        assert parse_search_results(payload) == [
            {"id": 1, "name": "Song", "artist": "A, B", "album": "Album", "duration": 200000},
        ]
        assert parse_search_results({"code": 200}) == []

    def test_rank_prefers_duration(self, query):
        """Test equal names are separated by duration"""
        results = [
            {"id": 1, "name": "Somebody to Love", "artist": "Jefferson Airplane", "duration": 300000},
            {"id": 2, "name": "Somebody to Love", "artist": "Jefferson Airplane", "duration": 175000},
        ]
        ranked = NetEaseProvider().rank(query, results)
        assert [r["id"] for r in ranked] == [2, 1]
        assert ranked[0]["similarity"] == pytest.approx(1.0)

    @pytest.mark.asyncio
    async def test_fetch(self, query):
        """Test search then lyric lookup for the best result"""
        provider = NetEaseProvider()
        responses = [
            {"result": {"songs": [
                {"id": 7, "name": "Somebody to Love", "artists": [{"name": "Jefferson Airplane"}],
                 "album": {"name": "Surrealistic Pillow"}, "duration": 175000},
            ]}},
            {"lrc": {"lyric": "[00:01.00]When the truth is found"}},
        ]
        request = AsyncMock(side_effect=responses)

        with patch.object(provider, '_request_json', request):
            text = await provider.fetch(query)

        assert text == "[00:01.00]When the truth is found"
        assert request.await_args_list[1].kwargs['params']['id'] == "7"

    @pytest.mark.asyncio
    async def test_fetch_no_results(self, query):
        """Test an empty search is not found"""
        provider = NetEaseProvider()
        with patch.object(provider, '_request_json', AsyncMock(return_value={"result": {}})):
            with pytest.raises(LyricsNotFoundError):
                await provider.fetch(query)


class TestLrcLib:
    """Test LRCLIB result selection"""

    def test_pick_lyrics(self):
        """Test synced lyrics are preferred over plain"""
        assert pick_lyrics({"syncedLyrics": "[00:01.00]x", "plainLyrics": "x"}) == "[00:01.00]x"
        assert pick_lyrics({"syncedLyrics": None, "plainLyrics": "x"}) == "x"
        assert pick_lyrics({"instrumental": True}) is None

    def test_pick_search_result(self):
        """Test any synced result beats an earlier plain one"""
        results = [{"plainLyrics": "plain"}, {"syncedLyrics": "[00:01.00]synced"}]
        assert pick_search_result(results) == "[00:01.00]synced"
        assert pick_search_result([{"plainLyrics": "plain"}]) == "plain"
        assert pick_search_result([]) is None

    def test_get_params(self, query):
        """Test album and rounded duration are sent"""
        assert LrcLibProvider()._get_params(query) == {
            'track_name': "Somebody to Love",
            'artist_name': "Jefferson Airplane",
            'album_name': "Surrealistic Pillow",
            'duration': "175",
        }

    @pytest.mark.asyncio
    async def test_fetch_falls_back_to_search(self, query):
        """Test a 404 on /get leads to /search"""
        provider = LrcLibProvider()
        request = AsyncMock(side_effect=[
            LyricsNotFoundError("no match"),
            [{"syncedLyrics": "[00:02.00]found"}],
        ])

        with patch.object(provider, '_request_json', request):
            text = await provider.fetch(query)

        assert text == "[00:02.00]found"
        assert request.await_args_list[1].kwargs['params'] == {'q': "somebody to love jefferson airplane"}
