# tests/test_lyrics_processor.py
"""Test the lyrics resolution chain"""

import pytest
from unittest.mock import AsyncMock, Mock, patch

from waylyric.config.settings import NavidromeConfig
from waylyric.exceptions import LyricsError, LyricsNotFoundError, ProviderError
from waylyric.lyrics.lrc import TimeTag
from waylyric.lyrics.processor import LyricsProcessor, build_providers
from waylyric.mpris.models import PlayerState


def fake_provider(name, result=None, error=None):
    provider = Mock()
    provider.name = name
    provider.fetch = AsyncMock(return_value=result, side_effect=error)
    return provider


def player_state(**metadata):
    base = {"xesam:title": "Song", "xesam:artist": ["Band"], "mpris:length": 200_000_000}
    base.update(metadata)
    return PlayerState(metadata=base)


@pytest.fixture
def local_track(temp_dir):
    """An empty audio file with its file:// URL"""
    audio = temp_dir / "song.mp3"
    audio.write_bytes(b"")
    return audio


class TestResolutionChain:
    """Test source order and fallbacks"""

    @pytest.mark.asyncio
    async def test_inline_lyrics_first(self, local_track):
        """Test multi-line asText wins over every other source"""
        local_track.with_suffix(".lrc").write_text("[00:01.00]sidecar", encoding="utf-8")
        processor = LyricsProcessor(providers={})
        state = player_state(**{"xesam:asText": "[00:01.00]a\n[00:02.00]b", "xesam:url": local_track.as_uri()})

        document = await processor.resolve(state)

        assert document.get(TimeTag.from_seconds(1.5)).lines == ["a"]
        assert processor.stats['source_usage'] == {'inline': 1}

    @pytest.mark.asyncio
    async def test_sidecar_before_embedded(self, local_track):
        """Test the .lrc next to the audio file is used before tags"""
        local_track.with_suffix(".lrc").write_text("[00:01.00]sidecar", encoding="utf-8")
        processor = LyricsProcessor(providers={})

        with patch('waylyric.lyrics.processor.read_embedded_lyrics') as read_embedded:
            document = await processor.resolve(player_state(**{"xesam:url": local_track.as_uri()}))

        assert document.get(TimeTag.from_seconds(2)).lines == ["sidecar"]
        read_embedded.assert_not_called()

    @pytest.mark.asyncio
    async def test_embedded_lyrics(self, local_track):
        """Test tags are read when there is no sidecar"""
        processor = LyricsProcessor(providers={})

        with patch('waylyric.lyrics.processor.read_embedded_lyrics', return_value="[00:03.00]embedded"):
            document = await processor.resolve(player_state(**{"xesam:url": local_track.as_uri()}))

        assert document.get(TimeTag.from_seconds(4)).lines == ["embedded"]

    @pytest.mark.asyncio
    async def test_unreadable_tags_fall_through(self, local_track):
        """Test a tag read error moves on to the providers"""
        provider = fake_provider("lrclib", result="[00:01.00]web")
        processor = LyricsProcessor(providers={"lrclib": provider})

        with patch('waylyric.lyrics.processor.read_embedded_lyrics', side_effect=LyricsError("bad file")):
            document = await processor.resolve(player_state(**{"xesam:url": local_track.as_uri()}))

        assert document.get(TimeTag.from_seconds(1)).lines == ["web"]

    @pytest.mark.asyncio
    async def test_providers_in_order(self):
        """Test providers are tried in order until one succeeds"""
        first = fake_provider("navidrome", error=LyricsNotFoundError("nothing"))
        second = fake_provider("netease", error=ProviderError("HTTP 500"))
        third = fake_provider("lrclib", result="[00:01.00]web")
        fourth = fake_provider("spare", result="[00:01.00]unused")
        processor = LyricsProcessor(providers={p.name: p for p in (first, second, third, fourth)})

        document = await processor.resolve(player_state())

        assert document.get(TimeTag.from_seconds(1)).lines == ["web"]
        query = first.fetch.await_args.args[0]
        assert (query.title, query.artist, query.duration) == ("Song", "Band", 200.0)
        second.fetch.assert_awaited_once()
        fourth.fetch.assert_not_awaited()
        assert processor.stats['source_usage'] == {'lrclib': 1}

    @pytest.mark.asyncio
    async def test_unexpected_provider_error_skipped(self):
        """Test a provider failing outside the lyrics errors does not stop the chain"""
        broken = fake_provider("netease", error=AttributeError("'list' object has no attribute 'get'"))
        good = fake_provider("lrclib", result="[00:01.00]web")
        processor = LyricsProcessor(providers={"netease": broken, "lrclib": good})

        document = await processor.resolve(player_state())

        assert document.get(TimeTag.from_seconds(1)).lines == ["web"]
        broken.fetch.assert_awaited_once()
        assert processor.stats['source_usage'] == {'lrclib': 1}

    @pytest.mark.asyncio
    async def test_unexpected_provider_error_alone(self):
        """Test a crashing only provider ends as not found"""
        processor = LyricsProcessor(providers={"netease": fake_provider("netease", error=TypeError("bad payload"))})

        with pytest.raises(LyricsNotFoundError):
            await processor.resolve(player_state())

    @pytest.mark.asyncio
    async def test_provider_without_lines_skipped(self):
        """Test a provider answer without any lyric line counts as a miss"""
        empty = fake_provider("netease", result="[ar: Band]\n")
        good = fake_provider("lrclib", result="[00:01.00]web")
        processor = LyricsProcessor(providers={"netease": empty, "lrclib": good})

        document = await processor.resolve(player_state())

        assert not document.is_empty()
        good.fetch.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_providers_need_title_and_artist(self):
        """Test providers are skipped when metadata lacks an artist"""
        provider = fake_provider("lrclib", result="[00:01.00]web")
        processor = LyricsProcessor(providers={"lrclib": provider})
        state = PlayerState(metadata={"xesam:title": "Song"})

        with pytest.raises(LyricsNotFoundError):
            await processor.resolve(state)
        provider.fetch.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_single_line_inline_is_last_resort(self):
        """Test single-line asText is parsed only after providers fail"""
        provider = fake_provider("lrclib", error=LyricsNotFoundError("nothing"))
        processor = LyricsProcessor(providers={"lrclib": provider})
        state = player_state(**{"xesam:asText": "[00:01.00]one [00:02.00]two"})

        document = await processor.resolve(state)

        provider.fetch.assert_awaited_once()
        assert document.versions == [{TimeTag.from_seconds(1): "one", TimeTag.from_seconds(2): "two"}]
        assert processor.stats['source_usage'] == {'inline-single-line': 1}

    @pytest.mark.asyncio
    async def test_nothing_found(self):
        """Test LyricsNotFoundError when every source fails"""
        processor = LyricsProcessor(providers={})

        with pytest.raises(LyricsNotFoundError) as exc_info:
            await processor.resolve(player_state())

        assert "Song" in str(exc_info.value)
        stats = processor.get_processing_stats()
        assert stats['failed_resolutions'] == 1
        assert stats['success_rate'] == 0.0


class TestLocalSource:
    """Test the lyrics availability hint used for player selection"""

    def test_local_file(self, local_track):
        """Test a local media file counts as a source"""
        processor = LyricsProcessor(providers={})
        assert processor.has_local_source(player_state(**{"xesam:url": local_track.as_uri()}))

    def test_inline_lyrics(self):
        """Test inline lyrics count as a source"""
        processor = LyricsProcessor(providers={})
        assert processor.has_local_source(player_state(**{"xesam:asText": "[00:01.00]x"}))

    def test_streaming_track(self):
        """Test a remote track only has a source when providers are configured"""
        state = player_state(**{"xesam:url": "https://open.spotify.com/track/1"})
        assert not LyricsProcessor(providers={}).has_local_source(state)
        assert LyricsProcessor(providers={"lrclib": fake_provider("lrclib")}).has_local_source(state)
        assert not LyricsProcessor(providers={"lrclib": fake_provider("lrclib")}).has_local_source(
            PlayerState(metadata={"xesam:url": "https://example.com/stream"})
        )

    def test_source_names(self):
        """Test the chain is listed in resolution order"""
        processor = LyricsProcessor(providers={"netease": fake_provider("netease")})
        assert processor.source_names() == ["inline", "sidecar", "embedded", "netease", "inline-single-line"]


class TestBuildProviders:
    """Test provider instantiation from names"""

    def test_order_and_filtering(self):
        """Test unknown names, duplicates and incomplete Navidrome are skipped"""
        providers = build_providers(["lrclib", "bogus", "navidrome", "LRCLIB", "netease"], NavidromeConfig())
        assert list(providers) == ["lrclib", "netease"]

    def test_navidrome_with_credentials(self):
        """Test Navidrome is built when fully configured"""
        config = NavidromeConfig(server_url="https://music.example.org", username="me", password="secret")
        providers = build_providers(["navidrome", "lrclib"], config)
        assert list(providers) == ["navidrome", "lrclib"]
        assert providers["navidrome"].config is config

    def test_processor_uses_names(self):
        """Test the processor builds providers from explicit names"""
        processor = LyricsProcessor(external_providers=["netease"])
        assert list(processor.providers) == ["netease"]
