# tests/test_audio_metadata.py
"""Test embedded lyrics extraction"""

import pytest
from unittest.mock import Mock, patch

from mutagen.id3 import ID3, SYLT, TXXX, USLT
from mutagen.mp4 import MP4Tags

from waylyric.audio.metadata import MetadataReader, sylt_to_lrc
from waylyric.exceptions import LyricsError


@pytest.fixture
def reader():
    return MetadataReader()


def id3_with(*frames):
    tags = ID3()
    for frame in frames:
        tags.add(frame)
    return tags


class TestSyltConversion:
    """Test SYLT to LRC conversion"""

    def test_sorted_lines(self):
        """Test entries are sorted and formatted"""
        assert sylt_to_lrc([("second", 2500), ("first", 1000)]) == "[00:01.00]first\n[00:02.50]second"

    def test_empty_text_kept(self):
        """Test instrumental gaps keep their timestamp"""
        assert sylt_to_lrc([("", 61000)]) == "[01:01.00]"


class TestMetadataReader:
    """Test tag format handling"""

    def test_sylt_preferred(self, reader):
        """Test synchronized lyrics win over plain text frames"""
        tags = id3_with(
            USLT(encoding=3, lang="eng", desc="", text="plain"),
            SYLT(encoding=3, lang="eng", format=2, type=1, desc="", text=[("timed", 1000)]),
        )
        assert reader._read_id3_lyrics(tags) == "[00:01.00]timed"

    def test_sylt_in_mpeg_frames_skipped(self, reader):
        """Test SYLT frames not timed in milliseconds are ignored"""
        tags = id3_with(
            SYLT(encoding=3, lang="eng", format=1, type=1, desc="", text=[("frames", 40)]),
            USLT(encoding=3, lang="eng", desc="", text="plain"),
        )
        assert reader._read_id3_lyrics(tags) == "plain"

    def test_txxx_lyrics(self, reader):
        """Test free text LYRICS frames"""
        tags = id3_with(TXXX(encoding=3, desc="lyrics", text=["[00:01.00]txxx"]))
        assert reader._read_id3_lyrics(tags) == "[00:01.00]txxx"

    def test_id3_without_lyrics(self, reader):
        """Test no lyrics frames gives None"""
        assert reader._read_id3_lyrics(ID3()) is None

    def test_mp4_atoms(self, reader):
        """Test MP4 lyrics atoms"""
        tags = MP4Tags()
        tags["\xa9lyr"] = ["[00:01.00]mp4"]
        assert reader._read_mp4_lyrics(tags) == "[00:01.00]mp4"

    def test_vorbis_comments(self, reader):
        """Test LYRICS and UNSYNCEDLYRICS comments"""
        assert reader._read_comment_lyrics({"UNSYNCEDLYRICS": ["  words  "]}) == "words"
        assert reader._read_comment_lyrics({"TITLE": ["x"]}) is None

    def test_dispatch_on_tag_type(self, reader, temp_dir):
        """Test the loaded tag container selects the reader"""
        audio = Mock()
        audio.tags = id3_with(USLT(encoding=3, lang="eng", desc="", text="plain"))
        with patch('waylyric.audio.metadata.MutagenFile', return_value=audio):
            assert reader.read_embedded_lyrics(temp_dir / "song.mp3") == "plain"

    def test_untagged_file(self, reader, temp_dir):
        """Test files without tags give None"""
        with patch('waylyric.audio.metadata.MutagenFile', return_value=None):
            assert reader.read_embedded_lyrics(temp_dir / "song.mp3") is None

    def test_unreadable_file(self, reader, temp_dir):
        """Test open errors become LyricsError"""
        with pytest.raises(LyricsError):
            reader.read_embedded_lyrics(temp_dir / "missing.flac")
