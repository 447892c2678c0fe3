"""
Embedded lyrics extraction from audio file tags

This module reads lyrics that taggers and downloaders embed directly in
audio files, so tracks played from a local library can show lyrics without
a sidecar .lrc file or a network lookup.

Supported tag standards:

**MP3 / WAV / AIFF (ID3v2):**
- SYLT: synchronized lyrics, converted to LRC text when timed in milliseconds
- TXXX:LYRICS / TXXX:SYNCEDLYRICS: free text frames written by LRCGET and beets
- USLT: unsynchronized lyrics (frequently holds LRC text anyway)

**M4A/MP4 (iTunes atoms):**
- ----:com.lrclib:LYRICS: freeform atom written by LRCLIB compatible tools
- ©lyr: standard lyrics atom

**FLAC / Ogg / Opus (Vorbis Comments) and APEv2:**
- LYRICS, UNSYNCEDLYRICS (keys are case-insensitive in both standards)

The first non-empty candidate wins; synchronized sources are tried before
plain text ones.
"""

from pathlib import Path
from typing import List, Optional, Union

from mutagen import File as MutagenFile, MutagenError
from mutagen.id3 import ID3
from mutagen.mp4 import MP4Tags

from ..exceptions import LyricsError
from ..lyrics.lrc import TimeTag
from ..utils.logger import get_logger


logger = get_logger(__name__)

# SYLT timestamp format: 1 = MPEG frames, 2 = milliseconds
SYLT_FORMAT_MILLISECONDS = 2

ID3_TXXX_DESCRIPTIONS = ("LYRICS", "SYNCEDLYRICS")
MP4_LYRICS_KEYS = ("----:com.lrclib:LYRICS", "\xa9lyr")
COMMENT_LYRICS_KEYS = ("LYRICS", "UNSYNCEDLYRICS", "Lyrics")


def sylt_to_lrc(entries: List[tuple]) -> str:
    """
    Convert SYLT (text, milliseconds) pairs to LRC text

    Entries are sorted by time; empty texts keep their timestamp so that
    instrumental gaps still clear the display.
    """
    lines = []
    for text, millis in sorted(entries, key=lambda entry: entry[1]):
        tag = TimeTag(max(0, int(millis)) * 1000)
        lines.append(f"[{tag}]{text.strip()}")
    return "\n".join(lines)


def _text_of(value) -> Optional[str]:
    """Normalize a tag value (str, bytes, list of either) to stripped text"""
    if isinstance(value, (list, tuple)):
        for item in value:
            text = _text_of(item)
            if text:
                return text
        return None
    if isinstance(value, bytes):
        value = value.decode('utf-8', errors='replace')
    if value is None:
        return None
    text = str(value).strip()
    return text or None


class MetadataReader:
    """
    Reads lyrics out of audio file tags with format-specific handling

    The format is detected from the loaded tag container, not from the
    file extension, so mislabelled files are still handled.
    """

    def __init__(self):
        self.logger = get_logger(__name__)

    def read_embedded_lyrics(self, file_path: Union[str, Path]) -> Optional[str]:
        """
        Extract lyrics text from an audio file's tags

        Args:
            file_path: Path to the audio file

        Returns:
            Lyrics text (LRC or plain), or None when the file carries none

        Raises:
            LyricsError: If the file cannot be opened or parsed
        """
        try:
            audio = MutagenFile(str(file_path))
        except (MutagenError, OSError) as e:
            raise LyricsError(
                f"Failed to read tags from {file_path}: {e}",
                details={'path': str(file_path), 'original_error': str(e)}
            )

        if audio is None or audio.tags is None:
            self.logger.debug(f"No tags in {file_path}")
            return None

        tags = audio.tags
        if isinstance(tags, ID3):
            lyrics = self._read_id3_lyrics(tags)
        elif isinstance(tags, MP4Tags):
            lyrics = self._read_mp4_lyrics(tags)
        else:
            lyrics = self._read_comment_lyrics(tags)

        if lyrics:
            self.logger.debug(f"Found embedded lyrics in {file_path}")
        return lyrics

    def _read_id3_lyrics(self, tags: ID3) -> Optional[str]:
        for frame in tags.getall("SYLT"):
            if frame.format != SYLT_FORMAT_MILLISECONDS:
                self.logger.debug("Skipping SYLT frame timed in MPEG frames")
                continue
            if frame.text:
                return sylt_to_lrc(frame.text)

        for frame in tags.getall("TXXX"):
            if frame.desc.upper() in ID3_TXXX_DESCRIPTIONS:
                text = _text_of(frame.text)
                if text:
                    return text

        for frame in tags.getall("USLT"):
            text = _text_of(frame.text)
            if text:
                return text

        return None

    def _read_mp4_lyrics(self, tags: MP4Tags) -> Optional[str]:
        for key in MP4_LYRICS_KEYS:
            text = _text_of(tags.get(key))
            if text:
                return text
        return None

    def _read_comment_lyrics(self, tags) -> Optional[str]:
        """Vorbis comments and APEv2, both dict-like with case-insensitive keys"""
        for key in COMMENT_LYRICS_KEYS:
            try:
                value = tags[key]
            except (KeyError, ValueError):
                continue
            text = _text_of(value)
            if text:
                return text
        return None


# Global metadata reader instance
_metadata_reader: Optional[MetadataReader] = None


def get_metadata_reader() -> MetadataReader:
    """Get global metadata reader instance"""
    global _metadata_reader
    if not _metadata_reader:
        _metadata_reader = MetadataReader()
    return _metadata_reader


def read_embedded_lyrics(file_path: Union[str, Path]) -> Optional[str]:
    """
    Convenience function to read embedded lyrics

    Args:
        file_path: Path to the audio file

    Returns:
        Lyrics text or None when the file has no lyrics tags
    """
    return get_metadata_reader().read_embedded_lyrics(file_path)
