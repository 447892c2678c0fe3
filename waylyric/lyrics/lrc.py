"""
LRC lyrics parsing and time-indexed lookup

An LRC file is line oriented; each line starts with zero or more bracketed
timestamps followed by the lyric text:

    [ar: Jefferson Airplane]
    [00:12.00]Line 1 lyrics
    [00:17.20]F: Line 2 lyrics
    [00:21.10][00:45.10]Repeating lyrics (e.g. chorus)
    [00:00.00] <00:00.04> When <00:00.16> the <00:00.82> truth

The parser produces a LyricsDocument made of one or more versions. A new
version starts whenever a single-timestamp line goes back in time, which is
how files that concatenate a translation after the original are laid out.
All versions are queried together so bilingual lyrics show side by side.

Supported extensions:
- ID tags ([ar:], [ti:], [length:], ...) and blank lines are skipped
- Walaoke vocal part prefixes (F:, M:, D:) are removed
- A2 "enhanced" per-word <mm:ss.xx> tags are removed, keeping word spacing
"""

import re
from bisect import bisect_right
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Mapping, NamedTuple, Optional, Sequence, Tuple, Union

from ..exceptions import TimeTagError
from ..utils.logger import get_logger


logger = get_logger(__name__)

MICROS_PER_SECOND = 1_000_000

_TIMESTAMP_RE = re.compile(r'^\s*(\d+):(\d+)(?:[.:](\d+))?\s*$')
_ID_TAG_RE = re.compile(r'^\[(ar|al|ti|au|by|length|offset|re|ve|tool|la|id|#)\s*:[^\]]*\]\s*$', re.IGNORECASE)
_VOCAL_PART_RE = re.compile(r'^(?:[FMD]:)+\s*')
_WORD_TIMING_RE = re.compile(r'<\d+:\d+(?:[.:]\d+)?>\s*')


@dataclass(frozen=True, order=True)
class TimeTag:
    """
    Offset from the start of a track, stored as whole microseconds

    MPRIS reports positions in microseconds, so keeping the same unit makes
    comparisons between player positions and lyric timestamps exact.
    """
    micros: int

    def __post_init__(self):
        if self.micros < 0:
            raise ValueError(f"TimeTag cannot be negative: {self.micros}us")

    @classmethod
    def from_seconds(cls, seconds: float) -> "TimeTag":
        return cls(int(round(seconds * MICROS_PER_SECOND)))

    @classmethod
    def parse(cls, text: str) -> "TimeTag":
        """
        Parse the inside of an LRC timestamp

        Accepts ``mm:ss``, ``mm:ss.xx`` (any number of fraction digits) and
        ``mm:ss:xx``.

        Raises:
            TimeTagError: If the text is not a timestamp
        """
        match = _TIMESTAMP_RE.match(text)
        if not match:
            raise TimeTagError(f"Invalid time tag: {text!r}")

        minutes, seconds, fraction = match.groups()
        micros = (int(minutes) * 60 + int(seconds)) * MICROS_PER_SECOND
        if fraction:
            micros += int(fraction[:6].ljust(6, '0'))
        return cls(micros)

    @property
    def seconds(self) -> float:
        return self.micros / MICROS_PER_SECOND

    def distance_from(self, earlier: "TimeTag", rate: float = 1.0) -> float:
        """
        Wall-clock seconds between an earlier tag and this one at a playback rate

        Raises:
            ValueError: If ``earlier`` is after this tag
        """
        if earlier.micros > self.micros:
            raise ValueError(f"Negative distance from {earlier} to {self}")
        if rate <= 0:
            rate = 1.0
        return (self.micros - earlier.micros) / MICROS_PER_SECOND / rate

    def __str__(self) -> str:
        total_centis = self.micros // 10_000
        minutes, centis = divmod(total_centis, 6000)
        return f"{minutes:02d}:{centis // 100:02d}.{centis % 100:02d}"


TimeTag.ZERO = TimeTag(0)


class LineQuery(NamedTuple):
    """Result of LyricsDocument.get: active lines of every version and the next boundary"""
    lines: List[str]
    next_boundary: Optional[TimeTag]

    @property
    def text(self) -> str:
        return " ".join(self.lines)


def parse_line(line: str) -> Tuple[List[TimeTag], str]:
    """
    Split one LRC line into its leading timestamps and display text

    A bracket group that is not a valid timestamp ends the timestamp run and
    stays part of the text.
    """
    tags: List[TimeTag] = []
    rest = line
    while True:
        rest = rest.lstrip()
        if not rest.startswith('['):
            break
        close = rest.find(']')
        if close < 0:
            break
        try:
            tags.append(TimeTag.parse(rest[1:close]))
        except TimeTagError:
            break
        rest = rest[close + 1:]

    text = _VOCAL_PART_RE.sub('', rest)
    text = _WORD_TIMING_RE.sub('', text)
    return tags, text.strip()


class LyricsDocument:
    """
    Parsed, immutable, time-indexed lyrics

    Each version is kept as two parallel tuples (sorted timestamps and their
    texts) so lookups are a binary search per version.
    """

    def __init__(self, versions: Sequence[Mapping[TimeTag, str]] = ()):
        built = []
        for version in versions:
            if not version:
                continue
            keys = tuple(sorted(version))
            built.append((keys, tuple(version[k] for k in keys)))
        self._versions: Tuple[Tuple[Tuple[TimeTag, ...], Tuple[str, ...]], ...] = tuple(built)

    @classmethod
    def from_text(cls, text: str) -> "LyricsDocument":
        """Parse LRC text into a document"""
        versions: List[Dict[TimeTag, str]] = [{}]

        for raw_line in text.splitlines():
            if not raw_line.strip() or _ID_TAG_RE.match(raw_line.strip()):
                continue

            tags, line_text = parse_line(raw_line)
            current = versions[-1]

            if not tags:
                if current:
                    last_key = max(current)
                    joined = f"{current[last_key]} {line_text}" if current[last_key] else line_text
                    current[last_key] = joined
                else:
                    logger.warning(f"Lyric line without timestamp, showing it from the start: {line_text!r}")
                    current[TimeTag.ZERO] = line_text
            elif len(tags) == 1:
                if current and max(current) > tags[0]:
                    versions.append({})
                    current = versions[-1]
                current[tags[0]] = line_text
            else:
                for tag in tags:
                    current[tag] = line_text

        return cls(versions)

    @classmethod
    def from_single_line(cls, text: str) -> "LyricsDocument":
        """
        Best-effort parse of LRC whose newlines were lost

        Some players expose lyrics in xesam:asText as one line such as
        ``[00:01.00]a [00:02.00]b``; splitting on " [" recovers the lines.
        """
        logger.warning("Lyric lines are concatenated - parsing them might be inaccurate")
        return cls.from_text("\n[".join(text.split(" [")))

    @classmethod
    def from_path(cls, path: Union[str, Path]) -> "LyricsDocument":
        """Read and parse an .lrc file (UTF-8, undecodable bytes replaced)"""
        with open(path, 'r', encoding='utf-8', errors='replace') as f:
            return cls.from_text(f.read())

    @property
    def versions(self) -> List[Dict[TimeTag, str]]:
        return [dict(zip(keys, texts)) for keys, texts in self._versions]

    def is_empty(self) -> bool:
        return not self._versions

    def get(self, t: TimeTag) -> LineQuery:
        """
        Look up the lines active at ``t``

        For every version the active line is the one with the greatest
        timestamp not after ``t``; a version whose first line is still ahead
        contributes no text. The next boundary is the earliest timestamp
        after ``t`` across all versions, None once every version is exhausted.
        """
        lines: List[str] = []
        next_boundary: Optional[TimeTag] = None

        for keys, texts in self._versions:
            index = bisect_right(keys, t)
            if index > 0:
                lines.append(texts[index - 1])
            if index < len(keys):
                candidate = keys[index]
                if next_boundary is None or candidate < next_boundary:
                    next_boundary = candidate

        return LineQuery(lines, next_boundary)

    def __len__(self) -> int:
        return len(self._versions)

    def __eq__(self, other) -> bool:
        if not isinstance(other, LyricsDocument):
            return NotImplemented
        return self._versions == other._versions

    def __repr__(self) -> str:
        sizes = ", ".join(str(len(keys)) for keys, _ in self._versions)
        return f"LyricsDocument(versions=[{sizes}])"
