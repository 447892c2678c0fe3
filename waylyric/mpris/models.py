"""
Data models for MPRIS players

This module defines the playback state kept for every media player found on
the session bus, the typed updates that mutate it, and the bus membership
events that add and remove players.

Position model:
MPRIS only reports a position when asked (or on Seeked), so the state keeps
the last reported position together with the monotonic instant it was
captured. The current position is extrapolated from that pair, the playback
status and the rate, and clamped to mpris:length so that players which loop
a track without emitting a fresh position do not drift past the end.

All timestamps passed in as ``now`` are ``time.monotonic()`` seconds; all
positions are integer microseconds, the unit MPRIS uses on the wire.
"""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Iterable, Optional, Tuple, Union
from urllib.parse import unquote

from ..exceptions import PlayerUpdateError
from ..lyrics.lrc import TimeTag, MICROS_PER_SECOND
from ..utils.helpers import first_text
from ..utils.logger import get_logger


logger = get_logger(__name__)

MPRIS_PREFIX = "org.mpris.MediaPlayer2"
MPRIS_PATH = "/org/mpris/MediaPlayer2"
MPRIS_PLAYER_INTERFACE = "org.mpris.MediaPlayer2.Player"

# Formatted metadata values longer than this are summarized
MAX_METADATA_VALUE_LEN = 256


class PlaybackStatus(Enum):
    """
    MPRIS PlaybackStatus property values

    Players send the exact strings "Playing", "Paused" and "Stopped";
    parsing is case-insensitive to tolerate sloppy implementations.
    """
    PLAYING = "Playing"
    PAUSED = "Paused"
    STOPPED = "Stopped"

    @classmethod
    def parse(cls, value: str) -> "PlaybackStatus":
        """
        Parse a PlaybackStatus string

        Raises:
            PlayerUpdateError: If the value is not one of the three statuses
        """
        if isinstance(value, str):
            for status in cls:
                if status.value.lower() == value.strip().lower():
                    return status
        raise PlayerUpdateError(f"Unknown playback status {value!r}", details={'value': value})


@dataclass(frozen=True)
class MetadataUpdate:
    """The Metadata property changed; carries the full new mapping"""
    metadata: Dict[str, Any]


@dataclass(frozen=True)
class RateUpdate:
    """The Rate property changed"""
    rate: float


@dataclass(frozen=True)
class StatusUpdate:
    """The PlaybackStatus property changed"""
    status: PlaybackStatus


@dataclass(frozen=True)
class PositionUpdate:
    """A Seeked signal or a Position poll, with the monotonic instant it was taken"""
    position: int
    captured_at: float


PlayerUpdate = Union[MetadataUpdate, RateUpdate, StatusUpdate, PositionUpdate]


def audio_url_to_path(url: Optional[str]) -> Optional[Path]:
    """
    Convert an xesam:url to a local path

    The URL is percent-decoded first; anything that is not a ``file://``
    URL yields None.
    """
    if not url:
        return None
    decoded = unquote(url)
    if not decoded.startswith("file://"):
        return None
    return Path(decoded[len("file://"):])


def lrc_path_for(audio_path: Path) -> Path:
    """Sidecar lyrics file next to a media file: same name, .lrc extension"""
    return audio_path.with_suffix(".lrc")


def format_metadata_value(value: Any) -> str:
    """Render a D-Bus metadata value as text; containers are joined with ';'"""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, dict):
        return ";".join(f"{format_metadata_value(k)}={format_metadata_value(v)}" for k, v in value.items())
    if isinstance(value, (list, tuple)):
        return ";".join(format_metadata_value(v) for v in value)
    if isinstance(value, bytes):
        return value.decode('utf-8', errors='replace')
    return str(value)


@dataclass
class PlayerState:
    """
    Last known playback state of one MPRIS player

    Mutated only through apply_update (and the position helpers the
    scheduler uses to rebase the position at a known instant).
    """
    metadata: Dict[str, Any] = field(default_factory=dict)
    position: int = 0
    position_captured_at: float = 0.0
    rate: Optional[float] = None
    status: Optional[PlaybackStatus] = None

    @property
    def effective_rate(self) -> float:
        if self.rate is None or self.rate <= 0:
            return 1.0
        return self.rate

    @property
    def is_playing(self) -> bool:
        return self.status is PlaybackStatus.PLAYING

    def apply_update(self, update: PlayerUpdate, now: float) -> None:
        """
        Apply one typed update

        A status change first freezes the position at ``now`` under the old
        status, so time spent paused is never counted and time spent playing
        up to the transition is never lost.
        """
        if isinstance(update, MetadataUpdate):
            self.metadata = dict(update.metadata)
        elif isinstance(update, RateUpdate):
            self.freeze_position(now)
            self.rate = update.rate
        elif isinstance(update, StatusUpdate):
            self.freeze_position(now)
            self.status = update.status
        elif isinstance(update, PositionUpdate):
            self.position = update.position
            self.position_captured_at = update.captured_at
        else:
            raise PlayerUpdateError(f"Unsupported player update {update!r}")

    def total_elapsed(self, now: float) -> int:
        """
        Extrapolated position in microseconds, not clamped to the track length

        Negative inputs (a negative reported position, or a capture instant in
        the future) are treated as zero.
        """
        position = self.position
        if position < 0:
            logger.warning(f"Negative player position {position}us, treating as 0")
            position = 0

        if not self.is_playing:
            return position

        elapsed = now - self.position_captured_at
        if elapsed < 0:
            elapsed = 0.0
        return position + int(elapsed * MICROS_PER_SECOND / self.effective_rate)

    def current_timetag(self, now: float) -> TimeTag:
        """Extrapolated position, clamped to mpris:length when it is known"""
        total = self.total_elapsed(now)
        length = self.track_length()
        if length is not None and total > length:
            logger.debug(f"Position {total}us exceeds track length {length}us, clamping")
            total = length
        return TimeTag(total)

    def freeze_position(self, now: float) -> None:
        """Store the extrapolated position as the new baseline captured at ``now``"""
        self.position = self.total_elapsed(now)
        self.position_captured_at = now

    def reset_position(self, now: float, position: int = 0) -> None:
        self.position = position
        self.position_captured_at = now

    def track_length(self) -> Optional[int]:
        """mpris:length in microseconds, None when missing or not positive"""
        value = self.metadata.get("mpris:length")
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return None
        length = int(value)
        return length if length > 0 else None

    def loop_count(self, now: float) -> Tuple[int, int]:
        """
        How many times the track has wrapped since the position baseline

        Returns:
            (loop ordinal, position within the current loop in microseconds);
            (0, unclamped position) when the track length is unknown
        """
        total = self.total_elapsed(now)
        length = self.track_length()
        if length is None:
            return 0, total
        return total // length, total % length

    def get_text(self, key: str) -> Optional[str]:
        return first_text(self.metadata.get(key))

    def track_id(self) -> Optional[str]:
        return self.get_text("mpris:trackid")

    def track_identity(self) -> Tuple[Optional[str], ...]:
        """Values whose change means a different track: url, title, artist, trackid"""
        return (
            self.get_text("xesam:url"),
            self.get_text("xesam:title"),
            self.get_text("xesam:artist"),
            self.track_id(),
        )

    def audio_path(self) -> Optional[Path]:
        return audio_url_to_path(self.get_text("xesam:url"))

    def inline_lyrics(self) -> Optional[str]:
        """Lyrics exposed by the player itself in xesam:asText"""
        text = self.metadata.get("xesam:asText")
        if isinstance(text, str) and text.strip():
            return text
        return None

    def sidecar_path(self) -> Optional[Path]:
        path = self.audio_path()
        return lrc_path_for(path) if path else None

    def has_lyrics_hint(self) -> bool:
        """Inline lyrics are exposed, or the track is a local file that may carry some"""
        if self.inline_lyrics():
            return True
        path = self.audio_path()
        return path is not None and path.is_file()

    def format_metadata(self, skip_keys: Iterable[str] = ()) -> str:
        """
        ``key: value`` lines for the tooltip, sorted by key

        Keys in ``skip_keys`` are left out and overlong values are replaced
        by a size summary.
        """
        skipped = set(skip_keys)
        lines = []
        for key in sorted(self.metadata):
            if key in skipped:
                continue
            value = format_metadata_value(self.metadata[key])
            if len(value) > MAX_METADATA_VALUE_LEN:
                value = f"({len(value)} bytes blob)"
            lines.append(f"{key}: {value}")
        return "\n".join(lines)


class BusActivity(Enum):
    """Whether a bus name appeared or disappeared"""
    CREATED = "created"
    DESTROYED = "destroyed"


@dataclass(frozen=True)
class BusChange:
    """One membership event parsed from NameOwnerChanged (or the initial ListNames)"""
    name: str
    activity: BusActivity

    def is_mpris(self) -> bool:
        return self.name.startswith(MPRIS_PREFIX)

    @property
    def short_name(self) -> str:
        """``org.mpris.MediaPlayer2.vlc`` -> ``vlc``"""
        prefix = MPRIS_PREFIX + "."
        return self.name[len(prefix):] if self.name.startswith(prefix) else self.name

    def matches_players(self, allowed: Iterable[str]) -> bool:
        """
        Check the bus name against the player allow-list

        "all" accepts every MPRIS player; other entries match the short name
        or the full bus name, case-insensitively. Per-instance names such as
        ``firefox.instance_1_42`` also match their base name ``firefox``.
        """
        if not self.is_mpris():
            return False

        allowed = [p.lower() for p in allowed]
        if "all" in allowed:
            return True

        short = self.short_name.lower()
        full = self.name.lower()
        base = short.split(".instance", 1)[0]
        return any(wanted in (short, full, base) for wanted in allowed)
