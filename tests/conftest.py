"""Test configuration and fixtures"""

import pytest
import tempfile
from pathlib import Path

from waylyric.exceptions import LyricsNotFoundError
from waylyric.lyrics.lrc import LyricsDocument, MICROS_PER_SECOND
from waylyric.mpris.models import PlaybackStatus, PlayerState


class FakeClock:
    """Manually advanced monotonic clock"""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> float:
        self.now += seconds
        return self.now


class RecordingRenderer:
    """Render sink keeping every emitted update as a dict"""

    def __init__(self):
        self.outputs = []

    def render(self, text=None, alt=None, tooltip=None, class_=None, percentage=None):
        self.outputs.append({'text': text, 'tooltip': tooltip})

    def clear(self):
        self.outputs.append({})

    @property
    def last(self):
        return self.outputs[-1] if self.outputs else None

    @property
    def texts(self):
        return [output.get('text') for output in self.outputs]


class FakeProcessor:
    """Lyrics processor resolving documents by track title"""

    def __init__(self, documents=None):
        self.documents = dict(documents or {})
        self.resolved = []

    def has_local_source(self, state):
        return state.get_text("xesam:title") in self.documents

    async def resolve(self, state):
        title = state.get_text("xesam:title")
        self.resolved.append(title)
        if title not in self.documents:
            raise LyricsNotFoundError(f"No lyrics found for {title}")
        return self.documents[title]


@pytest.fixture
def temp_dir():
    """Create temporary directory for tests"""
    with tempfile.TemporaryDirectory() as temp_dir:
        yield Path(temp_dir)


@pytest.fixture
def clock():
    """Fake monotonic clock shared by states and the scheduler"""
    return FakeClock()


@pytest.fixture
def renderer():
    """Render sink recording outputs"""
    return RecordingRenderer()


@pytest.fixture
def sample_lrc():
    """Three line LRC text"""
    return "[00:00.00]First line\n[00:06.47]Second line\n[00:13.34]Third line"


@pytest.fixture
def looping_document():
    """Lyrics spread over a 180 second track"""
    return LyricsDocument.from_text(
        "[00:00.00]Intro\n[00:30.00]Verse\n[01:00.00]Chorus\n[02:00.00]Bridge\n[02:55.00]Outro"
    )


@pytest.fixture
def make_state(clock):
    """Factory for PlayerState snapshots captured at the fake clock's now"""

    def factory(title="Test Song", artist="Test Artist", length=180.0, position=0.0,
                status=PlaybackStatus.PLAYING, url=None, **extra):
        metadata = {
            "xesam:title": title,
            "xesam:artist": [artist],
            "mpris:trackid": "/org/mpris/MediaPlayer2/track/" + title.replace(" ", "_"),
        }
        if length is not None:
            metadata["mpris:length"] = int(length * MICROS_PER_SECOND)
        if url is not None:
            metadata["xesam:url"] = url
        metadata.update(extra)
        return PlayerState(
            metadata=metadata,
            position=int(position * MICROS_PER_SECOND),
            position_captured_at=clock(),
            rate=1.0,
            status=status,
        )

    return factory
