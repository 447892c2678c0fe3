# tests/test_mpris_client.py
"""Test MPRIS signal parsing without a session bus"""

import asyncio

import pytest
from unittest.mock import AsyncMock, Mock

from dbus_fast import Variant

from waylyric.exceptions import BusError, PlayerUpdateError
from waylyric.mpris.client import PlayerListener, name_owner_change, parse_property, unwrap_variant
from waylyric.mpris.models import (
    MPRIS_PLAYER_INTERFACE,
    BusActivity,
    MetadataUpdate,
    PlaybackStatus,
    PositionUpdate,
    RateUpdate,
    StatusUpdate,
)


BUS_NAME = "org.mpris.MediaPlayer2.vlc"


@pytest.fixture
def listener():
    return PlayerListener(BUS_NAME, Mock(), Mock(), asyncio.Queue(maxsize=1), refresh_interval=1.0)


class TestUnwrapVariant:
    """Test conversion of dbus-fast values"""

    def test_plain_values(self):
        """Test values without variants pass through"""
        assert unwrap_variant("text") == "text"
        assert unwrap_variant(42) == 42

    def test_nested_variants(self):
        """Test variants inside dictionaries and lists"""
        metadata = {
            "xesam:title": Variant('s', "Song"),
            "xesam:artist": Variant('as', ["Band", "Guest"]),
            "mpris:length": Variant('x', 180_000_000),
        }
        assert unwrap_variant(metadata) == {
            "xesam:title": "Song",
            "xesam:artist": ["Band", "Guest"],
            "mpris:length": 180_000_000,
        }

    def test_variant_of_variant(self):
        """Test a variant wrapping another variant"""
        assert unwrap_variant(Variant('v', Variant('d', 1.5))) == 1.5


class TestParseProperty:
    """Test typed updates from changed properties"""

    def test_metadata(self):
        """Test Metadata becomes a MetadataUpdate"""
        update = parse_property("Metadata", Variant('a{sv}', {"xesam:title": Variant('s', "Song")}))
        assert update == MetadataUpdate({"xesam:title": "Song"})

    def test_metadata_wrong_shape(self):
        """Test non-dictionary metadata is rejected"""
        with pytest.raises(PlayerUpdateError):
            parse_property("Metadata", ["not", "a", "dict"])

    def test_rate(self):
        """Test Rate becomes a float RateUpdate"""
        assert parse_property("Rate", Variant('d', 2.0)) == RateUpdate(2.0)
        with pytest.raises(PlayerUpdateError):
            parse_property("Rate", "fast")

    def test_playback_status(self):
        """Test PlaybackStatus strings"""
        assert parse_property("PlaybackStatus", "Paused") == StatusUpdate(PlaybackStatus.PAUSED)
        with pytest.raises(PlayerUpdateError):
            parse_property("PlaybackStatus", "Buffering")

    def test_position(self):
        """Test Position keeps the capture instant"""
        assert parse_property("Position", Variant('x', 5_000_000), 12.5) == PositionUpdate(5_000_000, 12.5)
        with pytest.raises(PlayerUpdateError):
            parse_property("Position", None)

    def test_untracked_property(self):
        """Test properties the scheduler ignores give None"""
        assert parse_property("Volume", 0.5) is None
        assert parse_property("CanGoNext", True) is None


class TestNameOwnerChange:
    """Test NameOwnerChanged classification"""

    def test_created(self):
        """Test a name gaining an owner"""
        change = name_owner_change(BUS_NAME, "", ":1.42")
        assert change.activity is BusActivity.CREATED
        assert change.short_name == "vlc"

    def test_destroyed(self):
        """Test a name losing its owner"""
        assert name_owner_change(BUS_NAME, ":1.42", "").activity is BusActivity.DESTROYED

    def test_handover_ignored(self):
        """Test an owner change between two connections"""
        assert name_owner_change(BUS_NAME, ":1.42", ":1.43") is None


class TestPlayerListener:
    """Test signal callbacks"""

    def test_properties_changed(self, listener):
        """Test changed values are parsed and queued in order"""
        listener._on_properties_changed(MPRIS_PLAYER_INTERFACE, {
            "PlaybackStatus": Variant('s', "Playing"),
            "Volume": Variant('d', 0.3),
            "Rate": Variant('d', 1.0),
        }, [])

        assert listener._events.get_nowait() == StatusUpdate(PlaybackStatus.PLAYING)
        assert listener._events.get_nowait() == RateUpdate(1.0)
        assert listener._events.empty()

    def test_other_interface_ignored(self, listener):
        """Test changes on other interfaces are dropped"""
        listener._on_properties_changed("org.mpris.MediaPlayer2", {"Identity": Variant('s', "VLC")}, [])
        assert listener._events.empty()

    def test_invalid_value_skipped(self, listener):
        """Test a malformed value does not block the other changes"""
        listener._on_properties_changed(MPRIS_PLAYER_INTERFACE, {
            "PlaybackStatus": Variant('s', "Buffering"),
            "Rate": Variant('d', 1.5),
        }, [])

        assert listener._events.get_nowait() == RateUpdate(1.5)
        assert listener._events.empty()

    def test_invalidated_properties_reread(self, listener):
        """Test invalidated tracked properties are queued by name"""
        listener._on_properties_changed(MPRIS_PLAYER_INTERFACE, {}, ["Metadata", "Volume"])
        assert listener._events.get_nowait() == "Metadata"
        assert listener._events.empty()

    def test_seeked(self, listener):
        """Test Seeked becomes a PositionUpdate"""
        listener._on_seeked(7_000_000)
        update = listener._events.get_nowait()
        assert isinstance(update, PositionUpdate)
        assert update.position == 7_000_000

    @pytest.mark.asyncio
    async def test_read_property_timeout(self, listener):
        """Test a property read that times out names the timeout"""
        listener.player.get_rate = AsyncMock(side_effect=asyncio.TimeoutError())

        with pytest.raises(BusError) as exc_info:
            await listener.read_property("Rate")

        assert str(exc_info.value).endswith(": timeout")
        assert exc_info.value.details == {'bus_name': BUS_NAME, 'property': "Rate"}

    @pytest.mark.asyncio
    async def test_read_property(self, listener):
        """Test a property read becomes a typed update"""
        listener.player.get_playback_status = AsyncMock(return_value="Paused")
        assert await listener.read_property("PlaybackStatus") == StatusUpdate(PlaybackStatus.PAUSED)
