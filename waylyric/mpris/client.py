"""
MPRIS transport over the D-Bus session bus (dbus-fast, asyncio)

This module is the only place that talks to D-Bus. It provides:

- membership(): an async iterator of BusChange events, starting with a
  snapshot of the names already on the bus (ListNames) and continuing
  with NameOwnerChanged, filtered to the MPRIS namespace
- connect_player(): builds a player proxy, reads its initial state and
  starts a PlayerListener task that forwards typed updates

Probing new players:
A player that just claimed its bus name is sometimes not ready to answer
yet. build_player retries the introspection plus a CanPlay probe with a
timeout that starts at 2 s and grows by 1.3x, giving up once a timeout
above 10 s has also failed.

Listener:
dbus-fast delivers signals through plain callbacks. The callbacks only
parse and enqueue; the listener task forwards each update into the shared
bounded queue, so a slow dispatcher applies backpressure to every player.
The listener also polls Position whenever refresh_interval elapses since
the last poll, since MPRIS does not signal position changes during
normal playback.
"""

import asyncio
import time
from typing import Any, AsyncIterator, Optional, Tuple, Union

from dbus_fast import BusType, Variant
from dbus_fast.aio import MessageBus, ProxyInterface
from dbus_fast.errors import DBusError, InterfaceNotFoundError

from ..config.settings import get_settings
from ..exceptions import BusError, MembershipError, PlayerUpdateError
from ..utils.logger import get_logger
from .models import (
    MPRIS_PATH,
    MPRIS_PLAYER_INTERFACE,
    BusActivity,
    BusChange,
    MetadataUpdate,
    PlaybackStatus,
    PlayerState,
    PlayerUpdate,
    PositionUpdate,
    RateUpdate,
    StatusUpdate,
)


logger = get_logger(__name__)

DBUS_NAME = "org.freedesktop.DBus"
DBUS_PATH = "/org/freedesktop/DBus"
PROPERTIES_INTERFACE = "org.freedesktop.DBus.Properties"

PROBE_INITIAL_TIMEOUT = 2.0
PROBE_BACKOFF = 1.3
PROBE_GIVE_UP_AFTER = 10.0

# Upper bound for a single property read from a player
CALL_TIMEOUT = 5.0


def unwrap_variant(value: Any) -> Any:
    """Recursively replace dbus-fast Variants with their plain Python values"""
    if isinstance(value, Variant):
        return unwrap_variant(value.value)
    if isinstance(value, dict):
        return {key: unwrap_variant(item) for key, item in value.items()}
    if isinstance(value, list):
        return [unwrap_variant(item) for item in value]
    return value


def parse_property(name: str, value: Any, captured_at: Optional[float] = None) -> Optional[PlayerUpdate]:
    """
    Turn one changed Player property into a typed update

    Returns:
        The update, or None for properties the scheduler does not track

    Raises:
        PlayerUpdateError: If the value has the wrong shape
    """
    value = unwrap_variant(value)
    if name == "Metadata":
        if not isinstance(value, dict):
            raise PlayerUpdateError(f"Metadata is not a dictionary: {value!r}")
        return MetadataUpdate(value)
    if name == "Rate":
        try:
            return RateUpdate(float(value))
        except (TypeError, ValueError):
            raise PlayerUpdateError(f"Invalid playback rate {value!r}")
    if name == "PlaybackStatus":
        return StatusUpdate(PlaybackStatus.parse(value))
    if name == "Position":
        try:
            position = int(value)
        except (TypeError, ValueError):
            raise PlayerUpdateError(f"Invalid player position {value!r}")
        return PositionUpdate(position, captured_at if captured_at is not None else time.monotonic())
    return None


def name_owner_change(name: str, old_owner: str, new_owner: str) -> Optional[BusChange]:
    """
    Classify a NameOwnerChanged signal

    A name gaining its first owner was created, a name losing its owner
    was destroyed; ownership handovers are ignored.
    """
    if new_owner and not old_owner:
        return BusChange(name, BusActivity.CREATED)
    if old_owner and not new_owner:
        return BusChange(name, BusActivity.DESTROYED)
    return None


class PlayerListener:
    """
    Forwards one player's property changes, seeks and position polls

    Property names listed as invalidated (changed without a value) are
    re-read from the player before being forwarded.
    """

    def __init__(self, bus_name: str, player: ProxyInterface, properties: ProxyInterface,
                 updates: asyncio.Queue, refresh_interval: float):
        self.bus_name = bus_name
        self.player = player
        self.properties = properties
        self.updates = updates
        self.refresh_interval = refresh_interval
        self._events: asyncio.Queue = asyncio.Queue()

    def _on_properties_changed(self, interface_name: str, changed: dict, invalidated: list) -> None:
        if interface_name != MPRIS_PLAYER_INTERFACE:
            return
        for name, variant in changed.items():
            try:
                update = parse_property(name, variant)
            except PlayerUpdateError as e:
                logger.warning(f"{self.bus_name}: failed to parse MPRIS update: {e}")
                continue
            if update is not None:
                self._events.put_nowait(update)
        for name in invalidated:
            if name in ("Metadata", "Rate", "PlaybackStatus"):
                self._events.put_nowait(name)

    def _on_seeked(self, position: int) -> None:
        self._events.put_nowait(PositionUpdate(int(position), time.monotonic()))

    def subscribe(self) -> None:
        self.properties.on_properties_changed(self._on_properties_changed)
        self.player.on_seeked(self._on_seeked)

    def unsubscribe(self) -> None:
        self.properties.off_properties_changed(self._on_properties_changed)
        self.player.off_seeked(self._on_seeked)

    async def read_property(self, name: str) -> Optional[PlayerUpdate]:
        """
        Read one Player property and wrap it as an update

        Raises:
            BusError: If the call fails or times out
        """
        getter = getattr(self.player, "get_" + {"PlaybackStatus": "playback_status"}.get(name, name.lower()))
        try:
            value = await asyncio.wait_for(getter(), CALL_TIMEOUT)
        except (DBusError, asyncio.TimeoutError) as e:
            raise BusError(f"Failed to get player {name} from {self.bus_name}: {str(e) or 'timeout'}",
                           details={'bus_name': self.bus_name, 'property': name})
        return parse_property(name, value, time.monotonic())

    async def run(self) -> None:
        """
        Forward updates until cancelled or the player stops answering

        A transport failure ends this listener only; the registry entry is
        cleaned up when the player's destroy event arrives.
        """
        self.subscribe()
        next_poll = time.monotonic() + self.refresh_interval
        try:
            while True:
                timeout = max(0.0, next_poll - time.monotonic())
                try:
                    event: Union[PlayerUpdate, str] = await asyncio.wait_for(self._events.get(), timeout)
                except asyncio.TimeoutError:
                    event = "Position"
                    next_poll = time.monotonic() + self.refresh_interval

                if isinstance(event, str):
                    try:
                        update = await self.read_property(event)
                    except PlayerUpdateError as e:
                        logger.warning(f"{self.bus_name}: failed to parse MPRIS update: {e}")
                        continue
                else:
                    update = event

                if update is not None:
                    await self.updates.put((self.bus_name, update))
        except BusError as e:
            logger.error(f"Player listener for {self.bus_name} stopped: {e}")
        finally:
            self.unsubscribe()


class MprisClient:
    """
    Session bus connection and MPRIS player discovery

    Usage:
        client = await MprisClient().connect()
        async for change in client.membership():
            ...
        state, task = await client.connect_player(name, updates)
    """

    def __init__(self, refresh_interval: Optional[float] = None):
        self.refresh_interval = refresh_interval or get_settings().player.refresh_interval
        self.bus: Optional[MessageBus] = None

    async def connect(self) -> "MprisClient":
        """
        Open the session bus

        Raises:
            MembershipError: If the session bus is unreachable
        """
        try:
            self.bus = await MessageBus(bus_type=BusType.SESSION).connect()
        except (OSError, DBusError, ValueError) as e:
            raise MembershipError(f"Failed to connect to the D-Bus session bus: {e}",
                                  details={'original_error': repr(e)})
        logger.debug(f"Connected to session bus as {self.bus.unique_name}")
        return self

    def disconnect(self) -> None:
        if self.bus is not None:
            self.bus.disconnect()
            self.bus = None

    def _require_bus(self) -> MessageBus:
        if self.bus is None:
            raise BusError("MprisClient is not connected")
        return self.bus

    async def membership(self) -> AsyncIterator[BusChange]:
        """
        MPRIS players already on the bus, then every later change

        Raises:
            MembershipError: If the bus cannot be queried or disconnects
        """
        bus = self._require_bus()
        changes: asyncio.Queue = asyncio.Queue()

        def on_name_owner_changed(name: str, old_owner: str, new_owner: str) -> None:
            change = name_owner_change(name, old_owner, new_owner)
            if change is not None:
                changes.put_nowait(change)

        try:
            introspection = await bus.introspect(DBUS_NAME, DBUS_PATH)
            dbus_interface = bus.get_proxy_object(DBUS_NAME, DBUS_PATH, introspection).get_interface(DBUS_NAME)
            dbus_interface.on_name_owner_changed(on_name_owner_changed)
            names = await dbus_interface.call_list_names()
        except (DBusError, InterfaceNotFoundError) as e:
            raise MembershipError(f"Failed to list currently-owned names on DBus: {e}")

        disconnected = asyncio.ensure_future(bus.wait_for_disconnect())
        try:
            for name in names:
                change = BusChange(name, BusActivity.CREATED)
                if change.is_mpris():
                    yield change

            while True:
                next_change = asyncio.ensure_future(changes.get())
                done, _ = await asyncio.wait({next_change, disconnected}, return_when=asyncio.FIRST_COMPLETED)
                if next_change not in done:
                    next_change.cancel()
                    raise MembershipError("Session bus disconnected")
                change = next_change.result()
                if change.is_mpris():
                    logger.debug(f"Bus change: {change.name} {change.activity.value}")
                    yield change
        finally:
            disconnected.cancel()
            dbus_interface.off_name_owner_changed(on_name_owner_changed)

    async def _probe(self, bus_name: str) -> Tuple[ProxyInterface, ProxyInterface]:
        bus = self._require_bus()
        introspection = await bus.introspect(bus_name, MPRIS_PATH)
        proxy = bus.get_proxy_object(bus_name, MPRIS_PATH, introspection)
        player = proxy.get_interface(MPRIS_PLAYER_INTERFACE)
        properties = proxy.get_interface(PROPERTIES_INTERFACE)
        await player.get_can_play()
        return player, properties

    async def build_player(self, bus_name: str) -> Tuple[ProxyInterface, ProxyInterface]:
        """
        Create the Player and Properties proxies, retrying until the player answers

        Raises:
            BusError: If the player never answers or does not implement MPRIS
        """
        timeout = PROBE_INITIAL_TIMEOUT
        while True:
            try:
                return await asyncio.wait_for(self._probe(bus_name), timeout)
            except asyncio.TimeoutError:
                pass
            except (DBusError, InterfaceNotFoundError) as e:
                raise BusError(f"Failed to create player proxy for {bus_name}: {e}",
                               details={'bus_name': bus_name})

            if timeout > PROBE_GIVE_UP_AFTER:
                raise BusError(f"Player {bus_name} is not responding after {timeout:.1f}s - giving up!",
                               details={'bus_name': bus_name})
            logger.info(f"Player {bus_name} is not responding after {timeout:.1f}s - restarting connection")
            timeout *= PROBE_BACKOFF

    async def read_state(self, bus_name: str, player: ProxyInterface) -> PlayerState:
        """
        Read the initial state of a player

        Metadata, rate and status failures are logged and left at their
        defaults; without a position nothing can be synchronized.

        Raises:
            BusError: If Position cannot be read
        """
        state = PlayerState()

        try:
            state.metadata = unwrap_variant(await asyncio.wait_for(player.get_metadata(), CALL_TIMEOUT))
        except (DBusError, asyncio.TimeoutError) as e:
            logger.warning(f"Failed to get player metadata from {bus_name}: {e}")

        try:
            position = await asyncio.wait_for(player.get_position(), CALL_TIMEOUT)
        except (DBusError, asyncio.TimeoutError) as e:
            raise BusError(f"Failed to get player position from {bus_name}: {str(e) or 'timeout'}",
                           details={'bus_name': bus_name})
        state.reset_position(time.monotonic(), int(position))

        try:
            state.rate = float(await asyncio.wait_for(player.get_rate(), CALL_TIMEOUT))
        except (DBusError, asyncio.TimeoutError) as e:
            logger.warning(f"Failed to get player playback rate from {bus_name}: {e}")

        try:
            state.status = PlaybackStatus.parse(await asyncio.wait_for(player.get_playback_status(), CALL_TIMEOUT))
        except (DBusError, asyncio.TimeoutError, PlayerUpdateError) as e:
            logger.warning(f"Failed to get player playback status from {bus_name}: {e}")

        return state

    async def connect_player(self, bus_name: str, updates: asyncio.Queue) -> Tuple[PlayerState, asyncio.Task]:
        """
        Connect to a player and start forwarding its updates

        Args:
            bus_name: Full MPRIS bus name
            updates: Shared queue receiving (bus_name, update) tuples

        Returns:
            (initial PlayerState, listener task)

        Raises:
            BusError: If the player cannot be reached
        """
        player, properties = await self.build_player(bus_name)
        state = await self.read_state(bus_name, player)
        logger.debug(f"{bus_name}: initial state {state}")

        listener = PlayerListener(bus_name, player, properties, updates, self.refresh_interval)
        task = asyncio.ensure_future(listener.run())
        return state, task
