"""
Top-level event dispatcher

One coroutine waits on four sources and hands each event to exactly one
scheduler handler:

1. Bus membership changes (players appearing and disappearing)
2. The shared update queue fed by one listener task per player
3. The scheduler's display timer deadline
4. The fixed-period loop integrity tick

Handlers run one at a time and to completion, lyrics resolution included,
so no lock is needed anywhere. Handler failures are logged and the loop
keeps going; only the membership source ending or failing stops it, with
MembershipError.
"""

import asyncio
from typing import AsyncIterator, Awaitable, Callable, Iterable, Optional, Tuple

from ..exceptions import BusError, MembershipError
from ..mpris.models import BusActivity, BusChange, PlayerState
from ..utils.logger import get_logger
from .synchronizer import LOOP_CHECK_INTERVAL, LyricsScheduler


# connect(bus_name, updates) -> (initial state, listener task)
PlayerConnector = Callable[[str, asyncio.Queue], Awaitable[Tuple[PlayerState, asyncio.Task]]]


class EventLoop:
    """
    Drives a LyricsScheduler from the bus

    Args:
        scheduler: The lyrics state machine
        membership: Async iterator of BusChange, starting with the snapshot
        connector: Builds a player's initial state and starts its listener
        updates: Shared queue of (bus_name, update), normally maxsize=1
        allowed_players: Player allow-list ("all" disables filtering)
        loop_check_interval: Seconds between loop integrity checks
    """

    def __init__(self, scheduler: LyricsScheduler, membership: AsyncIterator[BusChange],
                 connector: PlayerConnector, updates: asyncio.Queue,
                 allowed_players: Iterable[str] = ("all",),
                 loop_check_interval: float = LOOP_CHECK_INTERVAL):
        self.scheduler = scheduler
        self.membership = membership
        self.connector = connector
        self.updates = updates
        self.allowed_players = list(allowed_players)
        self.loop_check_interval = loop_check_interval
        self.logger = get_logger(__name__)

    @property
    def clock(self) -> Callable[[], float]:
        return self.scheduler.clock

    def _timeout(self, next_check: float) -> float:
        deadline = next_check
        if self.scheduler.timer.deadline is not None:
            deadline = min(deadline, self.scheduler.timer.deadline)
        return max(0.0, deadline - self.clock())

    async def run(self) -> None:
        """
        Dispatch events until the membership source fails

        Raises:
            MembershipError: The membership stream ended or raised
        """
        changes = self.membership.__aiter__()
        next_change: asyncio.Future = asyncio.ensure_future(changes.__anext__())
        next_update: asyncio.Future = asyncio.ensure_future(self.updates.get())
        next_check = self.clock() + self.loop_check_interval

        try:
            while True:
                done, _ = await asyncio.wait(
                    {next_change, next_update},
                    timeout=self._timeout(next_check),
                    return_when=asyncio.FIRST_COMPLETED,
                )

                if next_change in done:
                    change = self._membership_result(next_change)
                    next_change = asyncio.ensure_future(changes.__anext__())
                    await self._dispatch("bus change", self.handle_bus_change(change))

                if next_update in done:
                    bus_name, update = next_update.result()
                    next_update = asyncio.ensure_future(self.updates.get())
                    self.logger.debug(f"Player update event received: {bus_name} - {update}")
                    await self._dispatch("player update", self.scheduler.on_player_update(bus_name, update))

                now = self.clock()
                if self.scheduler.timer.due(now):
                    await self._dispatch("lyrics timer", self.scheduler.on_timer)

                if now >= next_check:
                    next_check = now + self.loop_check_interval
                    await self._dispatch("loop check", self.scheduler.on_loop_check)
        finally:
            for future in (next_change, next_update):
                future.cancel()
            self.scheduler.registry.clear()

    def _membership_result(self, future: asyncio.Future) -> BusChange:
        try:
            return future.result()
        except StopAsyncIteration:
            raise MembershipError("DBus NameOwnerChanged stream closed")
        except MembershipError:
            raise
        except Exception as e:
            raise MembershipError(f"Player membership source failed: {e}",
                                  details={'original_error': repr(e)}) from e

    async def _dispatch(self, event: str, handler) -> None:
        """Run one handler (coroutine or plain callable), absorbing its errors"""
        try:
            if asyncio.iscoroutine(handler):
                await handler
            else:
                handler()
        except MembershipError:
            raise
        except Exception as e:
            self.logger.error(f"Failed to handle {event}: {e}", exc_info=True)

    async def handle_bus_change(self, change: BusChange) -> None:
        """Connect to a new allowed player, or drop a departed one"""
        if not change.matches_players(self.allowed_players):
            self.logger.debug(f"Player {change.name} not in allowed list, skipping")
            return

        if change.activity is BusActivity.CREATED:
            try:
                state, task = await self.connector(change.name, self.updates)
            except BusError as e:
                self.logger.error(f"Failed to get player information from DBus for {change.name}: {e}")
                return
            await self.scheduler.on_player_created(change.name, state, task)
        else:
            await self.scheduler.on_player_destroyed(change.name)


async def run_event_loop(scheduler: LyricsScheduler, membership: AsyncIterator[BusChange],
                         connector: PlayerConnector, allowed_players: Iterable[str] = ("all",),
                         loop_check_interval: float = LOOP_CHECK_INTERVAL,
                         updates: Optional[asyncio.Queue] = None) -> None:
    """Convenience wrapper creating the bounded update queue"""
    loop = EventLoop(scheduler, membership, connector, updates if updates is not None else asyncio.Queue(maxsize=1),
                     allowed_players, loop_check_interval)
    await loop.run()
