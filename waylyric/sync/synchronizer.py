"""
Lyrics scheduler: the state machine behind the displayed line

The scheduler owns the single current-player slot, the display timer and
the loop-tracking counters. Every event the dispatcher receives ends up in
exactly one of its handlers:

- on_player_created / on_player_destroyed: bus membership changes
- on_player_update: one typed update from a player's listener
- on_timer: the display timer reached the next lyric boundary
- on_loop_check: the periodic integrity tick

Slot states:
    EMPTY      nothing is displayed
    ACTIVE     a player drives the display and the next boundary is known
    EXHAUSTED  the last lyric line was passed; the slot is kept so a loop
               of the same track can be picked up without resolving again

The display timer is a deadline on the scheduler's clock. It is armed only
while the slot is ACTIVE; re-arming replaces the previous deadline.

Loop handling:
Players that loop a track often keep their session, and some never send a
fresh position when they wrap. Two mechanisms catch that. Position and
metadata updates are checked for a sharp backward jump (detect_loop_restart),
and the periodic check compares the loop ordinal derived from the
extrapolated position and mpris:length with the last one observed.
"""

import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Iterable, Optional, Protocol, Tuple

from ..exceptions import LyricsError
from ..lyrics.lrc import LyricsDocument, TimeTag, MICROS_PER_SECOND
from ..lyrics.processor import LyricsProcessor
from ..mpris.models import (
    MetadataUpdate,
    PlayerState,
    PlayerUpdate,
    PositionUpdate,
    RateUpdate,
    StatusUpdate,
)
from ..utils.logger import get_logger
from .selector import is_active, select_active
from .tracker import PlayerRegistry


# Loop detection thresholds, in seconds
LOOP_RESTART_WINDOW = 15
LOOP_PREVIOUS_POSITION = 60
EXHAUSTED_BACKWARD_JUMP = 30
EXHAUSTED_RESTART_WINDOW = 10
LOOP_CHECK_INTERVAL = 3


class RenderSink(Protocol):
    def render(self, text: Optional[str] = None, alt: Optional[str] = None, tooltip: Optional[str] = None,
               class_: Optional[str] = None, percentage: Optional[int] = None) -> None: ...

    def clear(self) -> None: ...


class SlotState(Enum):
    EMPTY = "empty"
    ACTIVE = "active"
    EXHAUSTED = "exhausted"


class UpdateOutcome(Enum):
    """What on_player_update decided, mostly useful for logging and tests"""
    UNKNOWN_PLAYER = "unknown_player"
    UNCHANGED = "unchanged"
    REFRESHED = "refreshed"
    LOOP_RESTART = "loop_restart"
    TRACK_CHANGED = "track_changed"
    CLEARED = "cleared"
    FAILED_OVER = "failed_over"
    ACTIVATED = "activated"


@dataclass
class CurrentSlot:
    """The player driving the display; next_boundary None means exhausted"""
    bus_name: str
    document: LyricsDocument
    next_boundary: Optional[TimeTag]

    @property
    def exhausted(self) -> bool:
        return self.next_boundary is None


class DisplayTimer:
    """Single cancellable deadline for the next lyric boundary"""

    def __init__(self):
        self.deadline: Optional[float] = None

    @property
    def armed(self) -> bool:
        return self.deadline is not None

    def arm(self, deadline: float) -> None:
        self.deadline = deadline

    def disarm(self) -> None:
        self.deadline = None

    def due(self, now: float) -> bool:
        return self.deadline is not None and now >= self.deadline


@dataclass
class LoopTracker:
    """
    Loop bookkeeping for the current track

    Positions are microseconds. ``track`` is the identity tuple the
    counters belong to; a different track starts from scratch.
    """
    last_known_position: Optional[int] = None
    last_loop_count: Optional[int] = None
    track: Optional[Tuple[Optional[str], ...]] = None

    def reset(self, track: Optional[Tuple[Optional[str], ...]] = None) -> None:
        self.last_known_position = None
        self.last_loop_count = None
        self.track = track


def _micros(seconds: float) -> int:
    return int(seconds * MICROS_PER_SECOND)


class LyricsScheduler:
    """
    Decides what to display after every event

    Args:
        registry: Registered players
        processor: Lyrics resolution chain
        renderer: Render sink (render(...) and clear())
        skip_metadata: Metadata keys left out of the tooltip
        clock: Monotonic clock in seconds, the same one position captures use
    """

    def __init__(self, registry: PlayerRegistry, processor: LyricsProcessor, renderer: RenderSink,
                 skip_metadata: Iterable[str] = (), clock: Callable[[], float] = time.monotonic):
        self.registry = registry
        self.processor = processor
        self.renderer = renderer
        self.skip_metadata = set(skip_metadata)
        self.clock = clock

        self.slot: Optional[CurrentSlot] = None
        self.timer = DisplayTimer()
        self.loop = LoopTracker()
        self.logger = get_logger(__name__)

    @property
    def slot_state(self) -> SlotState:
        if self.slot is None:
            return SlotState.EMPTY
        return SlotState.EXHAUSTED if self.slot.exhausted else SlotState.ACTIVE

    @property
    def current_player(self) -> Optional[str]:
        return self.slot.bus_name if self.slot else None

    def _tooltip(self, state: PlayerState) -> str:
        return state.format_metadata(self.skip_metadata)

    # Display

    def clear_state(self) -> None:
        """Empty the slot, disarm the timer and emit an empty update"""
        self.logger.info("No player active. Clearing previous state")
        self.slot = None
        self.timer.disarm()
        self.loop.reset()
        self.renderer.clear()

    def refresh_display(self, bus_name: str, document: LyricsDocument, state: PlayerState) -> bool:
        """
        Show the line active at the player's current position and re-arm the timer

        A position past mpris:length is treated as a wrap to the start, and
        a small position right after the lyrics were exhausted as a restart.
        Past the last timestamp the final line stays on screen, the slot is
        marked exhausted and the timer is left disarmed.

        Returns:
            True if the refresh looked like a loop restart
        """
        now = self.clock()
        identity = state.track_identity()
        if self.loop.track != identity:
            self.logger.info(f"Track changed, resetting loop detection state: {self.loop.track} -> {identity}")
            self.loop.reset(identity)

        was_exhausted = self.slot is not None and self.slot.bus_name == bus_name and self.slot.exhausted

        position = state.current_timetag(now)
        length = state.track_length()
        loop_restart = False
        if length is not None and state.total_elapsed(now) > length:
            self.logger.info(f"{bus_name}: position beyond track length, detecting as loop restart")
            state.reset_position(now)
            position = TimeTag.ZERO
            loop_restart = True
        elif was_exhausted and position.micros < _micros(EXHAUSTED_RESTART_WINDOW):
            self.logger.info(f"{bus_name}: position near beginning after being at end, detecting as loop restart")
            loop_restart = True

        query = document.get(position)
        self.logger.debug(f"{bus_name}: at {position} showing {query.lines} (next: {query.next_boundary})")

        if query.next_boundary is None:
            self._exhaust(bus_name, document, state, query.text)
            return loop_restart

        self.renderer.render(text=query.text, tooltip=self._tooltip(state))
        self.slot = CurrentSlot(bus_name, document, query.next_boundary)
        self.timer.arm(now + query.next_boundary.distance_from(position, state.effective_rate))
        return loop_restart

    def _exhaust(self, bus_name: str, document: LyricsDocument, state: PlayerState, text: str = "") -> None:
        self.logger.info("Lyric has reached ending - keeping player state for loop detection")
        self.slot = CurrentSlot(bus_name, document, None)
        self.timer.disarm()
        self.renderer.render(text=text, tooltip=self._tooltip(state))

    async def _fail_over(self) -> UpdateOutcome:
        try:
            selection = await select_active(self.registry, self.processor, preferred=self.current_player)
        except Exception:
            self.clear_state()
            raise
        if selection is None:
            self.clear_state()
            return UpdateOutcome.CLEARED

        self.logger.info(f"Switching to player {selection.bus_name}")
        self.refresh_display(selection.bus_name, selection.document, self.registry.state(selection.bus_name))
        return UpdateOutcome.FAILED_OVER

    # Loop detection

    def detect_loop_restart(self, position: int, is_position_update: bool, is_metadata_update: bool) -> bool:
        """
        Whether a position or metadata update means the track started over

        Either the position is near the start after having been well into
        the track, or the lyrics were exhausted and the position jumped far
        backward. Ordinary backward seeks match neither rule.
        """
        if not (is_position_update or is_metadata_update):
            return False

        last = self.loop.last_known_position
        if last is None:
            return False

        traditional_loop = position < _micros(LOOP_RESTART_WINDOW) and last > _micros(LOOP_PREVIOUS_POSITION)
        lyrics_ended_loop = (self.slot is not None and self.slot.exhausted
                             and last - position > _micros(EXHAUSTED_BACKWARD_JUMP))

        if traditional_loop:
            self.logger.debug(f"Traditional loop detected: current={position // MICROS_PER_SECOND}s, "
                              f"previous={last // MICROS_PER_SECOND}s")
        if lyrics_ended_loop:
            self.logger.debug(f"Lyrics-ended loop detected: current={position // MICROS_PER_SECOND}s, "
                              f"previous={last // MICROS_PER_SECOND}s")
        return traditional_loop or lyrics_ended_loop

    # Handlers

    async def on_player_created(self, bus_name: str, state: PlayerState, task=None) -> None:
        """Register a new player and show its lyrics if nothing is displayed yet"""
        self.registry.add(bus_name, state, task)

        if self.slot is not None or not is_active(state, self.processor):
            return

        try:
            document = await self.processor.resolve(state)
        except LyricsError as e:
            self.logger.debug(f"{bus_name}: no lyrics for new player: {e}")
            return
        self.refresh_display(bus_name, document, state)

    async def on_player_destroyed(self, bus_name: str) -> None:
        """Unregister a player; fail over if it was driving the display"""
        if self.registry.remove(bus_name) is None:
            return

        if self.slot is not None and self.slot.bus_name == bus_name:
            self.logger.info(f"Currently active player {bus_name} disappeared")
            await self._fail_over()

    async def on_player_update(self, bus_name: str, update: PlayerUpdate) -> UpdateOutcome:
        """Apply one update and decide whether the display must change"""
        entry = self.registry.get(bus_name)
        if entry is None:
            self.logger.warning(f"Attempting to update a non-existent player {bus_name}")
            return UpdateOutcome.UNKNOWN_PLAYER

        state = entry.state
        now = self.clock()
        old_identity = state.track_identity()
        state.apply_update(update, now)

        is_position_update = isinstance(update, PositionUpdate)
        is_metadata_update = isinstance(update, MetadataUpdate)
        is_timing_update = isinstance(update, (StatusUpdate, RateUpdate))

        track_changed = is_metadata_update and state.track_identity() != old_identity
        if track_changed:
            self.logger.debug(f"{bus_name}: track changed, resetting position")
            state.reset_position(now)

        if self.slot is not None and self.slot.bus_name == bus_name:
            if not is_active(state, self.processor):
                self.logger.info(f"{bus_name}: player has gone inactive")
                return await self._fail_over()
            return await self._update_current(bus_name, state, track_changed,
                                              is_position_update, is_metadata_update, is_timing_update)

        if self.slot is None and is_active(state, self.processor):
            self.logger.info(f"{bus_name}: player has gone active")
            try:
                document = await self.processor.resolve(state)
            except LyricsError as e:
                self.logger.debug(f"{bus_name}: {e}")
                return UpdateOutcome.UNCHANGED
            self.refresh_display(bus_name, document, state)
            return UpdateOutcome.ACTIVATED

        return UpdateOutcome.UNCHANGED

    async def _update_current(self, bus_name: str, state: PlayerState, track_changed: bool,
                              is_position_update: bool, is_metadata_update: bool,
                              is_timing_update: bool) -> UpdateOutcome:
        document = self.slot.document

        if track_changed:
            # A track change always wins over a loop restart on the same update
            self.logger.info(f"{bus_name}: track changed to {state.get_text('xesam:title')!r}, reloading lyrics")
            self.loop.reset()
            try:
                document = await self.processor.resolve(state)
            except LyricsError as e:
                self.logger.warning(f"{bus_name}: failed to load lyrics for current track: {e}")
                self.clear_state()
                return UpdateOutcome.CLEARED
            self.refresh_display(bus_name, document, state)
            self.loop.last_known_position = state.current_timetag(self.clock()).micros
            return UpdateOutcome.TRACK_CHANGED

        position = state.current_timetag(self.clock()).micros
        loop_restart = self.detect_loop_restart(position, is_position_update, is_metadata_update)
        needs_refresh = is_position_update or is_timing_update

        outcome = UpdateOutcome.UNCHANGED
        if loop_restart:
            previous = self.loop.last_known_position or 0
            self.logger.info(f"Detected song loop restart: {bus_name} - current: {position // MICROS_PER_SECOND}s, "
                             f"previous: {previous // MICROS_PER_SECOND}s")
            outcome = UpdateOutcome.LOOP_RESTART
        elif needs_refresh:
            outcome = UpdateOutcome.REFRESHED

        if outcome is not UpdateOutcome.UNCHANGED:
            self.refresh_display(bus_name, document, state)

        if is_position_update or is_metadata_update:
            self.loop.last_known_position = position
        return outcome

    def on_timer(self) -> None:
        """Advance the display to the boundary the timer was armed for"""
        self.timer.disarm()
        if self.slot is None or self.slot.next_boundary is None:
            self.logger.error("Lyric timer expired but no active player is found")
            return

        state = self.registry.state(self.slot.bus_name)
        if state is None:
            self.logger.error(f"Lyric timer expired for unregistered player {self.slot.bus_name}")
            return

        boundary = self.slot.next_boundary
        query = self.slot.document.get(boundary)

        if query.next_boundary is None:
            self._exhaust(self.slot.bus_name, self.slot.document, state)
            return

        self.renderer.render(text=query.text, tooltip=self._tooltip(state))
        self.slot.next_boundary = query.next_boundary
        self.timer.arm(self.clock() + query.next_boundary.distance_from(boundary, state.effective_rate))

    def on_loop_check(self) -> bool:
        """
        Periodic integrity check for players that loop silently

        Returns:
            True if the display was refreshed
        """
        if self.slot is None:
            return False
        bus_name = self.slot.bus_name
        state = self.registry.state(bus_name)
        if state is None:
            return False

        now = self.clock()
        loop_count, position_in_loop = state.loop_count(now)
        position = state.current_timetag(now).micros
        self.logger.debug(f"Current player {bus_name}: raw={state.position // MICROS_PER_SECOND}s, "
                          f"calc={position // MICROS_PER_SECOND}s, status={state.status}")

        refresh_due_to_loop = self.loop.last_loop_count is not None and loop_count > self.loop.last_loop_count
        refresh_due_to_position = (
            self.slot.exhausted
            and self.loop.last_known_position is not None
            and self.loop.last_known_position - position > _micros(EXHAUSTED_BACKWARD_JUMP)
        )

        if refresh_due_to_loop:
            self.logger.info(f"Detected song loop: {self.loop.last_loop_count} -> {loop_count}, "
                             f"position in loop: {position_in_loop // MICROS_PER_SECOND}s")
            state.reset_position(now, position_in_loop)
        elif refresh_due_to_position:
            self.logger.info(f"Detected position reset: {self.loop.last_known_position // MICROS_PER_SECOND}s -> "
                             f"{position // MICROS_PER_SECOND}s")

        refreshed = refresh_due_to_loop or refresh_due_to_position
        if refreshed:
            self.refresh_display(bus_name, self.slot.document, state)

        self.loop.last_loop_count, _ = state.loop_count(now)
        self.loop.last_known_position = state.current_timetag(now).micros
        return refreshed
