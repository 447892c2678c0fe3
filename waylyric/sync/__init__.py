"""
Synchronization engine
Player registry, active player policy, the lyrics scheduler and the event loop
"""

from .tracker import PlayerEntry, PlayerRegistry
from .selector import Selection, is_active, select_active
from .synchronizer import (
    LyricsScheduler,
    SlotState,
    UpdateOutcome,
    DisplayTimer,
    LoopTracker,
    LOOP_CHECK_INTERVAL,
)
from .event_loop import EventLoop, run_event_loop

__all__ = [
    'PlayerEntry',
    'PlayerRegistry',
    'Selection',
    'is_active',
    'select_active',
    'LyricsScheduler',
    'SlotState',
    'UpdateOutcome',
    'DisplayTimer',
    'LoopTracker',
    'LOOP_CHECK_INTERVAL',
    'EventLoop',
    'run_event_loop',
]
