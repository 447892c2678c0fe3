"""
Registry of the MPRIS players currently on the bus

Each entry pairs the player's PlayerState with the background listener
task feeding its updates. Removing an entry cancels that task before
returning, so no update can be produced for a player that is no longer
registered.
"""

import asyncio
from dataclasses import dataclass
from typing import Dict, Iterator, Optional, Tuple

from ..mpris.models import PlayerState
from ..utils.logger import get_logger


logger = get_logger(__name__)


@dataclass
class PlayerEntry:
    """A registered player: its state and the task listening to it"""
    state: PlayerState
    task: Optional[asyncio.Task] = None

    def cancel(self) -> None:
        if self.task is not None and not self.task.done():
            self.task.cancel()


class PlayerRegistry:
    """Mapping from bus name to PlayerEntry, in registration order"""

    def __init__(self):
        self._players: Dict[str, PlayerEntry] = {}

    def add(self, bus_name: str, state: PlayerState, task: Optional[asyncio.Task] = None) -> PlayerEntry:
        """
        Register a player

        A stale entry under the same name (a destroy event that never
        arrived) is replaced and its listener cancelled.
        """
        previous = self._players.pop(bus_name, None)
        if previous is not None:
            logger.warning(f"Player {bus_name} registered twice, replacing previous entry")
            previous.cancel()

        entry = PlayerEntry(state=state, task=task)
        self._players[bus_name] = entry
        logger.info(f"New player registered: {bus_name}")
        return entry

    def remove(self, bus_name: str) -> Optional[PlayerEntry]:
        """
        Unregister a player and cancel its listener

        Returns:
            The removed entry, or None if the player was not registered
        """
        entry = self._players.pop(bus_name, None)
        if entry is None:
            logger.error(f"Attempting to destroy a non-existent player {bus_name}")
            return None
        entry.cancel()
        logger.info(f"Player removed: {bus_name}")
        return entry

    def get(self, bus_name: str) -> Optional[PlayerEntry]:
        return self._players.get(bus_name)

    def state(self, bus_name: str) -> Optional[PlayerState]:
        entry = self._players.get(bus_name)
        return entry.state if entry else None

    def items(self) -> Iterator[Tuple[str, PlayerEntry]]:
        return iter(list(self._players.items()))

    def clear(self) -> None:
        """Cancel every listener and forget all players"""
        for entry in self._players.values():
            entry.cancel()
        self._players.clear()

    def __contains__(self, bus_name: str) -> bool:
        return bus_name in self._players

    def __len__(self) -> int:
        return len(self._players)

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._players))
