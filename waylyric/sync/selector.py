"""
Active player policy

A player is eligible to drive the display when it is playing (an unknown
status counts as playing) and lyrics are knowably obtainable for its
track. Selection additionally requires that resolution actually succeeds.
"""

from typing import NamedTuple, Optional

from ..exceptions import LyricsError
from ..lyrics.lrc import LyricsDocument
from ..lyrics.processor import LyricsProcessor
from ..mpris.models import PlaybackStatus, PlayerState
from ..utils.logger import get_logger
from .tracker import PlayerRegistry


logger = get_logger(__name__)


class Selection(NamedTuple):
    bus_name: str
    document: LyricsDocument


def is_active(state: PlayerState, processor: LyricsProcessor) -> bool:
    """Playing (or status unknown) and a lyrics source is available"""
    if state.status is not None and state.status is not PlaybackStatus.PLAYING:
        return False
    return processor.has_local_source(state)


async def select_active(registry: PlayerRegistry, processor: LyricsProcessor,
                        preferred: Optional[str] = None) -> Optional[Selection]:
    """
    Pick the player that should drive the display

    ``preferred`` (normally the current player) is kept when it is still
    active and its lyrics resolve; otherwise players are tried in
    registration order and the first active one whose lyrics resolve wins.
    Resolution runs one player at a time.

    Returns:
        Selection with the winner and its document, or None
    """
    candidates = list(registry)
    if preferred in candidates:
        candidates.remove(preferred)
        candidates.insert(0, preferred)

    for bus_name in candidates:
        state = registry.state(bus_name)
        if state is None or not is_active(state, processor):
            continue
        try:
            document = await processor.resolve(state)
        except LyricsError as e:
            logger.debug(f"Failed to load lyrics for {bus_name}: {e}")
            continue
        return Selection(bus_name, document)

    return None
