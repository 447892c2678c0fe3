"""
waylyric: synced lyrics from MPRIS media players for Waybar

waylyric follows the media players on the D-Bus session bus, resolves the
lyrics of the playing track and prints a Waybar custom module update every
time playback crosses a lyric boundary.

## Core Architecture

**Player tracking (`waylyric/mpris/`)**
- Bus membership: players appearing and disappearing (NameOwnerChanged)
- One listener task per player turning property changes, Seeked signals
  and periodic Position polls into typed updates
- PlayerState with position extrapolation from status, rate and length

**Lyrics (`waylyric/lyrics/`, `waylyric/audio/`)**
- LRC parsing into time-indexed, possibly multi-version documents
- Resolution chain: player metadata, sidecar .lrc, embedded tags, then
  the Navidrome, NetEase and LRCLIB web providers

**Synchronization (`waylyric/sync/`)**
- One event dispatcher feeding a single scheduler, so state changes never
  race each other
- Display timer on the next lyric boundary and loop restart detection

**Output (`waylyric/output/`)**
- Waybar JSON, one object per line on stdout

## Quick Start
```bash
pip install -e .
waylyric run --player spotify --external-lrc-provider lrclib
```
"""

# Version information for the waylyric package
__version__ = "0.1.0"

__author__ = "waylyric contributors"

__description__ = "Synced lyrics from MPRIS media players for Waybar"

__all__ = [
    "__version__",
    "__author__",
    "__description__"
]
