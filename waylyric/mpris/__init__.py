"""
MPRIS player models
The D-Bus transport lives in waylyric.mpris.client
"""

from .models import (
    MPRIS_PREFIX,
    MPRIS_PATH,
    MPRIS_PLAYER_INTERFACE,
    PlaybackStatus,
    MetadataUpdate,
    RateUpdate,
    StatusUpdate,
    PositionUpdate,
    PlayerUpdate,
    PlayerState,
    BusActivity,
    BusChange,
    audio_url_to_path,
    lrc_path_for,
)

__all__ = [
    'MPRIS_PREFIX',
    'MPRIS_PATH',
    'MPRIS_PLAYER_INTERFACE',
    'PlaybackStatus',
    'MetadataUpdate',
    'RateUpdate',
    'StatusUpdate',
    'PositionUpdate',
    'PlayerUpdate',
    'PlayerState',
    'BusActivity',
    'BusChange',
    'audio_url_to_path',
    'lrc_path_for',
]
