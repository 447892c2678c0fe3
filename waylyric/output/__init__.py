"""
Output sinks
Waybar JSON protocol writer
"""

from .waybar import WaybarModule, WaybarRenderer

__all__ = [
    'WaybarModule',
    'WaybarRenderer',
]
