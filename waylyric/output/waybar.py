"""
Waybar custom module output

Waybar reads one JSON object per line from a ``return-type: json`` custom
module. Text fields are rendered as Pango markup, so &, < and > are
escaped. Fields left as None are omitted from the object, and ``{}`` is
a valid update that clears the module.
"""

import html
import json
import sys
from dataclasses import dataclass
from typing import Any, Dict, Optional, TextIO

from ..utils.logger import get_logger


logger = get_logger(__name__)


def _escape(value: Optional[str]) -> Optional[str]:
    return html.escape(value, quote=False) if value is not None else None


@dataclass(frozen=True)
class WaybarModule:
    """One Waybar update; build with ``WaybarModule.create`` to get escaped fields"""
    text: Optional[str] = None
    alt: Optional[str] = None
    tooltip: Optional[str] = None
    class_: Optional[str] = None
    percentage: Optional[int] = None

    @classmethod
    def create(cls, text: Optional[str] = None, alt: Optional[str] = None, tooltip: Optional[str] = None,
               class_: Optional[str] = None, percentage: Optional[int] = None) -> "WaybarModule":
        return cls(
            text=_escape(text),
            alt=_escape(alt),
            tooltip=_escape(tooltip),
            class_=_escape(class_),
            percentage=percentage,
        )

    def to_dict(self) -> Dict[str, Any]:
        data = {
            'text': self.text,
            'alt': self.alt,
            'tooltip': self.tooltip,
            'class': self.class_,
            'percentage': self.percentage,
        }
        return {key: value for key, value in data.items() if value is not None}

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), ensure_ascii=False, separators=(',', ':'))


class WaybarRenderer:
    """
    Render sink that writes Waybar JSON lines

    Each call writes exactly one line and flushes, since Waybar only
    updates on complete lines and stdout is block buffered under a pipe.
    """

    def __init__(self, stream: Optional[TextIO] = None):
        self.stream = stream or sys.stdout

    def render(self, text: Optional[str] = None, alt: Optional[str] = None, tooltip: Optional[str] = None,
               class_: Optional[str] = None, percentage: Optional[int] = None) -> None:
        self.write(WaybarModule.create(text, alt, tooltip, class_, percentage))

    def clear(self) -> None:
        self.write(WaybarModule())

    def write(self, module: WaybarModule) -> None:
        line = module.to_json()
        logger.debug(f"Output: {line}")
        self.stream.write(line + "\n")
        self.stream.flush()
