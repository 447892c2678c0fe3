"""
Lyrics package: LRC parsing, the resolution chain and web providers

Only the parser is re-exported here because the player models depend on
it; import the resolution chain from ``waylyric.lyrics.processor``:

    processor = get_lyrics_processor()
    document = await processor.resolve(state)
    lines, next_boundary = document.get(state.current_timetag(now))
"""

from .lrc import LineQuery, LyricsDocument, TimeTag, parse_line

__all__ = [
    'LineQuery',
    'LyricsDocument',
    'TimeTag',
    'parse_line',
]
