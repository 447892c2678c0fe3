"""
LRCLIB lyrics provider

LRCLIB is a free, keyless lyrics database. The exact ``/get`` endpoint is
tried first (it also uses album and duration to disambiguate); on a miss
the fuzzy ``/search`` endpoint is queried with normalized names and the
first result carrying synced lyrics wins.
"""

from typing import Any, Dict, List, Mapping, Optional

from ..exceptions import LyricsNotFoundError
from ..utils.helpers import normalize_artist_name, normalize_track_title
from .base import LyricsProvider, TrackQuery


LRCLIB_API = "https://lrclib.net/api"


def pick_lyrics(record: Mapping[str, Any]) -> Optional[str]:
    """syncedLyrics when present, otherwise plainLyrics"""
    for key in ('syncedLyrics', 'plainLyrics'):
        value = record.get(key)
        if isinstance(value, str) and value.strip():
            return value
    return None


def pick_search_result(results: List[Mapping[str, Any]]) -> Optional[str]:
    """First synced result, otherwise the first with plain lyrics"""
    for record in results:
        synced = record.get('syncedLyrics')
        if isinstance(synced, str) and synced.strip():
            return synced
    for record in results:
        text = pick_lyrics(record)
        if text:
            return text
    return None


class LrcLibProvider(LyricsProvider):
    """Lyrics from lrclib.net"""

    name = "lrclib"

    def _get_params(self, query: TrackQuery) -> Dict[str, str]:
        params = {'track_name': query.title, 'artist_name': query.artist}
        if query.album:
            params['album_name'] = query.album
        if query.duration:
            params['duration'] = str(int(round(query.duration)))
        return params

    async def _fetch(self, query: TrackQuery) -> str:
        async with self._session() as session:
            try:
                record = await self._request_json(session, 'GET', f"{LRCLIB_API}/get",
                                                  params=self._get_params(query))
                text = pick_lyrics(record or {})
                if text:
                    return text
            except LyricsNotFoundError:
                self.logger.debug(f"lrclib has no exact match for {query}, searching")

            search_terms = f"{normalize_track_title(query.title)} {normalize_artist_name(query.artist)}"
            results = await self._request_json(session, 'GET', f"{LRCLIB_API}/search",
                                               params={'q': search_terms})

        text = pick_search_result(results if isinstance(results, list) else [])
        if not text:
            raise LyricsNotFoundError(f"lrclib: no lyrics for {query}", details={'provider': self.name})
        return text
