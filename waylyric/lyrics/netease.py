"""
NetEase Cloud Music lyrics provider

Searches the public web API for ``"title artist"``, ranks the results by
title/artist similarity (and duration when the player reports one), then
downloads the LRC of the best match.
"""

from typing import Any, Dict, List, Mapping, Optional

from ..exceptions import LyricsNotFoundError
from ..utils.helpers import field_similarity
from .base import LyricsProvider, TrackQuery


NETEASE_API = "https://music.163.com/api"
SEARCH_LIMIT = 10

TITLE_SHARE = 0.7
ARTIST_SHARE = 0.3
SIMILARITY_SHARE = 0.7
DURATION_SHARE = 0.3


def candidate_similarity(query: TrackQuery, title: str, artist: str) -> float:
    """Title weighs 0.7 and artist 0.3"""
    return (field_similarity(query.title, title) * TITLE_SHARE
            + field_similarity(query.artist, artist) * ARTIST_SHARE)


def combined_score(similarity: float, duration_ms: Optional[float], target_ms: float) -> float:
    """
    Mix text similarity with duration closeness

    A result whose duration is off by the whole target length (or more)
    gets no duration credit.
    """
    if not duration_ms or target_ms <= 0:
        duration_score = 0.0
    else:
        duration_score = 1.0 - min(abs(duration_ms - target_ms) / target_ms, 1.0)
    return similarity * SIMILARITY_SHARE + duration_score * DURATION_SHARE


def parse_search_results(payload: Mapping[str, Any]) -> List[Dict[str, Any]]:
    """Flatten search/get songs into id, name, artist, album and duration (ms)"""
    songs = ((payload or {}).get('result') or {}).get('songs') or []
    results = []
    for song in songs:
        artists = song.get('artists') or song.get('ar') or []
        album = song.get('album') or song.get('al') or {}
        results.append({
            'id': song.get('id'),
            'name': song.get('name') or '',
            'artist': ", ".join(a.get('name', '') for a in artists if isinstance(a, dict)),
            'album': album.get('name', '') if isinstance(album, dict) else '',
            'duration': song.get('duration') or song.get('dt'),
        })
    return results


class NetEaseProvider(LyricsProvider):
    """Lyrics from NetEase Cloud Music"""

    name = "netease"

    def rank(self, query: TrackQuery, results: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        """Results sorted best first; adds a ``similarity`` key to each"""
        for result in results:
            result['similarity'] = candidate_similarity(query, result['name'], result['artist'])

        if query.duration:
            target_ms = query.duration * 1000
            key = lambda r: combined_score(r['similarity'], r['duration'], target_ms)
        else:
            key = lambda r: r['similarity']

        return sorted(results, key=key, reverse=True)

    async def _fetch(self, query: TrackQuery) -> str:
        async with self._session(headers={'Referer': 'https://music.163.com'}) as session:
            payload = await self._request_json(
                session, 'POST', f"{NETEASE_API}/search/get",
                data={'s': f"{query.title} {query.artist}", 'type': '1',
                      'limit': str(SEARCH_LIMIT), 'offset': '0'}
            )
            results = parse_search_results(payload)
            self.logger.debug(f"netease returned {len(results)} results for {query}")
            if not results:
                raise LyricsNotFoundError(f"netease: no songs found for {query}",
                                          details={'provider': self.name})

            best = self.rank(query, results)[0]
            self.logger.info(f"Selected NetEase song: '{best['name']}' by '{best['artist']}' "
                             f"(ID: {best['id']}, similarity: {best['similarity']:.2f})")

            payload = await self._request_json(
                session, 'GET', f"{NETEASE_API}/song/lyric",
                params={'id': str(best['id']), 'lv': '1', 'kv': '1', 'tv': '-1'}
            )

        lyric = ((payload or {}).get('lrc') or {}).get('lyric') or ((payload or {}).get('klyric') or {}).get('lyric')
        if not lyric or not lyric.strip():
            raise LyricsNotFoundError(f"netease: song {best['id']} has no lyrics",
                                      details={'provider': self.name})
        return lyric
