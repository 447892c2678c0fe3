"""
Navidrome lyrics provider

Uses the Subsonic REST API exposed by Navidrome (and compatible servers):
``search3`` finds candidate songs, the best match above the similarity
threshold is picked, and ``getLyricsBySongId`` (OpenSubsonic) returns its
structured lyrics, which are converted to LRC.

Authentication uses the token scheme: ``t = md5(password + salt)`` with a
fresh salt per request, so the password itself never goes over the wire.
"""

import hashlib
import time
from typing import Any, Dict, List, Mapping, Optional

from ..config.settings import NavidromeConfig
from ..exceptions import LyricsNotFoundError, ProviderError
from ..utils.helpers import is_similar
from .base import LyricsProvider, TrackQuery


SUBSONIC_API_VERSION = "1.16.1"
CLIENT_NAME = "waylyric"

TITLE_WEIGHT = 3.0
ARTIST_WEIGHT = 2.0
ALBUM_WEIGHT = 1.0
DURATION_WEIGHT = 1.5
DURATION_TOLERANCE = 10


def is_duration_similar(first: float, second: float) -> bool:
    """Durations in seconds within DURATION_TOLERANCE of each other"""
    return abs(first - second) <= DURATION_TOLERANCE


def score_song(query: TrackQuery, song: Mapping[str, Any]) -> float:
    """
    Weighted match score of a search3 song against the query, 0.0 to 1.0

    Title and artist always count; album and duration only count when both
    sides know them.
    """
    score = 0.0
    total_weight = TITLE_WEIGHT + ARTIST_WEIGHT

    if is_similar(query.title, str(song.get('title', ''))):
        score += TITLE_WEIGHT

    song_artist = song.get('artist')
    if song_artist and is_similar(query.artist, str(song_artist)):
        score += ARTIST_WEIGHT

    song_album = song.get('album')
    if query.album and song_album:
        total_weight += ALBUM_WEIGHT
        if is_similar(query.album, str(song_album)):
            score += ALBUM_WEIGHT

    song_duration = song.get('duration')
    if query.duration is not None and isinstance(song_duration, (int, float)):
        total_weight += DURATION_WEIGHT
        if is_duration_similar(int(query.duration), song_duration):
            score += DURATION_WEIGHT

    return score / total_weight


def convert_to_lrc(lines: List[Mapping[str, Any]]) -> str:
    """
    Convert OpenSubsonic structured lyric lines to LRC text

    Each line is ``{"start": milliseconds, "value": text}``; lines without
    ``start`` (unsynced lyrics) are emitted as plain text.
    """
    result = []
    for line in lines:
        value = line.get('value', '')
        start = line.get('start')
        if start is None:
            result.append(value)
            continue
        centis = int(start) // 10
        minutes, centis = divmod(centis, 6000)
        result.append(f"[{minutes:02d}:{centis // 100:02d}.{centis % 100:02d}]{value}")
    return "\n".join(result)


class NavidromeProvider(LyricsProvider):
    """Lyrics from a personal Navidrome server"""

    name = "navidrome"

    def __init__(self, config: Optional[NavidromeConfig] = None, **kwargs):
        super().__init__(**kwargs)
        self.config = config or self.settings.navidrome
        self.similarity_threshold = self.settings.lyrics.similarity_threshold

    def _auth_params(self) -> Dict[str, str]:
        salt = format(int(time.time() * 1000), 'x')
        token = hashlib.md5(f"{self.config.password}{salt}".encode('utf-8')).hexdigest()
        return {
            'u': self.config.username,
            't': token,
            's': salt,
            'v': SUBSONIC_API_VERSION,
            'c': CLIENT_NAME,
        }

    def _endpoint(self, method: str) -> str:
        return f"{self.config.server_url.rstrip('/')}/rest/{method}"

    @staticmethod
    def _subsonic_body(payload: Any) -> Dict[str, Any]:
        """Unwrap ``subsonic-response`` and check its status"""
        body = payload.get('subsonic-response') if isinstance(payload, dict) else None
        if not isinstance(body, dict):
            raise ProviderError("navidrome returned an unexpected payload", details={'provider': 'navidrome'})
        if body.get('status') != 'ok':
            error = body.get('error') or {}
            raise ProviderError(
                f"navidrome API error: {error.get('message', 'unknown error')}",
                details={'provider': 'navidrome', 'code': error.get('code')}
            )
        return body

    def pick_best_song(self, query: TrackQuery, songs: List[Mapping[str, Any]]) -> Mapping[str, Any]:
        """
        Choose the highest scoring song strictly above the similarity threshold

        Raises:
            LyricsNotFoundError: If no song scores high enough
        """
        best = None
        best_score = self.similarity_threshold
        for song in songs:
            score = score_song(query, song)
            self.logger.debug(f"navidrome candidate: {song.get('artist', 'Unknown')} - "
                              f"{song.get('title')} (similarity: {score:.2f})")
            if score > best_score:
                best, best_score = song, score

        if best is None:
            raise LyricsNotFoundError(f"navidrome: no suitable match for {query}",
                                      details={'provider': self.name})
        return best

    async def _fetch(self, query: TrackQuery) -> str:
        if not self.config.is_complete:
            raise ProviderError("navidrome is not configured (server URL, username and password)",
                                details={'provider': self.name})

        async with self._session() as session:
            payload = await self._request_json(
                session, 'GET', self._endpoint('search3'),
                params={'query': f"{query.artist} {query.title}", 'songCount': '10', 'f': 'json',
                        **self._auth_params()}
            )
            songs = (self._subsonic_body(payload).get('searchResult3') or {}).get('song') or []
            if not songs:
                raise LyricsNotFoundError(f"navidrome: no songs found for {query}",
                                          details={'provider': self.name})

            song = self.pick_best_song(query, songs)
            self.logger.debug(f"navidrome selected song id {song.get('id')}")

            payload = await self._request_json(
                session, 'GET', self._endpoint('getLyricsBySongId'),
                params={'id': str(song.get('id')), 'f': 'json', **self._auth_params()}
            )

        structured = (self._subsonic_body(payload).get('lyricsList') or {}).get('structuredLyrics') or []
        if not structured:
            raise LyricsNotFoundError(f"navidrome: no structured lyrics for {query}",
                                      details={'provider': self.name})

        return convert_to_lrc(structured[0].get('line') or [])
