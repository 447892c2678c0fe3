"""
Common building blocks for web lyrics providers

Every provider receives the same TrackQuery built from MPRIS metadata and
returns raw lyric text (LRC when the service has timings). Failures are
reported through two exceptions so the resolution chain can tell them
apart in the logs:

- LyricsNotFoundError: the service answered but has nothing usable
- ProviderError: transport, HTTP status or payload problems
"""

import asyncio
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional

import aiohttp

from ..config.settings import get_settings
from ..exceptions import LyricsNotFoundError, ProviderError
from ..utils.helpers import async_retry_on_failure, first_text
from ..utils.logger import get_logger


@dataclass(frozen=True)
class TrackQuery:
    """
    Search terms for external providers

    duration is in seconds. It comes from mpris:length (microseconds) or,
    for players that only fill xesam:duration, from that key.
    """
    title: str
    artist: str
    album: Optional[str] = None
    duration: Optional[float] = None

    @classmethod
    def from_metadata(cls, metadata: Mapping[str, Any]) -> Optional["TrackQuery"]:
        """
        Build a query from an MPRIS metadata mapping

        Returns:
            TrackQuery, or None when the title or every artist field is missing
        """
        title = first_text(metadata.get("xesam:title"))
        artist = first_text(metadata.get("xesam:artist")) or first_text(metadata.get("xesam:albumArtist"))
        if not title or not artist:
            return None

        duration = None
        length = metadata.get("mpris:length")
        if isinstance(length, (int, float)) and not isinstance(length, bool) and length > 0:
            duration = length / 1_000_000
        else:
            seconds = metadata.get("xesam:duration")
            if isinstance(seconds, (int, float)) and not isinstance(seconds, bool) and seconds > 0:
                duration = float(seconds)

        return cls(
            title=title,
            artist=artist,
            album=first_text(metadata.get("xesam:album")),
            duration=duration,
        )

    def __str__(self) -> str:
        return f"{self.artist} - {self.title}"


class LyricsProvider:
    """
    Base class for web lyrics providers

    Subclasses set ``name`` and implement ``_fetch``. ``fetch`` turns
    aiohttp transport errors and timeouts into ProviderError so callers
    only deal with the application's exception hierarchy.
    """

    name = "provider"

    def __init__(self, timeout: Optional[float] = None, user_agent: Optional[str] = None):
        self.settings = get_settings()
        self.logger = get_logger(__name__)
        self.timeout = timeout or self.settings.lyrics.request_timeout
        self.user_agent = user_agent or self.settings.network.user_agent

    async def fetch(self, query: TrackQuery) -> str:
        """
        Fetch lyrics text for a track

        Raises:
            LyricsNotFoundError: The service has no lyrics for the track
            ProviderError: The request failed
        """
        try:
            text = await self._fetch(query)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise ProviderError(
                f"{self.name} request failed: {e or type(e).__name__}",
                details={'provider': self.name, 'original_error': repr(e)}
            )

        if not text or not text.strip():
            raise LyricsNotFoundError(f"{self.name} returned empty lyrics for {query}",
                                      details={'provider': self.name})
        return text

    async def _fetch(self, query: TrackQuery) -> str:
        raise NotImplementedError

    def _session(self, headers: Optional[Dict[str, str]] = None) -> aiohttp.ClientSession:
        """New client session carrying the configured timeout and User-Agent"""
        session_headers = {'User-Agent': self.user_agent}
        if headers:
            session_headers.update(headers)
        return aiohttp.ClientSession(
            timeout=aiohttp.ClientTimeout(total=self.timeout),
            headers=session_headers,
        )

    @async_retry_on_failure(max_attempts=2, delay=0.5,
                            exceptions=(aiohttp.ClientConnectionError, asyncio.TimeoutError))
    async def _request_json(self, session: aiohttp.ClientSession, method: str, url: str,
                            **kwargs) -> Any:
        """
        Perform one HTTP request and decode its JSON body

        Connection errors and timeouts are retried once. A 404 means the
        service does not know the track.
        """
        self.logger.debug(f"{self.name}: {method} {url}")
        async with session.request(method, url, **kwargs) as response:
            if response.status == 404:
                raise LyricsNotFoundError(f"{self.name}: no match ({url})",
                                          details={'provider': self.name})
            if response.status != 200:
                body = await response.text()
                raise ProviderError(
                    f"{self.name} returned HTTP {response.status}",
                    details={'provider': self.name, 'url': url, 'body': body[:200]}
                )
            try:
                # Some services answer JSON with a text/plain content type
                return await response.json(content_type=None)
            except ValueError as e:
                raise ProviderError(f"{self.name} returned invalid JSON: {e}",
                                    details={'provider': self.name, 'url': url})
