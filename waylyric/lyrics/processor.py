"""
Lyrics resolution chain for the current track

The processor turns a player's metadata into a LyricsDocument by walking an
ordered list of sources and keeping the first one that yields a non-empty
document:

1. Inline lyrics exposed by the player in ``xesam:asText`` (multi-line)
2. Sidecar ``.lrc`` file next to a local media file
3. Lyrics embedded in the media file's tags
4. External web providers, in the configured order
5. Inline lyrics whose newlines were lost, split on ``" ["`` as a last resort

Every failing source is logged and the chain moves on; only when all of
them fail does ``resolve`` raise LyricsNotFoundError. Nothing is cached:
the scheduler resolves once per track and keeps the document itself.
"""

from collections import OrderedDict
from typing import TYPE_CHECKING, Callable, Dict, List, Optional, Sequence, Tuple

from ..audio.metadata import read_embedded_lyrics
from ..config.settings import KNOWN_PROVIDERS, NavidromeConfig, get_settings
from ..exceptions import LyricsError, LyricsNotFoundError
from ..utils.logger import get_logger, log_performance
from .base import LyricsProvider, TrackQuery
from .lrc import LyricsDocument
from .lrclib import LrcLibProvider
from .navidrome import NavidromeProvider
from .netease import NetEaseProvider

if TYPE_CHECKING:
    from ..mpris.models import PlayerState


PROVIDER_CLASSES = {
    'navidrome': NavidromeProvider,
    'netease': NetEaseProvider,
    'lrclib': LrcLibProvider,
}


def build_providers(names: Sequence[str],
                    navidrome: Optional[NavidromeConfig] = None) -> "OrderedDict[str, LyricsProvider]":
    """
    Instantiate providers in the given order

    Unknown names and a Navidrome entry without complete credentials are
    skipped with a warning; duplicates keep their first position.
    """
    logger = get_logger(__name__)
    providers: "OrderedDict[str, LyricsProvider]" = OrderedDict()

    for name in names:
        key = name.lower().strip()
        if key in providers:
            continue
        if key not in PROVIDER_CLASSES:
            logger.warning(f"Unknown lyrics provider '{name}' (known: {', '.join(KNOWN_PROVIDERS)})")
            continue
        if key == 'navidrome':
            config = navidrome or get_settings().navidrome
            if not config.is_complete:
                logger.warning("Navidrome provider selected but missing required configuration "
                               "(server_url, username, password)")
                continue
            providers[key] = NavidromeProvider(config=config)
        else:
            providers[key] = PROVIDER_CLASSES[key]()

    return providers


class LyricsProcessor:
    """
    Resolves lyrics for a player through local sources, then web providers

    Provider instances are created once from the settings (or from the
    explicit arguments the CLI passes) and reused for every track.
    """

    def __init__(self, external_providers: Optional[Sequence[str]] = None,
                 navidrome: Optional[NavidromeConfig] = None,
                 providers: Optional[Dict[str, LyricsProvider]] = None):
        self.settings = get_settings()
        self.logger = get_logger(__name__)

        if providers is not None:
            self.providers: Dict[str, LyricsProvider] = OrderedDict(providers)
        else:
            names = self.settings.lyrics.external_providers if external_providers is None else external_providers
            self.providers = build_providers(names, navidrome)

        self.stats = {
            'total_resolutions': 0,
            'successful_resolutions': 0,
            'failed_resolutions': 0,
            'source_usage': {},
        }

    def has_local_source(self, state: "PlayerState") -> bool:
        """
        Whether lyrics are knowably obtainable for the player's track

        True for inline lyrics or a local media file, and also when web
        providers are configured and the metadata is enough to query them.
        """
        if state.has_lyrics_hint():
            return True
        return bool(self.providers) and TrackQuery.from_metadata(state.metadata) is not None

    def source_names(self) -> List[str]:
        """Resolution chain in order, for display"""
        return ["inline", "sidecar", "embedded"] + list(self.providers) + ["inline-single-line"]

    @log_performance
    async def resolve(self, state: "PlayerState") -> LyricsDocument:
        """
        Resolve the lyrics document for the player's current track

        Raises:
            LyricsNotFoundError: If no source produced a non-empty document
        """
        self.stats['total_resolutions'] += 1

        local_sources: List[Tuple[str, Callable[["PlayerState"], Optional[LyricsDocument]]]] = [
            ("inline", self._from_inline),
            ("sidecar", self._from_sidecar),
            ("embedded", self._from_embedded),
        ]
        for source, loader in local_sources:
            document = self._try_source(source, loader, state)
            if document is not None:
                return self._found(source, document)

        query = TrackQuery.from_metadata(state.metadata)
        if query is not None:
            for name, provider in self.providers.items():
                document = await self._from_provider(provider, query)
                if document is not None:
                    return self._found(name, document)
        elif self.providers:
            self.logger.debug("Metadata lacks title or artist, skipping external providers")

        document = self._try_source("inline-single-line", self._from_inline_single_line, state)
        if document is not None:
            return self._found("inline-single-line", document)

        self.stats['failed_resolutions'] += 1
        title = state.get_text("xesam:title") or state.get_text("xesam:url") or "unknown track"
        raise LyricsNotFoundError(f"No lyrics found for {title}", details={'title': title})

    def _found(self, source: str, document: LyricsDocument) -> LyricsDocument:
        self.logger.info(f"Using lyrics from {source}")
        self.stats['successful_resolutions'] += 1
        self.stats['source_usage'][source] = self.stats['source_usage'].get(source, 0) + 1
        return document

    def _try_source(self, source: str, loader, state: "PlayerState") -> Optional[LyricsDocument]:
        """Run one local loader; errors and empty documents count as a miss"""
        try:
            document = loader(state)
        except (LyricsError, OSError, ValueError) as e:
            self.logger.debug(f"Lyrics source {source} failed: {e}")
            return None
        if document is None or document.is_empty():
            return None
        return document

    def _from_inline(self, state: "PlayerState") -> Optional[LyricsDocument]:
        text = state.inline_lyrics()
        if text is None or len(text.splitlines()) <= 1:
            return None
        self.logger.debug("Using lyrics from MPRIS asText metadata")
        return LyricsDocument.from_text(text)

    def _from_sidecar(self, state: "PlayerState") -> Optional[LyricsDocument]:
        path = state.sidecar_path()
        if path is None or not path.is_file():
            return None
        self.logger.debug(f"Reading lyrics from {path}")
        return LyricsDocument.from_path(path)

    def _from_embedded(self, state: "PlayerState") -> Optional[LyricsDocument]:
        path = state.audio_path()
        if path is None or not path.is_file():
            return None
        text = read_embedded_lyrics(path)
        return LyricsDocument.from_text(text) if text else None

    def _from_inline_single_line(self, state: "PlayerState") -> Optional[LyricsDocument]:
        text = state.inline_lyrics()
        if text is None or len(text.splitlines()) > 1:
            return None
        return LyricsDocument.from_single_line(text.strip())

    async def _from_provider(self, provider: LyricsProvider, query: TrackQuery) -> Optional[LyricsDocument]:
        self.logger.debug(f"Trying to fetch lyrics from {provider.name}")
        try:
            text = await provider.fetch(query)
            document = LyricsDocument.from_text(text)
        except LyricsNotFoundError as e:
            self.logger.debug(f"{provider.name}: {e}")
            return None
        except LyricsError as e:
            self.logger.warning(f"Failed to fetch lyrics from {provider.name}: {e}")
            return None
        except Exception as e:
            self.logger.warning(f"Unexpected error from {provider.name}: {e!r}")
            return None

        if document.is_empty():
            self.logger.debug(f"{provider.name} returned lyrics without any line")
            return None
        return document

    def get_processing_stats(self) -> Dict[str, object]:
        """Resolution counters with the success rate in percent"""
        stats = dict(self.stats)
        total = stats['total_resolutions']
        stats['success_rate'] = (stats['successful_resolutions'] / total * 100) if total else 0.0
        return stats


# Global lyrics processor instance
_lyrics_processor: Optional[LyricsProcessor] = None


def get_lyrics_processor() -> LyricsProcessor:
    """Get the global lyrics processor instance, created from the settings on first use"""
    global _lyrics_processor
    if not _lyrics_processor:
        _lyrics_processor = LyricsProcessor()
    return _lyrics_processor


def reset_lyrics_processor() -> None:
    """Drop the global processor so the next access rebuilds it from fresh settings"""
    global _lyrics_processor
    _lyrics_processor = None
