"""
Exception classes for waylyric.

Every error raised on purpose by the application derives from
WaylyricError, so callers can absorb a whole family of failures with
one except clause where the event loop must keep running.

Exception Hierarchy:
    WaylyricError (base)
        ConfigError - Configuration file or option issues
        BusError - D-Bus transport issues for a single player
            MembershipError - The bus membership stream itself failed
        PlayerUpdateError - Malformed MPRIS property payloads
        LyricsError - Lyrics could not be resolved
            LyricsNotFoundError - A source had nothing for the track
            ProviderError - A web provider failed (HTTP, JSON, auth)
    TimeTagError - Malformed LRC timestamp text (also a ValueError)
"""

from typing import Any, Dict, Optional


class WaylyricError(Exception):
    """
    Base exception for all waylyric errors.

    Attributes:
        message: Human-readable error description.
        details: Optional dictionary with additional context (bus name,
                 file path, provider name, ...).

    Example:
        try:
            document = await processor.resolve(state)
        except WaylyricError as e:
            logger.warning(f"Lyrics unavailable: {e.message}")
            if e.details:
                logger.debug(f"Details: {e.details}")
    """

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        """
        Initialize the base exception.

        Args:
            message: Human-readable error description.
            details: Optional dictionary containing additional context about the error.
                     Common keys include:
                     - 'bus_name': D-Bus name of the player involved
                     - 'path': File path that caused the error
                     - 'provider': Name of the lyrics provider
                     - 'original_error': The underlying exception if wrapping another error
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        """Return the error message for display."""
        return self.message


class ConfigError(WaylyricError):
    """
    Raised when the configuration is unusable.

    This is a CRITICAL error that stops the program before the event loop
    starts.

    Common causes:
        - config.yaml has invalid YAML syntax
        - Unknown external provider name
        - Navidrome enabled without server URL or credentials
        - Non-positive refresh interval
    """
    pass


class BusError(WaylyricError):
    """
    Raised when talking to a player over D-Bus fails.

    This is NON-CRITICAL for the process: it ends the listener of one
    player, and the registry entry is cleaned up when the matching
    NameOwnerChanged destroy event arrives.

    Common causes:
        - Player did not answer the CanPlay probe in time
        - Player vanished between NameOwnerChanged and the first call
        - Position property could not be read
    """
    pass


class MembershipError(BusError):
    """
    Raised when the bus membership stream fails or ends.

    This is the one CRITICAL runtime error: without NameOwnerChanged there
    is nothing useful left to do, so the event loop stops and the CLI
    exits with an error.
    """
    pass


class PlayerUpdateError(WaylyricError):
    """
    Raised when an MPRIS property payload cannot be understood.

    The specific update is logged and dropped; the player state stays
    as it was.

    Example:
        raise PlayerUpdateError(
            "Unknown playback status 'Buffering'",
            details={'value': 'Buffering'}
        )
    """
    pass


class LyricsError(WaylyricError):
    """
    Raised when lyrics cannot be resolved for a track.

    This is a NON-CRITICAL error: the display is cleared (or the player is
    skipped during selection) and the event loop continues.
    """
    pass


class LyricsNotFoundError(LyricsError):
    """Raised when a source, or the whole resolution chain, has nothing for the track."""
    pass


class ProviderError(LyricsError):
    """
    Raised when an external lyrics provider fails.

    Common causes:
        - Network timeout or connection refused
        - Non-200 HTTP status
        - Subsonic API answered with status "failed"
        - Response body is not the expected JSON
    """
    pass


class TimeTagError(ValueError):
    """Raised when a bracketed LRC timestamp cannot be parsed."""
    pass
