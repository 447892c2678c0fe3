"""
Utility functions and helpers for waylyric
String matching for lyrics lookups, formatting and retry helpers
"""

import asyncio
import functools
import re
from typing import Optional, Sequence, Union


def format_duration(seconds: Union[int, float]) -> str:
    """
    Format duration in seconds to human-readable string

    Args:
        seconds: Duration in seconds

    Returns:
        Formatted duration string
    """
    if seconds < 0:
        return "0:00"

    hours = int(seconds // 3600)
    minutes = int((seconds % 3600) // 60)
    secs = int(seconds % 60)

    if hours > 0:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    else:
        return f"{minutes}:{secs:02d}"


def levenshtein_distance(s1: str, s2: str) -> int:
    """Edit distance between two strings (insert, delete, substitute)"""
    len1, len2 = len(s1), len(s2)
    if len1 == 0:
        return len2
    if len2 == 0:
        return len1

    previous = list(range(len2 + 1))
    for i in range(1, len1 + 1):
        current = [i] + [0] * len2
        for j in range(1, len2 + 1):
            cost = 0 if s1[i - 1] == s2[j - 1] else 1
            current[j] = min(
                previous[j] + 1,         # deletion
                current[j - 1] + 1,      # insertion
                previous[j - 1] + cost   # substitution
            )
        previous = current
    return previous[len2]


def calculate_similarity(str1: str, str2: str) -> float:
    """
    Calculate string similarity using Levenshtein distance

    Args:
        str1: First string
        str2: Second string

    Returns:
        Similarity score between 0.0 and 1.0
    """
    s1 = str1.lower().strip()
    s2 = str2.lower().strip()

    if s1 == s2:
        return 1.0
    if not s1 or not s2:
        return 0.0

    max_len = max(len(s1), len(s2))
    return max(0.0, 1 - levenshtein_distance(s1, s2) / max_len)


def is_similar(a: str, b: str) -> bool:
    """Case-insensitive equality or containment in either direction"""
    a_normalized = a.lower().strip()
    b_normalized = b.lower().strip()
    if a_normalized == b_normalized:
        return True
    return a_normalized in b_normalized or b_normalized in a_normalized


def field_similarity(query: str, candidate: str) -> float:
    """
    Score one metadata field of a search result against the query

    1.0 for a case-insensitive exact match, 0.8 when one contains the
    other, otherwise the Levenshtein similarity ratio.
    """
    q = query.lower().strip()
    c = candidate.lower().strip()
    if q == c:
        return 1.0
    if q and c and (q in c or c in q):
        return 0.8
    return calculate_similarity(q, c)


def normalize_artist_name(artist: str) -> str:
    """
    Normalize artist name for better matching

    Args:
        artist: Original artist name

    Returns:
        Normalized artist name
    """
    normalized = artist.lower()

    for prefix in ('the ', 'a ', 'an '):
        if normalized.startswith(prefix):
            normalized = normalized[len(prefix):]

    feat_patterns = [
        r'\s*\(feat\.?.*?\)',
        r'\s*\(ft\.?.*?\)',
        r'\s+feat\.?\s.*',
        r'\s+ft\.?\s.*',
        r'\s+featuring\s.*',
    ]

    for pattern in feat_patterns:
        normalized = re.sub(pattern, '', normalized, flags=re.IGNORECASE)

    return re.sub(r'\s+', ' ', normalized).strip()


def normalize_track_title(title: str) -> str:
    """
    Normalize track title for better matching

    Args:
        title: Original track title

    Returns:
        Normalized track title
    """
    normalized = title.lower()

    version_patterns = [
        r'\s*[\(\[].*?(version|mix|edit|remix|remaster).*?[\)\]]',
        r'\s*[\(\[](feat|ft)\.?.*?[\)\]]',
        r'\s+(feat|ft)\.?\s.*',
        r'\s+-\s+.*remaster.*',
    ]

    for pattern in version_patterns:
        normalized = re.sub(pattern, '', normalized, flags=re.IGNORECASE)

    return re.sub(r'\s+', ' ', normalized).strip()


def first_text(value) -> Optional[str]:
    """
    First non-empty string of an MPRIS metadata value

    xesam:artist and xesam:albumArtist are string arrays, most other keys
    are plain strings.
    """
    if isinstance(value, str):
        return value or None
    if isinstance(value, Sequence) and not isinstance(value, (bytes, bytearray)):
        for item in value:
            if isinstance(item, str) and item:
                return item
    return None


def async_retry_on_failure(max_attempts: int = 3, delay: float = 1.0, backoff: float = 2.0,
                           exceptions: tuple = (Exception,)):
    """
    Decorator for retrying coroutines on failure

    Args:
        max_attempts: Maximum number of attempts
        delay: Initial delay between attempts
        backoff: Delay multiplier for exponential backoff
        exceptions: Exception types that trigger a retry, others propagate at once
    """
    def decorator(func):
        @functools.wraps(func)
        async def wrapper(*args, **kwargs):
            attempt = 1
            current_delay = delay

            while True:
                try:
                    return await func(*args, **kwargs)
                except exceptions:
                    if attempt >= max_attempts:
                        raise
                    await asyncio.sleep(current_delay)
                    current_delay *= backoff
                    attempt += 1
        return wrapper
    return decorator
