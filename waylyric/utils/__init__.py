"""
Utilities package
Logging setup and string helpers
"""

from .logger import (
    get_logger,
    configure_from_settings,
    setup_logging,
    log_performance,
    get_current_log_file,
    parse_size,
)
from .helpers import (
    format_duration,
    calculate_similarity,
    field_similarity,
    is_similar,
    normalize_artist_name,
    normalize_track_title,
    first_text,
    async_retry_on_failure,
)

__all__ = [
    # Logger exports
    'get_logger',
    'configure_from_settings',
    'setup_logging',
    'log_performance',
    'get_current_log_file',
    'parse_size',

    # Helper exports
    'format_duration',
    'calculate_similarity',
    'field_similarity',
    'is_similar',
    'normalize_artist_name',
    'normalize_track_title',
    'first_text',
    'async_retry_on_failure',
]
