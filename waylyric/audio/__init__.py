"""
Audio file handling
Embedded lyrics extraction from audio tags
"""

from .metadata import MetadataReader, get_metadata_reader, read_embedded_lyrics, sylt_to_lrc

__all__ = [
    'MetadataReader',
    'get_metadata_reader',
    'read_embedded_lyrics',
    'sylt_to_lrc',
]
