"""
Pipeline stages for the incremental compression system.
"""

from .cache import RevisionCache
from .compression import StreamingCompressor
from .discovery import FileWalker
from .formatting import OutputPathResolver
from .selection import PathMatcher

__all__ = [
    'FileWalker',
    'OutputPathResolver',
    'PathMatcher',
    'RevisionCache',
    'StreamingCompressor',
]
