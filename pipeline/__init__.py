"""
Incremental compression pipeline modules.
"""

# Import pipeline stages
from .stages.cache import RevisionCache
from .stages.compression import StreamingCompressor
from .stages.discovery import FileWalker
from .stages.formatting import OutputPathResolver
from .stages.selection import PathMatcher
from .workers.parallel_processor import ParallelProcessor

__all__ = [
    'FileWalker',
    'OutputPathResolver',
    'ParallelProcessor',
    'PathMatcher',
    'RevisionCache',
    'StreamingCompressor',
]
