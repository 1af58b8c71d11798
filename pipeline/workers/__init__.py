"""
Pipeline worker components for parallel processing.
"""

from .parallel_processor import ParallelProcessor

__all__ = [
    'ParallelProcessor',
]
