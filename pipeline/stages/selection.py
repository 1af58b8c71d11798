"""
File Selection
==============

Decides which discovered files are eligible for compression.
"""

import logging
from pathlib import Path
from typing import Iterable, Optional, Union

logger = logging.getLogger(__name__)


def file_extension(path: Union[str, Path]) -> str:
    """Text after the last dot of the final path segment, '' without one"""
    name = Path(path).name
    if '.' not in name:
        return ''
    return name.rsplit('.', 1)[1]


class PathMatcher:
    """Extension and size based eligibility filter"""

    def __init__(self,
                 include: Optional[Iterable[str]] = None,
                 exclude: Optional[Iterable[str]] = None,
                 threshold: int = 0,
                 artifact_ext: Optional[str] = None):
        """
        Args:
            include: Only these extensions are eligible when non-empty
            exclude: These extensions are rejected when include is empty
            threshold: Minimum file size in bytes
            artifact_ext: Extension produced by the active codec
        """
        self.include = frozenset(include or ())
        self.exclude = frozenset(exclude or ())
        self.threshold = threshold
        self.artifact_ext = artifact_ext

    @classmethod
    def from_options(cls, options, artifact_ext: str) -> 'PathMatcher':
        return cls(
            include=options.include,
            exclude=options.exclude,
            threshold=options.threshold,
            artifact_ext=artifact_ext,
        )

    def is_eligible(self, path: Union[str, Path], size: int) -> bool:
        ext = file_extension(path)

        # Never compress our own output
        if self.artifact_ext and ext == self.artifact_ext:
            return False

        if self.include:
            if ext not in self.include:
                return False
        elif ext in self.exclude:
            return False

        if size < self.threshold:
            return False

        return True
