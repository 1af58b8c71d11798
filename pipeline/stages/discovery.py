"""
File Discovery
==============

Deterministic depth-first enumeration of eligible files.
"""

import logging
import os
from pathlib import Path
from typing import Iterable, Iterator, List, Optional, Union

from base_classes import FileTask
from pipeline_errors import PathNotFoundError
from .selection import PathMatcher

logger = logging.getLogger(__name__)


class FileWalker:
    """
    Walks a file or directory tree and yields eligible files.

    Uses an explicit stack of pending directories so deep trees never
    grow the Python call stack. Entries of each directory are visited in
    name order, and a subdirectory is fully walked before its next
    sibling, so the sequence is stable for an unchanged tree.
    """

    def __init__(self, matcher: PathMatcher,
                 skip_dirs: Optional[Iterable[Union[str, Path]]] = None):
        self.matcher = matcher
        self.skip_dirs = {Path(os.path.abspath(d)) for d in (skip_dirs or ())}

    def walk(self, root: Union[str, Path]) -> Iterator[FileTask]:
        root = Path(os.path.abspath(root))
        if not root.exists():
            raise PathNotFoundError(root)

        if root.is_file():
            task = self._make_task(root, root.parent)
            if task is not None:
                yield task
            return

        # Each frame holds the remaining entries of one directory, reversed
        stack: List[List[Path]] = [self._list_dir(root)]
        while stack:
            entries = stack[-1]
            if not entries:
                stack.pop()
                continue
            entry = entries.pop()
            if entry.is_dir():
                if entry in self.skip_dirs:
                    logger.debug(f"Skipping directory: {entry}")
                    continue
                stack.append(self._list_dir(entry))
            elif entry.is_file():
                task = self._make_task(entry, root)
                if task is not None:
                    yield task

    def collect(self, root: Union[str, Path]) -> List[FileTask]:
        """Materialize the walk before any output is written"""
        return list(self.walk(root))

    def _list_dir(self, directory: Path) -> List[Path]:
        if directory in self.skip_dirs:
            return []
        return sorted(directory.iterdir(), key=lambda p: p.name, reverse=True)

    def _make_task(self, path: Path, relative_root: Path) -> Optional[FileTask]:
        size = path.stat().st_size
        if not self.matcher.is_eligible(path, size):
            logger.debug(f"Not eligible: {path}")
            return None
        return FileTask(absolute_path=path, size=size, relative_root=relative_root)
