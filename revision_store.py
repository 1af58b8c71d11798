"""
Revision Store with Cross-Platform File Locking
===============================================

Loads and saves the persisted revision config. Writes go to a temporary
file that is atomically renamed over the real one, and a lock file keeps
concurrent processes from interleaving loads and saves.

Compressed artifacts are kept next to the config, one per file and
options fingerprint, so that a cache hit can put the artifact back at
its output path.
"""

import filecmp
import json
import logging
import os
import shutil
import time
from pathlib import Path
from typing import Any, Dict, Optional, Union

import psutil

from base_classes import RevisionConfig
from pipeline_errors import CacheCorruptionError

logger = logging.getLogger(__name__)

CACHE_FOLDER = '.precompress'
CACHE_FILE = '.precompressconfig'
ARTIFACTS_FOLDER = 'artifacts'


class FileLock:
    """
    Lock file owned by one process.

    The owner's pid is written into the lock file. A lock whose owner is
    no longer running is taken over at once; a lock without a readable
    pid is only taken over once it is older than the timeout.
    """

    def __init__(self, lockfile: Path, timeout: float = 30.0,
                 poll_interval: float = 0.01):
        self.lockfile = lockfile
        self.timeout = timeout
        self.poll_interval = poll_interval
        self.lock_acquired = False

    def acquire(self, blocking: bool = True) -> bool:
        """Acquire the lock, waiting up to timeout when blocking"""
        deadline = time.monotonic() + self.timeout

        while True:
            try:
                fd = os.open(str(self.lockfile),
                             os.O_CREAT | os.O_EXCL | os.O_WRONLY)
            except FileExistsError:
                if self._is_stale():
                    self._break()
                    continue
                if not blocking or time.monotonic() > deadline:
                    return False
                time.sleep(self.poll_interval)
                continue

            with os.fdopen(fd, 'w') as f:
                f.write(str(os.getpid()))
            self.lock_acquired = True
            return True

    def release(self):
        if not self.lock_acquired:
            return
        self.lock_acquired = False
        try:
            self.lockfile.unlink()
        except FileNotFoundError:
            logger.debug(f"Lock file already gone: {self.lockfile}")

    def owner(self) -> Optional[int]:
        """Pid recorded in the lock file, None when unreadable"""
        try:
            return int(self.lockfile.read_text().strip())
        except (OSError, ValueError):
            return None

    def _is_stale(self) -> bool:
        pid = self.owner()
        if pid is not None:
            return pid != os.getpid() and not psutil.pid_exists(pid)
        # Owner may still be writing its pid
        try:
            return time.time() - self.lockfile.stat().st_mtime > self.timeout
        except FileNotFoundError:
            return False

    def _break(self):
        try:
            self.lockfile.unlink()
            logger.info(f"Removed stale lock file: {self.lockfile}")
        except FileNotFoundError:
            pass

    def __enter__(self):
        if not self.acquire():
            raise TimeoutError(f"Could not acquire lock on {self.lockfile}")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.release()


class RevisionStore:
    """JSON persistence for the revision config"""

    def __init__(self, cache_dir: Optional[Union[str, Path]] = None,
                 version: str = '0.0.0', lock_timeout: float = 30.0):
        if cache_dir is None:
            cache_dir = Path.cwd() / CACHE_FOLDER
        self.cache_dir = Path(os.path.abspath(cache_dir))
        self.version = version
        self.lock_timeout = lock_timeout

        self.config_file = self.cache_dir / CACHE_FILE
        self.lock_file = self.cache_dir / f"{CACHE_FILE}.lock"

    def load(self) -> RevisionConfig:
        """
        Load the revision config, falling back to an empty one.

        A missing file is normal on a first run. A corrupted file is moved
        aside and never blocks compression.
        """
        if not self.config_file.exists():
            logger.debug(f"No revision cache at {self.config_file}, starting empty")
            return RevisionConfig(version=self.version)

        self.cache_dir.mkdir(parents=True, exist_ok=True)
        with FileLock(self.lock_file, self.lock_timeout):
            try:
                return self._read()
            except CacheCorruptionError as e:
                logger.warning(f"{e}, starting with an empty cache")
                self._backup_corrupted()
                return RevisionConfig(version=self.version)

    def _read(self) -> RevisionConfig:
        try:
            with open(self.config_file, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise CacheCorruptionError(self.config_file, cause=e) from e

        if not isinstance(data, dict):
            raise CacheCorruptionError(self.config_file)
        try:
            config = RevisionConfig.from_dict(data, self.version)
        except (KeyError, TypeError, AttributeError) as e:
            raise CacheCorruptionError(self.config_file, cause=e) from e

        # Always stamp the running version on the next save
        config.version = self.version
        return config

    def save(self, config: RevisionConfig) -> None:
        """Write the config atomically"""
        self.cache_dir.mkdir(parents=True, exist_ok=True)
        temp_file = self.config_file.with_name(f"{CACHE_FILE}.tmp")

        with FileLock(self.lock_file, self.lock_timeout):
            try:
                with open(temp_file, 'w', encoding='utf-8') as f:
                    json.dump(config.to_dict(), f, indent=2, sort_keys=True)
                    f.write('\n')
                temp_file.replace(self.config_file)
            except (OSError, TypeError, ValueError) as e:
                logger.error(f"Error saving revision cache: {e}")
                temp_file.unlink(missing_ok=True)
                raise

        logger.debug(f"Revision cache written to {self.config_file}")

    def _backup_corrupted(self):
        backup_file = self.cache_dir / f"{CACHE_FILE}.corrupted.{int(time.time())}"
        try:
            self.config_file.rename(backup_file)
            logger.info(f"Backed up corrupted cache to: {backup_file}")
        except OSError as e:
            logger.error(f"OS error backing up corrupted cache: {e}")

    def artifact_path(self, file_id: str, fingerprint: str) -> Path:
        """Stored copy of the artifact built for file_id under fingerprint"""
        return self.cache_dir / ARTIFACTS_FOLDER / file_id / fingerprint

    def store_artifact(self, file_id: str, fingerprint: str, artifact: Path) -> Path:
        """Copy a freshly built artifact into the cache"""
        stored = self.artifact_path(file_id, fingerprint)
        _atomic_copy(artifact, stored)
        return stored

    def restore_artifact(self, file_id: str, fingerprint: str,
                         destination: Path) -> Optional[int]:
        """
        Put the stored artifact at destination.

        A destination that already holds the same bytes is left untouched.

        Returns:
            Size of the artifact, or None when nothing is stored
        """
        stored = self.artifact_path(file_id, fingerprint)
        if not stored.is_file():
            return None
        if not (destination.is_file() and filecmp.cmp(stored, destination, shallow=False)):
            _atomic_copy(stored, destination)
            logger.debug(f"Restored {destination} from {stored}")
        return stored.stat().st_size

    def purge(self) -> bool:
        """Delete the cache folder, returns False when there was none"""
        if not self.cache_dir.exists():
            return False
        shutil.rmtree(self.cache_dir)
        logger.info(f"Removed revision cache: {self.cache_dir}")
        return True

    def get_cache_stats(self) -> Dict[str, Any]:
        """Get cache statistics"""
        stats = {
            'cache_file': str(self.config_file),
            'exists': self.config_file.exists(),
            'total_files': 0,
            'total_revisions': 0,
            'size_bytes': 0,
        }
        if not stats['exists']:
            return stats

        stats['size_bytes'] = self.config_file.stat().st_size
        config = self.load()
        stats['total_files'] = len(config.files)
        stats['total_revisions'] = sum(
            len(record.revisions) for record in config.files.values()
        )
        artifacts_dir = self.cache_dir / ARTIFACTS_FOLDER
        artifacts = [p for p in artifacts_dir.rglob('*') if p.is_file()] if artifacts_dir.is_dir() else []
        stats['artifact_count'] = len(artifacts)
        stats['artifact_bytes'] = sum(p.stat().st_size for p in artifacts)
        return stats


def _atomic_copy(source: Path, destination: Path) -> None:
    destination.parent.mkdir(parents=True, exist_ok=True)
    temp_file = destination.with_name(f".{destination.name}.tmp")
    try:
        shutil.copyfile(source, temp_file)
        temp_file.replace(destination)
    except OSError:
        temp_file.unlink(missing_ok=True)
        raise
