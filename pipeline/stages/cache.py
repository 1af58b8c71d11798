"""
Revision Cache
==============

Remembers which files were already compressed under which options.
"""

import hashlib
import json
import logging
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Union

import aiofiles
import mmh3

from base_classes import FileRevisionRecord, Revision, RevisionConfig
from pipeline_configs import CompressOptions
from revision_store import RevisionStore

logger = logging.getLogger(__name__)

CHECKSUM_CHUNK_SIZE = 64 * 1024


def file_id(path: Union[str, Path]) -> str:
    """Stable cache slot for a path, independent of the file content"""
    resolved = str(Path(path).resolve())
    return format(mmh3.hash128(resolved.encode('utf-8'), signed=False), '032x')


def options_fingerprint(options: CompressOptions) -> str:
    """Digest of the options that change the compressed bytes"""
    canonical = json.dumps(options.fingerprint_fields(), sort_keys=True,
                           separators=(',', ':'))
    return hashlib.sha256(canonical.encode('utf-8')).hexdigest()


async def file_checksum(path: Union[str, Path],
                        chunk_size: int = CHECKSUM_CHUNK_SIZE) -> str:
    """sha256 of the file, read in chunks"""
    hasher = hashlib.sha256()
    async with aiofiles.open(path, 'rb') as f:
        while True:
            chunk = await f.read(chunk_size)
            if not chunk:
                break
            hasher.update(chunk)
    return hasher.hexdigest()


class RevisionCache:
    """In-memory revision config backed by a RevisionStore"""

    def __init__(self, store: RevisionStore):
        self.store = store
        self.config: Optional[RevisionConfig] = None
        self._lock = threading.RLock()
        self.dirty = False

    def load(self) -> RevisionConfig:
        with self._lock:
            self.config = self.store.load()
            self.dirty = False
            logger.debug(f"Loaded revisions for {len(self.config.files)} files")
            return self.config

    def _require_config(self) -> RevisionConfig:
        if self.config is None:
            return self.load()
        return self.config

    def lookup(self, file_id: str, checksum: str, fingerprint: str) -> bool:
        """True when the file is unchanged since it was compressed with these options"""
        with self._lock:
            record = self._require_config().files.get(file_id)
            if record is None:
                return False
            revision = record.find(fingerprint)
            return revision is not None and revision.last_checksum == checksum

    def record(self, file_id: str, checksum: str, fingerprint: str) -> Revision:
        """Insert or replace the revision for this fingerprint"""
        revision = Revision(
            date=datetime.now(timezone.utc).isoformat(),
            last_checksum=checksum,
            file_id=file_id,
            options=fingerprint,
        )
        with self._lock:
            files = self._require_config().files
            record = files.setdefault(file_id, FileRevisionRecord())
            record.upsert(revision)
            self.dirty = True
        return revision

    def flush(self) -> None:
        """Persist the in-memory config"""
        with self._lock:
            config = self._require_config()
            self.store.save(config)
            self.dirty = False

    @property
    def cache_file(self) -> Path:
        return self.store.config_file

    def __len__(self) -> int:
        with self._lock:
            return len(self.config.files) if self.config else 0
