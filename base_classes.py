"""
Base Classes for the Incremental Compression Pipeline
=====================================================

Contains core data structures and abstract base classes used throughout the pipeline.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import List, Dict, Any, Optional


@dataclass(frozen=True)
class FileTask:
    """A discovered file scheduled for compression"""
    absolute_path: Path
    size: int
    relative_root: Path  # Directory the walk started from

    @property
    def relative_path(self) -> Path:
        return self.absolute_path.relative_to(self.relative_root)


@dataclass
class Revision:
    """One past compression of one file under one options fingerprint"""
    date: str
    last_checksum: str
    file_id: str
    options: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            'date': self.date,
            'lastChecksum': self.last_checksum,
            'fileId': self.file_id,
            'options': self.options,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Revision':
        return cls(
            date=str(data['date']),
            last_checksum=str(data['lastChecksum']),
            file_id=str(data['fileId']),
            options=str(data['options']),
        )


@dataclass
class FileRevisionRecord:
    """All revisions recorded for a single file id"""
    revisions: List[Revision] = field(default_factory=list)

    def find(self, fingerprint: str) -> Optional[Revision]:
        for revision in self.revisions:
            if revision.options == fingerprint:
                return revision
        return None

    def upsert(self, revision: Revision) -> None:
        """Replace the revision sharing the same fingerprint, or append it"""
        for index, existing in enumerate(self.revisions):
            if existing.options == revision.options:
                self.revisions[index] = revision
                return
        self.revisions.append(revision)

    def to_dict(self) -> Dict[str, Any]:
        return {'revisions': [revision.to_dict() for revision in self.revisions]}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'FileRevisionRecord':
        record = cls()
        # Later entries win when an older file carries duplicate fingerprints
        for item in data['revisions']:
            record.upsert(Revision.from_dict(item))
        return record


@dataclass
class RevisionConfig:
    """Persisted cache document"""
    version: str
    files: Dict[str, FileRevisionRecord] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'version': self.version,
            'incremental': {
                'files': {
                    file_id: record.to_dict()
                    for file_id, record in self.files.items()
                }
            }
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any], version: str) -> 'RevisionConfig':
        files = data.get('incremental', {}).get('files', {})
        return cls(
            version=str(data.get('version', version)),
            files={
                str(file_id): FileRevisionRecord.from_dict(record)
                for file_id, record in files.items()
            }
        )


class RunStatus(Enum):
    """Terminal states of a successful run"""
    COMPLETED = "completed"
    NO_FILES = "no_files"


@dataclass
class FileResult:
    """Outcome for a single processed file"""
    source: Path
    destination: Path
    before_bytes: int
    after_bytes: int
    cached: bool = False
    elapsed_seconds: float = 0.0


@dataclass
class CompressionReport:
    """Aggregate result of one pipeline run"""
    status: RunStatus
    compressed_count: int = 0  # Fresh and cached files
    cached_count: int = 0
    total_before_bytes: int = 0
    total_after_bytes: int = 0
    elapsed_seconds: float = 0.0
    files: List[FileResult] = field(default_factory=list)

    @property
    def fresh_count(self) -> int:
        return self.compressed_count - self.cached_count


class CompressionStream(ABC):
    """Incremental transform from raw bytes to compressed bytes"""

    @abstractmethod
    def compress(self, chunk: bytes) -> bytes:
        pass

    @abstractmethod
    def flush(self) -> bytes:
        pass


class Codec(ABC):
    """Abstract base class for codec stream factories"""

    name: str = ""
    ext: str = ""

    @abstractmethod
    def parameters(self) -> Dict[str, Any]:
        """Effective parameters that shape the compressed output"""
        pass

    @abstractmethod
    def create_stream(self) -> CompressionStream:
        pass
