"""
Pipeline Error Taxonomy
=======================

Exceptions raised by the compression pipeline. Every error keeps the
exception that caused it plus optional details for structured logging.
"""

import time
import traceback
from pathlib import Path
from typing import Any, Dict, Optional, Union


class PipelineError(Exception):
    """Base class for pipeline errors"""

    def __init__(self, message: str, cause: Optional[Exception] = None,
                 details: Optional[Dict[str, Any]] = None):
        """
        Initialize a pipeline error.

        Args:
            message: Error description
            cause: Original exception that caused this error
            details: Additional error context
        """
        super().__init__(message)
        self.message = message
        self.cause = cause
        self.details = details or {}
        self.timestamp = time.time()
        self.traceback = traceback.format_exc() if cause else None

    def __str__(self) -> str:
        if self.cause:
            return f"{self.message} (caused by {type(self.cause).__name__}: {self.cause})"
        return self.message

    def __repr__(self) -> str:
        return (f"{type(self).__name__}(message={self.message!r}, "
                f"cause={self.cause!r}, details={self.details!r})")

    def log_context(self) -> Dict[str, Any]:
        """Get error context for structured logging"""
        return {
            'error_type': type(self).__name__,
            'message': str(self),
            'timestamp': self.timestamp,
            'details': self.details,
            'cause': str(self.cause) if self.cause else None
        }


class PathNotFoundError(PipelineError):
    """Target path does not exist"""

    def __init__(self, path: Union[str, Path], cause: Optional[Exception] = None):
        super().__init__(f"Can't find a path: {path}", cause=cause,
                         details={'path': str(path)})
        self.path = Path(path)


class UnsupportedCodecError(PipelineError):
    """Requested codec is not available in this environment"""

    def __init__(self, codec: str, reason: str = "",
                 cause: Optional[Exception] = None):
        message = f"Can't use {codec} compression"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message, cause=cause, details={'codec': codec})
        self.codec = codec


class CompressionIOError(PipelineError):
    """Reading the source, writing the artifact or the codec stream failed"""

    def __init__(self, message: str, source: Optional[Path] = None,
                 destination: Optional[Path] = None,
                 cause: Optional[Exception] = None):
        details = {}
        if source is not None:
            details['source'] = str(source)
        if destination is not None:
            details['destination'] = str(destination)
        super().__init__(message, cause=cause, details=details)
        self.source = source
        self.destination = destination


class CacheCorruptionError(PipelineError):
    """Persisted cache file exists but cannot be used"""

    def __init__(self, cache_file: Path, cause: Optional[Exception] = None):
        super().__init__(f"Cache file is corrupted: {cache_file}", cause=cause,
                         details={'cache_file': str(cache_file)})
        self.cache_file = cache_file
