"""
Compression Options and Presets
===============================

This module provides the run configuration for the compression pipeline,
pre-configured presets, and environment variable overrides.
"""

import logging
import os
from dataclasses import dataclass, field, fields, replace
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple

logger = logging.getLogger(__name__)

ENV_PREFIX = 'PRECOMPRESS_'
DEFAULT_OUTPUT_FILE_FORMAT = '[filename].[ext].[compressExt]'

BROTLI_PARAM_MODES = ('default', 'text', 'font')
_TRUE_VALUES = {'1', 'true', 'yes', 'on'}
_FALSE_VALUES = {'0', 'false', 'no', 'off'}


class CodecKind(Enum):
    """Codecs the pipeline can produce artifacts for"""
    GZIP = "gzip"
    DEFLATE = "deflate"
    BROTLI = "brotli"


@dataclass(frozen=True)
class CompressOptions:
    """Configuration settings for one compression run"""

    # Codec selection, brotli wins over deflate, gzip otherwise
    brotli: bool = False
    deflate: bool = False

    # zlib settings (gzip and deflate)
    level: Optional[int] = None
    memory_level: Optional[int] = None
    strategy: Optional[int] = None

    # Brotli settings
    brotli_param_mode: Optional[str] = None
    brotli_quality: Optional[int] = None
    brotli_size_hint: Optional[int] = None

    # Selection settings
    include: Tuple[str, ...] = field(default_factory=tuple)
    exclude: Tuple[str, ...] = field(default_factory=tuple)
    threshold: int = 0

    # Output settings
    output_file_format: Optional[str] = None

    # Run settings
    incremental: bool = False
    verbose: bool = False
    workers: int = 1

    def __post_init__(self) -> None:
        """Validate configuration parameters"""
        # Frozen dataclass, normalise through object.__setattr__
        object.__setattr__(self, 'include', _normalize_extensions(self.include))
        object.__setattr__(self, 'exclude', _normalize_extensions(self.exclude))

        if self.level is not None and not -1 <= self.level <= 9:
            raise ValueError("level must be between -1 and 9")
        if self.memory_level is not None and not 1 <= self.memory_level <= 9:
            raise ValueError("memory_level must be between 1 and 9")
        if self.strategy is not None and not 0 <= self.strategy <= 4:
            raise ValueError("strategy must be between 0 and 4")
        if (self.brotli_param_mode is not None
                and self.brotli_param_mode not in BROTLI_PARAM_MODES):
            raise ValueError(f"Invalid brotli_param_mode: {self.brotli_param_mode}")
        if self.brotli_quality is not None and not 0 <= self.brotli_quality <= 11:
            raise ValueError("brotli_quality must be between 0 and 11")
        if self.brotli_size_hint is not None and self.brotli_size_hint < 0:
            raise ValueError("brotli_size_hint cannot be negative")
        if self.threshold < 0:
            raise ValueError("threshold cannot be negative")
        if self.workers <= 0:
            raise ValueError("workers must be positive")
        if self.output_file_format is not None and not self.output_file_format.strip():
            raise ValueError("output_file_format cannot be empty")

    @property
    def codec(self) -> CodecKind:
        if self.brotli:
            return CodecKind.BROTLI
        if self.deflate:
            return CodecKind.DEFLATE
        return CodecKind.GZIP

    def fingerprint_fields(self) -> Dict[str, Any]:
        """
        Options that change the compressed bytes.

        Only the selected codec and the parameters that codec reads take
        part. Naming, filtering and logging settings are left out so that
        changing them keeps existing revisions valid.
        """
        codec = self.codec
        if codec is CodecKind.BROTLI:
            return {
                'codec': codec.value,
                'brotli_param_mode': self.brotli_param_mode,
                'brotli_quality': self.brotli_quality,
                'brotli_size_hint': self.brotli_size_hint,
            }
        return {
            'codec': codec.value,
            'level': self.level,
            'memory_level': self.memory_level,
            'strategy': self.strategy,
        }

    def explicit_options(self) -> Dict[str, Any]:
        """Options that differ from their defaults, for verbose logging"""
        defaults = CompressOptions()
        return {
            f.name: getattr(self, f.name)
            for f in fields(self)
            if getattr(self, f.name) != getattr(defaults, f.name)
        }

    @classmethod
    def from_env(cls, base: Optional['CompressOptions'] = None,
                 environ: Optional[Mapping[str, str]] = None) -> 'CompressOptions':
        """
        Apply PRECOMPRESS_* environment variables on top of base options.

        Environment values win over values passed on the command line.

        Args:
            base: Options to override, defaults when omitted
            environ: Variables to read, os.environ when omitted

        Returns:
            New options instance
        """
        base = base or cls()
        environ = os.environ if environ is None else environ
        overrides: Dict[str, Any] = {}

        for f in fields(cls):
            key = ENV_PREFIX + f.name.upper()
            if key not in environ:
                continue
            raw = environ[key]
            try:
                overrides[f.name] = _coerce(f.name, getattr(base, f.name), raw)
            except ValueError as e:
                raise ValueError(f"Invalid value for {key}: {raw!r}") from e
            logger.debug(f"Option {f.name} overridden by {key}")

        if not overrides:
            return base
        return replace(base, **overrides)


def _normalize_extensions(values) -> Tuple[str, ...]:
    if isinstance(values, str):
        values = values.split(',')
    cleaned = []
    for value in values or ():
        value = value.strip().lstrip('.')
        if value and value not in cleaned:
            cleaned.append(value)
    return tuple(cleaned)


_BOOL_FIELDS = {'brotli', 'deflate', 'incremental', 'verbose'}
_INT_FIELDS = {'level', 'memory_level', 'strategy', 'brotli_quality',
               'brotli_size_hint', 'threshold', 'workers'}
_LIST_FIELDS = {'include', 'exclude'}


def _coerce(name: str, current: Any, raw: str) -> Any:
    value = raw.strip()
    if name in _BOOL_FIELDS:
        lowered = value.lower()
        if lowered in _TRUE_VALUES:
            return True
        if lowered in _FALSE_VALUES:
            return False
        raise ValueError(f"not a boolean: {raw!r}")
    if name in _INT_FIELDS:
        return int(value)
    if name in _LIST_FIELDS:
        return _normalize_extensions(value)
    return value or current


class ConfigPresets:
    """Pre-configured settings for common use cases"""

    @staticmethod
    def static_site() -> CompressOptions:
        """
        Web assets served by a static file server
        - Text assets only
        - Skip files too small to benefit
        - Incremental re-runs
        """
        return CompressOptions(
            include=('html', 'css', 'js', 'mjs', 'json', 'svg', 'xml', 'txt', 'map'),
            threshold=860,
            level=9,
            incremental=True,
        )

    @staticmethod
    def maximum_ratio() -> CompressOptions:
        """
        Smallest artifacts regardless of time
        - Brotli at top quality
        - Text mode
        """
        return CompressOptions(
            brotli=True,
            brotli_quality=11,
            brotli_param_mode='text',
            incremental=True,
        )

    @staticmethod
    def fast() -> CompressOptions:
        """
        Lowest latency
        - Fastest gzip level
        - Parallel per-file work
        """
        return CompressOptions(
            level=1,
            workers=max(1, min(os.cpu_count() or 1, 8)),
        )


def list_from_csv(value: Optional[str]) -> List[str]:
    """Split a comma separated command line value"""
    if not value:
        return []
    return list(_normalize_extensions(value))
