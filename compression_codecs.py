"""
Compression Codecs
==================

Stream factories for the codecs the pipeline can produce. gzip and
deflate come from zlib; brotli needs the ``brotli`` distribution and is
reported as unsupported when it cannot be imported.
"""

import logging
import zlib
from typing import Any, Callable, Dict

from base_classes import Codec, CompressionStream
from pipeline_configs import CodecKind, CompressOptions
from pipeline_errors import UnsupportedCodecError

try:
    import brotli
    BROTLI_AVAILABLE = True
except ImportError:
    brotli = None
    BROTLI_AVAILABLE = False

logger = logging.getLogger(__name__)

# Artifact extensions by codec
CODEC_EXTENSIONS = {
    CodecKind.GZIP: 'gz',
    CodecKind.DEFLATE: 'zz',
    CodecKind.BROTLI: 'br',
}


class ZlibStream(CompressionStream):
    """Adapter over a zlib compress object"""

    def __init__(self, compressor):
        self._compressor = compressor

    def compress(self, chunk: bytes) -> bytes:
        return self._compressor.compress(chunk)

    def flush(self) -> bytes:
        return self._compressor.flush(zlib.Z_FINISH)


class BrotliStream(CompressionStream):
    """Adapter over a brotli.Compressor"""

    def __init__(self, compressor):
        self._compressor = compressor

    def compress(self, chunk: bytes) -> bytes:
        return self._compressor.process(chunk)

    def flush(self) -> bytes:
        return self._compressor.finish()


class ZlibCodec(Codec):
    """Shared implementation for the zlib based codecs"""

    wbits: int = zlib.MAX_WBITS

    def __init__(self, level=None, memory_level=None, strategy=None):
        self.level = level
        self.memory_level = memory_level
        self.strategy = strategy

    def parameters(self) -> Dict[str, Any]:
        params = {}
        if self.level is not None:
            params['level'] = self.level
        if self.memory_level is not None:
            params['memLevel'] = self.memory_level
        if self.strategy is not None:
            params['strategy'] = self.strategy
        return params

    def create_stream(self) -> CompressionStream:
        compressor = zlib.compressobj(
            self.level if self.level is not None else zlib.Z_DEFAULT_COMPRESSION,
            zlib.DEFLATED,
            self.wbits,
            self.memory_level if self.memory_level is not None else zlib.DEF_MEM_LEVEL,
            self.strategy if self.strategy is not None else zlib.Z_DEFAULT_STRATEGY,
        )
        return ZlibStream(compressor)


class GzipCodec(ZlibCodec):
    name = 'GZIP'
    ext = CODEC_EXTENSIONS[CodecKind.GZIP]
    wbits = 16 + zlib.MAX_WBITS  # gzip header and trailer


class DeflateCodec(ZlibCodec):
    name = 'DEFLATE'
    ext = CODEC_EXTENSIONS[CodecKind.DEFLATE]
    wbits = zlib.MAX_WBITS  # zlib wrapper


class BrotliCodec(Codec):
    name = 'BROTLI'
    ext = CODEC_EXTENSIONS[CodecKind.BROTLI]

    def __init__(self, param_mode=None, quality=None, size_hint=None):
        if not BROTLI_AVAILABLE:
            raise UnsupportedCodecError(
                'brotli', "the 'brotli' package is not installed")
        self.param_mode = param_mode
        self.quality = quality
        self.size_hint = size_hint
        if size_hint is not None:
            logger.debug("Brotli size hint is recorded but not passed to the encoder")

    def _mode(self) -> int:
        modes = {
            'default': brotli.MODE_GENERIC,
            'text': brotli.MODE_TEXT,
            'font': brotli.MODE_FONT,
        }
        return modes.get(self.param_mode, brotli.MODE_GENERIC)

    def parameters(self) -> Dict[str, Any]:
        params = {}
        if self.param_mode is not None:
            params['brotliParamMode'] = self.param_mode
        if self.quality is not None:
            params['brotliQuality'] = self.quality
        if self.size_hint is not None:
            params['brotliSizeHint'] = self.size_hint
        return params

    def create_stream(self) -> CompressionStream:
        kwargs = {'mode': self._mode()}
        if self.quality is not None:
            kwargs['quality'] = self.quality
        return BrotliStream(brotli.Compressor(**kwargs))


_FACTORIES: Dict[CodecKind, Callable[[CompressOptions], Codec]] = {
    CodecKind.GZIP: lambda o: GzipCodec(o.level, o.memory_level, o.strategy),
    CodecKind.DEFLATE: lambda o: DeflateCodec(o.level, o.memory_level, o.strategy),
    CodecKind.BROTLI: lambda o: BrotliCodec(
        o.brotli_param_mode, o.brotli_quality, o.brotli_size_hint),
}


def create_codec(options: CompressOptions) -> Codec:
    """
    Build the codec selected by the options.

    Raises:
        UnsupportedCodecError: If the codec is unavailable at runtime
    """
    factory = _FACTORIES.get(options.codec)
    if factory is None:
        raise UnsupportedCodecError(str(options.codec))
    return factory(options)


def is_available(kind: CodecKind) -> bool:
    if kind is CodecKind.BROTLI:
        return BROTLI_AVAILABLE
    return kind in _FACTORIES


def describe(codec: Codec) -> str:
    """Human readable codec summary, e.g. 'Compression GZIP | level: 7'"""
    params = ', '.join(f"{key}: {value}" for key, value in codec.parameters().items())
    if not params:
        return f"Compression {codec.name}"
    return f"Compression {codec.name} | {params}"
