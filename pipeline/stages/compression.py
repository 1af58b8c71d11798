"""
Streaming file compression through a codec stream.
"""

import asyncio
import logging
import zlib
from pathlib import Path
from typing import Tuple

import aiofiles

from base_classes import Codec
from compression_codecs import BROTLI_AVAILABLE, brotli
from pipeline_errors import CompressionIOError

logger = logging.getLogger(__name__)

if BROTLI_AVAILABLE:
    CODEC_ERRORS: Tuple[type, ...] = (zlib.error, brotli.error)
else:
    CODEC_ERRORS = (zlib.error,)


class StreamingCompressor:
    """
    Memory-efficient file compression.

    The source is read in fixed size chunks, each chunk is pushed through
    the codec stream on the default executor, and the output is appended
    to the destination as it is produced. A file is never held in memory
    as a whole.
    """

    def __init__(self, codec: Codec, chunk_size: int = 64 * 1024):
        """
        Initialize the streaming compressor.

        Args:
            codec: Codec providing the stream factory
            chunk_size: Size of chunks read from the source
        """
        if chunk_size <= 0:
            raise ValueError("Chunk size must be positive")

        self.codec = codec
        self.chunk_size = chunk_size

        logger.debug(f"Initialized StreamingCompressor with codec={codec.name}, "
                     f"chunk_size={chunk_size}")

    async def compress_file(self, source: Path, destination: Path) -> Tuple[int, int]:
        """
        Compress one file.

        Args:
            source: File to read
            destination: Artifact to write, parent folders are created

        Returns:
            Tuple of (bytes read, bytes written)

        Raises:
            CompressionIOError: On read, write or codec failure. A partially
                written artifact is removed.
        """
        loop = asyncio.get_running_loop()
        stream = self.codec.create_stream()
        total_input = 0
        total_output = 0

        try:
            destination.parent.mkdir(parents=True, exist_ok=True)
            async with aiofiles.open(source, 'rb') as reader, \
                    aiofiles.open(destination, 'wb') as writer:
                while True:
                    chunk = await reader.read(self.chunk_size)
                    if not chunk:
                        break
                    total_input += len(chunk)
                    compressed = await loop.run_in_executor(None, stream.compress, chunk)
                    if compressed:
                        await writer.write(compressed)
                        total_output += len(compressed)

                tail = await loop.run_in_executor(None, stream.flush)
                if tail:
                    await writer.write(tail)
                    total_output += len(tail)

        except asyncio.CancelledError:
            self._remove_partial(destination)
            raise
        except OSError as e:
            self._remove_partial(destination)
            raise CompressionIOError(f"I/O error compressing {source.name}",
                                     source=source, destination=destination,
                                     cause=e) from e
        except CODEC_ERRORS as e:
            self._remove_partial(destination)
            raise CompressionIOError(f"Codec error compressing {source.name}",
                                     source=source, destination=destination,
                                     cause=e) from e

        logger.debug(f"Compressed {source}: {total_input} -> {total_output} bytes")
        return total_input, total_output

    @staticmethod
    def _remove_partial(destination: Path) -> None:
        try:
            destination.unlink(missing_ok=True)
        except OSError as e:
            logger.warning(f"Could not remove partial artifact {destination}: {e}")
