"""
Incremental Compression Pipeline
================================

Compresses every eligible file under a target path with the selected
codec. With incremental mode on, files whose content and compression
options are unchanged since the previous run are served from the
revision cache instead of being compressed again.

Run stages:
    Walking -> per file (CacheCheck -> Compressing -> Reporting) -> Finalizing

Any error while processing a file aborts the whole run.
"""

import asyncio
import logging
import os
import time
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Union

from base_classes import (
    CompressionReport, FileResult, FileTask, RunStatus
)
from compression_codecs import create_codec, describe
from pipeline.stages.cache import (
    RevisionCache, file_checksum, file_id, options_fingerprint
)
from pipeline.stages.compression import StreamingCompressor
from pipeline.stages.discovery import FileWalker
from pipeline.stages.formatting import OutputPathResolver
from pipeline.stages.selection import PathMatcher
from pipeline.workers.parallel_processor import ParallelProcessor
from pipeline_configs import DEFAULT_OUTPUT_FILE_FORMAT, CompressOptions
from pipeline_errors import CompressionIOError, UnsupportedCodecError
from pipeline_monitoring import (
    CUSTOM_FORMAT_MESSAGE, DEFAULT_FORMAT_MESSAGE, INCREMENTAL_ENABLE_MESSAGE,
    RunMonitor
)
from revision_store import RevisionStore

__version__ = "1.0.0"

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


class CompressionPipeline:
    """Main orchestrator for incremental compression runs"""

    def __init__(self,
                 options: Optional[CompressOptions] = None,
                 logger: Optional[logging.Logger] = None,
                 cache_dir: Optional[PathLike] = None,
                 chunk_size: int = 64 * 1024):
        """
        Args:
            options: Run configuration, defaults to gzip with no filters
            logger: Receives the run's reporting events
            cache_dir: Folder of the revision cache, <cwd>/.precompress by default
            chunk_size: Read size for streaming compression

        Raises:
            UnsupportedCodecError: If the selected codec is unavailable
        """
        self.options = options or CompressOptions()
        self.logger = logger or logging.getLogger(__name__)

        try:
            self.codec = create_codec(self.options)
        except UnsupportedCodecError as e:
            self.logger.error(str(e))
            raise

        self.matcher = PathMatcher.from_options(self.options, self.codec.ext)
        self.resolver = OutputPathResolver()
        self.compressor = StreamingCompressor(self.codec, chunk_size=chunk_size)
        self.processor = ParallelProcessor(self.options.workers)

        self.store = RevisionStore(cache_dir, version=__version__)
        self.cache = RevisionCache(self.store) if self.options.incremental else None
        self.fingerprint = options_fingerprint(self.options)
        self.walker = FileWalker(self.matcher, skip_dirs=[self.store.cache_dir])

    async def run(self, target: PathLike,
                  destination: Optional[PathLike] = None) -> CompressionReport:
        """
        Compress a file or directory tree.

        Args:
            target: File or directory to compress
            destination: Output folder, next to each source when omitted.
                The folder structure below target is mirrored into it.

        Returns:
            CompressionReport with status COMPLETED or NO_FILES

        Raises:
            PathNotFoundError: If target does not exist
            CompressionIOError: If reading, compressing or writing a file fails
        """
        monitor = RunMonitor(verbose=self.options.verbose, event_logger=self.logger)
        try:
            return await self._run(Path(target), destination, monitor)
        except Exception as e:
            monitor.error(e)
            raise

    async def _run(self, target: Path, destination: Optional[PathLike],
                   monitor: RunMonitor) -> CompressionReport:
        self._log_configuration(monitor)

        monitor.stage_start('walking')
        tasks = self.walker.collect(target)
        monitor.update_stage_progress('walking', items=len(tasks))
        monitor.stage_end('walking')

        if not tasks:
            monitor.no_files()
            return CompressionReport(status=RunStatus.NO_FILES,
                                     elapsed_seconds=monitor.elapsed)

        if self.cache is not None:
            self.cache.load()

        out_root = Path(os.path.abspath(destination)) if destination else None

        # Per-file events follow traversal order even when workers finish
        # out of order
        finished: Dict[int, FileResult] = {}
        next_event = 0

        async def handle(item: Tuple[int, FileTask]) -> FileResult:
            nonlocal next_event
            index, task = item
            result = await self._process_file(task, out_root)
            monitor.update_stage_progress('compressing', items=1,
                                          bytes_count=result.before_bytes)
            finished[index] = result
            while next_event in finished:
                monitor.file_compressed(finished.pop(next_event))
                next_event += 1
            return result

        monitor.stage_start('compressing')
        results = await self.processor.process(list(enumerate(tasks)), handle)
        monitor.stage_end('compressing')

        if self.cache is not None:
            monitor.stage_start('finalizing')
            self.cache.flush()
            monitor.stage_end('finalizing')

        report = self._build_report(results, monitor.elapsed)
        monitor.summary(report)
        return report

    async def _process_file(self, task: FileTask,
                            out_root: Optional[Path]) -> FileResult:
        start = time.perf_counter()
        source = task.absolute_path
        output = self.get_output_path(task, out_root)

        checksum = None
        slot = None
        if self.cache is not None:
            slot = file_id(source)
            try:
                checksum = await file_checksum(source)
            except OSError as e:
                raise CompressionIOError(f"I/O error reading {source.name}",
                                         source=source, cause=e) from e

            if self.cache.lookup(slot, checksum, self.fingerprint):
                restored = await self._in_executor(
                    self.store.restore_artifact, slot, self.fingerprint, output)
                if restored is not None:
                    return FileResult(
                        source=source,
                        destination=output,
                        before_bytes=task.size,
                        after_bytes=restored,
                        cached=True,
                        elapsed_seconds=time.perf_counter() - start,
                    )
                logger.debug(f"No stored artifact for {source}, compressing again")

        before, after = await self.compressor.compress_file(source, output)

        if self.cache is not None:
            await self._in_executor(self.store.store_artifact, slot, self.fingerprint, output)
            self.cache.record(slot, checksum, self.fingerprint)

        return FileResult(
            source=source,
            destination=output,
            before_bytes=before,
            after_bytes=after,
            elapsed_seconds=time.perf_counter() - start,
        )

    @staticmethod
    async def _in_executor(func, *args):
        """Run blocking cache file I/O off the event loop"""
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(None, func, *args)
        except OSError as e:
            raise CompressionIOError(f"I/O error in revision cache: {e}", cause=e) from e

    def get_output_path(self, task: FileTask, out_root: Optional[Path]) -> Path:
        """Artifact path for a task, mirroring its folder under out_root"""
        if out_root is None:
            folder = task.absolute_path.parent
        else:
            folder = out_root / task.relative_path.parent
        return self.resolver.resolve(folder, task.absolute_path.name,
                                     self.options.output_file_format, self.codec.ext)

    def _log_configuration(self, monitor: RunMonitor) -> None:
        if self.options.incremental:
            monitor.info(INCREMENTAL_ENABLE_MESSAGE)
        monitor.info(describe(self.codec))
        if self.options.output_file_format is None:
            monitor.info(DEFAULT_FORMAT_MESSAGE.format(DEFAULT_OUTPUT_FILE_FORMAT))
        else:
            monitor.info(CUSTOM_FORMAT_MESSAGE.format(self.options.output_file_format))

    @staticmethod
    def _build_report(results: List[FileResult], elapsed: float) -> CompressionReport:
        return CompressionReport(
            status=RunStatus.COMPLETED,
            compressed_count=len(results),
            cached_count=sum(1 for r in results if r.cached),
            total_before_bytes=sum(r.before_bytes for r in results),
            total_after_bytes=sum(r.after_bytes for r in results),
            elapsed_seconds=elapsed,
            files=results,
        )


def compress(target: PathLike,
             destination: Optional[PathLike] = None,
             options: Optional[CompressOptions] = None,
             **kwargs) -> CompressionReport:
    """Synchronous convenience wrapper around CompressionPipeline.run"""
    pipeline = CompressionPipeline(options, **kwargs)
    return asyncio.run(pipeline.run(target, destination))
