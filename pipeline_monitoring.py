"""
Pipeline Monitoring and Run Reporting
=====================================

Stage timing, resource sampling and the log events a run emits.
"""

import logging
import time
from dataclasses import dataclass
from typing import Dict, List, Optional

import psutil

from base_classes import CompressionReport, FileResult

logger = logging.getLogger(__name__)

NO_FILES_MESSAGE = "No files for compression."
INCREMENTAL_ENABLE_MESSAGE = "Incremental compression has been enabled."
DEFAULT_FORMAT_MESSAGE = "Default output file format: {}"
CUSTOM_FORMAT_MESSAGE = "Output file format: {}"

_SIZE_UNITS = ('B', 'KB', 'MB', 'GB', 'TB')


def format_size(num_bytes: int) -> str:
    """Human readable byte count, e.g. '1.5 KB'"""
    size = float(num_bytes)
    for unit in _SIZE_UNITS:
        if size < 1024 or unit == _SIZE_UNITS[-1]:
            if unit == 'B':
                return f"{int(size)} {unit}"
            return f"{size:.2f} {unit}"
        size /= 1024
    return f"{num_bytes} B"


def format_duration(seconds: float) -> str:
    if seconds < 1:
        return f"{seconds * 1000:.1f}ms"
    if seconds < 60:
        return f"{seconds:.2f}s"
    minutes, seconds = divmod(seconds, 60)
    return f"{int(minutes)}m {seconds:.1f}s"


def _rss() -> int:
    return psutil.Process().memory_info().rss


@dataclass
class StageMetrics:
    """Metrics for a pipeline stage"""
    stage_name: str
    start_time: float
    end_time: Optional[float] = None
    items_processed: int = 0
    bytes_processed: int = 0
    errors: int = 0
    memory_start: int = 0
    memory_end: int = 0

    @property
    def duration(self) -> float:
        if self.end_time:
            return self.end_time - self.start_time
        return time.perf_counter() - self.start_time

    @property
    def throughput_mb_per_sec(self) -> float:
        if self.duration > 0:
            return (self.bytes_processed / 1024 / 1024) / self.duration
        return 0.0


class RunMonitor:
    """
    Collects stage metrics and emits the run's reporting events.

    Per-file events are emitted only in verbose mode. A run ends with
    exactly one of: the no-files warning, the summary, or the error.
    """

    def __init__(self, verbose: bool = False,
                 event_logger: Optional[logging.Logger] = None):
        self.verbose = verbose
        self.log = event_logger or logger
        self.stages: Dict[str, StageMetrics] = {}
        self.run_start = time.perf_counter()
        self._terminal_emitted = False

    def stage_start(self, stage_name: str) -> StageMetrics:
        stage = StageMetrics(
            stage_name=stage_name,
            start_time=time.perf_counter(),
            memory_start=_rss(),
        )
        self.stages[stage_name] = stage
        return stage

    def stage_end(self, stage_name: str) -> Optional[StageMetrics]:
        stage = self.stages.get(stage_name)
        if stage is None:
            return None
        stage.end_time = time.perf_counter()
        stage.memory_end = _rss()
        self.log.debug(
            f"Stage {stage_name}: {stage.items_processed} items, "
            f"{format_size(stage.bytes_processed)} in {format_duration(stage.duration)}, "
            f"rss {format_size(stage.memory_end)}"
        )
        return stage

    def update_stage_progress(self, stage_name: str, items: int = 0,
                              bytes_count: int = 0) -> None:
        stage = self.stages.get(stage_name)
        if stage is not None:
            stage.items_processed += items
            stage.bytes_processed += bytes_count

    @property
    def elapsed(self) -> float:
        return time.perf_counter() - self.run_start

    # Reporting events

    def info(self, message: str) -> None:
        """Start-up information, verbose only"""
        if self.verbose:
            self.log.info(message)

    def file_compressed(self, result: FileResult) -> None:
        if not self.verbose:
            return
        if result.cached:
            self.log.info(f"File {result.source.name} has been retrieved from cache "
                          f"({format_duration(result.elapsed_seconds)})")
            return
        self.log.info(
            f"File {result.source.name} has been compressed "
            f"{format_size(result.before_bytes)} -> {format_size(result.after_bytes)} "
            f"({format_duration(result.elapsed_seconds)})"
        )

    def no_files(self) -> None:
        if not self._claim_terminal():
            return
        self.log.warning(NO_FILES_MESSAGE)

    def summary(self, report: CompressionReport) -> None:
        if not self._claim_terminal():
            return
        count = report.compressed_count
        noun = "file has" if count == 1 else "files have"
        message = f"{count} {noun} been compressed."
        if report.cached_count:
            message += f" {report.cached_count} retrieved from cache."
        message += f" ({format_duration(report.elapsed_seconds)})"
        if self.verbose and report.total_before_bytes:
            message += (f" Total {format_size(report.total_before_bytes)} -> "
                        f"{format_size(report.total_after_bytes)}")
        self.log.info(message)

    def error(self, error: BaseException) -> None:
        if not self._claim_terminal():
            return
        self.log.error(f"Compression failed: {error}", exc_info=error)

    def _claim_terminal(self) -> bool:
        """Only the first terminal event of a run is emitted"""
        if self._terminal_emitted:
            self.log.debug("Terminal event already emitted for this run")
            return False
        self._terminal_emitted = True
        return True

    def get_stage_summary(self) -> List[Dict[str, float]]:
        return [
            {
                'stage': stage.stage_name,
                'duration': stage.duration,
                'items': stage.items_processed,
                'bytes': stage.bytes_processed,
                'throughput_mb_per_sec': stage.throughput_mb_per_sec,
            }
            for stage in self.stages.values()
        ]
