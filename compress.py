#!/usr/bin/env python3
"""
Command line entry point for the incremental compression pipeline.
"""

import argparse
import asyncio
import json
import logging
import sys
from typing import List, Optional

from compression_pipeline import CompressionPipeline, __version__
from pipeline_configs import CompressOptions, list_from_csv
from pipeline_errors import PipelineError
from revision_store import RevisionStore

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='precompress',
        description="Compress files in a directory tree, skipping unchanged files",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  precompress dist                          # gzip every file next to itself
  precompress dist out --brotli             # brotli artifacts mirrored into ./out
  precompress dist --incremental --verbose  # only recompress changed files
  precompress dist --include css,js --threshold 860
  precompress --reset-cache                 # drop the revision cache

Every option can be overridden with a PRECOMPRESS_<OPTION> environment
variable, e.g. PRECOMPRESS_LEVEL=9 or PRECOMPRESS_EXCLUDE=png,jpg.
        """
    )

    parser.add_argument('target', nargs='?',
                        help='File or directory to compress')
    parser.add_argument('destination', nargs='?',
                        help='Output directory (default: next to each source file)')

    # Codec selection
    parser.add_argument('--brotli', action='store_true',
                        help='Use brotli compression')
    parser.add_argument('--deflate', action='store_true',
                        help='Use deflate compression')

    # zlib parameters
    parser.add_argument('--level', type=int,
                        help='Compression level, -1 to 9')
    parser.add_argument('--memory-level', type=int, dest='memory_level',
                        help='Memory level, 1 to 9')
    parser.add_argument('--strategy', type=int,
                        help='Compression strategy, 0 to 4')

    # Brotli parameters
    parser.add_argument('--brotli-param-mode', dest='brotli_param_mode',
                        choices=['default', 'text', 'font'],
                        help='Brotli compression mode')
    parser.add_argument('--brotli-quality', type=int, dest='brotli_quality',
                        help='Brotli quality, 0 to 11')
    parser.add_argument('--brotli-size-hint', type=int, dest='brotli_size_hint',
                        help='Expected input size for brotli')

    # Selection
    parser.add_argument('--include', type=list_from_csv,
                        help='Comma separated extensions to compress')
    parser.add_argument('--exclude', type=list_from_csv,
                        help='Comma separated extensions to skip')
    parser.add_argument('--threshold', type=int,
                        help='Skip files smaller than this many bytes')

    # Output and run
    parser.add_argument('--output-file-format', dest='output_file_format',
                        help='Artifact name template, e.g. [filename].[ext].[compressExt]')
    parser.add_argument('--incremental', action='store_true',
                        help='Skip files unchanged since the previous run')
    parser.add_argument('--workers', type=int,
                        help='Number of files compressed concurrently')
    parser.add_argument('--verbose', action='store_true',
                        help='Log every file')

    # Cache maintenance
    parser.add_argument('--reset-cache', action='store_true',
                        help='Delete the revision cache and exit')
    parser.add_argument('--cache-stats', action='store_true',
                        help='Print revision cache statistics and exit')
    parser.add_argument('--version', action='version', version=f'%(prog)s {__version__}')

    return parser


def options_from_args(args: argparse.Namespace) -> CompressOptions:
    """Only flags given on the command line replace defaults"""
    values = {}
    for name in ('brotli', 'deflate', 'incremental', 'verbose'):
        if getattr(args, name):
            values[name] = True
    for name in ('level', 'memory_level', 'strategy', 'brotli_param_mode',
                 'brotli_quality', 'brotli_size_hint', 'threshold',
                 'output_file_format', 'workers'):
        value = getattr(args, name)
        if value is not None:
            values[name] = value
    for name in ('include', 'exclude'):
        value = getattr(args, name)
        if value:
            values[name] = tuple(value)
    return CompressOptions.from_env(CompressOptions(**values))


def configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.INFO if verbose else logging.WARNING,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    # Summary is always shown
    logging.getLogger('precompress').setLevel(logging.INFO)


async def run(args: argparse.Namespace, options: CompressOptions) -> int:
    pipeline = CompressionPipeline(options, logger=logging.getLogger('precompress'))
    await pipeline.run(args.target, args.destination)
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        options = options_from_args(args)
    except ValueError as e:
        parser.error(str(e))

    configure_logging(options.verbose)

    store = RevisionStore(version=__version__)
    if args.reset_cache:
        if store.purge():
            print(f"Cache cleared: {store.cache_dir}")
        else:
            print("No cache to clear")
        return 0
    if args.cache_stats:
        print(json.dumps(store.get_cache_stats(), indent=2))
        return 0

    if not args.target:
        parser.error("the following arguments are required: target")

    try:
        return asyncio.run(run(args, options))
    except KeyboardInterrupt:
        print("\n\nInterrupted by user")
        return 1
    except (PipelineError, OSError):
        # Already reported by the pipeline
        return 1


if __name__ == "__main__":
    sys.exit(main())
