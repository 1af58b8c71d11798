"""
Integration tests for the compression pipeline
==============================================

End-to-end runs over real directory trees covering:
- Incremental idempotence and change detection
- Option sensitivity of the revision cache
- Filtering, destinations and name templates
- Fail-fast error handling
"""

import asyncio
import gzip
import shutil
import zlib
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import brotli
import pytest

from base_classes import RunStatus
from compression_pipeline import CompressionPipeline, compress
from pipeline_configs import CompressOptions
from pipeline_errors import CompressionIOError, PathNotFoundError
from pipeline_monitoring import NO_FILES_MESSAGE
from revision_store import ARTIFACTS_FOLDER, CACHE_FILE


FILES = {
    "index.html": "<html><body>" + "hello " * 500 + "</body></html>",
    "css/site.css": "body { margin: 0; }\n" * 200,
    "js/app.js": "console.log('app');\n" * 300,
    "img/logo.png": "not-really-a-png" * 10,
}


@pytest.fixture
def site(tmp_path):
    root = tmp_path / "site"
    for relative, content in FILES.items():
        path = root / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content)
    return root


@pytest.fixture
def cache_dir(tmp_path):
    return tmp_path / ".precompress"


def make_pipeline(cache_dir, **kwargs):
    return CompressionPipeline(CompressOptions(**kwargs), logger=MagicMock(),
                               cache_dir=cache_dir)


class TestBasicRuns:
    """Test plain compression runs"""

    @pytest.mark.asyncio
    async def test_artifacts_next_to_sources(self, site, cache_dir):
        report = await make_pipeline(cache_dir).run(site)

        assert report.status is RunStatus.COMPLETED
        assert report.compressed_count == len(FILES)
        assert report.cached_count == 0
        for relative, content in FILES.items():
            artifact = site / f"{relative}.gz"
            assert gzip.decompress(artifact.read_bytes()).decode() == content

    @pytest.mark.asyncio
    async def test_artifacts_are_not_recompressed(self, site, cache_dir):
        """A second plain run skips the .gz files made by the first"""
        await make_pipeline(cache_dir).run(site)
        report = await make_pipeline(cache_dir).run(site)

        assert report.compressed_count == len(FILES)
        assert not list(site.rglob("*.gz.gz"))

    @pytest.mark.asyncio
    async def test_deflate_and_brotli(self, site, cache_dir):
        await make_pipeline(cache_dir, deflate=True).run(site)
        await make_pipeline(cache_dir, brotli=True, brotli_quality=4).run(site)

        content = FILES["index.html"].encode()
        assert zlib.decompress((site / "index.html.zz").read_bytes()) == content
        assert brotli.decompress((site / "index.html.br").read_bytes()) == content

    @pytest.mark.asyncio
    async def test_destination_mirrors_structure(self, site, tmp_path, cache_dir):
        out = tmp_path / "out"
        report = await make_pipeline(cache_dir).run(site, out)

        assert report.compressed_count == len(FILES)
        for relative in FILES:
            assert (out / f"{relative}.gz").exists()
        assert not list(site.rglob("*.gz"))

    @pytest.mark.asyncio
    async def test_single_file_target(self, site, tmp_path, cache_dir):
        out = tmp_path / "out"
        report = await make_pipeline(cache_dir).run(site / "js" / "app.js", out)

        assert report.compressed_count == 1
        assert (out / "app.js.gz").exists()

    @pytest.mark.asyncio
    async def test_output_template(self, site, cache_dir):
        await make_pipeline(cache_dir, output_file_format="[filename].[compressExt].[ext]").run(site)
        assert (site / "index.gz.html").exists()
        assert (site / "css" / "site.gz.css").exists()

    @pytest.mark.asyncio
    async def test_parallel_workers(self, site, cache_dir):
        report = await make_pipeline(cache_dir, workers=4).run(site)

        assert report.compressed_count == len(FILES)
        assert [r.source.name for r in report.files] == ["site.css", "logo.png",
                                                         "index.html", "app.js"]

    @pytest.mark.asyncio
    async def test_parallel_file_events_in_traversal_order(self, site, cache_dir):
        """Verbose per-file events follow the walk even when workers finish out of order"""
        pipeline = make_pipeline(cache_dir, workers=4, verbose=True)
        original = pipeline.compressor.compress_file
        delays = {"site.css": 0.08, "logo.png": 0.06, "index.html": 0.04, "app.js": 0.0}

        async def slow_first(source, destination):
            await asyncio.sleep(delays[Path(source).name])
            return await original(source, destination)

        pipeline.compressor.compress_file = slow_first
        await pipeline.run(site)

        messages = [c.args[0] for c in pipeline.logger.info.call_args_list]
        names = [m.split()[1] for m in messages if "has been compressed" in m and m.startswith("File ")]
        assert names == ["site.css", "logo.png", "index.html", "app.js"]

    def test_sync_wrapper(self, site, cache_dir):
        report = compress(site, options=CompressOptions(level=9),
                          logger=MagicMock(), cache_dir=cache_dir)
        assert report.compressed_count == len(FILES)


class TestSelection:
    """Test filtering"""

    @pytest.mark.asyncio
    async def test_exclude(self, site, cache_dir):
        report = await make_pipeline(cache_dir, exclude=("png",)).run(site)

        assert report.compressed_count == len(FILES) - 1
        assert not (site / "img" / "logo.png.gz").exists()

    @pytest.mark.asyncio
    async def test_include_wins(self, site, cache_dir):
        report = await make_pipeline(cache_dir, include=("css",), exclude=("css",)).run(site)

        assert report.compressed_count == 1
        assert (site / "css" / "site.css.gz").exists()

    @pytest.mark.asyncio
    async def test_threshold(self, site, cache_dir):
        report = await make_pipeline(cache_dir, threshold=1000).run(site)

        compressed = {r.source.name for r in report.files}
        assert "logo.png" not in compressed
        assert "index.html" in compressed

    @pytest.mark.asyncio
    async def test_empty_directory(self, tmp_path, cache_dir):
        empty = tmp_path / "empty"
        empty.mkdir()
        pipeline = make_pipeline(cache_dir)

        report = await pipeline.run(empty)

        assert report.status is RunStatus.NO_FILES
        assert report.compressed_count == 0
        pipeline.logger.warning.assert_called_once_with(NO_FILES_MESSAGE)
        pipeline.logger.info.assert_not_called()

    @pytest.mark.asyncio
    async def test_missing_path(self, tmp_path, cache_dir):
        pipeline = make_pipeline(cache_dir)

        with pytest.raises(PathNotFoundError, match="Can't find a path"):
            await pipeline.run(tmp_path / "missing")

        pipeline.logger.error.assert_called_once()
        assert not cache_dir.exists()


class TestIncremental:
    """Test the revision cache across runs"""

    @pytest.mark.asyncio
    async def test_second_run_uses_cache(self, site, cache_dir):
        first = await make_pipeline(cache_dir, incremental=True).run(site)
        cache_before = (cache_dir / CACHE_FILE).read_text()
        mtimes = {p: p.stat().st_mtime_ns for p in site.rglob("*.gz")}

        second = await make_pipeline(cache_dir, incremental=True).run(site)

        assert first.cached_count == 0
        assert second.cached_count == len(FILES)
        assert second.fresh_count == 0
        assert (cache_dir / CACHE_FILE).read_text() == cache_before
        assert {p: p.stat().st_mtime_ns for p in site.rglob("*.gz")} == mtimes

    @pytest.mark.asyncio
    async def test_changed_file_recompressed(self, site, cache_dir):
        await make_pipeline(cache_dir, incremental=True).run(site)
        (site / "js" / "app.js").write_text("console.log('changed');\n" * 300)

        report = await make_pipeline(cache_dir, incremental=True).run(site)

        fresh = [r.source.name for r in report.files if not r.cached]
        assert fresh == ["app.js"]
        assert gzip.decompress((site / "js" / "app.js.gz").read_bytes()).startswith(
            b"console.log('changed')")

    @pytest.mark.asyncio
    async def test_new_options_recompress_everything(self, site, cache_dir):
        await make_pipeline(cache_dir, incremental=True, level=1).run(site)
        level_one = (site / "index.html.gz").read_bytes()
        report = await make_pipeline(cache_dir, incremental=True, level=9).run(site)
        assert report.cached_count == 0
        assert (site / "index.html.gz").read_bytes() != level_one

        # Both option sets are remembered and the level 1 artifact comes back
        back = await make_pipeline(cache_dir, incremental=True, level=1).run(site)
        assert back.cached_count == len(FILES)
        assert (site / "index.html.gz").read_bytes() == level_one

    @pytest.mark.asyncio
    async def test_deleted_artifacts_restored_from_cache(self, site, cache_dir):
        """Artifacts removed between runs are put back without compressing"""
        await make_pipeline(cache_dir, incremental=True).run(site)
        expected = {p: p.read_bytes() for p in site.rglob("*.gz")}
        for artifact in expected:
            artifact.unlink()

        pipeline = make_pipeline(cache_dir, incremental=True)
        pipeline.compressor.compress_file = AsyncMock()
        report = await pipeline.run(site)

        assert report.cached_count == len(FILES)
        pipeline.compressor.compress_file.assert_not_called()
        assert {p: p.read_bytes() for p in site.rglob("*.gz")} == expected
        assert all(r.after_bytes > 0 for r in report.files)

    @pytest.mark.asyncio
    async def test_new_destination_served_from_cache(self, site, tmp_path, cache_dir):
        await make_pipeline(cache_dir, incremental=True).run(site)

        out = tmp_path / "out"
        report = await make_pipeline(cache_dir, incremental=True).run(site, out)

        assert report.cached_count == len(FILES)
        for relative, content in FILES.items():
            assert gzip.decompress((out / f"{relative}.gz").read_bytes()).decode() == content

    @pytest.mark.asyncio
    async def test_hash_template_served_from_cache(self, site, cache_dir):
        template = "[filename]-[hash].[ext].[compressExt]"
        await make_pipeline(cache_dir, incremental=True, output_file_format=template).run(site)
        report = await make_pipeline(cache_dir, incremental=True,
                                     output_file_format=template).run(site)

        assert report.cached_count == len(FILES)
        assert all(r.destination.exists() for r in report.files)
        assert len(list(site.glob("index-*.html.gz"))) == 2

    @pytest.mark.asyncio
    async def test_missing_stored_artifact_recompressed(self, site, cache_dir):
        pipeline = make_pipeline(cache_dir, incremental=True)
        await pipeline.run(site)
        shutil.rmtree(cache_dir / ARTIFACTS_FOLDER)
        (site / "index.html.gz").unlink()

        report = await make_pipeline(cache_dir, incremental=True).run(site)

        assert report.cached_count == 0
        assert gzip.decompress((site / "index.html.gz").read_bytes()).decode() == FILES["index.html"]

    @pytest.mark.asyncio
    async def test_naming_options_keep_cache(self, site, cache_dir):
        await make_pipeline(cache_dir, incremental=True).run(site)
        report = await make_pipeline(cache_dir, incremental=True, verbose=True,
                                     workers=2).run(site)
        assert report.cached_count == len(FILES)

    @pytest.mark.asyncio
    async def test_corrupted_cache_recovers(self, site, cache_dir):
        cache_dir.mkdir()
        (cache_dir / CACHE_FILE).write_text("{ broken")

        report = await make_pipeline(cache_dir, incremental=True).run(site)

        assert report.compressed_count == len(FILES)
        assert report.cached_count == 0
        assert (cache_dir / CACHE_FILE).exists()
        assert list(cache_dir.glob(f"{CACHE_FILE}.corrupted.*"))

    @pytest.mark.asyncio
    async def test_plain_run_writes_no_cache(self, site, cache_dir):
        await make_pipeline(cache_dir).run(site)
        assert not cache_dir.exists()

    @pytest.mark.asyncio
    async def test_cache_folder_inside_target_is_skipped(self, site):
        cache_dir = site / ".precompress"
        await make_pipeline(cache_dir, incremental=True).run(site)
        report = await make_pipeline(cache_dir, incremental=True).run(site)

        assert report.compressed_count == len(FILES)
        assert not (cache_dir / f"{CACHE_FILE}.gz").exists()


class TestFailures:
    """Test fail-fast behaviour"""

    @pytest.mark.asyncio
    async def test_failure_after_earlier_files_succeeded(self, tmp_path, cache_dir):
        """Files before the failing one keep their artifacts, later ones are never written"""
        root = tmp_path / "bundle"
        root.mkdir()
        for name in ("a.js", "b.js", "c.js", "d.js", "e.js"):
            (root / name).write_text(f"// {name}\n" * 100)

        pipeline = make_pipeline(cache_dir, incremental=True)
        original = pipeline.compressor.compress_file

        async def fail_on_third(source, destination):
            if Path(source).name == "c.js":
                raise CompressionIOError("I/O error writing", source=source)
            return await original(source, destination)

        pipeline.compressor.compress_file = fail_on_third

        with pytest.raises(CompressionIOError):
            await pipeline.run(root)

        assert sorted(p.name for p in root.glob("*.gz")) == ["a.js.gz", "b.js.gz"]
        pipeline.logger.error.assert_called_once()
        pipeline.logger.info.assert_not_called()
        assert not (cache_dir / CACHE_FILE).exists()

    @pytest.mark.asyncio
    async def test_compression_error_aborts_run(self, site, cache_dir):
        pipeline = make_pipeline(cache_dir, incremental=True)
        error = CompressionIOError("I/O error writing", source=site / "index.html")
        pipeline.compressor.compress_file = AsyncMock(side_effect=error)

        with pytest.raises(CompressionIOError):
            await pipeline.run(site)

        pipeline.logger.error.assert_called_once()
        pipeline.logger.info.assert_not_called()
        assert not (cache_dir / CACHE_FILE).exists()

    @pytest.mark.asyncio
    async def test_error_in_parallel_run(self, site, cache_dir):
        pipeline = make_pipeline(cache_dir, workers=3)
        original = pipeline.compressor.compress_file

        async def flaky(source, destination):
            if Path(source).name == "site.css":
                raise CompressionIOError("I/O error writing", source=source)
            return await original(source, destination)

        pipeline.compressor.compress_file = flaky

        with pytest.raises(CompressionIOError):
            await pipeline.run(site)
        pipeline.logger.error.assert_called_once()
