"""Tests for per-file dispatch and the size gate."""

import logging
from unittest.mock import patch

import pytest
from PIL import Image

from bao import minify
from bao.engine import UNKNOWN, process_file, resolve_pipeline, size_gate
from bao.results import NO_CHANGE, Improved
from bao.settings import OptimizeSettings
from bao.state import RunContext

from conftest import CSS, HTML, JS, SVG, make_mpo, make_png


class TestSizeGate:
    def test_strictly_smaller_accepted(self):
        assert size_gate(b"abc", 4) == Improved(b"abc")

    def test_equal_size_rejected(self):
        assert size_gate(b"abcd", 4) is NO_CHANGE

    def test_bigger_rejected(self):
        assert size_gate(b"abcde", 4) is NO_CHANGE

    def test_absent_rejected(self):
        assert size_gate(None, 4) is NO_CHANGE


class TestResolvePipeline:
    @pytest.mark.parametrize(
        "name,kind",
        [
            ("a.png", "image"),
            ("a.JPG", "image"),
            ("a.jpeg", "image"),
            ("a.svg", "image"),
            ("a.webp", "image"),
            ("a.avif", "image"),
            ("a.css", "css"),
            ("a.js", "js"),
            ("a.html", "html"),
            ("a.htm", "html"),
        ],
    )
    def test_known_extensions(self, tmp_path, name, kind):
        assert resolve_pipeline(tmp_path / name).kind == kind

    def test_unknown_extension(self, tmp_path):
        assert resolve_pipeline(tmp_path / "a.txt") is UNKNOWN
        assert resolve_pipeline(tmp_path / "Makefile") is UNKNOWN


class TestProcessFile:
    @pytest.mark.asyncio
    async def test_png_rewritten_smaller(self, tmp_path, ctx):
        path = tmp_path / "flat.png"
        path.write_bytes(make_png())
        size = path.stat().st_size

        item = await process_file(path, size, ctx)

        assert item.changed
        assert item.compressed_size == path.stat().st_size < size
        with Image.open(path) as im:
            assert im.format == "PNG"
        assert ctx.is_processed(path)

    @pytest.mark.asyncio
    async def test_css_writes_smallest_candidate(self, tmp_path, ctx):
        path = tmp_path / "site.css"
        path.write_text("x" * 1000, encoding="utf-8")
        minifiers = [("csso", lambda css: "a" * 500), ("lightning", lambda css: "b" * 480)]

        with patch.object(minify, "CSS_MINIFIERS", minifiers):
            item = await process_file(path, 1000, ctx)

        assert path.read_text(encoding="utf-8") == "b" * 480
        assert (item.kind, item.original_size, item.compressed_size) == (".css", 1000, 480)

    @pytest.mark.asyncio
    async def test_css_with_no_candidate_left_alone(self, tmp_path, ctx):
        path = tmp_path / "site.css"
        path.write_text(CSS, encoding="utf-8")
        size = path.stat().st_size

        with patch.object(minify, "CSS_MINIFIERS", [("none", lambda css: None)]):
            item = await process_file(path, size, ctx)

        assert not item.changed
        assert path.read_text(encoding="utf-8") == CSS

    @pytest.mark.asyncio
    async def test_js_minified(self, tmp_path, ctx):
        path = tmp_path / "app.js"
        path.write_text(JS, encoding="utf-8")
        size = path.stat().st_size

        item = await process_file(path, size, ctx)

        assert item.changed
        assert "add two numbers" not in path.read_text(encoding="utf-8")

    @pytest.mark.asyncio
    async def test_html_minified(self, tmp_path, ctx):
        path = tmp_path / "index.html"
        path.write_text(HTML, encoding="utf-8")
        size = path.stat().st_size

        item = await process_file(path, size, ctx)

        assert item.changed
        assert "a comment" not in path.read_text(encoding="utf-8")

    @pytest.mark.asyncio
    async def test_svg_cleaned(self, tmp_path, ctx):
        path = tmp_path / "icon.svg"
        path.write_bytes(SVG)

        item = await process_file(path, len(SVG), ctx)

        assert item.changed
        assert b"viewBox" in path.read_bytes()

    @pytest.mark.asyncio
    async def test_camera_jpeg_with_secondary_image_compressed(self, tmp_path, ctx):
        path = tmp_path / "camera.jpg"
        data = make_mpo()
        path.write_bytes(data)

        item = await process_file(path, len(data), ctx)

        assert item.changed
        with Image.open(path) as im:
            assert im.format == "JPEG"

    @pytest.mark.asyncio
    async def test_symlink_target_rewritten_and_link_kept(self, tmp_path, ctx):
        real = tmp_path / "real.js"
        real.write_text(JS, encoding="utf-8")
        link = tmp_path / "link.js"
        link.symlink_to(real)

        item = await process_file(link, real.stat().st_size, ctx)

        assert item.changed
        assert link.is_symlink()
        assert "add two numbers" not in real.read_text(encoding="utf-8")
        assert real.stat().st_size == item.compressed_size

    @pytest.mark.asyncio
    async def test_unknown_kind_is_a_noop(self, tmp_path, ctx):
        path = tmp_path / "notes.txt"
        path.write_text("hello   world\n", encoding="utf-8")

        item = await process_file(path, 14, ctx)

        assert (item.kind, item.original_size, item.compressed_size) == (".txt", 14, 14)
        assert ctx.summary().files == 1
        assert ctx.is_processed(path)

    @pytest.mark.asyncio
    async def test_never_grows_a_file(self, tmp_path, ctx):
        path = tmp_path / "tiny.js"
        path.write_text("a", encoding="utf-8")

        with patch.object(minify.rjsmin, "jsmin", return_value="a;/* much longer output */"):
            item = await process_file(path, 1, ctx)

        assert not item.changed
        assert path.read_text(encoding="utf-8") == "a"

    @pytest.mark.asyncio
    async def test_no_image_output_leaves_file(self, tmp_path, ctx):
        path = tmp_path / "small.png"
        data = make_png((4, 4), compress_level=9)
        path.write_bytes(data)

        with patch("bao.imaging._encode", return_value=None):
            item = await process_file(path, len(data), ctx)

        assert not item.changed
        assert path.read_bytes() == data

    @pytest.mark.asyncio
    async def test_dry_run_reports_but_does_not_write(self, tmp_path):
        ctx = RunContext(OptimizeSettings(dry_run=True))
        path = tmp_path / "flat.png"
        data = make_png()
        path.write_bytes(data)

        item = await process_file(path, len(data), ctx)

        assert item.compressed_size < item.original_size
        assert ctx.summary().final_bytes < ctx.summary().original_bytes
        assert path.read_bytes() == data


class TestFailures:
    @pytest.mark.asyncio
    async def test_malformed_svg_logged_with_path(self, tmp_path, ctx, caplog):
        path = tmp_path / "broken.svg"
        path.write_bytes(b"<svg><g></svg>")

        item = await process_file(path, 15, ctx)

        assert not item.changed
        assert str(path) in caplog.text
        assert path.read_bytes() == b"<svg><g></svg>"

    @pytest.mark.asyncio
    async def test_transform_error_logged_and_contained(self, tmp_path, ctx, caplog):
        path = tmp_path / "broken.png"
        path.write_bytes(b"not really a png")

        with caplog.at_level(logging.ERROR, logger="bao.engine"):
            item = await process_file(path, 16, ctx)

        assert not item.changed
        assert str(path) in caplog.text
        assert path.read_bytes() == b"not really a png"
        assert ctx.summary().files == 1

    @pytest.mark.asyncio
    async def test_invalid_utf8_is_a_transform_failure(self, tmp_path, ctx, caplog):
        path = tmp_path / "bad.css"
        path.write_bytes(b"body { color: \xff\xfe }")

        item = await process_file(path, 20, ctx)

        assert not item.changed
        assert str(path) in caplog.text

    @pytest.mark.asyncio
    async def test_missing_file_is_contained(self, tmp_path, ctx, caplog):
        path = tmp_path / "gone.js"

        item = await process_file(path, 10, ctx)

        assert not item.changed
        assert str(path) in caplog.text

    @pytest.mark.asyncio
    async def test_failed_write_leaves_file_intact(self, tmp_path, ctx, caplog):
        path = tmp_path / "app.js"
        path.write_text(JS, encoding="utf-8")
        size = path.stat().st_size

        with patch("bao.engine.write_atomic", side_effect=OSError("disk full")):
            item = await process_file(path, size, ctx)

        assert not item.changed
        assert path.read_text(encoding="utf-8") == JS
        assert "disk full" in caplog.text
