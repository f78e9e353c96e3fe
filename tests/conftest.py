"""Shared fixtures: small generated assets on disk and in memory."""

import io
from pathlib import Path

import pytest
from PIL import Image

from bao.cache import ImageCache
from bao.settings import OptimizeSettings
from bao.state import RunContext


def make_png(size=(100, 100), color=(200, 30, 30), compress_level=0) -> bytes:
    """Flat-colour RGB PNG. compress_level=0 keeps it large and easy to shrink."""
    buf = io.BytesIO()
    Image.new("RGB", size, color).save(buf, format="PNG", compress_level=compress_level)
    return buf.getvalue()


def make_jpeg(size=(64, 64), color=(20, 120, 220), quality=100) -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", size, color).save(buf, format="JPEG", quality=quality)
    return buf.getvalue()


def make_animated(fmt: str = "GIF") -> bytes:
    """Three distinct RGB frames, so no encoder can merge them into one."""
    frames = [Image.new("RGB", (16, 16), color) for color in ((255, 0, 0), (0, 255, 0), (0, 0, 255))]
    buf = io.BytesIO()
    frames[0].save(buf, format=fmt, save_all=True, append_images=frames[1:], duration=100, loop=0)
    data = buf.getvalue()

    with Image.open(io.BytesIO(data)) as im:
        assert im.n_frames > 1
    return data


def make_mpo(size=(64, 64), quality=100) -> bytes:
    """A camera-style JPEG carrying a second image (opens as MPO with 2 frames)."""
    first = Image.new("RGB", size, (200, 40, 40))
    second = Image.new("RGB", size, (40, 200, 40))
    buf = io.BytesIO()
    first.save(buf, format="MPO", save_all=True, append_images=[second], quality=quality)
    return buf.getvalue()


SVG = b"""<?xml version="1.0" encoding="UTF-8"?>
<!-- drawn by hand -->
<svg xmlns="http://www.w3.org/2000/svg" width="100" height="100" viewBox="0 0 100 100">
    <metadata>nothing to see</metadata>
    <g>
        <rect x="10" y="10" width="80" height="80" fill="#ff0000"/>
    </g>
</svg>
"""

CSS = """/* main stylesheet */
body {
    margin : 0px ;
    padding : 0px ;
    color : #ffffff ;
}

.button   {
    background-color : #336699 ;
}
"""

JS = """// add two numbers
function add ( a , b ) {
    return a + b ;
}
"""

HTML = """<!DOCTYPE html>
<html>
  <head>
    <title>  Hello  </title>
    <style>
      body { margin : 0px ; }
    </style>
  </head>
  <body>
    <!-- a comment -->
    <p>   Hello   world   </p>
    <script>
      var  total  =  1 + 2 ;
    </script>
  </body>
</html>
"""


@pytest.fixture
def png_bytes() -> bytes:
    return make_png()


@pytest.fixture
def cache() -> ImageCache:
    return ImageCache()


@pytest.fixture
def ctx() -> RunContext:
    return RunContext(OptimizeSettings())


@pytest.fixture
def asset_tree(tmp_path: Path) -> Path:
    """A folder with one asset of each kind plus a file nothing handles."""
    root = tmp_path / "site"
    (root / "img").mkdir(parents=True)
    (root / "css").mkdir()
    (root / "js").mkdir()

    (root / "img" / "logo.png").write_bytes(make_png())
    (root / "img" / "icon.svg").write_bytes(SVG)
    (root / "css" / "site.css").write_text(CSS, encoding="utf-8")
    (root / "js" / "app.js").write_text(JS, encoding="utf-8")
    (root / "index.html").write_text(HTML, encoding="utf-8")
    (root / "notes.txt").write_text("leave me alone\n", encoding="utf-8")
    return root
