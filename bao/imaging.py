from __future__ import annotations

import asyncio
import io
import logging
from pathlib import Path
from typing import Optional, Tuple

from PIL import Image, ImageOps
from scour import scour

from .cache import ImageCache, compute_cache_key
from .results import CompressedImage
from .settings import EncodeSettings, TransformOptions, WebpOptions


logger = logging.getLogger(__name__)

# Upper bound on SVG cleanup passes.
SVG_MAX_PASSES = 10

# Target-format AVIF always runs at this effort.
AVIF_TARGET_EFFORT = 6

# Maps the Pillow-detected source format to our output format for "unchanged".
SAME_FORMAT = {
    "PNG": "png",
    "JPEG": "jpg",
    "MPO": "jpg",  # JPEG with a secondary (e.g. depth or preview) image
    "WEBP": "webp",
    "AVIF": "avif",
}

# Output format -> Pillow encoder name.
PIL_FORMAT = {
    "png": "PNG",
    "jpg": "JPEG",
    "webp": "WEBP",
    "avif": "AVIF",
}


async def compress_image(
    data: bytes,
    options: Optional[TransformOptions] = None,
    *,
    cache: ImageCache,
    enabled: bool = True,
    source: Optional[Path] = None,
) -> Optional[CompressedImage]:
    """
    Re-encode an image, returning None when no output can be produced.

    The cache is consulted before anything else, including the enabled
    switch, so a cached result is served even with image compression off.
    SVG input is cleaned with scour and never enters the cache. source only
    names the file in log messages and marks ".svg" files as SVG.
    """
    options = options or TransformOptions()

    key = compute_cache_key(data, options)
    cached = await cache.get(key)
    if cached is not None:
        return cached

    if not enabled:
        return None

    if _is_svg(data, source):
        return await asyncio.to_thread(_clean_svg, data, source)

    image = await asyncio.to_thread(_encode, data, options)
    if image is None:
        return None

    await cache.put(key, image)
    return image


def _encode(data: bytes, options: TransformOptions) -> Optional[CompressedImage]:
    with Image.open(io.BytesIO(data)) as im:
        # MPO is a still JPEG carrying extra images; only frame 0 is used.
        if im.format != "MPO" and getattr(im, "n_frames", 1) > 1:
            # Animated images are not supported.
            return None

        src_format = im.format
        plan = _choose_output(src_format, options)
        if plan is None:
            return None

        out_format, save_kwargs = plan

        im.load()
        icc = im.info.get("icc_profile")

        # Pixel data is stored unrotated once EXIF is dropped, so apply it first.
        im = ImageOps.exif_transpose(im)
        im = _apply_resize(im, options.resize)

        if out_format == "jpg":
            im = _prepare_for_jpeg(im, options.encode.jpeg_background)

        if icc is not None:
            save_kwargs["icc_profile"] = icc

        buf = io.BytesIO()
        # Important: Pillow chooses encoder by format=..., there is no file name
        im.save(buf, format=PIL_FORMAT[out_format], **save_kwargs)

    return CompressedImage(format=out_format, data=buf.getvalue())


def _choose_output(src_format: Optional[str], options: TransformOptions) -> Optional[Tuple[str, dict]]:
    """Pick the output format and encoder kwargs, or None if there is none."""
    enc = options.encode

    if options.to_format == "unchanged":
        out_format = SAME_FORMAT.get(src_format or "")
        if out_format is None:
            return None
        if out_format == "png":
            return out_format, _png_kwargs(enc)
        if out_format == "jpg":
            return out_format, _jpeg_kwargs(enc, progressive=enc.jpeg.progressive)
        if out_format == "webp":
            return out_format, _webp_kwargs(enc.webp_lossy)
        return out_format, _avif_kwargs(enc.avif.quality, enc.avif.effort)

    if options.to_format == "pjpg":
        return "jpg", _jpeg_kwargs(enc, progressive=True)

    if options.to_format == "webp":
        # Lossless only pays off for sources that were lossless to begin with.
        webp = enc.webp_lossless if src_format == "PNG" else enc.webp_lossy
        return "webp", _webp_kwargs(webp)

    return "avif", _avif_kwargs(enc.avif.quality, AVIF_TARGET_EFFORT)


def _png_kwargs(enc: EncodeSettings) -> dict:
    return {
        "compress_level": int(enc.png.compress_level),
        "optimize": bool(enc.png.optimize),
    }


def _jpeg_kwargs(enc: EncodeSettings, progressive: bool) -> dict:
    return {
        "quality": int(enc.jpeg.quality),
        "optimize": bool(enc.jpeg.optimize),
        "progressive": bool(progressive),
    }


def _webp_kwargs(opt: WebpOptions) -> dict:
    return {
        "lossless": opt.mode == "lossless",
        "quality": int(opt.quality),
        "method": int(opt.effort),
    }


def _avif_kwargs(quality: int, effort: int) -> dict:
    # Pillow's speed runs the other way round: 0 is slowest/smallest.
    return {
        "quality": int(quality),
        "speed": max(0, min(10, 10 - int(effort))),
    }


def _apply_resize(im: Image.Image, resize: Optional[Tuple[int, int]]) -> Image.Image:
    """
    Stretch to exactly (width, height), ignoring aspect ratio.

    Never upscale: if the target is larger than the source in either
    dimension the image is left as is.
    """
    if resize is None:
        return im

    w, h = im.size
    new_w, new_h = resize

    if new_w > w or new_h > h:
        return im

    if (new_w, new_h) == (w, h):
        return im

    return im.resize((new_w, new_h), Image.Resampling.LANCZOS)


def _prepare_for_jpeg(im: Image.Image, background_rgb: Tuple[int, int, int]) -> Image.Image:
    if _has_alpha(im):
        return _flatten_alpha(im, background_rgb)
    if im.mode not in ("RGB", "L", "CMYK"):
        return im.convert("RGB")
    return im


def _flatten_alpha(im: Image.Image, background_rgb: Tuple[int, int, int]) -> Image.Image:
    # Ensure we are in RGBA so alpha exists
    rgba = im.convert("RGBA")
    bg = Image.new("RGBA", rgba.size, tuple(background_rgb) + (255,))
    comp = Image.alpha_composite(bg, rgba)
    return comp.convert("RGB")


def _has_alpha(im: Image.Image) -> bool:
    if im.mode in ("RGBA", "LA", "PA"):
        return True
    if im.mode == "P" and "transparency" in im.info:
        return True
    return False


def _is_svg(data: bytes, source: Optional[Path] = None) -> bool:
    if source is not None and Path(source).suffix.lower() == ".svg":
        return True
    return _looks_like_svg(data)


def _looks_like_svg(data: bytes) -> bool:
    # Bitmap formats never start with "<", so the whole document can be searched.
    text = data.lstrip()
    if text.startswith(b"\xef\xbb\xbf"):
        text = text[3:].lstrip()
    return text.startswith(b"<") and b"<svg" in text


def _scour_options():
    opts = scour.sanitizeOptions()
    opts.strip_comments = True
    opts.remove_metadata = True
    opts.enable_viewboxing = False  # keep viewBox as authored
    opts.newlines = False
    opts.indent_type = "none"
    return opts


def _clean_svg(data: bytes, source: Optional[Path] = None) -> Optional[CompressedImage]:
    try:
        text = data.decode("utf-8")
        opts = _scour_options()

        # multipass: rerun until the output stops shrinking
        for _ in range(SVG_MAX_PASSES):
            cleaned = scour.scourString(text, opts)
            if len(cleaned) >= len(text):
                break
            text = cleaned
    except Exception as e:
        name = source if source is not None else f"({len(data)} bytes)"
        logger.error(f"Error processing svg {name}: {e}")
        return None

    return CompressedImage(format="svg", data=text.encode("utf-8"))
