from __future__ import annotations

import json
from dataclasses import dataclass, field, fields, is_dataclass, replace
from pathlib import Path
from typing import Literal, Optional, Tuple


# Target formats for an image transform.
# "unchanged" re-encodes in the detected source format.
ToFormat = Literal["unchanged", "webp", "pjpg", "avif"]

TO_FORMATS = ("unchanged", "webp", "pjpg", "avif")


@dataclass(frozen=True)
class PngOptions:
    # Pillow uses "compress_level" (0-9). Higher = smaller but slower.
    compress_level: int = 9
    optimize: bool = True


@dataclass(frozen=True)
class JpegOptions:
    quality: int = 82
    optimize: bool = True
    progressive: bool = False


@dataclass(frozen=True)
class WebpOptions:
    mode: Literal["lossy", "lossless"] = "lossy"
    quality: int = 80
    effort: int = 4  # 0-6, higher = smaller but slower


@dataclass(frozen=True)
class AvifOptions:
    quality: int = 60
    effort: int = 4  # 0-9, mapped onto Pillow's "speed" (10 - effort)


@dataclass(frozen=True)
class EncodeSettings:
    """
    Per-format encoder knobs.

    Everything in here can change the encoded bytes, so all of it is part
    of the image cache key.
    """

    png: PngOptions = field(default_factory=PngOptions)
    jpeg: JpegOptions = field(default_factory=JpegOptions)
    webp_lossy: WebpOptions = field(default_factory=WebpOptions)
    webp_lossless: WebpOptions = field(
        default_factory=lambda: WebpOptions(mode="lossless", quality=100, effort=6)
    )
    avif: AvifOptions = field(default_factory=AvifOptions)

    # Only used when saving to JPEG and the image has alpha.
    jpeg_background: Tuple[int, int, int] = (255, 255, 255)


@dataclass(frozen=True)
class TransformOptions:
    """How a single image transform should run. Equal fields => equal cache key."""

    to_format: ToFormat = "unchanged"
    resize: Optional[Tuple[int, int]] = None  # (width, height), both or neither
    encode: EncodeSettings = field(default_factory=EncodeSettings)

    def __post_init__(self) -> None:
        if self.to_format not in TO_FORMATS:
            raise ValueError(f"Unknown target format: {self.to_format}")
        if self.resize is not None:
            if len(self.resize) != 2:
                raise ValueError("resize needs both width and height")
            w, h = self.resize
            if int(w) <= 0 or int(h) <= 0:
                raise ValueError(f"Invalid resize target: {w}x{h}")
            object.__setattr__(self, "resize", (int(w), int(h)))


@dataclass(frozen=True)
class OptimizeSettings:
    """
    All user-configurable knobs for a run.

    We keep this as a pure data object (no logic) so:
    - it's easy to test
    - easy to save/load (JSON)
    """

    # ----- Output handling -----
    dry_run: bool = False  # evaluate and report, never write

    # ----- Images -----
    compress_images: bool = True
    encode: EncodeSettings = field(default_factory=EncodeSettings)

    # Disk-backed image cache. None keeps the cache in memory for the run.
    cache_dir: Optional[Path] = None

    # ----- Scheduling -----
    # None means one task per file, all in flight at once.
    concurrency: Optional[int] = None

    # ----- Discovery -----
    exclude: Tuple[str, ...] = ()

    def __post_init__(self) -> None:
        c = self.concurrency
        if c is not None and (isinstance(c, bool) or not isinstance(c, int) or c < 1):
            raise ValueError(f"concurrency must be a positive integer or null, got {c!r}")


def load_settings(path: Path, base: Optional[OptimizeSettings] = None) -> OptimizeSettings:
    """
    Load settings from a JSON file.

    Top-level keys mirror OptimizeSettings fields; "encode" holds nested
    sections (png, jpeg, webp_lossy, webp_lossless, avif). Missing keys keep
    their defaults, unknown keys are rejected.
    """
    path = Path(path)
    with path.open("r", encoding="utf-8") as f:
        data = json.load(f)

    if not isinstance(data, dict):
        raise ValueError(f"{path}: expected a JSON object at the top level")

    return _merge(base or OptimizeSettings(), data, where=str(path))


def _merge(obj, data: dict, where: str):
    known = {f.name: f for f in fields(obj)}
    changes = {}

    for key, value in data.items():
        if key not in known:
            raise ValueError(f"{where}: unknown setting '{key}'")

        current = getattr(obj, key)
        if is_dataclass(current):
            if not isinstance(value, dict):
                raise ValueError(f"{where}: '{key}' must be an object")
            changes[key] = _merge(current, value, where=f"{where}:{key}")
        elif key == "cache_dir":
            changes[key] = Path(value) if value else None
        elif key in ("exclude", "jpeg_background"):
            changes[key] = tuple(value)
        else:
            changes[key] = value

    return replace(obj, **changes)
