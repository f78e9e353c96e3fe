from __future__ import annotations

import hashlib
import json
import logging
from dataclasses import asdict
from pathlib import Path
from typing import Dict, Optional

import aiofiles.os

from .fileio import read_bytes, write_atomic
from .results import CompressedImage
from .settings import TransformOptions


logger = logging.getLogger(__name__)

# Formats an image transform can produce (SVG results are never cached).
CACHED_FORMATS = ("png", "jpg", "webp", "avif")


def compute_cache_key(data: bytes, options: TransformOptions) -> str:
    """
    Digest over the input bytes and every option field that can change the output.

    The content goes in first and the options are serialized with sorted keys,
    so equal option values always produce the same key.
    """
    h = hashlib.sha256()
    h.update(data)
    h.update(b"\0")
    h.update(json.dumps(asdict(options), sort_keys=True, separators=(",", ":")).encode("utf-8"))
    return h.hexdigest()


class ImageCache:
    """
    Content-addressable store for image transform results.

    Entries live in memory for the run and are never evicted. With a
    store_dir, entries are also written to disk as <key[:2]>/<key>.<format>
    and read back on a memory miss, which carries them across runs.

    Two tasks computing the same key at once both store an equal value; the
    last put wins.
    """

    def __init__(self, store_dir: Optional[Path] = None) -> None:
        self.store_dir = Path(store_dir) if store_dir else None
        self._entries: Dict[str, CompressedImage] = {}
        self.hits = 0
        self.misses = 0

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    async def get(self, key: str) -> Optional[CompressedImage]:
        image = self._entries.get(key)

        if image is None and self.store_dir is not None:
            image = await self._load(key)
            if image is not None:
                self._entries[key] = image

        if image is None:
            self.misses += 1
            return None

        self.hits += 1
        return image

    async def put(self, key: str, image: CompressedImage) -> None:
        if image.format not in CACHED_FORMATS:
            raise ValueError(f"Cannot cache format: {image.format}")

        self._entries[key] = image

        if self.store_dir is not None:
            path = self._entry_path(key, image.format)
            try:
                path.parent.mkdir(parents=True, exist_ok=True)
                await write_atomic(path, image.data)
            except OSError as e:
                logger.warning(f"Could not persist cache entry {path}: {e}")

    def _entry_path(self, key: str, fmt: str) -> Path:
        return self.store_dir / key[:2] / f"{key}.{fmt}"

    async def _load(self, key: str) -> Optional[CompressedImage]:
        for fmt in CACHED_FORMATS:
            path = self._entry_path(key, fmt)
            if not await aiofiles.os.path.exists(path):
                continue
            try:
                return CompressedImage(format=fmt, data=await read_bytes(path))
            except OSError as e:
                logger.warning(f"Unreadable cache entry {path}: {e}")
                return None
        return None
