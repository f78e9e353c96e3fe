from __future__ import annotations

import threading
from pathlib import Path
from typing import List, Optional, Set

from .cache import ImageCache
from .report import format_bytes
from .results import ReportItem, RunSummary
from .settings import OptimizeSettings, TransformOptions


class RunContext:
    """
    Everything a run shares between its file tasks.

    Owns the set of files already processed, the per-file report items and
    the three running counters. Counter updates and snapshots go through one
    lock, so progress_text() can be called from anywhere while tasks record.
    """

    def __init__(
        self,
        settings: Optional[OptimizeSettings] = None,
        cache: Optional[ImageCache] = None,
    ) -> None:
        self.settings = settings or OptimizeSettings()
        self.cache = cache if cache is not None else ImageCache(self.settings.cache_dir)

        # Options used for on-disk images: keep the format, never resize.
        self.transform_options = TransformOptions(encode=self.settings.encode)

        self._lock = threading.Lock()
        self._processed: Set[Path] = set()
        self._items: List[ReportItem] = []
        self._files = 0
        self._original_bytes = 0
        self._final_bytes = 0

    @property
    def dry_run(self) -> bool:
        return self.settings.dry_run

    # ----- De-duplication -----

    def is_processed(self, path: Path) -> bool:
        with self._lock:
            return Path(path) in self._processed

    def mark_processed(self, path: Path) -> None:
        with self._lock:
            self._processed.add(Path(path))

    # ----- Aggregation -----

    def record(self, item: ReportItem) -> None:
        with self._lock:
            self._files += 1
            self._original_bytes += item.original_size
            self._final_bytes += item.compressed_size
            self._items.append(item)

    def summary(self) -> RunSummary:
        with self._lock:
            return RunSummary(
                files=self._files,
                original_bytes=self._original_bytes,
                final_bytes=self._final_bytes,
            )

    def items(self) -> List[ReportItem]:
        with self._lock:
            return list(self._items)

    def progress_text(self) -> str:
        s = self.summary()
        gain = s.original_bytes - s.final_bytes
        return (
            f"{s.files} files | {format_bytes(s.original_bytes)} → "
            f"{format_bytes(s.final_bytes)} | -{format_bytes(gain)}"
        )
