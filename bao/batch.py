from __future__ import annotations

import asyncio
import logging
from fnmatch import fnmatch
from pathlib import Path
from typing import Callable, Iterable, Iterator, Optional, Sequence

from .engine import process_file
from .fileio import file_size
from .results import RunSummary
from .settings import OptimizeSettings
from .state import RunContext


logger = logging.getLogger(__name__)

ProgressCallback = Callable[[str], None]


def _is_excluded(rel: str, exclude: Sequence[str]) -> bool:
    return any(fnmatch(rel, pattern) for pattern in exclude)


def iter_assets(
    root: Path,
    exclude: Sequence[str] = (),
    exclude_dir: Optional[Path] = None,
) -> Iterator[Path]:
    """
    Yield absolute paths of regular files under root, sorted.

    exclude:
        Glob patterns matched against the root-relative POSIX path
        (e.g. "vendor/*", "*.min.js"). A file matching any of them is skipped.

    exclude_dir:
        If provided, any files inside this directory will be skipped.
        (Keeps a cache directory inside root from being optimized.)
    """
    root = Path(root).resolve()
    exclude_resolved = Path(exclude_dir).resolve() if exclude_dir else None

    if root.is_file():
        yield root
        return

    for f in sorted(root.glob("**/*")):
        if not f.is_file():
            continue
        if exclude and _is_excluded(f.relative_to(root).as_posix(), exclude):
            continue
        if exclude_resolved and f.is_relative_to(exclude_resolved):
            continue
        yield f


async def run_all(
    paths: Iterable[Path],
    ctx: RunContext,
    progress_callback: Optional[ProgressCallback] = None,
) -> RunSummary:
    """
    Process every path not yet processed in this run, all concurrently.

    One task per file. With settings.concurrency set, at most that many
    are in flight at once; otherwise there is no cap. Returns once every
    task has finished.
    """
    pending = [p for p in dict.fromkeys(Path(p) for p in paths) if not ctx.is_processed(p)]

    limit = ctx.settings.concurrency
    semaphore = asyncio.Semaphore(limit) if limit else None

    async def unit(path: Path) -> None:
        try:
            size = await file_size(path)
        except OSError as e:
            logger.error(f"Error reading {path}: {e}")
            return

        await process_file(path, size, ctx)

        if progress_callback:
            progress_callback(ctx.progress_text())

    async def limited(path: Path) -> None:
        async with semaphore:
            await unit(path)

    await asyncio.gather(*(limited(p) if semaphore else unit(p) for p in pending))

    return ctx.summary()


def process_batch(
    root: Path,
    settings: Optional[OptimizeSettings] = None,
    progress_callback: Optional[ProgressCallback] = None,
    ctx: Optional[RunContext] = None,
) -> tuple[RunContext, RunSummary]:
    ctx = ctx or RunContext(settings)
    paths = list(iter_assets(root, exclude=ctx.settings.exclude, exclude_dir=ctx.cache.store_dir))

    summary = asyncio.run(run_all(paths, ctx, progress_callback=progress_callback))
    return ctx, summary
