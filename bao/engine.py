from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Awaitable, Callable, Dict, Iterable, Optional

from .fileio import read_bytes, write_atomic
from .imaging import compress_image
from .minify import minify_css, minify_html, minify_js
from .results import NO_CHANGE, Improved, Outcome, ReportItem
from .state import RunContext


logger = logging.getLogger(__name__)

# (path, input bytes, run context) -> candidate bytes, or None for nothing usable
Transform = Callable[[Path, bytes, RunContext], Awaitable[Optional[bytes]]]


@dataclass(frozen=True)
class Pipeline:
    """One variant of the per-kind dispatch: image, css, js, html or unknown."""
    kind: str
    transform: Optional[Transform] = None


UNKNOWN = Pipeline(kind="unknown")

PIPELINES: Dict[str, Pipeline] = {}


def register(exts: Iterable[str], pipeline: Pipeline) -> None:
    for ext in exts:
        PIPELINES[ext.lower()] = pipeline


def resolve_pipeline(path: Path) -> Pipeline:
    return PIPELINES.get(Path(path).suffix.lower(), UNKNOWN)


def size_gate(candidate: Optional[bytes], original_size: int) -> Outcome:
    """Accept a candidate only if it is strictly smaller than the original."""
    if candidate is not None and len(candidate) < original_size:
        return Improved(candidate)
    return NO_CHANGE


async def process_file(path: Path, stat_size: int, ctx: RunContext) -> ReportItem:
    """
    Optimize one file in place and record the outcome.

    Any exception from reading, transforming or writing is logged with the
    path and turns into "no change" for this file only. The file is marked
    processed and reported whatever happens.
    """
    path = Path(path)
    pipeline = resolve_pipeline(path)
    outcome: Outcome = NO_CHANGE

    if pipeline.transform is not None:
        try:
            data = await read_bytes(path)
            outcome = size_gate(await pipeline.transform(path, data, ctx), stat_size)

            if outcome and not ctx.dry_run:
                await write_atomic(path, outcome.data)
        except Exception as e:
            logger.error(f"Error processing {path}: {e}")
            outcome = NO_CHANGE

    item = ReportItem(
        kind=path.suffix.lower(),
        original_size=stat_size,
        compressed_size=len(outcome.data) if outcome else stat_size,
        path=path,
    )

    ctx.mark_processed(path)
    ctx.record(item)
    return item


# ----- Pipelines -----

async def _image(path: Path, data: bytes, ctx: RunContext) -> Optional[bytes]:
    image = await compress_image(
        data,
        ctx.transform_options,
        cache=ctx.cache,
        enabled=ctx.settings.compress_images,
        source=path,
    )
    return image.data if image is not None else None


def _text_transform(fn: Callable[[str], Optional[str]]) -> Transform:
    """Wrap a str -> str minifier as a bytes transform running off the event loop."""

    async def transform(path: Path, data: bytes, ctx: RunContext) -> Optional[bytes]:
        text = data.decode("utf-8")
        result = await asyncio.to_thread(fn, text)
        return result.encode("utf-8") if result else None

    return transform


register((".png", ".jpg", ".jpeg", ".svg", ".webp", ".avif"), Pipeline(kind="image", transform=_image))
register((".css",), Pipeline(kind="css", transform=_text_transform(minify_css)))
register((".js",), Pipeline(kind="js", transform=_text_transform(minify_js)))
register((".html", ".htm"), Pipeline(kind="html", transform=_text_transform(minify_html)))
