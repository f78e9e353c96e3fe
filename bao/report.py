from __future__ import annotations

import csv
import json
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, List, Optional

if TYPE_CHECKING:
    from .state import RunContext


BYTE_UNITS = ("B", "KB", "MB", "GB", "TB")


def format_bytes(n: int, decimals: int = 2) -> str:
    """
    Human-readable size using base-1024 units.

    format_bytes(0) -> "0 B", format_bytes(1536) -> "1.5 KB"
    """
    if n <= 0:
        return "0 B"

    value = float(n)
    unit = 0
    while value >= 1024 and unit < len(BYTE_UNITS) - 1:
        value /= 1024
        unit += 1

    if unit == 0:
        return f"{int(value)} B"

    text = f"{value:.{decimals}f}".rstrip("0").rstrip(".")
    return f"{text} {BYTE_UNITS[unit]}"


@dataclass(frozen=True)
class FileReport:
    path: Optional[str]
    kind: str
    original_bytes: int
    compressed_bytes: int
    saved_bytes: int
    saved_percent: float
    changed: bool


@dataclass(frozen=True)
class RunReport:
    created_utc: str
    dry_run: bool
    summary: dict
    files: List[FileReport]


def build_report(ctx: "RunContext") -> RunReport:
    created_utc = datetime.now(timezone.utc).isoformat(timespec="seconds").replace("+00:00", "Z")

    files: List[FileReport] = []
    for item in sorted(ctx.items(), key=lambda i: str(i.path or "")):
        files.append(
            FileReport(
                path=str(item.path) if item.path else None,
                kind=item.kind,
                original_bytes=item.original_size,
                compressed_bytes=item.compressed_size,
                saved_bytes=item.saved_bytes,
                saved_percent=round(item.saved_percent, 2),
                changed=item.changed,
            )
        )

    summary = ctx.summary()
    summary_dict = {
        "files": summary.files,
        "original_bytes": summary.original_bytes,
        "final_bytes": summary.final_bytes,
        "saved_bytes": summary.saved_bytes,
        "saved_percent": round(summary.saved_percent, 2),
        "image_cache_hits": ctx.cache.hits,
        "image_cache_misses": ctx.cache.misses,
    }

    return RunReport(created_utc=created_utc, dry_run=ctx.dry_run, summary=summary_dict, files=files)


def save_report_json(report: RunReport, path: Path) -> None:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    with path.open("w", encoding="utf-8") as f:
        json.dump(asdict(report), f, indent=2, ensure_ascii=False)


def save_report_csv(report: RunReport, path: Path) -> None:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    columns = ["path", "kind", "original_bytes", "compressed_bytes", "saved_bytes", "saved_percent", "changed"]

    with path.open("w", encoding="utf-8", newline="") as f:
        writer = csv.DictWriter(f, fieldnames=columns)
        writer.writeheader()
        for row in report.files:
            writer.writerow(asdict(row))
