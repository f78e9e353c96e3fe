from __future__ import annotations

import argparse
import json
import logging
import sys
from dataclasses import replace
from pathlib import Path

from .batch import process_batch
from .report import build_report, format_bytes, save_report_csv, save_report_json
from .settings import OptimizeSettings, load_settings


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="bao",
        description="Bulk Asset Optimizer: shrink images, CSS, JS and HTML in place",
    )
    p.add_argument("-v", "--verbose", action="count", default=0, help="More logging (-v info, -vv debug)")
    sub = p.add_subparsers(dest="command", required=True)

    opt = sub.add_parser("optimize", help="Optimize every asset under a folder, in place")
    opt.add_argument("dir", help="Folder (or single file) to process")

    opt.add_argument(
        "--exclude",
        action="append",
        default=[],
        metavar="GLOB",
        help='Skip files whose relative path matches (repeatable), e.g. "vendor/*"',
    )
    opt.add_argument("--dry-run", action="store_true", help="Report savings without writing files")
    opt.add_argument("--config", default=None, help="JSON settings file")
    opt.add_argument("--cache-dir", default=None, help="Keep the image cache on disk in this folder")
    opt.add_argument("--jobs", type=int, default=None, help="Max files in flight at once (default: no limit)")
    opt.add_argument("--no-images", action="store_true", help="Disable image compression")
    opt.add_argument("--report", default=None, help="Write a report (.json or .csv)")

    return p


def _build_settings(args: argparse.Namespace) -> OptimizeSettings:
    settings = load_settings(Path(args.config)) if args.config else OptimizeSettings()

    changes: dict = {}
    if args.exclude:
        changes["exclude"] = tuple(settings.exclude) + tuple(args.exclude)
    if args.dry_run:
        changes["dry_run"] = True
    if args.cache_dir:
        changes["cache_dir"] = Path(args.cache_dir)
    if args.jobs is not None:
        if args.jobs <= 0:
            raise ValueError("--jobs must be a positive number")
        changes["concurrency"] = args.jobs
    if args.no_images:
        changes["compress_images"] = False

    return replace(settings, **changes)


def _print_progress(text: str) -> None:
    print(f"\r{text}", end="", flush=True)


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    level = logging.WARNING
    if args.verbose == 1:
        level = logging.INFO
    elif args.verbose >= 2:
        level = logging.DEBUG
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")

    if args.command == "optimize":
        root = Path(args.dir)
        if not root.exists():
            print(f"No such file or directory: {root}", file=sys.stderr)
            return 2

        try:
            settings = _build_settings(args)
        except (OSError, ValueError, json.JSONDecodeError) as e:
            print(f"Invalid configuration: {e}", file=sys.stderr)
            return 2

        ctx, summary = process_batch(root, settings, progress_callback=_print_progress)
        print()

        # Print summary
        print("\n=== Run Summary ===")
        if settings.dry_run:
            print("(dry run, nothing written)")
        print("Files      :", summary.files)
        print("Original   :", format_bytes(summary.original_bytes))
        print("Final      :", format_bytes(summary.final_bytes))
        print(f"Saved      : {format_bytes(summary.saved_bytes)} ({summary.saved_percent:.1f}%)")

        if args.report:
            report = build_report(ctx)
            report_path = Path(args.report)
            if report_path.suffix.lower() == ".csv":
                save_report_csv(report, report_path)
            else:
                save_report_json(report, report_path)
            print("\nReport written:", report_path)

        return 0

    parser.print_help()
    return 2
