from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union


@dataclass(frozen=True)
class Improved:
    """A transform result that is strictly smaller than what is on disk."""
    data: bytes


class NoChange:
    """Nothing to write: the transform failed, had nothing to do or didn't shrink the file."""

    _instance: Optional["NoChange"] = None

    def __new__(cls) -> "NoChange":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "NO_CHANGE"


NO_CHANGE = NoChange()

Outcome = Union[Improved, NoChange]


@dataclass(frozen=True)
class ReportItem:
    """
    Outcome of processing a single file.

    Keeping it immutable (frozen=True) makes it easier to reason about.
    """
    kind: str  # file extension, e.g. ".png"
    original_size: int
    compressed_size: int
    path: Optional[Path] = None

    def __post_init__(self) -> None:
        if self.compressed_size > self.original_size:
            raise ValueError(
                f"compressed size {self.compressed_size} exceeds original size {self.original_size}"
            )

    @property
    def changed(self) -> bool:
        return self.compressed_size < self.original_size

    @property
    def saved_bytes(self) -> int:
        return self.original_size - self.compressed_size

    @property
    def saved_percent(self) -> float:
        if self.original_size <= 0:
            return 0.0
        return (self.saved_bytes / self.original_size) * 100.0


@dataclass(frozen=True)
class RunSummary:
    files: int
    original_bytes: int
    final_bytes: int

    @property
    def saved_bytes(self) -> int:
        return max(0, self.original_bytes - self.final_bytes)

    @property
    def saved_percent(self) -> float:
        if self.original_bytes <= 0:
            return 0.0
        return (self.saved_bytes / self.original_bytes) * 100.0


@dataclass(frozen=True)
class CompressedImage:
    """Encoded image bytes and their format ("png", "jpg", "webp", "avif", "svg")."""
    format: str
    data: bytes
