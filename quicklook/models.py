from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from .errors import MalformedPackage


@dataclass(frozen=True)
class Package:
    base_folder: Path
    chapter_locations: tuple[Path, ...]

    def __post_init__(self) -> None:
        if not self.chapter_locations:
            raise MalformedPackage("Package has no readable chapters in its spine")


@dataclass(frozen=True)
class ComposedDocument:
    html: str
    base_folder: Path
