from __future__ import annotations

import posixpath
import shutil
import tempfile
import uuid
import zipfile
from pathlib import Path

from .env import read_env_path
from .errors import ArchiveError, PackageIOError

WORK_DIR_ENV = "QUICKLOOK_WORK_DIR"
WORK_DIR_PREFIX = "quicklook_"
INDEX_FILE = "ql_index.html"


def work_root() -> Path:
    base = read_env_path(WORK_DIR_ENV) or Path(tempfile.gettempdir())
    base.mkdir(parents=True, exist_ok=True)
    return base


def new_work_dir() -> Path:
    path = work_root() / f"{WORK_DIR_PREFIX}{uuid.uuid4().hex}"
    path.mkdir(parents=True, exist_ok=False)
    return path


def discard_work_dir(path: Path) -> None:
    shutil.rmtree(path, ignore_errors=True)


def _canonical_zip_member(name: str) -> str:
    normalized = posixpath.normpath((name or "").replace("\\", "/")).lstrip("/")
    while normalized.startswith("../"):
        normalized = normalized[3:]
    if normalized == "..":
        return ""
    return "" if normalized in {"", "."} else normalized


def _extract_zip(archive: Path, destination: Path) -> None:
    with zipfile.ZipFile(archive, "r") as zf:
        for info in zf.infolist():
            member = _canonical_zip_member(info.filename)
            if not member:
                continue
            target = destination / member
            if info.is_dir():
                target.mkdir(parents=True, exist_ok=True)
                continue
            target.parent.mkdir(parents=True, exist_ok=True)
            with zf.open(info, "r") as src_stream, target.open("wb") as dst_stream:
                shutil.copyfileobj(src_stream, dst_stream, 1024 * 1024)


def extract(source: Path, destination: Path) -> Path:
    """Unpack ``source`` (an EPUB archive or an unpacked EPUB directory) into ``destination``."""
    source = Path(source)
    destination = Path(destination)
    try:
        destination.mkdir(parents=True, exist_ok=True)
        if source.is_dir():
            shutil.copytree(source, destination, dirs_exist_ok=True)
        else:
            _extract_zip(source, destination)
    except zipfile.BadZipFile as exc:
        raise ArchiveError(f"{source.name} is not a valid EPUB archive: {exc}") from exc
    except (OSError, RuntimeError, NotImplementedError) as exc:
        # zipfile reports encrypted members as RuntimeError, unknown compression as NotImplementedError.
        raise ArchiveError(f"Cannot extract {source.name}: {exc}") from exc
    return destination


def write_index(root: Path, html_text: str) -> Path:
    path = Path(root) / INDEX_FILE
    try:
        path.write_text(html_text, encoding="utf-8")
    except OSError as exc:
        raise PackageIOError(f"Cannot write {path}: {exc.strerror or exc}") from exc
    return path
