from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from .compose import compose, render_template
from .errors import PreviewError
from .models import ComposedDocument
from .package import resolve_package
from .workspace import discard_work_dir, extract, new_work_dir, write_index

ERROR_TEMPLATE = "error.html"

logger = logging.getLogger("quicklook.preview")


@dataclass
class PreviewResult:
    work_dir: Path
    index_path: Path
    document: ComposedDocument


def build_preview(source: Path, work_dir: Optional[Path] = None) -> PreviewResult:
    """Extract ``source``, flatten it, and write the composed page into the extraction root.

    A work directory created here is removed again when the preview fails; a
    caller-supplied ``work_dir`` is left alone.
    """
    source = Path(source)
    owns_work_dir = work_dir is None
    target = new_work_dir() if work_dir is None else Path(work_dir)
    logger.info("building preview for %s in %s", source, target)
    try:
        extracted = extract(source, target)
        package = resolve_package(extracted)
        document = compose(package)
        index_path = write_index(extracted, document.html)
    except (PreviewError, OSError):
        if owns_work_dir:
            discard_work_dir(target)
        raise
    logger.info("composed %d chapters from %s", len(package.chapter_locations), source.name)
    return PreviewResult(work_dir=target, index_path=index_path, document=document)


def render_error_page(exc: BaseException) -> str:
    message = str(exc) or type(exc).__name__
    return render_template(ERROR_TEMPLATE, message=message)
