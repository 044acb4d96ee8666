from __future__ import annotations

import os
import re
import urllib.parse
from functools import lru_cache
from pathlib import Path

from jinja2 import Environment, FileSystemLoader, select_autoescape

from .css import preview_stylesheet
from .errors import PackageIOError
from .models import ComposedDocument, Package

TEMPLATES_DIR = Path(__file__).resolve().parent / "templates"
DOCUMENT_TEMPLATE = "document.html"

BODY_OPEN_RE = re.compile(r"<body", re.IGNORECASE)
BODY_CLOSE_RE = re.compile(r"</body>", re.IGNORECASE)
# Double-quoted values only; single-quoted and bare values pass through untouched.
RESOURCE_ATTR_RES = (
    re.compile(r'src="([^"]+)"', re.IGNORECASE),
    re.compile(r'href="([^"]+)"', re.IGNORECASE),
)
# "//" is protocol-relative, i.e. a network reference.
PASSTHROUGH_PREFIXES = ("http", "file:", "data:", "#", "mailto:", "javascript:", "//")


@lru_cache(maxsize=1)
def _template_env() -> Environment:
    return Environment(
        loader=FileSystemLoader(str(TEMPLATES_DIR)),
        autoescape=select_autoescape(
            enabled_extensions=("html",),
            default_for_string=False,
        ),
        trim_blocks=True,
        lstrip_blocks=True,
    )


def render_template(template_name: str, **context: object) -> str:
    return _template_env().get_template(template_name).render(**context)


def decode_chapter(data: bytes) -> str:
    try:
        return data.decode("utf-8")
    except UnicodeDecodeError:
        return data.decode("latin-1")


def extract_body(html_text: str) -> str:
    """Return what sits between ``<body ...>`` and ``</body>``, or the whole text.

    Deliberately loose: chapters that are not well-formed still render.
    """
    opening = BODY_OPEN_RE.search(html_text)
    if not opening:
        return html_text
    gt = html_text.find(">", opening.end())
    if gt == -1:
        return html_text
    closing = BODY_CLOSE_RE.search(html_text, gt + 1)
    if not closing:
        return html_text
    return html_text[gt + 1 : closing.start()]


def _resolve_resource(value: str, base_folder: str) -> str:
    if value.lower().startswith(PASSTHROUGH_PREFIXES):
        return value
    if value.startswith("/"):
        value = value[1:]

    path_part, hash_mark, fragment = value.partition("#")
    path_part, question_mark, query = path_part.partition("?")
    target = os.path.normpath(os.path.join(base_folder, urllib.parse.unquote(path_part)))
    uri = Path(target).as_uri()
    if question_mark:
        uri = f"{uri}?{query}"
    if hash_mark:
        uri = f"{uri}#{fragment}"
    return uri


def rewrite_resource_urls(html_text: str, base_folder: Path) -> str:
    """Point local ``src``/``href`` values at absolute ``file://`` locations under ``base_folder``."""
    base = os.path.abspath(base_folder)

    def _replace(match: re.Match) -> str:
        whole = match.group(0)
        start = match.start(1) - match.start(0)
        end = match.end(1) - match.start(0)
        return f"{whole[:start]}{_resolve_resource(match.group(1), base)}{whole[end:]}"

    out = html_text
    for pattern in RESOURCE_ATTR_RES:
        out = pattern.sub(_replace, out)
    return out


def _read_chapter(location: Path) -> str:
    try:
        raw = location.read_bytes()
    except OSError as exc:
        raise PackageIOError(f"Cannot read chapter {location}: {exc.strerror or exc}") from exc
    return decode_chapter(raw)


def compose(package: Package) -> ComposedDocument:
    chapters = [
        rewrite_resource_urls(extract_body(_read_chapter(location)), package.base_folder)
        for location in package.chapter_locations
    ]
    html_text = render_template(
        DOCUMENT_TEMPLATE,
        chapters=chapters,
        stylesheet=preview_stylesheet(),
    )
    return ComposedDocument(html=html_text, base_folder=package.base_folder)
