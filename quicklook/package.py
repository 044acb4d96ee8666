from __future__ import annotations

import logging
import os
import urllib.parse
from pathlib import Path
from typing import Iterator, Optional

from lxml import etree as LXML_ET

from .errors import ContainerNotFound, MalformedPackage, PackageDefinitionNotFound, PackageIOError, ParseError
from .models import Package

CONTAINER_PATH = "META-INF/container.xml"
PACKAGE_DOCUMENT_SUFFIXES = {".opf"}
CHAPTER_SUFFIXES = {".xhtml", ".html", ".htm"}

logger = logging.getLogger("quicklook.package")


def _tag_local_name(tag: object) -> str:
    # Comments and processing instructions carry a callable, not a string, as tag.
    if not tag or not isinstance(tag, str):
        return ""
    if "}" in tag:
        return tag.split("}", 1)[1]
    return tag


def _iter_by_local_name(root: LXML_ET._Element, local_name: str) -> Iterator[LXML_ET._Element]:
    for node in root.iter():
        if _tag_local_name(node.tag) == local_name:
            yield node


def _iter_children_by_local_name(node: LXML_ET._Element, local_name: str) -> list[LXML_ET._Element]:
    return [child for child in list(node) if _tag_local_name(child.tag) == local_name]


def _attr(node: LXML_ET._Element, name: str) -> str:
    return str(node.attrib.get(name) or "").strip()


def _read_bytes(path: Path) -> bytes:
    try:
        return path.read_bytes()
    except OSError as exc:
        raise PackageIOError(f"Cannot read {path}: {exc.strerror or exc}") from exc


def _xml_root_from_bytes(raw: bytes, source: Path) -> LXML_ET._Element:
    parser = LXML_ET.XMLParser(resolve_entities=False, no_network=True)
    try:
        root = LXML_ET.fromstring(raw, parser=parser)
    except LXML_ET.XMLSyntaxError as exc:
        raise ParseError(f"Cannot parse {source.name}: {exc}") from exc
    if root is None:
        raise ParseError(f"Cannot parse {source.name}: empty document")
    return root


def _container_rootfile(extracted_root: Path) -> Path:
    container = extracted_root / CONTAINER_PATH
    if not container.is_file():
        raise ContainerNotFound(f"{CONTAINER_PATH} is missing")
    root = _xml_root_from_bytes(_read_bytes(container), container)
    for node in _iter_by_local_name(root, "rootfile"):
        full_path = _attr(node, "full-path")
        if full_path:
            return extracted_root / urllib.parse.unquote(full_path)
    raise ContainerNotFound(f"{CONTAINER_PATH} has no rootfile with a full-path")


def _scan_for_package_document(extracted_root: Path) -> Optional[Path]:
    for dirpath, dirnames, filenames in os.walk(extracted_root):
        dirnames.sort()
        for name in sorted(filenames):
            if os.path.splitext(name)[1].lower() in PACKAGE_DOCUMENT_SUFFIXES:
                return Path(dirpath) / name
    return None


def locate_package_document(extracted_root: Path) -> Path:
    """Find the package-definition document of an extracted EPUB.

    ``META-INF/container.xml`` is consulted first. When it is missing, cannot
    be parsed, names no rootfile, or names a file that does not exist, the
    whole tree is scanned for the first ``.opf`` file instead.
    """
    extracted_root = Path(extracted_root)
    parse_failure: Optional[ParseError] = None
    try:
        candidate = _container_rootfile(extracted_root)
    except ParseError as exc:
        parse_failure = exc
        logger.info("container pointer unreadable, scanning %s: %s", extracted_root, exc)
    except ContainerNotFound as exc:
        logger.info("container pointer unusable, scanning %s: %s", extracted_root, exc)
    else:
        if candidate.is_file():
            return candidate
        logger.info("container rootfile %s does not exist, scanning %s", candidate, extracted_root)

    found = _scan_for_package_document(extracted_root)
    if found is not None:
        return found
    if parse_failure is not None:
        raise parse_failure
    raise PackageDefinitionNotFound(f"No package document (.opf) found in {extracted_root}")


def _manifest_hrefs(root: LXML_ET._Element) -> dict[str, str]:
    hrefs: dict[str, str] = {}
    for manifest in _iter_by_local_name(root, "manifest"):
        for item in _iter_children_by_local_name(manifest, "item"):
            item_id = _attr(item, "id")
            href = _attr(item, "href")
            if item_id and href:
                hrefs[item_id] = href
    return hrefs


def _spine_idrefs(root: LXML_ET._Element) -> list[str]:
    idrefs: list[str] = []
    for spine in _iter_by_local_name(root, "spine"):
        for itemref in _iter_children_by_local_name(spine, "itemref"):
            idref = _attr(itemref, "idref")
            if idref:
                idrefs.append(idref)
    return idrefs


def _chapter_location(base_folder: Path, href: str) -> Path:
    raw = urllib.parse.unquote(href.split("#", 1)[0])
    return Path(os.path.normpath(os.path.join(base_folder, raw)))


def parse_package_document(package_document: Path) -> Package:
    package_document = Path(os.path.abspath(package_document))
    base_folder = package_document.parent
    root = _xml_root_from_bytes(_read_bytes(package_document), package_document)

    hrefs = _manifest_hrefs(root)
    chapters: list[Path] = []
    for idref in _spine_idrefs(root):
        href = hrefs.get(idref)
        if href is None:
            logger.debug("spine references unknown manifest id %r", idref)
            continue
        location = _chapter_location(base_folder, href)
        if location.suffix.lower() not in CHAPTER_SUFFIXES:
            logger.debug("skipping non-document spine item %s", href)
            continue
        chapters.append(location)

    if not chapters:
        raise MalformedPackage(f"{package_document.name} lists no XHTML/HTML documents in its spine")
    return Package(base_folder=base_folder, chapter_locations=tuple(chapters))


def resolve_package(extracted_root: Path) -> Package:
    package = parse_package_document(locate_package_document(extracted_root))
    logger.debug("resolved %d chapters under %s", len(package.chapter_locations), package.base_folder)
    return package
