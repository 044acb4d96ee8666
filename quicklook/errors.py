from __future__ import annotations


class PreviewError(Exception):
    """Base class for every failure the preview pipeline reports to the user."""


class ContainerNotFound(PreviewError):
    pass


class PackageDefinitionNotFound(PreviewError):
    pass


class MalformedPackage(PreviewError):
    pass


class ParseError(MalformedPackage):
    pass


class PackageIOError(PreviewError):
    pass


class ArchiveError(PackageIOError):
    pass
