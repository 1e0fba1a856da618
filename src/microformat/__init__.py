"""Micropub formatter package.

Normalizes Micropub documents and renders them as Markdown posts with
Jekyll-style front matter.

Usage:
    >>> from microformat import MicroformatFormatter
    >>> formatter = MicroformatFormatter(layout_name="post")
    >>> entry = formatter.pre_format(document)
    >>> contents = formatter.format(entry)
"""
from microformat.microformat import (
    AttachedFile,
    MediaFile,
    MicroformatFormatter,
    MicropubRejection,
    NormalizedEntry,
    parse_published,
    slugify,
)

__all__ = [
    "AttachedFile",
    "MediaFile",
    "MicroformatFormatter",
    "MicropubRejection",
    "NormalizedEntry",
    "parse_published",
    "slugify",
]
