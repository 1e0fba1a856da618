"""
Micropub document formatter.

Turns a Micropub create request into the pieces a static site needs:

1. ``pre_format`` normalizes the request into a ``NormalizedEntry``:
   content objects become text, ``mp-slug`` becomes ``slug``, a missing
   ``published`` is filled with the current time and a missing slug is
   derived from the title or the first words of the content.
2. ``render_media`` names attached media files from a suffix template
   (Jekyll permalink style tokens such as ``:year`` and ``:filesslug``).
3. ``format`` renders the post: Jekyll-style front matter with
   JSON-quoted values, followed by the Markdown body.

Content is expected to already be Markdown; no HTML conversion happens.

Example output:
    ---
    layout: "post"
    date: "2024-01-02T03:04:05Z"
    title: ""
    slug: "hello"
    tags: indieweb micropub
    ---
    Hello world
"""
import json
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import PurePosixPath
from typing import Any, Dict, List, Optional, Sequence, Tuple
from zoneinfo import ZoneInfo


logger = logging.getLogger(__name__)

# Properties that may carry uploaded files, in the order files are written
MEDIA_PROPERTIES = ("photo", "video", "audio")

SLUG_WORD_LIMIT = 5
MEDIA_TOKEN_PATTERN = re.compile(r":(filesslug|second|minute|month|year|hour|slug|day)")


class MicropubRejection(Exception):
    """Raised when a Micropub document is structurally invalid."""


@dataclass(frozen=True)
class AttachedFile:
    """A media file uploaded with a Micropub request.

    Attributes:
        property: Micropub property the file was uploaded under (photo, video, audio)
        filename: Filename supplied by the client
        buffer: File contents
    """
    property: str
    filename: str
    buffer: bytes = field(repr=False)


@dataclass(frozen=True)
class MediaFile:
    """An attached file with its rendered site filename.

    ``filename`` is relative to the media prefix on disk and is the path the
    post's front matter refers to.
    """
    filename: str
    buffer: bytes = field(repr=False)
    property: str = "photo"


@dataclass(frozen=True)
class NormalizedEntry:
    """A normalized Micropub entry.

    Attributes:
        entry_type: Microformats type without the list wrapper, e.g. "h-entry"
        properties: Property name to ordered list of values
        attached_files: Uploaded media in submission order
    """
    entry_type: str
    properties: Dict[str, List[Any]]
    attached_files: Tuple[AttachedFile, ...] = ()

    def first(self, name: str, default: Any = None) -> Any:
        """Return the first value of a property, or ``default``."""
        values = self.properties.get(name) or []
        return values[0] if values else default


def slugify(text: str, max_words: Optional[int] = None) -> str:
    """Lowercase ``text`` and join its words with hyphens.

    Example:
        >>> slugify("Hello, IndieWeb World!")
        'hello-indieweb-world'
    """
    words = re.findall(r"\w+", text.lower())
    if max_words is not None:
        words = words[:max_words]
    return "-".join(words)


def parse_published(value: str, tz: ZoneInfo) -> datetime:
    """Parse an ISO 8601 timestamp into an aware datetime in ``tz``.

    Naive timestamps are taken to be in ``tz`` already.

    Raises:
        ValueError: If the value is not an ISO 8601 timestamp
    """
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=tz)
    return parsed.astimezone(tz)


def _content_text(value: Any) -> str:
    if isinstance(value, dict):
        return str(value.get("html", value.get("value", "")))
    return str(value)


def _media_reference(value: Any) -> str:
    if isinstance(value, dict):
        return str(value.get("value", value.get("url", "")))
    return str(value)


class MicroformatFormatter:
    """Normalizes Micropub documents and renders them as static-site posts."""

    def __init__(self, layout_name: str = "", tz: Optional[ZoneInfo] = None):
        """Initialize the formatter.

        Args:
            layout_name: Jekyll-style layout written to each post; omitted when empty
            tz: Timezone used for default and naive publication timestamps
        """
        self.layout_name = layout_name or ""
        self.tz = tz or ZoneInfo("UTC")

    def pre_format(self, document: Dict[str, Any]) -> NormalizedEntry:
        """Normalize a Micropub document.

        Args:
            document: Micropub document with ``type``, ``properties`` and
                optionally ``mp`` and ``files``

        Returns:
            NormalizedEntry with ``published`` and ``slug`` always present

        Raises:
            MicropubRejection: If the document is structurally invalid
        """
        if not isinstance(document, dict):
            raise MicropubRejection("Received an invalid Micropub request.")

        types = document.get("type")
        if not isinstance(types, list) or not types or not isinstance(types[0], str):
            raise MicropubRejection("Micropub document has no type.")

        raw_properties = document.get("properties")
        if not isinstance(raw_properties, dict):
            raise MicropubRejection("Micropub document has no properties.")

        properties: Dict[str, List[Any]] = {}
        for name, values in raw_properties.items():
            if not isinstance(values, list):
                raise MicropubRejection(f"Micropub property '{name}' must be a list of values.")
            properties[name] = list(values)

        if "content" in properties:
            properties["content"] = [_content_text(v) for v in properties["content"]]

        # mp-slug may arrive as a command (JSON) or as a plain property (form-encoded)
        mp = document.get("mp") or {}
        mp_slug = properties.pop("mp-slug", None) or mp.get("slug")
        if not properties.get("slug") and mp_slug:
            properties["slug"] = [str(mp_slug[0])]
        # Client slugs end up in file paths
        if properties.get("slug"):
            properties["slug"] = [slugify(str(properties["slug"][0]))]

        published = properties.get("published")
        if published:
            try:
                parse_published(str(published[0]), self.tz)
            except ValueError as e:
                raise MicropubRejection(f"Invalid published date: {published[0]!r}") from e
        else:
            properties["published"] = [datetime.now(self.tz).isoformat(timespec="seconds")]

        if not properties.get("slug"):
            properties["slug"] = [self._derive_slug(properties)]

        attached_files = self._collect_files(document.get("files") or {})

        return NormalizedEntry(
            entry_type=types[0],
            properties=properties,
            attached_files=tuple(attached_files),
        )

    def _derive_slug(self, properties: Dict[str, List[Any]]) -> str:
        name = properties.get("name") or []
        if name and str(name[0]).strip():
            return slugify(str(name[0]), SLUG_WORD_LIMIT)
        content = properties.get("content") or []
        if content:
            return slugify(str(content[0]), SLUG_WORD_LIMIT)
        return ""

    @staticmethod
    def _collect_files(files: Dict[str, Any]) -> List[AttachedFile]:
        if not isinstance(files, dict):
            raise MicropubRejection("Micropub files must be a mapping.")
        attached = []
        for prop in MEDIA_PROPERTIES:
            for upload in files.get(prop) or []:
                try:
                    attached.append(AttachedFile(
                        property=prop,
                        filename=str(upload["filename"]),
                        buffer=bytes(upload["buffer"]),
                    ))
                except (KeyError, TypeError) as e:
                    raise MicropubRejection(f"Invalid {prop} upload.") from e
        return attached

    def published_at(self, entry: NormalizedEntry) -> datetime:
        """Return the entry's publication time as an aware datetime."""
        return parse_published(str(entry.first("published")), self.tz)

    def render_media(self, entry: NormalizedEntry, suffix_template: str) -> List[MediaFile]:
        """Name each attached file from the media suffix template.

        Supported tokens: ``:year :month :day :hour :minute :second :slug
        :filesslug``. ``:filesslug`` is the slugified original file name,
        made unique within the entry. The original extension is appended.
        """
        published = self.published_at(entry)
        slug = str(entry.first("slug", "") or "")
        used: Dict[str, int] = {}
        media_files = []

        for attached in entry.attached_files:
            original = PurePosixPath(attached.filename.replace("\\", "/"))
            files_slug = slugify(original.stem) or "file"
            count = used.get(files_slug, 0) + 1
            used[files_slug] = count
            if count > 1:
                files_slug = f"{files_slug}-{count}"

            values = {
                "year": f"{published:%Y}",
                "month": f"{published:%m}",
                "day": f"{published:%d}",
                "hour": f"{published:%H}",
                "minute": f"{published:%M}",
                "second": f"{published:%S}",
                "slug": slug,
                "filesslug": files_slug,
            }
            rendered = MEDIA_TOKEN_PATTERN.sub(lambda m: values[m.group(1)], suffix_template)
            media_files.append(MediaFile(
                filename=rendered + original.suffix.lower(),
                buffer=attached.buffer,
                property=attached.property,
            ))

        return media_files

    def format(self, entry: NormalizedEntry, media_files: Sequence[MediaFile] = ()) -> str:
        """Render a normalized entry as front matter plus Markdown body."""
        properties = entry.properties
        lines = ["---"]

        if self.layout_name:
            lines.append(f"layout: {json.dumps(self.layout_name, ensure_ascii=False)}")
        lines.append(f"date: {json.dumps(str(entry.first('published')), ensure_ascii=False)}")
        lines.append(f"title: {json.dumps(str(entry.first('name', '') or ''), ensure_ascii=False)}")
        lines.append(f"slug: {json.dumps(str(entry.first('slug', '') or ''), ensure_ascii=False)}")

        categories = [str(c) for c in properties.get("category") or [] if str(c)]
        if categories:
            lines.append(f"tags: {' '.join(categories)}")

        reply_to = properties.get("in-reply-to") or []
        if reply_to:
            lines.append(f"in-reply-to: {json.dumps([str(u) for u in reply_to], ensure_ascii=False)}")

        for prop in MEDIA_PROPERTIES:
            references = [_media_reference(v) for v in properties.get(prop) or []]
            references += [f"/{m.filename.lstrip('/')}" for m in media_files if m.property == prop]
            if references:
                lines.append(f"{prop}: {json.dumps(references, ensure_ascii=False)}")

        lines.append("---")
        body = _content_text(entry.first("content", ""))
        return "\n".join(lines) + "\n" + body + "\n"
