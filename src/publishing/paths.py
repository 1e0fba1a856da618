"""
Post and media path resolution.

Where a post lands on disk, and the URL it will have once the site is
published, are site-specific decisions. They are made by a
``PathGenerators`` object with one method per generator:

    filename(published, slug)      post file, relative to the site root
    url(published, slug)           public URL of the published post
    media_prefix(published, slug)  media directory, relative to the site root
    media_suffix()                 per-file media name template containing
                                   the ``:filesslug`` marker

The stock implementation, ``TemplatePathGenerators``, renders templates from
config.yml with ``str.format``. Sites needing more can point
``posts.generators.class`` at their own ``PathGenerators`` subclass.

Usage:
    >>> resolver = PathResolver.from_config(config)
    >>> identity = resolver.resolve(published, "hello")
    >>> identity.filename
    '2024/01/02_03.04.05_hello.md'
"""
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional

from config import (
    DEFAULT_MEDIA_PREFIX_TEMPLATE,
    DEFAULT_MEDIA_SUFFIX_TEMPLATE,
    DEFAULT_POST_FILENAME_TEMPLATE,
    DEFAULT_POST_URL_TEMPLATE,
    load_object,
)


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ResolvedIdentity:
    """Where a post is written and where it will be published.

    Attributes:
        filename: Post file path relative to the site root
        url: Public URL of the post after publishing
        media_prefix: Media directory relative to the site root (only when media is attached)
        media_suffix: Media filename template (only when media is attached)
    """
    filename: str
    url: str
    media_prefix: Optional[str] = None
    media_suffix: Optional[str] = None


class PathGenerators(ABC):
    """Site-specific naming strategy for posts and their media.

    Implementations must be pure: the same arguments always give the same
    result.
    """

    @abstractmethod
    def filename(self, published: datetime, slug: str) -> str:
        """Post filename relative to the site root, using forward slashes."""

    @abstractmethod
    def url(self, published: datetime, slug: str) -> str:
        """Public URL the post will have once published."""

    @abstractmethod
    def media_prefix(self, published: datetime, slug: str) -> str:
        """Directory (relative to the site root) media files are written under."""

    @abstractmethod
    def media_suffix(self) -> str:
        """Media filename template; must contain ``:filesslug``."""


class TemplatePathGenerators(PathGenerators):
    """Generators rendered from ``str.format`` templates.

    Templates may use ``{published}`` (a timezone-aware datetime, so format
    specs such as ``{published:%Y/%m/%d}`` work), ``{slug}`` and
    ``{slug_suffix}`` (``"_<slug>"``, or empty when there is no slug).
    """

    def __init__(
        self,
        filename_template: str = DEFAULT_POST_FILENAME_TEMPLATE,
        url_template: str = DEFAULT_POST_URL_TEMPLATE,
        media_prefix_template: str = DEFAULT_MEDIA_PREFIX_TEMPLATE,
        media_suffix_template: str = DEFAULT_MEDIA_SUFFIX_TEMPLATE,
    ):
        self.filename_template = filename_template
        self.url_template = url_template
        self.media_prefix_template = media_prefix_template
        self.media_suffix_template = media_suffix_template

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> "TemplatePathGenerators":
        posts = config.get("posts", {}).get("generators", {})
        media = config.get("media", {}).get("generators", {})
        return cls(
            filename_template=posts.get("filename", DEFAULT_POST_FILENAME_TEMPLATE),
            url_template=posts.get("url", DEFAULT_POST_URL_TEMPLATE),
            media_prefix_template=media.get("filename_prefix", DEFAULT_MEDIA_PREFIX_TEMPLATE),
            media_suffix_template=media.get("filename_suffix", DEFAULT_MEDIA_SUFFIX_TEMPLATE),
        )

    @staticmethod
    def _render(template: str, published: datetime, slug: str) -> str:
        slug = slug or ""
        return template.format(
            published=published,
            slug=slug,
            slug_suffix=f"_{slug}" if slug else "",
        )

    def filename(self, published: datetime, slug: str) -> str:
        return self._render(self.filename_template, published, slug)

    def url(self, published: datetime, slug: str) -> str:
        return self._render(self.url_template, published, slug)

    def media_prefix(self, published: datetime, slug: str) -> str:
        return self._render(self.media_prefix_template, published, slug)

    def media_suffix(self) -> str:
        return self.media_suffix_template


def _require_str(name: str, value: Any) -> str:
    if not isinstance(value, str):
        raise TypeError(f"Path generator '{name}' returned {type(value).__name__}, expected str")
    return value


class PathResolver:
    """Turns a post's (published, slug) pair into a ResolvedIdentity.

    Generator output is only type-checked. A malformed path surfaces later
    as a filesystem error when the post is written.
    """

    def __init__(self, generators: PathGenerators):
        self.generators = generators

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> "PathResolver":
        """Create a resolver from configuration.

        Uses the class named by ``posts.generators.class`` when set
        (constructed with the configuration dictionary), otherwise the
        template generators.
        """
        reference = config.get("posts", {}).get("generators", {}).get("class")
        if reference:
            generators_class = load_object(reference)
            logger.info(f"Using custom path generators: {reference}")
            return cls(generators_class(config))
        return cls(TemplatePathGenerators.from_config(config))

    def resolve(self, published: datetime, slug: str, has_media: bool = False) -> ResolvedIdentity:
        """Resolve the identity of a post.

        Args:
            published: Publication timestamp
            slug: Post slug, possibly empty
            has_media: Whether media files are attached; media paths are only
                generated when they are

        Returns:
            ResolvedIdentity for the post

        Raises:
            TypeError: If a generator returns something other than a string
        """
        filename = _require_str("filename", self.generators.filename(published, slug))
        url = _require_str("url", self.generators.url(published, slug))

        media_prefix = None
        media_suffix = None
        if has_media:
            media_prefix = _require_str("media_prefix", self.generators.media_prefix(published, slug))
            media_suffix = _require_str("media_suffix", self.generators.media_suffix())

        logger.debug(f"Resolved post identity: filename={filename}, url={url}, media_prefix={media_prefix}")
        return ResolvedIdentity(
            filename=filename,
            url=url,
            media_prefix=media_prefix,
            media_suffix=media_suffix,
        )
