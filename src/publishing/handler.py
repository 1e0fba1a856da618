"""
Micropub request handling: from a Micropub document to a published post.

A request moves through these states:

    RECEIVED -> NORMALIZED -> IDENTITY_RESOLVED -> FORMATTED
             -> PERSISTED -> PUBLISHED -> NOTIFIED (DONE)

and can leave early as:

    REJECTED  the document is invalid or isn't an h-entry; nothing was written
    FAILED    writing or publishing failed; whatever was written is removed

Only DONE produces a post URL. Notification failures never move a request
out of the success path: once the publish command succeeds, the post is
live and the request has succeeded.
"""
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional

from config import get_timezone
from indieweb.dispatch import DispatchReport, NotificationDispatcher
from microformat import MicroformatFormatter, MicropubRejection
from publishing.paths import PathResolver
from publishing.publish import PublishError, PublishInvoker
from publishing.tags import TagStyle, format_tags
from publishing.writer import PersistenceError, PersistenceWriter


logger = logging.getLogger(__name__)

SUPPORTED_ENTRY_TYPE = "h-entry"


class RequestState(Enum):
    RECEIVED = "received"
    NORMALIZED = "normalized"
    IDENTITY_RESOLVED = "identity_resolved"
    FORMATTED = "formatted"
    PERSISTED = "persisted"
    PUBLISHED = "published"
    NOTIFIED = "notified"
    DONE = "notified"
    REJECTED = "rejected"
    FAILED = "failed"


class RejectedRequestError(Exception):
    """Raised when a Micropub document can't be turned into a post."""


@dataclass
class Publication:
    """Outcome of a successfully handled request."""
    url: str
    state: RequestState = RequestState.DONE
    notifications: DispatchReport = field(default_factory=DispatchReport)

    def to_response(self) -> Dict[str, Any]:
        return {"url": self.url}


class RequestHandler:
    """Drives a Micropub document through formatting, writing, publishing
    and notification.

    Holds no per-request state; a single instance serves every request.
    """

    def __init__(
        self,
        formatter: MicroformatFormatter,
        resolver: PathResolver,
        writer: PersistenceWriter,
        invoker: PublishInvoker,
        dispatcher: NotificationDispatcher,
        tags_key: str = "tags",
        tags_style: TagStyle = TagStyle.SPACE_DELIMITED,
    ):
        self.formatter = formatter
        self.resolver = resolver
        self.writer = writer
        self.invoker = invoker
        self.dispatcher = dispatcher
        self.tags_key = tags_key
        self.tags_style = tags_style

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> "RequestHandler":
        """Create a handler from a validated configuration dictionary."""
        posts = config.get("posts", {})
        tags = posts.get("tags", {})
        return cls(
            formatter=MicroformatFormatter(
                layout_name=posts.get("layout_name") or "",
                tz=get_timezone(config),
            ),
            resolver=PathResolver.from_config(config),
            writer=PersistenceWriter(config["site"]["root"]),
            invoker=PublishInvoker(config["app"]["publish_command"]),
            dispatcher=NotificationDispatcher.from_config(config),
            tags_key=tags.get("key", "tags"),
            tags_style=TagStyle.from_config(tags.get("style", TagStyle.SPACE_DELIMITED.value)),
        )

    @staticmethod
    def _enter(state: RequestState, detail: Optional[str] = None) -> RequestState:
        logger.debug(f"Request state: {state.name}" + (f" ({detail})" if detail else ""))
        return state

    def handle(self, document: Dict[str, Any]) -> Publication:
        """Handle one Micropub create request.

        Args:
            document: Micropub document as parsed from the request

        Returns:
            Publication with the post URL

        Raises:
            RejectedRequestError: The document is invalid or not an h-entry
            PersistenceError: The post or its media couldn't be written
            PublishError: The publish command failed (writes rolled back)
        """
        state = self._enter(RequestState.RECEIVED)

        try:
            entry = self.formatter.pre_format(document)
        except MicropubRejection as e:
            self._enter(RequestState.REJECTED, str(e))
            raise RejectedRequestError(str(e)) from e

        if entry.entry_type != SUPPORTED_ENTRY_TYPE:
            message = f"Can't handle micropub document type [{entry.entry_type}]."
            self._enter(RequestState.REJECTED, message)
            raise RejectedRequestError(message)
        state = self._enter(RequestState.NORMALIZED)

        published = self.formatter.published_at(entry)
        slug = str(entry.first("slug", "") or "")
        identity = self.resolver.resolve(published, slug, has_media=bool(entry.attached_files))
        state = self._enter(RequestState.IDENTITY_RESOLVED, identity.filename)

        media_files = []
        if entry.attached_files:
            media_files = self.formatter.render_media(entry, identity.media_suffix or "")
        contents = self.formatter.format(entry, media_files)
        contents = format_tags(contents, key=self.tags_key, style=self.tags_style)
        state = self._enter(RequestState.FORMATTED)

        try:
            write_set = self.writer.write(identity, contents, media_files)
            state = self._enter(RequestState.PERSISTED)
            self.invoker.publish(write_set)
        except (PersistenceError, PublishError) as e:
            self._enter(RequestState.FAILED, f"after {state.name}: {e}")
            raise
        state = self._enter(RequestState.PUBLISHED, identity.url)

        report = self.dispatcher.dispatch(identity.url, entry.properties)
        state = self._enter(RequestState.NOTIFIED)

        logger.info(f"Published post: {identity.url}")
        return Publication(url=identity.url, state=state, notifications=report)
