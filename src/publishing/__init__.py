"""Publishing pipeline package.

Turns a Micropub document into a post in the site source tree, runs the
site's publish command, and hands the published post to the notification
dispatcher.

Key Components:
    RequestHandler: Orchestrates one request end to end
    PathResolver: Post filename, URL and media paths from (published, slug)
    PersistenceWriter: Writes post and media files, tracking them for rollback
    PublishInvoker: Runs the publish command; rolls back writes on failure
    format_tags: Rewrites the front matter tags line

Usage:
    >>> from publishing import RequestHandler
    >>> handler = RequestHandler.from_config(config)
    >>> handler.handle(document).to_response()
    {'url': 'https://example.com/microblog/2024/01/02_03.04.05_hello.html'}
"""
from publishing.handler import Publication, RejectedRequestError, RequestHandler, RequestState
from publishing.paths import PathGenerators, PathResolver, ResolvedIdentity, TemplatePathGenerators
from publishing.publish import PublishError, PublishInvoker
from publishing.tags import TagStyle, format_tags
from publishing.writer import PersistenceError, PersistenceWriter, WriteSet, rollback

__all__ = [
    "Publication",
    "RejectedRequestError",
    "RequestHandler",
    "RequestState",
    "PathGenerators",
    "PathResolver",
    "ResolvedIdentity",
    "TemplatePathGenerators",
    "PublishError",
    "PublishInvoker",
    "TagStyle",
    "format_tags",
    "PersistenceError",
    "PersistenceWriter",
    "WriteSet",
    "rollback",
]
