"""
IndieWeb Module for microstat.

This module delivers the notifications that follow a published post:
webmentions to every URL the post replies to, and a micro.blog feed ping
for posts that aren't replies.

Features:
    - W3C Webmention endpoint discovery and sending
    - Direct delivery to micro.blog's webmention receiver for micro.blog replies
    - micro.blog feed ping
    - Per-target failure isolation

Usage:
    >>> from indieweb import NotificationDispatcher
    >>>
    >>> dispatcher = NotificationDispatcher.from_config(config)
    >>> report = dispatcher.dispatch(post_url, entry.properties)

Configuration (config.yml):
    app:
      microblog_ping_feed_url: "https://example.com/feed.xml"
    webmention:
      timeout: 30
"""

from indieweb.webmention import (
    WebmentionResult,
    discover_webmention_endpoint,
    send_webmention,
    send_direct_webmention,
    ping_feed,
)
from indieweb.dispatch import (
    DeliveryStrategy,
    DispatchReport,
    NotificationDispatcher,
    choose_strategy,
)

__all__ = [
    "WebmentionResult",
    "discover_webmention_endpoint",
    "send_webmention",
    "send_direct_webmention",
    "ping_feed",
    "DeliveryStrategy",
    "DispatchReport",
    "NotificationDispatcher",
    "choose_strategy",
]
