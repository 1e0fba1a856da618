"""
Post-publication notifications.

After a post is published, each URL it replies to is sent a webmention,
one at a time and in order. A failure for one target is logged and
recorded but never stops the others, and never fails the request.

Posts that aren't replies instead trigger a micro.blog feed ping, when a
feed URL is configured.
"""
import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from indieweb.webmention import (
    DEFAULT_TIMEOUT,
    WebmentionResult,
    ping_feed,
    send_direct_webmention,
    send_webmention,
)


logger = logging.getLogger(__name__)

MICROBLOG_REPLY_PATTERN = re.compile(r"^\[@.*\]\(https?://micro\.blog/.*\)")


class DeliveryStrategy(Enum):
    """How a reply's webmention is delivered."""

    DIRECT = "direct"
    DISCOVERY = "discovery"


def choose_strategy(properties: Dict[str, List[Any]]) -> DeliveryStrategy:
    """Pick the webmention strategy for a post.

    Replies to micro.blog users start with a ``[@user](https://micro.blog/user)``
    link in their content; those go straight to micro.blog's receiver.
    Everything else goes through endpoint discovery.
    """
    for content in properties.get("content") or []:
        if MICROBLOG_REPLY_PATTERN.search(str(content)):
            return DeliveryStrategy.DIRECT
    return DeliveryStrategy.DISCOVERY


@dataclass
class DispatchReport:
    """What the dispatcher attempted for one post.

    Attributes:
        webmentions: One result per reply target, in target order
        ping: Feed ping result, or None when no ping was attempted
    """
    webmentions: List[WebmentionResult] = field(default_factory=list)
    ping: Optional[WebmentionResult] = None


class NotificationDispatcher:
    """Sends webmentions for replies and pings micro.blog for other posts."""

    def __init__(self, ping_feed_url: Optional[str] = None, timeout: float = DEFAULT_TIMEOUT):
        self.ping_feed_url = ping_feed_url or None
        self.timeout = timeout

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> "NotificationDispatcher":
        return cls(
            ping_feed_url=config.get("app", {}).get("microblog_ping_feed_url") or None,
            timeout=config.get("webmention", {}).get("timeout", DEFAULT_TIMEOUT),
        )

    def _deliver(self, strategy: DeliveryStrategy, post_url: str, reply_url: str) -> WebmentionResult:
        if strategy is DeliveryStrategy.DIRECT:
            logger.info("Reply is targeted at a micro.blog user, using micro.blog Webmention endpoint.")
            return send_direct_webmention(post_url, reply_url, timeout=self.timeout)
        logger.info("Reply is not targeted at a micro.blog user, auto-discovering Webmention endpoint.")
        return send_webmention(post_url, reply_url, timeout=self.timeout)

    def dispatch(self, post_url: str, properties: Dict[str, List[Any]]) -> DispatchReport:
        """Send all notifications for a published post.

        Args:
            post_url: Public URL of the published post (the webmention source)
            properties: Normalized post properties

        Returns:
            DispatchReport of every attempt. Never raises for delivery failures.
        """
        report = DispatchReport()
        reply_urls = [str(u) for u in properties.get("in-reply-to") or []]

        if reply_urls:
            strategy = choose_strategy(properties)
            for reply_url in reply_urls:
                logger.info(f"Post is a reply to [{reply_url}]; will attempt to send Webmention.")
                try:
                    result = self._deliver(strategy, post_url, reply_url)
                except Exception as e:
                    logger.error(f"Couldn't send Webmention to [{reply_url}]: {e}", exc_info=True)
                    result = WebmentionResult(success=False, status_code=0, message=str(e), target=reply_url)

                if result.success:
                    logger.info(f"Successfully sent Webmention: [{post_url} -> {reply_url}]")
                else:
                    logger.error(f"Couldn't send Webmention to [{reply_url}]: {result.message}")
                    logger.error("Continuing nonfatally...")
                report.webmentions.append(result)

        elif self.ping_feed_url:
            try:
                report.ping = ping_feed(self.ping_feed_url, timeout=self.timeout)
            except Exception as e:
                logger.error(f"Couldn't ping micro.blog: {e}", exc_info=True)
                report.ping = WebmentionResult(success=False, status_code=0, message=str(e))

            if report.ping.success:
                logger.info("Successfully pinged micro.blog.")
            else:
                logger.error(f"Couldn't ping micro.blog! {report.ping.message}")
                logger.error("Continuing nonfatally...")

        return report
