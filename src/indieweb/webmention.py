"""
Webmention protocol implementation.

Provides the two ways microstat delivers a webmention for a reply, plus
the micro.blog feed ping:

- Discovery: find the target's own webmention endpoint (HTTP ``Link``
  header, then ``<link>``/``<a rel="webmention">`` in the HTML) and POST
  there.
- Direct: POST straight to micro.blog's webmention receiver. Replies to
  micro.blog users are delivered this way because micro.blog user pages
  don't advertise an endpoint of their own.
- Feed ping: ask micro.blog to re-check the site feed for new posts.

Webmention is a W3C standard for notifying a URL when you link to it:

    POST {webmention-endpoint}
    Content-Type: application/x-www-form-urlencoded

    source={your-post-url}&target={linked-url}

Usage:
    >>> from indieweb.webmention import send_webmention, send_direct_webmention
    >>> result = send_webmention("https://example.com/microblog/post.html", "https://other.example/entry")
    >>> result = send_direct_webmention("https://example.com/microblog/post.html", "https://micro.blog/someone/123")

References:
    - W3C Webmention: https://www.w3.org/TR/webmention/
    - micro.blog: https://help.micro.blog/t/sending-webmentions/
"""

import ipaddress
import logging
import re
import socket
from dataclasses import dataclass
from typing import Optional
from urllib.parse import urljoin, urlparse

import mf2py
import requests


logger = logging.getLogger(__name__)

USER_AGENT = "microstat/1.0.0"
# W3C spec: include "Webmention" in the User-Agent of discovery and sending
WEBMENTION_USER_AGENT = f"Webmention ({USER_AGENT})"
MICROBLOG_WEBMENTION_ENDPOINT = "https://micro.blog/webmention"
MICROBLOG_PING_ENDPOINT = "https://micro.blog/ping"
MAX_DISCOVERY_RESPONSE_BYTES = 1_048_576  # 1 MB
MAX_REDIRECTS = 20  # W3C Webmention spec recommendation
DEFAULT_TIMEOUT = 30.0


def _is_private_or_loopback(url: str) -> bool:
    """Check if a URL resolves to a private or loopback address.

    Discovery follows URLs taken from a post's reply targets, so endpoints
    on localhost or private networks are refused.

    Args:
        url: The URL to check.

    Returns:
        True if the URL resolves to a private/loopback address.
    """
    try:
        parsed = urlparse(url)
        hostname = parsed.hostname
        if not hostname:
            return True

        infos = socket.getaddrinfo(hostname, None, socket.AF_UNSPEC, socket.SOCK_STREAM)
        for family, _, _, _, sockaddr in infos:
            ip_str = sockaddr[0]
            addr = ipaddress.ip_address(ip_str)
            if addr.is_private or addr.is_loopback or addr.is_reserved or addr.is_link_local:
                logger.warning(
                    f"Blocked request to private/loopback address: url={url}, resolved={ip_str}"
                )
                return True
    except (socket.gaierror, ValueError, OSError) as e:
        logger.warning(f"DNS resolution failed for URL {url}: {e}")
        return True

    return False


def _build_session() -> requests.Session:
    """Build a requests Session with webmention-appropriate settings."""
    session = requests.Session()
    session.headers["User-Agent"] = WEBMENTION_USER_AGENT
    session.max_redirects = MAX_REDIRECTS
    return session


@dataclass
class WebmentionResult:
    """Result of a webmention send attempt.

    Attributes:
        success: Whether the webmention was accepted
        status_code: HTTP status code from the response (0 for connection errors)
        message: Human-readable status message
        location: Optional status URL returned by some endpoints
        endpoint: Webmention endpoint URL used for this send, if one was found
        target: The URL the webmention was sent for
    """
    success: bool
    status_code: int
    message: str
    location: Optional[str] = None
    endpoint: Optional[str] = None
    target: Optional[str] = None


def _read_bounded_response(response: requests.Response, limit: int) -> bytes:
    """Read a streamed response body, stopping once ``limit`` bytes are read."""
    chunks = []
    bytes_read = 0
    try:
        for chunk in response.iter_content(chunk_size=8192, decode_unicode=False):
            chunks.append(chunk)
            bytes_read += len(chunk)
            if bytes_read > limit:
                logger.warning(f"Response too large ({bytes_read}+ bytes): {response.url}")
                break
    finally:
        response.close()
    return b"".join(chunks)


def discover_webmention_endpoint(target_url: str, timeout: float = DEFAULT_TIMEOUT) -> Optional[str]:
    """Discover the webmention endpoint for a target URL.

    Follows the W3C Webmention discovery algorithm:
    1. Check HTTP Link header for rel="webmention"
    2. Parse HTML for the first <link> or <a> with rel="webmention"

    Args:
        target_url: The URL to discover the webmention endpoint for.
        timeout: Request timeout in seconds.

    Returns:
        The absolute webmention endpoint URL, or None if not found.
    """
    if _is_private_or_loopback(target_url):
        logger.warning(f"Blocked discovery for private/loopback URL: {target_url}")
        return None

    session = _build_session()
    try:
        response = session.get(
            target_url,
            headers={"Accept": "text/html"},
            timeout=timeout,
            allow_redirects=True,
            stream=True,
        )
        response.raise_for_status()
    except requests.exceptions.TooManyRedirects:
        logger.error(f"Too many redirects during webmention discovery: {target_url}")
        return None
    except requests.exceptions.RequestException as e:
        logger.error(f"Failed to fetch target for webmention discovery: {target_url}, error={e}")
        return None

    # Relative endpoints resolve against the final URL after redirects
    base_url = response.url or target_url

    link_header = response.headers.get("Link", "")
    if link_header:
        # Match: <URL>; rel="webmention"  or  <URL>; rel=webmention
        match = re.search(r'<([^>]*)>\s*;\s*rel="?(?:[^";,]*\s)?webmention(?=[\s";,]|$)', link_header)
        if match:
            response.close()
            return urljoin(base_url, match.group(1))

    body = _read_bounded_response(response, MAX_DISCOVERY_RESPONSE_BYTES)

    encoding = response.encoding or "utf-8"
    try:
        html_body = body.decode(encoding, errors="replace")
    except (LookupError, UnicodeDecodeError):
        html_body = body.decode("utf-8", errors="replace")

    # mf2py collects <link>, <a> and <area> rels in document order and
    # resolves them against the page URL
    parsed = mf2py.parse(doc=html_body, url=base_url)
    endpoints = parsed.get("rels", {}).get("webmention", [])
    if endpoints:
        return endpoints[0]

    logger.info(f"No webmention endpoint found for: {target_url}")
    return None


def _post_form(
    endpoint: str,
    data: dict,
    timeout: float,
    description: str,
    target: Optional[str] = None,
) -> WebmentionResult:
    session = _build_session()
    try:
        response = session.post(
            endpoint,
            data=data,
            headers={"Content-Type": "application/x-www-form-urlencoded"},
            timeout=timeout,
        )
    except requests.exceptions.TooManyRedirects:
        logger.error(f"Too many redirects sending {description}: endpoint={endpoint}")
        return WebmentionResult(success=False, status_code=0, message="Too many redirects",
                                endpoint=endpoint, target=target)
    except requests.exceptions.Timeout:
        logger.error(f"{description.capitalize()} request timed out: endpoint={endpoint}")
        return WebmentionResult(success=False, status_code=0, message="Request timed out",
                                endpoint=endpoint, target=target)
    except requests.exceptions.RequestException as e:
        logger.error(f"{description.capitalize()} request failed: endpoint={endpoint}, error={e}")
        return WebmentionResult(success=False, status_code=0, message=f"Request failed: {e}",
                                endpoint=endpoint, target=target)

    if response.ok:
        location = response.headers.get("Location")
        logger.info(
            f"{description.capitalize()} accepted: endpoint={endpoint}, "
            f"status_code={response.status_code}, location={location}"
        )
        return WebmentionResult(
            success=True,
            status_code=response.status_code,
            message=f"{description.capitalize()} accepted",
            location=location,
            endpoint=endpoint,
            target=target,
        )

    error_msg = _parse_error_response(response)
    logger.warning(
        f"{description.capitalize()} rejected: endpoint={endpoint}, "
        f"status_code={response.status_code}, error={error_msg}"
    )
    return WebmentionResult(
        success=False,
        status_code=response.status_code,
        message=error_msg,
        endpoint=endpoint,
        target=target,
    )


def send_webmention(source_url: str, target_url: str, timeout: float = DEFAULT_TIMEOUT) -> WebmentionResult:
    """Send a webmention from source to target with automatic endpoint discovery.

    Args:
        source_url: The URL of our post.
        target_url: The URL being replied to.
        timeout: Request timeout in seconds.

    Returns:
        WebmentionResult with success status and details.
    """
    endpoint = discover_webmention_endpoint(target_url, timeout=timeout)
    if not endpoint:
        return WebmentionResult(
            success=False,
            status_code=0,
            message=f"No webmention endpoint found for {target_url}",
            endpoint=None,
            target=target_url,
        )

    if _is_private_or_loopback(endpoint):
        return WebmentionResult(
            success=False,
            status_code=0,
            message=f"Endpoint resolves to a private or loopback address: {endpoint}",
            endpoint=endpoint,
            target=target_url,
        )

    logger.info(f"Sending webmention: source={source_url}, target={target_url}, endpoint={endpoint}")
    return _post_form(
        endpoint,
        {"source": source_url, "target": target_url},
        timeout,
        "webmention",
        target=target_url,
    )


def send_direct_webmention(
    source_url: str,
    target_url: str,
    endpoint: str = MICROBLOG_WEBMENTION_ENDPOINT,
    timeout: float = DEFAULT_TIMEOUT,
) -> WebmentionResult:
    """Send a webmention to a fixed, known endpoint without discovery.

    Args:
        source_url: The URL of our post.
        target_url: The URL being replied to.
        endpoint: Webmention receiver to POST to (micro.blog by default).
        timeout: Request timeout in seconds.
    """
    logger.info(f"Sending webmention: source={source_url}, target={target_url}, endpoint={endpoint}")
    return _post_form(
        endpoint,
        {"source": source_url, "target": target_url},
        timeout,
        "webmention",
        target=target_url,
    )


def ping_feed(feed_url: str, endpoint: str = MICROBLOG_PING_ENDPOINT, timeout: float = DEFAULT_TIMEOUT) -> WebmentionResult:
    """Ask a feed aggregator (micro.blog by default) to re-check a feed.

    Args:
        feed_url: URL of the site's RSS/Atom/JSON feed.
        endpoint: Ping receiver to POST to.
        timeout: Request timeout in seconds.
    """
    logger.info(f"Pinging {endpoint} with feed URL [{feed_url}]...")
    return _post_form(endpoint, {"url": feed_url}, timeout, "feed ping")


def _parse_error_response(response: requests.Response) -> str:
    """Parse error message from an HTTP response."""
    try:
        data = response.json()
    except ValueError:
        data = None
    if isinstance(data, dict) and "error" in data:
        return data.get("error_description", data["error"])

    text = (response.text or "").strip()
    if text and len(text) < 200:
        return f"HTTP {response.status_code}: {text}"
    return f"HTTP {response.status_code}: {response.reason}"
