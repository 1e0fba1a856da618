"""
Configuration Module for microstat.

This module provides configuration loading and validation for the microstat
application. Configuration is loaded from config.yml and merged over the
built-in defaults, so a site only has to override what differs.

Validation is a separate pass that returns a list of violations instead of
exiting; the process entry point decides what to do with them.

Usage:
    >>> from config import load_config, validate_config
    >>> config = load_config()
    >>> for violation in validate_config(config):
    ...     print(violation)
"""
import copy
import importlib
import logging
import os
import yaml
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Any, List, Optional
from urllib.parse import urlparse
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError


logger = logging.getLogger(__name__)
DEFAULT_TIMEZONE = "UTC"

POST_TAG_STYLES = ("space_delimited", "yaml_list")
MEDIA_FILENAME_MARKER = ":filesslug"

DEFAULT_POST_FILENAME_TEMPLATE = "{published:%Y/%m/%d_%H.%M.%S}{slug_suffix}.md"
DEFAULT_POST_URL_TEMPLATE = "https://example.com/microblog/{published:%Y/%m/%d_%H.%M.%S}{slug_suffix}.html"
DEFAULT_MEDIA_PREFIX_TEMPLATE = "static/"
DEFAULT_MEDIA_SUFFIX_TEMPLATE = "microblog_assets/:year/:month/:slug_:filesslug"


def load_config(config_path: Optional[str] = None) -> Dict[str, Any]:
    """Load configuration from config.yml file.

    Args:
        config_path: Path to config.yml file. If None, looks in current directory
                    and parent directories.

    Returns:
        Dictionary containing configuration settings, merged over the defaults

    Example:
        >>> config = load_config()
        >>> site_root = config["site"]["root"]
    """
    if config_path is None:
        # Try to find config.yml in current directory or parent directories
        current = Path.cwd()
        for parent in [current] + list(current.parents):
            candidate = parent / "config.yml"
            if candidate.exists():
                config_path = str(candidate)
                break

        # If still not found, check the project root (where this file is located)
        if config_path is None:
            project_root = Path(__file__).parent.parent.parent
            candidate = project_root / "config.yml"
            if candidate.exists():
                config_path = str(candidate)

    if config_path is None:
        logger.warning("config.yml not found, using default configuration")
        return get_default_config()

    try:
        with open(config_path, "r") as f:
            loaded = yaml.safe_load(f)
    except FileNotFoundError:
        logger.warning(f"Configuration file not found: {config_path}")
        return get_default_config()
    except yaml.YAMLError as e:
        logger.error(f"Error parsing configuration file: {e}")
        return get_default_config()

    if not isinstance(loaded, dict):
        logger.warning("Configuration root must be a mapping, using default configuration")
        return get_default_config()

    config = _merge(get_default_config(), loaded)
    # Validate timezone at load time to keep behavior consistent everywhere.
    config["timezone"] = get_timezone_name(config)
    logger.info(f"Loaded configuration from {config_path}")
    return config


def get_default_config() -> Dict[str, Any]:
    """Return default configuration when config.yml is not available.

    The defaults reproduce the stock post layout
    (``2024/01/02_03.04.05_hello.md``) but leave the site root, publish
    command and IndieAuth identity pointing at placeholders, so an
    unconfigured install fails validation rather than publishing anywhere.

    Returns:
        Dictionary with default configuration values
    """
    return {
        "timezone": DEFAULT_TIMEZONE,
        "app": {
            "listen_port": 5000,
            "publish_command": "/path/to/a/script",
            "microblog_ping_feed_url": "",
        },
        "site": {
            "root": "/path/to/your/site",
            "indieauth": {
                "identity": "https://example.com",
                "token_endpoint": "https://tokens.indieauth.com/token",
            },
        },
        "posts": {
            "generators": {
                "class": "",
                "filename": DEFAULT_POST_FILENAME_TEMPLATE,
                "url": DEFAULT_POST_URL_TEMPLATE,
            },
            "layout_name": "",
            "tags": {
                "key": "tags",
                "style": "space_delimited",
            },
        },
        "media": {
            "generators": {
                "filename_prefix": DEFAULT_MEDIA_PREFIX_TEMPLATE,
                "filename_suffix": DEFAULT_MEDIA_SUFFIX_TEMPLATE,
            },
        },
        "webmention": {
            "timeout": 30.0,
        },
        "cors": {
            "enabled": False,
            "origins": []
        },
    }


def _merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Recursively merge ``override`` into a copy of ``base``."""
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def get_timezone_name(config: Dict[str, Any]) -> str:
    """Return a validated timezone name from config, with UTC fallback."""
    tz_name = config.get("timezone", DEFAULT_TIMEZONE)
    if not isinstance(tz_name, str) or not tz_name.strip():
        logger.warning(f"Invalid timezone configuration {tz_name!r}; falling back to {DEFAULT_TIMEZONE}")
        return DEFAULT_TIMEZONE

    tz_name = tz_name.strip()
    try:
        ZoneInfo(tz_name)
    except ZoneInfoNotFoundError:
        logger.warning(f"Unknown timezone '{tz_name}'; falling back to {DEFAULT_TIMEZONE}")
        return DEFAULT_TIMEZONE

    return tz_name


def get_timezone(config: Dict[str, Any]) -> ZoneInfo:
    """Return a validated ZoneInfo instance from config."""
    return ZoneInfo(get_timezone_name(config))


def _get(config: Dict[str, Any], dotted_key: str, default: Any = None) -> Any:
    node: Any = config
    for part in dotted_key.split("."):
        if not isinstance(node, dict) or part not in node:
            return default
        node = node[part]
    return node


def _is_valid_url(value: Any) -> bool:
    if not isinstance(value, str):
        return False
    parsed = urlparse(value)
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def _check_url(config: Dict[str, Any], key: str, violations: List[str], optional: bool = False) -> None:
    value = _get(config, key)
    if optional and not value:
        return
    if not _is_valid_url(value):
        violations.append(f"Configured `{key}` must be a valid URL!")


def _check_path(config: Dict[str, Any], key: str, violations: List[str]) -> None:
    value = _get(config, key)
    if not isinstance(value, str) or not os.path.exists(value):
        violations.append(f"Configured `{key}` must exist in the filesystem!")


def _check_template(config: Dict[str, Any], key: str, violations: List[str]) -> None:
    # Render against a sample so bad placeholders are caught at startup.
    template = _get(config, key)
    if not isinstance(template, str):
        violations.append(f"Configured `{key}` must be a string!")
        return
    try:
        template.format(
            published=datetime(2000, 1, 1, tzinfo=timezone.utc),
            slug="slug",
            slug_suffix="_slug",
        )
    except (AttributeError, KeyError, IndexError, ValueError) as e:
        violations.append(f"Configured `{key}` is not a valid template: {e}")


def validate_config(config: Dict[str, Any]) -> List[str]:
    """Validate a loaded configuration.

    Every check runs; nothing short-circuits, so a misconfigured install
    reports all of its problems at once.

    Args:
        config: Configuration dictionary from load_config()

    Returns:
        List of human-readable violations. Empty when the configuration is usable.
    """
    violations: List[str] = []

    # app
    listen_port = _get(config, "app.listen_port")
    if isinstance(listen_port, bool) or not isinstance(listen_port, int) or not 1 <= listen_port <= 65535:
        violations.append("Configured `app.listen_port` must be a number between 1 and 65535!")
    _check_url(config, "app.microblog_ping_feed_url", violations, optional=True)
    _check_path(config, "app.publish_command", violations)

    # site
    _check_url(config, "site.indieauth.identity", violations)
    _check_url(config, "site.indieauth.token_endpoint", violations)
    _check_path(config, "site.root", violations)

    # posts
    generator_class = _get(config, "posts.generators.class")
    if generator_class:
        try:
            load_object(generator_class)
        except (ImportError, AttributeError, ValueError) as e:
            violations.append(f"Configured `posts.generators.class` could not be loaded: {e}")
    else:
        _check_template(config, "posts.generators.filename", violations)
        _check_template(config, "posts.generators.url", violations)

    layout_name = _get(config, "posts.layout_name", "")
    if layout_name is not None and not isinstance(layout_name, str):
        violations.append("Configured `posts.layout_name` must be a string!")

    if not isinstance(_get(config, "posts.tags.key"), str):
        violations.append("Configured `posts.tags.key` must be a string!")

    style = _get(config, "posts.tags.style")
    if not isinstance(style, str) or style.lower() not in POST_TAG_STYLES:
        violations.append(
            f"Configured `posts.tags.style` is invalid! Must be one of: {', '.join(POST_TAG_STYLES)}"
        )

    # media
    if not generator_class:
        _check_template(config, "media.generators.filename_prefix", violations)
        suffix = _get(config, "media.generators.filename_suffix")
        if not isinstance(suffix, str) or MEDIA_FILENAME_MARKER not in suffix:
            violations.append(
                f"Configured `media.generators.filename_suffix` must contain `{MEDIA_FILENAME_MARKER}`!"
            )

    timeout = _get(config, "webmention.timeout")
    if isinstance(timeout, bool) or not isinstance(timeout, (int, float)) or timeout <= 0:
        violations.append("Configured `webmention.timeout` must be a positive number!")

    return violations


def load_object(reference: str) -> Any:
    """Import an object from a ``package.module:Name`` reference.

    Raises:
        ValueError: If the reference is not in ``module:Name`` form
        ImportError: If the module cannot be imported
        AttributeError: If the module has no such attribute
    """
    module_name, sep, attr = reference.partition(":")
    if not sep or not module_name or not attr:
        raise ValueError(f"Expected 'module:Name', got {reference!r}")
    module = importlib.import_module(module_name)
    return getattr(module, attr)
