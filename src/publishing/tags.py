"""
Tag style rewriting for rendered post front matter.

The formatter always renders tags Jekyll-style, as one space-delimited
line (``tags: foo bar``). This module renames that key and, for Hugo-style
sites, expands the value into a YAML list:

    tags: foo bar baz        categories:
                      --->   - foo
                             - bar
                             - baz

The rewrite works on the rendered text, so only the first ``tags:`` line is
considered. Tags containing spaces cannot be represented; splitting is
purely on the space character.
"""
import logging
import re
from enum import Enum


logger = logging.getLogger(__name__)

TAGS_LINE_PATTERN = re.compile(r"^tags: (.*)$", re.IGNORECASE | re.MULTILINE)


class TagStyle(Enum):
    """How the tags line of a post's front matter is rendered."""

    SPACE_DELIMITED = "space_delimited"
    YAML_LIST = "yaml_list"

    @classmethod
    def from_config(cls, value: str) -> "TagStyle":
        """Look up a style by its configured name (case-insensitive)."""
        return cls(value.lower())


def format_tags(contents: str, key: str = "tags", style: TagStyle = TagStyle.SPACE_DELIMITED) -> str:
    """Rewrite the tags line of rendered post contents.

    Args:
        contents: Rendered post (front matter and body)
        key: Front matter key that tags should be assigned to
        style: Target tag style

    Returns:
        The rewritten contents, or ``contents`` unchanged if it has no tags line.
    """
    match = TAGS_LINE_PATTERN.search(contents)
    if match is None:
        return contents

    if style is TagStyle.YAML_LIST:
        tags = match.group(1).split(" ")
        replacement = f"{key}:\n" + "\n".join(f"- {tag}" for tag in tags)
    else:
        replacement = f"{key}: {match.group(1)}"

    logger.debug(f"Rewrote tags line as {style.value} under key '{key}'")
    return contents[:match.start()] + replacement + contents[match.end():]
