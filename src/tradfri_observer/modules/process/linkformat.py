"""
CoRE link-format (RFC 6690) parser for ``.well-known/core`` documents.

Example document served by a Trådfri gateway::

    </15001/65536>;ct=0;obs,</15004/131073>;ct=0;obs,</15011/9063>;ct=0

Parameters without a value (``obs``) map to ``True``; quoted values are
unquoted. Links are keyed by their target as written, leading slash included.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator

from ...core.contracts import Link

logger = logging.getLogger(__name__)


class LinkFormatError(ValueError):
    """Raised when a link-format document cannot be parsed."""


def _split_unquoted(text: str, separator: str) -> Iterator[str]:
    """Split on ``separator`` outside of double quotes and angle brackets."""
    start = 0
    quoted = False
    bracketed = False
    escaped = False
    for index, char in enumerate(text):
        if escaped:
            escaped = False
            continue
        if quoted and char == "\\":
            escaped = True
        elif char == '"' and not bracketed:
            quoted = not quoted
        elif char == "<" and not quoted:
            bracketed = True
        elif char == ">" and not quoted:
            bracketed = False
        elif char == separator and not quoted and not bracketed:
            yield text[start:index]
            start = index + 1
    if quoted:
        raise LinkFormatError("Unterminated quoted string in link-format document")
    yield text[start:]


def _unquote(value: str) -> str:
    if len(value) >= 2 and value[0] == value[-1] == '"':
        value = value[1:-1]
        return value.replace('\\"', '"').replace("\\\\", "\\")
    return value


def parse_link(raw: str) -> Link:
    parts = [part.strip() for part in _split_unquoted(raw.strip(), ";")]
    target = parts[0]
    if not (target.startswith("<") and target.endswith(">")):
        raise LinkFormatError(f"Link target must be enclosed in <>: {target!r}")
    attributes: dict[str, str | bool] = {}
    for param in parts[1:]:
        if not param:
            continue
        name, sep, value = param.partition("=")
        name = name.strip()
        if not name:
            raise LinkFormatError(f"Empty parameter name in link {raw!r}")
        attributes[name] = _unquote(value.strip()) if sep else True
    return Link(path=target[1:-1], attributes=attributes)


def parse_core_links(document: str | bytes) -> dict[str, Link]:
    """Parse a link-format document into ``{target: Link}``."""
    if isinstance(document, bytes):
        document = document.decode("utf-8")
    links: dict[str, Link] = {}
    if not document.strip():
        return links
    for raw in _split_unquoted(document, ","):
        if not raw.strip():
            continue
        link = parse_link(raw)
        if link.path in links:
            logger.debug("Duplicate link %s in discovery document; keeping the last one", link.path)
        links[link.path] = link
    return links


__all__ = ["LinkFormatError", "parse_core_links", "parse_link"]
