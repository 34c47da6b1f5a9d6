"""
Cookie header codec.

Converts between the wire representation of cookies (``Cookie`` and
``Set-Cookie`` header strings) and plain ``{name: value}`` dictionaries.
Values are escaped the way browsers' ``encodeURIComponent`` does it.
"""

import logging
import re
from typing import Optional, Sequence, Union
from urllib.parse import quote, unquote

from secure_cookie_proxy.exceptions import CookieFormatError

logger = logging.getLogger(__name__)

Cookies = dict[str, str]

# Anything but control characters and the pair separators
_INVALID_NAME_RE = re.compile(r"[\x00-\x08\x0a-\x1f\x7f;=]")
_PAIR_SPLIT_RE = re.compile(r"; *")

# encodeURIComponent leaves these alone on top of letters, digits and "_.-~"
_VALUE_SAFE = "!*'()"


def is_valid_name(name: str) -> bool:
    """Check if a cookie name can be sent in a Cookie header."""
    return bool(name) and _INVALID_NAME_RE.search(name) is None


def _unescape(value: str) -> str:
    """Strip surrounding quotes and percent-decode a cookie value."""
    if len(value) >= 2 and value[0] == '"' and value[-1] == '"':
        value = value[1:-1]
    if "%" not in value:
        return value
    try:
        return unquote(value, errors="strict")
    except UnicodeDecodeError:
        return value


def serialize_cookie(name: str, value: str, path: Optional[str] = None) -> str:
    """
    Serialize a single cookie as ``name=value`` with optional attributes.

    Args:
        name: Cookie name, without control characters, `;` or `=`.
        value: Cookie value, escaped on output.
        path: Optional ``Path`` attribute.

    Returns:
        The serialized cookie string.

    Raises:
        CookieFormatError: If the name cannot be serialized.
    """
    if not is_valid_name(name):
        raise CookieFormatError(f"Invalid cookie name: {name!r}")

    parts = [f"{name}={quote(str(value), safe=_VALUE_SAFE)}"]
    if path is not None:
        parts.append(f"Path={path}")
    return "; ".join(parts)


def encode(cookies: Cookies) -> str:
    """
    Serialize cookies into a ``Cookie`` request header value.

    Output order follows the dictionary's insertion order.
    """
    return "; ".join(serialize_cookie(name, value) for name, value in cookies.items())


def decode(header: Optional[str], strict: bool = False) -> Cookies:
    """
    Parse a ``Cookie`` header value into a dictionary.

    Segments without ``=`` or without a usable name are skipped. When a
    name occurs more than once the last occurrence wins.

    Args:
        header: Raw header value, may be None.
        strict: Raise if non-blank input yields no cookies at all.
            Used for credential strings typed in or loaded from storage.

    Returns:
        Parsed cookies; empty for missing input.

    Raises:
        CookieFormatError: In strict mode, if nothing could be parsed.
    """
    cookies: Cookies = {}
    if not header or not header.strip():
        return cookies

    skipped = []
    for pair in _PAIR_SPLIT_RE.split(header.strip()):
        if not pair.strip():
            continue

        name, sep, value = pair.partition("=")
        name = name.strip()

        if not sep or not is_valid_name(name):
            skipped.append(pair)
            continue

        cookies[name] = _unescape(value.strip())

    if skipped:
        logger.debug(f"Skipped {len(skipped)} malformed cookie segment(s)")
    if strict and not cookies:
        raise CookieFormatError(f"No cookies found in {len(skipped)} segment(s)")

    return cookies


def decode_set_cookie(
    headers: Union[None, str, Sequence[str]],
) -> tuple[list[str], Cookies]:
    """
    Normalize ``Set-Cookie`` response header values.

    Only the text before the first ``;`` of each directive is parsed, split
    on its first ``=``. Attributes are ignored.

    Args:
        headers: Absent, a single directive, or a list of directives.

    Returns:
        Tuple of (raw directive list, parsed name -> value mapping).
    """
    if not headers:
        return [], {}

    if isinstance(headers, str):
        directives = [headers]
    else:
        directives = [str(h) for h in headers]

    cookies: Cookies = {}
    for directive in directives:
        name, _, value = directive.split(";", 1)[0].partition("=")
        cookies[name.strip()] = value.strip()

    return directives, cookies


def strip_cookie_label(text: str) -> str:
    """
    Remove a leading ``Cookie:`` label as copied from browser dev tools.

    >>> strip_cookie_label("Cookie: sid=abc")
    'sid=abc'
    """
    return re.sub(r"^\s*cookie:\s*", "", text, flags=re.IGNORECASE).strip()
