from __future__ import annotations

import re
from urllib.parse import urlsplit


_IPV4_RE = re.compile(r"^(\d{1,3}\.){3}\d{1,3}$")
_IPV6_RE = re.compile(r"^([0-9a-fA-F]{0,4}:){2,7}[0-9a-fA-F]{0,4}$")
_HOSTNAME_RE = re.compile(
    r"^[a-zA-Z0-9]([a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?(\.[a-zA-Z0-9]([a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?)*$"
)


def is_valid_target(target: object) -> bool:
    """
    Accept an IPv4 address, a (loosely checked) IPv6 address, or an RFC-1123 hostname.
    Anything else must never reach a subprocess or a socket.
    """
    if not isinstance(target, str) or not target:
        return False

    if _IPV4_RE.match(target):
        return all(0 <= int(p) <= 255 for p in target.split("."))

    if _IPV6_RE.match(target):
        return True

    return bool(_HOSTNAME_RE.match(target)) and len(target) <= 253


def split_host_port(target: str, *, option_port: int | None, default_port: int) -> tuple[str, int]:
    host, sep, port_str = (target or "").partition(":")
    port = None
    if sep:
        try:
            port = int(port_str)
        except ValueError:
            port = None
    if not port:
        port = option_port or default_port
    return host.strip(), int(port)


def target_hostname(target: str) -> str | None:
    """
    Hostname of a URL target, or None when the target is not an absolute URL.
    """
    s = (target or "").strip()
    if not s:
        return None
    try:
        parts = urlsplit(s)
    except ValueError:
        return None
    if not parts.scheme or not parts.netloc:
        return None
    return parts.hostname or None
