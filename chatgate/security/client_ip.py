"""Client IP resolution for rate-limit bucketing.

Header precedence is a fixed contract with the edge in front of us:

1. ``cf-connecting-ip`` (injected by the trusted edge)
2. first hop of ``x-forwarded-for``
3. ``x-real-ip``

Values that are not a dotted-quad IPv4 address or a fully expanded
eight-group IPv6 address are skipped. Compressed and scoped IPv6 forms
are rejected, so free-form text can never mint a new bucket. When nothing
resolves, every such client shares the ``unknown`` bucket.
"""

import re
from collections.abc import Mapping

from chatgate.errors import InvalidClientIdentity
from chatgate.logging.audit import get_audit_logger

UNKNOWN_CLIENT = "unknown"

_IPV4_PATTERN = re.compile(r"([0-9]{1,3})\.([0-9]{1,3})\.([0-9]{1,3})\.([0-9]{1,3})")
_IPV6_PATTERN = re.compile(r"([0-9a-fA-F]{1,4}:){7}[0-9a-fA-F]{1,4}")


def is_valid_ip(value: str) -> bool:
    match = _IPV4_PATTERN.fullmatch(value)
    if match:
        return all(int(octet) <= 255 for octet in match.groups())
    return _IPV6_PATTERN.fullmatch(value) is not None


def _candidates(headers: Mapping[str, str]):
    yield headers.get("cf-connecting-ip")
    forwarded_for = headers.get("x-forwarded-for")
    if forwarded_for:
        yield forwarded_for.split(",")[0]
    yield headers.get("x-real-ip")


def resolve_client_ip(headers: Mapping[str, str]) -> str:
    """Return the first valid client IP from the proxy headers.

    ``headers`` must be case-insensitive (Starlette ``Headers``) or use
    lower-case names.

    Raises:
        InvalidClientIdentity: no header carried a valid IP.
    """
    for candidate in _candidates(headers):
        if candidate is None:
            continue
        candidate = candidate.strip()
        if is_valid_ip(candidate):
            return candidate
    raise InvalidClientIdentity("No valid client IP in proxy headers")


def get_client_ip(headers: Mapping[str, str]) -> str:
    try:
        return resolve_client_ip(headers)
    except InvalidClientIdentity:
        get_audit_logger().debug("Client IP unresolved, using shared bucket")
        return UNKNOWN_CLIENT


def rate_limit_key(headers: Mapping[str, str], prefix: str) -> str:
    return f"{prefix}:{get_client_ip(headers)}"
