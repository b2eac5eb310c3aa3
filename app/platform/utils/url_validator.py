import ipaddress
import re
import socket
from typing import Iterable, Optional, Union
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

import httpx

from app.platform.exceptions import FailureKind, ValidationFailure

ALLOWED_SCHEMES = ("http", "https")

UTM_PARAMS = frozenset(
    {"utm_source", "utm_medium", "utm_campaign", "utm_term", "utm_content"}
)

# Numeric IPv4 spellings the system resolver also accepts: 2130706433, 0x7f000001, 0177.0.0.1, 10.1
NUMERIC_IPV4_HOST = re.compile(r"^(?:0x[0-9a-f]*|\d+)(?:\.(?:0x[0-9a-f]*|\d+)){0,3}\.?$", re.IGNORECASE)


def _parse_ip_literal(hostname: str) -> Optional[Union[ipaddress.IPv4Address, ipaddress.IPv6Address]]:
    """Return the address if hostname is an IP literal, else None (plain domain names)."""
    host = hostname.strip("[]")
    try:
        return ipaddress.ip_address(host)
    except ValueError:
        pass

    if not NUMERIC_IPV4_HOST.match(host):
        return None
    try:
        return ipaddress.IPv4Address(socket.inet_aton(host.rstrip(".")))
    except OSError:
        # Out of range, e.g. 1.2.3.999; the resolver rejects it too
        return None


def is_private_address(hostname: str) -> bool:
    ip = _parse_ip_literal(hostname)
    if ip is None:
        return False
    # IPv4-mapped IPv6 (::ffff:10.0.0.1) is judged by the embedded IPv4 address
    mapped = getattr(ip, "ipv4_mapped", None)
    if mapped is not None:
        ip = mapped
    return (
        ip.is_private
        or ip.is_loopback
        or ip.is_link_local
        or ip.is_reserved
        or ip.is_multicast
        or ip.is_unspecified
    )


def validate_url(url) -> str:
    """
    Check that a client-supplied URL is safe to fetch.

    Steps run in order and stop at the first failure:
    missing -> malformed -> scheme -> hostname -> private IP literal -> localhost.

    IP literals include the numeric IPv4 spellings (decimal, hex, octal,
    short forms). Domain names are not resolved here, so a public domain
    that later resolves to a private address is not caught.

    Returns:
        The URL exactly as supplied.

    Raises:
        ValidationFailure: with the kind of the first failed check.
    """
    if not isinstance(url, str) or not url.strip():
        raise ValidationFailure(FailureKind.MISSING_URL, field="url")

    # Surrounding whitespace included: the URL is fetched exactly as given
    if any(ch.isspace() for ch in url):
        raise ValidationFailure(FailureKind.MALFORMED_URL, field="url")

    try:
        parsed = urlsplit(url)
        # Accessing .port validates it
        parsed.port
    except ValueError:
        raise ValidationFailure(FailureKind.MALFORMED_URL, field="url")

    if not parsed.scheme or not parsed.netloc:
        # Scheme-only strings such as "javascript:alert(1)" are not URLs we fetch either
        if parsed.scheme and parsed.scheme.lower() not in ALLOWED_SCHEMES:
            raise ValidationFailure(FailureKind.UNSUPPORTED_SCHEME, field="url")
        raise ValidationFailure(FailureKind.MALFORMED_URL, field="url")

    if parsed.scheme.lower() not in ALLOWED_SCHEMES:
        raise ValidationFailure(FailureKind.UNSUPPORTED_SCHEME, field="url")

    hostname = parsed.hostname
    if not hostname:
        raise ValidationFailure(FailureKind.MISSING_HOST, field="url")

    try:
        # httpx must accept it too: control characters, bad IDNA labels such as "xn--"
        httpx.URL(url).host
    except (httpx.InvalidURL, ValueError):
        raise ValidationFailure(FailureKind.MALFORMED_URL, field="url")

    if is_private_address(hostname):
        raise ValidationFailure(FailureKind.PRIVATE_ADDRESS, field="url")

    if hostname.rstrip(".") == "localhost" or hostname.startswith("127."):
        raise ValidationFailure(FailureKind.LOOPBACK_HOST, field="url")

    return url


def normalize_url(url: str) -> str:
    """
    Canonical form used to spot duplicate saved links.

    Drops UTM parameters and the fragment and lower-cases the hostname.
    Falls back to the input unchanged if it cannot be parsed.
    """
    try:
        parsed = urlsplit(url)
        hostname = parsed.hostname
        if not hostname:
            return url

        netloc = parsed.netloc
        userinfo, _, hostport = netloc.rpartition("@")
        hostport = hostport.lower()
        netloc = f"{userinfo}@{hostport}" if userinfo else hostport

        params = [
            (key, value)
            for key, value in parse_qsl(parsed.query, keep_blank_values=True)
            if key not in UTM_PARAMS
        ]
        query = urlencode(params)

        return urlunsplit((parsed.scheme, netloc, parsed.path, query, ""))
    except ValueError:
        return url


def byte_size(text: str) -> int:
    return len(text.encode("utf-8"))


def validate_html_size(html: str, max_size_kb: int, field: str = "raw_html") -> None:
    """Reject HTML above max_size_kb kilobytes. Exactly at the limit is allowed."""
    size_in_bytes = byte_size(html)
    if size_in_bytes > max_size_kb * 1024:
        raise ValidationFailure(
            FailureKind.PAYLOAD_TOO_LARGE,
            message=(
                f"HTML content exceeds maximum size of {max_size_kb}KB "
                f"(actual: {size_in_bytes / 1024:.2f}KB)"
            ),
            field=field,
        )


def validate_content_type(content_type: str, allowed_types: Iterable[str]) -> None:
    lowered = (content_type or "").lower()
    if not any(allowed.lower() in lowered for allowed in allowed_types):
        raise ValidationFailure(
            FailureKind.UNSUPPORTED_CONTENT_TYPE,
            message=f"Invalid content type: {content_type or 'missing'}. Expected text/html",
            field="content-type",
        )
