"""Pre-flight validation of scan targets.

Every check here runs before a single packet leaves the machine. A target
that fails raises a ScanInputError subclass carrying a 400 status code.
"""

import ipaddress
import logging
import re
import socket
from urllib.parse import urlparse

from shieldscan.util.errors import InvalidTargetError, BlockedTargetError

logger = logging.getLogger(__name__)

MAX_URL_LENGTH = 2048

# Loopback, RFC 1918 and "this network" prefixes, matched on the normalized URL
BLOCKED_PATTERNS = [
    re.compile(r'^https?://localhost', re.I),
    re.compile(r'^https?://127\.'),
    re.compile(r'^https?://10\.'),
    re.compile(r'^https?://172\.(1[6-9]|2[0-9]|3[01])\.'),
    re.compile(r'^https?://192\.168\.'),
    re.compile(r'^https?://0\.'),
    re.compile(r'^https?://\[::1\]'),
]


def normalize_url(raw: str) -> str:
    """Trim, lowercase and default the scheme to https.

    Raises InvalidTargetError for empty, oversized or unparseable input.
    """
    if raw is None or not str(raw).strip():
        raise InvalidTargetError("URL is required")

    url = str(raw).strip().lower()
    if len(url) > MAX_URL_LENGTH:
        raise InvalidTargetError("URL too long")

    if not url.startswith(('http://', 'https://')):
        url = 'https://' + url

    try:
        parsed = urlparse(url)
        # Accessing .port validates it
        parsed.port
    except ValueError as e:
        raise InvalidTargetError(f"Invalid URL provided: {e}") from e

    if not parsed.hostname:
        raise InvalidTargetError("Invalid URL provided")

    return url


# Legacy numeric IPv4 forms: 2130706433, 127.1, 0x7f.0.0.1
NUMERIC_HOST = re.compile(r'^(0x[0-9a-f]+|\d+)(\.(0x[0-9a-f]+|\d+)){0,3}$')


def parse_ip_host(hostname: str):
    """IP address a hostname denotes literally, or None for a DNS name."""
    try:
        return ipaddress.ip_address(hostname)
    except ValueError:
        pass
    if NUMERIC_HOST.match(hostname):
        try:
            return ipaddress.ip_address(socket.inet_aton(hostname))
        except OSError:
            return None
    return None


def is_internal_address(ip) -> bool:
    return ip.is_private or ip.is_loopback or ip.is_link_local or ip.is_unspecified


def _is_internal_ip(hostname: str) -> bool:
    ip = parse_ip_host(hostname)
    return ip is not None and is_internal_address(ip)


def validate_target(raw: str) -> str:
    """Normalize a target URL and refuse internal addresses.

    Returns the normalized URL that the scan should use.
    """
    url = normalize_url(raw)

    if any(pattern.search(url) for pattern in BLOCKED_PATTERNS):
        logger.warning(f"Blocked internal target: {url}")
        raise BlockedTargetError("Cannot scan internal or private addresses")

    hostname = urlparse(url).hostname or ''
    if _is_internal_ip(hostname):
        logger.warning(f"Blocked internal target: {url}")
        raise BlockedTargetError("Cannot scan internal or private addresses")

    return url


def check_resolved_addresses(hostname: str, addresses) -> None:
    """Refuse a name that resolves into internal address space.

    Runs after DNS and before any connection to the target.
    """
    for address in addresses:
        try:
            ip = ipaddress.ip_address(address)
        except ValueError:
            continue
        if is_internal_address(ip):
            logger.warning(f"Blocked {hostname}: resolves to internal address {address}")
            raise BlockedTargetError("Cannot scan internal or private addresses")
