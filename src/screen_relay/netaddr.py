"""
Network Addressing
==================

Resolve a LAN-reachable host for the human-shareable viewer URL.

A phone on the same network cannot open ``localhost``, so the share URL
prefers a private IPv4 address (10/8, 172.16/12, 192.168/16). When none
is found the URL degrades to a fallback host with a warning; the stream
itself is unaffected.
"""

import ipaddress
import logging
import secrets
import socket
from typing import Iterable, List, Optional
from urllib.parse import quote


logger = logging.getLogger(__name__)

LOOPBACK = "127.0.0.1"

# Route probe target; no packet is sent for a UDP connect
_PROBE_ADDRESS = ("10.255.255.255", 1)


def is_private_ipv4(address: Optional[str]) -> bool:
    """True for 10.x, 172.16-31.x and 192.168.x addresses."""
    if not address:
        return False
    try:
        ip = ipaddress.IPv4Address(address)
    except ValueError:
        return False
    return any(
        ip in network
        for network in (
            ipaddress.IPv4Network("10.0.0.0/8"),
            ipaddress.IPv4Network("172.16.0.0/12"),
            ipaddress.IPv4Network("192.168.0.0/16"),
        )
    )


def _route_address() -> Optional[str]:
    """Address of the interface holding the default route."""
    sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    try:
        sock.connect(_PROBE_ADDRESS)
        return sock.getsockname()[0]
    except OSError as e:
        logger.debug(f"Route probe failed: {e}")
        return None
    finally:
        sock.close()


def _hostname_addresses() -> List[str]:
    try:
        _, _, addresses = socket.gethostbyname_ex(socket.gethostname())
    except OSError as e:
        logger.debug(f"Hostname resolution failed: {e}")
        return []
    return addresses


def candidate_addresses() -> List[str]:
    """IPv4 addresses of this host, route address first, de-duplicated."""
    seen: List[str] = []
    for address in [_route_address(), *_hostname_addresses()]:
        if address and address not in seen:
            seen.append(address)
    return seen


def pick_address(candidates: Iterable[str]) -> Optional[str]:
    """
    Choose the best share host from candidate addresses.

    Private addresses win, ``192.168.`` first among them; otherwise the
    first non-loopback address; otherwise None.
    """
    usable = [
        a for a in candidates
        if a and a != "0.0.0.0" and not a.startswith("127.")
    ]
    private = [a for a in usable if is_private_ipv4(a)]
    if private:
        return next((a for a in private if a.startswith("192.168.")), private[0])
    return usable[0] if usable else None


def discover_local_ip(override: Optional[str] = None) -> str:
    """
    Resolve the host to put in share URLs.

    Args:
        override: Configured address; used only if it is private

    Returns:
        A private address when one exists, else a non-loopback address,
        else 127.0.0.1
    """
    if override:
        if is_private_ipv4(override):
            logger.info(f"Using configured local IP: {override}")
            return override
        logger.warning(f"Ignoring configured local IP {override!r}: not a private address")

    address = pick_address(candidate_addresses())
    if address is None:
        logger.warning(
            "Could not detect a LAN address, falling back to localhost; "
            "set SCREEN_RELAY_LOCAL_IP to share with other devices"
        )
        return LOOPBACK

    if not is_private_ipv4(address):
        logger.warning(f"No private address found, using {address}")
    return address


def build_share_url(
    token: str,
    scheme: str = "http",
    port: int = 5173,
    host: Optional[str] = None,
) -> str:
    """
    Build ``<scheme>://<host>:<port>/stream?token=<token>``.

    Args:
        token: Session token
        scheme: URL scheme of the viewer page
        port: Port of the viewer page
        host: Host to use; discovered when None
    """
    if host is None:
        host = discover_local_ip()
    return f"{scheme}://{host}:{port}/stream?token={quote(token, safe='')}"


def generate_token(nbytes: int = 12) -> str:
    """Random URL-safe session token."""
    return secrets.token_urlsafe(nbytes)
