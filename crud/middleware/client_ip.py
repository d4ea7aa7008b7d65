"""
Client IP resolution shared by the rate limiter, logging and the auth routes.

Proxy headers are honoured only when the socket peer is a configured trusted
proxy; otherwise any client could pick its own rate-limit key by sending
X-Forwarded-For.
"""

import ipaddress
from typing import Iterable, List, Optional, Union

from starlette.requests import HTTPConnection

IPNetwork = Union[ipaddress.IPv4Network, ipaddress.IPv6Network]

UNKNOWN_CLIENT = "unknown"


def parse_trusted_proxies(entries: Iterable[str]) -> List[IPNetwork]:
    """Parse IPs and CIDR ranges. Unparseable entries raise ValueError."""
    return [ipaddress.ip_network(entry.strip(), strict=False) for entry in entries if entry.strip()]


def _is_trusted(ip: str, trusted: List[IPNetwork]) -> bool:
    try:
        addr = ipaddress.ip_address(ip)
    except ValueError:
        return False
    return any(addr in network for network in trusted)


def _valid_ip(value: str) -> Optional[str]:
    try:
        return str(ipaddress.ip_address(value.strip()))
    except ValueError:
        return None


def get_client_ip(conn: HTTPConnection, trusted: Optional[List[IPNetwork]] = None) -> str:
    """
    Real client IP for a request.

    Without trusted proxies this is the socket peer. When the peer is a
    trusted proxy, the right-most X-Forwarded-For entry that is not itself a
    trusted proxy wins, then X-Real-IP, then the peer.
    """
    direct_ip = conn.client.host if conn.client else ""
    if not trusted or not _is_trusted(direct_ip, trusted):
        return direct_ip or UNKNOWN_CLIENT

    forwarded_for = conn.headers.get("x-forwarded-for", "")
    if forwarded_for:
        for candidate in reversed(forwarded_for.split(",")):
            ip = _valid_ip(candidate)
            if ip and not _is_trusted(ip, trusted):
                return ip

    real_ip = _valid_ip(conn.headers.get("x-real-ip", ""))
    if real_ip:
        return real_ip

    return direct_ip or UNKNOWN_CLIENT


def client_ip_from_app(conn: HTTPConnection) -> str:
    """get_client_ip() with the trusted proxies stored on ``app.state``."""
    app = conn.scope.get("app")
    trusted = getattr(getattr(app, "state", None), "trusted_proxies", None)
    return get_client_ip(conn, trusted)
