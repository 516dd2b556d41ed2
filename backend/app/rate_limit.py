"""Rate limiting for the gigmarket backend.

The limiter keys on the caller's IP. X-Forwarded-For is honored only when
the direct peer sits in one of the configured trusted proxy networks, so a
client cannot pick its own bucket by forging the header.
"""

import ipaddress
from functools import lru_cache

from slowapi import Limiter
from slowapi.util import get_remote_address

from .config import get_settings
from .logging_config import get_logger

logger = get_logger("gigmarket.rate_limit")

IPNetwork = ipaddress.IPv4Network | ipaddress.IPv6Network


@lru_cache
def trusted_networks() -> tuple[IPNetwork, ...]:
    """Parse the trusted proxy CIDRs from settings, skipping bad entries."""
    networks = []
    for cidr in get_settings().trusted_proxy_cidrs:
        try:
            networks.append(ipaddress.ip_network(cidr.strip(), strict=False))
        except ValueError:
            logger.warning(f"Ignoring invalid trusted proxy CIDR: {cidr!r}")
    return tuple(networks)


def is_trusted_proxy(ip_str: str) -> bool:
    """Check if an IP belongs to a trusted proxy network."""
    try:
        addr = ipaddress.ip_address(ip_str)
    except ValueError:
        return False
    return any(addr in network for network in trusted_networks())


def get_client_ip(request) -> str:
    """Resolve the client IP, using the leftmost forwarded hop behind a trusted proxy."""
    direct_ip = get_remote_address(request)

    if is_trusted_proxy(direct_ip):
        forwarded_for = request.headers.get("x-forwarded-for")
        if forwarded_for:
            client_ip = forwarded_for.split(",")[0].strip()
            if client_ip:
                return client_ip

    return direct_ip


limiter = Limiter(key_func=get_client_ip)
