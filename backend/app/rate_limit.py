"""Rate limiting configuration for the TaskLynk API.

Requests are limited per client IP. X-Forwarded-For is only honoured when the
direct peer is a trusted proxy, otherwise any client could pick its own key.
"""

import ipaddress
import os

from slowapi import Limiter
from slowapi.util import get_remote_address

from .config import get_settings

# Override with TRUSTED_PROXY_CIDRS env var (comma-separated CIDRs).
_DEFAULT_TRUSTED_CIDRS = ["10.0.0.0/8", "172.16.0.0/12", "192.168.0.0/16", "127.0.0.0/8", "::1/128"]


def _trusted_networks() -> list[ipaddress.IPv4Network | ipaddress.IPv6Network]:
    raw = os.environ.get("TRUSTED_PROXY_CIDRS", "")
    cidrs = [s.strip() for s in raw.split(",") if s.strip()] or _DEFAULT_TRUSTED_CIDRS
    networks = []
    for cidr in cidrs:
        try:
            networks.append(ipaddress.ip_network(cidr, strict=False))
        except ValueError:
            continue
    return networks


_TRUSTED = _trusted_networks()


def get_client_ip(request) -> str:
    """Client IP, trusting X-Forwarded-For only from a trusted proxy."""
    direct_ip = get_remote_address(request)
    try:
        trusted = any(ipaddress.ip_address(direct_ip) in net for net in _TRUSTED)
    except ValueError:
        trusted = False
    if trusted:
        client_ip = request.headers.get("x-forwarded-for", "").split(",")[0].strip()
        if client_ip:
            return client_ip
    return direct_ip


_settings = get_settings()
limiter = Limiter(
    key_func=get_client_ip,
    default_limits=[_settings.default_rate_limit],
    enabled=_settings.rate_limit_enabled,
)
