import logging
from typing import Optional, Sequence

import requests

logger = logging.getLogger("blogstate.ip")

IP_SERVICES = (
    "https://api.ipify.org?format=json",
    "https://ipapi.co/json/",
    "https://api.ip.sb/jsonip",
)
UNKNOWN_IP = "unknown"


def lookup_ip(
    services: Sequence[str] = IP_SERVICES,
    session: Optional[requests.Session] = None,
    timeout: float = 5,
) -> str:
    """Public IP of this client, asking each service in turn; ``"unknown"`` if all fail."""
    http = session or requests
    for service in services:
        try:
            resp = http.get(service, timeout=timeout)
            resp.raise_for_status()
            data = resp.json()
        except (requests.RequestException, ValueError) as exc:
            logger.debug("IP service %s failed: %s", service, exc)
            continue
        ip = data.get("ip") or data.get("query") if isinstance(data, dict) else None
        if ip:
            return str(ip)
    logger.warning("Could not determine client IP, recording %s", UNKNOWN_IP)
    return UNKNOWN_IP
