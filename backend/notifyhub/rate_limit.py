"""Rate limiting singleton using slowapi."""

from fastapi import Request
from slowapi import Limiter


def client_ip(request: Request) -> str:
    """Client address as seen behind a reverse proxy (first X-Forwarded-For hop)."""
    forwarded = request.headers.get("X-Forwarded-For", "")
    first_hop = forwarded.split(",")[0].strip()
    if first_hop:
        return first_hop
    return request.client.host if request.client else "unknown"


limiter = Limiter(key_func=client_ip)
