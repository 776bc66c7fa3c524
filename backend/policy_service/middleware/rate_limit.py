"""Rate limiting middleware for API protection"""
from slowapi import Limiter
from slowapi.util import get_remote_address
from fastapi import Request
from policy_service.config import settings


def get_identifier(request: Request) -> str:
    """
    Get identifier for rate limiting

    Priority:
    1. First X-Forwarded-For hop (only when TRUST_PROXY_HEADERS is set)
    2. Socket peer address
    """
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded and settings.TRUST_PROXY_HEADERS:
        return forwarded.split(",")[0].strip()
    return get_remote_address(request)


# Create limiter instance
limiter = Limiter(
    key_func=get_identifier,
    default_limits=settings.RATE_LIMIT_DEFAULT,
    storage_uri=settings.RATE_LIMIT_STORAGE_URI,
    strategy="fixed-window"
)
