"""
Security utilities for the generation API.

Provides API key authentication and rate limiting with dev mode bypass, plus
the tenant/user request context that jobs are attributed to.
"""

from dataclasses import dataclass
from fastapi import HTTPException, Header, Request, Depends
import time
from typing import Optional
from collections import defaultdict


# Simple in-memory rate limiter (per API key)
_rate_limit_store: dict[str, list[float]] = defaultdict(list)


def _app_config(request: Request):
    """The app's own config when set (tests, embedded apps), else the global one."""
    app_config = getattr(request.app.state, "config", None)
    if app_config is not None:
        return app_config
    from backend.config import config
    return config


def get_api_key(
    x_api_key: Optional[str] = Header(None, alias="X-API-Key"),
    authorization: Optional[str] = Header(None)
) -> Optional[str]:
    """
    Extract API key from headers.
    Supports both X-API-Key header and Bearer token.
    """
    if x_api_key:
        return x_api_key

    if authorization and authorization.startswith("Bearer "):
        return authorization[7:]

    return None


async def verify_api_key(
    request: Request,
    api_key: Optional[str] = Depends(get_api_key)
) -> str:
    """
    Verify API key authentication.

    In dev mode with no API keys configured, authentication is bypassed.
    Returns the API key (or "dev" if bypassed).
    """
    config = _app_config(request)

    # Dev mode bypass: if no API keys configured and DEV_MODE is True
    if not config.auth_required:
        return "dev"

    # Auth required - validate the key
    if not api_key:
        raise HTTPException(
            status_code=401,
            detail="API key required. Provide X-API-Key header or Bearer token.",
            headers={"WWW-Authenticate": "Bearer"}
        )

    if api_key not in config.api_keys_list:
        raise HTTPException(
            status_code=403,
            detail="Invalid API key"
        )

    return api_key


async def enforce_rate_limit(
    request: Request,
    api_key: str = Depends(verify_api_key)
) -> str:
    """Per-key request budget for endpoints that start paid provider work."""
    config = _app_config(request)

    if config.RATE_LIMIT_PER_MINUTE > 0 and api_key != "dev":
        now = time.time()
        window_start = now - 60

        # Clean old entries
        _rate_limit_store[api_key] = [
            t for t in _rate_limit_store[api_key] if t > window_start
        ]

        # Check limit
        if len(_rate_limit_store[api_key]) >= config.RATE_LIMIT_PER_MINUTE:
            raise HTTPException(
                status_code=429,
                detail=f"Rate limit exceeded. Max {config.RATE_LIMIT_PER_MINUTE} requests per minute."
            )

        # Record this request
        _rate_limit_store[api_key].append(now)

    return api_key


@dataclass(frozen=True)
class RequestContext:
    """Who a request acts for. Jobs are attributed to and scoped by tenant."""
    tenant_id: str
    user_id: Optional[str] = None
    api_key: Optional[str] = None


async def get_request_context(
    request: Request,
    api_key: str = Depends(verify_api_key),
    x_tenant_id: Optional[str] = Header(None, alias="X-Tenant-Id"),
    x_user_id: Optional[str] = Header(None, alias="X-User-Id"),
) -> RequestContext:
    config = _app_config(request)
    return RequestContext(
        tenant_id=(x_tenant_id or "").strip() or config.DEFAULT_TENANT_ID,
        user_id=(x_user_id or "").strip() or None,
        api_key=api_key,
    )


# Convenience dependency for routes that require auth
require_auth = Depends(verify_api_key)
