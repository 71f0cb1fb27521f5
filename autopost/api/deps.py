import hmac

from fastapi import Header, HTTPException, Request, Response

from autopost.core.rate_limit import RateLimitRule, get_rate_limiter
from autopost.core.settings import settings
from autopost.workers.orchestrator import PipelineOrchestrator


def get_orchestrator() -> PipelineOrchestrator:
    from autopost.workers.jobs import get_orchestrator as build
    return build()


def rate_limit(rule: RateLimitRule, scope: str):
    """Dependency factory: fixed-window limit per client IP and route group."""

    def dependency(request: Request, response: Response):
        client = request.client.host if request.client else "unknown"
        result = get_rate_limiter().hit(f"{scope}:{client}", rule)
        headers = {
            "X-RateLimit-Limit": str(result.limit),
            "X-RateLimit-Remaining": str(result.remaining),
            "X-RateLimit-Reset": str(int(result.reset_at)),
        }
        if not result.allowed:
            raise HTTPException(status_code=429, detail="Too many requests", headers=headers)
        response.headers.update(headers)

    return dependency


def require_cron_secret(authorization: str | None = Header(default=None)):
    if not settings.cron_secret:
        raise HTTPException(status_code=401, detail="Cron endpoint disabled (CRON_SECRET not set)")
    expected = f"Bearer {settings.cron_secret}"
    if not authorization or not hmac.compare_digest(authorization, expected):
        raise HTTPException(status_code=401, detail="Invalid cron secret")
