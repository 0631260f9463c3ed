# ojudge/deps/security.py
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer

from ojudge.auth_token import Identity, decode_identity, get_current_identity
from ojudge.rate_limiter import RateLimitExceeded, get_submission_rate_limiter
from ojudge.services.errors import ServiceError

_optional_oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login", auto_error=False)


async def get_identity_optional(
    token: Optional[str] = Depends(_optional_oauth2_scheme),
) -> Optional[Identity]:
    """Anonymous readers get None instead of a 401."""
    if not token:
        return None
    try:
        return decode_identity(token)
    except HTTPException:
        return None


async def enforce_submission_rate_limit(
    identity: Identity = Depends(get_current_identity),
) -> Identity:
    """429 when the caller is over the configured submission rate."""
    limiter = get_submission_rate_limiter()
    if limiter is not None:
        try:
            await limiter.check(f"user:{identity.user_id}")
        except RateLimitExceeded as exc:
            raise HTTPException(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                detail="Too many submissions. Please slow down.",
                headers={"Retry-After": str(max(1, int(exc.retry_after)))},
            )
    return identity


def http_error(exc: ServiceError) -> HTTPException:
    return HTTPException(status_code=exc.status_code, detail=exc.message)
