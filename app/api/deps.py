from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials
from sqlalchemy.orm import Session
from typing import List, Optional
import logging

import redis

from ..core.config import settings
from ..core.database import get_db, get_redis
from ..core.exceptions import Forbidden, RateLimited, Unauthenticated, UserNotFound
from ..core.security import security, verify_token, UserRole, TokenPayload
from ..models.user import User

logger = logging.getLogger(__name__)

async def get_current_user_token(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security)
) -> TokenPayload:
    """Extract and verify JWT token from Authorization header."""
    if credentials is None or not credentials.credentials:
        raise Unauthenticated("Not authenticated")

    token_payload = verify_token(credentials.credentials)
    if not token_payload:
        raise Unauthenticated("Invalid or expired token")

    if token_payload.token_type != "access":
        raise Unauthenticated("Invalid token type")

    if not token_payload.sub:
        raise Unauthenticated("Invalid token payload")

    return token_payload

def get_current_user(
    token_payload: TokenPayload = Depends(get_current_user_token),
    db: Session = Depends(get_db)
) -> User:
    """Resolve the caller from the database on every request."""
    user = db.get(User, token_payload.sub)
    if not user or not user.is_active:
        raise UserNotFound("User not found or deactivated")

    return user

# Role-based access control dependencies
def require_role(allowed_roles: List[UserRole]):
    """Create a dependency that requires specific user roles."""
    def role_checker(
        current_user: User = Depends(get_current_user)
    ) -> User:
        if current_user.role not in allowed_roles:
            raise Forbidden(
                f"Access denied. Required roles: {[role.value for role in allowed_roles]}"
            )
        return current_user

    return role_checker

# Specific role dependencies
get_admin_user = require_role([UserRole.ADMIN])
get_doctor_user = require_role([UserRole.DOCTOR])

# Rate limiting dependency
def rate_limit_check(
    request: Request,
    redis_client = Depends(get_redis)
) -> None:
    """Fixed-window rate limiting per client and endpoint."""
    client_ip = request.client.host if request.client else "unknown"
    key = f"rate_limit:{request.url.path}:{client_ip}"

    try:
        current_requests = redis_client.incr(key)
        if current_requests == 1:
            redis_client.expire(key, settings.RATE_LIMIT_WINDOW_SECONDS)
    except redis.RedisError as exc:
        # Rate limiting is best effort when Redis is unreachable
        logger.warning(f"Rate limiter unavailable: {exc}")
        return

    if current_requests > settings.RATE_LIMIT_REQUESTS:
        raise RateLimited()
