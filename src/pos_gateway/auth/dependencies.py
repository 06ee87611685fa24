"""FastAPI dependencies: get_current_actor and role guards.

Usage in any protected router:
    from src.pos_gateway.auth.dependencies import Actor, get_current_actor

    @router.get("/protected")
    async def protected(actor: Actor = Depends(get_current_actor)):
        ...
"""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from src.pos_common.enums import Role
from src.pos_common.errors import ForbiddenScopeError, InvalidCredentialsError
from src.pos_gateway.auth.jwt_handler import decode_token

bearer_scheme = HTTPBearer(auto_error=False)

# Reusable 401 exception with WWW-Authenticate header (OAuth2 standard)
_CREDENTIALS_EXCEPTION = HTTPException(
    status_code=status.HTTP_401_UNAUTHORIZED,
    detail="Invalid or expired token",
    headers={"WWW-Authenticate": "Bearer"},
)


@dataclass(frozen=True)
class Actor:
    id: str
    role: Role
    name: str | None = None
    bank_id: str | None = None
    window_id: str | None = None
    seller_id: str | None = None


async def get_current_actor(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> Actor:
    """Validate the Bearer token and return the calling Actor.

    Raises HTTP 401 if the token is missing, invalid, expired or carries an
    unknown role.
    """
    if credentials is None:
        raise _CREDENTIALS_EXCEPTION
    try:
        payload = decode_token(credentials.credentials)
    except InvalidCredentialsError:
        raise _CREDENTIALS_EXCEPTION from None

    actor_id = payload.get("sub")
    if not actor_id:
        raise _CREDENTIALS_EXCEPTION
    try:
        role = Role(payload.get("role"))
    except ValueError:
        raise _CREDENTIALS_EXCEPTION from None

    return Actor(
        id=actor_id,
        role=role,
        name=payload.get("name"),
        bank_id=payload.get("bank_id"),
        window_id=payload.get("window_id"),
        seller_id=payload.get("seller_id"),
    )


def require_roles(*roles: Role) -> Callable[..., Awaitable[Actor]]:
    """Dependency factory: only actors holding one of ``roles`` pass."""
    allowed = frozenset(roles)

    async def _guard(actor: Actor = Depends(get_current_actor)) -> Actor:
        if actor.role not in allowed:
            raise ForbiddenScopeError(f"role {actor.role.value} may not perform this operation")
        return actor

    return _guard
