"""JWT access token creation and verification.

Tokens are issued by the POS identity service; this service only verifies
them. ``create_access_token`` exists for operators' tooling and tests.

Claims: sub (actor id), name, role (ADMIN | BANK | WINDOW | SELLER) and the
organizational ids the role is bound to (bank_id, window_id, seller_id).

MVP NOTE: HS256 (symmetric HMAC) with one shared JWT_SECRET, no revocation.
"""

from datetime import UTC, datetime, timedelta

from jose import JWTError, jwt

from config.settings import settings
from src.pos_common.enums import Role
from src.pos_common.errors import InvalidCredentialsError

_ALGORITHM = settings.JWT_ALGORITHM  # "HS256"
_ACCESS_EXPIRE = timedelta(minutes=settings.JWT_EXPIRE_MINUTES)


def create_access_token(
    actor_id: str,
    role: Role,
    name: str | None = None,
    bank_id: str | None = None,
    window_id: str | None = None,
    seller_id: str | None = None,
) -> str:
    """Issue a short-lived access token (default: 30 min)."""
    now = datetime.now(UTC)
    payload: dict[str, object] = {
        "sub": actor_id,
        "type": "access",
        "role": role.value,
        "iat": now,
        "exp": now + _ACCESS_EXPIRE,
    }
    for claim, value in (
        ("name", name),
        ("bank_id", bank_id),
        ("window_id", window_id),
        ("seller_id", seller_id),
    ):
        if value is not None:
            payload[claim] = value
    return str(jwt.encode(payload, settings.JWT_SECRET, algorithm=_ALGORITHM))


def decode_token(token: str) -> dict[str, str]:
    """Decode and validate an access token.

    Raises:
        InvalidCredentialsError: signature, expiry or token type invalid.
    """
    try:
        payload: dict[str, str] = jwt.decode(
            token,
            settings.JWT_SECRET,
            algorithms=[_ALGORITHM],  # Explicit list prevents algorithm confusion
        )
    except JWTError:
        raise InvalidCredentialsError() from None

    if payload.get("type") != "access":
        raise InvalidCredentialsError()
    return payload
