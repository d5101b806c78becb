import uuid
from typing import Any

from jose import JWTError, jwt

from alquila.core.config import Settings


# ─── JWT tokens ────────────────────────────────────────
# Tokens are issued by the identity provider; this service only verifies them.
def decode_token(token: str, settings: Settings) -> dict[str, Any] | None:
    options = {"verify_aud": settings.jwt_audience is not None}
    try:
        return jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[settings.jwt_algorithm],
            audience=settings.jwt_audience,
            issuer=settings.jwt_issuer,
            options=options,
        )
    except JWTError:
        return None


def auth_user_id_from_claims(claims: dict[str, Any]) -> uuid.UUID | None:
    """Parse the subject claim as the identity provider's user id."""
    subject = claims.get("sub")
    if not isinstance(subject, str):
        return None
    try:
        return uuid.UUID(subject.strip())
    except ValueError:
        return None
