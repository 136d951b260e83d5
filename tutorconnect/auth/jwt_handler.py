from datetime import datetime, timedelta, timezone

import jwt

from tutorconnect.core import config

REQUIRED_CLAIMS = ["sub", "exp", "iat"]


def create_access_token(email: str, user_id: int | None = None, expires_minutes: int | None = None) -> str:
    """Issue a bearer token whose subject is the account email."""
    issued_at = datetime.now(timezone.utc)
    lifetime = timedelta(minutes=expires_minutes or config.JWT_EXPIRES_MINUTES)

    claims = {"sub": email, "iat": issued_at, "exp": issued_at + lifetime}
    if user_id is not None:
        claims["uid"] = user_id
    return jwt.encode(claims, config.JWT_SECRET_KEY, algorithm=config.JWT_ALGORITHM)


def decode_access_token(token: str) -> dict:
    return jwt.decode(
        token,
        config.JWT_SECRET_KEY,
        algorithms=[config.JWT_ALGORITHM],
        options={"require": REQUIRED_CLAIMS},
    )


def get_token_subject(token: str) -> str:
    """Normalized email from a valid token. Raises ``jwt.PyJWTError`` otherwise."""
    subject = str(decode_access_token(token)["sub"]).strip().lower()
    if not subject:
        raise jwt.InvalidTokenError("Token subject is empty")
    return subject
