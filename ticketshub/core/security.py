from datetime import datetime, timedelta, timezone

from jose import jwt

from ticketshub.core.config import settings

# Identity tokens are issued by the identity provider; this service only reads them.
ALGO = "HS256"


def create_access_token(subject: str, role: str | None = None, expires_minutes: int = 30) -> str:
    """Mint a token the way the identity provider does (local dev and tests)."""
    exp = datetime.now(timezone.utc) + timedelta(minutes=expires_minutes)
    payload = {"sub": subject, "type": "access", "exp": exp}
    if role:
        payload["role"] = role
    return jwt.encode(payload, settings.SECRET_KEY, algorithm=ALGO)


def decode_token(token: str) -> dict:
    return jwt.decode(token, settings.SECRET_KEY, algorithms=[ALGO])
