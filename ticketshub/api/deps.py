from fastapi import Depends, HTTPException
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import JWTError

from ticketshub.core.config import settings
from ticketshub.core.security import decode_token
from ticketshub.services.razorpay_client import RazorpayClient, RazorpayConfig

bearer = HTTPBearer(auto_error=False)

def get_gateway() -> RazorpayClient:
    if not settings.RAZORPAY_SANDBOX and not (settings.RAZORPAY_KEY_ID and settings.RAZORPAY_KEY_SECRET):
        raise HTTPException(status_code=500, detail="Razorpay is not configured (missing env vars)")
    return RazorpayClient(RazorpayConfig(
        key_id=settings.RAZORPAY_KEY_ID,
        key_secret=settings.RAZORPAY_KEY_SECRET,
        webhook_secret=settings.RAZORPAY_WEBHOOK_SECRET,
        host=settings.RAZORPAY_HOST,
        timeout=settings.RAZORPAY_TIMEOUT_SECONDS,
        sandbox=settings.RAZORPAY_SANDBOX,
    ))

def get_optional_claims(
    creds: HTTPAuthorizationCredentials | None = Depends(bearer),
) -> dict | None:
    """Identity-provider claims, or None for guest checkout. A bad token is an error, not a guest."""
    if not creds:
        return None
    try:
        payload = decode_token(creds.credentials)
    except JWTError:
        raise HTTPException(status_code=401, detail="Invalid token")
    if not payload.get("sub"):
        raise HTTPException(status_code=401, detail="Invalid token")
    return payload

def require_roles(*roles: str):
    def _guard(claims: dict | None = Depends(get_optional_claims)) -> dict:
        if not claims:
            raise HTTPException(status_code=401, detail="Not authenticated")
        if claims.get("role") not in roles:
            raise HTTPException(status_code=403, detail="Forbidden")
        return claims
    return _guard
