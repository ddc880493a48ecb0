"""Authentication middleware - bearer JWT for users, API key for intake webhooks."""

import hmac
from datetime import timedelta

from fastapi import Header, HTTPException, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from leadengine.config import settings
from leadengine.schemas.enums import Role
from leadengine.schemas.lead import utcnow
from leadengine.services.guard import Principal

security = HTTPBearer(auto_error=False)

ALGORITHM = "HS256"


def create_access_token(principal: Principal, expire_hours: int | None = None) -> str:
    """Issue a token carrying the caller's identity and scope."""
    expire = utcnow() + timedelta(hours=expire_hours or settings.access_token_expire_hours)
    payload = {
        "sub": principal.user_id,
        "role": principal.role.value,
        "agency": principal.agency_id,
        "team": principal.team,
        "team_lead": principal.is_team_lead,
        "exp": expire,
    }
    return jwt.encode(payload, settings.secret_key, algorithm=ALGORITHM)


def decode_principal(token: str) -> Principal:
    try:
        payload = jwt.decode(token, settings.secret_key, algorithms=[ALGORITHM])
    except JWTError:
        raise HTTPException(status_code=401, detail="Invalid or expired token")
    user_id = payload.get("sub")
    if not user_id:
        raise HTTPException(status_code=401, detail="Invalid token")
    try:
        role = Role(payload.get("role", Role.USER.value))
    except ValueError:
        raise HTTPException(status_code=401, detail="Invalid token role")
    return Principal(
        user_id=user_id,
        role=role,
        agency_id=payload.get("agency"),
        team=payload.get("team"),
        is_team_lead=bool(payload.get("team_lead")),
    )


def get_principal(credentials: HTTPAuthorizationCredentials = Security(security)) -> Principal:
    """Require a valid bearer token."""
    if not credentials:
        raise HTTPException(status_code=401, detail="Authentication required")
    return decode_principal(credentials.credentials)


def optional_principal(credentials: HTTPAuthorizationCredentials = Security(security)) -> Principal | None:
    """Public endpoints accept anonymous callers but still honour a token."""
    if not credentials:
        return None
    return decode_principal(credentials.credentials)


def verify_inbound_api_key(
    x_api_key: str = Header(None, description="API key for lead intake webhooks"),
) -> None:
    expected = settings.inbound_webhook_api_key
    if not expected:
        raise HTTPException(status_code=503, detail="Webhook intake is not configured")
    if not x_api_key or not hmac.compare_digest(x_api_key, expected):
        raise HTTPException(status_code=401, detail="Invalid API key")
