"""
Authentication router.
Admins log in with their PocketBase superuser credentials and receive a
JWT used as a bearer token on every other admin API route.
"""

import logging
from datetime import datetime, timedelta, timezone

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from notebypine.config import get_settings
from notebypine.database import get_database
from notebypine.models.user import TokenResponse, UserLogin, UserResponse

logger = logging.getLogger(__name__)
router = APIRouter()

security = HTTPBearer()


# ============================================================
# JWT Token Management
# ============================================================
def create_access_token(user_id: str, email: str) -> str:
    """Create a JWT access token for an admin."""
    settings = get_settings()

    now = datetime.now(timezone.utc)
    payload = {
        "sub": user_id,
        "email": email,
        "role": "admin",
        "exp": now + timedelta(hours=settings.jwt_expiration_hours),
        "iat": now,
    }

    return jwt.encode(payload, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> dict:
    """Decode and verify a token.

    Raises:
        HTTPException 401: If the token is invalid, expired or has no subject.
    """
    settings = get_settings()
    try:
        payload = jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
    except JWTError:
        raise HTTPException(status_code=401, detail="Invalid or expired token")
    if not payload.get("sub"):
        raise HTTPException(status_code=401, detail="Invalid token")
    return payload


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security)
) -> dict:
    """
    Dependency to get the current admin from the JWT token.
    Raises HTTPException if the token is invalid.
    """
    payload = decode_access_token(credentials.credentials)
    return {
        "id": payload["sub"],
        "email": payload.get("email", ""),
        "role": payload.get("role", "admin"),
    }


# ============================================================
# Endpoints
# ============================================================
@router.post("/login")
async def login(credentials: UserLogin) -> dict:
    """Login with PocketBase admin email and password."""
    pb = get_database()
    admin = await pb.verify_admin(credentials.email, credentials.password)

    if admin is None:
        logger.warning(f"Failed admin login for {credentials.email}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password"
        )

    user_id = admin.get("id") or credentials.email
    email = admin.get("email") or credentials.email
    token = TokenResponse(
        access_token=create_access_token(user_id, email),
        expires_in=get_settings().jwt_expiration_hours * 3600,
        user=UserResponse(id=user_id, email=email),
    )
    logger.info(f"Admin logged in: {email}")
    return {"success": True, "data": token.model_dump()}


@router.get("/me")
async def me(current_user: dict = Depends(get_current_user)) -> dict:
    """Return the identity carried by the bearer token."""
    return {"success": True, "data": UserResponse(**current_user).model_dump()}
