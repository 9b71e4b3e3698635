"""
Authentication Routes

JWT bearer authentication. Tokens are issued by the console's identity
service with the same secret; this service only verifies and refreshes them.
"""
import jwt
import logging
from datetime import datetime, timedelta
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, HTTPException, Depends, Header

from ..config import Config

logger = logging.getLogger("notifyhub.routes.auth")
router = APIRouter(prefix="/auth", tags=["auth"])


# ============================================
# Helpers
# ============================================

def create_token(user_id: UUID, org_id: UUID) -> str:
    """Create JWT token for user"""
    expiration = datetime.utcnow() + timedelta(hours=Config.JWT_EXPIRATION_HOURS)
    payload = {
        "user_id": str(user_id),
        "org_id": str(org_id),
        "exp": expiration
    }
    return jwt.encode(payload, Config.JWT_SECRET, algorithm=Config.JWT_ALGORITHM)


def verify_token(token: str) -> Optional[dict]:
    """Verify and decode JWT token"""
    try:
        payload = jwt.decode(token, Config.JWT_SECRET, algorithms=[Config.JWT_ALGORITHM])
        return payload
    except jwt.ExpiredSignatureError:
        return None
    except jwt.InvalidTokenError:
        return None


async def get_current_user(authorization: str = Header(None)) -> dict:
    """Dependency to get current authenticated user"""
    if not authorization:
        raise HTTPException(status_code=401, detail="Authorization header required")

    # Expect "Bearer <token>"
    parts = authorization.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        raise HTTPException(status_code=401, detail="Invalid authorization header format")

    token = parts[1]
    payload = verify_token(token)
    if not payload:
        raise HTTPException(status_code=401, detail="Invalid or expired token")

    try:
        return {
            "user_id": UUID(payload["user_id"]),
            "org_id": UUID(payload["org_id"])
        }
    except (KeyError, ValueError):
        raise HTTPException(status_code=401, detail="Invalid token claims")


# ============================================
# Routes
# ============================================

@router.get("/me")
async def get_current_user_info(current_user: dict = Depends(get_current_user)):
    """Claims of the current token"""
    return {
        "user_id": str(current_user["user_id"]),
        "org_id": str(current_user["org_id"]),
    }


@router.post("/refresh")
async def refresh_token(current_user: dict = Depends(get_current_user)):
    """Refresh JWT token"""
    token = create_token(current_user["user_id"], current_user["org_id"])
    return {"token": token}
