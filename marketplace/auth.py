import logging

import httpx
from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from .config import AUTH_PROVIDER_ANON_KEY, AUTH_PROVIDER_URL
from .database import get_db
from .models import Profile

logger = logging.getLogger(__name__)

security = HTTPBearer()

USER_TYPES = {"client", "worker"}


async def fetch_identity(token: str) -> dict:
    """
    Resolve a bearer token to the identity provider's user record.
    Token issuance, refresh and session handling all live with the provider.
    """
    if not AUTH_PROVIDER_URL:
        logger.error("❌ AUTH_PROVIDER_URL not configured")
        raise HTTPException(status_code=500, detail="Identity provider not configured")

    headers = {"Authorization": f"Bearer {token}"}
    if AUTH_PROVIDER_ANON_KEY:
        headers["apikey"] = AUTH_PROVIDER_ANON_KEY

    try:
        async with httpx.AsyncClient(timeout=10.0) as client:
            response = await client.get(f"{AUTH_PROVIDER_URL.rstrip('/')}/auth/v1/user", headers=headers)
    except httpx.HTTPError as e:
        logger.error(f"❌ Error contacting identity provider: {e}")
        raise HTTPException(status_code=503, detail="Identity provider unavailable") from e

    if response.status_code != 200:
        logger.info(f"ℹ️ Token rejected by identity provider: HTTP {response.status_code}")
        raise HTTPException(status_code=401, detail="Invalid or expired token")

    return response.json()


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: Session = Depends(get_db),
) -> Profile:
    """Get the caller's profile from their identity provider token"""
    if not credentials:
        raise HTTPException(
            status_code=401,
            detail="Not authenticated. Please provide a valid Bearer token in the Authorization header.",
        )

    identity = await fetch_identity(credentials.credentials)
    user_id = identity.get("id") or identity.get("sub")
    if not user_id:
        logger.error(f"❌ Identity missing user ID. Available keys: {list(identity.keys())}")
        raise HTTPException(status_code=401, detail="Invalid token claims")

    profile = db.query(Profile).filter(Profile.id == user_id).first()
    if profile:
        return profile

    # First request from this identity: create the profile row. Roles are never
    # taken from the token beyond client/worker; admins are promoted in the ledger.
    metadata = identity.get("user_metadata") or {}
    user_type = metadata.get("user_type")
    profile = Profile(
        id=user_id,
        email=identity.get("email"),
        full_name=metadata.get("full_name"),
        user_type=user_type if user_type in USER_TYPES else "client",
    )
    db.add(profile)
    try:
        db.commit()
        db.refresh(profile)
        logger.info(f"🆕 Created profile for {profile.email}")
    except Exception as e:
        db.rollback()
        # Another request created it first
        profile = db.query(Profile).filter(Profile.id == user_id).first()
        if not profile:
            logger.error(f"❌ Failed to create profile for {user_id}: {e}")
            raise HTTPException(status_code=500, detail="Failed to create profile") from e

    return profile
