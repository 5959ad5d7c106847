from fastapi import Depends, Header, HTTPException
from jose import jwt

from storefront.config import settings
from storefront.database import SessionLocal
from storefront.models import Profile


def verify_token(authorization: str = Header(None)) -> str:
    """Return the user id carried in the bearer token's ``sub`` claim."""
    try:
        scheme, token = authorization.split()
        if scheme.lower() != "bearer":
            raise ValueError("Unsupported auth scheme")
        claims = jwt.decode(token, settings.JWT_SECRET, algorithms=["HS256"])
        user_id = claims["sub"]
    except Exception:
        raise HTTPException(status_code=401, detail="Invalid or missing token")
    return user_id


def require_admin(user_id: str = Depends(verify_token)) -> str:
    db = SessionLocal()
    try:
        profile = db.get(Profile, user_id)
        if not profile or profile.role != "admin":
            raise HTTPException(status_code=403, detail="Admin access required")
    finally:
        db.close()
    return user_id
