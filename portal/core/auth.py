"""
Authentication Utility - JWT and Password handling.

Provides:
- Password hashing with bcrypt
- JWT token creation/verification
- FastAPI dependencies resolving the current actor for protected routes
- Password re-verification against the stored hash (reset Gate 3)
"""

from datetime import datetime, timedelta, timezone
from typing import Optional
from jose import JWTError, jwt
from passlib.context import CryptContext
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy import text
from sqlalchemy.orm import sessionmaker

from portal.core.config import get_settings
from portal.db.postgres import get_db_session, get_session_factory
from portal.models.domain import Actor, Authority

settings = get_settings()

# Password hashing
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

# Bearer token extractor
bearer_scheme = HTTPBearer()


def hash_password(password: str) -> str:
    """Hash password with bcrypt."""
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify password against hash."""
    return pwd_context.verify(plain_password, hashed_password)


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """Create JWT access token."""
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=settings.jwt_expire_minutes))
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def decode_token(token: str) -> Optional[dict]:
    """Decode and verify JWT token."""
    try:
        return jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
    except JWTError:
        return None


class PasswordVerifier:
    """
    Re-checks a user's current password against the stored hash.

    Used by the academic-year reset right before execution, never
    trusting an earlier session check. Unknown user and wrong password
    look the same to the caller.
    """

    def __init__(self, session_factory: Optional[sessionmaker] = None):
        self.session_factory = session_factory

    def verify(self, user_id: int, password: str) -> bool:
        if not password:
            return False
        with get_db_session(self.session_factory) as db:
            row = db.execute(
                text("SELECT password_hash FROM users WHERE id = :id AND is_active = TRUE"),
                {"id": user_id},
            ).fetchone()
        if not row:
            # unknown accounts cost the same as a wrong password
            pwd_context.dummy_verify()
            return False
        return verify_password(password, row[0])


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(bearer_scheme),
    session_factory: sessionmaker = Depends(get_session_factory),
) -> dict:
    """
    FastAPI dependency - Get current authenticated user.

    Usage:
        @app.get("/protected")
        async def route(user: dict = Depends(get_current_user)):
            return user
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Invalid or expired token",
        headers={"WWW-Authenticate": "Bearer"},
    )

    payload = decode_token(credentials.credentials)
    if not payload:
        raise credentials_exception

    user_id = payload.get("sub")
    if not user_id:
        raise credentials_exception

    # Verify user exists
    with get_db_session(session_factory) as db:
        result = db.execute(
            text("SELECT id, email, role, is_active FROM users WHERE id = :id"),
            {"id": int(user_id)}
        )
        user = result.fetchone()

    if not user:
        raise credentials_exception

    if not user[3]:  # is_active
        raise HTTPException(status_code=403, detail="Account deactivated")

    return {"user_id": user[0], "email": user[1], "role": user[2]}


async def get_current_super_admin(user: dict = Depends(get_current_user)) -> Actor:
    """Dependency - Require super admin role."""
    if user["role"] != Authority.super_admin.value:
        raise HTTPException(status_code=403, detail="Super admins only")
    return Actor(user_id=user["user_id"], authority=Authority.super_admin)


async def get_current_placement_officer(
    user: dict = Depends(get_current_user),
    session_factory: sessionmaker = Depends(get_session_factory),
) -> Actor:
    """Dependency - Require placement officer role and resolve their college."""
    if user["role"] != Authority.placement_officer.value:
        raise HTTPException(status_code=403, detail="Placement officers only")

    with get_db_session(session_factory) as db:
        result = db.execute(
            text("SELECT college_id FROM placement_officers WHERE user_id = :id"),
            {"id": user["user_id"]}
        )
        row = result.fetchone()

    if not row:
        raise HTTPException(status_code=404, detail="Placement officer profile not found")

    return Actor(user_id=user["user_id"], authority=Authority.placement_officer, institution_id=row[0])
