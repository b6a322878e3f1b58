"""
Authentication Routes

POST /auth/login - Login and get JWT token
GET /auth/me - Get current user info
POST /auth/register/student - Register a student whose PRN is whitelisted
"""

import logging

from fastapi import APIRouter, HTTPException, Depends
from sqlalchemy import text
from sqlalchemy.orm import sessionmaker

from portal.db.postgres import get_db_session, get_session_factory
from portal.core.auth import hash_password, verify_password, create_access_token, get_current_user
from portal.services.eligibility import EligibilityResolver
from portal.services.range_registry import SessionRangeSource, hold_enabled_range
from portal.schemas.schemas import (
    LoginRequest, TokenResponse, UserResponse, StudentRegisterRequest, MessageResponse
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["Authentication"])


@router.post("/login", response_model=TokenResponse)
async def login(request: LoginRequest, session_factory: sessionmaker = Depends(get_session_factory)):
    """
    Login and receive JWT access token.

    Include token in requests: Authorization: Bearer <token>
    """
    with get_db_session(session_factory) as db:
        result = db.execute(
            text("SELECT id, password_hash, role, is_active FROM users WHERE email = :email"),
            {"email": request.email}
        )
        user = result.fetchone()

    if not user:
        raise HTTPException(status_code=401, detail="Invalid email or password")

    user_id, password_hash, role, is_active = user

    if not verify_password(request.password, password_hash):
        raise HTTPException(status_code=401, detail="Invalid email or password")

    if not is_active:
        raise HTTPException(status_code=403, detail="Account deactivated")

    with get_db_session(session_factory) as db:
        db.execute(
            text("UPDATE users SET last_login = CURRENT_TIMESTAMP WHERE id = :id"),
            {"id": user_id}
        )

    token = create_access_token(data={"sub": str(user_id), "role": role})

    return TokenResponse(access_token=token, user_id=user_id, role=role)


@router.get("/me", response_model=UserResponse)
async def get_me(
    user: dict = Depends(get_current_user),
    session_factory: sessionmaker = Depends(get_session_factory),
):
    """Get current authenticated user's info."""
    with get_db_session(session_factory) as db:
        result = db.execute(
            text("SELECT id, email, role, is_active, created_at FROM users WHERE id = :id"),
            {"id": user["user_id"]}
        )
        row = result.fetchone()

    return UserResponse(
        user_id=row[0], email=row[1], role=row[2], is_active=row[3], created_at=row[4]
    )


@router.post("/register/student", response_model=MessageResponse, status_code=201)
async def register_student(
    request: StudentRegisterRequest,
    session_factory: sessionmaker = Depends(get_session_factory),
):
    """
    Register a student account.

    The PRN must be covered by an enabled range that is global or bound to
    the chosen college; otherwise registration is refused with 403.

    The range check and the inserts share one transaction; the matching
    range is re-read (FOR SHARE on PostgreSQL) right before writing.
    """
    with get_db_session(session_factory) as db:
        college = db.execute(
            text("SELECT id FROM colleges WHERE id = :id"),
            {"id": request.college_id}
        ).fetchone()
        if not college:
            raise HTTPException(status_code=400, detail="Invalid college selected")

        verdict = EligibilityResolver(SessionRangeSource(db)).resolve(request.prn, request.college_id)
        if not verdict.matched or not hold_enabled_range(db, verdict.matching_range_id):
            logger.info("Registration refused for PRN %s at college %s", verdict.prn, request.college_id)
            raise HTTPException(
                status_code=403,
                detail="Your PRN is not authorized for registration. Please contact your placement officer."
            )

        if db.execute(text("SELECT id FROM students WHERE prn = :prn"), {"prn": verdict.prn}).fetchone():
            raise HTTPException(status_code=400, detail="PRN already registered")
        if db.execute(text("SELECT id FROM users WHERE email = :email"), {"email": request.email}).fetchone():
            raise HTTPException(status_code=400, detail="Email already registered")

        user_id = db.execute(
            text("""
                INSERT INTO users (email, password_hash, role, is_active)
                VALUES (:email, :password_hash, 'student', TRUE)
                RETURNING id
            """),
            {"email": request.email, "password_hash": hash_password(request.password)}
        ).scalar_one()

        db.execute(
            text("""
                INSERT INTO students (user_id, prn, college_id, student_name, email, branch)
                VALUES (:user_id, :prn, :college_id, :student_name, :email, :branch)
            """),
            {
                "user_id": user_id,
                "prn": verdict.prn,
                "college_id": request.college_id,
                "student_name": request.student_name,
                "email": request.email,
                "branch": request.branch,
            }
        )

    logger.info("Student %s registered under range %s", verdict.prn, verdict.matching_range_id)
    return MessageResponse(message="Registered successfully. Please login.")
