from fastapi import APIRouter, Depends, HTTPException, Response
import logging
from sqlalchemy.orm import Session
from sqlalchemy import func
from datetime import timedelta, datetime, timezone
from jose import jwt
import bcrypt

from app.db.session import get_db_session
from app.core.config import get_settings
from app.api.deps import get_current_user
from app.models.user import User, UserRole
from app.schemas.user import LoginRequest, RegisterRequest

router = APIRouter(prefix="/auth", tags=["auth"])

logger = logging.getLogger("fa.auth")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def create_access_jwt(user_id: str, minutes: int) -> str:
    settings = get_settings()
    now = _utcnow()
    return jwt.encode(
        {
            "sub": user_id,
            "typ": "access",
            "iat": int(now.timestamp()),
            "exp": now + timedelta(minutes=minutes),
        },
        settings.jwt_secret_key,
        algorithm=settings.jwt_algorithm,
    )


def _hash_password(pw: str) -> str:
    return bcrypt.hashpw(pw.encode("utf-8"), bcrypt.gensalt(rounds=12)).decode("utf-8")


def _role_value(user: User) -> str:
    return user.role.value if hasattr(user.role, "value") else str(user.role)


def _user_payload(user: User) -> dict:
    return {"id": user.id, "email": user.email, "name": user.name, "role": _role_value(user)}


def _set_auth_cookie(response: Response, *, access_token: str, settings) -> None:
    response.set_cookie(
        key=settings.cookie_access_name,
        value=access_token,
        httponly=True,
        secure=settings.cookie_secure,
        samesite=settings.cookie_samesite,
        path="/",
        domain=settings.cookie_domain,
        max_age=settings.access_token_expire_minutes * 60,
    )


@router.post("/register")
def register(body: RegisterRequest, db: Session = Depends(get_db_session)):
    settings = get_settings()
    # Normalize email to guarantee case-insensitive uniqueness
    email = (body.email or "").strip().lower()
    if "@" not in email:
        raise HTTPException(status_code=400, detail="Invalid email")

    total_users = db.query(User).count()
    # First account bootstraps the office admin; afterwards signup must be opened explicitly.
    if total_users > 0 and settings.signup_mode != "open":
        raise HTTPException(status_code=403, detail="Signup is closed")

    existing = db.query(User).filter(func.lower(User.email) == email).first()
    if existing:
        raise HTTPException(status_code=400, detail="User already exists")

    if total_users == 0:
        role = UserRole.admin
    else:
        try:
            role = UserRole(settings.default_role)
        except ValueError:
            role = UserRole.viewer

    user = User(email=email, name=body.name, hashed_password=_hash_password(body.password), role=role)
    db.add(user)
    db.commit()
    db.refresh(user)
    logger.info("user_registered id=%s role=%s", user.id, _role_value(user))
    return _user_payload(user)


@router.post("/login")
def login(body: LoginRequest, response: Response, db: Session = Depends(get_db_session)):
    settings = get_settings()
    email = (body.email or "").strip().lower()
    password = (body.password or "").strip()
    if not email or not password:
        raise HTTPException(status_code=400, detail="Email and password required")

    user = db.query(User).filter(func.lower(User.email) == email).first()
    if not user or not user.hashed_password:
        raise HTTPException(status_code=401, detail="Invalid credentials")
    try:
        valid = bcrypt.checkpw(password.encode("utf-8"), user.hashed_password.encode("utf-8"))
    except ValueError:
        valid = False
    if not valid:
        logger.warning("login_failed email_domain=%s", email.split("@")[-1])
        raise HTTPException(status_code=401, detail="Invalid credentials")

    access_token = create_access_jwt(user_id=str(user.id), minutes=settings.access_token_expire_minutes)
    _set_auth_cookie(response, access_token=access_token, settings=settings)

    # Redirect hint for frontend
    response.headers["X-Redirect-To"] = "/dashboard"
    return {"message": "ok", "user": _user_payload(user)}


@router.get("/profile")
def profile(user: User = Depends(get_current_user)):
    return _user_payload(user)


@router.post("/logout")
def logout(response: Response):
    settings = get_settings()
    response.delete_cookie(settings.cookie_access_name, path="/", domain=settings.cookie_domain)
    return {"message": "ok"}
