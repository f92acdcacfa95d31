import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from core.access import require_role
from core.db import get_db
from models.user import User
from schemas.auth import RegisterRequest, LoginRequest, TokenPair, RefreshTokenRequest
from schemas.users import UserOut, NotificationPreference
from security.password import hash_password, verify_password
from security import jwt as jwt_utils
from services.roles import AuthContext, assign_role, get_role

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/register", response_model=TokenPair, status_code=201)
def register(data: RegisterRequest, db: Session = Depends(get_db)):
    existing = db.query(User).filter(User.email == data.email.lower()).one_or_none()
    if existing:
        raise HTTPException(status_code=400, detail="Email already registered")
    user = User(
        name=data.name.strip(),
        email=data.email.lower(),
        password_hash=hash_password(data.password),
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    # The role chosen on the form is stored before it is reported back
    role = assign_role(db, user.id, data.role)
    logger.info("Registered user %s as %s", user.id, role)
    access, refresh = jwt_utils.create_token_pair(user.id)
    return TokenPair(access_token=access, refresh_token=refresh, role=role)


@router.post("/login", response_model=TokenPair)
def login(data: LoginRequest, db: Session = Depends(get_db)):
    user = db.query(User).filter(User.email == data.email.lower()).one_or_none()
    if not user or not verify_password(data.password, user.password_hash):
        raise HTTPException(status_code=400, detail="Invalid credentials")
    access, refresh = jwt_utils.create_token_pair(user.id)
    return TokenPair(access_token=access, refresh_token=refresh, role=get_role(db, user.id))


@router.post("/refresh-token", response_model=TokenPair)
def refresh_token(data: RefreshTokenRequest, db: Session = Depends(get_db)):
    try:
        payload = jwt_utils.decode_refresh(data.refresh_token)
        user_id = int(payload.get("sub"))
    except Exception:
        raise HTTPException(status_code=401, detail="Invalid refresh token")
    user = db.get(User, user_id)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    access, refresh = jwt_utils.create_token_pair(user.id)
    return TokenPair(access_token=access, refresh_token=refresh, role=get_role(db, user.id))


@router.get("/me", response_model=UserOut)
def me(ctx: AuthContext = Depends(require_role())):
    return ctx.user


@router.patch("/me/notifications", response_model=UserOut)
def set_notifications(
    data: NotificationPreference,
    ctx: AuthContext = Depends(require_role()),
    db: Session = Depends(get_db),
):
    """Opt in or out of "order ready" emails. Stream alerts are unaffected."""
    ctx.user.notifications_enabled = data.enabled
    db.commit()
    db.refresh(ctx.user)
    return ctx.user
