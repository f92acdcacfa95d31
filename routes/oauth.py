import logging

from fastapi import APIRouter, Request, Depends, HTTPException
from sqlalchemy.orm import Session
from authlib.integrations.starlette_client import OAuth, OAuthError

from core.config import settings
from core.db import get_db
from models.user import User, ROLE_VENDOR
from security.password import unusable_password
from security import jwt as jwt_utils
from schemas.auth import FederatedSignIn
from services.roles import ensure_role

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth/google", tags=["oauth"])

oauth = OAuth()
oauth.register(
    name="google",
    client_id=settings.GOOGLE_CLIENT_ID,
    client_secret=settings.GOOGLE_CLIENT_SECRET,
    server_metadata_url="https://accounts.google.com/.well-known/openid-configuration",
    client_kwargs={"scope": "openid email profile"},
)


def _require_configured() -> None:
    if not settings.GOOGLE_CLIENT_ID or not settings.GOOGLE_CLIENT_SECRET:
        raise HTTPException(status_code=500, detail="Google OAuth not configured")


def landing_path(role: str) -> str:
    return "/vendor" if role == ROLE_VENDOR else "/student"


def get_or_create_federated_user(db: Session, email: str, name: str) -> User:
    user = db.query(User).filter(User.email == email).one_or_none()
    if user:
        return user
    user = User(name=name or email.split("@")[0], email=email, password_hash=unusable_password())
    db.add(user)
    db.commit()
    db.refresh(user)
    logger.info("Created user %s from Google sign-in", user.id)
    return user


@router.get("/login")
async def google_login(request: Request):
    _require_configured()
    return await oauth.google.authorize_redirect(request, settings.GOOGLE_REDIRECT_URI)


@router.get("/callback", response_model=FederatedSignIn)
async def google_callback(request: Request, db: Session = Depends(get_db)):
    _require_configured()
    try:
        token = await oauth.google.authorize_access_token(request)
    except OAuthError as e:
        logger.warning("Google sign-in rejected: %s", e)
        raise HTTPException(status_code=401, detail="Google sign-in failed")

    userinfo = token.get("userinfo")
    if not userinfo:
        resp = await oauth.google.get("userinfo", token=token)
        userinfo = resp.json()
    email = (userinfo.get("email") or "").lower()
    if not email:
        raise HTTPException(status_code=400, detail="Email not provided by Google")
    name = userinfo.get("name") or " ".join(
        part for part in (userinfo.get("given_name"), userinfo.get("family_name")) if part
    )

    user = get_or_create_federated_user(db, email, name)
    # No role was chosen on this path; first visit defaults to student
    role = ensure_role(db, user.id)

    access, refresh = jwt_utils.create_token_pair(user.id)
    return FederatedSignIn(access_token=access, refresh_token=refresh, role=role, redirect_to=landing_path(role))
