import logging
from typing import Optional

import jwt
from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.orm import Session

from core.config import settings
from core.db import get_db
from models.canteen import Canteen
from models.user import ROLE_VENDOR
from security import jwt as jwt_utils
from services.roles import AuthContext

logger = logging.getLogger(__name__)


def _bearer_user_id(authorization: Optional[str]) -> Optional[int]:
    if not authorization or not authorization.lower().startswith("bearer "):
        return None
    token = authorization.split(" ", 1)[1]
    try:
        payload = jwt_utils.decode_access(token)
        return int(payload.get("sub"))
    except (jwt.PyJWTError, TypeError, ValueError):
        logger.debug("Rejected bearer token")
        return None


def get_auth_context(
    db: Session = Depends(get_db), authorization: Optional[str] = Header(default=None, alias="Authorization")
) -> AuthContext:
    return AuthContext(_bearer_user_id(authorization)).resolve(db)


def sign_in_required() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Sign in required",
        headers={"Location": settings.SIGN_IN_PATH, "WWW-Authenticate": "Bearer"},
    )


def require_role(*roles: str):
    """Dependency that admits only resolved principals holding one of ``roles``.

    With no roles given any signed-in principal is admitted.
    """
    def _check_role(ctx: AuthContext = Depends(get_auth_context)) -> AuthContext:
        if not ctx.has_role(*roles):
            raise sign_in_required()
        return ctx
    return _check_role


def get_vendor_canteen(
    ctx: AuthContext = Depends(require_role(ROLE_VENDOR)), db: Session = Depends(get_db)
) -> Canteen:
    """The signed-in vendor's canteen."""
    canteen = db.query(Canteen).filter(Canteen.vendor_id == ctx.user_id).one_or_none()
    if not canteen:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Register your canteen first")
    return canteen
