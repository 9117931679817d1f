"""Authentication routes."""
from fastapi import APIRouter, Depends, HTTPException, Response, status
from sqlalchemy.orm import Session
import logging

from ..auth import create_user_access_token, get_current_user, get_role_permissions, verify_password
from ..config import settings
from ..database import get_db
from ..models import User
from ..schemas import AuthUserResponse, LoginRequest, TokenResponse

router = APIRouter(prefix="/auth", tags=["auth"])
logger = logging.getLogger(__name__)


def _set_no_store(response: Response) -> None:
    # Prevent caching of auth responses (tokens).
    response.headers["Cache-Control"] = "no-store"
    response.headers["Pragma"] = "no-cache"


@router.post("/login", response_model=TokenResponse)
def login(payload: LoginRequest, response: Response, db: Session = Depends(get_db)):
    """Login with email and password."""
    _set_no_store(response)
    email = (payload.email or "").strip().lower()

    user = db.query(User).filter(
        User.email == email,
        User.is_active == True  # noqa: E712
    ).first()

    if not user or not verify_password(payload.password, user.password_hash):
        logger.warning(f"❌ Failed login for {email or '<empty>'}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect email or password",
        )

    logger.info(f"✅ User {user.id} logged in")
    return TokenResponse(
        access_token=create_user_access_token(user),
        expires_in=int(settings.JWT_ACCESS_TOKEN_EXPIRE_MINUTES) * 60,
    )


@router.get("/me", response_model=AuthUserResponse)
def me(current_user: User = Depends(get_current_user)):
    """Current user with the messenger permissions the UI needs."""
    base = AuthUserResponse.model_validate(current_user)
    return base.model_copy(update={"permissions": get_role_permissions(current_user.role)})
