"""
Authentication API Endpoints

Registration, OAuth2 password login, refresh-token rotation, and the
current-user dependencies every other router uses.
"""
import logging
from datetime import datetime, timedelta
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordBearer, OAuth2PasswordRequestForm
from sqlalchemy.orm import Session

from flowforge.core.config import settings
from flowforge.core.security import (
    create_access_token,
    create_refresh_token,
    get_user_from_token,
    hash_password,
    hash_refresh_token,
    verify_password,
)
from flowforge.db.session import get_db
from flowforge.logging_config import audit_log, get_client_ip
from flowforge.models.user import RefreshToken, User
from flowforge.schemas.auth import (
    PasswordChange,
    RefreshTokenRequest,
    TokenResponse,
    UserRegister,
    UserResponse,
    UserUpdate,
    UserWithTokensResponse,
)
from flowforge.schemas.common import MessageResponse

router = APIRouter(prefix="/auth", tags=["authentication"])
logger = logging.getLogger(__name__)

oauth2_scheme = OAuth2PasswordBearer(tokenUrl=f"{settings.API_V1_STR}/auth/login", auto_error=False)


def _credentials_exception(detail: str = "Could not validate credentials") -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


# ============================================================================
# DEPENDENCIES
# ============================================================================

async def get_current_user(
    token: Optional[str] = Depends(oauth2_scheme),
    db: Session = Depends(get_db),
) -> User:
    """
    Resolve the bearer access token to an active user.

    With no token at all, development builds that enable AUTH_DEV_BYPASS get
    the seeded demo user. Everywhere else a missing token is a 401.
    """
    if not token:
        if settings.AUTH_DEV_BYPASS and settings.is_development:
            demo = db.query(User).filter(User.email == settings.DEMO_USER_EMAIL).first()
            if demo and demo.is_active:
                return demo
        raise _credentials_exception("Not authenticated")

    user_id = get_user_from_token(token, expected_type="access")
    if user_id is None:
        raise _credentials_exception()

    user = db.get(User, user_id)
    if user is None or not user.is_active:
        raise _credentials_exception()
    return user


def require_roles(*roles: str):
    """Dependency factory: the current user must hold one of ``roles``."""

    async def checker(current_user: User = Depends(get_current_user)) -> User:
        if current_user.role not in roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Requires one of roles: {', '.join(roles)}",
            )
        return current_user

    return checker


# ============================================================================
# HELPERS
# ============================================================================

def _issue_tokens(db: Session, user: User) -> TokenResponse:
    access_token = create_access_token(user.id)
    refresh_token = create_refresh_token(user.id)
    db.add(
        RefreshToken(
            user_id=user.id,
            token_hash=hash_refresh_token(refresh_token),
            expires_at=datetime.utcnow() + timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS),
        )
    )
    return TokenResponse(access_token=access_token, refresh_token=refresh_token)


# ============================================================================
# ENDPOINTS
# ============================================================================

@router.post("/register", response_model=UserWithTokensResponse, status_code=status.HTTP_201_CREATED)
async def register(
    request: Request,
    user_data: UserRegister,
    db: Session = Depends(get_db),
):
    """Create an OPERATOR account and log it in."""
    if db.query(User).filter(User.email == user_data.email).first():
        raise HTTPException(status_code=400, detail="Email already registered")

    user = User(
        email=user_data.email,
        password_hash=hash_password(user_data.password),
        first_name=user_data.first_name,
        last_name=user_data.last_name,
        department=user_data.department,
        position=user_data.position,
        role="OPERATOR",
        is_active=True,
    )
    db.add(user)
    db.flush()

    tokens = _issue_tokens(db, user)
    db.commit()
    db.refresh(user)

    audit_log("USER_REGISTERED", user_id=user.id, resource_type="user", resource_id=user.id,
              ip_address=get_client_ip(request))

    return UserWithTokensResponse(
        **UserResponse.model_validate(user).model_dump(),
        access_token=tokens.access_token,
        refresh_token=tokens.refresh_token,
    )


@router.post("/login", response_model=TokenResponse)
async def login(
    request: Request,
    form_data: OAuth2PasswordRequestForm = Depends(),
    db: Session = Depends(get_db),
):
    """OAuth2 password login. ``username`` carries the email."""
    email = form_data.username.strip().lower()
    user = db.query(User).filter(User.email == email).first()

    if user is None or not verify_password(form_data.password, user.password_hash):
        audit_log("USER_LOGIN_FAILED", details={"email": email}, ip_address=get_client_ip(request))
        raise _credentials_exception("Incorrect email or password")

    if not user.is_active:
        raise HTTPException(status_code=403, detail="Account is disabled")

    user.last_login_at = datetime.utcnow()
    tokens = _issue_tokens(db, user)
    db.commit()

    audit_log("USER_LOGIN", user_id=user.id, resource_type="user", resource_id=user.id,
              ip_address=get_client_ip(request))
    return tokens


@router.post("/refresh", response_model=TokenResponse)
async def refresh(
    body: RefreshTokenRequest,
    db: Session = Depends(get_db),
):
    """Exchange a refresh token for a new pair. The old refresh token is revoked."""
    user_id = get_user_from_token(body.refresh_token, expected_type="refresh")
    if user_id is None:
        raise _credentials_exception("Invalid refresh token")

    stored = (
        db.query(RefreshToken)
        .filter(RefreshToken.token_hash == hash_refresh_token(body.refresh_token))
        .first()
    )
    if stored is None or stored.revoked or stored.user_id != user_id or stored.expires_at < datetime.utcnow():
        raise _credentials_exception("Invalid refresh token")

    user = db.get(User, user_id)
    if user is None or not user.is_active:
        raise _credentials_exception("Invalid refresh token")

    stored.revoked = True
    tokens = _issue_tokens(db, user)
    db.commit()
    return tokens


@router.get("/me", response_model=UserResponse)
async def read_me(current_user: User = Depends(get_current_user)):
    return current_user


@router.put("/me", response_model=UserResponse)
async def update_me(
    user_data: UserUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    for field, value in user_data.model_dump(exclude_unset=True).items():
        setattr(current_user, field, value)
    db.commit()
    db.refresh(current_user)
    return current_user


@router.post("/change-password", response_model=MessageResponse)
async def change_password(
    request: Request,
    body: PasswordChange,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    if not verify_password(body.current_password, current_user.password_hash):
        raise HTTPException(status_code=400, detail="Current password is incorrect")

    current_user.password_hash = hash_password(body.new_password)
    # Log out other sessions
    db.query(RefreshToken).filter(
        RefreshToken.user_id == current_user.id,
        RefreshToken.revoked == False,  # noqa: E712
    ).update({RefreshToken.revoked: True}, synchronize_session=False)
    db.commit()

    audit_log("USER_PASSWORD_CHANGED", user_id=current_user.id, resource_type="user",
              resource_id=current_user.id, ip_address=get_client_ip(request))
    return MessageResponse(message="Password updated successfully")
