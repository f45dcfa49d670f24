"""Authentication and authorization related routes and helpers."""

import logging
from datetime import datetime, timedelta, timezone

from fastapi import APIRouter, Depends, status
from fastapi.security import OAuth2PasswordBearer
from fastapi_limiter.depends import RateLimiter
from jose import JWTError, jwt
from passlib.context import CryptContext
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.orm import Session

from . import crud, schemas
from .core import get_settings
from .database import get_db
from .errors import AuthError, ConflictError, ForbiddenError
from .models import User, UserRole
from .permissions import Identity
from .responses import wrap

logger = logging.getLogger("contacts_api.auth")

settings = get_settings()

pwd_context = CryptContext(
    schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=settings.BCRYPT_ROUNDS
)
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login", auto_error=False)
router = APIRouter(prefix="/auth", tags=["auth"])

auth_rate_limiter = RateLimiter(
    times=settings.RATE_LIMIT_TIMES, seconds=settings.RATE_LIMIT_SECONDS
)

INVALID_CREDENTIALS = "Invalid credentials"
INVALID_TOKEN = "Could not validate credentials"

# Compared against when the email is unknown so both failure paths pay for a
# bcrypt verification.
_DUMMY_HASH = pwd_context.hash("dummy-password-for-timing")


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Compare a plain password with its hashed value."""
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    """Generate a password hash using the configured context."""
    return pwd_context.hash(password)


def normalize_email(email: str) -> str:
    """Emails are compared case-insensitively; store and look them up lowercased."""
    return email.strip().lower()


def create_access_token(user: User, expires_delta: timedelta | None = None) -> str:
    """Create a signed JWT carrying the user's id, email and role."""
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    )
    to_encode = {
        "sub": user.id,
        "email": user.email,
        "role": UserRole(user.role).value,
        "exp": expire,
    }
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def decode_access_token(token: str) -> schemas.TokenData:
    """
    Verify signature and expiry of a token and return its claims.

    Raises:
        AuthError: If the token is malformed, tampered with or expired.
    """
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
        return schemas.TokenData(**payload)
    except (JWTError, PydanticValidationError):
        raise AuthError(INVALID_TOKEN)


def _auth_response(user: User) -> schemas.AuthResponse:
    return schemas.AuthResponse(
        access_token=create_access_token(user),
        user=schemas.UserPublic.model_validate(user),
    )


def register_user(db: Session, email: str, password: str) -> schemas.AuthResponse:
    """
    Create a regular user account and issue a token for it.

    Raises:
        ConflictError: If the email is already registered.
    """
    email = normalize_email(email)
    try:
        user = crud.create_user(db, email, get_password_hash(password))
    except ConflictError:
        logger.warning("Registration failed: %s already exists", email)
        raise
    logger.info("User registered: %s", user.id)
    return _auth_response(user)


def login_user(db: Session, email: str, password: str) -> schemas.AuthResponse:
    """
    Check credentials and issue a token.

    Unknown email and wrong password fail with the same error.

    Raises:
        AuthError: If the credentials do not match.
    """
    email = normalize_email(email)
    user = crud.get_user_by_email(db, email)
    if user is None:
        verify_password(password, _DUMMY_HASH)
        logger.warning("Login failed: unknown email %s", email)
        raise AuthError(INVALID_CREDENTIALS)
    if not verify_password(password, user.hashed_password):
        logger.warning("Login failed: bad password for %s", user.id)
        raise AuthError(INVALID_CREDENTIALS)
    logger.info("User logged in: %s", user.id)
    return _auth_response(user)


def get_current_user(
    token: str | None = Depends(oauth2_scheme), db: Session = Depends(get_db)
) -> User:
    """Dependency that returns the user a valid bearer token was issued for."""

    if not token:
        raise AuthError("Not authenticated")
    token_data = decode_access_token(token)
    user = crud.get_user_by_id(db, token_data.sub)
    if user is None:
        raise AuthError(INVALID_TOKEN)
    return user


def get_current_identity(user: User = Depends(get_current_user)) -> Identity:
    """Dependency resolving the acting identity of the request."""
    return Identity.from_user(user)


def require_role(role: UserRole):
    """
    Build a dependency that lets through only identities holding ``role``.

    Args:
        role (UserRole): Required role.

    Returns:
        Callable: FastAPI dependency returning the acting identity.
    """

    def dependency(identity: Identity = Depends(get_current_identity)) -> Identity:
        if identity.role != role:
            logger.warning(
                "Role check failed: %s has %s, needs %s",
                identity.id,
                identity.role.value,
                role.value,
            )
            raise ForbiddenError("Insufficient permissions")
        return identity

    return dependency


require_admin = require_role(UserRole.ADMIN)


@router.post(
    "/register",
    response_model=schemas.Envelope[schemas.AuthResponse],
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(auth_rate_limiter)],
)
def register(payload: schemas.RegisterRequest, db: Session = Depends(get_db)):
    """Register a new user and return an access token."""

    result = register_user(db, payload.email, payload.password)
    return wrap(result, "User registered successfully")


@router.post(
    "/login",
    response_model=schemas.Envelope[schemas.AuthResponse],
    dependencies=[Depends(auth_rate_limiter)],
)
def login(payload: schemas.LoginRequest, db: Session = Depends(get_db)):
    """Authenticate user and return an access token."""

    result = login_user(db, payload.email, payload.password)
    return wrap(result, "User logged in successfully")


@router.get("/me", response_model=schemas.Envelope[schemas.UserOut])
def read_me(current_user: User = Depends(get_current_user)):
    """
    Retrieve details of the currently authenticated user.

    Args:
        current_user (User): Authenticated user obtained from JWT token.

    Returns:
        UserOut: User profile information.
    """
    return wrap(schemas.UserOut.model_validate(current_user))
