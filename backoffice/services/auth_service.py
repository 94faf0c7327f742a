import logging
from datetime import datetime, timedelta, timezone

import bcrypt
import jwt
from sqlalchemy.orm import Session

from backoffice.config import settings
from backoffice.database import atomic
from backoffice.exceptions import ValidationError
from backoffice.models.user import User

logger = logging.getLogger(__name__)


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("ascii")


def password_matches(user: User, password: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), user.password_hash.encode("ascii"))
    except ValueError:
        logger.error("Unreadable password hash for user %s", user.username)
        return False


def issue_token(user: User) -> str:
    """Signed session token for ``user``, valid for ACCESS_TOKEN_EXPIRE_HOURS."""
    now = datetime.now(timezone.utc)
    claims = {
        "sub": user.id,
        "username": user.username,
        "role": user.role,
        "iat": now,
        "exp": now + timedelta(hours=settings.ACCESS_TOKEN_EXPIRE_HOURS),
    }
    return jwt.encode(claims, settings.SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def resolve_token(db: Session, token: str) -> User | None:
    """The active user a token was issued to, or None for a bad, expired or orphaned token."""
    try:
        claims = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])
    except jwt.InvalidTokenError as exc:
        logger.info("Rejected session token: %s", exc)
        return None
    user = db.get(User, claims["sub"]) if claims.get("sub") else None
    if user is None or not user.active:
        return None
    return user


def authenticate(db: Session, username: str, password: str) -> User | None:
    user = db.query(User).filter(User.username == username).first()
    if user is None or not user.active or not password_matches(user, password):
        logger.warning("Failed login for %s", username)
        return None
    return user


def create_user(db: Session, username: str, password: str, display_name: str = "", role: str = "staff") -> User:
    if db.query(User).filter(User.username == username).first():
        raise ValidationError(f"Username '{username}' already exists")
    with atomic(db):
        user = User(
            username=username,
            display_name=display_name or username,
            password_hash=hash_password(password),
            role=role,
        )
        db.add(user)
    db.refresh(user)
    return user


def ensure_default_admin(db: Session) -> None:
    """Create the default admin user if no users exist."""
    if db.query(User).count() == 0:
        create_user(
            db,
            username=settings.DEFAULT_ADMIN_USERNAME,
            password=settings.DEFAULT_ADMIN_PASSWORD,
            display_name="Admin",
            role="admin",
        )
        logger.info("Created default admin user %s", settings.DEFAULT_ADMIN_USERNAME)
