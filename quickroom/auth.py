"""Password hashing and bearer tokens."""
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from fastapi import HTTPException, status
from jose import JWTError, jwt
from passlib.context import CryptContext
from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from .config import get_settings
from .models import User

pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")
settings = get_settings()

CREDENTIALS_HEADERS = {"WWW-Authenticate": "Bearer"}


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)


def create_access_token(data: Dict[str, Any], expires_delta: Optional[timedelta] = None) -> str:
    to_encode = data.copy()
    expire = datetime.utcnow() + (expires_delta or timedelta(minutes=settings.access_token_expire_minutes))
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def token_for(user: User) -> str:
    """Issue a token whose subject is the user's id, carrying the role for clients."""
    return create_access_token({"sub": str(user.id), "role": user.role.value, "name": user.name})


def decode_token(token: str) -> Dict[str, Any]:
    try:
        return jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except JWTError as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token",
            headers=CREDENTIALS_HEADERS,
        ) from exc


def authenticate_user(db: Session, login: str, password: str) -> Optional[User]:
    """Look the user up by username or email and check the password."""
    user = db.execute(select(User).where(or_(User.username == login, User.email == login))).scalars().first()
    if not user or not verify_password(password, user.hashed_password):
        return None
    return user
