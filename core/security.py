# core/security.py
from datetime import datetime, timedelta
from typing import Optional, Dict, Any

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from passlib.context import CryptContext
from sqlmodel import Session

from core.database import get_session
from core.config import settings
from models.models import Admin, Profile, ProfileRole


# ========================================
# 🔑 JWT / APP CONFIG
# ========================================
SECRET_KEY = settings.SECRET_KEY
ALGORITHM = settings.ALGORITHM or "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = settings.ACCESS_TOKEN_EXPIRE_MINUTES
ADMIN_SCOPE = "admin"

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/admin/auth/login")


# ========================================
# 🔐 Password Hashing (Argon2)
# ========================================
pwd_context = CryptContext(schemes=["argon2"], deprecated="auto")


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


# ========================================
# 🔑 Token Helpers
# ========================================
def create_access_token(data: Dict[str, Any], expires_delta: Optional[timedelta] = None) -> str:
    to_encode = data.copy()
    expire = datetime.utcnow() + (expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)


def decode_token(token: str) -> dict:
    """Decode JWT and return payload."""
    try:
        return jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token.",
            headers={"WWW-Authenticate": "Bearer"},
        )


# ========================================
# 👤 Authentication & Role Checks
# ========================================
def get_current_user(token: str = Depends(oauth2_scheme), session: Session = Depends(get_session)) -> Profile:
    """
    Resolve the caller's profile from a session token issued by the
    authentication provider. The token carries the account id as `user_id`
    (or `sub`).
    """
    payload = decode_token(token)
    if payload.get("scope") == ADMIN_SCOPE:
        raise HTTPException(status_code=401, detail="User not authenticated")

    user_id = payload.get("user_id") or payload.get("sub")
    if not user_id:
        raise HTTPException(status_code=401, detail="Invalid token payload")

    profile = session.get(Profile, user_id)
    if not profile:
        raise HTTPException(status_code=401, detail="User not authenticated")
    return profile


def get_current_syndic(current_user: Profile = Depends(get_current_user)) -> Profile:
    """Only syndics (building managers)."""
    if current_user.role != ProfileRole.SYNDIC.value:
        raise HTTPException(status_code=403, detail="Only syndics can perform this action")
    return current_user


def get_current_admin(token: str = Depends(oauth2_scheme), session: Session = Depends(get_session)) -> Admin:
    """Platform admin, authenticated through /admin/auth/login."""
    payload = decode_token(token)
    if payload.get("scope") != ADMIN_SCOPE:
        raise HTTPException(status_code=401, detail="Not authenticated as admin")

    admin = session.get(Admin, payload.get("admin_id"))
    if not admin or not admin.is_active:
        raise HTTPException(status_code=401, detail="Not authenticated as admin")
    return admin


def create_admin_token(admin: Admin) -> str:
    return create_access_token({"sub": admin.email, "admin_id": admin.id, "scope": ADMIN_SCOPE})
