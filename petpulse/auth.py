from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from .config import ACCESS_TOKEN_EXPIRE_MINUTES, ALGORITHM, SECRET_KEY

ROLES = ("user", "caretaker", "doctor", "admin")

security = HTTPBearer()


@dataclass
class CallerIdentity:
    user_id: str
    role: str
    name: Optional[str] = None
    email: Optional[str] = None


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """Create a JWT carrying sub, role, name and email claims"""
    to_encode = data.copy()
    if expires_delta:
        expire = datetime.now(timezone.utc) + expires_delta
    else:
        expire = datetime.now(timezone.utc) + timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)

    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)


def get_current_user(credentials: HTTPAuthorizationCredentials = Depends(security)) -> CallerIdentity:
    """Decode the bearer token into the caller's identity"""
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Not authenticated",
        headers={"WWW-Authenticate": "Bearer"},
    )

    try:
        payload = jwt.decode(credentials.credentials, SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError:
        raise credentials_exception

    user_id = payload.get("sub")
    role = payload.get("role") or "user"
    if user_id is None or role not in ROLES:
        raise credentials_exception

    return CallerIdentity(
        user_id=str(user_id),
        role=role,
        name=payload.get("name"),
        email=payload.get("email"),
    )


def require_roles(*roles: str):
    """Dependency that lets only the given roles through"""
    def role_checker(current_user: CallerIdentity = Depends(get_current_user)) -> CallerIdentity:
        if current_user.role not in roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient permissions",
            )
        return current_user
    return role_checker


def get_current_admin(current_user: CallerIdentity = Depends(require_roles("admin"))) -> CallerIdentity:
    return current_user
