from fastapi import Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError
from sqlalchemy import select
from sqlalchemy.orm import Session

from stockhub.core.security import decode_token
from stockhub.db.database import get_db
from stockhub.models.user import User, UserRole
from stockhub.services.scope import UNRESTRICTED, AccessScope

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/token", auto_error=False)

ROLE_PERMISSIONS: dict[UserRole, set[str]] = {
    UserRole.ADMIN: {"stock:view", "stock:import", "stock:manage", "pool:manage"},
    UserRole.MANAGER: {"stock:view", "stock:import", "stock:manage", "pool:manage"},
    UserRole.OPERATOR: {"stock:view", "stock:import", "stock:manage"},
    UserRole.VIEWER: {"stock:view"},
}


def get_current_user(
    request: Request,
    token: str | None = Depends(oauth2_scheme),
    db: Session = Depends(get_db),
) -> User:
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Invalid authentication credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    raw_token = (token or "").strip()
    if not raw_token:
        raw_token = (request.headers.get("x-access-token") or "").strip()
    if not raw_token:
        raise credentials_exception

    try:
        payload = decode_token(raw_token)
    except JWTError as exc:
        raise credentials_exception from exc
    subject = payload.get("sub")
    if subject is None or payload.get("type") != "access":
        raise credentials_exception
    try:
        user_id = int(subject)
    except (TypeError, ValueError) as exc:
        raise credentials_exception from exc

    user = db.scalar(select(User).where(User.id == user_id))
    if not user:
        raise credentials_exception
    if not user.is_active:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="User account is disabled")
    return user


def require_permission(permission: str):
    def checker(current_user: User = Depends(get_current_user)) -> User:
        permissions = ROLE_PERMISSIONS.get(current_user.role, set())
        if permission not in permissions:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Permission required: {permission}",
            )
        return current_user

    return checker


def scope_for(user: User) -> AccessScope:
    if user.role == UserRole.ADMIN or user.is_global_access:
        return UNRESTRICTED
    if user.department_id is None:
        return AccessScope(department_ids=frozenset())
    return AccessScope(department_ids=frozenset({user.department_id}))
