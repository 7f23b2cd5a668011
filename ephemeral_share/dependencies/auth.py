from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy import select
from sqlalchemy.orm import Session

from ephemeral_share.database import get_db
from ephemeral_share.models.user import User
from ephemeral_share.services.jwt import decode_access_token

# 從請求標頭讀取 Authorization: Bearer <token>
#   - security：沒有提供token時自動回傳錯誤
#   - optional_security：沒有提供token時回傳None（匿名使用者）
security = HTTPBearer()
optional_security = HTTPBearer(auto_error=False)


def _unauthorized(message: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail={
            "success": False,
            "error": "Unauthorized",
            "message": message,
        },
        headers={"WWW-Authenticate": "Bearer"},
    )


def _resolve_user(token: str, db: Session) -> User:
    payload = decode_access_token(token)
    if not payload or "sub" not in payload:
        raise _unauthorized("Invalid token")

    try:
        user_id = int(payload["sub"])
    except (TypeError, ValueError):
        raise _unauthorized("Invalid token")

    user = db.execute(select(User).where(User.id == user_id)).scalar_one_or_none()

    if not user:
        raise _unauthorized("User not found")

    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={
                "success": False,
                "error": "Forbidden",
                "message": "User is inactive",
            },
        )

    return user


def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: Session = Depends(get_db),
) -> User:
    return _resolve_user(credentials.credentials, db)


def get_optional_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(optional_security),
    db: Session = Depends(get_db),
) -> User | None:
    """
    Resolve the bearer token if one was sent.

    A request without a token is anonymous. A request with a bad token is
    rejected rather than silently downgraded to anonymous.
    """
    if credentials is None:
        return None
    return _resolve_user(credentials.credentials, db)
