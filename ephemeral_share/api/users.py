"""
Current user endpoints.
"""
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from ephemeral_share.database import get_db
from ephemeral_share.dependencies.auth import get_current_user
from ephemeral_share.logging_config import setup_logging
from ephemeral_share.models.user import User
from ephemeral_share.schemas.auth import UserResponse
from ephemeral_share.schemas.common import APIResponse
from ephemeral_share.schemas.users import ChangePasswordRequest
from ephemeral_share.services.auth import hash_password, verify_password

router = APIRouter(prefix="/user", tags=["user"])

logger = setup_logging()


@router.get(
    "/me",
    response_model=APIResponse[UserResponse],
    status_code=status.HTTP_200_OK,
)
def get_me(user: User = Depends(get_current_user)):
    return APIResponse(success=True, data=UserResponse.model_validate(user))


@router.post(
    "/change_password",
    response_model=APIResponse[dict],
    status_code=status.HTTP_200_OK,
)
def change_password(
    request: ChangePasswordRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Change the current user's password.

    Args:
        request: oldPassword, newPassword and confirmNewPassword
        user: Authenticated user
        db: Database session

    Raises:
        HTTPException 400: If the old password is wrong
    """
    if not verify_password(request.old_password, user.hashed_password):
        logger.warning(f"Password change rejected: user_id={user.id}, reason=wrong_old_password")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={
                "success": False,
                "error": "Bad Request",
                "message": "Old password is incorrect",
            },
        )

    user.hashed_password = hash_password(request.new_password)
    db.commit()

    logger.info(f"Password changed: user_id={user.id}")
    return APIResponse(success=True, data={"message": "Password changed successfully"})
