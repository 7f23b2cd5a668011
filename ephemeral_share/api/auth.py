from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ephemeral_share.database import get_db
from ephemeral_share.logging_config import setup_logging
from ephemeral_share.models.user import DEFAULT_ROLES, User
from ephemeral_share.schemas.auth import TokenResponse, UserLoginRequest, UserRegisterRequest, UserResponse
from ephemeral_share.schemas.common import APIResponse
from ephemeral_share.services.auth import authenticate_user, hash_password
from ephemeral_share.services.jwt import create_access_token

# tags為標籤，用於 API 文件分組，在 Swagger自動文件頁面會顯示為「auth」區塊
router = APIRouter(prefix="/auth", tags=["auth"])

logger = setup_logging()


def _bad_request(message: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_400_BAD_REQUEST,
        detail={"success": False, "error": "Bad Request", "message": message},
    )


# decorator中response_model為成功時的預設回傳格式，status_code為成功時的預設status code，
@router.post(
    "/register",
    response_model=APIResponse[UserResponse],
    status_code=status.HTTP_201_CREATED,
)
# Depends為FastAPI的依賴注入機制
def register(request: UserRegisterRequest, db: Session = Depends(get_db)):
    # Normalize email to lowercase
    email = request.email.lower() if request.email else None

    # Check if username already exists
    existing_user = db.execute(
        select(User).where(User.username == request.username)
    ).scalar_one_or_none()
    if existing_user:
        raise _bad_request("Username already exists")

    if email is not None:
        existing_email = db.execute(
            select(User).where(User.email == email)
        ).scalar_one_or_none()
        if existing_email:
            raise _bad_request("Email already exists")

    # Roles sent by the client are ignored, every account starts as ROLE_USER
    user = User(
        username=request.username,
        email=email,
        hashed_password=hash_password(request.password),
        roles=list(DEFAULT_ROLES),
    )

    try:
        db.add(user)
        db.commit()
        # 從資料庫重新查詢這個user，更新Python物件的屬性(user.id和user.created_at等, 不然值還是None, 因為這些是DB自動生成的)
        db.refresh(user)
    except IntegrityError:
        db.rollback()
        raise _bad_request("Username or email already exists")

    logger.info(f"User registered: id={user.id}, username={user.username}")
    # model_validate()確保只返回UserResponse定義的欄位，不會洩漏hashed_password
    return APIResponse(success=True, data=UserResponse.model_validate(user))


@router.post("/login", response_model=APIResponse[TokenResponse])
def login(request: UserLoginRequest, db: Session = Depends(get_db)):
    user = authenticate_user(db, request.username, request.password)

    if not user:
        logger.warning(f"Failed login attempt: username={request.username}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={
                "success": False,
                "error": "Unauthorized",
                "message": "Invalid credentials",
            },
        )

    # Check if user is active
    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={
                "success": False,
                "error": "Forbidden",
                "message": "User is inactive",
            },
        )

    # Create JWT
    token = create_access_token(user.id, user.username)
    return APIResponse(
        success=True,
        data=TokenResponse(
            token=token,
            id=user.id,
            username=user.username,
            email=user.email,
            roles=user.roles,
        ),
    )
