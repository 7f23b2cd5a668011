from datetime import datetime

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

from ephemeral_share.utils.validators import (
    PasswordValidationError,
    validate_password_complexity,
    validate_username,
)


class UserRegisterRequest(BaseModel):
    username: str
    password: str = Field(min_length=8)
    email: EmailStr | None = None
    # The web client sends roles; registration always grants ROLE_USER only
    roles: list[str] | None = None

    @field_validator('username')
    @classmethod
    def check_username(cls, v: str) -> str:
        return validate_username(v.strip())

    # Pydantic的欄位驗證器只會攔截ValueError、TypeError等標準例外類型，
    # 所以這裡把PasswordValidationError轉換成ValueError
    @field_validator('password')
    @classmethod
    def validate_password(cls, v: str) -> str:
        try:
            validate_password_complexity(v)
        except PasswordValidationError as e:
            raise ValueError('; '.join(e.errors))
        return v


class UserResponse(BaseModel):
    id: int
    username: str
    email: str | None = None
    roles: list[str]
    created_at: datetime

    # 讓Pydantic可以直接從SQLAlchemy ORM物件的屬性建立實例（model_validate(user)）
    model_config = ConfigDict(from_attributes=True)


class UserLoginRequest(BaseModel):
    username: str
    password: str


class TokenResponse(BaseModel):
    token: str
    token_type: str = "bearer"
    id: int
    username: str
    email: str | None = None
    roles: list[str]
