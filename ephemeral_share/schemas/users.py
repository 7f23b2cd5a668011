from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from ephemeral_share.utils.validators import PasswordValidationError, validate_password_complexity


class ChangePasswordRequest(BaseModel):
    """Body of ``POST /user/change_password`` (camelCase, as the web client sends it)."""

    old_password: str
    new_password: str = Field(min_length=8)
    confirm_new_password: str

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    @field_validator('new_password')
    @classmethod
    def validate_new_password(cls, v: str) -> str:
        try:
            validate_password_complexity(v)
        except PasswordValidationError as e:
            raise ValueError('; '.join(e.errors))
        return v

    @model_validator(mode='after')
    def check_confirmation(self) -> "ChangePasswordRequest":
        if self.new_password != self.confirm_new_password:
            raise ValueError("New password and confirmation do not match")
        return self
