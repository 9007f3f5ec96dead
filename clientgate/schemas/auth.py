"""Registration, login and account schemas."""
from datetime import datetime

from pydantic import BaseModel, EmailStr, model_validator

from clientgate.models.account import AccountRole


class RegisterRequest(BaseModel):
    token: str
    password: str
    confirm_password: str | None = None
    full_name: str | None = None

    @model_validator(mode="after")
    def passwords_match(self):
        if self.confirm_password is not None and self.confirm_password != self.password:
            raise ValueError("Passwords do not match")
        return self


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class AccountResponse(BaseModel):
    id: int
    email: str
    full_name: str | None = None
    role: AccountRole
    is_active: bool
    source_consultation_id: int | None = None
    created_at: datetime

    class Config:
        from_attributes = True


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"
    account: AccountResponse


class TokenPreview(BaseModel):
    """What the registration page may show before the prospect sets a password."""
    valid: bool = True
    email: str
    full_name: str
    package_tier: str | None = None
    expires_at: datetime
