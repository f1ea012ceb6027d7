# auth_service/schemas/auth.py
from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, EmailStr, Field, model_validator
from pydantic.alias_generators import to_camel

from auth_service.models.account_provider import Provider
from auth_service.schemas.user import UserOut

_CAMEL = {"alias_generator": to_camel, "populate_by_name": True}


class SocialLoginRequest(BaseModel):
    provider: Provider
    # clients name the credential differently per provider; any one is accepted
    token: Optional[str] = None
    id_token: Optional[str] = None
    identity_token: Optional[str] = None
    access_token: Optional[str] = None
    email: Optional[EmailStr] = None
    first_name: Optional[str] = Field(default=None, max_length=120)
    last_name: Optional[str] = Field(default=None, max_length=120)

    model_config = _CAMEL

    @property
    def credential(self) -> str:
        for value in (self.token, self.id_token, self.identity_token, self.access_token):
            if value and value.strip():
                return value.strip()
        return ""

    @model_validator(mode="after")
    def _require_credential(self):
        if not self.credential:
            raise ValueError("one of token, idToken, identityToken or accessToken is required")
        return self


class RefreshRequest(BaseModel):
    refresh_token: Optional[str] = None

    model_config = _CAMEL


class AuthResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int
    refresh_token: Optional[str] = None
    user: UserOut

    model_config = _CAMEL


class LogoutAllResponse(BaseModel):
    revoked: int


class MessageResponse(BaseModel):
    message: str
