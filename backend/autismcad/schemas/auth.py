"""Login / session schemas."""

from typing import List, Optional

from pydantic import BaseModel, EmailStr, Field

from autismcad.schemas.common import Payload


class LoginRequest(Payload):
    email: EmailStr
    password: str = Field(min_length=8, max_length=72)


class SessionUserOut(BaseModel):
    id: int
    nome: str
    email: str
    role: str


class LoginResponse(BaseModel):
    token: str
    token_type: str = "Bearer"
    expiresIn: int = Field(description="Seconds until the token expires")
    user: SessionUserOut


class MePermissionsResponse(BaseModel):
    role: Optional[str]
    roles: List[str]
    permissions: List[str]
    user: Optional[dict]
