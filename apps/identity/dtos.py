"""DTOs for Identity app."""
from dataclasses import dataclass
from datetime import datetime
from uuid import UUID
from typing import Optional, List


@dataclass(frozen=True)
class UserDTO:
    id: UUID
    email: str
    name: str
    role: str
    organization_id: Optional[UUID]
    organization_name: Optional[str]
    phone: str
    is_active: bool
    last_login: Optional[datetime]
    permissions: List[str]


from ninja import Schema


class LoginSchema(Schema):
    email: str = ""
    password: str = ""


class RegisterSchema(Schema):
    name: str = ""
    email: str = ""
    password: str = ""
    organization_name: str = ""
    organization_type: str = ""
    organization_phone: Optional[str] = None
    organization_address: Optional[str] = None
    requested_role: Optional[str] = None


class ForgotPasswordSchema(Schema):
    email: str = ""


class ResetPasswordSchema(Schema):
    token: str = ""
    new_password: str = ""


class UserInfo(Schema):
    id: UUID
    email: str
    name: str
    role: str
    organization_id: Optional[UUID] = None


class AuthTokenResponse(Schema):
    access_token: str
    token_type: str = "Bearer"
    expires_in: int
    user: UserInfo


class MessageResponse(Schema):
    message: str


class ValidationErrorResponse(Schema):
    message: str
    errors: List[str]


class LockedAccountResponse(Schema):
    message: str
    lockout_remaining_minutes: int
    locked_until: datetime


class UserRoleUpdate(Schema):
    role: str = ""
    reason: Optional[str] = None


class UserStatusUpdate(Schema):
    is_active: bool
    reason: Optional[str] = None


class ProfileUpdate(Schema):
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
