"""Console user schemas."""

import re
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"


class UserBase(BaseModel):
    """Fields shared by create and response models."""

    username: str = Field(
        ...,
        min_length=3,
        max_length=256,
        description="Login name",
        examples=["jdoe"],
    )
    email: str = Field(
        ...,
        max_length=256,
        description="Email address",
        examples=["jdoe@example.com"],
    )
    first_name: Optional[str] = Field(None, max_length=100, examples=["Jane"])
    last_name: Optional[str] = Field(None, max_length=100, examples=["Doe"])


class UserCreate(UserBase):
    """Schema for creating a console user."""

    password: str = Field(..., min_length=8, max_length=128)
    roles: List[str] = Field(
        default_factory=list,
        description="Role names; defaults to User when empty",
        examples=[["Manager"]],
    )

    @field_validator("username")
    @classmethod
    def validate_username(cls, v: str) -> str:
        """Restrict usernames to a safe character set."""
        v = v.strip()
        if not all(c.isalnum() or c in "_.@-" for c in v):
            raise ValueError("Username may only contain letters, digits and _ . @ -")
        return v

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: str) -> str:
        v = v.strip()
        if not re.match(EMAIL_PATTERN, v):
            raise ValueError("Invalid email address")
        return v


class UserUpdate(BaseModel):
    """Schema for updating a console user (all fields optional)."""

    email: Optional[str] = Field(None, max_length=256, pattern=EMAIL_PATTERN)
    first_name: Optional[str] = Field(None, max_length=100)
    last_name: Optional[str] = Field(None, max_length=100)
    roles: Optional[List[str]] = Field(None, description="Replaces the role set when given")


class UserResponse(BaseModel):
    """Console user as returned by the API."""

    id: str
    username: str
    email: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    is_active: bool
    is_totp_enabled: bool
    roles: List[str] = Field(default_factory=list)
    last_login: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

    @classmethod
    def from_user(cls, user, roles: List[str]) -> "UserResponse":
        """Build from an ``AppUser`` row plus its role names."""
        data = cls.model_validate(user, from_attributes=True).model_dump()
        data["roles"] = roles
        return cls(**data)


class RoleAssignmentRequest(BaseModel):
    role: str = Field(..., min_length=1, max_length=50, examples=["Manager"])


class RoleResponse(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    permissions: List[str] = Field(default_factory=list)

    model_config = ConfigDict(from_attributes=True)


class TotpSetupResponse(BaseModel):
    """Secret and provisioning data for an authenticator app."""

    secret: str = Field(..., description="Base32 secret for manual entry")
    provisioning_uri: str = Field(..., description="otpauth:// URI")
    qr_code: str = Field(..., description="PNG QR code as a data URL")


class TotpEnableRequest(BaseModel):
    code: str = Field(..., min_length=6, max_length=6, pattern=r"^\d{6}$")


class TotpDisableRequest(BaseModel):
    password: str = Field(..., min_length=1)
