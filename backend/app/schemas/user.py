"""
User API Backend — User Request/Response Schemas
=================================================

What:  Pydantic models defining the users API contract.
How:   Business handlers validate request bodies with these (app.validation)
       and serialise ORM rows through the response models.
"""

import re
import uuid
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, EmailStr, Field, field_validator

NAME_PATTERN = re.compile(r"^[a-zA-Z\s]+$")
EMAIL_MAX_LENGTH = 255


def _check_name(v: str) -> str:
    if not NAME_PATTERN.match(v):
        raise ValueError("Name must contain only letters and spaces")
    return v


# ══════════════════════════════════════════════════════════════════════════
# Request Models
# ══════════════════════════════════════════════════════════════════════════


class UserCreate(BaseModel):
    email: EmailStr = Field(description="Unique email address (max 255 characters)")
    name: str = Field(min_length=2, max_length=100, description="Display name (letters and spaces)")

    # Matches the users.email column width
    @field_validator("email", mode="before")
    @classmethod
    def validate_email_length(cls, v):
        if isinstance(v, str) and len(v) > EMAIL_MAX_LENGTH:
            raise ValueError(f"Email must be at most {EMAIL_MAX_LENGTH} characters")
        return v

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        return _check_name(v)


class UserUpdate(BaseModel):
    """Partial update; omitted fields are left unchanged."""

    name: Optional[str] = Field(default=None, min_length=2, max_length=100)

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: Optional[str]) -> Optional[str]:
        return _check_name(v) if v is not None else v


class UserListParams(BaseModel):
    limit: int = Field(default=50, ge=1, le=100, description="Items per page (max 100)")
    offset: int = Field(default=0, ge=0, description="Items to skip")


# ══════════════════════════════════════════════════════════════════════════
# Response Models
# ══════════════════════════════════════════════════════════════════════════


class UserResponse(BaseModel):
    id: uuid.UUID
    email: str
    name: str
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class UserListResponse(BaseModel):
    users: List[UserResponse]
    count: int = Field(description="Number of users in this page")
