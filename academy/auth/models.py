from pydantic import BaseModel, Field, field_validator
from typing import Optional
from enum import Enum
import re

# ==================== ENUMS ====================

class UserType(str, Enum):
    REGULAR = "regular"
    DUMMY = "dummy"
    TEST = "test"
    ADMIN = "admin"

class UserStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    SUSPENDED = "suspended"
    FLAGGED = "flagged"

EMAIL_PATTERN = re.compile(r"^\w+([.-]?\w+)*@\w+([.-]?\w+)*(\.\w{2,})+$")

# ==================== REQUEST MODELS ====================

class ProfileData(BaseModel):
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone_number: Optional[str] = None
    avatar: Optional[str] = None
    bio: Optional[str] = None
    gender: Optional[str] = None
    date_of_birth: Optional[str] = None

class RegisterRequest(BaseModel):
    username: str = Field(..., min_length=3, max_length=30)
    email: str
    password: str = Field(..., min_length=6)
    user_type: UserType = UserType.REGULAR
    profile: ProfileData = ProfileData()

    @field_validator("username")
    @classmethod
    def strip_username(cls, v):
        return v.strip()

    @field_validator("email")
    @classmethod
    def validate_email(cls, v):
        v = v.strip().lower()
        if not EMAIL_PATTERN.match(v):
            raise ValueError("Please enter a valid email")
        return v

class LoginRequest(BaseModel):
    email: str
    password: str

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v):
        return v.strip().lower()

class StatusUpdateRequest(BaseModel):
    status: UserStatus
    reason: Optional[str] = None
