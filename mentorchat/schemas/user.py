import enum
from uuid import UUID

from fastapi_users import schemas
from pydantic import BaseModel, ConfigDict


class UserRole(str, enum.Enum):
    PATIENT = "patient"
    MENTOR = "mentor"
    ADMIN = "admin"


class UserRead(schemas.BaseUser):
    full_name: str | None = None
    avatar_url: str | None = None
    role: UserRole


class UserCreate(schemas.BaseUserCreate):
    full_name: str | None = None
    avatar_url: str | None = None
    role: UserRole = UserRole.PATIENT
    specialty: str | None = None


class UserUpdate(schemas.BaseUserUpdate):
    full_name: str | None = None
    avatar_url: str | None = None
    specialty: str | None = None


class UserProfile(BaseModel):
    """Public profile used to enrich conversations and contact lists."""

    id: UUID
    full_name: str
    email: str = ""
    avatar_url: str | None = None
    role: UserRole | None = None
    specialty: str | None = None

    model_config = ConfigDict(from_attributes=True)

    @classmethod
    def from_user(cls, user) -> "UserProfile":
        return cls(
            id=user.id,
            full_name=user.display_name,
            email=user.email or "",
            avatar_url=user.avatar_url,
            role=user.role,
            specialty=user.specialty,
        )

    @classmethod
    def unknown(cls, user_id: UUID) -> "UserProfile":
        return cls(id=user_id, full_name="Unknown User")
