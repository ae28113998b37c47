"""User schemas."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from ites.auth.roles import ROLE_LABELS, Role


class UserOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    email: str
    name: str | None = None
    role: str
    role_label: str = ""
    has_api_key: bool = False
    created_at: datetime

    @classmethod
    def from_user(cls, user) -> "UserOut":
        out = cls.model_validate(user)
        out.role_label = ROLE_LABELS[Role(user.role)]
        out.has_api_key = bool(user.api_key_hash)
        return out


class CreateUserRequest(BaseModel):
    """POST /v1/users request (admin provisioning)."""

    email: str = Field(min_length=3)
    name: str | None = None
    role: Role = Role.VIEWER


class CreatedUserResponse(BaseModel):
    """The API key is only ever returned here."""

    user: UserOut
    api_key: str


class RoleUpdateRequest(BaseModel):
    """PUT /v1/users/{id}/role request."""

    role: Role
