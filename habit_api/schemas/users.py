from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

Role = Literal["user", "admin"]

EMAIL_RE = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"


class CreateUserRequest(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    name: str = Field(min_length=1, max_length=120)
    email: str = Field(pattern=EMAIL_RE, max_length=320)
    password: str = Field(min_length=6, max_length=128)
    role: Role = "user"
    photo_url: str | None = Field(default=None, alias="photoURL", max_length=2048)


class UpdateUserRequest(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    name: str | None = Field(default=None, min_length=1, max_length=120)
    role: Role | None = None
    status: Literal["active", "blocked"] | None = None
    photo_url: str | None = Field(default=None, alias="photoURL", max_length=2048)

    def changes(self) -> dict[str, Any]:
        return self.model_dump(exclude_unset=True)


class ProfileOut(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    id: str
    name: str | None = None
    email: str | None = None
    role: str = "user"
    status: str | None = None
    photo_url: str | None = Field(default=None, serialization_alias="photoURL")
    created_at: str | None = Field(default=None, serialization_alias="createdAt")


class RoleResponse(BaseModel):
    role: str


class CreatedUserResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    message: str
    inserted_id: str = Field(serialization_alias="insertedId")


class UpdatedUserResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    message: str
    updated_user: ProfileOut = Field(serialization_alias="updatedUser")
