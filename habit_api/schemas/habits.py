from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

TIME_RE = r"^\d{2}:\d{2}$"

# Server-managed columns (owner, history, timestamps) are never read from
# client payloads; unknown keys are dropped so a client echoing a full habit
# back still validates.
_CAMEL_CONFIG = ConfigDict(
    alias_generator=to_camel, populate_by_name=True, extra="ignore"
)


class HabitCreate(BaseModel):
    model_config = _CAMEL_CONFIG

    title: str = Field(min_length=1, max_length=120)
    description: str | None = Field(default=None, max_length=2000)
    category: str | None = Field(default=None, max_length=60)
    reminder_time: str | None = Field(default=None, pattern=TIME_RE, description="HH:MM")
    image_url: str | None = Field(default=None, max_length=2048)
    user_name: str | None = Field(default=None, max_length=120)
    public: bool = False

    @field_validator("title")
    @classmethod
    def strip_title(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("title must not be blank")
        return v


class HabitUpdate(BaseModel):
    model_config = _CAMEL_CONFIG

    title: str | None = Field(default=None, min_length=1, max_length=120)
    description: str | None = Field(default=None, max_length=2000)
    category: str | None = Field(default=None, max_length=60)
    reminder_time: str | None = Field(default=None, pattern=TIME_RE, description="HH:MM")
    image_url: str | None = Field(default=None, max_length=2048)
    user_name: str | None = Field(default=None, max_length=120)
    public: bool | None = None

    def changes(self) -> dict[str, Any]:
        # title/public are NOT NULL columns; an explicit null means "leave as is".
        return {
            k: v
            for k, v in self.model_dump(exclude_unset=True).items()
            if v is not None or k not in {"title", "public"}
        }


class HabitOut(BaseModel):
    model_config = _CAMEL_CONFIG

    id: str
    title: str | None = None
    description: str | None = None
    category: str | None = None
    reminder_time: str | None = None
    image_url: str | None = None
    user_email: str | None = None
    user_name: str | None = None
    public: bool = False
    completion_history: list[str] = Field(default_factory=list)
    created_at: str | None = None
    current_streak: int = 0


class HabitMutationResponse(BaseModel):
    model_config = _CAMEL_CONFIG

    success: bool
    message: str
    habit: HabitOut | None = None


class CompleteHabitResponse(BaseModel):
    model_config = _CAMEL_CONFIG

    success: bool
    message: str
    current_streak: int
    habit: HabitOut | None = None
