from __future__ import annotations

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from journal_buddy.journal.contracts import Mood, ReflectionStyle, SessionType


class CreateEntryRequest(BaseModel):
    content: str = Field(min_length=1)
    mood: Mood | None = None
    energy: int | None = Field(default=None, ge=1, le=5)
    tags: list[str] = Field(default_factory=list)
    generate_reflection: bool = Field(
        default=False,
        validation_alias=AliasChoices("generate_reflection", "generateReflection"),
    )
    style: ReflectionStyle = ReflectionStyle.brief


class UpdateEntryRequest(BaseModel):
    """Partial update. Only allow-listed fields; unknown keys are rejected (422)."""

    model_config = ConfigDict(extra="forbid")

    content: str | None = Field(default=None, min_length=1)
    mood: Mood | None = None
    energy: int | None = Field(default=None, ge=1, le=5)
    tags: list[str] | None = None


class ReflectRequest(BaseModel):
    style: ReflectionStyle = ReflectionStyle.brief


class ChatRequest(BaseModel):
    message: str = Field(
        min_length=1, validation_alias=AliasChoices("message", "content")
    )
    conversation_id: str | None = Field(
        default=None, validation_alias=AliasChoices("conversation_id", "conversationId")
    )
    entry_id: str | None = Field(
        default=None, validation_alias=AliasChoices("entry_id", "entryId")
    )
    session_type: SessionType | None = Field(
        default=None, validation_alias=AliasChoices("session_type", "sessionType")
    )


class ErrorResponse(BaseModel):
    code: str
    message: str
