"""Pydantic schemas for WebSocket events and HTTP responses."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from plyglot.chat.languages import InteractionMode, ResponseStyle
from plyglot.chat.usage import UsageSnapshot


class CamelModel(BaseModel):
    """Base model that reads and writes camelCase field names."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# Inbound events
class EventFrame(BaseModel):
    """A single WebSocket frame: ``{"event": name, "data": payload}``."""

    event: str
    data: Any = None


class ChatMessagePayload(CamelModel):
    """Payload of the ``chat message`` event."""

    message: str = ""
    target_lang: str = ""
    response_mode: ResponseStyle = ResponseStyle.NORMAL
    interaction_type: InteractionMode = InteractionMode.TRANSLATE
    model: str | None = None


class SwitchModePayload(CamelModel):
    """Payload of the ``switch mode`` event."""

    interaction_type: InteractionMode


class SettingsChangePayload(BaseModel):
    """Payload of the ``settings change`` event."""

    model_config = ConfigDict(populate_by_name=True)

    type: str
    from_: Any = Field(default=None, alias="from")
    to: Any = None
    timestamp: str | int | float | None = None


# Outbound events
class TokenUsage(CamelModel):
    """Token counts reported for one provider call."""

    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


class UsageStatsResponse(CamelModel):
    """Aggregate usage counters."""

    total_tokens: int
    prompt_tokens: int
    completion_tokens: int
    translation_requests: int
    conversation_requests: int
    total_requests: int
    avg_tokens_per_request: str

    @classmethod
    def from_snapshot(cls, snapshot: UsageSnapshot) -> "UsageStatsResponse":
        return cls.model_validate(snapshot.to_dict())


class ChatResponsePayload(CamelModel):
    """Payload of the ``chat response`` event."""

    text: str
    usage: TokenUsage | None = None
    stats: UsageStatsResponse


class ErrorPayload(CamelModel):
    """Payload of the ``error`` event."""

    message: str


# HTTP
class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    version: str
    timestamp: datetime


class LanguageOption(BaseModel):
    """A selectable target language."""

    code: str
    name: str


class LanguagesResponse(CamelModel):
    """Options the presentation layer offers to users."""

    languages: list[LanguageOption]
    response_modes: list[ResponseStyle]
    interaction_types: list[InteractionMode]
