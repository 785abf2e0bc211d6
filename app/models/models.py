from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

# Shapes the backend has been seen to use for a text field: plain text, a list of
# parts, or a scalar that only needs stringifying.
ContentValue = str | list[Any] | dict[str, Any] | int | float | bool | None


class Message(BaseModel):
    """Conversation entry sent to the backend and kept in history."""

    model_config = ConfigDict(frozen=True)

    role: Literal["system", "user", "assistant"]
    content: str
    images: list[str] | None = Field(
        default=None, description="Bare base64 payloads attached to this message"
    )

    @property
    def image(self) -> str | None:
        """Return the attached image, if any."""
        return self.images[0] if self.images else None


class AnalyzeRequest(BaseModel):
    """Inbound relay request from the screen assistant frontend."""

    model_config = ConfigDict(populate_by_name=True)

    message: str | None = Field(default=None)
    image_base64: str | None = Field(default=None, alias="imageBase64")


class FeedbackResponse(BaseModel):
    """Successful non-streaming relay response."""

    feedback: str


class ErrorResponse(BaseModel):
    """Error envelope returned on failures."""

    error: str


class HealthCheckResponse(BaseModel):
    """Health check response model"""

    ok: bool
    backend: str | None = Field(default=None, description="Backend version when reachable")
    sessions: int = Field(default=0)
    error: str | None = Field(default=None)


class BackendOptions(BaseModel):
    """Sampling options forwarded to the backend."""

    temperature: float = 0.6
    top_p: float = 0.9
    num_predict: int = -1


class ChatPayload(BaseModel):
    """Body of a conversational completion request."""

    model: str
    messages: list[Message]
    stream: bool = False
    options: BackendOptions = Field(default_factory=BackendOptions)


class GeneratePayload(BaseModel):
    """Body of a single-turn completion request."""

    model: str
    prompt: str
    images: list[str] = Field(default_factory=list)
    stream: bool = False
    options: BackendOptions = Field(default_factory=BackendOptions)


class ReplyMessage(BaseModel):
    """The `message` object of a conversational reply or stream event."""

    role: str | None = Field(default=None)
    content: ContentValue = Field(default=None)


class ChatReply(BaseModel):
    """Non-streaming conversational reply. Either field may carry the answer."""

    message: ReplyMessage | None = Field(default=None)
    response: ContentValue = Field(default=None)
    done: bool | None = Field(default=None)


class GenerateReply(BaseModel):
    """Single-turn completion reply."""

    response: ContentValue = Field(default=None)
    done: bool | None = Field(default=None)


class StreamEvent(BaseModel):
    """One NDJSON event of a streamed conversational reply."""

    message: ReplyMessage | None = Field(default=None)
    delta: ContentValue = Field(default=None)
    done: bool = Field(default=False)
    error: str | None = Field(default=None)


# Rebuild models with forward references
Message.model_rebuild()
ChatPayload.model_rebuild()
ChatReply.model_rebuild()
StreamEvent.model_rebuild()
