from .models import (
    AnalyzeRequest,
    BackendOptions,
    ChatPayload,
    ChatReply,
    ErrorResponse,
    FeedbackResponse,
    GeneratePayload,
    GenerateReply,
    HealthCheckResponse,
    Message,
    ReplyMessage,
    StreamEvent,
)

__all__ = [
    "AnalyzeRequest",
    "BackendOptions",
    "ChatPayload",
    "ChatReply",
    "ErrorResponse",
    "FeedbackResponse",
    "GeneratePayload",
    "GenerateReply",
    "HealthCheckResponse",
    "Message",
    "ReplyMessage",
    "StreamEvent",
]
