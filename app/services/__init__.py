from .client import OllamaClient
from .conversation import DEFAULT_SESSION_ID, ConversationStore, SessionRegistry
from .errors import (
    BackendError,
    BackendHttpError,
    BackendProtocolError,
    BackendStreamError,
    BackendTimeout,
    BackendTransportError,
    BackendUnreachable,
    EmptyResponse,
    ErrorKind,
)
from .relay import RelayService, build_user_entry, get_relay_service

__all__ = [
    "DEFAULT_SESSION_ID",
    "BackendError",
    "BackendHttpError",
    "BackendProtocolError",
    "BackendStreamError",
    "BackendTimeout",
    "BackendTransportError",
    "BackendUnreachable",
    "ConversationStore",
    "EmptyResponse",
    "ErrorKind",
    "OllamaClient",
    "RelayService",
    "SessionRegistry",
    "build_user_entry",
    "get_relay_service",
]
