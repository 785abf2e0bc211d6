from enum import StrEnum

from fastapi import status


class ErrorKind(StrEnum):
    """Named failure kinds a relay caller can branch on."""

    UNREACHABLE = "unreachable"
    TIMEOUT = "timeout"
    HTTP = "http"
    TRANSPORT = "transport"
    PROTOCOL = "protocol"
    STREAM = "stream"
    EMPTY = "empty"


class BackendError(Exception):
    """Base class for failures talking to the inference backend."""

    kind: ErrorKind = ErrorKind.PROTOCOL
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR


class BackendUnreachable(BackendError):
    """The backend refused the connection or its host could not be resolved."""

    kind = ErrorKind.UNREACHABLE

    def __init__(self, host: str) -> None:
        self.host = host
        super().__init__(f"Cannot reach Ollama at {host}. Is the daemon running?")


class BackendTimeout(BackendError):
    """The transport gave up waiting on the backend."""

    kind = ErrorKind.TIMEOUT
    status_code = status.HTTP_504_GATEWAY_TIMEOUT

    def __init__(self, host: str, detail: str = "") -> None:
        self.host = host
        message = f"Ollama at {host} timed out"
        super().__init__(f"{message}: {detail}" if detail else message)


class BackendTransportError(BackendError):
    """The connection to the backend broke for a reason other than a timeout."""

    kind = ErrorKind.TRANSPORT


class BackendHttpError(BackendError):
    """The backend answered with a non-success status."""

    kind = ErrorKind.HTTP

    def __init__(self, status: int, body: str, endpoint: str = "chat") -> None:
        self.status = status
        self.body = body
        self.endpoint = endpoint
        label = "Ollama" if endpoint == "chat" else f"Ollama {endpoint}"
        super().__init__(f"{label} HTTP {status}: {body}")


class BackendProtocolError(BackendError):
    """The backend answered 2xx with a body that is not a JSON object."""

    kind = ErrorKind.PROTOCOL


class BackendStreamError(BackendError):
    """The backend reported an error inside an open stream."""

    kind = ErrorKind.STREAM


class EmptyResponse(BackendError):
    """Neither the conversational call nor the fallback produced any text."""

    kind = ErrorKind.EMPTY

    def __init__(self, message: str = "Ollama returned no content from chat or generate") -> None:
        super().__init__(message)
