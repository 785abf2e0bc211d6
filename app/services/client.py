from collections.abc import AsyncGenerator, Iterator
from contextlib import contextmanager
from typing import Any

import httpx
import orjson
from loguru import logger
from pydantic import ValidationError

from app.models import (
    BackendOptions,
    ChatPayload,
    ChatReply,
    GeneratePayload,
    GenerateReply,
    Message,
    StreamEvent,
)
from app.utils import g_config
from app.utils.helper import (
    NO_RESPONSE,
    extract_chat_answer,
    extract_generate_answer,
    extract_stream_delta,
)
from app.utils.singleton import Singleton

from .errors import (
    BackendHttpError,
    BackendProtocolError,
    BackendStreamError,
    BackendTimeout,
    BackendTransportError,
    BackendUnreachable,
)

JSON_HEADERS = {"Content-Type": "application/json"}


class OllamaClient(metaclass=Singleton):
    """
    Async client for an Ollama-compatible inference backend.

    Wraps the conversational endpoint (`/api/chat`, single-shot and streamed) and the
    single-turn endpoint (`/api/generate`) used as a fallback. Transport failures are
    translated into `BackendError` subclasses; an empty answer is not an error and is
    reported as the `NO_RESPONSE` sentinel.
    """

    def __init__(
        self,
        host: str | None = None,
        model: str | None = None,
        options: BackendOptions | None = None,
        timeout: float | None = None,
        system_prompt: str | None = None,
        default_prompt: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        conf = g_config.ollama
        self.host = (host or conf.host).rstrip("/")
        self.model = model or conf.model
        self.options = options or BackendOptions(
            temperature=conf.temperature,
            top_p=conf.top_p,
            num_predict=conf.num_predict,
        )
        self.timeout = timeout if timeout is not None else conf.timeout
        self.system_prompt = system_prompt or g_config.conversation.system_prompt
        self.default_prompt = default_prompt or g_config.conversation.default_prompt
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def init(self) -> None:
        """Open the shared HTTP connection pool."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout),
                headers=JSON_HEADERS,
                transport=self._transport,
            )
            logger.info(f"Ollama client ready (host={self.host}, model={self.model})")

    async def close(self) -> None:
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
        self._client = None

    async def _http(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            await self.init()
        assert self._client is not None
        return self._client

    @contextmanager
    def _transport_errors(self) -> Iterator[None]:
        """Translate httpx transport failures into backend errors."""
        try:
            yield
        except httpx.TimeoutException as e:
            raise BackendTimeout(self.host, type(e).__name__) from e
        except httpx.ConnectError as e:
            raise BackendUnreachable(self.host) from e
        except httpx.TransportError as e:
            raise BackendTransportError(f"Transport error talking to Ollama at {self.host}: {e}") from e

    async def _post(self, path: str, body: dict[str, Any], endpoint: str) -> dict[str, Any]:
        client = await self._http()
        with self._transport_errors():
            res = await client.post(f"{self.host}{path}", content=orjson.dumps(body))

        if res.is_error:
            raise BackendHttpError(res.status_code, res.text, endpoint)

        try:
            data = orjson.loads(res.content)
        except orjson.JSONDecodeError as e:
            raise BackendProtocolError(f"Ollama {endpoint} returned a non-JSON body") from e
        if not isinstance(data, dict):
            raise BackendProtocolError(f"Ollama {endpoint} returned {type(data).__name__}, not an object")
        return data

    def _chat_body(self, messages: list[Message], stream: bool) -> dict[str, Any]:
        payload = ChatPayload(
            model=self.model, messages=messages, stream=stream, options=self.options
        )
        return payload.model_dump(exclude_none=True)

    async def chat(self, messages: list[Message]) -> str:
        """Single-shot conversational completion. Returns `NO_RESPONSE` when empty."""
        data = await self._post("/api/chat", self._chat_body(messages, stream=False), "chat")
        try:
            answer = extract_chat_answer(ChatReply.model_validate(data))
        except ValidationError:
            logger.warning(f"Unrecognized Ollama chat reply shape: {data!r}")
            answer = ""

        if not answer:
            logger.warning(f"Ollama returned no content. Raw response: {data!r}")
            return NO_RESPONSE
        return answer

    def build_generate_prompt(self, text: str | None) -> str:
        prompt = (text or "").strip() or self.default_prompt
        return f"{self.system_prompt}\nUser: {prompt}\nAnswer:"

    async def generate(self, text: str | None, image: str | None = None) -> str:
        """Single-turn completion with the system instruction folded into the prompt."""
        payload = GeneratePayload(
            model=self.model,
            prompt=self.build_generate_prompt(text),
            images=[image] if image else [],
            stream=False,
            options=self.options,
        )
        data = await self._post("/api/generate", payload.model_dump(), "generate")
        try:
            answer = extract_generate_answer(GenerateReply.model_validate(data))
        except ValidationError:
            logger.warning(f"Unrecognized Ollama generate reply shape: {data!r}")
            answer = ""

        if not answer:
            logger.warning(f"Ollama generate returned no content. Raw response: {data!r}")
            return NO_RESPONSE
        return answer

    async def stream_chat(self, messages: list[Message]) -> AsyncGenerator[str]:
        """
        Stream a conversational completion as untrimmed text fragments.

        The backend answers with newline-delimited JSON events. Blank and malformed
        lines are skipped; an event carrying an `error` field raises
        `BackendStreamError`. Closing the generator early releases the connection.
        """
        client = await self._http()
        body = orjson.dumps(self._chat_body(messages, stream=True))

        with self._transport_errors():
            async with client.stream("POST", f"{self.host}/api/chat", content=body) as res:
                if res.is_error:
                    detail = (await res.aread()).decode("utf-8", errors="replace")
                    raise BackendHttpError(res.status_code, detail, "chat")

                buffer = ""
                async for chunk in res.aiter_text():
                    buffer += chunk
                    *lines, buffer = buffer.split("\n")
                    for line in lines:
                        if delta := self._parse_stream_line(line):
                            yield delta

                # Last event may arrive without a trailing newline
                if delta := self._parse_stream_line(buffer):
                    yield delta

    @staticmethod
    def _parse_stream_line(line: str) -> str:
        line = line.strip()
        if not line:
            return ""

        try:
            data = orjson.loads(line)
        except orjson.JSONDecodeError:
            logger.debug(f"Skipping malformed stream line: {line[:200]!r}")
            return ""
        if not isinstance(data, dict):
            logger.debug(f"Skipping non-object stream line: {line[:200]!r}")
            return ""

        try:
            event = StreamEvent.model_validate(data)
        except ValidationError:
            logger.debug(f"Skipping stream event with unexpected shape: {line[:200]!r}")
            return ""

        if event.error:
            raise BackendStreamError(f"Ollama stream error: {event.error}")
        return extract_stream_delta(event)

    async def ping(self) -> str | None:
        """Return the backend version string."""
        client = await self._http()
        with self._transport_errors():
            res = await client.get(f"{self.host}/api/version")
        if res.is_error:
            raise BackendHttpError(res.status_code, res.text, "version")
        try:
            return orjson.loads(res.content).get("version")
        except (orjson.JSONDecodeError, AttributeError) as e:
            raise BackendProtocolError("Ollama version endpoint returned an unexpected body") from e
