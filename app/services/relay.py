from collections.abc import AsyncGenerator
from contextlib import aclosing

from loguru import logger

from app.models import Message
from app.utils import g_config
from app.utils.helper import describe_image, is_empty_answer, strip_data_url

from .client import OllamaClient
from .conversation import DEFAULT_SESSION_ID, SessionRegistry
from .errors import EmptyResponse


def build_user_entry(
    text: str | None,
    image_input: str | None = None,
    default_prompt: str | None = None,
) -> Message:
    """
    Turn raw request input into a user message.

    Blank text falls back to the default prompt. The image may be bare base64 or a
    data URL; anything up to the last comma is dropped. Image payloads are not
    validated and are forwarded as given.
    """
    prompt = default_prompt or g_config.conversation.default_prompt
    content = (text or "").strip() or prompt
    images = [strip_data_url(image_input)] if image_input else None
    return Message(role="user", content=content, images=images)


class RelayService:
    """Relays one request to the backend and records the finished turn."""

    def __init__(
        self,
        client: OllamaClient | None = None,
        sessions: SessionRegistry | None = None,
    ) -> None:
        self.client = client if client is not None else OllamaClient()
        self.sessions = sessions if sessions is not None else SessionRegistry()

    async def _fallback(self, text: str | None, entry: Message) -> str:
        answer = await self.client.generate(text, entry.image)
        if is_empty_answer(answer):
            raise EmptyResponse()
        return answer

    async def relay(
        self,
        text: str | None,
        image_input: str | None = None,
        session_id: str = DEFAULT_SESSION_ID,
    ) -> str:
        """
        Answer a request in one piece.

        Transport and HTTP failures of the conversational call propagate; only an
        empty answer is retried through the single-turn endpoint.
        """
        entry = build_user_entry(text, image_input, self.client.default_prompt)
        logger.info(f"Relay request [{session_id}]: {entry.content!r} ({describe_image(entry.image)})")

        async with self.sessions.session(session_id) as history:
            messages = [*history.snapshot(), entry]

            answer = await self.client.chat(messages)
            if is_empty_answer(answer):
                logger.warning("Chat returned no answer; retrying with generate.")
                answer = await self._fallback(text, entry)

            history.append_turn(entry, Message(role="assistant", content=answer))

        logger.debug(f"Relay answer [{session_id}]: {len(answer)} chars")
        return answer

    async def relay_stream(
        self,
        text: str | None,
        image_input: str | None = None,
        session_id: str = DEFAULT_SESSION_ID,
    ) -> AsyncGenerator[str]:
        """
        Answer a request as a sequence of text chunks.

        Fragments are relayed as they arrive. If the stream fails for any reason or
        yields nothing, the single-turn endpoint is called and its whole answer is
        sent as one final chunk; fragments already sent are not retracted.
        """
        entry = build_user_entry(text, image_input, self.client.default_prompt)
        logger.info(
            f"Relay stream request [{session_id}]: {entry.content!r} ({describe_image(entry.image)})"
        )

        async with self.sessions.session(session_id) as history:
            messages = [*history.snapshot(), entry]

            streamed = ""
            failure: Exception | None = None
            try:
                async with aclosing(self.client.stream_chat(messages)) as deltas:
                    async for delta in deltas:
                        streamed += delta
                        yield delta
            except Exception as e:
                failure = e

            # Whitespace-only output was already relayed, so it is kept verbatim
            answer = streamed.strip() or streamed
            if failure is not None or not streamed:
                if failure is not None:
                    logger.warning(
                        f"Stream failed after {len(streamed)} chars, retrying with generate: {failure}"
                    )
                else:
                    logger.warning("Stream returned no answer; retrying with generate.")
                answer = await self._fallback(text, entry)
                yield answer

            history.append_turn(entry, Message(role="assistant", content=answer))

        logger.debug(f"Relay stream answer [{session_id}]: {len(answer)} chars")


def get_relay_service() -> RelayService:
    """FastAPI dependency returning the process-wide relay service."""
    return RelayService()
