import asyncio
from collections import OrderedDict
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from loguru import logger

from app.models import Message
from app.utils import g_config
from app.utils.singleton import Singleton

DEFAULT_SESSION_ID = "default"


class ConversationStore:
    """
    Bounded rolling history for one conversation.

    Element 0 is always the system message. After it come user/assistant pairs,
    at most `max_turns` of them; older pairs are dropped from just after the
    system message when an append overflows the bound.
    """

    def __init__(self, system_prompt: str, max_turns: int) -> None:
        self._system = Message(role="system", content=system_prompt)
        self._max_turns = max_turns
        self._messages: list[Message] = [self._system]

    @property
    def max_messages(self) -> int:
        return 1 + self._max_turns * 2

    def append(self, entry: Message) -> None:
        """Add an entry at the tail and trim back to the configured bound."""
        self._messages.append(entry)
        self._trim()

    def append_turn(self, user_entry: Message, assistant_entry: Message) -> None:
        """Record one finished request/response cycle."""
        self.append(user_entry)
        self.append(assistant_entry)

    def snapshot(self) -> list[Message]:
        """Return a copy of the current history for a single backend call."""
        return list(self._messages)

    def reset(self) -> None:
        """Forget every turn, keeping only the system message."""
        self._messages = [self._system]

    def _trim(self) -> None:
        overflow = len(self._messages) - self.max_messages
        if overflow > 0:
            # Replace the list in one assignment so readers never see a half-trimmed history
            self._messages = [self._system, *self._messages[1 + overflow :]]

    def __len__(self) -> int:
        return len(self._messages)


class _Session:
    __slots__ = ("lock", "store")

    def __init__(self, store: ConversationStore) -> None:
        self.store = store
        self.lock = asyncio.Lock()


class SessionRegistry(metaclass=Singleton):
    """
    Session-scoped conversation histories with single-writer access.

    Every request for a session runs its snapshot, backend call and append while
    holding that session's lock, so concurrent requests on one session are
    strictly ordered and different sessions never touch each other's history.
    """

    def __init__(
        self,
        system_prompt: str | None = None,
        max_turns: int | None = None,
        max_sessions: int | None = None,
    ) -> None:
        conf = g_config.conversation
        self._system_prompt = system_prompt if system_prompt is not None else conf.system_prompt
        self._max_turns = max_turns if max_turns is not None else conf.max_turns
        self._max_sessions = max_sessions if max_sessions is not None else conf.max_sessions
        self._sessions: OrderedDict[str, _Session] = OrderedDict()

    def _get_or_create(self, session_id: str) -> _Session:
        session = self._sessions.get(session_id)
        if session is None:
            session = _Session(ConversationStore(self._system_prompt, self._max_turns))
            self._sessions[session_id] = session
            logger.debug(f"Opened conversation session {session_id!r}")
            self._evict(keep=session_id)
        else:
            self._sessions.move_to_end(session_id)
        return session

    def _evict(self, keep: str) -> None:
        while len(self._sessions) > self._max_sessions:
            # Least recently used first; sessions mid-request are never evicted
            idle = [
                sid for sid, s in self._sessions.items() if sid != keep and not s.lock.locked()
            ]
            if not idle:
                return
            evicted_id = idle[0]
            del self._sessions[evicted_id]
            logger.info(f"Evicted conversation session {evicted_id!r} (limit {self._max_sessions})")

    @asynccontextmanager
    async def session(self, session_id: str = DEFAULT_SESSION_ID) -> AsyncIterator[ConversationStore]:
        """Hold the session's lock and yield its history."""
        session = self._get_or_create(session_id)
        async with session.lock:
            yield session.store

    def get(self, session_id: str = DEFAULT_SESSION_ID) -> ConversationStore:
        """Return a session's history without taking its lock, for inspection."""
        return self._get_or_create(session_id).store

    async def reset(self, session_id: str) -> bool:
        """Clear a session's history. Returns False if the session is unknown."""
        session = self._sessions.get(session_id)
        if session is None:
            return False
        async with session.lock:
            session.store.reset()
        logger.info(f"Reset conversation session {session_id!r}")
        return True

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)
