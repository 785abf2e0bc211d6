"""
Unit tests for ConversationStore and SessionRegistry.
"""

import asyncio

import pytest

from app.models import Message
from app.services import DEFAULT_SESSION_ID, ConversationStore, SessionRegistry


def _turn(i: int) -> tuple[Message, Message]:
    return (
        Message(role="user", content=f"question {i}"),
        Message(role="assistant", content=f"answer {i}"),
    )


class TestConversationStore:
    """Tests for the bounded rolling history."""

    def test_starts_with_system_message_only(self) -> None:
        store = ConversationStore("sys", max_turns=3)

        history = store.snapshot()
        assert len(history) == 1
        assert history[0].role == "system"
        assert history[0].content == "sys"

    def test_history_stays_bounded_and_keeps_system_message(self) -> None:
        """For N turns the length never exceeds 1 + 2*min(N, K)."""
        max_turns = 3
        store = ConversationStore("sys", max_turns=max_turns)

        for n in range(1, 10):
            store.append_turn(*_turn(n))
            assert len(store) <= 1 + 2 * min(n, max_turns)
            assert store.snapshot()[0].role == "system"

    def test_trim_drops_oldest_pairs_first(self) -> None:
        store = ConversationStore("sys", max_turns=2)
        for n in range(5):
            store.append_turn(*_turn(n))

        contents = [m.content for m in store.snapshot()]
        assert contents == ["sys", "question 3", "answer 3", "question 4", "answer 4"]

    def test_pairs_alternate_after_trim(self) -> None:
        store = ConversationStore("sys", max_turns=2)
        for n in range(7):
            store.append_turn(*_turn(n))

        roles = [m.role for m in store.snapshot()[1:]]
        assert roles == ["user", "assistant", "user", "assistant"]

    def test_zero_turns_keeps_only_system(self) -> None:
        store = ConversationStore("sys", max_turns=0)
        store.append_turn(*_turn(1))

        assert [m.role for m in store.snapshot()] == ["system"]

    def test_snapshot_is_a_copy(self) -> None:
        store = ConversationStore("sys", max_turns=3)
        snapshot = store.snapshot()
        store.append_turn(*_turn(1))

        assert len(snapshot) == 1
        assert len(store.snapshot()) == 3

    def test_reset_keeps_system_message(self) -> None:
        store = ConversationStore("sys", max_turns=3)
        store.append_turn(*_turn(1))
        store.reset()

        assert [m.content for m in store.snapshot()] == ["sys"]

    def test_max_messages(self) -> None:
        assert ConversationStore("sys", max_turns=12).max_messages == 25


class TestSessionRegistry:
    """Tests for per-session history ownership."""

    @pytest.mark.asyncio
    async def test_clear_instance_does_not_clash_with_session_reset(self) -> None:
        first = SessionRegistry(system_prompt="sys", max_turns=4, max_sessions=4)
        assert SessionRegistry() is first

        SessionRegistry.clear()
        second = SessionRegistry(system_prompt="sys", max_turns=4, max_sessions=4)

        assert second is not first
        async with second.session("a") as history:
            history.append_turn(*_turn(1))
        assert await second.reset("a") is True
        assert len(second.get("a")) == 1

    @pytest.mark.asyncio
    async def test_sessions_are_isolated(self) -> None:
        registry = SessionRegistry(system_prompt="sys", max_turns=4, max_sessions=4)

        async with registry.session("a") as history:
            history.append_turn(*_turn(1))

        assert len(registry.get("a")) == 3
        assert len(registry.get("b")) == 1

    @pytest.mark.asyncio
    async def test_default_session_is_shared(self) -> None:
        registry = SessionRegistry(system_prompt="sys", max_turns=4, max_sessions=4)

        async with registry.session() as history:
            history.append_turn(*_turn(1))

        assert DEFAULT_SESSION_ID in registry
        assert len(registry.get()) == 3

    @pytest.mark.asyncio
    async def test_same_session_requests_are_serialized(self) -> None:
        """A second request only snapshots after the first one has appended."""
        registry = SessionRegistry(system_prompt="sys", max_turns=4, max_sessions=4)
        seen_lengths: list[int] = []

        async def request(i: int) -> None:
            async with registry.session("shared") as history:
                seen_lengths.append(len(history.snapshot()))
                await asyncio.sleep(0.01)
                history.append_turn(*_turn(i))

        await asyncio.gather(request(1), request(2), request(3))

        assert seen_lengths == [1, 3, 5]
        roles = [m.role for m in registry.get("shared").snapshot()[1:]]
        assert roles == ["user", "assistant"] * 3

    @pytest.mark.asyncio
    async def test_least_recent_session_is_evicted(self) -> None:
        registry = SessionRegistry(system_prompt="sys", max_turns=4, max_sessions=2)

        for sid in ("a", "b"):
            async with registry.session(sid):
                pass
        async with registry.session("a"):
            pass
        async with registry.session("c"):
            pass

        assert "a" in registry
        assert "b" not in registry
        assert "c" in registry
        assert len(registry) == 2

    @pytest.mark.asyncio
    async def test_busy_session_is_not_evicted(self) -> None:
        registry = SessionRegistry(system_prompt="sys", max_turns=4, max_sessions=1)

        async with registry.session("busy"):
            async with registry.session("other"):
                pass
            assert "busy" in registry

    @pytest.mark.asyncio
    async def test_reset_unknown_session(self) -> None:
        registry = SessionRegistry(system_prompt="sys", max_turns=4, max_sessions=2)

        assert await registry.reset("missing") is False

    @pytest.mark.asyncio
    async def test_reset_clears_history(self) -> None:
        registry = SessionRegistry(system_prompt="sys", max_turns=4, max_sessions=2)
        async with registry.session("a") as history:
            history.append_turn(*_turn(1))

        assert await registry.reset("a") is True
        assert len(registry.get("a")) == 1

    def test_registry_is_a_singleton(self) -> None:
        assert SessionRegistry() is SessionRegistry()
