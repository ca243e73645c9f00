import asyncio

import pytest

from ai_engine.config import SessionConfig
from ai_engine.session.store import HistoryPolicy, InMemorySessionStore, SessionLocks
from ai_engine.types import ChatMessage, ConversationState


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


def _state(session_id: str = "s-1", messages: int = 0) -> ConversationState:
    state = ConversationState(session_id=session_id, organization_id="org-1", user_id="user-1")
    for i in range(messages):
        role = "user" if i % 2 == 0 else "assistant"
        state.append(ChatMessage(role=role, content=f"m{i}"))
    return state


@pytest.mark.asyncio
async def test_sessions_expire_after_ttl() -> None:
    clock = FakeClock()
    store = InMemorySessionStore(clock=clock)
    await store.put("s-1", _state(messages=2), ttl=60)

    clock.now += 59
    assert (await store.get("s-1")).messages[1].content == "m1"

    # Refresh on write resets the expiry.
    await store.put("s-1", _state(messages=2), ttl=60)
    clock.now += 59
    assert await store.get("s-1") is not None

    clock.now += 2
    assert await store.get("s-1") is None
    assert await store.delete("s-1") is False


@pytest.mark.asyncio
async def test_returned_state_is_a_copy() -> None:
    store = InMemorySessionStore()
    await store.put("s-1", _state(messages=1), ttl=60)

    loaded = await store.get("s-1")
    loaded.append(ChatMessage(role="assistant", content="not saved"))

    assert len((await store.get("s-1")).messages) == 1


@pytest.mark.asyncio
async def test_purge_and_delete() -> None:
    clock = FakeClock()
    store = InMemorySessionStore(clock=clock)
    await store.put("short", _state("short"), ttl=1)
    await store.put("long", _state("long"), ttl=100)

    clock.now += 5

    assert store.purge_expired() == 1
    assert await store.delete("long") is True
    assert await store.get("long") is None


def test_history_policy_windows() -> None:
    policy = HistoryPolicy(SessionConfig(max_stored_messages=4, prompt_window=2))
    state = _state(messages=6)
    state.messages.insert(3, ChatMessage(role="tool", content="tool output"))

    policy.enforce(state)
    prompt = policy.prompt_history(state)

    assert [m.content for m in state.messages] == ["tool output", "m3", "m4", "m5"]
    assert [m.content for m in prompt] == ["m4", "m5"]
    assert HistoryPolicy(SessionConfig(prompt_window=0)).prompt_history(state) == []


def test_session_locks_are_shared_per_id() -> None:
    locks = SessionLocks()

    first = locks.for_session("s-1")

    assert locks.for_session("s-1") is first
    assert locks.for_session("s-2") is not first


@pytest.mark.asyncio
async def test_session_lock_serializes_writers() -> None:
    locks = SessionLocks()
    store = InMemorySessionStore()
    await store.put("s-1", _state(), ttl=60)

    async def _append(text: str) -> None:
        async with locks.for_session("s-1"):
            state = await store.get("s-1")
            await asyncio.sleep(0)
            state.append(ChatMessage(role="user", content=text))
            await store.put("s-1", state, ttl=60)

    await asyncio.gather(*(_append(f"q{i}") for i in range(5)))

    state = await store.get("s-1")
    assert sorted(m.content for m in state.messages) == [f"q{i}" for i in range(5)]
