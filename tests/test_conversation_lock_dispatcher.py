"""Tests for per-conversation locking and delayed dispatch."""

import asyncio
from dataclasses import dataclass

from llm.conversation_lock import ConversationLockManager
from llm.dispatcher import TurnDispatcher


@dataclass
class Msg:
    conversation_id: str
    text: str = ""


class TestConversationLock:
    async def test_same_conversation_is_serialized(self):
        locks = ConversationLockManager()
        active = 0
        peak = 0

        async def turn():
            nonlocal active, peak
            async with locks.lock("c1"):
                active += 1
                peak = max(peak, active)
                await asyncio.sleep(0.01)
                active -= 1

        await asyncio.gather(*(turn() for _ in range(5)))
        assert peak == 1

    async def test_different_conversations_run_concurrently(self):
        locks = ConversationLockManager()
        both_inside = asyncio.Event()
        inside = set()

        async def turn(cid):
            async with locks.lock(cid):
                inside.add(cid)
                if len(inside) == 2:
                    both_inside.set()
                await asyncio.wait_for(both_inside.wait(), timeout=1)

        await asyncio.gather(turn("a"), turn("b"))
        assert inside == {"a", "b"}

    async def test_fifo_order(self):
        locks = ConversationLockManager()
        order = []

        async def turn(n):
            async with locks.lock("c1"):
                order.append(n)
                await asyncio.sleep(0)

        await asyncio.gather(*(turn(n) for n in range(4)))
        assert order == [0, 1, 2, 3]

    async def test_entries_released(self):
        locks = ConversationLockManager()
        async with locks.lock("c1"):
            assert locks.is_locked("c1")
            assert len(locks) == 1
        assert not locks.is_locked("c1")
        assert len(locks) == 0

    async def test_released_on_error(self):
        locks = ConversationLockManager()
        try:
            async with locks.lock("c1"):
                raise RuntimeError("turn failed")
        except RuntimeError:
            pass
        assert len(locks) == 0


class TestTurnDispatcher:
    async def test_handler_runs_after_delay(self):
        seen = []

        async def handler(message):
            seen.append(message.text)
            return message.text.upper()

        dispatcher = TurnDispatcher(handler, delay_seconds=0.01)
        task = dispatcher.dispatch(Msg("c1", "hello"))

        assert seen == []
        assert dispatcher.pending == 1
        assert await task == "HELLO"
        assert seen == ["hello"]

    async def test_failed_task_does_not_break_others(self):
        seen = []

        async def handler(message):
            if message.text == "bad":
                raise RuntimeError("boom")
            seen.append(message.text)

        dispatcher = TurnDispatcher(handler, delay_seconds=0)
        dispatcher.dispatch(Msg("c1", "bad"))
        dispatcher.dispatch(Msg("c2", "good"))
        await dispatcher.drain()

        assert seen == ["good"]
        assert dispatcher.pending == 0

    async def test_task_named_after_conversation(self):
        async def handler(message):
            return None

        dispatcher = TurnDispatcher(handler, delay_seconds=0)
        task = dispatcher.dispatch(Msg("conv-42"))
        assert task.get_name() == "turn:conv-42"
        await dispatcher.drain()
