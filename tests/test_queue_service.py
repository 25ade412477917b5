import asyncio

import pytest

from bridge.errors import QueueClosedError
from bridge.services.queue_service import ConversationQueue


def recording_task(events, name, result=None):
    async def task():
        events.append(("start", name))
        await asyncio.sleep(0)
        await asyncio.sleep(0)
        events.append(("end", name))
        return result

    return task


class TestOrdering:
    def test_tasks_for_one_key_run_in_order(self):
        async def scenario():
            queue = ConversationQueue()
            events = []
            futures = [queue.enqueue("a", recording_task(events, i, result=i)) for i in range(3)]
            results = await asyncio.gather(*futures)
            return events, results

        events, results = asyncio.run(scenario())

        assert results == [0, 1, 2]
        assert events == [
            ("start", 0),
            ("end", 0),
            ("start", 1),
            ("end", 1),
            ("start", 2),
            ("end", 2),
        ]

    def test_different_keys_run_concurrently(self):
        async def scenario():
            queue = ConversationQueue()
            b_started = asyncio.Event()

            async def task_a():
                await asyncio.wait_for(b_started.wait(), timeout=1)
                return "a"

            async def task_b():
                b_started.set()
                return "b"

            future_a = queue.enqueue("a", task_a)
            future_b = queue.enqueue("b", task_b)
            return await asyncio.gather(future_a, future_b)

        assert asyncio.run(scenario()) == ["a", "b"]


class TestFailures:
    def test_failure_does_not_block_later_tasks(self):
        async def scenario():
            queue = ConversationQueue()

            async def failing():
                raise ValueError("boom")

            async def succeeding():
                return "ok"

            first = queue.enqueue("a", failing)
            second = queue.enqueue("a", succeeding)
            return await asyncio.gather(first, second, return_exceptions=True)

        first, second = asyncio.run(scenario())

        assert isinstance(first, ValueError)
        assert second == "ok"


class TestBusyAndCleanup:
    def test_busy_until_last_task_settles(self):
        async def scenario():
            queue = ConversationQueue()
            release_first = asyncio.Event()
            release_second = asyncio.Event()

            async def first_task():
                await release_first.wait()

            async def second_task():
                await release_second.wait()

            first = queue.enqueue("a", first_task)
            second = queue.enqueue("a", second_task)
            await asyncio.sleep(0)
            observed = (queue.is_busy("a"), queue.pending_count("a"), queue.is_busy("b"))

            release_first.set()
            await first
            still_busy = queue.is_busy("a")
            release_second.set()
            await second
            return observed, still_busy, queue.is_busy("a"), queue.active_keys()

        observed, still_busy, busy_after, active = asyncio.run(scenario())

        assert observed == (True, 2, False)
        assert still_busy is True
        assert busy_after is False
        assert active == []

    def test_key_is_dropped_after_failure(self):
        async def scenario():
            queue = ConversationQueue()

            async def failing():
                raise RuntimeError("boom")

            future = queue.enqueue("a", failing)
            with pytest.raises(RuntimeError):
                await future
            return queue.active_keys(), queue.pending_count("a")

        assert asyncio.run(scenario()) == ([], 0)


class TestClose:
    def test_close_waits_for_in_flight_work(self):
        async def scenario():
            queue = ConversationQueue()
            events = []
            queue.enqueue("a", recording_task(events, "a1"))
            queue.enqueue("b", recording_task(events, "b1"))
            await queue.close()
            return events, queue.closed

        events, closed = asyncio.run(scenario())

        assert ("end", "a1") in events
        assert ("end", "b1") in events
        assert closed is True

    def test_enqueue_after_close_is_rejected(self):
        async def scenario():
            queue = ConversationQueue()
            await queue.close()

            async def task():
                return None

            with pytest.raises(QueueClosedError):
                queue.enqueue("a", task)

        asyncio.run(scenario())
