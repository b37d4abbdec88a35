"""Shared fixtures for orchestration tests."""

import asyncio
from typing import Any, Dict, List

import pytest

from taskrail.services.orchestrator.execution_logger import LogRecordData, LogSink, SecondaryLogTier
from taskrail.services.orchestrator.invoker import LocalTaskInvoker, TaskInvoker, TaskRegistry


class RecordingSink(LogSink):
    """Collects secondary log records in memory."""

    def __init__(self):
        self.records: List[LogRecordData] = []
        self.closed = False

    async def write(self, record: LogRecordData) -> None:
        self.records.append(record)

    async def close(self) -> None:
        self.closed = True


class FailingSink(LogSink):
    """Secondary sink that always fails."""

    def __init__(self):
        self.attempts = 0

    async def write(self, record: LogRecordData) -> None:
        self.attempts += 1
        raise ConnectionError("log store unavailable")


class CallLog:
    """Records task invocations in the order they happened."""

    def __init__(self):
        self.calls: List[tuple] = []

    def add(self, task_id: str, payload: Dict[str, Any]) -> None:
        self.calls.append((task_id, payload))

    def count(self, task_id: str) -> int:
        return sum(1 for called, _ in self.calls if called == task_id)

    def inputs(self, task_id: str) -> List[Dict[str, Any]]:
        return [payload for called, payload in self.calls if called == task_id]


class ScriptedInvoker(TaskInvoker):
    """Returns canned outcomes for some tasks and delegates the rest."""

    def __init__(self, delegate: TaskInvoker, outcomes: Dict[str, Any]):
        self.delegate = delegate
        self.outcomes = outcomes

    async def invoke(self, task_id, payload):
        if task_id in self.outcomes:
            return self.outcomes[task_id]
        return await self.delegate.invoke(task_id, payload)


@pytest.fixture
def call_log():
    return CallLog()


@pytest.fixture
def registry(call_log):
    """Registry with small arithmetic and echo tasks."""
    registry = TaskRegistry()

    def tracked(task_id, func):
        async def handler(payload):
            call_log.add(task_id, payload)
            return await func(payload)
        registry.register(task_id, handler)

    async def increment(payload):
        return {"n": payload.get("n", 0) + 1}

    async def double(payload):
        return {"n": payload["n"] * 2}

    async def echo(payload):
        return dict(payload)

    async def boom(payload):
        raise RuntimeError("boom")

    for task_id in ("A", "B", "C"):
        tracked(task_id, increment)
    tracked("double", double)
    tracked("echoA", echo)
    tracked("echoB", echo)
    tracked("fail", boom)
    return registry


@pytest.fixture
def invoker(registry):
    return LocalTaskInvoker(registry, default_timeout=5.0)


@pytest.fixture
def recording_sink():
    return RecordingSink()


@pytest.fixture
def secondary_log(recording_sink):
    return SecondaryLogTier(recording_sink, timeout=1.0)


@pytest.fixture
def run_input():
    return {
        "tenantId": "t1",
        "projectId": "p1",
        "userId": "u1",
        "trampData": {"callback": {"id": "cb-1", "tags": ["x", "y"]}},
    }


@pytest.fixture
def failing_sink():
    return FailingSink()


@pytest.fixture
def scripted_invoker(invoker):
    """Build an invoker that answers the given task ids with fixed outcomes."""
    def build(**outcomes):
        return ScriptedInvoker(invoker, outcomes)
    return build


@pytest.fixture
def slow_task(registry):
    """Register a ``slow`` task; the returned list records when it finished."""
    finished = []

    async def slow(payload):
        await asyncio.sleep(0.05)
        finished.append("slow")
        return {"slow": "done"}

    registry.register("slow", slow)
    return finished
