"""Test doubles and helpers shared across test modules."""

import asyncio
from collections.abc import Callable

from logmonitor.core.errors import OpenError, StopError
from logmonitor.core.models import SourceSpec


class FakeReader:
    """In-memory SourceReader fed through a queue.

    Items pushed with ``feed`` are returned by ``read_line`` in order;
    exceptions are raised instead of returned. ``stop`` wakes a pending read.
    Options ``fail_open`` and ``fail_stop`` make start and stop fail.
    """

    priority = 0
    instances: list["FakeReader"] = []

    def __init__(self, spec: SourceSpec) -> None:
        self.source = spec.source
        self.options = spec.options
        self.queue: asyncio.Queue[str | Exception] = asyncio.Queue()
        self.started = False
        self.stopped = False
        self.start_calls = 0
        self.stop_calls = 0
        self.fail_open = bool(spec.options.get("fail_open", False))
        self.fail_stop = bool(spec.options.get("fail_stop", False))
        FakeReader.instances.append(self)

    @classmethod
    def match_priority(cls, spec: SourceSpec) -> int:
        return cls.priority

    @classmethod
    def for_source(cls, source: str) -> "FakeReader":
        """Return the most recent reader built for a source."""
        return [r for r in cls.instances if r.source == source][-1]

    def feed(self, *items: str | Exception) -> None:
        for item in items:
            self.queue.put_nowait(item)

    async def start(self) -> None:
        self.start_calls += 1
        if self.fail_open:
            raise OpenError(self.source, "cannot open")
        if self.started:
            raise OpenError(self.source, "reader already started")
        self.started = True

    async def read_line(self) -> str:
        if self.stopped:
            return ""
        item = await self.queue.get()
        if isinstance(item, Exception):
            raise item
        return item

    async def stop(self) -> None:
        self.stop_calls += 1
        self.stopped = True
        self.started = False
        self.queue.put_nowait("")
        if self.fail_stop:
            raise StopError(self.source, "cannot close")


async def wait_for(
    predicate: Callable[[], bool], timeout: float = 2.0, interval: float = 0.01
) -> bool:
    """Poll ``predicate`` until it returns true or the timeout expires."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while loop.time() < deadline:
        if predicate():
            return True
        await asyncio.sleep(interval)
    return bool(predicate())
