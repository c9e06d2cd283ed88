"""A small asyncio actor system: each module handles its messages one at a time."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Generic, Protocol, TypeVar

logger = logging.getLogger(__name__)


class Module(Protocol):
    """Anything that can handle messages asynchronously."""

    async def handle(self, msg: Any) -> None: ...


M = TypeVar("M", bound=Module)


class _Mailbox:
    """Queue of pending messages for one module, drained by a single task."""

    def __init__(self, module: Module) -> None:
        self.module = module
        self.queue: asyncio.Queue[Any] = asyncio.Queue()
        self.closed = False

    async def run(self) -> None:
        while True:
            msg = await self.queue.get()
            try:
                await self.module.handle(msg)
            except Exception:
                logger.exception("module %r failed to handle %r", self.module, msg)
            finally:
                self.queue.task_done()


class ModuleRef(Generic[M]):
    """A handle used to deliver messages to a registered module."""

    __slots__ = ("_mailbox",)

    def __init__(self, mailbox: _Mailbox) -> None:
        self._mailbox = mailbox

    async def send(self, msg: Any) -> None:
        """Queue a message for the module; messages are handled in sending order."""
        if self._mailbox.closed:
            raise RuntimeError("the module has been shut down")
        self._mailbox.queue.put_nowait(msg)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ModuleRef):
            return NotImplemented
        return self._mailbox is other._mailbox

    def __hash__(self) -> int:
        return id(self._mailbox)

    def __repr__(self) -> str:
        return f"ModuleRef({self._mailbox.module!r})"


class System:
    """Owns the tasks that run registered modules."""

    def __init__(self) -> None:
        self._mailboxes: list[_Mailbox] = []
        self._tasks: list[asyncio.Task[None]] = []
        self._closed = False

    async def register_module(self, module: M) -> ModuleRef[M]:
        """Start running a module and return a reference to it."""
        if self._closed:
            raise RuntimeError("the system has been shut down")
        mailbox = _Mailbox(module)
        self._mailboxes.append(mailbox)
        self._tasks.append(asyncio.create_task(mailbox.run()))
        return ModuleRef(mailbox)

    async def shutdown(self) -> None:
        """Stop all modules; further sends raise RuntimeError."""
        if self._closed:
            return
        self._closed = True
        for mailbox in self._mailboxes:
            mailbox.closed = True
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)

    async def __aenter__(self) -> System:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.shutdown()