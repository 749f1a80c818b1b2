"""并发控制工具。

- TaskQueue: 有并发上限的 FIFO 任务队列
- PriorityTaskQueue: 同样契约，按优先级出队（高优先级先执行，同优先级保持提交顺序）
- race_with_timeout: 超时竞速，超时后放弃结果但不取消仍在运行的任务

所有计数在单个事件循环内同步修改，读-改-写之间没有 await。
"""

from __future__ import annotations

import asyncio
from collections import deque
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any, TypeVar

from loguru import logger

T = TypeVar("T")

Operation = Callable[[], Awaitable[T]]


@dataclass
class _QueuedTask:
    operation: Operation[Any]
    future: asyncio.Future[Any]
    priority: int = 0


@dataclass(frozen=True)
class QueueStatus:
    pending: int
    active: int
    max: int
    paused: bool


@dataclass
class _Stragglers:
    """超时后仍在运行的任务，持有引用直到结束。"""

    tasks: set[asyncio.Task[Any]] = field(default_factory=set)

    def keep(self, task: asyncio.Task[Any]) -> None:
        self.tasks.add(task)
        task.add_done_callback(self._discard)

    def _discard(self, task: asyncio.Task[Any]) -> None:
        self.tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.debug(f"Discarded straggler failed: {task.exception()}")


_stragglers = _Stragglers()


class TaskQueue:
    """并发受限的任务队列。

    add() 立即入队并返回 Future；出队执行总是通过事件循环异步调度，
    不会在 add() 内同步执行任务体。
    """

    def __init__(self, max_concurrent: int = 5):
        if max_concurrent < 1:
            raise ValueError("max_concurrent must be >= 1")
        self.max_concurrent = max_concurrent
        self._pending: deque[_QueuedTask] = deque()
        self._active = 0
        self._paused = False
        self._running: set[asyncio.Task[Any]] = set()
        self._idle = asyncio.Event()
        self._idle.set()

    @property
    def pending(self) -> int:
        return len(self._pending)

    @property
    def active(self) -> int:
        return self._active

    def add(self, operation: Operation[T]) -> asyncio.Future[T]:
        """添加任务，返回任务结果的 Future。"""
        loop = asyncio.get_running_loop()
        item = _QueuedTask(operation=operation, future=loop.create_future())
        self._enqueue(item)
        self._idle.clear()
        loop.call_soon(self._process_next)
        return item.future

    async def add_all(self, operations: list[Operation[T]]) -> list[T]:
        """批量添加并等待全部完成，结果按提交顺序返回。"""
        return list(await asyncio.gather(*(self.add(op) for op in operations)))

    def pause(self) -> None:
        """暂停调度新任务，已在运行的任务不受影响。"""
        self._paused = True

    def resume(self) -> None:
        """恢复调度，立即启动积压任务直到达到并发上限。"""
        self._paused = False
        self._process_next()

    async def wait_all(self) -> None:
        """等待队列中所有任务（排队 + 运行中）结束。"""
        await self._idle.wait()

    def get_status(self) -> QueueStatus:
        return QueueStatus(
            pending=len(self._pending),
            active=self._active,
            max=self.max_concurrent,
            paused=self._paused,
        )

    def _enqueue(self, item: _QueuedTask) -> None:
        self._pending.append(item)

    def _process_next(self) -> None:
        while (
            not self._paused
            and self._pending
            and self._active < self.max_concurrent
        ):
            item = self._pending.popleft()
            self._active += 1
            task = asyncio.get_running_loop().create_task(self._run(item))
            self._running.add(task)
            task.add_done_callback(self._running.discard)

    async def _run(self, item: _QueuedTask) -> None:
        try:
            result = await item.operation()
        except asyncio.CancelledError:
            item.future.cancel()
            raise
        except Exception as exc:
            if not item.future.done():
                item.future.set_exception(exc)
        except BaseException as exc:
            if not item.future.done():
                item.future.set_exception(exc)
            raise
        else:
            if not item.future.done():
                item.future.set_result(result)
        finally:
            self._active -= 1
            self._process_next()
            if not self._pending and self._active == 0:
                self._idle.set()


class PriorityTaskQueue(TaskQueue):
    """按优先级出队的任务队列。

    priority 越大越先执行；同优先级按提交顺序执行。
    """

    def __init__(self, max_concurrent: int = 3):
        super().__init__(max_concurrent)

    def add(self, operation: Operation[T], priority: int = 0) -> asyncio.Future[T]:  # type: ignore[override]
        loop = asyncio.get_running_loop()
        item = _QueuedTask(
            operation=operation,
            future=loop.create_future(),
            priority=priority,
        )
        self._enqueue(item)
        self._idle.clear()
        loop.call_soon(self._process_next)
        return item.future

    def _enqueue(self, item: _QueuedTask) -> None:
        # 插到第一个优先级更低的任务之前
        for index, queued in enumerate(self._pending):
            if queued.priority < item.priority:
                self._pending.insert(index, item)
                return
        self._pending.append(item)


async def race_with_timeout(awaitable: Awaitable[T], timeout_sec: float) -> T:
    """等待 awaitable，超时抛出 TimeoutError。

    超时后底层任务继续在后台运行，其结果被丢弃。
    """
    task = asyncio.ensure_future(awaitable)
    try:
        return await asyncio.wait_for(asyncio.shield(task), timeout=timeout_sec)
    except TimeoutError:
        _stragglers.keep(task)
        raise
