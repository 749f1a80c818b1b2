"""Source adapter port and registry descriptor."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Protocol, runtime_checkable

from hotboard.modules.sources.domain.entities import HotItem, SourceConfig

Handler = Callable[[], Awaitable[list[HotItem]]]


@runtime_checkable
class HotSource(Protocol):
    """Port: 一个数据源适配器。

    fetch() 在“无数据”时返回空列表；抛出的任何异常都视为硬失败，
    交由 ErrorHandler 分类与重试。
    """

    async def fetch(self) -> list[HotItem]: ...


class CallableSource:
    """将普通 async 函数包装为 HotSource。"""

    def __init__(self, handler: Handler):
        self._handler = handler

    async def fetch(self) -> list[HotItem]:
        return await self._handler()

    def __repr__(self) -> str:
        name = getattr(self._handler, "__qualname__", repr(self._handler))
        return f"CallableSource({name})"


@dataclass(frozen=True)
class SourceDescriptor:
    """注册表条目：配置 + 适配器实例。"""

    config: SourceConfig
    source: HotSource | None = None

    @property
    def id(self) -> str:
        return self.config.id

    @classmethod
    def from_handler(cls, config: SourceConfig, handler: Handler) -> SourceDescriptor:
        return cls(config=config, source=CallableSource(handler))
