"""Source module application dependencies."""

from typing import NoReturn

from fastapi import Depends

from hotboard.modules.sources.application.context import AppContext
from hotboard.modules.sources.application.hot_list_service import HotListService
from hotboard.modules.sources.application.source_manager import SourceManager


def _missing_dependency(name: str) -> NoReturn:
    raise RuntimeError(f"Missing dependency override for {name}")


async def get_app_context() -> AppContext:
    _missing_dependency("AppContext")


async def get_source_manager(
    context: AppContext = Depends(get_app_context),
) -> SourceManager:
    return context.manager


async def get_hot_list_service(
    context: AppContext = Depends(get_app_context),
) -> HotListService:
    return context.service
