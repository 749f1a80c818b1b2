"""Load source catalog from the bundled JSON snapshot."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import httpx
from loguru import logger
from pydantic import ValidationError as PydanticValidationError

from hotboard.core.config import Settings
from hotboard.modules.sources.domain.entities import (
    CONDITIONAL,
    DisabledFlag,
    SourceConfig,
    SourceType,
)
from hotboard.modules.sources.domain.source import SourceDescriptor
from hotboard.modules.sources.infrastructure.newsnow_source import NewsNowSource

_TYPE_ALIASES = {
    "hottest": SourceType.HOTSPOT,
    "hotspot": SourceType.HOTSPOT,
    "realtime": SourceType.REALTIME,
    "news": SourceType.NEWS,
}


def parse_catalog_payload(payload: Any) -> list[SourceConfig]:
    """解析 ``{source_id: {...}}`` 形式的目录。

    无效条目记录警告后跳过，不影响其余条目。
    """
    if not isinstance(payload, dict):
        raise ValueError("Source catalog payload must be a JSON object")

    configs: list[SourceConfig] = []
    for source_id, raw_value in payload.items():
        if not isinstance(source_id, str) or not isinstance(raw_value, dict):
            continue

        name_value = raw_value.get("name")
        name = name_value.strip() if isinstance(name_value, str) else source_id

        interval_value = raw_value.get("interval")
        type_value = raw_value.get("type")
        source_type = (
            _TYPE_ALIASES.get(type_value, SourceType.HOTSPOT)
            if isinstance(type_value, str)
            else SourceType.HOTSPOT
        )

        try:
            configs.append(
                SourceConfig(
                    id=source_id,
                    name=name,
                    home_url=str(raw_value.get("home") or ""),
                    type=source_type,
                    refresh_interval_ms=(
                        interval_value if isinstance(interval_value, int) else 600_000
                    ),
                    enabled=raw_value.get("enabled", True) is not False,
                    disabled=_parse_disable(raw_value.get("disable")),
                    title=_optional_str(raw_value.get("title")),
                    column=_optional_str(raw_value.get("column")),
                    color=_optional_str(raw_value.get("color")),
                    desc=_optional_str(raw_value.get("desc")),
                )
            )
        except PydanticValidationError as exc:
            logger.warning(f"Skipping invalid catalog entry {source_id}: {exc}")
    return configs


def _parse_disable(value: object) -> DisabledFlag:
    # "cf": 受限托管环境（如 Cloudflare Pages）无法访问
    if value in ("cf", CONDITIONAL):
        return CONDITIONAL
    return value is True


def _optional_str(value: object) -> str | None:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


class SourceCatalogProvider:
    """从 JSON 目录构建数据源描述（每个条目绑定一个 NewsNow 适配器）。"""

    def __init__(
        self,
        settings: Settings,
        *,
        catalog_path: Path | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.settings = settings
        self.catalog_path = catalog_path or settings.SOURCE_CATALOG_PATH
        self.client = client

    def load_configs(self) -> list[SourceConfig]:
        payload = json.loads(self.catalog_path.read_text(encoding="utf-8"))
        configs = parse_catalog_payload(payload)
        logger.info(f"Loaded {len(configs)} sources from {self.catalog_path}")
        return configs

    def load_descriptors(self) -> list[SourceDescriptor]:
        return [
            SourceDescriptor(config=config, source=self.build_source(config.id))
            for config in self.load_configs()
        ]

    def build_source(self, source_id: str) -> NewsNowSource:
        return NewsNowSource(
            source_id,
            base_url=self.settings.NEWSNOW_API_BASE_URL,
            api_path=self.settings.NEWSNOW_API_PATH,
            user_agent=self.settings.FETCHER_USER_AGENT,
            timeout_sec=self.settings.FETCH_TIMEOUT_MS / 1000,
            client=self.client,
        )
