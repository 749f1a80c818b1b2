"""NewsNow-compatible HTTP source adapter."""

from __future__ import annotations

import math
import re
from datetime import UTC, datetime
from typing import Any

import httpx
from loguru import logger
from pydantic import ValidationError as PydanticValidationError

from hotboard.modules.sources.domain.entities import HotItem
from hotboard.modules.sources.domain.exceptions import NetworkError, ParseError


class NewsNowSource:
    """从 NewsNow API 拉取单个数据源的热榜。

    - 传输失败 / 非 2xx 抛 NetworkError（携带状态码）
    - 响应结构不符抛 ParseError
    - 上游返回空列表时返回 []
    """

    def __init__(
        self,
        source_id: str,
        *,
        base_url: str,
        api_path: str = "/api/s",
        user_agent: str = "hotboard/1.0",
        timeout_sec: float = 15.0,
        latest: bool = False,
        client: httpx.AsyncClient | None = None,
    ):
        self.source_id = source_id
        self.api_url = f"{base_url.rstrip('/')}{api_path}"
        self.user_agent = user_agent
        self.timeout_sec = timeout_sec
        self.latest = latest
        self._client = client

    def __repr__(self) -> str:
        return f"NewsNowSource({self.source_id!r})"

    async def fetch(self) -> list[HotItem]:
        params = {"id": self.source_id, "latest": "1" if self.latest else "0"}
        headers = {"User-Agent": self.user_agent, "Accept": "application/json"}

        try:
            if self._client is not None:
                response = await self._client.get(
                    self.api_url, params=params, headers=headers, timeout=self.timeout_sec
                )
            else:
                async with httpx.AsyncClient(
                    timeout=self.timeout_sec, follow_redirects=False
                ) as client:
                    response = await client.get(
                        self.api_url, params=params, headers=headers
                    )
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise NetworkError(
                self.source_id,
                self.api_url,
                status_code=exc.response.status_code,
            ) from exc
        except httpx.HTTPError as exc:
            raise NetworkError(
                self.source_id,
                self.api_url,
                reason=f"{type(exc).__name__}: {exc}",
            ) from exc

        try:
            payload = response.json()
        except ValueError as exc:
            raise ParseError(self.source_id, "response is not valid JSON") from exc
        return self._parse_payload(payload)

    def _parse_payload(self, payload: Any) -> list[HotItem]:
        if not isinstance(payload, dict):
            raise ParseError(self.source_id, "response payload must be an object")

        status = payload.get("status")
        if status not in ("success", "cache"):
            message = payload.get("message")
            if isinstance(message, str) and message:
                raise ParseError(self.source_id, f"API error: {message}")
            raise ParseError(self.source_id, "API returned non-success status")

        items_raw = payload.get("items")
        if not isinstance(items_raw, list):
            raise ParseError(self.source_id, "response missing items list")

        items: list[HotItem] = []
        seen_urls: set[str] = set()
        for index, raw_item in enumerate(items_raw):
            if not isinstance(raw_item, dict):
                continue
            url = raw_item.get("url")
            title = raw_item.get("title")
            if not isinstance(url, str) or not isinstance(title, str):
                continue
            url = url.strip()
            if url in seen_urls:
                continue

            try:
                item = HotItem(
                    id=raw_item.get("id") or url,
                    title=self._clean_text(title),
                    url=url,
                    published_at=self._extract_published_at(raw_item),
                    extra=self._extract_extra(raw_item.get("extra"), rank=index + 1),
                )
            except PydanticValidationError as exc:
                logger.debug(f"Skipping invalid item from {self.source_id}: {exc}")
                continue

            seen_urls.add(url)
            items.append(item)
        return items

    @staticmethod
    def _extract_extra(extra_value: object, rank: int) -> dict[str, Any]:
        extra: dict[str, Any] = {"rank": rank}
        if not isinstance(extra_value, dict):
            return extra
        for key in ("info", "icon", "hover"):
            value = extra_value.get(key)
            if isinstance(value, str) and value.strip():
                extra[key] = value.strip()
        return extra

    @staticmethod
    def _clean_text(value: str) -> str:
        cleaned = re.sub(r"<[^>]+>", "", value)
        return " ".join(cleaned.split())

    def _extract_published_at(self, item: dict[str, Any]) -> datetime | None:
        pub_date = item.get("pubDate")
        if pub_date is not None:
            parsed = self._parse_datetime_value(pub_date)
            if parsed is not None:
                return parsed

        extra = item.get("extra")
        if isinstance(extra, dict):
            return self._parse_datetime_value(extra.get("date"))
        return None

    @staticmethod
    def _parse_datetime_value(value: object) -> datetime | None:
        if value is None or isinstance(value, bool):
            return None

        if isinstance(value, (int, float)):
            if not math.isfinite(value):
                return None
            timestamp = float(value)
            # 毫秒时间戳
            if timestamp > 1_000_000_000_000:
                timestamp /= 1000.0
            if timestamp <= 0:
                return None
            return datetime.fromtimestamp(timestamp, tz=UTC)

        if isinstance(value, str):
            text = value.strip()
            if not text:
                return None
            if text.isdigit():
                return NewsNowSource._parse_datetime_value(int(text))
            try:
                parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
            except ValueError:
                return None
            return parsed if parsed.tzinfo else parsed.replace(tzinfo=UTC)

        return None
