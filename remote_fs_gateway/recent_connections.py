from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path

from loguru import logger
from pydantic import BaseModel, Field, TypeAdapter, ValidationError

from remote_fs_gateway.settings import GatewaySettings


class RecentConnection(BaseModel):
    """最近使用的连接，不包含任何凭据。"""

    host: str
    username: str
    port: int = 22
    last_used: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    def same_target(self, other: RecentConnection) -> bool:
        return (self.host, self.username, self.port) == (other.host, other.username, other.port)


_RECENT_LIST = TypeAdapter(list[RecentConnection])


class RecentConnectionsStore:
    def __init__(self, path: Path, *, limit: int = 5) -> None:
        if limit <= 0:
            raise ValueError("limit必须>=1")
        self._path = path
        self._limit = limit

    @classmethod
    def from_settings(cls, settings: GatewaySettings) -> RecentConnectionsStore:
        return cls(settings.recent_connections_file, limit=settings.recent_connections_limit)

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> list[RecentConnection]:
        if not self._path.is_file():
            return []
        try:
            raw = json.loads(self._path.read_text(encoding="utf-8"))
            items = _RECENT_LIST.validate_python(raw)
        except (OSError, ValueError, ValidationError) as exc:
            logger.warning("最近连接记录无法读取，已忽略 {}: {}", self._path, exc)
            return []
        return items[: self._limit]

    def remember(self, *, host: str, username: str, port: int = 22) -> list[RecentConnection]:
        current = RecentConnection(host=host, username=username, port=port)
        items = [current] + [c for c in self.load() if not c.same_target(current)]
        items = items[: self._limit]
        self._save(items)
        return items

    def clear(self) -> None:
        self._save([])

    def _save(self, items: list[RecentConnection]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._path.write_bytes(_RECENT_LIST.dump_json(items, indent=2))
