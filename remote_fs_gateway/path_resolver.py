from __future__ import annotations

import re

from loguru import logger

from remote_fs_gateway.constants import HOME_MARKER, HOME_QUERY_COMMAND
from remote_fs_gateway.exceptions import RemoteIOError
from remote_fs_gateway.session_registry import SessionRegistry
from remote_fs_gateway.settings import GatewaySettings

_DUPLICATE_SEPARATORS_RE = re.compile(r"/{2,}")


def normalize(path: str) -> str:
    """合并重复分隔符并去掉一个结尾分隔符，根目录保持为 "/"。"""
    collapsed = _DUPLICATE_SEPARATORS_RE.sub("/", path)
    if len(collapsed) > 1 and collapsed.endswith("/"):
        collapsed = collapsed[:-1]
    return collapsed


def join(parent: str, name: str) -> str:
    return normalize(f"{parent}/{name}") or "/"


class PathResolver:
    """把用户输入的路径转换为规范的绝对路径。

    家目录在每次解析时实时查询，不做缓存。
    """

    def __init__(self, *, settings: GatewaySettings, registry: SessionRegistry) -> None:
        self._settings = settings
        self._registry = registry

    async def resolve(self, session_id: str, raw_path: str) -> str:
        path = raw_path.strip()
        if not path or path == HOME_MARKER:
            return normalize(await self._home_directory(session_id))
        if path.startswith(HOME_MARKER + "/"):
            home = await self._home_directory(session_id)
            return normalize(home + path[len(HOME_MARKER):])
        return normalize(path)

    async def _home_directory(self, session_id: str) -> str:
        fallback = self._settings.default_root
        try:
            async with self._registry.acquire(session_id) as conn:
                completed = await conn.run(HOME_QUERY_COMMAND, check=False)
        except RemoteIOError as exc:
            logger.warning("获取家目录失败，使用 {}: {}", fallback, exc.message)
            return fallback

        home = str(completed.stdout or "").strip()
        if completed.exit_status != 0 or not home:
            logger.warning(
                "获取家目录失败(退出码 {})，使用 {}", completed.exit_status, fallback
            )
            return fallback
        return home
