from __future__ import annotations

from dataclasses import dataclass, field

from loguru import logger

from remote_fs_gateway.exceptions import RemoteIOError
from remote_fs_gateway.listing_parser import (
    FileEntry,
    build_listing_command,
    parse_listing,
)
from remote_fs_gateway.path_resolver import PathResolver
from remote_fs_gateway.session_registry import SessionRegistry
from remote_fs_gateway.settings import GatewaySettings
from remote_fs_gateway.ssh_manager import SSHManager
from remote_fs_gateway.types import ListingResultDict


@dataclass(frozen=True)
class ListingResult:
    session_id: str
    path: str
    entries: list[FileEntry] = field(default_factory=list)
    warning: str | None = None
    unparsed: int = 0

    @property
    def ok(self) -> bool:
        return self.warning is None

    def to_dict(self) -> ListingResultDict:
        return {
            "session_id": self.session_id,
            "path": self.path,
            "entries": [e.to_dict() for e in self.entries],
            "warning": self.warning,
            "unparsed": self.unparsed,
        }


class DirectoryManager:
    def __init__(
        self,
        *,
        settings: GatewaySettings,
        registry: SessionRegistry,
        resolver: PathResolver,
        ssh: SSHManager,
    ) -> None:
        self._settings = settings
        self._registry = registry
        self._resolver = resolver
        self._ssh = ssh

    async def list_directory(self, session_id: str, path: str) -> ListingResult:
        # 只有会话不存在会抛出，远程失败一律降级为带警告的空列表
        self._registry.get_session(session_id)
        resolved = await self._resolver.resolve(session_id, path)

        try:
            result = await self._ssh.run(session_id, build_listing_command(resolved))
        except RemoteIOError as exc:
            logger.warning("目录列表传输失败 {}: {}", resolved, exc.message)
            return ListingResult(
                session_id=session_id,
                path=resolved,
                warning=f"Directory access error: {exc.message}",
            )

        if result.exit_code != 0:
            stderr = result.stderr.strip()
            logger.warning("无法访问目录 {}: {}", resolved, stderr)
            return ListingResult(
                session_id=session_id,
                path=resolved,
                warning=f"Cannot access directory: {stderr}",
            )

        parsed = parse_listing(
            result.stdout,
            resolved,
            deny_list=self._settings.listing_deny_list,
        )
        if parsed.unparsed:
            logger.warning("目录 {} 中有 {} 行无法解析", resolved, len(parsed.unparsed))

        logger.debug("已列出 {} 个条目: {}", len(parsed.entries), resolved)
        return ListingResult(
            session_id=session_id,
            path=resolved,
            entries=parsed.entries,
            unparsed=len(parsed.unparsed),
        )
