from __future__ import annotations

from dataclasses import dataclass

from loguru import logger

from remote_fs_gateway.directory_manager import DirectoryManager
from remote_fs_gateway.file_manager import FileManager
from remote_fs_gateway.path_resolver import PathResolver
from remote_fs_gateway.session_registry import SessionRegistry
from remote_fs_gateway.settings import GatewaySettings
from remote_fs_gateway.ssh_manager import SSHManager
from remote_fs_gateway.types import HealthResultDict


@dataclass
class Gateway:
    """网关组件的组合根，所有依赖显式传递，没有全局状态。"""

    settings: GatewaySettings
    registry: SessionRegistry
    resolver: PathResolver
    ssh: SSHManager
    files: FileManager
    directory: DirectoryManager

    @classmethod
    def from_settings(cls, settings: GatewaySettings) -> Gateway:
        registry = SessionRegistry(settings=settings)
        resolver = PathResolver(settings=settings, registry=registry)
        ssh = SSHManager(registry=registry, resolver=resolver)
        return cls(
            settings=settings,
            registry=registry,
            resolver=resolver,
            ssh=ssh,
            files=FileManager(registry=registry, resolver=resolver, ssh=ssh),
            directory=DirectoryManager(
                settings=settings, registry=registry, resolver=resolver, ssh=ssh
            ),
        )

    def health(self) -> HealthResultDict:
        return {"status": "OK", "connections": len(self.registry)}

    async def aclose(self) -> None:
        count = len(self.registry)
        await self.registry.close_all()
        if count:
            logger.info("网关已关闭，释放 {} 个会话", count)
