"""远程文件操作模块

基于会话执行单条远程命令完成文件操作，支持：
- 读取文件：cat 输出文件内容
- 写入文件：内容经 stdin 一次性写入，原样往返（引号、换行、反斜杠）
- 文件操作：复制、移动、删除、创建目录，每种操作对应一条远程命令

每个操作都是一次尽力而为的远程命令，不提供多步事务保证。
"""
from __future__ import annotations

import shlex
from dataclasses import dataclass
from typing import get_args

from loguru import logger

from remote_fs_gateway.exceptions import RemoteIOError
from remote_fs_gateway.path_resolver import PathResolver
from remote_fs_gateway.session_registry import SessionRegistry
from remote_fs_gateway.ssh_manager import CommandResult, SSHManager
from remote_fs_gateway.types import (
    FileOperationName,
    FileOperationResultDict,
    FileReadResultDict,
    FileWriteResultDict,
)

FileOperationKind = FileOperationName

_OPERATION_KINDS: frozenset[str] = frozenset(get_args(FileOperationKind))


@dataclass(frozen=True)
class FileReadResult:
    """文件读取结果。

    Attributes:
        session_id: 会话ID
        path: 规范绝对路径
        content: 文件文本内容
    """

    session_id: str
    path: str
    content: str

    def to_dict(self) -> FileReadResultDict:
        return {"session_id": self.session_id, "path": self.path, "content": self.content}


@dataclass(frozen=True)
class FileWriteResult:
    """文件写入结果。

    Attributes:
        session_id: 会话ID
        path: 规范绝对路径
        bytes_written: 写入的字节数（UTF-8编码）
    """

    session_id: str
    path: str
    bytes_written: int

    def to_dict(self) -> FileWriteResultDict:
        return {
            "ok": True,
            "session_id": self.session_id,
            "path": self.path,
            "bytes_written": self.bytes_written,
        }


@dataclass(frozen=True)
class FileOperationResult:
    """文件操作结果。

    Attributes:
        session_id: 会话ID
        operation: 操作类型
        source: 源路径（规范化后）
        destination: 目标路径（规范化后），delete/mkdir 为None
    """

    session_id: str
    operation: FileOperationKind
    source: str
    destination: str | None

    @property
    def message(self) -> str:
        return f"{self.operation} operation completed successfully"

    def to_dict(self) -> FileOperationResultDict:
        return {
            "ok": True,
            "session_id": self.session_id,
            "operation": self.operation,
            "source": self.source,
            "destination": self.destination,
            "message": self.message,
        }


def build_operation_command(
    kind: FileOperationKind,
    source: str,
    destination: str | None = None,
) -> str:
    """把文件操作翻译为一条远程命令。

    Args:
        kind: 操作类型
        source: 源路径
        destination: 目标路径，copy/move 必填

    Returns:
        远程命令字符串

    Raises:
        ValueError: 操作类型不支持或缺少目标路径
    """
    src = shlex.quote(source)
    if kind == "delete":
        return f"rm -rf -- {src}"
    if kind == "mkdir":
        return f"mkdir -p -- {src}"
    if kind not in _OPERATION_KINDS:
        raise ValueError(f"不支持的操作类型: {kind}")
    if not destination or not destination.strip():
        raise ValueError(f"{kind} 操作需要destination")

    dst = shlex.quote(destination)
    if kind == "copy":
        return f"cp -r -- {src} {dst}"
    return f"mv -- {src} {dst}"


class FileManager:
    def __init__(
        self,
        *,
        registry: SessionRegistry,
        resolver: PathResolver,
        ssh: SSHManager,
    ) -> None:
        self._registry = registry
        self._resolver = resolver
        self._ssh = ssh

    async def read_file(self, session_id: str, path: str) -> FileReadResult:
        """读取远程文件内容。

        Args:
            session_id: 会话ID
            path: 远程文件路径，支持 ~ 简写

        Returns:
            FileReadResult: 文件内容

        Raises:
            SessionNotFoundError: 会话不存在
            RemoteIOError: 远程读取命令非零退出
        """
        self._registry.get_session(session_id)
        resolved = await self._resolver.resolve(session_id, path)

        result = await self._ssh.run(session_id, f"cat -- {shlex.quote(resolved)}")
        self._raise_for_status(result, action="读取文件", path=resolved)
        return FileReadResult(session_id=session_id, path=resolved, content=result.stdout)

    async def write_file(self, session_id: str, path: str, content: str) -> FileWriteResult:
        """把内容一次性写入远程文件。

        内容通过 stdin 传给远程 cat，不经过 shell 引号解析，
        因此任意引号、换行、反斜杠和转义序列都能原样往返。

        Args:
            session_id: 会话ID
            path: 远程文件路径，支持 ~ 简写
            content: 文件内容

        Returns:
            FileWriteResult: 写入结果

        Raises:
            SessionNotFoundError: 会话不存在
            RemoteIOError: 远程写入命令非零退出
        """
        self._registry.get_session(session_id)
        resolved = await self._resolver.resolve(session_id, path)

        result = await self._ssh.run(
            session_id,
            f"cat > {shlex.quote(resolved)}",
            input=content,
        )
        self._raise_for_status(result, action="写入文件", path=resolved)
        return FileWriteResult(
            session_id=session_id,
            path=resolved,
            bytes_written=len(content.encode("utf-8")),
        )

    async def file_operation(
        self,
        session_id: str,
        kind: FileOperationKind,
        source: str,
        destination: str | None = None,
    ) -> FileOperationResult:
        """执行复制、移动、删除或创建目录操作。

        Args:
            session_id: 会话ID
            kind: copy / move / delete / mkdir
            source: 源路径
            destination: 目标路径，仅 copy/move 使用

        Returns:
            FileOperationResult: 操作结果

        Raises:
            ValueError: 操作类型不支持或缺少目标路径
            SessionNotFoundError: 会话不存在
            RemoteIOError: 远程命令非零退出，携带原始stderr
        """
        if kind not in _OPERATION_KINDS:
            raise ValueError(f"不支持的操作类型: {kind}")
        if not source.strip():
            raise ValueError("source不能为空")

        self._registry.get_session(session_id)
        resolved_source = await self._resolver.resolve(session_id, source)
        resolved_destination: str | None = None
        if kind in ("copy", "move"):
            if destination is None or not destination.strip():
                raise ValueError(f"{kind} 操作需要destination")
            resolved_destination = await self._resolver.resolve(session_id, destination)

        command = build_operation_command(kind, resolved_source, resolved_destination)
        result = await self._ssh.run(session_id, command)
        self._raise_for_status(result, action=f"{kind} 操作", path=resolved_source)

        logger.info("{} 完成: {} {}", kind, resolved_source, resolved_destination or "")
        return FileOperationResult(
            session_id=session_id,
            operation=kind,
            source=resolved_source,
            destination=resolved_destination,
        )

    @staticmethod
    def _raise_for_status(result: CommandResult, *, action: str, path: str) -> None:
        if result.exit_code == 0:
            return
        stderr = result.stderr
        raise RemoteIOError(
            stderr.strip() or f"{action}失败: {path} (退出码 {result.exit_code})",
            command=result.command,
            exit_status=result.exit_code,
            stderr=stderr,
            details={"path": path},
        )
