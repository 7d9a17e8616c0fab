from __future__ import annotations

import shlex
from dataclasses import dataclass

import asyncssh

from remote_fs_gateway.path_resolver import PathResolver
from remote_fs_gateway.session_registry import SessionRegistry
from remote_fs_gateway.types import CommandResultDict


def _to_text(value: str | bytes | None) -> str:
    if value is None:
        return ""
    if isinstance(value, bytes):
        return value.decode(errors="replace")
    return value


def _to_exit_code(value: int | None) -> int:
    # 被信号终止时没有退出码
    return -1 if value is None else int(value)


@dataclass(frozen=True)
class CommandResult:
    session_id: str
    command: str
    cwd: str | None
    exit_code: int
    stdout: str
    stderr: str

    def to_dict(self) -> CommandResultDict:
        return {
            "session_id": self.session_id,
            "command": self.command,
            "cwd": self.cwd,
            "exit_code": self.exit_code,
            "stdout": self.stdout,
            "stderr": self.stderr,
        }


class SSHManager:
    def __init__(
        self,
        *,
        registry: SessionRegistry,
        resolver: PathResolver,
    ) -> None:
        self._registry = registry
        self._resolver = resolver

    async def run(
        self,
        session_id: str,
        command: str,
        *,
        input: str | None = None,
    ) -> CommandResult:
        async with self._registry.acquire(session_id) as conn:
            completed: asyncssh.SSHCompletedProcess = await conn.run(
                command,
                input=input,
                check=False,
                errors="replace",
            )

        return CommandResult(
            session_id=session_id,
            command=command,
            cwd=None,
            exit_code=_to_exit_code(completed.exit_status),
            stdout=_to_text(completed.stdout),
            stderr=_to_text(completed.stderr),
        )

    async def execute(
        self,
        session_id: str,
        command: str,
        *,
        cwd: str | None = None,
    ) -> CommandResult:
        if not command.strip():
            raise ValueError("command不能为空")

        self._registry.get_session(session_id)

        resolved_cwd: str | None = None
        remote_command = command
        if cwd is not None and cwd.strip():
            resolved_cwd = await self._resolver.resolve(session_id, cwd)
            remote_command = f"cd {shlex.quote(resolved_cwd)} && {command}"

        result = await self.run(session_id, remote_command)
        return CommandResult(
            session_id=session_id,
            command=command,
            cwd=resolved_cwd,
            exit_code=result.exit_code,
            stdout=result.stdout,
            stderr=result.stderr,
        )
