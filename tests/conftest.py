"""测试公共夹具

FakeRemote 模拟一台远程主机：内存文件系统加上网关会用到的少量命令，
替代 asyncssh.SSHClientConnection 注入到 SessionRegistry。
"""
from __future__ import annotations

import posixpath
import shlex

import pytest
import pytest_asyncio

from remote_fs_gateway.constants import HOME_QUERY_COMMAND, LIVENESS_PROBE_COMMAND
from remote_fs_gateway.gateway import Gateway
from remote_fs_gateway.session_registry import SSHCredentials
from remote_fs_gateway.settings import GatewaySettings


class FakeCompleted:
    def __init__(self, *, stdout: str = "", stderr: str = "", exit_status: int | None = 0) -> None:
        self.stdout = stdout
        self.stderr = stderr
        self.exit_status = exit_status


class FakeRemote:
    """模拟远程主机。

    Attributes:
        home: 远程家目录
        files: 路径到文件内容的映射
        dirs: 已存在的目录
        listings: 路径到 ls -la 输出的映射
        commands: 收到的全部命令
        fail_with: 设置后 run() 直接抛出该异常，模拟传输中断
    """

    def __init__(self, *, home: str = "/home/alice", denied_prefix: str = "/root") -> None:
        self.home = home
        self.denied_prefix = denied_prefix
        self.files: dict[str, str] = {}
        self.dirs: set[str] = {home}
        self.listings: dict[str, str] = {}
        self.commands: list[str] = []
        self.fail_with: Exception | None = None
        self.closed = False

    def is_closed(self) -> bool:
        return self.closed

    def close(self) -> None:
        self.closed = True

    async def wait_closed(self) -> None:
        return

    async def run(self, command: str, *, input: str | None = None, **_kwargs) -> FakeCompleted:
        self.commands.append(command)
        if self.fail_with is not None:
            raise self.fail_with
        if command == LIVENESS_PROBE_COMMAND:
            return FakeCompleted()
        if command == HOME_QUERY_COMMAND:
            return FakeCompleted(stdout=self.home)
        return self._dispatch(shlex.split(command), input)

    def _denied(self, path: str) -> FakeCompleted | None:
        if path == self.denied_prefix or path.startswith(self.denied_prefix + "/"):
            return FakeCompleted(stderr=f"{path}: Permission denied\n", exit_status=1)
        return None

    def _dispatch(self, argv: list[str], input: str | None) -> FakeCompleted:
        if argv[0] == "cd":
            if argv[1] not in self.dirs:
                return FakeCompleted(
                    stderr=f"sh: 1: cd: can't cd to {argv[1]}\n", exit_status=2
                )
            rest = argv[3:]
            if rest == ["pwd"]:
                return FakeCompleted(stdout=argv[1] + "\n")
            return self._dispatch(rest, input)

        if argv[0].startswith("LC_TIME="):
            path = argv[argv.index("--") + 1]
            if path not in self.listings:
                return FakeCompleted(
                    stderr=f"ls: cannot access '{path}': No such file or directory\n",
                    exit_status=2,
                )
            return FakeCompleted(stdout=self.listings[path])

        if argv[0] == "echo":
            return FakeCompleted(stdout=" ".join(argv[1:]) + "\n")
        if argv[0] == "false":
            return FakeCompleted(exit_status=1)
        if argv[0] == "kill-self":
            return FakeCompleted(exit_status=None)

        if argv[:2] == ["cat", ">"]:
            path = argv[2]
            denied = self._denied(path)
            if denied is not None:
                return denied
            self.files[path] = input or ""
            return FakeCompleted()

        if argv[:2] == ["cat", "--"]:
            path = argv[2]
            if path not in self.files:
                return FakeCompleted(
                    stderr=f"cat: {path}: No such file or directory\n", exit_status=1
                )
            return FakeCompleted(stdout=self.files[path])

        if argv[:3] == ["mkdir", "-p", "--"]:
            path = argv[3]
            denied = self._denied(path)
            if denied is not None:
                return denied
            while path not in ("", "/"):
                self.dirs.add(path)
                path = posixpath.dirname(path)
            return FakeCompleted()

        if argv[:3] == ["rm", "-rf", "--"]:
            path = argv[3]
            denied = self._denied(path)
            if denied is not None:
                return denied
            self.files.pop(path, None)
            self.dirs.discard(path)
            return FakeCompleted()

        if argv[:3] == ["cp", "-r", "--"] or argv[:2] == ["mv", "--"]:
            source, destination = argv[-2], argv[-1]
            denied = self._denied(destination)
            if denied is not None:
                return denied
            if source not in self.files:
                return FakeCompleted(
                    stderr=f"{argv[0]}: cannot stat '{source}': No such file or directory\n",
                    exit_status=1,
                )
            self.files[destination] = self.files[source]
            if argv[0] == "mv":
                del self.files[source]
            return FakeCompleted()

        return FakeCompleted(stderr=f"sh: 1: {argv[0]}: not found\n", exit_status=127)


@pytest.fixture
def remote() -> FakeRemote:
    return FakeRemote()


@pytest_asyncio.fixture
async def connected(mocker, remote: FakeRemote):
    """返回 (gateway, session_id)，会话连接到 FakeRemote。"""

    async def connect_side_effect(**_kwargs):
        return remote

    mocker.patch("asyncssh.connect", side_effect=connect_side_effect, autospec=True)
    gateway = Gateway.from_settings(GatewaySettings(default_root="/home"))
    session_id = await gateway.registry.create_session(
        host="10.0.0.5",
        username="alice",
        credentials=SSHCredentials(password="secret"),
        port=22,
    )
    yield gateway, session_id
    await gateway.aclose()
