"""SessionRegistry 会话注册表单元测试模块

覆盖以下场景：
- 会话建立：连接参数、存活探测、超时与失败清理
- 会话查询与释放（幂等、ID不复用）
- acquire() 的死连接检测与传输失败转换
- 传输层断开时自动移除会话
- SSHCredentials 校验
"""
import asyncio

import asyncssh
import pytest

from remote_fs_gateway.exceptions import (
    RemoteIOError,
    SessionNotFoundError,
    SSHConnectionError,
)
from remote_fs_gateway.session_registry import SessionRegistry, SSHCredentials
from remote_fs_gateway.settings import GatewaySettings


class FakeCompleted:
    def __init__(self, *, stdout: str = "", stderr: str = "", exit_status: int = 0) -> None:
        self.stdout = stdout
        self.stderr = stderr
        self.exit_status = exit_status


class FakeConnection:
    """模拟 asyncssh.SSHClientConnection 的假连接对象。

    Attributes:
        closed: 连接是否已关闭
        probe_exit_status: 存活探测命令的退出码
    """

    def __init__(self, *, probe_exit_status: int = 0) -> None:
        self.closed = False
        self.probe_exit_status = probe_exit_status
        self.commands: list[str] = []

    def is_closed(self) -> bool:
        return self.closed

    def close(self) -> None:
        self.closed = True

    async def wait_closed(self) -> None:
        return

    async def run(self, command: str, **_kwargs):
        self.commands.append(command)
        return FakeCompleted(exit_status=self.probe_exit_status)


def _creds() -> SSHCredentials:
    return SSHCredentials(password="secret")


def _patch_connect(mocker, *conns: FakeConnection):
    pending = list(conns)

    async def connect_side_effect(**_kwargs):
        return pending.pop(0)

    return mocker.patch("asyncssh.connect", side_effect=connect_side_effect, autospec=True)


class TestSSHCredentials:
    def test_requires_password_or_key(self) -> None:
        with pytest.raises(ValueError):
            SSHCredentials()

    def test_auth_mode(self) -> None:
        assert SSHCredentials(password="p").auth_mode == "password"
        assert SSHCredentials(private_key_path="/k").auth_mode == "key"
        assert SSHCredentials(password="p", private_key_path="/k").auth_mode == "mixed"


class TestCreateSession:
    @pytest.mark.asyncio
    async def test_create_session_registers_live_session(self, mocker) -> None:
        fake = FakeConnection()
        connect = _patch_connect(mocker, fake)
        registry = SessionRegistry(settings=GatewaySettings())

        session_id = await registry.create_session(
            host="10.0.0.5", username="alice", credentials=_creds(), port=22
        )

        session = registry.get_session(session_id)
        assert session.host == "10.0.0.5"
        assert session.username == "alice"
        assert session.port == 22
        assert session.alive is True
        assert fake.commands == ["true"]
        assert len(registry) == 1

        kwargs = connect.call_args.kwargs
        assert kwargs["host"] == "10.0.0.5"
        assert kwargs["username"] == "alice"
        assert kwargs["password"] == "secret"
        assert kwargs["known_hosts"] is None
        assert "client_keys" not in kwargs
        await registry.close_all()

    @pytest.mark.asyncio
    async def test_strict_policy_keeps_known_hosts_check(self, mocker) -> None:
        connect = _patch_connect(mocker, FakeConnection())
        registry = SessionRegistry(settings=GatewaySettings(known_hosts_policy="strict"))

        await registry.create_session(
            host="h",
            username="u",
            credentials=SSHCredentials(private_key_path="/keys/id_ed25519"),
        )

        kwargs = connect.call_args.kwargs
        assert "known_hosts" not in kwargs
        assert kwargs["client_keys"] == ["/keys/id_ed25519"]
        await registry.close_all()

    @pytest.mark.asyncio
    async def test_session_ids_unique_and_opaque(self, mocker) -> None:
        _patch_connect(mocker, FakeConnection(), FakeConnection())
        registry = SessionRegistry(settings=GatewaySettings())

        a = await registry.create_session(host="h", username="u", credentials=_creds())
        b = await registry.create_session(host="h", username="u", credentials=_creds())

        assert a != b
        assert len(a) >= 32
        await registry.close_all()

    @pytest.mark.asyncio
    async def test_probe_failure_closes_connection(self, mocker) -> None:
        fake = FakeConnection(probe_exit_status=1)
        _patch_connect(mocker, fake)
        registry = SessionRegistry(settings=GatewaySettings())

        with pytest.raises(SSHConnectionError) as exc_info:
            await registry.create_session(host="h", username="u", credentials=_creds())

        assert fake.closed is True
        assert len(registry) == 0
        assert exc_info.value.details["exit_status"] == 1

    @pytest.mark.asyncio
    async def test_connect_failure_raises_connection_error(self, mocker) -> None:
        async def connect_side_effect(**_kwargs):
            raise OSError("Connection refused")

        mocker.patch("asyncssh.connect", side_effect=connect_side_effect, autospec=True)
        registry = SessionRegistry(settings=GatewaySettings())

        with pytest.raises(SSHConnectionError, match="Connection refused"):
            await registry.create_session(host="h", username="u", credentials=_creds())
        assert registry.list_sessions() == []

    @pytest.mark.asyncio
    async def test_connect_timeout(self, mocker) -> None:
        async def connect_side_effect(**_kwargs):
            await asyncio.sleep(5)
            return FakeConnection()

        mocker.patch("asyncssh.connect", side_effect=connect_side_effect, autospec=True)
        registry = SessionRegistry(settings=GatewaySettings(connect_timeout_seconds=0.05))

        with pytest.raises(SSHConnectionError, match="超时"):
            await registry.create_session(host="h", username="u", credentials=_creds())
        assert len(registry) == 0

    @pytest.mark.asyncio
    async def test_blank_host_rejected(self) -> None:
        registry = SessionRegistry(settings=GatewaySettings())
        with pytest.raises(ValueError):
            await registry.create_session(host=" ", username="u", credentials=_creds())


class TestDisposeSession:
    @pytest.mark.asyncio
    async def test_dispose_twice_is_noop(self, mocker) -> None:
        fake = FakeConnection()
        _patch_connect(mocker, fake)
        registry = SessionRegistry(settings=GatewaySettings())
        session_id = await registry.create_session(host="h", username="u", credentials=_creds())
        session = registry.get_session(session_id)

        await registry.dispose_session(session_id)
        await registry.dispose_session(session_id)

        assert fake.closed is True
        assert session.alive is False
        with pytest.raises(SessionNotFoundError):
            registry.get_session(session_id)

    @pytest.mark.asyncio
    async def test_dispose_unknown_is_noop(self) -> None:
        registry = SessionRegistry(settings=GatewaySettings())
        await registry.dispose_session("never-existed")

    @pytest.mark.asyncio
    async def test_retired_ids_not_reused(self, mocker) -> None:
        _patch_connect(mocker, FakeConnection(), FakeConnection())
        ids = iter(["same", "same", "fresh"])
        mocker.patch(
            "remote_fs_gateway.session_registry.secrets.token_urlsafe",
            side_effect=lambda _n: next(ids),
        )
        registry = SessionRegistry(settings=GatewaySettings())

        first = await registry.create_session(host="h", username="u", credentials=_creds())
        await registry.dispose_session(first)
        second = await registry.create_session(host="h", username="u", credentials=_creds())

        assert first == "same"
        assert second == "fresh"

    @pytest.mark.asyncio
    async def test_close_all(self, mocker) -> None:
        fakes = [FakeConnection(), FakeConnection()]
        _patch_connect(mocker, *fakes)
        registry = SessionRegistry(settings=GatewaySettings())
        await registry.create_session(host="a", username="u", credentials=_creds())
        await registry.create_session(host="b", username="u", credentials=_creds())

        await registry.close_all()

        assert len(registry) == 0
        assert all(f.closed for f in fakes)


class TestAcquire:
    @pytest.mark.asyncio
    async def test_acquire_yields_connection(self, mocker) -> None:
        fake = FakeConnection()
        _patch_connect(mocker, fake)
        registry = SessionRegistry(settings=GatewaySettings())
        session_id = await registry.create_session(host="h", username="u", credentials=_creds())

        async with registry.acquire(session_id) as conn:
            assert conn is fake
        await registry.close_all()

    @pytest.mark.asyncio
    async def test_acquire_unknown_session(self) -> None:
        registry = SessionRegistry(settings=GatewaySettings())
        with pytest.raises(SessionNotFoundError):
            async with registry.acquire("missing"):
                pass

    @pytest.mark.asyncio
    async def test_acquire_dead_connection_disposes(self, mocker) -> None:
        fake = FakeConnection()
        _patch_connect(mocker, fake)
        registry = SessionRegistry(settings=GatewaySettings())
        session_id = await registry.create_session(host="h", username="u", credentials=_creds())

        fake.closed = True
        with pytest.raises(SessionNotFoundError):
            async with registry.acquire(session_id):
                pass
        assert len(registry) == 0

    @pytest.mark.asyncio
    async def test_transport_failure_becomes_remote_io_error(self, mocker) -> None:
        fake = FakeConnection()
        _patch_connect(mocker, fake)
        registry = SessionRegistry(settings=GatewaySettings())
        session_id = await registry.create_session(host="h", username="u", credentials=_creds())

        with pytest.raises(RemoteIOError, match="broken pipe"):
            async with registry.acquire(session_id):
                fake.closed = True
                raise OSError("broken pipe")

        with pytest.raises(SessionNotFoundError):
            registry.get_session(session_id)

    @pytest.mark.asyncio
    async def test_any_asyncssh_error_becomes_remote_io_error(self, mocker) -> None:
        fake = FakeConnection()
        _patch_connect(mocker, fake)
        registry = SessionRegistry(settings=GatewaySettings())
        session_id = await registry.create_session(host="h", username="u", credentials=_creds())

        with pytest.raises(RemoteIOError, match="unexpected channel error"):
            async with registry.acquire(session_id):
                raise asyncssh.Error(0, "unexpected channel error")

        # 连接仍然存活，会话保留
        assert registry.get_session(session_id).alive is True
        await registry.close_all()

    @pytest.mark.asyncio
    async def test_connection_lost_removes_session(self, mocker) -> None:
        _patch_connect(mocker, FakeConnection())
        registry = SessionRegistry(settings=GatewaySettings())
        session_id = await registry.create_session(host="h", username="u", credentials=_creds())
        session = registry.get_session(session_id)

        registry._on_connection_lost(session_id, ConnectionResetError("reset by peer"))

        assert session.alive is False
        assert registry.list_sessions() == []
        with pytest.raises(SessionNotFoundError):
            registry.get_session(session_id)
