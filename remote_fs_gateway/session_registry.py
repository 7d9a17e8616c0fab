"""SSH会话注册表模块

持有所有存活的SSH会话，按不透明的会话ID索引，支持：
- 建立会话：带超时的连接与认证，随后执行存活探测
- 会话查询：纯查找，不阻塞、不修改状态
- 会话释放：幂等，释放传输资源并移除条目
- 传输层断开：连接丢失时自动移除会话
- 每次操作独立通道：同一连接上多路复用SSH通道
"""
from __future__ import annotations

import asyncio
import secrets
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone

import asyncssh
from loguru import logger

from remote_fs_gateway.constants import LIVENESS_PROBE_COMMAND
from remote_fs_gateway.exceptions import (
    RemoteIOError,
    SessionNotFoundError,
    SSHConnectionError,
)
from remote_fs_gateway.settings import GatewaySettings
from remote_fs_gateway.types import SessionInfoDict


@dataclass(frozen=True)
class SSHCredentials:
    """SSH凭据。

    仅在建立会话时使用，不会被注册表保存或持久化。

    Attributes:
        password: SSH密码
        private_key_path: SSH私钥文件路径
    """

    password: str | None = None
    private_key_path: str | None = None

    def __post_init__(self) -> None:
        if not self.password and not self.private_key_path:
            raise ValueError("至少提供password或private_key_path")

    @property
    def auth_mode(self) -> str:
        if self.private_key_path and self.password:
            return "mixed"
        if self.private_key_path:
            return "key"
        return "password"


@dataclass
class Session:
    """一条已认证的远程连接。

    Attributes:
        session_id: 不透明的会话ID
        host: 目标主机地址
        port: SSH端口
        username: 已认证的用户名
        alive: 存活标志，仅会从True变为False
        created_at: 创建时间（UTC）
    """

    session_id: str
    host: str
    port: int
    username: str
    alive: bool = True
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> SessionInfoDict:
        return {
            "session_id": self.session_id,
            "host": self.host,
            "port": self.port,
            "username": self.username,
            "alive": self.alive,
            "created_at": self.created_at.isoformat(),
        }


@dataclass
class _SessionEntry:
    session: Session
    connection: asyncssh.SSHClientConnection


class _SessionClient(asyncssh.SSHClient):
    """把传输层断开事件回传给注册表。"""

    def __init__(self, registry: SessionRegistry, session_id: str) -> None:
        self._registry = registry
        self._session_id = session_id

    def connection_lost(self, exc: Exception | None) -> None:
        self._registry._on_connection_lost(self._session_id, exc)


class SessionRegistry:
    """SSH会话注册表。

    注册表独占所有会话及其底层连接，其他组件只通过会话ID引用会话。
    同一会话上的每次操作都在独立的SSH通道中执行，互不阻塞。

    Attributes:
        _settings: 网关配置
        _sessions: 会话ID到会话条目的映射
        _retired_ids: 已释放的会话ID，保证ID不被复用。每个ID只占几十字节，
            随进程生命周期保留；清理后无法再保证不复用
    """

    def __init__(self, *, settings: GatewaySettings) -> None:
        """初始化会话注册表。

        Args:
            settings: 网关配置
        """
        self._settings = settings
        self._lock = asyncio.Lock()
        self._sessions: dict[str, _SessionEntry] = {}
        self._retired_ids: set[str] = set()

    def __len__(self) -> int:
        return len(self._sessions)

    async def create_session(
        self,
        *,
        host: str,
        username: str,
        credentials: SSHCredentials,
        port: int = 22,
    ) -> str:
        """建立并注册一个新会话。

        连接与认证受 connect_timeout_seconds 限制，成功后执行存活探测，
        探测命令必须以0退出。任一步骤失败都不会注册会话。

        Args:
            host: 目标主机地址
            username: SSH用户名
            credentials: SSH凭据
            port: SSH端口

        Returns:
            新会话的不透明ID

        Raises:
            SSHConnectionError: 认证失败、网络不可达、超时或存活探测失败
        """
        if not host.strip():
            raise ValueError("host不能为空")
        if not username.strip():
            raise ValueError("username不能为空")

        session_id = self._new_session_id()
        conn = await self._connect(
            session_id=session_id,
            host=host,
            port=port,
            username=username,
            credentials=credentials,
        )

        try:
            completed = await conn.run(LIVENESS_PROBE_COMMAND, check=False)
        except Exception as exc:
            await self._close_quietly(conn)
            raise SSHConnectionError(
                f"SSH存活探测失败: {host}:{port} - {exc}",
                host=host,
                port=port,
            ) from exc

        if completed.exit_status != 0:
            await self._close_quietly(conn)
            raise SSHConnectionError(
                f"SSH存活探测失败: {host}:{port} - 退出码 {completed.exit_status}",
                host=host,
                port=port,
                details={"exit_status": completed.exit_status},
            )

        session = Session(session_id=session_id, host=host, port=port, username=username)
        async with self._lock:
            self._sessions[session_id] = _SessionEntry(session=session, connection=conn)

        logger.info(
            "会话已建立 {}@{}:{} ({}认证)", username, host, port, credentials.auth_mode
        )
        return session_id

    def get_session(self, session_id: str) -> Session:
        """查询会话。

        Args:
            session_id: 会话ID

        Returns:
            会话对象

        Raises:
            SessionNotFoundError: 会话ID未知或已释放
        """
        entry = self._sessions.get(session_id)
        if entry is None:
            raise SessionNotFoundError("SSH会话不存在", session_id=session_id)
        return entry.session

    def list_sessions(self) -> list[Session]:
        return [entry.session for entry in self._sessions.values()]

    async def dispose_session(self, session_id: str) -> None:
        """释放会话。幂等，未知或已释放的ID不做任何操作。

        Args:
            session_id: 会话ID
        """
        async with self._lock:
            entry = self._sessions.pop(session_id, None)
            if entry is not None:
                self._retired_ids.add(session_id)

        if entry is None:
            return

        entry.session.alive = False
        await self._close_quietly(entry.connection)
        logger.info("会话已释放 {}", self._describe(entry.session))

    async def close_all(self) -> None:
        """释放所有会话。"""
        async with self._lock:
            session_ids = list(self._sessions.keys())

        await asyncio.gather(
            *[self.dispose_session(sid) for sid in session_ids],
            return_exceptions=True,
        )

    @asynccontextmanager
    async def acquire(self, session_id: str) -> AsyncIterator[asyncssh.SSHClientConnection]:
        """获取会话的连接用于单次操作（上下文管理器模式）。

        调用方应在连接上开启自己的通道（如 conn.run），不得保存连接引用。

        Args:
            session_id: 会话ID

        Yields:
            asyncssh.SSHClientConnection: 会话的SSH连接

        Raises:
            SessionNotFoundError: 会话不存在或连接已关闭
            RemoteIOError: 操作过程中传输层失败
        """
        entry = self._sessions.get(session_id)
        if entry is None:
            raise SessionNotFoundError("SSH会话不存在", session_id=session_id)

        if self._is_connection_dead(entry.connection):
            await self.dispose_session(session_id)
            raise SessionNotFoundError("SSH会话已断开", session_id=session_id)

        try:
            yield entry.connection
        except (asyncssh.Error, OSError) as exc:
            if self._is_connection_dead(entry.connection):
                await self.dispose_session(session_id)
            raise RemoteIOError(
                f"SSH传输失败: {exc}",
                stderr=str(exc),
                details={"session_id": session_id},
            ) from exc

    def _new_session_id(self) -> str:
        while True:
            candidate = secrets.token_urlsafe(24)
            if candidate not in self._sessions and candidate not in self._retired_ids:
                return candidate

    async def _connect(
        self,
        *,
        session_id: str,
        host: str,
        port: int,
        username: str,
        credentials: SSHCredentials,
    ) -> asyncssh.SSHClientConnection:
        """创建新的SSH连接。

        Args:
            session_id: 预先生成的会话ID，用于传输层断开回调
            host: 目标主机地址
            port: SSH端口
            username: SSH用户名
            credentials: SSH凭据

        Returns:
            新建立的SSH连接

        Raises:
            SSHConnectionError: 连接失败时抛出
        """
        options: dict[str, object] = {
            "host": host,
            "port": port,
            "username": username,
            "client_factory": lambda: _SessionClient(self, session_id),
        }

        if credentials.private_key_path:
            options["client_keys"] = [credentials.private_key_path]
        if credentials.password:
            options["password"] = credentials.password
        if self._settings.known_hosts_policy == "ignore":
            options["known_hosts"] = None

        try:
            connect_task = asyncssh.connect(**options)
            return await asyncio.wait_for(
                connect_task, timeout=self._settings.connect_timeout_seconds
            )
        except asyncio.TimeoutError as exc:
            raise SSHConnectionError(
                f"SSH连接超时: {host}:{port}",
                host=host,
                port=port,
            ) from exc
        except Exception as exc:
            raise SSHConnectionError(
                f"SSH连接失败: {host}:{port} - {exc}",
                host=host,
                port=port,
            ) from exc

    def _on_connection_lost(self, session_id: str, exc: Exception | None) -> None:
        entry = self._sessions.pop(session_id, None)
        if entry is None:
            return
        self._retired_ids.add(session_id)
        entry.session.alive = False
        if exc is not None:
            logger.warning("会话连接丢失 {}: {}", self._describe(entry.session), exc)
        else:
            logger.info("会话连接已关闭 {}", self._describe(entry.session))

    @staticmethod
    def _describe(session: Session) -> str:
        return f"{session.username}@{session.host}:{session.port}"

    @staticmethod
    def _is_connection_dead(conn: asyncssh.SSHClientConnection) -> bool:
        """检查连接是否已死亡。

        Args:
            conn: SSH连接

        Returns:
            连接是否已关闭或不可用
        """
        return conn.is_closed()

    @staticmethod
    async def _close_quietly(conn: asyncssh.SSHClientConnection) -> None:
        """静默关闭连接，忽略所有异常。

        Args:
            conn: 要关闭的SSH连接
        """
        try:
            conn.close()
            await conn.wait_closed()
        except Exception:
            return
