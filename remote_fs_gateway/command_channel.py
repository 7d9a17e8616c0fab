"""交互式命令通道模块

独立于请求/响应接口的持久双向通道，为终端类体验逐条执行命令：
- 状态机：open → (executing → idle)* → closed
- 执行期间收到的新命令按FIFO排队，队列满时直接回复错误
- 每条被接受的消息恰好回复一条结果或错误消息
- closed 为终态，只能由传输层断开进入
"""
from __future__ import annotations

import asyncio
import enum
import json
import uuid
from collections.abc import Awaitable, Callable, Mapping
from typing import Any, Literal

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from remote_fs_gateway.exceptions import ChannelClosedError, GatewayError, SessionNotFoundError
from remote_fs_gateway.ssh_manager import SSHManager
from remote_fs_gateway.types import TerminalErrorMessage, TerminalOutputMessage

ReplySender = Callable[[dict[str, Any]], Awaitable[None]]


class ChannelState(str, enum.Enum):
    OPEN = "open"
    EXECUTING = "executing"
    IDLE = "idle"
    CLOSED = "closed"


class TerminalCommand(BaseModel):
    """终端命令消息，session_id 同时接受 sessionId 写法。"""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    type: Literal["terminal-command"] = "terminal-command"
    session_id: str = Field(alias="sessionId", min_length=1)
    command: str = Field(min_length=1)


def error_message(
    message: str,
    *,
    session_id: str | None = None,
    command: str | None = None,
) -> TerminalErrorMessage:
    return {
        "type": "error",
        "session_id": session_id,
        "command": command,
        "message": message,
    }


class CommandChannel:
    """交互式命令通道。

    Attributes:
        channel_id: 通道ID，仅用于日志
    """

    def __init__(
        self,
        *,
        ssh: SSHManager,
        send: ReplySender,
        max_pending: int = 32,
        channel_id: str | None = None,
    ) -> None:
        """初始化交互式命令通道。

        Args:
            ssh: 命令执行器
            send: 回复发送函数
            max_pending: 排队等待的最大命令数
            channel_id: 通道ID，留空自动生成
        """
        self.channel_id = channel_id or uuid.uuid4().hex
        self._ssh = ssh
        self._send = send
        self._queue: asyncio.Queue[TerminalCommand] = asyncio.Queue(maxsize=max_pending)
        self._state = ChannelState.OPEN
        self._worker: asyncio.Task[None] | None = None

    @property
    def state(self) -> ChannelState:
        return self._state

    @property
    def closed(self) -> bool:
        return self._state is ChannelState.CLOSED

    def start(self) -> None:
        """启动后台执行任务，重复调用无操作。"""
        if self._worker is None and not self.closed:
            self._worker = asyncio.create_task(self._run())
            logger.debug("交互通道已打开 {}", self.channel_id)

    async def submit(self, message: Mapping[str, Any] | str) -> None:
        """提交一条消息。

        消息格式错误或队列已满时立即回复错误消息；
        合法命令进入队列，由后台任务按顺序执行并回复。

        Args:
            message: JSON 文本或已解析的字典

        Raises:
            ChannelClosedError: 通道已关闭
        """
        if self.closed:
            raise ChannelClosedError("交互通道已关闭", channel_id=self.channel_id)
        self.start()

        try:
            raw = json.loads(message) if isinstance(message, str) else dict(message)
            if not isinstance(raw, dict):
                raise ValueError("消息必须是JSON对象")
            if raw.get("type", "terminal-command") != "terminal-command":
                raise ValueError(f"不支持的消息类型: {raw.get('type')}")
            command = TerminalCommand.model_validate(raw)
        except (ValueError, ValidationError) as exc:
            await self._reply(dict(error_message(f"无效的命令消息: {exc}")))
            return

        try:
            self._queue.put_nowait(command)
        except asyncio.QueueFull:
            await self._reply(
                dict(
                    error_message(
                        "交互通道繁忙，命令队列已满",
                        session_id=command.session_id,
                        command=command.command,
                    )
                )
            )

    async def join(self) -> None:
        """等待已排队的命令全部执行完毕。"""
        await self._queue.join()

    async def close(self) -> None:
        """关闭通道。排队中的命令被丢弃，之后不再发送任何消息。"""
        if self.closed:
            return
        self._state = ChannelState.CLOSED

        while not self._queue.empty():
            self._queue.get_nowait()
            self._queue.task_done()

        worker = self._worker
        self._worker = None
        if worker is not None and worker is not asyncio.current_task():
            worker.cancel()
            try:
                await worker
            except asyncio.CancelledError:
                pass
        logger.debug("交互通道已关闭 {}", self.channel_id)

    async def _run(self) -> None:
        while not self.closed:
            command = await self._queue.get()
            try:
                self._state = ChannelState.EXECUTING
                reply = await self._execute(command)
                if self.closed:
                    return
                await self._reply(reply)
                if not self.closed:
                    self._state = ChannelState.IDLE
            finally:
                self._queue.task_done()

    async def _execute(self, command: TerminalCommand) -> dict[str, Any]:
        try:
            result = await self._ssh.execute(command.session_id, command.command)
        except SessionNotFoundError:
            return dict(
                error_message(
                    "SSH connection not found",
                    session_id=command.session_id,
                    command=command.command,
                )
            )
        except (GatewayError, ValueError) as exc:
            text = exc.message if isinstance(exc, GatewayError) else str(exc)
            return dict(
                error_message(text, session_id=command.session_id, command=command.command)
            )
        except Exception as exc:
            logger.exception("交互通道命令执行异常 {}: {}", self.channel_id, command.command)
            return dict(
                error_message(
                    f"命令执行失败: {exc}",
                    session_id=command.session_id,
                    command=command.command,
                )
            )

        output: TerminalOutputMessage = {
            "type": "terminal-output",
            "session_id": command.session_id,
            "command": command.command,
            "stdout": result.stdout,
            "stderr": result.stderr,
            "exit_code": result.exit_code,
        }
        return dict(output)

    async def _reply(self, reply: dict[str, Any]) -> None:
        if self.closed:
            return
        try:
            await self._send(reply)
        except Exception as exc:
            # 发送失败说明传输层已断开
            logger.warning("交互通道发送失败，关闭通道 {}: {}", self.channel_id, exc)
            await self.close()
