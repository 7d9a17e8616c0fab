"""远程文件系统网关 MCP Server 模块

本模块把网关操作暴露为 MCP (Model Context Protocol) 工具集，支持：
- 会话管理（建立、释放、列出SSH会话）
- 目录列表（结构化文件元数据，~ 家目录简写）
- 文件操作（读取、写入、复制、移动、删除、创建目录）
- 命令执行（可选工作目录）
- 交互式终端通道（HTTP 模式下的 WebSocket）

使用方式：
    stdio 模式供桌面端 MCP 客户端调用；
    http 模式同时提供 streamable HTTP MCP 端点与 WebSocket 终端通道。
"""
from __future__ import annotations

import json
import sys
import traceback
from collections.abc import AsyncIterator, Iterator
from contextlib import asynccontextmanager, contextmanager
from io import TextIOWrapper
from pathlib import Path
from tempfile import gettempdir
from typing import Any, Literal, cast

import anyio
import uvicorn
from loguru import logger
from mcp.server.fastmcp import FastMCP
from mcp.server.fastmcp.exceptions import ToolError
from mcp.server.stdio import stdio_server
from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.routing import Mount, Route, WebSocketRoute
from starlette.websockets import WebSocket, WebSocketDisconnect

from remote_fs_gateway.command_channel import CommandChannel
from remote_fs_gateway.constants import DEFAULT_SSH_PORT, HOME_MARKER, TERMINAL_WS_PATH
from remote_fs_gateway.exceptions import ChannelClosedError, GatewayError
from remote_fs_gateway.gateway import Gateway
from remote_fs_gateway.session_registry import SSHCredentials
from remote_fs_gateway.types import ConnectResultDict, FileOperationName

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


@contextmanager
def tool_errors() -> Iterator[None]:
    """把网关异常转换为 MCP 工具错误，错误文本为 to_error_dict() 的 JSON。"""
    try:
        yield
    except GatewayError as exc:
        raise ToolError(json.dumps(exc.to_error_dict(), ensure_ascii=False, default=str)) from exc


def run_stdio_server(server: FastMCP, gateway: Gateway) -> None:
    async def _run() -> None:
        stdin = anyio.wrap_file(
            TextIOWrapper(sys.stdin.buffer, encoding="utf-8", errors="replace")
        )
        stdout = anyio.wrap_file(
            TextIOWrapper(sys.stdout.buffer, encoding="utf-8", errors="replace")
        )
        try:
            async with stdio_server(stdin=stdin, stdout=stdout) as (read_stream, write_stream):
                lowlevel = cast(Any, server)._mcp_server
                await lowlevel.run(
                    read_stream,
                    write_stream,
                    lowlevel.create_initialization_options(),
                )
        finally:
            await gateway.aclose()

    try:
        anyio.run(_run)
    except BaseException:
        error_path = Path(gettempdir()) / "remote-fs-gateway-startup-error.log"
        with error_path.open("a", encoding="utf-8") as f:
            f.write("\n" + "=" * 80 + "\n")
            f.write(traceback.format_exc())
        raise


def run_http_server(app: Starlette, gateway: Gateway) -> None:
    settings = gateway.settings
    logger.info("HTTP 服务启动 {}:{}", settings.http_host, settings.http_port)
    uvicorn.run(
        app,
        host=settings.http_host,
        port=settings.http_port,
        log_level=settings.log_level.lower(),
    )


def create_http_app(*, gateway: Gateway, server: FastMCP) -> Starlette:
    """创建 HTTP 应用：streamable HTTP MCP 端点、健康检查与 WebSocket 终端通道。

    Args:
        gateway: 网关组合根
        server: 已注册工具的 FastMCP 服务器

    Returns:
        Starlette: 可交给 uvicorn 运行的 ASGI 应用
    """
    mcp_app = server.streamable_http_app()

    async def health(_request: Request) -> JSONResponse:
        return JSONResponse(gateway.health())

    async def terminal(websocket: WebSocket) -> None:
        await websocket.accept()
        channel = CommandChannel(
            ssh=gateway.ssh,
            send=websocket.send_json,
            max_pending=gateway.settings.channel_max_pending,
        )
        channel.start()
        logger.info("终端客户端已连接 {}", channel.channel_id)
        try:
            while True:
                message = await websocket.receive_text()
                await channel.submit(message)
        except (WebSocketDisconnect, ChannelClosedError):
            logger.info("终端客户端已断开 {}", channel.channel_id)
        finally:
            await channel.close()

    @asynccontextmanager
    async def lifespan(_app: Starlette) -> AsyncIterator[None]:
        async with server.session_manager.run():
            try:
                yield
            finally:
                await gateway.aclose()

    return Starlette(
        routes=[
            Route("/api/health", health, methods=["GET"]),
            WebSocketRoute(TERMINAL_WS_PATH, terminal),
            Mount("/", app=mcp_app),
        ],
        lifespan=lifespan,
    )


def create_mcp_server(*, gateway: Gateway) -> FastMCP:
    registry = gateway.registry
    ssh = gateway.ssh
    files = gateway.files
    directory = gateway.directory

    mcp = FastMCP(
        name="remote-fs-gateway",
        instructions="通过SSH会话浏览、读写和操作远程文件系统，并执行远程命令",
        log_level=cast(LogLevel, gateway.settings.log_level.upper()),
    )

    @mcp.tool()
    async def ssh_connect(
        *,
        host: str,
        username: str,
        port: int = DEFAULT_SSH_PORT,
        password: str | None = None,
        private_key_path: str | None = None,
    ) -> dict[str, Any]:
        """建立SSH会话。

        连接并认证目标主机，随后执行存活探测。成功后返回不透明的
        session_id，后续所有工具都通过它引用该会话。凭据只用于本次
        连接，不会被保存。

        Args:
            host: 目标主机地址（IP或域名）
            username: SSH用户名
            port: SSH端口，默认22
            password: SSH密码（可选，与private_key_path至少提供一个）
            private_key_path: SSH私钥文件路径（可选）

        Returns:
            dict: 包含session_id、host、port、username和message
        """
        credentials = SSHCredentials(password=password, private_key_path=private_key_path)
        with tool_errors():
            session_id = await registry.create_session(
                host=host,
                username=username,
                credentials=credentials,
                port=port,
            )
        connected: ConnectResultDict = {
            "session_id": session_id,
            "host": host,
            "port": port,
            "username": username,
            "message": "SSH connection established",
        }
        return dict(connected)

    @mcp.tool()
    async def ssh_disconnect(*, session_id: str) -> dict[str, Any]:
        """释放SSH会话。

        幂等操作，未知或已释放的会话ID不会报错。

        Args:
            session_id: 会话ID

        Returns:
            dict: 包含ok状态和session_id
        """
        await registry.dispose_session(session_id)
        return {"ok": True, "session_id": session_id}

    @mcp.tool()
    async def ssh_list_sessions() -> list[dict[str, Any]]:
        """列出所有存活的SSH会话。

        Returns:
            list[dict]: 会话信息列表，不含任何凭据
        """
        return [s.to_dict() for s in registry.list_sessions()]

    @mcp.tool()
    async def dir_list(*, session_id: str, path: str = HOME_MARKER) -> dict[str, Any]:
        """获取远程目录列表。

        返回目录在前、按名称排序的结构化条目。空路径或 ~ 表示远程家目录，
        ~/xxx 相对家目录展开。远程无法访问时返回空列表和warning，而不是报错。

        Args:
            session_id: 会话ID
            path: 远程目录路径，默认家目录

        Returns:
            dict: 包含规范化后的path、entries、warning和unparsed数量
        """
        with tool_errors():
            result = await directory.list_directory(session_id, path)
        return result.to_dict()

    @mcp.tool()
    async def ssh_execute(
        *,
        session_id: str,
        command: str,
        cwd: str | None = None,
    ) -> dict[str, Any]:
        """在会话上执行一条命令。

        非零退出码不视为错误，原样返回stdout、stderr和exit_code。

        Args:
            session_id: 会话ID
            command: 要执行的命令
            cwd: 工作目录（可选，支持 ~ 简写）

        Returns:
            dict: 包含stdout、stderr、exit_code等执行结果
        """
        with tool_errors():
            result = await ssh.execute(session_id, command, cwd=cwd)
        return result.to_dict()

    @mcp.tool()
    async def file_read(*, session_id: str, path: str) -> dict[str, Any]:
        """读取远程文件内容。

        Args:
            session_id: 会话ID
            path: 远程文件路径

        Returns:
            dict: 包含path和content
        """
        with tool_errors():
            result = await files.read_file(session_id, path)
        return result.to_dict()

    @mcp.tool()
    async def file_write(*, session_id: str, path: str, content: str) -> dict[str, Any]:
        """写入远程文件。

        覆盖写入，内容原样保存，不追加换行。

        Args:
            session_id: 会话ID
            path: 远程文件路径
            content: 文件内容

        Returns:
            dict: 包含ok状态、path和bytes_written
        """
        with tool_errors():
            result = await files.write_file(session_id, path, content)
        return result.to_dict()

    @mcp.tool()
    async def file_operation(
        *,
        session_id: str,
        operation: FileOperationName,
        source: str,
        destination: str | None = None,
    ) -> dict[str, Any]:
        """执行文件操作。

        copy/move 需要destination；delete/mkdir 忽略destination。
        mkdir 会创建父目录，重复创建不报错。

        Args:
            session_id: 会话ID
            operation: 操作类型 - copy/move/delete/mkdir
            source: 源路径
            destination: 目标路径（copy/move 必填）

        Returns:
            dict: 包含ok状态、operation和message
        """
        with tool_errors():
            result = await files.file_operation(session_id, operation, source, destination)
        return result.to_dict()

    @mcp.tool()
    async def gateway_health() -> dict[str, Any]:
        """网关健康检查。

        Returns:
            dict: 包含status和当前存活的会话数connections
        """
        return gateway.health()

    return mcp
