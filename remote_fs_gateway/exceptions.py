"""远程文件系统网关自定义异常模块

定义项目中使用的所有自定义异常类，提供结构化的错误处理。
异常层次结构：
    GatewayError (基类)
    ├── SSHConnectionError     - 会话建立失败（认证、网络、存活探测）
    ├── SessionNotFoundError   - 会话ID未知或已释放
    ├── RemoteIOError          - 远程命令非零退出或传输中断
    ├── ParseWarning           - 目录列表行无法解析（仅记录，不抛出）
    └── ChannelClosedError     - 交互式命令通道已关闭
"""
from __future__ import annotations


class GatewayError(Exception):
    """网关基础异常类。

    所有自定义异常的基类，提供统一的错误消息格式。

    Attributes:
        message: 用户友好的错误描述信息
        details: 可选的附加错误详情字典
    """

    def __init__(self, message: str, *, details: dict[str, object] | None = None) -> None:
        """初始化基础异常。

        Args:
            message: 用户友好的错误描述信息
            details: 可选的附加错误详情
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_error_dict(self) -> dict[str, object]:
        """将异常转换为结构化的错误字典。

        Returns:
            包含error_type、message和details的字典
        """
        return {
            "error_type": type(self).__name__,
            "message": self.message,
            "details": self.details,
        }


class SSHConnectionError(GatewayError):
    """SSH连接错误。

    当认证失败、网络不可达、连接超时或存活探测失败时抛出。
    抛出时不会注册任何会话。

    Attributes:
        host: 目标主机地址
        port: 目标SSH端口
    """

    def __init__(
        self,
        message: str,
        *,
        host: str = "",
        port: int = 22,
        details: dict[str, object] | None = None,
    ) -> None:
        """初始化SSH连接错误。

        Args:
            message: 错误描述信息
            host: 目标主机地址
            port: 目标SSH端口
            details: 附加错误详情
        """
        merged_details = {"host": host, "port": port, **(details or {})}
        super().__init__(message, details=merged_details)
        self.host = host
        self.port = port


class SessionNotFoundError(GatewayError):
    """会话不存在错误。

    操作引用了未知或已释放的会话ID时抛出，从不自动重试。

    Attributes:
        session_id: 请求的会话ID
    """

    def __init__(
        self,
        message: str,
        *,
        session_id: str = "",
        details: dict[str, object] | None = None,
    ) -> None:
        """初始化会话不存在错误。

        Args:
            message: 错误描述信息
            session_id: 请求的会话ID
            details: 附加错误详情
        """
        merged_details = {"session_id": session_id, **(details or {})}
        super().__init__(message, details=merged_details)
        self.session_id = session_id


class RemoteIOError(GatewayError):
    """远程IO错误。

    当远程命令以非零状态退出，或执行过程中传输层中断时抛出。
    stderr 保留远程端原始诊断文本。

    Attributes:
        command: 执行失败的命令
        exit_status: 命令退出状态码
        stderr: 标准错误输出
    """

    def __init__(
        self,
        message: str,
        *,
        command: str = "",
        exit_status: int = -1,
        stderr: str = "",
        details: dict[str, object] | None = None,
    ) -> None:
        """初始化远程IO错误。

        Args:
            message: 错误描述信息
            command: 执行失败的命令
            exit_status: 命令退出状态码
            stderr: 标准错误输出
            details: 附加错误详情
        """
        merged_details = {
            "command": command,
            "exit_status": exit_status,
            "stderr": stderr,
            **(details or {}),
        }
        super().__init__(message, details=merged_details)
        self.command = command
        self.exit_status = exit_status
        self.stderr = stderr


class ParseWarning(GatewayError):
    """目录列表解析警告。

    目录列表中某一行不符合解析语法时生成。该行会被跳过并记录日志，
    不会导致整个列表请求失败。

    Attributes:
        line: 无法解析的原始行
    """

    def __init__(
        self,
        message: str,
        *,
        line: str = "",
        details: dict[str, object] | None = None,
    ) -> None:
        merged_details = {"line": line, **(details or {})}
        super().__init__(message, details=merged_details)
        self.line = line


class ChannelClosedError(GatewayError):
    """交互式命令通道已关闭错误。

    Attributes:
        channel_id: 已关闭的通道ID
    """

    def __init__(
        self,
        message: str,
        *,
        channel_id: str = "",
        details: dict[str, object] | None = None,
    ) -> None:
        merged_details = {"channel_id": channel_id, **(details or {})}
        super().__init__(message, details=merged_details)
        self.channel_id = channel_id
