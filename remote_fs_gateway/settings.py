"""远程文件系统网关配置设置模块

使用 Pydantic Settings 管理配置，支持以下配置方式（优先级从高到低）：
1. 环境变量（前缀：RFS_GATEWAY_）
2. .env 文件
3. JSON 配置文件
4. 默认值

示例环境变量：
    RFS_GATEWAY_LOG_LEVEL=DEBUG
    RFS_GATEWAY_TRANSPORT=http
    RFS_GATEWAY_LISTING_DENY_LIST=.cache,.gvfs
"""
from __future__ import annotations

from pathlib import Path
from typing import Annotated, Any, Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

# 对外服务的传输方式
TransportMode = Literal["stdio", "http"]

# Known hosts 策略类型
KnownHostsPolicy = Literal["ignore", "strict"]

DEFAULT_LISTING_DENY_LIST: tuple[str, ...] = (
    ".gvfs",
    ".cache",
    ".gconf",
    ".dbus",
)


class GatewaySettings(BaseSettings):
    """远程文件系统网关配置类。

    支持通过环境变量、.env文件、JSON配置文件或默认值进行配置。
    环境变量前缀为 RFS_GATEWAY_。
    """

    model_config = SettingsConfigDict(env_prefix="RFS_GATEWAY_", extra="ignore")

    # 配置文件路径
    config_file: Path = Field(default=Path("rfs_gateway_config.json"))

    # 日志配置
    log_level: str = Field(default="INFO", description="日志级别")
    log_dir: Path = Field(default=Path("logs"), description="日志目录")
    log_rotation: str = Field(default="10 MB", description="日志轮转大小")
    log_retention: str = Field(default="30 days", description="日志保留时间")

    # 服务配置
    transport: TransportMode = Field(
        default="stdio", description="服务传输方式: stdio 或 http(含 WebSocket 终端通道)"
    )
    http_host: str = Field(default="127.0.0.1", description="HTTP 监听地址")
    http_port: int = Field(default=3001, ge=1, le=65535, description="HTTP 监听端口")

    # 会话配置
    connect_timeout_seconds: float = Field(
        default=30.0, gt=0, description="SSH连接与认证超时时间(秒)"
    )
    known_hosts_policy: KnownHostsPolicy = Field(
        default="ignore",
        description="Known hosts 策略: ignore(不校验), strict(按 known_hosts 校验)",
    )

    # 路径与目录列表配置
    default_root: str = Field(
        default="/home", description="无法获取远程家目录时使用的回退路径"
    )
    listing_deny_list: Annotated[list[str], NoDecode] = Field(
        default_factory=lambda: list(DEFAULT_LISTING_DENY_LIST),
        description="目录列表中需要隐藏的条目名称",
    )

    # 交互式命令通道配置
    channel_max_pending: int = Field(
        default=32, ge=1, description="交互通道排队等待的最大命令数"
    )

    # 客户端最近连接记录
    recent_connections_file: Path = Field(
        default=Path("recent_connections.json"), description="最近连接记录文件"
    )
    recent_connections_limit: int = Field(
        default=5, ge=1, description="最近连接记录最大条数"
    )

    @field_validator("listing_deny_list", mode="before")
    @classmethod
    def _split_deny_list(cls, value: Any) -> Any:
        if isinstance(value, str):
            return [item.strip() for item in value.split(",") if item.strip()]
        return value
