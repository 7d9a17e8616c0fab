"""
远程文件系统网关

基于 SSH 会话的远程文件系统网关，支持目录浏览、文件读写与操作、命令执行，
通过 MCP 工具和 WebSocket 交互式终端通道对外提供服务。
"""

__version__ = "0.1.0"

__all__ = [
    "command_channel",
    "config_manager",
    "constants",
    "directory_manager",
    "exceptions",
    "file_manager",
    "gateway",
    "listing_parser",
    "logger",
    "mcp_server",
    "path_resolver",
    "recent_connections",
    "session_registry",
    "settings",
    "ssh_manager",
    "tree_cache",
    "types",
]
