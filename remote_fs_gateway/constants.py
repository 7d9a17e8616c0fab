from __future__ import annotations

DEFAULT_SSH_PORT = 22

# 会话建立后的存活探测命令，要求退出码为0
LIVENESS_PROBE_COMMAND = "true"

# 家目录简写标记
HOME_MARKER = "~"

# 查询远程家目录
HOME_QUERY_COMMAND = 'printf %s "$HOME"'

DEFAULT_TREE_ROOT = HOME_MARKER

TERMINAL_WS_PATH = "/ws/terminal"
