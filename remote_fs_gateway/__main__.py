from remote_fs_gateway.config_manager import ConfigManager
from remote_fs_gateway.gateway import Gateway
from remote_fs_gateway.logger import setup_logger
from remote_fs_gateway.mcp_server import (
    create_http_app,
    create_mcp_server,
    run_http_server,
    run_stdio_server,
)


def main() -> int:
    config_manager = ConfigManager.load()
    settings = config_manager.settings
    setup_logger(settings)
    gateway = Gateway.from_settings(settings)
    server = create_mcp_server(gateway=gateway)
    if settings.transport == "http":
        run_http_server(create_http_app(gateway=gateway, server=server), gateway)
    else:
        run_stdio_server(server, gateway)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
