"""Entry point for python -m pti_relay.

默认启动中继 HTTP 服务；`mcp` 启动 MCP 服务器。
"""

import sys


def serve() -> None:
    """按环境变量配置启动中继 HTTP 服务"""
    import uvicorn

    from .config import RelayConfig, ServerConfig
    from .relay.server import create_app
    from .utils.logging_helpers import configure_logging

    server_config = ServerConfig.from_env()
    configure_logging(server_config.log_level)
    app = create_app(RelayConfig.from_env())
    uvicorn.run(
        app,
        host=server_config.host,
        port=server_config.port,
        log_level=server_config.log_level.lower(),
    )


def main() -> None:
    """主入口函数"""
    command = sys.argv[1] if len(sys.argv) > 1 else "serve"

    if command in ["--version", "-v"]:
        from . import __version__

        print(f"pti-relay {__version__}")
        return

    if command == "mcp":
        from .mcp_server import main as mcp_main

        mcp_main()
        return

    if command != "serve":
        print(f"未知命令: {command}（可用: serve, mcp, --version）", file=sys.stderr)
        sys.exit(2)

    serve()


if __name__ == "__main__":
    main()
