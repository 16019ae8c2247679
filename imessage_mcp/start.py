#!/usr/bin/env python3
"""
Startup script for the iMessage MCP server
This script can start:
- stdio server (default): imessage-mcp serve
- health report:          imessage-mcp health
"""
import asyncio
import os
import sys


def run_serve() -> None:
    from imessage_mcp.main import run
    run()


def run_health() -> None:
    from imessage_mcp.core.settings import get_settings
    from imessage_mcp.providers import get_messaging_provider
    from imessage_mcp.services.permissions import perform_health_check, format_health_check_result

    settings = get_settings()
    result = asyncio.run(perform_health_check(settings, get_messaging_provider(settings)))
    print(format_health_check_result(result))
    sys.exit(0 if result.healthy else 1)


def main():
    role = (sys.argv[1] if len(sys.argv) > 1 else os.environ.get("SERVICE_ROLE", "serve")).lower()
    if role == "serve":
        run_serve()
    elif role == "health":
        run_health()
    else:
        print(f"Unknown role '{role}'. Use one of: serve, health", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
