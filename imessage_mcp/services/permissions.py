"""Health diagnostics for the permissions and system state the server depends on.

Supports:
 - check_full_disk_access(path) -> 'authorized' | 'denied' | 'unknown'
 - check_messages_automation(runner) -> same states, via a System Events probe
 - is_messages_running() -> pgrep
 - perform_health_check(settings, provider?) -> HealthCheckResult
 - format_health_check_result(result) -> printable report
"""
from __future__ import annotations

import asyncio
import errno
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Literal, Optional

from imessage_mcp.core.settings import Settings, get_settings
from imessage_mcp.providers.applescript import ScriptRunner
from imessage_mcp.providers.base import MessagingProvider
from imessage_mcp.services.applescript import run_applescript

logger = logging.getLogger("imessage_mcp.permissions")

PermissionState = Literal["authorized", "denied", "unknown"]


@dataclass
class PermissionStatus:
    full_disk_access: PermissionState = "unknown"
    automation_messages: PermissionState = "unknown"
    contacts_access: PermissionState = "unknown"  # Contacts API is not used


@dataclass
class HealthCheckResult:
    healthy: bool
    permissions: PermissionStatus
    messages_app_running: bool
    chat_db_exists: bool
    chat_db_readable: bool
    messaging_available: Optional[bool] = None
    errors: List[str] = field(default_factory=list)
    recommendations: List[str] = field(default_factory=list)


def check_full_disk_access(chat_db_path: str) -> PermissionState:
    """Empirical test: actually read a few bytes of the TCC-protected chat.db."""
    try:
        with open(chat_db_path, "rb") as fh:
            fh.read(16)
        return "authorized"
    except PermissionError:
        return "denied"
    except FileNotFoundError:
        # fresh system or a non-default path
        return "unknown"
    except OSError as e:
        if e.errno in (errno.EACCES, errno.EPERM):
            return "denied"
        return "unknown"


async def check_messages_automation(runner: Optional[ScriptRunner] = None) -> PermissionState:
    runner = runner or run_applescript
    try:
        out = await runner('tell application "System Events" to (name of processes) contains "Messages"')
    except Exception as e:
        msg = str(e)
        if "Not authorized" in msg or "(-1743)" in msg:
            return "denied"
        logger.debug("Automation probe inconclusive: %s", msg)
        return "unknown"
    return "authorized" if out.strip() in ("true", "false") else "unknown"


async def is_messages_running(app_name: str = "Messages") -> bool:
    try:
        proc = await asyncio.create_subprocess_exec(
            "pgrep", "-x", app_name,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.DEVNULL,
        )
        out, _ = await proc.communicate()
    except OSError:
        return False
    return bool(out.strip())


async def perform_health_check(
    settings: Settings | None = None,
    provider: MessagingProvider | None = None,
    *,
    runner: Optional[ScriptRunner] = None,
) -> HealthCheckResult:
    settings = settings or get_settings()
    chat_db_path = settings.effective_chat_db_path
    errors: List[str] = []
    recommendations: List[str] = []

    chat_db_exists = Path(chat_db_path).exists()
    if not chat_db_exists:
        errors.append(f"chat.db not found at: {chat_db_path}")
        recommendations.append("Ensure Messages.app has been used at least once to create the database.")

    full_disk_access = check_full_disk_access(chat_db_path)
    if full_disk_access == "denied":
        errors.append("Full Disk Access is denied.")
        recommendations.extend([
            "Grant Full Disk Access to your terminal/IDE:",
            "1. Open System Settings → Privacy & Security → Full Disk Access",
            "2. Click the + button and add your Terminal, iTerm2, VS Code, or Cursor app",
            "3. Restart your terminal application",
        ])

    automation = await check_messages_automation(runner)
    if automation == "denied":
        errors.append("Automation permission for Messages.app is denied.")
        recommendations.extend([
            "Grant Automation permission:",
            "1. Open System Settings → Privacy & Security → Automation",
            '2. Find your terminal app and enable "Messages"',
        ])

    running = await is_messages_running(settings.MESSAGES_APP_NAME)
    if not running:
        recommendations.append("Consider launching Messages.app for sending messages to work properly.")

    messaging_available = None
    if provider is not None:
        try:
            messaging_available = await provider.is_available()
        except Exception as e:
            logger.warning("Provider availability probe failed: %s", e)
            messaging_available = False

    return HealthCheckResult(
        healthy=not errors and full_disk_access == "authorized",
        permissions=PermissionStatus(
            full_disk_access=full_disk_access,
            automation_messages=automation,
        ),
        messages_app_running=running,
        chat_db_exists=chat_db_exists,
        chat_db_readable=full_disk_access == "authorized" and chat_db_exists,
        messaging_available=messaging_available,
        errors=errors,
        recommendations=recommendations,
    )


def _status_icon(status: PermissionState) -> str:
    if status == "authorized":
        return "✅ Authorized"
    if status == "denied":
        return "❌ Denied"
    return "⚠️  Unknown"


def _yes_no(flag: bool, missing: str = "❌ No") -> str:
    return "✅ Yes" if flag else missing


def format_health_check_result(result: HealthCheckResult) -> str:
    rule = "═" * 55
    lines = [
        rule,
        "           iMessage MCP Server Health Check            ",
        rule,
        "",
        f"Overall Status: {'✅ HEALTHY' if result.healthy else '❌ UNHEALTHY'}",
        "",
        "── Permissions " + "─" * 40,
        f"  Full Disk Access:     {_status_icon(result.permissions.full_disk_access)}",
        f"  Messages Automation:  {_status_icon(result.permissions.automation_messages)}",
        "",
        "── System Status " + "─" * 38,
        f"  chat.db exists:       {_yes_no(result.chat_db_exists)}",
        f"  chat.db readable:     {_yes_no(result.chat_db_readable)}",
        f"  Messages.app running: {_yes_no(result.messages_app_running, '⚠️  No')}",
    ]
    if result.messaging_available is not None:
        lines.append(f"  Send provider ready:  {_yes_no(result.messaging_available, '⚠️  No')}")

    if result.errors:
        lines += ["", "── Errors " + "─" * 45]
        lines += [f"  ❌ {err}" for err in result.errors]

    if result.recommendations:
        lines += ["", "── Recommendations " + "─" * 36]
        lines += [f"  → {rec}" for rec in result.recommendations]

    lines += ["", rule]
    return "\n".join(lines)


__all__ = [
    "HealthCheckResult", "PermissionStatus", "check_full_disk_access",
    "check_messages_automation", "is_messages_running",
    "perform_health_check", "format_health_check_result",
]
