from __future__ import annotations
import asyncio
import logging

logger = logging.getLogger("imessage_mcp.applescript")


class AppleScriptError(RuntimeError):
    """osascript exited non-zero; the message is its stderr (e.g. 'execution error: ... (-1743)')."""

    def __init__(self, message: str, returncode: int | None = None):
        super().__init__(message)
        self.returncode = returncode


async def run_applescript(script: str, osascript: str = "osascript") -> str:
    """Run an AppleScript and return its stripped stdout.

    No timeout is applied: a hung Messages.app hangs the caller.
    """
    proc = await asyncio.create_subprocess_exec(
        osascript, "-e", script,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )
    out, err = await proc.communicate()
    if proc.returncode != 0:
        detail = err.decode("utf-8", errors="replace").strip()
        logger.debug("osascript failed rc=%s: %s", proc.returncode, detail[:200])
        raise AppleScriptError(detail or f"osascript exited with status {proc.returncode}", proc.returncode)
    return out.decode("utf-8", errors="replace").strip()


__all__ = ["AppleScriptError", "run_applescript"]
