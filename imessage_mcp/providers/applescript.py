from __future__ import annotations
import asyncio
import functools
import logging
from typing import Awaitable, Callable, Optional

from .base import SendRequest, SendResult, sent, failed
from .errors import (
    ERROR_PREFIX,
    UNKNOWN_CODE,
    extract_error_code,
    parse_script_error,
    recommendation_for_code,
    recommendation_for_error,
)
from .recipients import normalize_recipient
from .retry import RetryPolicy, send_with_retry, Sleep
from imessage_mcp.logging import log_app_launch, set_log_provider, reset_log_provider
from imessage_mcp.services.applescript import run_applescript

logger = logging.getLogger("imessage_mcp.providers.applescript")

ScriptRunner = Callable[[str], Awaitable[str]]

SUCCESS_TOKEN = "success"


def escape_applescript_string(text: str) -> str:
    """Escape text for an AppleScript double-quoted literal.

    Backslashes go first so the escapes added for quotes and newlines are not doubled.
    """
    return text.replace("\\", "\\\\").replace('"', '\\"').replace("\n", "\\n")


def build_send_script(recipient: str, message: str) -> str:
    """Participant lookup on the iMessage account, falling back to a buddy lookup in the same run.

    Only when both fail does the script return `error:<code>:<message>`.
    """
    escaped_message = escape_applescript_string(message)
    escaped_recipient = recipient.replace('"', '\\"')
    return f'''
      tell application "Messages"
        try
          set targetService to 1st account whose service type = iMessage
          set targetBuddy to participant "{escaped_recipient}" of targetService
          send "{escaped_message}" to targetBuddy
          return "{SUCCESS_TOKEN}"
        on error errMsg number errNum
          try
            set targetBuddy to buddy "{escaped_recipient}"
            send "{escaped_message}" to targetBuddy
            return "{SUCCESS_TOKEN}"
          on error errMsg2 number errNum2
            return "{ERROR_PREFIX}" & errNum2 & ":" & errMsg2
          end try
        end try
      end tell
    '''


class AppleScriptProvider:
    """Sends through Messages.app by driving it with osascript."""

    name = "applescript"

    def __init__(
        self,
        runner: Optional[ScriptRunner] = None,
        *,
        app_name: str = "Messages",
        retry_policy: RetryPolicy = RetryPolicy(),
        sleep: Sleep = asyncio.sleep,
        launch_delay: int = 2,
        lenient_success: bool = True,
        osascript: str = "osascript",
    ):
        self.runner = runner or functools.partial(run_applescript, osascript=osascript)
        self.app_name = app_name
        self.retry_policy = retry_policy
        self.sleep = sleep
        self.launch_delay = launch_delay
        # Unrecognised output has historically meant a delivered message. Flip to tighten.
        self.lenient_success = lenient_success

    async def is_available(self) -> bool:
        try:
            result = await self.runner(f'application "{self.app_name}" is running')
        except Exception as e:
            logger.debug("Availability probe failed: %s", e)
            return False
        return result.strip() == "true"

    async def ensure_app_running(self) -> None:
        if await self.is_available():
            return
        logger.info("Launching %s.app before retry", self.app_name)
        launch_script = f'''
        tell application "{self.app_name}"
          activate
          delay {self.launch_delay}
        end tell
        '''
        try:
            await self.runner(launch_script)
        except Exception as e:
            log_app_launch(self.app_name, False, detail=str(e))
            return
        log_app_launch(self.app_name, True)

    async def send_message(self, request: SendRequest) -> SendResult:
        token = set_log_provider(self.name)
        try:
            return await send_with_retry(
                self._execute_send,
                request,
                policy=self.retry_policy,
                provider_name=self.name,
                sleep=self.sleep,
                before_retry=self.ensure_app_running,
            )
        finally:
            reset_log_provider(token)

    async def _execute_send(self, request: SendRequest) -> SendResult:
        script = build_send_script(normalize_recipient(request.recipient), request.message)
        try:
            output = await self.runner(script)
        except Exception as e:
            error_msg = str(e) or e.__class__.__name__
            return failed(
                error_msg,
                error_code=extract_error_code(error_msg),
                recommendation=recommendation_for_error(error_msg),
            )
        return self.interpret_output("" if output is None else str(output))

    def interpret_output(self, output: str) -> SendResult:
        if output == SUCCESS_TOKEN:
            return sent()
        if output.startswith(ERROR_PREFIX):
            code, message = parse_script_error(output)
            return failed(
                f"AppleScript error {code}: {message}",
                error_code=code,
                recommendation=recommendation_for_code(code, message),
            )
        if self.lenient_success:
            logger.debug("Treating unrecognised osascript output as delivered: %r", output[:80])
            return sent()
        return failed(
            f"Unrecognised AppleScript result: {output!r}",
            error_code=UNKNOWN_CODE,
            recommendation=recommendation_for_code(UNKNOWN_CODE, output),
        )


__all__ = ['AppleScriptProvider', 'build_send_script', 'escape_applescript_string', 'ScriptRunner']
