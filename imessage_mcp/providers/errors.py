"""Classification of raw AppleScript failures into actionable recommendations.

Two entry points:
 - recommendation_for_code(code, message): a structured `error:<code>:<message>` reply
 - recommendation_for_error(message): a raised osascript error with only free text

Everything here is pure and never raises.
"""
from __future__ import annotations

import re
from enum import IntEnum

from .base import SendResult

ERROR_PREFIX = "error:"
UNKNOWN_CODE = "unknown"
UNKNOWN_MESSAGE = "Unknown error"

_PAREN_CODE = re.compile(r"\((-?\d+)\)")


class AppleScriptErrorCode(IntEnum):
    APP_NOT_RUNNING = -600
    NOT_UNDERSTOOD = -1708
    RECIPIENT_NOT_FOUND = -1728
    AUTOMATION_DENIED = -1743


_CODE_RECOMMENDATIONS = {
    AppleScriptErrorCode.RECIPIENT_NOT_FOUND: (
        "The recipient was not found. Ensure the phone number includes country code (e.g., +1) "
        "or use an email address."
    ),
    AppleScriptErrorCode.AUTOMATION_DENIED: (
        "Automation permission denied. Go to System Settings → Privacy & Security → Automation "
        "and enable Messages for your terminal."
    ),
    AppleScriptErrorCode.NOT_UNDERSTOOD: (
        "Messages.app does not understand this command. Try restarting Messages.app."
    ),
    AppleScriptErrorCode.APP_NOT_RUNNING: (
        "Application is not running. Messages.app will be launched automatically on next attempt."
    ),
}

NOT_AUTHORIZED_RECOMMENDATION = (
    "Permission denied. Grant Automation access in System Settings → Privacy & Security → Automation."
)
GENERIC_CODE_RECOMMENDATION = "Check that Messages.app is signed in and the recipient is valid."

ERROR_AUTOMATION_RECOMMENDATION = (
    "Automation permission denied. Go to System Settings → Privacy & Security → Automation "
    "and enable Messages."
)
ERROR_RECIPIENT_RECOMMENDATION = (
    "Recipient not found. Use full phone number with country code or email address."
)
GENERIC_ERROR_RECOMMENDATION = "Ensure Messages.app is running and signed in."


def _parse_int(raw: str | None) -> int | None:
    if raw is None:
        return None
    try:
        return int(raw.strip())
    except (TypeError, ValueError):
        return None


def recommendation_for_code(error_code: str, error_message: str) -> str:
    code = _parse_int(error_code)
    if code is not None:
        try:
            return _CODE_RECOMMENDATIONS[AppleScriptErrorCode(code)]
        except ValueError:
            pass
    if "not authorized" in (error_message or "").lower():
        return NOT_AUTHORIZED_RECOMMENDATION
    return GENERIC_CODE_RECOMMENDATION


def recommendation_for_error(error_message: str) -> str:
    text = error_message or ""
    code = _parse_int(extract_error_code(text))

    def _mentions(known: AppleScriptErrorCode) -> bool:
        return code == known or str(int(known)) in text

    if _mentions(AppleScriptErrorCode.AUTOMATION_DENIED) or "not authorized" in text.lower():
        return ERROR_AUTOMATION_RECOMMENDATION
    if _mentions(AppleScriptErrorCode.RECIPIENT_NOT_FOUND):
        return ERROR_RECIPIENT_RECOMMENDATION
    return GENERIC_ERROR_RECOMMENDATION


def extract_error_code(error_message: str) -> str:
    """Pull the code out of messages like 'execution error: ... (-1743)'."""
    match = _PAREN_CODE.search(error_message or "")
    return match.group(1) if match else UNKNOWN_CODE


def parse_script_error(output: str) -> tuple[str, str]:
    """Split an `error:<code>:<message>` reply.

    Only the first two colons are structural; the message keeps any further ones.
    """
    parts = output.split(":", 2)
    code = parts[1].strip() if len(parts) > 1 and parts[1].strip() else UNKNOWN_CODE
    message = parts[2] if len(parts) > 2 and parts[2] else UNKNOWN_MESSAGE
    return code, message


def is_permission_failure(result: SendResult) -> bool:
    """Failures retrying cannot fix: the terminal lacks Automation rights."""
    if result.success:
        return False
    denied = str(int(AppleScriptErrorCode.AUTOMATION_DENIED))
    if result.error_code == denied or (result.error and denied in result.error):
        return True
    return bool(result.recommendation and "Automation" in result.recommendation)


__all__ = [
    'AppleScriptErrorCode', 'recommendation_for_code', 'recommendation_for_error',
    'extract_error_code', 'parse_script_error', 'is_permission_failure',
    'ERROR_PREFIX', 'UNKNOWN_CODE',
]
