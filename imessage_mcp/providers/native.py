from __future__ import annotations

from .base import SendRequest, SendResult, failed


class NativeProvider:
    """Placeholder for a private-API (IMCore) bridge.

    Needs SIP disabled and a compiled native module, neither of which ships yet, so it
    always reports unavailable and the fallback chain moves on to AppleScript.
    """

    name = "native-imcore"

    async def is_available(self) -> bool:
        return False

    async def send_message(self, request: SendRequest) -> SendResult:
        return failed(
            "Native IMCore provider is not yet implemented.",
            recommendation="Use the AppleScript provider for now.",
        )
