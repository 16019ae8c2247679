from __future__ import annotations
from dataclasses import dataclass
from typing import Protocol, Any, runtime_checkable


@dataclass(frozen=True)
class SendRequest:
    recipient: str  # phone number or email, normalized by the provider
    message: str


@dataclass
class SendResult:
    success: bool
    message_id: str | None = None
    error: str | None = None
    error_code: str | None = None
    recommendation: str | None = None

    def __post_init__(self):
        if self.success and self.error is not None:
            raise ValueError("a successful SendResult cannot carry an error")

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"success": self.success}
        for key, val in (
            ("messageId", self.message_id),
            ("error", self.error),
            ("errorCode", self.error_code),
            ("recommendation", self.recommendation),
        ):
            if val is not None:
                out[key] = val
        return out


def sent(message_id: str | None = None) -> SendResult:
    return SendResult(success=True, message_id=message_id)


def failed(error: str, *, error_code: str | None = None, recommendation: str | None = None) -> SendResult:
    return SendResult(success=False, error=error, error_code=error_code, recommendation=recommendation)


@runtime_checkable
class MessagingProvider(Protocol):
    """One concrete delivery mechanism plus a probe for whether it is usable right now."""

    name: str

    async def is_available(self) -> bool: ...

    async def send_message(self, request: SendRequest) -> SendResult: ...


__all__ = ['SendRequest', 'SendResult', 'MessagingProvider', 'sent', 'failed']
