"""Tool handlers exposed to the agent.

`MessagingTools.call(name, arguments)` validates arguments with pydantic, runs the
handler and renders the outcome as TOON text. Protocol wiring lives in `main`.
"""
from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Awaitable, Callable, Dict, Optional

from pydantic import BaseModel, Field, ValidationError

from imessage_mcp.core.settings import Settings, get_settings
from imessage_mcp.logging import slog, set_log_tool
from imessage_mcp.providers.base import MessagingProvider, SendRequest
from imessage_mcp.services import toon
from imessage_mcp.services.message_store import MessageStore
from imessage_mcp.services.permissions import perform_health_check


class ToolArgumentError(ValueError):
    pass


class UnknownToolError(LookupError):
    pass


@dataclass
class ToolResponse:
    text: str
    is_error: bool = False


# -------------------------
# Argument schemas
# -------------------------

# keeps the attachment lookup under SQLite's bound-variable limit
MAX_QUERY_LIMIT = 1000


class SendMessageArgs(BaseModel):
    recipient: str = Field(..., description="The phone number or email of the recipient")
    message: str = Field(..., description="The text message content to send")


class LimitArgs(BaseModel):
    limit: Optional[int] = Field(None, ge=1, le=MAX_QUERY_LIMIT, description="Number of messages to fetch")


class SearchMessagesArgs(LimitArgs):
    query: str = Field(..., description="The text to search for")


class ContactMessagesArgs(LimitArgs):
    handle: str = Field(..., description="The phone number or email of the contact")


class SearchContactsArgs(BaseModel):
    query: str = Field(..., description="Partial phone number or email to search for")


class AttachmentArgs(BaseModel):
    guid: str = Field(..., description="The GUID of the attachment")


class NoArgs(BaseModel):
    pass


def _parse(model: type[BaseModel], arguments: Dict[str, Any] | None) -> Any:
    try:
        return model.model_validate(arguments or {})
    except ValidationError as e:
        detail = ", ".join(f"{'.'.join(str(p) for p in err['loc']) or 'arguments'}: {err['msg']}" for err in e.errors())
        raise ToolArgumentError(f"Invalid arguments: {detail}") from e


class MessagingTools:
    def __init__(
        self,
        provider: MessagingProvider,
        store: MessageStore | None,
        *,
        store_error: str | None = None,
        settings: Settings | None = None,
    ):
        self.provider = provider
        self.store = store
        self.store_error = store_error
        self.settings = settings or get_settings()
        self._handlers: Dict[str, Callable[[Dict[str, Any] | None], Awaitable[ToolResponse]]] = {
            "send_message": self.send_message,
            "get_recent_messages": self.get_recent_messages,
            "search_messages": self.search_messages,
            "get_contact_messages": self.get_contact_messages,
            "list_chats": self.list_chats,
            "search_contacts": self.search_contacts,
            "get_attachment_path": self.get_attachment_path,
            "health_check": self.health_check,
        }

    @property
    def tool_names(self) -> list[str]:
        return list(self._handlers)

    async def call(self, name: str, arguments: Dict[str, Any] | None = None) -> ToolResponse:
        handler = self._handlers.get(name)
        if handler is None:
            raise UnknownToolError(f"Unknown tool: {name}")
        set_log_tool(name)
        try:
            return await handler(arguments)
        finally:
            set_log_tool(None)

    def _limit(self, args: LimitArgs) -> int:
        return args.limit or self.settings.DEFAULT_QUERY_LIMIT

    def _db_unavailable(self) -> ToolResponse:
        return ToolResponse(
            toon.stringify({
                "error": "Database unavailable",
                "reason": self.store_error or "Full Disk Access permission required",
                "recommendation": "Run the health_check tool to diagnose and fix permission issues.",
            }),
            is_error=True,
        )

    # -------------------------
    # Handlers
    # -------------------------

    async def send_message(self, arguments: Dict[str, Any] | None) -> ToolResponse:
        args = _parse(SendMessageArgs, arguments)
        result = await self.provider.send_message(SendRequest(recipient=args.recipient, message=args.message))
        if result.success:
            slog.info("tool_send_message", success=True)
            return ToolResponse(f"Successfully sent message to {args.recipient}")
        return ToolResponse(
            toon.stringify({
                "success": False,
                "error": result.error,
                "errorCode": result.error_code,
                "recommendation": result.recommendation,
            }),
            is_error=True,
        )

    async def get_recent_messages(self, arguments: Dict[str, Any] | None) -> ToolResponse:
        if self.store is None:
            return self._db_unavailable()
        args = _parse(LimitArgs, arguments)
        messages = self.store.get_recent_messages(self._limit(args))
        return ToolResponse(toon.stringify([asdict(m) for m in messages], array_key="messages"))

    async def search_messages(self, arguments: Dict[str, Any] | None) -> ToolResponse:
        if self.store is None:
            return self._db_unavailable()
        args = _parse(SearchMessagesArgs, arguments)
        messages = self.store.search_messages(args.query, self._limit(args))
        return ToolResponse(toon.stringify([asdict(m) for m in messages], array_key="messages"))

    async def get_contact_messages(self, arguments: Dict[str, Any] | None) -> ToolResponse:
        if self.store is None:
            return self._db_unavailable()
        args = _parse(ContactMessagesArgs, arguments)
        messages = self.store.get_messages_from_contact(args.handle, self._limit(args))
        return ToolResponse(toon.stringify([asdict(m) for m in messages], array_key="messages"))

    async def list_chats(self, arguments: Dict[str, Any] | None) -> ToolResponse:
        if self.store is None:
            return self._db_unavailable()
        _parse(NoArgs, arguments)
        return ToolResponse(toon.stringify([asdict(c) for c in self.store.list_chats()], array_key="chats"))

    async def search_contacts(self, arguments: Dict[str, Any] | None) -> ToolResponse:
        if self.store is None:
            return self._db_unavailable()
        args = _parse(SearchContactsArgs, arguments)
        contacts = self.store.search_contacts(args.query)
        return ToolResponse(toon.stringify([asdict(c) for c in contacts], array_key="contacts"))

    async def get_attachment_path(self, arguments: Dict[str, Any] | None) -> ToolResponse:
        if self.store is None:
            return self._db_unavailable()
        args = _parse(AttachmentArgs, arguments)
        path = self.store.get_attachment_path(args.guid)
        if not path:
            return ToolResponse(f"Attachment with GUID {args.guid} not found.", is_error=True)
        return ToolResponse(path)

    async def health_check(self, arguments: Dict[str, Any] | None) -> ToolResponse:
        _parse(NoArgs, arguments)
        result = await perform_health_check(self.settings, self.provider)
        return ToolResponse(toon.stringify(asdict(result)))

    def recent_messages_resource(self) -> str:
        if self.store is None:
            raise RuntimeError("Database unavailable")
        messages = self.store.get_recent_messages(self.settings.RECENT_RESOURCE_LIMIT)
        return toon.stringify([asdict(m) for m in messages], array_key="messages")


__all__ = ["MessagingTools", "ToolResponse", "ToolArgumentError", "UnknownToolError"]
