from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from fastmcp import FastMCP
from fastmcp.exceptions import ToolError

from imessage_mcp.core.settings import Settings, get_settings
from imessage_mcp.logging import slog
from imessage_mcp.providers import get_messaging_provider
from imessage_mcp.services.message_store import MessageStore, MessageStoreError
from imessage_mcp.tools import MessagingTools, ToolArgumentError, UnknownToolError

logger = logging.getLogger("imessage_mcp")

INSTRUCTIONS = (
    "Read and send iMessages through the local Messages app. "
    "Run health_check first when a tool reports missing permissions."
)


def build_tools(settings: Settings | None = None) -> MessagingTools:
    """Wire the fallback chain and the message store; a store that fails to open is reported, not fatal."""
    settings = settings or get_settings()
    provider = get_messaging_provider(settings)
    store: MessageStore | None = None
    store_error: str | None = None
    try:
        store = MessageStore(
            settings.effective_chat_db_path,
            open_retries=settings.DB_OPEN_RETRIES,
            busy_timeout=settings.DB_BUSY_TIMEOUT_SECONDS,
        )
    except MessageStoreError as e:
        store_error = str(e)
        logger.warning("Database initialization failed: %s", store_error)
        logger.warning("Read operations will be unavailable. Run health_check for details.")
    return MessagingTools(provider, store, store_error=store_error, settings=settings)


async def _dispatch(tools: MessagingTools, name: str, arguments: Dict[str, Any]) -> str:
    try:
        resp = await tools.call(name, arguments)
    except (ToolArgumentError, UnknownToolError) as e:
        raise ToolError(str(e)) from e
    if resp.is_error:
        raise ToolError(resp.text)
    return resp.text


def build_server(tools: MessagingTools) -> FastMCP:
    """Create and configure the FastMCP server instance."""
    mcp = FastMCP(name=tools.settings.SERVER_NAME, instructions=INSTRUCTIONS)

    @mcp.tool(name="send_message", description="Send an iMessage or SMS to a recipient using Apple's Messages app")
    async def send_message(recipient: str, message: str) -> str:
        return await _dispatch(tools, "send_message", {"recipient": recipient, "message": message})

    @mcp.tool(name="get_recent_messages", description="Fetch recent messages from the iMessage database")
    async def get_recent_messages(limit: Optional[int] = None) -> str:
        return await _dispatch(tools, "get_recent_messages", {"limit": limit})

    @mcp.tool(name="search_messages", description="Search for messages containing specific text")
    async def search_messages(query: str, limit: Optional[int] = None) -> str:
        return await _dispatch(tools, "search_messages", {"query": query, "limit": limit})

    @mcp.tool(name="get_contact_messages", description="Get message history with a specific contact")
    async def get_contact_messages(handle: str, limit: Optional[int] = None) -> str:
        return await _dispatch(tools, "get_contact_messages", {"handle": handle, "limit": limit})

    @mcp.tool(name="list_chats", description="List all active chat conversations")
    async def list_chats() -> str:
        return await _dispatch(tools, "list_chats", {})

    @mcp.tool(name="search_contacts", description="Search for contacts by phone number or email")
    async def search_contacts(query: str) -> str:
        return await _dispatch(tools, "search_contacts", {"query": query})

    @mcp.tool(name="get_attachment_path", description="Get the local file path for an attachment by its GUID")
    async def get_attachment_path(guid: str) -> str:
        return await _dispatch(tools, "get_attachment_path", {"guid": guid})

    @mcp.tool(
        name="health_check",
        description="Check the health status of the server including permissions and system requirements",
    )
    async def health_check() -> str:
        return await _dispatch(tools, "health_check", {})

    @mcp.resource(
        "imessage://recent",
        name="Recent iMessages",
        description="A real-time view of the most recent iMessages",
        mime_type="text/toon; charset=utf-8",
    )
    def recent_messages() -> str:
        return tools.recent_messages_resource()

    slog.info("server_built", tools=tools.tool_names, store_ready=tools.store is not None)
    return mcp


def run(settings: Settings | None = None) -> None:
    tools = build_tools(settings)
    server = build_server(tools)
    logger.info("iMessage MCP server running on stdio")
    try:
        server.run()
    finally:
        if tools.store is not None:
            tools.store.close()
