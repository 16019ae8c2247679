import pytest
from fastmcp import FastMCP
from fastmcp.exceptions import ToolError

from imessage_mcp.core.settings import Settings, get_settings
from imessage_mcp.main import _dispatch, build_server, build_tools


def test_missing_database_is_not_fatal(settings):
    tools = build_tools(settings)
    assert tools.store is None
    assert tools.store_error
    assert [p.name for p in tools.provider.providers] == ["native-imcore", "applescript"]


def test_server_is_built(chat_db):
    tools = build_tools(Settings(CHAT_DB_PATH=chat_db, SERVER_NAME="test-imessage"))
    try:
        server = build_server(tools)
        assert isinstance(server, FastMCP)
        assert server.name == "test-imessage"
        assert len(tools.tool_names) == 8
    finally:
        tools.store.close()


@pytest.mark.asyncio
async def test_dispatch_translates_failures_to_tool_errors(settings):
    tools = build_tools(settings)
    with pytest.raises(ToolError, match="Unknown tool"):
        await _dispatch(tools, "nope", {})
    with pytest.raises(ToolError, match="Invalid arguments"):
        await _dispatch(tools, "send_message", {})
    with pytest.raises(ToolError, match="Database unavailable"):
        await _dispatch(tools, "list_chats", {})
    # the store check runs before argument validation
    with pytest.raises(ToolError, match="Database unavailable"):
        await _dispatch(tools, "search_messages", {})


def test_settings_from_environment(monkeypatch):
    monkeypatch.setenv("send_max_retries", "5")
    monkeypatch.setenv("CHAT_DB_PATH", "/tmp/chat.db")
    s = Settings()
    assert s.SEND_MAX_RETRIES == 5
    assert s.effective_chat_db_path == "/tmp/chat.db"
    monkeypatch.delenv("CHAT_DB_PATH")
    assert Settings().effective_chat_db_path.endswith("Library/Messages/chat.db")


def test_get_settings_is_cached():
    get_settings.cache_clear()
    assert get_settings() is get_settings()
