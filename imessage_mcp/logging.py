"""Centralized logging utilities wrapping structlog configuration and reusable event helpers.

Everything is written to stderr: stdout is owned by the stdio tool protocol and any
stray byte there corrupts the client's stream.

Import order safety: This file should have no side-effects that depend on providers,
the message store or the server instance. Only logging config and helpers.
"""
from __future__ import annotations

import logging
import contextvars
import sys
import structlog
from typing import Any

from imessage_mcp.core.settings import get_settings

# -------------------------
# ContextVars for call-scoped data
# -------------------------
_provider_var = contextvars.ContextVar("provider", default=None)
_tool_var = contextvars.ContextVar("tool", default=None)

# -------------------------
# Processor helper to merge our ContextVars (merge_contextvars only handles ones bound via bind_contextvars)
# -------------------------

def _add_context(logger, method_name: str, event_dict: dict[str, Any]):  # noqa: D401
    prov = _provider_var.get()
    if prov and "provider" not in event_dict:
        event_dict["provider"] = prov
    tool = _tool_var.get()
    if tool:
        event_dict["tool"] = tool
    return event_dict

# -------------------------
# One-time structlog configuration (idempotent)
# -------------------------
_level = logging.getLevelName(get_settings().LOG_LEVEL.upper())
if not isinstance(_level, int):
    _level = logging.INFO

if not getattr(structlog, "_IMESSAGE_MCP_CONFIGURED", False):
    logging_logger = logging.getLogger("imessage_mcp")
    logging_logger.setLevel(_level)
    if not logging_logger.handlers:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter("%(asctime)s %(name)s %(levelname)s %(message)s"))
        logging_logger.addHandler(handler)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            _add_context,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.dict_tracebacks,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(_level),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )
    structlog._IMESSAGE_MCP_CONFIGURED = True  # type: ignore[attr-defined]

slog = structlog.get_logger()

# -------------------------
# Public helper functions
# -------------------------

def set_log_provider(provider: str | None):
    return _provider_var.set(provider)

def reset_log_provider(token) -> None:
    _provider_var.reset(token)

def set_log_tool(tool: str | None):
    return _tool_var.set(tool)

# Event helpers reused across modules

def log_send_attempt(provider: str, attempt: int, **extra):
    slog.info("send_attempt", provider=provider, attempt=attempt, **extra)

def log_send_retry(provider: str, attempt: int, delay_seconds: float, **extra):
    slog.warning("send_retry_scheduled", provider=provider, attempt=attempt, delay_seconds=delay_seconds, **extra)

def log_send_outcome(provider: str, success: bool, error: str | None = None, error_code: str | None = None, **extra):
    if success:
        slog.info("send_outcome", provider=provider, success=True, **extra)
    else:
        slog.warning("send_outcome", provider=provider, success=False, error=error, error_code=error_code, **extra)

def log_provider_skipped(provider: str, reason: str, **extra):
    slog.info("provider_skipped", provider=provider, reason=reason, **extra)

def log_app_launch(app: str, success: bool, detail: str | None = None, **extra):
    if success:
        slog.info("app_launch", app=app, success=True, **extra)
    else:
        slog.warning("app_launch", app=app, success=False, detail=detail, **extra)
