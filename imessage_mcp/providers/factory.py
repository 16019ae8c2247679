from __future__ import annotations
from typing import Callable, Dict

from .applescript import AppleScriptProvider
from .base import MessagingProvider
from .fallback import FallbackProvider
from .native import NativeProvider
from .retry import RetryPolicy
from imessage_mcp.core.settings import Settings, get_settings


def _applescript(settings: Settings) -> MessagingProvider:
    return AppleScriptProvider(
        app_name=settings.MESSAGES_APP_NAME,
        retry_policy=RetryPolicy(
            max_retries=settings.SEND_MAX_RETRIES,
            initial_delay=settings.SEND_INITIAL_BACKOFF_SECONDS,
        ),
        launch_delay=settings.APP_LAUNCH_DELAY_SECONDS,
        lenient_success=settings.LENIENT_SEND_RESULT,
        osascript=settings.OSASCRIPT_PATH,
    )


def _native(settings: Settings) -> MessagingProvider:
    return NativeProvider()


PROVIDER_BUILDERS: Dict[str, Callable[[Settings], MessagingProvider]] = {
    NativeProvider.name: _native,
    AppleScriptProvider.name: _applescript,
}


def get_messaging_provider(settings: Settings | None = None) -> FallbackProvider:
    """
    Build the fallback chain from MESSAGING_PROVIDERS (in order).

    Raises:
        ValueError: If a configured provider name is unknown or the list is empty.
    """
    settings = settings or get_settings()
    providers = []
    for raw in settings.MESSAGING_PROVIDERS:
        key = raw.strip().lower()
        builder = PROVIDER_BUILDERS.get(key)
        if builder is None:
            raise ValueError(f"Unsupported messaging provider: {raw}")
        providers.append(builder(settings))
    if not providers:
        raise ValueError("MESSAGING_PROVIDERS must name at least one provider")
    return FallbackProvider(providers)
