from __future__ import annotations
from typing import Sequence

from .base import MessagingProvider, SendRequest, SendResult, failed
from imessage_mcp.logging import slog, log_provider_skipped

GENERIC_RECOMMENDATION = "Ensure Messages.app is running and permissions are granted."


class FallbackProvider:
    """Tries providers in construction order until one delivers.

    Unavailable providers are skipped without counting as failures. A provider that
    raises is recorded like any other failure so it cannot abort the chain.
    """

    name = "fallback-manager"

    def __init__(self, providers: Sequence[MessagingProvider]):
        self._providers: tuple[MessagingProvider, ...] = tuple(providers)

    @property
    def providers(self) -> tuple[MessagingProvider, ...]:
        return self._providers

    async def is_available(self) -> bool:
        for provider in self._providers:
            try:
                if await provider.is_available():
                    return True
            except Exception as e:
                slog.warning("provider_probe_error", provider=provider.name, error=str(e))
        return False

    async def send_message(self, request: SendRequest) -> SendResult:
        errors: list[str] = []
        last_recommendation: str | None = None

        for provider in self._providers:
            try:
                if not await provider.is_available():
                    log_provider_skipped(provider.name, "unavailable")
                    continue

                slog.info("provider_attempt", provider=provider.name)
                result = await provider.send_message(request)
                if result.success:
                    slog.info("provider_succeeded", provider=provider.name, message_id=result.message_id)
                    return result

                slog.warning("provider_failed", provider=provider.name, error=result.error, error_code=result.error_code)
                errors.append(f"{provider.name}: {result.error or 'Unknown error'}")
                if result.recommendation:
                    last_recommendation = result.recommendation
            except Exception as e:
                detail = str(e) or e.__class__.__name__
                slog.error("provider_unexpected_error", provider=provider.name, error=detail, exc_info=True)
                errors.append(f"{provider.name}: {detail}")

        return failed(
            f"All providers failed: {'; '.join(errors)}",
            recommendation=last_recommendation or GENERIC_RECOMMENDATION,
        )


__all__ = ['FallbackProvider', 'GENERIC_RECOMMENDATION']
