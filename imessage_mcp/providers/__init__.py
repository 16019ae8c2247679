from .base import SendRequest, SendResult, MessagingProvider, sent, failed
from .recipients import normalize_recipient
from .retry import RetryPolicy, send_with_retry
from .applescript import AppleScriptProvider
from .native import NativeProvider
from .fallback import FallbackProvider
from .factory import get_messaging_provider

__all__ = [
    'SendRequest','SendResult','MessagingProvider','sent','failed',
    'normalize_recipient',
    'RetryPolicy','send_with_retry',
    'AppleScriptProvider','NativeProvider','FallbackProvider',
    'get_messaging_provider',
]
