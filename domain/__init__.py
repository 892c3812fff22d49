"""
Domain layer: Business logic with no I/O.

Contains:
- schemas: ChatMessage model and message normalization
- errors: error taxonomy shared across layers
- cancellation: cooperative cancel signal
- filtering: regex filter, middleware pipeline and built-in stages
"""

from domain.cancellation import CancelSignal
from domain.errors import (
    CancelCause,
    ChatCoreError,
    ConfigInvalidError,
    EmptyConversationError,
    NotConfiguredError,
    RequestCancelledError,
    UnknownProviderError,
    VendorError,
)
from domain.schemas import ChatMessage

__all__ = [
    "ChatMessage",
    "CancelSignal",
    "CancelCause",
    "ChatCoreError",
    "ConfigInvalidError",
    "EmptyConversationError",
    "UnknownProviderError",
    "NotConfiguredError",
    "VendorError",
    "RequestCancelledError",
]
