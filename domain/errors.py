"""Error taxonomy shared by adapters, the orchestrator and the filtering engine."""

from enum import Enum


class CancelCause(str, Enum):
    """Why a request was cancelled. Only logged; callers see one error category."""

    USER = "user"
    TIMEOUT = "timeout"
    SUPERSEDED = "superseded"


class ChatCoreError(Exception):
    """Base class for every error raised by this package."""


class ConfigInvalidError(ChatCoreError, ValueError):
    """Adapter configuration failed eager validation."""

    def __init__(self, reason: str, *, provider: str | None = None) -> None:
        self.reason = reason
        self.provider = provider
        label = f"Invalid {provider} config" if provider else "Invalid config"
        super().__init__(f"{label}: {reason}")


class UnknownProviderError(ChatCoreError, LookupError):
    """No adapter factory is registered for the requested provider id."""

    def __init__(self, provider: str) -> None:
        self.provider = provider
        super().__init__(f"Unknown AI provider: {provider}")


class EmptyConversationError(ChatCoreError, ValueError):
    """Every message was empty or whitespace-only after normalization."""

    def __init__(self) -> None:
        super().__init__("No non-empty messages to send")


class NotConfiguredError(ChatCoreError):
    """No usable adapter exists (missing credential or failed construction)."""

    def __init__(self, message: str = "AI provider is not configured. Please set your API key in settings.") -> None:
        super().__init__(message)


class VendorError(ChatCoreError, RuntimeError):
    """Transport or vendor API failure, wrapped with the original message preserved."""

    def __init__(self, provider: str, message: str) -> None:
        self.provider = provider
        self.original_message = message
        super().__init__(f"{provider} API Error: {message}")


class RequestCancelledError(ChatCoreError):
    """The request was cancelled by the user, the watchdog, or a newer request."""

    def __init__(self, cause: CancelCause = CancelCause.USER) -> None:
        self.cause = cause
        super().__init__("Request cancelled by user")


class FilterStageError(ChatCoreError):
    """A filter middleware is misconfigured or failed."""

    def __init__(self, stage: str, message: str) -> None:
        self.stage = stage
        super().__init__(f'Filter stage "{stage}": {message}')


class AsyncStageInSyncPipelineError(FilterStageError):
    """A stage returned an awaitable while the pipeline ran in synchronous mode."""

    def __init__(self, stage: str) -> None:
        super().__init__(stage, "cannot use async middleware in sync pipeline")
