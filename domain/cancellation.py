"""Cooperative cancellation signal passed from the orchestrator to adapters."""

from domain.errors import CancelCause, RequestCancelledError


class CancelSignal:
    """One-shot cancellation flag.

    The first ``cancel()`` wins: its cause is kept and later calls are ignored.
    Adapters poll ``cancelled`` between chunks (or call ``raise_if_cancelled``);
    a read blocked inside the vendor call is interrupted by the owner cancelling
    the task that runs it.
    """

    def __init__(self) -> None:
        self._cause: CancelCause | None = None

    @property
    def cancelled(self) -> bool:
        return self._cause is not None

    @property
    def cause(self) -> CancelCause | None:
        return self._cause

    def cancel(self, cause: CancelCause = CancelCause.USER) -> bool:
        """Cancel the signal. Returns False if it was already cancelled."""
        if self._cause is not None:
            return False
        self._cause = cause
        return True

    def raise_if_cancelled(self) -> None:
        if self._cause is not None:
            raise RequestCancelledError(self._cause)
