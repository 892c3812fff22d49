"""
Application layer: Use cases and request orchestration.

This layer coordinates between domain logic and infrastructure:
parameter resolution, the request lifecycle (cancel, supersede, watchdog),
response filtering and the per-request log record.
"""

from application.constants import FILTERED_REPLACE_MARKER
from application.lifecycle import RequestHandle, RequestState, Watchdog
from application.orchestrator import ChatOrchestrator, PresetRuleSource
from application.params import RequestOverrides, ResolvedParams, Tier, fit_to_limits, resolve_params

__all__ = [
    # Main entry point
    "ChatOrchestrator",
    "PresetRuleSource",
    "FILTERED_REPLACE_MARKER",
    # Parameter resolution
    "RequestOverrides",
    "ResolvedParams",
    "Tier",
    "resolve_params",
    "fit_to_limits",
    # Lifecycle
    "RequestState",
    "RequestHandle",
    "Watchdog",
]
