"""
CLI entrypoint for the chat core.

This script performs the following steps:
- loads .env and configs/settings.yaml
- configures logging (and Opik tracing when enabled in settings)
- builds the provider registry and the orchestrator
- streams one reply to stdout, honouring the filtered-replace marker
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from dotenv import load_dotenv

from application import FILTERED_REPLACE_MARKER, ChatOrchestrator, RequestOverrides
from domain import ChatMessage
from domain.filtering import CodeBlockNormalizerMiddleware, MarkdownLinkFixerMiddleware, WhitespaceTrimmerMiddleware
from infrastructure.config import ChatSettings, ProviderSettings, load_settings
from infrastructure.constants import LOG_FILE, REQUEST_LOG_FILE, SETTINGS_FILE
from infrastructure.observability import LoggingRequestLogWriter, configure_logging
from infrastructure.observability.tracing import configure_tracing
from infrastructure.providers import ProviderRegistry, build_default_registry

logger = logging.getLogger(__name__)

LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Send a chat request through the configured AI provider")
    p.add_argument(
        "--settings",
        type=str,
        default=str(SETTINGS_FILE),
        help="Path to settings.yaml (default: configs/settings.yaml)",
    )
    p.add_argument(
        "--env",
        type=str,
        default=".env",
        help="Path to .env file (default: .env; skipped when missing)",
    )
    p.add_argument("--prompt", type=str, help="User message to send (default: read stdin)")
    p.add_argument("--feature", type=str, default="Chat", help="Feature tag for logs and filtering")
    p.add_argument("--preset", type=str, default=None, help="Preset id passed to the filter pipeline")
    p.add_argument("--model", type=str, default=None, help="Per-request model override")
    p.add_argument("--max-tokens", type=int, default=None, help="Per-request max_tokens override")
    p.add_argument("--temperature", type=float, default=None, help="Per-request temperature override")
    p.add_argument(
        "--mock",
        action="store_true",
        help="Use the Mock provider instead of calling a real vendor.",
    )
    p.add_argument(
        "--list-providers",
        action="store_true",
        help="Print registered providers and their models, then exit.",
    )
    p.add_argument(
        "--log-file",
        type=str,
        default=str(LOG_FILE),
        help="Log file path (default: logs/chat-core.log)",
    )
    p.add_argument(
        "--request-log-file",
        type=str,
        default=str(REQUEST_LOG_FILE),
        help="JSON-lines file for request log records (default: logs/requests.jsonl)",
    )
    p.add_argument("--console-level", type=str, default="WARNING", choices=LEVELS, help="Console log level")
    p.add_argument("--file-level", type=str, default="DEBUG", choices=LEVELS, help="File log level")
    return p.parse_args(argv)


def _with_mock_provider(settings: ChatSettings) -> ChatSettings:
    providers = dict(settings.providers)
    providers["mock"] = ProviderSettings(api_key="mock-key")
    return settings.model_copy(update={"active_provider": "mock", "providers": providers})


def _print_providers(registry: ProviderRegistry, active_provider: str) -> None:
    for descriptor in registry.descriptors():
        marker = "*" if descriptor.id == active_provider else " "
        print(f"{marker} {descriptor.id:<10} {descriptor.display_name:<22} default={descriptor.default_model}")
        for model in descriptor.models:
            print(f"      - {model}")


async def _run_prompt(orchestrator: ChatOrchestrator, args: argparse.Namespace, prompt: str) -> int:
    failures: list[Exception] = []

    def on_message(chunk: str) -> None:
        if chunk.startswith(FILTERED_REPLACE_MARKER):
            sys.stdout.write("\n\n--- filtered reply ---\n")
            sys.stdout.write(chunk[len(FILTERED_REPLACE_MARKER) :])
        else:
            sys.stdout.write(chunk)
        sys.stdout.flush()

    def on_error(error: Exception) -> None:
        failures.append(error)
        print(f"\nError: {error}", file=sys.stderr)

    def on_complete() -> None:
        sys.stdout.write("\n")
        sys.stdout.flush()

    overrides = RequestOverrides(
        model=args.model,
        max_tokens=args.max_tokens,
        temperature=args.temperature,
    )
    try:
        await orchestrator.send_message(
            [ChatMessage(role="user", content=prompt)],
            on_message=on_message,
            on_error=on_error,
            on_complete=on_complete,
            feature=args.feature,
            preset_id=args.preset,
            overrides=overrides,
        )
    finally:
        await orchestrator.aclose()
    return 1 if failures else 0


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)

    env_file = Path(args.env)
    if env_file.exists():
        load_dotenv(env_file, override=True)

    configure_logging(
        log_file=Path(args.log_file),
        request_log_file=Path(args.request_log_file),
        console_level=getattr(logging, args.console_level),
        file_level=getattr(logging, args.file_level),
    )

    settings_path = Path(args.settings)
    settings = load_settings(settings_path) if settings_path.exists() else ChatSettings()
    if not settings_path.exists():
        logger.warning("Settings file %s not found; using defaults", settings_path)
    if args.mock:
        settings = _with_mock_provider(settings)

    if settings.tracing_enabled:
        configure_tracing()

    registry = build_default_registry(include_mock=args.mock)
    orchestrator = ChatOrchestrator(
        settings,
        registry,
        request_log=LoggingRequestLogWriter(),
        filter_stages=[
            CodeBlockNormalizerMiddleware(),
            MarkdownLinkFixerMiddleware(),
            WhitespaceTrimmerMiddleware(),
        ],
    )

    if args.list_providers:
        _print_providers(registry, orchestrator.active_provider)
        return 0

    if not orchestrator.is_configured():
        print(
            f"Provider '{orchestrator.active_provider}' is not configured. "
            f"Set its api_key in {settings_path} or the environment.",
            file=sys.stderr,
        )
        return 2

    prompt = args.prompt if args.prompt is not None else sys.stdin.read()
    logger.info("Sending prompt via %s (%d chars)", orchestrator.provider_name, len(prompt))
    return asyncio.run(_run_prompt(orchestrator, args, prompt))


if __name__ == "__main__":
    sys.exit(main())
