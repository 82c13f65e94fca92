"""Command-line interface for batch uploads to WeChat Official Accounts."""

from __future__ import annotations

import argparse
import os
import sys
import threading
from pathlib import Path
from typing import Callable, Mapping, Sequence

from ..ai import CoverImageOrchestrator, build_ai_client
from ..errors import AccountNotFoundError, AIError, ConfigError
from ..platforms import PublishingCapability
from ..platforms.wechat import WeChatPublisher
from ..settings import CliOverrides, ConfigResolver, RuntimeConfig
from ..utils.logging import configure_logging, get_logger
from .pipeline import PipelineHooks, UploadOrchestrator
from .results import BatchResult, DocumentOutcome

LOGGER = get_logger(__name__)

EXIT_OK = 0
EXIT_FAILURES = 1
EXIT_CONFIG = 2
EXIT_CANCELLED = 130

PublisherFactory = Callable[[RuntimeConfig, bool], PublishingCapability]


def _default_publisher(config: RuntimeConfig, refresh: bool) -> PublishingCapability:
    return WeChatPublisher.create(state_dir=config.state_dir, force_refresh=refresh)


def main(
    argv: Sequence[str] | None = None,
    *,
    env: Mapping[str, str] | None = None,
    build_publisher: PublisherFactory = _default_publisher,
) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    args.env = env if env is not None else os.environ
    args.build_publisher = build_publisher

    configure_logging(verbose=bool(getattr(args, "verbose", False)), structured=not args.log_plain)

    handler: Callable[[argparse.Namespace], int] | None = getattr(args, "handler", None)
    if handler is None:
        parser.print_help(sys.stderr)
        return EXIT_CONFIG
    try:
        return handler(args)
    except (ConfigError, AccountNotFoundError) as exc:
        LOGGER.error(
            "Configuration error",
            extra={"event": "cli.error", "command": args.command, "error": str(exc)},
        )
        print(f"error: {exc}", file=sys.stderr)
        return EXIT_CONFIG


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="wxpub", description="Publish Markdown documents to WeChat drafts")
    parser.add_argument("--config", help="Path to configuration file (TOML or YAML)", default=None)
    parser.add_argument(
        "--log-plain",
        action="store_true",
        help="Use plain-text logs instead of JSON",
    )

    subparsers = parser.add_subparsers(dest="command")

    _add_upload_command(subparsers)
    _add_accounts_command(subparsers)

    return parser


def _add_upload_command(subparsers: argparse._SubParsersAction[argparse.ArgumentParser]) -> None:
    upload_parser = subparsers.add_parser("upload", help="Upload a Markdown file or every draft in a directory")
    upload_parser.add_argument("path", type=Path, help="Markdown file or directory to scan")
    upload_parser.add_argument("--account", help="Account name from the config file", default=None)
    upload_parser.add_argument(
        "--ai-provider",
        dest="ai_provider",
        choices=("openai", "gemini"),
        default=None,
        help="AI provider used to generate missing covers",
    )
    upload_parser.add_argument(
        "--ai-api-key",
        dest="ai_api_key",
        help="API key override for the AI provider",
        default=None,
    )
    upload_parser.add_argument("--workers", type=int, default=None, help="Documents processed concurrently")
    upload_parser.add_argument(
        "--refresh",
        action="store_true",
        help="Fetch a new WeChat access token instead of the cached one",
    )
    upload_parser.add_argument("-v", "--verbose", action="store_true", default=None, help="Debug logging")
    upload_parser.set_defaults(handler=_handle_upload)


def _add_accounts_command(subparsers: argparse._SubParsersAction[argparse.ArgumentParser]) -> None:
    accounts_parser = subparsers.add_parser("accounts", help="List configured accounts")
    accounts_parser.set_defaults(handler=_handle_accounts)


def _overrides(args: argparse.Namespace) -> CliOverrides:
    return CliOverrides(
        config_path=args.config,
        account=getattr(args, "account", None),
        ai_provider=getattr(args, "ai_provider", None),
        ai_api_key=getattr(args, "ai_api_key", None),
        verbose=getattr(args, "verbose", None),
        workers=getattr(args, "workers", None),
    )


def _handle_upload(args: argparse.Namespace) -> int:
    resolver = ConfigResolver(_overrides(args), env=args.env)
    config = resolver.resolve()
    if config.verbose:
        configure_logging(verbose=True)

    target: Path = args.path.expanduser()
    if not target.exists():
        raise ConfigError(f"Path does not exist: {target}")

    try:
        ai_client = build_ai_client(config.ai)
    except AIError as exc:
        raise ConfigError("Failed to initialise AI provider", details={"reason": str(exc)}) from exc

    orchestrator = UploadOrchestrator(
        account=config.account,
        publisher=args.build_publisher(config, args.refresh),
        covers=CoverImageOrchestrator(ai_client),
        workers=config.workers,
        hooks=_progress_hooks(),
    )
    LOGGER.info(
        "Upload started",
        extra={
            "event": "cli.command",
            "command": "upload",
            "path": target,
            "account": config.account.name,
            "ai_provider": config.ai.name if config.ai else None,
        },
    )

    try:
        result = orchestrator.run(target)
    except KeyboardInterrupt:
        orchestrator.cancel()
        print("cancelled", file=sys.stderr)
        return EXIT_CANCELLED

    _print_report(result)
    return _exit_code(result)


def _handle_accounts(args: argparse.Namespace) -> int:
    resolver = ConfigResolver(_overrides(args), env=args.env)
    registry = resolver.build_registry()
    if not len(registry):
        print("<no accounts configured>")
        return EXIT_OK

    try:
        active = registry.resolve().name
    except AccountNotFoundError:
        active = None

    width = max(len(name) for name, _ in registry.list())
    for name, description in registry.list():
        marker = "*" if name == active else " "
        print(f"{marker} {name.ljust(width)}  {description or ''}".rstrip())
    return EXIT_OK


def _progress_hooks() -> PipelineHooks:
    """Echo each finished document to stderr while the batch runs."""
    lock = threading.Lock()

    def on_outcome(outcome: DocumentOutcome) -> None:
        with lock:
            print(outcome.describe(), file=sys.stderr, flush=True)

    return PipelineHooks(on_outcome=on_outcome)


def _print_report(result: BatchResult) -> None:
    print(result.render_report())


def _exit_code(result: BatchResult) -> int:
    if result.cancelled:
        return EXIT_CANCELLED
    if result.has_failures:
        return EXIT_FAILURES
    return EXIT_OK


__all__ = ["main", "EXIT_CANCELLED", "EXIT_CONFIG", "EXIT_FAILURES", "EXIT_OK"]
