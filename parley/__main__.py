"""
Parley CLI entry point.

Provides a command-line interface for one-shot questions and for inspecting
configuration and provider profiles.
"""

import argparse
import asyncio
import sys
from pathlib import Path

from parley import __version__
from parley.config.logging import get_logger, setup_logging
from parley.config.settings import Settings, load_settings


def create_parser() -> argparse.ArgumentParser:
    """Create and configure argument parser."""
    parser = argparse.ArgumentParser(
        prog="parley",
        description="Conversation orchestration for remote LLM completion APIs",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"parley {__version__}",
    )

    parser.add_argument(
        "--env-file",
        type=Path,
        default=None,
        help="Path to .env file (default: .env in current directory)",
    )

    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default=None,
        help="Override logging level from config",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    subparsers.add_parser(
        "config",
        help="Show current configuration",
    )

    subparsers.add_parser(
        "providers",
        help="List built-in provider profiles",
    )

    ask_parser = subparsers.add_parser(
        "ask",
        help="Ask a single question and print the answer",
    )
    ask_parser.add_argument(
        "question",
        help='Question to ask, e.g. "What is a monad?"',
    )
    ask_parser.add_argument(
        "--provider",
        default=None,
        help="Provider id (default: LLM__PROVIDER from config)",
    )
    ask_parser.add_argument(
        "--model",
        default=None,
        help="Model name (default: config model, else the provider default)",
    )
    ask_parser.add_argument(
        "--temperature",
        type=float,
        default=None,
        help="Sampling temperature, 0.0-2.0",
    )
    ask_parser.add_argument(
        "--max-tokens",
        type=int,
        default=None,
        help="Maximum tokens in the response",
    )
    ask_parser.add_argument(
        "--system",
        default=None,
        help="System prompt for this question",
    )
    ask_parser.add_argument(
        "--stream",
        action="store_true",
        help="Print the answer as it streams in",
    )
    ask_parser.add_argument(
        "--debug",
        action="store_true",
        help="Log diagnostic events (requests, responses, retries)",
    )

    return parser


def cmd_config(settings: Settings) -> int:
    """Show current configuration."""
    logger = get_logger(__name__)

    logger.info("\n=== Parley Configuration ===\n")
    logger.info(f"Environment: {settings.environment}")
    logger.info(f"Log Level: {settings.log_level}")
    logger.info(f"Log File: {settings.log_file or 'None (console only)'}")
    logger.info(f"\nProvider: {settings.llm.provider}")
    logger.info(f"Model: {settings.llm.model or '(provider default)'}")
    logger.info(f"Temperature: {settings.llm.temperature}")
    logger.info(f"Max Tokens: {settings.llm.max_tokens}")
    logger.info(f"Timeout: {settings.llm.timeout_ms}ms")
    logger.info(f"Retry Attempts: {settings.llm.retry_attempts}")
    logger.info(f"Debug: {settings.llm.debug}")
    logger.info(f"API Key: {'Set' if settings.llm.api_key else 'Not set'}")

    return 0


def cmd_providers() -> int:
    """List the built-in provider profiles."""
    from parley.providers import ProviderRegistry

    registry = ProviderRegistry.with_defaults()
    print("\n=== Providers ===")
    for provider_id, profile in sorted(registry.list_all().items()):
        print(f"  {provider_id:<12} {profile.display_name:<12} {profile.default_model}")
        print(f"  {'':<12} {profile.base_endpoint}")
    return 0


async def cmd_ask(args, settings: Settings) -> int:
    """
    Send a single question and print the answer.

    Flags override the corresponding LLM settings for this run only.
    """
    logger = get_logger(__name__)

    from parley.errors import ParleyError
    from parley.llm import ChatOrchestrator

    overrides = {
        "provider": args.provider,
        "model": args.model,
        "temperature": args.temperature,
        "max_tokens": args.max_tokens,
        "system_prompt": args.system,
        "debug": True if args.debug else None,
    }
    llm_settings = settings.llm.model_copy(
        update={k: v for k, v in overrides.items() if v is not None}
    )

    try:
        chat = ChatOrchestrator.from_settings(llm_settings)
        chat.add_user_message(args.question)

        logger.info(f"Sending to {chat.provider.display_name}...")

        if args.stream:
            def print_chunk(fragment: str):
                print(fragment, end="", flush=True)

            await chat.stream(print_chunk)
            print()
            return 0

        response = await chat.send()
    except ParleyError as e:
        print(f"\nError: {e}", file=sys.stderr)
        return 1

    print(response.content)
    print(f"\nTokens: {response.usage.total_tokens} "
          f"(prompt {response.usage.prompt_tokens} "
          f"+ completion {response.usage.completion_tokens})  model: {response.model}")
    return 0


def main() -> int:
    """Main entry point."""
    parser = create_parser()
    args = parser.parse_args()

    # Load settings
    try:
        settings = load_settings(env_file=args.env_file)
    except Exception as e:
        print(f"Error loading settings: {e}", file=sys.stderr)
        return 1

    # Override log level if specified
    if args.log_level:
        settings.log_level = args.log_level

    setup_logging(settings)

    if args.command == "config":
        return cmd_config(settings)
    elif args.command == "providers":
        return cmd_providers()
    elif args.command == "ask":
        return asyncio.run(cmd_ask(args, settings))
    else:
        parser.print_help()
        return 0


if __name__ == "__main__":
    sys.exit(main())
