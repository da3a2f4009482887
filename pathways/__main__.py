"""
Pathways CLI entry point.

Provides a command-line interface for chatting with a conversation and
inspecting or deleting its history.
"""

import argparse
import asyncio
import sys
from pathlib import Path

from pathways import __version__
from pathways.config.logging import get_logger, setup_logging
from pathways.config.settings import Settings, load_settings
from pathways.context import AppContext
from pathways.history.models import Message, MessageUser, Role


def create_parser() -> argparse.ArgumentParser:
    """Create and configure argument parser."""
    parser = argparse.ArgumentParser(
        prog="pathways",
        description="Conversation orchestration engine for LLM backends",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"Pathways {__version__}",
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

    chat_parser = subparsers.add_parser(
        "chat",
        help="Send one message to a conversation and print the answer",
    )
    chat_parser.add_argument("conversation", help="Conversation id")
    chat_parser.add_argument("message", help='Message text, e.g. "What\'s the weather in Paris?"')
    chat_parser.add_argument(
        "--user",
        default="User",
        help="Display name of the author (default: User)",
    )
    chat_parser.add_argument(
        "--pronouns",
        default="unknown",
        help="Pronouns of the author (default: unknown)",
    )

    history_parser = subparsers.add_parser(
        "history",
        help="Print the stored messages of a conversation",
    )
    history_parser.add_argument("conversation", help="Conversation id")

    clear_parser = subparsers.add_parser(
        "clear",
        help="Delete every message of a conversation",
    )
    clear_parser.add_argument("conversation", help="Conversation id")

    return parser


def _mask(secret: str) -> str:
    return "Set" if secret else "Not set"


def cmd_config(settings: Settings) -> int:
    """Show current configuration."""
    logger = get_logger(__name__)

    logger.info("\n=== Pathways Configuration ===\n")
    logger.info(f"Environment: {settings.environment}")
    logger.info(f"Log Level: {settings.log_level}")
    logger.info(f"Log File: {settings.log_file or 'None (console only)'}")
    logger.info(f"\nPrimary Model: {settings.llm.provider}/{settings.llm.model}")
    logger.info(
        "Online Model: "
        f"{settings.llm.online_provider or settings.llm.provider}/"
        f"{settings.llm.online_model or settings.llm.model}"
    )
    logger.info(f"Caller Model: {settings.llm.caller_provider}/{settings.llm.caller_model}")
    logger.info(f"Timeout: {settings.llm.timeout_seconds or 'none'}")
    logger.info(f"\nOpenAI API Key: {_mask(settings.providers.openai_api_key)}")
    logger.info(f"OpenRouter API Key: {_mask(settings.providers.openrouter_api_key)}")
    logger.info(f"Ollama Base URL: {settings.providers.ollama_base_url}")
    logger.info(f"\nHistory Backend: {settings.store.backend}")
    if settings.store.backend == "file":
        logger.info(f"History Path: {settings.store.path}")
    logger.info(f"Serialize Turns: {settings.session.serialize_turns}")

    return 0


async def cmd_chat(args, settings: Settings) -> int:
    """Run one turn and print the answer, tool results and token usage."""
    logger = get_logger(__name__)

    try:
        async with AppContext.from_settings(settings) as app:
            session = app.create_session(args.conversation)
            message = Message(
                role=Role.USER,
                content=args.message,
                user=MessageUser(name=args.user, pronouns=args.pronouns),
            )
            answer = await session.send(message)
    except Exception as e:
        logger.error(f"Chat failed: {e}", exc_info=True)
        return 1

    print(answer.content)

    if answer.task_results:
        print("\n--- Integrations ---")
        for result in answer.task_results:
            print(f"  {result.integration.name} [{result.status.value}] {result.integration.passed_arguments}")

    if answer.usage_metadata:
        usage = answer.usage_metadata
        print(f"\nTokens: {usage.total_tokens} "
              f"(input {usage.input_tokens} + output {usage.output_tokens})")

    if answer.degraded:
        print(f"\nDegraded answer: {answer.cause}", file=sys.stderr)
        return 1
    return 0


async def cmd_history(args, settings: Settings) -> int:
    """Print the stored messages of a conversation, oldest first."""
    logger = get_logger(__name__)

    try:
        async with AppContext.from_settings(settings) as app:
            messages = await app.history(args.conversation).get_all()
    except Exception as e:
        logger.error(f"Reading history failed: {e}", exc_info=True)
        return 1

    if not messages:
        print(f"No messages in conversation {args.conversation!r}.")
        return 0

    for message in messages:
        author = message.user.display_name if message.role == Role.USER else message.role.value
        print(f"[{message.timestamp}] {author}: {message.content}")
    return 0


async def cmd_clear(args, settings: Settings) -> int:
    """Delete every message of a conversation."""
    logger = get_logger(__name__)

    try:
        async with AppContext.from_settings(settings) as app:
            await app.history(args.conversation).clear()
    except Exception as e:
        logger.error(f"Clearing history failed: {e}", exc_info=True)
        return 1

    print(f"Cleared conversation {args.conversation!r}.")
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
    elif args.command == "chat":
        return asyncio.run(cmd_chat(args, settings))
    elif args.command == "history":
        return asyncio.run(cmd_history(args, settings))
    elif args.command == "clear":
        return asyncio.run(cmd_clear(args, settings))
    else:
        parser.print_help()
        return 0


if __name__ == "__main__":
    sys.exit(main())
