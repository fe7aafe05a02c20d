#!/usr/bin/env python3
"""
Terminal chat client for the reflection assistant.

Runs the same ChatViewController the web front-end uses, on top of the local
document store.

Examples:
    uv run python scripts/cui_chat.py --user demo-user
    uv run python scripts/cui_chat.py --user demo-user --provider http --agent-url http://localhost:8080/post
    uv run python scripts/cui_chat.py --user demo-user --session-id <id>
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

# make the project root importable
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from src.chat_view import ChatViewController
from src.reflection_chat import AppContext, Config, setup_logger

HELP_TEXT = """Commands:
  /new            start a new chat
  /list           list chats
  /switch <id>    open a chat (id prefix is enough)
  /delete <id>    delete a chat
  /quit           exit"""


def parse_args():
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Reflection chat (terminal)",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=HELP_TEXT,
    )
    parser.add_argument("--user", type=str, default="demo-user", help="user id")
    parser.add_argument("--session-id", type=str, default=None, help="resume an existing chat")
    parser.add_argument("--provider", choices=["ollama", "http"], default=None, help="AI provider")
    parser.add_argument("--model", type=str, default=None, help="Ollama model name")
    parser.add_argument("--agent-url", type=str, default=None, help="agent endpoint for --provider http")
    parser.add_argument(
        "--log-level",
        type=str,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default="WARNING",
        help="log level (default: WARNING)",
    )
    return parser.parse_args()


def print_banner():
    print("=" * 60)
    print("Reflection chat")
    print("=" * 60)
    print(HELP_TEXT)
    print("=" * 60)
    print()


def print_sessions(controller: ChatViewController) -> None:
    if not controller.sessions:
        print("(no chats yet)")
        return
    for session in controller.sessions:
        marker = "*" if session.id == controller.active_session_id else " "
        print(f"{marker} {session.id[:8]}  {session.display_title:<32} {session.preview()}")


def resolve_session(controller: ChatViewController, prefix: str):
    matches = [s.id for s in controller.sessions if s.id.startswith(prefix)]
    return matches[0] if len(matches) == 1 else None


async def run(args) -> None:
    config = Config.from_yaml()
    if args.provider:
        config.ai.provider = args.provider
    if args.model:
        config.ollama.model = args.model
    if args.agent_url:
        config.ai.agent_url = args.agent_url

    context = AppContext.from_config(config)
    controller = ChatViewController(
        args.user,
        context.sessions,
        context.messages,
        context.responder,
        ai_max_retries=config.ai.max_retries,
        fallback_message=config.chat.fallback_message,
    )
    controller.start()
    if args.session_id:
        controller.switch_session(args.session_id)

    print_banner()
    try:
        while True:
            try:
                line = (await asyncio.to_thread(input, "You: ")).strip()
            except (EOFError, KeyboardInterrupt):
                print()
                break
            if not line:
                continue

            command, _, argument = line.partition(" ")
            if command in ("/quit", "/exit"):
                break
            if command == "/new":
                await controller.new_chat()
                print("Started a new chat.")
            elif command == "/list":
                print_sessions(controller)
            elif command in ("/switch", "/delete"):
                session_id = resolve_session(controller, argument.strip())
                if session_id is None:
                    print(f"No unique chat matches '{argument.strip()}'.")
                    continue
                if command == "/switch":
                    controller.switch_session(session_id)
                    await asyncio.sleep(0)
                    for message in controller.messages:
                        print(f"{message.role.value}: {message.content}")
                elif await controller.delete_chat(session_id):
                    print("Chat deleted.")
            else:
                await controller.submit_message(line)
                reply = next(
                    (m for m in reversed(controller.messages) if m.role.value == "assistant"),
                    None,
                )
                if reply is not None:
                    print(f"AI: {reply.content}")

            if controller.error:
                print(f"! {controller.error}")
    finally:
        controller.close()
        context.close()


def main():
    args = parse_args()
    setup_logger(log_level=args.log_level)
    logger = logging.getLogger(__name__)
    try:
        asyncio.run(run(args))
    except Exception as e:
        logger.exception(f"Fatal error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
