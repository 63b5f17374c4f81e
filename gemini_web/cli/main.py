# CLI Main
import argparse
import asyncio
import sys

from gemini_web import __version__
from gemini_web.cli.commands import cmd_ask, cmd_chat, cmd_gems
from gemini_web.protocol.constants import Model

MODEL_CHOICES = [m.model_name for m in Model]


def create_parser() -> argparse.ArgumentParser:
    """Create argument parser"""
    parser = argparse.ArgumentParser(
        prog="gemini-web",
        description="gemini-web - chat with gemini.google.com from the terminal",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--config", "-c", help="YAML or JSON configuration file")
    parser.add_argument("--log-level", help="Override the configured log level")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # Ask command
    ask_p = subparsers.add_parser("ask", help="Send a single prompt")
    ask_p.add_argument("prompt", help="Prompt to send")
    ask_p.add_argument("--model", "-m", default="unspecified", choices=MODEL_CHOICES)
    ask_p.add_argument("--gem", "-g", help="Gem id to use as system prompt")
    ask_p.add_argument("--stream", "-s", action="store_true", help="Stream the reply")
    ask_p.add_argument("--thoughts", action="store_true", help="Show model thoughts")

    # Chat command
    chat_p = subparsers.add_parser("chat", help="Interactive chat")
    chat_p.add_argument("--model", "-m", default="unspecified", choices=MODEL_CHOICES)
    chat_p.add_argument("--gem", "-g", help="Gem id to use as system prompt")

    # Gems command
    gems_p = subparsers.add_parser("gems", help="List gems")
    gems_p.add_argument("--hidden", action="store_true", help="Include hidden system gems")
    kind = gems_p.add_mutually_exclusive_group()
    kind.add_argument("--predefined", action="store_true", help="Only predefined gems")
    kind.add_argument("--custom", action="store_true", help="Only custom gems")

    return parser


def main(argv: list[str] | None = None) -> None:
    """Main entry point"""
    parser = create_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        sys.exit(0)

    if args.command == "ask":
        code = asyncio.run(cmd_ask(args))
    elif args.command == "chat":
        code = asyncio.run(cmd_chat(args))
    elif args.command == "gems":
        code = asyncio.run(cmd_gems(args))
    else:
        parser.print_help()
        code = 2
    sys.exit(code)


if __name__ == "__main__":
    main()
