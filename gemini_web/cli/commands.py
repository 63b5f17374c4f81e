"""
CLI Commands
============

ask, chat and gems, rendered with rich.
"""

import sys
from typing import Any

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from gemini_web.client import GeminiWebClient
from gemini_web.core.config import load_config
from gemini_web.core.exceptions import GeminiWebError
from gemini_web.core.logging import configure_logging, get_logger

console = Console()
logger = get_logger("cli")

EXIT_QUIT = {"exit", "quit", ":q"}


def print_error(error: GeminiWebError) -> None:
    console.print(f"[bold red]Error[/bold red] {escape(f'[{error.error_code}] {error.message}')}")
    for suggestion in error.suggestions:
        console.print(f"  [dim]- {escape(suggestion)}[/dim]")


def build_client(args: Any) -> GeminiWebClient:
    """Client from ``--config`` and ``GEMINI_WEB_*`` environment variables."""
    config = load_config(getattr(args, "config", None))
    configure_logging(
        level=getattr(args, "log_level", None) or config.log_level,
        json_format=config.log_format == "json",
        stream=sys.stderr,
    )
    return GeminiWebClient.from_config(config)


async def cmd_ask(args: Any) -> int:
    """Send one prompt and print the reply"""
    try:
        async with build_client(args) as client:
            if args.stream:
                async for chunk in client.generate_content_stream(
                    args.prompt, model=args.model, gem=args.gem
                ):
                    if chunk.thoughts_delta and args.thoughts:
                        console.print(
                            chunk.thoughts_delta, end="", style="dim italic", markup=False, highlight=False
                        )
                    console.print(chunk.text_delta, end="", markup=False, highlight=False)
                console.print()
            else:
                output = await client.generate_content(args.prompt, model=args.model, gem=args.gem)
                if output.thoughts and args.thoughts:
                    console.print(output.thoughts, style="dim italic", markup=False, highlight=False)
                console.print(output.text, markup=False, highlight=False)
                for image in output.images:
                    console.print(
                        f"[cyan]{escape(image.title or 'image')}[/cyan] {escape(image.url or '<inline>')}"
                    )
    except GeminiWebError as e:
        print_error(e)
        return 1
    return 0


async def cmd_chat(args: Any) -> int:
    """Interactive multi-turn chat"""
    try:
        async with build_client(args) as client:
            chat = client.start_chat(model=args.model, gem=args.gem)
            console.print("[bold green]gemini-web chat[/bold green] (type 'exit' to quit)")
            while True:
                try:
                    prompt = console.input("[bold blue]> [/bold blue]").strip()
                except EOFError:
                    break
                if not prompt:
                    continue
                if prompt.lower() in EXIT_QUIT:
                    break

                try:
                    async for chunk in chat.send_message_stream(prompt):
                        console.print(chunk.text_delta, end="", markup=False, highlight=False)
                    console.print()
                except GeminiWebError as e:
                    if not e.recoverable:
                        raise
                    print_error(e)
            logger.debug("Chat ended: %r", chat)
    except GeminiWebError as e:
        print_error(e)
        return 1
    return 0


async def cmd_gems(args: Any) -> int:
    """List gems"""
    try:
        async with build_client(args) as client:
            jar = await client.fetch_gems(include_hidden=args.hidden)
            if args.predefined:
                jar = jar.filter(predefined=True)
            elif args.custom:
                jar = jar.filter(predefined=False)

            table = Table(title=f"Gems ({len(jar)})")
            table.add_column("ID", style="cyan")
            table.add_column("Name", style="bold")
            table.add_column("Type")
            table.add_column("Description")
            for gem in jar:
                table.add_row(
                    gem.id, gem.name, "predefined" if gem.is_predefined else "custom", gem.description
                )
            console.print(table)
    except GeminiWebError as e:
        print_error(e)
        return 1
    return 0


__all__ = ["cmd_ask", "cmd_chat", "cmd_gems", "build_client", "print_error"]
