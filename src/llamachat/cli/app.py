"""Main CLI application using Typer."""
import asyncio
import json
from pathlib import Path

import typer
from dotenv import load_dotenv
from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.table import Table

from ..attachments import format_file_size
from ..conversation import Message
from ..errors import LlamaChatError
from ..session import ChatSession
from .providers import get_session, setup_logging

# Load environment variables
load_dotenv()

# Create Typer app
app = typer.Typer(
    name="llamachat",
    help="Chat with local and hosted LLMs, with durable chat history",
    no_args_is_help=True,
    add_completion=True,
)
history_app = typer.Typer(help="Browse and manage saved chats", no_args_is_help=True)
config_app = typer.Typer(help="Show and change settings", no_args_is_help=True)
app.add_typer(history_app, name="history")
app.add_typer(config_app, name="config")

# Console for rich output
console = Console()

EXIT_WORDS = ("exit", "quit", "q")


class _Options:
    home: Path | None = None
    backend: str | None = None


options = _Options()


@app.callback()
def main_options(
    home: Path | None = typer.Option(
        None,
        "--home",
        help="Data directory (default: $LLAMACHAT_HOME or ~/.llamachat)"
    ),
    backend: str | None = typer.Option(
        None,
        "--backend",
        "-b",
        help="Chat store backend: file or sqlite"
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable debug logging"
    ),
):
    """Global options."""
    options.home = home
    options.backend = backend
    setup_logging(verbose, console)


def _fail(error: Exception) -> None:
    console.print(f"[red]Error: {error}[/red]")
    raise typer.Exit(code=1)


async def _send_and_render(session: ChatSession, text: str, attach: Path | None) -> Message:
    attachment = await session.attach_file(attach) if attach else None
    streamed = False

    def on_chunk(chunk: str) -> None:
        nonlocal streamed
        if not streamed:
            console.print("[bold green]Assistant:[/bold green] ", end="")
            streamed = True
        console.print(chunk, end="", markup=False, highlight=False)

    message = await session.send(text, attachment=attachment, on_chunk=on_chunk)
    if streamed:
        console.print()
        if not session.is_stored(message):
            # The stream broke off; the partial text above is not the answer
            console.print(message.content, style="red", markup=False)
    else:
        console.print("[bold green]Assistant:[/bold green]")
        console.print(Markdown(message.content))
    console.print()
    return message


@app.command()
def chat(
    chat_id: str | None = typer.Option(
        None,
        "--open",
        "-o",
        help="Resume a saved chat by id"
    )
):
    """Interactive chat with the configured provider."""
    async def _chat():
        session = get_session(options.home, options.backend)
        try:
            await session.startup()
            if chat_id and await session.open(chat_id) is None:
                console.print(f"[yellow]Chat {chat_id} not found, starting a new one[/yellow]")

            config = session.config.active_config()
            console.print(f"[bold cyan]llamachat[/bold cyan] [dim]({config.provider_id}: {config.model_id})[/dim]")
            console.print("[dim]Commands: /new, /attach <path> <message>, /history. "
                          "Type 'exit', 'quit', or 'q' to leave[/dim]\n")

            active = session.active
            if active is not None:
                for message in active.messages:
                    style = "bold yellow" if message.role == "user" else "bold green"
                    console.print(f"[{style}]{message.role.value.title()}:[/{style}] {message.content}")

            while True:
                try:
                    user_input = console.input("[bold yellow]You:[/bold yellow] ").strip()
                except (KeyboardInterrupt, EOFError):
                    console.print("\n[dim]Goodbye![/dim]")
                    break

                if not user_input:
                    continue
                if user_input.lower() in EXIT_WORDS:
                    console.print("[dim]Goodbye![/dim]")
                    break
                if user_input == "/new":
                    session.new_chat()
                    console.print("[dim]Started a new chat[/dim]\n")
                    continue
                if user_input == "/history":
                    _print_history(await session.list_history())
                    continue

                attach = None
                if user_input.startswith("/attach "):
                    _, path, *rest = user_input.split(maxsplit=2)
                    attach = Path(path)
                    user_input = rest[0] if rest else ""

                try:
                    await _send_and_render(session, user_input, attach)
                except LlamaChatError as e:
                    console.print(f"[red]Error: {e}[/red]\n")

        except LlamaChatError as e:
            _fail(e)
        finally:
            await session.close()

    asyncio.run(_chat())


@app.command()
def ask(
    question: str = typer.Argument("", help="Question to ask"),
    file: Path | None = typer.Option(
        None,
        "--file",
        "-f",
        exists=True,
        dir_okay=False,
        help="Image or document to attach"
    ),
    new: bool = typer.Option(
        True,
        "--new/--continue",
        help="Start a new chat or continue the active one"
    )
):
    """Ask a single question and print the answer."""
    if not question and file is None:
        console.print("[red]Error: provide a question, a file, or both[/red]")
        raise typer.Exit(code=1)

    async def _ask():
        session = get_session(options.home, options.backend)
        try:
            await session.startup()
            if new:
                session.new_chat()
            await _send_and_render(session, question, file)
        except LlamaChatError as e:
            _fail(e)
        finally:
            await session.close()

    asyncio.run(_ask())


def _print_history(chats) -> None:
    if not chats:
        console.print("[yellow]No saved chats[/yellow]")
        return

    table = Table(show_header=True, header_style="bold cyan")
    table.add_column("Id", style="dim")
    table.add_column("Title", style="cyan")
    table.add_column("Model", style="yellow")
    table.add_column("Messages", justify="right", width=8)
    table.add_column("Saved", style="green")

    for summary in chats:
        saved = summary.saved_at.strftime("%Y-%m-%d %H:%M") if summary.saved_at else "-"
        table.add_row(summary.id, summary.title, summary.model, str(summary.message_count), saved)

    console.print(table)


@history_app.command("list")
def history_list():
    """List saved chats, newest first."""
    async def _list():
        session = get_session(options.home, options.backend)
        try:
            await session.sync.store.connect()
            _print_history(await session.list_history())
        except LlamaChatError as e:
            _fail(e)
        finally:
            await session.sync.store.disconnect()

    asyncio.run(_list())


@history_app.command("open")
def history_open(chat_id: str = typer.Argument(..., help="Chat id")):
    """Show a saved chat and make it the active one."""
    async def _open():
        session = get_session(options.home, options.backend)
        try:
            await session.startup()
            conversation = await session.open(chat_id)
            if conversation is None:
                console.print(f"[red]Chat {chat_id} not found[/red]")
                raise typer.Exit(code=1)

            console.print(Panel(
                f"{conversation.message_count} messages, model {conversation.model}",
                title=conversation.title,
                border_style="cyan",
            ))
            for message in conversation.messages:
                label = message.role.value.title()
                console.print(f"[bold]{label}[/bold] [dim]{message.timestamp:%Y-%m-%d %H:%M}[/dim]")
                if message.attachment is not None:
                    size = message.attachment.size
                    size_text = f" ({format_file_size(size)})" if size else ""
                    console.print(f"[dim]{message.attachment.describe()}{size_text}[/dim]")
                console.print(Markdown(message.content or ""))
                console.print()
        except LlamaChatError as e:
            _fail(e)
        finally:
            await session.close()

    asyncio.run(_open())


@history_app.command("delete")
def history_delete(
    chat_id: str = typer.Argument(..., help="Chat id"),
    yes: bool = typer.Option(
        False,
        "--yes",
        "-y",
        help="Skip confirmation prompt"
    )
):
    """Delete a chat, including every stored copy of it."""
    if not yes and not typer.confirm(f"Delete chat {chat_id}?"):
        console.print("[dim]Aborted.[/dim]")
        return

    async def _delete():
        session = get_session(options.home, options.backend)
        try:
            await session.startup()
            if await session.delete(chat_id):
                console.print(f"[green]Deleted chat {chat_id}[/green]")
            else:
                console.print(f"[yellow]Chat {chat_id} not found[/yellow]")
        except LlamaChatError as e:
            _fail(e)
        finally:
            await session.close()

    asyncio.run(_delete())


@history_app.command("cleanup")
def history_cleanup():
    """Remove duplicate stored copies of chats."""
    async def _cleanup():
        session = get_session(options.home, options.backend)
        try:
            await session.sync.store.connect()
            cleaned = await session.cleanup_duplicates()
            console.print(f"[green]Cleaned up {cleaned} duplicate(s)[/green]")
        except LlamaChatError as e:
            _fail(e)
        finally:
            await session.sync.store.disconnect()

    asyncio.run(_cleanup())


@app.command()
def models():
    """List models on the local server and custom router models."""
    async def _models():
        session = get_session(options.home, options.backend)
        settings = session.config.settings
        try:
            local = await session.list_models()
        except LlamaChatError as e:
            console.print(f"[yellow]Local server unavailable: {e}[/yellow]")
            local = []
        finally:
            await session.gateway.close()

        table = Table(show_header=True, header_style="bold cyan")
        table.add_column("Provider", style="yellow")
        table.add_column("Model", style="cyan")
        table.add_column("Name")
        for name in local:
            table.add_row("ollama", name, "")
        for custom in settings.custom_models:
            table.add_row("openrouter", custom.value, custom.name)
        console.print(table)

    asyncio.run(_models())


@config_app.command("show")
def config_show():
    """Show the effective settings (credentials masked)."""
    config = get_session(options.home, options.backend).config
    try:
        settings = config.settings
    except LlamaChatError as e:
        _fail(e)

    table = Table(show_header=False, box=None)
    table.add_column("Setting", style="bold cyan")
    table.add_column("Value")
    for key, value in settings.redacted().items():
        if key == "custom_models":
            value = ", ".join(m["value"] for m in value) or "None"
        table.add_row(key, str(value) if value != "" else "[dim]not set[/dim]")
    console.print(table)
    console.print(f"[dim]Data home: {config.home}[/dim]")


@config_app.command("set")
def config_set(
    key: str = typer.Argument(..., help="Setting name, e.g. provider or temperature"),
    value: str = typer.Argument(..., help="New value (custom_models takes a JSON list)")
):
    """Change a setting. API keys are written to the .env file."""
    session = get_session(options.home, options.backend)
    parsed: object = value
    if key == "custom_models":
        try:
            parsed = json.loads(value)
        except json.JSONDecodeError as e:
            _fail(e)
    try:
        session.update_settings(**{key: parsed})
    except LlamaChatError as e:
        _fail(e)
    console.print(f"[green]Set {key}[/green]")


def main():
    """Main entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
