"""
Companion CLI: talk to the companion backend from a terminal.
Usage: companion-chat [--url URL] [--token TOKEN] [--session ID] [--log-level LEVEL]
"""

import argparse
import asyncio
import signal
import threading
from pathlib import Path
from typing import Awaitable, Callable, Optional

from rich.console import Console
from rich.live import Live
from rich.markdown import Markdown
from rich.markup import escape
from rich.panel import Panel
from rich.text import Text

from companion.config import ServiceConfig
from companion.core.events import AUDIO_READY, AudioReady
from companion.core.logging import set_log_level
from companion.core.results import ChatResult, HealthResult
from companion.llm.chat_client import ChunkCallback
from companion.service import CompanionService

# ─────────────────────────────────────────────────────────────
# Constants
# ─────────────────────────────────────────────────────────────

VERSION = "0.1"

COMMANDS = {
    "/voice": "Run a voice turn: /voice <audio file>",
    "/file": "Chat about a file: /file <path> [message]",
    "/reset": "Reset the backend session",
    "/health": "Check the backend",
    "/config": "Show the current configuration",
    "/help": "Show this list",
    "/exit": "Quit",
    "/quit": "Quit",
}

console = Console()


# ─────────────────────────────────────────────────────────────
# AudioSink
# ─────────────────────────────────────────────────────────────

class AudioSink:
    """Writes synthesized replies to numbered files in ``out_dir``."""

    def __init__(self, out_dir: Path):
        self.out_dir = out_dir
        self.count = 0
        self.last_path: Optional[Path] = None

    def __call__(self, event: AudioReady) -> None:
        self.out_dir.mkdir(parents=True, exist_ok=True)
        self.count += 1
        path = self.out_dir / f"reply-{self.count:03d}.mp3"
        path.write_bytes(event.audio)
        self.last_path = path


# ─────────────────────────────────────────────────────────────
# TerminalUI
# ─────────────────────────────────────────────────────────────

class TerminalUI:
    """Rich terminal rendering."""

    @staticmethod
    def print_welcome(server_url: str, health: HealthResult):
        title = Text.assemble(
            ("Companion CLI", "bold cyan"),
            (f" v{VERSION}", "dim"),
        )
        subtitle = Text("/help for commands · /exit to quit", style="dim")
        panel = Panel(
            Text.assemble(title, "\n", subtitle),
            border_style="cyan",
            padding=(0, 2),
        )
        console.print(panel)
        TerminalUI.print_health(server_url, health)
        console.print()

    @staticmethod
    def print_health(server_url: str, health: HealthResult):
        if health.ok:
            console.print(f"  [green]✓[/green] Connected to [bold]{server_url}[/bold]")
        else:
            console.print(
                f"  [yellow]⚠[/yellow] Backend unavailable ([bold]{server_url or '-'}[/bold]): "
                f"{escape(health.error or '')}",
            )

    @staticmethod
    def print_help():
        console.print()
        console.print("[bold cyan]Commands[/bold cyan]")
        for cmd, desc in COMMANDS.items():
            console.print(f"  [bold]{cmd:10s}[/bold] {escape(desc)}")
        console.print()

    @staticmethod
    def print_error(msg: str):
        console.print(f"  [red]✗[/red] {escape(msg)}")

    @staticmethod
    def print_info(msg: str):
        console.print(f"  [dim]{escape(msg)}[/dim]")

    @staticmethod
    def prompt_input() -> Optional[str]:
        """Read a line; None on Ctrl+D."""
        try:
            return console.input("[bold green] You ► [/bold green]")
        except EOFError:
            return None

    @staticmethod
    async def read_input() -> Optional[str]:
        """Run ``prompt_input`` on a daemon thread and await the line.

        A daemon thread lets Ctrl+C end the loop without waiting for input().
        """
        loop = asyncio.get_running_loop()
        future: asyncio.Future = loop.create_future()

        def settle(value: Optional[str], error: Optional[BaseException]) -> None:
            if future.done():
                return
            if error is not None:
                future.set_exception(error)
            else:
                future.set_result(value)

        def worker() -> None:
            try:
                value = TerminalUI.prompt_input()
            except Exception as e:
                loop.call_soon_threadsafe(settle, None, e)
            else:
                loop.call_soon_threadsafe(settle, value, None)

        threading.Thread(target=worker, name="companion-input", daemon=True).start()
        return await future

    @staticmethod
    async def stream_response(send: Callable[[ChunkCallback], Awaitable[ChatResult]]) -> ChatResult:
        """Stream a chat reply, rendering chunks live as markdown.

        ``send`` starts the request with the given chunk callback.
        """
        header = Text(" Companion ", style="bold cyan")
        divider = Text("─" * 40, style="dim cyan")
        console.print()
        console.print(Text.assemble((" ", ""), header, divider))

        with Live(
            Markdown("▍"),
            console=console,
            refresh_per_second=8,
            vertical_overflow="visible",
        ) as live:
            def on_chunk(_delta: str, accumulated: str) -> None:
                live.update(Markdown(accumulated + " ▍"))

            result = await send(on_chunk)
            live.update(Markdown(result.response if result.ok else ""))

        console.print(Text("─" * 42, style="dim cyan"))
        if not result.ok:
            TerminalUI.print_error(result.error or "Chat failed")
        console.print()
        return result


# ─────────────────────────────────────────────────────────────
# CommandHandler
# ─────────────────────────────────────────────────────────────

class CommandHandler:
    """Slash command handling."""

    def __init__(self, service: CompanionService, sink: AudioSink):
        self.service = service
        self.sink = sink

    @staticmethod
    def is_command(text: str) -> bool:
        return text.startswith("/")

    async def handle(self, text: str) -> bool:
        """Run a command. Returns True when the CLI should exit."""
        cmd, _, rest = text.strip().partition(" ")
        cmd = cmd.lower()
        rest = rest.strip()

        if cmd in ("/exit", "/quit"):
            console.print("\n  [dim] Bye![/dim]\n")
            return True

        if cmd == "/help":
            TerminalUI.print_help()
        elif cmd == "/health":
            health = await self.service.health_check()
            TerminalUI.print_health(self.service.config.server_url, health)
        elif cmd == "/config":
            for key, value in self.service.get_config().items():
                console.print(f"  [bold]{key:18s}[/bold] {escape(str(value))}")
        elif cmd == "/reset":
            result = await self.service.reset_session()
            if result.ok:
                TerminalUI.print_info("Session reset.")
            else:
                TerminalUI.print_error(result.error or "Reset failed")
        elif cmd == "/voice":
            await self._voice(rest)
        elif cmd == "/file":
            await self._file(rest)
        else:
            TerminalUI.print_error(f"Unknown command: {cmd}  (see /help)")
        console.print()
        return False

    async def _voice(self, arg: str) -> None:
        if not arg:
            TerminalUI.print_error("Usage: /voice <audio file>")
            return

        def on_progress(stage: str) -> None:
            TerminalUI.print_info(f"… {stage}")

        result = await self.service.process_voice(arg, on_progress=on_progress)
        if not result.ok:
            TerminalUI.print_error(result.error or "Voice turn failed")
            return

        console.print(f"  [bold green]You said:[/bold green] {escape(result.transcription)}")
        console.print(Markdown(result.response))
        if result.audio is not None and self.sink.last_path is not None:
            TerminalUI.print_info(f"Audio saved to {self.sink.last_path}")
        elif "tts_error" in result.timings:
            TerminalUI.print_info(f"No audio: {result.timings['tts_error']}")

    async def _file(self, arg: str) -> None:
        path_arg, _, message = arg.partition(" ")
        if not path_arg:
            TerminalUI.print_error("Usage: /file <path> [message]")
            return
        path = Path(path_arg).expanduser().resolve()
        if not path.is_file():
            TerminalUI.print_error(f"File not found: {path}")
            return
        await TerminalUI.stream_response(
            lambda on_chunk: self.service.chat_with_file(
                message.strip(), path.as_uri(), path.name, on_chunk=on_chunk
            )
        )


# ─────────────────────────────────────────────────────────────
# Main
# ─────────────────────────────────────────────────────────────

def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Companion CLI: chat and voice turns from a terminal",
    )
    parser.add_argument("--url", default=None, help="Backend URL (default: COMPANION_SERVER_URL)")
    parser.add_argument("--token", default=None, help="Bearer token (default: COMPANION_AUTH_TOKEN)")
    parser.add_argument("--session", default=None, help="Session id (default: COMPANION_SESSION_ID)")
    parser.add_argument(
        "--audio-out",
        default="companion-audio",
        help="Directory for synthesized replies (default: ./companion-audio)",
    )
    parser.add_argument(
        "--log-level",
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Log level for stderr output (default: WARNING)",
    )
    return parser.parse_args(argv)


def build_service(args: argparse.Namespace) -> CompanionService:
    config = ServiceConfig.from_env()
    config.configure(server_url=args.url, auth_token=args.token, session_id=args.session)
    return CompanionService(config)


async def run(args: argparse.Namespace) -> None:
    async with build_service(args) as service:
        sink = AudioSink(Path(args.audio_out))
        service.events.subscribe(AUDIO_READY, sink)
        commands = CommandHandler(service, sink)

        health = await service.health_check()
        TerminalUI.print_welcome(service.config.server_url, health)

        while True:
            user_input = await TerminalUI.read_input()

            # Ctrl+D
            if user_input is None:
                console.print("\n  [dim] Bye![/dim]\n")
                break

            text = user_input.strip()
            if not text:
                continue

            if CommandHandler.is_command(text):
                if await commands.handle(text):
                    break
                continue

            await TerminalUI.stream_response(
                lambda on_chunk: service.chat(text, on_chunk=on_chunk)
            )


def main(argv: Optional[list[str]] = None):
    args = parse_args(argv)
    set_log_level(args.log_level)
    signal.signal(signal.SIGINT, signal.default_int_handler)
    try:
        asyncio.run(run(args))
    except KeyboardInterrupt:
        console.print("\n  [dim] Bye![/dim]\n")


if __name__ == "__main__":
    main()
