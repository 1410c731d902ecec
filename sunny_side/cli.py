"""
Interactive terminal front-end for a Sunny Side session.
"""
import asyncio
import logging
from typing import Awaitable, Callable, Dict, Optional

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from .display import ChatMessage, Status, StatusLevel
from .exceptions import SessionError
from .p2p.models import Role
from .p2p.session import SessionStateMachine

logger = logging.getLogger(__name__)

HELP = """  role initiator|responder   choose your side (resets the session)
  generate                   create your connection code
  code                       show your connection code
  copy                       mark your code as sent to the peer
  paste <code>               store the peer's code
  connect [<code>]           apply the peer's code
  say <text>                 send a chat message
  call / hangup              start or stop the audio call
  reset / close              start over / end the connection
  status                     show role and phase
  quit                       exit"""

ROLE_ARGS = {
    "initiator": Role.INITIATOR,
    "caller": Role.INITIATOR,
    "responder": Role.RESPONDER,
    "callee": Role.RESPONDER,
}

STATUS_STYLES = {
    StatusLevel.INFO: "cyan",
    StatusLevel.SUCCESS: "green",
    StatusLevel.ERROR: "red",
}


class ConsoleFrontend:
    """Maps typed commands onto session operations and prints the display log."""

    def __init__(self, session: SessionStateMachine, console: Optional[Console] = None):
        self.session = session
        self.console = console or Console()
        self._commands: Dict[str, Callable[[str], Awaitable[None]]] = {
            "role": self._role,
            "generate": self._generate,
            "code": self._code,
            "copy": self._copy,
            "paste": self._paste,
            "connect": self._connect,
            "say": self._say,
            "call": self._call,
            "hangup": self._hangup,
            "reset": self._reset,
            "close": self._close,
            "status": self._show_status,
            "help": self._help,
        }
        session.display.on_message(self._print_message)
        session.display.on_status(self._print_status)

    def _print(self, text: str) -> None:
        self.console.print(escape(text))

    def _print_code(self, code: str) -> None:
        # Codes must stay on one line to survive copy and paste
        self.console.print(code, markup=False, soft_wrap=True, highlight=False)

    def _print_error(self, text: str) -> None:
        self.console.print(f"[red]Error:[/red] {escape(text)}")

    def _print_message(self, message: ChatMessage) -> None:
        self.console.print(escape(message.label()), highlight=False)

    def _print_status(self, status: Status) -> None:
        style = STATUS_STYLES[status.level]
        self.console.print(f"[{style}]\u25cf[/{style}] {escape(status.text)}")

    def _print_help(self) -> None:
        self.console.print(Panel.fit(escape(HELP), title="[bold]Sunny Side[/bold]", border_style="yellow"))

    async def handle(self, line: str) -> bool:
        """Run one command line. Returns False when the user wants to quit."""
        command, _, argument = line.strip().partition(" ")
        command = command.lower()
        if not command:
            return True
        if command in ("quit", "exit"):
            return False

        handler = self._commands.get(command)
        if handler is None:
            self.console.print(f"[yellow]Unknown command:[/yellow] {escape(command)} (try 'help')")
            return True
        try:
            await handler(argument.strip())
        except SessionError as e:
            self._print_error(e.user_message)
        return True

    async def run(self) -> None:
        loop = asyncio.get_running_loop()
        self._print_help()
        try:
            while True:
                try:
                    line = await loop.run_in_executor(None, self.console.input, "[bold]> [/bold]")
                except EOFError:
                    break
                if not await self.handle(line):
                    break
        finally:
            await self.session.reset()

    async def _role(self, argument: str) -> None:
        role = ROLE_ARGS.get(argument.lower())
        if role is None:
            self._print("Usage: role initiator|responder")
            return
        await self.session.choose_role(role)

    async def _generate(self, argument: str) -> None:
        code = await self.session.begin_generation()
        if code:
            self._print_code(code)

    async def _code(self, argument: str) -> None:
        if self.session.local_code:
            self._print_code(self.session.local_code)
        else:
            self.console.print("[yellow]No code generated yet[/yellow]")

    async def _copy(self, argument: str) -> None:
        self._print(self.session.mark_code_exported())

    async def _paste(self, argument: str) -> None:
        self.session.remote_code_input = argument
        self._print("Peer code stored" if argument else "Peer code cleared")

    async def _connect(self, argument: str) -> None:
        if argument:
            self.session.remote_code_input = argument
        if not self.session.remote_code_input:
            self._print("Paste the peer's connection code first")
            return
        reply = await self.session.apply_remote_code(self.session.remote_code_input)
        if reply:
            self._print("Send this code back to your peer:")
            self._print_code(reply)

    async def _say(self, argument: str) -> None:
        error = self.session.send_message(argument)
        if error is not None:
            self._print_error(error.user_message)

    async def _call(self, argument: str) -> None:
        await self.session.start_call()

    async def _hangup(self, argument: str) -> None:
        await self.session.hang_up()

    async def _reset(self, argument: str) -> None:
        await self.session.reset()

    async def _close(self, argument: str) -> None:
        await self.session.close()

    async def _show_status(self, argument: str) -> None:
        session = self.session
        table = Table(show_header=True, header_style="bold magenta")
        table.add_column("Role", style="cyan")
        table.add_column("Phase", style="green")
        table.add_column("Call")
        table.add_row(
            session.role.value,
            session.phase.value,
            "[green]on[/green]" if session.call.active else "off",
        )
        self.console.print(table)

    async def _help(self, argument: str) -> None:
        self._print_help()
