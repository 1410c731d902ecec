"""
Tests for the terminal front-end.
"""
import io

import pytest
from rich.console import Console

from sunny_side.cli import ConsoleFrontend
from sunny_side.p2p import codec
from sunny_side.p2p.models import Role, SessionPhase
from tests.utils import settle


@pytest.fixture
def out():
    return io.StringIO()


@pytest.fixture
def frontend(session, out):
    console = Console(file=out, force_terminal=False, color_system=None, width=200)
    return ConsoleFrontend(session, console)


@pytest.mark.asyncio
async def test_quit_and_blank_lines(frontend):
    assert await frontend.handle("") is True
    assert await frontend.handle("quit") is False
    assert await frontend.handle("EXIT") is False


@pytest.mark.asyncio
async def test_unknown_command(frontend, out):
    assert await frontend.handle("dance")

    assert "Unknown command: dance" in out.getvalue()


@pytest.mark.asyncio
async def test_errors_are_printed_not_raised(frontend, out, session):
    await frontend.handle("generate")

    assert "Error: Choose a role first" in out.getvalue()
    assert session.phase is SessionPhase.IDLE


@pytest.mark.asyncio
async def test_role_command(frontend, out, session):
    await frontend.handle("role caller")
    assert session.role is Role.INITIATOR

    await frontend.handle("role responder")
    assert session.role is Role.RESPONDER

    await frontend.handle("role spectator")
    assert "Usage: role initiator|responder" in out.getvalue()
    assert session.role is Role.RESPONDER


@pytest.mark.asyncio
async def test_generate_and_copy(frontend, out, session):
    await frontend.handle("role initiator")
    await frontend.handle("generate")

    code = session.local_code
    assert code in out.getvalue()
    assert codec.decode(code).role is Role.INITIATOR

    await frontend.handle("copy")
    assert session.phase is SessionPhase.AWAITING_REMOTE


@pytest.mark.asyncio
async def test_connect_needs_a_code(frontend, out, session):
    await frontend.handle("role initiator")

    await frontend.handle("connect")

    assert "Paste the peer's connection code first" in out.getvalue()


@pytest.mark.asyncio
async def test_paste_then_generate_as_responder(frontend, out, session, make_session):
    initiator = make_session()
    await initiator.choose_role(Role.INITIATOR)
    offer = await initiator.begin_generation()

    await frontend.handle("role responder")
    await frontend.handle(f"paste {offer}")
    await frontend.handle("generate")

    assert "Peer code stored" in out.getvalue()
    assert session.phase is SessionPhase.CODE_READY
    assert codec.decode(session.local_code).description.type == "answer"


@pytest.mark.asyncio
async def test_connect_prints_the_reply(frontend, out, session, make_session):
    initiator = make_session()
    await initiator.choose_role(Role.INITIATOR)
    offer = await initiator.begin_generation()

    await frontend.handle("role responder")
    await frontend.handle(f"connect {offer}")

    assert "Send this code back to your peer:" in out.getvalue()
    assert session.local_code in out.getvalue()
    assert session.phase is SessionPhase.CONNECTED


@pytest.mark.asyncio
async def test_chat_lines_and_statuses_are_printed(frontend, out, session):
    await frontend.handle("role initiator")
    await frontend.handle("generate")
    session.engine.open_channels()
    await settle()

    await frontend.handle("say hello")
    session.engine.receive("hi")
    await settle()

    output = out.getvalue()
    assert "\u25cf Role: Initiator" in output
    assert "\u25cf Chat connected" in output
    assert "You: hello" in output
    assert "Peer: hi" in output


@pytest.mark.asyncio
async def test_say_before_connecting(frontend, out):
    await frontend.handle("say hello")

    assert "Error: Chat is not connected yet" in out.getvalue()


@pytest.mark.asyncio
async def test_status_and_reset(frontend, out, session):
    await frontend.handle("role initiator")
    await frontend.handle("status")
    table = out.getvalue()
    assert "Role" in table and "Phase" in table
    assert "initiator" in table
    assert "role_chosen" in table
    assert "off" in table

    await frontend.handle("reset")

    assert session.phase is SessionPhase.IDLE
    assert "\u25cf Session reset" in out.getvalue()


@pytest.mark.asyncio
async def test_close_without_connection(frontend, out):
    await frontend.handle("close")

    assert "Error: There is no connection to close" in out.getvalue()


@pytest.mark.asyncio
async def test_peer_text_is_not_read_as_markup(frontend, out, session):
    await frontend.handle("role initiator")
    await frontend.handle("generate")
    session.engine.open_channels()
    await settle()

    session.engine.receive("[red]not styled[/red]")
    await settle()

    assert "Peer: [red]not styled[/red]" in out.getvalue()


@pytest.mark.asyncio
async def test_codes_are_printed_on_one_line(out, session):
    console = Console(file=out, force_terminal=False, color_system=None, width=40)
    frontend = ConsoleFrontend(session, console)

    await frontend.handle("role initiator")
    await frontend.handle("generate")

    assert session.local_code in out.getvalue().splitlines()


@pytest.mark.asyncio
async def test_help_is_shown_in_a_panel(frontend, out):
    await frontend.handle("help")

    output = out.getvalue()
    assert "Sunny Side" in output
    assert "paste <code>" in output
    assert "connect [<code>]" in output
