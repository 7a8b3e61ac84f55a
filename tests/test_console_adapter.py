from __future__ import annotations

import io
from collections.abc import Iterable

import pytest
from rich.console import Console

from turnstile.config import Settings
from turnstile.console import ConsoleAdapter
from turnstile.context import TurnContext
from turnstile.errors import UnsupportedOperationError
from turnstile.schema import Activity, ActivityTypes


def scripted_reader(lines: Iterable[str]):
    pending = list(lines)

    async def read() -> str | None:
        return pending.pop(0) if pending else None

    return read


def recording_console() -> tuple[Console, io.StringIO]:
    buffer = io.StringIO()
    return Console(file=buffer, force_terminal=False, color_system=None, width=120), buffer


async def echo(context: TurnContext) -> None:
    if context.activity.type == ActivityTypes.message:
        await context.send_activity(f"echo: {context.activity.text}")


@pytest.mark.asyncio
async def test_listen_runs_one_turn_per_non_blank_line() -> None:
    console, buffer = recording_console()
    adapter = ConsoleAdapter(console=console, reader=scripted_reader(["hello", "   ", "bye"]))

    turns = await adapter.listen(echo)

    assert turns == 2
    assert buffer.getvalue().splitlines() == ["Bot: echo: hello", "Bot: echo: bye"]


@pytest.mark.asyncio
async def test_listen_addresses_turns_as_user_messages() -> None:
    seen: list[Activity] = []
    adapter = ConsoleAdapter(console=recording_console()[0], reader=scripted_reader(["hi"]))

    async def logic(context: TurnContext) -> None:
        seen.append(context.activity)

    await adapter.listen(logic)

    request = seen[0]
    assert request.type == "message"
    assert request.channel_id == "console"
    assert request.from_property is not None and request.from_property.id == "user"
    assert request.timestamp is not None


@pytest.mark.asyncio
async def test_listen_keeps_going_after_failed_turn() -> None:
    console, buffer = recording_console()

    async def logic(context: TurnContext) -> None:
        if context.activity.text == "boom":
            raise RuntimeError("boom")
        await echo(context)

    adapter = ConsoleAdapter(console=console, reader=scripted_reader(["boom", "ok"]))

    assert await adapter.listen(logic) == 2
    assert buffer.getvalue().splitlines() == ["Bot: echo: ok"]


@pytest.mark.asyncio
async def test_from_settings_uses_configured_identities() -> None:
    console, buffer = recording_console()
    settings = Settings(_env_file=None, bot_name="Echo", user_name="alice", channel_id="cli")
    adapter = ConsoleAdapter.from_settings(settings, console=console, reader=scripted_reader(["x"]))

    await adapter.listen(echo)

    assert adapter.reference.channel_id == "cli"
    assert buffer.getvalue().splitlines() == ["Echo: echo: x"]


@pytest.mark.asyncio
async def test_update_and_delete_are_unsupported() -> None:
    failures: list[str] = []

    async def logic(context: TurnContext) -> None:
        for operation in (lambda: context.update_activity({"id": "1"}), lambda: context.delete_activity("1")):
            try:
                await operation()
            except UnsupportedOperationError as exc:
                failures.append(exc.operation)

    adapter = ConsoleAdapter(console=recording_console()[0], reader=scripted_reader(["go"]))
    await adapter.listen(logic)

    assert failures == ["update_activity", "delete_activity"]
