"""Turnstile CLI."""

from __future__ import annotations

import asyncio

import typer
from rich.console import Console
from rich.table import Table

from turnstile.channels import Channels, card_action_limit, has_message_feed, suggested_action_limit
from turnstile.config import get_settings
from turnstile.console import ConsoleAdapter
from turnstile.context import TurnContext
from turnstile.schema import ActivityTypes

app = typer.Typer(name="turnstile", help="Middleware-driven turn pipeline for conversational bots", add_completion=False)


async def echo_logic(context: TurnContext) -> None:
    if context.activity.type == ActivityTypes.message:
        await context.send_activity(f"echo: {context.activity.text}")


@app.command("echo")
def echo(
    plugins: bool = typer.Option(True, "--plugins/--no-plugins", help="Load middleware from installed plugins."),
) -> None:
    """Run an echo bot on the console until end of input."""

    settings = get_settings(log_profile="console")
    adapter = ConsoleAdapter.from_settings(settings)
    if plugins:
        adapter.load_plugins()
    turns = asyncio.run(adapter.listen(echo_logic))
    typer.echo(f"{turns} turn(s) processed")


@app.command("channels")
def channels() -> None:
    """Show rendering capabilities of known channels."""

    table = Table(title="Channel capabilities")
    table.add_column("channel")
    table.add_column("suggested actions", justify="right")
    table.add_column("card actions", justify="right")
    table.add_column("message feed")
    for channel in Channels:
        suggested = suggested_action_limit(channel.value)
        cards = card_action_limit(channel.value)
        table.add_row(
            channel.value,
            str(suggested) if suggested is not None else "-",
            str(cards) if cards is not None else "-",
            "yes" if has_message_feed(channel.value) else "no",
        )
    Console().print(table)


@app.command("hooks")
def hooks() -> None:
    """List plugin hook implementations found through entry points."""

    adapter = ConsoleAdapter()
    added = adapter.load_plugins()
    report = adapter.hook_report()
    if not report:
        typer.echo("No turnstile plugins installed.")
        return
    for hook_name, plugin_names in report.items():
        typer.echo(f"{hook_name}: {', '.join(plugin_names)}")
    typer.echo(f"middleware added: {added}")


if __name__ == "__main__":
    app()
