"""Console adapter: stdin lines in, rich-rendered replies out."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime

from loguru import logger
from rich.console import Console

from turnstile.adapter import BotAdapter, BotLogic
from turnstile.config import Settings
from turnstile.context import TurnContext
from turnstile.errors import UnsupportedOperationError
from turnstile.schema import (
    Activity,
    ActivityTypes,
    ChannelAccount,
    ConversationAccount,
    ConversationReference,
    ResourceResponse,
    delay_seconds,
)

type LineReader = Callable[[], Awaitable[str | None]]


async def read_stdin_line() -> str | None:
    try:
        return await asyncio.to_thread(input, "> ")
    except EOFError:
        return None


class ConsoleAdapter(BotAdapter):
    """Runs one turn per line read from the terminal until end of input."""

    def __init__(
        self,
        reference: ConversationReference | None = None,
        *,
        console: Console | None = None,
        reader: LineReader = read_stdin_line,
    ) -> None:
        super().__init__()
        self.reference = reference or ConversationReference(
            channel_id="console",
            user=ChannelAccount(id="user", name="User1"),
            bot=ChannelAccount(id="bot", name="Bot"),
            conversation=ConversationAccount(id="convo1", name="Conversation1"),
        )
        self.console = console or Console()
        self._reader = reader
        self._next_id = 0

    @classmethod
    def from_settings(cls, settings: Settings, **kwargs: object) -> ConsoleAdapter:
        reference = ConversationReference(
            channel_id=settings.channel_id,
            user=ChannelAccount(id=settings.user_name, name=settings.user_name),
            bot=ChannelAccount(id=settings.bot_name, name=settings.bot_name),
            conversation=ConversationAccount(id="convo1"),
        )
        return cls(reference, **kwargs)  # type: ignore[arg-type]

    async def listen(self, logic: BotLogic) -> int:
        """Process lines until the reader is exhausted. Returns the number of turns run."""

        turns = 0
        while True:
            line = await self._reader()
            if line is None:
                break
            text = line.strip()
            if not text:
                continue
            self._next_id += 1
            request = TurnContext.apply_conversation_reference(
                Activity(
                    type=ActivityTypes.message.value,
                    id=str(self._next_id),
                    text=text,
                    timestamp=datetime.now(UTC),
                ),
                self.reference,
                is_incoming=True,
            )
            turns += 1
            try:
                await self.run_middleware(self.create_context(request), logic)
            except Exception:
                logger.exception("console.turn.error")
        return turns

    async def send_activities(self, context: TurnContext, activities: list[Activity]) -> list[ResourceResponse]:
        _ = context
        responses: list[ResourceResponse] = []
        for activity in activities:
            if activity.type == ActivityTypes.delay:
                await asyncio.sleep(delay_seconds(activity))
            elif activity.type == ActivityTypes.message:
                self._print_message(activity)
            else:
                logger.debug("console.skip type={}", activity.type)
            responses.append(ResourceResponse())
        return responses

    async def update_activity(self, context: TurnContext, activity: Activity) -> None:
        raise UnsupportedOperationError(type(self).__name__, "update_activity")

    async def delete_activity(self, context: TurnContext, reference: ConversationReference) -> None:
        raise UnsupportedOperationError(type(self).__name__, "delete_activity")

    def _print_message(self, activity: Activity) -> None:
        speaker = activity.from_property.name if activity.from_property and activity.from_property.name else "bot"
        if activity.text:
            self.console.print(f"[bold cyan]{speaker}[/]: {activity.text}", highlight=False)
        for attachment in activity.attachments or ():
            self.console.print(f"[dim]{speaker} sent an attachment: {attachment!r}[/]", highlight=False)
