"""Per-turn context object."""

from __future__ import annotations

import contextlib
from collections.abc import Awaitable, Callable, Generator, Mapping, Sequence
from contextvars import ContextVar
from dataclasses import dataclass, field
from enum import Enum
from functools import partial
from typing import TYPE_CHECKING, Any, Self

from loguru import logger

from turnstile.errors import ActivityValidationError, MiddlewareUsageError, StaleContextError
from turnstile.middleware import Promiseable, run_chain
from turnstile.schema import (
    Activity,
    ActivityTypes,
    ChannelAccount,
    ConversationAccount,
    ConversationReference,
    ResourceResponse,
    coerce_activity,
    coerce_reference,
)

if TYPE_CHECKING:
    from turnstile.adapter import BotAdapter

type ActivityLike = Activity | Mapping[str, Any] | str
type SendActivitiesHandler = Callable[
    [TurnContext, list[Activity], Callable[[], Awaitable[list[ResourceResponse]]]],
    Promiseable[list[ResourceResponse] | None],
]
type UpdateActivityHandler = Callable[[TurnContext, Activity, Callable[[], Awaitable[None]]], Promiseable[None]]
type DeleteActivityHandler = Callable[
    [TurnContext, ConversationReference, Callable[[], Awaitable[None]]],
    Promiseable[None],
]

_conversation_context: ContextVar[str] = ContextVar("conversation")


def current_conversation() -> str:
    """Get the conversation id of the turn running in this task."""
    return _conversation_context.get("-")


@contextlib.contextmanager
def bind_conversation(activity: Activity) -> Generator[None, None, None]:
    conversation_id = activity.conversation.id if activity.conversation and activity.conversation.id else "-"
    reset_token = _conversation_context.set(conversation_id)
    try:
        yield
    finally:
        _conversation_context.reset(reset_token)


@dataclass
class _SharedTurnState:
    """State shared by a context and every context cloned from it."""

    live: bool = True
    responded: bool = False
    turn_state: dict[Any, Any] = field(default_factory=dict)
    send_hooks: list[SendActivitiesHandler] = field(default_factory=list)
    update_hooks: list[UpdateActivityHandler] = field(default_factory=list)
    delete_hooks: list[DeleteActivityHandler] = field(default_factory=list)


class TurnContext:
    """Context for one turn of conversation.

    Created by an adapter for each inbound activity (or proactive send) and
    handed to middleware and bot logic. Once the turn has fully resolved the
    adapter revokes the context and every further use raises
    ``StaleContextError``.

    Passing an existing context to the constructor clones it: the clone shares
    hook lists, ``turn_state``, the ``responded`` flag and the revocation state
    with its source.
    """

    def __init__(self, adapter_or_context: BotAdapter | TurnContext, request: ActivityLike | None = None) -> None:
        if isinstance(adapter_or_context, TurnContext):
            adapter_or_context.copy_to(self)
            return
        if request is None:
            raise TypeError("TurnContext requires a request activity when created from an adapter")
        self._adapter = adapter_or_context
        self._activity = request if isinstance(request, Activity) else coerce_activity(request)
        self._state = _SharedTurnState()

    def copy_to(self, context: TurnContext) -> None:
        """Copy private members to ``context`` by reference. Subclasses extend this."""

        self._ensure_live("copy_to")
        context._adapter = self._adapter
        context._activity = self._activity
        context._state = self._state

    @property
    def adapter(self) -> BotAdapter:
        self._ensure_live("adapter")
        return self._adapter

    @property
    def activity(self) -> Activity:
        self._ensure_live("activity")
        return self._activity

    @property
    def responded(self) -> bool:
        """True once at least one activity was handed to the transport this turn."""
        self._ensure_live("responded")
        return self._state.responded

    @responded.setter
    def responded(self, value: bool) -> None:
        self._ensure_live("responded")
        if not value:
            raise ValueError("responded can only be set to True")
        self._state.responded = True

    @property
    def turn_state(self) -> dict[Any, Any]:
        """Values cached for the lifetime of the turn."""
        self._ensure_live("turn_state")
        return self._state.turn_state

    @property
    def is_live(self) -> bool:
        return self._state.live

    def revoke(self) -> None:
        """Invalidate this context and every clone sharing its state."""

        self._state.live = False

    async def send_activity(
        self,
        activity_or_text: ActivityLike,
        speak: str | None = None,
        input_hint: str | None = None,
    ) -> ResourceResponse | None:
        """Send one activity and return its delivery result.

        Returns ``None`` when a send hook filtered the activity out.
        """

        self._ensure_live("send_activity")
        activity = coerce_activity(activity_or_text)
        if speak:
            activity.speak = speak
        if input_hint:
            activity.input_hint = _tag(input_hint)
        responses = await self.send_activities([activity])
        return responses[0] if responses else None

    async def send_activities(self, activities: Sequence[ActivityLike]) -> list[ResourceResponse]:
        """Address, route through send hooks and deliver a batch of activities.

        Activities without a type become ``message`` activities. Hooks receive
        the addressed list and may change it in place before calling ``next``.
        """

        self._ensure_live("send_activities")
        reference = self.get_conversation_reference(self._activity)
        output: list[Activity] = []
        for item in activities:
            activity = coerce_activity(item)
            if not activity.type:
                activity.type = ActivityTypes.message.value
            output.append(self.apply_conversation_reference(activity, reference))

        async def deliver() -> list[ResourceResponse]:
            if not output:
                return []
            responses = await self._adapter.send_activities(self, output)
            self._state.responded = True
            logger.debug("turn.sent count={} conversation={}", len(output), current_conversation())
            return responses

        steps = [partial(hook, self, output) for hook in self._state.send_hooks]
        responses = await run_chain(steps, deliver, default=[])
        return list(responses or [])

    async def update_activity(self, activity: ActivityLike) -> None:
        """Replace a previously sent activity through update hooks and the adapter."""

        self._ensure_live("update_activity")
        update = coerce_activity(activity)
        if not update.id:
            raise ActivityValidationError("update_activity() requires the id of the activity to replace")
        reference = self.get_conversation_reference(self._activity)
        reference.activity_id = None
        if update.conversation is None:
            update = self.apply_conversation_reference(update, reference)
        else:
            update.service_url = update.service_url or reference.service_url
            update.channel_id = update.channel_id or reference.channel_id
        if update.conversation is None or not update.conversation.id:
            raise ActivityValidationError("update_activity() requires a conversation to address the replacement")

        steps = [partial(hook, self, update) for hook in self._state.update_hooks]
        await run_chain(steps, lambda: self._adapter.update_activity(self, update))

    async def delete_activity(self, id_or_reference: str | ConversationReference | Mapping[str, Any]) -> None:
        """Delete an activity by id (in this conversation) or by full reference."""

        self._ensure_live("delete_activity")
        if isinstance(id_or_reference, str):
            reference = self.get_conversation_reference(self._activity)
            reference.activity_id = id_or_reference
        else:
            reference = coerce_reference(id_or_reference)

        steps = [partial(hook, self, reference) for hook in self._state.delete_hooks]
        await run_chain(steps, lambda: self._adapter.delete_activity(self, reference))

    def on_send_activities(self, handler: SendActivitiesHandler) -> Self:
        self._ensure_live("on_send_activities")
        self._state.send_hooks.append(_ensure_hook(handler, "send activities"))
        return self

    def on_update_activity(self, handler: UpdateActivityHandler) -> Self:
        self._ensure_live("on_update_activity")
        self._state.update_hooks.append(_ensure_hook(handler, "update activity"))
        return self

    def on_delete_activity(self, handler: DeleteActivityHandler) -> Self:
        self._ensure_live("on_delete_activity")
        self._state.delete_hooks.append(_ensure_hook(handler, "delete activity"))
        return self

    @staticmethod
    def get_conversation_reference(activity: ActivityLike) -> ConversationReference:
        """Extract the addressing fields of ``activity``. The activity is not modified."""

        source = activity if isinstance(activity, Activity) else coerce_activity(activity)
        return ConversationReference(
            activity_id=source.id,
            user=_copy_account(source.from_property),
            bot=_copy_account(source.recipient),
            conversation=_copy_account(source.conversation),
            channel_id=source.channel_id,
            service_url=source.service_url,
        )

    @staticmethod
    def apply_conversation_reference(
        activity: ActivityLike,
        reference: ConversationReference | Mapping[str, Any],
        is_incoming: bool = False,
    ) -> Activity:
        """Return a copy of ``activity`` addressed with ``reference``.

        Outgoing activities are sent from the bot to the user and reply to the
        referenced activity. Incoming ones look as if the user sent them.
        """

        result = coerce_activity(activity)
        ref = coerce_reference(reference)
        result.channel_id = ref.channel_id
        result.service_url = ref.service_url
        result.conversation = ref.conversation
        if is_incoming:
            result.from_property = ref.user
            result.recipient = ref.bot
            if ref.activity_id:
                result.id = ref.activity_id
        else:
            result.from_property = ref.bot
            result.recipient = ref.user
            if ref.activity_id:
                result.reply_to_id = ref.activity_id
        return result

    def _ensure_live(self, operation: str) -> None:
        if not self._state.live:
            raise StaleContextError(operation)


def _copy_account[T: (ChannelAccount, ConversationAccount)](account: T | None) -> T | None:
    if account is None:
        return None
    return account.model_copy(deep=True)


def _tag(value: str) -> str:
    return value.value if isinstance(value, Enum) else value


def _ensure_hook[H](handler: H, kind: str) -> H:
    if not callable(handler):
        raise MiddlewareUsageError(f"{kind} hook must be callable, got {type(handler).__name__}")
    return handler
