"""In-memory adapter for exercising bots and middleware without a channel.

```python
adapter = TestAdapter(echo_logic)
await adapter.test("hello", "echo: hello")
await TestFlow(adapter).send("a").assert_reply("echo: a").send("b").assert_reply("echo: b")
```
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Mapping
from typing import Any

from turnstile.adapter import BotAdapter, BotLogic
from turnstile.context import ActivityLike, TurnContext
from turnstile.schema import (
    Activity,
    ActivityTypes,
    ChannelAccount,
    ConversationAccount,
    ConversationReference,
    ResourceResponse,
    coerce_activity,
    delay_seconds,
)

type ReplyCheck = Callable[[Activity], None]


def default_template() -> Activity:
    return Activity(
        channel_id="test",
        service_url="https://test.invalid",
        from_property=ChannelAccount(id="user", name="User1"),
        recipient=ChannelAccount(id="bot", name="Bot"),
        conversation=ConversationAccount(id="convo1", name="Conversation1"),
    )


class TestAdapter(BotAdapter):
    """Adapter that queues bot replies in memory and records updates and deletes."""

    __test__ = False

    def __init__(self, logic: BotLogic, template: Activity | Mapping[str, Any] | None = None) -> None:
        super().__init__()
        self._logic = logic
        self.template = coerce_activity(template) if template is not None else default_template()
        self._next_id = 0
        self._replies: asyncio.Queue[Activity] = asyncio.Queue()
        self.updated_activities: list[Activity] = []
        self.deleted_activities: list[ConversationReference] = []

    @property
    def conversation_reference(self) -> ConversationReference:
        return TurnContext.get_conversation_reference(self.template)

    async def send_activities(self, context: TurnContext, activities: list[Activity]) -> list[ResourceResponse]:
        _ = context
        responses: list[ResourceResponse] = []
        for activity in activities:
            if activity.type == ActivityTypes.delay:
                await asyncio.sleep(delay_seconds(activity))
                responses.append(ResourceResponse())
                continue
            if not activity.id:
                activity.id = self._new_id()
            await self._replies.put(activity)
            responses.append(ResourceResponse(id=activity.id))
        return responses

    async def update_activity(self, context: TurnContext, activity: Activity) -> None:
        _ = context
        self.updated_activities.append(activity)

    async def delete_activity(self, context: TurnContext, reference: ConversationReference) -> None:
        _ = context
        self.deleted_activities.append(reference)

    def make_activity(self, text: str | None = None) -> Activity:
        """Build a user message addressed like the template."""

        activity = self.template.model_copy(deep=True)
        activity.type = ActivityTypes.message.value
        activity.id = self._new_id()
        activity.text = text
        return activity

    async def receive_activity(self, activity: ActivityLike) -> None:
        """Run one turn for an activity the user sent; missing fields come from the template."""

        request = coerce_activity(activity)
        for name in self.template.model_fields_set:
            if getattr(request, name) is None:
                setattr(request, name, _copy(getattr(self.template, name)))
        if not request.type:
            request.type = ActivityTypes.message.value
        if not request.id:
            request.id = self._new_id()
        await self.run_middleware(self.create_context(request), self._logic)

    async def send(self, user_says: ActivityLike) -> None:
        await self.receive_activity(user_says)

    async def next_reply(self, timeout_seconds: float | None = 1.0) -> Activity | None:
        """Pop the oldest queued reply, waiting up to ``timeout_seconds`` for one."""

        if timeout_seconds is None:
            return await self._replies.get()
        try:
            return await asyncio.wait_for(self._replies.get(), timeout=timeout_seconds)
        except TimeoutError:
            return None

    def test(
        self,
        user_says: ActivityLike,
        expected: ActivityLike | ReplyCheck,
        description: str | None = None,
        timeout_seconds: float = 1.0,
    ) -> TestFlow:
        return TestFlow(self).test(user_says, expected, description, timeout_seconds)

    def _new_id(self) -> str:
        self._next_id += 1
        return str(self._next_id)


class TestFlow:
    """Immutable chain of send/assert steps against a ``TestAdapter``. Await it to run."""

    __test__ = False

    def __init__(self, adapter: TestAdapter, steps: tuple[Callable[[], Awaitable[None]], ...] = ()) -> None:
        self.adapter = adapter
        self._steps = steps

    def send(self, user_says: ActivityLike) -> TestFlow:
        async def step() -> None:
            await self.adapter.receive_activity(user_says)

        return self._then(step)

    def assert_reply(
        self,
        expected: ActivityLike | ReplyCheck,
        description: str | None = None,
        timeout_seconds: float = 1.0,
    ) -> TestFlow:
        async def step() -> None:
            reply = await self.adapter.next_reply(timeout_seconds)
            label = description or "reply"
            if reply is None:
                raise AssertionError(f"{label}: no reply within {timeout_seconds}s")
            if callable(expected):
                expected(reply)
                return
            wanted = coerce_activity(expected)
            if wanted.type and reply.type != wanted.type:
                raise AssertionError(f"{label}: expected type {wanted.type!r}, got {reply.type!r}")
            if wanted.text is not None and reply.text != wanted.text:
                raise AssertionError(f"{label}: expected text {wanted.text!r}, got {reply.text!r}")

        return self._then(step)

    def assert_no_reply(self, description: str | None = None, timeout_seconds: float = 0.05) -> TestFlow:
        async def step() -> None:
            reply = await self.adapter.next_reply(timeout_seconds)
            if reply is not None:
                raise AssertionError(f"{description or 'no reply'}: unexpected reply {reply.text!r}")

        return self._then(step)

    def test(
        self,
        user_says: ActivityLike,
        expected: ActivityLike | ReplyCheck,
        description: str | None = None,
        timeout_seconds: float = 1.0,
    ) -> TestFlow:
        return self.send(user_says).assert_reply(expected, description, timeout_seconds)

    async def run(self) -> None:
        for step in self._steps:
            await step()

    def __await__(self) -> Any:
        return self.run().__await__()

    def _then(self, step: Callable[[], Awaitable[None]]) -> TestFlow:
        return TestFlow(self.adapter, (*self._steps, step))


def _copy(value: Any) -> Any:
    copier = getattr(value, "model_copy", None)
    return copier(deep=True) if copier is not None else value
