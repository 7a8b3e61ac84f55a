from __future__ import annotations

from typing import Any

import pytest
from conftest import INBOUND, RecordingAdapter

from turnstile.context import TurnContext, current_conversation
from turnstile.errors import StaleContextError
from turnstile.hookspecs import hookimpl
from turnstile.middleware import NextFn
from turnstile.schema import Activity


class ErrorRecorder:
    def __init__(self) -> None:
        self.calls: list[tuple[str, Exception, Activity | None]] = []

    @hookimpl
    def on_turn_error(self, stage: str, error: Exception, activity: Activity | None) -> None:
        self.calls.append((stage, error, activity))


@pytest.mark.asyncio
async def test_run_middleware_revokes_context_after_success(adapter: RecordingAdapter) -> None:
    captured: list[TurnContext] = []

    async def logic(context: TurnContext) -> None:
        captured.append(context)
        await context.send_activity("hi")

    context = adapter.create_context(Activity.model_validate(INBOUND))
    await adapter.run_middleware(context, logic)

    assert captured == [context]
    assert context.is_live is False
    assert [activity.text for activity in adapter.sent] == ["hi"]


@pytest.mark.asyncio
async def test_run_middleware_revokes_and_reraises_same_error(adapter: RecordingAdapter) -> None:
    recorder = ErrorRecorder()
    adapter.register_plugin(recorder, name="recorder")
    failure = RuntimeError("logic broke")

    async def logic(context: TurnContext) -> None:
        raise failure

    context = adapter.create_context(Activity.model_validate(INBOUND))
    with pytest.raises(RuntimeError) as excinfo:
        await adapter.run_middleware(context, logic)

    assert excinfo.value is failure
    assert context.is_live is False
    assert len(recorder.calls) == 1
    stage, error, activity = recorder.calls[0]
    assert stage == "turn"
    assert error is failure
    assert activity is not None and activity.id == "in-1"


@pytest.mark.asyncio
async def test_middleware_runs_around_logic_in_registration_order(adapter: RecordingAdapter) -> None:
    log: list[str] = []

    async def first(context: TurnContext, next: NextFn) -> None:
        log.append("first")
        await next()
        log.append("first:done")

    class Second:
        async def on_turn(self, context: TurnContext, next: NextFn) -> None:
            log.append("second")
            await next()

    async def logic(context: TurnContext) -> None:
        log.append("logic")

    adapter.use(first).use(Second())
    await adapter.run_middleware(adapter.create_context(Activity.model_validate(INBOUND)), logic)

    assert log == ["first", "second", "logic", "first:done"]
    assert len(adapter.middleware) == 2


@pytest.mark.asyncio
async def test_captured_context_is_stale_after_turn(adapter: RecordingAdapter) -> None:
    captured: list[TurnContext] = []

    async def logic(context: TurnContext) -> None:
        captured.append(context)

    await adapter.run_middleware(adapter.create_context(Activity.model_validate(INBOUND)), logic)

    with pytest.raises(StaleContextError):
        await captured[0].send_activity("too late")
    assert adapter.sent == []


@pytest.mark.asyncio
async def test_continue_conversation_replays_reference(adapter: RecordingAdapter) -> None:
    reference = TurnContext.get_conversation_reference(INBOUND)
    seen: list[Activity] = []

    async def logic(context: TurnContext) -> None:
        seen.append(context.activity)
        await context.send_activity("proactive")

    await adapter.continue_conversation(reference, logic)

    request = seen[0]
    assert request.type is None
    assert request.id == "in-1"
    assert request.from_property is not None and request.from_property.id == "user"
    assert request.recipient is not None and request.recipient.id == "bot"
    sent = adapter.sent[0]
    assert sent.recipient is not None and sent.recipient.id == "user"
    assert sent.conversation is not None and sent.conversation.id == "c1"


@pytest.mark.asyncio
async def test_turn_binds_conversation_for_logging(adapter: RecordingAdapter) -> None:
    seen: list[str] = []

    async def logic(context: TurnContext) -> None:
        seen.append(current_conversation())

    await adapter.run_middleware(adapter.create_context(Activity.model_validate(INBOUND)), logic)

    assert seen == ["c1"]
    assert current_conversation() == "-"


@pytest.mark.asyncio
async def test_logic_may_return_plain_value(adapter: RecordingAdapter) -> None:
    def logic(context: TurnContext) -> Any:
        return "ignored"

    context = adapter.create_context(Activity.model_validate(INBOUND))
    await adapter.run_middleware(context, logic)

    assert context.is_live is False
