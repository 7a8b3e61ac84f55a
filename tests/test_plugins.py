from __future__ import annotations

from typing import Any

import pytest
from conftest import INBOUND, RecordingAdapter

from turnstile.context import TurnContext
from turnstile.hookspecs import hookimpl
from turnstile.middleware import NextFn
from turnstile.schema import Activity


def tagging_middleware(tag: str, log: list[str]) -> Any:
    async def handler(context: TurnContext, next: NextFn) -> None:
        log.append(tag)
        await next()

    return handler


class SinglePlugin:
    def __init__(self, log: list[str]) -> None:
        self.log = log

    @hookimpl
    def provide_middleware(self, adapter: Any) -> Any:
        return tagging_middleware("single", self.log)


class ListPlugin:
    def __init__(self, log: list[str]) -> None:
        self.log = log

    @hookimpl
    def provide_middleware(self) -> list[Any]:
        return [tagging_middleware("list-a", self.log), tagging_middleware("list-b", self.log)]


class BrokenPlugin:
    @hookimpl
    def provide_middleware(self, adapter: Any) -> Any:
        raise RuntimeError("plugin exploded")


class AsyncPlugin:
    @hookimpl
    async def provide_middleware(self, adapter: Any) -> Any:
        return None


class ErrorRecorder:
    def __init__(self) -> None:
        self.stages: list[str] = []

    @hookimpl
    def on_turn_error(self, stage: str, error: Exception) -> None:
        self.stages.append(stage)


class FailingObserver:
    @hookimpl
    def on_turn_error(self, stage: str) -> None:
        raise RuntimeError("observer exploded")


async def run_turn(adapter: RecordingAdapter, log: list[str]) -> None:
    async def logic(context: TurnContext) -> None:
        log.append("logic")

    await adapter.run_middleware(adapter.create_context(Activity.model_validate(INBOUND)), logic)


@pytest.mark.asyncio
async def test_plugin_middleware_runs_in_registration_order(adapter: RecordingAdapter) -> None:
    log: list[str] = []
    adapter.register_plugin(SinglePlugin(log), name="single")
    adapter.register_plugin(ListPlugin(log), name="list")

    added = adapter.load_plugins(entrypoints=False)
    await run_turn(adapter, log)

    assert added == 3
    assert log == ["single", "list-a", "list-b", "logic"]


def test_load_plugins_skips_plugins_already_loaded(adapter: RecordingAdapter) -> None:
    log: list[str] = []
    adapter.register_plugin(SinglePlugin(log), name="single")

    assert adapter.load_plugins(entrypoints=False) == 1
    assert adapter.load_plugins(entrypoints=False) == 0

    adapter.register_plugin(ListPlugin(log), name="list")
    assert adapter.load_plugins(entrypoints=False) == 2
    assert len(adapter.middleware) == 3


@pytest.mark.asyncio
async def test_broken_plugin_is_isolated_and_reported(adapter: RecordingAdapter) -> None:
    log: list[str] = []
    recorder = ErrorRecorder()
    adapter.register_plugin(recorder, name="recorder")
    adapter.register_plugin(BrokenPlugin(), name="broken")
    adapter.register_plugin(AsyncPlugin(), name="async")
    adapter.register_plugin(SinglePlugin(log), name="single")

    assert adapter.load_plugins(entrypoints=False) == 1
    await run_turn(adapter, log)

    assert recorder.stages == ["provide_middleware:broken"]
    assert log == ["single", "logic"]


@pytest.mark.asyncio
async def test_failing_error_observer_does_not_mask_turn_error(adapter: RecordingAdapter) -> None:
    recorder = ErrorRecorder()
    adapter.register_plugin(FailingObserver(), name="failing")
    adapter.register_plugin(recorder, name="recorder")

    async def logic(context: TurnContext) -> None:
        raise KeyError("missing")

    with pytest.raises(KeyError):
        await adapter.run_middleware(adapter.create_context(Activity.model_validate(INBOUND)), logic)

    assert recorder.stages == ["turn"]


def test_hook_report_lists_plugins_per_hook(adapter: RecordingAdapter) -> None:
    adapter.register_plugin(SinglePlugin([]), name="single")
    adapter.register_plugin(ErrorRecorder(), name="recorder")

    report = adapter.hook_report()

    assert report == {"on_turn_error": ["recorder"], "provide_middleware": ["single"]}
