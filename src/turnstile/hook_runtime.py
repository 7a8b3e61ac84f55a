"""Hook execution runtime with per-plugin fault isolation."""

from __future__ import annotations

import inspect
from typing import Any

import pluggy
from loguru import logger

from turnstile.schema import Activity


class HookRuntime:
    """Safe wrapper around pluggy hook execution."""

    def __init__(self, plugin_manager: pluggy.PluginManager) -> None:
        self._plugin_manager = plugin_manager

    def collect_sync(self, hook_name: str, *, skip: set[str] | None = None, **kwargs: Any) -> list[tuple[str, Any]]:
        """Run implementations in registration order and pair each successful value with its plugin name.

        Plugins named in ``skip`` are not called.
        """

        results: list[tuple[str, Any]] = []
        for impl in self._iter_hookimpls(hook_name):
            plugin_name = impl.plugin_name or "<unknown>"
            if skip and plugin_name in skip:
                continue
            call_kwargs = self._kwargs_for_impl(impl, kwargs)
            try:
                value = impl.function(**call_kwargs)
            except Exception as error:
                self.notify_error_sync(stage=f"{hook_name}:{plugin_name}", error=error, activity=None)
                continue
            if inspect.isawaitable(value):
                if inspect.iscoroutine(value):
                    value.close()
                logger.warning("hook.async_not_supported hook={} plugin={}", hook_name, plugin_name)
                continue
            results.append((plugin_name, value))
        return results

    async def notify_error(self, *, stage: str, error: Exception, activity: Activity | None) -> None:
        """Call on_turn_error hooks, swallowing observer failures."""

        for impl in self._iter_hookimpls("on_turn_error"):
            call_kwargs = self._kwargs_for_impl(impl, {"stage": stage, "error": error, "activity": activity})
            try:
                value = impl.function(**call_kwargs)
                if inspect.isawaitable(value):
                    await value
            except Exception:
                logger.opt(exception=True).warning(
                    "hook.on_turn_error_failed stage={} plugin={}",
                    stage,
                    impl.plugin_name or "<unknown>",
                )

    def notify_error_sync(self, *, stage: str, error: Exception, activity: Activity | None) -> None:
        """Synchronous on_turn_error dispatch for registration paths."""

        logger.warning("hook.failed stage={} error={!r}", stage, error)
        for impl in self._iter_hookimpls("on_turn_error"):
            call_kwargs = self._kwargs_for_impl(impl, {"stage": stage, "error": error, "activity": activity})
            try:
                value = impl.function(**call_kwargs)
            except Exception:
                logger.opt(exception=True).warning(
                    "hook.on_turn_error_failed stage={} plugin={}",
                    stage,
                    impl.plugin_name or "<unknown>",
                )
                continue
            if inspect.isawaitable(value):
                if inspect.iscoroutine(value):
                    value.close()
                logger.warning(
                    "hook.async_not_supported hook=on_turn_error plugin={}",
                    impl.plugin_name or "<unknown>",
                )

    def hook_report(self) -> dict[str, list[str]]:
        """Build a hook->plugins mapping for diagnostics."""

        report: dict[str, list[str]] = {}
        for hook_name, hook_caller in sorted(self._plugin_manager.hook.__dict__.items()):
            if hook_name.startswith("_") or not hasattr(hook_caller, "get_hookimpls"):
                continue
            plugin_names = [impl.plugin_name for impl in hook_caller.get_hookimpls()]
            if plugin_names:
                report[hook_name] = plugin_names
        return report

    def _iter_hookimpls(self, hook_name: str) -> list[Any]:
        hook = getattr(self._plugin_manager.hook, hook_name, None)
        if hook is None or not hasattr(hook, "get_hookimpls"):
            return []
        # registration order, so the first plugin registered contributes the outermost middleware
        return list(hook.get_hookimpls())

    @staticmethod
    def _kwargs_for_impl(impl: Any, kwargs: dict[str, Any]) -> dict[str, Any]:
        return {name: kwargs[name] for name in impl.argnames if name in kwargs}
