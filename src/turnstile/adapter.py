"""Adapter base class: owns the middleware chain and drives turns."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable, Mapping
from typing import Any, Self

import pluggy
from loguru import logger

from turnstile.context import TurnContext, bind_conversation, current_conversation
from turnstile.hook_runtime import HookRuntime
from turnstile.hookspecs import TURNSTILE_HOOK_NAMESPACE, TurnstileHookSpecs
from turnstile.middleware import Middleware, MiddlewareHandler, MiddlewareSet, Promiseable
from turnstile.schema import Activity, ConversationReference, ResourceResponse

type BotLogic = Callable[[TurnContext], Promiseable[Any]]


class BotAdapter(ABC):
    """Connects bot logic to a channel.

    Subclasses implement the transport calls; the base class runs middleware
    registered with ``use()`` (and contributed by plugins) around the bot
    logic and revokes each turn's context once the turn has resolved.
    """

    def __init__(self) -> None:
        self._middleware = MiddlewareSet()
        self._plugin_manager = pluggy.PluginManager(TURNSTILE_HOOK_NAMESPACE)
        self._plugin_manager.add_hookspecs(TurnstileHookSpecs)
        self._hook_runtime = HookRuntime(self._plugin_manager)
        self._loaded_plugins: set[str] = set()

    @property
    def middleware(self) -> MiddlewareSet:
        return self._middleware

    def use(self, *middleware: MiddlewareHandler | Middleware) -> Self:
        """Register middleware; it runs in registration order on every turn."""

        self._middleware.use(*middleware)
        return self

    def register_plugin(self, plugin: object, name: str | None = None) -> Self:
        """Register a pluggy plugin. Its middleware is added by ``load_plugins()``."""

        self._plugin_manager.register(plugin, name=name)
        return self

    def load_plugins(self, *, entrypoints: bool = True) -> int:
        """Collect middleware from plugins not loaded yet and return how many were added."""

        if entrypoints:
            self._plugin_manager.load_setuptools_entrypoints(TURNSTILE_HOOK_NAMESPACE)
        added = 0
        provided = self._hook_runtime.collect_sync("provide_middleware", skip=self._loaded_plugins, adapter=self)
        for plugin_name, batch in provided:
            middleware = _unpack_middleware(batch)
            self.use(*middleware)
            self._loaded_plugins.add(plugin_name)
            added += len(middleware)
            logger.info("plugin.loaded plugin={} middleware={}", plugin_name, len(middleware))
        return added

    def hook_report(self) -> dict[str, list[str]]:
        return self._hook_runtime.hook_report()

    @abstractmethod
    async def send_activities(self, context: TurnContext, activities: list[Activity]) -> list[ResourceResponse]:
        """Deliver activities to the channel, one result per activity."""

    @abstractmethod
    async def update_activity(self, context: TurnContext, activity: Activity) -> None:
        """Replace a previously delivered activity."""

    @abstractmethod
    async def delete_activity(self, context: TurnContext, reference: ConversationReference) -> None:
        """Delete a previously delivered activity."""

    def create_context(self, request: Activity) -> TurnContext:
        return TurnContext(self, request)

    async def continue_conversation(
        self,
        reference: ConversationReference | Mapping[str, Any],
        logic: BotLogic,
    ) -> None:
        """Run a proactive turn addressed to a previously captured conversation.

        The synthesized activity carries the addressing fields of ``reference``
        and no ``type``.
        """

        request = TurnContext.apply_conversation_reference(Activity(), reference, is_incoming=True)
        context = self.create_context(request)
        await self.run_middleware(context, logic)

    async def run_middleware(self, context: TurnContext, logic: BotLogic) -> None:
        """Run the middleware chain with ``logic`` as terminal, then revoke ``context``."""

        activity = context.activity
        with bind_conversation(activity):
            logger.debug("turn.start type={} conversation={}", activity.type, current_conversation())
            try:
                await self._middleware.run(context, lambda: logic(context))
            except Exception as error:
                logger.warning("turn.failed conversation={} error={!r}", current_conversation(), error)
                await self._hook_runtime.notify_error(stage="turn", error=error, activity=activity)
                raise
            finally:
                context.revoke()
            logger.debug("turn.end conversation={}", current_conversation())


def _unpack_middleware(batch: Any) -> list[Any]:
    if batch is None:
        return []
    if isinstance(batch, (list, tuple)):
        return list(batch)
    return [batch]
