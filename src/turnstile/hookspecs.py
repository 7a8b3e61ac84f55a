"""Pluggy hook namespace and adapter hook specifications."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import pluggy

from turnstile.schema import Activity

if TYPE_CHECKING:
    from turnstile.adapter import BotAdapter

TURNSTILE_HOOK_NAMESPACE = "turnstile"
hookspec = pluggy.HookspecMarker(TURNSTILE_HOOK_NAMESPACE)
hookimpl = pluggy.HookimplMarker(TURNSTILE_HOOK_NAMESPACE)


class TurnstileHookSpecs:
    """Hook contract for adapter plugins."""

    @hookspec
    def provide_middleware(self, adapter: BotAdapter) -> Any:
        """Return middleware (or a list of middleware) to register on ``adapter``."""

    @hookspec
    def on_turn_error(self, stage: str, error: Exception, activity: Activity | None) -> None:
        """Observe failures raised while a turn or plugin hook runs."""
