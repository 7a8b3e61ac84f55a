"""Middleware chain execution.

A chain is an ordered list of steps wrapped around a terminal handler. Every
step receives a ``next`` callable that runs the remainder of the chain; code
before ``await next()`` is the leading edge and code after it is the trailing
edge. A step that never calls ``next`` short-circuits the chain.
"""

from __future__ import annotations

import inspect
from collections.abc import Awaitable, Callable, Iterator, Sequence
from functools import partial
from typing import TYPE_CHECKING, Any, Protocol, Self, runtime_checkable

from turnstile.errors import MiddlewareUsageError

if TYPE_CHECKING:
    from turnstile.context import TurnContext

type NextFn = Callable[[], Awaitable[Any]]
type Promiseable[T] = Awaitable[T] | T
type MiddlewareHandler = Callable[[TurnContext, NextFn], Promiseable[None]]
type ChainStep = Callable[[NextFn], Promiseable[Any]]


@runtime_checkable
class Middleware(Protocol):
    """Object form of middleware."""

    def on_turn(self, context: TurnContext, next: NextFn) -> Promiseable[None]: ...


async def resolve(value: Any) -> Any:
    """Await ``value`` when it is awaitable, otherwise return it unchanged."""

    if inspect.isawaitable(value):
        return await value
    return value


async def run_chain(
    steps: Sequence[ChainStep],
    terminal: Callable[[], Promiseable[Any]],
    *,
    default: Any = None,
) -> Any:
    """Run ``steps`` in order around ``terminal`` and return the outermost result.

    The list is snapshotted before the first step runs. A step that returns
    ``None`` after awaiting ``next`` to completion passes the downstream result
    through; any other step that returns ``None`` yields ``default``.
    """

    snapshot = tuple(steps)

    async def run_step(index: int) -> Any:
        if index >= len(snapshot):
            return await resolve(terminal())

        called = False
        completed = False
        downstream: Any = None

        async def proceed() -> Any:
            nonlocal downstream, completed
            downstream = await run_step(index + 1)
            completed = True
            return downstream

        def next_() -> Awaitable[Any]:
            nonlocal called
            if called:
                raise MiddlewareUsageError(f"next() called more than once by chain step #{index}")
            called = True
            return proceed()

        result = await resolve(snapshot[index](next_))
        if result is not None:
            return result
        # a downstream that raised (and was caught) or never ran yields the default
        return downstream if completed else default

    return await run_step(0)


def normalize_middleware(plugin: Any) -> MiddlewareHandler:
    """Reduce function or object middleware to one ``(context, next)`` callable."""

    if isinstance(plugin, type):
        raise MiddlewareUsageError(f"middleware must be an instance, got class {plugin.__name__}")
    on_turn = getattr(plugin, "on_turn", None)
    if callable(on_turn):
        return on_turn
    if callable(plugin):
        return plugin
    raise MiddlewareUsageError(f"invalid middleware type: {type(plugin).__name__}")


class MiddlewareSet:
    """Ordered set of middleware that is itself usable as middleware.

    ```python
    middleware = MiddlewareSet()

    async def timing(context, next):
        started = time.monotonic()
        await next()
        logger.info("turn took {}", time.monotonic() - started)

    middleware.use(timing)
    await middleware.run(context, lambda: bot_logic(context))
    ```
    """

    def __init__(self, *middleware: MiddlewareHandler | Middleware) -> None:
        self._middleware: list[MiddlewareHandler] = []
        self.use(*middleware)

    def use(self, *middleware: MiddlewareHandler | Middleware) -> Self:
        """Append middleware in the order given."""

        handlers = [normalize_middleware(plugin) for plugin in middleware]
        self._middleware.extend(handlers)
        return self

    async def on_turn(self, context: TurnContext, next: NextFn) -> None:
        await self.run(context, next)

    async def run(self, context: TurnContext, logic: Callable[[], Promiseable[Any]]) -> None:
        """Run every registered middleware around ``logic`` for one turn."""

        steps = [partial(handler, context) for handler in self._middleware]
        await run_chain(steps, logic)

    def __len__(self) -> int:
        return len(self._middleware)

    def __iter__(self) -> Iterator[MiddlewareHandler]:
        return iter(list(self._middleware))
