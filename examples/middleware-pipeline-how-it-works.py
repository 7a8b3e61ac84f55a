"""Turnstile Middleware Pipeline Examples - Core Patterns.

This script walks through how a turn flows through an adapter:
middleware leading and trailing edges, a send hook that rewrites replies,
and a proactive message sent after the turn has ended.
"""

from __future__ import annotations

import asyncio
import time

from loguru import logger

from turnstile import Activity, ActivityTypes, ConversationReference, TurnContext
from turnstile.middleware import NextFn
from turnstile.testing import TestAdapter, TestFlow

# ============================================================================
# MIDDLEWARE
# ============================================================================


async def timing(context: TurnContext, next: NextFn) -> None:
    """Logs how long the rest of the pipeline took."""
    started = time.perf_counter()
    await next()
    logger.info("turn took {:.2f}ms", (time.perf_counter() - started) * 1000)


class Signature:
    """Appends a signature to every outgoing message."""

    def __init__(self, signature: str) -> None:
        self.signature = signature

    async def on_turn(self, context: TurnContext, next: NextFn) -> None:
        async def sign(ctx: TurnContext, activities: list[Activity], send: NextFn) -> object:
            for activity in activities:
                if activity.type == ActivityTypes.message and activity.text:
                    activity.text = f"{activity.text} {self.signature}"
            return await send()

        context.on_send_activities(sign)
        await next()


# ============================================================================
# BOT LOGIC
# ============================================================================

saved_references: list[ConversationReference] = []


async def echo_bot(context: TurnContext) -> None:
    if context.activity.type != ActivityTypes.message:
        return
    saved_references.append(TurnContext.get_conversation_reference(context.activity))
    await context.send_activity(f"you said: {context.activity.text}")


async def reminder(context: TurnContext) -> None:
    await context.send_activity("this is a reminder")


# ============================================================================
# DEMO
# ============================================================================


async def main() -> None:
    adapter = TestAdapter(echo_bot).use(timing, Signature("~turnstile"))

    print("1. Each turn runs through timing -> signature -> bot")
    await (
        TestFlow(adapter)
        .send("hello")
        .assert_reply("you said: hello ~turnstile")
        .send("bye")
        .assert_reply("you said: bye ~turnstile")
    )

    print("2. A proactive turn reuses a saved conversation reference")
    await adapter.continue_conversation(saved_references[-1], reminder)
    reply = await adapter.next_reply()
    print(f"   proactive reply: {reply.text if reply else None!r}")
    print(f"   replying to: {reply.reply_to_id if reply else None!r}")


if __name__ == "__main__":
    asyncio.run(main())
