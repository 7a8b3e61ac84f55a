"""Channel adapter backed by a connector client.

``ChannelAdapter`` is the entry point a web server calls for every request a
channel posts to the bot: it parses and authenticates the activity, runs the
turn and reports the status the server should answer with.
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Protocol

from loguru import logger
from pydantic import ValidationError

from turnstile.adapter import BotAdapter, BotLogic
from turnstile.auth import AllowAllAuthenticator, Authenticator, authenticator_from_settings
from turnstile.context import TurnContext
from turnstile.errors import ActivityValidationError, AuthenticationError
from turnstile.schema import (
    Activity,
    ActivityTypes,
    ConversationAccount,
    ConversationParameters,
    ConversationReference,
    ConversationResourceResponse,
    InvokeResponse,
    ResourceResponse,
    coerce_reference,
    delay_seconds,
)

if TYPE_CHECKING:
    from turnstile.config import Settings

INVOKE_RESPONSE_KEY = "turnstile.invoke_response"


class ConnectorClient(Protocol):
    """Transport for one channel service url."""

    async def send_activities(self, activities: list[Activity]) -> list[ResourceResponse]: ...

    async def update_activity(self, activity: Activity) -> None: ...

    async def delete_activity(self, reference: ConversationReference) -> None: ...

    async def create_conversation(self, parameters: ConversationParameters) -> ConversationResourceResponse: ...


type ConnectorFactory = Callable[[str], ConnectorClient]


@dataclass(frozen=True)
class InboundRequest:
    """Raw request posted by a channel: JSON body plus HTTP headers."""

    body: Mapping[str, Any] | str | bytes
    headers: Mapping[str, str] = field(default_factory=dict)

    def header(self, name: str) -> str:
        wanted = name.casefold()
        for key, value in self.headers.items():
            if key.casefold() == wanted:
                return value
        return ""


def parse_activity(body: Mapping[str, Any] | str | bytes) -> Activity:
    """Validate a request body into an activity. The activity must carry a type."""

    try:
        payload = json.loads(body) if isinstance(body, (str, bytes)) else dict(body)
        activity = Activity.model_validate(payload)
    except (json.JSONDecodeError, TypeError, ValidationError) as exc:
        raise ActivityValidationError(f"request body is not a valid activity: {exc}") from exc
    if not activity.type:
        raise ActivityValidationError("request activity is missing its type")
    return activity


class ChannelAdapter(BotAdapter):
    """Adapter that authenticates channel requests and replies through connector clients."""

    def __init__(self, connector_factory: ConnectorFactory, authenticator: Authenticator | None = None) -> None:
        super().__init__()
        self._connector_factory = connector_factory
        self._authenticator = authenticator or AllowAllAuthenticator()
        self._connectors: dict[str, ConnectorClient] = {}

    @classmethod
    def from_settings(cls, connector_factory: ConnectorFactory, settings: Settings) -> ChannelAdapter:
        return cls(connector_factory, authenticator_from_settings(settings))

    def connector_for(self, service_url: str | None) -> ConnectorClient:
        """Return the (cached) connector for ``service_url``."""

        if not service_url:
            raise ActivityValidationError("activity has no service_url to deliver through")
        client = self._connectors.get(service_url)
        if client is None:
            client = self._connector_factory(service_url)
            self._connectors[service_url] = client
        return client

    async def process_activity(self, request: InboundRequest, logic: BotLogic) -> InvokeResponse:
        """Run one turn for a channel request and return the status to answer with.

        Raises ``AuthenticationError`` before any context exists when the sender
        can't be verified. Failures in middleware or ``logic`` propagate after
        the context has been revoked.
        """

        activity = parse_activity(request.body)
        try:
            await self._authenticator.verify(activity, request.header("Authorization"))
        except AuthenticationError as exc:
            logger.warning("turn.unauthenticated channel={} reason={}", activity.channel_id, exc.reason)
            raise

        context = self.create_context(activity)
        turn_state = context.turn_state
        await self.run_middleware(context, logic)

        if activity.type != ActivityTypes.invoke:
            return InvokeResponse(status=202)
        return _invoke_response(turn_state.get(INVOKE_RESPONSE_KEY))

    async def create_conversation(
        self,
        reference: ConversationReference | Mapping[str, Any],
        logic: BotLogic,
    ) -> None:
        """Start a new conversation with ``reference.user`` and run a proactive turn in it."""

        target = coerce_reference(reference)
        if target.user is None:
            raise ActivityValidationError("create_conversation() requires a reference with a user")
        client = self.connector_for(target.service_url)
        created = await client.create_conversation(
            ConversationParameters(is_group=False, bot=target.bot, members=[target.user])
        )
        logger.info("conversation.created id={} channel={}", created.id, target.channel_id)

        target.activity_id = None
        request = TurnContext.apply_conversation_reference(Activity(), target, is_incoming=True)
        request.conversation = ConversationAccount(id=created.id)
        if created.service_url:
            request.service_url = created.service_url
        await self.run_middleware(self.create_context(request), logic)

    async def send_activities(self, context: TurnContext, activities: list[Activity]) -> list[ResourceResponse]:
        responses: list[ResourceResponse] = []
        batch: list[Activity] = []
        for activity in activities:
            if activity.type == ActivityTypes.delay:
                responses.extend(await self._deliver(batch))
                batch = []
                await asyncio.sleep(delay_seconds(activity))
                responses.append(ResourceResponse())
            elif activity.type == ActivityTypes.invoke_response:
                responses.extend(await self._deliver(batch))
                batch = []
                context.turn_state[INVOKE_RESPONSE_KEY] = activity
                responses.append(ResourceResponse())
            else:
                if batch and batch[-1].service_url != activity.service_url:
                    responses.extend(await self._deliver(batch))
                    batch = []
                batch.append(activity)
        responses.extend(await self._deliver(batch))
        return responses

    async def update_activity(self, context: TurnContext, activity: Activity) -> None:
        _ = context
        await self.connector_for(activity.service_url).update_activity(activity)

    async def delete_activity(self, context: TurnContext, reference: ConversationReference) -> None:
        _ = context
        await self.connector_for(reference.service_url).delete_activity(reference)

    async def _deliver(self, batch: list[Activity]) -> list[ResourceResponse]:
        if not batch:
            return []
        client = self.connector_for(batch[0].service_url)
        return list(await client.send_activities(list(batch)))


def _invoke_response(queued: Activity | None) -> InvokeResponse:
    if queued is None or queued.value is None:
        return InvokeResponse(status=501)
    if isinstance(queued.value, InvokeResponse):
        return queued.value
    try:
        return InvokeResponse.model_validate(queued.value)
    except ValidationError:
        logger.warning("turn.invalid_invoke_response value={!r}", queued.value)
        return InvokeResponse(status=500)
