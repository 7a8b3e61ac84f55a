from __future__ import annotations

from typing import Any

import pytest

from turnstile.adapter import BotAdapter
from turnstile.context import TurnContext
from turnstile.schema import (
    Activity,
    ConversationParameters,
    ConversationReference,
    ConversationResourceResponse,
    ResourceResponse,
)

INBOUND: dict[str, Any] = {
    "type": "message",
    "id": "in-1",
    "text": "hello",
    "channelId": "test",
    "serviceUrl": "https://x",
    "conversation": {"id": "c1"},
    "from": {"id": "user", "name": "User1"},
    "recipient": {"id": "bot", "name": "Bot"},
}


class RecordingAdapter(BotAdapter):
    def __init__(self) -> None:
        super().__init__()
        self.sent: list[Activity] = []
        self.updated: list[Activity] = []
        self.deleted: list[ConversationReference] = []

    async def send_activities(self, context: TurnContext, activities: list[Activity]) -> list[ResourceResponse]:
        start = len(self.sent)
        self.sent.extend(activities)
        return [ResourceResponse(id=f"sent-{start + index}") for index in range(len(activities))]

    async def update_activity(self, context: TurnContext, activity: Activity) -> None:
        self.updated.append(activity)

    async def delete_activity(self, context: TurnContext, reference: ConversationReference) -> None:
        self.deleted.append(reference)


class FakeConnector:
    def __init__(self, service_url: str) -> None:
        self.service_url = service_url
        self.batches: list[list[Activity]] = []
        self.updated: list[Activity] = []
        self.deleted: list[ConversationReference] = []
        self.created: list[ConversationParameters] = []

    async def send_activities(self, activities: list[Activity]) -> list[ResourceResponse]:
        self.batches.append(list(activities))
        return [ResourceResponse(id=f"{self.service_url}#{len(self.batches)}.{index}") for index in range(len(activities))]

    async def update_activity(self, activity: Activity) -> None:
        self.updated.append(activity)

    async def delete_activity(self, reference: ConversationReference) -> None:
        self.deleted.append(reference)

    async def create_conversation(self, parameters: ConversationParameters) -> ConversationResourceResponse:
        self.created.append(parameters)
        return ConversationResourceResponse(id="new-convo", service_url="https://y")


class ConnectorPool:
    def __init__(self) -> None:
        self.clients: dict[str, FakeConnector] = {}

    def __call__(self, service_url: str) -> FakeConnector:
        return self.clients.setdefault(service_url, FakeConnector(service_url))


@pytest.fixture
def adapter() -> RecordingAdapter:
    return RecordingAdapter()


@pytest.fixture
def context(adapter: RecordingAdapter) -> TurnContext:
    return TurnContext(adapter, Activity.model_validate(INBOUND))


@pytest.fixture
def connectors() -> ConnectorPool:
    return ConnectorPool()
