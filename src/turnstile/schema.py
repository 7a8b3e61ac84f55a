"""Activity data model shared by adapters, contexts and middleware."""

from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

DEFAULT_DELAY_MS = 1000


class ActivityTypes(str, Enum):
    """Known activity type tags."""

    message = "message"
    contact_relation_update = "contactRelationUpdate"
    conversation_update = "conversationUpdate"
    typing = "typing"
    end_of_conversation = "endOfConversation"
    event = "event"
    invoke = "invoke"
    delete_user_data = "deleteUserData"
    message_update = "messageUpdate"
    message_delete = "messageDelete"
    installation_update = "installationUpdate"
    message_reaction = "messageReaction"
    suggestion = "suggestion"
    delay = "delay"
    invoke_response = "invokeResponse"
    trace = "trace"


class InputHints(str, Enum):
    accepting_input = "acceptingInput"
    ignoring_input = "ignoringInput"
    expecting_input = "expectingInput"


class SchemaModel(BaseModel):
    """Base for wire-shaped models: camelCase aliases, unknown fields kept."""

    model_config = ConfigDict(
        extra="allow",
        populate_by_name=True,
        alias_generator=to_camel,
        use_enum_values=True,
    )

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")


class ChannelAccount(SchemaModel):
    id: str | None = None
    name: str | None = None
    role: str | None = None


class ConversationAccount(SchemaModel):
    id: str | None = None
    name: str | None = None
    is_group: bool | None = None
    conversation_type: str | None = None


class ResourceResponse(SchemaModel):
    """Delivery result returned by a transport for one activity."""

    id: str | None = None


class Activity(SchemaModel):
    """One conversational message or event exchanged with a channel."""

    type: str | None = None
    id: str | None = None
    timestamp: datetime | None = None
    local_timestamp: datetime | None = None
    service_url: str | None = None
    channel_id: str | None = None
    from_property: ChannelAccount | None = Field(default=None, alias="from")
    recipient: ChannelAccount | None = None
    conversation: ConversationAccount | None = None
    reply_to_id: str | None = None
    text: str | None = None
    speak: str | None = None
    input_hint: str | None = None
    locale: str | None = None
    text_format: str | None = None
    attachments: list[Any] | None = None
    entities: list[Any] | None = None
    channel_data: Any = None
    value: Any = None
    name: str | None = None
    members_added: list[ChannelAccount] | None = None
    members_removed: list[ChannelAccount] | None = None


class ConversationReference(SchemaModel):
    """Addressing subset of an activity, enough to reach the same conversation again."""

    activity_id: str | None = None
    user: ChannelAccount | None = None
    bot: ChannelAccount | None = None
    conversation: ConversationAccount | None = None
    channel_id: str | None = None
    service_url: str | None = None


class ConversationParameters(SchemaModel):
    is_group: bool | None = None
    bot: ChannelAccount | None = None
    members: list[ChannelAccount] | None = None
    topic_name: str | None = None
    activity: Activity | None = None
    channel_data: Any = None


class ConversationResourceResponse(SchemaModel):
    id: str | None = None
    service_url: str | None = None
    activity_id: str | None = None


class InvokeResponse(SchemaModel):
    """Status and body returned to the channel for an inbound request."""

    status: int
    body: Any = None


def coerce_activity(value: Activity | Mapping[str, Any] | str) -> Activity:
    """Build a private ``Activity`` copy from an activity, a mapping or plain text."""

    if isinstance(value, Activity):
        return value.model_copy(deep=True)
    if isinstance(value, str):
        return Activity(type=ActivityTypes.message.value, text=value)
    if isinstance(value, Mapping):
        return Activity.model_validate(dict(value))
    raise TypeError(f"cannot build an activity from {type(value).__name__}")


def coerce_reference(value: ConversationReference | Mapping[str, Any]) -> ConversationReference:
    if isinstance(value, ConversationReference):
        return value.model_copy(deep=True)
    if isinstance(value, Mapping):
        return ConversationReference.model_validate(dict(value))
    raise TypeError(f"cannot build a conversation reference from {type(value).__name__}")


def delay_seconds(activity: Activity) -> float:
    """Seconds a ``delay`` activity asks for; its value is in milliseconds and defaults to one second."""

    value = activity.value
    milliseconds = value if isinstance(value, (int, float)) and not isinstance(value, bool) else DEFAULT_DELAY_MS
    return max(0.0, float(milliseconds)) / 1000
