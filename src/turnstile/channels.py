"""Channel capability lookup used when deciding how to render choices."""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from turnstile.context import TurnContext


class Channels(str, Enum):
    facebook = "facebook"
    skype = "skype"
    msteams = "msteams"
    telegram = "telegram"
    kik = "kik"
    email = "email"
    slack = "slack"
    groupme = "groupme"
    sms = "sms"
    emulator = "emulator"
    directline = "directline"
    webchat = "webchat"
    console = "console"
    cortana = "cortana"


_SUGGESTED_ACTION_LIMITS: dict[str, int] = {
    Channels.facebook.value: 10,
    Channels.skype.value: 10,
    Channels.kik.value: 20,
    Channels.slack.value: 100,
    Channels.telegram.value: 100,
    Channels.emulator.value: 100,
}

_CARD_ACTION_LIMITS: dict[str, int] = {
    Channels.facebook.value: 3,
    Channels.skype.value: 3,
    Channels.msteams.value: 3,
    Channels.slack.value: 100,
    Channels.emulator.value: 100,
    Channels.directline.value: 100,
    Channels.webchat.value: 100,
    Channels.cortana.value: 100,
}

MAX_ACTION_TITLE_LENGTH = 20


def supports_suggested_actions(channel_id: str, button_count: int = 100) -> bool:
    """True if the channel renders ``button_count`` suggested actions."""

    limit = suggested_action_limit(channel_id)
    return limit is not None and button_count <= limit


def supports_card_actions(channel_id: str, button_count: int = 100) -> bool:
    """True if the channel renders ``button_count`` card actions."""

    limit = card_action_limit(channel_id)
    return limit is not None and button_count <= limit


def has_message_feed(channel_id: str) -> bool:
    return channel_id != Channels.cortana.value


def max_action_title_length(channel_id: str) -> int:
    _ = channel_id
    return MAX_ACTION_TITLE_LENGTH


def get_channel_id(context: TurnContext) -> str:
    return context.activity.channel_id or ""


def suggested_action_limit(channel_id: str) -> int | None:
    return _SUGGESTED_ACTION_LIMITS.get(channel_id)


def card_action_limit(channel_id: str) -> int | None:
    return _CARD_ACTION_LIMITS.get(channel_id)
