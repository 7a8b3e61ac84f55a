"""Turnstile - turn-processing pipeline for conversational bots."""

from .adapter import BotAdapter, BotLogic
from .connector import ChannelAdapter, ConnectorClient, InboundRequest
from .context import TurnContext
from .errors import (
    ActivityValidationError,
    AuthenticationError,
    MiddlewareUsageError,
    StaleContextError,
    TurnstileError,
    UnsupportedOperationError,
)
from .hookspecs import hookimpl
from .middleware import Middleware, MiddlewareSet
from .schema import Activity, ActivityTypes, ConversationReference, InvokeResponse, ResourceResponse

__version__ = "0.1.0"

__all__ = [
    "Activity",
    "ActivityTypes",
    "ActivityValidationError",
    "AuthenticationError",
    "BotAdapter",
    "BotLogic",
    "ChannelAdapter",
    "ConnectorClient",
    "ConversationReference",
    "InboundRequest",
    "InvokeResponse",
    "Middleware",
    "MiddlewareSet",
    "MiddlewareUsageError",
    "ResourceResponse",
    "StaleContextError",
    "TurnContext",
    "TurnstileError",
    "UnsupportedOperationError",
    "hookimpl",
]
