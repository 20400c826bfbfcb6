"""Concrete implementations of provider interfaces."""

from .chat.slack import SlackDeliveryAdapter, parse_message_event
from .classifier.backend import BackendClassifierAdapter
from .classifier.completion import CompletionClassifierAdapter
from .feed.memory import InMemoryFeed

__all__ = [
    "BackendClassifierAdapter",
    "CompletionClassifierAdapter",
    "InMemoryFeed",
    "SlackDeliveryAdapter",
    "parse_message_event",
]
