"""Services package for MediQueue."""

from .queue_service import QueueService
from .token_store import TokenStore
from .publisher import ChangePublisher, CallbackSubscriber, QueueSubscription
from .providers import ProviderDirectory, MongoProviderDirectory
from .clock import Clock, FixedClock

__all__ = [
    "QueueService",
    "TokenStore",
    "ChangePublisher",
    "CallbackSubscriber",
    "QueueSubscription",
    "ProviderDirectory",
    "MongoProviderDirectory",
    "Clock",
    "FixedClock"
]
