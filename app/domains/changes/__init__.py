from app.domains.changes.entities import Change, ChangeType
from app.domains.changes.feed import ChangeStream
from app.domains.changes.router import ChangeRouter, Subscription, SUBSCRIPTION_CLOSED

__all__ = [
    "Change", "ChangeType", "ChangeStream",
    "ChangeRouter", "Subscription", "SUBSCRIPTION_CLOSED",
]
