"""Oracle — push/pull фиды и OracleAdapter."""

from .adapter import FeedPrice, OracleAdapter, OracleConfig
from .feeds import (
    InMemoryPullFeed,
    InMemoryPushFeed,
    PriceFeedUnavailable,
    PriceUpdate,
    PullPrice,
    PullPriceFeed,
    PushPriceFeed,
    PushRound,
)

__all__ = [
    "FeedPrice",
    "OracleAdapter",
    "OracleConfig",
    "InMemoryPullFeed",
    "InMemoryPushFeed",
    "PriceFeedUnavailable",
    "PriceUpdate",
    "PullPrice",
    "PullPriceFeed",
    "PushPriceFeed",
    "PushRound",
]
