"""
Price Feeds — интерфейсы внешних ценовых фидов

Два независимых фида:
- Push (медленный, авторитетный): round с ответом и временем обновления,
  8 знаков после запятой
- Pull (быстрый): keeper приносит подписанный update (за плату), фид
  отдаёт (price, conf, expo, publish_time)

In-memory реализации используются в тестах и симуляциях. Проверка
подписей update — ответственность самого pull-фида.
"""

from typing import Protocol, Sequence

from pydantic import BaseModel, Field

# =============================================================================
# DATA
# =============================================================================


class PushRound(BaseModel):
    """Последний round push-фида."""

    answer: int = Field(..., description="Цена с decimals фида (обычно 8)")
    updated_at: int = Field(..., ge=0)

    model_config = {"frozen": True}


class PullPrice(BaseModel):
    """Цена pull-фида: price * 10**expo."""

    price: int
    conf: int
    expo: int
    publish_time: int = Field(..., ge=0)

    model_config = {"frozen": True}


class PriceUpdate(BaseModel):
    """Подписанный update pull-фида."""

    price: int
    conf: int
    expo: int
    publish_time: int = Field(..., ge=0)
    signature: bytes = b""

    model_config = {"frozen": True}


class PriceFeedUnavailable(Exception):
    """Pull-фид не может отдать цену с запрошенными параметрами."""


# =============================================================================
# PROTOCOLS
# =============================================================================


class PushPriceFeed(Protocol):
    """Медленный авторитетный фид."""

    def latest_round_data(self) -> PushRound | None: ...


class PullPriceFeed(Protocol):
    """Быстрый pull-фид."""

    def get_price_no_older_than(self, max_age: int) -> PullPrice: ...

    def get_update_fee(self, updates: Sequence[PriceUpdate]) -> int: ...

    def update_price_feeds(self, updates: Sequence[PriceUpdate], fee: int) -> None: ...


# =============================================================================
# IN-MEMORY FEEDS
# =============================================================================


class InMemoryPushFeed:
    """Push-фид с ручной установкой round."""

    def __init__(self, decimals: int = 8):
        self.decimals = decimals
        self._round: PushRound | None = None

    def set_round(self, answer: int, updated_at: int) -> None:
        self._round = PushRound(answer=answer, updated_at=updated_at)

    def latest_round_data(self) -> PushRound | None:
        return self._round


class InMemoryPullFeed:
    """
    Pull-фид, принимающий PriceUpdate.

    Более старые update (по publish_time) игнорируются.
    """

    def __init__(self, clock, update_fee_per_update: int = 1):
        self._clock = clock
        self._update_fee_per_update = update_fee_per_update
        self._latest: PullPrice | None = None
        self.fees_collected = 0

    def get_update_fee(self, updates: Sequence[PriceUpdate]) -> int:
        return self._update_fee_per_update * len(updates)

    def update_price_feeds(self, updates: Sequence[PriceUpdate], fee: int) -> None:
        required = self.get_update_fee(updates)
        if fee < required:
            raise ValueError(f"insufficient update fee: {fee} < {required}")
        self.fees_collected += fee
        for update in updates:
            if self._latest is not None and update.publish_time <= self._latest.publish_time:
                continue
            self._latest = PullPrice(
                price=update.price,
                conf=update.conf,
                expo=update.expo,
                publish_time=update.publish_time,
            )

    def get_price_no_older_than(self, max_age: int) -> PullPrice:
        if self._latest is None:
            raise PriceFeedUnavailable("no price published")
        if self._clock.now() - self._latest.publish_time > max_age:
            raise PriceFeedUnavailable(
                f"price older than {max_age}s (published at {self._latest.publish_time})"
            )
        return self._latest

    def snapshot(self) -> dict:
        return {"latest": self._latest, "fees_collected": self.fees_collected}

    def restore(self, state: dict) -> None:
        self._latest = state["latest"]
        self.fees_collected = state["fees_collected"]
