"""
OracleAdapter — сведение push и pull фидов в одну валидированную цену

Порядок проверок get_price(max_age):
1. Push-фид (авторитетный): отсутствует / цена <= 0 → PriceInvalid,
   старше push_max_age → PriceStale. Этот путь никогда не пропускается.
2. Pull-фид: невалиден, если недоступен, price/conf <= 0, expo >= 0
   или price / conf < min_confidence_ratio.
3. Для валидного pull: |push - pull| / push > max_diff_percent → PriceMismatch;
   возвращается более свежая из двух цен.
4. Невалидный pull → возвращается push.
5. Если задан max_age: timestamp + max_age < now → PriceStale.

Тихого fallback на «угаданную» цену нет: любой отказ прерывает операцию.
"""

from dataclasses import dataclass, replace
from typing import Sequence

from src.core.clock import Clock
from src.core.errors import (
    AuthorizationFailure,
    ErrorCode,
    OracleFailure,
    ValidationFailure,
)
from src.core.math.fixed_point import WAD, abs_diff, mul_div, to_wad
from src.core.transaction import Journal, entry_point
from src.monitoring.logger import get_logger
from src.oracle.feeds import (
    PriceFeedUnavailable,
    PriceUpdate,
    PullPriceFeed,
    PushPriceFeed,
)

logger = get_logger(__name__)

PRICE_DECIMALS = 18


# =============================================================================
# CONFIG
# =============================================================================


@dataclass(frozen=True)
class OracleConfig:
    """
    Конфигурация оракула.

    Значения по умолчанию соответствуют боевому деплою.
    """

    push_decimals: int = 8
    push_max_age: int = 90_000  # seconds
    pull_max_age: int = 90_000  # seconds
    min_confidence_ratio: int = 1_000  # price / conf
    max_diff_percent: int = to_wad("0.005")  # 0.5%

    def __post_init__(self) -> None:
        if self.push_decimals < 0 or self.push_decimals > PRICE_DECIMALS:
            raise ValueError(f"push_decimals out of range: {self.push_decimals}")
        if self.push_max_age <= 0 or self.pull_max_age <= 0:
            raise ValueError("max ages must be positive")
        if self.max_diff_percent <= 0 or self.max_diff_percent > WAD:
            raise ValueError(f"max_diff_percent out of range: {self.max_diff_percent}")


@dataclass(frozen=True)
class FeedPrice:
    """Цена одного фида в 18 decimals."""

    price: int
    timestamp: int
    source: str


# =============================================================================
# ADAPTER
# =============================================================================


class OracleAdapter:
    """Единая валидированная цена collateral (18 decimals)."""

    def __init__(
        self,
        config: OracleConfig,
        push_feed: PushPriceFeed,
        pull_feed: PullPriceFeed,
        clock: Clock,
        journal: Journal,
        owner: str,
    ):
        self.config = config
        self._push_feed = push_feed
        self._pull_feed = pull_feed
        self._clock = clock
        self._journal = journal
        self.owner = owner

    # -------------------------------------------------------------------------
    # Price
    # -------------------------------------------------------------------------

    def get_price(self, max_age: int | None = None) -> tuple[int, int]:
        """
        Валидированная цена и её timestamp.

        Args:
            max_age: Максимальный возраст цены (seconds). None — без
                дополнительного ограничения (только собственные max age фидов).

        Returns:
            (price, timestamp), price в 18 decimals

        Raises:
            OracleFailure: PriceInvalid / PriceStale / PriceMismatch
        """
        push = self._get_push_price()
        pull = self._get_pull_price()

        # Невалидная pull-цена (в т.ч. низкий conf) не сверяется с push
        if pull is not None:
            diff_percent = mul_div(abs_diff(push.price, pull.price), WAD, push.price)
            if diff_percent > self.config.max_diff_percent:
                raise OracleFailure(
                    ErrorCode.PRICE_MISMATCH,
                    "push and pull prices diverge",
                    diff_percent=diff_percent,
                    max_diff_percent=self.config.max_diff_percent,
                )
            chosen = pull if pull.timestamp >= push.timestamp else push
        else:
            chosen = push

        if max_age is not None and chosen.timestamp + max_age < self._clock.now():
            raise OracleFailure(
                ErrorCode.PRICE_STALE,
                f"{chosen.source} price older than max_age",
                timestamp=chosen.timestamp,
                max_age=max_age,
            )

        return chosen.price, chosen.timestamp

    def _get_push_price(self) -> FeedPrice:
        round_data = self._push_feed.latest_round_data()
        if round_data is None:
            raise OracleFailure(ErrorCode.PRICE_INVALID, "push feed has no round")

        if self._clock.now() > round_data.updated_at + self.config.push_max_age:
            raise OracleFailure(
                ErrorCode.PRICE_STALE,
                "push price stale",
                updated_at=round_data.updated_at,
                push_max_age=self.config.push_max_age,
            )
        if round_data.answer <= 0:
            raise OracleFailure(
                ErrorCode.PRICE_INVALID, "push price not positive", answer=round_data.answer
            )

        scale = 10 ** (PRICE_DECIMALS - self.config.push_decimals)
        return FeedPrice(round_data.answer * scale, round_data.updated_at, "push")

    def _get_pull_price(self) -> FeedPrice | None:
        """Цена pull-фида или None, если он невалиден."""
        try:
            data = self._pull_feed.get_price_no_older_than(self.config.pull_max_age)
        except PriceFeedUnavailable as exc:
            logger.debug("pull_price_unavailable", reason=str(exc))
            return None

        if data.price <= 0 or data.conf <= 0 or data.expo >= 0:
            return None
        if -data.expo > PRICE_DECIMALS:
            return None
        if data.price // data.conf < self.config.min_confidence_ratio:
            return None

        price = data.price * 10 ** (PRICE_DECIMALS + data.expo)
        return FeedPrice(price, data.publish_time, "pull")

    # -------------------------------------------------------------------------
    # Pull feed updates
    # -------------------------------------------------------------------------

    def update_pull_price(self, updates: Sequence[PriceUpdate], fee: int) -> None:
        """
        Передача подписанных update в pull-фид.

        Вызывается внутри исполнения ордеров/ликвидаций. Fee передаётся фиду
        без списания с ledger и без возврата переплаты.

        Raises:
            ValidationFailure: InvalidFee если fee меньше требуемой
        """
        required = self._pull_feed.get_update_fee(updates)
        if fee < required:
            raise ValidationFailure(
                ErrorCode.INVALID_FEE, "pull update fee too low", fee=fee, required=required
            )
        self._pull_feed.update_price_feeds(updates, fee)

    # -------------------------------------------------------------------------
    # Owner setters
    # -------------------------------------------------------------------------

    def _only_owner(self, caller: str) -> None:
        if caller != self.owner:
            raise AuthorizationFailure(ErrorCode.ONLY_OWNER, caller=caller)

    def _set_config(self, caller: str, **changes) -> None:
        self._only_owner(caller)
        try:
            self.config = replace(self.config, **changes)
        except ValueError as exc:
            raise ValidationFailure(ErrorCode.INVALID_CONFIG, str(exc)) from exc
        logger.info("oracle_config_updated", **changes)

    @entry_point
    def set_max_diff_percent(self, caller: str, max_diff_percent: int) -> None:
        self._set_config(caller, max_diff_percent=max_diff_percent)

    @entry_point
    def set_push_max_age(self, caller: str, push_max_age: int) -> None:
        self._set_config(caller, push_max_age=push_max_age)

    @entry_point
    def set_pull_max_age(self, caller: str, pull_max_age: int) -> None:
        self._set_config(caller, pull_max_age=pull_max_age)

    @entry_point
    def set_min_confidence_ratio(self, caller: str, min_confidence_ratio: int) -> None:
        self._set_config(caller, min_confidence_ratio=min_confidence_ratio)

    # -------------------------------------------------------------------------
    # Transactional
    # -------------------------------------------------------------------------

    def snapshot(self) -> OracleConfig:
        return self.config

    def restore(self, state: OracleConfig) -> None:
        self.config = state
