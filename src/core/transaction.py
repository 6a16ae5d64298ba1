"""
Transaction Journal — атомарность и защита от re-entrancy

Все компоненты с состоянием (ledger, vault, registry, shares, книги ордеров)
регистрируются в одном Journal. Каждая публичная мутирующая операция
выполняется внутри journal.atomic(name):

1. Если другая операция уже выполняется → ReentrantCall
   (в т.ч. повторный вход из receive hook при исходящем переводе)
2. Перед операцией снимаются снапшоты всех участников
3. Любое исключение восстанавливает все снапшоты и пропагирует дальше

КРИТИЧЕСКИЕ ИНВАРИАНТЫ:
1. Операция либо применяется целиком, либо не меняет состояние вообще
2. В каждый момент выполняется не больше одной мутирующей операции
"""

import functools
from contextlib import contextmanager
from typing import Any, Callable, Iterator, Protocol, TypeVar, runtime_checkable

from src.core.errors import AuthorizationFailure, EngineError, ErrorCode
from src.monitoring.logger import get_logger

logger = get_logger(__name__)

F = TypeVar("F", bound=Callable[..., Any])


@runtime_checkable
class Transactional(Protocol):
    """Участник транзакции: умеет снять и восстановить своё состояние."""

    def snapshot(self) -> Any: ...

    def restore(self, state: Any) -> None: ...


class Journal:
    """Single-writer журнал транзакций."""

    def __init__(self) -> None:
        self._participants: list[Transactional] = []
        self._in_flight: str | None = None

    def register(self, participant: Transactional) -> None:
        """Регистрация участника (идемпотентно)."""
        if not isinstance(participant, Transactional):
            raise TypeError(f"{type(participant).__name__} is not transactional")
        if any(p is participant for p in self._participants):
            return
        self._participants.append(participant)

    @property
    def in_flight(self) -> str | None:
        """Имя выполняющейся операции (None если свободно)."""
        return self._in_flight

    @contextmanager
    def atomic(self, operation: str) -> Iterator[None]:
        """
        Эксклюзивное атомарное выполнение операции.

        Raises:
            AuthorizationFailure: ReentrantCall если операция уже выполняется
        """
        if self._in_flight is not None:
            raise AuthorizationFailure(
                ErrorCode.REENTRANT_CALL,
                f"{operation} called while {self._in_flight} is in flight",
            )

        self._in_flight = operation
        snapshots = [(p, p.snapshot()) for p in self._participants]
        try:
            yield
        except BaseException as exc:
            for participant, state in reversed(snapshots):
                participant.restore(state)
            logger.warning(
                "transaction_rolled_back",
                operation=operation,
                error_code=exc.code.value if isinstance(exc, EngineError) else None,
                error=str(exc),
            )
            raise
        finally:
            self._in_flight = None


def entry_point(method: F) -> F:
    """
    Декоратор публичной мутирующей операции компонента.

    Компонент обязан иметь атрибут `_journal: Journal`.
    """

    @functools.wraps(method)
    def wrapper(self, *args, **kwargs):
        with self._journal.atomic(f"{type(self).__name__}.{method.__name__}"):
            return method(self, *args, **kwargs)

    return wrapper  # type: ignore[return-value]
