"""
Clock — источник времени движка

Все временные величины (funding, executability окна, staleness цен)
считаются в целых UNIX-секундах от инжектируемого Clock. Фонового
планировщика нет: время читается только в момент вызова.

- SystemClock: реальное время
- ManualClock: детерминированное время для тестов и симуляций
"""

import time
from typing import Protocol, runtime_checkable


@runtime_checkable
class Clock(Protocol):
    """Источник текущего времени (UNIX seconds)."""

    def now(self) -> int: ...


class SystemClock:
    """Реальное время системы."""

    def now(self) -> int:
        return int(time.time())


class ManualClock:
    """
    Детерминированный clock.

    Время меняется только явно через advance()/set().

    Examples:
        >>> clock = ManualClock(start=1_700_000_000)
        >>> clock.advance(60)
        >>> clock.now()
        1700000060
    """

    def __init__(self, start: int = 1_700_000_000):
        if start < 0:
            raise ValueError(f"start must be non-negative, got {start}")
        self._current = start

    def now(self) -> int:
        return self._current

    def advance(self, seconds: int) -> None:
        """Сдвиг времени вперёд."""
        if seconds < 0:
            raise ValueError("Cannot advance by negative delta")
        self._current += seconds

    def set(self, timestamp: int) -> None:
        """Установка времени (только вперёд)."""
        if timestamp < self._current:
            raise ValueError(f"Cannot move backwards: {timestamp} < {self._current}")
        self._current = timestamp
