"""
Module capabilities — авторизация межмодульных вызовов

Vault выдаёт каждому модулю ModuleCapability при authorize_module.
Методы Vault, меняющие состояние, принимают capability и проверяют её по
identity: подделать capability нельзя, отозванная перестаёт работать.
"""

from dataclasses import dataclass, field
from enum import Enum
from itertools import count

_serial = count(1)


class ModuleKey(str, Enum):
    """Ключи модулей рынка."""

    STABLE = "stable"
    LEVERAGE = "leverage"
    DELAYED_ORDER = "delayed_order"
    LIMIT_ORDER = "limit_order"
    LIQUIDATION = "liquidation"


@dataclass(frozen=True, eq=False)
class ModuleCapability:
    """
    Handle авторизованного модуля.

    Сравнивается по identity (eq=False): две capability с одинаковым key —
    разные capability.
    """

    key: ModuleKey
    serial: int = field(default_factory=lambda: next(_serial))

    def __repr__(self) -> str:
        return f"ModuleCapability({self.key.value}#{self.serial})"
