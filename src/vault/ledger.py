"""
CollateralLedger — балансы collateral-токена

Модель внешнего токена: балансы по аккаунтам и receive hooks, которые
вызываются после зачисления (аналог callback получателя при исходящем
переводе). Через hooks тесты воспроизводят re-entrant вызовы.
"""

from typing import Callable

from src.core.errors import ErrorCode, ValidationFailure

ReceiveHook = Callable[[str, int], None]


class CollateralLedger:
    """In-memory collateral-токен."""

    def __init__(self) -> None:
        self._balances: dict[str, int] = {}
        self._hooks: dict[str, ReceiveHook] = {}

    def balance_of(self, account: str) -> int:
        return self._balances.get(account, 0)

    @property
    def total_supply(self) -> int:
        return sum(self._balances.values())

    def mint(self, account: str, amount: int) -> None:
        """Эмиссия (фондирование аккаунтов в тестах и симуляциях)."""
        if amount <= 0:
            raise ValidationFailure(ErrorCode.ZERO_VALUE, "mint amount", amount=amount)
        self._balances[account] = self.balance_of(account) + amount

    def transfer(self, sender: str, recipient: str, amount: int) -> None:
        """
        Перевод amount от sender к recipient.

        После зачисления вызывается receive hook получателя (если есть).

        Raises:
            ValidationFailure: ZeroAddress / InsufficientBalance
        """
        if not recipient:
            raise ValidationFailure(ErrorCode.ZERO_ADDRESS, "recipient")
        if amount < 0:
            raise ValidationFailure(ErrorCode.VALUE_NOT_POSITIVE, "amount", amount=amount)
        if amount == 0:
            return

        balance = self.balance_of(sender)
        if balance < amount:
            raise ValidationFailure(
                ErrorCode.INSUFFICIENT_BALANCE,
                f"{sender} balance too low",
                balance=balance,
                amount=amount,
            )
        self._balances[sender] = balance - amount
        self._balances[recipient] = self.balance_of(recipient) + amount

        hook = self._hooks.get(recipient)
        if hook is not None:
            hook(sender, amount)

    def register_receiver(self, account: str, hook: ReceiveHook) -> None:
        """Callback, вызываемый при каждом зачислении на account."""
        self._hooks[account] = hook

    # -------------------------------------------------------------------------
    # Transactional
    # -------------------------------------------------------------------------

    def snapshot(self) -> dict[str, int]:
        return dict(self._balances)

    def restore(self, state: dict[str, int]) -> None:
        self._balances = dict(state)
