"""
PoolShares — доли LP в пуле

Fungible доли с блокировкой: заблокированная часть баланса (под
announced withdraw) не может быть переведена, пока модуль её не разблокирует.
"""

from src.core.errors import ErrorCode, ValidationFailure
from src.core.transaction import Journal, entry_point
from src.vault.modules import ModuleCapability
from src.vault.vault import Vault


class PoolShares:
    """Балансы, блокировки и total supply долей пула."""

    def __init__(self, vault: Vault, journal: Journal):
        self._vault = vault
        self._journal = journal
        self._balances: dict[str, int] = {}
        self._locked: dict[str, int] = {}
        self._total_supply = 0

    @property
    def total_supply(self) -> int:
        return self._total_supply

    def balance_of(self, account: str) -> int:
        return self._balances.get(account, 0)

    def locked_balance_of(self, account: str) -> int:
        return self._locked.get(account, 0)

    def unlocked_balance_of(self, account: str) -> int:
        return self.balance_of(account) - self.locked_balance_of(account)

    # -------------------------------------------------------------------------
    # Module operations
    # -------------------------------------------------------------------------

    def mint(self, capability: ModuleCapability, account: str, amount: int) -> None:
        self._vault.require_module(capability)
        if amount <= 0:
            raise ValidationFailure(ErrorCode.ZERO_VALUE, "mint amount", amount=amount)
        self._balances[account] = self.balance_of(account) + amount
        self._total_supply += amount

    def burn(self, capability: ModuleCapability, account: str, amount: int) -> None:
        """Сжигание незаблокированных долей."""
        self._vault.require_module(capability)
        if amount > self.unlocked_balance_of(account):
            raise ValidationFailure(
                ErrorCode.INSUFFICIENT_BALANCE,
                "burn exceeds unlocked shares",
                unlocked=self.unlocked_balance_of(account),
                amount=amount,
            )
        self._balances[account] = self.balance_of(account) - amount
        self._total_supply -= amount

    def lock(self, capability: ModuleCapability, account: str, amount: int) -> None:
        self._vault.require_module(capability)
        if amount > self.unlocked_balance_of(account):
            raise ValidationFailure(
                ErrorCode.INSUFFICIENT_BALANCE,
                "lock exceeds unlocked shares",
                unlocked=self.unlocked_balance_of(account),
                amount=amount,
            )
        self._locked[account] = self.locked_balance_of(account) + amount

    def unlock(self, capability: ModuleCapability, account: str, amount: int) -> None:
        self._vault.require_module(capability)
        if amount > self.locked_balance_of(account):
            raise ValidationFailure(
                ErrorCode.INSUFFICIENT_BALANCE,
                "unlock exceeds locked shares",
                locked=self.locked_balance_of(account),
                amount=amount,
            )
        self._locked[account] = self.locked_balance_of(account) - amount

    # -------------------------------------------------------------------------
    # User operations
    # -------------------------------------------------------------------------

    @entry_point
    def transfer(self, sender: str, recipient: str, amount: int) -> None:
        """
        Перевод незаблокированных долей.

        Raises:
            ValidationFailure: ZeroAddress / InsufficientBalance
        """
        if not recipient:
            raise ValidationFailure(ErrorCode.ZERO_ADDRESS, "recipient")
        if amount > self.unlocked_balance_of(sender):
            raise ValidationFailure(
                ErrorCode.INSUFFICIENT_BALANCE,
                "transfer exceeds unlocked shares",
                unlocked=self.unlocked_balance_of(sender),
                amount=amount,
            )
        self._balances[sender] = self.balance_of(sender) - amount
        self._balances[recipient] = self.balance_of(recipient) + amount

    # -------------------------------------------------------------------------
    # Transactional
    # -------------------------------------------------------------------------

    def snapshot(self) -> tuple:
        return dict(self._balances), dict(self._locked), self._total_supply

    def restore(self, state: tuple) -> None:
        balances, locked, total_supply = state
        self._balances = dict(balances)
        self._locked = dict(locked)
        self._total_supply = total_supply
