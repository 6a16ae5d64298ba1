"""
PositionRegistry — арена идентификаторов позиций

Позиция идентифицируется целым token_id (выдаются с 0 по порядку).
Registry хранит владельца и набор блокировок: каждый модуль, которому
нужна неизменность владельца (delayed order, limit order), блокирует
позицию своим ключом и снимает только свою блокировку.

- transfer запрещён, пока есть хоть одна блокировка
- burn требует отсутствия блокировок
- clear_locks снимает все блокировки (только ликвидация)
"""

from src.core.errors import AuthorizationFailure, ErrorCode, ValidationFailure
from src.core.transaction import Journal, entry_point
from src.monitoring.logger import get_logger
from src.vault.modules import ModuleCapability, ModuleKey
from src.vault.vault import Vault

logger = get_logger(__name__)


class PositionRegistry:
    """Владельцы и блокировки позиций."""

    def __init__(self, vault: Vault, journal: Journal):
        self._vault = vault
        self._journal = journal
        self._owners: dict[int, str] = {}
        self._locks: dict[int, set[ModuleKey]] = {}
        self._next_id = 0

    # -------------------------------------------------------------------------
    # Views
    # -------------------------------------------------------------------------

    def exists(self, token_id: int) -> bool:
        return token_id in self._owners

    def owner_of(self, token_id: int) -> str:
        """
        Raises:
            ValidationFailure: PositionNotFound
        """
        try:
            return self._owners[token_id]
        except KeyError:
            raise ValidationFailure(ErrorCode.POSITION_NOT_FOUND, token_id=token_id) from None

    def is_locked(self, token_id: int) -> bool:
        return bool(self._locks.get(token_id))

    def locked_by(self, token_id: int) -> frozenset[ModuleKey]:
        return frozenset(self._locks.get(token_id, ()))

    def tokens_of(self, owner: str) -> list[int]:
        return sorted(t for t, o in self._owners.items() if o == owner)

    @property
    def total_supply(self) -> int:
        return len(self._owners)

    # -------------------------------------------------------------------------
    # Module operations
    # -------------------------------------------------------------------------

    def mint(self, capability: ModuleCapability, to: str) -> int:
        self._vault.require_module(capability)
        if not to:
            raise ValidationFailure(ErrorCode.ZERO_ADDRESS, "to")
        token_id = self._next_id
        self._next_id += 1
        self._owners[token_id] = to
        self._locks[token_id] = set()
        return token_id

    def burn(self, capability: ModuleCapability, token_id: int) -> None:
        """
        Raises:
            AuthorizationFailure: TokenLocked
        """
        self._vault.require_module(capability)
        self.owner_of(token_id)
        if self.is_locked(token_id):
            raise AuthorizationFailure(
                ErrorCode.TOKEN_LOCKED,
                "cannot burn locked position",
                token_id=token_id,
                locked_by=sorted(k.value for k in self._locks[token_id]),
            )
        del self._owners[token_id]
        del self._locks[token_id]

    def lock(self, capability: ModuleCapability, token_id: int) -> None:
        self._vault.require_module(capability)
        self.owner_of(token_id)
        self._locks[token_id].add(capability.key)

    def unlock(self, capability: ModuleCapability, token_id: int) -> None:
        """Снятие блокировки модуля (чужие блокировки остаются)."""
        self._vault.require_module(capability)
        self.owner_of(token_id)
        self._locks[token_id].discard(capability.key)

    def clear_locks(self, capability: ModuleCapability, token_id: int) -> None:
        """Снятие всех блокировок — только для ликвидации."""
        self._vault.require_module(capability)
        if capability.key is not ModuleKey.LIQUIDATION:
            raise AuthorizationFailure(
                ErrorCode.ONLY_AUTHORIZED_MODULE,
                "only liquidation can clear locks",
                module=capability.key.value,
            )
        self.owner_of(token_id)
        self._locks[token_id].clear()

    # -------------------------------------------------------------------------
    # User operations
    # -------------------------------------------------------------------------

    @entry_point
    def transfer(self, caller: str, token_id: int, to: str) -> None:
        """
        Передача позиции.

        Raises:
            AuthorizationFailure: NotTokenOwner / TokenLocked
            ValidationFailure: ZeroAddress / PositionNotFound
        """
        if not to:
            raise ValidationFailure(ErrorCode.ZERO_ADDRESS, "to")
        if self.owner_of(token_id) != caller:
            raise AuthorizationFailure(ErrorCode.NOT_TOKEN_OWNER, caller=caller, token_id=token_id)
        if self.is_locked(token_id):
            raise AuthorizationFailure(ErrorCode.TOKEN_LOCKED, token_id=token_id)
        self._owners[token_id] = to
        logger.info("position_transferred", token_id=token_id, sender=caller, recipient=to)

    # -------------------------------------------------------------------------
    # Transactional
    # -------------------------------------------------------------------------

    def snapshot(self) -> tuple:
        return (
            dict(self._owners),
            {t: set(keys) for t, keys in self._locks.items()},
            self._next_id,
        )

    def restore(self, state: tuple) -> None:
        owners, locks, next_id = state
        self._owners = dict(owners)
        self._locks = {t: set(keys) for t, keys in locks.items()}
        self._next_id = next_id
