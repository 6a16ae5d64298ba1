"""Vault — глобальный леджер, escrow и авторизация модулей."""

from .ledger import CollateralLedger
from .modules import ModuleCapability, ModuleKey
from .vault import SKEW_CHECK_DISABLED, Vault, VaultConfig

__all__ = [
    "CollateralLedger",
    "ModuleCapability",
    "ModuleKey",
    "SKEW_CHECK_DISABLED",
    "Vault",
    "VaultConfig",
]
