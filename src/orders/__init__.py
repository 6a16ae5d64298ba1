"""Orders — delayed и limit ордера, keeper fee."""

from .coordinator import OrderCoordinator
from .keeper_fee import FixedKeeperFee, KeeperFeeConfig, KeeperFeeOracle, KeeperFeeQuote
from .limit_orders import LimitOrderBook

__all__ = [
    "FixedKeeperFee",
    "KeeperFeeConfig",
    "KeeperFeeOracle",
    "KeeperFeeQuote",
    "LimitOrderBook",
    "OrderCoordinator",
]
