from swapcover.core import AssetPair, BalanceDelta, ModifyLiquidityParams, SwapParams
from swapcover.chain import Chain
from swapcover.settlement import SwapCoverLayer

__all__ = [
    "AssetPair",
    "BalanceDelta",
    "Chain",
    "ModifyLiquidityParams",
    "SwapCoverLayer",
    "SwapParams",
]
