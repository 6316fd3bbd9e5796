"""
Shared fixtures: a deployed layer with one funded reference-asset market.
"""
import pytest

from swapcover.config import Config
from swapcover.core import AssetPair, ModifyLiquidityParams, SwapParams
from swapcover.crypto import generate_key_pair, serialize_public_key, public_key_to_address
from swapcover.deploy import deploy_stack
from swapcover.pool_state import Q96, MIN_SQRT_PRICE, MAX_SQRT_PRICE

OWNER = b'\x0a' * 20
USER = b'\x0b' * 20
RELAYER = b'\x0c' * 20

USD = b'\x01' * 20    # reference asset
WETH = b'\x02' * 20
WBTC = b'\x03' * 20

FULL_RANGE = ModifyLiquidityParams(tick_lower=-887220, tick_upper=887220, liquidity_delta=10**18)


def sell_zero(amount: int) -> SwapParams:
    """Exact-input swap of currency0 for currency1."""
    return SwapParams(zero_for_one=True, amount_specified=-amount, sqrt_price_limit_x96=MIN_SQRT_PRICE + 1)


def sell_one(amount: int) -> SwapParams:
    """Exact-input swap of currency1 for currency0."""
    return SwapParams(zero_for_one=False, amount_specified=-amount, sqrt_price_limit_x96=MAX_SQRT_PRICE - 1)


def open_funded_market(layer, pair: AssetPair):
    layer.open_market(USER, pair, Q96)
    layer.adjust_liquidity(USER, pair, FULL_RANGE)


@pytest.fixture
def deployment():
    config = Config.default()
    config.incentives.reference_assets = [USD.hex()]
    return deploy_stack(config, OWNER)


@pytest.fixture
def chain(deployment):
    return deployment.chain


@pytest.fixture
def layer(deployment):
    return deployment.layer


@pytest.fixture
def token(deployment):
    return deployment.token


@pytest.fixture
def pool_manager(deployment):
    return deployment.pool_manager


@pytest.fixture
def usd_pair(layer):
    """USD/WETH market, 0.3% fee, price 1, 1e18 liquidity."""
    pair = AssetPair(USD, WETH, 3000, 60)
    open_funded_market(layer, pair)
    return pair


@pytest.fixture
def plain_pair(layer):
    """WETH/WBTC market without any reference asset."""
    pair = AssetPair(WETH, WBTC, 3000, 60)
    open_funded_market(layer, pair)
    return pair


@pytest.fixture
def signer():
    """An externally owned account with an ECDSA key."""
    priv_key, pub_key = generate_key_pair()
    pub_key_pem = serialize_public_key(pub_key)
    return {
        'priv_key': priv_key,
        'pub_key_pem': pub_key_pem,
        'address': public_key_to_address(pub_key_pem),
    }
