"""
Deploy:
1. Open (or create) DB
2. Create the chain and the reference ledger engine
3. Deploy the SwapCover layer with the configured rates
4. Deploy the incentive token and make the layer its minter
5. Flag the configured reference assets
"""
import argparse
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from swapcover.chain import Chain
from swapcover.config import Config
from swapcover.crypto import generate_key_pair, serialize_public_key, public_key_to_address
from swapcover.db import MemoryDB, LevelDB
from swapcover.ledger import PoolManager
from swapcover.monitoring import Monitor
from swapcover.settlement import SwapCoverLayer
from swapcover.token import MintableToken

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


@dataclass
class Deployment:
    chain: Chain
    pool_manager: PoolManager
    token: MintableToken
    layer: SwapCoverLayer
    monitor: Optional[Monitor] = None


def deploy_stack(config: Config, owner: bytes) -> Deployment:
    """Wire a chain, ledger engine, incentive token and layer from config."""
    # ------------------------------------------------------------------ #
    # 1. DB
    # ------------------------------------------------------------------ #
    if config.chain.db_path:
        db = LevelDB(config.chain.db_path)
    else:
        db = MemoryDB()

    # ------------------------------------------------------------------ #
    # 2. Chain and ledger engine
    # ------------------------------------------------------------------ #
    chain = Chain(db=db, chain_id=config.chain.chain_id)
    pool_manager = PoolManager(chain)

    monitor = None
    if config.monitoring.enabled:
        monitor = Monitor(host=config.monitoring.host, port=config.monitoring.port)

    # ------------------------------------------------------------------ #
    # 3. Layer
    # ------------------------------------------------------------------ #
    rates = config.incentives
    layer = SwapCoverLayer(
        chain,
        pool_manager.address,
        owner,
        reward_divisor=rates.reward_divisor,
        gasless_fee_divisor=rates.gasless_fee_divisor,
        fixed_bonus=rates.fixed_bonus,
        incentives_enabled=rates.incentives_enabled,
        monitor=monitor,
    )

    # ------------------------------------------------------------------ #
    # 4. Incentive token, minted only by the layer
    # ------------------------------------------------------------------ #
    token = MintableToken(chain, owner)
    with chain.atomic():
        token.set_minter(owner, layer.address)
    layer.set_incentive_token(owner, token.address)

    # ------------------------------------------------------------------ #
    # 5. Reference assets
    # ------------------------------------------------------------------ #
    for asset in rates.reference_asset_addresses():
        layer.set_reference_asset(owner, asset, True)

    logger.info(f"Layer deployed at {layer.address.hex()}")
    logger.info(f"   Ledger engine: {pool_manager.address.hex()}")
    logger.info(f"   Incentive token: {token.address.hex()}")
    logger.info(f"   Owner: {owner.hex()}")

    return Deployment(chain=chain, pool_manager=pool_manager, token=token, layer=layer, monitor=monitor)


def main(argv=None):
    """Main entry point."""
    parser = argparse.ArgumentParser(description='Deploy a SwapCover settlement layer')
    parser.add_argument('--config', type=str, help='Path to config file')
    parser.add_argument('--db-path', type=str, help='LevelDB directory (default: in-memory)')
    parser.add_argument('--owner', type=str, help='Owner address (hex); generated if omitted')

    args = parser.parse_args(argv)

    if args.config and Path(args.config).exists():
        config = Config.from_file(args.config)
    else:
        config = Config.default()

    if args.db_path:
        config.chain.db_path = args.db_path

    if args.owner:
        owner = bytes.fromhex(args.owner.removeprefix("0x"))
    else:
        _, public_key = generate_key_pair()
        owner = public_key_to_address(serialize_public_key(public_key))
        logger.info(f"Generated owner address: {owner.hex()}")

    deployment = deploy_stack(config, owner)
    if deployment.monitor:
        deployment.monitor.start_server()
    return deployment


if __name__ == '__main__':
    main()
