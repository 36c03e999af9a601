"""
Scripted lifecycle of one call market: trade, expire, settle, wait out the
dispute window, redeem and skim. Parameters come from config (and so from any
OPTMARKET_* environment overrides).

    python -m optmarket.scripts.run_demo --price 444
"""
import argparse
import logging
from decimal import Decimal
from typing import List, Optional

from optmarket.config import get_market_params
from optmarket.engine.collaborators import FixedPriceOracle, InMemoryLedger
from optmarket.engine.market import Market
from optmarket.utils import format_amounts

logger = logging.getLogger(__name__)

STARTING_BALANCE = Decimal('1000000')


def run(price: Decimal, now: int = 1_700_000_000) -> Market:
    params = get_market_params()
    ledger = InMemoryLedger()
    oracle = FixedPriceOracle()
    market = Market(params, ledger=ledger, oracle=oracle, owner='owner', now=now)
    token = params['collateral_token']
    for user in ('owner', 'alice', 'bob'):
        ledger.mint(token, user, STARTING_BALANCE)

    def ctx(caller: str) -> dict:
        return {'caller': caller, 'now': now}

    if params['alpha'] is None:
        market.deposit(ctx('owner'), Decimal('10'), STARTING_BALANCE)

    market.buy(ctx('alice'), True, 0, Decimal('2'), STARTING_BALANCE)
    market.buy(ctx('bob'), False, 1, Decimal('3'), STARTING_BALANCE)
    market.buy(ctx('alice'), True, 2, Decimal('1'), STARTING_BALANCE)
    market.sell(ctx('alice'), True, 2, Decimal('1'), Decimal('0'))
    logger.info(f"Quantities: {format_amounts(market.quantities())}")
    logger.info(f"Prices: {format_amounts(market.prices(), places=4)}")
    logger.info(f"Collateral held {market.collateral_held}, fees accrued {market.fees_accrued}")

    now = params['expiry_time']
    oracle.set_price(price)
    market.settle(ctx('alice'))

    now = market.settled_at + market.dispute_period
    alice_out = market.redeem(ctx('alice'), True, 0)
    bob_out = market.redeem(ctx('bob'), False, 1)
    skimmed = market.skim(ctx('owner'))
    logger.info(f"Alice received {alice_out}, Bob received {bob_out}, owner skimmed {skimmed}")
    logger.info(f"Collateral left in market: {market.collateral_held}")
    return market


def main(argv: Optional[List[str]] = None) -> None:
    parser = argparse.ArgumentParser(description='Run a scripted option market lifecycle')
    parser.add_argument('--price', type=str, default='444', help='Oracle price at expiry')
    args = parser.parse_args(argv)
    logging.basicConfig(level=logging.INFO)
    market = run(Decimal(args.price))
    print(f"{len(market.events)} events")
    for event in market.events:
        print(f"  {event['type']}: {event['payload']}")


if __name__ == '__main__':
    main()
