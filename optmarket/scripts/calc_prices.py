"""
Cost and marginal prices for an outcome-quantity vector.

Useful for checking expected values in tests by hand:

    python -m optmarket.scripts.calc_prices 1 2 --liquidity-param 0.2
    python -m optmarket.scripts.calc_prices 0 2 2 2 2 --depth 10 --no-alpha

liquidity_param is the maximum possible sum of prices minus 1; for two
outcomes it equals alpha * 2 * ln(2).
"""
import argparse
import logging
from decimal import Decimal
from typing import List, Optional

import pandas as pd

from optmarket.engine.cost_function import (
    alpha_for_max_loss,
    effective_depth,
    instantaneous_prices,
    lslmsr_cost,
)
from optmarket.utils import format_amounts, to_decimal

logger = logging.getLogger(__name__)


def price_table(q: List[Decimal], liquidity_depth: Decimal, alpha: Optional[Decimal]) -> pd.DataFrame:
    prices = instantaneous_prices(q, liquidity_depth, alpha)
    return pd.DataFrame({
        'outcome': list(range(len(q))),
        'quantity': format_amounts(q),
        'price': format_amounts(prices, places=4),
    })


def main(argv: Optional[List[str]] = None) -> None:
    parser = argparse.ArgumentParser(description='LS-LMSR cost and instantaneous prices')
    parser.add_argument('quantities', nargs='+', help='Outcome quantities q_0 .. q_N')
    parser.add_argument('--alpha', type=str, default=None, help='LS-LMSR alpha')
    parser.add_argument('--liquidity-param', type=str, default=None,
                        help='Max sum of prices minus 1 for the two-outcome case; sets alpha')
    parser.add_argument('--depth', type=str, default='0', help='Fixed liquidity depth b0')
    parser.add_argument('--no-alpha', action='store_true', help='Fixed-depth LMSR, ignore alpha')
    parser.add_argument('--csv', type=str, default=None, help='Write the price table to this file')
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO)

    q = [to_decimal(x) for x in args.quantities]
    alpha: Optional[Decimal] = None
    if not args.no_alpha:
        if args.liquidity_param is not None:
            alpha = alpha_for_max_loss(to_decimal(args.liquidity_param), 2)
        elif args.alpha is not None:
            alpha = to_decimal(args.alpha)
        else:
            alpha = Decimal('0.1')
    depth = to_decimal(args.depth)

    b = effective_depth(q, depth, alpha)
    cost = lslmsr_cost(q, b)
    logger.info(f"alpha={alpha} b={b} cost={format_amounts([cost])[0]}")

    table = price_table(q, depth, alpha)
    print(table.to_string(index=False))
    print(f"sum of prices: {table['price'].sum():.4f}")
    if args.csv:
        table.to_csv(args.csv, index=False, float_format='%.6f')
        logger.info(f"Wrote {args.csv}")


if __name__ == '__main__':
    main()
