from decimal import Decimal
from typing import List, Optional, Sequence

import mpmath as mp

from optmarket.utils import collateral_ceil, from_mpf, to_mpf


def lslmsr_cost(q: Sequence[Decimal], b: Decimal) -> Decimal:
    """
    Scoring-rule cost C(q, b) = max(q) + b * ln(sum_i exp((q_i - max(q)) / b)).

    The max(q) shift keeps every exponent <= 0, so nothing overflows however
    large the quantities are. b == 0 is the no-liquidity boundary and returns
    max(q) without dividing.
    """
    if not q:
        return Decimal('0')
    mx = max(q)
    if b == 0:
        return mx
    if b < 0:
        raise ValueError(f"Invalid liquidity depth: {b}. Must be non-negative.")

    mx_f = to_mpf(mx)
    b_f = to_mpf(b)
    a = mp.fsum(mp.exp((to_mpf(x) - mx_f) / b_f) for x in q)
    return from_mpf(mx_f + b_f * mp.log(a))


def effective_depth(q: Sequence[Decimal], liquidity_depth: Decimal, alpha: Optional[Decimal]) -> Decimal:
    """b = b0 + alpha * sum(q); the alpha term is the liquidity-sensitive part."""
    b = Decimal(liquidity_depth)
    if alpha is not None:
        b += Decimal(alpha) * sum(q, Decimal('0'))
    return b


def market_cost(
    q: Sequence[Decimal],
    liquidity_depth: Decimal,
    alpha: Optional[Decimal],
    scale: Decimal = Decimal('1'),
) -> Decimal:
    """
    Collateral value of the curve at q, rounded up to the collateral unit.

    Rounding happens here, before any differencing, so two evaluations of the
    same (q, b) always agree exactly and the rounded cost stays monotone.
    """
    b = effective_depth(q, liquidity_depth, alpha)
    return collateral_ceil(scale * lslmsr_cost(q, b))


def cost_delta(
    q_before: Sequence[Decimal],
    depth_before: Decimal,
    q_after: Sequence[Decimal],
    depth_after: Decimal,
    alpha: Optional[Decimal],
    scale: Decimal = Decimal('1'),
) -> Decimal:
    """C(q', b') - C(q, b): positive when the pool is owed collateral."""
    return (market_cost(q_after, depth_after, alpha, scale)
            - market_cost(q_before, depth_before, alpha, scale))


def instantaneous_prices(
    q: Sequence[Decimal],
    liquidity_depth: Decimal,
    alpha: Optional[Decimal],
    eps: Decimal = Decimal('1e-9'),
) -> List[Decimal]:
    """
    Marginal price of each outcome by forward difference.

    Under LS-LMSR the prices sum to more than 1; the excess is the market
    maker's spread and grows with alpha.
    """
    base = lslmsr_cost(q, effective_depth(q, liquidity_depth, alpha))
    prices = []
    for i in range(len(q)):
        bumped = list(q)
        bumped[i] = bumped[i] + eps
        bumped_cost = lslmsr_cost(bumped, effective_depth(bumped, liquidity_depth, alpha))
        prices.append((bumped_cost - base) / eps)
    return prices


def max_loss(alpha: Decimal, n_outcomes: int) -> Decimal:
    """Worst-case loss per unit of outstanding quantity: alpha * n * ln(n)."""
    if n_outcomes < 1:
        raise ValueError("n_outcomes must be >= 1")
    return Decimal(alpha) * n_outcomes * from_mpf(mp.log(n_outcomes))


def alpha_for_max_loss(loss: Decimal, n_outcomes: int = 2) -> Decimal:
    """Inverse of max_loss, e.g. a 0.2 loss bound on two outcomes gives alpha ~0.1443."""
    if n_outcomes < 2:
        raise ValueError("n_outcomes must be >= 2")
    return Decimal(loss) / (n_outcomes * from_mpf(mp.log(n_outcomes)))
