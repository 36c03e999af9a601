"""
LP deposits and withdrawals. One LP share is one unit of liquidity_depth, so the
share supply and the fixed part of b move together. Every entry and exit is priced
as a cost delta against the live quantity vector, the same way trades are, which is
what makes deposit -> trade -> sell -> withdraw worth nothing beyond the fees paid.
"""
import logging
from decimal import Decimal
from typing import Any, Dict, List, Sequence, Tuple

from optmarket.utils import to_decimal, token_amount
from .collaborators import CallContext, Ledger
from .cost_function import cost_delta
from .errors import DepthMustIncrease, InsufficientBalance, InvalidSize, LiquidityLocked, SlippageExceeded
from .params import validate_lengths, validate_size
from .state import (
    MarketState,
    collateral_scale,
    get_quantities,
    lp_token,
    market_account,
    num_strikes,
    position_token,
    total_position_supply,
)
from .trades import calc_fee, check_caps, check_trading_open

logger = logging.getLogger(__name__)


def quote_deposit(state: MarketState, shares: Decimal) -> Decimal:
    shares = validate_size(shares)
    q = get_quantities(state)
    depth = state['liquidity_depth']
    return cost_delta(q, depth, q, depth + shares, state['alpha'], collateral_scale(state))


def quote_withdraw(state: MarketState, shares: Decimal) -> Decimal:
    shares = validate_size(shares)
    depth = state['liquidity_depth']
    if shares > depth:
        raise InsufficientBalance(f"Withdraw of {shares} exceeds liquidity depth {depth}")
    q = get_quantities(state)
    return cost_delta(q, depth - shares, q, depth, state['alpha'], collateral_scale(state))


def deposit(
    state: MarketState,
    ledger: Ledger,
    ctx: CallContext,
    shares: Decimal,
    max_amount_in: Decimal,
) -> Tuple[Decimal, List[Dict[str, Any]]]:
    check_trading_open(state, ctx['now'])
    shares = validate_size(shares)
    amount_in = quote_deposit(state, shares)
    if amount_in > to_decimal(max_amount_in):
        raise SlippageExceeded(f"Max slippage exceeded: deposit costs {amount_in} > max {max_amount_in}")

    collateral = state['collateral_token']
    account = market_account(state)
    check_caps(state, ledger.balance_of(collateral, account) + amount_in, total_position_supply(state))
    balance = ledger.balance_of(collateral, ctx['caller'])
    if balance < amount_in:
        raise InsufficientBalance(f"Insufficient balance for deposit: have {balance}, need {amount_in}")

    state['liquidity_depth'] += shares

    ledger.transfer(collateral, ctx['caller'], account, amount_in)
    ledger.mint(lp_token(state), ctx['caller'], shares)

    logger.info(f"Deposit {shares} shares by {ctx['caller']} for {amount_in}; depth now {state['liquidity_depth']}")
    events = [{
        'type': 'DEPOSIT',
        'payload': {
            'account': ctx['caller'],
            'shares': shares,
            'amount_in': amount_in,
            'liquidity_depth': state['liquidity_depth'],
        },
    }]
    return amount_in, events


def withdraw(
    state: MarketState,
    ledger: Ledger,
    ctx: CallContext,
    shares: Decimal,
    min_amount_out: Decimal,
) -> Tuple[Decimal, List[Dict[str, Any]]]:
    check_trading_open(state, ctx['now'])
    shares = validate_size(shares)
    token = lp_token(state)
    held = ledger.balance_of(token, ctx['caller'])
    if held < shares:
        raise InsufficientBalance(f"Burn amount exceeds balance: have {held}, need {shares}")

    new_depth = state['liquidity_depth'] - shares
    # With no alpha term, zero depth would leave open positions unpriceable.
    if state['alpha'] is None and new_depth == 0 and total_position_supply(state) > 0:
        raise LiquidityLocked("Cannot withdraw the last liquidity while positions are open")

    amount_out = quote_withdraw(state, shares)
    if amount_out < to_decimal(min_amount_out):
        raise SlippageExceeded(f"Max slippage exceeded: withdraw pays {amount_out} < min {min_amount_out}")

    state['liquidity_depth'] = new_depth

    ledger.burn(token, ctx['caller'], shares)
    ledger.transfer(state['collateral_token'], market_account(state), ctx['caller'], amount_out)

    logger.info(f"Withdraw {shares} shares by {ctx['caller']} for {amount_out}; depth now {new_depth}")
    events = [{
        'type': 'WITHDRAW',
        'payload': {
            'account': ctx['caller'],
            'shares': shares,
            'amount_out': amount_out,
            'liquidity_depth': new_depth,
        },
    }]
    return amount_out, events


def _size_vector(sizes: Sequence[Any]) -> List[Decimal]:
    out = []
    for s in sizes:
        d = token_amount(s)
        if d < 0:
            raise InvalidSize(f"Invalid size: {s}. Must be non-negative.")
        out.append(d)
    return out


def quote_increase_liquidity_and_buy(
    state: MarketState,
    new_depth: Decimal,
    long_sizes: Sequence[Any],
    short_sizes: Sequence[Any],
) -> Dict[str, Decimal]:
    n = num_strikes(state)
    validate_lengths(n, long_sizes, short_sizes)
    new_depth = to_decimal(new_depth)
    if new_depth <= state['liquidity_depth']:
        raise DepthMustIncrease(f"New depth {new_depth} must exceed current depth {state['liquidity_depth']}")
    longs_add = _size_vector(long_sizes)
    shorts_add = _size_vector(short_sizes)

    longs = [s + d for s, d in zip(state['long_supply'], longs_add)]
    shorts = [s + d for s, d in zip(state['short_supply'], shorts_add)]
    cost = cost_delta(
        get_quantities(state), state['liquidity_depth'],
        get_quantities(state, longs, shorts), new_depth,
        state['alpha'], collateral_scale(state),
    )
    fee = Decimal('0')
    for i in range(n):
        if longs_add[i] > 0:
            fee += calc_fee(state, i, longs_add[i])
        if shorts_add[i] > 0:
            fee += calc_fee(state, i, shorts_add[i])
    return {
        'cost': cost,
        'fee': fee,
        'total': cost + fee,
        'size': sum(longs_add, Decimal('0')) + sum(shorts_add, Decimal('0')),
    }


def increase_liquidity_and_buy(
    state: MarketState,
    ledger: Ledger,
    ctx: CallContext,
    new_depth: Decimal,
    long_sizes: Sequence[Any],
    short_sizes: Sequence[Any],
    max_amount_in: Decimal,
) -> Tuple[Decimal, List[Dict[str, Any]]]:
    """
    Raise the depth to new_depth and buy the listed sizes in one step, priced
    as a single cost delta plus the notional fee on each leg. The depth increase
    is minted to the caller as LP shares. Owner checks happen in the Market facade.
    """
    check_trading_open(state, ctx['now'])
    quote = quote_increase_liquidity_and_buy(state, new_depth, long_sizes, short_sizes)
    paid = quote['total']
    if paid > to_decimal(max_amount_in):
        raise SlippageExceeded(f"Max slippage exceeded: cost {paid} > max {max_amount_in}")

    collateral = state['collateral_token']
    account = market_account(state)
    check_caps(
        state,
        ledger.balance_of(collateral, account) + paid,
        total_position_supply(state) + quote['size'],
    )
    balance = ledger.balance_of(collateral, ctx['caller'])
    if balance < paid:
        raise InsufficientBalance(f"Insufficient balance: have {balance}, need {paid}")

    new_depth = to_decimal(new_depth)
    added_shares = new_depth - state['liquidity_depth']
    longs_add = _size_vector(long_sizes)
    shorts_add = _size_vector(short_sizes)
    state['long_supply'] = [s + d for s, d in zip(state['long_supply'], longs_add)]
    state['short_supply'] = [s + d for s, d in zip(state['short_supply'], shorts_add)]
    state['liquidity_depth'] = new_depth
    state['fees_accrued'] += quote['fee']

    ledger.transfer(collateral, ctx['caller'], account, paid)
    ledger.mint(lp_token(state), ctx['caller'], added_shares)
    for i in range(num_strikes(state)):
        if longs_add[i] > 0:
            ledger.mint(position_token(state, True, i), ctx['caller'], longs_add[i])
        if shorts_add[i] > 0:
            ledger.mint(position_token(state, False, i), ctx['caller'], shorts_add[i])

    logger.info(f"Depth raised to {new_depth} by {ctx['caller']} with {quote['size']} positions bought; paid {paid}")
    events = [{
        'type': 'DEPTH_INCREASED',
        'payload': {
            'account': ctx['caller'],
            'liquidity_depth': new_depth,
            'long_sizes': longs_add,
            'short_sizes': shorts_add,
            'cost': paid,
            'fee': quote['fee'],
        },
    }]
    return paid, events
