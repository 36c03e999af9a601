import logging
from decimal import Decimal
from typing import Any, Dict, List, Tuple
from typing_extensions import TypedDict

from optmarket.utils import collateral_ceil, to_decimal
from .collaborators import CallContext, Ledger
from .cost_function import cost_delta
from .errors import (
    AlreadyExpired,
    AmountOutMustBePositive,
    BalanceCapExceeded,
    InsufficientBalance,
    NotYetLiquid,
    SlippageExceeded,
    SupplyCapExceeded,
)
from .params import validate_size, validate_strike_index
from .state import (
    MarketState,
    collateral_scale,
    get_quantities,
    market_account,
    num_strikes,
    position_token,
    supplies_after,
    total_position_supply,
)

logger = logging.getLogger(__name__)


class TradeQuote(TypedDict):
    cost: Decimal  # cost-function delta, always >= 0
    fee: Decimal
    total: Decimal  # buy: cost + fee paid in; sell: cost - fee paid out


def check_trading_open(state: MarketState, now: int) -> None:
    if now >= state['expiry_time']:
        raise AlreadyExpired("Already expired")


def check_liquid(state: MarketState) -> None:
    # A fixed-depth market prices nothing until someone funds b.
    if state['alpha'] is None and state['liquidity_depth'] == 0:
        raise NotYetLiquid("Cannot be called before liquidity is added")


def calc_fee(state: MarketState, strike_index: int, size: Decimal) -> Decimal:
    """
    Fee on notional: size for calls, size * strike for puts, times the fee rate.
    Rounded up so the pool never undercharges.
    """
    notional = size * state['strike_prices'][strike_index] if state['is_put'] else size
    return collateral_ceil(notional * state['trading_fee'])


def quote_buy(state: MarketState, is_long: bool, strike_index: int, size: Decimal) -> TradeQuote:
    validate_strike_index(strike_index, num_strikes(state))
    size = validate_size(size)
    q = get_quantities(state)
    longs, shorts = supplies_after(state, is_long, strike_index, size)
    q_after = get_quantities(state, longs, shorts)
    depth = state['liquidity_depth']
    cost = cost_delta(q, depth, q_after, depth, state['alpha'], collateral_scale(state))
    fee = calc_fee(state, strike_index, size)
    return {'cost': cost, 'fee': fee, 'total': cost + fee}


def quote_sell(state: MarketState, is_long: bool, strike_index: int, size: Decimal) -> TradeQuote:
    validate_strike_index(strike_index, num_strikes(state))
    size = validate_size(size)
    supply = state['long_supply' if is_long else 'short_supply'][strike_index]
    if supply < size:
        raise InsufficientBalance(f"Sell size {size} exceeds outstanding supply {supply}")
    q = get_quantities(state)
    longs, shorts = supplies_after(state, is_long, strike_index, -size)
    q_after = get_quantities(state, longs, shorts)
    depth = state['liquidity_depth']
    cost = cost_delta(q_after, depth, q, depth, state['alpha'], collateral_scale(state))
    fee = calc_fee(state, strike_index, size)
    return {'cost': cost, 'fee': fee, 'total': cost - fee}


def check_caps(state: MarketState, held_after: Decimal, supply_after: Decimal) -> None:
    if state['balance_cap'] > 0 and held_after > state['balance_cap']:
        raise BalanceCapExceeded("Balance limit exceeded")
    if state['supply_cap'] > 0 and supply_after > state['supply_cap']:
        raise SupplyCapExceeded("Supply limit exceeded")


def buy(
    state: MarketState,
    ledger: Ledger,
    ctx: CallContext,
    is_long: bool,
    strike_index: int,
    size: Decimal,
    max_cost: Decimal,
) -> Tuple[Decimal, List[Dict[str, Any]]]:
    """
    Buy size of one position arm. Returns the collateral paid (cost delta + fee).
    """
    validate_strike_index(strike_index, num_strikes(state))
    check_trading_open(state, ctx['now'])
    size = validate_size(size)
    check_liquid(state)

    quote = quote_buy(state, is_long, strike_index, size)
    paid = quote['total']
    if paid > to_decimal(max_cost):
        raise SlippageExceeded(f"Max slippage exceeded: cost {paid} > max {max_cost}")

    collateral = state['collateral_token']
    account = market_account(state)
    check_caps(
        state,
        ledger.balance_of(collateral, account) + paid,
        total_position_supply(state) + size,
    )
    balance = ledger.balance_of(collateral, ctx['caller'])
    if balance < paid:
        raise InsufficientBalance(f"Insufficient balance for buy: have {balance}, need {paid}")

    longs, shorts = supplies_after(state, is_long, strike_index, size)
    state['long_supply'] = longs
    state['short_supply'] = shorts
    state['fees_accrued'] += quote['fee']
    new_supply = longs[strike_index] if is_long else shorts[strike_index]

    ledger.transfer(collateral, ctx['caller'], account, paid)
    ledger.mint(position_token(state, is_long, strike_index), ctx['caller'], size)

    logger.info(f"Buy {'long' if is_long else 'short'}[{strike_index}] size={size} by {ctx['caller']}: paid {paid} (fee {quote['fee']})")
    events = [{
        'type': 'TRADE',
        'payload': {
            'account': ctx['caller'],
            'is_buy': True,
            'is_long': is_long,
            'strike_index': strike_index,
            'size': size,
            'cost': paid,
            'fee': quote['fee'],
            'new_supply': new_supply,
        },
    }]
    return paid, events


def sell(
    state: MarketState,
    ledger: Ledger,
    ctx: CallContext,
    is_long: bool,
    strike_index: int,
    size: Decimal,
    min_amount_out: Decimal,
) -> Tuple[Decimal, List[Dict[str, Any]]]:
    """
    Sell size of one position arm back to the pool. Returns the collateral received
    (cost delta - fee); the fee is charged on sells as well as buys.
    """
    validate_strike_index(strike_index, num_strikes(state))
    check_trading_open(state, ctx['now'])
    size = validate_size(size)
    check_liquid(state)

    token = position_token(state, is_long, strike_index)
    held = ledger.balance_of(token, ctx['caller'])
    if held < size:
        raise InsufficientBalance(f"Burn amount exceeds balance: have {held}, need {size}")

    quote = quote_sell(state, is_long, strike_index, size)
    received = quote['total']
    if received <= 0:
        raise AmountOutMustBePositive("Amount out must be > 0")
    if received < to_decimal(min_amount_out):
        raise SlippageExceeded(f"Max slippage exceeded: received {received} < min {min_amount_out}")

    longs, shorts = supplies_after(state, is_long, strike_index, -size)
    state['long_supply'] = longs
    state['short_supply'] = shorts
    state['fees_accrued'] += quote['fee']
    new_supply = longs[strike_index] if is_long else shorts[strike_index]

    ledger.burn(token, ctx['caller'], size)
    ledger.transfer(state['collateral_token'], market_account(state), ctx['caller'], received)

    logger.info(f"Sell {'long' if is_long else 'short'}[{strike_index}] size={size} by {ctx['caller']}: received {received} (fee {quote['fee']})")
    events = [{
        'type': 'TRADE',
        'payload': {
            'account': ctx['caller'],
            'is_buy': False,
            'is_long': is_long,
            'strike_index': strike_index,
            'size': size,
            'cost': received,
            'fee': quote['fee'],
            'new_supply': new_supply,
        },
    }]
    return received, events
