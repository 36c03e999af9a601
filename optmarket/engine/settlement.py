import logging
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from optmarket.utils import collateral_amount, safe_divide, to_decimal
from .collaborators import CallContext, Ledger, Oracle
from .cost_function import effective_depth, lslmsr_cost, market_cost
from .errors import (
    AlreadyDisputed,
    AlreadySettled,
    BalanceMustBePositive,
    DisputeWindowClosed,
    InDisputePeriod,
    NotYetExpired,
    NotYetSettled,
)
from .params import validate_strike_index
from .state import (
    MarketState,
    collateral_scale,
    get_quantities,
    market_account,
    num_strikes,
    position_token,
)

logger = logging.getLogger(__name__)


def position_payoff(state: MarketState, is_long: bool, strike_index: int, price: Decimal) -> Decimal:
    """
    Payoff of one unit in price units. Longs pay the in-the-money distance;
    covers pay the strike capped at the price, for calls and puts alike.
    """
    strike = state['strike_prices'][strike_index]
    if not is_long:
        return min(price, strike)
    if state['is_put']:
        return max(Decimal('0'), strike - price)
    return max(Decimal('0'), price - strike)


def total_payoff(state: MarketState, price: Decimal) -> Decimal:
    total = Decimal('0')
    for i in range(num_strikes(state)):
        total += state['long_supply'][i] * position_payoff(state, True, i, price)
        total += state['short_supply'][i] * position_payoff(state, False, i, price)
    return total


def dispute_deadline(state: MarketState) -> int:
    return state['settled_at'] + state['dispute_period']


def settle(state: MarketState, oracle: Oracle, ctx: CallContext) -> List[Dict[str, Any]]:
    """
    Fix the expiry price from the oracle and snapshot the collateral owed to holders.
    The oracle is read before anything is written, so an oracle failure leaves the
    market untouched.
    """
    if ctx['now'] < state['expiry_time']:
        raise NotYetExpired("Cannot be called before expiry")
    if state['is_settled']:
        raise AlreadySettled("Already settled")

    price = to_decimal(oracle.get_price())
    q = get_quantities(state)
    b = effective_depth(q, state['liquidity_depth'], state['alpha'])
    cost = collateral_amount(collateral_scale(state) * lslmsr_cost(q, b))
    payoff_total = total_payoff(state, price)

    state['is_settled'] = True
    state['settlement_price'] = price
    state['settled_at'] = ctx['now']
    state['cost_at_settlement'] = cost
    state['total_payoff_at_settlement'] = payoff_total

    logger.info(f"Settled at price {price}: cost {cost}, total payoff {payoff_total}")
    return [{
        'type': 'SETTLED',
        'payload': {
            'settlement_price': price,
            'cost_at_settlement': cost,
            'total_payoff': payoff_total,
            'settled_at': ctx['now'],
        },
    }]


def dispute_expiry_price(state: MarketState, ctx: CallContext, new_price: Decimal) -> List[Dict[str, Any]]:
    if not state['is_settled']:
        raise NotYetSettled("Cannot be called before settlement")
    if ctx['now'] >= dispute_deadline(state):
        raise DisputeWindowClosed("Dispute period is over")
    if state['disputed']:
        raise AlreadyDisputed("Settlement price was already corrected")

    price = to_decimal(new_price)
    old_price = state['settlement_price']
    state['settlement_price'] = price
    state['total_payoff_at_settlement'] = total_payoff(state, price)
    state['disputed'] = True

    logger.info(f"Settlement price disputed: {old_price} -> {price}")
    return [{
        'type': 'DISPUTED',
        'payload': {
            'old_price': old_price,
            'settlement_price': price,
            'total_payoff': state['total_payoff_at_settlement'],
        },
    }]


def calc_payout(state: MarketState, payoff: Decimal) -> Decimal:
    """Pro-rata share of cost_at_settlement, rounded down."""
    total = state['total_payoff_at_settlement']
    if total == 0:
        return Decimal('0')
    return collateral_amount(safe_divide(state['cost_at_settlement'] * payoff, total))


def redeem(
    state: MarketState,
    ledger: Ledger,
    ctx: CallContext,
    is_long: bool,
    strike_index: int,
) -> Tuple[Decimal, List[Dict[str, Any]]]:
    validate_strike_index(strike_index, num_strikes(state))
    if ctx['now'] < state['expiry_time']:
        raise NotYetExpired("Cannot be called before expiry")
    if not state['is_settled']:
        raise NotYetSettled("Cannot be called before settlement")
    if ctx['now'] < dispute_deadline(state):
        raise InDisputePeriod("Cannot be called during dispute period")

    token = position_token(state, is_long, strike_index)
    balance = ledger.balance_of(token, ctx['caller'])
    if balance <= 0:
        raise BalanceMustBePositive("Balance must be > 0")

    payoff = balance * position_payoff(state, is_long, strike_index, state['settlement_price'])
    payout = calc_payout(state, payoff)

    key = 'long_supply' if is_long else 'short_supply'
    supply = list(state[key])
    supply[strike_index] -= balance
    state[key] = supply
    state['redeemed_payoff'] += payoff
    state['paid_out'] += payout

    ledger.burn(token, ctx['caller'], balance)
    if payout > 0:
        ledger.transfer(state['collateral_token'], market_account(state), ctx['caller'], payout)

    logger.info(f"Redeemed {balance} of {token} by {ctx['caller']} for {payout}")
    return payout, [{
        'type': 'REDEEMED',
        'payload': {
            'account': ctx['caller'],
            'is_long': is_long,
            'strike_index': strike_index,
            'amount': balance,
            'payout': payout,
        },
    }]


def outstanding_obligation(state: MarketState, now: Optional[int] = None) -> Decimal:
    """
    Unpaid part of cost_at_settlement. While the dispute window is open (or the
    time is unknown) the price can still move, so everything unpaid stays owed.
    """
    if now is None or now < dispute_deadline(state):
        return state['cost_at_settlement'] - state['paid_out']
    total = state['total_payoff_at_settlement']
    if total == 0 or state['redeemed_payoff'] >= total:
        return Decimal('0')
    return state['cost_at_settlement'] - state['paid_out']


def calc_skim_amount(state: MarketState, ledger: Ledger, now: Optional[int] = None) -> Decimal:
    """
    Collateral held beyond what the market can still owe: the rounded-up curve
    cost while trading, the unpaid part of cost_at_settlement once settled.
    """
    held = ledger.balance_of(state['collateral_token'], market_account(state))
    if state['is_settled']:
        owed = outstanding_obligation(state, now)
    else:
        owed = market_cost(get_quantities(state), state['liquidity_depth'], state['alpha'], collateral_scale(state))
    return max(Decimal('0'), held - owed)


def skim(state: MarketState, ledger: Ledger, ctx: CallContext) -> Tuple[Decimal, List[Dict[str, Any]]]:
    amount = calc_skim_amount(state, ledger, ctx['now'])
    fees = state['fees_accrued']
    state['fees_accrued'] = Decimal('0')
    if amount > 0:
        ledger.transfer(state['collateral_token'], market_account(state), ctx['caller'], amount)
    logger.info(f"Skimmed {amount} to {ctx['caller']} (accrued fees {fees})")
    return amount, [{
        'type': 'SKIMMED',
        'payload': {'recipient': ctx['caller'], 'amount': amount, 'fees_accrued': fees},
    }]
