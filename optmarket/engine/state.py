from typing_extensions import TypedDict
from typing import List, Dict, Any, Optional
from decimal import Decimal

from optmarket.utils import to_decimal


class MarketState(TypedDict):
    market_id: str
    collateral_token: str
    strike_prices: List[Decimal]
    is_put: bool
    alpha: Optional[Decimal]
    trading_fee: Decimal
    balance_cap: Decimal
    supply_cap: Decimal
    expiry_time: int
    dispute_period: int
    long_supply: List[Decimal]
    short_supply: List[Decimal]
    liquidity_depth: Decimal
    fees_accrued: Decimal
    paused: bool
    is_settled: bool
    disputed: bool
    settlement_price: Decimal
    settled_at: int
    cost_at_settlement: Decimal
    total_payoff_at_settlement: Decimal
    redeemed_payoff: Decimal
    paid_out: Decimal


DECIMAL_FIELDS = (
    'trading_fee', 'balance_cap', 'supply_cap', 'liquidity_depth', 'fees_accrued',
    'settlement_price', 'cost_at_settlement', 'total_payoff_at_settlement',
    'redeemed_payoff', 'paid_out',
)
DECIMAL_LIST_FIELDS = ('strike_prices', 'long_supply', 'short_supply')


def init_state(params: Dict[str, Any]) -> MarketState:
    """
    Initialize a fresh market: no positions, no liquidity, not settled.
    Expects params already validated by validate_market_params.
    """
    strikes = [to_decimal(k) for k in params['strike_prices']]
    n = len(strikes)
    alpha = params.get('alpha')
    return {
        'market_id': params.get('market_id', 'market'),
        'collateral_token': params.get('collateral_token', 'ETH'),
        'strike_prices': strikes,
        'is_put': bool(params['is_put']),
        'alpha': to_decimal(alpha) if alpha is not None else None,
        'trading_fee': to_decimal(params['trading_fee']),
        'balance_cap': to_decimal(params.get('balance_cap', 0)),
        'supply_cap': to_decimal(params.get('supply_cap', 0)),
        'expiry_time': int(params['expiry_time']),
        'dispute_period': int(params.get('dispute_period', 3600)),
        'long_supply': [Decimal('0')] * n,
        'short_supply': [Decimal('0')] * n,
        'liquidity_depth': Decimal('0'),
        'fees_accrued': Decimal('0'),
        'paused': False,
        'is_settled': False,
        'disputed': False,
        'settlement_price': Decimal('0'),
        'settled_at': 0,
        'cost_at_settlement': Decimal('0'),
        'total_payoff_at_settlement': Decimal('0'),
        'redeemed_payoff': Decimal('0'),
        'paid_out': Decimal('0'),
    }


def serialize_state(state: MarketState) -> Dict[str, Any]:
    """
    Serialize state to a JSON-compatible dict, Decimals as strings.
    """
    serialized: Dict[str, Any] = dict(state)
    for key in DECIMAL_FIELDS:
        serialized[key] = str(state[key])
    for key in DECIMAL_LIST_FIELDS:
        serialized[key] = [str(x) for x in state[key]]
    if state['alpha'] is not None:
        serialized['alpha'] = str(state['alpha'])
    return serialized


def deserialize_state(json_dict: Dict[str, Any]) -> MarketState:
    """
    Deserialize from a JSON dict, converting string amounts back to Decimal.
    """
    state: Dict[str, Any] = dict(json_dict)
    for key in DECIMAL_FIELDS:
        state[key] = Decimal(str(state[key]))
    for key in DECIMAL_LIST_FIELDS:
        state[key] = [Decimal(str(x)) for x in state[key]]
    if state.get('alpha') is not None:
        state['alpha'] = Decimal(str(state['alpha']))
    return state


def num_strikes(state: MarketState) -> int:
    return len(state['strike_prices'])


def max_strike_price(state: MarketState) -> Decimal:
    return state['strike_prices'][-1]


def collateral_scale(state: MarketState) -> Decimal:
    """Calls are collateralised one base unit per position, puts one max-strike of quote."""
    return max_strike_price(state) if state['is_put'] else Decimal('1')


def covers_interval(is_put: bool, is_long: bool, strike_index: int, interval: int) -> bool:
    """
    Whether a position at strike_index pays out when the price lands in interval.
    Interval j lies between strike j-1 and strike j; there are N+1 of them.
    Call longs and put covers pay above the strike, the other two below it.
    """
    pays_above = is_long != is_put
    if pays_above:
        return interval > strike_index
    return interval <= strike_index


def get_quantities(
    state: MarketState,
    long_supply: Optional[List[Decimal]] = None,
    short_supply: Optional[List[Decimal]] = None,
) -> List[Decimal]:
    """
    Outcome-quantity vector of length N+1 built from the per-strike supplies.
    q[j] is the most the market can owe if settlement lands in interval j.
    """
    longs = state['long_supply'] if long_supply is None else long_supply
    shorts = state['short_supply'] if short_supply is None else short_supply
    n = num_strikes(state)
    q = [Decimal('0')] * (n + 1)
    for i in range(n):
        for j in range(n + 1):
            if longs[i] and covers_interval(state['is_put'], True, i, j):
                q[j] += longs[i]
            if shorts[i] and covers_interval(state['is_put'], False, i, j):
                q[j] += shorts[i]
    return q


def supplies_after(
    state: MarketState,
    is_long: bool,
    strike_index: int,
    delta: Decimal,
) -> tuple[List[Decimal], List[Decimal]]:
    """Copies of the supply arrays with delta applied to one arm."""
    longs = list(state['long_supply'])
    shorts = list(state['short_supply'])
    if is_long:
        longs[strike_index] += delta
    else:
        shorts[strike_index] += delta
    return longs, shorts


def total_position_supply(state: MarketState) -> Decimal:
    return sum(state['long_supply'], Decimal('0')) + sum(state['short_supply'], Decimal('0'))


def position_token(state: MarketState, is_long: bool, strike_index: int) -> str:
    side = 'long' if is_long else 'short'
    return f"{state['market_id']}:{side}:{strike_index}"


def lp_token(state: MarketState) -> str:
    return f"{state['market_id']}:lp"


def market_account(state: MarketState) -> str:
    return state['market_id']
