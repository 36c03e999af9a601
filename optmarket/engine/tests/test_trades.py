import pytest
import numpy as np
from decimal import Decimal
from typing import Any, Dict

from optmarket.config import get_market_params
from optmarket.engine.collaborators import FixedPriceOracle, InMemoryLedger
from optmarket.engine.cost_function import market_cost
from optmarket.engine.errors import (
    AlreadyExpired,
    AmountOutMustBePositive,
    BalanceCapExceeded,
    IndexOutOfRange,
    InsufficientBalance,
    InvalidSize,
    NotYetLiquid,
    SlippageExceeded,
    SupplyCapExceeded,
)
from optmarket.engine.market import Market
from optmarket.engine.trades import calc_fee

NOW = 1_700_000_000
FUNDS = Decimal('1000000')
MAX = Decimal('1e50')
ZEROS = [Decimal('0')] * 5


def ctx(caller: str, now: int = NOW) -> Dict[str, Any]:
    return {'caller': caller, 'now': now}


def dec(values):
    return [Decimal(str(v)) for v in values]


def np_cost(q, b):
    q = np.array([float(x) for x in q], dtype=np.float64)
    m = q.max()
    return m + b * np.log(np.exp((q - m) / b).sum())


def make_market(overrides=None, funds=FUNDS) -> Market:
    params = get_market_params(overrides or {}, use_env=False)
    ledger = InMemoryLedger()
    for user in ('owner', 'alice', 'bob'):
        ledger.mint(params['collateral_token'], user, funds)
    return Market(params, ledger=ledger, oracle=FixedPriceOracle(Decimal('444')), owner='owner', now=NOW)


@pytest.fixture
def market() -> Market:
    return make_market()


@pytest.fixture
def fixed_market() -> Market:
    m = make_market({'alpha': None})
    m.deposit(ctx('owner'), Decimal('10'), MAX)
    return m


def assert_solvent(m: Market):
    assert m.collateral_held >= m.calc_cost() + m.fees_accrued


def test_buy_calls_lslmsr_cost(market: Market):
    paid = market.buy(ctx('alice'), True, 0, Decimal('2'), MAX)
    q = dec([0, 2, 2, 2, 2])
    assert paid == market_cost(q, Decimal('0'), Decimal('0.1')) + Decimal('0.02')
    assert float(paid) == pytest.approx(np_cost(q, 0.8) + 0.02, rel=1e-12)
    assert market.long_supply == dec([2, 0, 0, 0])
    assert market.position_balance('alice', True, 0) == Decimal('2')
    assert market.ledger.balance_of('ETH', 'alice') == FUNDS - paid
    assert market.fees_accrued == Decimal('0.02')
    assert_solvent(market)


def test_buy_calls_fixed_depth(fixed_market: Market):
    paid = fixed_market.buy(ctx('alice'), True, 0, Decimal('2'), MAX)
    q = dec([0, 2, 2, 2, 2])
    expected = market_cost(q, Decimal('10'), None) - market_cost(ZEROS, Decimal('10'), None) + Decimal('0.02')
    assert paid == expected
    assert float(paid) == pytest.approx(np_cost(q, 10.0) - np_cost([0] * 5, 10.0) + 0.02, rel=1e-12)


def test_buy_put_scaled_by_max_strike():
    m = make_market({'is_put': True})
    paid = m.buy(ctx('alice'), True, 3, Decimal('1'), MAX)
    q = dec([1, 1, 1, 1, 0])
    # fee on notional: 1 * 600 * 1%
    assert paid == market_cost(q, Decimal('0'), Decimal('0.1'), Decimal('600')) + Decimal('6')
    assert float(paid) == pytest.approx(600 * np_cost(q, 0.4) + 6, rel=1e-12)
    assert_solvent(m)


def test_put_fee_uses_strike_of_traded_index():
    m = make_market({'is_put': True})
    assert calc_fee(m.state, 0, Decimal('2')) == Decimal('6')
    assert calc_fee(m.state, 2, Decimal('2')) == Decimal('10')


def test_buy_before_liquidity_rejected():
    m = make_market({'alpha': None})
    with pytest.raises(NotYetLiquid):
        m.buy(ctx('alice'), True, 0, Decimal('1'), MAX)


def test_buy_after_expiry_rejected(market: Market):
    with pytest.raises(AlreadyExpired, match="Already expired"):
        market.buy(ctx('alice', market.expiry_time), True, 0, Decimal('1'), MAX)


def test_buy_bad_index(market: Market):
    with pytest.raises(IndexOutOfRange):
        market.buy(ctx('alice'), True, 4, Decimal('1'), MAX)


def test_buy_bad_size(market: Market):
    with pytest.raises(InvalidSize):
        market.buy(ctx('alice'), True, 0, Decimal('0'), MAX)


def test_buy_slippage(market: Market):
    quote = market.quote_buy(True, 0, Decimal('2'))
    with pytest.raises(SlippageExceeded):
        market.buy(ctx('alice'), True, 0, Decimal('2'), quote['total'] - Decimal('1e-18'))
    assert market.buy(ctx('alice'), True, 0, Decimal('2'), quote['total']) == quote['total']


def test_buy_insufficient_collateral():
    m = make_market(funds=Decimal('0.5'))
    with pytest.raises(InsufficientBalance):
        m.buy(ctx('alice'), True, 0, Decimal('2'), MAX)
    assert m.long_supply == [Decimal('0')] * 4


def test_balance_cap_exact_limit_allowed():
    m = make_market()
    quote = m.quote_buy(True, 0, Decimal('40'))
    m.set_caps(ctx('owner'), quote['total'], Decimal('0'))
    m.buy(ctx('alice'), True, 0, Decimal('40'), MAX)
    assert m.collateral_held == quote['total']


def test_balance_cap_exceeded():
    m = make_market()
    quote = m.quote_buy(True, 0, Decimal('41'))
    m.set_caps(ctx('owner'), quote['total'] - Decimal('1e-18'), Decimal('0'))
    with pytest.raises(BalanceCapExceeded, match="Balance limit exceeded"):
        m.buy(ctx('alice'), True, 0, Decimal('41'), MAX)


def test_supply_cap():
    m = make_market({'supply_cap': '40'})
    m.buy(ctx('alice'), True, 0, Decimal('30'), MAX)
    m.buy(ctx('bob'), False, 2, Decimal('10'), MAX)
    with pytest.raises(SupplyCapExceeded, match="Supply limit exceeded"):
        m.buy(ctx('bob'), False, 2, Decimal('1'), MAX)


@pytest.mark.parametrize("size", ['1e-15', '0.5', '1', '1000', '1e18', '1e36'])
@pytest.mark.parametrize("is_put", [False, True])
def test_round_trip_costs_exactly_two_fees(size, is_put):
    funds = Decimal('1e42')
    m = make_market({'is_put': is_put}, funds=funds)
    size = Decimal(size)
    paid = m.buy(ctx('alice'), True, 1, size, MAX)
    received = m.sell(ctx('alice'), True, 1, size, Decimal('0'))
    fee = calc_fee(m.state, 1, size)
    assert paid - received == 2 * fee
    assert m.ledger.balance_of('ETH', 'alice') == funds - 2 * fee
    assert m.long_supply == [Decimal('0')] * 4
    assert_solvent(m)


def test_round_trip_with_existing_positions(fixed_market: Market):
    fixed_market.buy(ctx('bob'), False, 2, Decimal('3'), MAX)
    before = fixed_market.ledger.balance_of('ETH', 'alice')
    paid = fixed_market.buy(ctx('alice'), True, 0, Decimal('5'), MAX)
    received = fixed_market.sell(ctx('alice'), True, 0, Decimal('5'), Decimal('0'))
    assert paid - received == Decimal('0.1')
    assert fixed_market.ledger.balance_of('ETH', 'alice') == before - Decimal('0.1')


def test_sell_more_than_held(market: Market):
    market.buy(ctx('alice'), True, 0, Decimal('2'), MAX)
    market.buy(ctx('bob'), True, 0, Decimal('2'), MAX)
    with pytest.raises(InsufficientBalance):
        market.sell(ctx('alice'), True, 0, Decimal('3'), Decimal('0'))


def test_sell_slippage(market: Market):
    market.buy(ctx('alice'), True, 0, Decimal('2'), MAX)
    quote = market.quote_sell(True, 0, Decimal('2'))
    with pytest.raises(SlippageExceeded):
        market.sell(ctx('alice'), True, 0, Decimal('2'), quote['total'] + Decimal('1e-18'))


def test_sell_amount_out_must_be_positive():
    m = make_market({
        'strike_prices': [400, 500, 600],
        'alpha': '0.060682615108455816',
        'trading_fee': '0.1',
    })
    m.buy(ctx('alice'), True, 2, Decimal('1'), MAX)
    m.buy(ctx('bob'), False, 2, Decimal('3'), MAX)
    with pytest.raises(AmountOutMustBePositive, match="Amount out must be > 0"):
        m.sell(ctx('alice'), True, 2, Decimal('1'), Decimal('0'))
    assert m.position_balance('alice', True, 2) == Decimal('1')


def test_sell_charges_fee(market: Market):
    market.buy(ctx('alice'), False, 1, Decimal('4'), MAX)
    quote = market.quote_sell(False, 1, Decimal('4'))
    assert quote['fee'] == Decimal('0.04')
    assert quote['total'] == quote['cost'] - quote['fee']


def test_trade_event(market: Market):
    paid = market.buy(ctx('alice'), True, 0, Decimal('2'), MAX)
    event = market.events[-1]
    assert event['type'] == 'TRADE'
    assert event['payload']['account'] == 'alice'
    assert event['payload']['is_buy'] is True
    assert event['payload']['cost'] == paid
    assert event['payload']['new_supply'] == Decimal('2')


def test_solvency_through_trading_sequence(market: Market):
    steps = [
        ('buy', 'alice', True, 0, '2'),
        ('buy', 'bob', False, 3, '5'),
        ('buy', 'alice', True, 2, '3'),
        ('sell', 'bob', False, 3, '2'),
        ('buy', 'bob', False, 1, '7'),
        ('sell', 'alice', True, 0, '1'),
        ('sell', 'alice', True, 2, '3'),
    ]
    for action, who, is_long, idx, size in steps:
        if action == 'buy':
            market.buy(ctx(who), is_long, idx, Decimal(size), MAX)
        else:
            market.sell(ctx(who), is_long, idx, Decimal(size), Decimal('0'))
        assert_solvent(market)
        assert all(x >= 0 for x in market.quantities())


def test_large_size_leaves_only_fees():
    funds = Decimal('1e22')
    m = make_market(funds=funds)
    size = Decimal('1e18')
    m.buy(ctx('alice'), True, 0, size, MAX)
    m.sell(ctx('alice'), True, 0, size, Decimal('0'))
    m.buy(ctx('alice'), True, 0, size, MAX)
    assert m.fees_accrued == 3 * size * Decimal('0.01')
    assert_solvent(m)
