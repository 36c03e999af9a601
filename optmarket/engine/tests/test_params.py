import pytest
from decimal import Decimal
from typing import Any, Dict

from optmarket.config import get_market_params
from optmarket.engine.errors import (
    AlphaOutOfRange,
    AlreadyExpiredAtCreation,
    EmptyStrikes,
    FeeOutOfRange,
    IndexOutOfRange,
    InvalidCap,
    InvalidDisputePeriod,
    InvalidSize,
    LengthMismatch,
    MarketError,
    StrikeMustBePositive,
    StrikesNotStrictlyIncreasing,
)
from optmarket.engine.params import (
    get_param_documentation,
    validate_caps,
    validate_lengths,
    validate_market_params,
    validate_size,
    validate_strike_index,
)

NOW = 1_700_000_000


@pytest.fixture
def params() -> Dict[str, Any]:
    return get_market_params(use_env=False)


def test_default_params_valid(params):
    validate_market_params(params, NOW)


def test_empty_strikes(params):
    params['strike_prices'] = []
    with pytest.raises(EmptyStrikes, match="must not be empty"):
        validate_market_params(params, NOW)


def test_strikes_positive(params):
    params['strike_prices'] = [Decimal('0'), Decimal('100')]
    with pytest.raises(StrikeMustBePositive):
        validate_market_params(params, NOW)


@pytest.mark.parametrize("strikes", [[300, 300], [400, 300], [300, 500, 400]])
def test_strikes_strictly_increasing(params, strikes):
    params['strike_prices'] = [Decimal(k) for k in strikes]
    with pytest.raises(StrikesNotStrictlyIncreasing, match="increasing"):
        validate_market_params(params, NOW)


@pytest.mark.parametrize("alpha", ['0', '-0.1', '1', '1.5'])
def test_alpha_range(params, alpha):
    params['alpha'] = Decimal(alpha)
    with pytest.raises(AlphaOutOfRange):
        validate_market_params(params, NOW)


def test_alpha_none_allowed(params):
    params['alpha'] = None
    validate_market_params(params, NOW)


@pytest.mark.parametrize("fee", ['-0.01', '1', '2'])
def test_fee_range(params, fee):
    params['trading_fee'] = Decimal(fee)
    with pytest.raises(FeeOutOfRange, match="Trading fee"):
        validate_market_params(params, NOW)


def test_already_expired(params):
    with pytest.raises(AlreadyExpiredAtCreation, match="Already expired"):
        validate_market_params(params, params['expiry_time'])


def test_negative_caps_rejected(params):
    params['balance_cap'] = Decimal('-1')
    with pytest.raises(InvalidCap, match="balance_cap"):
        validate_market_params(params, NOW)
    with pytest.raises(InvalidCap):
        validate_caps(Decimal('0'), Decimal('-1'))


def test_negative_dispute_period_rejected(params):
    params['dispute_period'] = -1
    with pytest.raises(InvalidDisputePeriod, match="dispute_period"):
        validate_market_params(params, NOW)


def test_strike_index():
    validate_strike_index(3, 4)
    with pytest.raises(IndexOutOfRange, match="Index too large"):
        validate_strike_index(4, 4)
    with pytest.raises(IndexOutOfRange):
        validate_strike_index(-1, 4)


def test_lengths():
    validate_lengths(2, [1, 2], [3, 4])
    with pytest.raises(LengthMismatch):
        validate_lengths(2, [1, 2], [3])


def test_size_quantised_and_positive():
    assert validate_size('1.5') == Decimal('1.500000000000000000')
    with pytest.raises(InvalidSize):
        validate_size(Decimal('0'))
    with pytest.raises(InvalidSize):
        validate_size(Decimal('1e-19'))


def test_errors_are_value_errors():
    assert issubclass(IndexOutOfRange, MarketError)
    assert issubclass(MarketError, ValueError)


def test_param_documentation_covers_params(params):
    docs = get_param_documentation()
    for key in ('strike_prices', 'expiry_time', 'alpha', 'trading_fee', 'dispute_period'):
        assert key in docs
        assert key in params
