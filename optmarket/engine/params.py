from decimal import Decimal
from typing import Any, Dict, Sequence

from optmarket.config import MarketParams
from optmarket.utils import to_decimal, token_amount
from .state import DECIMAL_FIELDS, DECIMAL_LIST_FIELDS, MarketState
from .errors import (
    AlphaOutOfRange,
    AlreadyExpiredAtCreation,
    EmptyStrikes,
    FeeOutOfRange,
    IndexOutOfRange,
    InvalidCap,
    InvalidDisputePeriod,
    InvalidSize,
    InvalidState,
    LengthMismatch,
    StrikeMustBePositive,
    StrikesNotStrictlyIncreasing,
)


def validate_market_params(params: MarketParams, now: int) -> None:
    """
    Construction-time checks. Any failure here means the market never becomes usable.
    """
    strikes = [to_decimal(k) for k in params['strike_prices']]
    if not strikes:
        raise EmptyStrikes("Strike prices must not be empty")
    if strikes[0] <= 0:
        raise StrikeMustBePositive("Strike prices must be > 0")
    for prev, cur in zip(strikes, strikes[1:]):
        if cur <= prev:
            raise StrikesNotStrictlyIncreasing("Strike prices must be increasing")

    alpha = params.get('alpha')
    if alpha is not None:
        alpha = to_decimal(alpha)
        if alpha <= 0:
            raise AlphaOutOfRange("Alpha must be > 0")
        if alpha >= 1:
            raise AlphaOutOfRange("Alpha must be < 1")

    fee = to_decimal(params['trading_fee'])
    if not (Decimal('0') <= fee < Decimal('1')):
        raise FeeOutOfRange("Trading fee must be in [0, 1)")

    for cap in ('balance_cap', 'supply_cap'):
        if to_decimal(params.get(cap, 0)) < 0:
            raise InvalidCap(f"{cap} must be >= 0")
    if int(params.get('dispute_period', 0)) < 0:
        raise InvalidDisputePeriod("dispute_period must be >= 0")

    if int(params['expiry_time']) <= now:
        raise AlreadyExpiredAtCreation("Already expired")


def validate_strike_index(strike_index: int, n_strikes: int) -> None:
    if not 0 <= strike_index < n_strikes:
        raise IndexOutOfRange("Index too large")


def validate_lengths(n_strikes: int, *vectors: Sequence[Any]) -> None:
    for v in vectors:
        if len(v) != n_strikes:
            raise LengthMismatch("Lengths do not match")


def validate_size(size: Any) -> Decimal:
    """Quantise a position or share size to the token unit and require it positive."""
    s = token_amount(size)
    if s <= Decimal('0'):
        raise InvalidSize(f"Invalid size: {size}. Must be positive.")
    return s


def validate_caps(balance_cap: Decimal, supply_cap: Decimal) -> None:
    if balance_cap < 0 or supply_cap < 0:
        raise InvalidCap("Caps must be >= 0")


def get_param_documentation() -> dict[str, str]:
    """Human-readable one-liners for each market parameter, used by the CLI help."""
    return {
        'strike_prices': "Strictly increasing strikes; N strikes give N+1 price intervals.",
        'expiry_time': "Unix time after which trading stops and settle() may be called.",
        'is_put': "Puts collateralise in the quote asset scaled by the largest strike.",
        'alpha': (
            "LS-LMSR sensitivity in (0, 1); depth grows as alpha * sum(q). "
            "None gives a fixed-depth LMSR funded only by deposits."
        ),
        'trading_fee': "Fraction of notional charged on every buy and sell.",
        'balance_cap': "Ceiling on collateral held by the market, 0 = unlimited.",
        'supply_cap': "Ceiling on total outstanding position supply, 0 = unlimited.",
        'dispute_period': "Seconds after settlement during which the owner may correct the price.",
    }


def validate_state_keys(raw: Dict[str, Any]) -> None:
    """A persisted record must carry exactly the MarketState fields."""
    expected = set(MarketState.__annotations__)
    missing = expected - set(raw)
    unknown = set(raw) - expected
    if missing or unknown:
        raise InvalidState(f"State fields mismatch: missing {sorted(missing)}, unknown {sorted(unknown)}")


def validate_state(state: MarketState) -> None:
    """
    Structural checks on a loaded record: field types, vector lengths and
    non-negative amounts. Economic history (solvency) is not re-derived here.
    """
    for key in DECIMAL_FIELDS:
        if not isinstance(state[key], Decimal):
            raise InvalidState(f"{key} must be a Decimal")
    for key in DECIMAL_LIST_FIELDS:
        if not all(isinstance(x, Decimal) for x in state[key]):
            raise InvalidState(f"{key} must hold Decimals")
    if state['alpha'] is not None and not isinstance(state['alpha'], Decimal):
        raise InvalidState("alpha must be a Decimal or None")
    for key in ('is_put', 'paused', 'is_settled', 'disputed'):
        if not isinstance(state[key], bool):
            raise InvalidState(f"{key} must be a bool")
    for key in ('expiry_time', 'dispute_period', 'settled_at'):
        if isinstance(state[key], bool) or not isinstance(state[key], int):
            raise InvalidState(f"{key} must be an int")

    strikes = state['strike_prices']
    if not strikes:
        raise EmptyStrikes("Strike prices must not be empty")
    if strikes[0] <= 0:
        raise StrikeMustBePositive("Strike prices must be > 0")
    for prev, cur in zip(strikes, strikes[1:]):
        if cur <= prev:
            raise StrikesNotStrictlyIncreasing("Strike prices must be increasing")
    validate_lengths(len(strikes), state['long_supply'], state['short_supply'])

    if any(x < 0 for x in state['long_supply'] + state['short_supply']):
        raise InvalidState("Supplies must be >= 0")
    if state['liquidity_depth'] < 0 or state['fees_accrued'] < 0:
        raise InvalidState("Liquidity depth and fees must be >= 0")
    validate_caps(state['balance_cap'], state['supply_cap'])
    if state['dispute_period'] < 0:
        raise InvalidDisputePeriod("dispute_period must be >= 0")
