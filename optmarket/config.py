from typing_extensions import TypedDict
from decimal import Decimal
from typing import Any, Dict, List, Optional
import os
from dotenv import load_dotenv

# Optional overrides read from the environment (or a local .env file).
ENV_OVERRIDES = {
    'OPTMARKET_TRADING_FEE': 'trading_fee',
    'OPTMARKET_ALPHA': 'alpha',
    'OPTMARKET_BALANCE_CAP': 'balance_cap',
    'OPTMARKET_SUPPLY_CAP': 'supply_cap',
    'OPTMARKET_DISPUTE_PERIOD': 'dispute_period',
    'OPTMARKET_COLLATERAL_TOKEN': 'collateral_token',
}

INT_KEYS = {'expiry_time', 'dispute_period'}
DECIMAL_KEYS = {'trading_fee', 'balance_cap', 'supply_cap'}


def load_env() -> dict[str, str]:
    # Try to load from .env file (for local development)
    load_dotenv()

    env_vars = {}
    for key, param in ENV_OVERRIDES.items():
        value = os.getenv(key)
        if value is not None and value != '':
            env_vars[param] = value
    return env_vars


class MarketParams(TypedDict):
    market_id: str
    collateral_token: str
    strike_prices: List[Decimal]
    expiry_time: int
    is_put: bool
    alpha: Optional[Decimal]
    trading_fee: Decimal
    balance_cap: Decimal
    supply_cap: Decimal
    dispute_period: int


def get_default_market_params() -> MarketParams:
    return MarketParams(
        market_id='market',
        collateral_token='ETH',
        strike_prices=[Decimal('300'), Decimal('400'), Decimal('500'), Decimal('600')],
        expiry_time=2000000000,  # 18 May 2033
        is_put=False,
        alpha=Decimal('0.1'),
        trading_fee=Decimal('0.01'),
        balance_cap=Decimal('0'),  # 0 = unlimited
        supply_cap=Decimal('0'),  # 0 = unlimited
        dispute_period=3600,
    )


def _coerce(key: str, value: Any) -> Any:
    if key in INT_KEYS:
        return int(value)
    if key in DECIMAL_KEYS:
        return Decimal(str(value))
    if key == 'alpha':
        if value is None or str(value).lower() in ('', 'none'):
            return None
        return Decimal(str(value))
    if key == 'strike_prices':
        return [Decimal(str(k)) for k in value]
    if key == 'is_put':
        if isinstance(value, str):
            return value.lower() in ('1', 'true', 'yes')
        return bool(value)
    return value


def get_market_params(overrides: Dict[str, Any] = None, use_env: bool = True) -> MarketParams:
    """
    Defaults, then environment overrides, then explicit overrides.
    Unknown keys raise so a typo never silently falls back to a default.
    """
    params: Dict[str, Any] = dict(get_default_market_params())
    layers = []
    if use_env:
        layers.append(load_env())
    if overrides:
        layers.append(overrides)
    for layer in layers:
        for key, value in layer.items():
            if key not in params:
                raise ValueError(f"Unknown market parameter: {key}")
            params[key] = _coerce(key, value)
    return MarketParams(**params)
