import json
from decimal import Decimal, getcontext, ROUND_CEILING, ROUND_DOWN
from typing import Any, Dict

import mpmath as mp
import numpy as np

# Sizes up to 1e36 quantised to 1e-18 need ~55 significant digits.
getcontext().prec = 80
mp.mp.dps = 90

COLLATERAL_DECIMALS = 18
TOKEN_DECIMALS = 18

COLLATERAL_UNIT = Decimal(f'1e-{COLLATERAL_DECIMALS}')
TOKEN_UNIT = Decimal(f'1e-{TOKEN_DECIMALS}')


def to_decimal(x: int | float | str | Decimal) -> Decimal:
    if isinstance(x, Decimal):
        return x
    return Decimal(str(x))


def collateral_amount(amount: int | float | str | Decimal) -> Decimal:
    """Quantise down to the collateral unit (amounts paid out by the market)."""
    return to_decimal(amount).quantize(COLLATERAL_UNIT, rounding=ROUND_DOWN)


def collateral_ceil(amount: int | float | str | Decimal) -> Decimal:
    """Quantise up to the collateral unit (amounts owed to the market)."""
    return to_decimal(amount).quantize(COLLATERAL_UNIT, rounding=ROUND_CEILING)


def token_amount(amount: int | float | str | Decimal) -> Decimal:
    return to_decimal(amount).quantize(TOKEN_UNIT, rounding=ROUND_DOWN)


def to_mpf(d: int | str | Decimal) -> mp.mpf:
    return mp.mpf(str(d))


def from_mpf(x: mp.mpf) -> Decimal:
    return Decimal(str(x))


def safe_divide(num: Decimal, den: Decimal) -> Decimal:
    if den == Decimal(0):
        raise ValueError("Division by zero.")
    return num / den


def dumps_state(state: Dict[str, Any]) -> str:
    def default_handler(obj: Any) -> Any:
        if isinstance(obj, Decimal):
            return str(obj)
        if isinstance(obj, (np.float64, np.float32)):
            return float(obj)
        raise TypeError(f"Object of type {type(obj)} is not JSON serializable")
    return json.dumps(state, default=default_handler)


def loads_state(json_str: str) -> Dict[str, Any]:
    return json.loads(json_str)


def format_amounts(amounts: list[Decimal], places: int = 6) -> list[float]:
    """Display-only conversion of Decimal amounts to rounded floats."""
    return np.round(np.array([float(a) for a in amounts], dtype=np.float64), places).tolist()
