"""
Interfaces to the systems the engine does not own: the balance ledger, the
price oracle and access control. In-memory implementations back the tests and
the demo script.
"""
from decimal import Decimal
from typing import Dict, Protocol, Tuple
from typing_extensions import TypedDict

from optmarket.utils import to_decimal
from .errors import InsufficientBalance, Unauthorized


class CallContext(TypedDict):
    """Who is calling and the wall-clock time (unix seconds) the call is evaluated at."""
    caller: str
    now: int


class Ledger(Protocol):
    def mint(self, token: str, holder: str, amount: Decimal) -> None: ...

    def burn(self, token: str, holder: str, amount: Decimal) -> None: ...

    def transfer(self, token: str, sender: str, recipient: str, amount: Decimal) -> None: ...

    def balance_of(self, token: str, holder: str) -> Decimal: ...

    def total_supply(self, token: str) -> Decimal: ...


class Oracle(Protocol):
    def get_price(self) -> Decimal: ...


class AccessControl(Protocol):
    def is_owner(self, caller: str) -> bool: ...


class InMemoryLedger:
    """Fungible balances keyed by (token, holder)."""

    def __init__(self) -> None:
        self._balances: Dict[Tuple[str, str], Decimal] = {}
        self._supply: Dict[str, Decimal] = {}

    def balance_of(self, token: str, holder: str) -> Decimal:
        return self._balances.get((token, holder), Decimal('0'))

    def total_supply(self, token: str) -> Decimal:
        return self._supply.get(token, Decimal('0'))

    def mint(self, token: str, holder: str, amount: Decimal) -> None:
        amount = to_decimal(amount)
        if amount < 0:
            raise ValueError(f"Cannot mint negative amount {amount}")
        self._balances[(token, holder)] = self.balance_of(token, holder) + amount
        self._supply[token] = self.total_supply(token) + amount

    def burn(self, token: str, holder: str, amount: Decimal) -> None:
        amount = to_decimal(amount)
        balance = self.balance_of(token, holder)
        if amount < 0:
            raise ValueError(f"Cannot burn negative amount {amount}")
        if balance < amount:
            raise InsufficientBalance(f"Burn amount exceeds balance: have {balance}, need {amount}")
        self._balances[(token, holder)] = balance - amount
        self._supply[token] = self.total_supply(token) - amount

    def transfer(self, token: str, sender: str, recipient: str, amount: Decimal) -> None:
        amount = to_decimal(amount)
        balance = self.balance_of(token, sender)
        if amount < 0:
            raise ValueError(f"Cannot transfer negative amount {amount}")
        if balance < amount:
            raise InsufficientBalance(f"Transfer amount exceeds balance: have {balance}, need {amount}")
        self._balances[(token, sender)] = balance - amount
        self._balances[(token, recipient)] = self.balance_of(token, recipient) + amount

    def snapshot(self) -> Tuple[Dict[Tuple[str, str], Decimal], Dict[str, Decimal]]:
        return dict(self._balances), dict(self._supply)

    def restore(self, snapshot: Tuple[Dict[Tuple[str, str], Decimal], Dict[str, Decimal]]) -> None:
        balances, supply = snapshot
        self._balances = dict(balances)
        self._supply = dict(supply)


class FixedPriceOracle:
    def __init__(self, price: Decimal = Decimal('0')) -> None:
        self.price = to_decimal(price)

    def set_price(self, price: Decimal) -> None:
        self.price = to_decimal(price)

    def get_price(self) -> Decimal:
        return self.price


class OwnerAccess:
    """Single-owner access control."""

    def __init__(self, owner: str) -> None:
        self.owner = owner

    def is_owner(self, caller: str) -> bool:
        return caller == self.owner

    def transfer_ownership(self, caller: str, new_owner: str) -> None:
        if not self.is_owner(caller):
            raise Unauthorized("Caller is not the owner")
        self.owner = new_owner
