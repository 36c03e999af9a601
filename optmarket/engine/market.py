"""
Market facade: one MarketState plus its ledger, oracle and access control.

Each mutating call runs in a transaction scope. State (and the ledger, when it
can snapshot itself) is copied on entry and put back if anything raises, so a
failed call leaves no trace. Events from successful calls accumulate in
``Market.events``.
"""
import copy
import logging
import time
from contextlib import contextmanager
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Iterator, List, Optional, Sequence

from optmarket.config import MarketParams
from optmarket.utils import dumps_state, loads_state, to_decimal
from . import liquidity, settlement, trades
from .collaborators import AccessControl, CallContext, FixedPriceOracle, InMemoryLedger, Ledger, Oracle, OwnerAccess
from .cost_function import instantaneous_prices, market_cost
from .errors import AlreadySettled, InvalidState, Paused, Unauthorized
from .params import (
    validate_caps,
    validate_market_params,
    validate_state,
    validate_state_keys,
    validate_strike_index,
)
from .state import (
    MarketState,
    collateral_scale,
    deserialize_state,
    get_quantities,
    init_state,
    lp_token,
    market_account,
    num_strikes,
    position_token,
    serialize_state,
)

logger = logging.getLogger(__name__)


def _state_view(key: str) -> property:
    return property(lambda self: copy.deepcopy(self.state[key]), doc=f"Current {key}.")


class Market:
    def __init__(
        self,
        params: MarketParams,
        ledger: Optional[Ledger] = None,
        oracle: Optional[Oracle] = None,
        access: Optional[AccessControl] = None,
        owner: str = 'owner',
        now: Optional[int] = None,
    ) -> None:
        now = int(time.time()) if now is None else now
        validate_market_params(params, now)
        self.state: MarketState = init_state(params)
        self.ledger = ledger if ledger is not None else InMemoryLedger()
        self.oracle = oracle if oracle is not None else FixedPriceOracle()
        self.access = access if access is not None else OwnerAccess(owner)
        self.events: List[Dict[str, Any]] = []
        logger.info(
            f"Market {self.state['market_id']} created: {num_strikes(self.state)} strikes, "
            f"{'put' if self.state['is_put'] else 'call'}, alpha={self.state['alpha']}, expiry={self.state['expiry_time']}"
        )

    # State views

    market_id = _state_view('market_id')
    collateral_token = _state_view('collateral_token')
    strike_prices = _state_view('strike_prices')
    is_put = _state_view('is_put')
    alpha = _state_view('alpha')
    trading_fee = _state_view('trading_fee')
    balance_cap = _state_view('balance_cap')
    supply_cap = _state_view('supply_cap')
    expiry_time = _state_view('expiry_time')
    dispute_period = _state_view('dispute_period')
    long_supply = _state_view('long_supply')
    short_supply = _state_view('short_supply')
    liquidity_depth = _state_view('liquidity_depth')
    fees_accrued = _state_view('fees_accrued')
    paused = _state_view('paused')
    is_settled = _state_view('is_settled')
    settlement_price = _state_view('settlement_price')
    settled_at = _state_view('settled_at')
    cost_at_settlement = _state_view('cost_at_settlement')
    total_payoff_at_settlement = _state_view('total_payoff_at_settlement')
    redeemed_payoff = _state_view('redeemed_payoff')
    paid_out = _state_view('paid_out')

    @property
    def collateral_held(self) -> Decimal:
        return self.ledger.balance_of(self.state['collateral_token'], market_account(self.state))

    def position_balance(self, holder: str, is_long: bool, strike_index: int) -> Decimal:
        validate_strike_index(strike_index, num_strikes(self.state))
        return self.ledger.balance_of(position_token(self.state, is_long, strike_index), holder)

    def lp_balance(self, holder: str) -> Decimal:
        return self.ledger.balance_of(lp_token(self.state), holder)

    def quantities(self) -> List[Decimal]:
        return get_quantities(self.state)

    def calc_cost(self) -> Decimal:
        """Collateral the curve requires at the current quantities, rounded up."""
        return market_cost(
            get_quantities(self.state),
            self.state['liquidity_depth'],
            self.state['alpha'],
            collateral_scale(self.state),
        )

    def prices(self) -> List[Decimal]:
        return instantaneous_prices(get_quantities(self.state), self.state['liquidity_depth'], self.state['alpha'])

    def quote_buy(self, is_long: bool, strike_index: int, size: Decimal) -> trades.TradeQuote:
        return trades.quote_buy(self.state, is_long, strike_index, to_decimal(size))

    def quote_sell(self, is_long: bool, strike_index: int, size: Decimal) -> trades.TradeQuote:
        return trades.quote_sell(self.state, is_long, strike_index, to_decimal(size))

    def quote_deposit(self, shares: Decimal) -> Decimal:
        return liquidity.quote_deposit(self.state, to_decimal(shares))

    def quote_withdraw(self, shares: Decimal) -> Decimal:
        return liquidity.quote_withdraw(self.state, to_decimal(shares))

    def calc_skim_amount(self, now: Optional[int] = None) -> Decimal:
        """Skimmable collateral at time now; without a time the dispute window counts as open."""
        return settlement.calc_skim_amount(self.state, self.ledger, now)

    def to_json(self) -> str:
        return dumps_state(serialize_state(self.state))

    def load_json(self, json_str: str) -> None:
        raw = loads_state(json_str)
        validate_state_keys(raw)
        try:
            state = deserialize_state(raw)
        except (InvalidOperation, TypeError) as e:
            raise InvalidState(f"Malformed amount in stored state: {e}") from e
        validate_state(state)
        self.state = state

    # Plumbing

    @contextmanager
    def _transaction(self, operation: str) -> Iterator[None]:
        state_snapshot = copy.deepcopy(self.state)
        ledger_snapshot = self.ledger.snapshot() if hasattr(self.ledger, 'snapshot') else None
        try:
            yield
        except Exception as e:
            self.state = state_snapshot
            if ledger_snapshot is not None:
                self.ledger.restore(ledger_snapshot)
            logger.debug(f"{operation} rolled back: {type(e).__name__}: {e}")
            raise

    def _require_owner(self, ctx: CallContext, operation: str) -> None:
        if not self.access.is_owner(ctx['caller']):
            logger.warning(f"Rejected {operation} from non-owner {ctx['caller']}")
            raise Unauthorized("Caller is not the owner")

    def _require_not_paused(self, ctx: CallContext) -> None:
        if self.state['paused'] and not self.access.is_owner(ctx['caller']):
            raise Paused("Market is paused")

    def _record(self, events: List[Dict[str, Any]]) -> None:
        self.events.extend(events)

    # Trading

    def buy(self, ctx: CallContext, is_long: bool, strike_index: int, size: Decimal, max_cost: Decimal) -> Decimal:
        with self._transaction('buy'):
            self._require_not_paused(ctx)
            paid, events = trades.buy(self.state, self.ledger, ctx, is_long, strike_index, to_decimal(size), max_cost)
        self._record(events)
        return paid

    def sell(self, ctx: CallContext, is_long: bool, strike_index: int, size: Decimal, min_amount_out: Decimal) -> Decimal:
        with self._transaction('sell'):
            self._require_not_paused(ctx)
            received, events = trades.sell(self.state, self.ledger, ctx, is_long, strike_index, to_decimal(size), min_amount_out)
        self._record(events)
        return received

    # Liquidity

    def deposit(self, ctx: CallContext, shares: Decimal, max_amount_in: Decimal) -> Decimal:
        with self._transaction('deposit'):
            self._require_not_paused(ctx)
            amount_in, events = liquidity.deposit(self.state, self.ledger, ctx, to_decimal(shares), max_amount_in)
        self._record(events)
        return amount_in

    def withdraw(self, ctx: CallContext, shares: Decimal, min_amount_out: Decimal) -> Decimal:
        with self._transaction('withdraw'):
            self._require_not_paused(ctx)
            amount_out, events = liquidity.withdraw(self.state, self.ledger, ctx, to_decimal(shares), min_amount_out)
        self._record(events)
        return amount_out

    def increase_liquidity_and_buy(
        self,
        ctx: CallContext,
        new_depth: Decimal,
        long_sizes: Sequence[Any],
        short_sizes: Sequence[Any],
        max_amount_in: Decimal,
    ) -> Decimal:
        with self._transaction('increase_liquidity_and_buy'):
            self._require_owner(ctx, 'increase_liquidity_and_buy')
            paid, events = liquidity.increase_liquidity_and_buy(
                self.state, self.ledger, ctx, new_depth, long_sizes, short_sizes, max_amount_in
            )
        self._record(events)
        return paid

    # Settlement

    def settle(self, ctx: CallContext) -> None:
        with self._transaction('settle'):
            self._require_not_paused(ctx)
            events = settlement.settle(self.state, self.oracle, ctx)
        self._record(events)

    def dispute_expiry_price(self, ctx: CallContext, new_price: Decimal) -> None:
        with self._transaction('dispute_expiry_price'):
            self._require_owner(ctx, 'dispute_expiry_price')
            events = settlement.dispute_expiry_price(self.state, ctx, new_price)
        self._record(events)

    def redeem(self, ctx: CallContext, is_long: bool, strike_index: int) -> Decimal:
        with self._transaction('redeem'):
            self._require_not_paused(ctx)
            payout, events = settlement.redeem(self.state, self.ledger, ctx, is_long, strike_index)
        self._record(events)
        return payout

    def skim(self, ctx: CallContext) -> Decimal:
        with self._transaction('skim'):
            self._require_owner(ctx, 'skim')
            amount, events = settlement.skim(self.state, self.ledger, ctx)
        self._record(events)
        return amount

    collect_fees = skim

    # Admin

    def pause(self, ctx: CallContext) -> None:
        self._require_owner(ctx, 'pause')
        self.state['paused'] = True
        logger.info(f"Market {self.state['market_id']} paused by {ctx['caller']}")
        self._record([{'type': 'PAUSED', 'payload': {'account': ctx['caller']}}])

    def unpause(self, ctx: CallContext) -> None:
        self._require_owner(ctx, 'unpause')
        self.state['paused'] = False
        logger.info(f"Market {self.state['market_id']} unpaused by {ctx['caller']}")
        self._record([{'type': 'UNPAUSED', 'payload': {'account': ctx['caller']}}])

    def set_caps(self, ctx: CallContext, balance_cap: Decimal, supply_cap: Decimal) -> None:
        self._require_owner(ctx, 'set_caps')
        balance_cap = to_decimal(balance_cap)
        supply_cap = to_decimal(supply_cap)
        validate_caps(balance_cap, supply_cap)
        self.state['balance_cap'] = balance_cap
        self.state['supply_cap'] = supply_cap
        logger.info(f"Caps set: balance {balance_cap}, supply {supply_cap}")
        self._record([{'type': 'CAPS_SET', 'payload': {'balance_cap': balance_cap, 'supply_cap': supply_cap}}])

    def set_oracle(self, ctx: CallContext, oracle: Oracle) -> None:
        self._require_owner(ctx, 'set_oracle')
        self.oracle = oracle
        logger.info(f"Oracle replaced by {ctx['caller']}")
        self._record([{'type': 'ORACLE_SET', 'payload': {'account': ctx['caller']}}])

    def set_expiry_time(self, ctx: CallContext, expiry_time: int) -> None:
        self._require_owner(ctx, 'set_expiry_time')
        if self.state['is_settled']:
            raise AlreadySettled("Already settled")
        self.state['expiry_time'] = int(expiry_time)
        logger.info(f"Expiry moved to {expiry_time} by {ctx['caller']}")
        self._record([{'type': 'EXPIRY_SET', 'payload': {'expiry_time': int(expiry_time)}}])

    def transfer_ownership(self, ctx: CallContext, new_owner: str) -> None:
        self._require_owner(ctx, 'transfer_ownership')
        self.access.transfer_ownership(ctx['caller'], new_owner)
        logger.info(f"Ownership transferred from {ctx['caller']} to {new_owner}")
        self._record([{'type': 'OWNERSHIP_TRANSFERRED', 'payload': {'previous_owner': ctx['caller'], 'new_owner': new_owner}}])
