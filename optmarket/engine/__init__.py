from .collaborators import CallContext, FixedPriceOracle, InMemoryLedger, OwnerAccess
from .cost_function import cost_delta, instantaneous_prices, lslmsr_cost, market_cost, max_loss
from .errors import *  # noqa: F401,F403
from .market import Market
from .state import MarketState, get_quantities, init_state

__all__ = [
    'CallContext',
    'FixedPriceOracle',
    'InMemoryLedger',
    'Market',
    'MarketState',
    'OwnerAccess',
    'cost_delta',
    'get_quantities',
    'init_state',
    'instantaneous_prices',
    'lslmsr_cost',
    'market_cost',
    'max_loss',
]
