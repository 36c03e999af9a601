"""
Error taxonomy for the market engine.

Every error aborts the whole operation; the market state is left exactly as it
was before the call. All errors derive from ``MarketError`` (itself a
``ValueError``) so callers can catch broadly or react to a specific kind.
"""


class MarketError(ValueError):
    """Base class for every engine error."""


# Validation errors, raised while building a market or checking call arguments

class ValidationError(MarketError):
    pass


class IndexOutOfRange(ValidationError):
    pass


class LengthMismatch(ValidationError):
    pass


class EmptyStrikes(ValidationError):
    pass


class StrikesNotStrictlyIncreasing(ValidationError):
    pass


class StrikeMustBePositive(ValidationError):
    pass


class AlphaOutOfRange(ValidationError):
    pass


class FeeOutOfRange(ValidationError):
    pass


class AlreadyExpiredAtCreation(ValidationError):
    pass


class InvalidSize(ValidationError):
    pass


class InvalidCap(ValidationError):
    pass


class InvalidDisputePeriod(ValidationError):
    pass


class InvalidState(ValidationError):
    pass


# Timing errors, evaluated against the caller-supplied clock on every call

class TimingError(MarketError):
    pass


class AlreadyExpired(TimingError):
    pass


class NotYetExpired(TimingError):
    pass


class NotYetSettled(TimingError):
    pass


class AlreadySettled(TimingError):
    pass


class InDisputePeriod(TimingError):
    pass


class DisputeWindowClosed(TimingError):
    pass


class AlreadyDisputed(TimingError):
    pass


# Economic errors

class EconomicError(MarketError):
    pass


class SlippageExceeded(EconomicError):
    pass


class BalanceCapExceeded(EconomicError):
    pass


class SupplyCapExceeded(EconomicError):
    pass


class AmountOutMustBePositive(EconomicError):
    pass


class InsufficientBalance(EconomicError):
    pass


class BalanceMustBePositive(EconomicError):
    pass


class NotYetLiquid(EconomicError):
    pass


class DepthMustIncrease(EconomicError):
    pass


class LiquidityLocked(EconomicError):
    pass


# Authorization errors

class AuthorizationError(MarketError):
    pass


class Unauthorized(AuthorizationError):
    pass


class Paused(AuthorizationError):
    pass
