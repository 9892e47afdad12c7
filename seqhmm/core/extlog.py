"""
Extended logarithm arithmetic.

Log-space primitives in which log(0) is a first-class value (LOG_ZERO)
instead of -inf or NaN, following "Numerically Stable Hidden Markov Model
Implementation" (T. Mann). Every probability combination in the engine is
written with ext_log, ext_exp, log_sum and log_product so that long
sequences never underflow.
"""

import math
from functools import reduce
from typing import Iterable, Union

from seqhmm.core.errors import DomainError


class LogZero:
    """The logarithm of zero probability mass. Use the LOG_ZERO singleton."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return 'LOG_ZERO'

    def __reduce__(self):
        return (LogZero, ())


LOG_ZERO = LogZero()

ExtLog = Union[float, LogZero]

_LN2 = math.log(2.0)


def is_log_zero(log_x: ExtLog) -> bool:
    """True if log_x is the log(0) tag."""
    return log_x is LOG_ZERO


def ext_log(x: float) -> ExtLog:
    """
    Natural logarithm that accepts zero.

    Raises:
        DomainError: if x is negative or NaN
    """
    if x == 0:
        return LOG_ZERO
    if x > 0:
        return math.log(x)
    raise DomainError(f"Cannot take the logarithm of {x!r}: probabilities must be >= 0")


def ext_exp(log_x: ExtLog) -> float:
    """Exponential that maps LOG_ZERO back to 0.0."""
    if log_x is LOG_ZERO:
        return 0.0
    return math.exp(log_x)


def log_sum(log_x: ExtLog, log_y: ExtLog) -> ExtLog:
    """log(x + y) from log(x) and log(y), without leaving log space."""
    if log_x is LOG_ZERO:
        return log_y
    if log_y is LOG_ZERO:
        return log_x
    if log_x > log_y:
        return log_x + math.log1p(math.exp(log_y - log_x))
    return log_y + math.log1p(math.exp(log_x - log_y))


def log_product(log_x: ExtLog, log_y: ExtLog) -> ExtLog:
    """log(x * y) from log(x) and log(y)."""
    if log_x is LOG_ZERO or log_y is LOG_ZERO:
        return LOG_ZERO
    return log_x + log_y


def log_quotient(log_num: ExtLog, log_den: ExtLog) -> ExtLog:
    """
    log(num / den), i.e. log_product(log_num, -log_den).

    A LOG_ZERO denominator gives LOG_ZERO: an event whose conditioning
    state carries no mass is assigned no mass either.
    """
    if log_den is LOG_ZERO:
        return LOG_ZERO
    return log_product(log_num, -log_den)


def log_sum_all(values: Iterable[ExtLog]) -> ExtLog:
    """Fold log_sum over values; an empty iterable gives LOG_ZERO."""
    return reduce(log_sum, values, LOG_ZERO)


def log_greater(log_x: ExtLog, log_y: ExtLog) -> bool:
    """Strict x > y on extended logs. LOG_ZERO is below every finite value."""
    if log_x is LOG_ZERO:
        return False
    if log_y is LOG_ZERO:
        return True
    return log_x > log_y


def to_log2(log_x: ExtLog) -> float:
    """Convert a natural extended log to base 2 for reporting (-inf for LOG_ZERO)."""
    if log_x is LOG_ZERO:
        return float('-inf')
    return log_x / _LN2
