"""Exception types raised by the seqhmm engine."""

from typing import List, Optional


class SeqHMMError(Exception):
    """Base class for all seqhmm errors."""


class DomainError(SeqHMMError, ValueError):
    """A probability outside [0, inf) was handed to the extended logarithm."""


class ConfigurationError(SeqHMMError, ValueError):
    """Model tables, presets or sequences that do not fit together."""


class UnknownSymbolError(ConfigurationError):
    """A sequence symbol is not part of the model alphabet."""

    def __init__(self, symbol: str, offset: Optional[int] = None):
        self.symbol = symbol
        self.offset = offset
        where = f" at offset {offset}" if offset is not None else ""
        super().__init__(f"Symbol {symbol!r}{where} is not in the model alphabet")


class ModelFrozenError(SeqHMMError, RuntimeError):
    """A setter was called on a probability model that is in use."""


class PassOrderError(SeqHMMError, RuntimeError):
    """An inference pass was requested before the passes it depends on."""


class ConvergenceNonTermination(SeqHMMError, RuntimeError):
    """Baum-Welch hit its iteration cap before the likelihood settled.

    Attributes:
        iterations: Results of every completed iteration
        log_likelihoods: Base-2 log-likelihood of each completed iteration
    """

    def __init__(self, max_iterations: int, iterations: list,
                 log_likelihoods: List[float]):
        self.max_iterations = max_iterations
        self.iterations = iterations
        self.log_likelihoods = log_likelihoods
        last = f"{log_likelihoods[-1]:.4f}" if log_likelihoods else "n/a"
        super().__init__(
            f"Baum-Welch did not converge within {max_iterations} iterations "
            f"(last log2 likelihood: {last})"
        )
