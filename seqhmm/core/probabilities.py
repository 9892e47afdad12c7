"""
seqhmm probability model

Holds the initiation, transition and emission probabilities of an
S-state HMM together with their extended logarithms. Each setter
recomputes the log value immediately, so log lookups are O(1) and a
probability of exactly 0 is stored as LOG_ZERO.

Probability tables are numpy arrays exposed read-only. A model that is in
use by a trellis is frozen; training produces a new model per iteration
instead of mutating the old one.
"""

from typing import Any, Callable, Dict, List, Optional, Sequence, Union

import numpy as np

from seqhmm.core.errors import ConfigurationError, ModelFrozenError
from seqhmm.core.extlog import ExtLog, ext_log
from seqhmm.core.sequence import Alphabet


class ProbabilityModel:
    """
    Initiation, transition and emission probabilities of a discrete HMM.

    States are indexed 0..n_states-1; emission columns follow the
    alphabet's symbol order.
    """

    def __init__(self, initiation, transition, emission,
                 alphabet: Optional[Alphabet] = None):
        initiation = np.array(initiation, dtype=float)
        transition = np.array(transition, dtype=float)
        emission = np.array(emission, dtype=float)

        if initiation.ndim != 1 or initiation.size == 0:
            raise ConfigurationError(
                f"Initiation probabilities must be a non-empty vector, got shape {initiation.shape}"
            )
        n_states = initiation.shape[0]

        if transition.shape != (n_states, n_states):
            raise ConfigurationError(
                f"Transition matrix must be ({n_states}, {n_states}) for {n_states} states, "
                f"got {transition.shape}"
            )
        if emission.ndim != 2 or emission.shape[0] != n_states:
            raise ConfigurationError(
                f"Emission matrix must have {n_states} rows, got shape {emission.shape}"
            )

        if alphabet is None:
            if emission.shape[1] != len(Alphabet.dna(1)):
                raise ConfigurationError(
                    f"An alphabet is required for {emission.shape[1]} emission symbols"
                )
            alphabet = Alphabet.dna(1)
        if emission.shape[1] != len(alphabet):
            raise ConfigurationError(
                f"Emission matrix has {emission.shape[1]} columns but the alphabet "
                f"has {len(alphabet)} symbols"
            )

        self.alphabet = alphabet
        self._frozen = False

        self._initiation = initiation
        self._transition = transition
        self._emission = emission

        # Log versions, kept in step with every set
        self._log_initiation: List[ExtLog] = [ext_log(p) for p in initiation]
        self._log_transition: List[List[ExtLog]] = [
            [ext_log(p) for p in row] for row in transition
        ]
        self._log_emission: List[List[ExtLog]] = [
            [ext_log(p) for p in row] for row in emission
        ]

    # -------------------------------------------------------------------------
    # Shape and read-only table views
    # -------------------------------------------------------------------------

    @property
    def n_states(self) -> int:
        return self._initiation.shape[0]

    @property
    def n_symbols(self) -> int:
        return len(self.alphabet)

    @property
    def initiation(self) -> np.ndarray:
        view = self._initiation.view()
        view.flags.writeable = False
        return view

    @property
    def transition(self) -> np.ndarray:
        view = self._transition.view()
        view.flags.writeable = False
        return view

    @property
    def emission(self) -> np.ndarray:
        view = self._emission.view()
        view.flags.writeable = False
        return view

    # -------------------------------------------------------------------------
    # Getters
    # -------------------------------------------------------------------------

    def initiation_probability(self, state: int) -> float:
        return float(self._initiation[state])

    def transition_probability(self, begin_state: int, end_state: int) -> float:
        return float(self._transition[begin_state, end_state])

    def emission_probability(self, state: int, symbol: Union[str, int]) -> float:
        return float(self._emission[state, self._column(symbol)])

    def log_initiation(self, state: int) -> ExtLog:
        return self._log_initiation[state]

    def log_transition(self, begin_state: int, end_state: int) -> ExtLog:
        return self._log_transition[begin_state][end_state]

    def log_emission(self, state: int, symbol: Union[str, int]) -> ExtLog:
        return self._log_emission[state][self._column(symbol)]

    # -------------------------------------------------------------------------
    # Setters (probability and log are always updated together)
    # -------------------------------------------------------------------------

    def set_initiation_probability(self, state: int, value: float) -> None:
        self._check_writable()
        log_value = ext_log(value)
        self._initiation[state] = value
        self._log_initiation[state] = log_value

    def set_transition_probability(self, begin_state: int, end_state: int,
                                   value: float) -> None:
        self._check_writable()
        log_value = ext_log(value)
        self._transition[begin_state, end_state] = value
        self._log_transition[begin_state][end_state] = log_value

    def set_emission_probability(self, state: int, symbol: Union[str, int],
                                 value: float) -> None:
        self._check_writable()
        column = self._column(symbol)
        log_value = ext_log(value)
        self._emission[state, column] = value
        self._log_emission[state][column] = log_value

    def _column(self, symbol: Union[str, int]) -> int:
        if isinstance(symbol, str):
            return self.alphabet.index(symbol)
        return int(symbol)

    def _check_writable(self):
        if self._frozen:
            raise ModelFrozenError(
                "This probability model is in use; copy() it and modify the copy"
            )

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    @property
    def frozen(self) -> bool:
        return self._frozen

    def freeze(self) -> 'ProbabilityModel':
        """Reject further setters. Returns self."""
        self._frozen = True
        return self

    def copy(self) -> 'ProbabilityModel':
        """An unfrozen copy with its own tables."""
        return ProbabilityModel(self._initiation.copy(), self._transition.copy(),
                                self._emission.copy(), alphabet=self.alphabet)

    def __eq__(self, other) -> bool:
        if not isinstance(other, ProbabilityModel):
            return NotImplemented
        return (self.alphabet == other.alphabet
                and np.array_equal(self._initiation, other._initiation)
                and np.array_equal(self._transition, other._transition)
                and np.array_equal(self._emission, other._emission))

    __hash__ = None

    def __repr__(self) -> str:
        return (f"ProbabilityModel(n_states={self.n_states}, "
                f"alphabet={self.alphabet!r}, frozen={self._frozen})")

    # -------------------------------------------------------------------------
    # Constructors
    # -------------------------------------------------------------------------

    @classmethod
    def from_preset(cls, name: str) -> 'ProbabilityModel':
        """Build one of the named presets (see PRESETS)."""
        try:
            factory = PRESETS[name]
        except KeyError:
            raise ConfigurationError(
                f"Unknown preset {name!r}; choose from {sorted(PRESETS)}"
            ) from None
        return factory()

    @classmethod
    def uniform(cls, n_states: int, alphabet: Optional[Alphabet] = None) -> 'ProbabilityModel':
        """Every distribution uniform."""
        alphabet = alphabet or Alphabet.dna(1)
        if n_states < 1:
            raise ConfigurationError(f"n_states must be >= 1, got {n_states}")
        return cls(
            np.full(n_states, 1.0 / n_states),
            np.full((n_states, n_states), 1.0 / n_states),
            np.full((n_states, len(alphabet)), 1.0 / len(alphabet)),
            alphabet=alphabet,
        )

    @classmethod
    def random(cls, n_states: int, alphabet: Optional[Alphabet] = None,
               seed: Optional[int] = None) -> 'ProbabilityModel':
        """Distributions drawn from flat Dirichlet priors."""
        alphabet = alphabet or Alphabet.dna(1)
        if n_states < 1:
            raise ConfigurationError(f"n_states must be >= 1, got {n_states}")
        rng = np.random.RandomState(seed)
        return cls(
            rng.dirichlet(np.ones(n_states)),
            rng.dirichlet(np.ones(n_states), n_states),
            rng.dirichlet(np.ones(len(alphabet)), n_states),
            alphabet=alphabet,
        )

    # -------------------------------------------------------------------------
    # Serialization
    # -------------------------------------------------------------------------

    def to_dict(self) -> Dict[str, Any]:
        """Serialize model to dictionary."""
        return {
            'model_type': 'seqhmm',
            'n_states': self.n_states,
            'k': self.alphabet.k,
            'alphabet': list(self.alphabet.symbols),
            'initiation': self._initiation.tolist(),
            'transition': self._transition.tolist(),
            'emission': self._emission.tolist(),
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> 'ProbabilityModel':
        """Deserialize model from dictionary."""
        alphabet = Alphabet(d['alphabet']) if d.get('alphabet') else Alphabet.dna(d.get('k', 1))
        model = cls(d['initiation'], d['transition'], d['emission'], alphabet=alphabet)
        if 'n_states' in d and d['n_states'] != model.n_states:
            raise ConfigurationError(
                f"n_states={d['n_states']} does not match tables with {model.n_states} states"
            )
        return model


# =============================================================================
# Presets
# =============================================================================

def _from_residue_emissions(initiation: Sequence[float],
                            transition: Sequence[Sequence[float]],
                            emissions: Sequence[Dict[str, float]]) -> ProbabilityModel:
    alphabet = Alphabet.dna(1)
    emission = [[row[base] for base in alphabet] for row in emissions]
    return ProbabilityModel(initiation, transition, emission, alphabet=alphabet)


def gc_content_preset() -> ProbabilityModel:
    """
    Starting point for locating GC-rich regions of a genome.

    State 0 is the AT-rich background, state 1 the GC-rich island.
    """
    return _from_residue_emissions(
        initiation=[0.996, 0.004],
        transition=[[0.999, 0.001],
                     [0.01, 0.99]],
        emissions=[
            {'A': 0.291, 'C': 0.209, 'G': 0.209, 'T': 0.291},
            {'A': 0.169, 'C': 0.331, 'G': 0.331, 'T': 0.169},
        ],
    )


def toy_preset() -> ProbabilityModel:
    """
    Classic two-state Viterbi toy example (H = GC-rich, L = AT-rich).

    On GGCACTGAA the best path is HHHLLLLLL with log2 probability -24.49.
    """
    return _from_residue_emissions(
        initiation=[0.5, 0.5],
        transition=[[0.5, 0.5],
                     [0.4, 0.6]],
        emissions=[
            {'A': 0.2, 'C': 0.3, 'G': 0.3, 'T': 0.2},
            {'A': 0.3, 'C': 0.2, 'G': 0.2, 'T': 0.3},
        ],
    )


PRESETS: Dict[str, Callable[[], ProbabilityModel]] = {
    'gc-content': gc_content_preset,
    'toy': toy_preset,
}
