"""
Per-iteration results and parameter re-estimation.

Viterbi iterations aggregate counts along the decoded path (hard
assignment). Baum-Welch iterations aggregate posterior mass over the whole
trellis (soft assignment). Either way the result carries a new
ProbabilityModel; the model the iteration ran with is never modified.
"""

import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Tuple

import numpy as np

from seqhmm.core.errors import ConfigurationError, PassOrderError
from seqhmm.core.extlog import (
    LOG_ZERO, ExtLog, ext_exp, log_quotient, log_sum, log_sum_all,
)
from seqhmm.core.probabilities import ProbabilityModel
from seqhmm.core.trellis import Trellis
from seqhmm.inference.engine import ViterbiPath

logger = logging.getLogger(__name__)

Segment = Tuple[int, int]


# =============================================================================
# Re-estimation policy
# =============================================================================

@dataclass(frozen=True)
class ReestimationPolicy:
    """Which probability tables an iteration re-estimates."""
    initiation: bool = False
    transition: bool = True
    emission: bool = False

    TABLES = ('initiation', 'transition', 'emission')

    @classmethod
    def from_names(cls, names: Iterable[str]) -> 'ReestimationPolicy':
        """
        Build a policy from table names, e.g. ['transition', 'emission'].

        Raises:
            ConfigurationError: on an unknown table name
        """
        requested = {n.strip().lower() for n in names if n.strip()}
        unknown = requested - set(cls.TABLES)
        if unknown:
            raise ConfigurationError(
                f"Unknown table(s) {sorted(unknown)}; choose from {list(cls.TABLES)}"
            )
        return cls(**{table: table in requested for table in cls.TABLES})

    @property
    def names(self) -> List[str]:
        return [table for table in self.TABLES if getattr(self, table)]


# Hard EM keeps initiation and emission fixed by default
VITERBI_POLICY = ReestimationPolicy(initiation=False, transition=True, emission=False)
BAUM_WELCH_POLICY = ReestimationPolicy(initiation=True, transition=True, emission=True)


# =============================================================================
# Viterbi iteration
# =============================================================================

@dataclass
class ViterbiIterationResult:
    """Counts gathered along one decoded path and the model they produce."""
    iteration: int
    path: ViterbiPath
    state_counts: np.ndarray
    segment_counts: np.ndarray
    segments: Dict[int, List[Segment]]
    transition_counts: np.ndarray
    emission_counts: np.ndarray
    model: Optional[ProbabilityModel] = None

    @property
    def log_weight(self) -> float:
        """Base-2 log weight of the decoded path."""
        return self.path.log2_weight

    @property
    def n_states(self) -> int:
        return len(self.state_counts)

    def segment_lengths(self, state: int) -> np.ndarray:
        return np.array([end - start + 1 for start, end in self.segments.get(state, [])],
                        dtype=np.int64)

    def segment_histogram(self, state: int) -> Dict[int, int]:
        """Segment length -> number of segments of that length."""
        lengths, counts = np.unique(self.segment_lengths(state), return_counts=True)
        return {int(length): int(count) for length, count in zip(lengths, counts)}


def gather_viterbi_results(trellis: Trellis, path: ViterbiPath,
                           iteration: int = 1) -> ViterbiIterationResult:
    """
    Walk the Viterbi backpointers from the end of the path to the start.

    Segments are maximal runs of one state, reported as 1-based inclusive
    (start, end) and listed in forward order per state.
    """
    if not trellis.viterbi_done:
        raise PassOrderError("Viterbi results need a completed Viterbi pass")

    n_states = trellis.n_states
    n_symbols = trellis.model.n_symbols

    state_counts = np.zeros(n_states, dtype=np.int64)
    segment_counts = np.zeros(n_states, dtype=np.int64)
    transition_counts = np.zeros((n_states, n_states), dtype=np.int64)
    emission_counts = np.zeros((n_states, n_symbols), dtype=np.int64)
    segments: Dict[int, List[Segment]] = {state: [] for state in range(n_states)}

    node = trellis.nodes[path.node_ids[-1]]
    segment_end = node.position
    while not node.is_start:
        state_counts[node.state] += 1
        emission_counts[node.state, node.symbol_index] += 1

        previous = trellis.nodes[node.previous]
        if previous.is_start or previous.state != node.state:
            segments[node.state].append((node.position, segment_end))
            segment_counts[node.state] += 1
            segment_end = previous.position
        if not previous.is_start:
            transition_counts[previous.state, node.state] += 1
        node = previous

    for state_segments in segments.values():
        state_segments.reverse()

    logger.debug("Iteration %d: state counts %s, segment counts %s",
                 iteration, state_counts.tolist(), segment_counts.tolist())

    return ViterbiIterationResult(
        iteration=iteration,
        path=path,
        state_counts=state_counts,
        segment_counts=segment_counts,
        segments=segments,
        transition_counts=transition_counts,
        emission_counts=emission_counts,
    )


def path_segments(states: np.ndarray) -> List[Tuple[int, int, int]]:
    """Maximal runs of a state path as 1-based inclusive (start, end, state)."""
    states = np.asarray(states)
    if len(states) == 0:
        return []
    change = np.flatnonzero(np.diff(states)) + 1
    starts = np.concatenate(([0], change))
    ends = np.concatenate((change, [len(states)]))
    return [(int(start) + 1, int(end), int(states[start])) for start, end in zip(starts, ends)]


def reestimate_viterbi(result: ViterbiIterationResult, model: ProbabilityModel,
                       policy: ReestimationPolicy = VITERBI_POLICY) -> ProbabilityModel:
    """
    New model from hard counts.

    Each row is normalized by its own total count; a row whose state was
    never left (transitions) or never visited (emissions) keeps the values
    of the current model.
    """
    new_model = model.copy()
    n_states = model.n_states

    if policy.initiation:
        first_state = int(result.path.states[0])
        for state in range(n_states):
            new_model.set_initiation_probability(state, 1.0 if state == first_state else 0.0)

    if policy.transition:
        for begin in range(n_states):
            outgoing = result.transition_counts[begin].sum()
            if outgoing == 0:
                continue
            for end in range(n_states):
                new_model.set_transition_probability(
                    begin, end, result.transition_counts[begin, end] / outgoing
                )

    if policy.emission:
        for state in range(n_states):
            emitted = result.emission_counts[state].sum()
            if emitted == 0:
                continue
            for symbol in range(model.n_symbols):
                new_model.set_emission_probability(
                    state, symbol, result.emission_counts[state, symbol] / emitted
                )

    return new_model


# =============================================================================
# Baum-Welch iteration
# =============================================================================

@dataclass
class BaumWelchIterationResult:
    """
    Outcome of one EM iteration.

    log_likelihood is base 2 and belongs to the model the iteration ran
    with; model is the re-estimated one.
    """
    iteration: int
    log_likelihood: float
    expected_state_counts: np.ndarray
    expected_transition_counts: np.ndarray
    model: Optional[ProbabilityModel] = None
    delta: Optional[float] = None

    @property
    def n_states(self) -> int:
        return len(self.expected_state_counts)


def _gamma_sums(trellis: Trellis, positions: Iterable[int]) -> List[ExtLog]:
    """Per-state log-sum of node posteriors over the given positions."""
    sums = [LOG_ZERO] * trellis.n_states
    for position_id in positions:
        for node in trellis.position_nodes(position_id):
            sums[node.state] = log_sum(sums[node.state], node.conditional)
    return sums


def reestimate_initiation(trellis: Trellis, model: ProbabilityModel) -> None:
    """initiation[s] = gamma of state s at position 1."""
    first = trellis.position_nodes(1)
    if log_sum_all(node.conditional for node in first) is LOG_ZERO:
        return
    for node in first:
        model.set_initiation_probability(node.state, ext_exp(node.conditional))


def reestimate_transitions(trellis: Trellis, model: ProbabilityModel) -> None:
    """
    transition[i][j] = sum of epsilon(i -> j) / sum of gamma(i),
    both over positions 1..T-1.
    """
    n_states = trellis.n_states
    inner = range(1, trellis.length)
    denominators = _gamma_sums(trellis, inner)

    numerators = [[LOG_ZERO] * n_states for _ in range(n_states)]
    for position_id in inner:
        for node in trellis.position_nodes(position_id):
            for transition_id in node.out_transitions:
                transition = trellis.transitions[transition_id]
                end = trellis.nodes[transition.target].state
                numerators[node.state][end] = log_sum(numerators[node.state][end],
                                                      transition.conditional)

    for begin in range(n_states):
        if denominators[begin] is LOG_ZERO:
            continue
        for end in range(n_states):
            model.set_transition_probability(
                begin, end, ext_exp(log_quotient(numerators[begin][end], denominators[begin]))
            )


def reestimate_emissions(trellis: Trellis, model: ProbabilityModel) -> None:
    """
    emission[s][v] = sum of gamma(s) where the symbol is v / sum of gamma(s),
    over positions 1..T.
    """
    n_states = trellis.n_states
    denominators = _gamma_sums(trellis, range(1, trellis.length + 1))

    numerators = [[LOG_ZERO] * model.n_symbols for _ in range(n_states)]
    for position in trellis.positions[1:]:
        for node in trellis.position_nodes(position.id):
            numerators[node.state][node.symbol_index] = log_sum(
                numerators[node.state][node.symbol_index], node.conditional
            )

    for state in range(n_states):
        if denominators[state] is LOG_ZERO:
            continue
        for symbol in range(model.n_symbols):
            model.set_emission_probability(
                state, symbol, ext_exp(log_quotient(numerators[state][symbol], denominators[state]))
            )


def expected_counts(trellis: Trellis) -> Tuple[np.ndarray, np.ndarray]:
    """Expected state occupancy (sum gamma) and transition counts (sum epsilon)."""
    n_states = trellis.n_states
    occupancy = np.zeros(n_states)
    transitions = np.zeros((n_states, n_states))
    for position in trellis.positions[1:]:
        for node in trellis.position_nodes(position.id):
            occupancy[node.state] += ext_exp(node.conditional)
            if position.id == trellis.length:
                continue
            for transition_id in node.out_transitions:
                transition = trellis.transitions[transition_id]
                end = trellis.nodes[transition.target].state
                transitions[node.state, end] += ext_exp(transition.conditional)
    return occupancy, transitions


def reestimate_baum_welch(trellis: Trellis, model: ProbabilityModel,
                          policy: ReestimationPolicy = BAUM_WELCH_POLICY) -> ProbabilityModel:
    """
    New model from the posteriors stored on trellis.

    Raises:
        PassOrderError: if node or transition posteriors are missing
    """
    if not (trellis.node_posteriors_done and trellis.transition_posteriors_done):
        raise PassOrderError("Baum-Welch re-estimation needs node and transition posteriors")

    new_model = model.copy()
    if policy.initiation:
        reestimate_initiation(trellis, new_model)
    if policy.transition:
        reestimate_transitions(trellis, new_model)
    if policy.emission:
        reestimate_emissions(trellis, new_model)
    return new_model
