"""
seqhmm trellis inference engine

Dynamic programming passes over a built Trellis, all in extended-log
space:

1. Viterbi: highest-weight incoming path per node plus backpointers
2. Forward and backward probabilities
3. Node (gamma) and transition (epsilon) posterior probabilities
4. Sequence log-likelihood (base 2)

Positions are processed in dependency order (ascending for Viterbi and
forward, descending for backward). Inside one position the node updates
are independent of each other, so each pass accepts an optional
concurrent.futures.ThreadPoolExecutor to map them over; a position is only
started once the previous one has completed. Node updates write into the
trellis in place, so they must run in this process: process pools are
rejected with ConfigurationError.
"""

import logging
from concurrent.futures import ProcessPoolExecutor, ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Callable, Iterable, List, Optional

import numpy as np

from seqhmm.core.errors import ConfigurationError, PassOrderError
from seqhmm.core.extlog import (
    LOG_ZERO, ExtLog, ext_exp, log_greater, log_product, log_quotient,
    log_sum_all, to_log2,
)
from seqhmm.core.trellis import Trellis

logger = logging.getLogger(__name__)


def check_executor(executor: Optional[ThreadPoolExecutor]) -> None:
    """Reject executors whose workers cannot write into a shared trellis."""
    if isinstance(executor, ProcessPoolExecutor):
        raise ConfigurationError(
            "Trellis passes update nodes in place and need a thread-based executor; "
            "ProcessPoolExecutor is not supported"
        )


def _map_nodes(fn: Callable[[int], None], node_ids: Iterable[int],
               executor: Optional[ThreadPoolExecutor]) -> None:
    """Apply fn to every node id of one position and wait for all of them."""
    check_executor(executor)
    if executor is None:
        for node_id in node_ids:
            fn(node_id)
    else:
        # list() drains the iterator so every update has finished (and any
        # exception is re-raised) before the caller moves on
        list(executor.map(fn, node_ids))


def _require(trellis: Trellis, *flags: str) -> None:
    missing = [f for f in flags if not getattr(trellis, f)]
    if missing:
        raise PassOrderError(
            f"Pass requires {', '.join(m.replace('_done', '') for m in missing)} "
            f"to have completed on this trellis"
        )


# =============================================================================
# Viterbi
# =============================================================================

@dataclass
class ViterbiPath:
    """Decoded state path (forward order) and its log weight."""
    states: np.ndarray
    log_weight: ExtLog
    node_ids: List[int] = field(default_factory=list)

    @property
    def log2_weight(self) -> float:
        return to_log2(self.log_weight)

    def __len__(self) -> int:
        return len(self.states)

    def as_string(self, one_based: bool = True) -> str:
        """States as a digit string, e.g. '111222' (1-based by default)."""
        offset = 1 if one_based else 0
        return ''.join(str(int(s) + offset) for s in self.states)


def calculate_highest_weight_path(trellis: Trellis, position_id: int,
                                  executor: Optional[ThreadPoolExecutor] = None) -> None:
    """
    Viterbi step for one position.

    weight(node) = max over incoming transitions of
        source.weight + log P(transition) + log P(node emits its symbol)

    The first incoming transition reaching the maximum wins. When every
    candidate is LOG_ZERO the first source is kept as backpointer so a
    path can always be traced back to the start node.
    """
    nodes = trellis.nodes
    transitions = trellis.transitions

    def update(node_id: int) -> None:
        node = nodes[node_id]
        log_emit = trellis.log_emission(node)
        best_weight: ExtLog = LOG_ZERO
        best_source: Optional[int] = None
        for transition_id in node.in_transitions:
            transition = transitions[transition_id]
            source = nodes[transition.source]
            score = log_product(
                source.highest_weight,
                log_product(trellis.log_transition(transition), log_emit)
            )
            if best_source is None or log_greater(score, best_weight):
                best_weight = score
                best_source = source.id
        node.highest_weight = best_weight
        node.previous = best_source

    _map_nodes(update, trellis.positions[position_id].nodes, executor)


def viterbi(trellis: Trellis, executor: Optional[ThreadPoolExecutor] = None) -> None:
    """Compute highest-path weights and backpointers for every position."""
    for position in trellis.positions[1:]:
        calculate_highest_weight_path(trellis, position.id, executor)
    trellis.viterbi_done = True
    logger.debug("Viterbi pass done over %d positions", trellis.length)


def decode_path(trellis: Trellis) -> ViterbiPath:
    """
    Trace the Viterbi path back from the best node of the last position.

    Returns:
        ViterbiPath with T states in forward order; log_weight equals the
        highest weight stored at the last position
    """
    _require(trellis, 'viterbi_done')

    end = trellis.highest_scoring_node()
    states = []
    node_ids = []
    node = end
    while not node.is_start:
        states.append(node.state)
        node_ids.append(node.id)
        node = trellis.nodes[node.previous]

    states.reverse()
    node_ids.reverse()
    return ViterbiPath(states=np.array(states, dtype=np.int64),
                       log_weight=end.highest_weight, node_ids=node_ids)


# =============================================================================
# Forward / backward
# =============================================================================

def calculate_forward(trellis: Trellis, position_id: int,
                      executor: Optional[ThreadPoolExecutor] = None) -> None:
    """Forward log probability of every node at one position."""
    nodes = trellis.nodes
    transitions = trellis.transitions

    if position_id == 0:
        return

    if position_id == 1:
        def update(node_id: int) -> None:
            node = nodes[node_id]
            # The only incoming edge comes from the start node
            initiation = trellis.log_transition(transitions[node.in_transitions[0]])
            node.forward = log_product(initiation, trellis.log_emission(node))
    else:
        def update(node_id: int) -> None:
            node = nodes[node_id]
            log_alpha = log_sum_all(
                log_product(nodes[transitions[t].source].forward,
                            trellis.log_transition(transitions[t]))
                for t in node.in_transitions
            )
            node.forward = log_product(log_alpha, trellis.log_emission(node))

    _map_nodes(update, trellis.positions[position_id].nodes, executor)


def forward(trellis: Trellis, executor: Optional[ThreadPoolExecutor] = None) -> None:
    """Forward pass, positions in ascending order."""
    for position in trellis.positions[1:]:
        calculate_forward(trellis, position.id, executor)
    trellis.forward_done = True
    logger.debug("Forward pass done over %d positions", trellis.length)


def calculate_backward(trellis: Trellis, position_id: int,
                       executor: Optional[ThreadPoolExecutor] = None) -> None:
    """Backward log probability of every node at one position."""
    nodes = trellis.nodes
    transitions = trellis.transitions

    if position_id == trellis.length:
        for node_id in trellis.positions[position_id].nodes:
            nodes[node_id].backward = 0.0
        return

    def update(node_id: int) -> None:
        node = nodes[node_id]
        terms = []
        for transition_id in node.out_transitions:
            transition = transitions[transition_id]
            target = nodes[transition.target]
            terms.append(log_product(
                trellis.log_transition(transition),
                log_product(trellis.log_emission(target), target.backward)
            ))
        node.backward = log_sum_all(terms)

    _map_nodes(update, trellis.positions[position_id].nodes, executor)


def backward(trellis: Trellis, executor: Optional[ThreadPoolExecutor] = None) -> None:
    """
    Backward pass, positions in descending order; the start position is skipped.

    Raises:
        PassOrderError: if the forward pass has not completed
    """
    _require(trellis, 'forward_done')
    for position_id in range(trellis.length, 0, -1):
        calculate_backward(trellis, position_id, executor)
    trellis.backward_done = True
    logger.debug("Backward pass done over %d positions", trellis.length)


# =============================================================================
# Posteriors
# =============================================================================

def calculate_node_posteriors(trellis: Trellis, position_id: int) -> None:
    """Gamma: forward * backward at one position, normalized over its nodes."""
    position_nodes = trellis.position_nodes(position_id)
    for node in position_nodes:
        node.conditional = log_product(node.forward, node.backward)
    normalizer = log_sum_all(node.conditional for node in position_nodes)
    for node in position_nodes:
        node.conditional = log_quotient(node.conditional, normalizer)


def calculate_transition_posteriors(trellis: Trellis, position_id: int) -> None:
    """Epsilon for all transitions leaving one position, normalized over them."""
    nodes = trellis.nodes
    transitions = trellis.transitions

    outgoing = []
    for node in trellis.position_nodes(position_id):
        for transition_id in node.out_transitions:
            transition = transitions[transition_id]
            target = nodes[transition.target]
            transition.conditional = log_product(
                node.forward,
                log_product(
                    trellis.log_transition(transition),
                    log_product(trellis.log_emission(target), target.backward)
                )
            )
            outgoing.append(transition)

    normalizer = log_sum_all(t.conditional for t in outgoing)
    for transition in outgoing:
        transition.conditional = log_quotient(transition.conditional, normalizer)


def node_posteriors(trellis: Trellis) -> None:
    """Gamma for every position except the start position."""
    _require(trellis, 'forward_done', 'backward_done')
    for position in trellis.positions[1:]:
        calculate_node_posteriors(trellis, position.id)
    trellis.node_posteriors_done = True


def transition_posteriors(trellis: Trellis) -> None:
    """Epsilon for positions 1..T-1 (nothing leaves the last position)."""
    _require(trellis, 'forward_done', 'backward_done')
    for position in trellis.positions[1:-1]:
        calculate_transition_posteriors(trellis, position.id)
    trellis.transition_posteriors_done = True


def posteriors(trellis: Trellis) -> None:
    """Node and transition posteriors."""
    node_posteriors(trellis)
    transition_posteriors(trellis)


def forward_backward(trellis: Trellis, executor: Optional[ThreadPoolExecutor] = None) -> float:
    """
    Full E-step: forward, backward and both posteriors.

    Returns:
        Base-2 log-likelihood of the sequence under the trellis model
    """
    forward(trellis, executor)
    backward(trellis, executor)
    posteriors(trellis)
    return log_likelihood(trellis)


# =============================================================================
# Likelihood and matrices
# =============================================================================

def log_likelihood_ln(trellis: Trellis) -> ExtLog:
    """Natural-log likelihood: log-sum of the last position's forward values."""
    _require(trellis, 'forward_done')
    return log_sum_all(node.forward for node in trellis.position_nodes(trellis.length))


def log_likelihood(trellis: Trellis) -> float:
    """Base-2 log-likelihood of the sequence (-inf if it is impossible)."""
    return to_log2(log_likelihood_ln(trellis))


def log_likelihood_backward(trellis: Trellis) -> float:
    """
    Base-2 log-likelihood from the backward values of position 1.

    Sums initiation * emission * backward over the first position's
    nodes, which must agree with log_likelihood().
    """
    _require(trellis, 'backward_done')
    nodes = trellis.nodes
    transitions = trellis.transitions
    terms = []
    for node in trellis.position_nodes(1):
        initiation = trellis.log_transition(transitions[node.in_transitions[0]])
        terms.append(log_product(initiation,
                                 log_product(trellis.log_emission(node), node.backward)))
    return to_log2(log_sum_all(terms))


def node_matrix(trellis: Trellis, attribute: str) -> np.ndarray:
    """
    (T, S) array of a per-node log value ('forward', 'backward',
    'conditional' or 'highest_weight'); LOG_ZERO becomes -inf.
    """
    values = np.empty((trellis.length, trellis.n_states))
    for position in trellis.positions[1:]:
        for node_id in position.nodes:
            node = trellis.nodes[node_id]
            value = getattr(node, attribute)
            values[position.id - 1, node.state] = -np.inf if value is LOG_ZERO else value
    return values


def posterior_matrix(trellis: Trellis) -> np.ndarray:
    """
    P(state | sequence) at each position, shape (T, S). Each row sums to 1.
    """
    _require(trellis, 'node_posteriors_done')
    gamma = np.empty((trellis.length, trellis.n_states))
    for position in trellis.positions[1:]:
        for node in trellis.position_nodes(position.id):
            gamma[position.id - 1, node.state] = ext_exp(node.conditional)
    return gamma
