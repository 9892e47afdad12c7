"""
The position x state trellis.

Position 0 holds a single synthetic start node; positions 1..T hold one
node per hidden state for the symbol at that sequence offset. Every node
of a position is connected to every node of the next position by a
transition.

The Trellis owns all positions, nodes and transitions in flat lists
(arenas). Nodes and transitions refer to each other by arena index, never
by object reference, so rebuilding or recomputing cannot leave dangling
references.
"""

import logging
from dataclasses import dataclass, field
from typing import Iterable, Iterator, List, Optional

from seqhmm.core.errors import ConfigurationError, UnknownSymbolError
from seqhmm.core.extlog import LOG_ZERO, ExtLog, log_greater
from seqhmm.core.probabilities import ProbabilityModel

logger = logging.getLogger(__name__)

# State carried by the synthetic start node. Hidden states are 0..S-1.
START_STATE = -1


@dataclass
class Node:
    """One hidden state at one position."""
    id: int
    position: int
    state: int
    symbol: str = ''
    symbol_index: int = -1
    highest_weight: ExtLog = LOG_ZERO
    previous: Optional[int] = None
    forward: ExtLog = LOG_ZERO
    backward: ExtLog = LOG_ZERO
    conditional: ExtLog = LOG_ZERO
    in_transitions: List[int] = field(default_factory=list)
    out_transitions: List[int] = field(default_factory=list)

    @property
    def is_start(self) -> bool:
        return self.state == START_STATE


@dataclass
class Transition:
    """Edge from a node at position t-1 to a node at position t."""
    id: int
    source: int
    target: int
    conditional: ExtLog = LOG_ZERO


@dataclass
class Position:
    """A column of the trellis: one node per state (one node at position 0)."""
    id: int
    nodes: List[int] = field(default_factory=list)


class Trellis:
    """
    Arena-owned HMM trellis.

    Typical use:
        trellis = Trellis().build(sequence, model)
        ...run inference passes...
        trellis.build(sequence, new_model)   # recompute in place
    """

    def __init__(self):
        self.positions: List[Position] = []
        self.nodes: List[Node] = []
        self.transitions: List[Transition] = []
        self.model: Optional[ProbabilityModel] = None

        # Set by the inference passes, cleared on recompute
        self.viterbi_done = False
        self.forward_done = False
        self.backward_done = False
        self.node_posteriors_done = False
        self.transition_posteriors_done = False

    # -------------------------------------------------------------------------
    # Construction
    # -------------------------------------------------------------------------

    @property
    def built(self) -> bool:
        return bool(self.positions)

    def build(self, sequence: Iterable[str], model: ProbabilityModel) -> 'Trellis':
        """
        Build the trellis over sequence, or recompute it if already built.

        On a built trellis the topology is left untouched: the model is
        swapped in and every derived scalar is reset so the next pass
        recomputes it.

        Args:
            sequence: Symbols (a SymbolSequence or any iterable of str)
            model: Probability model the passes read from

        Returns:
            self
        """
        symbols = list(sequence)
        if not symbols:
            raise ConfigurationError("Cannot build a trellis over an empty sequence")

        if self.built:
            if len(symbols) != self.length:
                raise ConfigurationError(
                    f"Trellis was built over {self.length} symbols, "
                    f"cannot recompute over {len(symbols)}"
                )
            if symbols != self.symbols():
                raise ConfigurationError(
                    "Trellis was built over a different sequence of the same length; "
                    "build a new Trellis for it"
                )
            self.recompute(model)
            return self

        self._check_alphabet(symbols, model)
        self.model = model
        n_states = model.n_states
        alphabet = model.alphabet

        start_position = Position(id=0)
        start_node = self._add_node(position=0, state=START_STATE)
        start_node.highest_weight = 0.0
        start_node.forward = 0.0
        start_position.nodes.append(start_node.id)
        self.positions.append(start_position)

        previous = start_position
        for offset, symbol in enumerate(symbols):
            position = Position(id=offset + 1)
            symbol_index = alphabet.index(symbol)
            for state in range(n_states):
                node = self._add_node(position=position.id, state=state,
                                      symbol=symbol, symbol_index=symbol_index)
                position.nodes.append(node.id)
            self._connect(previous, position)
            self.positions.append(position)
            previous = position

        logger.debug("Built trellis: %d positions, %d nodes, %d transitions",
                     len(self.positions), len(self.nodes), len(self.transitions))
        return self

    def recompute(self, model: ProbabilityModel) -> None:
        """Swap in a new model and reset all per-node/per-transition values."""
        if model.n_states != self.n_states:
            raise ConfigurationError(
                f"Trellis has {self.n_states} states per position, model has {model.n_states}"
            )
        if model.alphabet != self.model.alphabet:
            self._check_alphabet((self.nodes[n].symbol for n in self._hidden_node_ids()), model)
            for node_id in self._hidden_node_ids():
                node = self.nodes[node_id]
                node.symbol_index = model.alphabet.index(node.symbol)
        self.model = model

        for node in self.nodes:
            node.previous = None
            node.conditional = LOG_ZERO
            if node.is_start:
                node.highest_weight = 0.0
                node.forward = 0.0
                node.backward = LOG_ZERO
            else:
                node.highest_weight = LOG_ZERO
                node.forward = LOG_ZERO
                node.backward = LOG_ZERO
        for transition in self.transitions:
            transition.conditional = LOG_ZERO

        self.viterbi_done = False
        self.forward_done = False
        self.backward_done = False
        self.node_posteriors_done = False
        self.transition_posteriors_done = False

    def _add_node(self, position: int, state: int, symbol: str = '',
                  symbol_index: int = -1) -> Node:
        node = Node(id=len(self.nodes), position=position, state=state,
                    symbol=symbol, symbol_index=symbol_index)
        self.nodes.append(node)
        return node

    def _connect(self, previous: Position, current: Position) -> None:
        """Dense transitions: every node of previous to every node of current."""
        for target_id in current.nodes:
            target = self.nodes[target_id]
            for source_id in previous.nodes:
                transition = Transition(id=len(self.transitions),
                                        source=source_id, target=target_id)
                self.transitions.append(transition)
                target.in_transitions.append(transition.id)
                self.nodes[source_id].out_transitions.append(transition.id)

    def _hidden_node_ids(self) -> Iterator[int]:
        for position in self.positions[1:]:
            yield from position.nodes

    @staticmethod
    def _check_alphabet(symbols: Iterable[str], model: ProbabilityModel) -> None:
        alphabet = model.alphabet
        for offset, symbol in enumerate(symbols):
            if symbol not in alphabet:
                raise UnknownSymbolError(symbol, offset)

    # -------------------------------------------------------------------------
    # Shape
    # -------------------------------------------------------------------------

    @property
    def length(self) -> int:
        """T: number of sequence positions (the start position excluded)."""
        return max(len(self.positions) - 1, 0)

    @property
    def n_states(self) -> int:
        return self.model.n_states if self.model is not None else 0

    @property
    def start_node(self) -> Node:
        return self.nodes[self.positions[0].nodes[0]]

    @property
    def last_position(self) -> Position:
        return self.positions[-1]

    def position_nodes(self, position_id: int) -> List[Node]:
        return [self.nodes[n] for n in self.positions[position_id].nodes]

    def symbols(self) -> List[str]:
        """The sequence the trellis was built over."""
        return [self.nodes[p.nodes[0]].symbol for p in self.positions[1:]]

    # -------------------------------------------------------------------------
    # Probabilities seen through the current model
    # -------------------------------------------------------------------------

    def log_emission(self, node: Node) -> ExtLog:
        """Log probability of node's state emitting its symbol."""
        return self.model.log_emission(node.state, node.symbol_index)

    def log_transition(self, transition: Transition) -> ExtLog:
        """Initiation log probability out of the start node, else transition."""
        source = self.nodes[transition.source]
        target = self.nodes[transition.target]
        if source.is_start:
            return self.model.log_initiation(target.state)
        return self.model.log_transition(source.state, target.state)

    def highest_scoring_node(self, position_id: Optional[int] = None) -> Node:
        """First node with the highest Viterbi weight at a position (default: last)."""
        position = self.positions[-1 if position_id is None else position_id]
        best = self.nodes[position.nodes[0]]
        for node_id in position.nodes[1:]:
            node = self.nodes[node_id]
            if log_greater(node.highest_weight, best.highest_weight):
                best = node
        return best

    def __len__(self) -> int:
        return self.length

    def __repr__(self) -> str:
        return (f"Trellis(length={self.length}, n_states={self.n_states}, "
                f"nodes={len(self.nodes)}, transitions={len(self.transitions)})")
