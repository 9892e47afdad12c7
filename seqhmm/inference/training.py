"""
seqhmm training orchestrator

HiddenMarkovModel owns one trellis over one sequence, the current
probability model and the results of every iteration. Two regimes:

1. Viterbi training: hard re-estimation from the decoded path, for a fixed
   number of iterations
2. Baum-Welch training: soft re-estimation from the posteriors, until the
   base-2 log-likelihood changes by less than a threshold

The model in use is frozen; every iteration hands the trellis a fresh one.
"""

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from enum import Enum
from typing import Iterable, List, Optional, Tuple, Union

import numpy as np
from tqdm import tqdm

from seqhmm.core.errors import ConfigurationError, ConvergenceNonTermination, PassOrderError
from seqhmm.core.probabilities import ProbabilityModel
from seqhmm.core.trellis import Trellis
from seqhmm.inference import engine
from seqhmm.inference.results import (
    BAUM_WELCH_POLICY, VITERBI_POLICY, BaumWelchIterationResult,
    ReestimationPolicy, ViterbiIterationResult, expected_counts,
    gather_viterbi_results, reestimate_baum_welch, reestimate_viterbi,
)

logger = logging.getLogger(__name__)

DEFAULT_THRESHOLD = 0.1
DEFAULT_MAX_ITERATIONS = 1000

IterationResult = Union[ViterbiIterationResult, BaumWelchIterationResult]


class TrainingState(Enum):
    IDLE = 'idle'
    BUILDING = 'building'
    DECODING = 'decoding'
    SCORING = 'scoring'
    AGGREGATING = 'aggregating'
    REESTIMATING = 'reestimating'
    CONVERGED = 'converged'
    NEXT_ITERATION = 'next_iteration'
    FINISHED = 'finished'
    CANCELLED = 'cancelled'


class TrainingMonitor:
    """Log-likelihood history of an EM run."""

    def __init__(self, threshold: float = DEFAULT_THRESHOLD):
        self.threshold = threshold
        self.history: List[float] = []
        self.last_delta: Optional[float] = None

    def report(self, log_likelihood: float) -> Optional[float]:
        """Record a log-likelihood; return the change from the previous one."""
        previous = self.history[-1] if self.history else None
        self.history.append(log_likelihood)
        if previous is None:
            self.last_delta = None
        elif log_likelihood == previous:
            # Also covers two impossible iterations in a row (-inf == -inf)
            self.last_delta = 0.0
        else:
            self.last_delta = log_likelihood - previous
        return self.last_delta

    @property
    def converged(self) -> bool:
        return self.last_delta is not None and abs(self.last_delta) < self.threshold


class HiddenMarkovModel:
    """
    Train and decode an HMM over a single symbol sequence.

    Args:
        sequence: SymbolSequence, or any iterable of alphabet symbols
        probabilities: Starting ProbabilityModel (copied, the caller's object
            is left untouched)
        executor: Optional thread pool the per-position node updates are
            mapped over (process pools raise ConfigurationError)
        verbose: Show tqdm progress bars
    """

    def __init__(self, sequence: Iterable[str], probabilities: ProbabilityModel,
                 executor: Optional[ThreadPoolExecutor] = None, verbose: bool = False):
        self.sequence = sequence
        self._symbols = list(sequence)
        if not self._symbols:
            raise ConfigurationError("Cannot train on an empty sequence")
        self._model = probabilities.copy().freeze()
        engine.check_executor(executor)
        self.executor = executor
        self.verbose = verbose

        self.trellis = Trellis()
        self.state = TrainingState.IDLE
        self._iterations: List[IterationResult] = []
        self._last_path: Optional[engine.ViterbiPath] = None

    # -------------------------------------------------------------------------
    # Accessors
    # -------------------------------------------------------------------------

    @property
    def probabilities(self) -> ProbabilityModel:
        """The current (frozen) model."""
        return self._model

    @property
    def iterations(self) -> Tuple[IterationResult, ...]:
        return tuple(self._iterations)

    @property
    def log_likelihoods(self) -> List[float]:
        return [r.log_likelihood for r in self._iterations
                if isinstance(r, BaumWelchIterationResult)]

    @property
    def last_path(self) -> Optional[engine.ViterbiPath]:
        return self._last_path

    def path_states(self) -> str:
        """Decoded states of the last Viterbi pass as a 1-based digit string."""
        if self._last_path is None:
            raise PassOrderError("No Viterbi pass has run yet")
        return self._last_path.as_string(one_based=True)

    def all_scores(self) -> np.ndarray:
        """Base-2 Viterbi weight of every node, shape (T, n_states)."""
        if not self.trellis.viterbi_done:
            raise PassOrderError("Node scores need a completed Viterbi pass")
        return engine.node_matrix(self.trellis, 'highest_weight') / np.log(2.0)

    # -------------------------------------------------------------------------
    # Single passes
    # -------------------------------------------------------------------------

    def _build(self) -> None:
        self.state = TrainingState.BUILDING
        self.trellis.build(self._symbols, self._model)

    def _replace_model(self, model: ProbabilityModel) -> None:
        self._model = model.freeze()

    def decode(self) -> engine.ViterbiPath:
        """Viterbi-decode the sequence under the current model."""
        self._build()
        self.state = TrainingState.DECODING
        engine.viterbi(self.trellis, self.executor)
        self._last_path = engine.decode_path(self.trellis)
        self.state = TrainingState.FINISHED
        return self._last_path

    def posterior_probabilities(self) -> np.ndarray:
        """P(state | sequence) per position under the current model, shape (T, S)."""
        self._build()
        self.state = TrainingState.SCORING
        engine.forward_backward(self.trellis, self.executor)
        self.state = TrainingState.FINISHED
        return engine.posterior_matrix(self.trellis)

    def log_likelihood(self) -> float:
        """Base-2 log-likelihood of the sequence under the current model."""
        self._build()
        self.state = TrainingState.SCORING
        engine.forward(self.trellis, self.executor)
        self.state = TrainingState.FINISHED
        return engine.log_likelihood(self.trellis)

    # -------------------------------------------------------------------------
    # Viterbi training
    # -------------------------------------------------------------------------

    def viterbi_training(self, n_iterations: int = 1,
                         policy: ReestimationPolicy = VITERBI_POLICY,
                         cancel_event: Optional[threading.Event] = None
                         ) -> Tuple[IterationResult, ...]:
        """
        Hard-EM training for a fixed number of iterations.

        Each iteration decodes the path under the current model, gathers
        counts along it and re-estimates the tables named by policy.

        Args:
            n_iterations: Number of decode/re-estimate rounds
            policy: Tables to re-estimate (default: transitions only)
            cancel_event: Checked before every iteration

        Returns:
            The results of this run. Iteration numbers continue from any
            earlier run on this instance; the full history is in iterations.
        """
        if n_iterations < 1:
            raise ConfigurationError(f"n_iterations must be >= 1, got {n_iterations}")

        first = len(self._iterations)
        pbar = tqdm(range(1, n_iterations + 1), desc="Viterbi training",
                    disable=not self.verbose, leave=False)
        for iteration in pbar:
            if cancel_event is not None and cancel_event.is_set():
                self.state = TrainingState.CANCELLED
                logger.info("Viterbi training cancelled before iteration %d", iteration)
                return self.iterations[first:]

            self._build()
            self.state = TrainingState.DECODING
            engine.viterbi(self.trellis, self.executor)
            path = engine.decode_path(self.trellis)
            self._last_path = path

            self.state = TrainingState.AGGREGATING
            result = gather_viterbi_results(self.trellis, path, first + iteration)

            self.state = TrainingState.REESTIMATING
            result.model = reestimate_viterbi(result, self._model, policy)
            self._iterations.append(result)
            self._replace_model(result.model)

            logger.info("Viterbi iteration %d: path log2 weight %.4f, segments %s",
                        result.iteration, result.log_weight, result.segment_counts.tolist())
            pbar.set_postfix({'log2_weight': f'{result.log_weight:.2f}'})

            self.state = (TrainingState.NEXT_ITERATION if iteration < n_iterations
                          else TrainingState.FINISHED)

        return self.iterations[first:]

    # -------------------------------------------------------------------------
    # Baum-Welch training
    # -------------------------------------------------------------------------

    def baum_welch_training(self, threshold: float = DEFAULT_THRESHOLD,
                            max_iterations: int = DEFAULT_MAX_ITERATIONS,
                            cancel_event: Optional[threading.Event] = None,
                            policy: ReestimationPolicy = BAUM_WELCH_POLICY
                            ) -> Tuple[IterationResult, ...]:
        """
        Soft-EM training until |delta log2 L| < threshold.

        Args:
            threshold: Convergence threshold on the base-2 log-likelihood
            max_iterations: Safety cap
            cancel_event: Checked before every iteration; when set, training
                stops in state CANCELLED and the results so far are returned
            policy: Tables to re-estimate (default: all three)

        Returns:
            The results of this run, numbered on from any earlier run

        Raises:
            ConvergenceNonTermination: if max_iterations pass without convergence
        """
        if threshold <= 0:
            raise ConfigurationError(f"threshold must be > 0, got {threshold}")
        if max_iterations < 1:
            raise ConfigurationError(f"max_iterations must be >= 1, got {max_iterations}")

        first = len(self._iterations)
        monitor = TrainingMonitor(threshold)
        pbar = tqdm(range(1, max_iterations + 1), desc="Baum-Welch training",
                    disable=not self.verbose, leave=False)
        for iteration in pbar:
            if cancel_event is not None and cancel_event.is_set():
                self.state = TrainingState.CANCELLED
                logger.info("Baum-Welch training cancelled before iteration %d", iteration)
                return self.iterations[first:]

            self._build()
            self.state = TrainingState.SCORING
            log_likelihood = engine.forward_backward(self.trellis, self.executor)

            self.state = TrainingState.AGGREGATING
            occupancy, transitions = expected_counts(self.trellis)

            self.state = TrainingState.REESTIMATING
            new_model = reestimate_baum_welch(self.trellis, self._model, policy)
            delta = monitor.report(log_likelihood)
            self._iterations.append(BaumWelchIterationResult(
                iteration=first + iteration,
                log_likelihood=log_likelihood,
                expected_state_counts=occupancy,
                expected_transition_counts=transitions,
                model=new_model,
                delta=delta,
            ))
            self._replace_model(new_model)

            logger.info("Baum-Welch iteration %d: log2 likelihood %.4f%s", first + iteration,
                        log_likelihood, '' if delta is None else f" (delta {delta:.4g})")
            pbar.set_postfix({'log2L': f'{log_likelihood:.2f}',
                              'delta': '-' if delta is None else f'{delta:.2e}'})

            if monitor.converged:
                self.state = TrainingState.CONVERGED
                logger.info("Converged after %d iterations", iteration)
                return self.iterations[first:]
            self.state = TrainingState.NEXT_ITERATION

        raise ConvergenceNonTermination(max_iterations, self.iterations[first:],
                                        list(monitor.history))

    def __repr__(self) -> str:
        return (f"HiddenMarkovModel(length={len(self._symbols)}, "
                f"n_states={self._model.n_states}, state={self.state.value}, "
                f"iterations={len(self._iterations)})")
