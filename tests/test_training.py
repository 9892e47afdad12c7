"""
Tests for seqhmm.inference.training module.
"""
import logging
import threading
from concurrent.futures import ProcessPoolExecutor, ThreadPoolExecutor

import pytest
import numpy as np

from seqhmm.core.errors import ConfigurationError, ConvergenceNonTermination, PassOrderError
from seqhmm.core.sequence import SymbolSequence
from seqhmm.inference.results import (
    BAUM_WELCH_POLICY, BaumWelchIterationResult, ViterbiIterationResult,
)
from seqhmm.inference.training import (
    DEFAULT_MAX_ITERATIONS, DEFAULT_THRESHOLD, HiddenMarkovModel,
    TrainingMonitor, TrainingState,
)


class TestConstruction:
    def test_defaults(self):
        assert DEFAULT_THRESHOLD == 0.1
        assert DEFAULT_MAX_ITERATIONS == 1000

    def test_initial_state(self, toy_sequence, toy_model):
        hmm = HiddenMarkovModel(toy_sequence, toy_model)
        assert hmm.state == TrainingState.IDLE
        assert hmm.iterations == ()
        assert hmm.probabilities.frozen
        assert not toy_model.frozen

    def test_empty_sequence(self, toy_model):
        with pytest.raises(ConfigurationError):
            HiddenMarkovModel(SymbolSequence(''), toy_model)

    def test_process_pool_rejected(self, toy_sequence, toy_model):
        with ProcessPoolExecutor(max_workers=1) as executor:
            with pytest.raises(ConfigurationError, match="thread-based"):
                HiddenMarkovModel(toy_sequence, toy_model, executor=executor)

    def test_thread_pool_training(self, toy_sequence, toy_model):
        with ThreadPoolExecutor(max_workers=2) as executor:
            hmm = HiddenMarkovModel(toy_sequence, toy_model, executor=executor)
            hmm.viterbi_training(1)
        assert hmm.path_states() == "111222222"

    def test_accessors_before_training(self, toy_sequence, toy_model):
        hmm = HiddenMarkovModel(toy_sequence, toy_model)
        with pytest.raises(PassOrderError):
            hmm.path_states()
        with pytest.raises(PassOrderError):
            hmm.all_scores()


class TestViterbiTraining:
    def test_single_iteration(self, toy_sequence, toy_model):
        hmm = HiddenMarkovModel(toy_sequence, toy_model)
        results = hmm.viterbi_training(1)
        assert len(results) == 1
        assert isinstance(results[0], ViterbiIterationResult)
        assert hmm.state == TrainingState.FINISHED
        assert hmm.path_states() == '111222222'
        assert results[0].log_weight == pytest.approx(-24.4874, abs=1e-3)

    def test_model_replaced_each_iteration(self, random_dna, gc_model):
        hmm = HiddenMarkovModel(SymbolSequence(random_dna), gc_model)
        results = hmm.viterbi_training(3)
        assert len(results) == 3
        assert [r.iteration for r in results] == [1, 2, 3]
        assert hmm.probabilities is results[-1].model
        for result in results:
            assert result.model.frozen
            np.testing.assert_allclose(result.model.transition.sum(axis=1), 1.0)
            assert result.state_counts.sum() == len(random_dna)

    def test_emission_held_by_default(self, random_dna, gc_model):
        hmm = HiddenMarkovModel(SymbolSequence(random_dna), gc_model)
        hmm.viterbi_training(2)
        np.testing.assert_array_equal(hmm.probabilities.emission, gc_model.emission)
        np.testing.assert_array_equal(hmm.probabilities.initiation, gc_model.initiation)

    def test_custom_policy(self, random_dna, gc_model):
        hmm = HiddenMarkovModel(SymbolSequence(random_dna), gc_model)
        hmm.viterbi_training(2, policy=BAUM_WELCH_POLICY)
        np.testing.assert_allclose(hmm.probabilities.emission.sum(axis=1), 1.0)
        assert not np.array_equal(hmm.probabilities.emission, gc_model.emission)

    def test_all_scores(self, toy_sequence, toy_model):
        hmm = HiddenMarkovModel(toy_sequence, toy_model)
        hmm.viterbi_training(1)
        scores = hmm.all_scores()
        assert scores.shape == (9, 2)
        assert scores[-1].max() == pytest.approx(-24.4874, abs=1e-3)

    def test_invalid_iterations(self, toy_sequence, toy_model):
        with pytest.raises(ConfigurationError):
            HiddenMarkovModel(toy_sequence, toy_model).viterbi_training(0)

    def test_cancel(self, toy_sequence, toy_model):
        event = threading.Event()
        event.set()
        hmm = HiddenMarkovModel(toy_sequence, toy_model)
        assert hmm.viterbi_training(5, cancel_event=event) == ()
        assert hmm.state == TrainingState.CANCELLED

    def test_second_run_continues_numbering(self, toy_sequence, toy_model):
        hmm = HiddenMarkovModel(toy_sequence, toy_model)
        first = hmm.viterbi_training(2)
        second = hmm.viterbi_training(2)
        assert [r.iteration for r in first] == [1, 2]
        assert [r.iteration for r in second] == [3, 4]
        assert [r.iteration for r in hmm.iterations] == [1, 2, 3, 4]


class TestBaumWelchTraining:
    def test_likelihood_non_decreasing(self, random_dna, gc_model):
        hmm = HiddenMarkovModel(SymbolSequence(random_dna), gc_model)
        results = hmm.baum_welch_training()
        history = [r.log_likelihood for r in results]
        assert len(history) >= 2
        assert all(b >= a - 1e-6 for a, b in zip(history, history[1:]))
        assert hmm.state == TrainingState.CONVERGED
        assert abs(results[-1].delta) < DEFAULT_THRESHOLD

    def test_results_carry_frozen_models(self, toy_sequence, toy_model):
        hmm = HiddenMarkovModel(toy_sequence, toy_model)
        results = hmm.baum_welch_training(threshold=0.5)
        assert all(isinstance(r, BaumWelchIterationResult) for r in results)
        assert results[0].delta is None
        assert hmm.probabilities is results[-1].model
        assert hmm.log_likelihoods == [r.log_likelihood for r in results]
        for result in results:
            np.testing.assert_allclose(result.model.transition.sum(axis=1), 1.0)
            np.testing.assert_allclose(result.expected_state_counts.sum(), 9.0)

    def test_first_likelihood_uses_starting_model(self, toy_sequence, toy_model):
        hmm = HiddenMarkovModel(toy_sequence, toy_model)
        expected = HiddenMarkovModel(toy_sequence, toy_model).log_likelihood()
        results = hmm.baum_welch_training()
        assert results[0].log_likelihood == pytest.approx(expected)

    def test_iteration_cap(self, random_dna, gc_model):
        hmm = HiddenMarkovModel(SymbolSequence(random_dna), gc_model)
        with pytest.raises(ConvergenceNonTermination) as exc_info:
            hmm.baum_welch_training(max_iterations=1)
        error = exc_info.value
        assert error.max_iterations == 1
        assert len(error.iterations) == 1
        assert len(error.log_likelihoods) == 1
        assert len(hmm.iterations) == 1

    def test_iteration_cap_after_viterbi_run(self, random_dna, gc_model):
        hmm = HiddenMarkovModel(SymbolSequence(random_dna), gc_model)
        hmm.viterbi_training(2)
        with pytest.raises(ConvergenceNonTermination) as exc_info:
            hmm.baum_welch_training(max_iterations=1)
        error = exc_info.value
        assert [r.iteration for r in error.iterations] == [3]
        assert isinstance(error.iterations[0], BaumWelchIterationResult)
        assert len(hmm.iterations) == 3

    def test_after_viterbi_run(self, toy_sequence, toy_model):
        hmm = HiddenMarkovModel(toy_sequence, toy_model)
        hmm.viterbi_training(2)
        results = hmm.baum_welch_training()
        assert all(isinstance(r, BaumWelchIterationResult) for r in results)
        assert [r.iteration for r in results] == list(range(3, 3 + len(results)))
        numbers = [r.iteration for r in hmm.iterations]
        assert len(set(numbers)) == len(numbers)

    def test_cancel_mid_run(self, random_dna, gc_model):
        event = threading.Event()

        class CancelAfterFirst(logging.Handler):
            def emit(self, record):
                if 'iteration 1' in record.getMessage():
                    event.set()

        handler = CancelAfterFirst()
        logger = logging.getLogger('seqhmm.inference.training')
        logger.addHandler(handler)
        logger.setLevel(logging.INFO)
        try:
            hmm = HiddenMarkovModel(SymbolSequence(random_dna), gc_model)
            results = hmm.baum_welch_training(cancel_event=event)
        finally:
            logger.removeHandler(handler)
            logger.setLevel(logging.NOTSET)

        assert len(results) == 1
        assert hmm.state == TrainingState.CANCELLED

    def test_invalid_arguments(self, toy_sequence, toy_model):
        hmm = HiddenMarkovModel(toy_sequence, toy_model)
        with pytest.raises(ConfigurationError):
            hmm.baum_welch_training(threshold=0)
        with pytest.raises(ConfigurationError):
            hmm.baum_welch_training(max_iterations=0)

    def test_decode_after_training(self, random_dna, gc_model):
        hmm = HiddenMarkovModel(SymbolSequence(random_dna), gc_model)
        hmm.baum_welch_training()
        path = hmm.decode()
        assert len(path) == len(random_dna)
        assert len(hmm.path_states()) == len(random_dna)
        assert set(hmm.path_states()) <= {'1', '2'}

    def test_posterior_probabilities(self, toy_sequence, toy_model):
        gamma = HiddenMarkovModel(toy_sequence, toy_model).posterior_probabilities()
        np.testing.assert_allclose(gamma.sum(axis=1), 1.0)


class TestTrainingMonitor:
    def test_deltas(self):
        monitor = TrainingMonitor(threshold=0.1)
        assert monitor.report(-100.0) is None
        assert not monitor.converged
        assert monitor.report(-90.0) == 10.0
        assert not monitor.converged
        assert monitor.report(-89.95) == pytest.approx(0.05)
        assert monitor.converged

    def test_impossible_likelihoods_converge(self):
        monitor = TrainingMonitor()
        monitor.report(float('-inf'))
        assert monitor.report(float('-inf')) == 0.0
        assert monitor.converged

    def test_recovering_from_impossible(self):
        monitor = TrainingMonitor()
        monitor.report(float('-inf'))
        monitor.report(-10.0)
        assert not monitor.converged
