"""
Tests for seqhmm.core.probabilities module.
"""
import math

import pytest
import numpy as np

from seqhmm.core.errors import ConfigurationError, DomainError, ModelFrozenError
from seqhmm.core.extlog import LOG_ZERO
from seqhmm.core.probabilities import PRESETS, ProbabilityModel
from seqhmm.core.sequence import Alphabet


class TestConstruction:
    def test_presets_are_stochastic(self):
        for name in PRESETS:
            model = ProbabilityModel.from_preset(name)
            np.testing.assert_allclose(model.initiation.sum(), 1.0)
            np.testing.assert_allclose(model.transition.sum(axis=1), 1.0)
            np.testing.assert_allclose(model.emission.sum(axis=1), 1.0)

    def test_gc_content_values(self, gc_model):
        assert gc_model.initiation_probability(0) == 0.996
        assert gc_model.transition_probability(1, 1) == 0.99
        assert gc_model.emission_probability(1, 'G') == 0.331
        assert gc_model.emission_probability(0, 'A') == 0.291

    def test_unknown_preset(self):
        with pytest.raises(ConfigurationError):
            ProbabilityModel.from_preset('cpg-islands')

    def test_transition_shape_mismatch(self):
        with pytest.raises(ConfigurationError):
            ProbabilityModel([0.5, 0.5], [[1.0]], [[0.25] * 4, [0.25] * 4])

    def test_emission_shape_mismatch(self):
        with pytest.raises(ConfigurationError):
            ProbabilityModel([0.5, 0.5], [[0.5, 0.5], [0.5, 0.5]], [[0.25] * 4])

    def test_alphabet_size_mismatch(self):
        with pytest.raises(ConfigurationError):
            ProbabilityModel([1.0], [[1.0]], [[0.5, 0.5]], alphabet=Alphabet.dna(1))

    def test_negative_probability(self):
        with pytest.raises(DomainError):
            ProbabilityModel([1.5, -0.5], [[0.5, 0.5], [0.5, 0.5]],
                             [[0.25] * 4, [0.25] * 4])

    def test_uniform_three_states_kmers(self):
        model = ProbabilityModel.uniform(3, Alphabet.dna(2))
        assert model.n_states == 3
        assert model.n_symbols == 16
        assert model.emission_probability(2, 'GC') == pytest.approx(1 / 16)

    def test_random_is_reproducible(self):
        a = ProbabilityModel.random(4, seed=3)
        b = ProbabilityModel.random(4, seed=3)
        assert a == b
        np.testing.assert_allclose(a.transition.sum(axis=1), 1.0)


class TestLogConsistency:
    def test_logs_match_probabilities(self, toy_model):
        assert toy_model.log_initiation(0) == pytest.approx(math.log(0.5))
        assert toy_model.log_transition(1, 1) == pytest.approx(math.log(0.6))
        assert toy_model.log_emission(0, 'G') == pytest.approx(math.log(0.3))
        assert toy_model.log_emission(0, 2) == toy_model.log_emission(0, 'G')

    def test_setter_updates_log(self, toy_model):
        toy_model.set_transition_probability(0, 1, 0.25)
        assert toy_model.transition_probability(0, 1) == 0.25
        assert toy_model.log_transition(0, 1) == pytest.approx(math.log(0.25))

    def test_zero_probability_is_log_zero(self, toy_model):
        toy_model.set_emission_probability(1, 'C', 0.0)
        assert toy_model.log_emission(1, 'C') is LOG_ZERO
        toy_model.set_initiation_probability(0, 0.0)
        assert toy_model.log_initiation(0) is LOG_ZERO

    def test_tables_read_only(self, toy_model):
        with pytest.raises(ValueError):
            toy_model.transition[0, 0] = 0.1


class TestLifecycle:
    def test_frozen_rejects_setters(self, toy_model):
        toy_model.freeze()
        with pytest.raises(ModelFrozenError):
            toy_model.set_initiation_probability(0, 0.1)
        with pytest.raises(ModelFrozenError):
            toy_model.set_emission_probability(0, 'A', 0.1)

    def test_copy_is_unfrozen_and_independent(self, toy_model):
        toy_model.freeze()
        clone = toy_model.copy()
        assert not clone.frozen
        assert clone == toy_model
        clone.set_transition_probability(0, 0, 0.9)
        assert toy_model.transition_probability(0, 0) == 0.5
        assert clone != toy_model

    def test_dict_round_trip(self):
        model = ProbabilityModel.random(3, Alphabet.dna(2), seed=1)
        data = model.to_dict()
        assert data['n_states'] == 3
        assert data['k'] == 2
        assert ProbabilityModel.from_dict(data) == model

    def test_from_dict_state_mismatch(self, toy_model):
        data = toy_model.to_dict()
        data['n_states'] = 3
        with pytest.raises(ConfigurationError):
            ProbabilityModel.from_dict(data)
