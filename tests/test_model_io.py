"""
Tests for seqhmm.core.model_io module.
"""
import json

import pytest
import numpy as np

from seqhmm.core.errors import ConfigurationError
from seqhmm.core.model_io import load_model, load_model_with_metadata, save_model
from seqhmm.core.probabilities import ProbabilityModel
from seqhmm.core.sequence import Alphabet


@pytest.fixture
def sample_model():
    """A 3-state dinucleotide model."""
    return ProbabilityModel.random(3, Alphabet.dna(2), seed=42)


class TestLoadSaveRoundTrip:
    def test_json_round_trip(self, sample_model, tmp_path):
        filepath = str(tmp_path / "model.json")
        save_model(sample_model, filepath)

        loaded = load_model(filepath)
        np.testing.assert_allclose(loaded.initiation, sample_model.initiation, rtol=1e-12)
        np.testing.assert_allclose(loaded.transition, sample_model.transition, rtol=1e-12)
        np.testing.assert_allclose(loaded.emission, sample_model.emission, rtol=1e-12)
        assert loaded.alphabet == sample_model.alphabet

    def test_json_contains_expected_keys(self, sample_model, tmp_path):
        filepath = str(tmp_path / "model.json")
        save_model(sample_model, filepath)

        with open(filepath) as f:
            data = json.load(f)

        assert data['model_type'] == 'seqhmm'
        assert data['version'] == '1.0'
        assert data['n_states'] == 3
        assert data['k'] == 2
        assert len(data['alphabet']) == 16
        for key in ('initiation', 'transition', 'emission'):
            assert key in data

    def test_metadata_preserved(self, sample_model, tmp_path):
        filepath = str(tmp_path / "model.json")
        save_model(sample_model, filepath, metadata={'method': 'baum-welch', 'iterations': 7})

        _, metadata = load_model_with_metadata(filepath)
        assert metadata == {'method': 'baum-welch', 'iterations': 7}

    def test_loaded_model_is_unfrozen(self, sample_model, tmp_path):
        filepath = str(tmp_path / "model.json")
        save_model(sample_model.freeze(), filepath)
        assert not load_model(filepath).frozen


class TestFormats:
    def test_save_redirects_to_json(self, sample_model, tmp_path):
        filepath = str(tmp_path / "model.npz")
        with pytest.warns(UserWarning, match="Only JSON"):
            written = save_model(sample_model, filepath)
        assert written == str(tmp_path / "model.json")
        assert (tmp_path / "model.json").exists()
        assert not (tmp_path / "model.npz").exists()

    def test_load_npz(self, tmp_path):
        model = ProbabilityModel.from_preset('gc-content')
        filepath = str(tmp_path / "model.npz")
        np.savez(filepath, n_states=2, initiation=model.initiation,
                 transition=model.transition, emission=model.emission,
                 alphabet=np.array(model.alphabet.symbols))
        assert load_model(filepath) == model

    def test_load_npz_without_alphabet(self, tmp_path):
        model = ProbabilityModel.uniform(2, Alphabet.dna(2))
        filepath = str(tmp_path / "model.npz")
        np.savez(filepath, k=2, initiation=model.initiation,
                 transition=model.transition, emission=model.emission)
        assert load_model(filepath).alphabet == Alphabet.dna(2)

    def test_unknown_extension(self, tmp_path):
        filepath = tmp_path / "model.pkl"
        filepath.write_bytes(b"")
        with pytest.raises(ConfigurationError, match="Unrecognized"):
            load_model(str(filepath))

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError, match="not found"):
            load_model(str(tmp_path / "model.json"))

    def test_foreign_json(self, tmp_path):
        filepath = tmp_path / "model.json"
        filepath.write_text(json.dumps({'model_type': 'other-tool', 'n_states': 2}))
        with pytest.raises(ConfigurationError):
            load_model(str(filepath))
