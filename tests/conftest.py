"""
Shared pytest fixtures for seqhmm tests.
"""
import pytest
import numpy as np

from seqhmm.core.probabilities import ProbabilityModel
from seqhmm.core.sequence import SymbolSequence
from seqhmm.core.trellis import Trellis


@pytest.fixture
def toy_model():
    """
    Two-state toy model.
    State 0 (H): GC-rich emissions
    State 1 (L): AT-rich emissions
    """
    return ProbabilityModel.from_preset('toy')


@pytest.fixture
def gc_model():
    """The gc-content preset: near-certain self transitions."""
    return ProbabilityModel.from_preset('gc-content')


@pytest.fixture
def toy_sequence():
    """Sequence with a known Viterbi path under the toy model (HHHLLLLLL)."""
    return SymbolSequence('GGCACTGAA', name='toy')


@pytest.fixture
def random_dna():
    """Reproducible 200 bp sequence with a GC-rich middle third."""
    rng = np.random.RandomState(7)
    at_rich = rng.choice(list('ACGT'), size=70, p=[0.35, 0.15, 0.15, 0.35])
    gc_rich = rng.choice(list('ACGT'), size=60, p=[0.1, 0.4, 0.4, 0.1])
    tail = rng.choice(list('ACGT'), size=70, p=[0.35, 0.15, 0.15, 0.35])
    return ''.join(np.concatenate([at_rich, gc_rich, tail]))


@pytest.fixture
def toy_trellis(toy_sequence, toy_model):
    """Trellis built over the toy sequence."""
    return Trellis().build(toy_sequence, toy_model.copy().freeze())


@pytest.fixture
def fasta_file(tmp_path, random_dna):
    """FASTA file holding random_dna (wrapped at 60 columns) plus a second record."""
    path = tmp_path / "input.fa"
    lines = [">chrTest test sequence"]
    lines += [random_dna[i:i + 60] for i in range(0, len(random_dna), 60)]
    lines += [">second", "ACGT"]
    path.write_text("\n".join(lines) + "\n")
    return str(path)
