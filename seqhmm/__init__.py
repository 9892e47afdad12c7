"""
seqhmm - Hidden Markov Model trellis engine for segmenting DNA sequences
(GC-rich islands and similar), with Viterbi and Baum-Welch training.
"""

__version__ = "1.0.0"

from seqhmm.core.probabilities import ProbabilityModel
from seqhmm.core.sequence import Alphabet, SymbolSequence
from seqhmm.core.model_io import load_model, save_model, load_model_with_metadata
from seqhmm.inference.training import HiddenMarkovModel
