"""Extended-log arithmetic, probability models, sequences and the trellis."""

from seqhmm.core.extlog import LOG_ZERO, ext_exp, ext_log, log_product, log_sum
from seqhmm.core.probabilities import PRESETS, ProbabilityModel
from seqhmm.core.sequence import Alphabet, SymbolSequence
from seqhmm.core.trellis import Trellis
from seqhmm.core.model_io import load_model, save_model, load_model_with_metadata
