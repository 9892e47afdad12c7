"""Trellis inference passes, re-estimation, training, statistics and reports."""

from seqhmm.inference.engine import (
    viterbi,
    decode_path,
    forward,
    backward,
    posteriors,
    forward_backward,
    log_likelihood,
)
from seqhmm.inference.results import (
    ReestimationPolicy,
    VITERBI_POLICY,
    BAUM_WELCH_POLICY,
)
from seqhmm.inference.training import HiddenMarkovModel, TrainingState
from seqhmm.inference.stats import SegmentStats

__all__ = [
    'viterbi',
    'decode_path',
    'forward',
    'backward',
    'posteriors',
    'forward_backward',
    'log_likelihood',
    'ReestimationPolicy',
    'VITERBI_POLICY',
    'BAUM_WELCH_POLICY',
    'HiddenMarkovModel',
    'TrainingState',
    'SegmentStats',
]
