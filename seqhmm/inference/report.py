"""
XML-like result text for training runs.

Layout (indentation is part of the format):

    <results>
        <result type='first line' file='...'>
          header line
        </result>
        <result type="viterbi_iteration" iteration="1">
          <result type="state_histogram">1=...,2=...</result>
          <result type="segment_histogram">1=...,2=...</result>
          <model type="hmm">
            <states>1,2</states>
            <initial_state_probabilities>1=...,2=...</initial_state_probabilities>
            ...
          </model>
        </result>
        <result type="segment_list">(start,end,state),...</result>
    </results>

States are printed 1-based. Probabilities use scientific notation with
four digits after the point.
"""

from typing import Iterable, List, Optional, Sequence

import numpy as np

from seqhmm.core.probabilities import ProbabilityModel
from seqhmm.core.sequence import SymbolSequence
from seqhmm.inference.results import BaumWelchIterationResult, ViterbiIterationResult

SEGMENTS_PER_LINE = 5


def format_probability(p: float) -> str:
    return f"{p:.4e}"


def xml_result(result_type: str, content: str, indent: int = 6) -> str:
    """One-line <result type="..."> element."""
    return f'{" " * indent}<result type="{result_type}">{content}</result>\n'


# =============================================================================
# Sequence
# =============================================================================

def first_line_result(sequence: SymbolSequence, filename: str) -> str:
    return (f"    <result type='first line' file='{filename}'>\n"
            f"      {sequence.first_line}\n"
            f"    </result>\n")


def base_counts_result(sequence: SymbolSequence, filename: str) -> str:
    """A/C/G/T counts; other residues are reported as N only when present."""
    counts = sequence.base_counts()
    text = ','.join(f"{base}={counts[base]}" for base in 'ACGT')
    if counts['other'] > 0:
        text += f",N={counts['other']}"
    return (f"    <result type='nucleotide histogram' file='{filename}'>\n"
            f"      {text}\n"
            f"    </result>\n")


# =============================================================================
# Model
# =============================================================================

def _state_values(values: Iterable[float]) -> str:
    return ','.join(f"{i + 1}={format_probability(v)}" for i, v in enumerate(values))


def model_result(model: ProbabilityModel) -> str:
    """<model type="hmm"> block with every probability table."""
    lines = ['      <model type="hmm">\n']
    states = ','.join(str(s + 1) for s in range(model.n_states))
    lines.append(f"        <states>{states}</states>\n")
    lines.append(f"        <initial_state_probabilities>{_state_values(model.initiation)}"
                 f"</initial_state_probabilities>\n")
    for state in range(model.n_states):
        lines.append(f'        <transition_probabilities state="{state + 1}">'
                     f"{_state_values(model.transition[state])}</transition_probabilities>\n")
    for state in range(model.n_states):
        emissions = ','.join(f"{symbol}={format_probability(model.emission[state, i])}"
                             for i, symbol in enumerate(model.alphabet))
        lines.append(f'        <emission_probabilities state="{state + 1}">'
                     f"{emissions}</emission_probabilities>\n")
    lines.append('      </model>\n')
    return ''.join(lines)


# =============================================================================
# Viterbi iterations
# =============================================================================

def state_histogram_result(result: ViterbiIterationResult) -> str:
    text = ','.join(f"{s + 1}={int(c)}" for s, c in enumerate(result.state_counts))
    return xml_result('state_histogram', text)


def segment_histogram_result(result: ViterbiIterationResult) -> str:
    text = ','.join(f"{s + 1}={int(c)}" for s, c in enumerate(result.segment_counts))
    return xml_result('segment_histogram', text)


def transition_counts_result(result: ViterbiIterationResult) -> str:
    n = result.n_states
    text = ','.join(f"{i + 1}{j + 1}={int(result.transition_counts[i, j])}"
                    for i in range(n) for j in range(n))
    return f"        <transition_counts>{text}</transition_counts>\n"


def segment_list_result(result: ViterbiIterationResult,
                        states: Optional[Sequence[int]] = None) -> str:
    """
    Segments of the decoded path as (start,end,state), sorted by start.

    Args:
        result: Viterbi iteration result
        states: Restrict to these (0-based) states; default all
    """
    wanted = range(result.n_states) if states is None else states
    segments = sorted((start, end, state)
                      for state in wanted
                      for start, end in result.segments.get(state, []))
    parts: List[str] = []
    for i, (start, end, state) in enumerate(segments, start=1):
        parts.append(f"({start},{end},{state + 1}),")
        if i % SEGMENTS_PER_LINE == 0:
            parts.append("\n")
    return xml_result('segment_list', ''.join(parts), indent=4)


def viterbi_iteration_result(result: ViterbiIterationResult,
                             include_segments: bool = False) -> str:
    lines = [f'    <result type="viterbi_iteration" iteration="{result.iteration}">\n',
             state_histogram_result(result),
             segment_histogram_result(result),
             transition_counts_result(result)]
    if result.model is not None:
        lines.append(model_result(result.model))
    lines.append('    </result>\n')
    if include_segments:
        lines.append(segment_list_result(result))
    return ''.join(lines)


# =============================================================================
# Baum-Welch
# =============================================================================

def em_result(n_iterations: int, log_likelihood: float, model: ProbabilityModel) -> str:
    return ('    <result type="EM_result">\n'
            f'      <result type="iterations">{n_iterations}</result>\n'
            f'      <result type="log_likelihood">{log_likelihood:.6f}</result>\n'
            f'{model_result(model)}'
            '    </result>\n')


def baum_welch_result(results: Sequence[BaumWelchIterationResult]) -> str:
    """EM_result for the last iteration of a Baum-Welch run."""
    last = results[-1]
    return em_result(len(results), last.log_likelihood, last.model)


# =============================================================================
# Scores and whole reports
# =============================================================================

def all_scores_result(scores: np.ndarray) -> str:
    """
    Per-position node weights (base 2) as written after Viterbi training:

        Position: 1
          Node: (1,-2.7370)
          Node: (2,-2.3219)
    """
    lines = []
    for position, row in enumerate(scores, start=1):
        lines.append(f"Position: {position}\n")
        for state, weight in enumerate(row):
            lines.append(f"  Node: ({state + 1},{weight:.4f})\n")
    return ''.join(lines)


def training_report(sequence: SymbolSequence, results: Sequence, filename: str) -> str:
    """
    Full results document for a training run.

    Viterbi iterations are written one block each, with the segment list of
    the last one; Baum-Welch runs end with a single EM_result block.
    """
    lines = ['<results>\n',
             first_line_result(sequence, filename),
             base_counts_result(sequence, filename)]

    viterbi = [r for r in results if isinstance(r, ViterbiIterationResult)]
    for i, result in enumerate(viterbi):
        lines.append(viterbi_iteration_result(result, include_segments=(i == len(viterbi) - 1)))

    em = [r for r in results if isinstance(r, BaumWelchIterationResult)]
    if em:
        lines.append(baum_welch_result(em))

    lines.append('</results>\n')
    return ''.join(lines)
