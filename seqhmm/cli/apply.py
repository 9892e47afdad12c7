#!/usr/bin/env python3
"""
seqhmm-apply
Decode a FASTA sequence with a trained model.

Outputs (in --output):
- path.txt: decoded states as a 1-based digit string
- segments.tsv: segments of the decoded path
- with --posteriors: posteriors.tsv, P(state | sequence) per position
"""

import argparse
import os
import sys
from typing import List, Optional

import pandas as pd

from seqhmm.cli.common import (
    add_input_args, add_kmer_args, add_output_args, add_stats_args,
    add_verbose_args, add_version_args, setup_logging,
)
from seqhmm.cli.train import segments_frame
from seqhmm.core.errors import ConfigurationError, SeqHMMError
from seqhmm.core.model_io import load_model
from seqhmm.core.sequence import SymbolSequence
from seqhmm.inference.stats import SegmentStats
from seqhmm.inference.training import HiddenMarkovModel


def parse_args(argv: Optional[List[str]] = None):
    parser = argparse.ArgumentParser(
        description='Decode a FASTA sequence with a trained seqhmm model',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  seqhmm-apply -i genome.fa -m out/final-model.json -o decoded/
  seqhmm-apply -i genome.fa -m out/final-model.json -o decoded/ --posteriors
"""
    )
    add_input_args(parser)
    parser.add_argument('-m', '--model', required=True,
                        help='Trained model file (.json or .npz)')
    add_output_args(parser)
    add_kmer_args(parser)
    parser.add_argument('--posteriors', action='store_true',
                        help='Also write per-position posterior state probabilities')
    add_stats_args(parser)
    add_verbose_args(parser)
    add_version_args(parser)
    return parser.parse_args(argv)


def run(args) -> None:
    setup_logging(args.verbose)

    print("seqhmm Decoding")
    print(f"  Input: {args.input}")
    print(f"  Model: {args.model}")

    model = load_model(args.model)
    if model.alphabet.k != args.kmer_size:
        raise ConfigurationError(
            f"Model reads {model.alphabet.k}-mers but -k {args.kmer_size} was given"
        )
    sequence = SymbolSequence.from_fasta(args.input, k=args.kmer_size,
                                         overlapping=args.overlapping)
    print(f"  Sequence: {sequence.first_line} ({len(sequence):,} symbols)")

    os.makedirs(args.output, exist_ok=True)

    hmm = HiddenMarkovModel(sequence, model, verbose=args.verbose)
    path = hmm.decode()
    print(f"  Path log2 weight: {path.log2_weight:.4f}")

    with open(os.path.join(args.output, 'path.txt'), 'w') as f:
        f.write(hmm.path_states() + '\n')
    segments = segments_frame(path.states)
    segments.to_csv(os.path.join(args.output, 'segments.tsv'), sep='\t', index=False)
    print(f"  Segments: {len(segments):,}")

    if args.posteriors:
        gamma = hmm.posterior_probabilities()
        frame = pd.DataFrame(gamma, columns=[f'state{s + 1}' for s in range(model.n_states)])
        frame.insert(0, 'position', range(1, len(frame) + 1))
        frame.insert(1, 'symbol', sequence.symbols)
        frame.to_csv(os.path.join(args.output, 'posteriors.tsv'), sep='\t', index=False)
        print("  Saved: posteriors.tsv")

    if args.stats:
        stats = SegmentStats(model.n_states)
        stats.gc_fraction = sequence.gc_fraction()
        stats.add_path(path.states)
        stats.write_summary(os.path.join(args.output, 'decode_summary.txt'))

    print("Done!")


def main(argv: Optional[List[str]] = None):
    args = parse_args(argv)
    try:
        run(args)
    except SeqHMMError as e:
        print(f"Error: {e}")
        sys.exit(1)


if __name__ == '__main__':
    main()
