#!/usr/bin/env python3
"""
seqhmm-train
Train an HMM on the first record of a FASTA file.

Methods:
- viterbi (default): hard re-estimation from the decoded path, -n iterations
- baum-welch: forward-backward EM until the log2 likelihood settles

Outputs (in --output):
- final-model.json: trained model
- iterations.tsv: one row per training iteration
- segments.tsv: segments of the final decoded path
- results.xml: per-iteration result blocks
- all-scores.txt: base-2 Viterbi weight of every node of the final decode
- run_config.json: the arguments of this run
- with --stats: training_summary.txt and plots/training_stats.pdf
"""

import argparse
import json
import os
import sys
from typing import List, Optional

import pandas as pd

from seqhmm.cli.common import (
    add_input_args, add_iteration_args, add_kmer_args, add_method_args,
    add_model_args, add_output_args, add_reestimate_args, add_stats_args,
    add_verbose_args, add_version_args, setup_logging,
)
from seqhmm.core.errors import ConfigurationError, SeqHMMError
from seqhmm.core.model_io import load_model, save_model
from seqhmm.core.probabilities import ProbabilityModel
from seqhmm.core.sequence import SymbolSequence
from seqhmm.inference.report import all_scores_result, training_report
from seqhmm.inference.results import (
    BAUM_WELCH_POLICY, VITERBI_POLICY, BaumWelchIterationResult,
    ReestimationPolicy, ViterbiIterationResult, path_segments,
)
from seqhmm.inference.stats import SegmentStats
from seqhmm.inference.training import HiddenMarkovModel


def parse_args(argv: Optional[List[str]] = None):
    parser = argparse.ArgumentParser(
        description='Train a seqhmm model on a FASTA sequence',
        formatter_class=argparse.ArgumentDefaultsHelpFormatter
    )
    add_input_args(parser)
    add_output_args(parser)
    add_method_args(parser)
    add_model_args(parser)
    add_kmer_args(parser)
    add_iteration_args(parser)
    add_reestimate_args(parser)
    add_stats_args(parser)
    add_verbose_args(parser)
    add_version_args(parser)
    return parser.parse_args(argv)


def load_starting_model(args) -> ProbabilityModel:
    """The --model file if given, else the --preset."""
    if args.model:
        model = load_model(args.model)
    else:
        model = ProbabilityModel.from_preset(args.preset)
    if model.alphabet.k != args.kmer_size:
        raise ConfigurationError(
            f"Model reads {model.alphabet.k}-mers but -k {args.kmer_size} was given"
        )
    return model


def resolve_policy(args) -> ReestimationPolicy:
    if args.reestimate:
        return ReestimationPolicy.from_names(args.reestimate.split(','))
    return VITERBI_POLICY if args.method == 'viterbi' else BAUM_WELCH_POLICY


def iterations_frame(results) -> pd.DataFrame:
    """One row per iteration (columns depend on the training method)."""
    rows = []
    for result in results:
        if isinstance(result, ViterbiIterationResult):
            row = {'iteration': result.iteration, 'log2_path_weight': result.log_weight}
            for state in range(result.n_states):
                row[f'state{state + 1}_positions'] = int(result.state_counts[state])
                row[f'state{state + 1}_segments'] = int(result.segment_counts[state])
        else:
            row = {'iteration': result.iteration,
                   'log2_likelihood': result.log_likelihood,
                   'delta': result.delta}
            for state in range(result.n_states):
                row[f'state{state + 1}_expected'] = float(result.expected_state_counts[state])
        rows.append(row)
    return pd.DataFrame(rows)


def segments_frame(states) -> pd.DataFrame:
    segments = path_segments(states)
    return pd.DataFrame({
        'start': [s[0] for s in segments],
        'end': [s[1] for s in segments],
        'state': [s[2] + 1 for s in segments],
        'length': [s[1] - s[0] + 1 for s in segments],
    }, columns=['start', 'end', 'state', 'length'])


def run(args) -> None:
    setup_logging(args.verbose)

    print("seqhmm Model Training")
    print(f"  Input: {args.input}")
    print(f"  Method: {args.method}")
    print(f"  Starting model: {args.model or 'preset ' + args.preset}")
    print(f"  Symbols: k={args.kmer_size}{' (overlapping)' if args.overlapping else ''}")

    sequence = SymbolSequence.from_fasta(args.input, k=args.kmer_size,
                                         overlapping=args.overlapping)
    print(f"  Sequence: {sequence.first_line} ({len(sequence):,} symbols)")

    model = load_starting_model(args)
    policy = resolve_policy(args)
    print(f"  Re-estimating: {', '.join(policy.names) or 'nothing'}")

    os.makedirs(args.output, exist_ok=True)

    hmm = HiddenMarkovModel(sequence, model, verbose=args.verbose)
    if args.method == 'viterbi':
        print(f"\nViterbi training ({args.iterations} iterations)...")
        results = hmm.viterbi_training(args.iterations, policy=policy)
        path = hmm.last_path
    else:
        print(f"\nBaum-Welch training (threshold {args.threshold}, "
              f"cap {args.max_iterations})...")
        results = hmm.baum_welch_training(threshold=args.threshold,
                                          max_iterations=args.max_iterations,
                                          policy=policy)
        path = hmm.decode()
        print(f"  Converged after {len(results)} iterations, "
              f"log2 likelihood {results[-1].log_likelihood:.4f}")

    print(f"\nSaving to {args.output}")
    save_model(
        hmm.probabilities,
        os.path.join(args.output, 'final-model.json'),
        metadata={'method': args.method, 'iterations': len(results),
                  'input': os.path.basename(args.input)},
    )
    print("  Saved: final-model.json")

    iterations_frame(results).to_csv(os.path.join(args.output, 'iterations.tsv'),
                                     sep='\t', index=False)
    segments_frame(path.states).to_csv(os.path.join(args.output, 'segments.tsv'),
                                       sep='\t', index=False)
    with open(os.path.join(args.output, 'results.xml'), 'w') as f:
        f.write(training_report(sequence, results, os.path.basename(args.input)))
    with open(os.path.join(args.output, 'all-scores.txt'), 'w') as f:
        f.write(all_scores_result(hmm.all_scores()))
    print("  Saved: iterations.tsv, segments.tsv, results.xml, all-scores.txt")

    config = {
        'input': args.input,
        'method': args.method,
        'model': args.model,
        'preset': None if args.model else args.preset,
        'kmer_size': args.kmer_size,
        'overlapping': args.overlapping,
        'iterations': args.iterations,
        'threshold': args.threshold,
        'max_iterations': args.max_iterations,
        'reestimate': policy.names,
    }
    with open(os.path.join(args.output, 'run_config.json'), 'w') as f:
        json.dump(config, f, indent=2)

    if args.stats:
        print("\nGenerating training statistics...")
        stats = SegmentStats(hmm.probabilities.n_states)
        stats.gc_fraction = sequence.gc_fraction()
        viterbi = [r for r in results if isinstance(r, ViterbiIterationResult)]
        for result in viterbi:
            stats.add_viterbi_result(result)
        if not viterbi:
            stats.add_path(path.states)
        stats.add_baum_welch_results(
            [r for r in results if isinstance(r, BaumWelchIterationResult)]
        )
        stats.write_summary(os.path.join(args.output, 'training_summary.txt'))
        plot_dir = os.path.join(args.output, 'plots')
        os.makedirs(plot_dir, exist_ok=True)
        stats.plot_distributions(os.path.join(plot_dir, 'training_stats.pdf'))

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
