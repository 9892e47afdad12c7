"""Shared argparse argument factories for seqhmm CLI tools.

Each function adds a group of related arguments to an ArgumentParser.
Default values can be overridden per-script where needed.
"""

import argparse
import logging
import sys

from seqhmm.core.probabilities import PRESETS


def add_input_args(parser: argparse.ArgumentParser) -> None:
    """Add -i/--input FASTA argument."""
    parser.add_argument(
        '-i', '--input', required=True,
        help="Input FASTA file (the first record is used)"
    )


def add_model_args(parser: argparse.ArgumentParser,
                   default_preset: str = 'gc-content') -> None:
    """Add starting-model arguments (--preset or --model, mutually exclusive)."""
    group = parser.add_mutually_exclusive_group()
    group.add_argument(
        '--preset', choices=sorted(PRESETS), default=default_preset,
        help=f"Named starting model (default: {default_preset})"
    )
    group.add_argument(
        '--model', '-m', default=None,
        help="Starting model file (.json or .npz); overrides --preset"
    )


def add_kmer_args(parser: argparse.ArgumentParser, default: int = 1) -> None:
    """Add symbol length arguments (-k, --overlapping)."""
    parser.add_argument(
        '-k', '--kmer-size', type=int, default=default,
        help=f"Symbol length: 1 for single residues, >1 for k-mers (default: {default})"
    )
    parser.add_argument(
        '--overlapping', action='store_true',
        help="Read k-mers as a sliding window instead of non-overlapping frames"
    )


def add_method_args(parser: argparse.ArgumentParser,
                    default: str = 'viterbi') -> None:
    """Add --method argument."""
    parser.add_argument(
        '--method', choices=['viterbi', 'baum-welch'], default=default,
        help=f"Training method (default: {default})"
    )


def add_iteration_args(parser: argparse.ArgumentParser,
                       n_iterations: int = 10,
                       threshold: float = 0.1,
                       max_iterations: int = 1000) -> None:
    """Add iteration control arguments (-n, --threshold, --max-iterations)."""
    parser.add_argument(
        '-n', '--iterations', type=int, default=n_iterations,
        help=f"Viterbi training iterations (default: {n_iterations})"
    )
    parser.add_argument(
        '--threshold', type=float, default=threshold,
        help=f"Baum-Welch convergence threshold on log2 likelihood change (default: {threshold})"
    )
    parser.add_argument(
        '--max-iterations', type=int, default=max_iterations,
        help=f"Baum-Welch iteration cap (default: {max_iterations})"
    )


def add_reestimate_args(parser: argparse.ArgumentParser) -> None:
    """Add --reestimate argument (comma-separated table names)."""
    parser.add_argument(
        '--reestimate', default=None,
        help="Tables to re-estimate, comma-separated from initiation,transition,emission "
             "(default: transition for viterbi, all for baum-welch)"
    )


def add_output_args(parser: argparse.ArgumentParser,
                    required: bool = True,
                    help_text: str = "Output directory") -> None:
    """Add -o/--output argument."""
    parser.add_argument(
        '-o', '--output', required=required,
        help=help_text
    )


def add_stats_args(parser: argparse.ArgumentParser) -> None:
    """Add --stats flag."""
    parser.add_argument(
        '--stats', action='store_true',
        help="Generate summary statistics and plots"
    )


def add_verbose_args(parser: argparse.ArgumentParser) -> None:
    """Add --verbose flag."""
    parser.add_argument(
        '-v', '--verbose', action='store_true',
        help="Verbose output"
    )


def add_version_args(parser: argparse.ArgumentParser) -> None:
    """Add --version flag."""
    from seqhmm import __version__
    parser.add_argument(
        '--version', action='version',
        version=f'%(prog)s {__version__}'
    )


def setup_logging(verbose: bool = False) -> None:
    """Plain messages to stdout; pass details only with --verbose."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format='%(message)s',
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )
