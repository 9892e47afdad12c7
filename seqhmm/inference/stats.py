"""seqhmm segment statistics and QC plotting."""

from typing import Dict, List, Optional, Sequence

import numpy as np

from seqhmm.inference.results import (
    BaumWelchIterationResult, ViterbiIterationResult, path_segments,
)


class SegmentStats:
    """Collects per-state segment statistics from decoded paths."""

    def __init__(self, n_states: int, state_names: Optional[Sequence[str]] = None):
        self.n_states = n_states
        self.state_names = list(state_names) if state_names else [
            f"State {s + 1}" for s in range(n_states)
        ]
        self.segment_lengths: Dict[int, List[int]] = {s: [] for s in range(n_states)}
        self.state_counts = np.zeros(n_states, dtype=np.int64)
        self.path_weights: List[float] = []  # base-2 log weight per Viterbi iteration
        self.log_likelihoods: List[float] = []  # base-2, one per EM iteration
        self.sequence_length = 0
        self.gc_fraction: Optional[float] = None

    def add_viterbi_result(self, result: ViterbiIterationResult):
        """
        Add one Viterbi iteration.

        Segment lengths and state counts are replaced by the latest path;
        path weights accumulate across iterations.
        """
        self.path_weights.append(result.log_weight)
        self.state_counts = result.state_counts.copy()
        self.sequence_length = int(result.state_counts.sum())
        for state in range(self.n_states):
            self.segment_lengths[state] = result.segment_lengths(state).tolist()

    def add_path(self, states: np.ndarray):
        """Add a decoded state path directly (e.g. from seqhmm-apply)."""
        states = np.asarray(states)
        self.sequence_length = len(states)
        self.state_counts = np.bincount(states, minlength=self.n_states).astype(np.int64)
        for state in range(self.n_states):
            self.segment_lengths[state] = []
        for start, end, state in path_segments(states):
            self.segment_lengths[state].append(end - start + 1)

    def add_baum_welch_results(self, results: Sequence[BaumWelchIterationResult]):
        self.log_likelihoods.extend(r.log_likelihood for r in results)

    def get_summary(self) -> dict:
        """Generate summary statistics."""
        summary = {
            'sequence_length': self.sequence_length,
            'n_states': self.n_states,
        }
        if self.gc_fraction is not None:
            summary['gc_fraction'] = self.gc_fraction

        for state in range(self.n_states):
            prefix = f'state{state + 1}'
            count = int(self.state_counts[state])
            summary[f'{prefix}_positions'] = count
            summary[f'{prefix}_fraction'] = count / self.sequence_length if self.sequence_length else 0
            lengths = self.segment_lengths[state]
            summary[f'{prefix}_segments'] = len(lengths)
            if lengths:
                summary[f'{prefix}_length_median'] = np.median(lengths)
                summary[f'{prefix}_length_mean'] = np.mean(lengths)
                summary[f'{prefix}_length_std'] = np.std(lengths)
                summary[f'{prefix}_length_min'] = np.min(lengths)
                summary[f'{prefix}_length_max'] = np.max(lengths)

        if self.path_weights:
            summary['viterbi_iterations'] = len(self.path_weights)
            summary['final_path_log2_weight'] = self.path_weights[-1]

        if self.log_likelihoods:
            summary['em_iterations'] = len(self.log_likelihoods)
            summary['final_log2_likelihood'] = self.log_likelihoods[-1]
            if len(self.log_likelihoods) > 1:
                summary['final_delta'] = self.log_likelihoods[-1] - self.log_likelihoods[-2]

        return summary

    def write_summary(self, filepath: str):
        """Write summary statistics to a text file."""
        summary = self.get_summary()

        with open(filepath, 'w') as f:
            f.write("seqhmm Segment Statistics\n")
            f.write("=" * 50 + "\n\n")

            f.write("Sequence\n")
            f.write("-" * 30 + "\n")
            f.write(f"Symbols decoded:            {summary['sequence_length']:,}\n")
            if 'gc_fraction' in summary:
                f.write(f"GC fraction:                {summary['gc_fraction']*100:.1f}%\n")
            f.write("\n")

            for state in range(self.n_states):
                prefix = f'state{state + 1}'
                f.write(f"{self.state_names[state]}\n")
                f.write("-" * 30 + "\n")
                f.write(f"Positions:                  {summary[f'{prefix}_positions']:,} "
                        f"({summary[f'{prefix}_fraction']*100:.1f}%)\n")
                f.write(f"Segments:                   {summary[f'{prefix}_segments']:,}\n")
                if f'{prefix}_length_median' in summary:
                    f.write(f"Length (median):            {summary[f'{prefix}_length_median']:.0f}\n")
                    f.write(f"Length (mean ± std):        {summary[f'{prefix}_length_mean']:.1f} ± "
                            f"{summary[f'{prefix}_length_std']:.1f}\n")
                    f.write(f"Length (range):             {summary[f'{prefix}_length_min']:.0f} - "
                            f"{summary[f'{prefix}_length_max']:.0f}\n")
                f.write("\n")

            if 'viterbi_iterations' in summary:
                f.write("Viterbi Training\n")
                f.write("-" * 30 + "\n")
                f.write(f"Iterations:                 {summary['viterbi_iterations']}\n")
                f.write(f"Final path log2 weight:     {summary['final_path_log2_weight']:.4f}\n")
                f.write("\n")

            if 'em_iterations' in summary:
                f.write("Baum-Welch Training\n")
                f.write("-" * 30 + "\n")
                f.write(f"Iterations:                 {summary['em_iterations']}\n")
                f.write(f"Final log2 likelihood:      {summary['final_log2_likelihood']:.4f}\n")
                if 'final_delta' in summary:
                    f.write(f"Final change:               {summary['final_delta']:.4g}\n")

    def plot_distributions(self, pdf_path: str):
        """Write segment-length histograms and training curves to a multi-page PDF."""
        import matplotlib
        matplotlib.use('Agg')  # Non-interactive backend
        import matplotlib.pyplot as plt
        from matplotlib.backends.backend_pdf import PdfPages

        colors = ['steelblue', 'coral', 'forestgreen', 'purple', 'gold', 'teal']

        with PdfPages(pdf_path) as pdf:
            # Page 1: segment length distribution per state
            n_cols = min(self.n_states, 2)
            n_rows = (self.n_states + n_cols - 1) // n_cols
            fig, axes = plt.subplots(n_rows, n_cols, figsize=(10, 4 * n_rows), squeeze=False)
            fig.suptitle('seqhmm Segment Statistics', fontsize=14, fontweight='bold')

            for state in range(self.n_states):
                ax = axes[state // n_cols, state % n_cols]
                lengths = self.segment_lengths[state]
                if lengths:
                    lengths = np.array(lengths)
                    ax.hist(lengths, bins=50, color=colors[state % len(colors)],
                            edgecolor='white', alpha=0.8)
                    ax.axvline(np.median(lengths), color='red', linestyle='--',
                               label=f'Median: {np.median(lengths):.0f}')
                    ax.set_xlabel('Segment Length (symbols)')
                    ax.set_ylabel('Count')
                    ax.legend()
                else:
                    ax.text(0.5, 0.5, 'No segments', ha='center', va='center',
                            transform=ax.transAxes)
                ax.set_title(f'{self.state_names[state]} Segment Lengths')

            for empty in range(self.n_states, n_rows * n_cols):
                axes[empty // n_cols, empty % n_cols].axis('off')

            plt.tight_layout()
            pdf.savefig(fig)
            plt.close(fig)

            # Page 2: training curves
            fig, axes = plt.subplots(1, 2, figsize=(10, 4), squeeze=False)
            fig.suptitle('seqhmm Training', fontsize=14, fontweight='bold')

            ax = axes[0, 0]
            if self.path_weights:
                ax.plot(range(1, len(self.path_weights) + 1), self.path_weights,
                        marker='o', color='steelblue')
                ax.set_xlabel('Iteration')
                ax.set_ylabel('log2 path weight')
            else:
                ax.text(0.5, 0.5, 'No Viterbi iterations', ha='center', va='center',
                        transform=ax.transAxes)
            ax.set_title('Viterbi Path Weight')

            ax = axes[0, 1]
            finite = [ll for ll in self.log_likelihoods if np.isfinite(ll)]
            if finite:
                ax.plot(range(1, len(self.log_likelihoods) + 1), self.log_likelihoods,
                        marker='o', color='coral')
                ax.set_xlabel('Iteration')
                ax.set_ylabel('log2 likelihood')
            else:
                ax.text(0.5, 0.5, 'No Baum-Welch iterations', ha='center', va='center',
                        transform=ax.transAxes)
            ax.set_title('Baum-Welch Log-Likelihood')

            plt.tight_layout()
            pdf.savefig(fig)
            plt.close(fig)

        print(f"QC plots saved to: {pdf_path}")
