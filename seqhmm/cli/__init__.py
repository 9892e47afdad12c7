"""Command line drivers: seqhmm-train and seqhmm-apply."""
