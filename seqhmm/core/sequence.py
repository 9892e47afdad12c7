"""
Symbol alphabets and the sequence provider.

A model emits symbols from an Alphabet: single residues (k=1) or
fixed-length k-mers. SymbolSequence wraps a residue string (usually the
first record of a FASTA file, read with pysam) and tokenizes it into the
symbols the trellis is built over.
"""

import os
from collections import Counter
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional, Sequence, Tuple

import pysam

from seqhmm.core.errors import ConfigurationError, UnknownSymbolError


DNA_BASES = ('A', 'C', 'G', 'T')

# Reverse complement lookup
_RC_TABLE = str.maketrans('ACGTN', 'TGCAN')


def reverse_complement(seq: str) -> str:
    """Return reverse complement of a DNA sequence."""
    return seq.translate(_RC_TABLE)[::-1]


# =============================================================================
# Alphabet
# =============================================================================

class Alphabet:
    """
    Ordered set of equal-length emission symbols.

    The index of a symbol is its column in the emission table.
    """

    def __init__(self, symbols: Sequence[str]):
        symbols = tuple(str(s).upper() for s in symbols)
        if not symbols:
            raise ConfigurationError("An alphabet needs at least one symbol")
        lengths = {len(s) for s in symbols}
        if len(lengths) != 1 or 0 in lengths:
            raise ConfigurationError(
                f"Alphabet symbols must be non-empty and of equal length, got {symbols}"
            )
        if len(set(symbols)) != len(symbols):
            raise ConfigurationError(f"Alphabet symbols must be unique, got {symbols}")

        self.symbols: Tuple[str, ...] = symbols
        self.k: int = lengths.pop()
        self._index: Dict[str, int] = {s: i for i, s in enumerate(symbols)}

    @classmethod
    def dna(cls, k: int = 1) -> 'Alphabet':
        """All 4**k k-mers over ACGT in lexicographic order."""
        if k < 1:
            raise ConfigurationError(f"k-mer length must be >= 1, got {k}")

        def gen_kmers(n):
            if n == 0:
                return ['']
            return [s + b for s in gen_kmers(n - 1) for b in DNA_BASES]

        return cls(gen_kmers(k))

    def index(self, symbol: str) -> int:
        """Column of symbol in the emission table."""
        try:
            return self._index[symbol]
        except KeyError:
            raise UnknownSymbolError(symbol) from None

    def __contains__(self, symbol: str) -> bool:
        return symbol in self._index

    def __len__(self) -> int:
        return len(self.symbols)

    def __iter__(self) -> Iterator[str]:
        return iter(self.symbols)

    def __eq__(self, other) -> bool:
        return isinstance(other, Alphabet) and self.symbols == other.symbols

    def __hash__(self) -> int:
        return hash(self.symbols)

    def __repr__(self) -> str:
        if len(self.symbols) <= 8:
            return f"Alphabet({list(self.symbols)})"
        return f"Alphabet(k={self.k}, size={len(self.symbols)})"

    def tokenize(self, residues: str, overlapping: bool = False) -> List[str]:
        """
        Split a residue string into alphabet symbols.

        Args:
            residues: Residue string (already upper-cased)
            overlapping: If True, return every k-mer of the sliding window;
                otherwise non-overlapping k-mers read in frame 0 (a trailing
                partial k-mer is dropped)
        """
        return tokenize(residues, self.k, overlapping)


def tokenize(residues: str, k: int = 1, overlapping: bool = False) -> List[str]:
    """Split residues into k-mers (see Alphabet.tokenize)."""
    if k == 1:
        return list(residues)
    if overlapping:
        return [residues[i:i + k] for i in range(len(residues) - k + 1)]
    return [residues[i:i + k] for i in range(0, len(residues) - k + 1, k)]


# =============================================================================
# Sequence provider
# =============================================================================

@dataclass
class SymbolSequence:
    """A residue sequence and the symbols a model reads from it."""
    residues: str
    name: str = 'sequence'
    description: str = ''
    k: int = 1
    overlapping: bool = False
    _symbols: Optional[List[str]] = field(default=None, init=False, repr=False, compare=False)

    def __post_init__(self):
        self.residues = self.residues.upper()
        if self.k < 1:
            raise ConfigurationError(f"k-mer length must be >= 1, got {self.k}")

    @classmethod
    def from_fasta(cls, filepath: str, k: int = 1,
                   overlapping: bool = False) -> 'SymbolSequence':
        """
        Read the first record of a FASTA file.

        Args:
            filepath: Path to a FASTA file (optionally gzipped)
            k: Symbol length the model reads
            overlapping: Tokenize as a sliding window of k-mers

        Returns:
            SymbolSequence for the first record
        """
        if not os.path.exists(filepath):
            raise ConfigurationError(f"FASTA file not found: {filepath}")
        if os.path.getsize(filepath) == 0:
            raise ConfigurationError(f"No FASTA records found in {filepath}")
        with pysam.FastxFile(filepath) as fasta:
            for entry in fasta:
                return cls(
                    residues=entry.sequence or '',
                    name=entry.name,
                    description=entry.comment or '',
                    k=k,
                    overlapping=overlapping,
                )
        raise ConfigurationError(f"No FASTA records found in {filepath}")

    @property
    def first_line(self) -> str:
        """The FASTA header line without the leading '>'."""
        if self.description:
            return f"{self.name} {self.description}"
        return self.name

    @property
    def symbols(self) -> List[str]:
        if self._symbols is None:
            self._symbols = tokenize(self.residues, self.k, self.overlapping)
        return self._symbols

    def __len__(self) -> int:
        return len(self.symbols)

    def __iter__(self) -> Iterator[str]:
        return iter(self.symbols)

    def __getitem__(self, offset: int) -> str:
        return self.symbols[offset]

    def base_counts(self) -> Dict[str, int]:
        """Counts of A, C, G, T and everything else ('other')."""
        counts = Counter(self.residues)
        result = {base: counts.get(base, 0) for base in DNA_BASES}
        result['other'] = len(self.residues) - sum(result.values())
        return result

    def gc_fraction(self) -> float:
        """Fraction of residues that are G or C."""
        if not self.residues:
            return 0.0
        counts = self.base_counts()
        return (counts['G'] + counts['C']) / len(self.residues)

    def reverse_complement(self) -> 'SymbolSequence':
        """The reverse-complement strand, tokenized the same way."""
        return SymbolSequence(
            residues=reverse_complement(self.residues),
            name=f"{self.name}_rc",
            description=self.description,
            k=self.k,
            overlapping=self.overlapping,
        )
