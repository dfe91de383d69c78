"""
Sequence file parsing and alignment handling.

An alignment is an ordered list of :class:`Site` objects. A site maps each
taxon to the raw character observed for it; an :class:`Ambiguous` table
turns a raw character into the set of model states it may stand for.
"""

import re
from collections import Counter
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Iterable, Iterator, Mapping, Optional

from ..exceptions import AlignmentException


# Nucleotide order used by the DNA models (PAML order)
NUCLEOTIDES = ('T', 'C', 'A', 'G')

# IUPAC ambiguity codes
IUPAC_DNA = {
    'R': {'A', 'G'},
    'Y': {'C', 'T'},
    'S': {'G', 'C'},
    'W': {'A', 'T'},
    'K': {'G', 'T'},
    'M': {'A', 'C'},
    'B': {'C', 'G', 'T'},
    'D': {'A', 'G', 'T'},
    'H': {'A', 'C', 'T'},
    'V': {'A', 'C', 'G'},
    'N': {'A', 'C', 'G', 'T'},
    '-': {'A', 'C', 'G', 'T'},
    '?': {'A', 'C', 'G', 'T'},
    'U': {'T'},
}


class Ambiguous:
    """
    Mapping from raw characters to the sets of states they represent.

    Characters without an entry represent themselves.
    """

    def __init__(self, table: Optional[Mapping[str, Iterable[str]]] = None):
        self._table = {k: frozenset(v) for k, v in (table or {}).items()}

    @classmethod
    def iupac_dna(cls) -> "Ambiguous":
        return cls(IUPAC_DNA)

    @classmethod
    def from_file(cls, filepath: Path | str) -> "Ambiguous":
        """
        Read a tab separated table: code followed by the states it represents.
        """
        table = {}
        with open(filepath, 'r') as f:
            for line in f:
                parts = line.rstrip('\n').split('\t')
                if parts and parts[0]:
                    table[parts[0]] = parts[1:]
        return cls(table)

    def possible(self, character: str) -> frozenset[str]:
        return self._table.get(character, frozenset((character,)))

    def __eq__(self, other) -> bool:
        return isinstance(other, Ambiguous) and self._table == other._table

    def __hash__(self) -> int:
        return hash(frozenset(self._table.items()))

    def __repr__(self) -> str:
        return f"Ambiguous({dict(self._table)})"


_NO_AMBIGUITY = Ambiguous()


class Site:
    """
    One alignment column.

    Parameters
    ----------
    characters : Mapping[str, str]
        Raw character for each taxon
    site_class : Optional[str]
        Site class label (selects the model used for the site)
    ambiguous : Optional[Ambiguous]
        Table expanding raw characters into candidate states
    site_id : Optional[str]
        Free-form identifier, not part of equality

    Sites compare equal when their characters and site class match, so they
    can be used as dictionary keys for unique-site compression.
    """

    __slots__ = ('_characters', 'site_class', 'ambiguous', 'site_id', '_key')

    def __init__(
        self,
        characters: Mapping[str, str],
        site_class: Optional[str] = None,
        ambiguous: Optional[Ambiguous] = None,
        site_id: Optional[str] = None,
    ):
        self._characters = MappingProxyType(dict(characters))
        self.site_class = site_class
        self.ambiguous = ambiguous if ambiguous is not None else _NO_AMBIGUITY
        self.site_id = site_id
        self._key = (tuple(sorted(self._characters.items())), site_class)

    @property
    def taxa(self) -> list[str]:
        return list(self._characters)

    @property
    def characters(self) -> Mapping[str, str]:
        return self._characters

    def raw_character(self, taxon: str) -> str:
        try:
            return self._characters[taxon]
        except KeyError:
            raise AlignmentException(f"No such taxon: {taxon}") from None

    def character(self, taxon: str) -> frozenset[str]:
        """Set of states the taxon's character may represent."""
        return self.ambiguous.possible(self.raw_character(taxon))

    def recode(self, mapping: Mapping[str, str], ambiguous: Optional[Ambiguous] = None) -> "Site":
        """Replace characters found in ``mapping``; others are kept."""
        return Site(
            {t: mapping.get(c, c) for t, c in self._characters.items()},
            self.site_class,
            ambiguous if ambiguous is not None else self.ambiguous,
            self.site_id,
        )

    def limit_to_taxa(self, taxa: Iterable[str]) -> "Site":
        keep = set(taxa)
        return Site(
            {t: c for t, c in self._characters.items() if t in keep},
            self.site_class,
            self.ambiguous,
            self.site_id,
        )

    def __len__(self) -> int:
        return len(self._characters)

    def __eq__(self, other) -> bool:
        return isinstance(other, Site) and self._key == other._key

    def __hash__(self) -> int:
        return hash(self._key)

    def __str__(self) -> str:
        return " ".join(self._characters.values())

    def __repr__(self) -> str:
        cls = f", site_class={self.site_class!r}" if self.site_class is not None else ""
        return f"Site({dict(self._characters)}{cls})"


class UniqueSite(Site):
    """A site pattern together with the number of times it occurs."""

    __slots__ = ('count',)

    def __init__(self, site: Site, count: int):
        super().__init__(site.characters, site.site_class, site.ambiguous, site.site_id)
        self.count = count

    def __str__(self) -> str:
        return f"{super().__str__()}\t{self.count}"


@dataclass
class Alignment:
    """
    Multiple sequence alignment as an ordered list of sites.

    Attributes
    ----------
    sites : list[Site]
        Alignment columns; all share the same taxa

    Raises
    ------
    AlignmentException
        If sites have different taxa, or only some sites carry a class
    """

    sites: list[Site]
    _unique: Optional[list[UniqueSite]] = field(default=None, init=False, repr=False, compare=False)

    def __post_init__(self):
        self.sites = list(self.sites)
        if not self.sites:
            raise AlignmentException("Alignment contains no sites")
        taxa = set(self.sites[0].taxa)
        has_classes = self.sites[0].site_class is not None
        for s in self.sites:
            if set(s.taxa) != taxa:
                raise AlignmentException("Sites have different taxa")
            if has_classes != (s.site_class is not None):
                raise AlignmentException("Some sites have a class, some don't")

    @classmethod
    def from_sequences(
        cls,
        sequences: Mapping[str, str],
        ambiguous: Optional[Ambiguous] = None,
        site_classes: Optional[list[str]] = None,
    ) -> "Alignment":
        """
        Build an alignment from equal-length sequences, one character per site.

        Examples
        --------
        >>> aln = Alignment.from_sequences({"A": "ACGT", "B": "ACGA"})
        >>> aln.n_sites
        4
        """
        names = list(sequences)
        if not names:
            raise AlignmentException("No sequences given")
        lengths = {len(s) for s in sequences.values()}
        if len(lengths) > 1:
            raise AlignmentException(f"Sequences have different lengths: {lengths}")
        n_sites = lengths.pop()
        if site_classes is not None and len(site_classes) != n_sites:
            raise AlignmentException(
                f"Got {len(site_classes)} site classes for {n_sites} sites"
            )
        sites = [
            Site(
                {name: sequences[name][i] for name in names},
                site_classes[i] if site_classes is not None else None,
                ambiguous,
            )
            for i in range(n_sites)
        ]
        return cls(sites)

    @classmethod
    def from_phylip(cls, filepath: Path | str, ambiguous: Optional[Ambiguous] = None) -> "Alignment":
        """
        Parse PHYLIP format alignment file.

        Handles PAML-style sequential PHYLIP where the first line holds the
        number of sequences and the sequence length, and each sequence
        starts with its name, either on its own line or followed by the
        sequence on the same line.

        Parameters
        ----------
        filepath : Path or str
            Path to PHYLIP format file
        ambiguous : Ambiguous, optional
            Ambiguity table attached to every site

        Returns
        -------
        Alignment
            Parsed alignment
        """
        filepath = Path(filepath)

        with open(filepath, 'r') as f:
            lines = [line.rstrip() for line in f.readlines()]

        header = lines[0].strip().split()
        n_species = int(header[0])
        n_chars = int(header[1])

        names = []
        sequences_raw = []

        i = 1
        while i < len(lines) and len(names) < n_species:
            line = lines[i].strip()
            i += 1

            if not line:
                continue

            parts = line.split(None, 1)
            names.append(parts[0])
            seq_data = re.sub(r'\s', '', parts[1]).upper() if len(parts) > 1 else ""

            while len(seq_data) < n_chars and i < len(lines):
                line = lines[i].strip()
                i += 1
                if line:
                    seq_data += re.sub(r'\s', '', line).upper()

            sequences_raw.append(seq_data)

        if len(names) != n_species:
            raise AlignmentException(f"Expected {n_species} sequences, found {len(names)}")

        for name, seq in zip(names, sequences_raw):
            if len(seq) != n_chars:
                raise AlignmentException(
                    f"Sequence {name} has length {len(seq)}, expected {n_chars}"
                )

        return cls.from_sequences(dict(zip(names, sequences_raw)), ambiguous)

    @classmethod
    def from_fasta(cls, filepath: Path | str, ambiguous: Optional[Ambiguous] = None) -> "Alignment":
        """
        Parse FASTA format alignment file.

        Parameters
        ----------
        filepath : Path or str
            Path to FASTA format file
        ambiguous : Ambiguous, optional
            Ambiguity table attached to every site

        Returns
        -------
        Alignment
            Parsed alignment
        """
        filepath = Path(filepath)

        names = []
        sequences_raw = []

        with open(filepath, 'r') as f:
            current_name = None
            current_seq = []

            for line in f:
                line = line.strip()

                if not line:
                    continue

                if line.startswith('>'):
                    if current_name is not None:
                        names.append(current_name)
                        sequences_raw.append(''.join(current_seq))

                    current_name = line[1:].split()[0] if line[1:].strip() else ""
                    current_seq = []
                else:
                    current_seq.append(line.upper())

            if current_name is not None:
                names.append(current_name)
                sequences_raw.append(''.join(current_seq))

        if not names:
            raise AlignmentException("No sequences found in FASTA file")

        sequences_clean = [re.sub(r'\s', '', seq) for seq in sequences_raw]
        return cls.from_sequences(dict(zip(names, sequences_clean)), ambiguous)

    @property
    def taxa(self) -> list[str]:
        return self.sites[0].taxa

    @property
    def n_species(self) -> int:
        return len(self.taxa)

    @property
    def n_sites(self) -> int:
        return len(self.sites)

    @property
    def has_classes(self) -> bool:
        return self.sites[0].site_class is not None

    def unique_sites(self) -> list[UniqueSite]:
        """Distinct site patterns with multiplicities, in order of first occurrence."""
        if self._unique is None:
            counts = Counter(self.sites)
            self._unique = [UniqueSite(s, n) for s, n in counts.items()]
        return self._unique

    def site_classes(self) -> list[Optional[str]]:
        return [s.site_class for s in self.sites]

    def class_size(self, site_class: Optional[str]) -> int:
        return sum(1 for s in self.sites if s.site_class == site_class)

    def check(self, mapping: Mapping) -> bool:
        """True if every site class used in the alignment is a key of ``mapping``."""
        return all(c in mapping for c in set(self.site_classes()))

    def recode(self, mapping: Mapping[str, str], ambiguous: Optional[Ambiguous] = None) -> "Alignment":
        return Alignment([s.recode(mapping, ambiguous) for s in self.sites])

    def limit_to_taxa(self, taxa: Iterable[str]) -> "Alignment":
        taxa = list(taxa)
        return Alignment([s.limit_to_taxa(taxa) for s in self.sites])

    def raw_frequency(self, character: str) -> float:
        """Fraction of all cells holding ``character``."""
        hits = sum(
            1 for s in self.sites for c in s.characters.values() if c == character
        )
        return hits / (self.n_sites * self.n_species)

    def sequence(self, taxon: str) -> str:
        return ''.join(s.raw_character(taxon) for s in self.sites)

    def to_phylip(self, filepath: Path | str) -> None:
        """
        Write alignment to sequential PHYLIP format file.

        Parameters
        ----------
        filepath : Path or str
            Output file path
        """
        filepath = Path(filepath)

        with open(filepath, 'w') as f:
            f.write(f" {self.n_species}   {self.n_sites}\n\n")

            for name in self.taxa:
                f.write(f"{name}\n")
                seq = self.sequence(name)
                for i in range(0, len(seq), 60):
                    f.write(seq[i:i+60] + '\n')
                f.write('\n')

    def format_fasta(self) -> str:
        """FASTA text of the alignment, 60 characters per line."""
        lines = []
        for name in self.taxa:
            lines.append(f">{name}")
            seq = self.sequence(name)
            lines.extend(seq[i:i+60] for i in range(0, len(seq), 60))
        return '\n'.join(lines) + '\n'

    def to_fasta(self, filepath: Path | str) -> None:
        """
        Write alignment to FASTA format file.

        Parameters
        ----------
        filepath : Path or str
            Output file path
        """
        with open(Path(filepath), 'w') as f:
            f.write(self.format_fasta())

    def __iter__(self) -> Iterator[Site]:
        return iter(self.sites)

    def __len__(self) -> int:
        return len(self.sites)

    def __getitem__(self, i: int) -> Site:
        return self.sites[i]

    def __repr__(self) -> str:
        return f"Alignment(n_species={self.n_species}, n_sites={self.n_sites})"
