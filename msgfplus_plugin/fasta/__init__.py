"""Init fasta."""

from .fasta_tools import (
    DEFAULT_DECOY_PREFIXES,
    create_trimmed_fasta,
    decoy_fraction,
    fasta_is_decoy,
    generate_decoy_fasta,
    read_fasta,
)
