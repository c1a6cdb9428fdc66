import itertools
import logging
from pathlib import Path
from typing import Iterator, Optional, Sequence, Tuple, Union

from ..params.definitions import ParameterKind
from ..params.translator import get_setting_from_param_file

logger = logging.getLogger(__name__)

DECOY_NAME_PREFIX = "XXX_"
DEFAULT_DECOY_PREFIXES = ("Reversed_", "XXX_", "XXX.", "REV_")
DECOY_FRACTION_THRESHOLD = 0.25
RESIDUES_PER_LINE = 60
LARGE_FASTA_BYTES = 1024**3
NO_DECOY_PARAM_FILE_SUFFIX = "_NoDecoy.txt"


def read_fasta(fasta_file: Union[str, Path]) -> Iterator[Tuple[str, str, str]]:
    """
    Iterate over the proteins of a FASTA file.

    :param fasta_file: path to the FASTA file
    :return: generator of (protein name, description, sequence) tuples
    """
    header, seq = None, []
    with open(fasta_file) as fp:
        for line in itertools.chain(fp, [">"]):
            line = line.rstrip()
            if line.startswith(">"):
                if header:
                    name, _, description = header.partition(" ")
                    yield name, description.strip(), "".join(seq)
                header, seq = line[1:].strip(), []
            elif line:
                seq.append(line)


def _write_protein(fh, name: str, description: str, sequence: str):
    fh.write(f">{name} {description}\n" if description else f">{name}\n")
    for i in range(0, len(sequence), RESIDUES_PER_LINE):
        fh.write(sequence[i : i + RESIDUES_PER_LINE] + "\n")


def generate_decoy_fasta(fasta_file: Union[str, Path], output_dir: Union[str, Path]) -> Path:
    """
    Write a FASTA file with every protein followed by its reversed decoy.

    Decoy proteins are named like the forward protein, prefixed with XXX_.

    :param fasta_file: FASTA file with forward proteins
    :param output_dir: directory to create <stem>_decoy.fasta in
    :raises FileNotFoundError: if the FASTA file does not exist
    :return: path to the decoy FASTA file
    """
    fasta_file = Path(fasta_file)
    if not fasta_file.is_file():
        raise FileNotFoundError(f"FASTA file not found: {fasta_file}")

    decoy_fasta_file = Path(output_dir) / f"{fasta_file.stem}_decoy.fasta"
    logger.info(f"Creating decoy FASTA file at {decoy_fasta_file}")

    with open(decoy_fasta_file, "w") as fh:
        for name, description, sequence in read_fasta(fasta_file):
            _write_protein(fh, name, description, sequence)
            _write_protein(fh, DECOY_NAME_PREFIX + name, description, sequence[::-1])

    return decoy_fasta_file


def create_trimmed_fasta(fasta_file: Union[str, Path], max_size_mb: int) -> Path:
    """
    Create a copy of a FASTA file holding only its leading proteins, up to roughly max_size_mb.

    Whole proteins are copied until the bytes written exceed the limit, counting two bytes
    of line terminator per line. An existing trimmed file is reused.

    :param fasta_file: FASTA file to trim
    :param max_size_mb: maximum size of the trimmed file, in MB
    :return: path to <stem>_Trim<N>MB.fasta next to the source file
    """
    fasta_file = Path(fasta_file)
    trimmed_fasta_file = fasta_file.parent / f"{fasta_file.stem}_Trim{max_size_mb}MB.fasta"

    if trimmed_fasta_file.is_file():
        logger.info(f"Using existing trimmed FASTA: {trimmed_fasta_file.name}")
        return trimmed_fasta_file

    logger.info(f"Creating trimmed FASTA: {trimmed_fasta_file.name}")
    max_size_bytes = max_size_mb * 1024 * 1024
    bytes_written = 0
    protein_count = 0

    with open(fasta_file) as source, open(trimmed_fasta_file, "w") as target:
        for line in source:
            line = line.rstrip("\r\n")
            if not line.strip():
                continue
            if line.startswith(">"):
                if bytes_written > max_size_bytes:
                    break
                protein_count += 1
            target.write(line + "\n")
            bytes_written += len(line) + 2

    logger.info(f"Trimmed FASTA created using {protein_count} proteins")
    return trimmed_fasta_file


def decoy_fraction(fasta_file: Union[str, Path], prefix: Union[str, Sequence[str]]) -> float:
    """Fraction of the proteins in a FASTA file whose names start with the given (case-sensitive) prefix."""
    prefixes = (prefix,) if isinstance(prefix, str) else tuple(prefix)
    prefixes = tuple(f">{p}" for p in prefixes)

    forward_count = decoy_count = 0
    with open(fasta_file) as fp:
        for line in fp:
            if not line.startswith(">"):
                continue
            if line.startswith(prefixes):
                decoy_count += 1
            else:
                forward_count += 1

    protein_count = forward_count + decoy_count
    if protein_count == 0:
        return 0.0
    return decoy_count / protein_count


def _options_not_defined(protein_options: Optional[str]) -> bool:
    return not protein_options or protein_options.strip().lower() == "na"


def fasta_is_decoy(
    fasta_file: Union[str, Path], protein_options: Optional[str] = None, param_file: Union[str, Path, None] = None
) -> bool:
    """
    Decide whether MS-GF+ should treat a FASTA file as already holding decoy proteins.

    Without protein options, the file counts as decoy if at least a quarter of its proteins
    carry one of the default decoy prefixes; otherwise the protein options must request
    seq_direction=decoy. A forward-only search (TDA=0) on a FASTA file larger than 1 GB,
    or with a _NoDecoy.txt parameter file, is also treated as decoy so that no reverse
    indices get created.

    :param fasta_file: FASTA file to examine
    :param protein_options: protein options of the job, e.g. "seq_direction=decoy,filetype=fasta"
    :param param_file: MS-GF+ parameter file, used to look up the TDA setting
    :raises FileNotFoundError: if the FASTA file does not exist
    :raises ValueError: if the TDA setting of the parameter file is not numeric
    :return: True if the FASTA file is to be handled as a decoy FASTA
    """
    fasta_file = Path(fasta_file)
    if not fasta_file.is_file():
        raise FileNotFoundError(f"FASTA file not found: {fasta_file}")

    is_decoy = False
    if _options_not_defined(protein_options):
        for prefix in DEFAULT_DECOY_PREFIXES:
            if decoy_fraction(fasta_file, prefix) >= DECOY_FRACTION_THRESHOLD:
                is_decoy = True
                break
    elif "seq_direction=decoy" in protein_options.lower():
        is_decoy = True

    if not param_file:
        return is_decoy

    tda_setting = get_setting_from_param_file(param_file, ParameterKind.TDA.value)
    if not tda_setting.strip().isdigit():
        raise ValueError(f"TDA value is not numeric: {tda_setting}")

    if int(tda_setting) == 0:
        if not is_decoy and fasta_file.stat().st_size > LARGE_FASTA_BYTES:
            logger.info("Processing large FASTA file with forward-only search; auto switching to -tda 0")
            is_decoy = True
        elif str(param_file).lower().endswith(NO_DECOY_PARAM_FILE_SUFFIX.lower()):
            logger.info("Using NoDecoy parameter file with TDA=0; auto switching to -tda 0")
            is_decoy = True

    return is_decoy
