import logging
import shlex
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Union

import pandas as pd

logger = logging.getLogger(__name__)

MZID_TO_TSV_CONSOLE_OUTPUT_FILE = "MzIDToTsv_ConsoleOutput.txt"
MZID_CLOSING_TAG = "</MzIdentML>"
PROTEIN_NAME_NO_MATCH = "__NoMatch__"
SEPARATOR_LINE = "-" * 80
MAX_UNMATCHED_PEPTIDES_TO_REPORT = 5


@dataclass
class PeptideMapValidation:
    """Outcome of checking a peptide to protein map file for unmatched peptides."""

    success: bool
    peptide_count: int = 0
    no_match_count: int = 0
    error_message: str = ""
    unmatched_peptides: List[str] = field(default_factory=list)

    @property
    def error_percent(self) -> float:
        if self.peptide_count == 0:
            return 0.0
        return self.no_match_count / self.peptide_count * 100


def append_console_output_header(
    work_dir: Union[str, Path], source_file: str, target_file: str, header_lines: int
) -> bool:
    """
    Append the first lines of a companion tool's console output to the MS-GF+ console output.

    Empty lines are skipped; a dashed separator line is written before the first appended line.

    :param work_dir: directory holding both files
    :param source_file: name of the file to copy lines from
    :param target_file: name of the file to append to
    :param header_lines: number of leading lines of the source file to consider
    :return: whether lines could be appended
    """
    source_path = Path(work_dir) / source_file
    target_path = Path(work_dir) / target_file

    if not source_path.is_file():
        logger.warning(f"Source file not found when appending the console output header: {source_path}")
        return False
    if not target_path.is_file():
        logger.warning(f"Target file not found when appending the console output header: {target_path}")
        return False

    with open(source_path, encoding="utf-8", errors="replace") as fh:
        lines = [line.rstrip("\r\n") for _, line in zip(range(header_lines), fh)]
    lines = [line for line in lines if line]

    if lines:
        with open(target_path, "a", encoding="utf-8") as fh:
            fh.write(SEPARATOR_LINE + "\n")
            for line in lines:
                fh.write(line + "\n")

    return True


def mzid_has_closing_tag(mzid_file: Union[str, Path]) -> bool:
    """Check whether the last non-empty line of an .mzid file ends with the MzIdentML closing tag."""
    last_line = ""
    with open(mzid_file, encoding="utf-8", errors="replace") as fh:
        for line in fh:
            if line.strip():
                last_line = line
    return last_line.strip().lower().endswith(MZID_CLOSING_TAG.lower())


def get_mzid_to_tsv_command_line(mzid_file_name: str, tsv_file_name: str, work_dir: Union[str, Path]) -> str:
    """
    Build the arguments for converting an .mzid file to a .tsv file with MzidToTsvConverter.

    :param mzid_file_name: name of the .mzid file in the working directory
    :param tsv_file_name: name of the .tsv file to create in the working directory
    :param work_dir: working directory
    :return: argument string
    """
    mzid_path = shlex.quote(str(Path(work_dir) / mzid_file_name))
    tsv_path = shlex.quote(str(Path(work_dir) / tsv_file_name))
    return f"-mzid:{mzid_path} -tsv:{tsv_path} -unroll -showDecoy"


def validate_peptide_to_protein_map(
    pep_to_prot_map_file: Union[str, Path], ignore_errors: bool = False
) -> PeptideMapValidation:
    """
    Verify that every peptide in a peptide to protein map file matched a protein.

    :param pep_to_prot_map_file: tab-delimited map file with a header line
    :param ignore_errors: report unmatched peptides as a warning and succeed anyway
    :return: validation outcome
    """
    pep_to_prot_map_file = Path(pep_to_prot_map_file)
    logger.info(f"Validating peptide to protein mapping, file {pep_to_prot_map_file.name}")

    try:
        df = pd.read_csv(pep_to_prot_map_file, sep="\t", dtype=str, keep_default_na=False)
    except pd.errors.EmptyDataError:
        df = pd.DataFrame()

    if df.empty:
        message = "Peptide to protein mapping file is empty"
        logger.error(f"{message}, file {pep_to_prot_map_file.name}")
        return PeptideMapValidation(success=False, error_message=message)

    no_match = df.apply(lambda column: column.str.contains(PROTEIN_NAME_NO_MATCH, regex=False)).any(axis=1)
    validation = PeptideMapValidation(success=True, peptide_count=len(df), no_match_count=int(no_match.sum()))

    if validation.no_match_count == 0:
        logger.info(f"Peptide to protein mapping validation complete; processed {validation.peptide_count} peptides")
        return validation

    validation.unmatched_peptides = [
        "\t".join(row) for row in df[no_match].head(MAX_UNMATCHED_PEPTIDES_TO_REPORT).itertuples(index=False)
    ]
    validation.error_message = (
        f"{validation.error_percent:.1f}% of the entries in the peptide to protein map file did not match to a "
        f"protein in the FASTA file ({validation.no_match_count:,} / {validation.peptide_count:,})"
    )

    if ignore_errors:
        logger.warning(validation.error_message)
        logger.warning("Ignoring protein mapping error since 'IgnorePeptideToProteinMapError' is true")
    else:
        logger.error(validation.error_message)
        logger.warning("To ignore this error, create job parameter 'IgnorePeptideToProteinMapError' with value 'True'")
        validation.success = False

    logger.debug(f"First {len(validation.unmatched_peptides)} unmatched peptides:")
    for peptide in validation.unmatched_peptides:
        logger.debug(peptide)

    return validation
