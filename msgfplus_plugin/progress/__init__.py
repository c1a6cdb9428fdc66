"""Init progress."""

from .console_output import (
    CONSOLE_OUTPUT_FILE,
    PROGRESS_PCT_COMPLETE,
    ConsoleOutputProgress,
    get_progress,
    parse_console_output,
    parse_console_output_lines,
)
from .post_processing import (
    PeptideMapValidation,
    append_console_output_header,
    get_mzid_to_tsv_command_line,
    mzid_has_closing_tag,
    validate_peptide_to_protein_map,
)
