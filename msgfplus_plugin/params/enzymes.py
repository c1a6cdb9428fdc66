import logging
from pathlib import Path
from typing import Iterable, Optional, Union

from .errors import ParameterFileError

logger = logging.getLogger(__name__)

ENZYMES_FILE_NAME = "enzymes.txt"
ENZYME_DEF_FIELD_COUNT = 4

ENZYMES_FILE_HEADER = """\
# This file specifies additional enzymes considered for MS-GF+
#
# To be loaded, this file must reside in a directory named params below the working directory
# For example, create file C:\\Work\\params\\enzymes.txt when the working directory is C:\\Work
# Or, on Linux, create file /home/user/work/params/enzymes.txt when the working directory is /home/user/work/
#
# Format: ShortName,CleaveAt,Terminus,Description
# - ShortName: A unique short name of the enzyme (e.g. Tryp). No space is allowed.
# - CleaveAt: The residues cleaved by the enzyme (e.g. KR). Put "null" in case of no specificity.
# - Terminus: Whether the enzyme cleaves C-terminal (C) or N-terminal (N)
# - Description: Description of the enzyme
#
# The following enzymes are pre-configured, numbered 1 through 9 when using the -e argument at the command line
# Tryp,KR,C,Trypsin                         # 1
# Chymotrypsin,FYWL,C,Chymotrypsin          # 2
# LysC,K,C,Lys-C                            # 3
# LysN,K,N,Lys-N                            # 4
# GluC,E,C,Glu-C                            # 5: glutamyl endopeptidase
# ArgC,R,C,Arg-C                            # 6
# AspN,D,N,Asp-N                            # 7
# aLP,null,C,alphaLP                        # 8
# NoCleavage,null,C,no cleavage             # 9: Endogenous peptides
#
# If you want to redefine a pre-configured enzyme (e.g. change CleaveAt of Asp-N to "DE"), specify the enzyme again.
# Specify one enzyme per line.
# New enzymes will continue the numbering at 10
#
# Examples:
# CNBr,M,C,CNBr
# AspN,DE,N,Asp-N

"""


def clean_enzyme_definition(enzyme_def: str) -> str:
    """
    Remove the whitespace around the fields of an enzyme definition.

    :param enzyme_def: ShortName,CleaveAt,Terminus,Description
    :raises ParameterFileError: if the definition has fewer than four fields
    :return: the cleaned definition, limited to the first four fields
    """
    parts = enzyme_def.split(",")
    if len(parts) < ENZYME_DEF_FIELD_COUNT:
        raise ParameterFileError(f"Invalid enzyme definition in the MS-GF+ parameter file: {enzyme_def}")
    return ",".join(part.replace("\t", " ").strip() for part in parts[:ENZYME_DEF_FIELD_COUNT])


def create_enzyme_definitions_file(
    output_directory: Union[str, Path], enzyme_defs: Iterable[str]
) -> Optional[Path]:
    """
    Create params/enzymes.txt below the given directory, which MS-GF+ reads at startup.

    :param output_directory: the working directory of MS-GF+
    :param enzyme_defs: the EnzymeDef values from the parameter file
    :raises ParameterFileError: if a definition is invalid
    :return: path to the created file, or None if there are no definitions
    """
    cleaned_defs = [clean_enzyme_definition(enzyme_def) for enzyme_def in enzyme_defs]
    if not cleaned_defs:
        return None

    enzymes_file = Path(output_directory) / "params" / ENZYMES_FILE_NAME
    enzymes_file.parent.mkdir(parents=True, exist_ok=True)

    with open(enzymes_file, "w", encoding="utf-8") as f:
        f.write(ENZYMES_FILE_HEADER)
        for enzyme_def in cleaned_defs:
            f.write(f"{enzyme_def}\n")

    logger.info(f"Created {enzymes_file} with {len(cleaned_defs)} custom enzyme definition(s)")
    return enzymes_file
