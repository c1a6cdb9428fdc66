import json
import logging
from pathlib import Path
from typing import Dict, Optional, Union

from ..progress.console_output import CONSOLE_OUTPUT_FILE

logger = logging.getLogger(__name__)

ASSUMED_SCAN_TYPES = ["", "CID", "ETD", "HCD", "UVPD"]


class Config:
    """Read config file and get information from it."""

    @property
    def output(self) -> Path:
        """Get path to the working directory of the job step from the config file."""
        # relative paths are resolved against the location of the config file
        return self.base_path / Path(self.data.get("output", "./"))

    @property
    def work_dir(self) -> Path:
        """Alias of output."""
        return self.output

    @property
    def dataset_name(self) -> str:
        """Get the dataset name; MASIC files and the scan type file are named after it."""
        return self.data.get("datasetName", "")

    @property
    def instrument_group(self) -> str:
        """Get the instrument group of the dataset, e.g. VelosOrbi or Bruker_Amazon_Ion_Trap."""
        return self.data.get("instrumentGroup", "")

    @property
    def assumed_scan_type(self) -> str:
        """Get the scan type that overrides the fragmentation method (CID, ETD, HCD or UVPD); empty if not set."""
        return self.data.get("assumedScanType", "").upper()

    @property
    def create_scan_type_file(self) -> bool:
        """Get createScanTypeFile flag (decides whether the _ScanType.txt file is created from MASIC output)."""
        return self.data.get("createScanTypeFile", False)

    @property
    def msgfplus_threads(self) -> str:
        """Get the thread count of the job; empty or "all" to let the translator decide."""
        return str(self.data.get("numThreads", ""))

    @property
    def override_params(self) -> Dict[str, str]:
        """Get parameter values that replace those in the parameter file."""
        return self.data.get("overrideParams", {})

    @property
    def scan_type_counts(self) -> Optional[Dict[str, int]]:
        """Get precomputed spectrum counts, keyed by the ScanCount job parameter names."""
        return self.data.get("scanTypeCounts", None)

    @property
    def protein_options(self) -> str:
        """Get the protein options of the job, e.g. seq_direction=decoy,filetype=fasta."""
        return self.data.get("proteinOptions", "")

    @property
    def fasta_is_decoy(self) -> Optional[bool]:
        """Get fastaIsDecoy flag; None if it should be determined from the FASTA file."""
        return self.data.get("fastaIsDecoy", None)

    @property
    def max_fasta_file_size_mb(self) -> int:
        """Get the size in MB above which the FASTA file is trimmed; 0 to never trim."""
        return int(self.data.get("maxFastaFileSizeMB", 0))

    @property
    def console_output_file(self) -> str:
        """Get the name of the MS-GF+ console output file inside the working directory."""
        return self.data.get("consoleOutputFile", CONSOLE_OUTPUT_FILE)

    @property
    def host_name(self) -> Optional[str]:
        """Get the host name used for the thread count policy; None to use the name of this computer."""
        return self.data.get("hostName", None)

    ###########################
    # these are input options #
    ###########################

    @property
    def inputs(self) -> dict:
        """Get inputs dictionary from the config file."""
        return self.data.get("inputs", {})

    @property
    def param_file(self) -> Path:
        """Get path to the MS-GF+ parameter file from the config file."""
        param_file = self.inputs.get("param_file")
        if param_file is None:
            raise ValueError("No path to an MS-GF+ parameter file specified in config file.")
        return self.base_path / param_file

    @property
    def scan_type_file(self) -> Optional[Path]:
        """Get path to the _ScanType.txt file from the config file; None if not specified."""
        scan_type_file = self.inputs.get("scan_type_file")
        if scan_type_file is None:
            return None
        return self.base_path / scan_type_file

    @property
    def fasta_file(self) -> Optional[Path]:
        """Get path to the FASTA file from the config file; None if not specified."""
        fasta_file = self.inputs.get("fasta_file")
        if fasta_file is None:
            return None
        return self.base_path / fasta_file

    ########################
    # functions start here #
    ########################

    def check(self):
        """Validate the configuration."""
        if not self.param_file.is_file():
            raise FileNotFoundError(f"MS-GF+ parameter file not found: {self.param_file}")

        if self.assumed_scan_type not in ASSUMED_SCAN_TYPES:
            raise ValueError(
                f"Invalid assumed scan type {self.assumed_scan_type}. Supported are {', '.join(ASSUMED_SCAN_TYPES[1:])}."
            )

        if self.create_scan_type_file and not self.dataset_name:
            raise AssertionError("You requested to create the scan type file but provided no datasetName. Please check.")

        if self.fasta_file is not None and not self.fasta_file.is_file():
            raise FileNotFoundError(f"FASTA file not found: {self.fasta_file}")

        if self.max_fasta_file_size_mb < 0:
            raise ValueError(f"maxFastaFileSizeMB must not be negative, found {self.max_fasta_file_size_mb}.")

    def read(self, config_path: Union[str, Path]):
        """
        Read config file.

        :param config_path: path to config file as a string
        """
        logger.info(f"Reading configuration from {config_path}")
        if isinstance(config_path, str):
            config_path = Path(config_path)
        with open(config_path) as f:
            self.data = json.load(f)
        self.base_path = config_path.parent
