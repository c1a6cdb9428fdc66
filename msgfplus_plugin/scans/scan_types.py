import logging
import re
from dataclasses import dataclass
from enum import Enum, IntEnum
from pathlib import Path
from typing import Any, Dict, Iterable, Mapping, Optional, Tuple, Union

import numpy as np
import pandas as pd

logger = logging.getLogger(__name__)

SCAN_NUMBER_COLUMN = "ScanNumber"
SCAN_TYPE_NAME_COLUMN = "ScanTypeName"
SCAN_FILTER_COLUMN = "Scan Filter Text"

SCAN_COUNT_LOW_RES_MSN = "ScanCountLowResMSn"
SCAN_COUNT_HIGH_RES_MSN = "ScanCountHighResMSn"
SCAN_COUNT_LOW_RES_HCD = "ScanCountLowResHCD"
SCAN_COUNT_HIGH_RES_HCD = "ScanCountHighResHCD"


class ScanCategory(Enum):
    """Categories of spectra relevant to the choice of the MS-GF+ scoring model."""

    LOW_RES_MSN = "low-res MSn"
    HIGH_RES_MSN = "high-res MSn"
    HCD_MSN = "HCD MSn"
    OTHER = "other"


class InstrumentID(IntEnum):
    """Values of the MS-GF+ InstrumentID option."""

    LOW_RES = 0
    HIGH_RES = 1
    TOF = 2
    Q_EXACTIVE = 3

    @property
    def description(self) -> str:
        """Human readable name of the instrument type."""
        return _INSTRUMENT_DESCRIPTIONS[self]


_INSTRUMENT_DESCRIPTIONS = {
    InstrumentID.LOW_RES: "Low-res MSn",
    InstrumentID.HIGH_RES: "High-res MSn",
    InstrumentID.TOF: "TOF",
    InstrumentID.Q_EXACTIVE: "Q-Exactive",
}

_INSTRUMENT_GROUPS = {
    "qexactive": InstrumentID.Q_EXACTIVE,
    "qehfx": InstrumentID.Q_EXACTIVE,
    "exploris": InstrumentID.Q_EXACTIVE,
    "bruker_amazon_ion_trap": InstrumentID.LOW_RES,
    "ims": InstrumentID.HIGH_RES,
    "sciex_tripletof": InstrumentID.HIGH_RES,
    "timstof": InstrumentID.TOF,
    "timstof_scp": InstrumentID.TOF,
    "timstof_flex": InstrumentID.TOF,
}

# scan type names reported per dataset; anything else is binned by its -HMSn / -MSn suffix
_LOW_RES_MSN_TYPES = {"CID-MSn", "ETD-MSn", "SA_ETD-MSn", "MSn", "PQD-MSn", "UVPD-MSn"}
_HIGH_RES_MSN_TYPES = {
    "CID-HMSn",
    "ETD-HMSn",
    "SA_CID-HMSn",
    "SA_ETD-HMSn",
    "EThcD-HMSn",
    "HMSn",
    "PQD-HMSn",
    "UVPD-HMSn",
}
_LOW_RES_HCD_TYPES = {"HCD-MSn"}
_HIGH_RES_HCD_TYPES = {"HCD-HMSn", "SA_HCD-HMSn"}


@dataclass(frozen=True)
class InstrumentIDDecision:
    """The InstrumentID to use, and why."""

    instrument_id: InstrumentID
    reason: str

    @property
    def value(self) -> str:
        """The instrument ID as written to the parameter file."""
        return str(int(self.instrument_id))


@dataclass(frozen=True)
class ScanTypeCounts:
    """Number of spectra of a dataset, binned by resolution and fragmentation."""

    low_res_msn: int = 0
    high_res_msn: int = 0
    low_res_hcd: int = 0
    high_res_hcd: int = 0

    @property
    def total(self) -> int:
        """Total number of MSn spectra."""
        return self.low_res_msn + self.high_res_msn + self.low_res_hcd + self.high_res_hcd

    @classmethod
    def from_dataset_scan_types(
        cls, scan_types: Union[pd.DataFrame, Iterable[Tuple[str, int]]]
    ) -> "ScanTypeCounts":
        """
        Aggregate per-scan-type spectrum counts of a dataset.

        :param scan_types: scan type names and spectrum counts, either as (name, count) tuples or as a dataframe with
            the columns scan_type and scan_count
        :return: the binned counts
        """
        if not isinstance(scan_types, pd.DataFrame):
            scan_types = pd.DataFrame(list(scan_types), columns=["scan_type", "scan_count"])
        if scan_types.empty:
            return cls()

        bins = scan_types["scan_type"].astype(str).map(_bin_dataset_scan_type)
        totals = pd.to_numeric(scan_types["scan_count"], errors="coerce").fillna(0).groupby(bins).sum()
        return cls(
            low_res_msn=int(totals.get("low_res_msn", 0)),
            high_res_msn=int(totals.get("high_res_msn", 0)),
            low_res_hcd=int(totals.get("low_res_hcd", 0)),
            high_res_hcd=int(totals.get("high_res_hcd", 0)),
        )

    @classmethod
    def from_job_parameters(cls, job_parameters: Mapping[str, Any]) -> "ScanTypeCounts":
        """
        Read precomputed spectrum counts from job parameters, used when the dataset scan types cannot be queried.

        Missing or non-numeric parameters count as 0.
        """

        def _get_count(key: str) -> int:
            try:
                return int(job_parameters.get(key, 0) or 0)
            except (TypeError, ValueError):
                logger.warning(f"Ignoring non-numeric job parameter {key}: {job_parameters.get(key)}")
                return 0

        return cls(
            _get_count(SCAN_COUNT_LOW_RES_MSN),
            _get_count(SCAN_COUNT_HIGH_RES_MSN),
            _get_count(SCAN_COUNT_LOW_RES_HCD),
            _get_count(SCAN_COUNT_HIGH_RES_HCD),
        )


def _bin_dataset_scan_type(scan_type: str) -> str:
    if scan_type in _LOW_RES_MSN_TYPES:
        return "low_res_msn"
    if scan_type in _HIGH_RES_MSN_TYPES:
        return "high_res_msn"
    if scan_type in _LOW_RES_HCD_TYPES:
        return "low_res_hcd"
    if scan_type in _HIGH_RES_HCD_TYPES:
        return "high_res_hcd"
    if scan_type.lower().endswith("-hmsn"):
        return "high_res_msn"
    if scan_type.lower().endswith("-msn"):
        return "low_res_msn"
    return "other"


def classify_scan_type_name(scan_type_name: str) -> ScanCategory:
    """
    Classify a spectrum by its scan type name, e.g. CID-MSn, HCD-HMSn or ETD-HMSn.

    Names without a resolution suffix that mention CID or ETD come from the collision mode reported by older
    software and are assumed to be low-res.
    """
    name = scan_type_name.lower()
    if "hcd" in name:
        return ScanCategory.HCD_MSN
    if "hmsn" in name:
        return ScanCategory.HIGH_RES_MSN
    if "msn" in name:
        return ScanCategory.LOW_RES_MSN
    if "cid" in name or "etd" in name:
        return ScanCategory.LOW_RES_MSN
    return ScanCategory.OTHER


_MS_LEVEL = re.compile(r"\bms(?P<level>\d*)\b", re.IGNORECASE)
_ACTIVATION = re.compile(r"@(?P<type>[a-z]+)[0-9.]*", re.IGNORECASE)
_HIGH_RES_ANALYZERS = ("FTMS", "ASTMS")


def scan_type_name_from_filter(filter_text: str) -> str:
    """
    Derive the scan type name from a Thermo scan filter.

    For example, ``FTMS + p NSI d Full ms2 1234.56@hcd30.00 [100.00-2000.00]`` gives HCD-HMSn and
    ``ITMS + c NSI d Full ms2 1234.56@cid35.00 [100.00-2000.00]`` gives CID-MSn.

    :param filter_text: the scan filter
    :return: the scan type name, or an empty string if the filter is empty
    """
    filter_text = filter_text.strip()
    if not filter_text:
        return ""

    tokens = filter_text.split()
    upper_tokens = [token.upper() for token in tokens]
    high_res = upper_tokens[0] in _HIGH_RES_ANALYZERS

    if "SRM" in upper_tokens:
        return "SRM"

    level_match = _MS_LEVEL.search(filter_text)
    ms_level = 1
    if level_match and level_match.group("level"):
        ms_level = int(level_match.group("level"))

    if ms_level <= 1:
        if "SIM" in upper_tokens:
            return "HMS-SIM" if high_res else "SIM"
        return "HMS" if high_res else "MS"

    suffix = "HMSn" if high_res else "MSn"
    activations = [m.group("type").lower() for m in _ACTIVATION.finditer(filter_text)]

    if not activations:
        return suffix

    if "etd" in activations and "hcd" in activations:
        activation = "EThcD"
    elif "etd" in activations and "cid" in activations:
        activation = "ETciD"
    else:
        activation = activations[0].upper()

    if "SA" in upper_tokens and activation in ("ETD", "CID", "HCD"):
        activation = f"SA_{activation}"

    return f"{activation}-{suffix}"


class ScanTypeClassification:
    """
    Category and scan type name of every spectrum of a dataset, keyed by scan number.

    The underlying dataframe is indexed by scan number and has the columns scan_type_name and category.
    """

    def __init__(self, scan_types: pd.DataFrame):
        """
        Init the classification.

        :param scan_types: dataframe indexed by scan number with a scan_type_name column
        """
        scan_types = scan_types.copy()
        scan_types["category"] = scan_types["scan_type_name"].astype(str).map(classify_scan_type_name)
        self.scan_types = scan_types

    @classmethod
    def from_scan_type_names(cls, scan_type_names: Mapping[int, str]) -> "ScanTypeClassification":
        """Build the classification from a mapping of scan number to scan type name."""
        scan_types = pd.DataFrame(
            {"scan_type_name": pd.Series(dict(scan_type_names), dtype=str)},
        )
        scan_types.index.name = "scan_number"
        return cls(scan_types)

    def __len__(self) -> int:
        return len(self.scan_types)

    def category(self, scan_number: int) -> Optional[ScanCategory]:
        """Return the category of a scan, or None if the scan is unknown."""
        if scan_number not in self.scan_types.index:
            return None
        return self.scan_types.at[scan_number, "category"]

    def scans(self, category: ScanCategory) -> Dict[int, str]:
        """Return the scan numbers and scan type names of all spectra in a category."""
        selected = self.scan_types[self.scan_types["category"] == category]
        return {int(scan): name for scan, name in selected["scan_type_name"].items()}

    @property
    def low_res_msn(self) -> Dict[int, str]:
        """Low-res CID, ETD and other non-HCD MSn spectra."""
        return self.scans(ScanCategory.LOW_RES_MSN)

    @property
    def high_res_msn(self) -> Dict[int, str]:
        """High-res non-HCD MSn spectra."""
        return self.scans(ScanCategory.HIGH_RES_MSN)

    @property
    def hcd_msn(self) -> Dict[int, str]:
        """HCD spectra of any resolution."""
        return self.scans(ScanCategory.HCD_MSN)

    @property
    def other(self) -> Dict[int, str]:
        """MS1, SIM, SRM and unrecognized spectra."""
        return self.scans(ScanCategory.OTHER)

    @property
    def msn_count(self) -> int:
        """Number of MSn spectra of any kind."""
        return int(np.count_nonzero(self.scan_types["category"] != ScanCategory.OTHER))

    def counts(self) -> ScanTypeCounts:
        """Bin the spectra; all HCD spectra are counted as low-res HCD."""
        categories = self.scan_types["category"]

        return ScanTypeCounts(
            low_res_msn=int(np.count_nonzero(categories == ScanCategory.LOW_RES_MSN)),
            high_res_msn=int(np.count_nonzero(categories == ScanCategory.HIGH_RES_MSN)),
            low_res_hcd=int(np.count_nonzero(categories == ScanCategory.HCD_MSN)),
        )


def load_scan_type_file(scan_type_file: Union[str, Path]) -> ScanTypeClassification:
    """
    Read a tab-delimited scan type file.

    The file needs a ScanNumber column and either a ScanTypeName column or a Scan Filter Text column from which the
    scan type names are derived. Rows whose scan number is not an integer are skipped.

    :param scan_type_file: path to the scan type file
    :raises FileNotFoundError: if the file does not exist
    :raises ValueError: if the required columns are missing
    :return: the classified spectra
    """
    scan_type_file = Path(scan_type_file)
    if not scan_type_file.is_file():
        raise FileNotFoundError(f"ScanType file not found: {scan_type_file}")

    try:
        df = pd.read_csv(scan_type_file, sep="\t", dtype=str, keep_default_na=False, skip_blank_lines=True)
    except pd.errors.EmptyDataError:
        logger.warning(f"ScanType file {scan_type_file.name} is empty")
        return ScanTypeClassification.from_scan_type_names({})

    if SCAN_NUMBER_COLUMN not in df.columns:
        raise ValueError(f"Column {SCAN_NUMBER_COLUMN} not found in the ScanType file {scan_type_file.name}")

    if SCAN_TYPE_NAME_COLUMN in df.columns:
        scan_type_names = df[SCAN_TYPE_NAME_COLUMN]
    elif SCAN_FILTER_COLUMN in df.columns:
        logger.info(f"Deriving scan types from column {SCAN_FILTER_COLUMN} in {scan_type_file.name}")
        scan_type_names = df[SCAN_FILTER_COLUMN].map(scan_type_name_from_filter)
    else:
        raise ValueError(
            f"ScanType file {scan_type_file.name} has neither a {SCAN_TYPE_NAME_COLUMN} nor a {SCAN_FILTER_COLUMN} column"
        )

    scan_numbers = pd.to_numeric(df[SCAN_NUMBER_COLUMN], errors="coerce")
    valid = scan_numbers.notna() & (scan_numbers == np.floor(scan_numbers))

    scan_types = pd.DataFrame(
        {"scan_type_name": scan_type_names[valid].to_numpy()},
        index=pd.Index(scan_numbers[valid].astype(np.int64).to_numpy(), name="scan_number"),
    )
    scan_types = scan_types[~scan_types.index.duplicated(keep="first")]

    logger.debug(f"Loaded {len(scan_types)} scan types from {scan_type_file.name}")
    return ScanTypeClassification(scan_types)


def instrument_id_from_group(instrument_group: str) -> Optional[InstrumentIDDecision]:
    """
    Look up the InstrumentID for instrument groups that always use the same one.

    :param instrument_group: the instrument group name; case-insensitive
    :return: the decision, or None if the scan types have to be examined instead
    """
    instrument_id = _INSTRUMENT_GROUPS.get(instrument_group.strip().lower())
    if instrument_id is None:
        return None
    return InstrumentIDDecision(instrument_id, f"based on instrument group {instrument_group}")


def examine_scan_types(counts: ScanTypeCounts) -> InstrumentIDDecision:
    """
    Choose the InstrumentID from the number of low-res and high-res spectra.

    High-res is chosen when more than 10% of the non-HCD spectra are high-res and fewer than half of the HCD spectra
    are low-res, or when all spectra are high-res HCD. Otherwise the low-res model is used.

    :param counts: the binned spectrum counts
    :raises ValueError: if all counts are 0
    :return: the decision
    """
    if counts.total == 0:
        raise ValueError("Scan counts provided to examine_scan_types are all 0; cannot auto-update InstrumentID")

    fraction_high_res = 0.0
    if counts.high_res_msn > 0:
        fraction_high_res = counts.high_res_msn / (counts.low_res_msn + counts.high_res_msn)

    fraction_low_res_hcd = 0.0
    if counts.low_res_hcd > 0:
        fraction_low_res_hcd = counts.low_res_hcd / (counts.low_res_hcd + counts.high_res_hcd)

    if fraction_high_res > 0.1 and fraction_low_res_hcd < 0.5:
        return InstrumentIDDecision(
            InstrumentID.HIGH_RES, f"since {fraction_high_res * 100:.0f}% of the spectra are HMSn"
        )

    if counts.low_res_msn == 0 and counts.low_res_hcd == 0 and counts.high_res_hcd > 0:
        return InstrumentIDDecision(InstrumentID.HIGH_RES, "since all spectra are high-res HCD")

    if counts.high_res_hcd == 0 and counts.high_res_msn == 0:
        return InstrumentIDDecision(InstrumentID.LOW_RES, "since all spectra are low-res MSn")

    return InstrumentIDDecision(InstrumentID.LOW_RES, "since there is a mix of low-res and high-res spectra")
