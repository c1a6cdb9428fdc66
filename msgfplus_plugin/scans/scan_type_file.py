import logging
from pathlib import Path
from typing import Dict, Tuple, Union

import pandas as pd

from .scan_types import SCAN_FILTER_COLUMN, SCAN_NUMBER_COLUMN, SCAN_TYPE_NAME_COLUMN, scan_type_name_from_filter

logger = logging.getLogger(__name__)

SCAN_STATS_FILE_SUFFIX = "_ScanStats.txt"
SCAN_STATS_EX_FILE_SUFFIX = "_ScanStatsEx.txt"
SCAN_TYPE_FILE_SUFFIX = "_ScanType.txt"

COLLISION_MODE_COLUMN = "Collision Mode"
SCAN_TYPE_FILE_COLUMNS = [SCAN_NUMBER_COLUMN, SCAN_TYPE_NAME_COLUMN, "ScanType", "ScanTime"]

# column positions used when a ScanStats file has no header line
_HEADERLESS_SCAN_STATS_COLUMNS = {1: SCAN_NUMBER_COLUMN, 2: "ScanTime", 3: "ScanType", 10: SCAN_TYPE_NAME_COLUMN}
_HEADERLESS_SCAN_STATS_EX_COLUMNS = {1: SCAN_NUMBER_COLUMN, 7: COLLISION_MODE_COLUMN, 8: SCAN_FILTER_COLUMN}


def _read_tab_delimited(path: Path, headerless_columns: Dict[int, str]) -> pd.DataFrame:
    """Read a MASIC output file, with or without a header line."""
    try:
        df = pd.read_csv(path, sep="\t", dtype=str, keep_default_na=False, header=None, skip_blank_lines=True)
    except pd.errors.EmptyDataError:
        return pd.DataFrame()
    if df.empty:
        return df

    first_value = str(df.iat[0, 0]).strip()
    if not first_value.lstrip("-").isdigit():
        df.columns = [str(c).strip() for c in df.iloc[0]]
        return df.iloc[1:].reset_index(drop=True)

    return df.rename(columns={i: name for i, name in headerless_columns.items() if i < df.shape[1]})


def _cache_scan_types_from_scan_stats_ex(scan_stats_ex_file: Path) -> Dict[int, str]:
    """
    Map scan numbers to scan type names using the collision mode or scan filter of a ScanStatsEx file.

    :param scan_stats_ex_file: path to the _ScanStatsEx.txt file
    :raises FileNotFoundError: if the file does not exist
    :return: dictionary of scan number to scan type name
    """
    if not scan_stats_ex_file.is_file():
        raise FileNotFoundError(f"_ScanStatsEx.txt file not found: {scan_stats_ex_file}")

    df = _read_tab_delimited(scan_stats_ex_file, _HEADERLESS_SCAN_STATS_EX_COLUMNS)
    if df.empty or SCAN_NUMBER_COLUMN not in df.columns:
        return {}

    scan_numbers = pd.to_numeric(df[SCAN_NUMBER_COLUMN], errors="coerce")
    collision_modes = df.get(COLLISION_MODE_COLUMN, pd.Series("", index=df.index)).str.strip()
    filter_texts = df.get(SCAN_FILTER_COLUMN, pd.Series("", index=df.index))

    scan_types = {}
    for scan_number, collision_mode, filter_text in zip(scan_numbers, collision_modes, filter_texts):
        if pd.isna(scan_number):
            continue
        if not collision_mode:
            collision_mode = scan_type_name_from_filter(filter_text)
        if not collision_mode or collision_mode == "0":
            collision_mode = "MS"
        scan_types.setdefault(int(scan_number), collision_mode)

    return scan_types


def create_scan_type_file(work_dir: Union[str, Path], dataset_name: str) -> Tuple[Path, int]:
    """
    Create the _ScanType.txt file of a dataset from its MASIC ScanStats file.

    If the ScanStats file does not list scan type names, they are taken from the ScanStatsEx file.

    :param work_dir: directory with the MASIC files, where the ScanType file is created
    :param dataset_name: dataset name, the prefix of the MASIC files
    :raises FileNotFoundError: if the ScanStats file, or a required ScanStatsEx file, does not exist
    :return: path to the ScanType file and the number of scans written to it
    """
    work_dir = Path(work_dir)
    scan_stats_file = work_dir / f"{dataset_name}{SCAN_STATS_FILE_SUFFIX}"
    scan_stats_ex_file = work_dir / f"{dataset_name}{SCAN_STATS_EX_FILE_SUFFIX}"
    scan_type_file = work_dir / f"{dataset_name}{SCAN_TYPE_FILE_SUFFIX}"

    if not scan_stats_file.is_file():
        raise FileNotFoundError(f"_ScanStats.txt file not found: {scan_stats_file}")

    df = _read_tab_delimited(scan_stats_file, _HEADERLESS_SCAN_STATS_COLUMNS)
    if df.empty:
        df = pd.DataFrame(columns=SCAN_TYPE_FILE_COLUMNS)

    df = df[df.columns.intersection(SCAN_TYPE_FILE_COLUMNS)].copy()
    for column in (SCAN_NUMBER_COLUMN, "ScanType"):
        if column not in df.columns:
            raise ValueError(f"Column {column} not found in {scan_stats_file.name}")
        df[column] = pd.to_numeric(df[column], errors="coerce")

    df = df.dropna(subset=[SCAN_NUMBER_COLUMN, "ScanType"])
    df[SCAN_NUMBER_COLUMN] = df[SCAN_NUMBER_COLUMN].astype(int)
    df["ScanType"] = df["ScanType"].astype(int)

    if SCAN_TYPE_NAME_COLUMN not in df.columns:
        logger.info(f"{scan_stats_file.name} does not list scan type names; reading {scan_stats_ex_file.name}")
        scan_types = _cache_scan_types_from_scan_stats_ex(scan_stats_ex_file)
        df[SCAN_TYPE_NAME_COLUMN] = df[SCAN_NUMBER_COLUMN].map(scan_types).fillna("")

    scan_times = pd.to_numeric(df.get("ScanTime", pd.Series(0.0, index=df.index)), errors="coerce").fillna(0.0)
    df["ScanTime"] = scan_times.map(lambda t: f"{t:.4f}")

    df[SCAN_TYPE_FILE_COLUMNS].to_csv(scan_type_file, sep="\t", index=False)

    logger.info(f"Created {scan_type_file.name} with {len(df)} scans")
    return scan_type_file, len(df)
