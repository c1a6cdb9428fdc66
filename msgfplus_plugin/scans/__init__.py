"""Init scans."""

from .scan_type_file import create_scan_type_file
from .scan_types import (
    InstrumentID,
    InstrumentIDDecision,
    ScanCategory,
    ScanTypeClassification,
    ScanTypeCounts,
    classify_scan_type_name,
    examine_scan_types,
    instrument_id_from_group,
    load_scan_type_file,
    scan_type_name_from_filter,
)
