import shutil
import tempfile
import unittest
from pathlib import Path

import pandas as pd

from msgfplus_plugin.scans import (
    InstrumentID,
    ScanCategory,
    ScanTypeClassification,
    ScanTypeCounts,
    classify_scan_type_name,
    examine_scan_types,
    instrument_id_from_group,
    load_scan_type_file,
    scan_type_name_from_filter,
)

DATA_PATH = Path(__file__).parent / "data"


class TestExamineScanTypes(unittest.TestCase):
    """Test the choice of the InstrumentID from spectrum counts."""

    def test_mostly_high_res(self):
        """Test that more than 10% high-res spectra selects the high-res model."""
        decision = examine_scan_types(ScanTypeCounts(low_res_msn=80, high_res_msn=20))
        self.assertEqual(decision.instrument_id, InstrumentID.HIGH_RES)
        self.assertEqual(decision.reason, "since 20% of the spectra are HMSn")
        self.assertEqual(decision.value, "1")

    def test_high_res_with_low_res_hcd(self):
        """Test that too many low-res HCD spectra prevent the high-res model."""
        decision = examine_scan_types(ScanTypeCounts(high_res_msn=50, low_res_hcd=60, high_res_hcd=40))
        self.assertEqual(decision.instrument_id, InstrumentID.LOW_RES)
        self.assertEqual(decision.reason, "since there is a mix of low-res and high-res spectra")

    def test_all_high_res_hcd(self):
        """Test a dataset with only high-res HCD spectra."""
        decision = examine_scan_types(ScanTypeCounts(high_res_hcd=100))
        self.assertEqual(decision.instrument_id, InstrumentID.HIGH_RES)
        self.assertEqual(decision.reason, "since all spectra are high-res HCD")

    def test_all_low_res(self):
        """Test a dataset without high-res spectra."""
        decision = examine_scan_types(ScanTypeCounts(low_res_msn=100, low_res_hcd=10))
        self.assertEqual(decision.instrument_id, InstrumentID.LOW_RES)
        self.assertEqual(decision.reason, "since all spectra are low-res MSn")

    def test_few_high_res(self):
        """Test that 10% or fewer high-res spectra is a mix."""
        decision = examine_scan_types(ScanTypeCounts(low_res_msn=90, high_res_msn=10))
        self.assertEqual(decision.instrument_id, InstrumentID.LOW_RES)
        self.assertEqual(decision.reason, "since there is a mix of low-res and high-res spectra")

    def test_no_spectra(self):
        """Test that all-zero counts are rejected."""
        with self.assertRaises(ValueError):
            examine_scan_types(ScanTypeCounts())


class TestInstrumentGroups(unittest.TestCase):
    """Test the instrument groups that always use the same InstrumentID."""

    def test_known_groups(self):
        """Test the known groups, case-insensitively."""
        expected = {
            "QExactive": InstrumentID.Q_EXACTIVE,
            "QEHFX": InstrumentID.Q_EXACTIVE,
            "Exploris": InstrumentID.Q_EXACTIVE,
            "Bruker_Amazon_Ion_Trap": InstrumentID.LOW_RES,
            "IMS": InstrumentID.HIGH_RES,
            "Sciex_TripleTOF": InstrumentID.HIGH_RES,
            "timsTOF": InstrumentID.TOF,
            "timsTOF_SCP": InstrumentID.TOF,
            "timsTOF_Flex": InstrumentID.TOF,
        }
        for group, instrument_id in expected.items():
            with self.subTest(group=group):
                decision = instrument_id_from_group(group)
                self.assertEqual(decision.instrument_id, instrument_id)
                self.assertEqual(decision.reason, f"based on instrument group {group}")

    def test_unknown_group(self):
        """Test that other groups need the scan types to be examined."""
        self.assertIsNone(instrument_id_from_group("LTQ-FT"))
        self.assertIsNone(instrument_id_from_group(""))

    def test_description(self):
        """Test the descriptions used in status messages."""
        self.assertEqual(InstrumentID.Q_EXACTIVE.description, "Q-Exactive")
        self.assertEqual(InstrumentID.LOW_RES.description, "Low-res MSn")


class TestScanTypeNames(unittest.TestCase):
    """Test the classification of scan type names and scan filters."""

    def test_classify(self):
        """Test each category."""
        expected = {
            "HCD-HMSn": ScanCategory.HCD_MSN,
            "HCD-MSn": ScanCategory.HCD_MSN,
            "ETD-HMSn": ScanCategory.HIGH_RES_MSN,
            "CID-MSn": ScanCategory.LOW_RES_MSN,
            "CID": ScanCategory.LOW_RES_MSN,
            "ETD": ScanCategory.LOW_RES_MSN,
            "HMS": ScanCategory.OTHER,
            "SRM": ScanCategory.OTHER,
        }
        for name, category in expected.items():
            with self.subTest(name=name):
                self.assertEqual(classify_scan_type_name(name), category)

    def test_from_filter(self):
        """Test scan type names derived from Thermo scan filters."""
        expected = {
            "FTMS + p NSI Full ms [350.00-1800.00]": "HMS",
            "ITMS + c NSI Full ms [350.00-1800.00]": "MS",
            "FTMS + p NSI d Full ms2 745.37@hcd30.00 [110.00-1500.00]": "HCD-HMSn",
            "ITMS + c NSI d Full ms2 651.34@cid35.00 [165.00-1315.00]": "CID-MSn",
            "FTMS + p NSI d Full ms2 745.37@etd25.00@hcd20.00 [110.00-1500.00]": "EThcD-HMSn",
            "FTMS + c NSI d SA Full ms2 745.37@etd25.00 [110.00-1500.00]": "SA_ETD-HMSn",
            "ITMS + c NSI SRM ms2 651.34@cid35.00 [165.00-1315.00]": "SRM",
            "": "",
        }
        for filter_text, name in expected.items():
            with self.subTest(filter_text=filter_text):
                self.assertEqual(scan_type_name_from_filter(filter_text), name)


class TestScanTypeCounts(unittest.TestCase):
    """Test building spectrum counts from different sources."""

    def test_from_dataset_scan_types(self):
        """Test binning of scan type names reported for a dataset."""
        counts = ScanTypeCounts.from_dataset_scan_types(
            [("CID-MSn", 100), ("ETD-HMSn", 20), ("HCD-HMSn", 30), ("HCD-MSn", 5), ("PQD-HMSn", 3), ("HMS", 1000)]
        )
        self.assertEqual(counts, ScanTypeCounts(low_res_msn=100, high_res_msn=23, low_res_hcd=5, high_res_hcd=30))

        df = pd.DataFrame({"scan_type": ["CID-MSn", "CID-MSn"], "scan_count": [10, 15]})
        self.assertEqual(ScanTypeCounts.from_dataset_scan_types(df).low_res_msn, 25)
        self.assertEqual(ScanTypeCounts.from_dataset_scan_types([]).total, 0)

    def test_from_job_parameters(self):
        """Test reading counts from job parameters; invalid values count as 0."""
        counts = ScanTypeCounts.from_job_parameters(
            {"ScanCountHighResHCD": "120", "ScanCountLowResMSn": 4, "ScanCountHighResMSn": "many"}
        )
        self.assertEqual(counts, ScanTypeCounts(low_res_msn=4, high_res_hcd=120))


class TestScanTypeClassification(unittest.TestCase):
    """Test the classification of the spectra of a dataset."""

    @classmethod
    def setUpClass(cls):  # noqa: D102
        cls.temp_dir = Path(tempfile.mkdtemp())

    @classmethod
    def tearDownClass(cls):  # noqa: D102
        shutil.rmtree(cls.temp_dir)

    def test_load_scan_type_file(self):
        """Test loading a ScanType file."""
        classification = load_scan_type_file(DATA_PATH / "Dataset_ScanType.txt")
        self.assertEqual(len(classification), 14)
        self.assertEqual(classification.msn_count, 10)
        self.assertEqual(sorted(classification.other), [1, 5, 9, 13])
        self.assertEqual(classification.category(2), ScanCategory.HCD_MSN)
        self.assertIsNone(classification.category(99))
        self.assertEqual(classification.counts(), ScanTypeCounts(low_res_hcd=10))
        self.assertEqual(
            examine_scan_types(classification.counts()).reason,
            "since all spectra are low-res MSn",
        )

    def test_counts_hcd_as_low_res(self):
        """Test that HCD spectra of any resolution are counted as low-res HCD."""
        classification = ScanTypeClassification.from_scan_type_names(
            {1: "HMS", 2: "HCD-HMSn", 3: "HCD-MSn", 4: "CID-MSn", 5: "ETD-HMSn", 6: "HCD-HMSn"}
        )
        self.assertEqual(
            classification.counts(), ScanTypeCounts(low_res_msn=1, high_res_msn=1, low_res_hcd=3)
        )
        self.assertEqual(classification.hcd_msn, {2: "HCD-HMSn", 3: "HCD-MSn", 6: "HCD-HMSn"})
        self.assertEqual(classification.low_res_msn, {4: "CID-MSn"})
        self.assertEqual(classification.high_res_msn, {5: "ETD-HMSn"})

    def test_load_from_scan_filters(self):
        """Test that scan type names are derived from the scan filter if there is no ScanTypeName column."""
        scan_type_file = self.temp_dir / "Filters_ScanType.txt"
        scan_type_file.write_text(
            "ScanNumber\tScan Filter Text\n"
            "1\tFTMS + p NSI Full ms [350.00-1800.00]\n"
            "2\tITMS + c NSI d Full ms2 651.34@cid35.00 [165.00-1315.00]\n"
            "x\tITMS + c NSI d Full ms2 651.34@cid35.00 [165.00-1315.00]\n"
        )
        classification = load_scan_type_file(scan_type_file)
        self.assertEqual(len(classification), 2)
        self.assertEqual(classification.low_res_msn, {2: "CID-MSn"})

    def test_load_errors(self):
        """Test missing files and missing columns."""
        with self.assertRaises(FileNotFoundError):
            load_scan_type_file(self.temp_dir / "missing.txt")

        scan_type_file = self.temp_dir / "NoScanNumber_ScanType.txt"
        scan_type_file.write_text("Scan\tScanTypeName\n1\tHMS\n")
        with self.assertRaises(ValueError):
            load_scan_type_file(scan_type_file)
