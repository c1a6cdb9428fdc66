import shutil
import tempfile
import unittest
from pathlib import Path

from msgfplus_plugin.params import (
    CloseOutType,
    ParameterTranslator,
    get_command_line_arguments,
    get_setting_from_param_file,
    translate_parameter_file,
)

DATA_PATH = Path(__file__).parent / "data"

EXPECTED_LEGACY_TRANSLATION = """\
#Parameter file for MS-GF+ searches of tryptic peptides

#Spectrum File Type
SpectrumFile=Dataset.mzML

#Precursor mass tolerance
PMTolerance=20ppm

#Fragmentation method; 0 means as written in the spectrum or CID if no info
FragmentationMethodID=0

#Instrument ID; 0 means Low-res LCQ/LTQ, 1 means High-res LTQ
InstrumentID=3

#Enzyme ID; 1 means Trypsin
EnzymeID=1

#Number of tolerable termini (legacy name)
NTT=1

#Isotope errors (legacy name)
IsotopeErrorRange=-1,1

#Minimum number of peaks per spectrum (legacy name)
MinNumPeaksPerSpectrum=5

NumThreads=5

TDA=1

# showDecoy=1   # Obsolete
# uniformAAProb=0   # Obsolete

NumMods=3

StaticMod=C2H3N1O1,C,fix,any,Carbamidomethyl     # Fixed Carbamidomethyl C

DynamicMod=O1, M, opt, any, Oxidation     # Oxidized methionine

AddFeatures=1
"""


def _translator(**kwargs) -> ParameterTranslator:
    settings = {"instrument_group": "QExactive", "core_count": 6, "host_name": "TestHost"}
    settings.update(kwargs)
    return ParameterTranslator(**settings)


class TestParameterTranslator(unittest.TestCase):
    """Test translation of MS-GF+ parameter files."""

    def setUp(self):  # noqa: D102
        self.temp_dir = Path(tempfile.mkdtemp())

    def tearDown(self):  # noqa: D102
        shutil.rmtree(self.temp_dir)

    def _copy(self, file_name: str) -> Path:
        return Path(shutil.copy(DATA_PATH / file_name, self.temp_dir))

    def _write(self, file_name: str, text: str) -> Path:
        param_file = self.temp_dir / file_name
        param_file.write_text(text)
        return param_file

    def test_translate_legacy_file(self):
        """Test that legacy options are renamed and the job settings are applied."""
        param_file = self._copy("MSGFPlus_Legacy.txt")
        source_mtime = param_file.stat().st_mtime

        result = _translator().translate(param_file)

        self.assertTrue(result.success)
        self.assertEqual(result.code, CloseOutType.SUCCESS)
        self.assertEqual(param_file.read_text(), EXPECTED_LEGACY_TRANSLATION)

        self.assertEqual(result.original_param_file, self.temp_dir / "MSGFPlus_Legacy.original")
        self.assertEqual(
            result.original_param_file.read_text(), (DATA_PATH / "MSGFPlus_Legacy.txt").read_text()
        )
        self.assertTrue(result.results_include_auto_added_decoy_peptides)
        self.assertFalse(result.phosphorylation_search)
        self.assertEqual(result.thread_count, 5)
        self.assertIsNone(result.enzyme_definition_file)
        self.assertEqual(result.instrument_id_reason, "based on instrument group QExactive")
        self.assertIn(
            "Auto-updating instrument ID from 1 to 3 (Q-Exactive) based on instrument group QExactive",
            result.messages,
        )
        self.assertIn("The system has 6 cores; MS-GF+ will use 5 cores", result.messages)

        # InstrumentID, NTT, IsotopeErrorRange, MinNumPeaksPerSpectrum, NumThreads, 2 obsolete lines, 2 new lines
        self.assertAlmostEqual(param_file.stat().st_mtime, source_mtime + 9 * 5 * 60, delta=1)

    def test_translate_twice(self):
        """Test that translating a translated file changes nothing."""
        param_file = self._copy("MSGFPlus_Legacy.txt")
        _translator().translate(param_file)
        (self.temp_dir / "MSGFPlus_Legacy.original").unlink()

        result = _translator().translate(param_file)

        self.assertTrue(result.success)
        self.assertIsNone(result.original_param_file)
        self.assertFalse((self.temp_dir / "MSGFPlus_Legacy.original").exists())
        self.assertEqual(param_file.read_text(), EXPECTED_LEGACY_TRANSLATION)

    def test_current_file_unchanged(self):
        """Test that a file already in the final form is not rewritten."""
        param_file = self._copy("MSGFPlus_Current.txt")

        result = _translator().translate(param_file)

        self.assertTrue(result.success)
        self.assertIsNone(result.original_param_file)
        self.assertEqual(param_file.read_text(), (DATA_PATH / "MSGFPlus_Current.txt").read_text())
        self.assertEqual(result.thread_count, 5)

    def test_locked_instrument_id(self):
        """Test that a value followed by an exclamation mark is not auto-updated."""
        param_file = self._write("MSGFPlus_Locked.txt", "InstrumentID=1!\nAddFeatures=1\nMinNumPeaksPerSpectrum=5\n")

        result = _translator().translate(param_file)

        self.assertTrue(result.success)
        self.assertIn(
            "Although code logic suggests to use InstrumentID 3 (Q-Exactive), the existing value will be left as 1 "
            "since it is locked in the parameter file (via an exclamation mark)",
            result.messages,
        )
        self.assertEqual(
            param_file.read_text(), "InstrumentID=1 # !\nAddFeatures=1\nMinNumPeaksPerSpectrum=5\n\nNumThreads=5\n"
        )

    def test_legacy_value_maps(self):
        """Test that each value of nnet and c13 is converted, with a warning for unrecognized values."""
        cases = [
            ("nnet=0", "NTT=2", ""),
            ("nnet=1", "NTT=1", ""),
            ("nnet=2", "NTT=0", ""),
            ("nnet=5", "NTT=1", "Unrecognized value for nnet (5); assuming NTT=1"),
            ("c13=0", "IsotopeErrorRange=0,0", ""),
            ("c13=1", "IsotopeErrorRange=-1,1", ""),
            ("c13=2", "IsotopeErrorRange=-1,2", ""),
            ("c13=3", "IsotopeErrorRange=0,1", "Unrecognized value for c13 (3); assuming IsotopeErrorRange=0,1"),
            ("c13=two", "IsotopeErrorRange=0,1", "Unrecognized value for c13 (two); assuming IsotopeErrorRange=0,1"),
        ]
        for legacy_line, expected_line, warning in cases:
            with self.subTest(legacy_line=legacy_line):
                param_file = self._write("MSGFPlus_LegacyValue.txt", f"InstrumentID=3\n{legacy_line}\n")

                result = _translator().translate(param_file)

                self.assertTrue(result.success)
                self.assertTrue(param_file.read_text().startswith(f"InstrumentID=3\n{expected_line}\n"))
                unrecognized = [message for message in result.messages if message.startswith("Unrecognized value")]
                self.assertEqual(unrecognized, [warning] if warning else [])

    def test_locked_thread_count_and_override(self):
        """Test that locked values win over the job-level thread count and overrides."""
        param_file = self._write(
            "MSGFPlus_LockedThreads.txt", "InstrumentID=3\nNumThreads=4 # !\nPrecursorMassTolerance=20ppm # !\n"
        )

        result = _translator(job_thread_count="6", override_params={"PrecursorMassTolerance": "10ppm"}).translate(
            param_file
        )

        self.assertTrue(result.success)
        self.assertEqual(result.thread_count, 4)
        self.assertIn(
            "Although code logic suggests to use 6 threads, the existing value will be left as 4 since it is locked "
            "in the parameter file (via an exclamation mark)",
            result.messages,
        )
        self.assertIn(
            "Not overriding parameter PrecursorMassTolerance to be 10ppm; the existing value 20ppm is locked in the "
            "parameter file (via an exclamation mark)",
            result.messages,
        )
        self.assertFalse(any(message.startswith("Overriding parameter") for message in result.messages))
        self.assertTrue(param_file.read_text().startswith("InstrumentID=3\nNumThreads=4 # !\n"))

        arguments = get_command_line_arguments(param_file)
        self.assertIn("-thread 4 ", arguments)
        self.assertIn("-t 20ppm ", arguments)

    def test_modification_error(self):
        """Test that an invalid modification fails the translation, but the file is still written."""
        param_file = self._write(
            "MSGFPlus_BadMod.txt", "InstrumentID=3\nDynamicMod=C2H3N1O1,C,fix,any,Carbamidomethyl\n"
        )

        result = _translator().translate(param_file)

        self.assertFalse(result.success)
        self.assertEqual(result.code, CloseOutType.FAILED)
        self.assertEqual(
            result.error_message,
            "Dynamic mod definition contains ,fix, -- update the param file to have ,opt, or change to StaticMod=",
        )
        self.assertTrue((self.temp_dir / "MSGFPlus_BadMod.original").is_file())
        self.assertEqual(
            param_file.read_text(),
            "InstrumentID=3\nDynamicMod=C2H3N1O1,C,fix,any,Carbamidomethyl\n\nNumThreads=5\n",
        )

    def test_phosphorylation_and_enzymes(self):
        """Test phospho detection and creation of the enzymes file."""
        param_file = self._write(
            "MSGFPlus_Phospho.txt",
            "InstrumentID=3\n"
            "DynamicMod=HO3P, STY, opt, any, Phospho\n"
            "EnzymeDef=CNBr, M, C, CNBr\n"
            "MinNumPeaksPerSpectrum=5\n"
            "AddFeatures=1\n"
            "NumThreads=5\n",
        )

        result = _translator().translate(param_file)

        self.assertTrue(result.success)
        self.assertTrue(result.phosphorylation_search)
        self.assertEqual(result.enzyme_definition_file, self.temp_dir / "params" / "enzymes.txt")
        self.assertTrue(result.enzyme_definition_file.read_text().endswith("CNBr,M,C,CNBr\n"))
        self.assertIsNone(result.original_param_file)

    def test_missing_param_file(self):
        """Test that a missing parameter file is reported through the result code."""
        result = _translator().translate(self.temp_dir / "missing.txt")
        self.assertEqual(result.code, CloseOutType.NO_PARAM_FILE)
        self.assertFalse(result.success)
        self.assertIn("missing.txt", result.error_message)

    def test_tda_with_decoy_fasta(self):
        """Test that a target/decoy search against a decoy FASTA file is rejected."""
        param_file = self._copy("MSGFPlus_Current.txt")
        result = _translator(fasta_is_decoy=True).translate(param_file)
        self.assertFalse(result.success)
        self.assertIn("decoy protein collection conflict", result.error_message)

    def test_tda_not_numeric(self):
        """Test that a non-numeric TDA setting is rejected."""
        param_file = self._write("MSGFPlus_TDA.txt", "InstrumentID=3\nTDA=yes\n")
        result = _translator().translate(param_file)
        self.assertFalse(result.success)
        self.assertIn("TDA parameter is not numeric", result.error_message)

    def test_num_mods_not_numeric(self):
        """Test that the lines after a fatal error are written back unchanged."""
        param_file = self._write("MSGFPlus_NumMods.txt", "NumMods=three\nnnet=1\n")
        result = _translator().translate(param_file)
        self.assertFalse(result.success)
        self.assertEqual(result.error_message, "Invalid value for NumMods in MS-GF+ parameter file: NumMods=three")
        self.assertEqual(param_file.read_text(), "NumMods=three\nnnet=1\n")

    def test_scan_type_file(self):
        """Test that the InstrumentID comes from the spectra in the ScanType file if the group is not known."""
        param_file = self._write("MSGFPlus_ScanType.txt", "FragmentationMethodID=\nInstrumentID=0\nTDA=0\n")

        result = _translator(instrument_group="Orbitrap", scan_type_file=DATA_PATH / "Dataset_ScanType.txt").translate(
            param_file
        )

        self.assertTrue(result.success)
        self.assertEqual(result.instrument_id_reason, "since all spectra are low-res MSn")
        self.assertFalse(result.results_include_auto_added_decoy_peptides)
        self.assertEqual(get_setting_from_param_file(param_file, "FragmentationMethodID"), "0")
        self.assertEqual(get_setting_from_param_file(param_file, "InstrumentID"), "0")

    def test_scan_type_file_mixed_resolution(self):
        """Test that high-res HCD spectra in a ScanType file count as low-res HCD."""
        param_file = self._write("MSGFPlus_Mixed.txt", "InstrumentID=0\n")
        scan_types = ["CID-HMSn"] * 50 + ["HCD-HMSn"] * 50
        rows = [f"{scan}\t{name}" for scan, name in enumerate(scan_types, start=1)]
        scan_type_file = self._write("Mixed_ScanType.txt", "ScanNumber\tScanTypeName\n" + "\n".join(rows) + "\n")

        result = _translator(instrument_group="VelosOrbi", scan_type_file=scan_type_file).translate(param_file)

        self.assertTrue(result.success)
        self.assertEqual(result.instrument_id_reason, "since there is a mix of low-res and high-res spectra")
        self.assertEqual(get_setting_from_param_file(param_file, "InstrumentID"), "0")

    def test_instrument_group_wins_over_scan_type_file(self):
        """Test that a known instrument group is used even if a ScanType file exists."""
        param_file = self._write("MSGFPlus_Group.txt", "InstrumentID=0\n")
        result = _translator(instrument_group="timsTOF", scan_type_file=DATA_PATH / "Dataset_ScanType.txt").translate(
            param_file
        )
        self.assertEqual(result.instrument_id_reason, "based on instrument group timsTOF")
        self.assertEqual(get_setting_from_param_file(param_file, "InstrumentID"), "2")

    def test_scan_type_counts(self):
        """Test that job-level spectrum counts are used for unknown instrument groups."""
        param_file = self._write("MSGFPlus_Counts.txt", "InstrumentID=1\n")
        result = _translator(
            instrument_group="LTQ", scan_type_counts={"ScanCountLowResMSn": 500, "ScanCountHighResMSn": 0}
        ).translate(param_file)
        self.assertEqual(result.instrument_id_reason, "since all spectra are low-res MSn")
        self.assertEqual(get_setting_from_param_file(param_file, "InstrumentID"), "0")

    def test_scan_type_lookup(self):
        """Test that the scan types of the dataset are looked up if no counts are available."""
        param_file = self._write("MSGFPlus_Lookup.txt", "InstrumentID=0\n")
        requested = []

        def lookup(dataset_name):
            requested.append(dataset_name)
            return [("CID-MSn", 100), ("ETD-HMSn", 900)]

        result = _translator(instrument_group="LTQ-ETD", scan_type_lookup=lookup, dataset_name="Dataset").translate(
            param_file
        )

        self.assertEqual(requested, ["Dataset"])
        self.assertEqual(result.instrument_id_reason, "since 90% of the spectra are HMSn")
        self.assertEqual(get_setting_from_param_file(param_file, "InstrumentID"), "1")

    def test_no_scan_type_information(self):
        """Test that the InstrumentID is left as is when nothing is known about the spectra."""
        param_file = self._write("MSGFPlus_Unknown.txt", "InstrumentID=0\n")
        result = _translator(instrument_group="LTQ").translate(param_file)
        self.assertTrue(result.success)
        self.assertEqual(result.instrument_id_reason, "")
        self.assertIn("Scan types are not available; leaving the InstrumentID for LTQ as is", result.messages)

    def test_no_instrument_group(self):
        """Test that the InstrumentID cannot be chosen without a group or a ScanType file."""
        param_file = self._write("MSGFPlus_NoGroup.txt", "InstrumentID=0\n")
        result = _translator(instrument_group="").translate(param_file)
        self.assertFalse(result.success)
        self.assertIn("Instrument group is empty", result.error_message)

    def test_assumed_scan_type(self):
        """Test that the assumed scan type sets the fragmentation method."""
        param_file = self._write("MSGFPlus_Assumed.txt", "FragmentationMethodID=0\nInstrumentID=3\n")
        result = _translator(assumed_scan_type="hcd").translate(param_file)
        self.assertTrue(result.success)
        self.assertEqual(get_setting_from_param_file(param_file, "FragmentationMethodID"), "3")

    def test_overrides(self):
        """Test that job-level overrides replace values from the parameter file."""
        param_file = self._write("MSGFPlus_Override.txt", "InstrumentID=3\nPMTolerance=20ppm   # tolerance\n")
        result = translate_parameter_file(
            param_file,
            instrument_group="QExactive",
            override_params={"PrecursorMassTolerance": "10ppm"},
            job_thread_count="4",
            core_count=6,
            host_name="TestHost",
        )
        self.assertTrue(result.success)
        self.assertEqual(result.thread_count, 4)
        self.assertIn("Overriding parameter PrecursorMassTolerance to be 10ppm instead of 20ppm", result.messages)
        self.assertIn("PrecursorMassTolerance=10ppm   # tolerance\n", param_file.read_text())
        self.assertEqual(get_setting_from_param_file(param_file, "NumThreads"), "4")

    def test_empty_value_commented_out(self):
        """Test that options without a value are commented out."""
        param_file = self._write("MSGFPlus_Empty.txt", "InstrumentID=3\nMinPepLength=\n")
        result = _translator().translate(param_file)
        self.assertTrue(result.success)
        self.assertTrue(param_file.read_text().startswith("InstrumentID=3\n# MinPepLength=\n"))


class TestParamFileHelpers(unittest.TestCase):
    """Test reading settings of translated parameter files."""

    def test_get_setting_from_param_file(self):
        """Test that the comment is removed from the value."""
        param_file = DATA_PATH / "MSGFPlus_Current.txt"
        self.assertEqual(get_setting_from_param_file(param_file, "InstrumentID"), "3")
        self.assertEqual(get_setting_from_param_file(param_file, "tda"), "1")
        self.assertEqual(get_setting_from_param_file(param_file, "Protocol", "0"), "0")

    def test_get_command_line_arguments(self):
        """Test that modifications are not converted to arguments."""
        arguments = get_command_line_arguments(DATA_PATH / "MSGFPlus_Current.txt")
        self.assertEqual(
            arguments,
            " -s Dataset.mzML -t 20ppm -m 0 -inst 3 -e 1 -ntt 2 -ti -1,2 -minNumPeaks 5 -thread 5 -tda 1 "
            "-addFeatures 1",
        )
        self.assertNotIn("StaticMod", arguments)
