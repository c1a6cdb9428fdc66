import logging
import os
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Tuple, Union

import pandas as pd

from ..scans.scan_types import (
    InstrumentIDDecision,
    ScanTypeCounts,
    examine_scan_types,
    instrument_id_from_group,
    load_scan_type_file,
)
from .definitions import ParameterDefinition, ParameterKind, get_parameter, lookup_parameter
from .enzymes import create_enzyme_definitions_file
from .errors import ParameterFileError
from .key_value import (
    KeyValueParamFileLine,
    convert_params_to_args,
    extract_comment,
    get_key_value_parameters,
    get_parameter_value,
    read_key_value_param_file,
)
from .modifications import validate_modifications
from .param_file_line import ParamFileLine
from .threads import determine_thread_count, parse_job_thread_count

logger = logging.getLogger(__name__)

ORIGINAL_PARAM_FILE_EXTENSION = ".original"
MINUTES_PER_UPDATED_LINE = 5
DEFAULT_MIN_NUM_PEAKS = "5"
DEFAULT_ADD_FEATURES = "1"

LEGACY_MIN_NUM_PEAKS = "MinNumPeaks"

_ASSUMED_SCAN_TYPES = {"CID": "1", "ETD": "2", "HCD": "3", "UVPD": "4"}
_NNET_TO_NTT = {0: "2", 1: "1", 2: "0"}
_C13_TO_ISOTOPE_ERROR_RANGE = {0: "0,0", 1: "-1,1", 2: "-1,2"}
_DEFAULT_NTT = "1"
_DEFAULT_ISOTOPE_ERROR_RANGE = "0,1"

# options handled through the modifications file rather than the command line
_MOD_FILE_KINDS = (ParameterKind.STATIC_MOD, ParameterKind.DYNAMIC_MOD, ParameterKind.CUSTOM_AA, ParameterKind.NUM_MODS)

ScanTypeLookup = Callable[[str], Optional[Union[pd.DataFrame, Iterable[Tuple[str, int]]]]]


class CloseOutType(Enum):
    """Outcome of a job step operation."""

    SUCCESS = "success"
    FAILED = "failed"
    NO_PARAM_FILE = "no_param_file"
    FILE_NOT_FOUND = "file_not_found"


@dataclass
class TranslationResult:
    """Outcome of translating an MS-GF+ parameter file."""

    code: CloseOutType
    source_param_file: Path
    final_param_file: Path
    original_param_file: Optional[Path] = None
    phosphorylation_search: bool = False
    results_include_auto_added_decoy_peptides: bool = False
    thread_count: int = 0
    enzyme_definition_file: Optional[Path] = None
    instrument_id_reason: str = ""
    messages: List[str] = field(default_factory=list)
    error_message: str = ""

    @property
    def success(self) -> bool:
        """Return True if the parameter file is ready to use."""
        return self.code == CloseOutType.SUCCESS


@dataclass
class _ParsedParameters:
    """Settings collected while reading the parameter file."""

    lines: List[ParamFileLine] = field(default_factory=list)
    lines_by_kind: Dict[ParameterKind, List[ParamFileLine]] = field(default_factory=dict)
    static_mods: List[str] = field(default_factory=list)
    dynamic_mods: List[str] = field(default_factory=list)
    custom_amino_acids: List[str] = field(default_factory=list)
    enzyme_defs: List[str] = field(default_factory=list)
    param_file_thread_count: int = 0
    is_tda: bool = False

    def register(self, line: ParamFileLine):
        self.lines_by_kind.setdefault(line.param_info.kind, []).append(line)

    def append_parameter(self, param_info: ParameterDefinition) -> ParamFileLine:
        """Append a new option to the end of the file, after a blank line."""
        self.lines.append(ParamFileLine.blank())
        line = ParamFileLine.from_parameter(param_info)
        self.lines.append(line)
        self.register(line)
        return line


def _empty_or_none(value: str) -> bool:
    return not value.strip() or value.strip().lower() == "none"


class ParameterTranslator:
    """
    Rewrite an MS-GF+ parameter file into the form used for a job.

    The translator renames legacy options, picks the fragmentation method and the instrument ID, sets the thread
    count, validates the modifications, writes custom enzymes to params/enzymes.txt and adds the options MS-GF+ needs
    for post-processing. The source file is only replaced if something changed; the original is kept with the
    extension .original.
    """

    def __init__(
        self,
        instrument_group: str = "",
        assumed_scan_type: str = "",
        scan_type_file: Optional[Union[str, Path]] = None,
        fasta_is_decoy: bool = False,
        override_params: Optional[Mapping[str, str]] = None,
        job_thread_count: Union[str, int, None] = "",
        scan_type_counts: Optional[Union[ScanTypeCounts, Mapping[str, Any]]] = None,
        scan_type_lookup: Optional[ScanTypeLookup] = None,
        dataset_name: str = "",
        core_count: Optional[int] = None,
        host_name: Optional[str] = None,
    ):
        """
        Init the translator with the job settings.

        :param instrument_group: name of the instrument group of the dataset
        :param assumed_scan_type: CID, ETD, HCD or UVPD to force the fragmentation method; empty to keep it
        :param scan_type_file: path to the _ScanType.txt file of the dataset, if one was created
        :param fasta_is_decoy: whether the FASTA file already contains decoy proteins
        :param override_params: parameter values that replace the values in the parameter file
        :param job_thread_count: thread count defined for the job; empty or "all" to let the translator decide
        :param scan_type_counts: precomputed spectrum counts, or job parameters holding them
        :param scan_type_lookup: callable returning the scan types and spectrum counts of a dataset
        :param dataset_name: dataset name passed to scan_type_lookup
        :param core_count: number of cores; determined from the system if not given
        :param host_name: name of this computer; determined from the system if not given
        """
        self.instrument_group = instrument_group or ""
        self.assumed_scan_type = assumed_scan_type or ""
        self.scan_type_file = Path(scan_type_file) if scan_type_file else None
        self.fasta_is_decoy = fasta_is_decoy
        self.override_params = {k.lower(): str(v) for k, v in (override_params or {}).items()}
        self.job_thread_count = "" if job_thread_count is None else str(job_thread_count)
        if scan_type_counts is not None and not isinstance(scan_type_counts, ScanTypeCounts):
            scan_type_counts = ScanTypeCounts.from_job_parameters(scan_type_counts)
        self.scan_type_counts = scan_type_counts
        self.scan_type_lookup = scan_type_lookup
        self.dataset_name = dataset_name
        self.core_count = core_count
        self.host_name = host_name

    def translate(self, param_file: Union[str, Path]) -> TranslationResult:
        """
        Read the parameter file and create the customized version.

        Fatal problems do not raise; they are reported through the result code and error message. The parameter
        file is then still rewritten, so the rejected settings can be reviewed.

        :param param_file: path to the MS-GF+ parameter file
        :return: the translation result
        """
        param_file = Path(param_file)
        result = TranslationResult(CloseOutType.SUCCESS, param_file, param_file)

        if not param_file.is_file():
            self._error(result, f"Parameter file not found: {param_file}", CloseOutType.NO_PARAM_FILE)
            return result

        try:
            source_lines = read_key_value_param_file(param_file)
        except ParameterFileError as e:
            self._error(result, f"Error reading MS-GF+ parameter file: {e}")
            return result

        parsed = _ParsedParameters()
        try:
            self._process_lines(source_lines, parsed, result)
            result.results_include_auto_added_decoy_peptides = parsed.is_tda
            self._finalize(param_file, parsed, result)
        except FileNotFoundError as e:
            self._error(result, str(e), CloseOutType.FILE_NOT_FOUND)
        except (ParameterFileError, ValueError) as e:
            self._error(result, str(e))

        # lines after a fatal error are written back unchanged
        parsed.lines.extend(ParamFileLine(source_line) for source_line in source_lines[len(parsed.lines) :])

        self._write_param_file(param_file, parsed.lines, result, always_create=not result.success)
        return result

    def _process_lines(self, source_lines: List[KeyValueParamFileLine], parsed: _ParsedParameters, result):
        for source_line in source_lines:
            line = ParamFileLine(source_line)
            parsed.lines.append(line)

            if not line.has_parameter:
                continue

            value, comment, whitespace_before_comment = extract_comment(line.param_value)
            param_info = lookup_parameter(line.param_name, value)

            if param_info is None:
                self._process_unrecognized_line(line, value, parsed, result)
                continue

            if comment:
                param_info = param_info.with_comment(comment, whitespace_before_comment)
            line.store_parameter(param_info)
            kind = line.param_info.kind

            if kind == ParameterKind.FRAGMENTATION_METHOD_ID:
                self._resolve_fragmentation_method(line, result)
            elif kind == ParameterKind.INSTRUMENT_ID:
                self._resolve_instrument_id(line, result)
            elif kind == ParameterKind.STATIC_MOD:
                if not _empty_or_none(line.param_info.value):
                    parsed.static_mods.append(line.param_info.value)
            elif kind == ParameterKind.DYNAMIC_MOD:
                if not _empty_or_none(line.param_info.value):
                    parsed.dynamic_mods.append(line.param_info.value)
            elif kind == ParameterKind.CUSTOM_AA:
                parsed.custom_amino_acids.append(line.param_info.value)

            replacement = self._get_legacy_replacement(line, result)
            if replacement is not None:
                self._status(
                    result,
                    f"Replacing parameter {line.param_name} with {replacement.name}={replacement.value}",
                )
                line.replace_parameter(replacement)

            self._possibly_override_parameter(line, result)

            kind = line.param_info.kind
            value = line.param_info.value
            if kind == ParameterKind.NUM_THREADS:
                if not value.strip():
                    line.update_param_value("All")
                elif value.strip().lower() != "all":
                    try:
                        parsed.param_file_thread_count = int(value)
                    except ValueError:
                        self._warning(
                            result, f"Invalid value for NumThreads in MS-GF+ parameter file: {line.param_name}={value}"
                        )
                        self._status(result, f"Changing to: {kind.value}=All")
            elif kind == ParameterKind.NUM_MODS:
                try:
                    int(value)
                except ValueError:
                    raise ParameterFileError(
                        f"Invalid value for NumMods in MS-GF+ parameter file: {line.param_name}={value}"
                    ) from None
            elif not value:
                self._warning(result, f"Commenting out parameter {line.param_name} since the value is empty")
                line.change_line_to_comment()
                continue

            if kind == ParameterKind.TDA and value.strip().isdigit() and int(value) > 0:
                parsed.is_tda = True

            parsed.register(line)

    def _process_unrecognized_line(self, line: ParamFileLine, value: str, parsed: _ParsedParameters, result):
        name = line.param_name.lower()
        if name in ("uniformaaprob", "showdecoy"):
            line.change_line_to_comment("Obsolete")
            self._warning(
                result, f"Commenting out parameter {line.param_name} since it is not valid for this version of MS-GF+"
            )
        elif name == "skipmzrefinery":
            line.change_line_to_comment()
        elif name == "enzymedef":
            if not _empty_or_none(value):
                parsed.enzyme_defs.append(value)
        else:
            logger.debug(f"Parameter {line.param_name} is not a known MS-GF+ option; leaving it unchanged")

    def _resolve_fragmentation_method(self, line: ParamFileLine, result):
        if not line.param_info.value.strip() and self.scan_type_file is not None:
            line.update_param_value("0")
            self._status(
                result, f"Using Fragmentation method ID {line.param_info.value} because a ScanType file was created"
            )
        elif self.assumed_scan_type:
            method = _ASSUMED_SCAN_TYPES.get(self.assumed_scan_type.strip().upper())
            if method is None:
                raise ParameterFileError(
                    f"Invalid assumed scan type '{self.assumed_scan_type}'; must be CID, ETD, HCD, or UVPD"
                )
            line.update_param_value(method)
            self._status(
                result,
                f"Using Fragmentation method ID {line.param_info.value} because of assumed scan type "
                f"{self.assumed_scan_type}",
            )
        else:
            self._status(result, f"Using Fragmentation method ID {line.param_info.value}")

    def _resolve_instrument_id(self, line: ParamFileLine, result):
        if self.scan_type_file is not None:
            decision = instrument_id_from_group(self.instrument_group)
            if decision is None:
                classification = load_scan_type_file(self.scan_type_file)
                if classification.msn_count == 0:
                    raise ParameterFileError(f"Could not find any MSn spectra in {self.scan_type_file.name}")
                decision = examine_scan_types(classification.counts())
        elif self.instrument_group:
            decision = instrument_id_from_group(self.instrument_group)
            if decision is None:
                counts = self._lookup_scan_type_counts(result)
                if counts is not None:
                    decision = examine_scan_types(counts)
        else:
            raise ParameterFileError(
                "Instrument group is empty and a scan type file was not provided; "
                "unable to determine the value to use for InstrumentID"
            )

        if decision is not None:
            self._auto_update_instrument_id(line, decision, result)

    def _lookup_scan_type_counts(self, result) -> Optional[ScanTypeCounts]:
        """Get the spectrum counts from the job parameters or, if not defined there, from the dataset scan types."""
        if self.scan_type_counts is not None and self.scan_type_counts.total > 0:
            return self.scan_type_counts

        if self.scan_type_lookup is None:
            self._status(
                result, f"Scan types are not available; leaving the InstrumentID for {self.instrument_group} as is"
            )
            return None

        if not self.dataset_name:
            self._warning(result, "Cannot look up scan types since the dataset name is empty")
            return None

        scan_types = self.scan_type_lookup(self.dataset_name)
        counts = ScanTypeCounts.from_dataset_scan_types(scan_types if scan_types is not None else [])
        if counts.total == 0:
            self._status(result, f"No scan types were found for dataset {self.dataset_name}")
            return None
        return counts

    def _auto_update_instrument_id(self, line: ParamFileLine, decision: InstrumentIDDecision, result):
        result.instrument_id_reason = decision.reason
        current_value = line.param_info.value
        if decision.value == current_value:
            return

        description = decision.instrument_id.description
        if line.value_locked:
            self._status(
                result,
                f"Although code logic suggests to use InstrumentID {decision.value} ({description}), the existing value "
                f"will be left as {current_value} since it is locked in the parameter file (via an exclamation mark)",
            )
            return

        self._status(
            result,
            f"Auto-updating instrument ID from {current_value} to {decision.value} ({description}) {decision.reason}",
        )
        line.update_param_value(decision.value)

    def _get_legacy_replacement(self, line: ParamFileLine, result) -> Optional[ParameterDefinition]:
        """Return the current option replacing a legacy one, or None if the option is current."""
        kind = line.param_info.kind
        value = line.param_info.value

        if kind == ParameterKind.NNET:
            try:
                nnet = int(value)
            except ValueError:
                raise ParameterFileError(
                    f"Parameter {kind.value} does not contain an integer in the MS-GF+ parameter file: {value}"
                ) from None
            ntt = _NNET_TO_NTT.get(nnet)
            if ntt is None:
                ntt = _DEFAULT_NTT
                self._warning(
                    result, f"Unrecognized value for {kind.value} ({value}); assuming {ParameterKind.NTT.value}={ntt}"
                )
            return get_parameter(ParameterKind.NTT, ntt)

        if kind == ParameterKind.C13:
            try:
                isotope_error_range = _C13_TO_ISOTOPE_ERROR_RANGE.get(int(value))
            except ValueError:
                isotope_error_range = None
            if isotope_error_range is None:
                isotope_error_range = _DEFAULT_ISOTOPE_ERROR_RANGE
                self._warning(
                    result,
                    f"Unrecognized value for {kind.value} ({value}); "
                    f"assuming {ParameterKind.ISOTOPE_ERROR_RANGE.value}={isotope_error_range}",
                )
            return get_parameter(ParameterKind.ISOTOPE_ERROR_RANGE, isotope_error_range)

        if kind == ParameterKind.MIN_NUM_PEAKS_PER_SPECTRUM and line.param_name.lower() == LEGACY_MIN_NUM_PEAKS.lower():
            return get_parameter(ParameterKind.MIN_NUM_PEAKS_PER_SPECTRUM, value)

        return None

    def _possibly_override_parameter(self, line: ParamFileLine, result):
        value_override = self.override_params.get(line.param_info.name.lower())
        if value_override is None:
            return
        if line.value_locked and value_override != line.param_info.value:
            self._status(
                result,
                f"Not overriding parameter {line.param_info.name} to be {value_override}; the existing value "
                f"{line.param_info.value} is locked in the parameter file (via an exclamation mark)",
            )
            return
        self._status(
            result,
            f"Overriding parameter {line.param_info.name} to be {value_override} instead of {line.param_info.value}",
        )
        line.update_param_value(value_override)

    def _finalize(self, param_file: Path, parsed: _ParsedParameters, result):
        """Apply the rules that need the whole file: threads, modifications, enzymes, defaults and decoy checks."""
        decision = determine_thread_count(
            parsed.param_file_thread_count,
            parse_job_thread_count(self.job_thread_count),
            core_count=self.core_count,
            host_name=self.host_name,
        )
        if decision.message:
            result.messages.append(decision.message)

        if decision.thread_count > 0:
            result.thread_count = decision.thread_count
            thread_lines = parsed.lines_by_kind.get(ParameterKind.NUM_THREADS)
            if not thread_lines:
                parsed.append_parameter(get_parameter(ParameterKind.NUM_THREADS, str(decision.thread_count)))
            elif thread_lines[0].value_locked:
                locked_value = thread_lines[0].param_info.value
                result.thread_count = parse_job_thread_count(locked_value)
                if result.thread_count != decision.thread_count:
                    self._status(
                        result,
                        f"Although code logic suggests to use {decision.thread_count} threads, the existing value "
                        f"will be left as {locked_value} since it is locked in the parameter file "
                        "(via an exclamation mark)",
                    )
            else:
                thread_lines[0].update_param_value(str(decision.thread_count))

        modifications = validate_modifications(parsed.static_mods, parsed.dynamic_mods, parsed.custom_amino_acids)
        result.phosphorylation_search = any(mod.is_phosphorylation for mod in modifications)

        result.enzyme_definition_file = create_enzyme_definitions_file(param_file.parent, parsed.enzyme_defs)

        # MS-GF+ skips spectra with fewer than 10 peaks by default
        if ParameterKind.MIN_NUM_PEAKS_PER_SPECTRUM not in parsed.lines_by_kind:
            parsed.append_parameter(get_parameter(ParameterKind.MIN_NUM_PEAKS_PER_SPECTRUM, DEFAULT_MIN_NUM_PEAKS))

        # required for rescoring the results
        if ParameterKind.ADD_FEATURES not in parsed.lines_by_kind:
            parsed.append_parameter(get_parameter(ParameterKind.ADD_FEATURES, DEFAULT_ADD_FEATURES))

        tda_lines = parsed.lines_by_kind.get(ParameterKind.TDA)
        if tda_lines:
            tda_line = tda_lines[0]
            try:
                tda_setting = int(tda_line.param_info.value)
            except ValueError:
                raise ParameterFileError(
                    f"TDA parameter is not numeric in the parameter file; it should be 0 or 1, see {tda_line.text}"
                ) from None

            if tda_setting > 0 and self.fasta_is_decoy:
                raise ParameterFileError(
                    "Parameter file / decoy protein collection conflict: do not use a decoy protein collection "
                    "when using a target/decoy parameter file (which has setting TDA=1)"
                )

    def _write_param_file(
        self, source_param_file: Path, lines: List[ParamFileLine], result: TranslationResult, always_create: bool
    ):
        """
        Replace the parameter file if at least one line changed, or if always_create is set.

        The source file is renamed to have the extension .original. The new file gets the modification time of the
        source file plus 5 minutes for every updated line.
        """
        updated_line_count = sum(1 for line in lines if line.line_updated)
        if not lines or (updated_line_count == 0 and not always_create):
            logger.debug(f"No parameters were customized in {source_param_file}; not creating a new file")
            return

        original_param_file = source_param_file.with_suffix(ORIGINAL_PARAM_FILE_EXTENSION)
        try:
            source_mtime = source_param_file.stat().st_mtime
            if original_param_file.exists():
                original_param_file.unlink()
            source_param_file.rename(original_param_file)

            with open(source_param_file, "w", encoding="utf-8") as f:
                for line in lines:
                    f.write(f"{line.text}\n")

            new_mtime = source_mtime + MINUTES_PER_UPDATED_LINE * 60 * updated_line_count
            os.utime(source_param_file, (new_mtime, new_mtime))
        except OSError as e:
            self._error(result, f"Exception creating the customized MS-GF+ parameter file: {e}")
            return

        result.original_param_file = original_param_file
        logger.info(
            f"Updated {updated_line_count} line(s) of {source_param_file.name}; "
            f"original saved as {original_param_file.name}"
        )

    def _status(self, result: TranslationResult, message: str):
        logger.info(message)
        result.messages.append(message)

    def _warning(self, result: TranslationResult, message: str):
        logger.warning(message)
        result.messages.append(message)

    def _error(self, result: TranslationResult, message: str, code: CloseOutType = CloseOutType.FAILED):
        logger.error(message)
        result.messages.append(message)
        result.code = code
        if not result.error_message:
            result.error_message = message


def translate_parameter_file(param_file: Union[str, Path], **kwargs) -> TranslationResult:
    """
    Translate an MS-GF+ parameter file.

    :param param_file: path to the MS-GF+ parameter file
    :param kwargs: job settings passed to ParameterTranslator
    :return: the translation result
    """
    return ParameterTranslator(**kwargs).translate(param_file)


def get_setting_from_param_file(param_file: Union[str, Path], setting_name: str, value_if_missing: str = "") -> str:
    """
    Read a single setting from a parameter file, without its comment.

    :param param_file: path to the parameter file
    :param setting_name: name of the setting; case-insensitive
    :param value_if_missing: value returned if the setting is not defined
    :return: the value of the setting
    """
    entries = get_key_value_parameters(read_key_value_param_file(param_file))
    return extract_comment(get_parameter_value(entries, setting_name, value_if_missing))[0]


def get_command_line_arguments(param_file: Union[str, Path]) -> str:
    """
    Convert the settings of a translated parameter file into MS-GF+ command line arguments.

    Modifications are not included; MS-GF+ reads them from the parameter file.

    :param param_file: path to the translated parameter file
    :return: the argument string
    """
    entries = []
    param_to_arg = {}
    for name, value in get_key_value_parameters(read_key_value_param_file(param_file)):
        param_info = lookup_parameter(name)
        if param_info is None or param_info.kind in _MOD_FILE_KINDS or not param_info.command_line_arg:
            continue
        entries.append((param_info.name, extract_comment(value)[0]))
        param_to_arg[param_info.name] = param_info.command_line_arg

    return convert_params_to_args(entries, param_to_arg)
