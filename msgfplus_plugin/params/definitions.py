import logging
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Dict, FrozenSet, Optional

from .key_value import COMMENT_CHAR

logger = logging.getLogger(__name__)


class ParameterKind(Enum):
    """Canonical MS-GF+ options; the value is the name written to the parameter file."""

    SPECTRUM_FILE = "SpectrumFile"
    DATABASE_FILE = "DatabaseFile"
    DECOY_PREFIX = "DecoyPrefix"
    PRECURSOR_MASS_TOLERANCE = "PrecursorMassTolerance"
    PRECURSOR_MASS_TOLERANCE_UNITS = "PrecursorMassToleranceUnits"
    FRAGMENTATION_METHOD_ID = "FragmentationMethodID"
    INSTRUMENT_ID = "InstrumentID"
    ENZYME_ID = "EnzymeID"
    PROTOCOL_ID = "ProtocolID"
    NUM_THREADS = "NumThreads"
    NUM_TASKS = "NumTasks"
    ISOTOPE_ERROR_RANGE = "IsotopeErrorRange"
    NTT = "NTT"
    C13 = "c13"
    NNET = "nnet"
    MIN_PEP_LENGTH = "MinPepLength"
    MAX_PEP_LENGTH = "MaxPepLength"
    MIN_CHARGE = "MinCharge"
    MAX_CHARGE = "MaxCharge"
    NUM_MATCHES_PER_SPEC = "NumMatchesPerSpec"
    CHARGE_CARRIER_MASS = "ChargeCarrierMass"
    MIN_NUM_PEAKS_PER_SPECTRUM = "MinNumPeaksPerSpectrum"
    NUM_ISOFORMS = "NumIsoforms"
    IGNORE_MET_CLEAVAGE = "IgnoreMetCleavage"
    MIN_DE_NOVO_SCORE = "MinDeNovoScore"
    SPEC_INDEX = "SpecIndex"
    MAX_MISSED_CLEAVAGES = "MaxMissedCleavages"
    TDA = "TDA"
    ADD_FEATURES = "AddFeatures"
    FRAG_TOLERANCE = "FragTolerance"
    NUM_MODS = "NumMods"
    STATIC_MOD = "StaticMod"
    DYNAMIC_MOD = "DynamicMod"
    CUSTOM_AA = "CustomAA"


@dataclass(frozen=True)
class ParameterDefinition:
    """
    A recognized MS-GF+ option, optionally carrying the value read from a parameter file.

    Instances in the lookup table are templates; every parsed line receives its own clone.
    """

    kind: ParameterKind
    command_line_arg: str = ""
    synonyms: FrozenSet[str] = field(default_factory=frozenset)
    value: str = ""
    comment: str = ""
    whitespace_before_comment: str = ""

    @property
    def name(self) -> str:
        """Canonical parameter name."""
        return self.kind.value

    @property
    def key_value_text(self) -> str:
        """Name=Value text, without the comment."""
        return f"{self.name}={self.value}"

    @property
    def comment_with_prefix(self) -> str:
        """
        Comment text to place after the value, including the # sign.

        The whitespace captured when the line was read is reused so that rewritten lines keep their layout.
        """
        if not self.comment.strip():
            return ""

        comment_text = self.whitespace_before_comment + self.comment
        if comment_text.strip().startswith(COMMENT_CHAR):
            return comment_text
        return f" {COMMENT_CHAR} {comment_text}"

    def has_synonym(self, param_name: str) -> bool:
        """Case-insensitive check of the historical names for this option."""
        return param_name.lower() in self.synonyms

    def clone(self, value: Optional[str] = None) -> "ParameterDefinition":
        """Copy this definition; the value is cleared unless a new one is given."""
        return replace(self, value=value if value is not None else "")

    def with_value(self, value: str) -> "ParameterDefinition":
        """Copy this definition, keeping its comment, with a new value."""
        return replace(self, value=value)

    def with_comment(self, comment: str, whitespace_before_comment: str = "") -> "ParameterDefinition":
        """Copy this definition with a new comment."""
        if not whitespace_before_comment.strip():
            whitespace_before_comment = "" if comment.strip().startswith(COMMENT_CHAR) else f" {COMMENT_CHAR} "
        return replace(self, comment=comment, whitespace_before_comment=whitespace_before_comment)


def _define(kind: ParameterKind, command_line_arg: str = "", *synonyms: str) -> ParameterDefinition:
    return ParameterDefinition(kind, command_line_arg, frozenset(s.lower() for s in synonyms))


_DEFINITIONS = (
    _define(ParameterKind.SPECTRUM_FILE, "s"),
    _define(ParameterKind.DATABASE_FILE, "d"),
    _define(ParameterKind.DECOY_PREFIX, "decoy"),
    _define(ParameterKind.PRECURSOR_MASS_TOLERANCE, "t", "PMTolerance"),
    _define(ParameterKind.PRECURSOR_MASS_TOLERANCE_UNITS, "u"),
    _define(ParameterKind.FRAGMENTATION_METHOD_ID, "m"),
    _define(ParameterKind.INSTRUMENT_ID, "inst"),
    _define(ParameterKind.ENZYME_ID, "e"),
    _define(ParameterKind.PROTOCOL_ID, "protocol", "Protocol"),
    _define(ParameterKind.NUM_THREADS, "thread"),
    _define(ParameterKind.NUM_TASKS, "tasks"),
    _define(ParameterKind.ISOTOPE_ERROR_RANGE, "ti", "IsotopeError"),
    _define(ParameterKind.NTT, "ntt"),
    _define(ParameterKind.C13),
    _define(ParameterKind.NNET),
    _define(ParameterKind.MIN_PEP_LENGTH, "minLength", "minLength"),
    _define(ParameterKind.MAX_PEP_LENGTH, "maxLength", "maxLength"),
    _define(ParameterKind.MIN_CHARGE, "minCharge"),
    _define(ParameterKind.MAX_CHARGE, "maxCharge"),
    _define(ParameterKind.NUM_MATCHES_PER_SPEC, "n"),
    _define(ParameterKind.CHARGE_CARRIER_MASS, "ccm"),
    # legacy MinNumPeaks lines resolve here via the synonym
    _define(ParameterKind.MIN_NUM_PEAKS_PER_SPECTRUM, "minNumPeaks", "minNumPeaks"),
    _define(ParameterKind.NUM_ISOFORMS, "iso"),
    _define(ParameterKind.IGNORE_MET_CLEAVAGE, "ignoreMetCleavage"),
    _define(ParameterKind.MIN_DE_NOVO_SCORE, "minDeNovoScore"),
    _define(ParameterKind.SPEC_INDEX, "index"),
    _define(ParameterKind.MAX_MISSED_CLEAVAGES, "maxMissedCleavages"),
    _define(ParameterKind.TDA, "tda"),
    _define(ParameterKind.ADD_FEATURES, "addFeatures"),
    _define(ParameterKind.FRAG_TOLERANCE, "f"),
    _define(ParameterKind.NUM_MODS),
    _define(ParameterKind.STATIC_MOD),
    _define(ParameterKind.DYNAMIC_MOD),
    _define(ParameterKind.CUSTOM_AA),
)

_BY_KIND: Dict[ParameterKind, ParameterDefinition] = {d.kind: d for d in _DEFINITIONS}

_LOOKUP: Dict[str, ParameterDefinition] = {}
for _definition in _DEFINITIONS:
    for _key in (_definition.name.lower(), *_definition.synonyms):
        if _key in _LOOKUP:
            raise RuntimeError(f"Parameter name {_key} is registered twice")
        _LOOKUP[_key] = _definition


def lookup_parameter(param_name: str, value: str = "") -> Optional[ParameterDefinition]:
    """
    Find the definition of a parameter by its canonical name or one of its synonyms.

    :param param_name: name as written in the parameter file; case-insensitive
    :param value: value to store in the returned copy
    :return: a new definition holding the value, or None if the name is not an MS-GF+ option
    """
    definition = _LOOKUP.get(param_name.strip().lower())
    if definition is None:
        return None
    return definition.clone(value)


def get_parameter(kind: ParameterKind, value: str = "") -> ParameterDefinition:
    """
    Get a new definition of the given kind.

    :param kind: the parameter kind
    :param value: value to store in the returned copy
    :return: a new definition holding the value
    """
    return _BY_KIND[kind].clone(value)
