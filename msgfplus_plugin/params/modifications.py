import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, List

from .errors import ModificationError
from .key_value import extract_comment

logger = logging.getLogger(__name__)

MOD_PART_COUNT = 5

_INVALID_FORMULA_CHARACTERS = re.compile(r"[^CHNOS0-9]", re.IGNORECASE)
_ELEMENT_SPLITTER = re.compile(r"(?P<atom>[A-Z])(?P<count>\d*)", re.IGNORECASE)


class ModificationType(Enum):
    """The parameter file sections that hold modification definitions."""

    STATIC = ("StaticMod", "fix", "Static mod")
    DYNAMIC = ("DynamicMod", "opt", "Dynamic mod")
    CUSTOM_AA = ("CustomAA", "custom", "Custom AA")

    def __init__(self, param_name: str, tag: str, description: str):
        self.param_name = param_name
        self.tag = tag
        self.description = description

    @classmethod
    def from_tag(cls, tag: str) -> "ModificationType":
        """Get the section whose type tag is the given one; raises ValueError for unknown tags."""
        for mod_type in cls:
            if mod_type.tag == tag.lower():
                return mod_type
        raise ValueError(f"Unknown modification type tag: {tag}")


@dataclass(frozen=True)
class ModificationDefinition:
    """
    A validated StaticMod, DynamicMod or CustomAA definition.

    The five parts are: empirical formula or mass, residues, type tag, position and name, e.g.
    ``O1, M, opt, any, Oxidation`` or ``C5H7N1O2S0,J,custom,P,Hydroxylation``.
    """

    mass_or_formula: str
    residues: str
    mod_type: ModificationType
    position: str
    name: str
    comment: str = ""

    @property
    def clean_text(self) -> str:
        """The definition without extra whitespace, followed by its comment if there is one."""
        text = ",".join([self.mass_or_formula, self.residues, self.mod_type.tag, self.position, self.name])
        if self.comment:
            text += f"     # {self.comment}"
        return text

    @property
    def is_phosphorylation(self) -> bool:
        """
        Check whether this is STY phosphorylation.

        MS-GF+ recognizes Phospho, Phosphorylation and Phosphorylated as names for it.
        """
        if self.mod_type == ModificationType.CUSTOM_AA:
            return False
        if not (self.name.lower().startswith("phospho") or self.mass_or_formula.upper().startswith("HO3P")):
            return False
        return any(residue in self.residues.upper() for residue in "STY")


def normalize_formula(formula: str) -> str:
    """
    Make sure every element of an empirical formula is followed by a count, e.g. C6H7N3O becomes C6H7N3O1.

    :param formula: the empirical formula of a custom amino acid
    :raises ModificationError: if the formula contains anything other than C, H, N, O, S and numbers
    :return: the normalized formula
    """
    if _INVALID_FORMULA_CHARACTERS.search(formula):
        raise ModificationError(
            f"Custom amino acid empirical formula {formula} has invalid characters. It must only contain C, H, N, O, "
            "and S, and optionally an integer after each element, for example: C6H7N3O"
        )

    normalized = "".join(f"{m.group('atom')}{m.group('count') or '1'}" for m in _ELEMENT_SPLITTER.finditer(formula))

    if normalized != formula:
        logger.info(
            "Auto updated the custom amino acid empirical formula to include a 1 after elements that did not "
            f"have an element count listed: {formula} --> {normalized}"
        )
    return normalized


def parse_modification(mod_text: str, mod_type: ModificationType) -> ModificationDefinition:
    """
    Parse and validate a modification definition from the given parameter file section.

    :param mod_text: the value of a StaticMod, DynamicMod or CustomAA line, possibly with a trailing comment
    :param mod_type: the section the definition was read from
    :raises ModificationError: if the definition does not have exactly five parts, has the type tag of another
        section, has an unknown type tag, or is a custom amino acid with an invalid formula
    :return: the validated definition
    """
    mod_def, comment, _ = extract_comment(mod_text)
    parts = [part.replace("\t", " ").strip() for part in mod_def.split(",")]

    if len(parts) != MOD_PART_COUNT:
        if mod_type == ModificationType.CUSTOM_AA or any(part.lower() == "custom" for part in parts):
            raise ModificationError(f"Invalid custom AA string; must have {MOD_PART_COUNT} sections: {mod_def}")
        raise ModificationError(f"Invalid modification string; must have {MOD_PART_COUNT} sections: {mod_def}")

    if any(not part for part in parts):
        raise ModificationError(f"Invalid modification string; empty section found: {mod_def}")

    tag = parts[2]
    try:
        declared_type = ModificationType.from_tag(tag)
    except ValueError:
        raise ModificationError(
            f"{mod_type.description} definition has unknown type ,{tag}, -- expected ,{mod_type.tag},: {mod_def}"
        ) from None

    if declared_type != mod_type:
        raise ModificationError(
            f"{mod_type.description} definition contains ,{declared_type.tag}, -- update the param file to have "
            f",{mod_type.tag}, or change to {declared_type.param_name}="
        )

    mass_or_formula = parts[0]
    if mod_type == ModificationType.CUSTOM_AA:
        mass_or_formula = normalize_formula(mass_or_formula)

    return ModificationDefinition(mass_or_formula, parts[1], mod_type, parts[3], parts[4], comment)


def validate_modifications(
    static_mods: Iterable[str], dynamic_mods: Iterable[str], custom_amino_acids: Iterable[str]
) -> List[ModificationDefinition]:
    """
    Validate all modification definitions of a parameter file.

    Custom amino acids are checked first, then static and dynamic modifications.

    :param static_mods: values of the StaticMod lines
    :param dynamic_mods: values of the DynamicMod lines
    :param custom_amino_acids: values of the CustomAA lines
    :raises ModificationError: for the first invalid definition
    :return: the validated definitions
    """
    definitions = []
    for mod_texts, mod_type in (
        (custom_amino_acids, ModificationType.CUSTOM_AA),
        (static_mods, ModificationType.STATIC),
        (dynamic_mods, ModificationType.DYNAMIC),
    ):
        for mod_text in mod_texts:
            definitions.append(parse_modification(mod_text, mod_type))
    return definitions
