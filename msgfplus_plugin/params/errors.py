class ParameterFileError(ValueError):
    """Raised for fatal problems with the contents of an MS-GF+ parameter file."""


class ModificationError(ParameterFileError):
    """Raised when a StaticMod, DynamicMod or CustomAA definition is malformed."""
