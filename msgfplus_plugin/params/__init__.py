"""Init params."""

from .definitions import ParameterDefinition, ParameterKind, get_parameter, lookup_parameter
from .enzymes import create_enzyme_definitions_file
from .errors import ModificationError, ParameterFileError
from .key_value import (
    KeyValueParamFileLine,
    convert_params_to_args,
    extract_comment,
    get_key_value_parameters,
    get_key_value_setting,
    get_parameter_value,
    param_is_enabled,
    read_key_value_param_file,
)
from .modifications import ModificationDefinition, ModificationType, parse_modification, validate_modifications
from .param_file_line import ParamFileLine
from .threads import ThreadCountDecision, determine_thread_count, get_core_count, parse_job_thread_count
from .translator import (
    CloseOutType,
    ParameterTranslator,
    TranslationResult,
    get_command_line_arguments,
    get_setting_from_param_file,
    translate_parameter_file,
)
