import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, List, Sequence, Tuple, Union

from .errors import ParameterFileError

logger = logging.getLogger(__name__)

COMMENT_CHAR = "#"


@dataclass
class KeyValueParamFileLine:
    """One physical line of a key/value parameter file."""

    line_number: int
    text: str
    param_name: str = ""
    param_value: str = ""

    @property
    def has_parameter(self) -> bool:
        """Return True if the line defines a name=value setting."""
        return bool(self.param_name.strip())


def get_key_value_setting(setting_text: str) -> Tuple[str, str]:
    """
    Split a line of the form name=value into its name and value.

    Blank lines, full-line comments and lines without an equals sign (or with one at the very start)
    produce an empty name and value. A setting without a value produces an empty value.

    :param setting_text: the line to parse
    :return: tuple of (name, value)
    """
    if not setting_text or not setting_text.strip():
        return "", ""

    setting_text = setting_text.strip()
    if setting_text.startswith(COMMENT_CHAR) or "=" not in setting_text:
        return "", ""

    char_index = setting_text.index("=")
    if char_index <= 0:
        return "", ""

    key = setting_text[:char_index].strip()
    value = setting_text[char_index + 1 :].strip()
    return key, value


def read_key_value_param_file(
    param_file_path: Union[str, Path], tool_name: str = "MS-GF+"
) -> List[KeyValueParamFileLine]:
    """
    Read every line of a key/value parameter file, keeping line order.

    :param param_file_path: path to the parameter file
    :param tool_name: name of the tool the parameter file belongs to, used in messages
    :raises FileNotFoundError: if the parameter file does not exist
    :raises ParameterFileError: if the file does not contain a single name=value setting
    :return: list of parsed lines, one per physical line
    """
    param_file_path = Path(param_file_path)
    if not param_file_path.is_file():
        raise FileNotFoundError(f"{tool_name} parameter file not found: {param_file_path}")

    param_file_lines = []
    with open(param_file_path, encoding="utf-8") as f:
        for line_number, data_line in enumerate(f, start=1):
            data_line = data_line.rstrip("\r\n")
            name, value = get_key_value_setting(data_line)
            param_file_lines.append(KeyValueParamFileLine(line_number, data_line, name, value))

    if not get_key_value_parameters(param_file_lines):
        raise ParameterFileError(f"{tool_name} parameter file has no valid Key=Value settings: {param_file_path}")

    return param_file_lines


def get_key_value_parameters(param_file_lines: Iterable[KeyValueParamFileLine]) -> List[Tuple[str, str]]:
    """Return the (name, value) pairs of all lines that define a setting."""
    return [(line.param_name, line.param_value) for line in param_file_lines if line.has_parameter]


def get_parameter_value(
    param_file_entries: Iterable[Tuple[str, str]], param_name: str, value_if_missing: str = ""
) -> str:
    """Case-insensitive lookup of a setting; returns value_if_missing if not defined."""
    for name, value in param_file_entries:
        if name.lower() == param_name.lower():
            return value
    return value_if_missing


def param_is_enabled(
    param_file_entries: Iterable[Tuple[str, str]], param_name: str, case_sensitive: bool = False
) -> bool:
    """
    Check whether a setting is enabled.

    A setting is enabled if its value is "true" or a positive integer.

    :param param_file_entries: (name, value) pairs
    :param param_name: name of the setting to check
    :param case_sensitive: whether to match the setting name case-sensitively
    :return: True if the setting is defined and enabled
    """
    for name, value in param_file_entries:
        if case_sensitive:
            if name != param_name:
                continue
        elif name.lower() != param_name.lower():
            continue

        if value.strip().lower() in ("true", "false"):
            return value.strip().lower() == "true"
        try:
            if int(value) > 0:
                return True
        except ValueError:
            pass

    return False


def _find_comment_char(text: str) -> int:
    """Return the index of the first # that is not escaped with a backslash, or -1."""
    index = text.find(COMMENT_CHAR)
    while index > 0 and text[index - 1] == "\\":
        index = text.find(COMMENT_CHAR, index + 1)
    return index


def extract_comment(param_text: str) -> Tuple[str, str, str]:
    """
    Separate a parameter value from its trailing comment.

    The whitespace before the comment is returned including the # sign, so that regenerated lines
    look like the original one, e.g. for ``O1, M, opt, any, Oxidation     # Oxidized methionine``
    the whitespace is ``"     # "``.

    :param param_text: parameter value, possibly followed by a comment
    :return: tuple of (value without comment, comment without the # sign, whitespace before comment)
    """
    pound_index = _find_comment_char(param_text)
    if pound_index <= 0:
        return param_text, "", ""

    value_text = param_text[:pound_index]
    comment_text = param_text[pound_index + 1 :]

    whitespace_before_comment = (
        value_text[len(value_text.rstrip()) :]
        + COMMENT_CHAR
        + comment_text[: len(comment_text) - len(comment_text.lstrip())]
    )

    return value_text.strip(), comment_text.strip(), whitespace_before_comment


def convert_params_to_args(
    param_file_entries: Iterable[Tuple[str, str]],
    param_to_arg_mapping: Dict[str, str],
    param_names_to_skip: Sequence[str] = (),
    argument_prefix: str = "-",
    tool_name: str = "MS-GF+",
) -> str:
    """
    Convert parameter file settings into command line arguments.

    :param param_file_entries: (name, value) pairs read from the parameter file
    :param param_to_arg_mapping: maps parameter names to argument names
    :param param_names_to_skip: parameter names that should not be converted
    :param argument_prefix: prefix placed before each argument name
    :param tool_name: tool name used in messages
    :raises ParameterFileError: if two parameters map to the same argument
    :return: the argument string, starting with a space for each argument
    """
    arguments = []
    arguments_appended = set()

    for name, value in param_file_entries:
        if name in param_names_to_skip:
            continue

        argument_name = param_to_arg_mapping.get(name)
        if argument_name is None:
            logger.warning(f"Ignoring unknown setting {name} from the {tool_name} parameter file")
            continue

        if argument_name in arguments_appended:
            raise ParameterFileError(
                f"Duplicate argument {argument_name} specified for parameter {name} in the {tool_name} parameter file"
            )
        arguments_appended.add(argument_name)
        arguments.append(f" {argument_prefix}{argument_name} {value}")

    return "".join(arguments)
