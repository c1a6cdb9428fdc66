import logging
from typing import Optional

from .definitions import ParameterDefinition
from .key_value import COMMENT_CHAR, KeyValueParamFileLine

logger = logging.getLogger(__name__)

LOCK_MARKER = "!"


class ParamFileLine:
    """
    A line of an MS-GF+ parameter file, together with the MS-GF+ option it defines (if any).

    Lines are never reordered. Unchanged lines are written back exactly as they were read; lines whose value was
    changed are regenerated from the option, keeping the original comment and the whitespace in front of it.

    A value is locked, meaning it is not auto-updated, when it ends with an exclamation mark or when its comment
    starts with one. When the line is rewritten the exclamation mark is kept in the comment only, since MS-GF+ would
    reject it as part of the value.
    """

    def __init__(self, source: KeyValueParamFileLine, line_updated: bool = False):
        """
        Wrap a line read from a parameter file.

        :param source: the line as read by the key/value reader
        :param line_updated: whether the line should be considered new or changed
        """
        self.source = source
        self.param_info: Optional[ParameterDefinition] = None
        self.line_updated = line_updated
        self.value_locked = False
        self.commented_out = False
        self._comment_reason = ""

    @classmethod
    def blank(cls) -> "ParamFileLine":
        """Create a new, empty line."""
        return cls(KeyValueParamFileLine(0, ""), line_updated=True)

    @classmethod
    def from_parameter(cls, param_info: ParameterDefinition) -> "ParamFileLine":
        """Create a new line defining the given option."""
        line = cls(
            KeyValueParamFileLine(0, param_info.key_value_text, param_info.name, param_info.value), line_updated=True
        )
        line.param_info = param_info
        return line

    @property
    def line_number(self) -> int:
        """Line number in the source file; 0 for appended lines."""
        return self.source.line_number

    @property
    def param_name(self) -> str:
        """Parameter name as written in the file."""
        return self.source.param_name

    @property
    def param_value(self) -> str:
        """Parameter value as written in the file, including any comment."""
        return self.source.param_value

    @property
    def has_parameter(self) -> bool:
        """Return True if the line defines a name=value setting."""
        return self.source.has_parameter

    @property
    def text(self) -> str:
        """Text to write to the parameter file for this line."""
        if self.commented_out:
            text = f"{COMMENT_CHAR} {self.source.text}"
            if self._comment_reason:
                text += f"   {COMMENT_CHAR} {self._comment_reason}"
            return text

        if not self.line_updated or self.param_info is None:
            return self.source.text

        return self.param_info.key_value_text + self.param_info.comment_with_prefix

    def store_parameter(self, param_info: ParameterDefinition):
        """
        Associate an MS-GF+ option with this line, detecting the lock marker.

        :param param_info: the option, holding the value and comment read from this line
        """
        value = param_info.value.strip()
        comment = param_info.comment.strip()

        if value.endswith(LOCK_MARKER):
            value = value[: -len(LOCK_MARKER)].rstrip()
            if not comment.startswith(LOCK_MARKER):
                comment = f"{LOCK_MARKER} {comment}".rstrip()
            param_info = param_info.with_value(value).with_comment(comment, param_info.whitespace_before_comment)
            # the value as written cannot be passed to MS-GF+
            self.line_updated = True
            self.value_locked = True
        elif comment.startswith(LOCK_MARKER):
            self.value_locked = True

        self.param_info = param_info

    def update_param_value(self, value: str) -> bool:
        """
        Change the value of the option on this line.

        The line is only flagged as updated if the new value differs from the current one. Locked values are left
        as they are.

        :param value: the new value
        :raises ValueError: if no option is associated with this line
        :return: True if the value was changed
        """
        if self.param_info is None:
            raise ValueError(f"Cannot update the value of line {self.line_number}; it does not define a parameter")

        if self.value_locked:
            logger.debug(f"Not changing {self.param_info.name} to {value} since the value is locked")
            return False

        if self.param_info.value == value:
            return False

        self.param_info = self.param_info.with_value(value)
        self.line_updated = True
        return True

    def replace_parameter(self, param_info: ParameterDefinition):
        """Replace the option on this line with a different one, keeping the comment."""
        if self.param_info is not None and self.param_info.comment:
            param_info = param_info.with_comment(self.param_info.comment, self.param_info.whitespace_before_comment)
        self.param_info = param_info
        self.line_updated = True

    def change_line_to_comment(self, reason: str = ""):
        """
        Comment out this line.

        :param reason: optional text appended to the commented-out line
        """
        self.commented_out = True
        self._comment_reason = reason
        self.line_updated = True

    def __repr__(self) -> str:
        return f"ParamFileLine({self.line_number}, {self.text!r})"
