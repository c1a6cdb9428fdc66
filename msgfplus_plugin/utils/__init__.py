"""Init utils."""

from .config import Config
from .process_step import ProcessStep
