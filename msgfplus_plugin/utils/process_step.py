import logging
from pathlib import Path
from typing import Union

logger = logging.getLogger(__name__)


class ProcessStep:
    """Marker for a job step that completed in a working directory."""

    def __init__(self, out_path: Union[str, Path], step_name: str):
        """
        Init working directory and step name.

        :param out_path: working directory of the job
        :param step_name: name of the step, e.g. translate_params
        """
        if isinstance(out_path, str):
            out_path = Path(out_path)
        self.out_path = out_path
        self.step_name = step_name

    def _get_proc_folder_path(self) -> Path:
        return self.out_path / "proc"

    def _get_done_file_path(self) -> Path:
        return self._get_proc_folder_path() / f"{self.step_name}.done"

    def is_done(self) -> bool:
        """Return True if the step already ran; creates the proc folder otherwise."""
        self._get_proc_folder_path().mkdir(parents=True, exist_ok=True)

        if self._get_done_file_path().is_file():
            logger.info(f"Skipping {self.step_name} step because {self._get_done_file_path()} was found.")
            return True
        return False

    def mark_done(self):
        """Create the done marker of the step."""
        self._get_done_file_path().touch()
