import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Optional, Set, Union

logger = logging.getLogger(__name__)

CONSOLE_OUTPUT_FILE = "MSGFPlus_ConsoleOutput.txt"

PROGRESS_PCT_STARTING = 1
PROGRESS_PCT_LOADING_DATABASE = 2
PROGRESS_PCT_READING_SPECTRA = 3
PROGRESS_PCT_THREADS_SPAWNED = 4
PROGRESS_PCT_COMPUTING_FDRS = 95
PROGRESS_PCT_COMPLETE = 96
PROGRESS_PCT_CONVERT_MZID_TO_TSV = 97
PROGRESS_PCT_MAPPING_PEPTIDES_TO_PROTEINS = 98
PROGRESS_PCT_PCT_COMPLETE = 99

VERSION_LINE_PREFIX = "MS-GF+ Release"
ERROR_MESSAGE_PREFIX = "Error running MS-GF+: "

# number of leading lines that may hold the version (older releases printed it first,
# newer ones print the command line and a separator line before it)
HEADER_LINE_COUNT = 3

THREAD_COUNT_PATTERN = re.compile(r"Using (?P<thread_count>\d+) threads", re.IGNORECASE)
TASK_COUNT_PATTERN = re.compile(r"Splitting work into +(?P<task_count>\d+) +tasks", re.IGNORECASE)
SPECTRA_SEARCHED_PATTERN = re.compile(r"Spectrum.+\(total: *(?P<spectrum_count>\d+)\)", re.IGNORECASE)
TASK_COMPLETE_PATTERN = re.compile(r"pool-\d+-thread-\d+: Task +(?P<task_number>\d+) +completed", re.IGNORECASE)
PERCENT_COMPLETE_PATTERN = re.compile(
    r"Search progress: (?P<tasks_complete>\d+) / \d+ tasks?, (?P<percent_complete>[0-9.]+)%", re.IGNORECASE
)
ELAPSED_TIME_PATTERN = re.compile(r"(?P<elapsed_time>[0-9.]+) (?P<units>seconds|minutes|hours) elapsed", re.IGNORECASE)

_HOURS_PER_UNIT = {"seconds": 1 / 3600, "minutes": 1 / 60, "hours": 1.0}

# line prefix -> progress value reached once the line is seen
_MILESTONES = (
    ("loading database files", PROGRESS_PCT_LOADING_DATABASE),
    ("reading spectra", PROGRESS_PCT_READING_SPECTRA),
    ("computing efdrs", PROGRESS_PCT_COMPUTING_FDRS),
    ("computing q-values", PROGRESS_PCT_COMPUTING_FDRS),
    ("ms-gf+ complete", PROGRESS_PCT_COMPLETE),
)


@dataclass(frozen=True)
class ConsoleOutputProgress:
    """Search state reconstructed from the MS-GF+ console output."""

    progress: float = 0.0
    msgfplus_version: str = ""
    thread_count_actual: int = 0
    task_count_total: int = 0
    task_count_completed: int = 0
    spectra_searched: int = 0
    continuum_spectra_skipped: int = 0
    elapsed_time_hours: float = 0.0
    error_message: str = ""


class _ConsoleOutputState:
    """Mutable accumulator used while scanning the console output line by line."""

    def __init__(self):
        self.progress = float(PROGRESS_PCT_STARTING)
        self.version = ""
        self.thread_count = 0
        self.task_count = 0
        self.completed_tasks: Set[int] = set()
        self.tasks_complete_via_search_progress = 0
        self.percent_complete = 0.0
        self.spectra_searched = 0
        self.continuum_spectra_skipped = 0
        self.elapsed_time_hours = 0.0
        self.error_message = ""

    def raise_progress(self, value: float):
        if self.progress < value:
            self.progress = float(value)

    def snapshot(self) -> ConsoleOutputProgress:
        task_count_completed = len(self.completed_tasks)
        if task_count_completed == 0 and self.tasks_complete_via_search_progress > 0:
            task_count_completed = self.tasks_complete_via_search_progress

        progress = self.progress
        if self.percent_complete > 0:
            # a low percentage never pulls progress below a milestone already reached
            scaled = min(self.percent_complete * PROGRESS_PCT_COMPLETE / 100, float(PROGRESS_PCT_COMPLETE))
            progress = max(progress, scaled)

        return ConsoleOutputProgress(
            progress=progress,
            msgfplus_version=self.version,
            thread_count_actual=self.thread_count,
            task_count_total=self.task_count,
            task_count_completed=task_count_completed,
            spectra_searched=self.spectra_searched,
            continuum_spectra_skipped=self.continuum_spectra_skipped,
            elapsed_time_hours=self.elapsed_time_hours,
            error_message=self.error_message,
        )


def _parse_header_line(state: _ConsoleOutputState, line: str):
    if not state.version and line.lower().startswith(VERSION_LINE_PREFIX.lower()):
        logger.info(f"MS-GF+ version: {line}")
        state.version = line
    elif "error" in line.lower():
        if not state.error_message:
            state.error_message = ERROR_MESSAGE_PREFIX
        if line not in state.error_message:
            state.error_message += "; " + line


def _parse_prefixed_line(state: _ConsoleOutputState, line: str):
    lower = line.lower()

    if lower.startswith("ignoring spectrum"):
        if "spectrum is not centroided" in lower:
            state.continuum_spectra_skipped += 1
        return

    for prefix, value in _MILESTONES:
        if lower.startswith(prefix):
            state.raise_progress(value)
            return

    if lower.startswith("using"):
        match = THREAD_COUNT_PATTERN.search(line)
        if match:
            state.thread_count = int(match.group("thread_count"))
            state.raise_progress(PROGRESS_PCT_THREADS_SPAWNED)
    elif lower.startswith("splitting"):
        match = TASK_COUNT_PATTERN.search(line)
        if match:
            state.task_count = int(match.group("task_count"))
    elif lower.startswith("spectrum"):
        match = SPECTRA_SEARCHED_PATTERN.search(line)
        if match:
            state.spectra_searched = int(match.group("spectrum_count"))
    elif not state.error_message and "error" in lower and "isotopeerror:" not in lower:
        state.error_message += "; " + line


def _update_completed_tasks(state: _ConsoleOutputState, line: str):
    match = TASK_COMPLETE_PATTERN.search(line)
    if not match:
        return
    task_number = int(match.group("task_number"))
    if task_number in state.completed_tasks:
        logger.warning(f"MS-GF+ reported that task {task_number} completed more than once")
    else:
        state.completed_tasks.add(task_number)


def _update_percent_complete(state: _ConsoleOutputState, line: str):
    match = PERCENT_COMPLETE_PATTERN.search(line)
    if not match:
        return
    state.tasks_complete_via_search_progress = max(
        state.tasks_complete_via_search_progress, int(match.group("tasks_complete"))
    )
    state.percent_complete = max(state.percent_complete, float(match.group("percent_complete")))


def _update_elapsed_time(state: _ConsoleOutputState, line: str):
    match = ELAPSED_TIME_PATTERN.search(line)
    if not match:
        return
    hours = float(match.group("elapsed_time")) * _HOURS_PER_UNIT.get(match.group("units").lower(), 0.0)
    state.elapsed_time_hours = max(state.elapsed_time_hours, hours)


def _scan_lines(state: _ConsoleOutputState, lines: Iterable[str]):
    for line_number, line in enumerate(lines, start=1):
        line = line.rstrip("\r\n")
        if not line.strip():
            continue

        if line_number <= HEADER_LINE_COUNT:
            _parse_header_line(state, line)

        _parse_prefixed_line(state, line)
        _update_completed_tasks(state, line)
        _update_percent_complete(state, line)
        _update_elapsed_time(state, line)


def parse_console_output_lines(lines: Iterable[str]) -> ConsoleOutputProgress:
    """
    Reconstruct the state of an MS-GF+ search from its console output.

    Progress is reported on a 0 to 96 scale: milestone lines raise it to fixed values, and once
    "Search progress" lines appear, the largest reported percentage is scaled onto that range
    (never dropping below the last milestone).

    :param lines: lines of the console output, in the order they were written
    :return: the reconstructed search state
    """
    state = _ConsoleOutputState()
    _scan_lines(state, lines)
    return state.snapshot()


def parse_console_output(
    working_directory: Union[str, Path], file_name: str = CONSOLE_OUTPUT_FILE
) -> ConsoleOutputProgress:
    """
    Parse the MS-GF+ console output file of a working directory.

    A missing file yields zero progress. The file may still be written to while it is read;
    any problem while parsing is logged and the state gathered so far is returned.

    :param working_directory: directory holding the console output file
    :param file_name: name of the console output file
    :return: the reconstructed search state
    """
    console_output_file = Path(working_directory) / file_name

    if not console_output_file.is_file():
        logger.debug(f"Console output file not found: {console_output_file}")
        return ConsoleOutputProgress()

    logger.debug(f"Parsing file {console_output_file}")
    state = _ConsoleOutputState()
    try:
        with open(console_output_file, encoding="utf-8", errors="replace") as fh:
            _scan_lines(state, fh)
    except Exception as e:
        logger.debug(f"Error parsing console output file ({console_output_file}): {e}")

    return state.snapshot()


def get_progress(working_directory: Union[str, Path], file_name: Optional[str] = None) -> float:
    """Return only the search progress (0 to 96) of a working directory."""
    return parse_console_output(working_directory, file_name or CONSOLE_OUTPUT_FILE).progress
