import datetime
import json
import logging
from pathlib import Path
from typing import Optional, Tuple, Union

from msgfplus_plugin import __copyright__, __version__
from msgfplus_plugin import fasta as fa
from msgfplus_plugin import params as pa
from msgfplus_plugin import progress as pg
from msgfplus_plugin import scans as sc

from .scans.scan_type_file import SCAN_TYPE_FILE_SUFFIX
from .utils import Config, ProcessStep

logger = logging.getLogger(__name__)


def _create_scan_type_file(config: Config) -> Optional[Path]:
    if not config.create_scan_type_file:
        return config.scan_type_file

    scan_type_file = config.output / f"{config.dataset_name}{SCAN_TYPE_FILE_SUFFIX}"
    scan_type_step = ProcessStep(config.output, "create_scan_type_file")
    if not scan_type_step.is_done():
        scan_type_file, _ = sc.create_scan_type_file(config.output, config.dataset_name)
        scan_type_step.mark_done()
    return scan_type_file


def _prepare_fasta(config: Config) -> Tuple[bool, Optional[Path]]:
    """
    Determine whether the FASTA file holds decoy proteins and trim it if it is too large.

    :param config: Config object
    :return: the FASTA decoy flag passed on to the translator and the FASTA file to search
    """
    fasta_file = config.fasta_file
    if fasta_file is None:
        return bool(config.fasta_is_decoy), None

    if config.fasta_is_decoy is None:
        is_decoy = fa.fasta_is_decoy(fasta_file, config.protein_options, config.param_file)
    else:
        is_decoy = config.fasta_is_decoy
    logger.info(f"FASTA file {fasta_file.name} is {'a decoy' if is_decoy else 'a forward-only'} FASTA file")

    max_size_mb = config.max_fasta_file_size_mb
    if max_size_mb > 0 and fasta_file.stat().st_size / 1024 / 1024 > max_size_mb:
        logger.info(f"FASTA file is over {max_size_mb} MB; creating a trimmed version of the FASTA file")
        fasta_file = fa.create_trimmed_fasta(fasta_file, max_size_mb)
        logger.info(f"Using trimmed FASTA file {fasta_file}")

    return is_decoy, fasta_file


def _translate_params(config: Config, scan_type_file: Optional[Path], fasta_is_decoy: bool):
    translate_step = ProcessStep(config.output, "translate_params")
    if translate_step.is_done():
        return

    translator = pa.ParameterTranslator(
        instrument_group=config.instrument_group,
        assumed_scan_type=config.assumed_scan_type,
        scan_type_file=scan_type_file,
        fasta_is_decoy=fasta_is_decoy,
        override_params=config.override_params,
        job_thread_count=config.msgfplus_threads,
        scan_type_counts=config.scan_type_counts,
        dataset_name=config.dataset_name,
        host_name=config.host_name,
    )
    result = translator.translate(config.param_file)

    if not result.success:
        raise ValueError(f"Translation of {config.param_file.name} failed ({result.code.value}): {result.error_message}")

    if result.original_param_file is not None:
        logger.info(f"Original parameter file kept as {result.original_param_file.name}")
    if result.phosphorylation_search:
        logger.info("Phosphorylation search detected")
    translate_step.mark_done()


def _get_msgfplus_arguments(config: Config, fasta_file: Optional[Path]) -> str:
    arguments = pa.get_command_line_arguments(config.param_file)
    if fasta_file is not None and not pa.get_setting_from_param_file(config.param_file, "DatabaseFile"):
        arguments += f" -d {fasta_file}"
    return arguments


def _report_search_progress(config: Config):
    console_output_file = config.output / config.console_output_file
    if not console_output_file.is_file():
        return

    state = pg.parse_console_output(config.output, config.console_output_file)
    logger.info(
        f"MS-GF+ progress {state.progress:.1f}%: {state.task_count_completed} / {state.task_count_total} tasks "
        f"complete using {state.thread_count_actual} threads, {state.spectra_searched} spectra, "
        f"{state.elapsed_time_hours:.2f} hours elapsed"
    )
    if state.continuum_spectra_skipped > 0:
        logger.warning(f"MS-GF+ skipped {state.continuum_spectra_skipped} spectra that are not centroided")
    if state.error_message:
        logger.error(state.error_message)


def run_job(config_path: Union[str, Path]):
    """
    Prepare an MS-GF+ search based on the given config file.

    Creates the scan type file when requested, examines and trims the FASTA file, translates the parameter file
    and reports the progress of a search that already wrote console output.

    :param config_path: Path to config file
    :raises ValueError: if the parameter file could not be translated
    """
    conf = Config()
    conf.read(config_path)
    conf.check()

    output_folder = conf.output
    output_folder.mkdir(parents=True, exist_ok=True)

    # add file handler to root logger
    base_logger = logging.getLogger()
    formatter = logging.Formatter("%(asctime)s - %(levelname)s - %(name)s::%(funcName)s %(message)s")
    suffix = datetime.datetime.now().strftime("%Y_%m_%d-%H_%M_%S")
    logging_output = output_folder / f"MSGFPlus_{suffix}.log"
    file_handler = logging.FileHandler(filename=logging_output)
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(formatter)
    base_logger.addHandler(file_handler)

    logger.info(f"msgfplus-plugin version {__version__}\n{__copyright__}")
    logger.info("Job executed with the following config:")
    logger.info(json.dumps(conf.data, indent=4))

    try:
        scan_type_file = _create_scan_type_file(conf)
        fasta_is_decoy, fasta_file = _prepare_fasta(conf)
        _translate_params(conf, scan_type_file, fasta_is_decoy)
        logger.info(f"MS-GF+ arguments: {_get_msgfplus_arguments(conf, fasta_file)}")
        _report_search_progress(conf)
    finally:
        file_handler.close()
        base_logger.removeHandler(file_handler)
