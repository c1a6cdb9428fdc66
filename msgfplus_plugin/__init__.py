"""MS-GF+ plugin: parameter file translation and console output progress tracking for MS-GF+ job steps."""

from datetime import datetime

__author__ = """The msgfplus-plugin development team"""
__copyright__ = f"Copyright {datetime.now():%Y}, The msgfplus-plugin development team"
__license__ = "MIT"
__version__ = "0.3.0"

import logging.handlers
import sys

from msgfplus_plugin import fasta as fa
from msgfplus_plugin import params as pa
from msgfplus_plugin import progress as pg
from msgfplus_plugin import scans as sc
from msgfplus_plugin import utils

CONSOLE_LOG_LEVEL = logging.INFO
logger = logging.getLogger(__name__)
logger.setLevel(logging.DEBUG)


class _InfoWarningFilter(logging.Filter):
    def filter(self, record):
        return CONSOLE_LOG_LEVEL <= record.levelno <= logging.WARNING


if len(logger.handlers) == 0:
    formatter = logging.Formatter("%(asctime)s - %(levelname)s - %(name)s::%(funcName)s %(message)s")
    # add console handler
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.addFilter(_InfoWarningFilter())
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    # add error handler
    error_handler = logging.StreamHandler()
    error_handler.setLevel(logging.ERROR)
    error_handler.setFormatter(formatter)
    logger.addHandler(error_handler)
else:
    logger.info("Logger already initialized. Resuming normal operation.")

sys.modules.update({f"{__name__}.{m}": globals()[m] for m in ["fa", "pa", "pg", "sc"]})
